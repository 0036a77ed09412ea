#!/usr/bin/env python3
"""Compute full-reference quality metrics between two raw YUV videos.

Reads the luma plane of every frame of an original and a processed video
(raw planar YUV, progressively scanned, 8 bits per sample) and writes one CSV
file per metric with per-frame values and the average over all frames.

Usage:
    python vqmt.py ORIGINAL PROCESSED HEIGHT WIDTH FRAMES CHROMA OUTPUT METRIC [METRIC ...]

    ORIGINAL            Original video as raw YUV file
    PROCESSED           Processed video as raw YUV file
    HEIGHT, WIDTH       Frame size in luma samples
    FRAMES              Number of frames to process
    CHROMA              Chroma subsampling: 0=YUV400, 1=YUV420, 2=YUV422, 3=YUV444
    OUTPUT              Output prefix; writes OUTPUT_<METRIC>.csv
    METRIC              One or more of: PSNR SSIM MSSSIM WSPSNR WSSSIM WSMSSSIM

Options:
    --window-size N     SSIM window size (default: 11)
    --sigma S           SSIM Gaussian window sigma (default: 1.5)
    --window KIND       SSIM window kind: gaussian or box (default: gaussian)
    --k1 K, --k2 K      SSIM stabilization constants, C = (K * 255)^2 (default: 0.01, 0.03)
    --levels L          MS-SSIM scales (default: 5; height/width must be multiples of 2^(L-1))
    --json              Also write OUTPUT_summary.json
    --quiet             No per-frame progress lines

Examples:
    python vqmt.py original.yuv processed.yuv 1088 1920 250 1 results PSNR SSIM MSSSIM
    will create results_PSNR.csv, results_SSIM.csv and results_MSSSIM.csv.

    python vqmt.py orig_360.yuv proc_360.yuv 1920 3840 60 1 erp WSPSNR WSSSIM

Notes:
  - SSIM comes for free when MSSSIM is computed, and WSSSIM when WSMSSSIM is
    (each still has to be listed to get its output).
  - When using MSSSIM or WSMSSSIM with 5 scales, the height and width of the
    video have to be multiples of 16.
  - Any missing frame or configuration problem aborts the run before output
    files are written; frames are never skipped.
"""

import argparse
import os
import sys
import json
import time
from datetime import datetime
import numpy as np

from common import (ALL_KEYS, METRIC_INFO, UNSUPPORTED_KEYS, CHROMA_FORMATS, PIXEL_MAX,
                    MetricError, chroma_plane_size, iter_luma)
from structural_similarity import (SSIM, MSSSIM, MSSSIMResult, WINDOW_SIZE, WINDOW_SIGMA,
                                   DEFAULT_K1, DEFAULT_K2, MSSSIM_LEVELS)
from spherical_metrics import LatitudeWeights, PSNR, WSPSNR, WSSSIM, WSMSSSIM

# Metrics whose value can come from a multi-scale pass
FREE_FROM = {"SSIM": "MSSSIM", "WSSSIM": "WSMSSSIM"}


def parse_metric_keys(names):
    """Split requested metric names into (known, ignored), preserving order."""
    known, ignored = [], []
    for name in names:
        key = name.strip().upper()
        if key in ALL_KEYS:
            if key not in known:
                known.append(key)
        else:
            ignored.append(name)
    return known, ignored


def build_metrics(height, width, metric_keys, window_size=WINDOW_SIZE, sigma=WINDOW_SIGMA,
                  window="gaussian", k1=DEFAULT_K1, k2=DEFAULT_K2, levels=MSSSIM_LEVELS):
    """Construct the metric objects needed for metric_keys.

    Returns {key: metric}.  SSIM/WSSSIM get no object of their own when the
    matching multi-scale metric is requested.  Raises ConfigurationError.
    """
    ssim_kwargs = {
        "window_size": window_size, "sigma": sigma, "window": window,
        "c1": (k1 * PIXEL_MAX) ** 2, "c2": (k2 * PIXEL_MAX) ** 2,
    }
    weights = LatitudeWeights()  # shared by all spherical metrics
    metrics = {}
    for key in metric_keys:
        if key in FREE_FROM and FREE_FROM[key] in metric_keys:
            continue
        if key == "PSNR":
            metrics[key] = PSNR(height, width)
        elif key == "SSIM":
            metrics[key] = SSIM(height, width, **ssim_kwargs)
        elif key == "MSSSIM":
            metrics[key] = MSSSIM(height, width, levels=levels, **ssim_kwargs)
        elif key == "WSPSNR":
            metrics[key] = WSPSNR(height, width, weights=weights)
        elif key == "WSSSIM":
            metrics[key] = WSSSIM(height, width, weights=weights, **ssim_kwargs)
        elif key == "WSMSSSIM":
            metrics[key] = WSMSSSIM(height, width, weights=weights, levels=levels, **ssim_kwargs)
    return metrics


def score_frame(metrics, metric_keys, original, processed):
    """Evaluate every metric on one frame pair, return {key: value}."""
    scores = {}
    for key, metric in metrics.items():
        value = metric.compute(original, processed)
        if isinstance(value, MSSSIMResult):
            scores[key] = value.msssim
            for free_key, source in FREE_FROM.items():
                if source == key and free_key in metric_keys:
                    scores[free_key] = value.ssim
        else:
            scores[key] = value
    return scores


def run_metrics(original_frames, processed_frames, metrics, metric_keys, n_frames, verbose=True):
    """Score n_frames frame pairs. Returns {key: [value per frame]}.

    Raises EOFError if either stream runs out early; MetricError from the metrics propagates.
    """
    perframe = {k: [] for k in metric_keys}
    orig_iter = iter(original_frames)
    proc_iter = iter(processed_frames)
    for frame in range(n_frames):
        original = next(orig_iter, None)
        if original is None:
            raise EOFError(f"original stream ended before frame {frame}")
        processed = next(proc_iter, None)
        if processed is None:
            raise EOFError(f"processed stream ended before frame {frame}")

        scores = score_frame(metrics, metric_keys, original, processed)
        for key in metric_keys:
            perframe[key].append(scores[key])
        if verbose:
            detail = ", ".join(f"{METRIC_INFO[k][0]}: {scores[k]:.3f}" for k in metric_keys)
            print(f"Computing metrics for frame {frame}. {detail}")
    return perframe


def write_csv(path, values):
    """Write per-frame values and their average in frame,value CSV format."""
    with open(path, "w") as f:
        f.write("frame,value\n")
        for frame, value in enumerate(values):
            f.write(f"{frame},{value:.6f}\n")
        f.write(f"average,{float(np.mean(values)):.6f}\n")


def summarize(perframe):
    """Per-metric mean/std/min/max of the per-frame values."""
    summary = {}
    for key, values in perframe.items():
        arr = np.asarray(values, dtype=np.float64)
        summary[key] = {
            "mean": float(np.mean(arr)),
            "std": float(np.std(arr)),
            "min": float(np.min(arr)),
            "max": float(np.max(arr)),
        }
    return summary


def main():
    parser = argparse.ArgumentParser(
        description="Compute full-reference quality metrics between two raw YUV videos.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("original", help="Original video stream (raw YUV)")
    parser.add_argument("processed", help="Processed video stream (raw YUV)")
    parser.add_argument("height", type=int, help="Frame height")
    parser.add_argument("width", type=int, help="Frame width")
    parser.add_argument("frames", type=int, help="Number of frames")
    parser.add_argument("chroma", type=int, help="Chroma format (0=400, 1=420, 2=422, 3=444)")
    parser.add_argument("output", help="Output prefix for result files")
    parser.add_argument("metrics", nargs="+", help="Metrics to compute")
    parser.add_argument("--window-size", type=int, default=WINDOW_SIZE,
                        help="SSIM window size (default: %(default)s)")
    parser.add_argument("--sigma", type=float, default=WINDOW_SIGMA,
                        help="SSIM Gaussian window sigma (default: %(default)s)")
    parser.add_argument("--window", default="gaussian", choices=["gaussian", "box"],
                        help="SSIM window kind (default: %(default)s)")
    parser.add_argument("--k1", type=float, default=DEFAULT_K1,
                        help="SSIM luminance constant K1 (default: %(default)s)")
    parser.add_argument("--k2", type=float, default=DEFAULT_K2,
                        help="SSIM contrast constant K2 (default: %(default)s)")
    parser.add_argument("--levels", type=int, default=MSSSIM_LEVELS,
                        help="MS-SSIM scales (default: %(default)s)")
    parser.add_argument("--json", action="store_true", help="Also write OUTPUT_summary.json")
    parser.add_argument("--quiet", action="store_true", help="No per-frame progress lines")
    args = parser.parse_args()

    metric_keys, ignored = parse_metric_keys(args.metrics)
    for name in ignored:
        if name.upper() in UNSUPPORTED_KEYS:
            print(f"WARNING: Metric {name} is not supported and will be ignored.")
        else:
            print(f"WARNING: Metric {name} not recognized and will be ignored.")
    if not metric_keys:
        print(f"ERROR: No metrics to compute. Available: {', '.join(ALL_KEYS)}")
        sys.exit(1)

    if args.height <= 0 or args.width <= 0:
        print(f"ERROR: Frame size must be positive, got {args.height}x{args.width}")
        sys.exit(1)
    if args.frames <= 0:
        print(f"ERROR: Number of frames must be positive, got {args.frames}")
        sys.exit(1)

    for path in (args.original, args.processed):
        if not os.path.isfile(path):
            print(f"ERROR: Input file not found: {path}")
            sys.exit(1)

    # All configuration checks happen before the first frame is read
    try:
        chroma_plane_size(args.height, args.width, args.chroma)
        metrics = build_metrics(args.height, args.width, metric_keys,
                                window_size=args.window_size, sigma=args.sigma,
                                window=args.window, k1=args.k1, k2=args.k2,
                                levels=args.levels)
    except MetricError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print(f"Comparing {os.path.basename(args.processed)} against {os.path.basename(args.original)} "
          f"({args.width}x{args.height}, {CHROMA_FORMATS[args.chroma]}, {args.frames} frames)")
    print(f"Metrics ({len(metric_keys)}): {', '.join(metric_keys)}")
    print("")

    start = time.perf_counter()
    original_frames = iter_luma(args.original, args.height, args.width, args.chroma, args.frames)
    processed_frames = iter_luma(args.processed, args.height, args.width, args.chroma, args.frames)
    try:
        perframe = run_metrics(original_frames, processed_frames, metrics, metric_keys,
                               args.frames, verbose=not args.quiet)
    except (MetricError, EOFError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)
    finally:
        original_frames.close()
        processed_frames.close()
    elapsed = time.perf_counter() - start

    output_dir = os.path.dirname(args.output)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    print("")
    for key in metric_keys:
        csv_path = f"{args.output}_{key}.csv"
        write_csv(csv_path, perframe[key])
        print(f"{METRIC_INFO[key][0]:<11} average {float(np.mean(perframe[key])):.6f}  ->  {csv_path}")

    if args.json:
        run_timestamp = datetime.now()
        json_output = {
            "_metadata": {
                "original": os.path.abspath(args.original),
                "processed": os.path.abspath(args.processed),
                "height": args.height,
                "width": args.width,
                "frames": args.frames,
                "chroma": CHROMA_FORMATS[args.chroma],
                "metrics": list(metric_keys),
                "window_size": args.window_size,
                "sigma": args.sigma,
                "window": args.window,
                "k1": args.k1,
                "k2": args.k2,
                "levels": args.levels,
                "timestamp": run_timestamp.isoformat(),
                "elapsed_s": round(elapsed, 3),
            }
        }
        json_output.update(summarize(perframe))
        json_path = f"{args.output}_summary.json"
        with open(json_path, "w") as f:
            json.dump(json_output, f, indent=2)
        print(f"\nJSON:  {json_path}")

    print(f"Time: {elapsed:0.3f}s")


if __name__ == "__main__":
    main()
