"""Shared constants, metric metadata, errors, and frame I/O for full-reference metrics.

Used by structural_similarity.py, spherical_metrics.py, and vqmt.py.
"""

import math
import numpy as np

# =====================================================================
# METRIC METADATA
# =====================================================================

ALL_KEYS = ["PSNR", "SSIM", "MSSSIM", "WSPSNR", "WSSSIM", "WSMSSSIM"]

METRIC_INFO = {
    "PSNR":     ("PSNR",       "dB, peak 255",            True),
    "SSIM":     ("SSIM",       "Gaussian 11x11 window",   True),
    "MSSSIM":   ("MS-SSIM",    "5-scale geometric mean",  True),
    "WSPSNR":   ("WS-PSNR",    "latitude-weighted MSE",   True),
    "WSSSIM":   ("WS-SSIM",    "latitude-weighted SSIM",  True),
    "WSMSSSIM": ("WS-MS-SSIM", "latitude-weighted MS-SSIM", True),
}

# Recognized by the original tool but not implemented here
UNSUPPORTED_KEYS = ["VIFP", "PSNRHVS", "PSNRHVSM"]

PIXEL_MAX = 255.0
MSE_FLOOR = 1e-10  # zero-error guard; PSNR of identical planes is ~148.1 dB

CHROMA_FORMATS = {0: "YUV400", 1: "YUV420", 2: "YUV422", 3: "YUV444"}

# =====================================================================
# ERRORS
# =====================================================================

class MetricError(ValueError):
    """Base class for metric contract violations."""


class ConfigurationError(MetricError):
    """A metric cannot be configured for the requested frame geometry or parameters."""


class ShapeMismatchError(MetricError):
    """Reference and processed planes (or the configured size) disagree."""


def check_planes(original, processed, height, width):
    """Validate a plane pair against the configured frame size, return float64 copies-or-views."""
    if original.shape != processed.shape:
        raise ShapeMismatchError(
            f"reference plane is {original.shape[0]}x{original.shape[1]} but "
            f"processed plane is {processed.shape[0]}x{processed.shape[1]}")
    if original.shape != (height, width):
        raise ShapeMismatchError(
            f"planes are {original.shape[0]}x{original.shape[1]}, "
            f"metric was configured for {height}x{width}")
    return (np.asarray(original, dtype=np.float64),
            np.asarray(processed, dtype=np.float64))


def check_divisible(name, height, width, divisor):
    """Raise ConfigurationError unless both dimensions are multiples of divisor."""
    if height % divisor != 0 or width % divisor != 0:
        raise ConfigurationError(
            f"{name}: 'height' and 'width' have to be multiple of {divisor} "
            f"(got {height}x{width})")


def weighted_mean(values, row_weights):
    """Mean of a 2-D map under (H, 1) row weights broadcast across columns."""
    total_weight = float(np.sum(row_weights)) * values.shape[1]
    return float(np.sum(values * row_weights) / total_weight)


def mse_to_psnr(mse):
    """Convert a mean squared error on the 8-bit scale to PSNR in dB."""
    return float(10.0 * math.log10(PIXEL_MAX * PIXEL_MAX / max(float(mse), MSE_FLOOR)))

# =====================================================================
# FRAME I/O
# =====================================================================

def chroma_plane_size(height, width, chroma):
    """Number of samples in ONE chroma plane for the given chroma format."""
    if chroma not in CHROMA_FORMATS:
        raise ConfigurationError(
            f"chroma format must be one of {sorted(CHROMA_FORMATS)} "
            f"({', '.join(CHROMA_FORMATS.values())}), got {chroma}")
    if chroma == 0:
        return 0
    if chroma == 1:
        return (height // 2) * (width // 2)
    if chroma == 2:
        return height * (width // 2)
    return height * width


def frame_bytes(height, width, chroma):
    """Size in bytes of one 8-bit planar YUV frame."""
    return height * width + 2 * chroma_plane_size(height, width, chroma)


def read_luma(f, height, width, chroma):
    """Read one raw 8-bit YUV frame from a binary file. Returns Y as float64 or None at EOF."""
    n_bytes = frame_bytes(height, width, chroma)
    data = f.read(n_bytes)
    if len(data) < n_bytes:
        return None
    y = np.frombuffer(data, dtype=np.uint8, count=height * width)
    return y.reshape(height, width).astype(np.float64)


def iter_luma(filepath, height, width, chroma, n_frames=None):
    """Yield luma planes from a raw YUV file, stopping after n_frames if given."""
    with open(filepath, "rb") as f:
        n = 0
        while n_frames is None or n < n_frames:
            y = read_luma(f, height, width, chroma)
            if y is None:
                return
            yield y
            n += 1


def write_luma_frame(f, y, chroma):
    """Write one 8-bit frame with the given luma and neutral (128) chroma."""
    height, width = y.shape
    f.write(np.clip(np.rint(y), 0, 255).astype(np.uint8).tobytes())
    n_chroma = chroma_plane_size(height, width, chroma)
    if n_chroma:
        f.write(np.full(2 * n_chroma, 128, dtype=np.uint8).tobytes())
