"""Structural similarity (SSIM) and multi-scale SSIM for 8-bit luma planes.

Windowed local statistics are computed with a fixed separable kernel
(Gaussian 11x11, sigma 1.5 by default, as in Wang et al. 2004) using OpenCV
filtering with reflected borders, so every map has the same size as its input.

    SSIM(x) = l(x) * c(x) * s(x)
            = (2 mu1 mu2 + C1)(2 sigma12 + C2) / ((mu1^2 + mu2^2 + C1)(sigma1^2 + sigma2^2 + C2))

MS-SSIM (Wang, Simoncelli & Bovik 2003) evaluates the contrast-structure term
CS on L successively 2x-downsampled versions of the pair and the full SSIM on
the coarsest one, then combines them with a weighted geometric mean.

Both metric classes accept an optional row-weight provider (see
spherical_metrics.LatitudeWeights); when given, every spatial average becomes
a weighted average, which is how the WS-SSIM family is built.
"""

from collections import namedtuple
import numpy as np
import cv2

from common import (PIXEL_MAX, ConfigurationError, ShapeMismatchError,
                    check_planes, check_divisible, weighted_mean)

WINDOW_SIZE = 11
WINDOW_SIGMA = 1.5
WINDOW_KINDS = ("gaussian", "box")

DEFAULT_K1 = 0.01
DEFAULT_K2 = 0.03
DEFAULT_C1 = (DEFAULT_K1 * PIXEL_MAX) ** 2
DEFAULT_C2 = (DEFAULT_K2 * PIXEL_MAX) ** 2

MSSSIM_LEVELS = 5
MSSSIM_BETAS = (0.0448, 0.2856, 0.3001, 0.2363, 0.1333)

StatisticsMap = namedtuple("StatisticsMap", ["mu1", "mu2", "var1", "var2", "cov"])
MSSSIMResult = namedtuple("MSSSIMResult", ["ssim", "msssim"])


# =====================================================================
# WINDOWED STATISTICS
# =====================================================================

def window_kernel(size=WINDOW_SIZE, sigma=WINDOW_SIGMA, kind="gaussian"):
    """Normalized 1-D window; the 2-D window is its outer product."""
    if size < 1 or size % 2 == 0:
        raise ConfigurationError(f"window size must be a positive odd number, got {size}")
    if kind == "gaussian":
        if sigma <= 0:
            raise ConfigurationError(f"window sigma must be positive, got {sigma}")
        kernel = cv2.getGaussianKernel(size, sigma, cv2.CV_64F).ravel()
    elif kind == "box":
        kernel = np.ones(size, dtype=np.float64)
    else:
        raise ConfigurationError(
            f"window kind must be one of {', '.join(WINDOW_KINDS)}, got '{kind}'")
    return kernel / kernel.sum()


def local_filter(plane, kernel):
    """Convolve a plane with the separable window, same-size output."""
    return cv2.sepFilter2D(plane, cv2.CV_64F, kernel, kernel,
                           borderType=cv2.BORDER_REFLECT_101)


def windowed_statistics(img1, img2, kernel):
    """Local means, variances and covariance of two equal-sized planes.

    Variances and covariance come from E[xy] - E[x]E[y] and may be slightly
    negative through cancellation; callers rely on C2 to keep denominators positive.
    """
    if img1.shape != img2.shape:
        raise ShapeMismatchError(
            f"cannot compare a {img1.shape[0]}x{img1.shape[1]} plane "
            f"with a {img2.shape[0]}x{img2.shape[1]} plane")
    x = np.ascontiguousarray(img1, dtype=np.float64)
    y = np.ascontiguousarray(img2, dtype=np.float64)

    mu1 = local_filter(x, kernel)
    mu2 = local_filter(y, kernel)
    var1 = local_filter(x * x, kernel) - mu1 * mu1
    var2 = local_filter(y * y, kernel) - mu2 * mu2
    cov = local_filter(x * y, kernel) - mu1 * mu2
    return StatisticsMap(mu1, mu2, var1, var2, cov)


# =====================================================================
# SSIM MAPS
# =====================================================================

def ssim_maps(stats, c1, c2):
    """Return (ssim_map, cs_map) from a StatisticsMap."""
    luminance = (2.0 * stats.mu1 * stats.mu2 + c1) / (stats.mu1 * stats.mu1 + stats.mu2 * stats.mu2 + c1)
    cs_map = (2.0 * stats.cov + c2) / (stats.var1 + stats.var2 + c2)
    return luminance * cs_map, cs_map


def comparison_terms(stats, c1, c2):
    """Separate luminance, contrast and structure maps (C3 = C2 / 2).

    Their product equals the SSIM map wherever both local variances are non-negative.
    """
    c3 = c2 / 2.0
    sigma1 = np.sqrt(np.maximum(stats.var1, 0.0))
    sigma2 = np.sqrt(np.maximum(stats.var2, 0.0))
    luminance = (2.0 * stats.mu1 * stats.mu2 + c1) / (stats.mu1 * stats.mu1 + stats.mu2 * stats.mu2 + c1)
    contrast = (2.0 * sigma1 * sigma2 + c2) / (stats.var1 + stats.var2 + c2)
    structure = (stats.cov + c3) / (sigma1 * sigma2 + c3)
    return luminance, contrast, structure


def downsample(plane):
    """2x2 box smoothing followed by 2x decimation."""
    h, w = plane.shape
    return plane.reshape(h // 2, 2, w // 2, 2).mean(axis=(1, 3))


def msssim_betas(levels, betas=None):
    """Resolve the per-level exponents for an L-level MS-SSIM."""
    if levels < 1:
        raise ConfigurationError(f"MS-SSIM needs at least one scale, got {levels}")
    if betas is not None:
        betas = tuple(float(b) for b in betas)
        if len(betas) != levels:
            raise ConfigurationError(
                f"MS-SSIM: {levels} scales need {levels} exponents, got {len(betas)}")
        return betas
    if levels == len(MSSSIM_BETAS):
        return MSSSIM_BETAS
    if levels > len(MSSSIM_BETAS):
        raise ConfigurationError(
            f"MS-SSIM: no published exponents for {levels} scales; pass them explicitly")
    published = MSSSIM_BETAS[:levels]
    total = sum(published)
    return tuple(b / total for b in published)


def combine_scales(level_scores, betas):
    """Weighted geometric mean of per-level (ssim, cs) scores.

    Terms are clamped at zero before exponentiation. With a single level the
    SSIM is returned unchanged.
    """
    terminal_ssim = level_scores[-1][0]
    if len(level_scores) > 1:
        terminal_ssim = max(terminal_ssim, 0.0)
    value = terminal_ssim ** betas[-1]
    for (_, cs), beta in zip(level_scores[:-1], betas[:-1]):
        value *= max(cs, 0.0) ** beta
    return float(value)


# =====================================================================
# METRICS
# =====================================================================

class SSIM:
    """Structural similarity of frames with a fixed size.

    The window kernel is built once here and reused for every frame.
    If ``weights`` is given it must map a plane height to an (H, 1) array
    of row weights; scores then use weighted spatial means.
    """

    name = "SSIM"

    def __init__(self, height, width, window_size=WINDOW_SIZE, sigma=WINDOW_SIGMA,
                 window="gaussian", c1=DEFAULT_C1, c2=DEFAULT_C2, weights=None):
        if c1 <= 0 or c2 <= 0:
            raise ConfigurationError(
                f"{self.name}: stabilization constants must be positive (C1={c1}, C2={c2})")
        self.height = height
        self.width = width
        self.c1 = float(c1)
        self.c2 = float(c2)
        self.kernel = window_kernel(window_size, sigma, window)
        self.weights = weights

    def spatial_mean(self, values):
        if self.weights is None:
            return float(np.mean(values))
        return weighted_mean(values, self.weights(values.shape[0]))

    def maps(self, original, processed):
        """Per-pixel (ssim_map, cs_map) for a frame pair."""
        x, y = check_planes(original, processed, self.height, self.width)
        return ssim_maps(windowed_statistics(x, y, self.kernel), self.c1, self.c2)

    def scores(self, img1, img2):
        """(ssim, cs) scalars for a pair of any (matching) size."""
        ssim_map, cs_map = ssim_maps(windowed_statistics(img1, img2, self.kernel), self.c1, self.c2)
        return self.spatial_mean(ssim_map), self.spatial_mean(cs_map)

    def terms(self, original, processed):
        """Spatially averaged (luminance, contrast, structure) comparison terms."""
        x, y = check_planes(original, processed, self.height, self.width)
        stats = windowed_statistics(x, y, self.kernel)
        return tuple(self.spatial_mean(m) for m in comparison_terms(stats, self.c1, self.c2))

    def compute(self, original, processed):
        """SSIM index of the processed frame."""
        ssim_map, _ = self.maps(original, processed)
        return self.spatial_mean(ssim_map)


class MSSSIM:
    """Multi-scale SSIM; also yields the full-resolution SSIM from the same pass.

    Height and width must be multiples of 2^(levels-1); this is checked here,
    before any frame is processed.
    """

    name = "MS-SSIM"

    def __init__(self, height, width, levels=MSSSIM_LEVELS, betas=None,
                 window_size=WINDOW_SIZE, sigma=WINDOW_SIGMA, window="gaussian",
                 c1=DEFAULT_C1, c2=DEFAULT_C2, weights=None):
        self.betas = msssim_betas(levels, betas)
        self.levels = levels
        check_divisible(self.name, height, width, 2 ** (levels - 1))
        self.height = height
        self.width = width
        self.scale = SSIM(height, width, window_size=window_size, sigma=sigma,
                          window=window, c1=c1, c2=c2, weights=weights)

    def level_scores(self, original, processed):
        """List of (ssim, cs) per scale, finest first."""
        x, y = check_planes(original, processed, self.height, self.width)
        scores = [self.scale.scores(x, y)]
        for _ in range(1, self.levels):
            x, y = downsample(x), downsample(y)
            scores.append(self.scale.scores(x, y))
        return scores

    def compute(self, original, processed):
        """Return MSSSIMResult(ssim, msssim) for a frame pair."""
        scores = self.level_scores(original, processed)
        return MSSSIMResult(ssim=scores[0][0], msssim=combine_scales(scores, self.betas))
