"""Latitude-weighted (spherical) metrics for equirectangular 360-degree video.

In an equirectangular frame every row spans the full 360 degrees of longitude,
so rows near the poles cover far less sphere surface than rows near the
equator.  Row j of an H-row frame gets the weight

    w(j) = cos((j + 0.5 - H/2) * pi / H)

(cosine of its latitude).  Weights depend only on the row, are not normalized,
and every weighted average divides by the sum of the weights it used.

Plain PSNR lives here too: it is WS-PSNR with uniform weights.
"""

import numpy as np

from common import check_planes, mse_to_psnr, weighted_mean
from structural_similarity import SSIM, MSSSIM


class LatitudeWeights:
    """Per-height cache of read-only (H, 1) row-weight maps.

    One instance can be shared by any number of metrics; each distinct height
    (including the downsampled heights used by WS-MS-SSIM) is computed once.
    """

    def __init__(self):
        self._cache = {}

    def __call__(self, height):
        weights = self._cache.get(height)
        if weights is None:
            rows = np.arange(height, dtype=np.float64)
            weights = np.cos((rows + 0.5 - height / 2.0) * np.pi / height).reshape(height, 1)
            weights.setflags(write=False)
            self._cache[height] = weights
        return weights

    def __len__(self):
        return len(self._cache)


class PSNR:
    name = "PSNR"

    def __init__(self, height, width):
        self.height = height
        self.width = width

    def mse(self, original, processed):
        x, y = check_planes(original, processed, self.height, self.width)
        diff = x - y
        return float(np.mean(diff * diff))

    def compute(self, original, processed):
        return mse_to_psnr(self.mse(original, processed))


class WSPSNR(PSNR):
    """Weighted-to-spherically-uniform PSNR."""

    name = "WS-PSNR"

    def __init__(self, height, width, weights=None):
        super().__init__(height, width)
        self.weights = weights if weights is not None else LatitudeWeights()

    def mse(self, original, processed):
        """Weighted MSE: sum(w * (R - P)^2) / sum(w) over all pixels."""
        x, y = check_planes(original, processed, self.height, self.width)
        diff = x - y
        return weighted_mean(diff * diff, self.weights(self.height))


class WSSSIM(SSIM):
    """SSIM whose SSIM and CS maps are averaged with latitude weights."""

    name = "WS-SSIM"

    def __init__(self, height, width, weights=None, **kwargs):
        super().__init__(height, width,
                         weights=weights if weights is not None else LatitudeWeights(),
                         **kwargs)


class WSMSSSIM(MSSSIM):
    """MS-SSIM with latitude-weighted averaging at every scale.

    Each scale uses the weights for its own height; the ``ssim`` field of the
    result is the full-resolution WS-SSIM.
    """

    name = "WS-MS-SSIM"

    def __init__(self, height, width, weights=None, **kwargs):
        super().__init__(height, width,
                         weights=weights if weights is not None else LatitudeWeights(),
                         **kwargs)
