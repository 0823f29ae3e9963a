"""
Deterministic pseudo-depth estimation from a single RGB(A) image.

The depth of a pixel blends its contrast-boosted luminance with a vertical
gradient (lower rows are treated as nearer). Strong edges shift weight toward
luminance; the result is smoothed at two radii and recombined so that edges
stay crisp while flat regions are smooth.
"""
import cv2
import numpy as np

LUMINANCE_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float32)
MAX_COLOR_VALUE = 255.0

CONTRAST_CAP = 3.0
GRADIENT_POWER = 1.5
EDGE_THRESHOLD = 50.0
LUM_WEIGHT_BASE = 0.5
LUM_WEIGHT_RANGE = 0.3
FINE_BLUR_RADIUS = 1
COARSE_BLUR_RADIUS = 4


def luminance(pixels: np.ndarray) -> np.ndarray:
    """Rec. 601 luma of an HxWx3 (or HxWx4) uint8 RGB(A) buffer as float32."""
    rgb = pixels[..., :3].astype(np.float32)
    return rgb @ LUMINANCE_WEIGHTS


def box_blur(buffer: np.ndarray, radius: int) -> np.ndarray:
    """Mean filter over a (2r+1)^2 window with edge-clamped sampling."""
    if radius <= 0:
        return buffer.copy()
    size = 2 * radius + 1
    return cv2.blur(buffer, (size, size), borderType=cv2.BORDER_REPLICATE)


def sobel_magnitude(lum: np.ndarray) -> np.ndarray:
    """
    3x3 Sobel gradient magnitude clamped to [0, 255].

    Only interior pixels carry an edge value; the one-pixel border is 0.
    """
    edges = np.zeros_like(lum, dtype=np.float32)
    height, width = lum.shape
    if height < 3 or width < 3:
        return edges

    gx = cv2.Sobel(lum, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(lum, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = np.sqrt(gx * gx + gy * gy)
    edges[1:-1, 1:-1] = np.minimum(MAX_COLOR_VALUE, magnitude[1:-1, 1:-1])
    return edges


def compute_depth_and_edges(pixels: np.ndarray):
    """Returns the raw (unsmoothed) depth buffer and the edge buffer."""
    lum = luminance(pixels)
    height = lum.shape[0]

    min_lum = float(lum.min())
    max_lum = float(lum.max())
    lum_range = max(1.0, max_lum - min_lum)
    contrast_factor = min(CONTRAST_CAP, MAX_COLOR_VALUE / lum_range)

    normalized_lum = (lum - min_lum) / lum_range * MAX_COLOR_VALUE
    boosted_lum = np.minimum(MAX_COLOR_VALUE, normalized_lum * np.sqrt(contrast_factor))

    rows = np.arange(height, dtype=np.float32) / height
    gradient = (rows ** GRADIENT_POWER * MAX_COLOR_VALUE)[:, np.newaxis]

    edges = sobel_magnitude(lum)
    edge_weight = np.minimum(1.0, edges / EDGE_THRESHOLD)
    lum_weight = LUM_WEIGHT_BASE + LUM_WEIGHT_RANGE * edge_weight
    grad_weight = LUM_WEIGHT_BASE - LUM_WEIGHT_RANGE * edge_weight

    depth = boosted_lum * lum_weight + gradient * grad_weight
    return depth.astype(np.float32), edges


def generate_pseudo_depth(pixels: np.ndarray, soft_blur: float = 0.0) -> np.ndarray:
    """
    Computes a pseudo-depth map.

    Args:
        pixels: HxWx3 or HxWx4 uint8 RGB(A) buffer.
        soft_blur: Sigma of an optional final Gaussian blur; 0 disables it.

    Returns:
        HxWx3 uint8 buffer with the depth value replicated in every channel.
    """
    if pixels.ndim != 3 or pixels.shape[2] not in (3, 4):
        raise ValueError(f"Expected an HxWx3 or HxWx4 buffer, got shape {pixels.shape}")
    if pixels.shape[0] == 0 or pixels.shape[1] == 0:
        raise ValueError("Cannot compute depth for an empty image")

    depth, edges = compute_depth_and_edges(pixels)

    fine = box_blur(depth, FINE_BLUR_RADIUS)
    coarse = box_blur(depth, COARSE_BLUR_RADIUS)
    edge = edges / MAX_COLOR_VALUE
    blended = fine * edge + coarse * (1.0 - edge)

    scalar = np.rint(np.clip(blended, 0.0, MAX_COLOR_VALUE)).astype(np.uint8)
    output = np.repeat(scalar[:, :, np.newaxis], 3, axis=2)

    if soft_blur > 0:
        output = cv2.GaussianBlur(output, (0, 0), sigmaX=soft_blur, borderType=cv2.BORDER_REPLICATE)
    return output
