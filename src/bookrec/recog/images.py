"""
Bitmap utilities used by the recognizer.

Provides:
- Grayscale conversion and binarization (1 = foreground)
- Foreground clipping, pixel counts and centroids
- Scaling to a template size
- Outline representation (skeleton, then dilation)
- Erosion of padding samples
- Assembly of glyphs into a line image
"""

import logging
from typing import Tuple, List, Sequence, Optional
import numpy as np

logger = logging.getLogger(__name__)


# ============================================================================
# Conversion and Binarization
# ============================================================================

def to_grayscale(image: np.ndarray) -> np.ndarray:
    """
    Convert image to grayscale if it's color.

    Args:
        image: Input image (BGR or grayscale)

    Returns:
        Grayscale image
    """
    import cv2

    if len(image.shape) == 2:
        return image
    elif len(image.shape) == 3:
        if image.shape[2] == 3:
            return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        elif image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        elif image.shape[2] == 1:
            return image.squeeze(axis=2)

    raise ValueError(f"Unexpected image shape: {image.shape}")


def is_binary(image: np.ndarray) -> bool:
    """True for boolean images and 2-D images holding only 0 and 1."""
    if image.dtype == bool:
        return True
    if image.ndim != 2:
        return False
    return image.size == 0 or int(image.max()) <= 1


def binarize(image: np.ndarray, threshold: int = 150, binary: Optional[bool] = None) -> np.ndarray:
    """
    Convert an image to a 0/1 bitmap.

    Images that are already binary keep their nonzero pixels as foreground.
    Gray and color images are dark ink on light paper: pixels darker than
    `threshold` become foreground.

    A gray scan holding only the levels 0 and 1 looks like a bitmap; pass
    `binary=False` for images known to be scans (io.load_bitmap does).

    Args:
        image: Input image (binary, grayscale or color)
        threshold: Gray level below which a pixel is foreground
        binary: True/False to force the interpretation, None to detect it

    Returns:
        uint8 bitmap with 1 for foreground
    """
    if binary is None:
        binary = is_binary(image)
    if binary:
        return (np.asarray(image) > 0).astype(np.uint8)

    gray = to_grayscale(image)
    return (gray < threshold).astype(np.uint8)


# ============================================================================
# Measurements
# ============================================================================

def foreground_count(bitmap: np.ndarray) -> int:
    return int(np.count_nonzero(bitmap))


def centroid(bitmap: np.ndarray) -> Tuple[float, float]:
    """
    Mean (x, y) of the foreground pixels.

    An empty bitmap has its centroid at the geometric center.
    """
    ys, xs = np.nonzero(bitmap)
    if len(xs) == 0:
        h, w = bitmap.shape[:2]
        return (w - 1) / 2.0, (h - 1) / 2.0
    return float(xs.mean()), float(ys.mean())


def foreground_bbox(bitmap: np.ndarray) -> Tuple[int, int, int, int]:
    """(x, y, width, height) of the foreground; all zeros when empty."""
    rows = np.flatnonzero(bitmap.any(axis=1))
    cols = np.flatnonzero(bitmap.any(axis=0))
    if len(rows) == 0:
        return 0, 0, 0, 0
    y1, y2 = int(rows[0]), int(rows[-1]) + 1
    x1, x2 = int(cols[0]), int(cols[-1]) + 1
    return x1, y1, x2 - x1, y2 - y1


def clip_to_foreground(bitmap: np.ndarray) -> Tuple[np.ndarray, Tuple[int, int]]:
    """
    Crop a bitmap to the bounding box of its foreground.

    Returns:
        (clipped bitmap, (x, y) of the crop in the input); an empty
        bitmap clips to shape (0, 0)
    """
    x, y, w, h = foreground_bbox(bitmap)
    clipped = bitmap[y:y + h, x:x + w].copy()
    return clipped, (x, y)


# ============================================================================
# Transforms
# ============================================================================

def scale_bitmap(bitmap: np.ndarray, width: int = 0, height: int = 0) -> np.ndarray:
    """
    Scale a bitmap to a template size.

    A zero dimension preserves the aspect ratio from the other one; when
    both are zero a copy is returned.

    Args:
        bitmap: 0/1 bitmap
        width: Target width (0 = derived)
        height: Target height (0 = derived)

    Returns:
        Scaled 0/1 bitmap
    """
    import cv2

    h, w = bitmap.shape[:2]
    if (width == 0 and height == 0) or h == 0 or w == 0:
        return bitmap.copy()

    if width == 0:
        width = max(1, int(round(w * height / float(h))))
    elif height == 0:
        height = max(1, int(round(h * width / float(w))))

    if width == w and height == h:
        return bitmap.copy()

    shrinking = width < w and height < h
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR
    resized = cv2.resize(
        bitmap.astype(np.float32), (width, height), interpolation=interpolation
    )

    logger.debug(f"Scaled bitmap: {(h, w)} -> {(height, width)}")
    return (resized >= 0.5).astype(np.uint8)


def thin_and_dilate(bitmap: np.ndarray, iterations: int = 1) -> np.ndarray:
    """
    Width-normalized outline: morphological skeleton, then 3x3 dilations.

    The output has the same shape as the input.

    Args:
        bitmap: 0/1 bitmap
        iterations: Number of 3x3 dilations applied to the skeleton

    Returns:
        0/1 outline bitmap
    """
    import cv2

    if bitmap.size == 0:
        return bitmap.copy()

    # Pad so strokes touching the border keep their skeleton
    img = np.pad((bitmap > 0).astype(np.uint8) * 255, 1)
    element = cv2.getStructuringElement(cv2.MORPH_CROSS, (3, 3))
    skeleton = np.zeros_like(img)

    while cv2.countNonZero(img) > 0:
        opened = cv2.morphologyEx(img, cv2.MORPH_OPEN, element)
        skeleton = cv2.bitwise_or(skeleton, cv2.subtract(img, opened))
        img = cv2.erode(img, element)

    if iterations > 0:
        kernel = np.ones((3, 3), dtype=np.uint8)
        skeleton = cv2.dilate(skeleton, kernel, iterations=iterations)

    return (skeleton[1:-1, 1:-1] > 0).astype(np.uint8)


def erode_bitmap(bitmap: np.ndarray, iterations: int = 1) -> np.ndarray:
    """Apply 2x2 brick erosions; used to thin padding samples."""
    import cv2

    if iterations <= 0 or bitmap.size == 0:
        return bitmap.copy()
    kernel = np.ones((2, 2), dtype=np.uint8)
    eroded = cv2.erode(bitmap.astype(np.uint8), kernel, iterations=iterations)
    return (eroded > 0).astype(np.uint8)


# ============================================================================
# Line Assembly
# ============================================================================

def concatenate_horizontally(
    bitmaps: Sequence[np.ndarray],
    gap: int = 2,
    margin: int = 0
) -> Tuple[np.ndarray, List[int]]:
    """
    Place glyphs side by side, top-aligned, to form a line image.

    Args:
        bitmaps: Glyph bitmaps, left to right
        gap: Blank columns between consecutive glyphs
        margin: Blank columns before the first and after the last glyph

    Returns:
        (line bitmap, x offset of each glyph)
    """
    if not bitmaps:
        return np.zeros((0, 0), dtype=np.uint8), []

    height = max(b.shape[0] for b in bitmaps)
    width = 2 * margin + sum(b.shape[1] for b in bitmaps) + gap * (len(bitmaps) - 1)
    line = np.zeros((height, width), dtype=np.uint8)

    offsets = []
    x = margin
    for b in bitmaps:
        h, w = b.shape[:2]
        line[:h, x:x + w] = b > 0
        offsets.append(x)
        x += w + gap

    return line, offsets
