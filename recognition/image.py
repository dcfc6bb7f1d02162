"""Raster helpers: page loading, binarization and the distance transform.

Pipeline:
    1. Load (path or BGR/grayscale array)
    2. Binarize (grayscale + Otsu threshold, ink = 255)
    3. Distance transform (per pixel: distance to the nearest ink pixel)
"""

import cv2 as cv
import numpy as np


def load_image(source):
    """Return ``source`` as an array, reading it from disk when it is a path."""
    if isinstance(source, np.ndarray):
        return source
    img = cv.imread(str(source))
    if img is None:
        raise FileNotFoundError(f"Could not load: {source}")
    return img


def binarize(img):
    """Grayscale then Otsu threshold, inverted so that ink pixels are 255."""
    gray = cv.cvtColor(img, cv.COLOR_BGR2GRAY) if img.ndim == 3 else img.copy()
    _, binary = cv.threshold(gray, 0, 255, cv.THRESH_BINARY_INV + cv.THRESH_OTSU)
    return binary


def distance_image(binary):
    """Distance from every pixel to the closest ink pixel (0 on ink).

    ``cv.distanceTransform`` measures the distance to the closest *zero*
    pixel, so the ink mask is inverted first.
    """
    paper = np.where(binary > 0, 0, 255).astype(np.uint8)
    return cv.distanceTransform(paper, cv.DIST_L2, cv.DIST_MASK_PRECISE).astype(np.float32)
