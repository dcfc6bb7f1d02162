"""Head templates matched against a distance-transform image.

A template is a small mask of pixel roles drawn for one head shape at one
interline:
    FORE     ink is expected (ring of the head)
    HOLE     paper is expected (inside of a void head)
    IGNORED  not looked at (outside the head, staff line crossing)

Matching cost at a location is the mean, over FORE and HOLE pixels, of the
squared (capped) distance to ink under FORE pixels plus a fixed penalty for
each HOLE pixel found on ink. Zero is a perfect match.

Templates are built lazily and cached per (shape, interline) by an explicit
``TemplateFactory`` object shared by all systems of a sheet.
"""

import logging
import threading
from enum import Enum

import cv2 as cv
import numpy as np

from .geometry import Box
from .shapes import Shape, head_shape_of

logger = logging.getLogger(__name__)

IGNORED = 0
FORE = 1
HOLE = 2

# Distances are capped so a single stray pixel cannot dominate the cost
MAX_DISTANCE = 3.0
HOLE_PENALTY = MAX_DISTANCE ** 2

# Head sizes, in interline fractions
VOID_WIDTH = 1.2
WHOLE_WIDTH = 1.7
HEAD_HEIGHT = 1.0
LINE_THICKNESS = 0.15


class Anchor(Enum):
    TOP_LEFT = "top_left"
    MIDDLE_LEFT = "middle_left"
    BOTTOM_LEFT = "bottom_left"
    CENTER = "center"
    LEFT_STEM = "left_stem"
    RIGHT_STEM = "right_stem"
    TOP_LEFT_STEM = "top_left_stem"
    TOP_RIGHT_STEM = "top_right_stem"
    BOTTOM_LEFT_STEM = "bottom_left_stem"
    BOTTOM_RIGHT_STEM = "bottom_right_stem"


def _odd(value):
    return max(5, int(round(value)) | 1)


class Template:
    """Immutable pixel mask for one head shape at one interline."""

    def __init__(self, shape, interline, mask):
        self.shape = shape
        self.interline = interline
        self.mask = mask
        self.mask.setflags(write=False)
        self._fore = np.nonzero(mask == FORE)
        self._holes = np.nonzero(mask == HOLE)
        self._offsets = self._compute_offsets()

    @property
    def width(self):
        return self.mask.shape[1]

    @property
    def height(self):
        return self.mask.shape[0]

    def _compute_offsets(self):
        w, h = self.width, self.height
        mid, bottom = h // 2, h - 1
        left_stem, right_stem = 1, w - 2
        return {
            Anchor.TOP_LEFT: (0, 0),
            Anchor.MIDDLE_LEFT: (0, mid),
            Anchor.BOTTOM_LEFT: (0, bottom),
            Anchor.CENTER: (w // 2, mid),
            Anchor.LEFT_STEM: (left_stem, mid),
            Anchor.RIGHT_STEM: (right_stem, mid),
            Anchor.TOP_LEFT_STEM: (left_stem, 0),
            Anchor.TOP_RIGHT_STEM: (right_stem, 0),
            Anchor.BOTTOM_LEFT_STEM: (left_stem, bottom),
            Anchor.BOTTOM_RIGHT_STEM: (right_stem, bottom),
        }

    def offset(self, anchor):
        """(dx, dy) of the anchor point from the template top-left corner."""
        return self._offsets[anchor]

    def box_at(self, x, y, anchor):
        """Template bounds when its anchor is placed on (x, y)."""
        dx, dy = self.offset(anchor)
        return Box(x - dx, y - dy, self.width, self.height)

    def evaluate(self, x, y, anchor, distances):
        """Matching cost of the template anchored at (x, y), lower is better."""
        dx, dy = self.offset(anchor)
        left, top = x - dx, y - dy
        img_h, img_w = distances.shape[:2]

        rows = self._fore[0] + top
        cols = self._fore[1] + left
        inside = (rows >= 0) & (rows < img_h) & (cols >= 0) & (cols < img_w)
        fore = np.full(rows.shape, MAX_DISTANCE, dtype=np.float64)
        fore[inside] = np.minimum(distances[rows[inside], cols[inside]], MAX_DISTANCE)
        total = float(np.sum(fore ** 2))

        rows = self._holes[0] + top
        cols = self._holes[1] + left
        inside = (rows >= 0) & (rows < img_h) & (cols >= 0) & (cols < img_w)
        on_ink = np.count_nonzero(distances[rows[inside], cols[inside]] == 0)
        total += on_ink * HOLE_PENALTY

        return total / (len(fore) + len(rows))

    def __repr__(self):
        return f"Template({self.shape.name}, interline={self.interline}, {self.width}x{self.height})"


# ---------------------------------------------------------------------------
# Mask drawing
# ---------------------------------------------------------------------------

_GEOMETRY = {
    # shape: (width ratio, hole half-axes as (w, h) fractions of the head, hole angle)
    Shape.NOTEHEAD_VOID: (VOID_WIDTH, (0.32, 0.22), -30),
    Shape.WHOLE_NOTE: (WHOLE_WIDTH, (0.22, 0.30), 40),
}


def draw_mask(shape, interline):
    """Draw the pixel-role mask of a head template shape.

    Raises:
        ShapeCatalogError: if ``shape`` is not a head template shape.
    """
    head = head_shape_of(shape)
    width_ratio, (hole_w, hole_h), angle = _GEOMETRY[head]
    w = _odd(width_ratio * interline)
    h = _odd(HEAD_HEIGHT * interline)
    center = (w // 2, h // 2)

    mask = np.zeros((h, w), dtype=np.uint8)
    cv.ellipse(mask, center, (w // 2, h // 2), -20, 0, 360, FORE, -1)
    hole_axes = (max(1, int(round(hole_w * w))), max(1, int(round(hole_h * h))))
    cv.ellipse(mask, center, hole_axes, angle, 0, 360, HOLE, -1)

    if shape in (Shape.VOID_EVEN, Shape.WHOLE_EVEN):
        half = max(1, int(round(LINE_THICKNESS * interline))) // 2
        mask[h // 2 - half:h // 2 + half + 1, :] = IGNORED

    return mask


class TemplateFactory:
    """Builds templates on first use and caches them per (shape, interline).

    Safe for concurrent use from several system workers: a key is built once
    and readers never see a partially built template.
    """

    def __init__(self):
        self._templates = {}
        self._lock = threading.Lock()

    def get_template(self, shape, interline):
        key = (shape, interline)
        template = self._templates.get(key)
        if template is None:
            with self._lock:
                template = self._templates.get(key)
                if template is None:
                    template = Template(shape, interline, draw_mask(shape, interline))
                    self._templates[key] = template
                    logger.debug("Built %s", template)
        return template

    def __len__(self):
        return len(self._templates)
