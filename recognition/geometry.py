"""Plain geometry shared by the recognition modules.

Boxes are axis-aligned rectangles in image pixels (x grows right, y grows
down). ``Scale`` converts constants expressed in interline fractions into
pixels, so that every threshold follows the staff size of the page.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Box:
    """Axis-aligned rectangle, origin at its top-left corner."""

    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self):
        return self.x + self.width

    @property
    def max_y(self):
        return self.y + self.height

    @property
    def center(self):
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def is_empty(self):
        return self.width <= 0 or self.height <= 0

    def intersects(self, other):
        """True when the interiors of the two boxes overlap.

        Boxes that merely touch along an edge do not intersect, and an empty
        box intersects nothing.
        """
        if self.is_empty() or other.is_empty():
            return False
        return (
            other.x < self.max_x
            and other.max_x > self.x
            and other.y < self.max_y
            and other.max_y > self.y
        )

    def shrink(self, hori_ratio, vert_ratio):
        """Same center, width and height scaled by the given ratios."""
        new_width = hori_ratio * self.width
        new_height = vert_ratio * self.height
        cx, cy = self.center
        return Box(cx - new_width / 2.0, cy - new_height / 2.0, new_width, new_height)

    def union(self, other):
        x = min(self.x, other.x)
        y = min(self.y, other.y)
        return Box(x, y, max(self.max_x, other.max_x) - x, max(self.max_y, other.max_y) - y)


class Scale:
    """Pixel scale of a sheet, driven by its interline (staff line spacing)."""

    def __init__(self, interline: int):
        if interline <= 0:
            raise ValueError(f"Interline must be positive, got {interline}")
        self.interline = int(interline)

    def to_pixels(self, fraction):
        """Interline fraction to a whole number of pixels (half to even)."""
        return int(round(fraction * self.interline))

    def to_pixels_double(self, fraction):
        return fraction * self.interline

    def __repr__(self):
        return f"Scale(interline={self.interline})"


def intersection_at_y(start, stop, y):
    """Abscissa where the line through ``start`` and ``stop`` crosses ``y``.

    A horizontal line has no single crossing; its start abscissa is returned.
    """
    (x1, y1), (x2, y2) = start, stop
    if y1 == y2:
        return float(x1)
    return x1 + (y - y1) * (x2 - x1) / (y2 - y1)
