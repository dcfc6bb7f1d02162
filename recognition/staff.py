"""Staff geometry consumed by the recognition core.

A ``Sheet`` holds ``System`` objects; a system holds its ``Staff`` objects
(grouped in ``Part`` objects), the glyphs found in its area, and its own
interpretation graph. Vertical positions relative to a staff are expressed as
*pitch positions*: 0 on the middle line, -4 on the top line, +4 on the bottom
line, one unit per half interline, growing downward.
"""

import math
from dataclasses import dataclass
from enum import Enum

import numpy as np

from .geometry import Box
from .sig import SIGraph


class GeometryError(Exception):
    """Base exception for malformed staff geometry."""
    pass


class StaffError(GeometryError):
    """Raised when a staff cannot be built from the provided lines."""
    pass


class StaffPosition(Enum):
    ABOVE_STAVES = "above"
    WITHIN_STAVES = "within"
    BELOW_STAVES = "below"


# ---------------------------------------------------------------------------
# Lines
# ---------------------------------------------------------------------------

class StaffLine:
    """Smoothed center-line of one staff line, sampled left to right."""

    def __init__(self, points):
        if len(points) == 0:
            raise GeometryError("A staff line needs at least one point")
        ordered = sorted(points)
        self._xs = np.array([p[0] for p in ordered], dtype=np.float64)
        self._ys = np.array([p[1] for p in ordered], dtype=np.float64)

    @classmethod
    def horizontal(cls, y, left, right):
        return cls([(left, y), (right, y)])

    @property
    def left_point(self):
        return (float(self._xs[0]), float(self._ys[0]))

    @property
    def right_point(self):
        return (float(self._xs[-1]), float(self._ys[-1]))

    @property
    def left_abscissa(self):
        return int(math.floor(self.left_point[0]))

    @property
    def right_abscissa(self):
        return int(math.floor(self.right_point[0]))

    def y_at_double(self, x):
        return float(np.interp(x, self._xs, self._ys))

    def y_at(self, x):
        return int(round(self.y_at_double(x)))


@dataclass(frozen=True)
class Ledger:
    """Short line segment above or below a staff."""

    start: tuple
    stop: tuple

    @property
    def left_abscissa(self):
        return int(math.floor(self.start[0]))

    @property
    def right_abscissa(self):
        return int(math.floor(self.stop[0]))

    def y_at_double(self, x):
        (x1, y1), (x2, y2) = self.start, self.stop
        if x2 == x1:
            return float(y1)
        return y1 + (x - x1) * (y2 - y1) / (x2 - x1)

    def y_at(self, x):
        return int(round(self.y_at_double(x)))


# ---------------------------------------------------------------------------
# Glyphs
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class Glyph:
    """A connected set of ink pixels, as segmented by an upstream stage.

    ``start_point`` / ``stop_point`` are the top and bottom ends of the
    glyph's vertical axis (used for stem seeds). ``pitch_position`` may be
    provided by the upstream stage; when absent it is computed against the
    closest staff. ``mask`` is an optional boolean array covering ``bounds``.
    """

    id: int
    bounds: Box
    shape: object = None
    start_point: tuple = None
    stop_point: tuple = None
    pitch_position: float = None
    manual_role: object = None
    vip: bool = False
    mask: np.ndarray = None
    area_center: tuple = None

    @property
    def center(self):
        if self.area_center is not None:
            return self.area_center
        return self.bounds.center

    @property
    def vertical_start(self):
        if self.start_point is not None:
            return self.start_point
        return (self.bounds.x + self.bounds.width / 2.0, self.bounds.y)

    @property
    def vertical_stop(self):
        if self.stop_point is not None:
            return self.stop_point
        return (self.bounds.x + self.bounds.width / 2.0, self.bounds.max_y)

    def __repr__(self):
        return f"G#{self.id}"


# ---------------------------------------------------------------------------
# Staves, parts, systems, sheet
# ---------------------------------------------------------------------------

class Staff:
    """A staff: its lines top to bottom, and its ledgers.

    Ledgers are keyed by index: -1 is the first ledger row above the staff,
    -2 the next one up, +1 the first row below, and so on.
    """

    def __init__(self, id, lines, ledgers=None, header_stop=None):
        if len(lines) < 2:
            raise StaffError(f"Staff #{id} needs at least 2 lines, got {len(lines)}")
        self.id = id
        self.lines = list(lines)
        self.ledgers = {
            index: sorted(row, key=lambda ledger: ledger.start[0])
            for index, row in (ledgers or {}).items()
        }
        self.header_stop = self.left if header_stop is None else header_stop

    @property
    def left(self):
        return min(line.left_abscissa for line in self.lines)

    @property
    def right(self):
        return max(line.right_abscissa for line in self.lines)

    @property
    def first_line(self):
        return self.lines[0]

    @property
    def last_line(self):
        return self.lines[-1]

    def get_ledgers(self, index):
        return self.ledgers.get(index)

    def _limits(self, x):
        return self.first_line.y_at_double(x), self.last_line.y_at_double(x)

    def pitch_position_of(self, point):
        x, y = point
        top, bottom = self._limits(x)
        return 4.0 * (2 * y - top - bottom) / (bottom - top)

    def distance_to(self, point):
        """Vertical distance from point to the staff band, 0 when inside."""
        x, y = point
        top, bottom = self._limits(x)
        return max(0.0, top - y, y - bottom)

    def gap_to(self, box):
        """Vertical gap between a box and the staff band, 0 when they overlap."""
        top, bottom = self._limits(box.center[0])
        return max(0.0, top - box.max_y, box.y - bottom)

    def __repr__(self):
        return f"Staff#{self.id}"


def _position_in(staves, point):
    x, y = point
    if y < staves[0].first_line.y_at_double(x):
        return StaffPosition.ABOVE_STAVES
    if y > staves[-1].last_line.y_at_double(x):
        return StaffPosition.BELOW_STAVES
    return StaffPosition.WITHIN_STAVES


class Part:
    """Consecutive staves of one instrument within a system."""

    def __init__(self, id, staves):
        self.id = id
        self.staves = list(staves)

    def staff_position(self, point):
        return _position_in(self.staves, point)

    def __repr__(self):
        return f"Part#{self.id}"


class System:
    """One system of a sheet; owns its staves, glyphs and interpretation graph."""

    def __init__(self, id, staves, parts=None, glyphs=None):
        if not staves:
            raise GeometryError(f"System #{id} has no staff")
        self.id = id
        self.staves = list(staves)
        self.parts = list(parts) if parts else [Part(1, self.staves)]
        self.glyphs = list(glyphs or [])
        self.sig = SIGraph(id)
        self.sheet = None

    @property
    def first_staff(self):
        return self.staves[0]

    @property
    def left(self):
        return min(staff.left for staff in self.staves)

    @property
    def right(self):
        return max(staff.right for staff in self.staves)

    @property
    def scale(self):
        return self.sheet.scale

    @property
    def log_prefix(self):
        return f"S#{self.id} "

    def closest_staff(self, point):
        if not self.staves:
            return None
        x, y = point
        return min(
            self.staves,
            key=lambda s: (s.distance_to(point), abs(y - s.lines[len(s.lines) // 2].y_at_double(x))),
        )

    def staff_position(self, point):
        return _position_in(self.staves, point)

    def part_above(self, point):
        """Part whose top is the closest one above the point, else the first part."""
        if not self.parts:
            return None
        x, y = point
        above = [p for p in self.parts if p.staves[0].first_line.y_at_double(x) <= y]
        return above[-1] if above else self.parts[0]

    def __repr__(self):
        return f"System#{self.id}"


class Sheet:
    """A page: its systems, its scale and its distance-transform raster."""

    def __init__(self, width, height, scale, systems, distance_image=None):
        self.width = width
        self.height = height
        self.scale = scale
        self.systems = list(systems)
        self.distance_image = distance_image
        for system in self.systems:
            system.sheet = self
