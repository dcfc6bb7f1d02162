"""Role of a text line (title, lyrics, direction...) guessed from its geometry.

The guess only uses where the line lies: above, within or below the staves
of its system and of its part, how close it is to a staff, whether it is
centered on the page or aligned with the system right end, and how wide and
tall it is. Word contents only matter for chord names and italic style.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from functools import reduce

from .staff import StaffPosition

logger = logging.getLogger(__name__)


class TextRole(Enum):
    UNKNOWN = "unknown"
    LYRICS = "lyrics"
    TITLE = "title"
    DIRECTION = "direction"
    NUMBER = "number"
    PART_NAME = "part_name"
    CREATOR = "creator"
    CREATOR_ARRANGER = "creator_arranger"
    CREATOR_COMPOSER = "creator_composer"
    CREATOR_LYRICIST = "creator_lyricist"
    RIGHTS = "rights"
    CHORD_NAME = "chord_name"

    @property
    def is_creator(self):
        return self in (
            TextRole.CREATOR, TextRole.CREATOR_ARRANGER,
            TextRole.CREATOR_COMPOSER, TextRole.CREATOR_LYRICIST,
        )


@dataclass(frozen=True)
class TextRoleConfig:
    """Distances, in interlines, used to qualify a text line."""

    max_right_dx: float = 2
    max_center_dx: float = 30
    max_short_length: float = 35
    max_tiny_length: float = 2
    max_staff_dy: float = 7
    min_title_height: float = 3


@dataclass
class TextWord:
    value: str
    bounds: object
    glyph: object = None
    italic: bool = False


class TextLine:
    """Sequence of words; bounds default to the union of the word bounds."""

    def __init__(self, words, bounds=None, vip=False):
        self.words = list(words)
        self._bounds = bounds
        self.vip = vip

    @property
    def bounds(self):
        if self._bounds is not None:
            return self._bounds
        boxes = [word.bounds for word in self.words if word.bounds is not None]
        if not boxes:
            return None
        return reduce(lambda a, b: a.union(b), boxes)

    @property
    def value(self):
        return " ".join(word.value for word in self.words)

    def __repr__(self):
        return f"TextLine({self.value!r})"


CHORD_PATTERN = re.compile(
    r"^[A-G](#|b)?(m|maj|min|dim|aug|sus|add)?\d*(/[A-G](#|b)?)?$"
)


def is_chord_name(value):
    return CHORD_PATTERN.match(value.strip()) is not None


def is_mainly_italic(line):
    """More characters in italic words than in upright ones."""
    italic = sum(len(word.value) for word in line.words if word.italic)
    upright = sum(len(word.value) for word in line.words if not word.italic)
    return italic > upright


@dataclass(frozen=True)
class LineContext:
    """Everything the role decision looks at, computed once per line."""

    system_position: StaffPosition
    part_position: StaffPosition
    part_staff_count: int
    first_system: bool
    last_system: bool
    left_of_staves: bool
    close_to_staff: bool
    page_centered: bool
    right_aligned: bool
    short: bool
    tiny: bool
    tall: bool
    mainly_italic: bool
    all_chord: bool


def line_context(line, box, system, config):
    sheet = system.sheet
    scale = sheet.scale
    left = (box.x, box.y + box.height / 2)
    right_x = box.max_x

    part = system.part_above(left)
    staff = system.closest_staff(left)
    if staff is None:
        close_to_staff = False
    else:
        close_to_staff = staff.distance_to((box.x, box.y)) <= scale.to_pixels(config.max_staff_dy)

    return LineContext(
        system_position=system.staff_position(left),
        part_position=part.staff_position(left),
        part_staff_count=len(part.staves),
        first_system=system.id == 1,
        last_system=len(sheet.systems) == system.id,
        left_of_staves=left[0] < system.left,
        close_to_staff=close_to_staff,
        page_centered=abs(box.x + box.width / 2 - sheet.width / 2) <= scale.to_pixels(config.max_center_dx),
        right_aligned=abs(right_x - system.right) <= scale.to_pixels(config.max_right_dx),
        short=box.width <= scale.to_pixels(config.max_short_length),
        tiny=box.width <= scale.to_pixels(config.max_tiny_length),
        tall=box.height >= scale.to_pixels(config.min_title_height),
        mainly_italic=is_mainly_italic(line),
        all_chord=bool(line.words) and all(is_chord_name(word.value) for word in line.words),
    )


# ---------------------------------------------------------------------------
# Decision per vertical position
# ---------------------------------------------------------------------------

def _above_staves(ctx):
    if ctx.tiny:
        return TextRole.CHORD_NAME if ctx.all_chord else TextRole.UNKNOWN
    if not ctx.first_system:
        return TextRole.CHORD_NAME if ctx.all_chord else TextRole.DIRECTION
    if ctx.left_of_staves:
        return TextRole.CREATOR_LYRICIST
    if ctx.right_aligned:
        return TextRole.CREATOR_COMPOSER
    if ctx.close_to_staff:
        return TextRole.CHORD_NAME if ctx.all_chord else TextRole.DIRECTION
    if ctx.page_centered:
        return TextRole.TITLE if ctx.tall else TextRole.NUMBER
    return None


def _within_staves(ctx):
    """None when no within-staves rule applies; below-staves rules follow."""
    if ctx.left_of_staves:
        return TextRole.PART_NAME
    if ctx.part_position == StaffPosition.BELOW_STAVES and not ctx.mainly_italic:
        return TextRole.LYRICS
    if not ctx.tiny:
        return TextRole.DIRECTION
    return None


def _below_staves(ctx):
    if ctx.tiny:
        return TextRole.UNKNOWN
    if ctx.mainly_italic:
        return TextRole.DIRECTION
    if ctx.page_centered and ctx.short and ctx.last_system:
        return TextRole.RIGHTS
    if (
        ctx.part_staff_count == 1
        and ctx.part_position == StaffPosition.BELOW_STAVES
        and not ctx.mainly_italic
    ):
        return TextRole.LYRICS
    return None


def decide_role(ctx):
    if ctx.system_position == StaffPosition.ABOVE_STAVES:
        role = _above_staves(ctx)
    elif ctx.system_position == StaffPosition.WITHIN_STAVES:
        role = _within_staves(ctx)
        if role is None:
            role = _below_staves(ctx)
    else:
        role = _below_staves(ctx)
    return role or TextRole.UNKNOWN


def guess_role(line, system, config=TextRoleConfig()):
    """Guess the role of ``line`` within ``system``.

    Returns None when the line or its bounds are missing. A manual role set
    on any word glyph wins over the geometry.
    """
    if line is None:
        return None
    if line.vip:
        logger.info("guess_role for %r", line.value)

    box = line.bounds
    if box is None:
        return None

    for word in line.words:
        if word.glyph is not None and word.glyph.manual_role is not None:
            return word.glyph.manual_role

    ctx = line_context(line, box, system, config)
    role = decide_role(ctx)
    logger.debug("%s %s -> %s", box, ctx, role.name)
    if line.vip:
        logger.info("%r role: %s", line, role.name)
    return role
