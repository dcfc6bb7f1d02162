"""Shape-specific checks on the shapes proposed by the glyph classifier.

The classifier only looks at a glyph's pixels. The checks below look at
where the glyph sits (pitch position, staff gap, system width, header) and
either confirm the proposed shape, replace it by the logical shape it stands
for (a generic half-or-whole rest becomes a half rest or a whole rest), or
reject it.

Checks are registered in a table of (name, shapes, predicate) entries and
run in registration order for the shape under evaluation. The first failing
check records its name in ``Evaluation.failure``, prefixed to the reason the
check itself may have given, and stops the sequence.

All heights and gaps are expressed in interlines, all vertical positions in
pitch positions.
"""

import logging
from dataclasses import dataclass, field

import numpy as np

from .shapes import (
    ARTICULATIONS, CLASSIFIER_SHAPES, CLEFS, DYNAMICS, FERMATAS, NOTES,
    PARTIAL_TIMES, PEDALS, RESTS, SMALL_CLEFS, SYSTEM_TOP_MARKERS, TUPLETS,
    WHOLE_TIMES, Shape,
)

logger = logging.getLogger(__name__)


@dataclass
class Evaluation:
    """A (shape, grade) proposal, possibly corrected or rejected by checks."""

    shape: Shape
    grade: float
    failure: str = None

    def __repr__(self):
        text = f"{self.shape.name}({self.grade:.3f})"
        if self.failure:
            text += f" failure:{self.failure}"
        return text


@dataclass(frozen=True)
class Checker:
    name: str
    shapes: frozenset
    check: object = field(compare=False)

    def __repr__(self):
        return self.name


@dataclass(frozen=True)
class CheckerConfig:
    """Thresholds of the shape checks (interlines and pitch positions)."""

    max_title_height: float = 4.0
    max_lyrics_height: float = 2.5
    min_title_pitch_position: float = 15.0
    max_tuplet_pitch_position: float = 15.0
    max_time_pitch_position_margin: float = 1.0
    max_full_time_height: float = 4.5
    max_gap_to_staff: float = 8.0
    max_rest_pitch_margin: float = 0.5
    system_top_max_pitch: float = -5.0
    min_logged_grade: float = 0.1
    apply_specific_checks: bool = True


# Shapes never rejected for lying outside the system width
_WIDTH_EXEMPT = frozenset({Shape.BRACKET, Shape.BRACE, Shape.TEXT, Shape.CHARACTER})


def pitch_position(system, glyph):
    """Glyph pitch position, relative to its closest staff when not provided.

    Returns None when the system has no staff to refer to.
    """
    if glyph.pitch_position is not None:
        return glyph.pitch_position
    staff = system.closest_staff(glyph.center)
    if staff is None:
        return None
    return staff.pitch_position_of(glyph.center)


def normalized_height(system, glyph):
    return glyph.bounds.height / system.scale.interline


def column_spans(mask):
    """Vertical extent of ink in each column of a boolean mask (0 if empty)."""
    mask = np.asarray(mask, dtype=bool)
    rows = np.arange(mask.shape[0])[:, None]
    has_ink = mask.any(axis=0)
    top = np.where(mask, rows, mask.shape[0]).min(axis=0)
    bottom = np.where(mask, rows, -1).max(axis=0)
    return np.where(has_ink, bottom - top + 1, 0)


class ShapeChecker:
    """Registry of shape checks, applied through ``annotate``."""

    def __init__(self, config=CheckerConfig()):
        self.config = config
        self.checkers = self._register_checks()
        self.registry = {}
        for checker in self.checkers:
            for shape in checker.shapes:
                self.registry.setdefault(shape, []).append(checker)

    def annotate(self, system, evaluation, glyph, features=None):
        """Run the checks registered for ``evaluation.shape``, in order."""
        if not self.config.apply_specific_checks:
            return
        checkers = self.registry.get(evaluation.shape)
        if not checkers:
            return

        for checker in checkers:
            if checker.check(system, evaluation, glyph, features):
                continue
            if evaluation.failure:
                evaluation.failure = f"{checker.name}:{evaluation.failure}"
            else:
                evaluation.failure = checker.name
            if glyph.vip:
                logger.info("%s%r %r rejected", system.log_prefix, glyph, evaluation)
            return

    def _register_checks(self):
        table = [
            ("NotWithinWidth", CLASSIFIER_SHAPES, self._check_within_width),
            ("MeasureRest", {Shape.HW_REST_SET}, self._check_measure_rest),
            ("Wedge", {Shape.WEDGE_SET}, self._check_wedge),
            ("NotWithinStaffHeight", CLEFS, self._check_not_within_staff_height),
            ("WithinStaffHeight", DYNAMICS | FERMATAS, self._check_within_staff_height),
            ("WithinHeader", SMALL_CLEFS, self._check_within_header),
            ("Text", {Shape.TEXT}, self._check_text),
            ("FullTimeSig", WHOLE_TIMES, self._check_full_time),
            ("PartialTimeSig", PARTIAL_TIMES, self._check_partial_time),
            ("StaffGap", NOTES | RESTS | DYNAMICS | ARTICULATIONS, self._check_staff_gap),
            ("BelowStaff", PEDALS, self._check_below_staff),
            ("Tuplet", TUPLETS, self._check_tuplet),
            ("LongRest", {Shape.LONG_REST}, self._rest_check(0)),
            # Stands for the whole rest at pitch 0; WHOLE_REST is placed by MeasureRest.
            ("MultiRest", {Shape.MULTI_REST}, self._rest_check(0)),
            ("Breve", {Shape.BREVE_REST}, self._rest_check(-1)),
            ("SystemTop", SYSTEM_TOP_MARKERS, self._check_system_top),
        ]
        return [Checker(name, frozenset(shapes), check) for name, shapes, check in table]

    def _correct_shape(self, system, evaluation, glyph, new_shape):
        if evaluation.grade >= self.config.min_logged_grade or glyph.vip:
            logger.info(
                "%s%r %r %s corrected as %s",
                system.log_prefix, glyph, evaluation, glyph.bounds, new_shape.name,
            )
        evaluation.shape = new_shape
        return True

    # --- Checks -----------------------------------------------------------

    def _check_within_width(self, system, evaluation, glyph, features):
        if evaluation.shape in _WIDTH_EXEMPT:
            return True
        box = glyph.bounds
        return not (box.max_x < system.left or box.x > system.right)

    def _check_measure_rest(self, system, evaluation, glyph, features):
        pitch = pitch_position(system, glyph)
        if pitch is None:
            return False
        p2 = int(round(2 * pitch))
        if p2 == -1:
            return self._correct_shape(system, evaluation, glyph, Shape.HALF_REST)
        if p2 == -3:
            return self._correct_shape(system, evaluation, glyph, Shape.WHOLE_REST)
        evaluation.failure = "pitch"
        return False

    def _check_wedge(self, system, evaluation, glyph, features):
        if glyph.mask is None:
            evaluation.failure = "noMask"
            return False
        spans = column_spans(glyph.mask)
        ink = np.nonzero(spans)[0]
        if len(ink) < 2:
            evaluation.failure = "noMask"
            return False
        left, right = spans[ink[0]], spans[ink[-1]]
        new_shape = Shape.CRESCENDO if right > left else Shape.DIMINUENDO
        return self._correct_shape(system, evaluation, glyph, new_shape)

    def _check_not_within_staff_height(self, system, evaluation, glyph, features):
        pitch = pitch_position(system, glyph)
        return pitch is not None and abs(pitch) < 4

    def _check_within_staff_height(self, system, evaluation, glyph, features):
        pitch = pitch_position(system, glyph)
        return pitch is not None and abs(pitch) > 4

    def _check_within_header(self, system, evaluation, glyph, features):
        return abs(glyph.center[0]) > system.first_staff.header_stop

    def _check_text(self, system, evaluation, glyph, features):
        pitch = pitch_position(system, glyph)
        if pitch is None:
            return False
        if abs(pitch) >= self.config.min_title_pitch_position:
            max_height = self.config.max_title_height
        else:
            max_height = self.config.max_lyrics_height
        if normalized_height(system, glyph) >= max_height:
            evaluation.failure = "tooHigh"
            return False
        return True

    def _check_full_time(self, system, evaluation, glyph, features):
        pitch = pitch_position(system, glyph)
        if pitch is None:
            return False
        if abs(pitch) > self.config.max_time_pitch_position_margin:
            evaluation.failure = "pitch"
            return False
        if normalized_height(system, glyph) > self.config.max_full_time_height:
            evaluation.failure = "tooHigh"
            return False
        return True

    def _check_partial_time(self, system, evaluation, glyph, features):
        pitch = pitch_position(system, glyph)
        if pitch is None:
            return False
        if abs(abs(pitch) - 2) > self.config.max_time_pitch_position_margin:
            evaluation.failure = "pitch"
            return False
        return True

    def _check_staff_gap(self, system, evaluation, glyph, features):
        staff = system.closest_staff(glyph.center)
        if staff is None:
            return False
        max_gap = system.scale.to_pixels(self.config.max_gap_to_staff)
        return staff.gap_to(glyph.bounds) <= max_gap

    def _check_below_staff(self, system, evaluation, glyph, features):
        pitch = pitch_position(system, glyph)
        return pitch is not None and pitch > 4

    def _check_tuplet(self, system, evaluation, glyph, features):
        pitch = pitch_position(system, glyph)
        if pitch is None:
            return False
        if abs(pitch) > self.config.max_tuplet_pitch_position:
            evaluation.failure = "pitch"
            return False
        return True

    def _rest_check(self, expected_pitch):
        def check(system, evaluation, glyph, features):
            pitch = pitch_position(system, glyph)
            if pitch is None:
                return False
            if abs(pitch - expected_pitch) > self.config.max_rest_pitch_margin:
                evaluation.failure = "pitch"
                return False
            return True
        return check

    def _check_system_top(self, system, evaluation, glyph, features):
        point = glyph.center
        staff = system.closest_staff(point)
        if staff is None or staff is not system.first_staff:
            return False
        return staff.pitch_position_of(point) <= self.config.system_top_max_pitch
