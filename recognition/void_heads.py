"""Void note heads and whole notes, found by template matching.

Runs once per system, staff by staff:
    1. Seed pass: along every staff line and ledger, look for heads attached
       to the vertical seeds (stem candidates) crossing the line band, trying
       only the two stem anchors of the head template.
    2. The heads found in (1) join the competitors.
    3. Range pass: along the same lines and ledgers, try every abscissa,
       skipping places already claimed by a good competitor.
    4. Purge duplicates, then flag overlapping heads with OVERLAP exclusions.

Each line is looked at in three bands: heads *on* the line (even pitch
step, ``dir == 0``), just *above* it (``dir == -1``, only for the first line)
and just *below* it (``dir == +1``). Raw matches are clustered by
``filter_matches`` and the survivors become inters in the system SIG when
their grade is high enough.
"""

import logging
from dataclasses import dataclass

from .geometry import intersection_at_y
from .shapes import COMPETING_SHAPES, EVEN_HEADS, ODD_HEADS, Shape, head_shape_of
from .sig import Cause, GeoOrder, Inter
from .stopwatch import StopWatch
from .templates import Anchor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoidHeadsConfig:
    """Tuning of the void heads builder.

    max_matching_distance: worst acceptable template cost; also the cost
        that maps to a zero grade.
    max_template_delta: horizontal tolerance (interline fraction) for two
        raw matches to be considered the same head.
    shrink_hori_ratio / shrink_vert_ratio: box shrinking applied before any
        overlap test, templates being slightly larger than real heads.
    min_grade: minimum grade for an inter to enter the SIG.
    good_grade: minimum grade for an existing inter to block candidates.
    """

    max_matching_distance: float = 1.5
    max_template_delta: float = 0.75
    shrink_hori_ratio: float = 0.7
    shrink_vert_ratio: float = 0.5
    min_grade: float = 0.35
    good_grade: float = 0.5
    print_watch: bool = False


@dataclass(frozen=True)
class RawMatch:
    """Template cost ``d`` at anchor location (x, y)."""

    x: int
    y: int
    d: float


def filter_matches(matches, max_delta):
    """Keep the best match of every cluster of nearby matches.

    Matches are visited by increasing cost; each one joins the first cluster
    whose seed match lies within ``max_delta`` pixels horizontally, or opens
    a new cluster. The first (cheapest) match of each cluster is returned.
    """
    clusters = []
    for match in sorted(matches, key=lambda m: m.d):
        for cluster in clusters:
            if abs(match.x - cluster[0].x) <= max_delta:
                cluster.append(match)
                break
        else:
            clusters.append([match])
    return [cluster[0] for cluster in clusters]


def shrink(box, config):
    return box.shrink(config.shrink_hori_ratio, config.shrink_vert_ratio)


# ---------------------------------------------------------------------------
# Line adapters: staff lines and ledgers seen through one interface
# ---------------------------------------------------------------------------

class StaffLineAdapter:
    def __init__(self, staff, line):
        self.staff = staff
        self.line = line
        self.prefix = ""

    @property
    def left_abscissa(self):
        return self.line.left_abscissa

    @property
    def right_abscissa(self):
        return self.line.right_abscissa

    def y_at(self, x):
        return self.line.y_at(x)

    def y_at_double(self, x):
        return self.line.y_at_double(x)


class LedgerAdapter(StaffLineAdapter):
    def __init__(self, staff, prefix, ledger):
        super().__init__(staff, ledger)
        self.prefix = prefix


class LineBand:
    """Horizontal strip following a line, from ``y + above`` to ``y + below``."""

    def __init__(self, adapter, above, below):
        self.adapter = adapter
        self.above = above
        self.below = below

    def intersects(self, box):
        left, right = self.adapter.left_abscissa, self.adapter.right_abscissa
        if box.is_empty() or box.max_x <= left or box.x >= right:
            return False
        for x in (box.x, box.x + box.width / 2.0, box.max_x):
            x = min(max(x, left), right)
            y = self.adapter.y_at_double(x)
            if box.y < y + self.below and box.max_y > y + self.above:
                return True
        return False

    def __repr__(self):
        return f"LineBand({self.adapter.prefix or 'line'}, {self.above:.1f}, {self.below:.1f})"


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class VoidHeadsBuilder:
    """Populates one system SIG with void head and whole note inters."""

    def __init__(self, system, factory, config=VoidHeadsConfig()):
        self.system = system
        self.sig = system.sig
        self.config = config
        self.distances = system.sheet.distance_image

        scale = system.scale
        self.scale = scale
        self.interline = scale.interline
        self.max_template_delta = scale.to_pixels(config.max_template_delta)

        self.templates = {
            shape: factory.get_template(shape, self.interline)
            for shape in EVEN_HEADS + ODD_HEADS
        }
        self.min_template_width = min(t.width for t in self.templates.values())

        self.competitors = []
        self.seeds = []

    def build_void_heads(self):
        """Run both passes on every staff; return the inters created."""
        watch = StopWatch(f"build_void_heads S#{self.system.id}")
        self.competitors = self._system_competitors()
        self.seeds = self._system_seeds()
        created = []

        for staff in self.system.staves:
            logger.debug("%sStaff #%d", self.system.log_prefix, staff.id)
            watch.start(f"Staff #{staff.id}")
            staff_inters = self.process_staff(staff, use_seeds=True)
            self.competitors.extend(staff_inters)
            self.competitors.sort(key=lambda inter: inter.box.y)
            staff_inters.extend(self.process_staff(staff, use_seeds=False))
            self.flag_overlaps(staff_inters)
            created.extend(staff_inters)

        if self.config.print_watch:
            watch.print()
        logger.info("%s%d void heads, %s", self.system.log_prefix, len(created), self.sig)
        return created

    def _system_competitors(self):
        good = self.config.good_grade
        competitors = [
            inter for inter in self.sig.inters(COMPETING_SHAPES) if inter.grade >= good
        ]
        competitors.sort(key=lambda inter: inter.box.y)
        return competitors

    def _system_seeds(self):
        seeds = [g for g in self.system.glyphs if g.shape == Shape.VERTICAL_SEED]
        seeds.sort(key=lambda g: g.bounds.y)
        return seeds

    # --- Staff traversal --------------------------------------------------

    def process_staff(self, staff, use_seeds):
        """One pass (seed or range) over all lines and ledgers of a staff."""
        created = []
        step = -5

        for index, line in enumerate(staff.lines):
            adapter = StaffLineAdapter(staff, line)
            if index == 0:
                created.extend(self.lookup(adapter, -1, step, use_seeds))
                step += 1
            created.extend(self.lookup(adapter, 0, step, use_seeds))
            step += 1
            created.extend(self.lookup(adapter, +1, step, use_seeds))
            step += 1

        for direction in (-1, 1):
            step = direction * 4
            index = direction
            while True:
                ledgers = staff.get_ledgers(index)
                if not ledgers:
                    break
                step += 2 * direction
                for i, ledger in enumerate(ledgers):
                    adapter = LedgerAdapter(staff, chr(ord("a") + i), ledger)
                    created.extend(self.lookup(adapter, 0, step, use_seeds))
                    created.extend(self.lookup(adapter, direction, step + direction, use_seeds))
                index += direction

        return created

    def lookup(self, adapter, direction, step, use_seeds):
        ratio = self.config.shrink_vert_ratio
        above = self.scale.to_pixels_double((direction - ratio) / 2)
        below = self.scale.to_pixels_double((direction + ratio) / 2)
        band = LineBand(adapter, above, below)

        competitors = self.sig.intersected_inters(band, GeoOrder.BY_ABSCISSA, self.competitors)
        logger.debug("lookup %s#%d comps: %d", adapter.prefix, step, len(competitors))

        if use_seeds:
            return self.lookup_seeds(band, adapter, direction, competitors)
        return self.lookup_range(adapter, direction, competitors)

    # --- Passes -----------------------------------------------------------

    def lookup_seeds(self, band, adapter, direction, competitors):
        """Evaluate the void template at the stem anchors of crossing seeds."""
        shape = Shape.VOID_EVEN if direction == 0 else Shape.VOID_ODD
        template = self.templates[shape]
        if direction == 0:
            anchors = (Anchor.LEFT_STEM, Anchor.RIGHT_STEM)
        elif direction < 0:
            anchors = (Anchor.BOTTOM_LEFT_STEM, Anchor.BOTTOM_RIGHT_STEM)
        else:
            anchors = (Anchor.TOP_LEFT_STEM, Anchor.TOP_RIGHT_STEM)

        seeds = sorted(
            (seed for seed in self.seeds if band.intersects(seed.bounds)),
            key=lambda g: g.bounds.x,
        )
        matches = {anchor: [] for anchor in anchors}
        for seed in seeds:
            x = int(seed.bounds.x + seed.bounds.width / 2)
            y = adapter.y_at(x)
            x = int(round(intersection_at_y(seed.vertical_start, seed.vertical_stop, y)))
            for anchor in anchors:
                if self.overlap(shrink(template.box_at(x, y, anchor), self.config), competitors):
                    continue
                d = template.evaluate(x, y, anchor, self.distances)
                if d <= self.config.max_matching_distance:
                    matches[anchor].append(RawMatch(x, y, d))

        created = []
        for anchor in anchors:
            for match in filter_matches(matches[anchor], self.max_template_delta):
                inter = self.create_inter(match, anchor, shape)
                if inter is not None:
                    created.append(inter)
        return created

    def lookup_range(self, adapter, direction, competitors):
        """Evaluate the templates at every abscissa along the line."""
        shapes = EVEN_HEADS if direction == 0 else ODD_HEADS
        if direction == 0:
            anchor = Anchor.MIDDLE_LEFT
        elif direction < 0:
            anchor = Anchor.BOTTOM_LEFT
        else:
            anchor = Anchor.TOP_LEFT

        scan_left = max(adapter.left_abscissa, int(adapter.staff.header_stop))
        scan_right = adapter.right_abscissa - self.min_template_width
        matches = {shape: [] for shape in shapes}

        for x in range(scan_left, scan_right + 1):
            y = adapter.y_at(x)
            for shape in shapes:
                template = self.templates[shape]
                if self.overlap(shrink(template.box_at(x, y, anchor), self.config), competitors):
                    continue
                d = template.evaluate(x, y, anchor, self.distances)
                if d <= self.config.max_matching_distance:
                    matches[shape].append(RawMatch(x, y, d))

        created = []
        for shape in shapes:
            for match in filter_matches(matches[shape], self.max_template_delta):
                inter = self.create_inter(match, anchor, shape)
                if inter is not None:
                    created.append(inter)
        return created

    @staticmethod
    def overlap(box, competitors):
        """True if box intersects a competitor; competitors sorted by abscissa."""
        for competitor in competitors:
            if competitor.box.intersects(box):
                return True
            if competitor.box.x > box.max_x:
                break
        return False

    def create_inter(self, match, anchor, shape):
        """Inter for a filtered match, or None when its grade is too low."""
        box = self.templates[shape].box_at(match.x, match.y, anchor)
        grade = max(0.0, 1.0 - match.d / self.config.max_matching_distance)
        if grade < self.config.min_grade:
            logger.debug("Too weak %s dist: %.3f grade: %.2f at %s", shape.name, match.d, grade, box)
            return None
        inter = self.sig.add_vertex(Inter(head_shape_of(shape), box, grade))
        logger.debug("Created %s at %s dist: %.3f", inter, box.center, match.d)
        return inter

    # --- Conflicts --------------------------------------------------------

    def purge_duplicates(self, inters):
        """Remove, from the list and the SIG, inters duplicating an earlier one.

        ``inters`` is sorted by abscissa in place.
        """
        inters.sort(key=lambda inter: inter.box.x)
        duplicates = []
        for i, left in enumerate(inters[:-1]):
            for right in inters[i + 1:]:
                if left.box.intersects(right.box):
                    if left.is_same_as(right) and right not in duplicates:
                        duplicates.append(right)
                elif right.box.x >= left.box.max_x:
                    break

        for inter in duplicates:
            logger.debug("Purging %s at %s", inter, inter.box)
            inters.remove(inter)
            self.sig.remove_vertex(inter)

    def flag_overlaps(self, inters):
        """Purge duplicates, then exclude every pair of overlapping inters."""
        self.purge_duplicates(inters)
        for i, left in enumerate(inters[:-1]):
            small = shrink(left.box, self.config)
            for right in inters[i + 1:]:
                if small.intersects(shrink(right.box, self.config)):
                    self.sig.insert_exclusion(left, right, Cause.OVERLAP)
                elif right.box.x > small.max_x:
                    break


def build_void_heads(system, factory, config=VoidHeadsConfig()):
    return VoidHeadsBuilder(system, factory, config).build_void_heads()
