"""Staff geometry from a page image, through its horizontal projection.

Feeds the recognition core when running on a plain image, where no
upstream stage provides staves and seeds.

Pipeline:
    1. Binarize (ink = 255) and compute the distance image
    2. Horizontal projection (ink pixels per row)
    3. Peak detection (scipy find_peaks on the smoothed projection)
    4. Group peaks into staves of 5 regularly spaced lines
       - Repair groups missing one or two lines
       - Trim groups with one extra line
    5. Interline = median line spacing within staves
    6. Group staves into systems (inter-stave gaps larger than 2x the median)
    7. Vertical seeds: thin vertical strokes, kept as stem candidates
"""

import logging

import cv2 as cv
import numpy as np
from scipy.signal import find_peaks

from .geometry import Box, Scale
from .image import binarize, distance_image
from .shapes import Shape
from .staff import Glyph, Part, Sheet, Staff, StaffError, StaffLine, System

logger = logging.getLogger(__name__)

LINES_PER_STAFF = 5


# ---------------------------------------------------------------------------
# Steps 2-3: projection and peaks
# ---------------------------------------------------------------------------

def horizontal_projection(binary):
    return np.sum(binary > 0, axis=1).astype(np.float64)


def find_line_peaks(projection, min_prominence_ratio=0.15):
    """Rows whose ink count stands out as a staff line.

    Returns:
        peaks: row indices of the candidate lines.
        smoothed: the projection after moving-average smoothing.
    """
    kernel = max(3, len(projection) // 500) | 1
    smoothed = np.convolve(projection, np.ones(kernel) / kernel, mode="same")
    min_distance = max(3, len(projection) // 300)
    peaks, _ = find_peaks(
        smoothed,
        prominence=np.max(projection) * min_prominence_ratio,
        distance=min_distance,
    )
    return peaks, smoothed


# ---------------------------------------------------------------------------
# Step 4: peaks -> staves
# ---------------------------------------------------------------------------

def group_into_staves(peaks, expected_lines=LINES_PER_STAFF, tolerance=0.4):
    """Split peaks into staves of ``expected_lines`` ordinates each.

    A new group starts whenever the next peak is too far from the previous
    one or would make the group taller than a staff. Groups slightly short
    are completed by even spacing, a group with one extra line loses the
    line that spoils regularity, other groups are dropped.

    Returns:
        staves: list of int arrays, top to bottom.
        orphans: peaks left out of any staff.
    """
    if len(peaks) < expected_lines:
        return [], list(peaks)

    gaps = np.diff(peaks)
    spacing = np.sort(gaps)[len(gaps) // 4]
    max_span = spacing * (expected_lines - 1) * (1 + tolerance)

    groups = [[peaks[0]]]
    for previous, peak in zip(peaks[:-1], peaks[1:]):
        group = groups[-1]
        if peak - previous > 2 * spacing or peak - group[0] > max_span:
            groups.append([peak])
        else:
            group.append(peak)

    staves, orphans = [], []
    for group in map(np.array, groups):
        if len(group) == expected_lines:
            staves.append(group)
        elif len(group) == expected_lines + 1:
            staves.append(_most_regular_subset(group))
        elif expected_lines - 2 <= len(group) < expected_lines:
            implied = (group[-1] - group[0]) / (expected_lines - 1)
            if abs(implied - spacing) <= tolerance * spacing:
                staves.append(np.rint(group[0] + implied * np.arange(expected_lines)).astype(int))
            else:
                orphans.extend(group.tolist())
        else:
            orphans.extend(group.tolist())

    return staves, orphans


def _most_regular_subset(group):
    candidates = [np.delete(group, i) for i in range(len(group))]
    return min(candidates, key=lambda c: np.var(np.diff(c)))


def estimate_interline(staves):
    spacings = np.concatenate([np.diff(staff) for staff in staves])
    return int(round(float(np.median(spacings))))


# ---------------------------------------------------------------------------
# Step 6: staves -> systems
# ---------------------------------------------------------------------------

def group_into_systems(staves):
    """Split staves (top to bottom) at gaps above twice the median gap."""
    if len(staves) <= 1:
        return [staves] if staves else []

    gaps = [below[0] - above[-1] for above, below in zip(staves[:-1], staves[1:])]
    threshold = np.median(gaps) * 2.0
    systems = [[staves[0]]]
    for gap, staff in zip(gaps, staves[1:]):
        if gap > threshold:
            systems.append([staff])
        else:
            systems[-1].append(staff)
    return systems


def line_extent(binary, y):
    """Leftmost and rightmost ink columns on row ``y``."""
    columns = np.nonzero(binary[y] > 0)[0]
    if len(columns) == 0:
        return 0, binary.shape[1] - 1
    return int(columns[0]), int(columns[-1])


# ---------------------------------------------------------------------------
# Step 7: vertical seeds
# ---------------------------------------------------------------------------

def find_vertical_seeds(binary, interline, min_length=1.25, max_width=0.3):
    """Thin vertical ink strokes, as VERTICAL_SEED glyphs.

    A vertical opening keeps only runs at least ``min_length`` interlines
    tall; connected components of the result that are at most
    ``max_width`` interlines wide become seeds.
    """
    length = max(3, int(round(min_length * interline)))
    kernel = cv.getStructuringElement(cv.MORPH_RECT, (1, length))
    vertical = cv.morphologyEx(binary, cv.MORPH_OPEN, kernel)
    count, _, stats, _ = cv.connectedComponentsWithStats(vertical, connectivity=8)

    seeds = []
    max_w = max(1, int(round(max_width * interline)))
    for label in range(1, count):
        x, y, w, h, _ = stats[label]
        if w > max_w:
            continue
        cx = x + w / 2.0
        seeds.append(Glyph(
            id=len(seeds) + 1,
            bounds=Box(int(x), int(y), int(w), int(h)),
            shape=Shape.VERTICAL_SEED,
            start_point=(cx, float(y)),
            stop_point=(cx, float(y + h - 1)),
        ))
    return seeds


# ---------------------------------------------------------------------------
# Full pipeline
# ---------------------------------------------------------------------------

def build_sheet(img):
    """Sheet with its systems, staves, seeds and distance image.

    Raises:
        StaffError: if no staff can be found on the page.
    """
    binary = binarize(img)
    peaks, _ = find_line_peaks(horizontal_projection(binary))
    staves, orphans = group_into_staves(peaks)
    if not staves:
        raise StaffError(f"No staff found ({len(peaks)} line peaks)")
    staves.sort(key=lambda s: s[0])
    interline = estimate_interline(staves)
    logger.info(
        "%d staves, %d orphan lines, interline %d", len(staves), len(orphans), interline
    )

    seeds = find_vertical_seeds(binary, interline)
    systems = []
    staff_id = 0
    for system_id, group in enumerate(group_into_systems(staves), start=1):
        system_staves = []
        for ordinates in group:
            staff_id += 1
            lines = [StaffLine.horizontal(int(y), *line_extent(binary, int(y))) for y in ordinates]
            system_staves.append(Staff(staff_id, lines))
        parts = [Part(i, [staff]) for i, staff in enumerate(system_staves, start=1)]
        systems.append(System(system_id, system_staves, parts))

    for seed in seeds:
        cy = seed.bounds.center[1]
        closest = min(
            systems,
            key=lambda s: abs(cy - (s.staves[0].lines[0].y_at(0) + s.staves[-1].lines[-1].y_at(0)) / 2),
        )
        closest.glyphs.append(seed)

    height, width = binary.shape[:2]
    return Sheet(width, height, Scale(interline), systems, distance_image(binary))
