import itertools

import numpy as np
import pytest

from recognition.geometry import Box
from recognition.image import distance_image
from recognition.shapes import Shape
from recognition.sig import Cause, Inter
from recognition.staff import Glyph, Ledger, Part, System
from recognition.templates import FORE, Anchor, TemplateFactory
from recognition.void_heads import RawMatch, VoidHeadsBuilder, VoidHeadsConfig, filter_matches

CONFIG = VoidHeadsConfig()

# ---------------------------------------------------------------------------
# Match filtering
# ---------------------------------------------------------------------------
# (name, raw matches as (x, y, d), max delta, expected survivors)

FILTER_CASES = [
    ("empty", [], 2, []),
    ("single", [(10, 5, 0.4)], 2, [(10, 5, 0.4)]),
    (
        "best_of_cluster",
        [(10, 0, 0.5), (11, 0, 0.2), (20, 0, 0.3), (13, 0, 0.1)],
        2,
        [(13, 0, 0.1), (20, 0, 0.3), (10, 0, 0.5)],
    ),
    (
        "joins_first_cluster",
        [(0, 0, 0.1), (4, 0, 0.2), (2, 0, 0.3)],
        2,
        [(0, 0, 0.1), (4, 0, 0.2)],
    ),
    ("ties_keep_input_order", [(5, 0, 0.3), (6, 0, 0.3)], 3, [(5, 0, 0.3)]),
]


@pytest.mark.parametrize(
    "matches, max_delta, expected",
    [case[1:] for case in FILTER_CASES],
    ids=[case[0] for case in FILTER_CASES],
)
def test_filter_matches(matches, max_delta, expected):
    raw = [RawMatch(*m) for m in matches]
    filtered = filter_matches(raw, max_delta)
    assert filtered == [RawMatch(*m) for m in expected]
    assert filter_matches(filtered, max_delta) == filtered


# ---------------------------------------------------------------------------
# Builder on synthetic pages
# ---------------------------------------------------------------------------

STAFF_TOP = 100
HEAD_X = 200


def _builder(make_staff, make_sheet, distances, glyphs=(), config=CONFIG, right=400, **staff_kwargs):
    staff = make_staff(1, STAFF_TOP, left=0, right=right, **staff_kwargs)
    system = System(1, [staff], [Part(1, [staff])], list(glyphs))
    height, width = distances.shape
    make_sheet([system], width=width, height=height, distances=distances)
    return VoidHeadsBuilder(system, TemplateFactory(), config)


@pytest.fixture
def blank_builder(make_staff, make_sheet):
    return _builder(make_staff, make_sheet, np.full((260, 420), 10.0, dtype=np.float32))


@pytest.mark.parametrize("d", [0.0, 0.3, 0.9, 1.2, 1.5])
def test_grade_bounds(blank_builder, d):
    inter = blank_builder.create_inter(RawMatch(50, 120, d), Anchor.MIDDLE_LEFT, Shape.VOID_EVEN)
    grade = max(0.0, 1.0 - d / CONFIG.max_matching_distance)
    if grade < CONFIG.min_grade:
        assert inter is None
    else:
        assert 0.0 <= inter.grade <= 1.0
        assert inter.grade == pytest.approx(grade)
        assert inter.shape == Shape.NOTEHEAD_VOID


def test_distance_at_max_gives_zero_grade_and_is_dropped(blank_builder):
    match = RawMatch(50, 120, CONFIG.max_matching_distance)
    assert blank_builder.create_inter(match, Anchor.MIDDLE_LEFT, Shape.WHOLE_EVEN) is None
    assert len(blank_builder.sig) == 0


def test_exclusion_iff_shrunk_boxes_intersect(blank_builder):
    sig = blank_builder.sig
    shapes = [Shape.NOTEHEAD_VOID, Shape.WHOLE_NOTE, Shape.NOTEHEAD_BLACK, Shape.BREVE, Shape.BEAM]
    boxes = [Box(0, 0, 25, 21), Box(15, 5, 35, 21), Box(22, 8, 25, 21), Box(30, 40, 25, 21), Box(60, 0, 25, 21)]
    inters = [sig.add_vertex(Inter(shape, box, 0.9)) for shape, box in zip(shapes, boxes)]

    blank_builder.flag_overlaps(list(inters))

    for a, b in itertools.combinations(inters, 2):
        small_a = a.box.shrink(CONFIG.shrink_hori_ratio, CONFIG.shrink_vert_ratio)
        small_b = b.box.shrink(CONFIG.shrink_hori_ratio, CONFIG.shrink_vert_ratio)
        expected = small_a.intersects(small_b)
        assert (sig.get_exclusion(a, b) is not None) == expected, (a, b)
    assert all(e.cause == Cause.OVERLAP for e in sig.exclusions())
    assert sig.exclusions()


def test_purge_leaves_no_intersecting_duplicates(blank_builder):
    sig = blank_builder.sig
    boxes = [Box(0, 0, 25, 21), Box(10, 2, 25, 21), Box(30, 0, 25, 21), Box(42, 0, 25, 21), Box(100, 0, 25, 21)]
    heads = [sig.add_vertex(Inter(Shape.NOTEHEAD_VOID, box, 0.8)) for box in boxes]
    whole = sig.add_vertex(Inter(Shape.WHOLE_NOTE, Box(5, 0, 35, 21), 0.8))
    inters = heads + [whole]

    blank_builder.purge_duplicates(inters)

    assert heads[0] in inters and heads[1] not in inters
    assert heads[1] not in sig
    assert whole in inters
    for a, b in itertools.combinations(inters, 2):
        assert not (a.is_same_as(b) and a.box.intersects(b.box)), (a, b)


def _painted_head(template, x, y, shape=(260, 420)):
    binary = np.zeros(shape, dtype=np.uint8)
    binary[y:y + template.height, x:x + template.width][template.mask == FORE] = 255
    return distance_image(binary)


def test_range_pass_finds_painted_head(make_staff, make_sheet):
    template = TemplateFactory().get_template(Shape.VOID_ODD, 20)
    # Head between the second and third lines, top on the second line
    distances = _painted_head(template, HEAD_X, STAFF_TOP + 20)
    builder = _builder(make_staff, make_sheet, distances)

    created = builder.build_void_heads()

    painted = Box(HEAD_X, STAFF_TOP + 20, template.width, template.height)
    assert any(i.shape == Shape.NOTEHEAD_VOID and i.box == painted for i in created)
    assert all(i in builder.sig for i in created)


def test_seed_result_blocks_range_scan(make_staff, make_sheet):
    template = TemplateFactory().get_template(Shape.VOID_ODD, 20)
    distances = _painted_head(template, HEAD_X, STAFF_TOP + 20)
    stem_x = HEAD_X + template.offset(Anchor.TOP_LEFT_STEM)[0]
    seed = Glyph(
        id=1,
        bounds=Box(stem_x, 60, 1, 71),
        shape=Shape.VERTICAL_SEED,
        start_point=(stem_x, 60),
        stop_point=(stem_x, 130),
    )
    builder = _builder(make_staff, make_sheet, distances, glyphs=[seed])

    created = builder.build_void_heads()

    painted = Box(HEAD_X, STAFF_TOP + 20, template.width, template.height)
    heads = [i for i in created if i.shape == Shape.NOTEHEAD_VOID and i.box.intersects(painted)]
    assert len(heads) == 1
    assert heads[0].box == painted
    assert heads[0].grade == pytest.approx(1.0)


def test_good_competitor_blocks_candidates(make_staff, make_sheet):
    template = TemplateFactory().get_template(Shape.VOID_ODD, 20)
    distances = _painted_head(template, HEAD_X, STAFF_TOP + 20)
    builder = _builder(make_staff, make_sheet, distances)
    painted = Box(HEAD_X, STAFF_TOP + 20, template.width, template.height)
    builder.sig.add_vertex(Inter(Shape.NOTEHEAD_BLACK, painted, 0.9))

    created = builder.build_void_heads()

    assert not [i for i in created if i.box.intersects(painted.shrink(0.5, 0.5))]


# ---------------------------------------------------------------------------
# Ledgers, stem anchors on lines, scan limits
# ---------------------------------------------------------------------------
# (name, ledger index, ledger y, template shape, head top)

LEDGER_CASES = [
    ("on_ledger_above", -1, 80, Shape.VOID_EVEN, 70),
    ("under_ledger_below", 1, 200, Shape.VOID_ODD, 200),
]


@pytest.mark.parametrize(
    "index, ledger_y, shape, head_y",
    [case[1:] for case in LEDGER_CASES],
    ids=[case[0] for case in LEDGER_CASES],
)
def test_heads_on_ledgers(make_staff, make_sheet, index, ledger_y, shape, head_y):
    template = TemplateFactory().get_template(shape, 20)
    distances = _painted_head(template, HEAD_X, head_y)
    ledgers = {index: [Ledger((HEAD_X - 10, ledger_y), (HEAD_X + 40, ledger_y))]}
    builder = _builder(make_staff, make_sheet, distances, ledgers=ledgers)

    created = builder.build_void_heads()

    painted = Box(HEAD_X, head_y, template.width, template.height)
    assert [(i.shape, i.box) for i in created] == [(Shape.NOTEHEAD_VOID, painted)]


@pytest.mark.parametrize("anchor", [Anchor.LEFT_STEM, Anchor.RIGHT_STEM], ids=["left", "right"])
def test_seed_on_line_uses_stem_anchor(make_staff, make_sheet, anchor):
    template = TemplateFactory().get_template(Shape.VOID_EVEN, 20)
    # Head centred on the middle line, stem going down from it
    head_y = STAFF_TOP + 40 - template.offset(anchor)[1]
    distances = _painted_head(template, HEAD_X, head_y)
    stem_x = HEAD_X + template.offset(anchor)[0]
    seed = Glyph(
        id=1,
        bounds=Box(stem_x, head_y, 1, 60),
        shape=Shape.VERTICAL_SEED,
        start_point=(stem_x, head_y),
        stop_point=(stem_x, head_y + 59),
    )
    builder = _builder(make_staff, make_sheet, distances, glyphs=[seed])
    builder.seeds = [seed]

    created = builder.process_staff(builder.system.first_staff, use_seeds=True)

    painted = Box(HEAD_X, head_y, template.width, template.height)
    assert [(i.box, i.grade) for i in created] == [(painted, pytest.approx(1.0))]


# (name, head x, header stop, line right end, expected found)
SCAN_LIMIT_CASES = [
    ("after_header", 200, 150, 400, True),
    ("before_header", 100, 150, 400, False),
    ("clear_of_line_end", 360, None, 400, True),
    ("within_template_width_of_end", 390, None, 400, False),
]


@pytest.mark.parametrize(
    "head_x, header_stop, right, found",
    [case[1:] for case in SCAN_LIMIT_CASES],
    ids=[case[0] for case in SCAN_LIMIT_CASES],
)
def test_range_scan_limits(make_staff, make_sheet, head_x, header_stop, right, found):
    template = TemplateFactory().get_template(Shape.VOID_ODD, 20)
    distances = _painted_head(template, head_x, STAFF_TOP + 20)
    builder = _builder(make_staff, make_sheet, distances, right=right, header_stop=header_stop)

    created = builder.build_void_heads()

    painted = Box(head_x, STAFF_TOP + 20, template.width, template.height)
    assert any(i.box == painted for i in created) is found
    if not found:
        assert not [i for i in created if i.box.intersects(painted)]
