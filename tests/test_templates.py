from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from recognition.geometry import Box
from recognition.image import distance_image
from recognition.shapes import Shape, ShapeCatalogError
from recognition.templates import FORE, HOLE, IGNORED, Anchor, TemplateFactory

# Void template at interline 20 is 25 x 21 pixels
ANCHOR_CASES = [
    (Anchor.TOP_LEFT, Box(100, 50, 25, 21)),
    (Anchor.MIDDLE_LEFT, Box(100, 40, 25, 21)),
    (Anchor.BOTTOM_LEFT, Box(100, 30, 25, 21)),
    (Anchor.CENTER, Box(88, 40, 25, 21)),
    (Anchor.LEFT_STEM, Box(99, 40, 25, 21)),
    (Anchor.RIGHT_STEM, Box(77, 40, 25, 21)),
    (Anchor.TOP_LEFT_STEM, Box(99, 50, 25, 21)),
    (Anchor.TOP_RIGHT_STEM, Box(77, 50, 25, 21)),
    (Anchor.BOTTOM_LEFT_STEM, Box(99, 30, 25, 21)),
    (Anchor.BOTTOM_RIGHT_STEM, Box(77, 30, 25, 21)),
]


@pytest.mark.parametrize(
    "anchor, expected",
    ANCHOR_CASES,
    ids=[anchor.name.lower() for anchor, _ in ANCHOR_CASES],
)
def test_box_at(anchor, expected):
    template = TemplateFactory().get_template(Shape.VOID_ODD, 20)
    assert template.box_at(100, 50, anchor) == expected


def test_template_sizes():
    factory = TemplateFactory()
    void = factory.get_template(Shape.VOID_EVEN, 20)
    whole = factory.get_template(Shape.WHOLE_EVEN, 20)
    assert (void.width, void.height) == (25, 21)
    assert (whole.width, whole.height) == (35, 21)
    assert whole.width > void.width


def test_mask_roles():
    factory = TemplateFactory()
    even = factory.get_template(Shape.VOID_EVEN, 20)
    odd = factory.get_template(Shape.VOID_ODD, 20)
    middle = even.height // 2
    assert np.all(even.mask[middle] == IGNORED)
    assert np.any(odd.mask[middle] == HOLE)
    assert np.any(odd.mask == FORE)
    assert not odd.mask.flags.writeable


def test_cached_per_shape_and_interline():
    factory = TemplateFactory()
    first = factory.get_template(Shape.WHOLE_ODD, 20)
    assert factory.get_template(Shape.WHOLE_ODD, 20) is first
    assert factory.get_template(Shape.WHOLE_ODD, 24) is not first
    assert len(factory) == 2


def test_concurrent_first_use_builds_once():
    factory = TemplateFactory()
    with ThreadPoolExecutor(max_workers=8) as pool:
        templates = list(pool.map(lambda _: factory.get_template(Shape.VOID_EVEN, 18), range(32)))
    assert all(t is templates[0] for t in templates)
    assert len(factory) == 1


def test_non_template_shape_is_fatal():
    with pytest.raises(ShapeCatalogError):
        TemplateFactory().get_template(Shape.G_CLEF, 20)


def _painted(template, x, y, size=(120, 160)):
    binary = np.zeros(size, dtype=np.uint8)
    region = binary[y:y + template.height, x:x + template.width]
    region[template.mask == FORE] = 255
    return distance_image(binary)


def test_perfect_match_costs_nothing():
    template = TemplateFactory().get_template(Shape.VOID_ODD, 20)
    distances = _painted(template, 40, 30)
    assert template.evaluate(40, 30, Anchor.TOP_LEFT, distances) == 0.0
    dx, dy = template.offset(Anchor.CENTER)
    assert template.evaluate(40 + dx, 30 + dy, Anchor.CENTER, distances) == 0.0


def test_filled_hole_is_penalized():
    template = TemplateFactory().get_template(Shape.VOID_ODD, 20)
    binary = np.zeros((120, 160), dtype=np.uint8)
    binary[30:30 + template.height, 40:40 + template.width][template.mask != IGNORED] = 255
    distances = distance_image(binary)
    assert template.evaluate(40, 30, Anchor.TOP_LEFT, distances) > 1.5


def test_blank_page_and_outside_page_cost_more_than_max():
    template = TemplateFactory().get_template(Shape.VOID_ODD, 20)
    speck = np.zeros((120, 160), dtype=np.uint8)
    speck[119, 159] = 255
    blank = distance_image(speck)
    assert template.evaluate(40, 30, Anchor.TOP_LEFT, blank) > 1.5

    distances = _painted(template, 40, 30)
    assert template.evaluate(-200, -200, Anchor.TOP_LEFT, distances) > 1.5
