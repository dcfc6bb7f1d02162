"""Synthetic staff geometry shared by the tests.

Staves are five straight lines ``interline`` pixels apart; no image
fixtures are needed.
"""

import numpy as np
import pytest

from recognition.geometry import Scale
from recognition.staff import Part, Sheet, Staff, StaffLine, System

INTERLINE = 20


def _make_staff(staff_id, top, left=0, right=1000, interline=INTERLINE, **kwargs):
    lines = [StaffLine.horizontal(top + i * interline, left, right) for i in range(5)]
    return Staff(staff_id, lines, **kwargs)


def _make_sheet(systems, width=1000, height=1000, interline=INTERLINE, distances=None):
    if distances is None:
        distances = np.full((height, width), 10.0, dtype=np.float32)
    return Sheet(width, height, Scale(interline), systems, distances)


@pytest.fixture
def make_staff():
    return _make_staff


@pytest.fixture
def make_sheet():
    return _make_sheet


@pytest.fixture
def single_staff_system():
    """System #1 with one staff, lines at y = 100..180, x = 50..950."""
    staff = _make_staff(1, 100, left=50, right=950, header_stop=150)
    system = System(1, [staff], [Part(1, [staff])])
    _make_sheet([system])
    return system
