"""Symbol interpretation graph (SIG) of one system.

Nodes are interpretations ("inters"): a candidate shape on an area of the
image with a grade in [0, 1]. Edges are exclusions: two inters that cannot
both be true. Exclusions are only recorded here; choosing the best consistent
subset is left to a later stage.

The graph is a ``networkx.Graph`` keyed by integer inter ids; the inter
itself is stored as the ``inter`` node attribute and the exclusion cause as
the ``cause`` edge attribute.
"""

import logging
from dataclasses import dataclass
from enum import Enum

import networkx as nx

from .geometry import Box

logger = logging.getLogger(__name__)


class Cause(Enum):
    OVERLAP = "overlap"


class GeoOrder(Enum):
    BY_ABSCISSA = "abscissa"
    BY_ORDINATE = "ordinate"


@dataclass(eq=False)
class Inter:
    """One interpretation; ``id`` and ``system_id`` are set when inserted."""

    shape: object
    box: Box
    grade: float
    id: int = 0
    system_id: int = None

    def is_same_as(self, other):
        """True when both inters stand for the same underlying symbol."""
        return self.shape == other.shape

    def __repr__(self):
        return f"{self.shape.name}#{self.id}({self.grade:.3f})"


@dataclass(frozen=True)
class Exclusion:
    """Unordered pair of inter ids, stored smaller id first."""

    source: int
    target: int
    cause: Cause

    @classmethod
    def of(cls, a, b, cause):
        return cls(min(a, b), max(a, b), cause)


_SORT_KEYS = {
    GeoOrder.BY_ABSCISSA: lambda inter: inter.box.x,
    GeoOrder.BY_ORDINATE: lambda inter: inter.box.y,
}


class SIGraph:
    """Interpretations and exclusions of one system."""

    def __init__(self, system_id):
        self.system_id = system_id
        self.graph = nx.Graph()
        self._next_id = 1

    # --- Vertices ---------------------------------------------------------

    def add_vertex(self, inter):
        """Insert an inter, assigning its id and owning system."""
        inter.id = self._next_id
        inter.system_id = self.system_id
        self._next_id += 1
        self.graph.add_node(inter.id, inter=inter)
        return inter

    def remove_vertex(self, inter):
        """Remove an inter together with its exclusions."""
        self.graph.remove_node(inter.id)

    def __contains__(self, inter):
        return inter.id in self.graph and self.graph.nodes[inter.id]["inter"] is inter

    def __len__(self):
        return self.graph.number_of_nodes()

    def __iter__(self):
        return (data["inter"] for _, data in self.graph.nodes(data=True))

    def inters(self, selector=None):
        """Inters matching a predicate, or whose shape is in a collection."""
        if selector is None:
            return list(self)
        if callable(selector):
            return [inter for inter in self if selector(inter)]
        shapes = frozenset(selector)
        return [inter for inter in self if inter.shape in shapes]

    def intersected_inters(self, area, order=GeoOrder.BY_ABSCISSA, inters=None):
        """Inters (of the graph, or of ``inters``) whose box intersects ``area``.

        ``area`` is anything with an ``intersects(box)`` method. The result is
        sorted along ``order``.
        """
        candidates = self if inters is None else inters
        found = [inter for inter in candidates if area.intersects(inter.box)]
        found.sort(key=_SORT_KEYS[order])
        return found

    # --- Edges ------------------------------------------------------------

    def insert_exclusion(self, a, b, cause):
        """Record that inters ``a`` and ``b`` exclude each other.

        Returns the exclusion, or None for a self exclusion. Inserting the
        same pair twice keeps a single edge.
        """
        if a.id == b.id:
            return None
        if not self.graph.has_edge(a.id, b.id):
            self.graph.add_edge(a.id, b.id, cause=cause)
        return Exclusion.of(a.id, b.id, self.graph.edges[a.id, b.id]["cause"])

    def get_exclusion(self, a, b):
        if not self.graph.has_edge(a.id, b.id):
            return None
        return Exclusion.of(a.id, b.id, self.graph.edges[a.id, b.id]["cause"])

    def exclusions(self):
        return [Exclusion.of(u, v, cause) for u, v, cause in self.graph.edges(data="cause")]

    def excluded(self, inter):
        """Inters in conflict with ``inter``."""
        return [self.graph.nodes[n]["inter"] for n in self.graph.neighbors(inter.id)]

    def __repr__(self):
        return (
            f"SIG#{self.system_id}(inters={self.graph.number_of_nodes()}, "
            f"exclusions={self.graph.number_of_edges()})"
        )
