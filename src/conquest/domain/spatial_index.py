"""Broad-phase lookup of territories by bounding box.

A uniform grid over longitude/latitude maps each cell to the territories
whose bounding box touches it. Queries collect ids from the cells a box covers
and then confirm the exact box intersection, so results always equal a scan
of every bounding box; the grid only makes the common case fast.

The index is an explicit cache object. It records the store ``revision`` it
was built from; callers compare that against the store and ``rebuild`` when
they differ.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator

from conquest.domain.models import BoundingBox, TerritoryBounds, TerritoryID

Cell = tuple[int, int]


class SpatialIndex:
    """Grid-hash index of territory bounding boxes.

    Example:
        >>> index = SpatialIndex(cell_degrees=0.01)
        >>> index.insert(TerritoryID("a"), BoundingBox(0.0, 0.0, 0.001, 0.001))
        >>> index.query_candidates(BoundingBox(0.0005, 0.0005, 0.002, 0.002))
        ['a']
    """

    def __init__(self, cell_degrees: float = 0.01) -> None:
        if cell_degrees <= 0:
            raise ValueError(f"cell_degrees must be positive, got {cell_degrees}")
        self.cell_degrees = cell_degrees
        self.revision: int | None = None
        self._boxes: dict[TerritoryID, BoundingBox] = {}
        self._cells: dict[Cell, set[TerritoryID]] = {}

    def __len__(self) -> int:
        return len(self._boxes)

    def __contains__(self, territory_id: object) -> bool:
        return territory_id in self._boxes

    def _cells_for(self, bbox: BoundingBox) -> Iterator[Cell]:
        size = self.cell_degrees
        for cx in range(math.floor(bbox.min_lng / size), math.floor(bbox.max_lng / size) + 1):
            for cy in range(math.floor(bbox.min_lat / size), math.floor(bbox.max_lat / size) + 1):
                yield cx, cy

    def insert(self, territory_id: TerritoryID, bbox: BoundingBox) -> None:
        """Add or replace the bounding box for ``territory_id``."""

        if territory_id in self._boxes:
            self.remove(territory_id)
        self._boxes[territory_id] = bbox
        for cell in self._cells_for(bbox):
            self._cells.setdefault(cell, set()).add(territory_id)

    update = insert

    def remove(self, territory_id: TerritoryID) -> None:
        """Drop ``territory_id``; unknown ids are ignored."""

        bbox = self._boxes.pop(territory_id, None)
        if bbox is None:
            return
        for cell in self._cells_for(bbox):
            members = self._cells.get(cell)
            if members is None:
                continue
            members.discard(territory_id)
            if not members:
                del self._cells[cell]

    def query_candidates(self, bbox: BoundingBox) -> list[TerritoryID]:
        """Ids whose bounding box intersects ``bbox``, sorted for stable output."""

        found: set[TerritoryID] = set()
        for cell in self._cells_for(bbox):
            found.update(self._cells.get(cell, ()))
        return sorted(tid for tid in found if self._boxes[tid].intersects(bbox))

    def rebuild(self, bounds: Iterable[TerritoryBounds], revision: int | None) -> None:
        """Replace the whole index with ``bounds`` read at store ``revision``."""

        self.clear()
        for entry in bounds:
            self.insert(entry.territory_id, entry.bbox)
        self.revision = revision

    def invalidate(self) -> None:
        """Mark the index stale so the next conquest rebuilds it."""

        self.revision = None

    def clear(self) -> None:
        self._boxes.clear()
        self._cells.clear()
        self.revision = None

    def is_current(self, revision: int) -> bool:
        return self.revision is not None and self.revision == revision


def scan_candidates(bounds: Iterable[TerritoryBounds], bbox: BoundingBox) -> list[TerritoryID]:
    """Reference broad phase: check every bounding box."""

    return sorted(entry.territory_id for entry in bounds if entry.bbox.intersects(bbox))
