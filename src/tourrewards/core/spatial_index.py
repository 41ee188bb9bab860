"""
Uniform-grid spatial index (grid bucket) over the attraction catalog.

Used to avoid O(N) scans per visited location when the catalog grows large:
attractions are bucketed into square cells of `cell_size_deg` degrees, a query
scans only the cells that can hold points within the radius, and the survivors
are filtered by exact great-circle distance.

The index is built once and is read-only afterwards, so any number of worker
threads may query it concurrently. Only the distance memo is mutable, and it is
guarded by a lock.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass
from typing import Iterable, Iterator
from uuid import UUID

from tourrewards.core.geo import MILES_PER_DEGREE, distance_miles
from tourrewards.domain.models import Attraction, Location

# Rounded down from MILES_PER_DEGREE (~69.05) so the scanned window errs wide.
APPROX_MILES_PER_DEGREE = 69.0

# Farthest two points on the sphere can be apart.
HALF_CIRCUMFERENCE_MILES = 180.0 * MILES_PER_DEGREE

CellKey = tuple[int, int]


@dataclass(frozen=True)
class _Window:
    """Cells around a query cell; a `None` step count means "all of that axis"."""

    lat_key: int
    lon_key: int
    lat_steps: int | None
    lon_steps: int | None


class SpatialIndex:
    def __init__(
        self,
        attractions: Iterable[Attraction],
        *,
        cell_size_deg: float = 0.01,
        distance_cache_size: int = 100_000,
    ):
        cell = float(cell_size_deg)
        if not cell > 0 or cell > 180:
            raise ValueError("cell_size_deg must be in (0, 180]")
        lon_cells = round(360.0 / cell)
        if abs(lon_cells * cell - 360.0) > 1e-6:
            raise ValueError("cell_size_deg must divide 360 evenly")
        self._cell_size_deg = cell
        self._lon_cells = int(lon_cells)
        self._attractions: tuple[Attraction, ...] = tuple(attractions)

        buckets: dict[CellKey, list[Attraction]] = {}
        for a in self._attractions:
            buckets.setdefault(self.cell_key(a.location), []).append(a)
        self._cells: dict[CellKey, tuple[Attraction, ...]] = {k: tuple(v) for k, v in buckets.items()}

        self._distance_cache_size = max(0, int(distance_cache_size))
        self._distances: dict[tuple[float, float, UUID], float] = {}
        self._distances_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._attractions)

    @property
    def attractions(self) -> tuple[Attraction, ...]:
        return self._attractions

    @property
    def cell_size_deg(self) -> float:
        return self._cell_size_deg

    @property
    def cell_count(self) -> int:
        return len(self._cells)

    def _wrap_lon_key(self, key: int) -> int:
        # Canonical longitude key, so cells either side of +/-180 are neighbours.
        half = self._lon_cells // 2
        return (key + half) % self._lon_cells - half

    def cell_key(self, point: Location) -> CellKey:
        lat_key = int(math.floor(point.latitude / self._cell_size_deg))
        lon_key = int(math.floor(point.longitude / self._cell_size_deg))
        return lat_key, self._wrap_lon_key(lon_key)

    def cell_radius(self, radius_miles: float) -> int:
        """Number of cells to scan north and south to cover `radius_miles`."""
        return int(math.ceil(float(radius_miles) / (self._cell_size_deg * APPROX_MILES_PER_DEGREE)))

    def _window(self, point: Location, radius_miles: float) -> _Window:
        lat_key, lon_key = self.cell_key(point)
        if math.isinf(radius_miles):
            return _Window(lat_key, lon_key, None, None)

        delta_deg = radius_miles / APPROX_MILES_PER_DEGREE
        lat_steps = self.cell_radius(radius_miles)
        if abs(point.latitude) + delta_deg >= 90.0:
            # The circle contains a pole: every longitude is in reach.
            return _Window(lat_key, lon_key, lat_steps, None)

        # Widest longitude span of a spherical cap (bounding-box formula).
        ratio = math.sin(math.radians(delta_deg)) / math.cos(math.radians(point.latitude))
        delta_lon_deg = math.degrees(math.asin(min(1.0, ratio)))
        lon_steps = int(math.ceil(delta_lon_deg / self._cell_size_deg))
        if 2 * lon_steps + 1 >= self._lon_cells:
            return _Window(lat_key, lon_key, lat_steps, None)
        return _Window(lat_key, lon_key, lat_steps, lon_steps)

    def _in_window(self, key: CellKey, w: _Window) -> bool:
        if w.lat_steps is not None and abs(key[0] - w.lat_key) > w.lat_steps:
            return False
        if w.lon_steps is None:
            return True
        d = abs(key[1] - w.lon_key) % self._lon_cells
        return min(d, self._lon_cells - d) <= w.lon_steps

    def _candidate_cells(self, w: _Window) -> Iterator[tuple[Attraction, ...]]:
        lat_span = math.inf if w.lat_steps is None else 2 * w.lat_steps + 1
        lon_span = self._lon_cells if w.lon_steps is None else 2 * w.lon_steps + 1
        if lat_span * lon_span > len(self._cells):
            # The window is bigger than the occupied grid: test occupied cells instead.
            for key, cell in self._cells.items():
                if self._in_window(key, w):
                    yield cell
            return

        half = self._lon_cells // 2
        if w.lon_steps is None:
            lon_keys = range(-half, self._lon_cells - half)
        else:
            lon_keys = [self._wrap_lon_key(w.lon_key + d) for d in range(-w.lon_steps, w.lon_steps + 1)]
        for dy in range(-w.lat_steps, w.lat_steps + 1):
            for lon_key in lon_keys:
                cell = self._cells.get((w.lat_key + dy, lon_key))
                if cell:
                    yield cell

    def distance(self, point: Location, attraction: Attraction) -> float:
        """Exact distance in miles, memoized per (point, attraction)."""
        key = (point.latitude, point.longitude, attraction.attraction_id)
        with self._distances_lock:
            cached = self._distances.get(key)
        if cached is not None:
            return cached
        d = distance_miles(point, attraction.location)
        with self._distances_lock:
            if len(self._distances) < self._distance_cache_size:
                self._distances.setdefault(key, d)
        return d

    def nearby(self, point: Location, radius_miles: float) -> list[Attraction]:
        """Return every attraction within `radius_miles` of `point`."""
        r = float(radius_miles)
        if math.isnan(r) or r < 0 or not self._cells:
            return []
        w = self._window(point, r)
        out: list[Attraction] = []
        for cell in self._candidate_cells(w):
            for a in cell:
                if self.distance(point, a) <= r:
                    out.append(a)
        return out

    def nearest(self, point: Location, limit: int) -> list[tuple[Attraction, float]]:
        """Return the `limit` closest attractions to `point`, closest first."""
        if limit <= 0 or not self._cells:
            return []
        radius = self._cell_size_deg * APPROX_MILES_PER_DEGREE
        while True:
            found = self.nearby(point, radius)
            if len(found) >= limit or math.isinf(radius):
                break
            radius *= 2
            if radius >= HALF_CIRCUMFERENCE_MILES:
                radius = math.inf
        ranked = sorted(((a, self.distance(point, a)) for a in found), key=lambda x: x[1])
        return ranked[:limit]
