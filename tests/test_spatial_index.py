import math
import random
import uuid

import pytest

from tourrewards.core.geo import distance_miles
from tourrewards.core.spatial_index import SpatialIndex
from tourrewards.domain.models import Attraction, Location


def _attraction(lat: float, lon: float, name: str = "x") -> Attraction:
    return Attraction(
        attraction_id=uuid.uuid4(),
        attraction_name=name,
        location=Location(latitude=lat, longitude=lon),
    )


def _brute_force(attractions: list[Attraction], point: Location, radius: float) -> set[uuid.UUID]:
    return {a.attraction_id for a in attractions if distance_miles(point, a.location) <= radius}


def _wrap_lon(lon: float) -> float:
    return (lon + 180.0) % 360.0 - 180.0


@pytest.mark.parametrize(
    "seed,cell_size_deg,center,spread_deg,count,max_radius",
    [
        # Dense city-sized cluster: small windows, cells enumerated one by one.
        (1, 0.01, (48.85, 2.35), 1.0, 2000, 5.0),
        # Coarser grid straddling the antimeridian.
        (2, 0.1, (-16.5, 179.9), 3.0, 1500, 60.0),
        # High latitude, where longitude cells shrink.
        (3, 0.05, (70.0, 25.0), 4.0, 1500, 40.0),
        # Around the north pole.
        (4, 0.1, (89.0, 0.0), 1.0, 800, 120.0),
        # Whole globe with huge radii: occupied cells are scanned instead.
        (5, 0.01, (0.0, 0.0), 90.0, 400, 4000.0),
    ],
)
def test_nearby_matches_brute_force(seed, cell_size_deg, center, spread_deg, count, max_radius):
    rng = random.Random(seed)
    lat0, lon0 = center

    def point() -> tuple[float, float]:
        lat = max(-90.0, min(90.0, lat0 + rng.uniform(-spread_deg, spread_deg)))
        lon = _wrap_lon(lon0 + rng.uniform(-spread_deg * 2, spread_deg * 2))
        return lat, lon

    attractions = [_attraction(*point()) for _ in range(count)]
    index = SpatialIndex(attractions, cell_size_deg=cell_size_deg)

    for _ in range(60):
        lat, lon = point()
        query = Location(latitude=lat, longitude=lon)
        radius = rng.uniform(0, max_radius)
        got = [a.attraction_id for a in index.nearby(query, radius)]
        assert len(got) == len(set(got))
        assert set(got) == _brute_force(attractions, query, radius)


def test_nearby_on_empty_catalog_returns_nothing():
    index = SpatialIndex([])
    assert len(index) == 0
    assert index.nearby(Location(latitude=0, longitude=0), 100) == []
    assert index.nearest(Location(latitude=0, longitude=0), 5) == []


def test_nearby_with_unbounded_radius_returns_everything():
    attractions = [
        _attraction(0, 0),
        _attraction(0, 5),
        _attraction(-60, 120),
        _attraction(80, -170),
    ]
    index = SpatialIndex(attractions)
    origin = Location(latitude=0, longitude=0.001)

    everything = {a.attraction_id for a in attractions}
    assert {a.attraction_id for a in index.nearby(origin, float(2**31 - 1))} == everything
    assert {a.attraction_id for a in index.nearby(origin, math.inf)} == everything


def test_nearby_rejects_negative_and_nan_radius():
    index = SpatialIndex([_attraction(0, 0)])
    origin = Location(latitude=0, longitude=0)
    assert index.nearby(origin, -1) == []
    assert index.nearby(origin, math.nan) == []


def test_nearby_with_zero_radius_returns_only_exact_matches():
    here = _attraction(10, 10)
    index = SpatialIndex([here, _attraction(10, 10.001)])
    got = index.nearby(Location(latitude=10, longitude=10), 0)
    assert [a.attraction_id for a in got] == [here.attraction_id]


def test_cell_radius_is_not_capped():
    index = SpatialIndex([], cell_size_deg=0.01)
    assert index.cell_radius(10) == math.ceil(10 / (0.01 * 69))
    assert index.cell_radius(2**31 - 1) == math.ceil((2**31 - 1) / (0.01 * 69))


def test_cell_key_wraps_at_antimeridian():
    index = SpatialIndex([], cell_size_deg=0.01)
    assert index.cell_key(Location(latitude=0, longitude=180)) == index.cell_key(Location(latitude=0, longitude=-180))


def test_invalid_cell_size_is_rejected():
    with pytest.raises(ValueError):
        SpatialIndex([], cell_size_deg=0)
    with pytest.raises(ValueError):
        SpatialIndex([], cell_size_deg=0.7)


def test_distance_is_memoized_per_point_and_attraction(monkeypatch):
    a = _attraction(1, 1)
    index = SpatialIndex([a])
    point = Location(latitude=1.001, longitude=1.001)

    calls = []
    real = distance_miles

    def counting(p, q):
        calls.append((p, q))
        return real(p, q)

    monkeypatch.setattr("tourrewards.core.spatial_index.distance_miles", counting)
    first = index.distance(point, a)
    second = index.distance(point, a)
    assert first == second
    assert len(calls) == 1


def test_distance_memo_respects_size_limit(monkeypatch):
    a = _attraction(1, 1)
    index = SpatialIndex([a], distance_cache_size=0)
    calls = []
    real = distance_miles
    monkeypatch.setattr(
        "tourrewards.core.spatial_index.distance_miles",
        lambda p, q: calls.append(1) or real(p, q),
    )
    point = Location(latitude=1, longitude=1.5)
    index.distance(point, a)
    index.distance(point, a)
    assert len(calls) == 2


def test_nearest_returns_closest_first():
    rng = random.Random(21)
    attractions = [_attraction(rng.uniform(30, 45), rng.uniform(-120, -75)) for _ in range(300)]
    index = SpatialIndex(attractions)
    query = Location(latitude=38.0, longitude=-97.0)

    got = index.nearest(query, 5)
    expected = sorted(attractions, key=lambda a: distance_miles(query, a.location))[:5]

    assert [a.attraction_id for a, _ in got] == [a.attraction_id for a in expected]
    distances = [d for _, d in got]
    assert distances == sorted(distances)


def test_nearest_with_limit_larger_than_catalog_returns_all():
    attractions = [_attraction(0, 0), _attraction(-45, 100)]
    index = SpatialIndex(attractions)
    got = index.nearest(Location(latitude=50, longitude=-100), 10)
    assert {a.attraction_id for a, _ in got} == {a.attraction_id for a in attractions}
