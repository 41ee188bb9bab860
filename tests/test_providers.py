import json
import uuid
from datetime import datetime, timezone

import httpx
import pytest

from tourrewards.config.settings import RewardPointsProviderSettings, get_settings
from tourrewards.core.http import DEFAULT_USER_AGENT
from tourrewards.domain.models import Location, User, VisitedLocation
from tourrewards.providers.catalog import JsonCatalogProvider, load_attractions
from tourrewards.providers.reward_points import (
    MAX_POINTS,
    MIN_POINTS,
    HashedRewardPointsProvider,
    HttpRewardPointsProvider,
)
from tourrewards.rewards.factory import build_engine, build_reward_points_provider


def _write_catalog(path, rows):
    path.write_text(json.dumps(rows), encoding="utf-8")
    return path


def test_json_catalog_is_validated(tmp_path):
    attraction_id = str(uuid.uuid4())
    path = _write_catalog(
        tmp_path / "attractions.json",
        [
            {
                "attraction_id": attraction_id,
                "attraction_name": "Disneyland",
                "city": "Anaheim",
                "state": "CA",
                "location": {"latitude": 33.817595, "longitude": -117.922008},
            }
        ],
    )

    attractions = JsonCatalogProvider(path).list_attractions()
    assert len(attractions) == 1
    assert str(attractions[0].attraction_id) == attraction_id
    assert attractions[0].location == Location(latitude=33.817595, longitude=-117.922008)


def test_json_catalog_rejects_out_of_range_coordinates(tmp_path):
    path = _write_catalog(
        tmp_path / "bad.json",
        [
            {
                "attraction_id": str(uuid.uuid4()),
                "attraction_name": "Nowhere",
                "location": {"latitude": 123, "longitude": 0},
            }
        ],
    )
    with pytest.raises(ValueError):
        load_attractions(path)


def test_hashed_provider_is_deterministic_and_bounded():
    provider = HashedRewardPointsProvider()
    user_id = uuid.uuid4()
    ids = [uuid.uuid4() for _ in range(50)]
    first = [provider.points_for(a, user_id) for a in ids]
    second = [provider.points_for(a, user_id) for a in ids]
    assert first == second
    assert all(MIN_POINTS <= p <= MAX_POINTS for p in first)


def _http_provider(handler) -> HttpRewardPointsProvider:
    settings = RewardPointsProviderSettings(base_url="https://rewards.example.test/api/")
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpRewardPointsProvider(settings, client=client)


def test_http_provider_reads_points():
    attraction_id, user_id = uuid.uuid4(), uuid.uuid4()
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, request.headers["User-Agent"]))
        return httpx.Response(200, json={"points": 42})

    assert _http_provider(handler).points_for(attraction_id, user_id) == 42
    assert seen == [(f"/api/attractions/{attraction_id}/users/{user_id}/points", DEFAULT_USER_AGENT)]


def test_http_provider_accepts_bare_integer():
    provider = _http_provider(lambda request: httpx.Response(200, json=17))
    assert provider.points_for(uuid.uuid4(), uuid.uuid4()) == 17


def test_http_provider_raises_on_server_error():
    provider = _http_provider(lambda request: httpx.Response(503, json={"error": "down"}))
    with pytest.raises(httpx.HTTPStatusError):
        provider.points_for(uuid.uuid4(), uuid.uuid4())


def test_http_provider_rejects_malformed_payload():
    provider = _http_provider(lambda request: httpx.Response(200, json={"score": "lots"}))
    with pytest.raises(ValueError):
        provider.points_for(uuid.uuid4(), uuid.uuid4())


def test_http_provider_requires_base_url():
    with pytest.raises(ValueError):
        HttpRewardPointsProvider(RewardPointsProviderSettings())


def test_factory_picks_provider_from_settings():
    settings = get_settings()
    assert isinstance(build_reward_points_provider(settings), HashedRewardPointsProvider)

    reward_points = settings.providers.reward_points.model_copy(update={"base_url": "https://rewards.example.test"})
    providers = settings.providers.model_copy(update={"reward_points": reward_points})
    remote = settings.model_copy(update={"providers": providers})
    assert isinstance(build_reward_points_provider(remote), HttpRewardPointsProvider)


def test_build_engine_loads_catalog_from_settings(tmp_path):
    path = _write_catalog(
        tmp_path / "attractions.json",
        [
            {
                "attraction_id": str(uuid.uuid4()),
                "attraction_name": "Legend Valley",
                "location": {"latitude": 39.937778, "longitude": -82.40667},
            }
        ],
    )
    settings = get_settings()
    providers = settings.providers.model_copy(update={"catalog_path": str(path)})
    rewards = settings.rewards.model_copy(update={"worker_count": 2})
    settings = settings.model_copy(update={"providers": providers, "rewards": rewards})

    with build_engine(settings) as engine:
        assert [a.attraction_name for a in engine.attractions] == ["Legend Valley"]
        assert engine.worker_count == 2


def test_default_settings_load_the_packaged_catalog(monkeypatch):
    for name in ("TOURREWARDS_CONFIG_PATH", "TOURREWARDS_CATALOG_PATH", "TOURREWARDS_REWARD_POINTS_URL"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    try:
        settings = get_settings()
        settings = settings.model_copy(update={"rewards": settings.rewards.model_copy(update={"worker_count": 2})})

        with build_engine(settings) as engine:
            assert len(engine.attractions) == 10
            disneyland = next(a for a in engine.attractions if a.attraction_name == "Disneyland")

            user = User(user_id=uuid.uuid4(), user_name="internalUser0")
            user.add_visited_location(
                VisitedLocation(
                    user_id=user.user_id,
                    location=disneyland.location,
                    time_visited=datetime(2026, 1, 5, tzinfo=timezone.utc),
                )
            )
            rewards = engine.calculate_rewards(user)

        assert [r.attraction.attraction_id for r in rewards] == [disneyland.attraction_id]
        assert MIN_POINTS <= rewards[0].reward_points <= MAX_POINTS
    finally:
        get_settings.cache_clear()
