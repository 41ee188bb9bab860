"""
Reward-points providers.

A reward-points provider scores one (attraction, user) pair. Calls can be slow
(the real service is remote), which is why the engine puts a `RewardPointsCache`
in front of it. Providers must raise on failure; they must never return a
placeholder value, because whatever they return is cached for the process lifetime.
"""

from __future__ import annotations

import logging
import time
from hashlib import sha256
from typing import Any, Protocol
from uuid import UUID

import httpx

from tourrewards.config.settings import RewardPointsProviderSettings
from tourrewards.core.http import get_json

logger = logging.getLogger(__name__)

MIN_POINTS = 1
MAX_POINTS = 1000


class RewardPointsProvider(Protocol):
    def points_for(self, attraction_id: UUID, user_id: UUID) -> int: ...


def _parse_points(payload: Any) -> int:
    # Accept a bare integer or {"points": n} / {"rewardPoints": n}.
    if isinstance(payload, dict):
        for key in ("points", "reward_points", "rewardPoints"):
            if key in payload:
                payload = payload[key]
                break
        else:
            raise ValueError("reward points response has no points field")
    if isinstance(payload, bool) or not isinstance(payload, (int, float)):
        raise ValueError(f"reward points response is not a number: {payload!r}")
    if float(payload) != int(payload):
        raise ValueError(f"reward points must be integral, got {payload!r}")
    return int(payload)


class HttpRewardPointsProvider:
    """Fetch points from a remote reward service over HTTP."""

    def __init__(self, settings: RewardPointsProviderSettings, client: httpx.Client | None = None):
        if not settings.base_url:
            raise ValueError("providers.reward_points.base_url is required for the HTTP provider")
        self._settings = settings
        self._base_url = settings.base_url.rstrip("/")
        self._client = client

    def _url(self, attraction_id: UUID, user_id: UUID) -> str:
        path = self._settings.path_template.format(attraction_id=attraction_id, user_id=user_id)
        return f"{self._base_url}/{path.lstrip('/')}"

    def points_for(self, attraction_id: UUID, user_id: UUID) -> int:
        url = self._url(attraction_id, user_id)
        logger.debug("Fetching reward points attraction=%s user=%s", attraction_id, user_id)
        payload = get_json(url, timeout_seconds=self._settings.timeout_seconds, client=self._client)
        return _parse_points(payload)


class HashedRewardPointsProvider:
    """Deterministic local stand-in for the reward service.

    Points are derived from a SHA-256 of the pair, so a given (attraction, user)
    always scores the same, in [MIN_POINTS, MAX_POINTS]. An optional sleep mimics
    the latency of the remote service.
    """

    def __init__(self, simulated_latency_seconds: float = 0.0):
        self._latency = max(0.0, float(simulated_latency_seconds))

    def points_for(self, attraction_id: UUID, user_id: UUID) -> int:
        if self._latency:
            time.sleep(self._latency)
        digest = sha256(f"{attraction_id}:{user_id}".encode("utf-8")).digest()
        return MIN_POINTS + int.from_bytes(digest[:8], "big") % (MAX_POINTS - MIN_POINTS + 1)
