from __future__ import annotations

# This module is the orchestrator for reward calculation.
# For one user it:
# - snapshots the visited locations and the attractions already rewarded,
# - searches the spatial index per visited location (fanned out on the worker pool),
# - scores every new candidate through the reward-points cache (fanned out again),
# - commits the rewards on the calling thread once both phases have joined.
#
# Failure policy: any provider error or an expired deadline fails the whole call.
# Nothing is committed to the user in that case, and nothing wrong is cached.

import logging
import math
import os
import threading
import time
import concurrent.futures
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor
from functools import partial
from typing import Callable, TypeVar
from uuid import UUID

from tourrewards.config.settings import Settings, get_settings
from tourrewards.core.errors import RewardCalculationError, RewardCalculationTimeout
from tourrewards.core.geo import distance_miles
from tourrewards.core.spatial_index import SpatialIndex
from tourrewards.domain.models import (
    Attraction,
    Location,
    NearbyAttraction,
    NearbyAttractions,
    User,
    UserReward,
    VisitedLocation,
)
from tourrewards.providers.catalog import LocationProvider
from tourrewards.providers.reward_points import RewardPointsProvider
from tourrewards.rewards.cache import RewardPointsCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

# "Unlimited" buffer; large enough that every attraction on the globe qualifies.
MAX_PROXIMITY_BUFFER_MILES = float(2**31 - 1)


def _validate_buffer(miles: float) -> float:
    value = float(miles)
    if math.isnan(value) or value < 0:
        raise ValueError(f"proximity buffer must be a non-negative number of miles, got {miles!r}")
    return value


class RewardEngine:
    """Computes proximity rewards for users against a static attraction catalog."""

    def __init__(
        self,
        location_provider: LocationProvider,
        reward_points_provider: RewardPointsProvider,
        *,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        rewards = settings.rewards

        attractions = location_provider.list_attractions()
        self._index = SpatialIndex(
            attractions,
            cell_size_deg=settings.index.cell_size_deg,
            distance_cache_size=settings.index.distance_cache_size,
        )
        self._catalog_order = {a.attraction_id: i for i, a in enumerate(self._index.attractions)}
        self._points_provider = reward_points_provider
        self._cache = RewardPointsCache()

        self._default_buffer = _validate_buffer(rewards.default_proximity_buffer_miles)
        self._proximity_buffer = self._default_buffer
        self._buffer_lock = threading.Lock()
        self._attraction_range = float(rewards.attraction_proximity_range_miles)
        self._nearby_limit = int(rewards.nearby_attractions_limit)
        self._join_timeout = rewards.join_timeout_seconds
        self._closed = False

        self._worker_count = rewards.worker_count or 2 * (os.cpu_count() or 1)
        self._executor = ThreadPoolExecutor(max_workers=self._worker_count, thread_name_prefix="reward-worker")
        logger.info(
            "Reward engine ready: attractions=%d cells=%d workers=%d buffer=%.1f mi",
            len(self._index),
            self._index.cell_count,
            self._worker_count,
            self._default_buffer,
        )

    def __enter__(self) -> "RewardEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()

    @property
    def index(self) -> SpatialIndex:
        return self._index

    @property
    def cache(self) -> RewardPointsCache:
        return self._cache

    @property
    def worker_count(self) -> int:
        return self._worker_count

    @property
    def attractions(self) -> tuple[Attraction, ...]:
        return self._index.attractions

    # ---- Proximity buffer ----

    @property
    def proximity_buffer(self) -> float:
        with self._buffer_lock:
            return self._proximity_buffer

    @property
    def default_proximity_buffer(self) -> float:
        return self._default_buffer

    def set_proximity_buffer(self, miles: float) -> None:
        value = _validate_buffer(miles)
        with self._buffer_lock:
            self._proximity_buffer = value
        logger.info("Proximity buffer set to %s mi", value)

    def reset_proximity_buffer(self) -> None:
        with self._buffer_lock:
            self._proximity_buffer = self._default_buffer
        logger.info("Proximity buffer reset to %s mi", self._default_buffer)

    def set_proximity_buffer_to_max(self) -> None:
        self.set_proximity_buffer(MAX_PROXIMITY_BUFFER_MILES)

    # ---- Distance helpers ----

    def distance(self, a: Location, b: Location) -> float:
        return distance_miles(a, b)

    def is_within_attraction_proximity(self, attraction: Attraction, location: Location) -> bool:
        return self._index.distance(location, attraction) <= self._attraction_range

    def near_attraction(self, visited_location: VisitedLocation, attraction: Attraction) -> bool:
        return self._index.distance(visited_location.location, attraction) <= self.proximity_buffer

    # ---- Reward points ----

    def _resolve_points(self, attraction: Attraction, user_id: UUID) -> int:
        return self._cache.get_or_compute(
            attraction.attraction_id,
            user_id,
            lambda: self._points_provider.points_for(attraction.attraction_id, user_id),
        )

    def get_reward_points(self, attraction: Attraction, user: User) -> int:
        """Points for one (attraction, user) pair, served from the cache when known."""
        return self._resolve_points(attraction, user.user_id)

    # ---- Fan-out / join ----

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("reward engine is shut down")

    def _run_phase(
        self,
        phase: str,
        user_id: UUID,
        tasks: list[Callable[[], T]],
        deadline: float | None,
    ) -> list[T]:
        """Run `tasks` on the pool and wait for all of them; results keep task order."""
        try:
            futures: list[Future[T]] = [self._executor.submit(t) for t in tasks]
        except RuntimeError as exc:
            # The pool was shut down between two phases of this call.
            logger.warning("Reward %s phase rejected for user %s: %s", phase, user_id, exc)
            raise RewardCalculationError(user_id, phase, "worker pool is shut down") from exc
        timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
        done, not_done = concurrent.futures.wait(futures, timeout=timeout, return_when=FIRST_EXCEPTION)

        if any(f.cancelled() for f in done):
            for f in not_done:
                f.cancel()
            raise RewardCalculationError(user_id, phase, "a task was cancelled")

        failed = next((f for f in futures if f in done and f.exception() is not None), None)
        if failed is not None or not_done:
            for f in not_done:
                f.cancel()

        if failed is not None:
            exc = failed.exception()
            logger.warning("Reward %s phase failed for user %s: %s", phase, user_id, exc)
            raise RewardCalculationError(user_id, phase, str(exc)) from exc
        if not_done:
            logger.warning(
                "Reward %s phase timed out for user %s (%d/%d tasks unfinished)",
                phase,
                user_id,
                len(not_done),
                len(futures),
            )
            raise RewardCalculationTimeout(
                user_id, phase, f"{len(not_done)} of {len(futures)} tasks unfinished at deadline"
            )
        return [f.result() for f in futures]

    # ---- Main flow ----

    def calculate_rewards(self, user: User, *, proximity_buffer: float | None = None) -> list[UserReward]:
        """Grant rewards for every attraction within the buffer of a visited location.

        Returns the rewards appended to `user.user_rewards` by this call.

        When several visited locations qualify for the same attraction, which one
        the reward is attributed to depends on task scheduling and may differ
        between runs. The set of rewarded attractions does not.

        Raises:
            RewardCalculationError: A provider call failed (chained to the cause).
            RewardCalculationTimeout: The phases did not finish before the deadline.
        """
        self._ensure_open()
        deadline = None if self._join_timeout is None else time.monotonic() + self._join_timeout

        # ---- Step 1: Load (snapshot inputs; the buffer is fixed for this call) ----
        visited = user.snapshot_visited_locations()
        if not visited:
            logger.debug("User %s has no visited locations; nothing to reward.", user.user_id)
            return []
        buffer = self.proximity_buffer if proximity_buffer is None else _validate_buffer(proximity_buffer)
        rewarded = frozenset(user.rewarded_attraction_ids())

        # ---- Step 2: Candidate search, one task per visited location ----
        candidates: dict[UUID, tuple[VisitedLocation, Attraction]] = {}
        candidates_lock = threading.Lock()

        def search(vl: VisitedLocation) -> None:
            for a in self._index.nearby(vl.location, buffer):
                if a.attraction_id in rewarded:
                    continue
                with candidates_lock:
                    # First writer wins.
                    candidates.setdefault(a.attraction_id, (vl, a))

        self._run_phase("search", user.user_id, [partial(search, vl) for vl in visited], deadline)
        if not candidates:
            logger.debug("No new attractions within %s mi for user %s.", buffer, user.user_id)
            return []

        # ---- Step 3: Scoring, one task per candidate ----
        ordered = sorted(candidates.values(), key=lambda c: self._catalog_order[c[1].attraction_id])
        points = self._run_phase(
            "scoring",
            user.user_id,
            [partial(self._resolve_points, a, user.user_id) for _, a in ordered],
            deadline,
        )

        # ---- Step 4: Commit on the calling thread ----
        committed: list[UserReward] = []
        for (vl, a), pts in zip(ordered, points):
            reward = UserReward(visited_location=vl, attraction=a, reward_points=pts)
            if user.add_user_reward(reward):
                committed.append(reward)
        logger.debug(
            "Committed %d rewards for user %s (visited=%d buffer=%s mi)",
            len(committed),
            user.user_id,
            len(visited),
            buffer,
        )
        return committed

    def get_nearby_attractions(self, user: User, limit: int | None = None) -> NearbyAttractions:
        """The closest attractions to the user's last visited location, with their points."""
        last = user.last_visited_location
        if last is None:
            raise ValueError(f"user {user.user_name} has no visited locations")
        self._ensure_open()
        limit = self._nearby_limit if limit is None else int(limit)

        nearest = self._index.nearest(last.location, limit)
        deadline = None if self._join_timeout is None else time.monotonic() + self._join_timeout
        points = self._run_phase(
            "nearby",
            user.user_id,
            [partial(self._resolve_points, a, user.user_id) for a, _ in nearest],
            deadline,
        )
        return NearbyAttractions(
            user_name=user.user_name,
            user_location=last.location,
            attractions=[
                NearbyAttraction(
                    attraction_name=a.attraction_name,
                    attraction_location=a.location,
                    distance_miles=d,
                    reward_points=pts,
                )
                for (a, d), pts in zip(nearest, points)
            ],
        )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting work and drain the pool.

        Queued tasks still run, so a call already inside a phase finishes that
        phase. If it then needs another phase it raises `RewardCalculationError`.
        New calls raise `RuntimeError`.
        """
        self._closed = True
        self._executor.shutdown(wait=wait)
        logger.info("Reward engine worker pool shut down.")
