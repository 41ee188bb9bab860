"""
Domain models (Pydantic).

These types represent the stable "contract" between the reward engine and its
collaborators:
- catalog entities (`Attraction`, `Location`) from the location provider
- the user aggregate (`User`, `VisitedLocation`, `UserReward`) owned by the caller
- the nearby-attractions report (`NearbyAttractions`)

Catalog and location values are frozen: the attraction catalog is shared read-only
across worker threads, so nothing downstream may mutate it.
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class Location(BaseModel):
    """A geographic point in decimal degrees."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class Attraction(BaseModel):
    """A point of interest a user can be rewarded for visiting."""

    model_config = ConfigDict(frozen=True)

    attraction_id: UUID
    attraction_name: str
    location: Location
    city: str | None = None
    state: str | None = None


class VisitedLocation(BaseModel):
    """One recorded position of a user."""

    model_config = ConfigDict(frozen=True)

    user_id: UUID
    location: Location
    time_visited: datetime


class UserReward(BaseModel):
    """A reward granted for visiting an attraction."""

    model_config = ConfigDict(frozen=True)

    visited_location: VisitedLocation
    attraction: Attraction
    reward_points: int = 0


class User(BaseModel):
    """The user aggregate, as far as the reward engine is concerned.

    `user_rewards` may be appended to from several code paths; always go through
    `add_user_reward` rather than mutating the list directly.
    """

    user_id: UUID
    user_name: str
    phone_number: str | None = None
    email_address: str | None = None
    visited_locations: list[VisitedLocation] = Field(default_factory=list)
    user_rewards: list[UserReward] = Field(default_factory=list)

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)
    _rewarded_ids: set[UUID] = PrivateAttr(default_factory=set)

    def model_post_init(self, __context: Any) -> None:
        self._rewarded_ids = {r.attraction.attraction_id for r in self.user_rewards}

    def __deepcopy__(self, memo: dict[int, Any] | None = None) -> "User":
        # Locks cannot be copied; the copy gets its own.
        with self._lock:
            fields = copy.deepcopy(dict(self.__dict__), memo)
        return type(self)(**fields)

    def add_visited_location(self, visited_location: VisitedLocation) -> None:
        with self._lock:
            self.visited_locations.append(visited_location)

    def add_user_reward(self, reward: UserReward) -> bool:
        """Append `reward` unless this attraction was already rewarded.

        Returns True when the reward was appended.
        """
        with self._lock:
            attraction_id = reward.attraction.attraction_id
            if attraction_id in self._rewarded_ids:
                return False
            self.user_rewards.append(reward)
            self._rewarded_ids.add(attraction_id)
            return True

    def rewarded_attraction_ids(self) -> set[UUID]:
        with self._lock:
            return set(self._rewarded_ids)

    def snapshot_visited_locations(self) -> list[VisitedLocation]:
        with self._lock:
            return list(self.visited_locations)

    @property
    def last_visited_location(self) -> VisitedLocation | None:
        with self._lock:
            return self.visited_locations[-1] if self.visited_locations else None


class NearbyAttraction(BaseModel):
    """One entry of a nearby-attractions report."""

    attraction_name: str
    attraction_location: Location
    distance_miles: float = Field(..., ge=0)
    reward_points: int


class NearbyAttractions(BaseModel):
    """The closest attractions to a user's last known position."""

    user_name: str
    user_location: Location
    attractions: list[NearbyAttraction] = Field(default_factory=list)
