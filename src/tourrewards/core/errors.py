"""Reward engine exceptions."""

from __future__ import annotations


class RewardCalculationError(Exception):
    """A reward calculation failed; nothing was committed to the user."""

    def __init__(self, user_id: object, phase: str, message: str):
        self.user_id = user_id
        self.phase = phase
        super().__init__(f"[{phase}] reward calculation failed for user {user_id}: {message}")


class RewardCalculationTimeout(RewardCalculationError):
    """A reward calculation did not finish before its deadline."""
