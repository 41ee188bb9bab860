"""Proximity rewards for visited attractions."""

__version__ = "0.1.0"
