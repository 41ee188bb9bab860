"""
Attraction catalog (location provider).

The engine asks its location provider for the full attraction catalog exactly
once, at construction. The bundled implementation reads a local JSON file
(default: `data/catalogs/attractions.json`) and validates it into typed Pydantic
models so the index can assume a consistent shape.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter

from tourrewards.core.env import resolve_project_path
from tourrewards.domain.models import Attraction

logger = logging.getLogger(__name__)

_ATTRACTIONS_ADAPTER = TypeAdapter(list[Attraction])


class LocationProvider(Protocol):
    def list_attractions(self) -> list[Attraction]: ...


def load_attractions(path: str | Path) -> list[Attraction]:
    """Load and validate an attraction catalog JSON file."""
    resolved = resolve_project_path(path)
    payload = json.loads(resolved.read_text(encoding="utf-8"))
    return _ATTRACTIONS_ADAPTER.validate_python(payload)


class JsonCatalogProvider:
    """Location provider backed by a JSON catalog file."""

    def __init__(self, path: str | Path):
        self._path = path

    def list_attractions(self) -> list[Attraction]:
        attractions = load_attractions(self._path)
        logger.info("Loaded %d attractions from %s", len(attractions), self._path)
        return attractions


class StaticCatalogProvider:
    """Location provider over an in-memory list (handy for tests and embedding)."""

    def __init__(self, attractions: list[Attraction]):
        self._attractions = list(attractions)

    def list_attractions(self) -> list[Attraction]:
        return list(self._attractions)
