"""
HTTP helpers.

This module centralizes the minimal HTTP client logic used by provider clients.

Design goals:
- Small surface area (GET JSON).
- Deterministic defaults (timeout + User-Agent).
- Raise on non-2xx so callers decide how to fail (the reward engine fails the whole run).
"""

from __future__ import annotations

from typing import Any

import httpx


DEFAULT_USER_AGENT = "tourrewards/0.1.0 (+https://local)"


def get_json(
    url: str,
    *,
    timeout_seconds: float = 15,
    client: httpx.Client | None = None,
) -> Any:
    """GET `url` and return the decoded JSON response.

    A caller-owned `client` is reused (connection pooling); otherwise a
    short-lived one is opened for this request.

    Raises:
        httpx.HTTPError: On transport errors or non-2xx status codes.
        ValueError: If the response body is not valid JSON.
    """
    headers = {"User-Agent": DEFAULT_USER_AGENT}

    if client is not None:
        resp = client.get(url, headers=headers, timeout=timeout_seconds)
        resp.raise_for_status()
        return resp.json()

    with httpx.Client(timeout=timeout_seconds) as c:
        resp = c.get(url, headers=headers)
        resp.raise_for_status()
        return resp.json()
