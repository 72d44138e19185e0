"""
Bounded-timeout JSON GET shared by the venue adapters.

Transient failures (timeouts, connection errors, 429 and 5xx) are retried a
fixed number of times with a short backoff, then re-raised for the caller to
skip that venue or market for the cycle.
"""

from __future__ import annotations

import logging
import random
import time
from datetime import datetime, timezone

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_RETRIES = 1
_BACKOFF_SEC = 0.5
_JITTER_FRAC = 0.2


def is_transient(exc: Exception) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return False


def _retry_after(exc: Exception) -> float:
    if isinstance(exc, httpx.HTTPStatusError):
        raw = exc.response.headers.get("Retry-After")
        if raw:
            try:
                return max(0.0, float(raw))
            except ValueError:
                return 0.0
    return 0.0


def get_json(
    http: httpx.Client,
    url: str,
    params: dict | None = None,
    retries: int = DEFAULT_RETRIES,
) -> dict | list:
    """GET url and decode JSON. Raises httpx errors once retries are exhausted."""
    attempt = 0
    while True:
        try:
            resp = http.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as e:
            if attempt >= retries or not is_transient(e):
                raise
            wait = max(_retry_after(e), _BACKOFF_SEC * (2 ** attempt))
            wait *= 1.0 + random.uniform(-_JITTER_FRAC, _JITTER_FRAC)
            attempt += 1
            logger.warning(
                "Transient error on GET %s (attempt %d/%d, waiting %.1fs): %s",
                url, attempt, retries + 1, wait, e,
            )
            time.sleep(wait)


def make_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.Client:
    """httpx client with the bounded timeout."""
    return httpx.Client(timeout=timeout)


def parse_timestamp(raw) -> float | None:
    """ISO-8601 string or epoch milliseconds -> unix seconds. None when absent or unparseable."""
    if raw in (None, ""):
        return None
    if isinstance(raw, (int, float)):
        return float(raw) / 1000.0 if raw > 1e11 else float(raw)
    try:
        dt = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def to_float(raw, default: float = 0.0) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default
