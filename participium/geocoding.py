"""Geocoding client for a Nominatim-compatible service.

Forward geocoding turns an address typed in the bot into a point inside the
municipal bounding box; reverse geocoding attaches a readable address to a
shared location. Both are best effort: any failure after retries returns None
and the caller carries on without the lookup.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .config import get_settings
from .domain import BoundingBox, GeoPoint, municipal_boundary

logger = logging.getLogger("participium.geocoding")

_MAX_RETRIES = 3
_BACKOFF_FACTOR = 0.5

# Reuse a global client for connection pooling
_client: Optional[httpx.AsyncClient] = None


def _get_client() -> httpx.AsyncClient:
    global _client
    if _client is None:
        settings = get_settings()
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.geocoder_timeout, connect=5.0),
            headers={"User-Agent": settings.geocoder_user_agent},
        )
    return _client


async def close_client() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


@dataclass(frozen=True)
class GeocodeResult:
    point: GeoPoint
    address: str


def _is_retryable(exc: Exception, response: Optional[httpx.Response]) -> bool:
    # network errors are retryable; 5xx responses are retryable
    if isinstance(exc, httpx.RequestError):
        return True
    if response is not None and 500 <= response.status_code < 600:
        return True
    return False


async def _attempt_request(method: str, url: str, **kwargs) -> Any:
    last_exc: Optional[Exception] = None
    for attempt in range(1, _MAX_RETRIES + 1):
        try:
            client = _get_client()
            resp = await client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            last_exc = exc
            response = exc.response if isinstance(exc, httpx.HTTPStatusError) else None
            if attempt == _MAX_RETRIES or not _is_retryable(exc, response):
                logger.warning("Request to %s failed (attempt %s/%s): %s", url, attempt, _MAX_RETRIES, exc)
                break
            backoff = _BACKOFF_FACTOR * (2 ** (attempt - 1))
            jitter = random.uniform(0, backoff * 0.1)
            sleep_time = backoff + jitter
            logger.info("Retrying %s in %.2fs (attempt %s/%s)", url, sleep_time, attempt + 1, _MAX_RETRIES)
            await asyncio.sleep(sleep_time)

    raise last_exc if last_exc is not None else RuntimeError("Request failed without exception")


def _base_url() -> str:
    return get_settings().geocoder_url.rstrip("/")


async def geocode(address: str, boundary: Optional[BoundingBox] = None) -> Optional[GeocodeResult]:
    """Resolve a free-text address, restricted to the municipal boundary."""
    query = (address or "").strip()
    if not query:
        return None
    boundary = boundary or municipal_boundary()
    params: Dict[str, Any] = {
        "q": query,
        "format": "jsonv2",
        "limit": 1,
        "viewbox": boundary.as_viewbox(),
        "bounded": 1,
    }
    try:
        results = await _attempt_request("GET", f"{_base_url()}/search", params=params)
    except Exception as exc:
        logger.warning("Geocoding failed for %r: %s", query, exc)
        return None

    # Nominatim reports some failures as a 200 with an {"error": ...} object
    if not isinstance(results, list) or not results:
        logger.info("No geocoding result for %r: %s", query, results)
        return None
    first = results[0]
    if not isinstance(first, dict):
        logger.warning("Malformed geocoding result for %r: %s", query, first)
        return None
    try:
        point = GeoPoint(float(first["lat"]), float(first["lon"]))
    except (KeyError, TypeError, ValueError):
        logger.warning("Malformed geocoding result for %r: %s", query, first)
        return None
    return GeocodeResult(point=point, address=first.get("display_name") or query)


async def reverse_geocode(point: GeoPoint) -> Optional[str]:
    """Return a readable address for `point`, or None."""
    params = {
        "lat": point.latitude,
        "lon": point.longitude,
        "format": "jsonv2",
        "zoom": 18,
    }
    try:
        data = await _attempt_request("GET", f"{_base_url()}/reverse", params=params)
    except Exception as exc:
        logger.warning("Reverse geocoding failed for %s: %s", point, exc)
        return None
    if not isinstance(data, dict) or "error" in data:
        return None
    return data.get("display_name")


__all__ = ["GeocodeResult", "geocode", "reverse_geocode", "close_client"]
