"""Async client for the remote key-value store holding the clinic collections.
Assumes OAuth2 client-credentials flow and ETag versioned collections.
"""
from __future__ import annotations
import logging
import time
from typing import Any
import httpx
from . import config
from .errors import StorageConflict

logger = logging.getLogger(__name__)

_BASE_URL = config.STORE_BASE_URL
_TOKEN_URL = config.STORE_TOKEN_URL
_CLIENT_ID = config.STORE_CLIENT_ID
_CLIENT_SECRET = config.STORE_CLIENT_SECRET

# refresh this many seconds before the store says the token lapses
_TOKEN_MARGIN = 60

_TOKEN_CACHE: dict[str, Any] = {"token": None, "exp": 0.0}

async def _get_token() -> str:
    """Bearer token for the store, from the service's client credentials."""
    if _TOKEN_CACHE["token"] and time.monotonic() < _TOKEN_CACHE["exp"]:
        return _TOKEN_CACHE["token"]

    async with httpx.AsyncClient(http2=True, timeout=15) as client:
        resp = await client.post(
            _TOKEN_URL,
            data={"grant_type": "client_credentials"},
            auth=(_CLIENT_ID, _CLIENT_SECRET),
        )
        resp.raise_for_status()
        grant = resp.json()

    # long-lived grants come back without expires_in; re-fetch hourly regardless
    lifetime = float(grant.get("expires_in") or 3600)
    _TOKEN_CACHE.update(token=grant["access_token"], exp=time.monotonic() + max(lifetime - _TOKEN_MARGIN, 0))
    logger.debug(f"Store token refreshed, valid for {lifetime:.0f}s")
    return _TOKEN_CACHE["token"]

class HttpStorage:
    """Whole-collection reads and writes with optimistic versioning.

    Each read remembers the collection's ETag; the next write of that
    collection sends it back as If-Match so a concurrent writer is detected
    instead of silently overwritten.
    """

    def __init__(self) -> None:
        self._versions: dict[str, str] = {}

    async def read(self, collection: str) -> list[dict]:
        headers = {"Authorization": f"Bearer {await _get_token()}", "Accept": "application/json"}
        async with httpx.AsyncClient(http2=True, timeout=15) as client:
            resp = await client.get(f"{_BASE_URL}/collections/{collection}", headers=headers)
            if resp.status_code == 404:
                self._versions.pop(collection, None)
                return []
            resp.raise_for_status()
            payload = resp.json()

        etag = resp.headers.get("ETag")
        if etag:
            self._versions[collection] = etag
        return payload.get("records", [])

    async def write(self, collection: str, records: list[dict]) -> None:
        headers = {"Authorization": f"Bearer {await _get_token()}", "Content-Type": "application/json"}
        version = self._versions.get(collection)
        if version:
            headers["If-Match"] = version
        async with httpx.AsyncClient(http2=True, timeout=15) as client:
            resp = await client.put(
                f"{_BASE_URL}/collections/{collection}", headers=headers, json={"records": records}
            )
            if resp.status_code == 412:
                logger.warning(f"Write to {collection} rejected: version {version} is stale")
                raise StorageConflict(collection)
            resp.raise_for_status()

        etag = resp.headers.get("ETag")
        if etag:
            self._versions[collection] = etag
