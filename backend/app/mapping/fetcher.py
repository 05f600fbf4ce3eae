from __future__ import annotations

import asyncio
import time
from typing import Any, Protocol

from ..logs import json_log
from .directory import DirectoryCache, DirectorySnapshot, EntityKind, normalize_listing
from .errors import RefreshFailedError


class DirectoryBackend(Protocol):
    async def list_categories(self) -> Any: ...

    async def list_suppliers(self) -> Any: ...

    async def list_supermarkets(self) -> Any: ...


class DirectoryFetcher:
    def __init__(self, api: DirectoryBackend, cache: DirectoryCache) -> None:
        self.api = api
        self.cache = cache

    async def _fetch_all(self) -> tuple[Any, Any, Any]:
        tasks = [
            asyncio.ensure_future(self.api.list_categories()),
            asyncio.ensure_future(self.api.list_suppliers()),
            asyncio.ensure_future(self.api.list_supermarkets()),
        ]
        try:
            categories, suppliers, supermarkets = await asyncio.gather(*tasks)
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return categories, suppliers, supermarkets

    async def refresh(self) -> DirectorySnapshot:
        """
        Re-fetch all three directories concurrently and swap them into the cache.

        Any failure (transport, HTTP status, unreadable payload) leaves the
        cache as it was and surfaces as RefreshFailedError.
        """
        started = time.time()
        try:
            raw_categories, raw_suppliers, raw_supermarkets = await self._fetch_all()
            snapshot = DirectorySnapshot(
                categories=tuple(normalize_listing(EntityKind.CATEGORY, raw_categories)),
                suppliers=tuple(normalize_listing(EntityKind.SUPPLIER, raw_suppliers)),
                supermarkets=tuple(normalize_listing(EntityKind.SUPERMARKET, raw_supermarkets)),
            )
        except Exception as e:
            json_log("error", "mapping.refresh.failed", error=str(e))
            raise RefreshFailedError(f"Could not load categories, suppliers and supermarkets: {e}") from e

        self.cache.replace(snapshot)
        json_log(
            "info",
            "mapping.refresh",
            categories=len(snapshot.categories),
            suppliers=len(snapshot.suppliers),
            supermarkets=len(snapshot.supermarkets),
            duration_ms=int((time.time() - started) * 1000),
        )
        return snapshot

    async def ensure_fresh(self) -> DirectorySnapshot:
        if self.cache.is_valid():
            return self.cache.get()
        return await self.refresh()
