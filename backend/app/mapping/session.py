from __future__ import annotations

import time
from typing import Any, Callable, Mapping, Optional, Sequence

from .converter import BatchConverter, RowConverter
from .directory import DirectoryCache, DirectorySnapshot, EntityKind, Identifier
from .fetcher import DirectoryFetcher
from .resolver import NameResolver, SupermarketAutoCreator


class MappingSession:
    """
    Name-to-id mapping for one import operation.

    Each session owns its own directory cache, so two imports running side by
    side (or for different tenants) never see each other's refreshes.
    """

    def __init__(self, api: Any, *, ttl_s: Optional[float] = None, clock: Callable[[], float] = time.time) -> None:
        self.api = api
        self.cache = DirectoryCache(ttl_s=ttl_s, clock=clock)
        self.fetcher = DirectoryFetcher(api, self.cache)
        self.resolver = NameResolver(self.fetcher)
        self.auto_creator = SupermarketAutoCreator(api, self.fetcher)
        self.rows = RowConverter(self.resolver, self.auto_creator)
        self.batches = BatchConverter(self.fetcher, self.rows)

    async def refresh(self) -> DirectorySnapshot:
        return await self.fetcher.refresh()

    def invalidate(self) -> None:
        self.cache.invalidate()

    async def resolve(self, kind: EntityKind, name: str) -> Identifier:
        return await self.resolver.resolve(kind, name)

    async def convert_row(self, record: Mapping[str, Any]) -> dict[str, Any]:
        return await self.rows.convert_row(record)

    async def convert_batch(self, records: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        return await self.batches.convert_batch(records)
