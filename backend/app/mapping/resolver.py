from __future__ import annotations

import re
from typing import Any, Optional, Protocol

from ..api_client import ApiError
from ..config import settings
from ..logs import json_log
from .directory import DirectorySnapshot, EntityKind, Identifier
from .errors import CreationFailedError, InconsistentDirectoryError, NotFoundError
from .fetcher import DirectoryFetcher


class SupermarketBackend(Protocol):
    async def create_supermarket(self, data: dict[str, Any]) -> Any: ...


class NameResolver:
    def __init__(self, fetcher: DirectoryFetcher) -> None:
        self.fetcher = fetcher

    @staticmethod
    def lookup(snapshot: DirectorySnapshot, kind: EntityKind, name: str) -> Identifier:
        entry = snapshot.find(kind, name)
        if entry is None:
            raise NotFoundError(kind, (name or "").strip(), snapshot.names(kind))
        return entry.id

    async def resolve(self, kind: EntityKind, name: str) -> Identifier:
        """
        Map a human-entered name to its backend id.

        Matching is exact after trimming and lower-casing both sides. The
        directory is refreshed first when the cache is empty or expired.
        """
        snapshot = await self.fetcher.ensure_fresh()
        return self.lookup(snapshot, kind, name)


def supermarket_email(name: str, domain: Optional[str] = None) -> str:
    slug = re.sub(r"\s+", "", name or "").lower()
    return f"{slug}@{domain or settings.auto_create_email_domain}"


def build_supermarket_payload(name: str, address: Optional[str] = None, phone: Optional[str] = None) -> dict[str, Any]:
    clean = (name or "").strip()
    return {
        "name": clean,
        "address": (address or "").strip() or settings.auto_create_default_address,
        "phone": (phone or "").strip() or settings.auto_create_default_phone,
        "email": supermarket_email(clean),
        "description": f"Auto-created supermarket: {clean}",
        "is_sub_store": False,
        "is_verified": False,
    }


class SupermarketAutoCreator:
    def __init__(self, api: SupermarketBackend, fetcher: DirectoryFetcher) -> None:
        self.api = api
        self.fetcher = fetcher

    async def create_and_resolve(
        self,
        name: str,
        address: Optional[str] = None,
        phone: Optional[str] = None,
        *,
        not_found: Optional[NotFoundError] = None,
    ) -> str:
        if not_found is None:
            known = self.fetcher.cache.get().names(EntityKind.SUPERMARKET) if self.fetcher.cache.is_valid() else []
            not_found = NotFoundError(EntityKind.SUPERMARKET, (name or "").strip(), known)

        payload = build_supermarket_payload(name, address, phone)
        json_log("info", "mapping.supermarket.auto_create", name=payload["name"])
        try:
            await self.api.create_supermarket(payload)
        except ApiError as e:
            json_log("error", "mapping.supermarket.auto_create.failed", name=payload["name"], error=str(e))
            raise CreationFailedError(not_found, str(e)) from e

        # Invalidate everything, not just supermarkets; the next read refetches all three.
        self.fetcher.cache.invalidate()
        snapshot = await self.fetcher.refresh()
        entry = snapshot.find(EntityKind.SUPERMARKET, name)
        if entry is None:
            raise InconsistentDirectoryError(
                f'Supermarket "{payload["name"]}" was created but is not listed after refresh'
            )
        return str(entry.id)
