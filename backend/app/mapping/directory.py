from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from ..config import settings
from ..logs import json_log
from .errors import CacheEmptyError

# Categories and suppliers use integer ids; supermarkets use string (uuid) ids.
Identifier = Union[int, str]

_PLURALS = {"category": "categories", "supplier": "suppliers", "supermarket": "supermarkets"}
# Pagination keys that can sit next to (or instead of) `results`.
_ENVELOPE_KEYS = {"count", "next", "previous", "results"}


class EntityKind(str, Enum):
    CATEGORY = "category"
    SUPPLIER = "supplier"
    SUPERMARKET = "supermarket"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def plural(self) -> str:
        return _PLURALS[self.value]

    def coerce_id(self, raw: Any) -> Identifier:
        if self is EntityKind.SUPERMARKET:
            return str(raw)
        return int(raw)


def match_key(name: str) -> str:
    return (name or "").strip().lower()


@dataclass(frozen=True)
class DirectoryEntry:
    id: Identifier
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None


class ListingShape(str, Enum):
    ARRAY = "array"
    ENVELOPED = "enveloped"
    KEYED_MAP = "keyed_map"


def classify_listing(payload: Any) -> ListingShape:
    if isinstance(payload, list):
        return ListingShape.ARRAY
    if isinstance(payload, dict):
        if isinstance(payload.get("results"), list):
            return ListingShape.ENVELOPED
        return ListingShape.KEYED_MAP
    raise ValueError(f"unsupported listing payload: {type(payload).__name__}")


def listing_items(payload: Any) -> list[tuple[Any, Any]]:
    shape = classify_listing(payload)
    if shape is ListingShape.ARRAY:
        return [(None, raw) for raw in payload]
    if shape is ListingShape.ENVELOPED:
        return [(None, raw) for raw in payload["results"]]
    return [(k, v) for k, v in payload.items() if k not in _ENVELOPE_KEYS]


def normalize_listing(kind: EntityKind, payload: Any) -> list[DirectoryEntry]:
    """
    Normalize any of the backend's listing shapes into ordered entries.

    - Array: `[{"id": 1, "name": "Dairy"}, ...]`
    - Enveloped: `{"count": 2, "results": [...]}`
    - KeyedMap: `{"1": {"name": "Dairy"}, ...}` (key is the id unless the
      value carries one) or a plain `{"Dairy": 1}` name -> id map.

    Entries without a usable id or name are skipped; order is preserved.
    """
    entries: list[DirectoryEntry] = []
    for key, raw in listing_items(payload):
        if isinstance(raw, dict):
            raw_id = raw.get("id", key)
            name = raw.get("name")
            address = raw.get("address")
            phone = raw.get("phone")
        elif key is not None and isinstance(raw, (int, str)) and not isinstance(raw, bool):
            raw_id, name, address, phone = raw, key, None, None
        else:
            continue
        if raw_id is None or name is None or not str(name).strip():
            continue
        entries.append(
            DirectoryEntry(
                id=kind.coerce_id(raw_id),
                name=str(name),
                address=str(address) if address else None,
                phone=str(phone) if phone else None,
            )
        )
    return entries


@dataclass(frozen=True)
class DirectorySnapshot:
    categories: tuple[DirectoryEntry, ...] = ()
    suppliers: tuple[DirectoryEntry, ...] = ()
    supermarkets: tuple[DirectoryEntry, ...] = ()

    def entries(self, kind: EntityKind) -> tuple[DirectoryEntry, ...]:
        if kind is EntityKind.CATEGORY:
            return self.categories
        if kind is EntityKind.SUPPLIER:
            return self.suppliers
        return self.supermarkets

    def names(self, kind: EntityKind) -> list[str]:
        return [e.name for e in self.entries(kind)]

    def find(self, kind: EntityKind, name: str) -> Optional[DirectoryEntry]:
        # Duplicate names resolve to the first entry in listing order.
        wanted = match_key(name)
        return next((e for e in self.entries(kind) if match_key(e.name) == wanted), None)


class DirectoryCache:
    """
    Last fetched snapshot of all three directories plus its age.

    The snapshot is swapped as a whole, so readers never see categories from
    one refresh next to suppliers from another.
    """

    def __init__(self, ttl_s: Optional[float] = None, clock: Callable[[], float] = time.time) -> None:
        self.ttl_s = settings.mapping_cache_ttl_s if ttl_s is None else ttl_s
        self._clock = clock
        self._snapshot: Optional[DirectorySnapshot] = None
        self.last_updated: float = 0.0

    def is_valid(self) -> bool:
        if self._snapshot is None:
            return False
        return (self._clock() - self.last_updated) < self.ttl_s

    def get(self) -> DirectorySnapshot:
        if self._snapshot is None:
            raise CacheEmptyError("directory cache has not been populated")
        return self._snapshot

    def replace(self, snapshot: DirectorySnapshot) -> None:
        self._snapshot = snapshot
        self.last_updated = self._clock()

    def invalidate(self) -> None:
        self._snapshot = None
        self.last_updated = 0.0
        json_log("info", "mapping.cache.invalidated")
