import pytest

from backend.app.mapping.directory import (
    DirectoryCache,
    DirectoryEntry,
    DirectorySnapshot,
    EntityKind,
    ListingShape,
    classify_listing,
    normalize_listing,
)
from backend.app.mapping.errors import CacheEmptyError


def test_classify_listing_shapes():
    assert classify_listing([]) is ListingShape.ARRAY
    assert classify_listing({"count": 0, "results": []}) is ListingShape.ENVELOPED
    assert classify_listing({"1": {"name": "Dairy"}}) is ListingShape.KEYED_MAP
    with pytest.raises(ValueError):
        classify_listing("nope")


def test_normalize_array_and_envelope_preserve_order():
    rows = [{"id": 5, "name": "Snacks"}, {"id": "2", "name": "Dairy"}]
    assert normalize_listing(EntityKind.CATEGORY, rows) == [
        DirectoryEntry(id=5, name="Snacks"),
        DirectoryEntry(id=2, name="Dairy"),
    ]
    enveloped = {"count": 2, "next": None, "results": rows}
    assert normalize_listing(EntityKind.CATEGORY, enveloped) == normalize_listing(EntityKind.CATEGORY, rows)


def test_normalize_keyed_map_uses_key_as_id():
    payload = {"sm-1": {"name": "Main Store", "phone": "555"}, "sm-2": {"id": "sm-9", "name": "Branch"}}
    entries = normalize_listing(EntityKind.SUPERMARKET, payload)
    assert entries == [
        DirectoryEntry(id="sm-1", name="Main Store", phone="555"),
        DirectoryEntry(id="sm-9", name="Branch"),
    ]


def test_normalize_name_to_id_map():
    entries = normalize_listing(EntityKind.SUPPLIER, {"Acme": 2, "count": 1})
    assert entries == [DirectoryEntry(id=2, name="Acme")]


def test_normalize_skips_rows_without_id_or_name():
    rows = [{"id": 1, "name": " "}, {"name": "Orphan"}, "junk", {"id": 2, "name": "Dairy"}]
    assert normalize_listing(EntityKind.CATEGORY, rows) == [DirectoryEntry(id=2, name="Dairy")]


def test_supermarket_ids_are_strings():
    entries = normalize_listing(EntityKind.SUPERMARKET, [{"id": 7, "name": "Main"}])
    assert entries[0].id == "7"


def test_snapshot_find_trims_and_ignores_case_first_match_wins():
    snap = DirectorySnapshot(
        suppliers=(DirectoryEntry(id=2, name="Acme "), DirectoryEntry(id=9, name="ACME")),
    )
    assert snap.find(EntityKind.SUPPLIER, "  acme").id == 2
    assert snap.find(EntityKind.SUPPLIER, "Acme Ltd") is None


def test_cache_validity_follows_ttl():
    now = [1000.0]
    cache = DirectoryCache(ttl_s=300, clock=lambda: now[0])
    assert not cache.is_valid()
    with pytest.raises(CacheEmptyError):
        cache.get()

    snap = DirectorySnapshot(categories=(DirectoryEntry(id=1, name="Dairy"),))
    cache.replace(snap)
    assert cache.is_valid()
    assert cache.get() is snap

    now[0] += 299
    assert cache.is_valid()
    now[0] += 1
    assert not cache.is_valid()


def test_cache_invalidate_clears_everything():
    cache = DirectoryCache(ttl_s=300, clock=lambda: 50.0)
    cache.replace(DirectorySnapshot(categories=(DirectoryEntry(id=1, name="Dairy"),)))
    cache.invalidate()
    assert cache.last_updated == 0.0
    assert not cache.is_valid()
    with pytest.raises(CacheEmptyError):
        cache.get()
