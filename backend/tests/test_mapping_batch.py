import asyncio

import pytest

from backend.app.mapping.converter import read_name_field
from backend.app.mapping.directory import EntityKind
from backend.app.mapping.errors import (
    BatchConversionError,
    CreationFailedError,
    InconsistentDirectoryError,
    RefreshFailedError,
)
from backend.app.mapping.session import MappingSession
from backend.tests.fakes import default_backend


def _row(**overrides):
    row = {"name": "A", "category": "Dairy", "supplier": "Acme", "supermarket": "Main Store", "quantity": 10, "price": 5}
    row.update(overrides)
    return row


def _session(backend):
    return MappingSession(backend, ttl_s=300, clock=lambda: 1000.0)


def test_clean_batch_converts_names_to_ids():
    backend = default_backend()
    out = asyncio.run(_session(backend).convert_batch([_row()]))
    assert out == [{"name": "A", "category": 1, "supplier": 2, "supermarket": "sm-1", "quantity": 10, "price": 5}]
    # One up-front refresh for the whole batch.
    assert backend.calls["categories"] == 1


def test_name_fields_win_and_are_removed():
    backend = default_backend()
    row = {
        "name": "B",
        "category": "Snacks",
        "category_name": "Beverages",
        "supplier_name": " fresh farms ",
        "supermarket_name": "main store",
        "barcode": "123",
    }
    out = asyncio.run(_session(backend).convert_batch([row]))
    assert out == [{"name": "B", "category": 3, "supplier": 4, "supermarket": "sm-1", "barcode": "123"}]


def test_read_name_field_falls_back_when_name_variant_blank():
    assert read_name_field({"category_name": "  ", "category": "Dairy"}, EntityKind.CATEGORY) == "Dairy"
    assert read_name_field({"category": ""}, EntityKind.CATEGORY) is None


def test_unknown_category_reports_row_and_name():
    backend = default_backend()
    with pytest.raises(BatchConversionError) as exc_info:
        asyncio.run(_session(backend).convert_batch([_row(category="Snacks")]))
    msg = str(exc_info.value)
    assert "Row 1:" in msg
    assert "Snacks" in msg
    assert "Dairy" in msg
    assert backend.calls["create_supermarket"] == 0


def test_batch_collects_every_failing_row():
    backend = default_backend()
    rows = [
        _row(name="r1"),
        _row(name="r2", supplier="Nobody"),
        _row(name="r3"),
        _row(name="r4", supplier="Ghost Co"),
        _row(name="r5"),
    ]
    with pytest.raises(BatchConversionError) as exc_info:
        asyncio.run(_session(backend).convert_batch(rows))
    exc = exc_info.value
    assert [e.row for e in exc.errors] == [2, 4]
    lines = str(exc).split("\n")
    assert len(lines) == 2
    assert lines[0].startswith("Row 2: ")
    assert "Nobody" in lines[0]
    assert lines[1].startswith("Row 4: ")
    assert "Ghost Co" in lines[1]


def test_missing_name_field_is_a_row_error():
    row = _row()
    del row["supplier"]
    with pytest.raises(BatchConversionError) as exc_info:
        asyncio.run(_session(default_backend()).convert_batch([row]))
    assert str(exc_info.value) == "Row 1: Supplier is required"


def test_unknown_supermarket_is_created_once_and_resolved():
    backend = default_backend()
    rows = [_row(name="r1", supermarket="New Branch"), _row(name="r2"), _row(name="r3", supermarket="new branch ")]
    out = asyncio.run(_session(backend).convert_batch(rows))

    assert backend.calls["create_supermarket"] == 1
    assert backend.created_supermarkets[0] == {
        "name": "New Branch",
        "address": "Address not provided",
        "phone": "000-000-0000",
        "email": "newbranch@default.com",
        "description": "Auto-created supermarket: New Branch",
        "is_sub_store": False,
        "is_verified": False,
    }
    assert [r["supermarket"] for r in out] == ["sm-new-1", "sm-1", "sm-new-1"]
    # Up-front refresh plus the forced refresh after creation.
    assert backend.calls["supermarkets"] == 2


def test_auto_create_uses_address_and_phone_from_row():
    backend = default_backend()
    row = _row(supermarket="Harbor", supermarket_address="9 Dock Rd", supermarket_phone="555-0101")
    out = asyncio.run(_session(backend).convert_batch([row]))
    payload = backend.created_supermarkets[0]
    assert payload["address"] == "9 Dock Rd"
    assert payload["phone"] == "555-0101"
    assert out[0]["supermarket_address"] == "9 Dock Rd"


def test_creation_failure_is_row_level_with_context():
    backend = default_backend()
    backend.supermarket_create_error = "email: Enter a valid email address."
    rows = [_row(name="r1", supermarket="Pop Up"), _row(name="r2")]
    with pytest.raises(BatchConversionError) as exc_info:
        asyncio.run(_session(backend).convert_batch(rows))
    errors = exc_info.value.errors
    assert [e.row for e in errors] == [1]
    assert "Pop Up" in errors[0].message
    assert "Enter a valid email address" in errors[0].message


def test_creation_failed_error_wraps_not_found():
    backend = default_backend()
    backend.supermarket_create_error = "name: too long"
    session = _session(backend)

    async def go():
        await session.refresh()
        return await session.rows.resolve_supermarket("Pop Up")

    with pytest.raises(CreationFailedError) as exc_info:
        asyncio.run(go())
    assert exc_info.value.not_found.name == "Pop Up"
    assert exc_info.value.not_found.known_names == ["Main Store"]


def test_created_but_invisible_supermarket_aborts_batch():
    backend = default_backend()
    backend.register_created = False
    with pytest.raises(InconsistentDirectoryError):
        asyncio.run(_session(backend).convert_batch([_row(supermarket="Ghost Branch"), _row()]))
    assert backend.calls["create_supermarket"] == 1


def test_refresh_failure_aborts_whole_batch():
    backend = default_backend()
    backend.fail_on = {"categories"}
    with pytest.raises(RefreshFailedError):
        asyncio.run(_session(backend).convert_batch([_row(), _row(name="B")]))


def test_empty_batch_makes_no_calls():
    backend = default_backend()
    assert asyncio.run(_session(backend).convert_batch([])) == []
    assert backend.calls == {}
