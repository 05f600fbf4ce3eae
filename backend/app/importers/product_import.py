from __future__ import annotations

import csv
import io
import os
import re
import zipfile
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Sequence

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..api_client import ApiError
from ..logs import json_log
from ..mapping.converter import read_name_field
from ..mapping.directory import EntityKind
from ..mapping.session import MappingSession
from ..validation import coerce_number

ALLOWED_EXTENSIONS = {".xlsx", ".xlsm", ".csv"}

# Normalized header -> record key. Unlisted headers are kept as normalized.
HEADER_ALIASES = {
    "product": "name",
    "product_name": "name",
    "item": "name",
    "item_name": "name",
    "store": "supermarket",
    "store_name": "supermarket_name",
    "qty": "quantity",
    "stock": "quantity",
    "cost": "cost_price",
    "unit_cost": "cost_price",
    "sale_price": "selling_price",
    "expiry": "expiry_date",
    "expiration_date": "expiry_date",
    "upc": "barcode",
    "ean": "barcode",
}

NUMERIC_FIELDS = {"price", "quantity", "cost_price", "selling_price"}


class ImportFileError(ValueError):
    pass


def normalize_header(raw: Any) -> str:
    t = str(raw or "").strip().lower()
    t = re.sub(r"[\s\-]+", "_", t)
    t = re.sub(r"[^a-z0-9_]", "", t)
    return HEADER_ALIASES.get(t, t)


def _cell_value(key: str, val: Any) -> Any:
    if isinstance(val, str):
        val = val.strip()
    elif isinstance(val, datetime):
        val = val.date().isoformat()
    elif isinstance(val, date):
        val = val.isoformat()
    if key in NUMERIC_FIELDS:
        num = coerce_number(val)
        if num is not None:
            return num
    return val


def rows_to_records(rows: Iterable[Sequence[Any]]) -> list[dict[str, Any]]:
    """First row is the header; blank cells are dropped and fully blank rows skipped."""
    it = iter(rows)
    header = next(it, None)
    if header is None:
        raise ImportFileError("file is empty")
    keys = [normalize_header(h) for h in header]
    if not any(keys):
        raise ImportFileError("header row is empty")

    records: list[dict[str, Any]] = []
    for row in it:
        rec: dict[str, Any] = {}
        for key, raw in zip(keys, row):
            if not key or raw is None:
                continue
            val = _cell_value(key, raw)
            if val == "":
                continue
            rec[key] = val
        if rec:
            records.append(rec)
    return records


def parse_csv_bytes(raw: bytes) -> list[dict[str, Any]]:
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ImportFileError("CSV file must be UTF-8 encoded") from None
    return rows_to_records(csv.reader(io.StringIO(text)))


def parse_xlsx_bytes(raw: bytes) -> list[dict[str, Any]]:
    try:
        wb = load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise ImportFileError(f"could not read Excel file: {e}") from None
    try:
        ws = wb.active
        rows = list(ws.iter_rows(values_only=True))
    finally:
        wb.close()
    return rows_to_records(rows)


def import_file_extension(filename: str) -> str:
    ext = os.path.splitext((filename or "").strip().lower())[1]
    if ext not in ALLOWED_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_EXTENSIONS))
        raise ImportFileError(f"unsupported file type {ext or '(none)'}; expected one of {allowed}")
    return ext


def parse_import_file(filename: str, raw: bytes) -> list[dict[str, Any]]:
    ext = import_file_extension(filename)
    if not raw:
        raise ImportFileError("file is empty")
    if ext == ".csv":
        return parse_csv_bytes(raw)
    return parse_xlsx_bytes(raw)


@dataclass
class InvalidRow:
    row: int
    record: dict[str, Any]
    errors: list[str]


@dataclass
class ImportPreview:
    valid: list[dict[str, Any]] = field(default_factory=list)
    invalid: list[InvalidRow] = field(default_factory=list)
    duplicates: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": len(self.valid) + len(self.invalid) + len(self.duplicates),
            "valid": self.valid,
            "invalid": [{"row": r.row, "record": r.record, "errors": r.errors} for r in self.invalid],
            "duplicates": self.duplicates,
        }


def validate_product_record(record: Mapping[str, Any]) -> list[str]:
    errors: list[str] = []
    if not str(record.get("name") or "").strip():
        errors.append("Product name is required")
    for kind in (EntityKind.CATEGORY, EntityKind.SUPPLIER, EntityKind.SUPERMARKET):
        if read_name_field(record, kind) is None:
            errors.append(f"{kind.label} is required")
    price = coerce_number(record.get("price"))
    if price is None or price <= 0:
        errors.append("Valid price is required")
    quantity = coerce_number(record.get("quantity"))
    if quantity is None or quantity < 0:
        errors.append("Valid quantity is required")
    return errors


def _is_duplicate(record: Mapping[str, Any], accepted: Sequence[Mapping[str, Any]]) -> bool:
    name = str(record.get("name") or "").strip().lower()
    barcode = str(record.get("barcode") or "").strip()
    for other in accepted:
        if name and str(other.get("name") or "").strip().lower() == name:
            return True
        if barcode and str(other.get("barcode") or "").strip() == barcode:
            return True
    return False


def preview_products(records: Sequence[Mapping[str, Any]]) -> ImportPreview:
    """
    Split parsed rows into valid, invalid and duplicate buckets before any
    backend call. A row repeating an accepted row's name or barcode counts as
    a duplicate even when it is also invalid.
    """
    preview = ImportPreview()
    for row_no, record in enumerate(records, start=1):
        errors = validate_product_record(record)
        if _is_duplicate(record, preview.valid):
            preview.duplicates.append(dict(record))
        elif errors:
            preview.invalid.append(InvalidRow(row=row_no, record=dict(record), errors=errors))
        else:
            preview.valid.append(dict(record))
    return preview


@dataclass
class BulkCreateResult:
    created: list[dict[str, Any]] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "created_count": len(self.created),
            "failed_count": len(self.failed),
            "created": self.created,
            "failed": self.failed,
        }


async def create_product_with_names(session: MappingSession, record: Mapping[str, Any]) -> Any:
    converted = await session.convert_row(record)
    return await session.api.create_product(converted)


async def bulk_create_products_with_names(
    session: MappingSession, records: Sequence[Mapping[str, Any]]
) -> BulkCreateResult:
    # Conversion is all-or-nothing (BatchConversionError lists every bad row);
    # creation then keeps going past individual backend rejections.
    converted = await session.convert_batch(records)

    out = BulkCreateResult()
    for index, (original, product) in enumerate(zip(records, converted)):
        try:
            result = await session.api.create_product(product)
        except ApiError as e:
            json_log("warning", "import.product.create_failed", index=index, name=original.get("name"), error=str(e))
            out.failed.append({"index": index, "product": dict(original), "error": str(e)})
            continue
        out.created.append({"index": index, "product": dict(original), "result": result})
    return out
