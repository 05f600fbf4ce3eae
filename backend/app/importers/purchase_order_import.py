from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Sequence, Union

from ..api_client import ApiError
from ..logs import json_log
from ..mapping.directory import EntityKind, listing_items, match_key
from ..mapping.errors import BatchConversionError, ConversionError, RowConversionError
from ..mapping.session import MappingSession
from ..validation import coerce_number
from .product_import import ImportFileError

GROUPED_REQUIRED_COLUMNS = ("supplier_name", "product_name")
GROUPED_HEADER_FIELDS = ("buyer_name", "expected_delivery_date", "payment_terms", "notes")

# Tried in order after the ISO form; month-first like the upload UI's date parsing.
_DATE_FORMATS = ("%Y/%m/%d", "%m/%d/%Y", "%m-%d-%Y", "%d %b %Y", "%d %B %Y", "%b %d %Y", "%b %d, %Y", "%B %d, %Y")


@dataclass(frozen=True)
class PurchaseOrderLine:
    product: str
    quantity: str
    unit_price: str


@dataclass(frozen=True)
class ProductRef:
    id: str
    name: str
    barcode: Optional[str] = None


def parse_purchase_order_csv(text: str) -> list[PurchaseOrderLine]:
    """
    Parse `product,quantity,unit_price` lines. The first non-blank line is the
    header; lines without a product are dropped, missing numbers default to "0".
    """
    lines = [ln.strip() for ln in re.split(r"\r?\n", text or "")]
    lines = [ln for ln in lines if ln]
    out: list[PurchaseOrderLine] = []
    for line in lines[1:]:
        parts = [p.strip() for p in line.split(",")]
        product = parts[0] if parts else ""
        if not product:
            continue
        quantity = (parts[1] if len(parts) > 1 else "") or "0"
        unit_price = (parts[2] if len(parts) > 2 else "") or "0"
        out.append(PurchaseOrderLine(product=product, quantity=quantity, unit_price=unit_price))
    return out


def normalize_products(payload: Any) -> list[ProductRef]:
    refs: list[ProductRef] = []
    for key, raw in listing_items(payload):
        if not isinstance(raw, dict):
            continue
        pid = raw.get("id", raw.get("uuid", key))
        if pid is None or str(pid).strip() == "":
            continue
        barcode = str(raw.get("barcode") or "").strip() or None
        refs.append(ProductRef(id=str(pid), name=str(raw.get("name") or ""), barcode=barcode))
    return refs


def find_product(products: Sequence[ProductRef], ref: str) -> Optional[ProductRef]:
    # Exact id first, then barcode, then case-insensitive name (first match wins).
    wanted = (ref or "").strip()
    for p in products:
        if p.id == wanted:
            return p
    for p in products:
        if p.barcode and p.barcode == wanted:
            return p
    key = match_key(wanted)
    return next((p for p in products if match_key(p.name) == key), None)


def _line_numbers(
    line: PurchaseOrderLine,
) -> tuple[Optional[Union[int, float]], Optional[Union[int, float]], list[str]]:
    problems: list[str] = []
    quantity = coerce_number(line.quantity)
    if quantity is None or quantity <= 0:
        problems.append(f'Invalid quantity "{line.quantity}"')
    unit_price = coerce_number(line.unit_price)
    if unit_price is None or unit_price < 0:
        problems.append(f'Invalid unit price "{line.unit_price}"')
    return quantity, unit_price, problems


async def build_purchase_order(
    session: MappingSession, supplier_name: str, lines: Sequence[PurchaseOrderLine]
) -> dict[str, Any]:
    if not lines:
        raise ImportFileError("no purchase order lines found")

    supplier_id = await session.resolve(EntityKind.SUPPLIER, supplier_name)
    products = normalize_products(await session.api.list_products())

    items: list[dict[str, Any]] = []
    errors: list[ConversionError] = []
    for row_no, line in enumerate(lines, start=1):
        problems: list[str] = []
        product = find_product(products, line.product)
        if product is None:
            problems.append(f'Product "{line.product}" not found')
        quantity, unit_price, number_problems = _line_numbers(line)
        problems.extend(number_problems)
        if problems:
            errors.append(ConversionError(row=row_no, message="; ".join(problems)))
            continue
        items.append({"product": product.id, "quantity": quantity, "unit_price": unit_price})

    if errors:
        raise BatchConversionError(errors)
    return {"supplier": supplier_id, "items": items}


async def import_purchase_order(session: MappingSession, supplier_name: str, text: str) -> Any:
    lines = parse_purchase_order_csv(text)
    payload = await build_purchase_order(session, supplier_name, lines)
    return await session.api.create_purchase_order(payload)


def normalize_date(value: Any) -> str:
    """YYYY-MM-DD when the value reads as a date; otherwise the trimmed text, left for the backend to judge."""
    v = str(value or "").strip()
    if not v or re.fullmatch(r"\d{4}-\d{2}-\d{2}", v):
        return v
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt).date().isoformat()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(v).date().isoformat()
    except ValueError:
        return v


@dataclass
class PurchaseOrderGroup:
    po_number: str
    supplier_name: str
    supermarket_name: str
    first_row: int
    buyer_name: str = ""
    expected_delivery_date: str = ""
    payment_terms: str = ""
    notes: str = ""
    lines: list[tuple[int, PurchaseOrderLine]] = field(default_factory=list)

    @property
    def label(self) -> str:
        return f"PO {self.po_number or '(no number)'}"


def parse_grouped_purchase_orders(text: str) -> list[PurchaseOrderGroup]:
    """
    Parse a multi-order CSV (one line per item) into purchase orders keyed by
    `po_number`, in first-seen order.

    The order-level columns (supplier, supermarket, buyer, delivery date,
    payment terms, notes) are taken from the first line of each order. Row
    numbers are 1-based over the non-blank data lines.
    """
    rows = [r for r in csv.reader(io.StringIO(text or "")) if any(c.strip() for c in r)]
    if not rows:
        raise ImportFileError("file is empty")
    header = [h.strip().lower() for h in rows[0]]
    missing = [c for c in GROUPED_REQUIRED_COLUMNS if c not in header]
    if missing:
        raise ImportFileError(f"missing column(s): {', '.join(missing)}")

    groups: dict[str, PurchaseOrderGroup] = {}
    for row_no, cells in enumerate(rows[1:], start=1):
        rec = {h: (cells[i].strip() if i < len(cells) else "") for i, h in enumerate(header)}
        po_number = rec.get("po_number", "")
        group = groups.get(po_number)
        if group is None:
            group = PurchaseOrderGroup(
                po_number=po_number,
                supplier_name=rec.get("supplier_name", ""),
                supermarket_name=rec.get("supermarket_name", ""),
                first_row=row_no,
                buyer_name=rec.get("buyer_name", ""),
                expected_delivery_date=normalize_date(rec.get("expected_delivery_date")),
                payment_terms=rec.get("payment_terms", ""),
                notes=rec.get("notes", ""),
            )
            groups[po_number] = group
        if not rec.get("product_name"):
            continue
        line = PurchaseOrderLine(
            product=rec["product_name"],
            quantity=rec.get("quantity") or "0",
            unit_price=rec.get("unit_price") or "0",
        )
        group.lines.append((row_no, line))
    return list(groups.values())


async def build_grouped_purchase_order(
    session: MappingSession, group: PurchaseOrderGroup, default_supermarket: Optional[str] = None
) -> dict[str, Any]:
    supermarket_name = (group.supermarket_name or default_supermarket or "").strip()
    if not supermarket_name:
        raise RowConversionError("Supermarket is required")
    if not group.supplier_name.strip():
        raise RowConversionError("Supplier is required")
    if not group.lines:
        raise RowConversionError("no items")

    items: list[dict[str, Any]] = []
    problems: list[str] = []
    for row_no, line in group.lines:
        quantity, unit_price, line_problems = _line_numbers(line)
        if line_problems:
            problems.append(f"Row {row_no}: {'; '.join(line_problems)}")
            continue
        items.append({"product_text": line.product, "quantity": quantity, "unit_price": unit_price})
    if problems:
        raise RowConversionError(" | ".join(problems))

    # Supplier first: an order with an unknown supplier must not create a supermarket.
    supplier_id = await session.resolve(EntityKind.SUPPLIER, group.supplier_name)
    supermarket_id = await session.rows.resolve_supermarket(supermarket_name)

    payload: dict[str, Any] = {"supplier": supplier_id, "supermarket": supermarket_id}
    if group.po_number:
        payload["po_number"] = group.po_number
    for key in GROUPED_HEADER_FIELDS:
        val = getattr(group, key)
        if val:
            payload[key] = val
    payload["items"] = items
    return payload


@dataclass
class GroupedImportResult:
    created: list[dict[str, Any]] = field(default_factory=list)
    errors: list[ConversionError] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "created_count": len(self.created),
            "failed_count": len(self.errors),
            "created": self.created,
            "errors": [{"row": e.row, "message": e.message} for e in self.errors],
        }


async def import_grouped_purchase_orders(
    session: MappingSession, text: str, default_supermarket: Optional[str] = None
) -> GroupedImportResult:
    """
    Create one purchase order per `po_number` group.

    A group that cannot be built or is rejected by the backend is reported
    against its first row and the remaining groups still go through.
    Unknown supermarkets are auto-created.
    """
    groups = parse_grouped_purchase_orders(text)
    if not groups:
        raise ImportFileError("no purchase order lines found")

    result = GroupedImportResult()
    for group in groups:
        try:
            payload = await build_grouped_purchase_order(session, group, default_supermarket)
            created = await session.api.create_purchase_order(payload)
        except (RowConversionError, ApiError) as e:
            json_log("warning", "import.purchase_order.failed", po_number=group.po_number, error=str(e))
            result.errors.append(ConversionError(row=group.first_row, message=f"{group.label}: {e}"))
            continue
        result.created.append({"po_number": group.po_number, "result": created})

    json_log(
        "info",
        "import.purchase_order.grouped",
        orders=len(groups),
        created=len(result.created),
        failed=len(result.errors),
    )
    return result
