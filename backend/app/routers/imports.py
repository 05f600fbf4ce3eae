from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel
from typing import Annotated, List

from ..config import settings
from ..deps import get_mapping_session
from ..importers.product_import import bulk_create_products_with_names, parse_import_file, preview_products
from ..importers.purchase_order_import import import_grouped_purchase_orders, import_purchase_order
from ..mapping.directory import EntityKind
from ..mapping.session import MappingSession
from ..validation import EntityName, OptionalName, ProductRowIn

router = APIRouter(tags=["imports"])


class ProductsImportIn(BaseModel):
    products: List[ProductRowIn]


async def _read_upload(file: UploadFile) -> bytes:
    raw = await file.read() or b""
    max_bytes = settings.import_max_mb * 1024 * 1024
    if len(raw) > max_bytes:
        raise HTTPException(status_code=413, detail=f"file too large (max {settings.import_max_mb}MB)")
    return raw


@router.post("/imports/products/preview")
async def preview_product_file(file: UploadFile = File(...)):
    raw = await _read_upload(file)
    records = parse_import_file(file.filename or "", raw)
    return preview_products(records).as_dict()


@router.post("/imports/products")
async def import_products(data: ProductsImportIn, session: MappingSession = Depends(get_mapping_session)):
    records = [p.model_dump(exclude_none=True) for p in data.products]
    if not records:
        raise HTTPException(status_code=400, detail="products is required")
    result = await bulk_create_products_with_names(session, records)
    return result.as_dict()


@router.post("/imports/products/file")
async def import_product_file(file: UploadFile = File(...), session: MappingSession = Depends(get_mapping_session)):
    """
    Parse an Excel/CSV upload, set aside invalid and duplicate rows, then
    convert names to ids and create every valid row.
    """
    raw = await _read_upload(file)
    preview = preview_products(parse_import_file(file.filename or "", raw))
    out = {"preview": preview.as_dict(), "created_count": 0, "failed_count": 0, "created": [], "failed": []}
    if preview.valid:
        result = await bulk_create_products_with_names(session, preview.valid)
        out.update(result.as_dict())
    return out


def _decode_csv(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV file must be UTF-8 encoded")


@router.post("/imports/purchase-orders")
async def import_purchase_order_file(
    file: Annotated[UploadFile, File()],
    supplier: Annotated[EntityName, Form()],
    session: MappingSession = Depends(get_mapping_session),
):
    text = _decode_csv(await _read_upload(file))
    created = await import_purchase_order(session, supplier, text)
    return {"purchase_order": created}


@router.post("/imports/purchase-orders/grouped")
async def import_grouped_purchase_order_file(
    file: Annotated[UploadFile, File()],
    supermarket: Annotated[OptionalName, Form()] = None,
    session: MappingSession = Depends(get_mapping_session),
):
    """
    One purchase order per `po_number`; `supermarket` fills in rows that leave
    `supermarket_name` blank. Failing orders are listed, the rest are created.
    """
    text = _decode_csv(await _read_upload(file))
    result = await import_grouped_purchase_orders(session, text, default_supermarket=supermarket)
    return result.as_dict()


@router.get("/mapping/resolve")
async def resolve_name(
    kind: Annotated[EntityKind, Query()],
    name: Annotated[EntityName, Query()],
    session: MappingSession = Depends(get_mapping_session),
):
    ident = await session.resolve(kind, name)
    return {"kind": kind.value, "name": name, "id": ident}
