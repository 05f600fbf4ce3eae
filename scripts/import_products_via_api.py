#!/usr/bin/env python3
"""
Bulk-import products from an Excel/CSV sheet into the inventory API.

Steps:
1) parse the sheet (first row = header)
2) preview: set aside invalid rows and duplicates
3) resolve category/supplier/supermarket names to ids (missing supermarkets are created)
4) create each valid product (skipped with --dry-run)

Prints a JSON summary. Row-level name errors are listed as "Row <n>: ..." and
nothing is created when any valid row fails to resolve.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from typing import Any


# Allow running from repo root without installing as a package.
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from backend.app.api_client import ApiError, InventoryApi  # noqa: E402
from backend.app.importers.product_import import (  # noqa: E402
    ImportFileError,
    bulk_create_products_with_names,
    parse_import_file,
    preview_products,
)
from backend.app.mapping.errors import BatchConversionError, MappingError  # noqa: E402
from backend.app.mapping.session import MappingSession  # noqa: E402


def _die(msg: str) -> None:
    print(f"error: {msg}", file=sys.stderr)
    raise SystemExit(2)


async def run_import(api: InventoryApi, records: list[dict], dry_run: bool) -> dict[str, Any]:
    preview = preview_products(records)
    summary: dict[str, Any] = {
        "rows": len(records),
        "valid": len(preview.valid),
        "invalid": [{"row": r.row, "errors": r.errors} for r in preview.invalid],
        "duplicates": len(preview.duplicates),
    }
    if not preview.valid:
        return summary

    session = MappingSession(api)
    if dry_run:
        converted = await session.convert_batch(preview.valid)
        summary["converted"] = len(converted)
        return summary

    result = await bulk_create_products_with_names(session, preview.valid)
    summary["created"] = len(result.created)
    summary["failed"] = [{"index": f["index"], "name": f["product"].get("name"), "error": f["error"]} for f in result.failed]
    return summary


async def _main_async(args: argparse.Namespace, records: list[dict]) -> dict[str, Any]:
    async with InventoryApi(args.token, base_url=args.api_base, max_retries=int(args.max_retries)) as api:
        return await run_import(api, records, bool(args.dry_run))


def main() -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--api-base", default=os.getenv("INVENTORY_API_URL") or "https://inventory-backend-pfr3.onrender.com")
    ap.add_argument("--token", default=os.getenv("INVENTORY_API_TOKEN") or "")
    ap.add_argument("--file", required=True, help="products sheet (.xlsx, .xlsm or .csv)")
    ap.add_argument("--max-retries", default="3")
    ap.add_argument("--dry-run", action="store_true", help="resolve names only; create nothing")
    args = ap.parse_args()

    if not str(args.token).strip():
        _die("missing --token (or INVENTORY_API_TOKEN)")
    if not os.path.exists(args.file):
        _die(f"file not found: {args.file}")

    with open(args.file, "rb") as f:
        raw = f.read()
    try:
        records = parse_import_file(os.path.basename(args.file), raw)
    except ImportFileError as e:
        _die(str(e))

    try:
        summary = asyncio.run(_main_async(args, records))
    except BatchConversionError as e:
        print(json.dumps({"ok": False, "errors": [err.line() for err in e.errors]}, indent=2))
        return 1
    except (MappingError, ApiError) as e:
        print(json.dumps({"ok": False, "error": str(e)}, indent=2))
        return 1

    print(json.dumps({"ok": True, "api_base": str(args.api_base), **summary}, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
