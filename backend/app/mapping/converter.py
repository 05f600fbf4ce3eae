from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from ..logs import json_log
from .directory import EntityKind, Identifier
from .errors import BatchConversionError, ConversionError, NotFoundError, RowConversionError
from .fetcher import DirectoryFetcher
from .resolver import NameResolver, SupermarketAutoCreator

RESOLVED_KINDS = (EntityKind.CATEGORY, EntityKind.SUPPLIER, EntityKind.SUPERMARKET)


def read_name_field(record: Mapping[str, Any], kind: EntityKind) -> Optional[str]:
    # `<kind>_name` wins over `<kind>`; blank values count as missing.
    for key in (f"{kind.value}_name", kind.value):
        val = record.get(key)
        if val is None:
            continue
        text = str(val).strip()
        if text:
            return text
    return None


def _optional_text(record: Mapping[str, Any], key: str) -> Optional[str]:
    val = record.get(key)
    text = str(val).strip() if val is not None else ""
    return text or None


class RowConverter:
    def __init__(self, resolver: NameResolver, auto_creator: SupermarketAutoCreator) -> None:
        self.resolver = resolver
        self.auto_creator = auto_creator

    async def resolve_supermarket(
        self, name: str, address: Optional[str] = None, phone: Optional[str] = None
    ) -> Identifier:
        try:
            return await self.resolver.resolve(EntityKind.SUPERMARKET, name)
        except NotFoundError as nf:
            return await self.auto_creator.create_and_resolve(name, address, phone, not_found=nf)

    async def convert_row(self, record: Mapping[str, Any]) -> dict[str, Any]:
        """
        Replace the category/supplier/supermarket names of one record with ids.

        Unknown categories and suppliers fail the row; unknown supermarkets are
        created on the fly. Every other field is copied unchanged.
        """
        converted = dict(record)
        for kind in RESOLVED_KINDS:
            name = read_name_field(record, kind)
            if name is None:
                raise RowConversionError(f"{kind.label} is required")
            if kind is EntityKind.SUPERMARKET:
                ident = await self.resolve_supermarket(
                    name,
                    _optional_text(record, "supermarket_address"),
                    _optional_text(record, "supermarket_phone"),
                )
            else:
                ident = await self.resolver.resolve(kind, name)
            converted.pop(f"{kind.value}_name", None)
            converted[kind.value] = ident
        return converted


class BatchConverter:
    def __init__(self, fetcher: DirectoryFetcher, rows: RowConverter) -> None:
        self.fetcher = fetcher
        self.rows = rows

    async def convert_batch(self, records: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
        if not records:
            return []

        # One refresh for the whole batch; rows run strictly in order so a
        # supermarket created for row N is visible to every later row.
        await self.fetcher.refresh()

        converted: list[dict[str, Any]] = []
        errors: list[ConversionError] = []
        for row_no, record in enumerate(records, start=1):
            try:
                converted.append(await self.rows.convert_row(record))
            except RowConversionError as e:
                errors.append(ConversionError(row=row_no, message=str(e)))

        if errors:
            json_log("warning", "mapping.batch.failed", rows=len(records), failed_rows=[e.row for e in errors])
            raise BatchConversionError(errors)
        json_log("info", "mapping.batch.converted", rows=len(converted))
        return converted
