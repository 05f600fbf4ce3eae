from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

import httpx

from .config import settings
from .logs import json_log

CATEGORIES_PATH = "/api/inventory/categories/"
SUPPLIERS_PATH = "/api/inventory/suppliers/"
PRODUCTS_PATH = "/api/inventory/products/"
SUPERMARKETS_PATH = "/api/supermarkets/"
PURCHASE_ORDERS_PATH = "/api/purchasing/purchase-orders/"

# Retry common transient server/rate-limit failures.
RETRYABLE_STATUS = {429, 500, 502, 503, 504}

_PRIMARY_ERROR_KEYS = ("message", "detail", "error")


class ApiError(Exception):
    def __init__(self, message: str, *, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


def _error_value_text(v: Any) -> str:
    if isinstance(v, str):
        return v
    if isinstance(v, (dict, list)):
        return json.dumps(v, default=str)
    return str(v)


def format_api_error(data: Any, status_code: Optional[int]) -> str:
    """
    Flatten a DRF-style error body into one readable line.

    Order: message/detail/error, then non_field_errors, then one
    "field label: v1, v2" piece per remaining field, joined with " | ".
    """
    fallback = f"HTTP error! status: {status_code}"
    if data is None or data == "":
        return fallback
    if isinstance(data, str):
        return data
    if isinstance(data, list):
        return ", ".join(_error_value_text(v) for v in data)
    if not isinstance(data, dict):
        return _error_value_text(data)

    primary = next((data[k] for k in _PRIMARY_ERROR_KEYS if data.get(k)), None)
    non_field = data.get("non_field_errors")
    if isinstance(non_field, list):
        non_field = ", ".join(_error_value_text(v) for v in non_field)

    field_lines: list[str] = []
    for key, val in data.items():
        if key in _PRIMARY_ERROR_KEYS or key == "non_field_errors" or val is None:
            continue
        values = val if isinstance(val, list) else [val]
        msg = ", ".join(_error_value_text(v) for v in values)
        if msg:
            field_lines.append(f"{key.replace('_', ' ')}: {msg}")

    pieces = [_error_value_text(p) for p in [primary, non_field, *field_lines] if p]
    if pieces:
        return " | ".join(pieces)
    try:
        return json.dumps(data, default=str)
    except (TypeError, ValueError):
        return fallback


class InventoryApi:
    """
    Thin async client for the remote inventory backend.

    The bearer token is an opaque pass-through: it is attached to every request
    and never inspected or refreshed here.
    """

    def __init__(
        self,
        token: Optional[str],
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        max_retries: Optional[int] = None,
        backoff_s: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.token = token
        self.base_url = (base_url or settings.inventory_api_url).rstrip("/")
        self.max_retries = settings.inventory_api_max_retries if max_retries is None else max_retries
        self.backoff_s = backoff_s
        headers = {
            "Accept": "application/json",
            "User-Agent": "inventory-import/1.0",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout_s or settings.inventory_api_timeout_s,
            transport=transport,
        )

    async def __aenter__(self) -> "InventoryApi":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _sleep_before_retry(self, attempt: int, path: str, reason: str) -> None:
        json_log("warning", "api.retry", path=path, attempt=attempt + 1, reason=reason)
        if self.backoff_s > 0:
            await asyncio.sleep(min(self.backoff_s * (2 ** attempt), 10))

    async def req_json(self, method: str, path: str, payload: Any | None = None) -> Any:
        attempt = 0
        while True:
            try:
                resp = await self._client.request(method, path, json=payload)
            except httpx.TransportError as e:
                if attempt < self.max_retries:
                    await self._sleep_before_retry(attempt, path, str(e))
                    attempt += 1
                    continue
                raise ApiError(f"network error {path}: {e}") from e

            if resp.status_code in RETRYABLE_STATUS and attempt < self.max_retries:
                await self._sleep_before_retry(attempt, path, f"HTTP {resp.status_code}")
                attempt += 1
                continue
            return self._parse_response(resp)

    @staticmethod
    def _parse_response(resp: httpx.Response) -> Any:
        data: Any = None
        if resp.content:
            try:
                data = resp.json()
            except ValueError:
                data = resp.text
        if resp.is_error:
            raise ApiError(format_api_error(data, resp.status_code), status_code=resp.status_code, payload=data)
        return data

    async def list_categories(self) -> Any:
        return await self.req_json("GET", CATEGORIES_PATH)

    async def list_suppliers(self) -> Any:
        return await self.req_json("GET", SUPPLIERS_PATH)

    async def list_supermarkets(self) -> Any:
        return await self.req_json("GET", SUPERMARKETS_PATH)

    async def list_products(self) -> Any:
        return await self.req_json("GET", PRODUCTS_PATH)

    async def create_supermarket(self, data: dict[str, Any]) -> Any:
        payload = {**data, "is_sub_store": False, "is_verified": False}
        return await self.req_json("POST", SUPERMARKETS_PATH, payload)

    async def create_product(self, data: dict[str, Any]) -> Any:
        return await self.req_json("POST", PRODUCTS_PATH, data)

    async def create_purchase_order(self, data: dict[str, Any]) -> Any:
        return await self.req_json("POST", PURCHASE_ORDERS_PATH, data)
