import asyncio
from collections import Counter

from backend.app.api_client import ApiError


class FakeInventoryBackend:
    """In-memory stand-in for the remote inventory API (same async surface as InventoryApi)."""

    def __init__(self, categories=None, suppliers=None, supermarkets=None, products=None):
        self.categories = list(categories or [])
        self.suppliers = list(suppliers or [])
        self.supermarkets = list(supermarkets or [])
        self.products = list(products or [])
        self.calls = Counter()
        self.events: list[str] = []
        self.fail_on: set[str] = set()
        self.supermarket_create_error = None
        # When False, created supermarkets never show up in listings.
        self.register_created = True
        self.reject_product_names: set[str] = set()
        self.created_supermarkets: list[dict] = []
        self.created_products: list[dict] = []
        self.created_purchase_orders: list[dict] = []

    async def _listing(self, name, rows):
        self.calls[name] += 1
        self.events.append(f"{name}:start")
        await asyncio.sleep(0)
        if name in self.fail_on:
            raise ApiError(f"HTTP 503 /{name}/: unavailable", status_code=503)
        self.events.append(f"{name}:end")
        return [dict(r) for r in rows]

    async def list_categories(self):
        return await self._listing("categories", self.categories)

    async def list_suppliers(self):
        return await self._listing("suppliers", self.suppliers)

    async def list_supermarkets(self):
        return await self._listing("supermarkets", self.supermarkets)

    async def list_products(self):
        return await self._listing("products", self.products)

    async def create_supermarket(self, data):
        self.calls["create_supermarket"] += 1
        self.created_supermarkets.append(dict(data))
        if self.supermarket_create_error:
            raise ApiError(self.supermarket_create_error, status_code=400)
        row = {"id": f"sm-new-{len(self.created_supermarkets)}", "name": data["name"], "address": data.get("address")}
        if self.register_created:
            self.supermarkets.append(row)
        return row

    async def create_product(self, data):
        self.calls["create_product"] += 1
        if data.get("name") in self.reject_product_names:
            raise ApiError("barcode: product with this barcode already exists.", status_code=400)
        created = {"id": f"p-{len(self.created_products) + 1}", **data}
        self.created_products.append(created)
        return created

    async def create_purchase_order(self, data):
        self.calls["create_purchase_order"] += 1
        created = {"id": len(self.created_purchase_orders) + 1, **data}
        self.created_purchase_orders.append(created)
        return created


def default_backend(**kwargs):
    return FakeInventoryBackend(
        categories=[{"id": 1, "name": "Dairy"}, {"id": 3, "name": "Beverages"}],
        suppliers=[{"id": 2, "name": "Acme"}, {"id": 4, "name": "Fresh Farms"}],
        supermarkets=[{"id": "sm-1", "name": "Main Store", "address": "1 High St"}],
        **kwargs,
    )
