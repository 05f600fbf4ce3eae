from __future__ import annotations

import math
from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, FiniteFloat, StringConstraints


def _to_stripped_str(v):
    if v is None:
        return v
    return str(v).strip()


def _blank_to_none(v):
    if v is None:
        return v
    t = str(v).strip()
    return t or None


def coerce_number(v: Any) -> Optional[Union[int, float]]:
    """Best-effort numeric read of a spreadsheet/CSV cell; None when it isn't a finite number."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        return v if math.isfinite(v) else None
    s = str(v).strip()
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        pass
    try:
        f = float(s)
    except ValueError:
        return None
    return f if math.isfinite(f) else None


# Names typed by operators: trimmed, never empty.
EntityName = Annotated[str, BeforeValidator(_to_stripped_str), StringConstraints(min_length=1, max_length=200)]
OptionalName = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
FiniteNumber = Union[int, FiniteFloat]


class ProductRowIn(BaseModel):
    """
    One product with name-based references, as sent by API clients.

    Either `category` or `category_name` (same for supplier and supermarket)
    may carry the name; any additional field passes through untouched.
    """

    model_config = ConfigDict(extra="allow")

    name: EntityName
    category: OptionalName = None
    category_name: OptionalName = None
    supplier: OptionalName = None
    supplier_name: OptionalName = None
    supermarket: OptionalName = None
    supermarket_name: OptionalName = None
    price: Optional[FiniteNumber] = None
    quantity: Optional[FiniteNumber] = None
