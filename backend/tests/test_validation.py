import pytest
from pydantic import BaseModel, ValidationError

from backend.app.validation import EntityName, ProductRowIn, coerce_number


class _M(BaseModel):
    name: EntityName


def test_entity_name_is_trimmed():
    assert _M(name="  Main Store ").name == "Main Store"
    assert _M(name=42).name == "42"


def test_entity_name_rejects_blank():
    with pytest.raises(ValidationError):
        _M(name="   ")


def test_product_row_blank_names_become_none_and_extras_pass_through():
    row = ProductRowIn(name=" Milk ", category=" ", category_name="Dairy", supplier="Acme", barcode="0012", price=1.5)
    out = row.model_dump(exclude_none=True)
    assert out == {"name": "Milk", "category_name": "Dairy", "supplier": "Acme", "price": 1.5, "barcode": "0012"}


def test_coerce_number():
    assert coerce_number("10") == 10
    assert coerce_number(" 2.5 ") == 2.5
    assert coerce_number(7) == 7
    assert coerce_number("") is None
    assert coerce_number("abc") is None
    assert coerce_number(True) is None
    assert coerce_number(None) is None


def test_coerce_number_rejects_non_finite():
    assert coerce_number("nan") is None
    assert coerce_number(" inf ") is None
    assert coerce_number("-Infinity") is None
    assert coerce_number(float("nan")) is None


def test_product_row_rejects_non_finite_price():
    with pytest.raises(ValidationError):
        ProductRowIn(name="Milk", price=float("inf"))
