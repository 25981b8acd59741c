from decimal import Decimal

from erp_bridge.erp.erp_models import (
    DecimalValue,
    IntegerValue,
    SelectedOption,
    StringValue,
    parse_extra_fields,
)
from erp_bridge.utils.compare import address_key, format_weight, norm, positive_price


def test_positive_price():
    assert positive_price("12.345") == Decimal("12.35")
    assert positive_price(0) is None
    assert positive_price(-1) is None
    assert positive_price("n/a") is None
    assert positive_price(None) is None


def test_format_weight():
    assert format_weight(Decimal("1.2")) == "1.200"
    assert format_weight(None) == "0.000"


def test_norm_and_address_key():
    assert norm("  <b>Acme</b>   AB ") == "Acme AB"
    a = {"address1": "Storgatan 1", "city": "MALMÖ", "zip": "211 22"}
    b = {"address1": "storgatan 1", "city": "Malmö", "zip": "21122", "address2": "c/o"}
    assert address_key(a) == address_key(b)


def test_extra_fields_first_non_null_wins():
    fields = parse_extra_fields([
        {"Identifier": "A", "StringValue": "x", "DecimalValue": 2},
        {"Identifier": "B", "StringValue": None, "DecimalValue": "1.5"},
        {"Identifier": "C", "IntegerValue": 3},
        {"Identifier": "D", "SelectedOptionId": 42},
        {"Identifier": "E"},
        {"Identifier": "A", "StringValue": "later"},
    ])
    assert fields == {
        "A": StringValue("x"),
        "B": DecimalValue(Decimal("1.5")),
        "C": IntegerValue(3),
        "D": SelectedOption("42"),
    }
