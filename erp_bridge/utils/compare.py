# erp_bridge/utils/compare.py
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from html import unescape

_TAG_RE = re.compile(r"<[^>]+>")
_CENT = Decimal("0.01")


def norm(val: str | None) -> str:
    """Normalize for comparison: None -> '', strip HTML tags/whitespace, collapse spaces."""
    if not val:
        return ""
    val = unescape(str(val))
    val = _TAG_RE.sub("", val)
    val = " ".join(val.split())
    return val.strip()


def norm_email(val: str | None) -> str:
    return (val or "").strip().lower()


def to_decimal(v) -> Decimal | None:
    if v is None or v == "":
        return None
    try:
        return Decimal(str(v))
    except (InvalidOperation, TypeError):
        return None


def positive_price(v) -> Decimal | None:
    """Money as Decimal rounded to cents; zero, negative or garbage -> None (a miss)."""
    d = to_decimal(v)
    if d is None or not d.is_finite() or d <= 0:
        return None
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


def format_price(price: Decimal | None) -> str | None:
    """Platform-compatible price string with 2 decimals (or None)."""
    if price is None:
        return None
    return f"{price.quantize(_CENT, rounding=ROUND_HALF_UP):.2f}"


def format_weight(weight: Decimal | None) -> str:
    """Weight per unit in kg, three decimals; unknown weight -> '0.000'."""
    if weight is None or not weight.is_finite() or weight < 0:
        return "0.000"
    return f"{weight.quantize(Decimal('0.001'), rounding=ROUND_HALF_UP):.3f}"


def address_key(addr: dict | None) -> tuple:
    """Street/city/postal code identity used when deciding whether an address is new."""
    addr = addr or {}
    return (
        norm(addr.get("address1")).lower(),
        norm(addr.get("city")).lower(),
        norm(addr.get("zip")).replace(" ", "").lower(),
    )
