# erp_bridge/erp/erp_models.py
# =============================
# Typed views over raw ERP records
# - Extra fields as a tagged union keyed by identifier
# - CatalogItem (part), ReferencePerson, CustomerRecord
# =============================

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from erp_bridge import config
from erp_bridge.utils.compare import to_decimal


@dataclass(frozen=True)
class StringValue:
    value: str


@dataclass(frozen=True)
class DecimalValue:
    value: Decimal


@dataclass(frozen=True)
class IntegerValue:
    value: int


@dataclass(frozen=True)
class SelectedOption:
    option_id: str


ExtraValue = Union[StringValue, DecimalValue, IntegerValue, SelectedOption]


def parse_extra_value(row: Dict[str, Any]) -> Optional[ExtraValue]:
    """First non-null typed column wins: string, decimal, integer, selected option."""
    if row.get("StringValue") is not None:
        return StringValue(str(row["StringValue"]))
    if row.get("DecimalValue") is not None:
        return DecimalValue(Decimal(str(row["DecimalValue"])))
    if row.get("IntegerValue") is not None:
        return IntegerValue(int(row["IntegerValue"]))
    if row.get("SelectedOptionId") is not None:
        return SelectedOption(str(row["SelectedOptionId"]))
    return None


def parse_extra_fields(rows: Optional[List[Dict[str, Any]]]) -> Dict[str, ExtraValue]:
    fields: Dict[str, ExtraValue] = {}
    for row in rows or []:
        ident = row.get("Identifier")
        if not ident or ident in fields:
            continue
        value = parse_extra_value(row)
        if value is not None:
            fields[ident] = value
    return fields


def extra_string(fields: Dict[str, ExtraValue], ident: str) -> Optional[str]:
    value = fields.get(ident)
    if isinstance(value, StringValue) and value.value.strip():
        return value.value.strip()
    return None


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value not in (None, "") else None


@dataclass
class CatalogItem:
    id: str
    part_number: str
    description: str = ""
    extra_description: str = ""
    standard_price: Optional[Decimal] = None
    weight: Optional[Decimal] = None
    barcode: Optional[str] = None
    status: Optional[int] = None
    product_group_id: Optional[str] = None
    part_code_id: Optional[str] = None
    extra_fields: Dict[str, ExtraValue] = field(default_factory=dict)

    @classmethod
    def from_erp(cls, raw: Dict[str, Any]) -> "CatalogItem":
        return cls(
            id=str(raw["Id"]),
            part_number=str(raw.get("PartNumber") or raw["Id"]),
            description=raw.get("Description") or "",
            extra_description=raw.get("ExtraDescription") or "",
            standard_price=to_decimal(raw.get("StandardPrice")),
            weight=to_decimal(raw.get("WeightPerUnit")),
            barcode=raw.get("Gs1Code") or None,
            status=raw.get("Status"),
            product_group_id=_str_or_none(raw.get("ProductGroupId")),
            part_code_id=_str_or_none(raw.get("PartCodeId")),
            extra_fields=parse_extra_fields(raw.get("ExtraFields")),
        )

    @property
    def is_web_published(self) -> bool:
        flag = self.extra_fields.get(config.ERP_WEB_ACTIVE_FIELD)
        return isinstance(flag, SelectedOption) and flag.option_id == config.ERP_WEB_ACTIVE_OPTION_ID

    @property
    def product_name(self) -> Optional[str]:
        return extra_string(self.extra_fields, config.ERP_WEB_CATEGORY_FIELD)

    @property
    def variation_label(self) -> str:
        return extra_string(self.extra_fields, config.ERP_WEB_VARIANT_FIELD) or self.part_number


@dataclass
class ReferencePerson:
    id: str
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    category_id: Optional[str] = None
    note: Optional[str] = None

    @classmethod
    def from_erp(cls, raw: Dict[str, Any]) -> "ReferencePerson":
        email = (raw.get("EmailAddress") or "").strip() or None
        return cls(
            id=str(raw["Id"]),
            name=(raw.get("Name") or "").strip(),
            email=email,
            phone=raw.get("CellPhoneNumber") or raw.get("PhoneNumber") or None,
            category_id=_str_or_none(raw.get("CategoryId")),
            note=raw.get("Note") or None,
        )

    @property
    def first_name(self) -> str:
        parts = self.name.split()
        return parts[0] if parts else ""

    @property
    def last_name(self) -> str:
        return " ".join(self.name.split()[1:])


@dataclass
class CustomerRecord:
    id: str
    code: Optional[str] = None
    name: str = ""
    price_list_id: Optional[str] = None
    address: Optional[Dict[str, str]] = None
    references: List[ReferencePerson] = field(default_factory=list)

    @classmethod
    def from_erp(cls, raw: Dict[str, Any]) -> "CustomerRecord":
        return cls(
            id=str(raw["Id"]),
            code=_str_or_none(raw.get("Code")),
            name=raw.get("Name") or "",
            price_list_id=_str_or_none(raw.get("PriceListId")),
            address=_parse_address(raw.get("MailingAddress") or raw.get("DeliveryAddress")),
            references=[ReferencePerson.from_erp(r) for r in raw.get("References") or [] if r.get("Id")],
        )


def _parse_address(raw: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    """Monitor address rows → platform address shape; None when there is no street."""
    if not raw:
        return None
    street = (raw.get("Field1") or raw.get("Street") or "").strip()
    if not street:
        return None
    return {
        "address1": street,
        "address2": (raw.get("Field2") or "").strip(),
        "city": (raw.get("Locality") or raw.get("City") or "").strip(),
        "zip": (raw.get("PostalCode") or "").strip(),
        "countryCode": (raw.get("CountryCode") or "").strip(),
    }
