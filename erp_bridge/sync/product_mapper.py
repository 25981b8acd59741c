# erp_bridge/sync/product_mapper.py
from __future__ import annotations

from typing import Dict, List, Optional

from erp_bridge.commerce.commerce_api import metafield_input
from erp_bridge.erp.erp_models import CatalogItem, CustomerRecord, ReferencePerson
from erp_bridge.utils.compare import format_price, format_weight, positive_price

OPTION_NAME = "variation"


# -----------------------------
# Catalog: ERP part → platform variant
# -----------------------------
def variant_metafield_values(item: CatalogItem) -> Dict[str, str]:
    return {
        "monitor_id": item.id,
        "part_number": item.part_number,
        "sku": item.part_number,
        "weight": format_weight(item.weight),
    }


def product_metafields(product_name: str) -> List[dict]:
    return [metafield_input("monitor_product_name", product_name)]


def map_item_to_variant(item: CatalogItem) -> dict:
    """
    Variant payload for productVariantsBulkCreate. Price is the standard price;
    storefront prices are resolved per customer at checkout time.
    """
    weight = format_weight(item.weight)
    payload = {
        "optionValues": [{"optionName": OPTION_NAME, "name": item.variation_label}],
        "price": format_price(positive_price(item.standard_price)) or "0.00",
        "inventoryItem": {
            "sku": item.part_number,
            "tracked": True,
            "measurement": {"weight": {"unit": "KILOGRAMS", "value": float(weight)}},
        },
        "metafields": [metafield_input(k, v) for k, v in variant_metafield_values(item).items()],
    }
    if item.barcode:
        payload["barcode"] = item.barcode
    return payload


def product_description(items: List[CatalogItem]) -> str:
    for item in items:
        text = item.extra_description or item.description
        if text:
            return text
    return ""


# -----------------------------
# Customers: ERP reference person → platform customer
# -----------------------------
def customer_metafield_values(customer: CustomerRecord, ref: ReferencePerson) -> Dict[str, str]:
    values = {
        "monitor_id": ref.id,
        "monitor_customer_id": customer.id,
        "company": customer.name,
    }
    if customer.code:
        values["customer_code"] = customer.code
    return values


def customer_address(customer: CustomerRecord, ref: ReferencePerson) -> Optional[dict]:
    if not customer.address:
        return None
    addr = {k: v for k, v in customer.address.items() if v}
    addr["company"] = customer.name
    addr["firstName"] = ref.first_name
    addr["lastName"] = ref.last_name
    return addr


def map_customer_create(customer: CustomerRecord, ref: ReferencePerson) -> dict:
    payload = {
        "email": ref.email,
        "firstName": ref.first_name,
        "lastName": ref.last_name,
        "metafields": [metafield_input(k, v) for k, v in customer_metafield_values(customer, ref).items()],
    }
    if ref.phone:
        payload["phone"] = ref.phone
    addr = customer_address(customer, ref)
    if addr:
        payload["addresses"] = [addr]
    return payload
