# =============================
# ERP resource helpers
# - Catalog / customer / stock / pricing / change-log reads
# - Every catalog read carries the active-status + not-blocked predicate
# =============================

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from erp_bridge import config
from erp_bridge.erp.erp_client import ERPClient
from erp_bridge.erp.erp_models import CatalogItem, CustomerRecord

logger = logging.getLogger(__name__)

PARTS = "Inventory/Parts"
STOCK_TRANSACTIONS = "Inventory/StockTransactions"
CUSTOMERS = "Sales/Customers"
CUSTOMER_PART_LINKS = "Sales/CustomerPartLinks"
SALES_PRICES = "Sales/SalesPrices"
CHANGE_LOGS = "Common/EntityChangeLogs"

PART_FIELDS = (
    "Id,PartNumber,Description,ExtraDescription,StandardPrice,PartCodeId,"
    "ProductGroupId,Status,WeightPerUnit,Gs1Code,ExtraFields"
)


# -----------------------------
# OData filter building
# -----------------------------
def quote(value: Any) -> str:
    """OData string literal; embedded quotes are doubled."""
    return "'" + str(value).replace("'", "''") + "'"


def any_of(field: str, values: Iterable[Any]) -> str:
    """
    Disjunction of equality predicates. Callers keep the batch within
    ERP_FILTER_BATCH_SIZE; the query-length limit is not enforced here.
    """
    values = list(values)
    if not values:
        raise ValueError("any_of() needs at least one value")
    return "(" + " or ".join(f"{field} eq {quote(v)}" for v in values) + ")"


def catalog_predicate() -> str:
    return (
        f"Status ge {config.ERP_PART_STATUS_MIN} and Status le {config.ERP_PART_STATUS_MAX}"
        " and Blocked eq false"
    )


def _and(*parts: Optional[str]) -> str:
    return " and ".join(p for p in parts if p)


def chunked(values: List[Any], size: Optional[int] = None) -> Iterable[List[Any]]:
    size = size or config.ERP_FILTER_BATCH_SIZE
    for i in range(0, len(values), size):
        yield values[i : i + size]


# -----------------------------
# Catalog
# -----------------------------
async def fetch_catalog_items(erp: ERPClient) -> List[CatalogItem]:
    rows = await erp.fetch_all(
        PARTS,
        filter=catalog_predicate(),
        select=PART_FIELDS,
        expand="ExtraFields",
    )
    return [CatalogItem.from_erp(r) for r in rows]


async def fetch_catalog_items_by_keys(
    erp: ERPClient,
    keys: List[str],
    field: str = "PartNumber",
) -> List[CatalogItem]:
    if not keys:
        return []
    rows = await erp.fetch_all(
        PARTS,
        filter=_and(catalog_predicate(), any_of(field, keys)),
        select=PART_FIELDS,
        expand="ExtraFields",
    )
    return [CatalogItem.from_erp(r) for r in rows]


async def fetch_part(erp: ERPClient, part_id: str) -> Optional[Dict[str, Any]]:
    """Single part, only the columns pricing needs."""
    rows = await erp.fetch_page(
        PARTS,
        skip=0,
        top=1,
        filter=f"Id eq {quote(part_id)}",
        select="Id,PartNumber,ProductGroupId,PartCodeId,StandardPrice",
    )
    return rows[0] if rows else None


# -----------------------------
# Customers
# -----------------------------
async def fetch_customers(erp: ERPClient) -> List[CustomerRecord]:
    rows = await erp.fetch_all(CUSTOMERS, expand="ExtraFields,References")
    return [CustomerRecord.from_erp(r) for r in rows]


async def fetch_customers_by_ids(erp: ERPClient, ids: List[str]) -> List[CustomerRecord]:
    if not ids:
        return []
    rows = await erp.fetch_all(
        CUSTOMERS,
        filter=any_of("Id", ids),
        expand="ExtraFields,References",
    )
    return [CustomerRecord.from_erp(r) for r in rows]


async def fetch_customer(erp: ERPClient, customer_id: str) -> Optional[Dict[str, Any]]:
    rows = await erp.fetch_page(CUSTOMERS, skip=0, top=1, filter=f"Id eq {quote(customer_id)}")
    return rows[0] if rows else None


# -----------------------------
# Pricing
# -----------------------------
async def fetch_sales_price(erp: ERPClient, part_id: str, price_list_id: str) -> Optional[Any]:
    """Raw `Price` of the part on one price list, or None when there is no row."""
    rows = await erp.fetch_page(
        SALES_PRICES,
        skip=0,
        top=1,
        filter=f"PartId eq {quote(part_id)} and PriceListId eq {quote(price_list_id)}",
    )
    return rows[0].get("Price") if rows else None


async def fetch_customer_part_price(erp: ERPClient, customer_id: str, part_id: str) -> Optional[Any]:
    rows = await erp.fetch_page(
        CUSTOMER_PART_LINKS,
        skip=0,
        top=1,
        filter=f"CustomerId eq {quote(customer_id)} and PartId eq {quote(part_id)}",
    )
    return rows[0].get("Price") if rows else None


# -----------------------------
# Stock
# -----------------------------
async def fetch_latest_stock_transaction(erp: ERPClient, part_id: str) -> Optional[Dict[str, Any]]:
    rows = await erp.fetch_page(
        STOCK_TRANSACTIONS,
        skip=0,
        top=1,
        filter=f"PartId eq {quote(part_id)}",
        orderby="LoggingTimeStamp desc",
    )
    return rows[0] if rows else None


# -----------------------------
# Change log
# -----------------------------
async def fetch_change_log(erp: ERPClient, entity_type_id: str, since: datetime) -> List[Dict[str, Any]]:
    stamp = since.strftime("%Y-%m-%dT%H:%M:%SZ")
    return await erp.fetch_all(
        CHANGE_LOGS,
        filter=f"EntityTypeId eq {quote(entity_type_id)} and ModifiedTimestamp gt {stamp}",
        select="EntityId,EntityTypeId,ModifiedTimestamp",
    )
