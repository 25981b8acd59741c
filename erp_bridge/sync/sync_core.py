# =============================
# Sync Core Logic
# =============================

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, List

from erp_bridge import config
from erp_bridge.commerce.commerce_api import CommerceClient
from erp_bridge.erp import erp_fetch
from erp_bridge.erp.erp_client import ERPClient
from erp_bridge.sync.catalog_sync import CatalogReconciler
from erp_bridge.sync.change_detector import ChangeDetector
from erp_bridge.sync.customer_sync import CustomerReconciler
from erp_bridge.sync.inventory_sync import InventorySynchronizer
from erp_bridge.sync.sync_report import Outcome, SyncReport, pause

logger = logging.getLogger(__name__)

# One lock per job kind so runs of the same kind never overlap
sync_locks: Dict[str, asyncio.Lock] = {
    "catalog": asyncio.Lock(),
    "customers": asyncio.Lock(),
    "inventory": asyncio.Lock(),
}


@asynccontextmanager
async def open_clients():
    async with ERPClient() as erp, CommerceClient() as shop:
        yield erp, shop


async def _changed_ids(erp, entity_type: str) -> List[str]:
    return sorted(await ChangeDetector(erp).changed_entity_ids(entity_type))


# -----------------------------
# Catalog
# -----------------------------
async def sync_catalog(erp, shop, incremental: bool = False) -> SyncReport:
    if incremental:
        items = []
        for batch in erp_fetch.chunked(await _changed_ids(erp, config.ERP_PART_ENTITY_TYPE_ID)):
            items.extend(await erp_fetch.fetch_catalog_items_by_keys(erp, batch, field="Id"))
    else:
        items = await erp_fetch.fetch_catalog_items(erp)

    report = SyncReport("catalog")
    reconciler = CatalogReconciler(erp, shop)
    groups = reconciler.group_by_product_name(items)
    grouped = {i.part_number for group in groups.values() for i in group}
    for item in items:
        if item.part_number not in grouped:
            report.add(item.part_number, Outcome.SKIPPED)

    for name, group in groups.items():
        for part_number, outcome in (await reconciler.reconcile_catalog_group(name, group)).items():
            report.add(part_number, outcome)
        await pause()

    logger.info("✅ Catalog sync done: %s", report.as_dict())
    return report


# -----------------------------
# Customers
# -----------------------------
async def sync_customers(erp, shop, incremental: bool = False) -> SyncReport:
    if incremental:
        customers = []
        for batch in erp_fetch.chunked(await _changed_ids(erp, config.ERP_CUSTOMER_ENTITY_TYPE_ID)):
            customers.extend(await erp_fetch.fetch_customers_by_ids(erp, batch))
    else:
        customers = await erp_fetch.fetch_customers(erp)

    report = SyncReport("customers")
    reconciler = CustomerReconciler(shop)
    for customer in customers:
        for ref in reconciler.eligible_references(customer):
            report.add(ref.email or ref.id, await reconciler.reconcile_customer(customer, ref))
            await pause()

    logger.info("✅ Customer sync done: %s", report.as_dict())
    return report


# -----------------------------
# Inventory
# -----------------------------
async def sync_inventory(erp, shop) -> SyncReport:
    report = await InventorySynchronizer(erp, shop).sync_all()
    logger.info("✅ Inventory sync done: %s", report.as_dict())
    return report


# -----------------------------
# ✅ Locked entry points (admin triggers)
# -----------------------------
async def _run_locked(kind: str, job, **kwargs) -> dict:
    lock = sync_locks[kind]
    if lock.locked():
        return {"status": "locked", "message": f"{kind} sync already in progress."}

    async with lock:
        async with open_clients() as (erp, shop):
            report = await job(erp, shop, **kwargs)
        return report.as_dict()


async def run_catalog_sync(incremental: bool = False) -> dict:
    return await _run_locked("catalog", sync_catalog, incremental=incremental)


async def run_customer_sync(incremental: bool = False) -> dict:
    return await _run_locked("customers", sync_customers, incremental=incremental)


async def run_inventory_sync() -> dict:
    return await _run_locked("inventory", sync_inventory)
