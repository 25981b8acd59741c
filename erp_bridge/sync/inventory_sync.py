# erp_bridge/sync/inventory_sync.py
# =============================
# Stock level push ERP -> platform
# - Latest stock transaction per part gives the balance and warehouse
# - Warehouse -> location and part -> variant via `monitor_id` metafields
# - Balances are floored to whole units
# =============================

import logging
from decimal import ROUND_FLOOR
from typing import Any, Dict

from erp_bridge.erp import erp_fetch
from erp_bridge.exceptions import AuthenticationError, MappingError, RemoteError, ValidationError
from erp_bridge.sync.sync_report import Outcome, SyncReport, pause
from erp_bridge.utils.compare import to_decimal

logger = logging.getLogger(__name__)


class InventorySynchronizer:
    def __init__(self, erp, shop):
        self.erp = erp
        self.shop = shop
        self.locations: Dict[str, str] = {}            # ERP warehouse id -> location id
        self.variants: Dict[str, Dict[str, Any]] = {}  # ERP part id -> variant
        self._loaded = False

    async def load_cross_references(self):
        self.locations = {
            str(loc["monitor_id"]): loc["id"]
            for loc in await self.shop.list_locations()
            if loc.get("monitor_id")
        }
        self.variants = {}
        for variant in await self.shop.list_cross_referenced_variants():
            part_id = str(variant["monitor_id"])
            if part_id in self.variants:
                logger.warning("Part %s is linked from more than one variant, keeping %s", part_id, self.variants[part_id]["id"])
                continue
            self.variants[part_id] = variant
        self._loaded = True
        logger.info("📦 Cross references: %d location(s), %d variant(s)", len(self.locations), len(self.variants))

    async def sync_stock_level(self, part_id: str) -> Outcome:
        part_id = str(part_id)
        try:
            if not self._loaded:
                await self.load_cross_references()

            variant = self.variants.get(part_id)
            if not variant or not variant.get("inventory_item_id"):
                raise MappingError(f"No variant linked to part {part_id}")

            tx = await erp_fetch.fetch_latest_stock_transaction(self.erp, part_id)
            if not tx:
                logger.info("Part %s has no stock transactions yet", part_id)
                return Outcome.SKIPPED

            warehouse_id = str(tx.get("WarehouseId") or "")
            location_id = self.locations.get(warehouse_id)
            if not location_id:
                logger.warning("Warehouse %s has no linked location, skipping part %s", warehouse_id or "?", part_id)
                return Outcome.SKIPPED

            balance = to_decimal(tx.get("BalanceOnPartAfterChange"))
            if balance is None:
                logger.warning("Part %s: unreadable balance %r", part_id, tx.get("BalanceOnPartAfterChange"))
                return Outcome.SKIPPED
            quantity = int(balance.to_integral_value(rounding=ROUND_FLOOR))

            item_id = variant["inventory_item_id"]
            levels = await self.shop.get_inventory_levels(item_id)
            activated = False
            if location_id not in levels:
                await self.shop.activate_inventory(item_id, location_id, 0)
                levels[location_id] = 0
                activated = True

            if levels[location_id] == quantity:
                return Outcome.UPDATED if activated else Outcome.SKIPPED

            await self.shop.set_on_hand_quantity(item_id, location_id, quantity)
            logger.info("📦 Part %s @ %s: %s -> %s", part_id, warehouse_id, levels[location_id], quantity)
            return Outcome.UPDATED
        except AuthenticationError:
            raise
        except (MappingError, ValidationError, RemoteError) as e:
            logger.error("❌ Stock sync for part %s failed: %s", part_id, e)
            return Outcome.ERROR

    async def sync_all(self) -> SyncReport:
        await self.load_cross_references()
        report = SyncReport("inventory")
        for part_id in list(self.variants):
            report.add(part_id, await self.sync_stock_level(part_id))
            await pause()
        return report
