# erp_bridge/sync/catalog_sync.py
# =============================
# Catalog reconciliation
# - ERP parts grouped by web product name -> one platform product each
# - Variants cross-referenced by the `part_number` metafield
# - Existing variants are never touched, only missing ones are added
# - A part already linked to any product is never added a second time
# =============================

import logging
from typing import Dict, List, Optional

from erp_bridge.erp.erp_models import CatalogItem
from erp_bridge.exceptions import AuthenticationError, MappingError, RemoteError, ValidationError
from erp_bridge.sync.product_mapper import (
    OPTION_NAME,
    map_item_to_variant,
    product_description,
    product_metafields,
)
from erp_bridge.sync.sync_report import Outcome

logger = logging.getLogger(__name__)

PRODUCT_KEY = "monitor_product_name"


def _label_key(label: str) -> str:
    return (label or "").strip().lower()


class CatalogReconciler:
    def __init__(self, erp, shop):
        self.erp = erp
        self.shop = shop
        # part_number -> product id, for every variant on the platform
        self.linked_parts: Optional[Dict[str, str]] = None

    async def load_linked_parts(self) -> Dict[str, str]:
        linked: Dict[str, str] = {}
        for variant in await self.shop.list_cross_referenced_variants():
            if variant.get("part_number"):
                linked.setdefault(variant["part_number"], variant.get("product_id"))
        self.linked_parts = linked
        return linked

    def _linked_elsewhere(self, items: List[CatalogItem], product_id: Optional[str], product_name: str) -> Dict[str, Outcome]:
        """Parts already carried by a variant of some other product."""
        outcomes: Dict[str, Outcome] = {}
        for item in items:
            if item.part_number not in self.linked_parts:
                continue
            owner = self.linked_parts[item.part_number]
            if owner != product_id:
                logger.warning(
                    "Part %s already linked to product %s, not adding it under '%s'",
                    item.part_number, owner, product_name,
                )
                outcomes[item.part_number] = Outcome.SKIPPED
        return outcomes

    @staticmethod
    def group_by_product_name(items: List[CatalogItem]) -> Dict[str, List[CatalogItem]]:
        """Web-published items with a product name, grouped in ERP order."""
        groups: Dict[str, List[CatalogItem]] = {}
        for item in items:
            if not item.is_web_published:
                continue
            name = item.product_name
            if not name:
                continue
            groups.setdefault(name, []).append(item)
        return groups

    async def reconcile_catalog_item(self, item: CatalogItem) -> Outcome:
        if not item.is_web_published or not item.product_name:
            return Outcome.SKIPPED
        outcomes = await self.reconcile_catalog_group(item.product_name, [item])
        return outcomes[item.part_number]

    async def reconcile_catalog_group(self, product_name: str, items: List[CatalogItem]) -> Dict[str, Outcome]:
        outcomes: Dict[str, Outcome] = {}
        unique: List[CatalogItem] = []
        seen_labels = set()
        seen_parts = set()
        for item in items:
            if item.part_number in seen_parts:
                logger.warning("Part %s listed twice under '%s', ignoring repeat", item.part_number, product_name)
                continue
            label = _label_key(item.variation_label)
            if label in seen_labels:
                logger.warning(
                    "Duplicate variation '%s' under '%s': keeping the first, skipping part %s",
                    item.variation_label, product_name, item.part_number,
                )
                outcomes[item.part_number] = Outcome.SKIPPED
                continue
            seen_labels.add(label)
            seen_parts.add(item.part_number)
            unique.append(item)

        try:
            if self.linked_parts is None:
                await self.load_linked_parts()
            product = await self.shop.find_product_by_metafield(PRODUCT_KEY, product_name)
            elsewhere = self._linked_elsewhere(unique, product["id"] if product else None, product_name)
            outcomes.update(elsewhere)
            unique = [i for i in unique if i.part_number not in elsewhere]
            if product:
                outcomes.update(await self._add_missing_variants(product, product_name, unique))
            else:
                outcomes.update(await self._create_product(product_name, unique))
        except AuthenticationError:
            raise
        except (ValidationError, RemoteError, MappingError) as e:
            logger.error("❌ Catalog group '%s' failed: %s", product_name, e)
            for item in unique:
                outcomes.setdefault(item.part_number, Outcome.ERROR)
        return outcomes

    async def _add_missing_variants(self, product: dict, product_name: str, items: List[CatalogItem]) -> Dict[str, Outcome]:
        outcomes: Dict[str, Outcome] = {}
        variants = product.get("variants") or []
        existing_parts = {v["part_number"] for v in variants if v.get("part_number")}
        existing_labels = {_label_key(v["label"]) for v in variants if v.get("label")}

        to_create: List[CatalogItem] = []
        for item in items:
            if item.part_number in existing_parts:
                outcomes[item.part_number] = Outcome.SKIPPED
            elif _label_key(item.variation_label) in existing_labels:
                logger.warning(
                    "Variation '%s' already used on '%s' by another part, skipping %s",
                    item.variation_label, product_name, item.part_number,
                )
                outcomes[item.part_number] = Outcome.SKIPPED
            else:
                to_create.append(item)

        if to_create:
            await self.shop.create_variants(product["id"], [map_item_to_variant(i) for i in to_create])
            for item in to_create:
                outcomes[item.part_number] = Outcome.CREATED
                self.linked_parts[item.part_number] = product["id"]
            logger.info("✅ Added %d variant(s) to '%s'", len(to_create), product_name)
        return outcomes

    async def _create_product(self, product_name: str, items: List[CatalogItem]) -> Dict[str, Outcome]:
        if not items:
            return {}
        product = await self.shop.create_product(
            title=product_name,
            option_name=OPTION_NAME,
            option_values=[i.variation_label for i in items],
            metafields=product_metafields(product_name),
            description_html=product_description(items),
        )
        await self.shop.create_variants(
            product["id"],
            [map_item_to_variant(i) for i in items],
            replace_standalone=True,
        )
        logger.info("✅ Created product '%s' with %d variant(s)", product_name, len(items))
        for item in items:
            self.linked_parts[item.part_number] = product["id"]
        return {i.part_number: Outcome.CREATED for i in items}
