# erp_bridge/sync/customer_sync.py
# =============================
# Customer reconciliation
# - One platform customer per eligible ERP reference person
# - Natural key: email (trimmed, case-insensitive)
# - Update only what differs; addresses are appended, never replaced
# =============================

import logging
from typing import Any, Dict, List, Optional

from erp_bridge import config
from erp_bridge.commerce.commerce_api import metafield_input
from erp_bridge.erp.erp_models import CustomerRecord, ReferencePerson
from erp_bridge.exceptions import AuthenticationError, MappingError, RemoteError, ValidationError
from erp_bridge.sync.product_mapper import (
    customer_address,
    customer_metafield_values,
    map_customer_create,
)
from erp_bridge.sync.sync_report import Outcome
from erp_bridge.utils.compare import address_key, norm, norm_email

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = ("address1", "address2", "city", "zip", "company", "firstName", "lastName")


def _address_input(existing: Dict[str, Any]) -> Dict[str, Any]:
    """Platform address as read back -> address input shape."""
    out = {k: existing[k] for k in ADDRESS_FIELDS if existing.get(k)}
    country = existing.get("countryCode") or existing.get("countryCodeV2")
    if country:
        out["countryCode"] = country
    return out


class CustomerReconciler:
    def __init__(self, shop):
        self.shop = shop

    @staticmethod
    def eligible_references(customer: CustomerRecord) -> List[ReferencePerson]:
        category = config.ERP_WEB_REFERENCE_CATEGORY_ID
        out = []
        for ref in customer.references:
            if not norm_email(ref.email):
                continue
            if category and ref.category_id != category:
                continue
            out.append(ref)
        return out

    async def reconcile_customer(self, customer: CustomerRecord, ref: ReferencePerson) -> Outcome:
        email = norm_email(ref.email)
        try:
            if not email:
                raise MappingError(f"Reference {ref.id} of customer {customer.id} has no email")
            existing = await self.shop.find_customer_by_email(email)
            if existing is None:
                await self.shop.create_customer(map_customer_create(customer, ref))
                logger.info("✅ Created customer %s (%s)", email, customer.name)
                return Outcome.CREATED

            changes = self._diff(existing, customer, ref)
            if not changes:
                return Outcome.SKIPPED
            await self.shop.update_customer({"id": existing["id"], **changes})
            logger.info("🔄 Updated customer %s: %s", email, ", ".join(sorted(changes)))
            return Outcome.UPDATED
        except AuthenticationError:
            raise
        except (ValidationError, RemoteError, MappingError) as e:
            logger.error("❌ Customer %s (ref %s) failed: %s", email or "?", ref.id, e)
            return Outcome.ERROR

    @staticmethod
    def _diff(existing: Dict[str, Any], customer: CustomerRecord, ref: ReferencePerson) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}

        if ref.first_name and norm(ref.first_name) != norm(existing.get("firstName")):
            changes["firstName"] = ref.first_name
        if ref.last_name and norm(ref.last_name) != norm(existing.get("lastName")):
            changes["lastName"] = ref.last_name
        if ref.phone and norm(ref.phone) != norm(existing.get("phone")):
            changes["phone"] = ref.phone

        current = existing.get("metafields") or {}
        metafields = []
        for key, value in customer_metafield_values(customer, ref).items():
            have: Optional[Dict[str, Any]] = current.get(key)
            if have and have.get("value") == value:
                continue
            metafields.append(metafield_input(key, value, (have or {}).get("id")))
        if metafields:
            changes["metafields"] = metafields

        addr = customer_address(customer, ref)
        if addr:
            addresses = existing.get("addresses") or []
            known = {address_key(a) for a in addresses}
            if address_key(addr) not in known:
                # the update replaces the list, so resend what is already there
                changes["addresses"] = [_address_input(a) for a in addresses] + [addr]
        return changes
