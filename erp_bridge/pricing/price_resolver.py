# erp_bridge/pricing/price_resolver.py
# =============================
# Storefront price resolution
# Fixed tier order, first usable price wins:
#   1) outlet price list (decisive for outlet items, incl. fallback,
#      also when the outlet price lookup itself fails)
#   2) customer-specific part link
#   3) customer's own price list
#   4) standard price
# ERP trouble in tiers 1-3 degrades to the next tier, never to an error.
# =============================

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from erp_bridge import config
from erp_bridge.erp import erp_fetch
from erp_bridge.erp.erp_client import ERPClient
from erp_bridge.exceptions import MissingCustomerError, RemoteError
from erp_bridge.utils.compare import format_price, positive_price

logger = logging.getLogger(__name__)


class PriceTier(str, Enum):
    OUTLET = "outlet"
    OUTLET_FALLBACK = "outlet-fallback"
    CUSTOMER_SPECIFIC = "customer-specific"
    PRICE_LIST = "price-list"
    STANDARD = "standard"
    UNAVAILABLE = "unavailable"


@dataclass
class PriceQuote:
    price: Optional[Decimal]
    tier: PriceTier
    source_ids: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "price": format_price(self.price),
            "tier": self.tier.value,
            "source_ids": dict(self.source_ids),
        }


class _Unset:
    pass


_UNSET = _Unset()


class PricingContext:
    """
    Per-request state shared by the strategies. The part row is looked up at
    most once; a failed lookup is remembered as None.
    """

    def __init__(self, erp: ERPClient, part_id: str, customer_id: str):
        self.erp = erp
        self.part_id = part_id
        self.customer_id = customer_id
        self._part: Any = _UNSET

    async def part(self) -> Optional[Dict[str, Any]]:
        if self._part is _UNSET:
            try:
                self._part = await erp_fetch.fetch_part(self.erp, self.part_id)
            except RemoteError as e:
                logger.warning("Part %s lookup failed: %s", self.part_id, e)
                self._part = None
        return self._part


class PriceStrategy:
    tier: PriceTier

    async def resolve(self, ctx: PricingContext) -> Optional[PriceQuote]:
        raise NotImplementedError


class OutletPriceStrategy(PriceStrategy):
    tier = PriceTier.OUTLET

    def __init__(
        self,
        product_group_id: str = config.OUTLET_PRODUCT_GROUP_ID,
        price_list_id: str = config.OUTLET_PRICE_LIST_ID,
        fallback_price: Decimal = config.OUTLET_FALLBACK_PRICE,
    ):
        self.product_group_id = str(product_group_id)
        self.price_list_id = str(price_list_id)
        self.fallback_price = fallback_price

    async def resolve(self, ctx: PricingContext) -> Optional[PriceQuote]:
        part = await ctx.part()
        if not part or str(part.get("ProductGroupId") or "") != self.product_group_id:
            return None

        sources = {"part_id": ctx.part_id, "price_list_id": self.price_list_id}
        try:
            raw = await erp_fetch.fetch_sales_price(ctx.erp, ctx.part_id, self.price_list_id)
        except RemoteError as e:
            logger.warning("Outlet price lookup failed for part %s: %s", ctx.part_id, e)
            raw = None
        price = positive_price(raw)
        if price is not None:
            return PriceQuote(price, PriceTier.OUTLET, sources)

        # An outlet item never falls through to a non-outlet price.
        logger.info("Outlet part %s has no usable outlet price, using fallback %s", ctx.part_id, self.fallback_price)
        return PriceQuote(positive_price(self.fallback_price), PriceTier.OUTLET_FALLBACK, sources)


class CustomerPriceStrategy(PriceStrategy):
    tier = PriceTier.CUSTOMER_SPECIFIC

    async def resolve(self, ctx: PricingContext) -> Optional[PriceQuote]:
        raw = await erp_fetch.fetch_customer_part_price(ctx.erp, ctx.customer_id, ctx.part_id)
        price = positive_price(raw)
        if price is None:
            return None
        return PriceQuote(price, PriceTier.CUSTOMER_SPECIFIC, {"part_id": ctx.part_id, "customer_id": ctx.customer_id})


class PriceListStrategy(PriceStrategy):
    tier = PriceTier.PRICE_LIST

    async def resolve(self, ctx: PricingContext) -> Optional[PriceQuote]:
        customer = await erp_fetch.fetch_customer(ctx.erp, ctx.customer_id)
        price_list_id = (customer or {}).get("PriceListId")
        if not price_list_id:
            return None
        price_list_id = str(price_list_id)
        price = positive_price(await erp_fetch.fetch_sales_price(ctx.erp, ctx.part_id, price_list_id))
        if price is None:
            return None
        return PriceQuote(
            price,
            PriceTier.PRICE_LIST,
            {"part_id": ctx.part_id, "customer_id": ctx.customer_id, "price_list_id": price_list_id},
        )


class StandardPriceStrategy(PriceStrategy):
    tier = PriceTier.STANDARD

    async def resolve(self, ctx: PricingContext) -> Optional[PriceQuote]:
        part = await ctx.part()
        price = positive_price((part or {}).get("StandardPrice"))
        if price is None:
            return None
        return PriceQuote(price, PriceTier.STANDARD, {"part_id": ctx.part_id})


def default_strategies() -> List[PriceStrategy]:
    return [
        OutletPriceStrategy(),
        CustomerPriceStrategy(),
        PriceListStrategy(),
        StandardPriceStrategy(),
    ]


class PriceResolver:
    def __init__(self, erp: ERPClient, strategies: Optional[List[PriceStrategy]] = None):
        self.erp = erp
        self.strategies = strategies if strategies is not None else default_strategies()

    async def resolve_price(self, part_id: str, customer_id: Optional[str]) -> PriceQuote:
        if not customer_id:
            raise MissingCustomerError("Customer id is required - no anonymous pricing")
        if not part_id:
            return PriceQuote(None, PriceTier.UNAVAILABLE)

        ctx = PricingContext(self.erp, str(part_id), str(customer_id))
        for strategy in self.strategies:
            try:
                quote = await strategy.resolve(ctx)
            except RemoteError as e:
                logger.warning(
                    "Pricing tier %s failed for part %s / customer %s: %s",
                    strategy.tier.value, part_id, customer_id, e,
                )
                continue
            if quote is not None and quote.price is not None:
                logger.info("💰 %s for part %s / customer %s: %s", quote.tier.value, part_id, customer_id, quote.price)
                return quote

        logger.warning("No usable price for part %s / customer %s", part_id, customer_id)
        return PriceQuote(None, PriceTier.UNAVAILABLE, {"part_id": str(part_id)})
