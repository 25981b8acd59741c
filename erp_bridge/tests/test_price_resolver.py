import asyncio
from decimal import Decimal

import pytest

from erp_bridge import config
from erp_bridge.erp import erp_fetch
from erp_bridge.exceptions import MissingCustomerError, RemoteError, TransportError
from erp_bridge.pricing.price_resolver import PriceResolver, PriceTier

OUTLET = config.OUTLET_PRODUCT_GROUP_ID


class FakeERP:
    """Scripted answers for the pricing lookups, keyed like the ERP tables."""

    def __init__(self, part=None, links=None, customers=None, sales_prices=None, down=False):
        self.part = part
        self.links = links or {}
        self.customers = customers or {}
        self.sales_prices = sales_prices or {}
        self.down = down
        self.calls = []

    def _check(self, name):
        self.calls.append(name)
        if self.down:
            raise TransportError("ERP unreachable")


@pytest.fixture
def fake_erp(monkeypatch):
    async def fetch_part(erp, part_id):
        erp._check("part")
        return erp.part

    async def fetch_customer_part_price(erp, customer_id, part_id):
        erp._check("link")
        return erp.links.get((customer_id, part_id))

    async def fetch_customer(erp, customer_id):
        erp._check("customer")
        return erp.customers.get(customer_id)

    async def fetch_sales_price(erp, part_id, price_list_id):
        erp._check("sales_price")
        return erp.sales_prices.get((part_id, price_list_id))

    monkeypatch.setattr(erp_fetch, "fetch_part", fetch_part)
    monkeypatch.setattr(erp_fetch, "fetch_customer_part_price", fetch_customer_part_price)
    monkeypatch.setattr(erp_fetch, "fetch_customer", fetch_customer)
    monkeypatch.setattr(erp_fetch, "fetch_sales_price", fetch_sales_price)

    def build(**kwargs):
        return FakeERP(**kwargs)

    return build


def resolve(erp, part_id="P1", customer_id="C1"):
    return asyncio.run(PriceResolver(erp).resolve_price(part_id, customer_id))


def test_missing_customer_raises_before_any_lookup(fake_erp):
    erp = fake_erp(part={"Id": "P1", "StandardPrice": 10})
    with pytest.raises(MissingCustomerError):
        resolve(erp, customer_id=None)
    with pytest.raises(MissingCustomerError):
        resolve(erp, customer_id="")
    assert erp.calls == []


def test_outlet_price_wins_over_customer_price(fake_erp):
    erp = fake_erp(
        part={"Id": "P1", "ProductGroupId": OUTLET, "StandardPrice": 80},
        links={("C1", "P1"): 50},
        sales_prices={("P1", config.OUTLET_PRICE_LIST_ID): "39.5"},
    )
    quote = resolve(erp)
    assert quote.price == Decimal("39.50")
    assert quote.tier is PriceTier.OUTLET
    assert quote.source_ids["price_list_id"] == config.OUTLET_PRICE_LIST_ID


def test_outlet_without_price_row_uses_fallback(fake_erp):
    erp = fake_erp(
        part={"Id": "P1", "ProductGroupId": OUTLET, "StandardPrice": 80},
        links={("C1", "P1"): 50},
    )
    quote = resolve(erp)
    assert quote.price == Decimal("100.00")
    assert quote.tier is PriceTier.OUTLET_FALLBACK
    assert "link" not in erp.calls


def test_outlet_zero_price_is_a_miss(fake_erp):
    erp = fake_erp(
        part={"Id": "P1", "ProductGroupId": OUTLET},
        sales_prices={("P1", config.OUTLET_PRICE_LIST_ID): 0},
    )
    assert resolve(erp).tier is PriceTier.OUTLET_FALLBACK


def test_customer_specific_price(fake_erp):
    erp = fake_erp(part={"Id": "P1", "ProductGroupId": "9", "StandardPrice": 80}, links={("C1", "P1"): "55.555"})
    quote = resolve(erp)
    assert quote.price == Decimal("55.56")
    assert quote.tier is PriceTier.CUSTOMER_SPECIFIC
    assert quote.source_ids == {"part_id": "P1", "customer_id": "C1"}


def test_customer_price_list_when_no_link(fake_erp):
    erp = fake_erp(
        part={"Id": "P1", "StandardPrice": 80},
        links={("C1", "P1"): -5},
        customers={"C1": {"Id": "C1", "PriceListId": "PL7"}},
        sales_prices={("P1", "PL7"): 70},
    )
    quote = resolve(erp)
    assert quote.price == Decimal("70.00")
    assert quote.tier is PriceTier.PRICE_LIST
    assert quote.source_ids["price_list_id"] == "PL7"


def test_standard_price_last(fake_erp):
    erp = fake_erp(part={"Id": "P1", "StandardPrice": "80"}, customers={"C1": {"Id": "C1", "PriceListId": None}})
    quote = resolve(erp)
    assert quote.price == Decimal("80.00")
    assert quote.tier is PriceTier.STANDARD


def test_part_fetched_once(fake_erp):
    erp = fake_erp(part={"Id": "P1", "StandardPrice": "80"})
    resolve(erp)
    assert erp.calls.count("part") == 1


def test_nothing_usable_is_unavailable(fake_erp):
    erp = fake_erp(part={"Id": "P1", "StandardPrice": 0})
    quote = resolve(erp)
    assert quote.price is None
    assert quote.tier is PriceTier.UNAVAILABLE
    assert quote.as_dict() == {"price": None, "tier": "unavailable", "source_ids": {"part_id": "P1"}}


def test_erp_down_degrades_to_unavailable(fake_erp):
    erp = fake_erp(part={"Id": "P1", "StandardPrice": 80}, down=True)
    quote = resolve(erp)
    assert quote.price is None
    assert quote.tier is PriceTier.UNAVAILABLE


def test_tier_failure_falls_through_to_next(fake_erp, monkeypatch):
    erp = fake_erp(
        part={"Id": "P1", "StandardPrice": 80},
        customers={"C1": {"Id": "C1", "PriceListId": "PL7"}},
        sales_prices={("P1", "PL7"): 70},
    )

    async def broken_link(erp, customer_id, part_id):
        raise RemoteError("500 from ERP", 500)

    monkeypatch.setattr(erp_fetch, "fetch_customer_part_price", broken_link)
    quote = resolve(erp)
    assert quote.tier is PriceTier.PRICE_LIST
    assert quote.as_dict()["price"] == "70.00"


def test_sales_price_query_through_client(make_erp, respond, store):
    store.save("ok")
    filters = []

    def handler(request):
        flt = request.url.params.get("$filter", "")
        filters.append((request.url.path.rsplit("/", 2)[-2:], flt))
        if request.url.path.endswith("Inventory/Parts"):
            return respond([{"Id": "P1", "ProductGroupId": "1", "StandardPrice": 12}])
        if request.url.path.endswith("Sales/CustomerPartLinks"):
            return respond([{"Price": 9.5}])
        return respond([])

    async def go():
        async with make_erp(handler) as erp:
            return await PriceResolver(erp).resolve_price("P1", "C'1")

    quote = asyncio.run(go())
    assert quote.tier is PriceTier.CUSTOMER_SPECIFIC
    assert quote.price == Decimal("9.50")
    assert (["Sales", "CustomerPartLinks"], "CustomerId eq 'C''1' and PartId eq 'P1'") in filters


def test_outlet_lookup_failure_still_uses_outlet_fallback(fake_erp, monkeypatch):
    erp = fake_erp(
        part={"Id": "P1", "ProductGroupId": OUTLET, "StandardPrice": 80},
        links={("C1", "P1"): 249},
        customers={"C1": {"Id": "C1", "PriceListId": "PL7"}},
        sales_prices={("P1", "PL7"): 70},
    )

    async def outlet_list_down(erp, part_id, price_list_id):
        if price_list_id == config.OUTLET_PRICE_LIST_ID:
            raise TransportError("ERP unreachable")
        return erp.sales_prices.get((part_id, price_list_id))

    monkeypatch.setattr(erp_fetch, "fetch_sales_price", outlet_list_down)
    quote = resolve(erp)
    assert quote.tier is PriceTier.OUTLET_FALLBACK
    assert quote.price == Decimal("100.00")


def test_customer_specific_beats_price_list_and_standard(fake_erp):
    erp = fake_erp(
        part={"Id": "P1", "ProductGroupId": "9", "StandardPrice": 80},
        links={("C1", "P1"): 55},
        customers={"C1": {"Id": "C1", "PriceListId": "PL7"}},
        sales_prices={("P1", "PL7"): 70},
    )
    quote = resolve(erp)
    assert quote.tier is PriceTier.CUSTOMER_SPECIFIC
    assert quote.price == Decimal("55.00")

    erp.links = {}
    quote = resolve(erp)
    assert quote.tier is PriceTier.PRICE_LIST
    assert quote.price == Decimal("70.00")


def test_outlet_and_customer_examples(fake_erp):
    outlet = fake_erp(
        part={"Id": "X-100", "ProductGroupId": OUTLET, "StandardPrice": 80},
        customers={"C-1": {"Id": "C-1", "PriceListId": "PL7"}},
        sales_prices={("X-100", "PL7"): 70},
    )
    quote = resolve(outlet, part_id="X-100", customer_id="C-1")
    assert quote.as_dict()["price"] == "100.00"
    assert quote.tier is PriceTier.OUTLET_FALLBACK

    regular = fake_erp(
        part={"Id": "Y-200", "ProductGroupId": "9", "StandardPrice": 300},
        links={("C-1", "Y-200"): 249},
        customers={"C-1": {"Id": "C-1", "PriceListId": "PL7"}},
        sales_prices={("Y-200", "PL7"): 275},
    )
    quote = resolve(regular, part_id="Y-200", customer_id="C-1")
    assert quote.as_dict()["price"] == "249.00"
    assert quote.tier is PriceTier.CUSTOMER_SPECIFIC
