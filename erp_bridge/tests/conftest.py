import json
from itertools import count

import httpx
import pytest

from erp_bridge import config
from erp_bridge.erp.erp_client import ERPClient
from erp_bridge.erp.session_store import SessionStore


@pytest.fixture(autouse=True)
def no_record_delay(monkeypatch):
    monkeypatch.setattr(config, "SYNC_RECORD_DELAY_SECS", 0)


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "session.json")


@pytest.fixture
def make_erp(store):
    """Build an ERPClient whose HTTP traffic goes to `handler(request)`."""

    def factory(handler, page_size=100):
        return ERPClient(
            base_url="https://erp.test",
            company="001.1",
            username="bridge",
            password="secret",
            store=store,
            transport=httpx.MockTransport(handler),
            page_size=page_size,
        )

    return factory


def json_response(data, status_code=200, headers=None):
    return httpx.Response(status_code, content=json.dumps(data), headers={"Content-Type": "application/json", **(headers or {})})


class FakeShop:
    """In-memory stand-in for CommerceClient, same high-level surface."""

    def __init__(self):
        self.products = []
        self.customers = []
        self.locations = []
        self.levels = {}  # (inventory_item_id, location_id) -> on hand
        self.calls = []
        self.fail = {}
        self._ids = count(1)

    def _gid(self, kind):
        return f"gid://shopify/{kind}/{next(self._ids)}"

    def _record(self, name, *args):
        self.calls.append((name, args))
        exc = self.fail.get(name)
        if exc is not None:
            raise exc

    def called(self, name):
        return [args for n, args in self.calls if n == name]

    # ---- products ----
    def add_product(self, title, metafields, variants=()):
        product = {"id": self._gid("Product"), "title": title, "metafields": dict(metafields), "variants": []}
        for v in variants:
            product["variants"].append({
                "id": self._gid("ProductVariant"),
                "sku": v.get("part_number"),
                "label": v.get("label"),
                "inventory_item_id": v.get("inventory_item_id") or self._gid("InventoryItem"),
                "monitor_id": v.get("monitor_id"),
                "part_number": v.get("part_number"),
            })
        self.products.append(product)
        return product

    async def find_product_by_metafield(self, key, value):
        self._record("find_product_by_metafield", key, value)
        for p in self.products:
            if p["metafields"].get(key) == value:
                return p
        return None

    async def create_product(self, title, option_name, option_values, metafields, description_html=""):
        self._record("create_product", title, option_name, list(option_values))
        product = self.add_product(title, {m["key"]: m["value"] for m in metafields})
        return {"id": product["id"], "title": title}

    async def create_variants(self, product_id, variants, replace_standalone=False):
        self._record("create_variants", product_id, [v["optionValues"][0]["name"] for v in variants], replace_standalone)
        product = next(p for p in self.products if p["id"] == product_id)
        created = []
        for payload in variants:
            mfs = {m["key"]: m["value"] for m in payload["metafields"]}
            variant = {
                "id": self._gid("ProductVariant"),
                "sku": payload["inventoryItem"]["sku"],
                "label": payload["optionValues"][0]["name"],
                "inventory_item_id": self._gid("InventoryItem"),
                "monitor_id": mfs.get("monitor_id"),
                "part_number": mfs.get("part_number"),
                "payload": payload,
            }
            product["variants"].append(variant)
            created.append(variant)
        return created

    async def list_cross_referenced_variants(self):
        self._record("list_cross_referenced_variants")
        return [{**v, "product_id": p["id"]} for p in self.products for v in p["variants"] if v.get("monitor_id")]

    # ---- customers ----
    def add_customer(self, email, first="", last="", phone=None, metafields=None, addresses=None):
        customer = {
            "id": self._gid("Customer"),
            "email": email,
            "firstName": first,
            "lastName": last,
            "phone": phone,
            "addresses": list(addresses or []),
            "metafields": {k: {"id": self._gid("Metafield"), "value": v} for k, v in (metafields or {}).items()},
        }
        self.customers.append(customer)
        return customer

    async def find_customer_by_email(self, email):
        self._record("find_customer_by_email", email)
        for c in self.customers:
            if c["email"].strip().lower() == email.strip().lower():
                return json.loads(json.dumps(c))
        return None

    async def create_customer(self, customer_input):
        self._record("create_customer", customer_input)
        customer = self.add_customer(
            customer_input["email"],
            customer_input.get("firstName", ""),
            customer_input.get("lastName", ""),
            customer_input.get("phone"),
            {m["key"]: m["value"] for m in customer_input.get("metafields", [])},
            customer_input.get("addresses"),
        )
        return {"id": customer["id"], "email": customer["email"]}

    async def update_customer(self, customer_input):
        self._record("update_customer", customer_input)
        customer = next(c for c in self.customers if c["id"] == customer_input["id"])
        for key in ("firstName", "lastName", "phone", "addresses"):
            if key in customer_input:
                customer[key] = customer_input[key]
        for mf in customer_input.get("metafields", []):
            if "id" in mf:
                row = next(r for r in customer["metafields"].values() if r["id"] == mf["id"])
                row["value"] = mf["value"]
            else:
                customer["metafields"][mf["key"]] = {"id": self._gid("Metafield"), "value": mf["value"]}
        return {"id": customer["id"], "email": customer["email"]}

    # ---- inventory ----
    def add_location(self, warehouse_id):
        location = {"id": self._gid("Location"), "name": f"WH {warehouse_id}", "monitor_id": warehouse_id}
        self.locations.append(location)
        return location

    async def list_locations(self):
        self._record("list_locations")
        return list(self.locations)

    async def get_inventory_levels(self, inventory_item_id):
        self._record("get_inventory_levels", inventory_item_id)
        return {loc: qty for (item, loc), qty in self.levels.items() if item == inventory_item_id}

    async def activate_inventory(self, inventory_item_id, location_id, available=0):
        self._record("activate_inventory", inventory_item_id, location_id, available)
        self.levels[(inventory_item_id, location_id)] = available

    async def set_on_hand_quantity(self, inventory_item_id, location_id, quantity):
        self._record("set_on_hand_quantity", inventory_item_id, location_id, quantity)
        self.levels[(inventory_item_id, location_id)] = quantity


@pytest.fixture
def shop():
    return FakeShop()


def web_part(part_id, part_number, product_name, label=None, price="10.00", group=None):
    """Raw Monitor part row that passes the web-publish filter."""
    extra = [
        {"Identifier": config.ERP_WEB_ACTIVE_FIELD, "SelectedOptionId": config.ERP_WEB_ACTIVE_OPTION_ID},
        {"Identifier": config.ERP_WEB_CATEGORY_FIELD, "StringValue": product_name},
    ]
    if label is not None:
        extra.append({"Identifier": config.ERP_WEB_VARIANT_FIELD, "StringValue": label})
    return {
        "Id": part_id,
        "PartNumber": part_number,
        "Description": f"Part {part_number}",
        "StandardPrice": price,
        "WeightPerUnit": "1.25",
        "ProductGroupId": group,
        "Status": 4,
        "ExtraFields": extra,
    }


@pytest.fixture
def part_row():
    return web_part


@pytest.fixture
def respond():
    return json_response
