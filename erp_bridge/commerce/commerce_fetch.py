# erp_bridge/commerce/commerce_fetch.py
# =============================
# Commerce read helpers
# - Cursor-paged product walk (variants paged too)
# - Flattens GraphQL product/variant nodes into plain dicts
# =============================

from typing import Any, AsyncIterator, Dict, List

from erp_bridge.commerce.commerce_api import PRODUCT_VARIANTS_PAGE, PRODUCTS_PAGE, metafield_map


def _value(mfs: Dict[str, Dict[str, Any]], key: str):
    return (mfs.get(key) or {}).get("value")


def simplify_variant(node: Dict[str, Any]) -> Dict[str, Any]:
    mfs = metafield_map(node)
    options = node.get("selectedOptions") or []
    return {
        "id": node["id"],
        "sku": node.get("sku"),
        "label": options[0]["value"] if options else None,
        "inventory_item_id": (node.get("inventoryItem") or {}).get("id"),
        "monitor_id": _value(mfs, "monitor_id"),
        "part_number": _value(mfs, "part_number"),
    }


def simplify_product(node: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": node["id"],
        "title": node.get("title"),
        "metafields": {k: v.get("value") for k, v in metafield_map(node).items()},
        "variants": [simplify_variant(e["node"]) for e in (node.get("variants") or {}).get("edges", [])],
    }


# Pull all products (paged); variants past the first page are fetched per product
async def iter_products(client, per_page: int = 50) -> AsyncIterator[Dict[str, Any]]:
    after = None
    while True:
        data = await client.graphql(PRODUCTS_PAGE, {"first": per_page, "after": after})
        page = data.get("products") or {}
        for edge in page.get("edges", []):
            product = simplify_product(edge["node"])
            variants_info = (edge["node"].get("variants") or {}).get("pageInfo") or {}
            if variants_info.get("hasNextPage"):
                product["variants"].extend(
                    await _remaining_variants(client, product["id"], variants_info.get("endCursor"))
                )
            yield product
        info = page.get("pageInfo") or {}
        if not info.get("hasNextPage"):
            break
        after = info.get("endCursor")


async def _remaining_variants(client, product_id: str, after: str, per_page: int = 100) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    while True:
        data = await client.graphql(PRODUCT_VARIANTS_PAGE, {"id": product_id, "first": per_page, "after": after})
        conn = ((data.get("product") or {}).get("variants")) or {}
        out.extend(simplify_variant(e["node"]) for e in conn.get("edges", []))
        info = conn.get("pageInfo") or {}
        if not info.get("hasNextPage"):
            return out
        after = info.get("endCursor")


async def cross_referenced_variants(client) -> List[Dict[str, Any]]:
    """Every variant carrying a `monitor_id` metafield, tagged with its product id."""
    out: List[Dict[str, Any]] = []
    async for product in iter_products(client):
        out.extend({**v, "product_id": product["id"]} for v in product["variants"] if v.get("monitor_id"))
    return out
