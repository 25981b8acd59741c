# erp_bridge/commerce/commerce_api.py
# =============================
# Commerce platform admin API (Shopify GraphQL, ASYNC)
# - Transport / HTTP / top-level GraphQL errors -> RemoteError
# - Mutation userErrors (even on HTTP 200) -> ValidationError
# =============================

import logging
from typing import Any, Dict, List, Optional

import httpx
from httpx import HTTPStatusError, RequestError

from erp_bridge import config
from erp_bridge.exceptions import RemoteError, TransportError, ValidationError

logger = logging.getLogger(__name__)

METAFIELD_TYPE = "single_line_text_field"


def _raise_with_body(exc: HTTPStatusError):
    try:
        body = exc.response.json()
    except ValueError:
        body = exc.response.text
    raise RemoteError(f"{exc} :: {body}", exc.response.status_code, body) from exc


def metafield_input(key: str, value: Any, metafield_id: Optional[str] = None) -> Dict[str, Any]:
    row = {
        "namespace": config.METAFIELD_NAMESPACE,
        "key": key,
        "value": str(value),
        "type": METAFIELD_TYPE,
    }
    if metafield_id:
        # update in place instead of adding a second entry under the same key
        row = {"id": metafield_id, "value": str(value)}
    return row


def metafield_map(node: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """{key: {"id", "value"}} for the bridge's namespace on any node with metafields."""
    out: Dict[str, Dict[str, Any]] = {}
    for edge in ((node or {}).get("metafields") or {}).get("edges", []):
        mf = edge.get("node") or {}
        if mf.get("namespace", config.METAFIELD_NAMESPACE) != config.METAFIELD_NAMESPACE:
            continue
        out[mf["key"]] = {"id": mf.get("id"), "value": mf.get("value")}
    return out


class CommerceClient:
    def __init__(
        self,
        shop_domain: str = config.SHOP_DOMAIN,
        access_token: str = config.SHOP_ADMIN_TOKEN,
        api_version: str = config.SHOP_API_VERSION,
        timeout: float = config.SHOP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not shop_domain or not access_token:
            raise RuntimeError("Missing commerce credentials (SHOP_DOMAIN / SHOP_ADMIN_TOKEN)")
        self.shop_domain = shop_domain
        self.url = f"https://{shop_domain}/admin/api/{api_version}/graphql.json"
        self._http = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Content-Type": "application/json",
                "X-Shopify-Access-Token": access_token,
            },
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    # ---------------------- core ----------------------

    async def graphql(self, query: str, variables: Optional[dict] = None) -> Dict[str, Any]:
        try:
            r = await self._http.post(self.url, json={"query": query, "variables": variables or {}})
        except RequestError as e:
            raise TransportError(f"Commerce API transport failure: {e}") from e
        try:
            r.raise_for_status()
        except HTTPStatusError as e:
            _raise_with_body(e)
        body = r.json()
        if body.get("errors"):
            raise RemoteError(f"GraphQL errors: {body['errors']}", r.status_code, body["errors"])
        return body.get("data") or {}

    async def mutate(self, query: str, variables: dict, root: str) -> Dict[str, Any]:
        """Run a mutation and unwrap `data[root]`, raising on userErrors."""
        data = await self.graphql(query, variables)
        payload = data.get(root) or {}
        errors = payload.get("userErrors") or []
        if errors:
            logger.warning("❌ %s userErrors: %s", root, errors)
            raise ValidationError(f"{root} rejected", errors)
        return payload

    # ---------------------- products ----------------------

    async def find_product_by_metafield(self, key: str, value: str) -> Optional[Dict[str, Any]]:
        # metafield values are not searchable, so walk the catalog
        from erp_bridge.commerce.commerce_fetch import iter_products

        async for product in iter_products(self):
            if product["metafields"].get(key) == value:
                return product
        return None

    async def list_cross_referenced_variants(self) -> List[Dict[str, Any]]:
        from erp_bridge.commerce.commerce_fetch import cross_referenced_variants

        return await cross_referenced_variants(self)

    async def create_product(
        self,
        title: str,
        option_name: str,
        option_values: List[str],
        metafields: List[Dict[str, Any]],
        description_html: str = "",
    ) -> Dict[str, Any]:
        payload = await self.mutate(
            PRODUCT_CREATE,
            {
                "product": {
                    "title": title,
                    "descriptionHtml": description_html,
                    "status": "ACTIVE",
                    "productOptions": [
                        {"name": option_name, "values": [{"name": v} for v in option_values]}
                    ],
                    "metafields": metafields,
                }
            },
            "productCreate",
        )
        return payload["product"]

    async def create_variants(
        self,
        product_id: str,
        variants: List[Dict[str, Any]],
        replace_standalone: bool = False,
    ) -> List[Dict[str, Any]]:
        variables = {"productId": product_id, "variants": variants}
        if replace_standalone:
            variables["strategy"] = "REMOVE_STANDALONE_VARIANT"
        payload = await self.mutate(PRODUCT_VARIANTS_BULK_CREATE, variables, "productVariantsBulkCreate")
        return payload.get("productVariants") or []

    # ---------------------- customers ----------------------

    async def find_customer_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        safe = email.replace("\\", "\\\\").replace('"', '\\"')
        data = await self.graphql(CUSTOMER_BY_EMAIL, {"query": f'email:"{safe}"'})
        edges = (data.get("customers") or {}).get("edges") or []
        for edge in edges:
            node = edge["node"]
            if (node.get("email") or "").strip().lower() == email.strip().lower():
                return {
                    "id": node["id"],
                    "email": node.get("email"),
                    "firstName": node.get("firstName") or "",
                    "lastName": node.get("lastName") or "",
                    "phone": node.get("phone"),
                    "addresses": node.get("addresses") or [],
                    "metafields": metafield_map(node),
                }
        return None

    async def create_customer(self, customer_input: Dict[str, Any]) -> Dict[str, Any]:
        payload = await self.mutate(CUSTOMER_CREATE, {"input": customer_input}, "customerCreate")
        return payload["customer"]

    async def update_customer(self, customer_input: Dict[str, Any]) -> Dict[str, Any]:
        payload = await self.mutate(CUSTOMER_UPDATE, {"input": customer_input}, "customerUpdate")
        return payload["customer"]

    # ---------------------- inventory ----------------------

    async def list_locations(self) -> List[Dict[str, Any]]:
        data = await self.graphql(LOCATIONS)
        out = []
        for edge in (data.get("locations") or {}).get("edges", []):
            node = edge["node"]
            out.append({
                "id": node["id"],
                "name": node.get("name"),
                "monitor_id": (metafield_map(node).get("monitor_id") or {}).get("value"),
            })
        return out

    async def get_inventory_levels(self, inventory_item_id: str) -> Dict[str, int]:
        """{location_id: on_hand} for every location the item is stocked at."""
        data = await self.graphql(INVENTORY_LEVELS, {"id": inventory_item_id})
        levels: Dict[str, int] = {}
        item = data.get("inventoryItem") or {}
        for edge in (item.get("inventoryLevels") or {}).get("edges", []):
            node = edge["node"]
            qty = next(
                (q.get("quantity") for q in node.get("quantities") or [] if q.get("name") == "on_hand"),
                0,
            )
            levels[node["location"]["id"]] = int(qty or 0)
        return levels

    async def activate_inventory(self, inventory_item_id: str, location_id: str, available: int = 0):
        await self.mutate(
            INVENTORY_ACTIVATE,
            {"inventoryItemId": inventory_item_id, "locationId": location_id, "available": available},
            "inventoryActivate",
        )

    async def set_on_hand_quantity(self, inventory_item_id: str, location_id: str, quantity: int):
        await self.mutate(
            INVENTORY_SET_ON_HAND,
            {
                "input": {
                    "reason": "correction",
                    "setQuantities": [
                        {"inventoryItemId": inventory_item_id, "locationId": location_id, "quantity": int(quantity)}
                    ],
                }
            },
            "inventorySetOnHandQuantities",
        )


# ---------------------- GraphQL documents ----------------------

_METAFIELDS = f"""
metafields(first: 20, namespace: "{config.METAFIELD_NAMESPACE}") {{
  edges {{ node {{ id namespace key value }} }}
}}
"""

_VARIANT_NODE = f"""
node {{
  id
  sku
  selectedOptions {{ name value }}
  inventoryItem {{ id }}
  {_METAFIELDS}
}}
"""

PRODUCTS_PAGE = f"""
query products($first: Int!, $after: String) {{
  products(first: $first, after: $after) {{
    edges {{
      node {{
        id
        title
        {_METAFIELDS}
        variants(first: 100) {{
          edges {{ {_VARIANT_NODE} }}
          pageInfo {{ hasNextPage endCursor }}
        }}
      }}
    }}
    pageInfo {{ hasNextPage endCursor }}
  }}
}}
"""

PRODUCT_VARIANTS_PAGE = f"""
query productVariants($id: ID!, $first: Int!, $after: String) {{
  product(id: $id) {{
    variants(first: $first, after: $after) {{
      edges {{ {_VARIANT_NODE} }}
      pageInfo {{ hasNextPage endCursor }}
    }}
  }}
}}
"""

PRODUCT_CREATE = """
mutation productCreate($product: ProductCreateInput!) {
  productCreate(product: $product) {
    product { id title }
    userErrors { field message }
  }
}
"""

PRODUCT_VARIANTS_BULK_CREATE = """
mutation productVariantsBulkCreate($productId: ID!, $variants: [ProductVariantsBulkInput!]!, $strategy: ProductVariantsBulkCreateStrategy) {
  productVariantsBulkCreate(productId: $productId, variants: $variants, strategy: $strategy) {
    productVariants { id sku inventoryItem { id } }
    userErrors { field message }
  }
}
"""

CUSTOMER_BY_EMAIL = f"""
query customers($query: String!) {{
  customers(first: 5, query: $query) {{
    edges {{
      node {{
        id
        email
        firstName
        lastName
        phone
        addresses {{ address1 address2 city zip countryCodeV2 }}
        {_METAFIELDS}
      }}
    }}
  }}
}}
"""

CUSTOMER_CREATE = """
mutation customerCreate($input: CustomerInput!) {
  customerCreate(input: $input) {
    customer { id email }
    userErrors { field message }
  }
}
"""

CUSTOMER_UPDATE = """
mutation customerUpdate($input: CustomerInput!) {
  customerUpdate(input: $input) {
    customer { id email }
    userErrors { field message }
  }
}
"""

LOCATIONS = f"""
query {{
  locations(first: 50) {{
    edges {{
      node {{
        id
        name
        {_METAFIELDS}
      }}
    }}
  }}
}}
"""

INVENTORY_LEVELS = """
query inventoryLevels($id: ID!) {
  inventoryItem(id: $id) {
    inventoryLevels(first: 50) {
      edges {
        node {
          location { id }
          quantities(names: ["on_hand"]) { name quantity }
        }
      }
    }
  }
}
"""

INVENTORY_ACTIVATE = """
mutation inventoryActivate($inventoryItemId: ID!, $locationId: ID!, $available: Int) {
  inventoryActivate(inventoryItemId: $inventoryItemId, locationId: $locationId, available: $available) {
    inventoryLevel { id }
    userErrors { field message }
  }
}
"""

INVENTORY_SET_ON_HAND = """
mutation inventorySetOnHandQuantities($input: InventorySetOnHandQuantitiesInput!) {
  inventorySetOnHandQuantities(input: $input) {
    inventoryAdjustmentGroup { id }
    userErrors { field message }
  }
}
"""
