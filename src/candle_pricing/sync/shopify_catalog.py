"""
Shopify Admin GraphQL implementation of CatalogSync.

Reads SHOPIFY_STORE_URL, SHOPIFY_ADMIN_ACCESS_TOKEN and SHOPIFY_API_VERSION
through Settings. Transport failures are retried with exponential backoff and
then surface as CatalogTransportError; userErrors are returned per item.
"""
import logging
import time
from typing import Optional

import requests
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..engine.errors import CatalogError, CatalogTransportError
from .catalog_sync import (
    BatchResult,
    CatalogProduct,
    CatalogSync,
    CatalogVariant,
    Metafield,
    PriceUpdate,
    ProductOption,
    VariantInput,
)

logger = logging.getLogger(__name__)


class ThrottledError(Exception):
    """Shopify asked us to slow down; retried by the tenacity policy."""


FIND_PRODUCT_QUERY = """
query ($identifier: ProductIdentifierInput!, $namespace: String!) {
  productByIdentifier(identifier: $identifier) {
    id
    title
    handle
    productType
    metafields(first: 25, namespace: $namespace) {
      edges { node { key value } }
    }
  }
}
"""

LIST_PRODUCTS_QUERY = """
query ($query: String!, $namespace: String!, $after: String) {
  products(first: 50, after: $after, query: $query) {
    pageInfo { hasNextPage endCursor }
    edges {
      node {
        id
        title
        handle
        productType
        metafields(first: 25, namespace: $namespace) {
          edges { node { key value } }
        }
      }
    }
  }
}
"""

CREATE_PRODUCT_MUTATION = """
mutation productCreate($input: ProductInput!) {
  productCreate(input: $input) {
    product { id }
    userErrors { field message }
  }
}
"""

SET_METAFIELDS_MUTATION = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { id }
    userErrors { field message }
  }
}
"""

GET_OPTIONS_QUERY = """
query ($id: ID!) {
  product(id: $id) {
    options(first: 10) { name position values }
  }
}
"""

CREATE_OPTIONS_MUTATION = """
mutation productOptionsCreate($productId: ID!, $options: [OptionCreateInput!]!, $variantStrategy: ProductOptionCreateVariantStrategy) {
  productOptionsCreate(productId: $productId, options: $options, variantStrategy: $variantStrategy) {
    product { id }
    userErrors { field message }
  }
}
"""

LIST_VARIANTS_QUERY = """
query ($id: ID!, $namespace: String!, $after: String) {
  product(id: $id) {
    variants(first: 100, after: $after) {
      pageInfo { hasNextPage endCursor }
      edges {
        node {
          id
          title
          price
          sku
          selectedOptions { name value }
          inventoryItem { id }
          metafields(first: 10, namespace: $namespace) {
            edges { node { key value } }
          }
        }
      }
    }
  }
}
"""

BULK_CREATE_MUTATION = """
mutation productVariantsBulkCreate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkCreate(productId: $productId, variants: $variants) {
    productVariants { id }
    userErrors { field message }
  }
}
"""

BULK_UPDATE_MUTATION = """
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants { id }
    userErrors { field message }
  }
}
"""

TRACK_INVENTORY_MUTATION = """
mutation inventoryItemUpdate($id: ID!, $input: InventoryItemInput!) {
  inventoryItemUpdate(id: $id, input: $input) {
    inventoryItem { id tracked }
    userErrors { field message }
  }
}
"""

ACTIVATE_INVENTORY_MUTATION = """
mutation inventoryActivate($inventoryItemId: ID!, $locationId: ID!) {
  inventoryActivate(inventoryItemId: $inventoryItemId, locationId: $locationId) {
    inventoryLevel { id }
    userErrors { field message }
  }
}
"""

SET_QUANTITIES_MUTATION = """
mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
  inventorySetQuantities(input: $input) {
    inventoryAdjustmentGroup { id }
    userErrors { field message }
  }
}
"""

PRIMARY_LOCATION_QUERY = """
query {
  locations(first: 1, query: "isPrimary:true") {
    edges { node { id } }
  }
}
"""


def _metafield_map(node: dict) -> dict[str, str]:
    return {
        e['node']['key']: e['node']['value']
        for e in (node.get('metafields') or {}).get('edges', [])
    }


def _user_errors(payload: Optional[dict]) -> list[str]:
    """Flatten a mutation's userErrors into readable messages."""
    messages = []
    for error in (payload or {}).get('userErrors') or []:
        field = error.get('field')
        message = error.get('message', 'Unknown error')
        if field:
            messages.append(f"{'.'.join(str(f) for f in field)}: {message}")
        else:
            messages.append(message)
    return messages


class ShopifyCatalogSync(CatalogSync):
    """CatalogSync over the Shopify Admin GraphQL API."""

    METAFIELD_BATCH_SIZE = 25

    def __init__(
        self,
        store_url: str,
        access_token: str,
        api_version: str = '2025-07',
        metafield_namespace: str = 'magic_request',
        session: Optional[requests.Session] = None,
        timeout: int = 60,
        throttle_pause: float = 2.0,
    ):
        if not store_url or not access_token:
            raise CatalogTransportError("Missing SHOPIFY_STORE_URL or SHOPIFY_ADMIN_ACCESS_TOKEN")

        store = store_url.replace('https://', '').replace('http://', '').rstrip('/')
        self.endpoint = f"https://{store}/admin/api/{api_version}/graphql.json"
        self.metafield_namespace = metafield_namespace
        self.timeout = timeout
        self.throttle_pause = throttle_pause
        self.session = session or requests.Session()
        self.session.headers.update({
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": access_token,
        })

    @classmethod
    def from_settings(cls, settings) -> 'ShopifyCatalogSync':
        return cls(
            store_url=settings.shopify_store_url,
            access_token=settings.shopify_access_token,
            api_version=settings.shopify_api_version,
            metafield_namespace=settings.metafield_namespace,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    def graphql(self, query: str, variables: Optional[dict] = None) -> dict:
        """Run a GraphQL operation and return its ``data`` object."""
        try:
            return self._post(query, variables or {})
        except (requests.exceptions.RequestException, ThrottledError) as e:
            raise CatalogTransportError(f"Shopify request failed: {e}") from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, max=8),
        retry=retry_if_exception_type((requests.exceptions.RequestException, ThrottledError)),
        reraise=True,
    )
    def _post(self, query: str, variables: dict) -> dict:
        resp = self.session.post(
            self.endpoint,
            json={"query": query, "variables": variables},
            timeout=self.timeout,
        )
        if resp.status_code == 429:
            raise ThrottledError("HTTP 429 Too Many Requests")
        if resp.status_code >= 500:
            resp.raise_for_status()
        if resp.status_code != 200:
            raise CatalogTransportError(f"GraphQL HTTP {resp.status_code}: {resp.text}", resp.status_code)

        body = resp.json()
        errors = body.get('errors')
        if errors:
            if any('throttled' in str(e).lower() for e in errors):
                raise ThrottledError(str(errors))
            raise CatalogTransportError(f"GraphQL errors: {errors}")

        throttle = body.get('extensions', {}).get('cost', {}).get('throttleStatus', {})
        available = throttle.get('currentlyAvailable')
        if available is not None and available < 100:
            logger.info("Shopify throttle budget low (%s), pausing %.1fs", available, self.throttle_pause)
            time.sleep(self.throttle_pause)
        return body.get('data') or {}

    # ------------------------------------------------------------------
    # CatalogSync
    # ------------------------------------------------------------------
    def find_product_by_handle(self, handle: str) -> Optional[CatalogProduct]:
        data = self.graphql(FIND_PRODUCT_QUERY, {
            "identifier": {"handle": handle},
            "namespace": self.metafield_namespace,
        })
        node = data.get('productByIdentifier')
        if not node:
            return None
        return self._product(node)

    def list_products(self, product_type: str) -> list[CatalogProduct]:
        products = []
        after = None
        while True:
            data = self.graphql(LIST_PRODUCTS_QUERY, {
                "query": f"product_type:'{product_type}'",
                "namespace": self.metafield_namespace,
                "after": after,
            })
            connection = data.get('products') or {}
            products.extend(self._product(e['node']) for e in connection.get('edges', []))
            page_info = connection.get('pageInfo') or {}
            if not page_info.get('hasNextPage'):
                return products
            after = page_info.get('endCursor')

    @staticmethod
    def _product(node: dict) -> CatalogProduct:
        return CatalogProduct(
            id=node['id'],
            title=node['title'],
            handle=node['handle'],
            product_type=node.get('productType'),
            metafields=_metafield_map(node),
        )

    def create_product(self, title: str, handle: str, metadata: dict) -> str:
        metadata = metadata or {}
        product_input = {
            "title": title,
            "handle": handle,
            "productType": metadata.get('product_type'),
            "tags": list(metadata.get('tags') or []),
            "status": metadata.get('status', 'DRAFT'),
        }
        if metadata.get('description_html'):
            product_input["descriptionHtml"] = metadata['description_html']

        data = self.graphql(CREATE_PRODUCT_MUTATION, {"input": product_input})
        payload = data.get('productCreate') or {}
        errors = _user_errors(payload)
        if errors or not payload.get('product'):
            raise CatalogError(f"Failed to create product '{title}': {', '.join(errors) or 'no product returned'}")
        return payload['product']['id']

    def set_metafields(self, owner_id: str, metafields: list[Metafield]) -> list[str]:
        return self.set_metafields_bulk([(owner_id, m) for m in metafields])

    def set_metafields_bulk(self, entries: list[tuple[str, Metafield]]) -> list[str]:
        errors = []
        inputs = [
            {
                "ownerId": owner_id,
                "namespace": m.namespace,
                "key": m.key,
                "type": m.type,
                "value": m.value,
            }
            for owner_id, m in entries
        ]
        for i in range(0, len(inputs), self.METAFIELD_BATCH_SIZE):
            batch = inputs[i:i + self.METAFIELD_BATCH_SIZE]
            data = self.graphql(SET_METAFIELDS_MUTATION, {"metafields": batch})
            errors.extend(_user_errors(data.get('metafieldsSet')))
        return errors

    def get_product_options(self, product_id: str) -> list[ProductOption]:
        data = self.graphql(GET_OPTIONS_QUERY, {"id": product_id})
        product = data.get('product')
        if product is None:
            raise CatalogError(f"Product {product_id} not found")
        options = sorted(product.get('options') or [], key=lambda o: o.get('position', 0))
        # A product without options reports a single "Title" option
        options = [o for o in options if o.get('name') != 'Title']
        return [ProductOption(name=o['name'], values=list(o.get('values') or [])) for o in options]

    def create_product_options(
        self, product_id: str, options: list[ProductOption], auto_generate_variants: bool
    ) -> list[str]:
        data = self.graphql(CREATE_OPTIONS_MUTATION, {
            "productId": product_id,
            "options": [
                {"name": o.name, "position": i, "values": [{"name": v} for v in o.values]}
                for i, o in enumerate(options, start=1)
            ],
            "variantStrategy": "CREATE" if auto_generate_variants else "LEAVE_AS_IS",
        })
        return _user_errors(data.get('productOptionsCreate'))

    def list_variants(self, product_id: str) -> list[CatalogVariant]:
        variants = []
        after = None
        while True:
            data = self.graphql(LIST_VARIANTS_QUERY, {
                "id": product_id,
                "namespace": self.metafield_namespace,
                "after": after,
            })
            product = data.get('product')
            if product is None:
                raise CatalogError(f"Product {product_id} not found")
            connection = product['variants']
            for edge in connection.get('edges', []):
                node = edge['node']
                variants.append(CatalogVariant(
                    id=node['id'],
                    title=node.get('title', ''),
                    price=node.get('price', '0.00'),
                    selected_options={o['name']: o['value'] for o in node.get('selectedOptions') or []},
                    inventory_item_id=(node.get('inventoryItem') or {}).get('id'),
                    sku=node.get('sku'),
                    metafields=_metafield_map(node),
                ))
            page_info = connection.get('pageInfo') or {}
            if not page_info.get('hasNextPage'):
                return variants
            after = page_info.get('endCursor')

    def bulk_create_variants(self, product_id: str, variants: list[VariantInput]) -> BatchResult:
        inputs = []
        for v in variants:
            item = {"optionValues": v.option_values, "price": v.price}
            if v.sku:
                item["inventoryItem"] = {"sku": v.sku}
            inputs.append(item)
        data = self.graphql(BULK_CREATE_MUTATION, {"productId": product_id, "variants": inputs})
        payload = data.get('productVariantsBulkCreate') or {}
        return BatchResult(
            succeeded=[v['id'] for v in payload.get('productVariants') or []],
            errors=_user_errors(payload),
        )

    def bulk_update_variant_prices(self, product_id: str, updates: list[PriceUpdate]) -> BatchResult:
        data = self.graphql(BULK_UPDATE_MUTATION, {
            "productId": product_id,
            "variants": [{"id": u.id, "price": u.price} for u in updates],
        })
        payload = data.get('productVariantsBulkUpdate') or {}
        return BatchResult(
            succeeded=[v['id'] for v in payload.get('productVariants') or []],
            errors=_user_errors(payload),
        )

    def activate_inventory(
        self, inventory_item_id: str, location_id: str, quantity: Optional[int]
    ) -> list[str]:
        # Tracking must be on before a level can be activated
        data = self.graphql(TRACK_INVENTORY_MUTATION, {"id": inventory_item_id, "input": {"tracked": True}})
        errors = _user_errors(data.get('inventoryItemUpdate'))
        if errors:
            return errors

        data = self.graphql(ACTIVATE_INVENTORY_MUTATION, {
            "inventoryItemId": inventory_item_id,
            "locationId": location_id,
        })
        errors = _user_errors(data.get('inventoryActivate'))
        if errors or quantity is None:
            return errors

        data = self.graphql(SET_QUANTITIES_MUTATION, {
            "input": {
                "name": "available",
                "reason": "correction",
                "ignoreCompareQuantity": True,
                "quantities": [{
                    "inventoryItemId": inventory_item_id,
                    "locationId": location_id,
                    "quantity": quantity,
                }],
            },
        })
        return _user_errors(data.get('inventorySetQuantities'))

    def get_primary_location_id(self) -> Optional[str]:
        data = self.graphql(PRIMARY_LOCATION_QUERY)
        edges = (data.get('locations') or {}).get('edges') or []
        return edges[0]['node']['id'] if edges else None
