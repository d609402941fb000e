"""
In-process catalog backend.

Honours the CatalogSync contract without a network: used for dry runs when no
Shopify credentials are configured, and as the catalog in tests. Every
mutation is appended to ``writes`` so callers can audit what would have been
sent to the storefront.
"""
import itertools
from dataclasses import replace
from typing import Optional

from ..engine.errors import CatalogError
from .catalog_sync import (
    BatchResult,
    CatalogProduct,
    CatalogSync,
    CatalogVariant,
    Metafield,
    OptionName,
    PriceUpdate,
    ProductOption,
    VariantInput,
)


class InMemoryCatalogSync(CatalogSync):
    """Dict-backed product / variant / inventory store."""

    def __init__(self, location_id: Optional[str] = "gid://shopify/Location/1"):
        self.products: dict[str, CatalogProduct] = {}
        self.options: dict[str, list[ProductOption]] = {}
        self.variants: dict[str, list[CatalogVariant]] = {}
        self.metafields: dict[str, dict[tuple[str, str], Metafield]] = {}
        self.inventory_levels: dict[tuple[str, str], Optional[int]] = {}
        self.location_id = location_id
        self.writes: list[tuple] = []
        self._ids = itertools.count(1)

    def _gid(self, kind: str) -> str:
        return f"gid://shopify/{kind}/{next(self._ids)}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def find_product_by_handle(self, handle: str) -> Optional[CatalogProduct]:
        for product in self.products.values():
            if product.handle == handle:
                return replace(product, metafields=self._metafield_values(product.id))
        return None

    def list_products(self, product_type: str) -> list[CatalogProduct]:
        return [
            replace(p, metafields=self._metafield_values(p.id))
            for p in self.products.values()
            if p.product_type == product_type
        ]

    def get_product_options(self, product_id: str) -> list[ProductOption]:
        self._require_product(product_id)
        return [ProductOption(o.name, list(o.values)) for o in self.options.get(product_id, [])]

    def list_variants(self, product_id: str) -> list[CatalogVariant]:
        self._require_product(product_id)
        return [
            replace(v, selected_options=dict(v.selected_options), metafields=self._metafield_values(v.id))
            for v in self.variants.get(product_id, [])
        ]

    def get_primary_location_id(self) -> Optional[str]:
        return self.location_id

    def _metafield_values(self, owner_id: str) -> dict[str, str]:
        return {key: m.value for (_, key), m in self.metafields.get(owner_id, {}).items()}

    def metafield_value(self, owner_id: str, key: str) -> Optional[str]:
        return self._metafield_values(owner_id).get(key)

    def _require_product(self, product_id: str):
        if product_id not in self.products:
            raise CatalogError(f"Product {product_id} not found")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create_product(self, title: str, handle: str, metadata: dict) -> str:
        if self.find_product_by_handle(handle):
            raise CatalogError(f"Handle '{handle}' has already been taken")
        product_id = self._gid("Product")
        self.products[product_id] = CatalogProduct(
            id=product_id,
            title=title,
            handle=handle,
            product_type=(metadata or {}).get('product_type'),
        )
        self.options[product_id] = []
        self.variants[product_id] = []
        self.writes.append(("create_product", product_id, handle))
        return product_id

    def set_metafields(self, owner_id: str, metafields: list[Metafield]) -> list[str]:
        self.writes.append(("set_metafields", owner_id, len(metafields)))
        store = self.metafields.setdefault(owner_id, {})
        for metafield in metafields:
            store[(metafield.namespace, metafield.key)] = replace(metafield)
        return []

    def create_product_options(
        self, product_id: str, options: list[ProductOption], auto_generate_variants: bool
    ) -> list[str]:
        self._require_product(product_id)
        self.writes.append(("create_product_options", product_id, [o.name for o in options]))
        self.options[product_id] = [ProductOption(o.name, list(o.values)) for o in options]
        if auto_generate_variants and options:
            for combo in itertools.product(*(o.values for o in options)):
                selected = {o.name: value for o, value in zip(options, combo)}
                self._add_variant(product_id, selected, "0.00")
        return []

    def _add_variant(self, product_id: str, selected: dict[str, str], price: str, sku: str = None) -> CatalogVariant:
        variant = CatalogVariant(
            id=self._gid("ProductVariant"),
            title=" / ".join(selected.values()),
            price=price,
            selected_options=dict(selected),
            inventory_item_id=self._gid("InventoryItem"),
            sku=sku,
        )
        self.variants[product_id].append(variant)
        return variant

    def bulk_create_variants(self, product_id: str, variants: list[VariantInput]) -> BatchResult:
        self._require_product(product_id)
        self.writes.append(("bulk_create_variants", product_id, len(variants)))
        result = BatchResult()
        existing = {tuple(v.selected_options.items()) for v in self.variants[product_id]}
        for item in variants:
            selected = {OptionName.WAX.value: item.wax, OptionName.WICK.value: item.wick}
            if tuple(selected.items()) in existing:
                result.errors.append(f"Variant '{item.wax} / {item.wick}' already exists")
                continue
            variant = self._add_variant(product_id, selected, item.price, item.sku)
            existing.add(tuple(selected.items()))
            self._extend_option_values(product_id, selected)
            result.succeeded.append(variant.id)
        return result

    def _extend_option_values(self, product_id: str, selected: dict[str, str]):
        for option in self.options[product_id]:
            value = selected.get(option.name)
            if value is not None and value not in option.values:
                option.values.append(value)

    def bulk_update_variant_prices(self, product_id: str, updates: list[PriceUpdate]) -> BatchResult:
        self._require_product(product_id)
        self.writes.append(("bulk_update_variant_prices", product_id, len(updates)))
        result = BatchResult()
        by_id = {v.id: v for v in self.variants[product_id]}
        for update in updates:
            variant = by_id.get(update.id)
            if variant is None:
                result.errors.append(f"Variant {update.id} does not exist")
                continue
            variant.price = update.price
            result.succeeded.append(update.id)
        return result

    def activate_inventory(
        self, inventory_item_id: str, location_id: str, quantity: Optional[int]
    ) -> list[str]:
        self.writes.append(("activate_inventory", inventory_item_id, quantity))
        known = {
            v.inventory_item_id
            for variants in self.variants.values()
            for v in variants
        }
        if inventory_item_id not in known:
            return [f"Inventory item {inventory_item_id} not found"]
        self.inventory_levels[(inventory_item_id, location_id)] = quantity
        return []
