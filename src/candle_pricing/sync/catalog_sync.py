"""
Catalog Sync - the boundary between the engine and the storefront catalog.

The engine only talks to a CatalogSync; transport, authentication and
retries belong to the implementation. Prices crossing this boundary are
decimal strings with exactly two fraction digits ("24.50").

Error contract:
- per-item rejections (Shopify userErrors) come back as strings in
  BatchResult.errors / the returned error lists;
- an unreachable catalog or a hard API error raises CatalogTransportError.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..engine.errors import OptionDriftError


class OptionName(str, Enum):
    """Product option names every vessel product must carry, in position order."""
    WAX = "Wax"
    WICK = "Wick"


EXPECTED_OPTION_NAMES = tuple(o.value for o in OptionName)


@dataclass
class Metafield:
    namespace: str
    key: str
    type: str
    value: str


@dataclass
class CatalogProduct:
    id: str
    title: str
    handle: str
    product_type: Optional[str] = None
    metafields: dict[str, str] = field(default_factory=dict)  # key -> value


@dataclass
class ProductOption:
    name: str
    values: list[str] = field(default_factory=list)


@dataclass
class CatalogVariant:
    id: str
    title: str
    price: str
    selected_options: dict[str, str] = field(default_factory=dict)
    inventory_item_id: Optional[str] = None
    sku: Optional[str] = None
    metafields: dict[str, str] = field(default_factory=dict)  # key -> value

    @property
    def option_pair(self) -> tuple[str, str]:
        return project_options(self.selected_options, owner=self.id)


@dataclass
class VariantInput:
    """A variant to create: its Wax / Wick option values and price."""
    wax: str
    wick: str
    price: str
    sku: Optional[str] = None

    @property
    def option_values(self) -> list[dict]:
        return [
            {"optionName": OptionName.WAX.value, "name": self.wax},
            {"optionName": OptionName.WICK.value, "name": self.wick},
        ]


@dataclass
class PriceUpdate:
    id: str
    price: str


@dataclass
class BatchResult:
    """Per-item outcome of a batched create / update."""
    succeeded: list[str] = field(default_factory=list)  # variant ids
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def project_options(selected_options: dict[str, str], owner: str = "variant") -> tuple[str, str]:
    """
    Project a variant's selected options to its (wax, wick) pair.

    Raises OptionDriftError when the option names are not exactly Wax / Wick.
    """
    names = set(selected_options)
    if names != set(EXPECTED_OPTION_NAMES):
        raise OptionDriftError(
            f"{owner} has options {sorted(names)}, expected {list(EXPECTED_OPTION_NAMES)}"
        )
    return selected_options[OptionName.WAX.value], selected_options[OptionName.WICK.value]


def validate_option_names(options: list[ProductOption], owner: str = "product"):
    """Fail loudly if a product's option names drifted from Wax / Wick."""
    names = [o.name for o in options]
    if set(names) != set(EXPECTED_OPTION_NAMES):
        raise OptionDriftError(
            f"{owner} has options {names}, expected {list(EXPECTED_OPTION_NAMES)}"
        )


class CatalogSync(ABC):
    """Product / variant store used by the generator, delta engine and registration."""

    @abstractmethod
    def find_product_by_handle(self, handle: str) -> Optional[CatalogProduct]:
        """Product with this handle, or None."""

    @abstractmethod
    def list_products(self, product_type: str) -> list[CatalogProduct]:
        """Every product of this product type, with its metafields."""

    @abstractmethod
    def create_product(self, title: str, handle: str, metadata: dict) -> str:
        """Create a product and return its id. metadata: product_type, tags, status, description_html."""

    @abstractmethod
    def set_metafields(self, owner_id: str, metafields: list[Metafield]) -> list[str]:
        """Upsert metafields on one owner. Returns per-item error messages."""

    @abstractmethod
    def get_product_options(self, product_id: str) -> list[ProductOption]:
        """Current options of a product, in position order."""

    @abstractmethod
    def create_product_options(
        self, product_id: str, options: list[ProductOption], auto_generate_variants: bool
    ) -> list[str]:
        """Create options; when auto_generate_variants, the catalog creates every combination."""

    @abstractmethod
    def list_variants(self, product_id: str) -> list[CatalogVariant]:
        """Authoritative variant list of a product, with each variant's metafields."""

    @abstractmethod
    def bulk_create_variants(self, product_id: str, variants: list[VariantInput]) -> BatchResult:
        """Create variants in one batch; per-item failures are reported, not raised."""

    @abstractmethod
    def bulk_update_variant_prices(self, product_id: str, updates: list[PriceUpdate]) -> BatchResult:
        """Update prices in one batch; per-item failures are reported, not raised."""

    @abstractmethod
    def activate_inventory(
        self, inventory_item_id: str, location_id: str, quantity: Optional[int]
    ) -> list[str]:
        """Track inventory at a location and optionally set the available quantity."""

    @abstractmethod
    def get_primary_location_id(self) -> Optional[str]:
        """Default stock location."""

    def set_metafields_bulk(self, entries: list[tuple[str, Metafield]]) -> list[str]:
        """Upsert metafields across owners. Implementations may batch this."""
        errors = []
        by_owner: dict[str, list[Metafield]] = {}
        for owner_id, metafield in entries:
            by_owner.setdefault(owner_id, []).append(metafield)
        for owner_id, metafields in by_owner.items():
            errors.extend(self.set_metafields(owner_id, metafields))
        return errors
