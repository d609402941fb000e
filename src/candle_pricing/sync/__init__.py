"""Catalog sync subpackage - the storefront catalog boundary."""
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
    project_options,
    validate_option_names,
)
from .memory_catalog import InMemoryCatalogSync


def build_catalog_sync(settings) -> CatalogSync:
    """Pick the catalog backend named by settings.catalog_backend."""
    if settings.catalog_backend == 'shopify':
        from .shopify_catalog import ShopifyCatalogSync
        return ShopifyCatalogSync.from_settings(settings)
    if settings.catalog_backend == 'memory':
        return InMemoryCatalogSync()
    raise ValueError(f"Unknown catalog backend '{settings.catalog_backend}'")


__all__ = [
    'BatchResult', 'CatalogProduct', 'CatalogSync', 'CatalogVariant', 'Metafield',
    'OptionName', 'PriceUpdate', 'ProductOption', 'VariantInput', 'InMemoryCatalogSync',
    'build_catalog_sync', 'project_options', 'validate_option_names',
]
