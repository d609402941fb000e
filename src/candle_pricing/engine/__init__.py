"""Engine subpackage - pricing formula, ingredient catalog and errors.

VariantGenerator and PricingDeltaEngine live in their own modules
(variant_generator, delta_engine) since they depend on the sync boundary.
"""
from .catalog import IngredientCatalog, IngredientKind, IngredientStore
from .errors import (
    CatalogError,
    CatalogTransportError,
    ConfigurationError,
    OptionDriftError,
    PricingError,
    ValidationError,
)
from .models import PricingChangeSet, Status, Vessel, Wax, Wick
from .pricing import compute_price, compute_price_cents

__all__ = [
    'IngredientCatalog', 'IngredientKind', 'IngredientStore',
    'CatalogError', 'CatalogTransportError', 'ConfigurationError', 'OptionDriftError',
    'PricingError', 'ValidationError', 'PricingChangeSet', 'Status', 'Vessel', 'Wax',
    'Wick', 'compute_price', 'compute_price_cents',
]
