"""
Shared service instances for the API routers.

Routers receive a Services bundle through the get_services dependency so
tests can swap in an in-memory catalog with app.dependency_overrides.
"""
from dataclasses import dataclass
from typing import Optional

from ..config.settings import Settings, get_settings
from ..engine.catalog import IngredientStore
from ..engine.delta_engine import PricingDeltaEngine
from ..engine.variant_generator import VariantGenerator
from ..services.pricing_service import PricingWorkflow
from ..services.vessel_service import VesselRegistrationService
from ..sync import build_catalog_sync
from ..sync.catalog_sync import CatalogSync


@dataclass
class Services:
    settings: Settings
    store: IngredientStore
    sync: CatalogSync
    generator: VariantGenerator
    pricing: PricingWorkflow
    vessels: VesselRegistrationService


def build_services(settings: Settings, sync: Optional[CatalogSync] = None) -> Services:
    store = IngredientStore.from_settings(settings)
    sync = sync or build_catalog_sync(settings)
    generator = VariantGenerator.from_settings(settings)
    return Services(
        settings=settings,
        store=store,
        sync=sync,
        generator=generator,
        pricing=PricingWorkflow(store, sync, PricingDeltaEngine.from_settings(settings)),
        vessels=VesselRegistrationService(
            store,
            sync,
            generator,
            default_inventory_quantity=settings.default_inventory_quantity,
            debounce_seconds=settings.vessel_check_debounce_seconds,
            default_margin_pct=settings.default_margin_pct,
        ),
    )


_services: Optional[Services] = None


def get_services() -> Services:
    """FastAPI dependency returning the process-wide services.

    The bundle (and its PricingWorkflow with the pending change set) is
    shared by every request and every operator.
    """
    global _services
    if _services is None:
        _services = build_services(get_settings())
    return _services
