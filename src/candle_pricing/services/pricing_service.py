"""
Pricing Service - the operator's edit / preview / apply session.

Holds the pending PricingChangeSet apart from the committed ingredient
values. A preview must be generated before apply; after any failed apply
the preview is invalidated and has to be generated (and confirmed) again.
"""
import logging
from typing import Optional

from ..engine.catalog import IngredientCatalog, IngredientStore
from ..engine.delta_engine import PricingDeltaEngine
from ..engine.errors import PricingError, ValidationError
from ..engine.models import ApplyResult, PricingChangeSet, PricingPreview
from ..engine.pricing import to_decimal
from ..sync.catalog_sync import CatalogSync

logger = logging.getLogger(__name__)


def _cents(value) -> int:
    return int(to_decimal(value, 'cents'))


class PricingWorkflow:
    """Service for staging, previewing and applying ingredient cost changes."""

    def __init__(self, store: IngredientStore, sync: CatalogSync, engine: PricingDeltaEngine):
        self.store = store
        self.sync = sync
        self.engine = engine
        self.change_set = PricingChangeSet()
        self._preview: Optional[PricingPreview] = None

    @property
    def last_preview(self) -> Optional[PricingPreview]:
        return self._preview

    def catalog(self) -> IngredientCatalog:
        """Fresh snapshot of the committed ingredient collections."""
        return self.store.load()

    def catalog_config(self) -> IngredientCatalog:
        """Ingredient costs as the storefront catalog currently records them."""
        return self.engine.load_catalog_config(self.sync)

    # Staging -------------------------------------------------------------
    def stage_wax_price(self, name: str, price_per_oz_cents: int):
        self._stage(PricingChangeSet(waxes={name: price_per_oz_cents}))

    def stage_wick_cost(self, name: str, cost_cents: int):
        self._stage(PricingChangeSet(wicks={name: cost_cents}))

    def stage_vessel_cost(self, key: str, base_cost_cents: int):
        self._stage(PricingChangeSet(vessels={key: base_cost_cents}))

    def stage(self, change_set: PricingChangeSet):
        """Merge a batch of edits (e.g. the admin screen payload) into the pending set."""
        self._stage(change_set)

    def _stage(self, edits: PricingChangeSet):
        # Unknown keys / bad costs are rejected before they enter the pending set
        self.catalog().validate_change_set(edits)
        self.change_set.waxes.update({k: _cents(v) for k, v in edits.waxes.items()})
        self.change_set.wicks.update({k: _cents(v) for k, v in edits.wicks.items()})
        self.change_set.vessels.update({k: _cents(v) for k, v in edits.vessels.items()})
        self._preview = None

    # Preview / apply -----------------------------------------------------
    def preview(self) -> PricingPreview:
        catalog = self.catalog()
        live = self.engine.load_live_variants(self.sync, catalog)
        self._preview = self.engine.preview(catalog, self.change_set, live)
        return self._preview

    def apply(self, confirmation: str) -> ApplyResult:
        if self._preview is None:
            raise ValidationError('preview', "Generate a preview before applying")
        try:
            result = self.engine.apply(self.sync, self.store, self.change_set, confirmation)
        except PricingError:
            self._preview = None
            raise
        logger.info("Apply finished (partial=%s); discarding change set", result.partial)
        self.change_set = PricingChangeSet()
        self._preview = None
        return result

    def cancel(self):
        """Discard pending edits without writing anything."""
        self.change_set = PricingChangeSet()
        self._preview = None
