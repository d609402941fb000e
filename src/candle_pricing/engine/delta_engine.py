"""
Pricing Delta Engine - preview and apply ingredient cost changes.

preview() is read-only: it diffs a proposed change set against the live
catalog variants and never writes. apply() re-takes a fresh snapshot,
recomputes the preview, requires a confirmation value equal to one of the
proposed new prices, and only then writes prices, metafields and the
ingredient store. Apply is not transactional; failures are reported as
warnings on the ApplyResult. After writing, the ingredient collections are
rebuilt from the catalog's metafields (load_catalog_config) and any
disagreement with the store becomes a warning.
"""
import logging
import re
from typing import Optional

from .catalog import IngredientCatalog, IngredientStore
from .errors import OptionDriftError, ValidationError
from .models import (
    ApplyResult,
    LiveVariant,
    PriceChange,
    PriceChangeKind,
    PreviewSummary,
    PricingChangeSet,
    PricingPreview,
    Vessel,
    Wax,
    Wick,
)
from .pricing import (
    compute_price_cents,
    format_change,
    format_price,
    is_large_change,
    parse_price_cents,
    price_change_pct,
)
from ..sync.catalog_sync import CatalogSync, Metafield, PriceUpdate

logger = logging.getLogger(__name__)

_VESSEL_TITLE = re.compile(r"^(.+?)\s+[\d.]+oz$", re.IGNORECASE)


def normalize_confirmation(value) -> str:
    """" $24.50 " -> "24.50"."""
    return str(value or '').strip().lstrip('$').strip()


def config_drift(expected: IngredientCatalog, live: IngredientCatalog) -> list[str]:
    """Cost differences between two catalogs, for keys present in both."""
    drift = []
    for name, wax in live.waxes.items():
        if name in expected.waxes and expected.waxes[name].price_per_oz_cents != wax.price_per_oz_cents:
            drift.append(
                f"wax {name}: store {expected.waxes[name].price_per_oz_cents}, catalog {wax.price_per_oz_cents}"
            )
    for name, wick in live.wicks.items():
        if name in expected.wicks and expected.wicks[name].cost_cents != wick.cost_cents:
            drift.append(f"wick {name}: store {expected.wicks[name].cost_cents}, catalog {wick.cost_cents}")
    for key, vessel in live.vessels.items():
        if key not in expected.vessels:
            continue
        stored = expected.vessels[key]
        if stored.base_cost_cents != vessel.base_cost_cents:
            drift.append(f"vessel {key}: store {stored.base_cost_cents}, catalog {vessel.base_cost_cents}")
        if stored.margin_pct != vessel.margin_pct:
            drift.append(f"vessel {key} margin: store {stored.margin_pct:g}, catalog {vessel.margin_pct:g}")
    return drift


class PricingDeltaEngine:
    """Diff and apply engine for ingredient cost overrides."""

    def __init__(
        self,
        threshold_pct: float = 50.0,
        metafield_namespace: str = 'magic_request',
        product_type: str = 'Magic Request',
    ):
        self.threshold_pct = threshold_pct
        self.metafield_namespace = metafield_namespace
        self.product_type = product_type

    @classmethod
    def from_settings(cls, settings) -> 'PricingDeltaEngine':
        return cls(
            threshold_pct=settings.large_change_threshold_pct,
            metafield_namespace=settings.metafield_namespace,
            product_type=settings.product_type,
        )

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------
    def load_live_variants(self, sync: CatalogSync, catalog: IngredientCatalog) -> list[LiveVariant]:
        """Every catalog variant of every known vessel, tagged with its ingredients."""
        live = []
        for vessel in catalog.vessels.values():
            product = sync.find_product_by_handle(vessel.handle)
            if product is None:
                continue
            for variant in sync.list_variants(product.id):
                wax, wick = variant.option_pair
                live.append(LiveVariant(
                    product_id=product.id,
                    product_title=product.title,
                    vessel_key=vessel.key,
                    variant_id=variant.id,
                    variant_title=variant.title,
                    wax=wax,
                    wick=wick,
                    price=variant.price,
                ))
        logger.info("Loaded %d live variants", len(live))
        return live

    def load_catalog_config(self, sync: CatalogSync) -> IngredientCatalog:
        """
        Rebuild the ingredient collections from the catalog's metafields.

        Vessels come from product metafields (sizeOz, vesselBaseCostCents,
        marginPct) with the name taken from the product title. Waxes and
        wicks come from the waxPricePerOzCents / wickCostCents metafields of
        enabled variants; the last value read wins. Entries that cannot be
        parsed are logged and skipped.
        """
        vessels = []
        waxes: dict[str, str] = {}
        wicks: dict[str, str] = {}

        for product in sync.list_products(self.product_type):
            fields = product.metafields
            if fields.get('sizeOz') and fields.get('vesselBaseCostCents'):
                match = _VESSEL_TITLE.match(product.title)
                vessels.append(Vessel(
                    name=match.group(1) if match else product.title,
                    size_oz=fields['sizeOz'],
                    base_cost_cents=fields['vesselBaseCostCents'],
                    margin_pct=fields.get('marginPct') or Vessel.margin_pct,
                ))
            else:
                logger.warning("Catalog product %s has no vessel metafields", product.title)

            for variant in sync.list_variants(product.id):
                if variant.metafields.get('enabled') == '0':
                    continue
                try:
                    wax, wick = variant.option_pair
                except OptionDriftError as e:
                    logger.warning("Skipping %s: %s", product.title, e)
                    continue
                if variant.metafields.get('waxPricePerOzCents'):
                    waxes[wax] = variant.metafields['waxPricePerOzCents']
                if variant.metafields.get('wickCostCents'):
                    wicks[wick] = variant.metafields['wickCostCents']

        config = IngredientCatalog()
        for add, item in (
            [(config.add_vessel, v) for v in vessels]
            + [(config.add_wax, Wax(name, cents)) for name, cents in waxes.items()]
            + [(config.add_wick, Wick(name, cents)) for name, cents in wicks.items()]
        ):
            try:
                add(item)
            except ValidationError as e:
                logger.warning("Skipping catalog entry %s: %s", item.name, e)
        logger.info(
            "Loaded catalog config: vessels=%d waxes=%d wicks=%d",
            len(config.vessels), len(config.waxes), len(config.wicks),
        )
        return config

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------
    def preview(
        self,
        catalog: IngredientCatalog,
        change_set: PricingChangeSet,
        live_variants: list[LiveVariant],
    ) -> PricingPreview:
        """One PriceChange per live variant, plus totals. Never writes."""
        proposed = catalog.with_changes(change_set)
        summary = PreviewSummary(total_variants=len(live_variants))
        changes = []

        for live in live_variants:
            vessel = proposed.get_vessel(live.vessel_key)
            wax = proposed.get_wax(live.wax)
            wick = proposed.get_wick(live.wick)

            current_cents = parse_price_cents(live.price)
            new_cents = compute_price_cents(vessel, wax, wick)
            delta = new_cents - current_cents

            if delta > 0:
                kind = PriceChangeKind.INCREASE
                summary.total_price_increase_cents += delta
            elif delta < 0:
                kind = PriceChangeKind.DECREASE
                summary.total_price_decrease_cents += -delta
            else:
                kind = PriceChangeKind.UNCHANGED
            if delta:
                summary.variants_with_changes += 1

            pct = price_change_pct(current_cents, new_cents)
            changes.append(PriceChange(
                product_id=live.product_id,
                product_title=live.product_title,
                variant_id=live.variant_id,
                variant_title=live.variant_title,
                current_price=format_price(current_cents),
                new_price=format_price(new_cents),
                change_description=format_change(delta),
                wax=live.wax,
                wick=live.wick,
                container=live.vessel_key,
                kind=kind,
                large_change=is_large_change(current_cents, new_cents, self.threshold_pct),
                change_pct=float(pct) if pct is not None else None,
            ))

        preview = PricingPreview(changes=changes, summary=summary, threshold_pct=self.threshold_pct)
        for change in preview.large_changes:
            preview.add_warning(self._large_change_warning(change))
        logger.info(
            "Preview: %d variants, %d changed, %d large",
            summary.total_variants, summary.variants_with_changes, len(preview.large_changes),
        )
        return preview

    def _large_change_warning(self, change: PriceChange) -> str:
        return (
            f"{change.product_title} {change.variant_title}: ${change.current_price} -> "
            f"${change.new_price} ({change.change_pct:.1f}% exceeds {self.threshold_pct:g}%)"
        )

    # ------------------------------------------------------------------
    # Apply
    # ------------------------------------------------------------------
    def apply(
        self,
        sync: CatalogSync,
        store: IngredientStore,
        change_set: PricingChangeSet,
        confirmation: Optional[str],
    ) -> ApplyResult:
        """
        Write a confirmed change set.

        Raises:
            ValidationError: nothing to apply, or confirmation matches no new price
                (no catalog writes happen in either case)
            ConfigurationError: a live variant references an unknown ingredient
            CatalogTransportError: catalog unreachable
        """
        catalog = store.load()
        live = self.load_live_variants(sync, catalog)
        preview = self.preview(catalog, change_set, live)

        if not preview.changed:
            raise ValidationError('confirmation', "No price changes to apply")
        confirmed = normalize_confirmation(confirmation)
        if confirmed not in preview.new_prices:
            raise ValidationError(
                'confirmation', f"'{confirmed}' does not match any proposed new price"
            )

        result = ApplyResult(variants_planned=len(preview.changed))
        result.large_change_warnings = list(preview.warnings)
        result.add_trace("Confirm", "Confirmation matched", confirmed)

        # Prices, one batch per product
        by_product: dict[str, list[PriceUpdate]] = {}
        for change in preview.changed:
            by_product.setdefault(change.product_id, []).append(
                PriceUpdate(id=change.variant_id, price=change.new_price)
            )
        for product_id, updates in by_product.items():
            batch = sync.bulk_update_variant_prices(product_id, updates)
            result.variants_updated += len(batch.succeeded)
            for error in batch.errors:
                result.add_warning(f"Price update error: {error}")
                logger.warning("Price update error on %s: %s", product_id, error)
        result.add_trace("Prices", f"Updated {result.variants_updated}/{result.variants_planned} variants")

        # Ingredient cost metafields
        proposed = catalog.with_changes(change_set)
        for error in sync.set_metafields_bulk(self._metafield_entries(proposed, change_set, live)):
            result.add_warning(f"Metafield error: {error}")
            logger.warning("Metafield error: %s", error)

        # New baseline for subsequent syncs
        store.save(proposed)
        result.catalog = store.load()
        result.add_trace("Store", "Committed ingredient overrides")

        # Ground truth check against what the catalog now carries
        drift = config_drift(result.catalog, self.load_catalog_config(sync))
        for message in drift:
            result.add_warning(f"Store and catalog disagree: {message}")
            logger.warning("Store and catalog disagree: %s", message)
        result.add_trace("Reload", "Compared store with catalog metafields", f"{len(drift)} differences")

        logger.info(
            "Applied change set: updated=%d planned=%d warnings=%d",
            result.variants_updated, result.variants_planned, len(result.warnings),
        )
        return result

    def _metafield_entries(
        self,
        proposed: IngredientCatalog,
        change_set: PricingChangeSet,
        live: list[LiveVariant],
    ) -> list[tuple[str, Metafield]]:
        ns = self.metafield_namespace
        entries = []
        for variant in live:
            if variant.wax in change_set.waxes:
                cents = proposed.get_wax(variant.wax).price_per_oz_cents
                entries.append((variant.variant_id, Metafield(ns, 'waxPricePerOzCents', 'number_integer', str(cents))))
            if variant.wick in change_set.wicks:
                cents = proposed.get_wick(variant.wick).cost_cents
                entries.append((variant.variant_id, Metafield(ns, 'wickCostCents', 'number_integer', str(cents))))

        products = {v.vessel_key: v.product_id for v in live}
        for key in change_set.vessels:
            if key in products:
                cents = proposed.get_vessel(key).base_cost_cents
                entries.append((products[key], Metafield(ns, 'vesselBaseCostCents', 'number_integer', str(cents))))
        return entries
