"""
Variant Generator - Cartesian product of ingredients, pricing and naming.

Enumeration order is vessel (outer) → wax → wick (inner), following the
order of the ingredient collections; review screens and CSV exports diff on
that order.

deploy() diffs the configured vessels against the catalog's products,
marks products of disabled or unknown vessels disabled, then runs
sync_all().

sync_vessel() reconciles one vessel product against the catalog:
1. find or create the product, write vessel metafields
2. ensure the Wax / Wick options exist (fail loudly on drift)
3. project existing variants to (wax, wick) pairs
4. create only the missing pairs in one batch, at formula price
   (options are created without generated variants)
5. re-read the variant list (creation responses are not trusted for ids)
6. recompute and batch-update every variant price, unconditionally
7. write per-variant cost / enabled metafields
"""
import logging
import re
from pathlib import Path
from uuid import uuid4

import pandas as pd

from .catalog import IngredientCatalog
from .errors import ConfigurationError
from .models import (
    DeploymentPlan,
    DeploymentResult,
    SyncReport,
    VariantCombination,
    Vessel,
    Wax,
    Wick,
    format_size_oz,
    slugify,
)
from .pricing import compute_price, compute_price_cents
from ..sync.catalog_sync import (
    CatalogSync,
    Metafield,
    OptionName,
    PriceUpdate,
    ProductOption,
    VariantInput,
    validate_option_names,
)

logger = logging.getLogger(__name__)


def _token(text: str, length: int) -> str:
    return re.sub(r"[^A-Za-z0-9]", "", str(text))[:length].upper()


class VariantGenerator:
    """Builds priced variant combinations and reconciles them with the catalog."""

    EXPORT_COLUMNS = ['ID', 'SKU', 'Container', 'Vessel', 'Size Oz', 'Wax', 'Wick', 'Price', 'Margin Pct', 'Handle']

    def __init__(
        self,
        sku_token_lengths: tuple = (6, 3, 3),
        metafield_namespace: str = 'magic_request',
        product_type: str = 'Magic Request',
        product_tags: tuple = ('custom-candle', 'magic-request'),
    ):
        self.sku_token_lengths = tuple(sku_token_lengths)
        self.metafield_namespace = metafield_namespace
        self.product_type = product_type
        self.product_tags = tuple(product_tags)

    @classmethod
    def from_settings(cls, settings) -> 'VariantGenerator':
        return cls(
            sku_token_lengths=settings.sku_token_lengths,
            metafield_namespace=settings.metafield_namespace,
            product_type=settings.product_type,
            product_tags=settings.product_tags,
        )

    # ------------------------------------------------------------------
    # Combinations
    # ------------------------------------------------------------------
    def generate(self, catalog: IngredientCatalog) -> list[VariantCombination]:
        """Every enabled Vessel × Wax × Wick combination, priced."""
        waxes = catalog.active_waxes()
        wicks = catalog.active_wicks()
        combinations = [
            self.combination(vessel, wax, wick)
            for vessel in catalog.active_vessels()
            for wax in waxes
            for wick in wicks
        ]
        logger.info(
            "Generated %d combinations (vessels=%d waxes=%d wicks=%d)",
            len(combinations), len(catalog.active_vessels()), len(waxes), len(wicks),
        )
        return combinations

    def combination(self, vessel: Vessel, wax: Wax, wick: Wick) -> VariantCombination:
        return VariantCombination(
            id=f"{vessel.handle}-{slugify(wax.name)}-{slugify(wick.name)}",
            sku=self.make_sku(vessel, wax, wick),
            handle=vessel.handle,
            container=vessel.key,
            vessel_name=vessel.name,
            size_oz=vessel.size_oz,
            wax=wax.name,
            wick=wick.name,
            price_cents=compute_price_cents(vessel, wax, wick),
            margin_pct=vessel.margin_pct,
        )

    def make_sku(self, vessel: Vessel, wax: Wax, wick: Wick) -> str:
        """Deterministic SKU, e.g. MASONJ16-SOY-COT. Safe to diff on."""
        vessel_len, wax_len, wick_len = self.sku_token_lengths
        size = format_size_oz(vessel.size_oz).replace('.', 'P')
        return "-".join([
            f"{_token(vessel.name, vessel_len)}{size}",
            _token(wax.name, wax_len),
            _token(wick.name, wick_len),
        ])

    def new_catalog_sku(self, vessel: Vessel, wax: Wax, wick: Wick) -> str:
        """SKU for a variant being created in the catalog; random suffix avoids collisions.

        Never compare on this value; reconciliation keys on the (wax, wick) pair.
        """
        return f"{self.make_sku(vessel, wax, wick)}-{uuid4().hex[:4].upper()}"

    def to_dataframe(self, combinations: list[VariantCombination]) -> pd.DataFrame:
        return pd.DataFrame([c.to_row() for c in combinations], columns=self.EXPORT_COLUMNS)

    def export_csv(self, combinations: list[VariantCombination], path: Path) -> Path:
        """Write combinations to CSV in generation order."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_dataframe(combinations).to_csv(path, index=False)
        return path

    def plan_missing(
        self, existing_pairs: set[tuple[str, str]], catalog: IngredientCatalog
    ) -> list[tuple[Wax, Wick]]:
        """Expected enabled Wax × Wick pairs not present yet, in enumeration order."""
        return [
            (wax, wick)
            for wax in catalog.active_waxes()
            for wick in catalog.active_wicks()
            if (wax.name, wick.name) not in existing_pairs
        ]

    # ------------------------------------------------------------------
    # Catalog reconciliation
    # ------------------------------------------------------------------
    def vessel_metafields(self, vessel: Vessel) -> list[Metafield]:
        ns = self.metafield_namespace
        size_type = 'number_integer' if float(vessel.size_oz).is_integer() else 'number_decimal'
        metafields = [
            Metafield(ns, 'sizeOz', size_type, format_size_oz(vessel.size_oz)),
            Metafield(ns, 'vesselBaseCostCents', 'number_integer', str(vessel.base_cost_cents)),
            Metafield(ns, 'marginPct', 'number_decimal', f"{vessel.margin_pct:g}"),
        ]
        if vessel.supplier:
            metafields.append(Metafield(ns, 'supplier', 'single_line_text_field', vessel.supplier))
        return metafields

    def variant_metafields(self, vessel: Vessel, wax: Wax, wick: Wick) -> list[Metafield]:
        ns = self.metafield_namespace
        enabled = vessel.enabled and wax.enabled and wick.enabled
        return [
            Metafield(ns, 'waxPricePerOzCents', 'number_integer', str(wax.price_per_oz_cents)),
            Metafield(ns, 'wickCostCents', 'number_integer', str(wick.cost_cents)),
            Metafield(ns, 'enabled', 'number_integer', '1' if enabled else '0'),
        ]

    def sync_vessel(self, sync: CatalogSync, catalog: IngredientCatalog, key: str) -> SyncReport:
        """
        Ensure the vessel's product carries every enabled Wax × Wick variant at formula price.

        Raises:
            ConfigurationError: unknown vessel / ingredient or option drift (fatal for this vessel)
            CatalogTransportError: catalog unreachable (fatal; re-run is safe)
        """
        vessel = catalog.get_vessel(key)
        report = SyncReport(vessel_key=key)

        waxes = catalog.active_waxes()
        wicks = catalog.active_wicks()
        if not waxes or not wicks:
            raise ConfigurationError(f"No enabled waxes or wicks to build variants for {key}")

        # 1. Product
        product = sync.find_product_by_handle(vessel.handle)
        if product is None:
            product_id = sync.create_product(vessel.key, vessel.handle, {
                "product_type": self.product_type,
                "tags": list(self.product_tags),
                "status": "DRAFT",
                "description_html": f"<p>Custom {vessel.key} vessel for Magic Request candles.</p>",
            })
            report.created_product = True
            report.add_trace("Product", "Created product", product_id)
        else:
            product_id = product.id
            report.add_trace("Product", "Found existing product", product_id)
        report.product_id = product_id

        for error in sync.set_metafields(product_id, self.vessel_metafields(vessel)):
            report.add_warning(f"{key}: vessel metafield error: {error}")

        # 2. Options
        options = sync.get_product_options(product_id)
        if not options:
            errors = sync.create_product_options(
                product_id,
                [
                    ProductOption(OptionName.WAX.value, [w.name for w in waxes]),
                    ProductOption(OptionName.WICK.value, [w.name for w in wicks]),
                ],
                auto_generate_variants=False,
            )
            for error in errors:
                report.add_warning(f"{key}: option error: {error}")
            report.add_trace("Options", "Created Wax / Wick options")
        else:
            validate_option_names(options, owner=key)

        # 3. Existing pairs; every one must resolve before anything is written
        existing = sync.list_variants(product_id)
        existing_pairs = {v.option_pair for v in existing}
        for wax_name, wick_name in existing_pairs:
            catalog.get_wax(wax_name)
            catalog.get_wick(wick_name)
        report.variants_existing = len(existing)

        # 4. Create only what is missing
        missing = self.plan_missing(existing_pairs, catalog)
        if missing:
            result = sync.bulk_create_variants(product_id, [
                VariantInput(
                    wax=wax.name,
                    wick=wick.name,
                    price=compute_price(vessel, wax, wick),
                    sku=self.new_catalog_sku(vessel, wax, wick),
                )
                for wax, wick in missing
            ])
            report.variants_created = len(result.succeeded)
            for error in result.errors:
                report.add_warning(f"{key}: variant create error: {error}")
                logger.warning("%s: variant create error: %s", key, error)
            report.add_trace("Create", f"Created {report.variants_created}/{len(missing)} missing variants")
        else:
            report.add_trace("Create", "No missing variants")

        # 5. Confirming read
        variants = sync.list_variants(product_id)

        # 6. Reprice everything so stored prices never drift from the formula
        updates = []
        metafield_entries = []
        for variant in variants:
            wax_name, wick_name = variant.option_pair
            wax = catalog.get_wax(wax_name)
            wick = catalog.get_wick(wick_name)
            updates.append(PriceUpdate(id=variant.id, price=compute_price(vessel, wax, wick)))
            metafield_entries.extend(
                (variant.id, m) for m in self.variant_metafields(vessel, wax, wick)
            )

        if updates:
            result = sync.bulk_update_variant_prices(product_id, updates)
            report.variants_priced = len(result.succeeded)
            for error in result.errors:
                report.add_warning(f"{key}: price update error: {error}")
                logger.warning("%s: price update error: %s", key, error)
        report.add_trace("Prices", f"Repriced {report.variants_priced}/{len(updates)} variants")

        # 7. Variant metafields
        for error in sync.set_metafields_bulk(metafield_entries):
            report.add_warning(f"{key}: variant metafield error: {error}")

        report.variant_ids = [v.id for v in variants]
        report.inventory_item_ids = [v.inventory_item_id for v in variants if v.inventory_item_id]
        logger.info(
            "Synced %s: existing=%d created=%d priced=%d warnings=%d",
            key, report.variants_existing, report.variants_created,
            report.variants_priced, len(report.warnings),
        )
        return report

    def sync_all(self, sync: CatalogSync, catalog: IngredientCatalog) -> list[SyncReport]:
        """
        Sync every enabled vessel.

        A configuration error stops only the affected vessel and is reported
        on its SyncReport.error; transport errors propagate.
        """
        reports = []
        for vessel in catalog.active_vessels():
            try:
                reports.append(self.sync_vessel(sync, catalog, vessel.key))
            except ConfigurationError as e:
                logger.error("Sync failed for %s: %s", vessel.key, e)
                report = SyncReport(vessel_key=vessel.key, error=str(e))
                report.add_trace("Aborted", str(e))
                reports.append(report)
        return reports

    # ------------------------------------------------------------------
    # Deployment
    # ------------------------------------------------------------------
    def plan_deployment(self, sync: CatalogSync, catalog: IngredientCatalog) -> DeploymentPlan:
        """Which vessels to create or update and which products to disable. Never writes."""
        products = sync.list_products(self.product_type)
        existing_handles = {p.handle for p in products}

        plan = DeploymentPlan()
        for vessel in catalog.active_vessels():
            if vessel.handle in existing_handles:
                plan.to_update.append(vessel.key)
            else:
                plan.to_create.append(vessel.key)

        for product in products:
            vessel = catalog.find_vessel_by_handle(product.handle)
            if vessel is None or not vessel.enabled:
                plan.to_disable[product.id] = product.title

        logger.info("Deployment plan: %s", plan.summary)
        return plan

    def disable_product(self, sync: CatalogSync, product_id: str) -> tuple[int, list[str]]:
        """Set enabled=0 on every variant of a product. Returns (variant count, errors)."""
        variants = sync.list_variants(product_id)
        entries = [
            (v.id, Metafield(self.metafield_namespace, 'enabled', 'number_integer', '0'))
            for v in variants
        ]
        return len(variants), sync.set_metafields_bulk(entries)

    def deploy(self, sync: CatalogSync, catalog: IngredientCatalog) -> DeploymentResult:
        """
        Plan, disable stale products, then sync every enabled vessel.

        Products are never deleted. Per-vessel configuration errors are kept
        on their SyncReport; transport errors propagate.
        """
        plan = self.plan_deployment(sync, catalog)
        result = DeploymentResult(plan=plan)
        result.add_trace("Plan", plan.summary)

        for product_id, title in plan.to_disable.items():
            count, errors = self.disable_product(sync, product_id)
            result.products_disabled += 1
            result.variants_disabled += count
            for error in errors:
                result.add_warning(f"{title}: disable error: {error}")
                logger.warning("%s: disable error: %s", title, error)
            result.add_trace("Disable", f"Marked {count} variants disabled", title)

        result.reports = self.sync_all(sync, catalog)
        for report in result.failed:
            result.add_warning(f"{report.vessel_key}: {report.error}")
        result.add_trace(
            "Sync", f"Synced {len(result.reports) - len(result.failed)}/{len(result.reports)} vessels"
        )
        logger.info(
            "Deployed: synced=%d failed=%d disabled_products=%d",
            len(result.reports), len(result.failed), result.products_disabled,
        )
        return result
