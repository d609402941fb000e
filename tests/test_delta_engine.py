"""
Pricing Delta Engine tests - preview diff, large-change flag and the apply gate.
"""
import pytest

from candle_pricing.engine.catalog import IngredientCatalog
from candle_pricing.engine.delta_engine import PricingDeltaEngine, config_drift, normalize_confirmation
from candle_pricing.engine.errors import ConfigurationError, ValidationError
from candle_pricing.engine.models import LiveVariant, PriceChangeKind, PricingChangeSet, Vessel, Wax, Wick
from candle_pricing.sync.catalog_sync import Metafield
from candle_pricing.sync.memory_catalog import InMemoryCatalogSync


@pytest.fixture
def engine():
    return PricingDeltaEngine(threshold_pct=50)


@pytest.fixture
def seeded(store, sync, generator):
    """Catalog seeded with all 12 variants at formula prices."""
    generator.sync_all(sync, store.load())
    return sync


def _live(engine, sync, store):
    return engine.load_live_variants(sync, store.load())


def test_no_changes_preview(engine, seeded, store):
    live = _live(engine, seeded, store)
    preview = engine.preview(store.load(), PricingChangeSet(), live)
    assert preview.summary.total_variants == 12
    assert preview.summary.variants_with_changes == 0
    assert all(c.kind == PriceChangeKind.UNCHANGED for c in preview.changes)
    assert preview.new_prices == set()


def test_wax_change_preview(engine, seeded, store):
    live = _live(engine, seeded, store)
    preview = engine.preview(store.load(), PricingChangeSet(waxes={"Soy": 20}), live)

    # Diff completeness: one record per live variant
    assert len(preview.changes) == len(live) == 12
    assert preview.summary.variants_with_changes == 6
    assert all(c.wax == "Soy" for c in preview.changed)
    assert preview.summary.total_price_increase_dollars == "1.74"
    assert preview.summary.total_price_decrease_dollars == "0.00"

    mason = next(c for c in preview.changes if c.container == "Mason Jar 16oz" and c.wick == "Cotton" and c.wax == "Soy")
    assert mason.current_price == "13.58"
    assert mason.new_price == "13.97"
    assert mason.change_description == "+$0.39"
    assert mason.kind == PriceChangeKind.INCREASE
    assert not mason.large_change


def test_preview_is_read_only(engine, seeded, store):
    writes_before = len(seeded.writes)
    engine.preview(store.load(), PricingChangeSet(wicks={"Wood": 10}), _live(engine, seeded, store))
    assert len(seeded.writes) == writes_before
    assert store.load().get_wick("Wood").cost_cents == 65


def test_decrease_summary(engine, seeded, store):
    preview = engine.preview(store.load(), PricingChangeSet(wicks={"Wood": 55}), _live(engine, seeded, store))
    assert preview.summary.variants_with_changes == 4
    assert all(c.kind == PriceChangeKind.DECREASE for c in preview.changed)
    assert preview.summary.total_price_increase_dollars == "0.00"
    assert preview.summary.total_price_decrease_dollars == "0.48"


def _boundary_catalog():
    # Priced at exactly 15.00 with no margin
    return IngredientCatalog(
        vessels=[Vessel(name="Jar", size_oz=1, base_cost_cents=1480, margin_pct=0)],
        waxes=[Wax("Soy", 10)],
        wicks=[Wick("Cotton", 10)],
    )


def _live_at(price):
    return LiveVariant(
        product_id="p1", product_title="Jar 1oz", vessel_key="Jar 1oz",
        variant_id="v1", variant_title="Soy / Cotton", wax="Soy", wick="Cotton", price=price,
    )


@pytest.mark.parametrize("current,flagged", [
    ("10.00", False),   # +50% exactly
    ("9.99", True),     # just above 50%
    ("30.00", False),   # -50% exactly
    ("30.01", True),    # just below -50%
    ("0.00", False),    # zero current price is never flagged
    ("14.00", False),
])
def test_large_change_threshold(engine, current, flagged):
    preview = engine.preview(_boundary_catalog(), PricingChangeSet(), [_live_at(current)])
    change = preview.changes[0]
    assert change.new_price == "15.00"
    assert change.large_change is flagged, f"{current} -> 15.00 flagged={change.large_change}"
    assert bool(preview.warnings) is flagged


def test_threshold_is_configurable():
    engine = PricingDeltaEngine(threshold_pct=5)
    preview = engine.preview(_boundary_catalog(), PricingChangeSet(), [_live_at("14.00")])
    assert preview.changes[0].large_change


def test_unknown_live_ingredient_is_configuration_error(engine):
    live = _live_at("15.00")
    live.wax = "Beeswax"
    with pytest.raises(ConfigurationError):
        engine.preview(_boundary_catalog(), PricingChangeSet(), [live])


def test_normalize_confirmation():
    assert normalize_confirmation(" $13.97 ") == "13.97"
    assert normalize_confirmation("13.97") == "13.97"
    assert normalize_confirmation(None) == ""


def test_apply_rejects_empty_change_set(engine, seeded, store):
    writes_before = len(seeded.writes)
    with pytest.raises(ValidationError) as exc:
        engine.apply(seeded, store, PricingChangeSet(), "13.58")
    assert exc.value.field == 'confirmation'
    assert len(seeded.writes) == writes_before


def test_apply_rejects_mismatched_confirmation(engine, seeded, store):
    writes_before = len(seeded.writes)
    with pytest.raises(ValidationError):
        # 13.58 is a current price, not a proposed new one
        engine.apply(seeded, store, PricingChangeSet(waxes={"Soy": 20}), "13.58")
    assert len(seeded.writes) == writes_before
    assert store.load().get_wax("Soy").price_per_oz_cents == 18


def test_apply_writes_prices_metafields_and_store(engine, seeded, store):
    result = engine.apply(seeded, store, PricingChangeSet(waxes={"Soy": 20}), " $13.97 ")

    assert result.variants_updated == 6
    assert result.variants_planned == 6
    assert not result.partial
    assert result.catalog.get_wax("Soy").price_per_oz_cents == 20
    assert store.load().get_wax("Soy").price_per_oz_cents == 20

    live = engine.load_live_variants(seeded, store.load())
    soy_cotton = next(v for v in live if v.vessel_key == "Mason Jar 16oz" and (v.wax, v.wick) == ("Soy", "Cotton"))
    assert soy_cotton.price == "13.97"
    assert seeded.metafield_value(soy_cotton.variant_id, "waxPricePerOzCents") == "20"

    # A second preview against the new baseline shows nothing left to apply
    preview = engine.preview(store.load(), PricingChangeSet(), live)
    assert preview.summary.variants_with_changes == 0


def test_apply_vessel_cost_updates_product_metafield(engine, seeded, store):
    preview = engine.preview(
        store.load(), PricingChangeSet(vessels={"Metal Tin 8oz": 499}), _live(engine, seeded, store)
    )
    confirmation = sorted(preview.new_prices)[0]
    engine.apply(seeded, store, PricingChangeSet(vessels={"Metal Tin 8oz": 499}), confirmation)
    product = seeded.find_product_by_handle("metal-tin-8oz")
    assert product.metafields["vesselBaseCostCents"] == "499"


def test_apply_large_change_reports_warnings(engine, seeded, store):
    change_set = PricingChangeSet(vessels={"Metal Tin 8oz": 1500})
    preview = engine.preview(store.load(), change_set, _live(engine, seeded, store))
    result = engine.apply(seeded, store, change_set, sorted(preview.new_prices)[0])
    assert len(result.large_change_warnings) == 6


class _PartialCatalog(InMemoryCatalogSync):
    """Rejects price updates for variants with the Wood wick once locked."""

    locked = False

    def bulk_update_variant_prices(self, product_id, updates):
        if not self.locked:
            return super().bulk_update_variant_prices(product_id, updates)
        wood = {v.id for v in self.variants[product_id] if v.selected_options.get("Wick") == "Wood"}
        result = super().bulk_update_variant_prices(product_id, [u for u in updates if u.id not in wood])
        result.errors.extend(f"Variant {i} is locked" for i in sorted(wood) if any(u.id == i for u in updates))
        return result


def test_apply_partial_failure_is_reported_not_rolled_back(engine, store, generator):
    sync = _PartialCatalog()
    generator.sync_all(sync, store.load())
    sync.locked = True

    result = engine.apply(sync, store, PricingChangeSet(waxes={"Soy": 20}), "13.97")

    assert result.variants_updated == 4
    assert result.variants_planned == 6
    assert result.partial
    assert len(result.warnings) == 2
    assert store.load().get_wax("Soy").price_per_oz_cents == 20


def test_load_catalog_config_reads_metafields(engine, seeded, store):
    config = engine.load_catalog_config(seeded)

    assert list(config.vessels) == ["Mason Jar 16oz", "Metal Tin 8oz"]
    mason = config.get_vessel("Mason Jar 16oz")
    assert (mason.size_oz, mason.base_cost_cents, mason.margin_pct) == (16, 799, 20.0)
    assert list(config.waxes) == ["Soy", "Paraffin-Soy"]
    assert config.get_wax("Paraffin-Soy").price_per_oz_cents == 15
    assert config.get_wick("Wood").cost_cents == 65
    assert config_drift(store.load(), config) == []


def test_load_catalog_config_skips_disabled_variants(engine, seeded):
    for product in seeded.list_products("Magic Request"):
        for variant in seeded.list_variants(product.id):
            if variant.option_pair[1] == "Hemp":
                seeded.set_metafields(variant.id, [Metafield("magic_request", "enabled", "number_integer", "0")])
    config = engine.load_catalog_config(seeded)
    assert list(config.wicks) == ["Cotton", "Wood"]


def test_config_drift_names_the_disagreement(engine, seeded, store):
    for product in seeded.list_products("Magic Request"):
        for variant in seeded.list_variants(product.id):
            if variant.option_pair[1] == "Wood":
                seeded.set_metafields(variant.id, [Metafield("magic_request", "wickCostCents", "number_integer", "70")])

    drift = config_drift(store.load(), engine.load_catalog_config(seeded))

    assert drift == ["wick Wood: store 65, catalog 70"]


class _MetafieldRejectingCatalog(InMemoryCatalogSync):
    """Rejects every metafield write once locked."""

    locked = False

    def set_metafields_bulk(self, entries):
        if not self.locked:
            return super().set_metafields_bulk(entries)
        return [f"{owner_id}: metafield is read-only" for owner_id, _ in entries]


def test_apply_reports_store_catalog_disagreement(engine, store, generator):
    sync = _MetafieldRejectingCatalog()
    generator.sync_all(sync, store.load())
    sync.locked = True

    result = engine.apply(sync, store, PricingChangeSet(waxes={"Soy": 20}), "13.97")

    assert result.variants_updated == 6
    assert result.partial
    assert "Store and catalog disagree: wax Soy: store 20, catalog 18" in result.warnings
