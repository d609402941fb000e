"""
Catalog reconciliation tests (VariantGenerator.sync_vessel / sync_all)
against the in-memory catalog.
"""
import pytest

from candle_pricing.engine.catalog import IngredientCatalog, IngredientKind
from candle_pricing.engine.delta_engine import PricingDeltaEngine
from candle_pricing.engine.errors import CatalogTransportError, ConfigurationError, OptionDriftError
from candle_pricing.engine.models import Status, Vessel, Wax, Wick
from candle_pricing.sync.catalog_sync import BatchResult, PriceUpdate, ProductOption, VariantInput
from candle_pricing.sync.memory_catalog import InMemoryCatalogSync

MASON = "Mason Jar 16oz"


def _writes(sync, kind):
    return [w for w in sync.writes if w[0] == kind]


def _prices(sync, product_id):
    return {v.option_pair: v.price for v in sync.list_variants(product_id)}


def test_first_sync_creates_product_and_full_matrix(catalog, sync, generator):
    report = generator.sync_vessel(sync, catalog, MASON)

    assert report.created_product
    assert report.error is None
    assert len(report.variant_ids) == 6, f"Expected 6 variants, got {len(report.variant_ids)}"
    assert report.variants_priced == 6

    product = sync.find_product_by_handle("mason-jar-16oz")
    assert product.title == MASON
    assert product.product_type == "Magic Request"
    assert product.metafields["vesselBaseCostCents"] == "799"
    assert product.metafields["sizeOz"] == "16"
    assert product.metafields["marginPct"] == "20"

    prices = _prices(sync, report.product_id)
    assert prices[("Soy", "Cotton")] == "13.58"
    assert "0.00" not in prices.values()


def test_second_sync_is_idempotent(catalog, sync, generator):
    first = generator.sync_vessel(sync, catalog, MASON)
    prices_before = _prices(sync, first.product_id)
    creates_before = len(_writes(sync, "bulk_create_variants"))

    second = generator.sync_vessel(sync, catalog, MASON)

    assert not second.created_product
    assert second.product_id == first.product_id
    assert second.variants_created == 0
    assert second.variants_existing == 6
    assert len(_writes(sync, "create_product")) == 1
    assert len(_writes(sync, "bulk_create_variants")) == creates_before
    assert _prices(sync, first.product_id) == prices_before
    assert sorted(second.variant_ids) == sorted(first.variant_ids)


def test_only_missing_pairs_are_created(catalog, sync, generator):
    product_id = sync.create_product(MASON, "mason-jar-16oz", {})
    sync.create_product_options(
        product_id,
        [ProductOption("Wax", ["Soy"]), ProductOption("Wick", ["Cotton", "Hemp"])],
        auto_generate_variants=False,
    )
    sync.bulk_create_variants(product_id, [
        VariantInput(wax="Soy", wick="Cotton", price="1.00"),
        VariantInput(wax="Soy", wick="Hemp", price="1.00"),
    ])

    report = generator.sync_vessel(sync, catalog, MASON)

    assert report.variants_existing == 2
    assert report.variants_created == 4
    prices = _prices(sync, product_id)
    assert len(prices) == 6
    # Existing variants are repriced unconditionally
    assert prices[("Soy", "Cotton")] == "13.58"


def test_new_catalog_skus_are_suffixed(catalog, sync, generator):
    product_id = sync.create_product(MASON, "mason-jar-16oz", {})
    sync.create_product_options(
        product_id,
        [ProductOption("Wax", ["Soy"]), ProductOption("Wick", ["Cotton"])],
        auto_generate_variants=False,
    )
    generator.sync_vessel(sync, catalog, MASON)
    skus = [v.sku for v in sync.list_variants(product_id) if v.sku]
    assert len(skus) == 6
    assert all(len(sku.split("-")) == 4 for sku in skus)


class _RejectingCatalog(InMemoryCatalogSync):
    """Rejects the creation of one (wax, wick) pair."""

    def __init__(self, reject):
        super().__init__()
        self.reject = reject

    def bulk_create_variants(self, product_id, variants):
        kept = [v for v in variants if (v.wax, v.wick) != self.reject]
        result = super().bulk_create_variants(product_id, kept)
        if len(kept) != len(variants):
            result.errors.append(f"Option values {self.reject} are invalid")
        return result


def test_partial_create_failure_is_a_warning(catalog, generator):
    sync = _RejectingCatalog(reject=("Paraffin-Soy", "Wood"))
    product_id = sync.create_product(MASON, "mason-jar-16oz", {})
    sync.create_product_options(
        product_id,
        [ProductOption("Wax", ["Soy"]), ProductOption("Wick", ["Cotton"])],
        auto_generate_variants=False,
    )

    report = generator.sync_vessel(sync, catalog, MASON)

    assert report.variants_created == 5
    assert any("invalid" in w for w in report.warnings), f"Warnings: {report.warnings}"
    assert len(sync.list_variants(product_id)) == 5
    assert report.variants_priced == 5


def test_option_drift_fails_loudly(catalog, sync, generator):
    product_id = sync.create_product(MASON, "mason-jar-16oz", {})
    sync.create_product_options(
        product_id,
        [ProductOption("Color", ["Red"]), ProductOption("Size", ["L"])],
        auto_generate_variants=True,
    )
    with pytest.raises(OptionDriftError):
        generator.sync_vessel(sync, catalog, MASON)
    assert not _writes(sync, "bulk_create_variants")
    assert not _writes(sync, "bulk_update_variant_prices")


def test_unknown_existing_wax_is_fatal_before_writes(catalog, sync, generator):
    product_id = sync.create_product(MASON, "mason-jar-16oz", {})
    sync.create_product_options(
        product_id,
        [ProductOption("Wax", ["Beeswax"]), ProductOption("Wick", ["Cotton"])],
        auto_generate_variants=True,
    )
    with pytest.raises(ConfigurationError):
        generator.sync_vessel(sync, catalog, MASON)
    assert not _writes(sync, "bulk_create_variants")
    assert not _writes(sync, "bulk_update_variant_prices")


def test_variant_metafields_track_enabled(catalog, sync, generator):
    report = generator.sync_vessel(sync, catalog, MASON)
    hemp = [v for v in sync.list_variants(report.product_id) if v.option_pair[1] == "Hemp"]
    assert all(sync.metafield_value(v.id, "enabled") == "1" for v in hemp)
    assert sync.metafield_value(hemp[0].id, "wickCostCents") == "55"

    catalog.set_status(IngredientKind.WICK, "Hemp", Status.DISABLED)
    report = generator.sync_vessel(sync, catalog, MASON)
    assert report.variants_created == 0
    assert all(sync.metafield_value(v.id, "enabled") == "0" for v in hemp)


def test_sync_all_isolates_configuration_errors(catalog, sync, generator):
    tin_id = sync.create_product("Metal Tin 8oz", "metal-tin-8oz", {})
    sync.create_product_options(
        tin_id,
        [ProductOption("Scent", ["Lavender"])],
        auto_generate_variants=True,
    )

    reports = generator.sync_all(sync, catalog)

    by_key = {r.vessel_key: r for r in reports}
    assert by_key[MASON].error is None
    assert len(by_key[MASON].variant_ids) == 6
    assert by_key["Metal Tin 8oz"].error is not None
    assert "Scent" in by_key["Metal Tin 8oz"].error


class _UnreachableCatalog(InMemoryCatalogSync):
    def list_variants(self, product_id):
        raise CatalogTransportError("connection reset")


def test_sync_all_propagates_transport_errors(catalog, generator):
    with pytest.raises(CatalogTransportError):
        generator.sync_all(_UnreachableCatalog(), catalog)


def test_in_memory_price_update_reports_unknown_ids(sync):
    product_id = sync.create_product("X", "x", {})
    result = sync.bulk_update_variant_prices(product_id, [PriceUpdate(id="gid://shopify/ProductVariant/999", price="1.00")])
    assert isinstance(result, BatchResult)
    assert not result.ok
    assert result.succeeded == []


def test_fractional_and_whole_sizes_get_separate_products(generator):
    catalog = IngredientCatalog(
        vessels=[Vessel("Jar", 8.5, 100, 20), Vessel("Jar", 85, 100, 20)],
        waxes=[Wax("Soy", 18)],
        wicks=[Wick("Cotton", 45)],
    )
    sync = InMemoryCatalogSync()

    reports = generator.sync_all(sync, catalog)

    assert len({r.product_id for r in reports}) == 2
    # 100 + 45 + 18 * 8.5 = 298 -> 357.6; 100 + 45 + 18 * 85 = 1675 -> 2010
    assert _prices(sync, reports[0].product_id) == {("Soy", "Cotton"): "3.58"}
    assert _prices(sync, reports[1].product_id) == {("Soy", "Cotton"): "20.10"}

    live = PricingDeltaEngine().load_live_variants(sync, catalog)
    assert len({v.variant_id for v in live}) == len(live) == 2


class _RepriceRejectingCatalog(InMemoryCatalogSync):
    def bulk_update_variant_prices(self, product_id, updates):
        return BatchResult(errors=["Price updates are locked"])


def test_new_product_variants_are_created_at_formula_price(catalog, generator):
    sync = _RepriceRejectingCatalog()

    report = generator.sync_vessel(sync, catalog, MASON)

    assert report.variants_created == 6
    assert report.variants_priced == 0
    assert any("locked" in w for w in report.warnings)
    prices = _prices(sync, report.product_id)
    assert prices[("Soy", "Cotton")] == "13.58"
    assert "0.00" not in prices.values()


def test_list_products_filters_by_type(catalog, sync, generator):
    generator.sync_vessel(sync, catalog, MASON)
    sync.create_product("Gift Card", "gift-card", {"product_type": "Gift"})

    products = sync.list_products("Magic Request")

    assert [p.handle for p in products] == ["mason-jar-16oz"]
    assert products[0].metafields["sizeOz"] == "16"


def _magic_request_product(sync, title, handle):
    product_id = sync.create_product(title, handle, {"product_type": "Magic Request"})
    sync.create_product_options(
        product_id,
        [ProductOption("Wax", ["Soy"]), ProductOption("Wick", ["Cotton"])],
        auto_generate_variants=True,
    )
    return product_id


def test_plan_deployment_is_read_only(catalog, sync, generator):
    generator.sync_vessel(sync, catalog, MASON)
    orphan_id = _magic_request_product(sync, "Teacup 4oz", "teacup-4oz")
    sync.create_product("Gift Card", "gift-card", {"product_type": "Gift"})
    writes_before = len(sync.writes)

    plan = generator.plan_deployment(sync, catalog)

    assert plan.to_create == ["Metal Tin 8oz"]
    assert plan.to_update == [MASON]
    assert plan.to_disable == {orphan_id: "Teacup 4oz"}
    assert plan.summary == "1 vessel(s) to create, 1 vessel(s) to update, 1 vessel(s) to disable"
    assert len(sync.writes) == writes_before


def test_plan_deployment_disables_products_of_disabled_vessels(catalog, sync, generator):
    mason = generator.sync_vessel(sync, catalog, MASON)
    catalog.disable_vessel(MASON)

    plan = generator.plan_deployment(sync, catalog)

    assert plan.to_create == ["Metal Tin 8oz"]
    assert plan.to_update == []
    assert list(plan.to_disable) == [mason.product_id]


def test_deploy_disables_stale_products_then_syncs(catalog, sync, generator):
    mason = generator.sync_vessel(sync, catalog, MASON)
    orphan_id = _magic_request_product(sync, "Teacup 4oz", "teacup-4oz")
    catalog.disable_vessel(MASON)

    result = generator.deploy(sync, catalog)

    assert result.products_disabled == 2
    assert result.variants_disabled == 7
    for product_id in (mason.product_id, orphan_id):
        assert all(sync.metafield_value(v.id, "enabled") == "0" for v in sync.list_variants(product_id))

    assert [r.vessel_key for r in result.reports] == ["Metal Tin 8oz"]
    assert not result.failed
    assert sync.find_product_by_handle("metal-tin-8oz") is not None
    # Products are never deleted
    assert len(sync.products) == 3


def test_deploy_keeps_configuration_errors_per_vessel(catalog, sync, generator):
    tin_id = sync.create_product("Metal Tin 8oz", "metal-tin-8oz", {"product_type": "Magic Request"})
    sync.create_product_options(tin_id, [ProductOption("Scent", ["Lavender"])], auto_generate_variants=True)

    result = generator.deploy(sync, catalog)

    assert [r.vessel_key for r in result.failed] == ["Metal Tin 8oz"]
    assert any("Metal Tin 8oz" in w for w in result.warnings)
    assert sync.find_product_by_handle("mason-jar-16oz") is not None
