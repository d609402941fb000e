"""
Vessel registration tests - input validation, duplicate rejection, live
duplicate check and inventory activation.
"""
import threading

import pytest

from candle_pricing.engine.errors import ValidationError
from candle_pricing.engine.models import Status
from candle_pricing.services.vessel_service import (
    DebouncedKeyCheck,
    VesselAvailability,
    VesselRegistrationService,
    validate_vessel_input,
)
from candle_pricing.sync.memory_catalog import InMemoryCatalogSync


@pytest.fixture
def service(store, sync, generator):
    return VesselRegistrationService(store, sync, generator, default_inventory_quantity=999)


def test_validate_vessel_input_normalizes():
    vessel = validate_vessel_input("  amber glass ", "12", "6.505", 25, " Acme ")
    assert vessel.name == "Amber Glass"
    assert vessel.size_oz == 12
    assert vessel.base_cost_cents == 651
    assert vessel.margin_pct == 25.0
    assert vessel.supplier == "Acme"


@pytest.mark.parametrize("name,size,cost,margin,field", [
    ("", 8, 1, 20, 'name'),
    ("Jar", 0, 1, 20, 'size_oz'),
    ("Jar", -2, 1, 20, 'size_oz'),
    ("Jar", 8.5, 1, 20, 'size_oz'),
    ("Jar", "eight", 1, 20, 'size_oz'),
    ("Jar", 8, -1, 20, 'base_cost'),
    ("Jar", 8, 1, -3, 'margin_pct'),
])
def test_validate_vessel_input_field_errors(name, size, cost, margin, field):
    with pytest.raises(ValidationError) as exc:
        validate_vessel_input(name, size, cost, margin)
    assert exc.value.field == field


def test_register_provisions_product_and_inventory(service, sync, store):
    result = service.register("amber glass", 12, "6.50", 20, "Acme")

    assert result.vessel_key == "Amber Glass 12oz"
    assert result.variant_count == 6
    assert result.inventory_activated == 6
    assert not result.warnings, f"Unexpected warnings: {result.warnings}"

    assert store.load().has_vessel("Amber Glass", 12)
    product = sync.find_product_by_handle("amber-glass-12oz")
    assert product.metafields["supplier"] == "Acme"
    assert product.metafields["vesselBaseCostCents"] == "650"
    levels = [q for (_, loc), q in sync.inventory_levels.items() if loc == sync.location_id]
    assert levels == [999] * 6


class _CountingCatalog(InMemoryCatalogSync):
    def __init__(self):
        super().__init__()
        self.calls = 0

    def find_product_by_handle(self, handle):
        self.calls += 1
        return super().find_product_by_handle(handle)


def test_duplicate_rejected_before_catalog_call(store, generator):
    sync = _CountingCatalog()
    service = VesselRegistrationService(store, sync, generator)
    with pytest.raises(ValidationError) as exc:
        service.register("MASON   jar", 16, "7.99")
    assert "Mason Jar 16oz" in exc.value.message
    assert sync.calls == 0
    assert sync.writes == []


def test_existing_catalog_handle_rejected(service, sync, store):
    sync.create_product("Amber Glass 12oz", "amber-glass-12oz", {})
    with pytest.raises(ValidationError):
        service.register("Amber Glass", 12, "6.50")
    assert not store.load().has_vessel("Amber Glass", 12)


class _FlakyInventoryCatalog(InMemoryCatalogSync):
    def __init__(self):
        super().__init__()
        self.attempts = 0

    def activate_inventory(self, inventory_item_id, location_id, quantity):
        self.attempts += 1
        if self.attempts % 3 == 0:
            return ["Inventory item is not stocked at this location"]
        return super().activate_inventory(inventory_item_id, location_id, quantity)


def test_inventory_failures_are_per_variant_warnings(store, generator):
    sync = _FlakyInventoryCatalog()
    service = VesselRegistrationService(store, sync, generator)
    result = service.register("Amber Glass", 12, "6.50")

    assert result.variant_count == 6
    assert result.inventory_activated == 4
    assert len(result.warnings) == 2
    assert store.load().has_vessel("Amber Glass", 12)


def test_no_location_is_a_warning(store, generator):
    sync = InMemoryCatalogSync(location_id=None)
    result = VesselRegistrationService(store, sync, generator).register("Amber Glass", 12, "6.50")
    assert result.inventory_activated == 0
    assert any("location" in w for w in result.warnings)


def test_check_available(service):
    taken = service.check_available("mason jar", "16")
    assert not taken.available
    assert taken.key == "Mason Jar 16oz"
    assert "already exists" in taken.message

    free = service.check_available("mason jar", 32)
    assert free.available
    assert free.key == "Mason Jar 32oz"

    bad = service.check_available("mason jar", "0")
    assert not bad.available


def test_debounced_check_runs_only_last_value():
    checked = []
    done = threading.Event()

    def check(name, size):
        checked.append((name, size))
        return VesselAvailability(key=f"{name} {size}oz", available=True)

    def on_result(result):
        done.set()

    debounce = DebouncedKeyCheck(check, on_result, delay=0.05)
    for partial in ("M", "Ma", "Mas", "Mason"):
        debounce.submit(partial, 16)

    assert done.wait(2.0)
    assert checked == [("Mason", 16)]


def test_debounced_check_flush_runs_immediately():
    checked = []

    def check(name, size):
        checked.append(name)
        return VesselAvailability(key=name, available=False, message="taken")

    debounce = DebouncedKeyCheck(check, delay=60)
    debounce.submit("Mason Jar", 16)
    result = debounce.flush()

    assert checked == ["Mason Jar"]
    assert result.message == "taken"
    assert debounce.flush() is result


def test_disable_soft_disables_and_marks_variants(service, sync, store, generator):
    generator.sync_all(sync, store.load())

    result = service.disable("Metal Tin 8oz")

    vessel = store.load().get_vessel("Metal Tin 8oz")
    assert vessel.status == Status.DISABLED
    assert result.variant_count == 6
    for variant in sync.list_variants(result.product_id):
        assert sync.metafield_value(variant.id, "enabled") == "0"


def test_blank_margin_uses_configured_default(store, sync, generator):
    assert validate_vessel_input("Jar", 8, 1).margin_pct == 20.0
    assert validate_vessel_input("Jar", 8, 1, "", default_margin_pct=35).margin_pct == 35.0

    service = VesselRegistrationService(store, sync, generator, default_margin_pct=30)
    result = service.register("Amber Glass", 12, "6.50")
    assert store.load().get_vessel(result.vessel_key).margin_pct == 30.0


def test_handle_collision_rejected_before_catalog_call(store, generator):
    sync = _CountingCatalog()
    service = VesselRegistrationService(store, sync, generator)
    with pytest.raises(ValidationError) as exc:
        service.register("Mason-jar", 16, "7.99")
    assert "Mason Jar 16oz" in exc.value.message
    assert sync.calls == 0
    assert not store.load().has_vessel("Mason-jar", 16)
