"""
Vessel Service - registering new vessels and provisioning them in the catalog.

Registration runs in this order:
1. validate the raw operator input (field-specific errors)
2. reject duplicate identity keys and handles, before any catalog call
3. reject a handle the catalog already uses
4. persist the vessel in the ingredient store
5. run the Variant Generator sync for the new vessel
6. activate inventory for every resulting variant at the primary location

Inventory activation failures are per-variant warnings; nothing is rolled back.
"""
import logging
import threading
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable, Optional

from ..engine.catalog import IngredientStore
from ..engine.errors import ValidationError
from ..engine.models import RegistrationResult, Vessel, normalize_vessel_name, vessel_key
from ..engine.pricing import to_decimal
from ..engine.variant_generator import VariantGenerator
from ..sync.catalog_sync import CatalogSync

logger = logging.getLogger(__name__)


def _parse_size(value) -> int:
    text = str(value if value is not None else '').strip()
    try:
        size = Decimal(text)
    except (InvalidOperation, ValueError):
        raise ValidationError('size_oz', "Size must be a whole number of ounces")
    if not size.is_finite() or size != size.to_integral_value():
        raise ValidationError('size_oz', "Size must be a whole number of ounces")
    if size <= 0:
        raise ValidationError('size_oz', "Size must be greater than 0")
    return int(size)


def validate_vessel_input(
    name,
    size_oz,
    base_cost_dollars,
    margin_pct=None,
    supplier: Optional[str] = None,
    default_margin_pct: float = 20.0,
) -> Vessel:
    """Turn raw operator input into a normalized Vessel or raise ValidationError.

    A blank margin falls back to ``default_margin_pct``.
    """
    normalized = normalize_vessel_name(name or '')
    if not normalized:
        raise ValidationError('name', "Vessel name is required")
    size = _parse_size(size_oz)
    dollars = to_decimal(base_cost_dollars, 'base_cost')
    if margin_pct is None or str(margin_pct).strip() == '':
        margin_pct = default_margin_pct
    margin = to_decimal(margin_pct, 'margin_pct')
    return Vessel(
        name=normalized,
        size_oz=size,
        base_cost_cents=int((dollars * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP)),
        margin_pct=float(margin),
        supplier=(supplier or '').strip() or None,
    )


@dataclass
class VesselAvailability:
    """Result of a live duplicate check."""
    key: str
    available: bool
    message: str = ""

    def to_dict(self) -> dict:
        return {"key": self.key, "available": self.available, "message": self.message}


class DebouncedKeyCheck:
    """
    Duplicate check for input that is still being typed.

    Every submit() cancels the pending check and schedules a new one after
    ``delay`` seconds, so only the last value is checked. flush() runs the
    pending check immediately (e.g. on submit of the form).
    """

    def __init__(
        self,
        check: Callable[[str, object], VesselAvailability],
        on_result: Optional[Callable[[VesselAvailability], None]] = None,
        delay: float = 0.4,
    ):
        self.check = check
        self.on_result = on_result
        self.delay = delay
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._pending: Optional[tuple] = None
        self.last_result: Optional[VesselAvailability] = None

    def submit(self, name: str, size_oz):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = (name, size_oz)
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> Optional[VesselAvailability]:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        self._fire()
        return self.last_result

    def cancel(self):
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self._pending = None

    def _fire(self):
        with self._lock:
            pending, self._pending = self._pending, None
            self._timer = None
        if pending is None:
            return
        result = self.check(*pending)
        self.last_result = result
        if self.on_result:
            self.on_result(result)


class VesselRegistrationService:
    """Service for adding vessels and provisioning their catalog products."""

    def __init__(
        self,
        store: IngredientStore,
        sync: CatalogSync,
        generator: VariantGenerator,
        default_inventory_quantity: Optional[int] = 999,
        debounce_seconds: float = 0.4,
        default_margin_pct: float = 20.0,
    ):
        self.store = store
        self.sync = sync
        self.generator = generator
        self.default_inventory_quantity = default_inventory_quantity
        self.debounce_seconds = debounce_seconds
        self.default_margin_pct = default_margin_pct

    def list_vessels(self, include_disabled: bool = True) -> list[Vessel]:
        catalog = self.store.load()
        vessels = list(catalog.vessels.values())
        if not include_disabled:
            vessels = [v for v in vessels if v.enabled]
        return vessels

    def check_available(self, name, size_oz) -> VesselAvailability:
        """Normalized duplicate check against the ingredient store (no catalog call)."""
        normalized = normalize_vessel_name(name or '')
        try:
            size = _parse_size(size_oz)
        except ValidationError as e:
            return VesselAvailability(key=normalized, available=False, message=e.message)
        if not normalized:
            return VesselAvailability(key='', available=False, message="Vessel name is required")

        key = vessel_key(normalized, size)
        if self.store.load().has_vessel(normalized, size):
            return VesselAvailability(key=key, available=False, message=f"Vessel \"{key}\" already exists")
        return VesselAvailability(key=key, available=True)

    def live_check(self, on_result: Optional[Callable[[VesselAvailability], None]] = None) -> DebouncedKeyCheck:
        return DebouncedKeyCheck(self.check_available, on_result, delay=self.debounce_seconds)

    def register(
        self,
        name,
        size_oz,
        base_cost_dollars,
        margin_pct=None,
        supplier: Optional[str] = None,
    ) -> RegistrationResult:
        vessel = validate_vessel_input(
            name, size_oz, base_cost_dollars, margin_pct, supplier, self.default_margin_pct
        )
        result = RegistrationResult(vessel_key=vessel.key)
        result.add_trace("Input", "Normalized vessel", vessel.key)

        catalog = self.store.load()
        if catalog.has_vessel(vessel.name, vessel.size_oz):
            raise ValidationError('name', f"Vessel \"{vessel.key}\" already exists")
        catalog.add_vessel(vessel)

        if self.sync.find_product_by_handle(vessel.handle) is not None:
            raise ValidationError('name', f"A catalog product with handle \"{vessel.handle}\" already exists")

        self.store.save(catalog)
        result.add_trace("Store", "Saved vessel record")
        logger.info("Registered vessel %s", vessel.key)

        report = self.generator.sync_vessel(self.sync, catalog, vessel.key)
        result.sync = report
        result.product_id = report.product_id
        result.variant_count = len(report.variant_ids)
        for warning in report.warnings:
            result.add_warning(warning)
        result.add_trace("Sync", f"{result.variant_count} variants", report.product_id)

        self._activate_inventory(result, report.inventory_item_ids)
        return result

    def _activate_inventory(self, result: RegistrationResult, inventory_item_ids: list[str]):
        location_id = self.sync.get_primary_location_id()
        if not location_id:
            result.add_warning("No primary location; inventory not activated")
            return

        for item_id in inventory_item_ids:
            errors = self.sync.activate_inventory(item_id, location_id, self.default_inventory_quantity)
            if errors:
                for error in errors:
                    result.add_warning(f"Inventory {item_id}: {error}")
                    logger.warning("Inventory activation failed for %s: %s", item_id, error)
            else:
                result.inventory_activated += 1
        result.add_trace(
            "Inventory",
            f"Activated {result.inventory_activated}/{len(inventory_item_ids)} at {location_id}",
            str(self.default_inventory_quantity),
        )

    def disable(self, key: str) -> RegistrationResult:
        """Soft-disable a vessel and mark its catalog variants disabled."""
        catalog = self.store.load()
        catalog.disable_vessel(key)
        self.store.save(catalog)
        result = RegistrationResult(vessel_key=key)
        result.add_trace("Store", "Vessel disabled")

        vessel = catalog.get_vessel(key)
        product = self.sync.find_product_by_handle(vessel.handle)
        if product is None:
            result.add_trace("Catalog", "No catalog product")
            return result

        result.product_id = product.id
        count, errors = self.generator.disable_product(self.sync, product.id)
        for error in errors:
            result.add_warning(f"Metafield error: {error}")
        result.variant_count = count
        result.add_trace("Catalog", f"Marked {count} variants disabled", product.id)
        return result
