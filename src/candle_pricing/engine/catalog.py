"""
Ingredient Catalog - vessels, waxes and wicks with their cost attributes.

The catalog is an explicit value handed to the generator and the delta
engine; nothing reads pricing tables from module constants. IngredientStore
persists the three collections as CSV files (row order = enumeration order).
"""
import logging
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Optional

import pandas as pd

from .errors import ConfigurationError, ValidationError
from .models import (
    PricingChangeSet,
    Status,
    Vessel,
    Wax,
    Wick,
    normalize_vessel_name,
    vessel_key,
)
from .pricing import to_decimal

logger = logging.getLogger(__name__)


class IngredientKind(str, Enum):
    VESSEL = "vessel"
    WAX = "wax"
    WICK = "wick"


def _require_cents(value, field: str) -> int:
    """Non-negative integer number of cents."""
    number = to_decimal(value, field)
    if number != number.to_integral_value():
        raise ValidationError(field, f"must be a whole number of cents, got {value!r}")
    return int(number)


def _require_name(value, field: str = 'name') -> str:
    name = " ".join(str(value or '').split())
    if not name:
        raise ValidationError(field, "is required")
    return name


def _parse_status(value) -> Status:
    if isinstance(value, Status):
        return value
    text = str(value or '').strip().lower()
    if not text:
        return Status.ENABLED
    try:
        return Status(text)
    except ValueError:
        raise ValidationError('status', f"must be 'enabled' or 'disabled', got {value!r}")


class IngredientCatalog:
    """
    The three ingredient collections.

    Each collection is keyed by identity key and keeps insertion order, which
    is the order the Variant Generator enumerates.
    """

    def __init__(
        self,
        vessels: Optional[list[Vessel]] = None,
        waxes: Optional[list[Wax]] = None,
        wicks: Optional[list[Wick]] = None,
    ):
        self.vessels: dict[str, Vessel] = {}
        self.waxes: dict[str, Wax] = {}
        self.wicks: dict[str, Wick] = {}

        for vessel in vessels or []:
            self.add_vessel(vessel)
        for wax in waxes or []:
            self.add_wax(wax)
        for wick in wicks or []:
            self.add_wick(wick)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def add_vessel(self, vessel: Vessel) -> Vessel:
        """Validate, normalize and add a vessel. Duplicate keys and handles are rejected."""
        name = normalize_vessel_name(_require_name(vessel.name))
        size = to_decimal(vessel.size_oz, 'size_oz', positive=True)
        vessel = replace(
            vessel,
            name=name,
            size_oz=int(size) if size == size.to_integral_value() else float(size),
            base_cost_cents=_require_cents(vessel.base_cost_cents, 'base_cost_cents'),
            margin_pct=float(to_decimal(vessel.margin_pct, 'margin_pct')),
            supplier=(vessel.supplier or None),
            status=_parse_status(vessel.status),
        )
        if vessel.key in self.vessels:
            raise ValidationError('name', f"Vessel \"{vessel.key}\" already exists")
        # One catalog product per vessel
        other = self.find_vessel_by_handle(vessel.handle)
        if other is not None:
            raise ValidationError(
                'name', f"Vessel \"{vessel.key}\" would share handle \"{vessel.handle}\" with \"{other.key}\""
            )
        self.vessels[vessel.key] = vessel
        return vessel

    def add_wax(self, wax: Wax) -> Wax:
        wax = replace(
            wax,
            name=_require_name(wax.name),
            price_per_oz_cents=_require_cents(wax.price_per_oz_cents, 'price_per_oz_cents'),
            status=_parse_status(wax.status),
        )
        if wax.key in self.waxes:
            raise ValidationError('name', f"Wax \"{wax.key}\" already exists")
        self.waxes[wax.key] = wax
        return wax

    def add_wick(self, wick: Wick) -> Wick:
        wick = replace(
            wick,
            name=_require_name(wick.name),
            cost_cents=_require_cents(wick.cost_cents, 'cost_cents'),
            status=_parse_status(wick.status),
        )
        if wick.key in self.wicks:
            raise ValidationError('name', f"Wick \"{wick.key}\" already exists")
        self.wicks[wick.key] = wick
        return wick

    def update_vessel(
        self,
        key: str,
        base_cost_cents: Optional[int] = None,
        margin_pct: Optional[float] = None,
        supplier: Optional[str] = None,
    ) -> Vessel:
        """Edit cost / margin fields. Name and size are the identity and cannot change."""
        vessel = self.get_vessel(key)
        updates = {}
        if base_cost_cents is not None:
            updates['base_cost_cents'] = _require_cents(base_cost_cents, 'base_cost_cents')
        if margin_pct is not None:
            updates['margin_pct'] = float(to_decimal(margin_pct, 'margin_pct'))
        if supplier is not None:
            updates['supplier'] = supplier or None
        self.vessels[key] = replace(vessel, **updates)
        return self.vessels[key]

    def set_status(self, kind: IngredientKind, key: str, status: Status):
        """Enable or soft-disable an ingredient. Nothing is ever removed."""
        kind = IngredientKind(kind)
        collection = self._collection(kind)
        if key not in collection:
            raise ConfigurationError(f"Unknown {kind.value}: {key}")
        status = _parse_status(status)
        collection[key] = replace(collection[key], status=status)
        logger.info("%s %s set to %s", kind.value, key, status.value)

    def disable_vessel(self, key: str):
        self.set_status(IngredientKind.VESSEL, key, Status.DISABLED)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def get_vessel(self, key: str) -> Vessel:
        try:
            return self.vessels[key]
        except KeyError:
            raise ConfigurationError(f"Missing pricing config for vessel {key!r}")

    def get_wax(self, name: str) -> Wax:
        try:
            return self.waxes[name]
        except KeyError:
            raise ConfigurationError(f"Missing pricing config for wax {name!r}")

    def get_wick(self, name: str) -> Wick:
        try:
            return self.wicks[name]
        except KeyError:
            raise ConfigurationError(f"Missing pricing config for wick {name!r}")

    def has_vessel(self, name: str, size_oz: float) -> bool:
        """Duplicate check on the normalized identity key."""
        return vessel_key(name, size_oz) in self.vessels

    def find_vessel_by_handle(self, handle: str) -> Optional[Vessel]:
        for vessel in self.vessels.values():
            if vessel.handle == handle:
                return vessel
        return None

    def active_vessels(self) -> list[Vessel]:
        return [v for v in self.vessels.values() if v.enabled]

    def active_waxes(self) -> list[Wax]:
        return [w for w in self.waxes.values() if w.enabled]

    def active_wicks(self) -> list[Wick]:
        return [w for w in self.wicks.values() if w.enabled]

    def _collection(self, kind: IngredientKind) -> dict:
        return {
            IngredientKind.VESSEL: self.vessels,
            IngredientKind.WAX: self.waxes,
            IngredientKind.WICK: self.wicks,
        }[IngredientKind(kind)]

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def copy(self) -> 'IngredientCatalog':
        clone = IngredientCatalog()
        clone.vessels = {k: replace(v) for k, v in self.vessels.items()}
        clone.waxes = {k: replace(w) for k, w in self.waxes.items()}
        clone.wicks = {k: replace(w) for k, w in self.wicks.items()}
        return clone

    def validate_change_set(self, change_set: PricingChangeSet):
        """Reject unknown keys and malformed costs before any computation."""
        for name, cents in change_set.waxes.items():
            if name not in self.waxes:
                raise ValidationError(f"wax.{name}", "unknown wax")
            _require_cents(cents, f"wax.{name}.pricePerOzCents")
        for name, cents in change_set.wicks.items():
            if name not in self.wicks:
                raise ValidationError(f"wick.{name}", "unknown wick")
            _require_cents(cents, f"wick.{name}.costCents")
        for key, cents in change_set.vessels.items():
            if key not in self.vessels:
                raise ValidationError(f"vessel.{key}", "unknown vessel")
            _require_cents(cents, f"vessel.{key}.baseCostCents")

    def with_changes(self, change_set: PricingChangeSet) -> 'IngredientCatalog':
        """A new catalog with the proposed overrides applied; self is untouched."""
        self.validate_change_set(change_set)
        updated = self.copy()
        for name, cents in change_set.waxes.items():
            updated.waxes[name] = replace(updated.waxes[name], price_per_oz_cents=_require_cents(cents, name))
        for name, cents in change_set.wicks.items():
            updated.wicks[name] = replace(updated.wicks[name], cost_cents=_require_cents(cents, name))
        for key, cents in change_set.vessels.items():
            updated.vessels[key] = replace(updated.vessels[key], base_cost_cents=_require_cents(cents, key))
        return updated

    def to_dict(self) -> dict:
        return {
            "vessels": {
                key: {
                    "name": v.name,
                    "sizeOz": v.size_oz,
                    "baseCostCents": v.base_cost_cents,
                    "marginPct": v.margin_pct,
                    "supplier": v.supplier,
                    "status": v.status.value,
                }
                for key, v in self.vessels.items()
            },
            "waxes": {
                key: {"pricePerOzCents": w.price_per_oz_cents, "status": w.status.value}
                for key, w in self.waxes.items()
            },
            "wicks": {
                key: {"costCents": w.cost_cents, "status": w.status.value}
                for key, w in self.wicks.items()
            },
        }


class IngredientStore:
    """
    CSV-backed persistence for the ingredient collections.

    Every load() returns a fresh snapshot; no long-lived lock is held.
    """

    VESSEL_COLUMNS = ['name', 'size_oz', 'base_cost_cents', 'margin_pct', 'supplier', 'status']
    WAX_COLUMNS = ['name', 'price_per_oz_cents', 'status']
    WICK_COLUMNS = ['name', 'cost_cents', 'status']

    def __init__(
        self,
        vessels_csv: Path,
        waxes_csv: Path,
        wicks_csv: Path,
        default_margin_pct: float = 20.0,
    ):
        self.vessels_csv = Path(vessels_csv)
        self.waxes_csv = Path(waxes_csv)
        self.wicks_csv = Path(wicks_csv)
        self.default_margin_pct = default_margin_pct

    @classmethod
    def from_settings(cls, settings) -> 'IngredientStore':
        return cls(
            settings.vessels_csv,
            settings.waxes_csv,
            settings.wicks_csv,
            default_margin_pct=settings.default_margin_pct,
        )

    def _load_csv(self, path: Path) -> pd.DataFrame:
        if path.exists():
            df = pd.read_csv(path, dtype=str).fillna('')
            # Strip all strings and headers
            df.columns = [c.strip() for c in df.columns]
            for col in df.columns:
                df[col] = df[col].astype(str).str.strip()
            return df
        return pd.DataFrame()

    def load(self) -> IngredientCatalog:
        """Read all three collections into a new IngredientCatalog."""
        catalog = IngredientCatalog()

        for path, add in (
            (self.vessels_csv, lambda r: catalog.add_vessel(Vessel(
                name=r['name'],
                size_oz=r['size_oz'],
                base_cost_cents=r['base_cost_cents'],
                margin_pct=r.get('margin_pct') or self.default_margin_pct,
                supplier=r.get('supplier') or None,
                status=r.get('status', ''),
            ))),
            (self.waxes_csv, lambda r: catalog.add_wax(Wax(
                name=r['name'],
                price_per_oz_cents=r['price_per_oz_cents'],
                status=r.get('status', ''),
            ))),
            (self.wicks_csv, lambda r: catalog.add_wick(Wick(
                name=r['name'],
                cost_cents=r['cost_cents'],
                status=r.get('status', ''),
            ))),
        ):
            df = self._load_csv(path)
            for line_num, row in enumerate(df.to_dict(orient='records'), start=2):
                if not row.get('name'):
                    continue
                try:
                    add(row)
                except (KeyError, ValidationError) as e:
                    raise ConfigurationError(f"{path.name} line {line_num}: {e}") from e

        logger.info(
            "Loaded ingredients: vessels=%d waxes=%d wicks=%d",
            len(catalog.vessels), len(catalog.waxes), len(catalog.wicks),
        )
        return catalog

    def save(self, catalog: IngredientCatalog):
        """Rewrite all three CSV files from the catalog."""
        vessels = pd.DataFrame(
            [
                {
                    'name': v.name,
                    'size_oz': v.size_oz,
                    'base_cost_cents': v.base_cost_cents,
                    'margin_pct': v.margin_pct,
                    'supplier': v.supplier or '',
                    'status': v.status.value,
                }
                for v in catalog.vessels.values()
            ],
            columns=self.VESSEL_COLUMNS,
        )
        waxes = pd.DataFrame(
            [
                {'name': w.name, 'price_per_oz_cents': w.price_per_oz_cents, 'status': w.status.value}
                for w in catalog.waxes.values()
            ],
            columns=self.WAX_COLUMNS,
        )
        wicks = pd.DataFrame(
            [
                {'name': w.name, 'cost_cents': w.cost_cents, 'status': w.status.value}
                for w in catalog.wicks.values()
            ],
            columns=self.WICK_COLUMNS,
        )

        for df, path in ((vessels, self.vessels_csv), (waxes, self.waxes_csv), (wicks, self.wicks_csv)):
            path.parent.mkdir(parents=True, exist_ok=True)
            df.to_csv(path, index=False)
