"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation.
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .pricing import format_price


class Status(str, Enum):
    """Lifecycle flag shared by vessels, waxes and wicks (never hard-deleted)."""
    ENABLED = "enabled"
    DISABLED = "disabled"


class PriceChangeKind(str, Enum):
    UNCHANGED = "unchanged"
    INCREASE = "increase"
    DECREASE = "decrease"


def normalize_vessel_name(raw: str) -> str:
    """Title-case each whitespace-separated token ("mason  jar" -> "Mason Jar")."""
    return " ".join(token[:1].upper() + token[1:].lower() for token in str(raw).split())


def format_size_oz(size_oz: float) -> str:
    """Render a size without a trailing .0 for whole ounces."""
    size = float(size_oz)
    return str(int(size)) if size.is_integer() else f"{size:g}"


def slugify(value: str) -> str:
    value = re.sub(r"\s+", "-", str(value).strip().lower())
    return re.sub(r"[^a-z0-9-]", "", value)


def vessel_key(name: str, size_oz: float) -> str:
    """Identity key of a vessel, e.g. "Mason Jar 16oz"."""
    return f"{normalize_vessel_name(name)} {format_size_oz(size_oz)}oz"


def vessel_handle(name: str, size_oz: float) -> str:
    """Catalog product handle of a vessel, e.g. "mason-jar-16oz", "jar-8p5oz"."""
    size = format_size_oz(size_oz).replace('.', 'p')
    return slugify(f"{normalize_vessel_name(name)} {size}oz")


@dataclass
class TraceStep:
    """A single step in a sync / registration trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class Vessel:
    """A container definition."""
    name: str
    size_oz: float
    base_cost_cents: int
    margin_pct: float = 20.0
    supplier: Optional[str] = None
    status: Status = Status.ENABLED

    @property
    def key(self) -> str:
        return vessel_key(self.name, self.size_oz)

    @property
    def handle(self) -> str:
        return vessel_handle(self.name, self.size_oz)

    @property
    def enabled(self) -> bool:
        return self.status == Status.ENABLED


@dataclass
class Wax:
    name: str
    price_per_oz_cents: int
    status: Status = Status.ENABLED

    @property
    def key(self) -> str:
        return self.name

    @property
    def enabled(self) -> bool:
        return self.status == Status.ENABLED


@dataclass
class Wick:
    name: str
    cost_cents: int
    status: Status = Status.ENABLED

    @property
    def key(self) -> str:
        return self.name

    @property
    def enabled(self) -> bool:
        return self.status == Status.ENABLED


@dataclass
class VariantCombination:
    """A priced (Vessel, Wax, Wick) triple. Derived, never persisted."""
    id: str
    sku: str
    handle: str
    container: str
    vessel_name: str
    size_oz: float
    wax: str
    wick: str
    price_cents: int
    margin_pct: float

    @property
    def price(self) -> str:
        return format_price(self.price_cents)

    @property
    def title(self) -> str:
        return f"{self.wax} / {self.wick}"

    def to_row(self) -> dict:
        """Flat row used for display and CSV export."""
        return {
            "ID": self.id,
            "SKU": self.sku,
            "Container": self.container,
            "Vessel": self.vessel_name,
            "Size Oz": self.size_oz,
            "Wax": self.wax,
            "Wick": self.wick,
            "Price": self.price,
            "Margin Pct": self.margin_pct,
            "Handle": self.handle,
        }


@dataclass
class PricingChangeSet:
    """
    Proposed ingredient cost overrides, kept apart from committed values.

    Sparse: only edited keys are present. Keys are ingredient identity keys
    (wax name, wick name, vessel key such as "Mason Jar 16oz").
    """
    waxes: dict[str, int] = field(default_factory=dict)     # name -> price per oz (cents)
    wicks: dict[str, int] = field(default_factory=dict)     # name -> cost (cents)
    vessels: dict[str, int] = field(default_factory=dict)   # key -> base cost (cents)

    def is_empty(self) -> bool:
        return not (self.waxes or self.wicks or self.vessels)

    def clear(self):
        self.waxes.clear()
        self.wicks.clear()
        self.vessels.clear()

    @classmethod
    def from_dict(cls, data: dict) -> 'PricingChangeSet':
        """
        Build from the admin screen payload shape:

            {"wax": {"Soy": {"pricePerOzCents": 20}},
             "wick": {"Hemp": {"costCents": 60}},
             "vessel": {"Mason Jar 16oz": {"baseCostCents": 850}}}

        Bare integers are accepted in place of the inner objects.
        """
        def _pick(section: dict, field_name: str) -> dict[str, int]:
            picked = {}
            for key, value in (section or {}).items():
                if isinstance(value, dict):
                    value = value.get(field_name)
                picked[str(key)] = value
            return picked

        data = data or {}
        return cls(
            waxes=_pick(data.get('wax'), 'pricePerOzCents'),
            wicks=_pick(data.get('wick'), 'costCents'),
            vessels=_pick(data.get('vessel'), 'baseCostCents'),
        )


@dataclass
class LiveVariant:
    """A variant as it currently exists in the storefront catalog."""
    product_id: str
    product_title: str
    vessel_key: str
    variant_id: str
    variant_title: str
    wax: str
    wick: str
    price: str


@dataclass
class PriceChange:
    """Per-variant preview record."""
    product_id: str
    product_title: str
    variant_id: str
    variant_title: str
    current_price: str
    new_price: str
    change_description: str
    wax: str
    wick: str
    container: str
    kind: PriceChangeKind = PriceChangeKind.UNCHANGED
    large_change: bool = False
    change_pct: Optional[float] = None

    @property
    def changed(self) -> bool:
        return self.kind != PriceChangeKind.UNCHANGED


@dataclass
class PreviewSummary:
    total_variants: int = 0
    variants_with_changes: int = 0
    total_price_increase_cents: int = 0
    total_price_decrease_cents: int = 0

    @property
    def total_price_increase_dollars(self) -> str:
        return format_price(self.total_price_increase_cents)

    @property
    def total_price_decrease_dollars(self) -> str:
        return format_price(self.total_price_decrease_cents)

    def to_dict(self) -> dict:
        return {
            "totalVariants": self.total_variants,
            "variantsWithChanges": self.variants_with_changes,
            "totalPriceIncreaseDollars": self.total_price_increase_dollars,
            "totalPriceDecreaseDollars": self.total_price_decrease_dollars,
        }


@dataclass
class PricingPreview:
    """Read-only diff of a change set against the live catalog."""
    changes: list[PriceChange]
    summary: PreviewSummary
    threshold_pct: float = 50.0
    warnings: list[str] = field(default_factory=list)

    @property
    def changed(self) -> list[PriceChange]:
        return [c for c in self.changes if c.changed]

    @property
    def large_changes(self) -> list[PriceChange]:
        return [c for c in self.changes if c.large_change]

    @property
    def new_prices(self) -> set[str]:
        """Prices an operator may type to confirm an apply."""
        return {c.new_price for c in self.changed}

    def add_warning(self, warning: str):
        self.warnings.append(warning)


class _TracedResult:
    """Trace / warning helpers shared by the long-running result types."""

    trace: list[TraceStep]
    warnings: list[str]

    def add_trace(self, step: str, description: str, value: str = None):
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        if warning not in self.warnings:
            self.warnings.append(warning)

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)


@dataclass
class SyncReport(_TracedResult):
    """Outcome of reconciling one vessel's variants against the catalog."""
    vessel_key: str
    product_id: Optional[str] = None
    created_product: bool = False
    variants_existing: int = 0
    variants_created: int = 0
    variants_priced: int = 0
    variant_ids: list[str] = field(default_factory=list)
    inventory_item_ids: list[str] = field(default_factory=list)
    error: Optional[str] = None
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)


@dataclass
class DeploymentPlan:
    """
    Read-only diff of the configured vessels against the catalog's products.

    to_create / to_update hold vessel keys. to_disable maps product id to
    title for products of disabled vessels and for products no configured
    vessel matches.
    """
    to_create: list[str] = field(default_factory=list)
    to_update: list[str] = field(default_factory=list)
    to_disable: dict[str, str] = field(default_factory=dict)

    @property
    def summary(self) -> str:
        parts = [
            f"{len(items)} vessel(s) to {action}"
            for action, items in (
                ("create", self.to_create),
                ("update", self.to_update),
                ("disable", self.to_disable),
            )
            if items
        ]
        return ", ".join(parts) or "No changes needed"

    def to_dict(self) -> dict:
        return {
            "vesselsToCreate": list(self.to_create),
            "vesselsToUpdate": list(self.to_update),
            "productsToDisable": [{"id": pid, "title": title} for pid, title in self.to_disable.items()],
            "summary": self.summary,
        }


@dataclass
class DeploymentResult(_TracedResult):
    """Outcome of a deploy: disabled products plus one SyncReport per enabled vessel."""
    plan: DeploymentPlan
    reports: list[SyncReport] = field(default_factory=list)
    products_disabled: int = 0
    variants_disabled: int = 0
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    @property
    def failed(self) -> list[SyncReport]:
        return [r for r in self.reports if r.error]


@dataclass
class ApplyResult(_TracedResult):
    """Outcome of a confirmed apply. Not transactional: partial success is reported."""
    variants_updated: int = 0
    variants_planned: int = 0
    warnings: list[str] = field(default_factory=list)
    large_change_warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)
    catalog: Optional[object] = None  # reloaded IngredientCatalog

    @property
    def partial(self) -> bool:
        return bool(self.warnings) or self.variants_updated < self.variants_planned


@dataclass
class RegistrationResult(_TracedResult):
    """Outcome of registering a new vessel."""
    vessel_key: str
    product_id: Optional[str] = None
    variant_count: int = 0
    inventory_activated: int = 0
    sync: Optional[SyncReport] = None
    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)
