"""
Centralized settings and path configuration for the candle pricing engine.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


def get_project_root() -> Path:
    """Get the project root directory (where the data/ folder lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'data' / 'vessels.csv').exists() or (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 4 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "").strip()
    return float(value) if value else default


def _env_optional_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name, "").strip()
    if not value:
        return default
    if value.lower() in ('none', 'null', 'skip'):
        return None
    return int(value)


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path
    data_dir: Path

    # Ingredient collections
    vessels_csv: Path
    waxes_csv: Path
    wicks_csv: Path

    # Output files
    variants_export: Path

    # Pricing rules
    large_change_threshold_pct: float = 50.0
    default_margin_pct: float = 20.0

    # Provisioning
    default_inventory_quantity: Optional[int] = 999
    metafield_namespace: str = 'magic_request'
    product_type: str = 'Magic Request'
    product_tags: tuple = ('custom-candle', 'magic-request')

    # SKU token lengths (vessel, wax, wick)
    sku_token_lengths: tuple = (6, 3, 3)

    # Live duplicate check while composing a vessel
    vessel_check_debounce_seconds: float = 0.4

    # Catalog backend
    catalog_backend: str = 'memory'
    shopify_store_url: Optional[str] = None
    shopify_access_token: Optional[str] = None
    shopify_api_version: str = '2025-07'

    @property
    def has_shopify_credentials(self) -> bool:
        return bool(self.shopify_store_url and self.shopify_access_token)

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        load_dotenv()
        root = project_root or get_project_root()

        data_dir = Path(os.getenv('CANDLE_PRICING_DATA_DIR', '') or root / 'data')

        store_url = os.getenv('SHOPIFY_STORE_URL') or None
        token = os.getenv('SHOPIFY_ADMIN_ACCESS_TOKEN') or None
        backend = os.getenv('CATALOG_BACKEND', '').strip().lower()
        if not backend:
            backend = 'shopify' if (store_url and token) else 'memory'

        return cls(
            project_root=root,
            data_dir=data_dir,
            vessels_csv=data_dir / 'vessels.csv',
            waxes_csv=data_dir / 'waxes.csv',
            wicks_csv=data_dir / 'wicks.csv',
            variants_export=data_dir / 'outputs' / 'variant_combinations.csv',
            large_change_threshold_pct=_env_float('LARGE_CHANGE_THRESHOLD_PCT', 50.0),
            default_margin_pct=_env_float('DEFAULT_MARGIN_PCT', 20.0),
            default_inventory_quantity=_env_optional_int('DEFAULT_INVENTORY_QUANTITY', 999),
            vessel_check_debounce_seconds=_env_float('VESSEL_CHECK_DEBOUNCE_SECONDS', 0.4),
            catalog_backend=backend,
            shopify_store_url=store_url,
            shopify_access_token=token,
            shopify_api_version=os.getenv('SHOPIFY_API_VERSION', '2025-07'),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
