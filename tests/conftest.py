import os
import sys

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from candle_pricing.engine.catalog import IngredientCatalog, IngredientStore
from candle_pricing.engine.models import Vessel, Wax, Wick
from candle_pricing.engine.variant_generator import VariantGenerator
from candle_pricing.sync.memory_catalog import InMemoryCatalogSync


def build_catalog() -> IngredientCatalog:
    """Two vessels, two waxes, three wicks."""
    return IngredientCatalog(
        vessels=[
            Vessel(name="Mason Jar", size_oz=16, base_cost_cents=799, margin_pct=20),
            Vessel(name="Metal Tin", size_oz=8, base_cost_cents=399, margin_pct=20),
        ],
        waxes=[
            Wax(name="Soy", price_per_oz_cents=18),
            Wax(name="Paraffin-Soy", price_per_oz_cents=15),
        ],
        wicks=[
            Wick(name="Cotton", cost_cents=45),
            Wick(name="Hemp", cost_cents=55),
            Wick(name="Wood", cost_cents=65),
        ],
    )


@pytest.fixture
def catalog():
    return build_catalog()


@pytest.fixture
def store(tmp_path):
    store = IngredientStore(
        tmp_path / 'vessels.csv',
        tmp_path / 'waxes.csv',
        tmp_path / 'wicks.csv',
    )
    store.save(build_catalog())
    return store


@pytest.fixture
def sync():
    return InMemoryCatalogSync()


@pytest.fixture
def generator():
    return VariantGenerator()
