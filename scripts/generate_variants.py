#!/usr/bin/env python
"""
Generate variants - print every enabled Vessel × Wax × Wick combination
and export them to CSV for review.

Usage:
    python scripts/generate_variants.py [output.csv]
"""
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from candle_pricing.config.settings import get_settings
from candle_pricing.engine.catalog import IngredientStore
from candle_pricing.engine.variant_generator import VariantGenerator


def main():
    settings = get_settings()
    catalog = IngredientStore.from_settings(settings).load()
    generator = VariantGenerator.from_settings(settings)

    combinations = generator.generate(catalog)
    df = generator.to_dataframe(combinations)

    print(df[['SKU', 'Container', 'Wax', 'Wick', 'Price']].to_string(index=False))
    print()

    output = Path(sys.argv[1]) if len(sys.argv) > 1 else settings.variants_export
    generator.export_csv(combinations, output)
    print(f"✅ {len(combinations)} combinations written to {output}")


if __name__ == "__main__":
    main()
