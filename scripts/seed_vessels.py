#!/usr/bin/env python
"""
Seed vessels - upsert every enabled vessel's product and variants into the catalog.

Safe to re-run: reconciliation only creates missing variants and reprices
everything to the current formula. A full run also marks the products of
disabled or unknown vessels disabled.

Usage:
    python scripts/seed_vessels.py            # deploy all vessels
    python scripts/seed_vessels.py "Mason Jar 16oz"
"""
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from candle_pricing.config.settings import get_settings
from candle_pricing.engine.catalog import IngredientStore
from candle_pricing.engine.errors import CatalogTransportError, ConfigurationError
from candle_pricing.engine.variant_generator import VariantGenerator
from candle_pricing.sync import build_catalog_sync


def main():
    settings = get_settings()
    print("=" * 60)
    print("SEED VESSELS")
    print("=" * 60)
    print(f"Catalog backend: {settings.catalog_backend}")
    if settings.catalog_backend == 'memory':
        print("  (no Shopify credentials - dry run against an in-memory catalog)")
    print()

    catalog = IngredientStore.from_settings(settings).load()
    sync = build_catalog_sync(settings)
    generator = VariantGenerator.from_settings(settings)

    try:
        if len(sys.argv) > 1:
            reports = [generator.sync_vessel(sync, catalog, key) for key in sys.argv[1:]]
        else:
            result = generator.deploy(sync, catalog)
            print(f"Plan: {result.plan.summary}")
            for title in result.plan.to_disable.values():
                print(f"  disabled: {title}")
            print()
            reports = result.reports
    except ConfigurationError as e:
        print(f"\n❌ CONFIGURATION ERROR: {e}")
        sys.exit(1)
    except CatalogTransportError as e:
        print(f"\n❌ CATALOG UNREACHABLE: {e}")
        print("  Re-run the script; reconciliation is safe to repeat.")
        sys.exit(1)

    failed = 0
    for report in reports:
        print(f"{report.vessel_key}")
        if report.error:
            failed += 1
            print(f"  ❌ {report.error}")
            continue
        print(f"  product:  {report.product_id}{' (created)' if report.created_product else ''}")
        print(f"  variants: existing={report.variants_existing} "
              f"created={report.variants_created} priced={report.variants_priced}")
        for warning in report.warnings:
            print(f"  ⚠️  {warning}")

    print()
    print("=" * 60)
    print(f"✅ Seeded {len(reports) - failed}/{len(reports)} vessels")
    print("=" * 60)
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
