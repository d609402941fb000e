"""
Candle Pricing Package

Pricing and variant engine for custom candles.
Turns Vessel × Wax × Wick choices into priced, SKU-tagged storefront variants
and previews / applies bulk price changes against the live catalog.
"""

__version__ = "1.0.0"
