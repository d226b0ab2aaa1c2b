"""
Pricing: tax table, totals calculator, volume price adjuster.
"""

from pos_engine.pricing.tax_table import TAX_TABLE, Jurisdiction, get_jurisdiction, is_known_jurisdiction
from pos_engine.pricing.totals import compute_line, compute_totals
from pos_engine.pricing.volume import VolumePriceAdjuster, next_tier_info, select_tier

__all__ = [
    "TAX_TABLE",
    "Jurisdiction",
    "get_jurisdiction",
    "is_known_jurisdiction",
    "compute_line",
    "compute_totals",
    "VolumePriceAdjuster",
    "next_tier_info",
    "select_tier",
]
