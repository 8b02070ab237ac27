"""
Pack Size Pricing Analysis
Separates real price increases (same pack size getting more expensive) from
pack size switches, using the purchase history stored in MongoDB.
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from invoice_analyzer.config import CONFIG
from invoice_analyzer.storage.database import get_price_observations
from invoice_analyzer.processing.price_analyzer import compare_pack_sizes, find_same_pack_increases


def analyze_pack_size_pricing(product_number=None, limit=10):
    print("🔍 Analyzing pack size pricing patterns...\n")

    observations = get_price_observations(product_number=product_number)
    if observations.empty:
        print("⚠️  No line items found")
        return

    print(f"📊 Analyzing {observations['product_number'].nunique()} products...\n")

    increases = find_same_pack_increases(observations, limit=limit)
    comparisons = compare_pack_sizes(observations)

    print(f"📈 Real price increases within the same pack (>{CONFIG['pack_increase_threshold']:g}%): {len(increases)}")
    for idx, row in enumerate(increases.itertuples(index=False), start=1):
        print(f"  {idx}. {row.product_number} - {str(row.product_description)[:40]}")
        print(
            f"     {row.pack_size}: +{row.price_increase_percent:.1f}% "
            f"(${row.previous_price:,.2f} -> ${row.current_price:,.2f}, {row.purchase_frequency} purchases)"
        )

    print(f"\n🔀 Products bought in more than one pack size: {len(comparisons)}")
    for idx, row in enumerate(comparisons.head(limit).itertuples(index=False), start=1):
        print(f"  {idx}. {row.product_number} - {str(row.product_description)[:40]}")
        for pack in row.per_unit_comparison:
            marker = "⭐" if pack["pack_size"] == row.best_value_pack else "  "
            print(f"     {marker} {pack['pack_size']:<12} ${pack['unit_price']:,.2f} per case, "
                  f"${pack['per_unit_price']:,.4f} per unit")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Same-pack price increases and pack size comparison")
    parser.add_argument("--product", help="Only analyze this product number")
    parser.add_argument("--limit", type=int, default=10, help="Rows to print per section")
    args = parser.parse_args()

    analyze_pack_size_pricing(args.product, args.limit)
