"""
Generate a small synthetic data set in the layout the loader expects.

Run manually from the repository root:

    python scripts/generate_sample_data.py [n_products] [seed]

Outputs (under data/CSVs):
    Monthly_sales_forecast.csv
    product_table.csv
    product_category_table.csv
    brand_table.csv
    supplier_table.csv
"""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pandas as pd

ROOT = Path(__file__).resolve().parents[1]
OUT_DIR = ROOT / "data" / "CSVs"

sys.path.append(str(ROOT / "src"))
from promo_pricing.scenarios import TARGET_SUPPLIER  # noqa: E402

CATEGORIES = [
    ("Food", "Snacks"),
    ("Food", "Dairy"),
    ("Food", "Frozen"),
    ("Household", "Cleaning"),
    ("Household", "Paper"),
    ("Drinks", "Soft Drinks"),
]


def build_reference(rng: np.random.Generator, n_brands: int = 12, n_suppliers: int = 6):
    categories = pd.DataFrame(
        {
            "ProductCategory_Lvl1": [c[0] for c in CATEGORIES],
            "ProductCategory_Lvl2": [c[1] for c in CATEGORIES],
            "Est_Emission_Int": rng.uniform(200, 2500, len(CATEGORIES)).round(1),
            "Units": "g CO2/unit",
        }
    )
    brands = pd.DataFrame(
        {
            "BrandKey": [f"B{i:03d}" for i in range(n_brands)],
            "Est_Emission_Int": rng.uniform(0.05, 0.8, n_brands).round(3),
            "Units": "kg CO2/unit",
        }
    )
    supplier_keys = [TARGET_SUPPLIER] + [str(1098896200 + i) for i in range(n_suppliers - 1)]
    suppliers = pd.DataFrame(
        {
            "SupplierKey": supplier_keys,
            "Distance /mi": rng.integers(20, 600, n_suppliers),
            "Est_Emission_Int": rng.uniform(0.5, 3.0, n_suppliers).round(2),
            "Units": "g CO2/unit/mi",
        }
    )
    return categories, brands, suppliers


def build_products(rng: np.random.Generator, n_products: int, brands: pd.DataFrame, suppliers: pd.DataFrame):
    cat_idx = rng.integers(0, len(CATEGORIES), n_products)
    return pd.DataFrame(
        {
            "ProductKey": [f"P{i:05d}" for i in range(n_products)],
            "BrandKey": rng.choice(brands["BrandKey"], n_products),
            "SupplierKey": rng.choice(suppliers["SupplierKey"], n_products),
            "ProductCategory_Lvl1": [CATEGORIES[i][0] for i in cat_idx],
            "ProductCategory_Lvl2": [CATEGORIES[i][1] for i in cat_idx],
            "Margin": [f"{m:.1f}%" for m in rng.uniform(8, 35, n_products)],
            "Elasticity": rng.uniform(0.3, 2.5, n_products).round(2),
        }
    )


def build_sales(rng: np.random.Generator, products: pd.DataFrame, months=range(1, 13)) -> pd.DataFrame:
    rows = []
    base_price = rng.uniform(1.5, 40.0, len(products))
    base_volume = rng.lognormal(mean=8.0, sigma=1.0, size=len(products))
    for month in months:
        season = 1.0 + 0.15 * np.sin(2 * np.pi * month / 12.0)
        volume = (base_volume * season * rng.normal(1.0, 0.05, len(products))).round(0)
        price = (base_price * rng.normal(1.0, 0.02, len(products))).round(2)
        rows.append(
            pd.DataFrame(
                {
                    "ProductKey": products["ProductKey"],
                    "TransactionMonth": month,
                    "EstimatedUnitVolume": volume,
                    "PredictedPrice": price,
                    "EstimatedSales": (volume * price).round(2),
                }
            )
        )
    return pd.concat(rows, ignore_index=True)


def main(args=None):
    args = args or []
    n_products = int(args[0]) if len(args) > 0 else 200
    seed = int(args[1]) if len(args) > 1 else 42
    rng = np.random.default_rng(seed)

    categories, brands, suppliers = build_reference(rng)
    products = build_products(rng, n_products, brands, suppliers)
    sales = build_sales(rng, products)

    OUT_DIR.mkdir(parents=True, exist_ok=True)
    sales.to_csv(OUT_DIR / "Monthly_sales_forecast.csv", index=False)
    products.to_csv(OUT_DIR / "product_table.csv", index=False)
    categories.to_csv(OUT_DIR / "product_category_table.csv", index=False)
    brands.to_csv(OUT_DIR / "brand_table.csv", index=False)
    suppliers.to_csv(OUT_DIR / "supplier_table.csv", index=False)
    print(f"Wrote {len(products)} products and {len(sales)} sales rows to {OUT_DIR}")


if __name__ == "__main__":
    main(sys.argv[1:])
