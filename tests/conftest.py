from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import pytest

from promo_pricing.scenarios import TARGET_SUPPLIER


def make_frame(rows: List[Dict]) -> pd.DataFrame:
    """Joined product frame with sensible defaults for omitted fields."""
    defaults = {
        "supplier_key": TARGET_SUPPLIER,
        "elasticity": 2.0,
        "margin": 0.2,
        "emissions_per_unit": 5.0,
    }
    records = []
    for i, row in enumerate(rows):
        rec = dict(defaults)
        rec["product_key"] = f"P{i}"
        rec.update(row)
        rec.setdefault("sales", rec["price"] * rec["volume"])
        records.append(rec)
    return pd.DataFrame(records)


@pytest.fixture
def example_frame() -> pd.DataFrame:
    return make_frame([{"price": 100.0, "volume": 10.0}])


def write_dataset(
    root: Path,
    sales: Optional[List[Dict]] = None,
    products: Optional[List[Dict]] = None,
) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    sales = sales if sales is not None else [
        {"ProductKey": "P1", "TransactionMonth": 7, "EstimatedUnitVolume": 10, "PredictedPrice": 100, "EstimatedSales": 1000},
        {"ProductKey": "P2", "TransactionMonth": 7, "EstimatedUnitVolume": 50, "PredictedPrice": 4, "EstimatedSales": 200},
        {"ProductKey": "P1", "TransactionMonth": 8, "EstimatedUnitVolume": 99, "PredictedPrice": 1, "EstimatedSales": 99},
    ]
    products = products if products is not None else [
        {
            "ProductKey": "P1",
            "BrandKey": "B1",
            "SupplierKey": TARGET_SUPPLIER,
            "ProductCategory_Lvl1": "Food",
            "ProductCategory_Lvl2": "Snacks",
            "Margin": "20%",
            "Elasticity": 2,
        },
        {
            "ProductKey": "P2",
            "BrandKey": "B2",
            "SupplierKey": "S2",
            "ProductCategory_Lvl1": "Food",
            "ProductCategory_Lvl2": "Dairy",
            "Margin": "10%",
            "Elasticity": 1,
        },
    ]
    pd.DataFrame(sales).to_csv(root / "Monthly_sales_forecast.csv", index=False)
    pd.DataFrame(products).to_csv(root / "product_table.csv", index=False)
    pd.DataFrame(
        [
            {"ProductCategory_Lvl1": "Food", "ProductCategory_Lvl2": "Snacks", "Est_Emission_Int": 3000, "Units": "g CO2/unit"},
            {"ProductCategory_Lvl1": "Food", "ProductCategory_Lvl2": "Dairy", "Est_Emission_Int": 1, "Units": "kg CO2/unit"},
        ]
    ).to_csv(root / "product_category_table.csv", index=False)
    pd.DataFrame(
        [
            {"BrandKey": "B1", "Est_Emission_Int": 1.5, "Units": "kg CO2/unit"},
            {"BrandKey": "B2", "Est_Emission_Int": 0.5, "Units": "kg CO2/unit"},
        ]
    ).to_csv(root / "brand_table.csv", index=False)
    pd.DataFrame(
        [
            {"SupplierKey": TARGET_SUPPLIER, "Distance /mi": 100, "Est_Emission_Int": 5, "Units": "g CO2/unit/mi"},
        ]
    ).to_csv(root / "supplier_table.csv", index=False)
    return root


@pytest.fixture
def dataset_dir(tmp_path) -> Path:
    return write_dataset(tmp_path / "CSVs")
