"""
Load the sales and reference CSVs and join them into one product frame.

The engine works on a single flat table: one row per product for the
configured period, carrying price, volume, margin, elasticity and the
per-unit emission footprint.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from .emissions import EmissionIndex, attach_emissions

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Configuration containers
# ---------------------------------------------------------------------------


@dataclass
class DataConfig:
    """Where the CSVs live and which period to analyse."""

    data_dir: Path = Path("data/CSVs")
    sales_file: str = "Monthly_sales_forecast.csv"
    product_file: str = "product_table.csv"
    category_file: str = "product_category_table.csv"
    brand_file: str = "brand_table.csv"
    supplier_file: str = "supplier_table.csv"
    period: str = "7"


SALES_COLUMNS = {
    "ProductKey": "product_key",
    "TransactionMonth": "period",
    "EstimatedUnitVolume": "volume",
    "PredictedPrice": "price",
    "EstimatedSales": "sales",
}
PRODUCT_COLUMNS = {
    "ProductKey": "product_key",
    "BrandKey": "brand_key",
    "SupplierKey": "supplier_key",
    "ProductCategory_Lvl1": "category_lvl1",
    "ProductCategory_Lvl2": "category_lvl2",
    "Margin": "margin",
    "Elasticity": "elasticity",
}
CATEGORY_COLUMNS = {
    "ProductCategory_Lvl1": "category_lvl1",
    "ProductCategory_Lvl2": "category_lvl2",
    "Est_Emission_Int": "emission_intensity",
    "Units": "units",
}
BRAND_COLUMNS = {
    "BrandKey": "brand_key",
    "Est_Emission_Int": "emission_intensity",
    "Units": "units",
}
SUPPLIER_COLUMNS = {
    "SupplierKey": "supplier_key",
    "Distance /mi": "distance",
    "Est_Emission_Int": "emission_intensity",
    "Units": "units",
}

NUMERIC_COLUMNS = ["price", "volume", "sales", "margin", "elasticity", "emissions_per_unit"]


# ---------------------------------------------------------------------------
# Field parsing
# ---------------------------------------------------------------------------


def parse_margin(value) -> float:
    """'12.5%' -> 0.125; bare numbers are already fractions; junk -> NaN."""
    if value is None:
        return float("nan")
    if isinstance(value, (int, float, np.number)):
        return float(value)
    text = str(value).strip()
    scale = 1.0
    if text.endswith("%"):
        text = text[:-1].strip()
        scale = 100.0
    try:
        return float(text) / scale
    except ValueError:
        return float("nan")


def period_key(value) -> str:
    """Normalise month indicators so '7', '07' and '7.0' compare equal."""
    text = str(value).strip()
    try:
        number = float(text)
    except ValueError:
        return text
    if math.isfinite(number) and number == int(number):
        return str(int(number))
    return text


def to_numeric(series: pd.Series) -> pd.Series:
    return pd.to_numeric(series, errors="coerce").astype(float)


# ---------------------------------------------------------------------------
# Data loading utilities
# ---------------------------------------------------------------------------


class ReferenceDataLoader:
    """Read the sales forecast and the product/category/brand/supplier tables."""

    def __init__(self, cfg: DataConfig):
        self.cfg = cfg
        self.base_path = Path(cfg.data_dir)
        if not self.base_path.exists():
            raise FileNotFoundError(f"Missing data directory: {self.base_path}")

    def _read_csv(self, filename: str, columns: Dict[str, str]) -> pd.DataFrame:
        path = self.base_path / filename
        if not path.exists():
            raise FileNotFoundError(path)
        df = pd.read_csv(path, dtype=str, skipinitialspace=True, keep_default_na=False)
        df.columns = [str(c).strip() for c in df.columns]
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise ValueError(f"{filename} is missing columns: {', '.join(missing)}")
        df = df[list(columns)].rename(columns=columns)
        for col in df.columns:
            df[col] = df[col].str.strip()
        return df

    def load_sales(self) -> pd.DataFrame:
        sales = self._read_csv(self.cfg.sales_file, SALES_COLUMNS)
        for col in ("volume", "price", "sales"):
            sales[col] = to_numeric(sales[col])
        return sales

    def load_products(self) -> pd.DataFrame:
        products = self._read_csv(self.cfg.product_file, PRODUCT_COLUMNS)
        products["margin"] = products["margin"].apply(parse_margin)
        products["elasticity"] = to_numeric(products["elasticity"])
        return products

    def load_categories(self) -> pd.DataFrame:
        return self._read_csv(self.cfg.category_file, CATEGORY_COLUMNS)

    def load_brands(self) -> pd.DataFrame:
        return self._read_csv(self.cfg.brand_file, BRAND_COLUMNS)

    def load_suppliers(self) -> pd.DataFrame:
        return self._read_csv(self.cfg.supplier_file, SUPPLIER_COLUMNS)


# ---------------------------------------------------------------------------
# Aggregation and joining
# ---------------------------------------------------------------------------


def _sum_keep_nan(series: pd.Series) -> float:
    return float(series.sum(skipna=False))


def aggregate_sales(sales: pd.DataFrame, period: Optional[str] = None) -> pd.DataFrame:
    """
    One row per product for ``period``; duplicate rows are summed.

    Volume and sales value add up; price becomes the volume-weighted average
    so that price x volume still equals the summed revenue. Single rows keep
    their observed price untouched.
    """
    df = sales.copy()
    if period is not None:
        df = df[df["period"].map(period_key) == period_key(period)]
    if df.empty:
        return pd.DataFrame(columns=["product_key", "period", "volume", "price", "sales"])

    df["weighted"] = df["price"] * df["volume"]
    agg = df.groupby("product_key", as_index=False, sort=False).agg(
        period=("period", "first"),
        rows=("price", "size"),
        price_first=("price", "first"),
        price_mean=("price", "mean"),
        volume=("volume", _sum_keep_nan),
        sales=("sales", _sum_keep_nan),
        weighted=("weighted", _sum_keep_nan),
    )
    with np.errstate(divide="ignore", invalid="ignore"):
        weighted_price = np.where(agg["volume"] != 0, agg["weighted"] / agg["volume"], agg["price_mean"])
    agg["price"] = np.where(agg["rows"] == 1, agg["price_first"], weighted_price)
    return agg[["product_key", "period", "volume", "price", "sales"]]


def build_joined_frame(
    sales: pd.DataFrame,
    products: pd.DataFrame,
    categories: Optional[pd.DataFrame] = None,
    brands: Optional[pd.DataFrame] = None,
    suppliers: Optional[pd.DataFrame] = None,
    period: Optional[str] = None,
) -> pd.DataFrame:
    """Aggregate sales, attach product attributes and per-unit emissions."""
    per_product = aggregate_sales(sales, period)
    products = products.drop_duplicates(subset="product_key", keep="first")
    joined = per_product.merge(products, on="product_key", how="inner")

    dropped = len(per_product) - len(joined)
    if dropped:
        logger.warning("Dropped %d sales rows with no matching product record", dropped)

    index = EmissionIndex.from_tables(categories, brands, suppliers)
    joined = attach_emissions(joined, index)
    logger.info("Joined frame: %d products for period %s", len(joined), period)
    return joined.reset_index(drop=True)


def load_joined_frame(cfg: Optional[DataConfig] = None) -> pd.DataFrame:
    cfg = cfg or DataConfig()
    loader = ReferenceDataLoader(cfg)
    return build_joined_frame(
        loader.load_sales(),
        loader.load_products(),
        loader.load_categories(),
        loader.load_brands(),
        loader.load_suppliers(),
        period=cfg.period,
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class MalformedInputError(ValueError):
    """Raised at the boundary when numeric inputs could not be parsed."""

    def __init__(self, bad: Dict[str, List[str]]):
        self.bad = bad
        columns = ", ".join(sorted(bad))
        super().__init__(f"Malformed numeric values in columns: {columns}")

    @property
    def columns(self) -> List[str]:
        return sorted(self.bad)

    @property
    def product_keys(self) -> List[str]:
        keys = {k for values in self.bad.values() for k in values}
        return sorted(keys)

    def to_dict(self) -> Dict[str, object]:
        return {
            "error": "malformed_input",
            "message": str(self),
            "columns": self.columns,
            "product_keys": self.product_keys,
        }


def find_malformed(frame: pd.DataFrame, columns: Optional[List[str]] = None) -> Dict[str, List[str]]:
    """Column -> product keys whose value is NaN or infinite."""
    bad: Dict[str, List[str]] = {}
    for col in columns or NUMERIC_COLUMNS:
        if col not in frame.columns:
            continue
        values = pd.to_numeric(frame[col], errors="coerce").astype(float)
        mask = ~np.isfinite(values.to_numpy())
        if mask.any():
            keys = frame.loc[mask, "product_key"] if "product_key" in frame.columns else frame.index[mask]
            bad[col] = [str(k) for k in keys]
    return bad


def check_numeric(frame: pd.DataFrame, columns: Optional[List[str]] = None) -> pd.DataFrame:
    bad = find_malformed(frame, columns)
    if bad:
        raise MalformedInputError(bad)
    return frame
