"""
Per-unit emission intensity for products.

A product's footprint is the sum of its category, brand and supplier
emission factors. Supplier factors are quoted per unit of shipping
distance and are scaled by the supplier's distance before summation.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Unit handling
# ---------------------------------------------------------------------------


def to_kg(value: float, units: Optional[str]) -> float:
    """Normalise an emission value to kilograms of CO2."""
    if units is None or (isinstance(units, float) and math.isnan(units)):
        return value
    label = str(units).strip().lower()
    if "kg" in label:
        return value
    if "g" in label:
        return value / 1000.0
    return value


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


# ---------------------------------------------------------------------------
# Reference index
# ---------------------------------------------------------------------------


@dataclass
class EmissionIndex:
    """Key -> kg CO2 lookups built once per request from the factor tables."""

    category: Dict[Tuple[str, str], float] = field(default_factory=dict)
    brand: Dict[str, float] = field(default_factory=dict)
    # supplier key -> (kg per unit distance, distance)
    supplier: Dict[str, Tuple[float, float]] = field(default_factory=dict)

    @classmethod
    def from_tables(
        cls,
        category_table: Optional[pd.DataFrame] = None,
        brand_table: Optional[pd.DataFrame] = None,
        supplier_table: Optional[pd.DataFrame] = None,
    ) -> "EmissionIndex":
        """Tables are expected with the loader's normalised column names."""
        index = cls()
        if category_table is not None:
            for row in category_table.itertuples(index=False):
                key = (str(row.category_lvl1), str(row.category_lvl2))
                # first row wins on duplicate keys
                if key not in index.category:
                    index.category[key] = to_kg(_to_float(row.emission_intensity), row.units)
        if brand_table is not None:
            for row in brand_table.itertuples(index=False):
                key = str(row.brand_key)
                if key not in index.brand:
                    index.brand[key] = to_kg(_to_float(row.emission_intensity), row.units)
        if supplier_table is not None:
            for row in supplier_table.itertuples(index=False):
                key = str(row.supplier_key)
                if key not in index.supplier:
                    index.supplier[key] = (
                        to_kg(_to_float(row.emission_intensity), row.units),
                        _to_float(row.distance),
                    )
        logger.debug(
            "Built emission index: %d categories, %d brands, %d suppliers",
            len(index.category),
            len(index.brand),
            len(index.supplier),
        )
        return index


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def emission_components(product: Mapping, index: EmissionIndex) -> Dict[str, float]:
    """Return the category, brand and supplier contributions in kg per unit.

    Missing lookups contribute zero. A found row with an unparseable
    intensity contributes NaN so that bad data is visible downstream.
    """
    category_key = (str(product.get("category_lvl1")), str(product.get("category_lvl2")))
    category = index.category.get(category_key, 0.0)
    brand = index.brand.get(str(product.get("brand_key")), 0.0)
    supplier = 0.0
    supplier_row = index.supplier.get(str(product.get("supplier_key")))
    if supplier_row is not None:
        per_distance, distance = supplier_row
        supplier = per_distance * distance
    return {
        "category_emissions": category,
        "brand_emissions": brand,
        "supplier_emissions": supplier,
    }


def emissions_per_unit(product: Mapping, index: EmissionIndex) -> float:
    """Total kg CO2 per unit for one product."""
    parts = emission_components(product, index)
    return parts["category_emissions"] + parts["brand_emissions"] + parts["supplier_emissions"]


def attach_emissions(frame: pd.DataFrame, index: EmissionIndex) -> pd.DataFrame:
    """Add per-unit emission columns to a joined product frame."""
    out = frame.copy()
    if out.empty:
        for col in ("category_emissions", "brand_emissions", "supplier_emissions", "emissions_per_unit"):
            out[col] = pd.Series(dtype=float)
        return out

    category_keys = list(zip(out["category_lvl1"].astype(str), out["category_lvl2"].astype(str)))
    category_found = pd.Series([k in index.category for k in category_keys], index=out.index)
    out["category_emissions"] = [index.category.get(k, 0.0) for k in category_keys]
    brand_keys = out["brand_key"].astype(str)
    brand_found = brand_keys.isin(index.brand.keys())
    out["brand_emissions"] = np.where(brand_found, brand_keys.map(index.brand), 0.0)

    supplier_keys = out["supplier_key"].astype(str)
    per_distance = supplier_keys.map({k: v[0] for k, v in index.supplier.items()})
    distance = supplier_keys.map({k: v[1] for k, v in index.supplier.items()})
    found = supplier_keys.isin(index.supplier.keys())
    out["supplier_emissions"] = np.where(found, per_distance * distance, 0.0)

    out["emissions_per_unit"] = (
        out["category_emissions"] + out["brand_emissions"] + out["supplier_emissions"]
    )

    missing = ~category_found | ~brand_found | ~found
    if missing.any():
        logger.debug(
            "%d products missing a category, brand or supplier emission factor", int(missing.sum())
        )
    return out
