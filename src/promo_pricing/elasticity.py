"""
Volume and price response to a discount.

Three response conventions are supported and selected per scenario:

* ``linear``      new_volume = v * (1 + e * d)
* ``power``       new_volume = v * (1 - d) ** (-e)
* ``pct_floored`` new_volume = max(0, v * (1 - e * pct_price_change))

All three discount the price the same way, new_price = p * (1 - d). They are
not algebraically identical and give different volumes for the same inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

import numpy as np
import pandas as pd

ArrayLike = Union[float, np.ndarray, pd.Series]


class ElasticityModel(str, Enum):
    LINEAR = "linear"
    POWER = "power"
    PCT_FLOORED = "pct_floored"

    @classmethod
    def parse(cls, value: Union[str, "ElasticityModel"]) -> "ElasticityModel":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown elasticity model {value!r}; expected one of: {valid}") from exc


@dataclass(frozen=True)
class Projection:
    new_price: float
    new_volume: float


def check_discount(discount: float) -> float:
    discount = float(discount)
    if not 0.0 <= discount < 1.0:
        raise ValueError(f"Discount rate must be in [0, 1), got {discount}")
    return discount


# ---------------------------------------------------------------------------
# Core response functions
# ---------------------------------------------------------------------------


def project_arrays(
    price: ArrayLike,
    volume: ArrayLike,
    elasticity: ArrayLike,
    discount: float,
    model: Union[str, ElasticityModel],
) -> Tuple[np.ndarray, np.ndarray]:
    """Vectorised projection; returns (new_price, new_volume) arrays."""
    model = ElasticityModel.parse(model)
    discount = check_discount(discount)
    price = np.asarray(price, dtype=float)
    volume = np.asarray(volume, dtype=float)
    elasticity = np.asarray(elasticity, dtype=float)

    new_price = price * (1.0 - discount)

    if model is ElasticityModel.LINEAR:
        new_volume = volume * (1.0 + elasticity * discount)
    elif model is ElasticityModel.POWER:
        new_volume = volume * volume_uplift(elasticity, discount)
    else:
        with np.errstate(divide="ignore", invalid="ignore"):
            pct_price = np.where(price != 0.0, (new_price - price) / price, -discount)
        pct_volume = -elasticity * pct_price
        # NaN passes through np.maximum so malformed inputs stay visible
        new_volume = np.maximum(0.0, volume * (1.0 + pct_volume))

    return new_price, new_volume


def volume_uplift(elasticity: ArrayLike, discount: float) -> np.ndarray:
    """Constant-elasticity volume multiplier (1 - d) ** (-e)."""
    return np.power(1.0 - discount, -np.asarray(elasticity, dtype=float))


def project(
    price: float,
    volume: float,
    elasticity: float,
    discount: float,
    model: Union[str, ElasticityModel] = ElasticityModel.LINEAR,
) -> Projection:
    """Projected price and volume for a single product."""
    new_price, new_volume = project_arrays(price, volume, elasticity, discount, model)
    return Projection(new_price=float(new_price), new_volume=float(new_volume))


# ---------------------------------------------------------------------------
# Frame projection
# ---------------------------------------------------------------------------


BASELINE_COLUMNS = [
    "baseline_price",
    "baseline_volume",
    "baseline_sales",
    "baseline_gross_profit",
    "baseline_emissions",
    "baseline_offset_cost",
]
PROJECTED_COLUMNS = [
    "new_price",
    "new_volume",
    "new_sales",
    "new_gross_profit",
    "new_emissions",
    "new_offset_cost",
]


def _pct(new: np.ndarray, base: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        out = (new - base) / base * 100.0
    return np.where(base == 0.0, np.nan, out)


def project_frame(
    frame: pd.DataFrame,
    discount: float,
    model: Union[str, ElasticityModel],
    offset_rate: float,
) -> pd.DataFrame:
    """
    Baseline and projected figures per product at one discount rate.

    ``frame`` needs price, volume, elasticity, margin and emissions_per_unit
    columns. The input is not modified. Per-product percentage columns are
    NaN where the baseline is zero; portfolio ratios are guarded separately.
    """
    out = frame.copy()
    price = out["price"].to_numpy(dtype=float)
    volume = out["volume"].to_numpy(dtype=float)
    margin = out["margin"].to_numpy(dtype=float)
    per_unit = out["emissions_per_unit"].to_numpy(dtype=float)

    new_price, new_volume = project_arrays(price, volume, out["elasticity"].to_numpy(dtype=float), discount, model)

    out["baseline_price"] = price
    out["baseline_volume"] = volume
    out["baseline_sales"] = price * volume
    out["baseline_gross_profit"] = out["baseline_sales"] * margin
    out["baseline_emissions"] = volume * per_unit
    out["baseline_offset_cost"] = out["baseline_emissions"] * offset_rate

    out["new_price"] = new_price
    out["new_volume"] = new_volume
    out["new_sales"] = new_price * new_volume
    out["new_gross_profit"] = out["new_sales"] * margin
    out["new_emissions"] = new_volume * per_unit
    out["new_offset_cost"] = out["new_emissions"] * offset_rate

    with np.errstate(divide="ignore", invalid="ignore"):
        out["volume_uplift"] = np.where(volume != 0.0, new_volume / volume, np.nan)
    out["pct_volume_change"] = _pct(new_volume, volume)
    out["pct_sales_change"] = _pct(out["new_sales"].to_numpy(), out["baseline_sales"].to_numpy())
    out["pct_profit_change"] = _pct(
        out["new_gross_profit"].to_numpy(), out["baseline_gross_profit"].to_numpy()
    )
    return out
