"""
Promotion scenarios: product selection, projection and portfolio totals.

A scenario picks a subset of products (lowest emitters, best sellers, one
supplier, ...), applies a fixed discount through one elasticity model and
sums baseline and projected figures. Company-wide figures recombine the
projected subset with the untouched baseline of every other product.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from .elasticity import ElasticityModel, check_discount, project_frame

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["product_key", "price", "volume", "elasticity", "margin", "emissions_per_unit"]
TOTAL_FIELDS = ["volume", "sales", "gross_profit", "net_profit", "emissions", "offset_cost"]


class UnknownScenarioError(KeyError):
    pass


# ---------------------------------------------------------------------------
# Small numeric helpers
# ---------------------------------------------------------------------------


def pct_change(new: float, base: float) -> Optional[float]:
    """Percentage change, or None when the baseline is zero."""
    if base == 0:
        return None
    return (new - base) / base * 100.0


def safe_ratio(numerator: float, denominator: float) -> Optional[float]:
    if denominator == 0:
        return None
    return numerator / denominator


def apply_bonus(
    total_sales: float, net_profit: float, threshold: float, amount: float
) -> Tuple[float, bool]:
    """Add ``amount`` to net profit when sales strictly exceed ``threshold``."""
    triggered = bool(total_sales > threshold)
    return (net_profit + amount if triggered else net_profit), triggered


def _total(values) -> float:
    # np.sum propagates NaN so malformed inputs stay visible
    return float(np.sum(np.asarray(values, dtype=float)))


def prepare_frame(frame: pd.DataFrame) -> pd.DataFrame:
    """Check the joined frame has the engine's columns; an empty frame may omit them."""
    missing = [c for c in REQUIRED_COLUMNS + ["supplier_key"] if c not in frame.columns]
    if not missing:
        return frame
    if len(frame) == 0:
        return frame.reindex(columns=list(frame.columns) + missing)
    if missing == ["supplier_key"]:
        return frame
    raise ValueError(f"Product frame is missing columns: {', '.join(missing)}")


def sales_value(frame: pd.DataFrame) -> pd.Series:
    """Observed sales value, falling back to price x volume."""
    if "sales" in frame.columns:
        return frame["sales"].astype(float)
    return frame["price"].astype(float) * frame["volume"].astype(float)


def _take_count(count: int, fraction: float) -> int:
    # round before ceil so 30 * 0.1 selects 3 rows, not 4
    return int(math.ceil(round(count * fraction, 9)))


# ---------------------------------------------------------------------------
# Selection policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SelectionPolicy:
    """Which products a scenario discounts."""

    kind: str
    n: Optional[int] = None
    fraction: Optional[float] = None
    supplier_key: Optional[str] = None

    KINDS = (
        "all",
        "bottom_n_emissions",
        "bottom_fraction_emissions",
        "top_n_sales",
        "top_fraction_sales",
        "supplier",
    )

    def __post_init__(self):
        if self.kind not in self.KINDS:
            raise ValueError(f"Unknown selection policy {self.kind!r}")
        if self.kind.endswith("_n_emissions") or self.kind == "top_n_sales":
            if self.n is None or self.n < 0:
                raise ValueError(f"{self.kind} needs a non-negative n")
        if "fraction" in self.kind:
            if self.fraction is None or not 0.0 <= self.fraction <= 1.0:
                raise ValueError(f"{self.kind} needs a fraction in [0, 1]")
        if self.kind == "supplier" and not self.supplier_key:
            raise ValueError("supplier selection needs a supplier_key")

    @classmethod
    def all(cls) -> "SelectionPolicy":
        return cls("all")

    @classmethod
    def bottom_n_emissions(cls, n: int = 10) -> "SelectionPolicy":
        return cls("bottom_n_emissions", n=int(n))

    @classmethod
    def bottom_fraction_emissions(cls, fraction: float = 0.1) -> "SelectionPolicy":
        return cls("bottom_fraction_emissions", fraction=float(fraction))

    @classmethod
    def top_n_sales(cls, n: int = 10) -> "SelectionPolicy":
        return cls("top_n_sales", n=int(n))

    @classmethod
    def top_fraction_sales(cls, fraction: float = 0.1) -> "SelectionPolicy":
        return cls("top_fraction_sales", fraction=float(fraction))

    @classmethod
    def supplier(cls, supplier_key: str) -> "SelectionPolicy":
        return cls("supplier", supplier_key=str(supplier_key))

    def select(self, frame: pd.DataFrame) -> pd.DataFrame:
        """Return the selected rows; sorts are stable so ties keep input order."""
        if self.kind == "all":
            return frame.copy()
        if self.kind == "supplier":
            if "supplier_key" not in frame.columns:
                raise ValueError("supplier selection needs a supplier_key column")
            return frame[frame["supplier_key"].astype(str) == self.supplier_key].copy()

        if self.kind.endswith("_emissions"):
            ordered = frame.sort_values("emissions_per_unit", ascending=True, kind="mergesort")
        else:
            order = np.argsort(-sales_value(frame).to_numpy(), kind="mergesort")
            ordered = frame.iloc[order]

        if self.n is not None:
            take = self.n
        else:
            take = _take_count(len(frame), self.fraction)
        return ordered.head(take).copy()

    def describe(self) -> str:
        if self.kind == "all":
            return "all products"
        if self.kind == "bottom_n_emissions":
            return f"bottom {self.n} by emissions per unit"
        if self.kind == "bottom_fraction_emissions":
            return f"bottom {self.fraction:.0%} by emissions per unit"
        if self.kind == "top_n_sales":
            return f"top {self.n} by sales value"
        if self.kind == "top_fraction_sales":
            return f"top {self.fraction:.0%} by sales value"
        return f"products of supplier {self.supplier_key}"

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {"kind": self.kind, "description": self.describe()}
        if self.n is not None:
            out["n"] = self.n
        if self.fraction is not None:
            out["fraction"] = self.fraction
        if self.supplier_key is not None:
            out["supplier_key"] = self.supplier_key
        return out


# ---------------------------------------------------------------------------
# Scenario configuration
# ---------------------------------------------------------------------------


@dataclass
class ScenarioConfig:
    """Everything that distinguishes one promotion scenario from another."""

    name: str
    selection: SelectionPolicy
    discount_rate: float
    offset_rate: float
    elasticity_model: ElasticityModel = ElasticityModel.LINEAR
    bonus_threshold: Optional[float] = None
    bonus_amount: Optional[float] = None
    description: str = ""

    def __post_init__(self):
        self.elasticity_model = ElasticityModel.parse(self.elasticity_model)
        self.discount_rate = check_discount(self.discount_rate)
        if self.offset_rate < 0:
            raise ValueError("offset_rate must be non-negative")
        if (self.bonus_threshold is None) != (self.bonus_amount is None):
            raise ValueError("bonus_threshold and bonus_amount must be set together")

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "selection": self.selection.to_dict(),
            "discount_rate": self.discount_rate,
            "offset_rate": self.offset_rate,
            "elasticity_model": self.elasticity_model.value,
            "bonus_threshold": self.bonus_threshold,
            "bonus_amount": self.bonus_amount,
        }


TARGET_SUPPLIER = "1098896101"

SCENARIOS: Dict[str, ScenarioConfig] = {
    cfg.name: cfg
    for cfg in (
        ScenarioConfig(
            name="category-wide",
            selection=SelectionPolicy.all(),
            discount_rate=0.05,
            offset_rate=0.25,
            description="5% discount on every product",
        ),
        ScenarioConfig(
            name="best-sellers",
            selection=SelectionPolicy.top_n_sales(10),
            discount_rate=0.10,
            offset_rate=0.25,
            description="10% discount on the 10 best-selling products",
        ),
        ScenarioConfig(
            name="best-sellers-analysis",
            selection=SelectionPolicy.top_fraction_sales(0.10),
            discount_rate=0.10,
            offset_rate=0.10,
            description="10% discount on the top 10% of products by sales",
        ),
        ScenarioConfig(
            name="emissions-analysis",
            selection=SelectionPolicy.bottom_fraction_emissions(0.10),
            discount_rate=0.10,
            offset_rate=0.10,
            description="10% discount on the lowest-emission 10% of products",
        ),
        ScenarioConfig(
            name="supplier",
            selection=SelectionPolicy.supplier(TARGET_SUPPLIER),
            discount_rate=0.15,
            offset_rate=0.25,
            description=f"15% discount on every product of supplier {TARGET_SUPPLIER}",
        ),
        ScenarioConfig(
            name="low-emissions",
            selection=SelectionPolicy.bottom_n_emissions(10),
            discount_rate=0.20,
            offset_rate=0.25,
            description="20% discount on the 10 lowest-emission products",
        ),
        ScenarioConfig(
            name="emissions",
            selection=SelectionPolicy.bottom_n_emissions(10),
            discount_rate=0.20,
            offset_rate=0.25,
            elasticity_model=ElasticityModel.POWER,
            description="20% discount on the 10 lowest-emission products, constant-elasticity demand",
        ),
    )
}


def get_scenario(name: str, supplier_key: Optional[str] = None, **overrides) -> ScenarioConfig:
    """
    Look up a registered scenario, optionally overriding any of its fields.

    ``supplier_key`` retargets a supplier scenario at another supplier.
    """
    try:
        base = SCENARIOS[name]
    except KeyError:
        raise UnknownScenarioError(name) from None
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if supplier_key is not None:
        if base.selection.kind != "supplier":
            raise ValueError(f"Scenario {name!r} does not select by supplier")
        overrides["selection"] = SelectionPolicy.supplier(supplier_key)
    return replace(base, **overrides) if overrides else replace(base)


def list_scenarios() -> List[Dict[str, object]]:
    return [cfg.to_dict() for cfg in SCENARIOS.values()]


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


@dataclass
class PortfolioTotals:
    baseline: Dict[str, float]
    projected: Dict[str, float]
    incremental: Dict[str, float]
    ratios: Dict[str, Optional[float]]
    selected_count: int
    company: Dict[str, Optional[float]] = field(default_factory=dict)
    bonus_triggered: Optional[bool] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "baseline": dict(self.baseline),
            "projected": dict(self.projected),
            "incremental": dict(self.incremental),
            "ratios": dict(self.ratios),
            "selected_count": self.selected_count,
            "company": dict(self.company),
            "bonus_triggered": self.bonus_triggered,
        }


def _side_totals(projected: pd.DataFrame, prefix: str) -> Dict[str, float]:
    if projected.empty:
        return {name: 0.0 for name in TOTAL_FIELDS}
    gross = _total(projected[f"{prefix}_gross_profit"])
    offset = _total(projected[f"{prefix}_offset_cost"])
    return {
        "volume": _total(projected[f"{prefix}_volume"]),
        "sales": _total(projected[f"{prefix}_sales"]),
        "gross_profit": gross,
        "net_profit": gross - offset,
        "emissions": _total(projected[f"{prefix}_emissions"]),
        "offset_cost": offset,
    }


def aggregate(
    projected: pd.DataFrame,
    selection: Optional[SelectionPolicy] = None,
    universe: Optional[pd.DataFrame] = None,
    bonus_threshold: Optional[float] = None,
    bonus_amount: Optional[float] = None,
) -> PortfolioTotals:
    """
    Sum a projected selection into portfolio totals.

    ``projected`` is the output of :func:`project_frame` for the selected
    products. ``universe`` is the full product frame; when given, company
    revenue and emissions recombine the projected selection with the
    unchanged baseline of the rest. Ratios are None where the baseline is 0.

    With ``selection``, ``projected`` may cover every product: the policy
    picks the rows to sum and the full frame serves as the universe.
    An empty frame gives zero totals and None ratios.
    """
    projected = prepare_frame(projected)
    if universe is not None:
        universe = prepare_frame(universe)
    if selection is not None:
        if universe is None:
            universe = projected
        projected = selection.select(projected)
    baseline = _side_totals(projected, "baseline")
    new = _side_totals(projected, "new")

    bonus_triggered: Optional[bool] = None
    if bonus_threshold is not None:
        new["net_profit"], bonus_triggered = apply_bonus(
            new["sales"], new["net_profit"], bonus_threshold, bonus_amount or 0.0
        )

    incremental = {k: new[k] - baseline[k] for k in TOTAL_FIELDS}
    ratios = {k: pct_change(new[k], baseline[k]) for k in TOTAL_FIELDS}

    company: Dict[str, Optional[float]] = {}
    if universe is not None:
        price = universe["price"].to_numpy(dtype=float)
        volume = universe["volume"].to_numpy(dtype=float)
        company_revenue = _total(price * volume)
        company_emissions = _total(volume * universe["emissions_per_unit"].to_numpy(dtype=float))
        projected_revenue = company_revenue - baseline["sales"] + new["sales"]
        projected_emissions = company_emissions - baseline["emissions"] + new["emissions"]
        company = {
            "baseline_revenue": company_revenue,
            "projected_revenue": projected_revenue,
            "revenue_change_pct": pct_change(projected_revenue, company_revenue),
            "baseline_emissions": company_emissions,
            "projected_emissions": projected_emissions,
            "emissions_change_pct": pct_change(projected_emissions, company_emissions),
            "selected_share_of_revenue_pct": (
                None
                if company_revenue == 0
                else baseline["sales"] / company_revenue * 100.0
            ),
            "product_count": int(len(universe)),
        }

    return PortfolioTotals(
        baseline=baseline,
        projected=new,
        incremental=incremental,
        ratios=ratios,
        selected_count=int(len(projected)),
        company=company,
        bonus_triggered=bonus_triggered,
    )


# ---------------------------------------------------------------------------
# Scenario runner
# ---------------------------------------------------------------------------


PRODUCT_COLUMNS = [
    "product_key",
    "brand_key",
    "supplier_key",
    "category_lvl1",
    "category_lvl2",
    "margin",
    "elasticity",
    "emissions_per_unit",
    "category_emissions",
    "brand_emissions",
    "supplier_emissions",
    "baseline_price",
    "new_price",
    "baseline_volume",
    "new_volume",
    "volume_uplift",
    "baseline_sales",
    "new_sales",
    "baseline_gross_profit",
    "new_gross_profit",
    "baseline_emissions",
    "new_emissions",
    "baseline_offset_cost",
    "new_offset_cost",
    "pct_volume_change",
    "pct_sales_change",
    "pct_profit_change",
]


def _jsonable(value):
    if isinstance(value, (np.floating, float)):
        value = float(value)
        return value if math.isfinite(value) else None
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.bool_):
        return bool(value)
    return value


def frame_records(frame: pd.DataFrame) -> List[Dict[str, object]]:
    """DataFrame rows as JSON-safe dicts (non-finite numbers become None)."""
    return [
        {k: _jsonable(v) for k, v in row.items()}
        for row in frame.to_dict(orient="records")
    ]


@dataclass
class ScenarioResult:
    config: ScenarioConfig
    totals: PortfolioTotals
    products: pd.DataFrame

    def to_dict(self, include_products: bool = True) -> Dict[str, object]:
        out: Dict[str, object] = {"scenario": self.config.to_dict()}
        out.update(self.totals.to_dict())
        if include_products:
            cols = [c for c in PRODUCT_COLUMNS if c in self.products.columns]
            out["products"] = frame_records(self.products[cols])
        return out


def run_scenario(frame: pd.DataFrame, config: ScenarioConfig) -> ScenarioResult:
    """Select, project and aggregate one scenario over the joined product frame."""
    frame = prepare_frame(frame)
    selected = config.selection.select(frame)
    projected = project_frame(
        selected, config.discount_rate, config.elasticity_model, config.offset_rate
    )
    totals = aggregate(
        projected,
        universe=frame,
        bonus_threshold=config.bonus_threshold,
        bonus_amount=config.bonus_amount,
    )
    logger.info(
        "Scenario %s: %d of %d products, sales %.2f -> %.2f",
        config.name,
        totals.selected_count,
        len(frame),
        totals.baseline["sales"],
        totals.projected["sales"],
    )
    return ScenarioResult(config=config, totals=totals, products=projected)


def compare_scenarios(frame: pd.DataFrame, configs: List[ScenarioConfig]) -> pd.DataFrame:
    """One row of headline figures per scenario, run over the same product frame."""
    rows = []
    for config in configs:
        totals = run_scenario(frame, config).totals
        rows.append(
            {
                "scenario": config.name,
                "discount_rate": config.discount_rate,
                "selected_count": totals.selected_count,
                "baseline_sales": totals.baseline["sales"],
                "projected_sales": totals.projected["sales"],
                "sales_change_pct": totals.ratios["sales"],
                "baseline_net_profit": totals.baseline["net_profit"],
                "projected_net_profit": totals.projected["net_profit"],
                "net_profit_change_pct": totals.ratios["net_profit"],
                "baseline_emissions": totals.baseline["emissions"],
                "projected_emissions": totals.projected["emissions"],
                "emissions_change_pct": totals.ratios["emissions"],
                "company_revenue_change_pct": totals.company.get("revenue_change_pct"),
            }
        )
    return pd.DataFrame(rows)
