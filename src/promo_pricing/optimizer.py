"""
Profit-maximising discount search.

The objective at a trial discount is the portfolio's projected gross profit
minus carbon-offset cost, plus a fixed bonus when projected sales strictly
exceed a threshold. A golden-section search over the discount bracket finds
the maximum. The search assumes the objective is unimodal on the bracket;
the bonus step can break that, so the solver scans the objective on a grid
and logs a warning when more than one peak shows up.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.optimize import minimize_scalar

from .elasticity import ElasticityModel, project_arrays
from .scenarios import (
    TARGET_SUPPLIER,
    SelectionPolicy,
    apply_bonus,
    pct_change,
    prepare_frame,
    safe_ratio,
)

logger = logging.getLogger(__name__)

PHI = (1.0 + math.sqrt(5.0)) / 2.0


# ---------------------------------------------------------------------------
# Golden-section search
# ---------------------------------------------------------------------------


@dataclass
class SearchResult:
    x: float
    a: float
    b: float
    iterations: int
    evaluations: int
    converged: bool
    method: str = "golden"
    brackets: List[Tuple[float, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "method": self.method,
            "iterations": self.iterations,
            "evaluations": self.evaluations,
            "converged": self.converged,
            "final_bracket": [self.a, self.b],
        }


def golden_section_search(
    f: Callable[[float], float],
    a: float = 0.05,
    b: float = 0.5,
    tolerance: float = 1e-4,
    max_iterations: int = 50,
) -> SearchResult:
    """
    Maximise ``f`` on ``[a, b]``.

    Each iteration drops the part of the bracket beyond the worse interior
    point, shrinking the width by 1/phi, and evaluates ``f`` once (the
    surviving interior point is reused). Stops when the width is below
    ``tolerance`` or after ``max_iterations``; returns the bracket midpoint.
    """
    if not a < b:
        raise ValueError(f"Search bracket must satisfy a < b, got [{a}, {b}]")
    if tolerance <= 0:
        raise ValueError("tolerance must be positive")

    c = b - (b - a) / PHI
    d = a + (b - a) / PHI
    fc = f(c)
    fd = f(d)
    evaluations = 2
    iterations = 0
    brackets = [(a, b)]

    for _ in range(max_iterations):
        if abs(b - a) < tolerance:
            break
        if fc > fd:
            b, d, fd = d, c, fc
            c = b - (b - a) / PHI
            fc = f(c)
        else:
            a, c, fc = c, d, fd
            d = a + (b - a) / PHI
            fd = f(d)
        evaluations += 1
        iterations += 1
        brackets.append((a, b))

    return SearchResult(
        x=(a + b) / 2.0,
        a=a,
        b=b,
        iterations=iterations,
        evaluations=evaluations,
        converged=abs(b - a) < tolerance,
        brackets=brackets,
    )


def is_unimodal(values: Sequence[float]) -> bool:
    """True when a sampled profile rises then falls at most once (plateaus ignored)."""
    diffs = np.diff(np.asarray(values, dtype=float))
    signs = np.sign(diffs[diffs != 0])
    if signs.size < 2:
        return True
    peaks = int(np.sum((signs[:-1] > 0) & (signs[1:] < 0)))
    valleys = int(np.sum((signs[:-1] < 0) & (signs[1:] > 0)))
    return peaks <= 1 and valleys == 0


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class OptimizerConfig:
    """User-configurable knobs for the optimal-discount search."""

    selection: SelectionPolicy = field(default_factory=lambda: SelectionPolicy.supplier(TARGET_SUPPLIER))
    search_bounds: Tuple[float, float] = (0.05, 0.5)
    tolerance: float = 1e-4
    max_iterations: int = 50

    offset_rate: float = 0.25
    bonus_threshold: float = 2_000_000.0
    bonus_amount: float = 50_000.0
    elasticity_model: ElasticityModel = ElasticityModel.PCT_FLOORED

    # "golden" reproduces the bracket search; "bounded" runs scipy's
    # Brent-style bounded minimiser on the same objective
    method: str = "golden"
    check_unimodality: bool = True
    profile_points: int = 46

    def __post_init__(self):
        self.elasticity_model = ElasticityModel.parse(self.elasticity_model)
        lo, hi = (float(v) for v in self.search_bounds)
        if not 0.0 <= lo < hi < 1.0:
            raise ValueError(f"search_bounds must satisfy 0 <= low < high < 1, got {self.search_bounds}")
        self.search_bounds = (lo, hi)
        if self.tolerance <= 0:
            raise ValueError("tolerance must be positive")
        if self.max_iterations < 0:
            raise ValueError("max_iterations must be non-negative")
        if self.method not in ("golden", "bounded"):
            raise ValueError(f"Unknown search method {self.method!r}")
        if self.profile_points < 3:
            raise ValueError("profile_points must be at least 3")


# ---------------------------------------------------------------------------
# Result containers
# ---------------------------------------------------------------------------


@dataclass
class DiscountMetrics:
    discount: float
    total_sales: float
    gross_profit: float
    emissions: float
    offset_cost: float
    net_profit: float
    bonus_triggered: bool

    @property
    def net_profit_before_bonus(self) -> float:
        return self.gross_profit - self.offset_cost


@dataclass
class OptimalDiscountResult:
    optimal_discount: float
    metrics: DiscountMetrics
    baseline: DiscountMetrics
    bonus_amount: float
    search: SearchResult
    product_count: int
    unimodal: Optional[bool] = None

    def to_dict(self) -> Dict[str, object]:
        m, base = self.metrics, self.baseline
        return {
            "optimal_discount": self.optimal_discount,
            "bonus_triggered": m.bonus_triggered,
            "bonus_amount": self.bonus_amount if m.bonus_triggered else 0.0,
            "previous_profit": base.net_profit,
            "new_profit": m.net_profit_before_bonus,
            "new_profit_with_bonus": m.net_profit,
            "profit_pct_change": pct_change(m.net_profit, base.net_profit),
            "previous_revenue": base.total_sales,
            "new_revenue": m.total_sales,
            "revenue_pct_change": pct_change(m.total_sales, base.total_sales),
            "previous_emissions": base.emissions,
            "new_emissions": m.emissions,
            "emissions_pct_change": pct_change(m.emissions, base.emissions),
            "emissions_per_profit_before": safe_ratio(base.emissions, base.net_profit),
            "emissions_per_profit_after": safe_ratio(m.emissions, m.net_profit),
            "product_count": self.product_count,
            "unimodal_profile": self.unimodal,
            "search": self.search.to_dict(),
        }


# ---------------------------------------------------------------------------
# Optimisation engine
# ---------------------------------------------------------------------------


class DiscountOptimizer:
    """Encapsulates objective evaluation and the discount search."""

    def __init__(self, cfg: OptimizerConfig, frame: pd.DataFrame):
        self.cfg = cfg
        self.products = cfg.selection.select(prepare_frame(frame))
        self._prepare()

    def _prepare(self):
        """Pull the per-product vectors once; every evaluation reuses them."""
        p = self.products
        self.price = p["price"].to_numpy(dtype=float)
        self.volume = p["volume"].to_numpy(dtype=float)
        self.elasticity = p["elasticity"].to_numpy(dtype=float)
        self.margin = p["margin"].to_numpy(dtype=float)
        self.per_unit = p["emissions_per_unit"].to_numpy(dtype=float)

    def _metrics(self, discount: float, new_price: np.ndarray, new_volume: np.ndarray) -> DiscountMetrics:
        sales = new_price * new_volume
        total_sales = float(np.sum(sales))
        gross = float(np.sum(sales * self.margin))
        emissions = float(np.sum(new_volume * self.per_unit))
        offset = emissions * self.cfg.offset_rate
        net, triggered = apply_bonus(
            total_sales, gross - offset, self.cfg.bonus_threshold, self.cfg.bonus_amount
        )
        return DiscountMetrics(
            discount=float(discount),
            total_sales=total_sales,
            gross_profit=gross,
            emissions=emissions,
            offset_cost=offset,
            net_profit=net,
            bonus_triggered=triggered,
        )

    def evaluate(self, discount: float) -> DiscountMetrics:
        new_price, new_volume = project_arrays(
            self.price, self.volume, self.elasticity, discount, self.cfg.elasticity_model
        )
        return self._metrics(discount, new_price, new_volume)

    def baseline(self) -> DiscountMetrics:
        """Undiscounted figures; the bonus is not applied to the baseline."""
        sales = self.price * self.volume
        gross = float(np.sum(sales * self.margin))
        emissions = float(np.sum(self.volume * self.per_unit))
        offset = emissions * self.cfg.offset_rate
        return DiscountMetrics(
            discount=0.0,
            total_sales=float(np.sum(sales)),
            gross_profit=gross,
            emissions=emissions,
            offset_cost=offset,
            net_profit=gross - offset,
            bonus_triggered=False,
        )

    def objective(self, discount: float) -> float:
        return self.evaluate(discount).net_profit

    def profile(self, points: Optional[int] = None) -> pd.DataFrame:
        """Objective sampled evenly across the search bracket."""
        lo, hi = self.cfg.search_bounds
        grid = np.linspace(lo, hi, points or self.cfg.profile_points)
        rows = []
        for d in grid:
            m = self.evaluate(float(d))
            rows.append(
                {
                    "discount": m.discount,
                    "net_profit": m.net_profit,
                    "total_sales": m.total_sales,
                    "emissions": m.emissions,
                    "bonus_triggered": m.bonus_triggered,
                }
            )
        return pd.DataFrame(rows)

    def _search(self) -> SearchResult:
        lo, hi = self.cfg.search_bounds
        if self.cfg.method == "golden":
            return golden_section_search(
                self.objective, lo, hi, self.cfg.tolerance, self.cfg.max_iterations
            )
        res = minimize_scalar(
            lambda x: -self.objective(x),
            bounds=(lo, hi),
            method="bounded",
            options={"xatol": self.cfg.tolerance, "maxiter": max(self.cfg.max_iterations, 1)},
        )
        return SearchResult(
            x=float(res.x),
            a=lo,
            b=hi,
            iterations=int(getattr(res, "nit", 0)),
            evaluations=int(res.nfev),
            converged=bool(res.success),
            method="bounded",
        )

    def optimize(self) -> OptimalDiscountResult:
        search = self._search()
        metrics = self.evaluate(search.x)

        unimodal: Optional[bool] = None
        if self.cfg.check_unimodality:
            unimodal = is_unimodal(self.profile()["net_profit"].to_numpy())
            if not unimodal:
                logger.warning(
                    "Objective is not unimodal on [%.3f, %.3f]; the search may have found a local maximum",
                    *self.cfg.search_bounds,
                )

        logger.info(
            "Optimal discount %.4f over %d products (bonus %s, %d evaluations)",
            search.x,
            len(self.products),
            "triggered" if metrics.bonus_triggered else "not triggered",
            search.evaluations,
        )
        return OptimalDiscountResult(
            optimal_discount=search.x,
            metrics=metrics,
            baseline=self.baseline(),
            bonus_amount=self.cfg.bonus_amount,
            search=search,
            product_count=int(len(self.products)),
            unimodal=unimodal,
        )


def evaluate_discount(
    frame: pd.DataFrame, discount: float, cfg: Optional[OptimizerConfig] = None
) -> DiscountMetrics:
    return DiscountOptimizer(cfg or OptimizerConfig(), frame).evaluate(discount)


def find_optimal_discount(
    frame: pd.DataFrame, cfg: Optional[OptimizerConfig] = None
) -> OptimalDiscountResult:
    """Run the configured search over the selected products of ``frame``."""
    return DiscountOptimizer(cfg or OptimizerConfig(), frame).optimize()


def objective_profile(
    frame: pd.DataFrame, cfg: Optional[OptimizerConfig] = None, points: Optional[int] = None
) -> pd.DataFrame:
    return DiscountOptimizer(cfg or OptimizerConfig(), frame).profile(points)
