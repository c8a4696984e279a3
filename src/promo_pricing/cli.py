"""
Command-line runner.

    python -m promo_pricing.cli scenario=low-emissions data_dir=data/CSVs out_dir=outputs
    python -m promo_pricing.cli scenario=optimal supplier_key=1098896101 method=bounded

Writes ``<scenario>_products.csv`` and ``run_summary.json`` to ``out_dir``
and prints the summary.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .data_loader import DataConfig, check_numeric, load_joined_frame
from .elasticity import ElasticityModel, project_frame
from .optimizer import DiscountOptimizer, OptimizerConfig
from .scenarios import (
    PRODUCT_COLUMNS,
    SCENARIOS,
    TARGET_SUPPLIER,
    SelectionPolicy,
    get_scenario,
    run_scenario,
)

logger = logging.getLogger(__name__)

OPTIMAL = "optimal"


@dataclass
class RunConfig:
    scenario: str = "category-wide"
    data_dir: str = "data/CSVs"
    out_dir: str = "outputs"
    period: str = "7"

    # scenario overrides; None keeps the registered value
    discount_rate: Optional[float] = None
    offset_rate: Optional[float] = None
    elasticity_model: Optional[str] = None
    supplier_key: Optional[str] = None

    # optimal-discount search
    min_discount: float = 0.05
    max_discount: float = 0.5
    tolerance: float = 1e-4
    max_iterations: int = 50
    bonus_threshold: float = 2_000_000.0
    bonus_amount: float = 50_000.0
    method: str = "golden"

    log_level: str = "INFO"


STRING_FIELDS = {"elasticity_model", "supplier_key"}


def parse_overrides(cfg: RunConfig, args: List[str]) -> None:
    for arg in args:
        if "=" not in arg:
            continue
        key, value = arg.split("=", 1)
        if not hasattr(cfg, key):
            print(f"Warning: ignoring unknown option {key!r}", file=sys.stderr)
            continue
        current = getattr(cfg, key)
        if current is None:
            setattr(cfg, key, value if key in STRING_FIELDS else float(value))
            continue
        if isinstance(current, (int, float)):
            try:
                setattr(cfg, key, type(current)(float(value)))
                continue
            except ValueError:
                pass
        setattr(cfg, key, type(current)(value))


def run_named_scenario(cfg: RunConfig, frame: pd.DataFrame) -> Tuple[Dict[str, object], pd.DataFrame]:
    config = get_scenario(
        cfg.scenario,
        supplier_key=cfg.supplier_key,
        discount_rate=cfg.discount_rate,
        offset_rate=cfg.offset_rate,
        elasticity_model=cfg.elasticity_model,
    )
    result = run_scenario(frame, config)
    return result.to_dict(include_products=False), result.products


def run_optimal(cfg: RunConfig, frame: pd.DataFrame) -> Tuple[Dict[str, object], pd.DataFrame]:
    opt_cfg = OptimizerConfig(
        selection=SelectionPolicy.supplier(cfg.supplier_key or TARGET_SUPPLIER),
        search_bounds=(cfg.min_discount, cfg.max_discount),
        tolerance=cfg.tolerance,
        max_iterations=cfg.max_iterations,
        offset_rate=0.25 if cfg.offset_rate is None else cfg.offset_rate,
        bonus_threshold=cfg.bonus_threshold,
        bonus_amount=cfg.bonus_amount,
        elasticity_model=cfg.elasticity_model or ElasticityModel.PCT_FLOORED,
        method=cfg.method,
    )
    optimizer = DiscountOptimizer(opt_cfg, frame)
    result = optimizer.optimize()
    products = project_frame(
        optimizer.products, result.optimal_discount, opt_cfg.elasticity_model, opt_cfg.offset_rate
    )
    return result.to_dict(), products


def main(args: Optional[List[str]] = None):
    cfg = RunConfig()
    parse_overrides(cfg, sys.argv[1:] if args is None else args)
    logging.basicConfig(
        level=getattr(logging, str(cfg.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if cfg.scenario != OPTIMAL and cfg.scenario not in SCENARIOS:
        valid = ", ".join(list(SCENARIOS) + [OPTIMAL])
        raise SystemExit(f"Unknown scenario {cfg.scenario!r}; expected one of: {valid}")

    frame = load_joined_frame(DataConfig(data_dir=Path(cfg.data_dir), period=str(cfg.period)))
    check_numeric(frame)

    if cfg.scenario == OPTIMAL:
        summary, products = run_optimal(cfg, frame)
    else:
        summary, products = run_named_scenario(cfg, frame)

    out_dir = Path(cfg.out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    cols = [c for c in PRODUCT_COLUMNS if c in products.columns]
    products[cols].to_csv(out_dir / f"{cfg.scenario}_products.csv", index=False)

    with open(out_dir / "run_summary.json", "w", encoding="utf-8") as fh:
        json.dump(summary, fh, indent=2)
    logger.info("Wrote %s outputs to %s", cfg.scenario, out_dir)

    print(json.dumps(summary, indent=2))
    return summary


if __name__ == "__main__":
    main(sys.argv[1:])
