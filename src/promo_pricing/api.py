from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import pandas as pd
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from .data_loader import DataConfig, MalformedInputError, check_numeric, load_joined_frame
from .elasticity import ElasticityModel, project_frame
from .optimizer import DiscountOptimizer, OptimizerConfig
from .scenarios import (
    PRODUCT_COLUMNS,
    TARGET_SUPPLIER,
    SelectionPolicy,
    UnknownScenarioError,
    frame_records,
    get_scenario,
    list_scenarios,
    run_scenario,
)

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "PROMO_PRICING_DATA_DIR"
PERIOD_ENV = "PROMO_PRICING_PERIOD"


class ScenarioRequest(BaseModel):
    discount_rate: Optional[float] = Field(None, ge=0.0, lt=1.0)
    offset_rate: Optional[float] = Field(None, ge=0.0)
    elasticity_model: Optional[ElasticityModel] = None
    supplier_key: Optional[str] = None
    include_products: bool = True


class OptimizeRequest(BaseModel):
    min_discount: float = Field(0.05, ge=0.0, lt=1.0)
    max_discount: float = Field(0.5, gt=0.0, lt=1.0)
    tolerance: float = Field(1e-4, gt=0.0)
    max_iterations: int = Field(50, ge=0, le=1000)
    offset_rate: float = Field(0.25, ge=0.0)
    bonus_threshold: float = Field(2_000_000.0, ge=0.0)
    bonus_amount: float = Field(50_000.0, ge=0.0)
    supplier_key: str = TARGET_SUPPLIER
    elasticity_model: ElasticityModel = ElasticityModel.PCT_FLOORED
    method: Literal["golden", "bounded"] = "golden"
    include_profile: bool = False
    include_products: bool = False


app = FastAPI(
    title="Promotion Discount Simulator API",
    description="FastAPI wrapper around the discount scenario engine and optimal-discount solver.",
    version="1.0.0",
)


# ---------------------------------------------------------------------------
# Data access
# ---------------------------------------------------------------------------


def data_config() -> DataConfig:
    cfg = DataConfig()
    if os.environ.get(DATA_DIR_ENV):
        cfg.data_dir = Path(os.environ[DATA_DIR_ENV])
    if os.environ.get(PERIOD_ENV):
        cfg.period = os.environ[PERIOD_ENV]
    return cfg


@lru_cache(maxsize=1)
def load_frame() -> pd.DataFrame:
    return load_joined_frame(data_config())


def reset_cache() -> None:
    """Forget the cached frame so the next request re-reads the CSVs."""
    load_frame.cache_clear()


def get_frame() -> pd.DataFrame:
    try:
        frame = load_frame()
    except FileNotFoundError as exc:
        logger.warning("Data not available: %s", exc)
        raise HTTPException(status_code=503, detail=f"Data not available: {exc}") from exc
    try:
        return check_numeric(frame)
    except MalformedInputError as exc:
        raise HTTPException(status_code=422, detail=exc.to_dict()) from exc


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/health")
def healthcheck():
    return {"status": "ok"}


@app.get("/scenarios")
def scenarios():
    return {"scenarios": list_scenarios()}


@app.post("/scenarios/{name}")
def scenario(name: str, req: Optional[ScenarioRequest] = None, frame: pd.DataFrame = Depends(get_frame)):
    req = req or ScenarioRequest()
    try:
        config = get_scenario(
            name,
            supplier_key=req.supplier_key,
            discount_rate=req.discount_rate,
            offset_rate=req.offset_rate,
            elasticity_model=req.elasticity_model,
        )
        result = run_scenario(frame, config)
    except UnknownScenarioError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown scenario: {name}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail={"error": "invalid_parameters", "message": str(exc)}) from exc
    return result.to_dict(include_products=req.include_products)


@app.post("/optimal-discount")
def optimal_discount(req: Optional[OptimizeRequest] = None, frame: pd.DataFrame = Depends(get_frame)):
    req = req or OptimizeRequest()
    try:
        cfg = OptimizerConfig(
            selection=SelectionPolicy.supplier(req.supplier_key),
            search_bounds=(req.min_discount, req.max_discount),
            tolerance=req.tolerance,
            max_iterations=req.max_iterations,
            offset_rate=req.offset_rate,
            bonus_threshold=req.bonus_threshold,
            bonus_amount=req.bonus_amount,
            elasticity_model=req.elasticity_model,
            method=req.method,
        )
        optimizer = DiscountOptimizer(cfg, frame)
        result = optimizer.optimize()
    except ValueError as exc:
        raise HTTPException(status_code=422, detail={"error": "invalid_parameters", "message": str(exc)}) from exc

    response = result.to_dict()
    if req.include_profile:
        response["profile"] = frame_records(optimizer.profile())
    if req.include_products:
        projected = project_frame(
            optimizer.products, result.optimal_discount, cfg.elasticity_model, cfg.offset_rate
        )
        cols = [c for c in PRODUCT_COLUMNS if c in projected.columns]
        response["products"] = frame_records(projected[cols])
    return response


__all__ = ["app", "get_frame", "reset_cache"]
