"""Promotional discount-impact simulation: scenarios, emissions and the optimal-discount solver."""

from .data_loader import DataConfig, MalformedInputError, check_numeric, load_joined_frame
from .elasticity import ElasticityModel, Projection, project, project_frame
from .emissions import EmissionIndex, attach_emissions, emissions_per_unit
from .optimizer import (
    DiscountOptimizer,
    OptimalDiscountResult,
    OptimizerConfig,
    find_optimal_discount,
    golden_section_search,
)
from .scenarios import (
    SCENARIOS,
    ScenarioConfig,
    ScenarioResult,
    SelectionPolicy,
    UnknownScenarioError,
    aggregate,
    compare_scenarios,
    get_scenario,
    run_scenario,
)

__all__ = [
    "DataConfig",
    "DiscountOptimizer",
    "ElasticityModel",
    "EmissionIndex",
    "MalformedInputError",
    "OptimalDiscountResult",
    "OptimizerConfig",
    "Projection",
    "SCENARIOS",
    "ScenarioConfig",
    "ScenarioResult",
    "SelectionPolicy",
    "UnknownScenarioError",
    "aggregate",
    "attach_emissions",
    "check_numeric",
    "compare_scenarios",
    "emissions_per_unit",
    "find_optimal_discount",
    "get_scenario",
    "golden_section_search",
    "load_joined_frame",
    "project",
    "project_frame",
    "run_scenario",
]
