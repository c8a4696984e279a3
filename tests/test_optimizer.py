import logging

import pandas as pd
import pytest

from promo_pricing.elasticity import ElasticityModel
from promo_pricing.optimizer import (
    PHI,
    DiscountOptimizer,
    OptimizerConfig,
    evaluate_discount,
    find_optimal_discount,
    golden_section_search,
    is_unimodal,
    objective_profile,
)
from promo_pricing.scenarios import SelectionPolicy
from conftest import make_frame

NO_BONUS = 1e12


# ---------------------------------------------------------------------------
# Golden-section search
# ---------------------------------------------------------------------------


def test_bracket_shrinks_by_inverse_phi_each_iteration():
    result = golden_section_search(lambda x: -(x - 0.3) ** 2, 0.05, 0.5, tolerance=1e-6, max_iterations=20)
    widths = [b - a for a, b in result.brackets]
    assert len(widths) == result.iterations + 1
    for before, after in zip(widths, widths[1:]):
        assert after == pytest.approx(before / PHI, rel=1e-9)


def test_converges_on_concave_quadratic():
    result = golden_section_search(lambda x: -(x - 0.3) ** 2, 0.05, 0.5, tolerance=1e-4)
    assert result.converged
    assert result.x == pytest.approx(0.3, abs=1e-4)
    assert result.evaluations == result.iterations + 2


def test_maximum_on_bracket_edge():
    result = golden_section_search(lambda x: x, 0.05, 0.5, tolerance=1e-5)
    assert result.x == pytest.approx(0.5, abs=1e-4)


def test_iteration_cap_returns_midpoint():
    result = golden_section_search(lambda x: -(x - 0.3) ** 2, 0.05, 0.5, tolerance=1e-4, max_iterations=0)
    assert result.iterations == 0
    assert not result.converged
    assert result.x == pytest.approx(0.275)


@pytest.mark.parametrize("a, b, tol", [(0.5, 0.05, 1e-4), (0.2, 0.2, 1e-4), (0.05, 0.5, 0.0)])
def test_invalid_search_arguments(a, b, tol):
    with pytest.raises(ValueError):
        golden_section_search(lambda x: x, a, b, tolerance=tol)


def test_is_unimodal():
    assert is_unimodal([1, 2, 3, 2, 1])
    assert is_unimodal([1, 2, 2, 2, 1])
    assert is_unimodal([3, 2, 1])
    assert not is_unimodal([1, 3, 2, 4, 1])


# ---------------------------------------------------------------------------
# Objective and solver
# ---------------------------------------------------------------------------


def quadratic_frame() -> pd.DataFrame:
    # profit = 20 * v * (1 - d)(1 + 2d), maximised at d = 0.25
    return make_frame([{"price": 100.0, "volume": 10.0, "elasticity": 2.0, "margin": 0.2, "emissions_per_unit": 0.0}])


def test_bonus_is_strictly_above_threshold():
    cfg = OptimizerConfig(
        selection=SelectionPolicy.all(),
        bonus_threshold=2_000_000.0,
        bonus_amount=50_000.0,
        elasticity_model=ElasticityModel.PCT_FLOORED,
    )
    at_threshold = make_frame([{"price": 100.0, "volume": 20_000.0, "elasticity": 0.0}])
    above = make_frame([{"price": 100.0, "volume": 20_000.01, "elasticity": 0.0}])

    m = evaluate_discount(at_threshold, 0.0, cfg)
    assert m.total_sales == pytest.approx(2_000_000.0)
    assert not m.bonus_triggered
    assert m.net_profit == pytest.approx(m.net_profit_before_bonus)

    m = evaluate_discount(above, 0.0, cfg)
    assert m.bonus_triggered
    assert m.net_profit == pytest.approx(m.net_profit_before_bonus + 50_000.0)


@pytest.mark.parametrize("method", ["golden", "bounded"])
def test_finds_profit_maximising_discount(method):
    cfg = OptimizerConfig(selection=SelectionPolicy.all(), bonus_threshold=NO_BONUS, method=method)
    result = find_optimal_discount(quadratic_frame(), cfg)
    assert result.optimal_discount == pytest.approx(0.25, abs=1e-3)
    assert result.unimodal is True
    assert result.search.method == method


def test_result_payload():
    cfg = OptimizerConfig(selection=SelectionPolicy.all(), bonus_threshold=NO_BONUS)
    result = find_optimal_discount(quadratic_frame(), cfg)
    payload = result.to_dict()

    assert payload["previous_profit"] == pytest.approx(200.0)
    assert payload["previous_revenue"] == pytest.approx(1000.0)
    assert payload["new_profit_with_bonus"] == pytest.approx(225.0, rel=1e-4)
    assert payload["profit_pct_change"] == pytest.approx(12.5, rel=1e-3)
    assert payload["bonus_triggered"] is False
    assert payload["bonus_amount"] == 0.0
    assert payload["emissions_per_profit_before"] == 0.0
    assert payload["product_count"] == 1


def test_empty_selection_yields_undefined_ratios():
    cfg = OptimizerConfig(selection=SelectionPolicy.supplier("nobody"))
    payload = find_optimal_discount(quadratic_frame(), cfg).to_dict()
    assert payload["product_count"] == 0
    assert payload["previous_profit"] == 0.0
    assert payload["profit_pct_change"] is None
    assert payload["emissions_per_profit_before"] is None


def test_bonus_step_breaks_unimodality_and_is_logged(caplog):
    # net peaks near d = 0.125 while the bonus only pays for d in ~(0.163, 0.337)
    frame = make_frame(
        [{"price": 100.0, "volume": 1_000.0, "elasticity": 2.0, "margin": 0.2, "emissions_per_unit": 20.0}]
    )
    cfg = OptimizerConfig(
        selection=SelectionPolicy.all(),
        offset_rate=0.25,
        bonus_threshold=111_000.0,
        bonus_amount=5_000.0,
    )
    optimizer = DiscountOptimizer(cfg, frame)
    profile = optimizer.profile()
    assert profile["bonus_triggered"].any()
    assert not profile["bonus_triggered"].all()

    with caplog.at_level(logging.WARNING, logger="promo_pricing.optimizer"):
        result = optimizer.optimize()
    assert result.unimodal is False
    assert "not unimodal" in caplog.text


def test_baseline_excludes_bonus():
    frame = make_frame([{"price": 100.0, "volume": 30_000.0, "elasticity": 0.0}])
    cfg = OptimizerConfig(selection=SelectionPolicy.all())
    optimizer = DiscountOptimizer(cfg, frame)
    assert not optimizer.baseline().bonus_triggered
    assert optimizer.evaluate(0.05).bonus_triggered


@pytest.mark.parametrize(
    "kwargs",
    [
        {"search_bounds": (0.5, 0.05)},
        {"search_bounds": (0.1, 1.0)},
        {"search_bounds": (0.2, 0.2)},
        {"tolerance": 0.0},
        {"method": "newton"},
        {"elasticity_model": "logistic"},
    ],
)
def test_invalid_config_rejected(kwargs):
    with pytest.raises(ValueError):
        OptimizerConfig(**kwargs)


def test_objective_profile_spans_bracket():
    cfg = OptimizerConfig(selection=SelectionPolicy.all(), bonus_threshold=NO_BONUS, search_bounds=(0.1, 0.4))
    profile = objective_profile(quadratic_frame(), cfg, points=7)
    assert profile["discount"].tolist() == pytest.approx([0.1, 0.15, 0.2, 0.25, 0.3, 0.35, 0.4])
    assert profile["net_profit"].idxmax() == 3
