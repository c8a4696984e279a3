import numpy as np
import pytest

from promo_pricing.elasticity import (
    ElasticityModel,
    check_discount,
    project,
    project_arrays,
    project_frame,
    volume_uplift,
)
from conftest import make_frame


def test_linear_projection_matches_worked_example():
    p = project(100.0, 10.0, 2.0, 0.1, ElasticityModel.LINEAR)
    assert p.new_price == pytest.approx(90.0)
    assert p.new_volume == pytest.approx(12.0)


def test_zero_discount_is_identity_for_every_model():
    for model in ElasticityModel:
        p = project(42.0, 7.0, 1.3, 0.0, model)
        assert p.new_price == pytest.approx(42.0)
        assert p.new_volume == pytest.approx(7.0)


def test_power_model_uplift():
    assert volume_uplift(0.0, 0.3) == pytest.approx(1.0)
    p = project(10.0, 10.0, 2.0, 0.2, ElasticityModel.POWER)
    assert p.new_volume == pytest.approx(10.0 * 0.8 ** -2)


def test_models_differ_for_same_inputs():
    linear = project(10.0, 10.0, 2.0, 0.2, "linear").new_volume
    power = project(10.0, 10.0, 2.0, 0.2, "power").new_volume
    assert linear == pytest.approx(14.0)
    assert power == pytest.approx(15.625)


def test_pct_floored_clamps_volume_at_zero():
    p = project(10.0, 10.0, -20.0, 0.1, ElasticityModel.PCT_FLOORED)
    assert p.new_volume == 0.0


def test_pct_floored_handles_zero_price():
    p = project(0.0, 10.0, 2.0, 0.1, ElasticityModel.PCT_FLOORED)
    assert p.new_price == 0.0
    assert p.new_volume == pytest.approx(12.0)


def test_nan_inputs_propagate():
    new_price, new_volume = project_arrays([np.nan], [10.0], [2.0], 0.1, "pct_floored")
    assert np.isnan(new_price[0])
    assert np.isnan(new_volume[0])


@pytest.mark.parametrize("bad", [-0.01, 1.0, 1.5])
def test_discount_outside_unit_interval_rejected(bad):
    with pytest.raises(ValueError):
        check_discount(bad)


def test_unknown_model_rejected():
    with pytest.raises(ValueError, match="Unknown elasticity model"):
        ElasticityModel.parse("logistic")
    assert ElasticityModel.parse(" Power ") is ElasticityModel.POWER


def test_project_frame_columns_and_identities():
    frame = make_frame([{"price": 100.0, "volume": 10.0}, {"price": 5.0, "volume": 0.0}])
    out = project_frame(frame, 0.1, "linear", offset_rate=0.25)

    first = out.iloc[0]
    assert first["new_sales"] == pytest.approx(1080.0)
    assert first["new_gross_profit"] == pytest.approx(216.0)
    assert first["new_emissions"] == pytest.approx(60.0)
    assert first["new_offset_cost"] == pytest.approx(15.0)
    assert first["baseline_sales"] == pytest.approx(1000.0)
    assert first["pct_volume_change"] == pytest.approx(20.0)

    np.testing.assert_allclose(out["new_sales"], out["new_price"] * out["new_volume"])
    np.testing.assert_allclose(out["new_gross_profit"], out["new_sales"] * out["margin"])

    # zero baseline volume leaves the percentage undefined
    assert np.isnan(out.iloc[1]["pct_volume_change"])
    assert "new_price" not in frame.columns
