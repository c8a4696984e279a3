import json

import pandas as pd
import pytest

from promo_pricing.cli import RunConfig, main, parse_overrides


def test_parse_overrides_coerces_types():
    cfg = RunConfig()
    parse_overrides(
        cfg,
        [
            "scenario=low-emissions",
            "discount_rate=0.3",
            "max_iterations=12",
            "supplier_key=1098896101",
            "elasticity_model=power",
            "period=07",
            "not-an-option",
        ],
    )
    assert cfg.scenario == "low-emissions"
    assert cfg.discount_rate == pytest.approx(0.3)
    assert cfg.max_iterations == 12 and isinstance(cfg.max_iterations, int)
    assert cfg.supplier_key == "1098896101"
    assert cfg.elasticity_model == "power"
    assert cfg.period == "07"


def test_runs_named_scenario(dataset_dir, tmp_path, capsys):
    out_dir = tmp_path / "out"
    summary = main(
        [
            "scenario=category-wide",
            f"data_dir={dataset_dir}",
            f"out_dir={out_dir}",
            "discount_rate=0.1",
        ]
    )
    assert summary["scenario"]["discount_rate"] == pytest.approx(0.1)
    assert summary["selected_count"] == 2

    products = pd.read_csv(out_dir / "category-wide_products.csv", dtype={"product_key": str})
    assert products["product_key"].tolist() == ["P1", "P2"]
    with open(out_dir / "run_summary.json", encoding="utf-8") as fh:
        assert json.load(fh)["selected_count"] == 2
    assert '"selected_count": 2' in capsys.readouterr().out


def test_runs_optimal_discount(dataset_dir, tmp_path):
    out_dir = tmp_path / "out"
    summary = main(["scenario=optimal", f"data_dir={dataset_dir}", f"out_dir={out_dir}", "method=bounded"])
    assert summary["search"]["method"] == "bounded"
    assert summary["product_count"] == 1
    assert (out_dir / "optimal_products.csv").exists()


def test_unknown_scenario_exits(dataset_dir, tmp_path):
    with pytest.raises(SystemExit):
        main(["scenario=clearance", f"data_dir={dataset_dir}", f"out_dir={tmp_path}"])
