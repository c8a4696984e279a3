import logging
import math

import pandas as pd
import pytest

from promo_pricing.emissions import (
    EmissionIndex,
    attach_emissions,
    emission_components,
    emissions_per_unit,
    to_kg,
)


@pytest.fixture
def index() -> EmissionIndex:
    categories = pd.DataFrame(
        {
            "category_lvl1": ["Food", "Food"],
            "category_lvl2": ["Snacks", "Snacks"],
            "emission_intensity": ["500", "9999"],
            "units": ["g CO2/unit", "kg"],
        }
    )
    brands = pd.DataFrame({"brand_key": ["B1"], "emission_intensity": ["0.2"], "units": ["kg CO2/unit"]})
    suppliers = pd.DataFrame(
        {
            "supplier_key": ["S1"],
            "distance": ["100"],
            "emission_intensity": ["2"],
            "units": ["g CO2/unit/mi"],
        }
    )
    return EmissionIndex.from_tables(categories, brands, suppliers)


def test_unit_normalisation():
    assert to_kg(500.0, "g CO2") == pytest.approx(0.5)
    assert to_kg(1.5, "kg CO2") == 1.5
    assert to_kg(3.0, None) == 3.0


def test_per_unit_sums_category_brand_and_distance_scaled_supplier(index):
    product = {"category_lvl1": "Food", "category_lvl2": "Snacks", "brand_key": "B1", "supplier_key": "S1"}
    parts = emission_components(product, index)
    assert parts["category_emissions"] == pytest.approx(0.5)
    assert parts["brand_emissions"] == pytest.approx(0.2)
    assert parts["supplier_emissions"] == pytest.approx(0.2)
    assert emissions_per_unit(product, index) == pytest.approx(0.9)


def test_first_duplicate_reference_row_wins(index):
    assert index.category[("Food", "Snacks")] == pytest.approx(0.5)


def test_missing_reference_rows_contribute_zero(index):
    product = {"category_lvl1": "Toys", "category_lvl2": "Games", "brand_key": "B9", "supplier_key": "S9"}
    assert emissions_per_unit(product, index) == 0.0


def test_attach_emissions_vectorised(index):
    frame = pd.DataFrame(
        {
            "product_key": ["P1", "P2"],
            "category_lvl1": ["Food", "Toys"],
            "category_lvl2": ["Snacks", "Games"],
            "brand_key": ["B1", "B9"],
            "supplier_key": ["S1", "S9"],
        }
    )
    out = attach_emissions(frame, index)
    assert out["emissions_per_unit"].tolist() == pytest.approx([0.9, 0.0])
    assert "emissions_per_unit" not in frame.columns


def test_unparseable_intensity_propagates_nan():
    brands = pd.DataFrame({"brand_key": ["B1"], "emission_intensity": ["n/a"], "units": ["kg"]})
    idx = EmissionIndex.from_tables(brand_table=brands)
    frame = pd.DataFrame(
        {"category_lvl1": ["Food"], "category_lvl2": ["Snacks"], "brand_key": ["B1"], "supplier_key": ["S1"]}
    )
    out = attach_emissions(frame, idx)
    assert math.isnan(out["emissions_per_unit"].iloc[0])


def test_attach_emissions_empty_frame(index):
    out = attach_emissions(pd.DataFrame(columns=["product_key"]), index)
    assert out.empty
    assert "emissions_per_unit" in out.columns


def test_missing_category_row_is_counted(index, caplog):
    frame = pd.DataFrame(
        {
            "product_key": ["P1", "P2"],
            "category_lvl1": ["Food", "Toys"],
            "category_lvl2": ["Snacks", "Games"],
            "brand_key": ["B1", "B1"],
            "supplier_key": ["S1", "S1"],
        }
    )
    with caplog.at_level(logging.DEBUG, logger="promo_pricing.emissions"):
        out = attach_emissions(frame, index)
    assert out["category_emissions"].tolist() == pytest.approx([0.5, 0.0])
    assert "1 products missing a category, brand or supplier emission factor" in caplog.text
