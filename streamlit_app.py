import io
import sys
from pathlib import Path
from typing import Dict, Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

PROJECT_SRC = Path(__file__).resolve().parent / "src"
if str(PROJECT_SRC) not in sys.path:
    sys.path.append(str(PROJECT_SRC))

from promo_pricing.data_loader import DataConfig, MalformedInputError, check_numeric, load_joined_frame  # noqa: E402
from promo_pricing.elasticity import ElasticityModel  # noqa: E402
from promo_pricing.optimizer import DiscountOptimizer, OptimizerConfig  # noqa: E402
from promo_pricing.scenarios import (  # noqa: E402
    SCENARIOS,
    TARGET_SUPPLIER,
    SelectionPolicy,
    compare_scenarios,
    get_scenario,
    run_scenario,
)


st.set_page_config(
    page_title="Promotion Discount Simulator",
    layout="wide",
    initial_sidebar_state="expanded",
)

BRAND_COLORS = {
    "baseline": "#7f8c8d",
    "projected": "#1b7a1b",
    "negative": "#c0392b",
}

st.markdown(
    """
    <style>
        .kpi-row {display:flex;gap:1rem;margin:0.5rem 0 1.5rem 0;}
        .kpi-card {flex:1;border:1px solid #e0e0e0;border-radius:10px;padding:0.8rem 1rem;}
        .kpi-card h4 {margin:0;font-size:0.85rem;color:#555;text-transform:uppercase;}
        .kpi-card .value {font-size:1.5rem;font-weight:700;}
        .kpi-card .delta {font-size:0.85rem;}
    </style>
    """,
    unsafe_allow_html=True,
)


@st.cache_data(show_spinner=False)
def cached_frame(data_dir: str, period: str) -> pd.DataFrame:
    return load_joined_frame(DataConfig(data_dir=Path(data_dir), period=period))


def df_to_csv_bytes(df: pd.DataFrame) -> bytes:
    with io.StringIO() as buffer:
        df.to_csv(buffer, index=False)
        return buffer.getvalue().encode("utf-8")


def millions(value: float) -> str:
    return f"{value / 1e6:,.2f} M"


def growth_badge(pct: Optional[float]) -> str:
    if pct is None or pd.isna(pct):
        return "<span>n/a</span>"
    color = BRAND_COLORS["projected"] if pct >= 0 else BRAND_COLORS["negative"]
    symbol = "+ " if pct >= 0 else "- "
    return f"<span style='color:{color};font-weight:700;'>{symbol}{abs(pct):.2f}%</span>"


def kpi_card(title: str, value: str, pct: Optional[float]) -> str:
    return f"""
    <div class="kpi-card">
        <h4>{title}</h4>
        <div class="value">{value}</div>
        <div class="delta">{growth_badge(pct)}&nbsp;vs baseline</div>
    </div>
    """


def baseline_vs_projected(baseline: Dict[str, float], projected: Dict[str, float]) -> go.Figure:
    metrics = ["sales", "gross_profit", "net_profit", "offset_cost"]
    fig = go.Figure()
    fig.add_bar(name="Baseline", x=metrics, y=[baseline[m] for m in metrics], marker_color=BRAND_COLORS["baseline"])
    fig.add_bar(name="Projected", x=metrics, y=[projected[m] for m in metrics], marker_color=BRAND_COLORS["projected"])
    fig.update_layout(barmode="group", title="Selected products: baseline vs projected", yaxis_title="Value")
    return fig


with st.sidebar:
    st.markdown("### Data")
    data_dir = st.text_input("Data directory", value=str(DataConfig().data_dir))
    period = st.text_input("Period", value=DataConfig().period)

    st.markdown("### Scenario")
    scenario_name = st.selectbox("Scenario", list(SCENARIOS))
    base = SCENARIOS[scenario_name]
    st.caption(base.description)
    discount_rate = st.slider("Discount rate", 0.0, 0.9, float(base.discount_rate), step=0.01)
    offset_rate = st.number_input("Offset cost per kg CO2", value=float(base.offset_rate), min_value=0.0, step=0.05)
    models = [m.value for m in ElasticityModel]
    elasticity_model = st.selectbox("Elasticity model", models, index=models.index(base.elasticity_model.value))

try:
    frame = check_numeric(cached_frame(data_dir, period))
except FileNotFoundError as exc:
    st.error(f"Data not available: {exc}")
    st.stop()
except MalformedInputError as exc:
    st.error(f"{exc}. Affected products: {', '.join(exc.product_keys[:20])}")
    st.stop()

st.title("Promotion Discount Simulator")
st.caption(f"{len(frame)} products in period {period}")

tab_scenario, tab_compare, tab_optimizer = st.tabs(["Scenario", "Compare", "Optimal Discount"])

with tab_scenario:
    config = get_scenario(
        scenario_name,
        discount_rate=discount_rate,
        offset_rate=offset_rate,
        elasticity_model=elasticity_model,
    )
    result = run_scenario(frame, config)
    totals = result.totals

    st.markdown(
        "<div class='kpi-row'>"
        + kpi_card("Sales", millions(totals.projected["sales"]), totals.ratios["sales"])
        + kpi_card("Net profit", millions(totals.projected["net_profit"]), totals.ratios["net_profit"])
        + kpi_card("Emissions (kg)", f"{totals.projected['emissions']:,.0f}", totals.ratios["emissions"])
        + kpi_card(
            "Company revenue",
            millions(totals.company.get("projected_revenue") or 0.0),
            totals.company.get("revenue_change_pct"),
        )
        + "</div>",
        unsafe_allow_html=True,
    )
    if totals.selected_count == 0:
        st.info("No products match this scenario's selection.")
    else:
        st.plotly_chart(baseline_vs_projected(totals.baseline, totals.projected), use_container_width=True)

    products = result.to_dict()["products"]
    products_df = pd.DataFrame(products)
    st.dataframe(products_df, hide_index=True, use_container_width=True)
    st.download_button(
        "Download products (CSV)",
        data=df_to_csv_bytes(products_df),
        file_name=f"{scenario_name}_products.csv",
        mime="text/csv",
    )

with tab_compare:
    names = list(SCENARIOS)
    cols = st.columns(2)
    left_name = cols[0].selectbox("First scenario", names, index=names.index("emissions-analysis"))
    right_name = cols[1].selectbox("Second scenario", names, index=names.index("best-sellers-analysis"))
    comparison = compare_scenarios(frame, [get_scenario(left_name), get_scenario(right_name)])

    for col, (_, row) in zip(st.columns(2), comparison.iterrows()):
        with col:
            st.markdown(f"#### {row['scenario']}")
            st.caption(f"{row['selected_count']} products at {row['discount_rate']:.0%} off")
            st.markdown(
                "<div class='kpi-row'>"
                + kpi_card("Sales", millions(row["projected_sales"]), row["sales_change_pct"])
                + kpi_card("Net profit", millions(row["projected_net_profit"]), row["net_profit_change_pct"])
                + kpi_card("Emissions (kg)", f"{row['projected_emissions']:,.0f}", row["emissions_change_pct"])
                + "</div>",
                unsafe_allow_html=True,
            )

    long = comparison.melt(
        id_vars="scenario",
        value_vars=["projected_sales", "projected_net_profit", "projected_emissions"],
        var_name="metric",
        value_name="value",
    )
    fig = px.bar(long, x="metric", y="value", color="scenario", barmode="group", title="Projected figures by scenario")
    st.plotly_chart(fig, use_container_width=True)
    st.dataframe(comparison, hide_index=True, use_container_width=True)

with tab_optimizer:
    cols = st.columns(3)
    supplier_key = cols[0].text_input("Supplier", value=TARGET_SUPPLIER)
    low, high = cols[1].slider("Search bracket", 0.0, 0.9, (0.05, 0.5), step=0.01)
    method = cols[2].selectbox("Method", ["golden", "bounded"])

    if st.button("Find optimal discount", type="primary"):
        try:
            opt_cfg = OptimizerConfig(
                selection=SelectionPolicy.supplier(supplier_key),
                search_bounds=(low, high),
                method=method,
            )
        except ValueError as exc:
            st.error(f"Invalid search settings: {exc}")
            st.stop()
        with st.spinner("Searching..."):
            optimizer = DiscountOptimizer(opt_cfg, frame)
            best = optimizer.optimize()
            profile = optimizer.profile()
        summary = best.to_dict()

        if best.unimodal is False:
            st.warning("Profit is not unimodal on this bracket; the result may be a local maximum.")

        st.markdown(
            "<div class='kpi-row'>"
            + kpi_card("Optimal discount", f"{best.optimal_discount:.2%}", None)
            + kpi_card("Net profit", millions(summary["new_profit_with_bonus"]), summary["profit_pct_change"])
            + kpi_card("Revenue", millions(summary["new_revenue"]), summary["revenue_pct_change"])
            + kpi_card("Emissions (kg)", f"{summary['new_emissions']:,.0f}", summary["emissions_pct_change"])
            + "</div>",
            unsafe_allow_html=True,
        )
        if summary["bonus_triggered"]:
            st.success(f"Sales threshold bonus of {summary['bonus_amount']:,.0f} triggered.")

        fig = px.line(profile, x="discount", y="net_profit", title="Net profit across the discount bracket")
        fig.add_vline(x=best.optimal_discount, line_dash="dash", line_color=BRAND_COLORS["projected"])
        fig.update_layout(xaxis_tickformat=".0%", yaxis_title="Net profit")
        st.plotly_chart(fig, use_container_width=True)
        st.json(summary)
