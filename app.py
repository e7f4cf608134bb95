"""
app.py — Streamlit Entry Point

Sheet Insights: Upload a spreadsheet → Build charts → Get insights

This is the UI for the product. All data logic is delegated to tools/
(charts, statistics) and agent/ (insight generation). The UI only handles
presentation and user interaction.
"""

from uuid import uuid4

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

from agent.graph import InsightGenerationError, InsightOrchestrator
from config.llm_config import get_generation_capability
from config.settings import configure_logging, load_settings
from tools.charts import ChartRequest, generate_chart
from tools.data_loader import safe_load_records
from tools.dataset import dataset_overview, infer_dataset
from tools.statistics import summarize_dataset
from tools.validators import (
    AGGREGATIONS,
    CHART_KINDS,
    ClientInputError,
    is_3d_kind,
)


# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Sheet Insights",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)


# =============================================================================
# SESSION STATE INITIALIZATION
# =============================================================================

@st.cache_resource
def get_orchestrator() -> InsightOrchestrator:
    """One orchestrator (and insight store) per server process."""
    settings = load_settings()
    configure_logging(settings.log_level)
    return InsightOrchestrator(get_generation_capability(settings))


def init_session_state():
    """Initialize session state with default values."""
    defaults = {
        "user_id": uuid4().hex,
        "dataset": None,
        "filename": None,
        "charts": [],
        "insight": None,
        "insight_warnings": [],
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


init_session_state()


# =============================================================================
# SIDEBAR
# =============================================================================

def render_sidebar():
    """Render provider status."""
    with st.sidebar:
        st.markdown("### ⚙️ Insight engine")
        capability = get_orchestrator().capability
        if capability.available:
            st.success(f"{capability.provider} · {capability.model}")
        else:
            st.info("No LLM configured. Insights use the statistical fallback.")

        if st.session_state.dataset is not None:
            st.divider()
            st.caption(f"Charts this session: {len(st.session_state.charts)}")


# =============================================================================
# FILE UPLOAD SECTION
# =============================================================================

def render_upload_section():
    """Render file upload and turn the sheet into a dataset."""
    uploaded_file = st.file_uploader(
        "📂 Drop your spreadsheet here or click to browse",
        type=["xlsx", "xls", "csv"],
        help="Supported: Excel and CSV files up to 10MB",
        key="file_uploader",
    )

    if uploaded_file is None or uploaded_file.name == st.session_state.filename:
        return

    records, error = safe_load_records(uploaded_file.read(), uploaded_file.name)
    if error:
        st.error(error)
        return

    try:
        dataset = infer_dataset(records, name=uploaded_file.name, owner_id=st.session_state.user_id)
    except ClientInputError as e:
        st.error(str(e))
        return

    st.session_state.dataset = dataset
    st.session_state.filename = uploaded_file.name
    st.session_state.charts = []
    st.session_state.insight = None
    st.session_state.insight_warnings = []


def render_overview():
    """Counts, headers and preview of the uploaded dataset."""
    overview = dataset_overview(st.session_state.dataset)

    col1, col2, col3 = st.columns(3)
    col1.metric("Rows", f"{overview['rowCount']:,}")
    col2.metric("Columns", overview["columnCount"])
    col3.metric("Numeric columns", len(summarize_dataset(st.session_state.dataset)["statistics"]))

    st.dataframe(pd.DataFrame(overview["preview"], columns=overview["headers"]), use_container_width=True)


# =============================================================================
# CHART BUILDER
# =============================================================================

def render_chart_builder():
    """Chart request form → chart record."""
    dataset = st.session_state.dataset
    headers = dataset.headers

    with st.form("chart_builder"):
        col1, col2, col3 = st.columns(3)
        chart_type = col1.selectbox("Chart type", CHART_KINDS)
        x_axis = col2.selectbox("X axis", headers)
        y_axis = col3.selectbox("Y axis", headers, index=min(1, len(headers) - 1))

        col4, col5 = st.columns(2)
        z_axis = col4.selectbox("Z axis (3D only)", ["—"] + headers)
        aggregation = col5.selectbox("Aggregation", AGGREGATIONS)
        title = st.text_input("Title (optional)")

        submitted = st.form_submit_button("📈 Generate chart", type="primary")

    if not submitted:
        return

    payload = {
        "fileId": dataset.id,
        "chartType": chart_type,
        "xAxis": x_axis,
        "yAxis": y_axis,
        "zAxis": None if z_axis == "—" else z_axis,
        "aggregation": aggregation,
        "title": title,
    }

    try:
        request = ChartRequest.from_payload(payload)
        chart = generate_chart(st.session_state.user_id, dataset, request)
    except ClientInputError as e:
        st.error(str(e))
        return

    st.session_state.charts.insert(0, chart)


def _series_figure(chart_type: str, chart_data: dict) -> go.Figure:
    """Plotly figure for a 2D series payload."""
    labels = chart_data["labels"]
    series = chart_data["datasets"][0]
    values = series["data"]
    color = series["backgroundColor"]

    if chart_type in ("pie", "doughnut"):
        colors = color if isinstance(color, list) else None
        trace = go.Pie(
            labels=labels,
            values=values,
            hole=0.45 if chart_type == "doughnut" else 0,
            marker=dict(colors=colors),
        )
    elif chart_type == "radar":
        trace = go.Scatterpolar(r=values, theta=labels, fill="toself", line=dict(color=color), name=series["label"])
    elif chart_type == "line":
        trace = go.Scatter(x=labels, y=values, mode="lines+markers", line=dict(color=color), name=series["label"])
    elif chart_type == "scatter":
        trace = go.Scatter(x=labels, y=values, mode="markers", marker=dict(color=color), name=series["label"])
    else:
        trace = go.Bar(x=labels, y=values, marker_color=color, name=series["label"])

    return go.Figure(trace)


def render_charts():
    """Render every chart generated in this session, newest first."""
    for chart in st.session_state.charts:
        st.markdown(f"#### {chart['title']}")
        if chart["description"]:
            st.caption(chart["description"])

        if is_3d_kind(chart["chartType"]):
            fig = go.Figure(chart["chartData"])
        else:
            fig = _series_figure(chart["chartType"], chart["chartData"])

        fig.update_layout(height=420, margin=dict(l=20, r=20, t=40, b=20))
        st.plotly_chart(fig, use_container_width=True, key=chart["id"])


# =============================================================================
# INSIGHTS
# =============================================================================

def render_insights():
    """Generate (once) and display insights for the dataset."""
    dataset = st.session_state.dataset

    if st.button("🧠 Generate insights", use_container_width=True):
        with st.spinner("Analyzing your data..."):
            try:
                final_state = get_orchestrator().run(st.session_state.user_id, dataset)
            except InsightGenerationError as e:
                st.error(str(e))
                if e.recovery_hint:
                    st.caption(e.recovery_hint)
                return
        st.session_state.insight = final_state["insight"]
        st.session_state.insight_warnings = final_state.get("warnings", [])

    insight = st.session_state.insight
    if not insight:
        return

    st.markdown(f"> {insight['summary']}")

    findings = insight["keyFindings"]
    if findings:
        cols = st.columns(len(findings))
        for col, finding in zip(cols, findings):
            col.metric(finding["title"], finding["value"], help=finding["description"])

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**📈 Trends**")
        for trend in insight["trends"]:
            st.markdown(f"- {trend}")
    with col2:
        st.markdown("**✅ Recommendations**")
        for rec in insight["recommendations"]:
            st.markdown(f"- {rec}")

    st.caption(f"Source: {insight['sourceModel']}")
    for warning in st.session_state.insight_warnings:
        st.warning(warning)


# =============================================================================
# MAIN
# =============================================================================

def main():
    st.title("📊 Sheet Insights")
    st.caption("Upload a spreadsheet → chart any columns → get an AI-style summary")

    render_sidebar()
    render_upload_section()

    if st.session_state.dataset is None:
        st.info("Upload a spreadsheet to get started.")
        return

    tab_overview, tab_charts, tab_insights = st.tabs(["Overview", "Charts", "Insights"])
    with tab_overview:
        render_overview()
    with tab_charts:
        render_chart_builder()
        render_charts()
    with tab_insights:
        render_insights()


main()
