"""
Time-in-Status: Interactive Dashboard

Run with:  streamlit run app.py
"""

import io

import streamlit as st
import plotly.graph_objects as go
import plotly.express as px
import pandas as pd

from time_in_status.config import ACTIVE_STATUSES, EngineConfig, GROUP_BY_OPTIONS, STATUS_ORDER
from time_in_status.dashboard import (
    get_bottlenecks,
    get_entity_timelines,
    get_overview,
    get_transitions,
)
from time_in_status.loaders import (
    ExportSource,
    RecordQuery,
    SalesforceSource,
    SourceUnavailableError,
    load_export_rows,
)
from time_in_status.orchestrator import BatchOrchestrator, BatchResult
from time_in_status.simulator import generate_contributor_rows

# ---------------------------------------------------------------------------
# Page config
# ---------------------------------------------------------------------------
st.set_page_config(
    page_title="Time in Status Dashboard",
    page_icon="⏱️",
    layout="wide",
    initial_sidebar_state="expanded",
)

STATUS_COLORS = {
    "Start": "#bdc3c7",
    "Draft": "#95a5a6",
    "Invite": "#9b59b6",
    "App Received": "#3498db",
    "Matched": "#1abc9c",
    "Qualified": "#f39c12",
    "Active": "#2ecc71",
    "Production": "#27ae60",
    "Removed": "#e74c3c",
}

SIMULATED_NOW = pd.Timestamp("2026-02-14")


# ---------------------------------------------------------------------------
# Data loading (cached)
# ---------------------------------------------------------------------------
@st.cache_data
def load_simulated_rows():
    return generate_contributor_rows(now=SIMULATED_NOW)


@st.cache_data
def load_uploaded_rows(content: bytes):
    return load_export_rows(io.BytesIO(content))


@st.cache_data(ttl=600, show_spinner="Fetching records...")
def load_result(source_kind: str, content: bytes | None, group_by: str, account: str, status: str) -> BatchResult:
    config = EngineConfig.from_env()
    now = None
    if source_kind == "Salesforce":
        source = SalesforceSource.from_env(config)
    elif source_kind == "Workbook export":
        source = ExportSource(load_uploaded_rows(content), config=config)
    else:
        source = ExportSource(load_simulated_rows(), config=config)
        now = SIMULATED_NOW

    query = RecordQuery(
        group_by=group_by,
        account=account or None,
        status=None if status == "all" else status,
    )
    return BatchOrchestrator(source, config).run(query, now=now)


# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------
st.sidebar.title("Time in Status")
st.sidebar.markdown("Contributor Project Funnel Analytics")
st.sidebar.divider()

source_kind = st.sidebar.radio("Data source", ["Simulated", "Workbook export", "Salesforce"])
content = None
if source_kind == "Workbook export":
    upload = st.sidebar.file_uploader("Export workbook", type=["xlsx"])
    if upload is None:
        st.info("Upload a Contributor Project export to continue.")
        st.stop()
    content = upload.getvalue()

group_by = st.sidebar.selectbox("Group by", list(GROUP_BY_OPTIONS))
account = st.sidebar.text_input("Account name", "")
status_filter = st.sidebar.selectbox("Current status", ["all"] + list(STATUS_ORDER))
min_days = st.sidebar.slider("Minimum total days for bottlenecks", 0, 500, 0, step=10)

page = st.sidebar.radio(
    "Navigate",
    ["Overview", "Transitions", "Bottlenecks", "Timelines"],
)

try:
    result = load_result(source_kind, content, group_by, account.strip(), status_filter)
except (SourceUnavailableError, RuntimeError, ValueError) as exc:
    st.error(f"Could not load records: {exc}")
    st.stop()

st.sidebar.divider()
st.sidebar.caption(
    f"{result.records_fetched} records, {result.pages_fetched} pages, "
    f"{result.elapsed_seconds:.1f}s"
)

if result.partial:
    st.warning("Results are partial: " + "; ".join(result.warnings))


def status_card(label: str, value, color: str, caption: str = ""):
    st.markdown(
        f"""
        <div style="background: linear-gradient(135deg, {color}22, {color}11);
                    border-left: 4px solid {color};
                    border-radius: 8px; padding: 16px; margin-bottom: 8px;">
            <div style="font-size: 13px; color: #888; font-weight: 600; text-transform: uppercase;">{label}</div>
            <div style="font-size: 28px; font-weight: 700; color: #222; margin: 4px 0;">{value}</div>
            <div style="font-size: 13px; color: #666;">{caption}</div>
        </div>
        """,
        unsafe_allow_html=True,
    )


# ===========================================================================
# PAGE: Overview
# ===========================================================================
if page == "Overview":
    st.title("Overview")
    overview = get_overview(result)

    cols = st.columns(4)
    counts = overview["currentStatusCounts"]
    with cols[0]:
        status_card("Contributors", overview["population"], "#3498db", "in the queried population")
    with cols[1]:
        status_card(
            "Active", overview["activeContributorsCount"], STATUS_COLORS["Active"],
            " + ".join(ACTIVE_STATUSES),
        )
    with cols[2]:
        status_card("Removed", counts.get("Removed", 0), STATUS_COLORS["Removed"])
    with cols[3]:
        status_card("Draft", counts.get("Draft", 0), STATUS_COLORS["Draft"])

    st.divider()

    metrics = pd.DataFrame.from_dict(overview["averageTimeByStatus"], orient="index")
    if metrics.empty:
        st.info("No status periods in the current selection.")
    else:
        metrics.index.name = "status"
        metrics = metrics.reset_index()

        col1, col2 = st.columns([3, 2])
        with col1:
            st.subheader("Average Days by Status")
            fig = go.Figure(go.Bar(
                x=metrics["status"],
                y=metrics["averageDays"],
                marker_color=[STATUS_COLORS.get(s, "#95a5a6") for s in metrics["status"]],
                text=metrics["averageDays"].apply(lambda x: f"{x:.1f}"),
                textposition="outside",
            ))
            fig.update_layout(
                height=400,
                yaxis_title="Days",
                plot_bgcolor="rgba(0,0,0,0)",
                margin=dict(l=10, r=10, t=10, b=40),
            )
            st.plotly_chart(fig, use_container_width=True)

        with col2:
            st.subheader("Share of Total Time")
            dist = overview["totalTimeDistributionPercent"]
            fig = px.pie(
                names=list(dist.keys()),
                values=list(dist.values()),
                color=list(dist.keys()),
                color_discrete_map=STATUS_COLORS,
                hole=0.4,
            )
            fig.update_layout(height=400, margin=dict(l=10, r=10, t=10, b=10))
            st.plotly_chart(fig, use_container_width=True)

        st.subheader("Status Breakdown")
        st.dataframe(metrics, use_container_width=True, hide_index=True)


# ===========================================================================
# PAGE: Transitions
# ===========================================================================
elif page == "Transitions":
    st.title("Status Transitions")
    transitions = get_transitions(result)
    sankey = transitions["sankeyData"]

    if sankey["links"]:
        labels = [n["name"] for n in sankey["nodes"]]
        fig = go.Figure(go.Sankey(
            node=dict(
                label=labels,
                color=[STATUS_COLORS.get(n, "#95a5a6") for n in labels],
                pad=20,
            ),
            link=dict(
                source=[l["source"] for l in sankey["links"]],
                target=[l["target"] for l in sankey["links"]],
                value=[l["count"] for l in sankey["links"]],
                customdata=[l["value"] for l in sankey["links"]],
                hovertemplate="%{source.label} → %{target.label}<br>"
                              "%{value} entities, avg %{customdata:.1f} days<extra></extra>",
            ),
        ))
        fig.update_layout(height=450, margin=dict(l=10, r=10, t=10, b=10))
        st.plotly_chart(fig, use_container_width=True)
    else:
        st.info("No transitions between funnel statuses in the current selection.")

    trans_df = pd.DataFrame.from_dict(transitions["transitions"], orient="index")
    if not trans_df.empty:
        trans_df.index.name = "transition"
        st.subheader("Transition Statistics")
        st.dataframe(
            trans_df.reset_index().sort_values("count", ascending=False),
            use_container_width=True, hide_index=True,
        )


# ===========================================================================
# PAGE: Bottlenecks
# ===========================================================================
elif page == "Bottlenecks":
    st.title("Bottlenecks")
    bottlenecks = get_bottlenecks(result, min_days=min_days)
    top = pd.DataFrame(bottlenecks["topBottlenecks"])

    if top.empty:
        st.info("No statuses above the minimum total days.")
    else:
        fig = go.Figure(go.Bar(
            x=top["averageDays"],
            y=top["status"],
            orientation="h",
            marker_color=[STATUS_COLORS.get(s, "#95a5a6") for s in top["status"]],
            text=top["percentOfTotalTime"].apply(lambda x: f"{x:.1f}% of time"),
            textposition="outside",
        ))
        fig.update_layout(
            height=400,
            xaxis_title="Average days per contributor",
            yaxis=dict(autorange="reversed"),
            plot_bgcolor="rgba(0,0,0,0)",
            margin=dict(l=10, r=10, t=10, b=40),
        )
        st.plotly_chart(fig, use_container_width=True)

        display = top.copy()
        display["groups"] = display["groups"].apply(lambda g: ", ".join(g))
        st.dataframe(display, use_container_width=True, hide_index=True)

    heatmap = pd.DataFrame(bottlenecks["heatmapData"]).T
    if not heatmap.empty:
        st.subheader(f"Average Days by {group_by.title()} and Status")
        ordered = [s for s in STATUS_ORDER if s in heatmap.columns]
        heatmap = heatmap[ordered + [c for c in heatmap.columns if c not in ordered]]
        fig = px.imshow(
            heatmap,
            color_continuous_scale="OrRd",
            aspect="auto",
            text_auto=".1f",
        )
        fig.update_layout(height=max(300, len(heatmap) * 40), margin=dict(l=10, r=10, t=10, b=40))
        st.plotly_chart(fig, use_container_width=True)
    else:
        st.caption("Group heatmap needs a grouping with named projects, objectives or accounts.")


# ===========================================================================
# PAGE: Timelines
# ===========================================================================
elif page == "Timelines":
    st.title("Contributor Timelines")

    page_size = 25
    total = get_entity_timelines(result, limit=0)["pagination"]["total"]
    n_pages = max((total + page_size - 1) // page_size, 1)
    page_no = st.number_input("Page", min_value=1, max_value=n_pages, value=1)
    timelines = get_entity_timelines(result, limit=page_size, offset=(page_no - 1) * page_size)
    st.caption(f"{total} contributors, page {page_no} of {n_pages}")

    entities = timelines["data"]
    if not entities:
        st.info("No contributors in the current selection.")
    else:
        # Gantt-style timeline
        gantt_rows = [
            {
                "contributor": f"{e['contributorName'][:30]} ({e['entityId'][-6:]})",
                "status": p["status"],
                "start": p["startDate"],
                "end": p["endDate"],
                "days": p["days"],
            }
            for e in entities
            for p in e["statusTimeline"]
        ]
        if gantt_rows:
            gantt = pd.DataFrame(gantt_rows)
            fig = px.timeline(
                gantt,
                x_start="start",
                x_end="end",
                y="contributor",
                color="status",
                color_discrete_map=STATUS_COLORS,
                hover_data=["days"],
            )
            fig.update_yaxes(autorange="reversed")
            fig.update_layout(
                height=max(300, len(entities) * 28),
                plot_bgcolor="rgba(0,0,0,0)",
                margin=dict(l=10, r=10, t=10, b=40),
            )
            st.plotly_chart(fig, use_container_width=True)

        table = pd.DataFrame([
            {k: v for k, v in e.items() if k != "statusTimeline"} for e in entities
        ])
        st.dataframe(table, use_container_width=True, hide_index=True)
