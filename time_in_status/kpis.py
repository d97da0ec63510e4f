"""
KPI computation functions: pure folds over reconstructed timelines.

Provides per-status dwell statistics, the percentage time distribution,
transition statistics with Sankey links, and bottleneck ranking with a
sparse group x status heatmap. Every function is order-independent over
its input timelines, so batches can be reduced in any chunking.
"""

import logging
from collections import Counter
from decimal import ROUND_HALF_UP, Decimal

import pandas as pd

from .config import DEFAULT_VOCABULARY, GROUP_PLACEHOLDERS, STATUS_ORDER, StatusVocabulary
from .models import Timeline
from .transforms import TRANSITION_ARROW, build_fact_entity_status, build_fact_transition

logger = logging.getLogger(__name__)

# ID-based group keys produced when a relationship name is unavailable
_GROUP_ID_LABELS = {
    "Project-": "Project",
    "Objective-": "Objective",
}


def _round1(value: float) -> float:
    """One decimal place, halves rounded up."""
    return float(Decimal(str(float(value))).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def median_lower(values: list[int]) -> int | None:
    """Median of a list, taking the lower of the two middles on even counts."""
    if not values:
        return None
    ordered = sorted(values)
    return ordered[(len(ordered) - 1) // 2]


# ---------------------------------------------------------------------------
# Status aggregation
# ---------------------------------------------------------------------------
def aggregate_status_metrics(timelines: list[Timeline]) -> dict:
    """Per-status dwell statistics across the population.

    Days are summed per entity first, so ``count`` is the number of
    entities that ever had the status and min/max compare entity totals.

    Returns
    -------
    Dict keyed by status:
    {
        "Qualified": {"totalDays": 30, "count": 3, "minDays": 4,
                      "maxDays": 15, "averageDays": 10.0},
        ...
    }
    """
    df = build_fact_entity_status(timelines)
    if df.empty:
        logger.warning("No timeline periods to aggregate")
        return {}

    agg = df.groupby("status")["days"].agg(
        totalDays="sum", count="size", minDays="min", maxDays="max",
    )

    metrics = {}
    for status, row in agg.iterrows():
        total = int(row["totalDays"])
        count = int(row["count"])
        metrics[status] = {
            "totalDays": total,
            "count": count,
            "minDays": int(row["minDays"]),
            "maxDays": int(row["maxDays"]),
            "averageDays": _round1(total / count) if count else 0.0,
        }
    return metrics


def status_time_distribution(timelines: list[Timeline]) -> dict[str, float]:
    """Share of all recorded days spent in each status, in percent (one decimal)."""
    df = build_fact_entity_status(timelines)
    if df.empty:
        return {}

    totals = df.groupby("status")["days"].sum()
    grand_total = int(totals.sum())
    return {
        status: _round1(int(days) / grand_total * 100) if grand_total > 0 else 0.0
        for status, days in totals.items()
    }


def current_status_counts(timelines: list[Timeline]) -> dict[str, int]:
    """Number of entities currently in each status."""
    counts = Counter(t.current_status for t in timelines)
    return dict(sorted(counts.items()))


def active_count(timelines: list[Timeline], vocabulary: StatusVocabulary = DEFAULT_VOCABULARY) -> int:
    """Entities currently Active or in Production, compared case-insensitively."""
    return sum(
        1 for t in timelines
        if any(vocabulary.matches(t.current_status, s) for s in vocabulary.active_statuses)
    )


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def analyze_transitions(timelines: list[Timeline]) -> dict:
    """Statistics per ``"A → B"`` transition key.

    Returns
    -------
    Dict keyed by transition:
    {
        "Qualified → Active": {"count": 4, "totalDays": 40,
                               "averageDays": 10.0, "medianDays": 9,
                               "minDays": 3, "maxDays": 19},
        ...
    }
    """
    df = build_fact_transition(timelines)
    if df.empty:
        return {}

    stats = {}
    for key, days in df.groupby("transition")["days"]:
        values = sorted(int(d) for d in days)
        total = sum(values)
        stats[key] = {
            "count": len(values),
            "totalDays": total,
            "averageDays": _round1(total / len(values)),
            "medianDays": median_lower(values),
            "minDays": values[0],
            "maxDays": values[-1],
        }
    return stats


def _funnel_index(status: str, order: list[str], vocabulary: StatusVocabulary) -> int | None:
    return next((i for i, label in enumerate(order) if vocabulary.matches(status, label)), None)


def build_sankey(
    transition_stats: dict,
    status_order=STATUS_ORDER,
    vocabulary: StatusVocabulary = DEFAULT_VOCABULARY,
) -> dict:
    """Sankey nodes/links for transitions between statuses in the funnel order.

    Transitions touching a status outside the order (including the
    synthetic Start) are left out of the links.
    """
    order = list(status_order)
    nodes = [{"name": status} for status in order]
    links = []
    for key, stats in transition_stats.items():
        from_status, _, to_status = key.partition(TRANSITION_ARROW)
        source = _funnel_index(from_status, order, vocabulary)
        target = _funnel_index(to_status, order, vocabulary)
        if source is not None and target is not None:
            links.append({
                "source": source,
                "target": target,
                "value": stats["averageDays"],
                "count": stats["count"],
                "label": key,
            })
    return {"nodes": nodes, "links": links}


# ---------------------------------------------------------------------------
# Bottlenecks
# ---------------------------------------------------------------------------
def _is_real_group(key) -> bool:
    return isinstance(key, str) and key.strip() != "" and key not in GROUP_PLACEHOLDERS


def format_group_label(key: str) -> str:
    """Readable label for ID-based group keys (``Project-a0B1`` -> ``Project (a0B1)``)."""
    for prefix, label in _GROUP_ID_LABELS.items():
        if key.startswith(prefix):
            return f"{label} ({key[len(prefix):]})"
    return key


def status_totals(fact_entity_status: pd.DataFrame) -> pd.DataFrame:
    """Per-status total days and number of entities touched.

    Returns
    -------
    DataFrame indexed by status with columns: totalDays, entitiesAffected
    """
    if fact_entity_status.empty:
        return pd.DataFrame(columns=["totalDays", "entitiesAffected"])
    return fact_entity_status.groupby("status").agg(
        totalDays=("days", "sum"),
        entitiesAffected=("entity_idx", "nunique"),
    )


def grouped_status_totals(fact_entity_status: pd.DataFrame) -> pd.DataFrame:
    """Per (group, status) total days and entity counts.

    Returns
    -------
    DataFrame with columns: group_key, status, totalDays, count
    """
    if fact_entity_status.empty:
        return pd.DataFrame(columns=["group_key", "status", "totalDays", "count"])
    return (
        fact_entity_status.groupby(["group_key", "status"])
        .agg(totalDays=("days", "sum"), count=("entity_idx", "nunique"))
        .reset_index()
    )


def build_heatmap(grouped: pd.DataFrame) -> dict:
    """Sparse group label -> status -> average days matrix.

    Placeholder groups, zero-average cells and groups left without cells
    are omitted.
    """
    heatmap: dict[str, dict[str, float]] = {}
    if grouped.empty:
        return heatmap

    valid = grouped[grouped["group_key"].map(_is_real_group)]
    for key, rows in valid.groupby("group_key", sort=True):
        cells = {}
        for _, row in rows.iterrows():
            count = int(row["count"])
            avg = int(row["totalDays"]) / count if count else 0
            if avg > 0:
                cells[row["status"]] = _round1(avg)
        if cells:
            heatmap[format_group_label(key)] = cells

    logger.info(
        "Heatmap built from %d valid group keys: %d entries",
        valid["group_key"].nunique(), len(heatmap),
    )
    return heatmap


def rank(
    totals: pd.DataFrame,
    grouped: pd.DataFrame,
    min_days: float = 0,
    population: int = 0,
    top_n: int | None = 10,
) -> dict:
    """Rank statuses by average dwell time per entity in the population.

    ``averageDays`` divides a status's total by the whole population, not by
    the entities that touched it.

    Returns
    -------
    {
        "topBottlenecks": [
            {"status": ..., "totalDays": ..., "averageDays": ...,
             "entitiesAffected": ..., "percentOfTotalTime": ...,
             "groups": [...]},
            ...
        ],
        "heatmapData": {group_label: {status: average_days}},
    }
    """
    denominator = population if population > 0 else 1
    grand_total = int(totals["totalDays"].sum()) if not totals.empty else 0

    groups_by_status: dict[str, list[str]] = {}
    if not grouped.empty:
        real = grouped[grouped["group_key"].map(_is_real_group)]
        for status, rows in real.groupby("status"):
            groups_by_status[status] = sorted(rows["group_key"].unique().tolist())

    bottlenecks = []
    for status, row in totals.iterrows():
        total = int(row["totalDays"])
        if total < min_days:
            continue
        bottlenecks.append({
            "status": status,
            "totalDays": total,
            "averageDays": _round1(total / denominator),
            "entitiesAffected": int(row["entitiesAffected"]),
            "percentOfTotalTime": _round1(total / grand_total * 100) if grand_total > 0 else 0.0,
            "groups": groups_by_status.get(status, []),
        })

    bottlenecks.sort(key=lambda b: b["averageDays"], reverse=True)
    if top_n is not None:
        bottlenecks = bottlenecks[:top_n]

    return {
        "topBottlenecks": bottlenecks,
        "heatmapData": build_heatmap(grouped),
    }


def rank_bottlenecks(
    timelines: list[Timeline],
    min_days: float = 0,
    top_n: int | None = 10,
) -> dict:
    """Bottleneck ranking and heatmap straight from a batch of timelines."""
    fact = build_fact_entity_status(timelines)
    return rank(
        status_totals(fact),
        grouped_status_totals(fact),
        min_days=min_days,
        population=len(timelines),
        top_n=top_n,
    )
