"""
Data transforms: flatten reconstructed timelines into long-form fact and
dimension tables that the aggregators and the dashboard work from.
"""

import logging

import pandas as pd

from .config import START_STATUS
from .models import Timeline

logger = logging.getLogger(__name__)

PERIOD_COLUMNS = [
    "entity_idx", "entity_id", "group_key", "current_status",
    "seq", "status", "start", "end", "days",
]
ENTITY_STATUS_COLUMNS = ["entity_idx", "entity_id", "group_key", "status", "days"]
TRANSITION_COLUMNS = ["entity_idx", "transition", "from_status", "to_status", "days"]
ENTITY_COLUMNS = [
    "entity_idx", "entity_id", "contributor_name", "project_name",
    "objective_name", "group_key", "current_status", "days_in_current_status",
    "total_time_in_project", "total_time_to_active", "period_count",
]

TRANSITION_ARROW = " → "


def transition_key(from_status: str, to_status: str) -> str:
    return f"{from_status}{TRANSITION_ARROW}{to_status}"


def build_fact_status_period(timelines: list[Timeline]) -> pd.DataFrame:
    """One row per reconstructed period.

    Returns
    -------
    fact_status_period DataFrame with columns:
        entity_idx, entity_id, group_key, current_status, seq, status,
        start, end, days
    """
    rows = []
    for idx, timeline in enumerate(timelines):
        for seq, period in enumerate(timeline.periods):
            rows.append({
                "entity_idx": idx,
                "entity_id": timeline.entity_id,
                "group_key": timeline.group_key,
                "current_status": timeline.current_status,
                "seq": seq,
                "status": period.status,
                "start": period.start,
                "end": period.end,
                "days": period.days,
            })

    df = pd.DataFrame(rows, columns=PERIOD_COLUMNS)
    df["days"] = df["days"].astype("int64")
    logger.info("Built fact_status_period with %d rows from %d timelines", len(df), len(timelines))
    return df


def build_fact_entity_status(timelines: list[Timeline]) -> pd.DataFrame:
    """Per-entity status totals (days summed within each entity first).

    An entity that revisits a status in non-adjacent periods contributes a
    single row for it. Empty timelines contribute no rows.

    Returns
    -------
    fact_entity_status DataFrame with columns:
        entity_idx, entity_id, group_key, status, days
    """
    periods = build_fact_status_period(timelines)
    if periods.empty:
        return pd.DataFrame(columns=ENTITY_STATUS_COLUMNS).astype({"days": "int64"})

    df = (
        periods.assign(group_key=periods["group_key"].fillna("Unknown"))
        .groupby(["entity_idx", "entity_id", "group_key", "status"], sort=True)["days"]
        .sum()
        .reset_index()
    )
    return df[ENTITY_STATUS_COLUMNS]


def build_fact_transition(timelines: list[Timeline]) -> pd.DataFrame:
    """One row per observed status transition.

    Duration is the dwell time in the source status. Identical adjacent
    statuses are skipped; a single-period timeline yields a synthetic
    ``Start → <status>`` row.

    Returns
    -------
    fact_transition DataFrame with columns:
        entity_idx, transition, from_status, to_status, days
    """
    rows = []
    for idx, timeline in enumerate(timelines):
        periods = timeline.periods
        if len(periods) == 1:
            pairs = [(START_STATUS, periods[0].status, periods[0].days)]
        else:
            pairs = [
                (periods[i].status, periods[i + 1].status, periods[i].days)
                for i in range(len(periods) - 1)
            ]
        for from_status, to_status, days in pairs:
            if from_status == to_status:
                continue
            rows.append({
                "entity_idx": idx,
                "transition": transition_key(from_status, to_status),
                "from_status": from_status,
                "to_status": to_status,
                "days": days,
            })

    df = pd.DataFrame(rows, columns=TRANSITION_COLUMNS)
    df["days"] = df["days"].astype("int64")
    return df


def build_dim_entity(timelines: list[Timeline], now: pd.Timestamp) -> pd.DataFrame:
    """Per-entity summary used by the timeline table.

    Returns
    -------
    dim_entity DataFrame with columns:
        entity_idx, entity_id, contributor_name, project_name,
        objective_name, group_key, current_status, days_in_current_status,
        total_time_in_project, total_time_to_active, period_count
    """
    rows = []
    for idx, timeline in enumerate(timelines):
        record = timeline.record
        rows.append({
            "entity_idx": idx,
            "entity_id": timeline.entity_id,
            "contributor_name": record.contributor_name if record else None,
            "project_name": record.project_name if record else None,
            "objective_name": record.objective_name if record else None,
            "group_key": timeline.group_key,
            "current_status": timeline.current_status,
            "days_in_current_status": timeline.days_in_current_status(now),
            "total_time_in_project": timeline.total_days,
            "total_time_to_active": timeline.time_to_active,
            "period_count": len(timeline),
        })
    return pd.DataFrame(rows, columns=ENTITY_COLUMNS)
