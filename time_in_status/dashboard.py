"""
Dashboard-ready output functions.

These are the primary entry points for a Streamlit front end or a JSON
route. Each function takes a BatchResult and returns plain dicts of
Python scalars; every date is a YYYY-MM-DD string.
"""

import logging

from .config import DEFAULT_VOCABULARY, EngineConfig, StatusVocabulary
from .kpis import (
    active_count,
    aggregate_status_metrics,
    analyze_transitions,
    build_sankey,
    current_status_counts,
    rank_bottlenecks,
    status_time_distribution,
)
from .loaders.base import RecordQuery, RecordSource
from .loaders.utils import to_calendar_date
from .models import Timeline
from .orchestrator import BatchOrchestrator, BatchResult

logger = logging.getLogger(__name__)


def _status_flags(result: BatchResult) -> dict:
    return {"partial": result.partial, "warnings": list(result.warnings)}


def get_overview(result: BatchResult, vocabulary: StatusVocabulary = DEFAULT_VOCABULARY) -> dict:
    """High-level metrics for the overview cards and charts.

    Returns
    -------
    {
        "averageTimeByStatus": {status: {totalDays, count, minDays, maxDays, averageDays}},
        "totalTimeDistributionPercent": {status: percent},
        "statusTransitions": {"A → B": {count, totalDays, averageDays, medianDays, minDays, maxDays}},
        "currentStatusCounts": {status: entities},
        "activeContributorsCount": int,
        "population": int,
        "partial": bool,
        "warnings": [str],
    }
    """
    timelines = result.timelines
    overview = {
        "averageTimeByStatus": aggregate_status_metrics(timelines),
        "totalTimeDistributionPercent": status_time_distribution(timelines),
        "statusTransitions": analyze_transitions(timelines),
        "currentStatusCounts": current_status_counts(timelines),
        "activeContributorsCount": active_count(timelines, vocabulary),
        "population": result.population,
    }
    overview.update(_status_flags(result))
    return overview


def serialise_timeline(timeline: Timeline, now) -> dict:
    """One row of the per-entity timeline table."""
    record = timeline.record
    return {
        "entityId": timeline.entity_id,
        "contributorName": (record.contributor_name if record else None) or "Unknown",
        "projectName": (record.project_name if record else None) or "Unknown",
        "projectObjectiveName": (record.objective_name if record else None) or "N/A",
        "currentStatus": timeline.current_status,
        "daysInCurrentStatus": timeline.days_in_current_status(now),
        "statusTimeline": [
            {
                "status": p.status,
                "startDate": to_calendar_date(p.start),
                "endDate": to_calendar_date(p.end),
                "days": int(p.days),
            }
            for p in timeline.periods
        ],
        "totalTimeToActive": timeline.time_to_active,
        "totalTimeInProject": timeline.total_days,
    }


def get_entity_timelines(
    result: BatchResult,
    limit: int = 100,
    offset: int = 0,
    status: str | None = None,
) -> dict:
    """Paginated per-entity timelines.

    Entities whose reconstruction failed (empty timeline) are still listed
    so the page reflects the queried population.
    """
    limit = max(int(limit), 0)
    offset = max(int(offset), 0)
    timelines = result.timelines
    if status and status != "all":
        timelines = [t for t in timelines if t.current_status == status]

    total = len(timelines)
    page = timelines[offset:offset + limit]
    payload = {
        "data": [serialise_timeline(t, result.now) for t in page],
        "pagination": {
            "total": total,
            "limit": limit,
            "offset": offset,
            "hasMore": offset + limit < total,
        },
    }
    payload.update(_status_flags(result))
    return payload


def get_bottlenecks(result: BatchResult, min_days: float = 0, top_n: int | None = 10) -> dict:
    """Ranked bottlenecks and the group x status heatmap."""
    ranked = rank_bottlenecks(result.timelines, min_days=min_days, top_n=top_n)
    ranked.update(_status_flags(result))
    return ranked


def get_transitions(result: BatchResult, vocabulary: StatusVocabulary = DEFAULT_VOCABULARY) -> dict:
    """Transition statistics with Sankey nodes and links."""
    stats = analyze_transitions(result.timelines)
    payload = {
        "transitions": stats,
        "sankeyData": build_sankey(stats, vocabulary.status_order, vocabulary),
    }
    payload.update(_status_flags(result))
    return payload


def build_report(
    source: RecordSource,
    query: RecordQuery | None = None,
    config: EngineConfig | None = None,
    now=None,
    min_days: float = 0,
) -> dict:
    """Single entry point a front end calls to populate every view at once."""
    config = config or EngineConfig()
    result = BatchOrchestrator(source, config).run(query, now=now)
    logger.info(
        "Report over %d entities in %.1fs%s",
        result.population, result.elapsed_seconds, " (partial)" if result.partial else "",
    )
    return {
        "overview": get_overview(result, config.vocabulary),
        "timelines": get_entity_timelines(result),
        "bottlenecks": get_bottlenecks(result, min_days=min_days, top_n=config.top_n_bottlenecks),
        "transitions": get_transitions(result, config.vocabulary),
        "result": result,
    }
