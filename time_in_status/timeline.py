"""
Timeline reconstruction: one entity's milestone dates and current status
turned into an ordered, de-duplicated sequence of status periods.

Tiers, in priority order
------------------------
1. Explicit milestones, sorted by date (source fields are often populated
   out of their natural order).
2. A leading "Start" period, chained milestone periods, and a trailing
   current-status period when the current status never appeared.
3. Fallback with no usable milestone: created -> last modified, then last
   modified -> now, both labelled with the current status.

All tiers end with a sort on start and a merge of consecutive periods that
share a status.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import pandas as pd

from .config import DEFAULT_VOCABULARY, StatusVocabulary
from .loaders.utils import normalise_date, whole_days
from .models import StatusPeriod, StatusRecord, Timeline

logger = logging.getLogger(__name__)


def _clamp(ts: pd.Timestamp, lower: pd.Timestamp, upper: pd.Timestamp) -> pd.Timestamp:
    return min(max(ts, lower), upper)


def _period(status: str, start: pd.Timestamp, end: pd.Timestamp) -> StatusPeriod | None:
    """Build a period, or None when the day count is negative or unknown."""
    days = whole_days(start, end)
    if days is None or days < 0:
        return None
    return StatusPeriod(status=status, start=start, end=end, days=days)


def merge_consecutive(periods: list[StatusPeriod]) -> list[StatusPeriod]:
    """Sort by start and merge neighbours sharing a status (days summed, end extended)."""
    merged: list[StatusPeriod] = []
    for period in sorted(periods, key=lambda p: p.start):
        if merged and merged[-1].status == period.status:
            last = merged[-1]
            last.end = period.end
            last.days += period.days
        else:
            merged.append(StatusPeriod(period.status, period.start, period.end, period.days))
    return merged


def milestone_pairs(
    record: StatusRecord,
    current_status: str,
    created: pd.Timestamp,
    now: pd.Timestamp,
    vocabulary: StatusVocabulary = DEFAULT_VOCABULARY,
) -> list[tuple[pd.Timestamp, str]]:
    """Surviving (date, label) pairs, clamped to the entity lifespan and sorted by date."""
    pairs = []
    for name, _entry in vocabulary.milestones:
        label = vocabulary.milestone_label(name, current_status)
        if label is None:
            continue
        ts = normalise_date(record.milestones.get(name))
        if ts is None:
            continue
        pairs.append((_clamp(ts, created, now), label))
    pairs.sort(key=lambda pair: pair[0])
    return pairs


def reconstruct(
    record: StatusRecord,
    now: pd.Timestamp,
    vocabulary: StatusVocabulary = DEFAULT_VOCABULARY,
) -> Timeline:
    """Rebuild the status timeline of one entity as of ``now``."""
    current_status = record.current_status or vocabulary.default_status

    created = normalise_date(record.created_at) or now
    created = min(created, now)
    last_modified = normalise_date(record.last_modified_at) or now
    last_modified = _clamp(last_modified, created, now)

    terminal = vocabulary.terminal_milestone()
    removed_at = None
    if terminal is not None and current_status == vocabulary.removed_status:
        removed_at = normalise_date(record.milestones.get(terminal))
        if removed_at is not None:
            removed_at = _clamp(removed_at, created, now)

    pairs = milestone_pairs(record, current_status, created, now, vocabulary)
    periods: list[StatusPeriod] = []

    if pairs:
        first_date = pairs[0][0]
        if first_date > created:
            start = _period(vocabulary.start_status, created, first_date)
            if start is not None:
                periods.append(start)

        for i, (date, label) in enumerate(pairs):
            if i + 1 < len(pairs):
                end = pairs[i + 1][0]
            else:
                end = removed_at if removed_at is not None else now
            period = _period(label, date, end)
            if period is not None:
                periods.append(period)

        if periods and not any(p.status == current_status for p in periods):
            last_end = periods[-1].end
            if last_end < now:
                trailing = _period(current_status, last_end, now)
                if trailing is not None:
                    periods.append(trailing)
    else:
        period = _period(current_status, created, last_modified)
        if period is not None:
            periods.append(period)
        if last_modified < now:
            stuck = _period(current_status, last_modified, now)
            if stuck is not None and stuck.days > 0:
                periods.append(stuck)

    return Timeline(
        entity_id=record.id,
        current_status=current_status,
        periods=merge_consecutive(periods),
        group_key=record.group_key,
        last_modified_at=last_modified,
        reinstated=_is_reinstated(record, current_status, vocabulary),
        record=record,
    )


def _is_reinstated(record: StatusRecord, current_status: str, vocabulary: StatusVocabulary) -> bool:
    """True when a removal date exists but the entity is no longer Removed."""
    terminal = vocabulary.terminal_milestone()
    if terminal is None or current_status == vocabulary.removed_status:
        return False
    return normalise_date(record.milestones.get(terminal)) is not None


def empty_timeline(record: StatusRecord, vocabulary: StatusVocabulary = DEFAULT_VOCABULARY) -> Timeline:
    current_status = getattr(record, "current_status", None) or vocabulary.default_status
    return Timeline(
        entity_id=str(getattr(record, "id", "")),
        current_status=current_status,
        periods=[],
        group_key=getattr(record, "group_key", None),
        record=record if isinstance(record, StatusRecord) else None,
    )


def reconstruct_safely(
    record: StatusRecord,
    now: pd.Timestamp,
    vocabulary: StatusVocabulary = DEFAULT_VOCABULARY,
) -> Timeline:
    """reconstruct(), with any failure logged and replaced by an empty timeline."""
    try:
        return reconstruct(record, now, vocabulary)
    except Exception:
        logger.exception("Error calculating time in status for record %s", getattr(record, "id", None))
        return empty_timeline(record, vocabulary)


def reconstruct_all(
    records: list[StatusRecord],
    now: pd.Timestamp,
    vocabulary: StatusVocabulary = DEFAULT_VOCABULARY,
    workers: int = 1,
) -> list[Timeline]:
    """Reconstruct a batch, in input order, optionally across a thread pool."""
    if workers <= 1 or len(records) < 2:
        return [reconstruct_safely(r, now, vocabulary) for r in records]
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(lambda r: reconstruct_safely(r, now, vocabulary), records))
