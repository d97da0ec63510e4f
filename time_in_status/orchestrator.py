"""
Batch orchestration: paged retrieval from a record source under a
wall-clock budget, with per-page reconstruction so an early stop still
returns everything computed so far.

Outcomes
--------
- complete: every page fetched, ``partial`` is False
- degraded: deadline hit, record cap hit, or a page failed after some
  records arrived; ``partial`` is True and ``warnings`` says why
- failed: nothing could be fetched at all; SourceUnavailableError
"""

import logging
import time
from dataclasses import dataclass, field

import pandas as pd

from .config import EngineConfig
from .loaders.base import (
    RecordPage,
    RecordQuery,
    RecordSource,
    SchemaMismatchError,
    SourceError,
    SourceUnavailableError,
    SupportedFields,
)
from .loaders.utils import normalise_date
from .models import Timeline
from .timeline import reconstruct_all

logger = logging.getLogger(__name__)


def utc_now() -> pd.Timestamp:
    """Current instant as a naive UTC timestamp."""
    return pd.Timestamp.now(tz="UTC").tz_localize(None)


@dataclass
class BatchResult:
    timelines: list[Timeline]
    now: pd.Timestamp
    query: RecordQuery = field(default_factory=RecordQuery)
    pages_fetched: int = 0
    records_fetched: int = 0
    total_hint: int | None = None
    fields: SupportedFields | None = None
    partial: bool = False
    warnings: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def population(self) -> int:
        return len(self.timelines)

    @property
    def reinstated_count(self) -> int:
        """Entities with a removal date that are no longer Removed."""
        return sum(1 for t in self.timelines if t.reinstated)


class DeadlineExceeded(Exception):
    """Raised internally when the execution budget runs out between pages."""


class BatchOrchestrator:
    """Drives a RecordSource through pagination, retries and the time budget."""

    def __init__(
        self,
        source: RecordSource,
        config: EngineConfig | None = None,
        clock=time.monotonic,
        sleep=time.sleep,
    ):
        self.source = source
        self.config = config or EngineConfig()
        self.clock = clock
        self.sleep = sleep
        self._fields: SupportedFields | None = None

    # ------------------------------------------------------------------
    # Field negotiation
    # ------------------------------------------------------------------
    def negotiate_fields(self, requested: SupportedFields | None = None) -> SupportedFields:
        """Ask the source once which of the declared fields it supports."""
        if self._fields is None:
            requested = requested or SupportedFields(
                milestone_fields=tuple(self.config.vocabulary.milestone_fields().values()),
            )
            try:
                self._fields = self.source.supported_fields(requested)
            except SourceError:
                logger.exception("Field negotiation failed; using the minimal field set")
                self._fields = SupportedFields.minimal()
        return self._fields

    # ------------------------------------------------------------------
    # Paging
    # ------------------------------------------------------------------
    def _check_deadline(self, deadline: float) -> None:
        if self.clock() >= deadline:
            raise DeadlineExceeded()

    def _fetch_page(
        self,
        query: RecordQuery,
        fields: SupportedFields,
        page_token: str | None,
        deadline: float,
    ) -> RecordPage:
        """Fetch one page, retrying transient failures at the page level."""
        attempt = 0
        while True:
            try:
                return self.source.list_entities(query, fields, page_token)
            except SchemaMismatchError:
                raise
            except SourceError as exc:
                if not exc.transient or attempt >= self.config.page_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Page fetch failed (attempt %d/%d): %s",
                    attempt, self.config.page_retries + 1, exc,
                )
                self._check_deadline(deadline)
                self.sleep(self.config.retry_backoff_seconds * attempt)

    def run(self, query: RecordQuery | None = None, now: pd.Timestamp | None = None) -> BatchResult:
        """Fetch, reconstruct and collect timelines for one request."""
        query = query or RecordQuery()
        now = normalise_date(now) or utc_now()
        started = self.clock()
        deadline = started + self.config.max_execution_seconds

        fields = self.negotiate_fields()
        result = BatchResult(timelines=[], now=now, query=query, fields=fields)
        page_token: str | None = None
        narrowed = fields.is_minimal

        while True:
            try:
                self._check_deadline(deadline)
            except DeadlineExceeded:
                self._soft_stop(result, f"Execution budget of {self.config.max_execution_seconds:.0f}s "
                                        f"exceeded after {result.pages_fetched} pages; results are partial")
                break

            try:
                page = self._fetch_page(query, fields, page_token, deadline)
            except DeadlineExceeded:
                self._soft_stop(result, "Execution budget exceeded while retrying a page; results are partial")
                break
            except SchemaMismatchError as exc:
                if narrowed or page_token is not None:
                    if not result.timelines:
                        raise SourceUnavailableError(f"Source rejected the minimal field set: {exc}") from exc
                    self._soft_stop(result, f"Field mismatch mid-pagination: {exc}")
                    break
                logger.warning("Source rejected requested fields, retrying with minimal set: %s", exc)
                fields = SupportedFields.minimal()
                self._fields = fields
                result.fields = fields
                narrowed = True
                continue
            except SourceError as exc:
                if not result.timelines:
                    raise SourceUnavailableError(f"Record source unavailable: {exc}") from exc
                self._soft_stop(result, f"Page fetch failed after {result.records_fetched} records: {exc}")
                break

            remaining = self.config.max_records - result.records_fetched
            records = page.records[:remaining]
            result.pages_fetched += 1
            result.records_fetched += len(records)
            if page.total_hint is not None:
                result.total_hint = page.total_hint

            result.timelines.extend(
                reconstruct_all(records, now, self.config.vocabulary, workers=self.config.workers)
            )
            logger.info(
                "Page %d: %d records (total %d%s)",
                result.pages_fetched, len(records), result.records_fetched,
                f" of ~{result.total_hint}" if result.total_hint is not None else "",
            )

            if not page.next_page_token or not page.records:
                break
            if result.records_fetched >= self.config.max_records:
                self._soft_stop(result, f"Record cap of {self.config.max_records} reached; results are partial")
                break
            page_token = page.next_page_token

        result.elapsed_seconds = self.clock() - started
        if result.reinstated_count:
            logger.info(
                "%d entities carry a removal date but are no longer Removed; "
                "their removal period is not counted",
                result.reinstated_count,
            )
        return result

    @staticmethod
    def _soft_stop(result: BatchResult, message: str) -> None:
        logger.warning(message)
        result.partial = True
        result.warnings.append(message)
