"""Pytest configuration and fixtures for time-in-status testing."""

import pandas as pd
import pytest

from time_in_status.config import EngineConfig
from time_in_status.loaders.base import RecordPage, SourceError, SupportedFields
from time_in_status.models import StatusRecord


NOW = pd.Timestamp("2024-03-01")


def days_ago(n: float) -> pd.Timestamp:
    return NOW - pd.Timedelta(days=n)


@pytest.fixture
def now():
    """Fixed evaluation instant shared by reconstruction tests."""
    return NOW


@pytest.fixture
def make_record():
    """Factory for StatusRecord values with dates given as days before NOW.

    Example:
        >>> def test_x(make_record):
        ...     record = make_record("Qualified", created=30, qualified=10)
    """
    def _factory(status="Draft", created=60, last_modified=None, group_key=None,
                 entity_id="a0C000000000001AAA", **milestones):
        return StatusRecord(
            id=entity_id,
            current_status=status,
            milestones={
                name: (days_ago(value) if isinstance(value, (int, float)) else value)
                for name, value in milestones.items()
            },
            created_at=days_ago(created) if created is not None else None,
            last_modified_at=days_ago(last_modified) if last_modified is not None else None,
            group_key=group_key,
        )
    return _factory


class FakeSource:
    """In-memory RecordSource with scripted page failures.

    ``script`` maps a page index to an exception raised the next time that
    page is requested; each scripted exception fires once.
    """

    def __init__(self, pages, script=None, fields=None):
        self.pages = pages
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.fields = fields
        self.calls = []
        self.field_requests = 0

    def supported_fields(self, requested):
        self.field_requests += 1
        return self.fields if self.fields is not None else requested

    def list_entities(self, query, fields, page_token=None):
        index = int(page_token) if page_token else 0
        self.calls.append((index, fields))
        pending = self.script.get(index)
        if pending:
            raise pending.pop(0)
        next_token = str(index + 1) if index + 1 < len(self.pages) else None
        return RecordPage(records=self.pages[index], next_page_token=next_token,
                          total_hint=sum(len(p) for p in self.pages))


@pytest.fixture
def fake_source_factory():
    def _factory(pages, script=None, fields=None):
        return FakeSource(pages, script=script, fields=fields)
    return _factory


@pytest.fixture
def fast_config():
    """EngineConfig with no backoff so retry tests run instantly."""
    return EngineConfig(retry_backoff_seconds=0.0, page_retries=2)


@pytest.fixture
def transient_error():
    return SourceError("503 Service Unavailable", transient=True)


@pytest.fixture
def full_fields():
    return SupportedFields()
