"""Unit tests for dashboard output shapes in dashboard.py."""

import json

import pandas as pd
import pytest

from time_in_status.config import EngineConfig
from time_in_status.dashboard import (
    build_report,
    get_bottlenecks,
    get_entity_timelines,
    get_overview,
    get_transitions,
)
from time_in_status.loaders import ExportSource, RecordQuery
from time_in_status.orchestrator import BatchResult
from time_in_status.simulator import generate_contributor_rows, rows_to_frame
from time_in_status.timeline import reconstruct_all


@pytest.fixture
def result(make_record, now):
    records = [
        make_record("Active", created=100, applied=90, qualified=60, onboarded=20,
                    group_key="Voice EN", entity_id="a0C000000000001AAA"),
        make_record("Qualified", created=50, qualified=30,
                    group_key="Voice EN", entity_id="a0C000000000002AAA"),
        make_record("Draft", created=12, last_modified=7, entity_id="a0C000000000003AAA"),
    ]
    records[0].contributor_name = "Amara Moyo"
    records[0].project_name = "Voice Collection EN-GB"
    return BatchResult(timelines=reconstruct_all(records, now), now=now)


class TestOverview:
    """Test the overview payload."""

    def test_keys_and_counts(self, result):
        """Test the overview carries every section and the active count."""
        overview = get_overview(result)

        assert set(overview) == {
            "averageTimeByStatus", "totalTimeDistributionPercent", "statusTransitions",
            "currentStatusCounts", "activeContributorsCount", "population", "partial", "warnings",
        }
        assert overview["activeContributorsCount"] == 1
        assert overview["population"] == 3
        assert overview["statusTransitions"]["Start → Draft"]["averageDays"] == 12

    def test_is_json_serialisable(self, result):
        """Test every payload is made of plain JSON types."""
        for payload in (
            get_overview(result),
            get_entity_timelines(result),
            get_bottlenecks(result),
            get_transitions(result),
        ):
            json.dumps(payload)


class TestEntityTimelines:
    """Test the paginated timeline payload."""

    def test_entity_shape(self, result):
        """Test one entity row carries names, dates and totals."""
        entity = get_entity_timelines(result)["data"][0]

        assert entity["contributorName"] == "Amara Moyo"
        assert entity["projectName"] == "Voice Collection EN-GB"
        assert entity["projectObjectiveName"] == "N/A"
        assert entity["daysInCurrentStatus"] == 20
        assert entity["totalTimeToActive"] == 20
        assert entity["totalTimeInProject"] == 100
        assert entity["statusTimeline"][0] == {
            "status": "Start", "startDate": "2023-11-22", "endDate": "2023-12-02", "days": 10,
        }

    def test_missing_names_default(self, result):
        """Test absent names fall back to readable placeholders."""
        entity = get_entity_timelines(result)["data"][2]

        assert entity["contributorName"] == "Unknown"
        assert entity["projectName"] == "Unknown"
        assert entity["totalTimeToActive"] is None

    def test_pagination(self, result):
        """Test limit, offset and hasMore."""
        page = get_entity_timelines(result, limit=2, offset=1)

        assert [e["entityId"] for e in page["data"]] == ["a0C000000000002AAA", "a0C000000000003AAA"]
        assert page["pagination"] == {"total": 3, "limit": 2, "offset": 1, "hasMore": False}
        assert get_entity_timelines(result, limit=1)["pagination"]["hasMore"] is True

    def test_status_filter(self, result):
        """Test the current status filter."""
        page = get_entity_timelines(result, status="Draft")

        assert [e["currentStatus"] for e in page["data"]] == ["Draft"]


class TestBottlenecksAndTransitions:
    """Test bottleneck and transition payloads."""

    def test_bottleneck_payload(self, result):
        """Test bottlenecks are ranked and carry the partial flag."""
        payload = get_bottlenecks(result, top_n=3)

        assert len(payload["topBottlenecks"]) == 3
        assert payload["partial"] is False
        assert "Voice EN" in payload["heatmapData"]

    def test_transition_payload(self, result):
        """Test transitions come with Sankey nodes in funnel order."""
        payload = get_transitions(result)

        assert payload["sankeyData"]["nodes"][0] == {"name": "Draft"}
        assert "App Received → Qualified" in payload["transitions"]


class TestSimulatedPipeline:
    """Test the pipeline end to end on simulated rows."""

    def test_build_report(self):
        """Test a full report over simulated rows keeps every invariant."""
        rows = generate_contributor_rows(n_records=120, now="2026-02-14")
        source = ExportSource(rows, config=EngineConfig(page_size=50))

        report = build_report(source, RecordQuery(group_by="project"), now=pd.Timestamp("2026-02-14"))
        timelines = report["result"].timelines

        assert report["result"].pages_fetched == 3
        assert len(timelines) == 120
        assert all(
            a.status != b.status for t in timelines for a, b in zip(t.periods, t.periods[1:])
        )
        assert all(p.days >= 0 for t in timelines for p in t.periods)
        assert not any(
            k.split(" → ")[0] == k.split(" → ")[1] for k in report["transitions"]["transitions"]
        )

    def test_rows_flatten_to_export_columns(self):
        """Test simulated rows flatten into dotted export columns."""
        frame = rows_to_frame(generate_contributor_rows(n_records=10))

        assert {"Id", "Status__c", "Project__r.Name", "Project__r.Account__r.Name"} <= set(frame.columns)
