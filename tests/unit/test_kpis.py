"""Unit tests for aggregation functions in kpis.py."""

import random

import pandas as pd
import pytest

from time_in_status.kpis import (
    active_count,
    aggregate_status_metrics,
    analyze_transitions,
    build_sankey,
    current_status_counts,
    format_group_label,
    median_lower,
    rank_bottlenecks,
    status_time_distribution,
)
from time_in_status.models import StatusPeriod, Timeline
from time_in_status.timeline import reconstruct


T0 = pd.Timestamp("2024-01-01")


def make_timeline(entity_id, current, steps, group_key=None):
    """Timeline from (status, days) steps laid end to end from T0."""
    periods = []
    cursor = T0
    for status, days in steps:
        end = cursor + pd.Timedelta(days=days)
        periods.append(StatusPeriod(status, cursor, end, days))
        cursor = end
    return Timeline(entity_id=entity_id, current_status=current, periods=periods, group_key=group_key)


@pytest.fixture
def population():
    return [
        make_timeline("e1", "Active", [("Start", 5), ("Qualified", 10), ("Active", 25)], "Voice EN"),
        make_timeline("e2", "Qualified", [("Start", 5), ("Qualified", 15), ("Draft", 10)], "Voice EN"),
        make_timeline("e3", "Removed", [("Start", 10), ("Qualified", 5), ("Removed", 15)], "Project-a0P1b2c3"),
    ]


class TestStatusMetrics:
    """Test per-status aggregation."""

    def test_percent_of_total_time(self, population):
        """Test Qualified holds 30 of 100 days, i.e. 30.0 percent."""
        distribution = status_time_distribution(population)

        assert distribution["Qualified"] == 30.0
        assert sum(distribution.values()) == pytest.approx(100.0, abs=0.1 * len(distribution))

    def test_metrics_per_status(self, population):
        """Test totals, counts, extremes and the rounded average."""
        metrics = aggregate_status_metrics(population)

        assert metrics["Qualified"] == {
            "totalDays": 30,
            "count": 3,
            "minDays": 5,
            "maxDays": 15,
            "averageDays": 10.0,
        }
        assert metrics["Active"]["count"] == 1

    def test_average_rounds_halves_up(self):
        """Test an average of exactly 12.25 days is reported as 12.3."""
        timelines = [
            make_timeline(f"e{i}", "Draft", [("Draft", days)])
            for i, days in enumerate([12, 12, 12, 13])
        ]

        assert aggregate_status_metrics(timelines)["Draft"]["averageDays"] == 12.3
        assert rank_bottlenecks(timelines)["topBottlenecks"][0]["averageDays"] == 12.3

    def test_revisited_status_counts_entity_once(self):
        """Test an entity revisiting a status is one contributor with summed days."""
        timeline = make_timeline("e1", "Qualified", [("Qualified", 4), ("Matched", 2), ("Qualified", 6)])

        metrics = aggregate_status_metrics([timeline])

        assert metrics["Qualified"]["count"] == 1
        assert metrics["Qualified"]["totalDays"] == 10

    def test_empty_population(self):
        """Test empty input yields empty results rather than errors."""
        assert aggregate_status_metrics([]) == {}
        assert status_time_distribution([]) == {}
        assert analyze_transitions([]) == {}

    def test_zero_total_time_gives_zero_percentages(self):
        """Test an all-zero population does not divide by zero."""
        timeline = make_timeline("e1", "Invite", [("Invite", 0)])

        assert status_time_distribution([timeline]) == {"Invite": 0.0}

    def test_current_status_counts(self, population):
        """Test counts of entities per current status."""
        assert current_status_counts(population) == {"Active": 1, "Qualified": 1, "Removed": 1}

    def test_order_independent(self, population):
        """Test shuffling the population leaves every aggregate unchanged."""
        shuffled = population[:]
        random.Random(7).shuffle(shuffled)

        assert aggregate_status_metrics(shuffled) == aggregate_status_metrics(population)
        assert analyze_transitions(shuffled) == analyze_transitions(population)
        assert rank_bottlenecks(shuffled) == rank_bottlenecks(population)


class TestTransitions:
    """Test transition statistics."""

    def test_single_period_entity_starts_from_start(self, now, make_record):
        """Test a merged single-period Draft timeline emits Start -> Draft."""
        record = make_record("Draft", created=12, last_modified=7)
        timeline = reconstruct(record, now)

        stats = analyze_transitions([timeline])

        assert list(stats) == ["Start → Draft"]
        assert stats["Start → Draft"]["count"] == 1
        assert stats["Start → Draft"]["averageDays"] == 12

    def test_duration_is_source_dwell_time(self, population):
        """Test a transition carries the days spent in its source status."""
        stats = analyze_transitions(population)

        assert stats["Qualified → Active"]["totalDays"] == 10
        assert stats["Start → Qualified"] == {
            "count": 3,
            "totalDays": 20,
            "averageDays": 6.7,
            "medianDays": 5,
            "minDays": 5,
            "maxDays": 10,
        }

    def test_no_self_transitions(self):
        """Test identical adjacent statuses never produce X -> X."""
        timeline = Timeline(
            entity_id="e1",
            current_status="Draft",
            periods=[
                StatusPeriod("Draft", T0, T0 + pd.Timedelta(days=2), 2),
                StatusPeriod("Draft", T0 + pd.Timedelta(days=2), T0 + pd.Timedelta(days=3), 1),
            ],
        )

        stats = analyze_transitions([timeline])

        assert all(k.split(" → ")[0] != k.split(" → ")[1] for k in stats)

    def test_empty_timeline_contributes_nothing(self):
        """Test an empty timeline adds no transitions."""
        assert analyze_transitions([Timeline(entity_id="e1", current_status="Draft")]) == {}

    @pytest.mark.parametrize(
        "values, expected",
        [
            ([7], 7),
            ([3, 1, 2], 2),
            ([4, 1, 3, 2], 2),
            ([10, 20], 10),
            ([], None),
        ],
        ids=["single", "odd", "even-lower-middle", "pair", "empty"],
    )
    def test_median_lower(self, values, expected):
        """Test the median takes the lower middle on even counts."""
        assert median_lower(values) == expected


class TestSankey:
    """Test Sankey node and link construction."""

    def test_links_use_funnel_indices(self, population):
        """Test links index into the funnel order and skip Start."""
        sankey = build_sankey(analyze_transitions(population))
        names = [n["name"] for n in sankey["nodes"]]

        link = next(l for l in sankey["links"] if l["label"] == "Qualified → Active")
        assert names[link["source"]] == "Qualified"
        assert names[link["target"]] == "Active"
        assert link["value"] == 10.0
        assert all(l["label"].split(" → ")[0] != "Start" for l in sankey["links"])


class TestBottlenecks:
    """Test bottleneck ranking and the group heatmap."""

    def test_average_divides_by_population(self, population):
        """Test averageDays divides by all entities, not only those affected."""
        ranked = rank_bottlenecks(population)
        active = next(b for b in ranked["topBottlenecks"] if b["status"] == "Active")

        assert active["totalDays"] == 25
        assert active["entitiesAffected"] == 1
        assert active["averageDays"] == pytest.approx(8.3)
        assert active["percentOfTotalTime"] == 25.0

    def test_sorted_descending_and_capped(self, population):
        """Test ranking order and the top-N cap."""
        ranked = rank_bottlenecks(population, top_n=2)
        averages = [b["averageDays"] for b in ranked["topBottlenecks"]]

        assert len(averages) == 2
        assert averages == sorted(averages, reverse=True)

    def test_min_days_threshold(self, population):
        """Test statuses below the minimum total are dropped."""
        ranked = rank_bottlenecks(population, min_days=21)

        assert {b["status"] for b in ranked["topBottlenecks"]} == {"Qualified", "Active"}

    def test_groups_exclude_placeholders(self):
        """Test Unknown and All never appear as groups."""
        timelines = [
            make_timeline("e1", "Qualified", [("Qualified", 5)], "Unknown"),
            make_timeline("e2", "Qualified", [("Qualified", 5)], "All"),
            make_timeline("e3", "Qualified", [("Qualified", 5)], "Voice EN"),
        ]

        ranked = rank_bottlenecks(timelines)

        assert ranked["topBottlenecks"][0]["groups"] == ["Voice EN"]
        assert list(ranked["heatmapData"]) == ["Voice EN"]

    def test_heatmap_is_sparse_and_labelled(self, population):
        """Test the heatmap averages per group and relabels ID-based keys."""
        heatmap = rank_bottlenecks(population)["heatmapData"]

        assert heatmap["Voice EN"]["Qualified"] == 12.5
        assert heatmap["Project (a0P1b2c3)"] == {"Start": 10.0, "Qualified": 5.0, "Removed": 15.0}
        assert "Active" not in heatmap["Project (a0P1b2c3)"]

    def test_heatmap_omits_zero_cells(self):
        """Test zero-average cells and groups left empty are omitted."""
        timelines = [
            make_timeline("e1", "Invite", [("Invite", 0)], "Voice EN"),
            make_timeline("e2", "Qualified", [("Qualified", 3)], "Image Tagging"),
        ]

        heatmap = rank_bottlenecks(timelines)["heatmapData"]

        assert heatmap == {"Image Tagging": {"Qualified": 3.0}}

    @pytest.mark.parametrize(
        "key, expected",
        [
            ("Project-a0P1b2c3", "Project (a0P1b2c3)"),
            ("Objective-a0O9", "Objective (a0O9)"),
            ("Voice EN", "Voice EN"),
        ],
    )
    def test_format_group_label(self, key, expected):
        """Test ID-based group keys get readable labels."""
        assert format_group_label(key) == expected


class TestVocabularyMatching:
    """Test case-insensitive status matching in funnel lookups."""

    def test_active_count_ignores_case(self):
        """Test lower-case active statuses still count as active."""
        timelines = [
            make_timeline("e1", "active", [("active", 3)]),
            make_timeline("e2", "Production", [("Production", 3)]),
            make_timeline("e3", "Qualified", [("Qualified", 3)]),
        ]

        assert active_count(timelines) == 2

    def test_sankey_matches_funnel_labels_ignoring_case(self):
        """Test transition statuses map onto funnel nodes regardless of case."""
        stats = {"qualified → ACTIVE": {"count": 2, "averageDays": 4.0}}

        links = build_sankey(stats)["links"]

        assert [(l["source"], l["target"]) for l in links] == [(4, 5)]
