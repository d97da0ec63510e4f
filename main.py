"""
Time-in-Status: end-to-end analytics pipeline.

Runs the full pipeline from a record source to dashboard-ready outputs and
prints smoke-test summaries. Uses simulated rows unless an export workbook
is given, or Salesforce credentials are set and ``--salesforce`` is passed.

Usage:
    python main.py
    python main.py path/to/export.xlsx
    python main.py --salesforce
"""

import logging
import sys

import pandas as pd

from time_in_status.config import EngineConfig
from time_in_status.dashboard import (
    get_bottlenecks,
    get_entity_timelines,
    get_overview,
    get_transitions,
)
from time_in_status.loaders import ExportSource, RecordQuery, SalesforceSource
from time_in_status.orchestrator import BatchOrchestrator
from time_in_status.simulator import generate_contributor_rows
from time_in_status.transforms import build_dim_entity, build_fact_status_period

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

SIMULATED_NOW = pd.Timestamp("2026-02-14")


def _make_source(args: list[str], config: EngineConfig):
    if "--salesforce" in args:
        return SalesforceSource.from_env(config), None
    paths = [a for a in args if not a.startswith("--")]
    if paths:
        return ExportSource.from_workbook(paths[0], config=config), None
    return ExportSource(generate_contributor_rows(now=SIMULATED_NOW), config=config), SIMULATED_NOW


def main(args: list[str] | None = None) -> None:
    """Run the full analytics pipeline and print smoke-test outputs."""
    args = sys.argv[1:] if args is None else args
    config = EngineConfig.from_env()

    print("=" * 70)
    print("  TIME IN STATUS | Contributor Project Analytics")
    print("  Analytics Pipeline Smoke Test")
    print("=" * 70)
    print()

    # ------------------------------------------------------------------
    # 1. Fetch and reconstruct
    # ------------------------------------------------------------------
    print("[ 1 ] FETCHING RECORDS")
    print("-" * 40)

    source, now = _make_source(args, config)
    orchestrator = BatchOrchestrator(source, config)
    fields = orchestrator.negotiate_fields()
    print(f"\nNegotiated fields: {', '.join(fields.select_list())}")

    result = orchestrator.run(RecordQuery(group_by="project"), now=now)
    print(
        f"\n{result.records_fetched} records in {result.pages_fetched} pages "
        f"({result.elapsed_seconds:.2f}s), partial={result.partial}"
    )
    for warning in result.warnings:
        print(f"  ! {warning}")

    # ------------------------------------------------------------------
    # 2. Build fact & dimension tables
    # ------------------------------------------------------------------
    print("\n")
    print("[ 2 ] BUILDING FACT & DIMENSION TABLES")
    print("-" * 40)

    fact_periods = build_fact_status_period(result.timelines)
    print(f"\nfact_status_period: {len(fact_periods)} rows")
    if not fact_periods.empty:
        print(fact_periods[["entity_id", "seq", "status", "days"]].head(10).to_string(index=False))

    dim_entity = build_dim_entity(result.timelines, result.now)
    print(f"\ndim_entity: {len(dim_entity)} rows")
    if not dim_entity.empty:
        print(dim_entity[
            ["entity_id", "group_key", "current_status", "days_in_current_status", "total_time_in_project"]
        ].head(10).to_string(index=False))

    # ------------------------------------------------------------------
    # 3. Dashboard outputs
    # ------------------------------------------------------------------
    print("\n")
    print("[ 3 ] DASHBOARD OUTPUTS")
    print("-" * 40)

    overview = get_overview(result)
    print("\nAverage time by status:")
    metrics = pd.DataFrame.from_dict(overview["averageTimeByStatus"], orient="index")
    if not metrics.empty:
        print(metrics.to_string())

    print("\nTime distribution (%):")
    for status, pct in overview["totalTimeDistributionPercent"].items():
        print(f"  {status:14s} | {pct:5.1f}")

    print(f"\nCurrent status counts: {overview['currentStatusCounts']}")
    print(f"Active contributors: {overview['activeContributorsCount']}")

    transitions = get_transitions(result)
    print("\nTransitions:")
    trans_df = pd.DataFrame.from_dict(transitions["transitions"], orient="index")
    if not trans_df.empty:
        print(trans_df.sort_values("count", ascending=False).to_string())

    bottlenecks = get_bottlenecks(result, top_n=config.top_n_bottlenecks)
    print("\nTop bottlenecks:")
    for b in bottlenecks["topBottlenecks"]:
        print(
            f"  {b['status']:14s} | avg {b['averageDays']:6.1f}d | "
            f"{b['percentOfTotalTime']:5.1f}% | {b['entitiesAffected']} entities"
        )

    timelines = get_entity_timelines(result, limit=5)
    print(f"\nSample timelines ({timelines['pagination']['total']} total):")
    for entity in timelines["data"]:
        steps = " -> ".join(f"{p['status']}({p['days']}d)" for p in entity["statusTimeline"])
        print(f"  {entity['contributorName']:18s} | {entity['currentStatus']:12s} | {steps}")

    # ------------------------------------------------------------------
    # 4. Property checks
    # ------------------------------------------------------------------
    print("\n")
    print("[ 4 ] PROPERTY CHECKS")
    print("-" * 40)

    adjacent_ok = all(
        a.status != b.status
        for t in result.timelines
        for a, b in zip(t.periods, t.periods[1:])
    )
    print(f"\n  [{'PASS' if adjacent_ok else 'FAIL'}] No adjacent periods share a status")

    non_negative = all(p.days >= 0 for t in result.timelines for p in t.periods)
    print(f"  [{'PASS' if non_negative else 'FAIL'}] All period durations are non-negative")

    pct_total = sum(overview["totalTimeDistributionPercent"].values())
    pct_ok = not overview["totalTimeDistributionPercent"] or abs(pct_total - 100) <= 0.1 * len(
        overview["totalTimeDistributionPercent"]
    )
    print(f"  [{'PASS' if pct_ok else 'FAIL'}] Distribution sums to {pct_total:.1f}% (100 within rounding)")

    no_self = all(
        not key.split(" → ")[0] == key.split(" → ")[-1]
        for key in transitions["transitions"]
    )
    print(f"  [{'PASS' if no_self else 'FAIL'}] No self-transitions reported")

    print(f"  [INFO] {result.reinstated_count} reinstated entities carry a stale removal date")

    print("\n" + "=" * 70)
    print("  Pipeline complete.")
    print("=" * 70)


if __name__ == "__main__":
    main()
