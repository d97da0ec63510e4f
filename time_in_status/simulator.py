"""
Simulated data generator for the time-in-status dashboard.

Generates raw Contributor Project rows shaped like Salesforce query
records, including the gaps real orgs have: missing milestone dates,
milestones populated out of order, unparseable dates and absent
relationship names. All values are synthetic.
"""

import numpy as np
import pandas as pd

from .config import MILESTONE_FIELDS

# Seed for reproducibility
_RNG = np.random.default_rng(42)

_ID_ALPHABET = np.array(list("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"))

_ACCOUNTS = [
    ("Northwind Labs", "001"),
    ("Contoso Speech", "001"),
    ("Fabrikam Vision", "001"),
]

# (project name, account index, objectives)
_PROJECTS = [
    ("Voice Collection EN-GB", 0, ["Accent coverage", "Noise robustness"]),
    ("Voice Collection ES-MX", 0, ["Accent coverage"]),
    ("Search Relevance Rating", 1, ["Query intent", "Freshness"]),
    ("Image Tagging Retail", 2, ["Product attributes"]),
    ("Map Feature Audit", 2, []),
]

_FIRST_NAMES = ["Amara", "Ben", "Chipo", "Dana", "Emeka", "Farai", "Grace", "Hiro", "Ines", "Jonah"]
_LAST_NAMES = ["Moyo", "Smith", "Ncube", "Garcia", "Okafor", "Sato", "Dube", "Khan", "Silva", "Olsen"]

# Final status mix: (status, weight, milestones reached)
_OUTCOMES = [
    ("Draft", 0.10, []),
    ("Invite", 0.06, []),
    ("App Received", 0.14, ["applied"]),
    ("Matched", 0.08, ["applied"]),
    ("Qualified", 0.14, ["applied", "qualified"]),
    ("Active", 0.22, ["applied", "qualified", "onboarded"]),
    ("Production", 0.12, ["applied", "qualified", "onboarded"]),
    ("Removed", 0.14, ["applied", "qualified", "removed"]),
]

# Typical dwell before each milestone, in days: (mean, std)
_DWELL_DAYS = {
    "applied": (6, 4),
    "qualified": (18, 10),
    "onboarded": (9, 6),
    "removed": (40, 25),
}


def _sf_id(prefix: str) -> str:
    """An 18-character, Salesforce-shaped ID."""
    body = "".join(_RNG.choice(_ID_ALPHABET, size=18 - len(prefix)))
    return prefix + body


def _sf_datetime(ts: pd.Timestamp) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%S.000+0000")


def _dwell(milestone: str) -> pd.Timedelta:
    mean, std = _DWELL_DAYS[milestone]
    days = max(_RNG.normal(mean, std), 0.5)
    return pd.Timedelta(days=float(days))


def _reference_data() -> tuple[list[dict], list[dict]]:
    accounts = [
        {"Id": _sf_id(prefix), "Name": name}
        for name, prefix in _ACCOUNTS
    ]
    projects = []
    for name, account_idx, objectives in _PROJECTS:
        projects.append({
            "Id": _sf_id("a0P"),
            "Name": name,
            "account": accounts[account_idx],
            "objectives": [{"Id": _sf_id("a0O"), "Name": o} for o in objectives],
        })
    return accounts, projects


def generate_contributor_rows(
    n_records: int = 400,
    now: str | pd.Timestamp = "2026-02-14",
    history_days: int = 240,
    malformed_rate: float = 0.03,
    missing_name_rate: float = 0.08,
) -> list[dict]:
    """Generate simulated Contributor Project rows.

    Each row is a nested dict matching a Salesforce REST query record, so it
    can be fed straight to ExportSource or written to a workbook export.

    Noise injected
    --------------
    - some milestone dates are dropped even though the status implies them
    - ``malformed_rate`` of rows carry an unparseable milestone date
    - ``missing_name_rate`` of rows lose their relationship names
    - a few rows keep a removal date after being reinstated to Active
    """
    now = pd.Timestamp(now)
    _, projects = _reference_data()
    statuses = [o[0] for o in _OUTCOMES]
    weights = np.array([o[1] for o in _OUTCOMES])
    reached_by_status = {o[0]: o[2] for o in _OUTCOMES}

    rows = []
    for _ in range(n_records):
        status = str(_RNG.choice(statuses, p=weights / weights.sum()))
        project = projects[int(_RNG.integers(len(projects)))]
        objective = (
            project["objectives"][int(_RNG.integers(len(project["objectives"])))]
            if project["objectives"] else None
        )

        created = now - pd.Timedelta(days=float(_RNG.uniform(1, history_days)))
        cursor = created
        milestone_dates = {}
        for milestone in reached_by_status[status]:
            cursor = cursor + _dwell(milestone)
            if cursor >= now:
                break
            # Source fields are sometimes left blank
            if _RNG.random() < 0.1:
                continue
            milestone_dates[milestone] = cursor

        # Reinstated contributors keep their old removal date
        if status == "Active" and _RNG.random() < 0.05:
            milestone_dates["removed"] = cursor - pd.Timedelta(days=3)

        last_modified = min(cursor + pd.Timedelta(days=float(_RNG.uniform(0, 5))), now)

        contact_id = _sf_id("003")
        row = {
            "Id": _sf_id("a0C"),
            "Name": f"CP-{len(rows) + 1:05d}",
            "Status__c": status,
            "CreatedDate": _sf_datetime(created),
            "LastModifiedDate": _sf_datetime(last_modified),
            "Contact__c": contact_id,
            "Contact__r": {
                "Name": f"{_RNG.choice(_FIRST_NAMES)} {_RNG.choice(_LAST_NAMES)}",
            },
            "Project__c": project["Id"],
            "Project__r": {
                "Name": project["Name"],
                "Account__c": project["account"]["Id"],
                "Account__r": {"Name": project["account"]["Name"]},
            },
            "Project_Objective__c": objective["Id"] if objective else None,
            "Project_Objective__r": {"Name": objective["Name"]} if objective else None,
        }
        for milestone, field_name in MILESTONE_FIELDS.items():
            ts = milestone_dates.get(milestone)
            # Date-only fields in the org
            row[field_name] = ts.strftime("%Y-%m-%d") if ts is not None else None

        if milestone_dates and _RNG.random() < malformed_rate:
            field_name = MILESTONE_FIELDS[next(iter(milestone_dates))]
            row[field_name] = "31/02/2025"

        if _RNG.random() < missing_name_rate:
            row["Contact__r"] = None
            row["Project__r"] = {"Account__c": project["account"]["Id"], "Account__r": None}
            row["Project_Objective__r"] = None

        rows.append(row)

    return rows


def rows_to_frame(rows: list[dict]) -> pd.DataFrame:
    """Flatten nested rows into dotted columns, as a workbook export lays them out."""
    df = pd.json_normalize(rows, sep=".")
    # json_normalize keeps null relationship objects as their own column
    return df.drop(columns=[c for c in df.columns if c.endswith("__r")], errors="ignore")
