"""
Mapping of raw Salesforce rows into StatusRecord values.

Relationship names may be missing when the org does not expose them; the
lookup ID is then used as a shortened fallback label.
"""

import logging

from ..config import (
    ACCOUNT_NAME_FIELD,
    CONTACT_FIELD_CANDIDATES,
    CREATED_FIELD,
    DEFAULT_VOCABULARY,
    ID_FIELD,
    LAST_MODIFIED_FIELD,
    OBJECTIVE_FIELD,
    PROJECT_FIELD,
    RELATIONSHIP_FIELDS,
    STATUS_FIELD,
    StatusVocabulary,
)
from ..models import StatusRecord
from .utils import clean_str, get_path

logger = logging.getLogger(__name__)

# Prefixes for ID-based group keys; the heatmap renders them as "Project (xxxx)"
GROUP_ID_PREFIXES = {
    "project": "Project",
    "objective": "Objective",
}


def _contributor_name(row: dict) -> str | None:
    for lookup in CONTACT_FIELD_CANDIDATES:
        name = clean_str(get_path(row, RELATIONSHIP_FIELDS[lookup]))
        if name:
            return name
    for lookup in CONTACT_FIELD_CANDIDATES:
        raw_id = clean_str(row.get(lookup))
        if raw_id:
            return raw_id[:18] + "..."
    return None


def _lookup_label(row: dict, lookup: str) -> str | None:
    name = clean_str(get_path(row, RELATIONSHIP_FIELDS[lookup]))
    if name:
        return name
    raw_id = clean_str(row.get(lookup))
    if raw_id:
        return raw_id[:18] + "..."
    return None


def resolve_group_key(row: dict, group_by: str | None) -> str:
    """Return the grouping value for a row.

    - project / objective: relationship name, else ``Project-<id8>`` /
      ``Objective-<id8>``, else ``Unknown``
    - account: account name through the project, else ``Unknown``
    - anything else: ``All``
    """
    if group_by in ("project", "objective"):
        lookup = PROJECT_FIELD if group_by == "project" else OBJECTIVE_FIELD
        name = clean_str(get_path(row, RELATIONSHIP_FIELDS[lookup]))
        if name:
            return name
        raw_id = clean_str(row.get(lookup))
        if raw_id:
            return f"{GROUP_ID_PREFIXES[group_by]}-{raw_id[:8]}"
        return "Unknown"
    if group_by == "account":
        return clean_str(get_path(row, ACCOUNT_NAME_FIELD)) or "Unknown"
    return "All"


def record_from_row(
    row: dict,
    group_by: str | None = None,
    vocabulary: StatusVocabulary = DEFAULT_VOCABULARY,
) -> StatusRecord:
    """Build a StatusRecord from one Salesforce query row.

    Milestones are read from the date fields the vocabulary declares. Date
    fields are carried raw; absent milestone columns simply produce no
    milestone entry.
    """
    milestones = {
        name: row.get(field_name)
        for name, field_name in vocabulary.milestone_fields().items()
        if field_name in row
    }
    return StatusRecord(
        id=str(row.get(ID_FIELD)),
        current_status=clean_str(row.get(STATUS_FIELD)),
        milestones=milestones,
        created_at=row.get(CREATED_FIELD),
        last_modified_at=row.get(LAST_MODIFIED_FIELD),
        group_key=resolve_group_key(row, group_by),
        contributor_name=_contributor_name(row),
        project_name=_lookup_label(row, PROJECT_FIELD),
        objective_name=_lookup_label(row, OBJECTIVE_FIELD),
        account_name=clean_str(get_path(row, ACCOUNT_NAME_FIELD)),
    )


def records_from_rows(
    rows: list[dict],
    group_by: str | None = None,
    vocabulary: StatusVocabulary = DEFAULT_VOCABULARY,
) -> list[StatusRecord]:
    """Map a page of rows, skipping rows without an Id."""
    records = []
    for row in rows:
        if not isinstance(row, dict) or row.get(ID_FIELD) is None:
            logger.warning("Skipping row without %s", ID_FIELD)
            continue
        records.append(record_from_row(row, group_by, vocabulary))
    return records
