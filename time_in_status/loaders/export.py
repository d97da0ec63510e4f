"""
Record source over an exported snapshot of Contributor Project rows.

Exports come as an Excel workbook with one header row of Salesforce API
names (relationship columns written as ``Project__r.Name``). The same
source also pages through any in-memory list of raw rows, which is how the
simulator and tests feed the orchestrator.
"""

import logging
from dataclasses import replace

import openpyxl

from ..config import (
    ACCOUNT_FIELD,
    ACCOUNT_NAME_FIELD,
    CONTACT_FIELD_CANDIDATES,
    EngineConfig,
    ID_FIELD,
    OBJECTIVE_FIELD,
    PROJECT_FIELD,
    STATUS_FIELD,
)
from .base import RecordPage, RecordQuery, SupportedFields
from .filters import valid_ids
from .records import records_from_rows
from .utils import clean_str, find_header_row, flatten_keys, get_path, nest_dotted

logger = logging.getLogger(__name__)

_HEADER_SIGNATURE = {ID_FIELD, STATUS_FIELD}


def load_export_rows(path, sheet_name: str | None = None) -> list[dict]:
    """Load raw Contributor Project rows from an Excel export.

    Assumptions
    -----------
    - The header row holds API names and includes ``Id`` and ``Status__c``.
    - Relationship columns use dotted names and are folded into nested dicts.
    - Blank rows (no Id) are dropped.

    Returns
    -------
    List of row dicts shaped like Salesforce query records.
    """
    try:
        wb = openpyxl.load_workbook(path, data_only=True, read_only=False)
    except Exception:
        logger.exception("Failed to open export workbook: %s", path)
        raise

    if sheet_name and sheet_name in wb.sheetnames:
        ws = wb[sheet_name]
    else:
        if sheet_name:
            logger.warning("Sheet '%s' not found, using '%s'", sheet_name, wb.sheetnames[0])
        ws = wb[wb.sheetnames[0]]

    try:
        header_row = find_header_row(ws, _HEADER_SIGNATURE)
        if header_row is None:
            raise ValueError(f"No header row with {sorted(_HEADER_SIGNATURE)} found in {path}")

        headers = [clean_str(cell.value) for cell in ws[header_row]]

        rows = []
        for values in ws.iter_rows(min_row=header_row + 1, values_only=True):
            flat = {
                name: value
                for name, value in zip(headers, values)
                if name is not None
            }
            if clean_str(flat.get(ID_FIELD)) is None:
                continue
            rows.append(nest_dotted(flat))
    finally:
        wb.close()

    logger.info("Loaded %d export rows from %s", len(rows), path)
    return rows


def _restrict(row: dict, allowed: set[str]) -> dict:
    """Drop columns outside the negotiated field set."""
    flat = {}
    for path in allowed:
        value = get_path(row, path)
        if value is not None:
            flat[path] = value
    return nest_dotted(flat)


class ExportSource:
    """Pages through a list of raw rows as if they came from the live source."""

    def __init__(self, rows: list[dict], config: EngineConfig | None = None):
        self.rows = rows
        self.config = config or EngineConfig()
        self.columns: set[str] = set()
        for row in rows:
            self.columns |= flatten_keys(row)

    @classmethod
    def from_workbook(cls, path: str, sheet_name: str | None = None,
                      config: EngineConfig | None = None) -> "ExportSource":
        return cls(load_export_rows(path, sheet_name), config=config)

    def supported_fields(self, requested: SupportedFields) -> SupportedFields:
        supported = requested.intersect(self.columns)
        if supported.contact_field is None:
            contact = next((c for c in CONTACT_FIELD_CANDIDATES if c in self.columns), None)
            if contact is not None:
                supported = replace(supported, contact_field=contact)
        return supported

    def _matches(self, row: dict, query: RecordQuery, contact_field: str | None) -> bool:
        status = clean_str(row.get(STATUS_FIELD))
        if status is None:
            return False
        if query.status and query.status != "all" and status != query.status:
            return False
        if query.project_id and query.project_id != "all" and row.get(PROJECT_FIELD) != query.project_id:
            return False
        if query.objective_id and query.objective_id != "all" and row.get(OBJECTIVE_FIELD) != query.objective_id:
            return False
        if (query.contributor_id and query.contributor_id != "all" and contact_field
                and row.get(contact_field) != query.contributor_id):
            return False
        if query.account and query.account != "all":
            if clean_str(get_path(row, ACCOUNT_NAME_FIELD)) != query.account:
                return False
        if self.config.enable_interest_filter:
            accounts = valid_ids(query.interested_accounts)
            projects = valid_ids(query.interested_projects)
            if accounts or projects:
                in_accounts = get_path(row, ACCOUNT_FIELD) in accounts
                in_projects = row.get(PROJECT_FIELD) in projects
                if not (in_accounts or in_projects):
                    return False
        return True

    def list_entities(
        self,
        query: RecordQuery,
        fields: SupportedFields,
        page_token: str | None = None,
    ) -> RecordPage:
        matching = [r for r in self.rows if self._matches(r, query, fields.contact_field)]
        matching = matching[: self.config.max_records]

        offset = int(page_token) if page_token else 0
        end = offset + self.config.page_size
        allowed = set(fields.select_list())

        page_rows = [_restrict(r, allowed) for r in matching[offset:end]]
        next_token = str(end) if end < len(matching) else None
        return RecordPage(
            records=records_from_rows(page_rows, query.group_by, self.config.vocabulary),
            next_page_token=next_token,
            total_hint=len(matching),
        )
