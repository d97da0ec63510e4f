"""
SOQL where-clause assembly and the account/project interest filter.

The interest filter narrows the population to accounts or projects a user
follows. It is switched on or off through EngineConfig, never through
module state.
"""

import logging
import re

from ..config import ACCOUNT_FIELD, OBJECTIVE_FIELD, PROJECT_FIELD, STATUS_FIELD
from .base import RecordQuery

logger = logging.getLogger(__name__)

_SALESFORCE_ID = re.compile(r"^[a-zA-Z0-9]{15,18}$")

INTEREST_ACCOUNT_FIELD = ACCOUNT_FIELD
INTEREST_PROJECT_FIELD = PROJECT_FIELD


def soql_quote(value: str) -> str:
    """Quote a literal for SOQL, escaping backslashes and single quotes."""
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def valid_ids(ids) -> list[str]:
    """Trimmed 15/18-character Salesforce IDs; anything else is dropped."""
    result = []
    for raw in ids or []:
        trimmed = str(raw).strip()
        if _SALESFORCE_ID.match(trimmed):
            result.append(trimmed)
        elif trimmed:
            logger.warning("Ignoring malformed interest filter ID %r", trimmed)
    return result


def interest_condition(
    accounts,
    projects,
    account_field: str = INTEREST_ACCOUNT_FIELD,
    project_field: str = INTEREST_PROJECT_FIELD,
) -> str | None:
    """Return ``(account IN (...) OR project IN (...))`` or None when nothing is valid."""
    conditions = []
    account_ids = valid_ids(accounts)
    project_ids = valid_ids(projects)
    if account_ids:
        conditions.append(f"{account_field} IN ({', '.join(soql_quote(i) for i in account_ids)})")
    if project_ids:
        conditions.append(f"{project_field} IN ({', '.join(soql_quote(i) for i in project_ids)})")
    if not conditions:
        return None
    return f"({' OR '.join(conditions)})"


def apply_interest_filter(where: str, accounts, projects, enabled: bool = True) -> str:
    """AND the interest condition onto an existing where clause."""
    if not enabled:
        return where
    condition = interest_condition(accounts, projects)
    if condition is None:
        return where
    if where and where.strip():
        return f"{where} AND {condition}"
    return condition


def build_where_clause(
    query: RecordQuery,
    contact_field: str | None = None,
    account_id: str | None = None,
    interest_filter_enabled: bool = True,
) -> str:
    """Full WHERE condition for a record query.

    ``account_id`` is the resolved ID for ``query.account``; an account name
    that could not be resolved applies no account restriction.
    """
    parts = [f"{STATUS_FIELD} != null"]
    if account_id:
        parts.append(f"{ACCOUNT_FIELD} = {soql_quote(account_id)}")
    if query.contributor_id and query.contributor_id != "all" and contact_field:
        parts.append(f"{contact_field} = {soql_quote(query.contributor_id)}")
    if query.project_id and query.project_id != "all":
        parts.append(f"{PROJECT_FIELD} = {soql_quote(query.project_id)}")
    if query.objective_id and query.objective_id != "all":
        parts.append(f"{OBJECTIVE_FIELD} = {soql_quote(query.objective_id)}")
    if query.status and query.status != "all":
        parts.append(f"{STATUS_FIELD} = {soql_quote(query.status)}")
    where = " AND ".join(parts)
    return apply_interest_filter(
        where,
        query.interested_accounts,
        query.interested_projects,
        enabled=interest_filter_enabled,
    )
