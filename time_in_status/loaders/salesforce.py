"""
Salesforce REST record source.

Field availability differs between orgs, so the source answers a field
negotiation once per session: describe the object, keep the milestone
date fields it carries, and probe each relationship name with a one-row
query before asking for it in the main query.
"""

import logging
import os

import requests

from ..config import (
    ACCOUNT_NAME_FIELD,
    CONTACT_FIELD_CANDIDATES,
    CREATED_FIELD,
    DEFAULT_API_VERSION,
    EngineConfig,
    OBJECTIVE_FIELD,
    PROJECT_FIELD,
    RELATIONSHIP_FIELDS,
    SOURCE_OBJECT,
)
from .base import (
    RecordPage,
    RecordQuery,
    SchemaMismatchError,
    SourceError,
    SupportedFields,
)
from .filters import build_where_clause, soql_quote
from .records import records_from_rows

logger = logging.getLogger(__name__)

_SCHEMA_ERROR_MARKERS = ("INVALID_FIELD", "No such column", "Didn't understand relationship")
_TRANSIENT_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


class SalesforceSource:
    """Paginated Contributor Project reader over the Salesforce REST API."""

    def __init__(
        self,
        instance_url: str,
        access_token: str,
        api_version: str = DEFAULT_API_VERSION,
        object_name: str = SOURCE_OBJECT,
        config: EngineConfig | None = None,
        session: requests.Session | None = None,
        timeout: float = 60,
    ):
        if not instance_url or not access_token:
            raise ValueError("instance_url and access_token are required")
        self.base = instance_url.rstrip("/")
        self.api_version = api_version
        self.object_name = object_name
        self.config = config or EngineConfig()
        self.timeout = timeout

        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "Sforce-Query-Options": f"batchSize={self.config.page_size}",
        })
        self._account_ids: dict[str, str | None] = {}

    @classmethod
    def from_env(cls, config: EngineConfig | None = None, environ=None) -> "SalesforceSource":
        env = os.environ if environ is None else environ
        instance_url = env.get("SALESFORCE_INSTANCE_URL")
        token = env.get("SALESFORCE_ACCESS_TOKEN")
        if not instance_url or not token:
            raise RuntimeError(
                "Missing env vars. Set SALESFORCE_INSTANCE_URL and SALESFORCE_ACCESS_TOKEN."
            )
        return cls(
            instance_url,
            token,
            api_version=env.get("SALESFORCE_API_VERSION", DEFAULT_API_VERSION),
            config=config,
        )

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    def _get(self, path: str, params: dict | None = None) -> dict:
        url = path if path.startswith("http") else self.base + path
        try:
            r = self.session.get(url, params=params or {}, timeout=self.timeout)
        except requests.RequestException as exc:
            transient = isinstance(exc, _TRANSIENT_ERRORS)
            raise SourceError(f"GET {url} failed: {exc}", transient=transient) from exc

        if r.status_code >= 400:
            body = r.text[:500]
            if r.status_code == 400 and any(m in body for m in _SCHEMA_ERROR_MARKERS):
                raise SchemaMismatchError(f"GET {url} rejected fields: {body}")
            transient = r.status_code >= 500 or r.status_code == 429
            raise SourceError(f"GET {url} failed {r.status_code}: {body}", transient=transient)
        try:
            return r.json()
        except ValueError as exc:
            raise SourceError(f"GET {url} returned a non-JSON body: {exc}", transient=True) from exc

    def query(self, soql: str) -> dict:
        return self._get(f"/services/data/{self.api_version}/query", params={"q": soql})

    def query_more(self, next_records_url: str) -> dict:
        return self._get(next_records_url)

    # ------------------------------------------------------------------
    # Schema discovery
    # ------------------------------------------------------------------
    def describe(self) -> set[str]:
        """Field API names on the source object."""
        data = self._get(f"/services/data/{self.api_version}/sobjects/{self.object_name}/describe")
        return {f.get("name") for f in data.get("fields", []) if f.get("name")}

    def _probe(self, select: str, non_null_field: str | None = None) -> bool:
        where = f" WHERE {non_null_field} != null" if non_null_field else ""
        try:
            self.query(f"SELECT {select} FROM {self.object_name}{where} LIMIT 1")
        except SourceError as exc:
            logger.debug("Probe for %s failed: %s", select, exc)
            return False
        return True

    def supported_fields(self, requested: SupportedFields) -> SupportedFields:
        """Narrow a requested field set to what this org exposes."""
        try:
            names = self.describe()
        except SourceError:
            logger.exception("Error describing %s; continuing with base fields", self.object_name)
            return SupportedFields(
                milestone_fields=(),
                relationship_fields=(),
                contact_field=None,
                include_lookups=requested.include_lookups,
            )

        milestones = tuple(f for f in requested.milestone_fields if f in names)

        contact = requested.contact_field if requested.contact_field in names else None
        if contact is None:
            contact = next((c for c in CONTACT_FIELD_CANDIDATES if c in names), None)

        include_lookups = requested.include_lookups and PROJECT_FIELD in names and OBJECTIVE_FIELD in names

        relationships = []
        for lookup in (contact, PROJECT_FIELD, OBJECTIVE_FIELD):
            if lookup is None or lookup not in names:
                continue
            relationship = RELATIONSHIP_FIELDS[lookup]
            if relationship in requested.relationship_fields and self._probe(relationship, lookup):
                relationships.append(relationship)
        if (ACCOUNT_NAME_FIELD in requested.relationship_fields
                and PROJECT_FIELD in names and self._probe(ACCOUNT_NAME_FIELD)):
            relationships.append(ACCOUNT_NAME_FIELD)

        supported = SupportedFields(
            milestone_fields=milestones,
            relationship_fields=tuple(relationships),
            contact_field=contact,
            include_lookups=include_lookups,
        )
        logger.info(
            "Negotiated %d milestone and %d relationship fields on %s",
            len(milestones), len(relationships), self.object_name,
        )
        return supported

    def resolve_account_id(self, account_name: str | None) -> str | None:
        """Look up an Account ID by name, caching the answer for the session."""
        if not account_name or account_name == "all":
            return None
        if account_name not in self._account_ids:
            account_id = None
            try:
                data = self.query(f"SELECT Id FROM Account WHERE Name = {soql_quote(account_name)} LIMIT 1")
                rows = data.get("records") or []
                if rows:
                    account_id = rows[0].get("Id")
            except SourceError:
                logger.exception("Error finding account %r", account_name)
            if account_id is None:
                logger.warning("Account %r not found; no account restriction applied", account_name)
            self._account_ids[account_name] = account_id
        return self._account_ids[account_name]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def build_soql(self, query: RecordQuery, fields: SupportedFields) -> str:
        where = build_where_clause(
            query,
            contact_field=fields.contact_field,
            account_id=self.resolve_account_id(query.account),
            interest_filter_enabled=self.config.enable_interest_filter,
        )
        return (
            f"SELECT {', '.join(fields.select_list())} "
            f"FROM {self.object_name} "
            f"WHERE {where} "
            f"ORDER BY {CREATED_FIELD} DESC "
            f"LIMIT {int(self.config.max_records)}"
        )

    def list_entities(
        self,
        query: RecordQuery,
        fields: SupportedFields,
        page_token: str | None = None,
    ) -> RecordPage:
        if page_token:
            data = self.query_more(page_token)
        else:
            data = self.query(self.build_soql(query, fields))

        rows = data.get("records") or []
        next_token = None if data.get("done", True) else data.get("nextRecordsUrl")
        return RecordPage(
            records=records_from_rows(rows, query.group_by, self.config.vocabulary),
            next_page_token=next_token,
            total_hint=data.get("totalSize"),
        )
