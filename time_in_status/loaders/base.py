"""
Record source contract: query parameters, negotiated field support, pages,
and the errors a source may raise.
"""

from dataclasses import dataclass, field, replace
from typing import Protocol

from ..config import (
    ACCOUNT_NAME_FIELD,
    CREATED_FIELD,
    ID_FIELD,
    LAST_MODIFIED_FIELD,
    MILESTONE_FIELDS,
    OBJECTIVE_FIELD,
    PROJECT_FIELD,
    RELATIONSHIP_FIELDS,
    STATUS_FIELD,
)
from ..models import StatusRecord


class SourceError(Exception):
    """A record source call failed.

    ``transient`` marks failures worth retrying at the page level
    (timeouts, connection resets, 5xx responses).
    """

    def __init__(self, message: str, transient: bool = False):
        super().__init__(message)
        self.transient = transient


class SchemaMismatchError(SourceError):
    """The source rejected one or more requested fields."""


class SourceUnavailableError(SourceError):
    """No records could be obtained at all."""


@dataclass(frozen=True)
class SupportedFields:
    """Field set negotiated once per session between orchestrator and source."""

    milestone_fields: tuple[str, ...] = tuple(MILESTONE_FIELDS.values())
    relationship_fields: tuple[str, ...] = tuple(RELATIONSHIP_FIELDS.values()) + (ACCOUNT_NAME_FIELD,)
    contact_field: str | None = None
    include_lookups: bool = True

    @classmethod
    def minimal(cls) -> "SupportedFields":
        """Fields every source is assumed to carry."""
        return cls(milestone_fields=(), relationship_fields=(), contact_field=None, include_lookups=False)

    @property
    def is_minimal(self) -> bool:
        return self == SupportedFields.minimal()

    def intersect(self, available: set[str]) -> "SupportedFields":
        """Keep only the fields present in ``available``."""
        contact = self.contact_field if self.contact_field in available else None
        return replace(
            self,
            milestone_fields=tuple(f for f in self.milestone_fields if f in available),
            relationship_fields=tuple(f for f in self.relationship_fields if f in available),
            contact_field=contact,
        )

    def select_list(self) -> list[str]:
        """Ordered SELECT list for a query using this field set."""
        fields = [ID_FIELD, STATUS_FIELD]
        if self.contact_field:
            fields.append(self.contact_field)
        if self.include_lookups:
            fields.extend([PROJECT_FIELD, OBJECTIVE_FIELD])
        fields.extend(self.relationship_fields)
        fields.extend(self.milestone_fields)
        fields.extend([CREATED_FIELD, LAST_MODIFIED_FIELD])
        return fields


@dataclass
class RecordQuery:
    """Filters and grouping requested by the caller."""

    status: str | None = None
    account: str | None = None
    project_id: str | None = None
    objective_id: str | None = None
    contributor_id: str | None = None
    group_by: str | None = None
    interested_accounts: list[str] = field(default_factory=list)
    interested_projects: list[str] = field(default_factory=list)


@dataclass
class RecordPage:
    records: list[StatusRecord]
    next_page_token: str | None = None
    total_hint: int | None = None


class RecordSource(Protocol):
    def supported_fields(self, requested: SupportedFields) -> SupportedFields:
        ...

    def list_entities(
        self,
        query: RecordQuery,
        fields: SupportedFields,
        page_token: str | None = None,
    ) -> RecordPage:
        ...
