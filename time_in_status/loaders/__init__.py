"""Record sources and ingestion helpers for Contributor Project snapshots."""

from .base import (
    RecordPage,
    RecordQuery,
    RecordSource,
    SchemaMismatchError,
    SourceError,
    SourceUnavailableError,
    SupportedFields,
)
from .export import ExportSource, load_export_rows
from .records import record_from_row, records_from_rows, resolve_group_key
from .salesforce import SalesforceSource
from .utils import normalise_date, to_calendar_date, whole_days

__all__ = [
    "RecordPage",
    "RecordQuery",
    "RecordSource",
    "SchemaMismatchError",
    "SourceError",
    "SourceUnavailableError",
    "SupportedFields",
    "ExportSource",
    "load_export_rows",
    "record_from_row",
    "records_from_rows",
    "resolve_group_key",
    "SalesforceSource",
    "normalise_date",
    "to_calendar_date",
    "whole_days",
]
