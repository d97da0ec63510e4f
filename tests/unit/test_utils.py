"""Unit tests for date normalisation and row helpers in loaders/utils.py."""

import datetime as dt

import numpy as np
import pandas as pd
import pytest

from time_in_status.loaders.utils import (
    flatten_keys,
    get_path,
    nest_dotted,
    normalise_date,
    to_calendar_date,
    whole_days,
)


class TestNormaliseDate:
    """Test tolerant date parsing."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2024-01-15", pd.Timestamp("2024-01-15")),
            ("2024-01-15T10:30:00.000+0000", pd.Timestamp("2024-01-15 10:30:00")),
            ("2024-01-15T12:00:00+02:00", pd.Timestamp("2024-01-15 10:00:00")),
            (dt.date(2024, 1, 15), pd.Timestamp("2024-01-15")),
            (dt.datetime(2024, 1, 15, 8), pd.Timestamp("2024-01-15 08:00")),
            (45306, pd.Timestamp("2024-01-15")),
        ],
        ids=["date-only", "salesforce-offset", "tz-offset", "date", "datetime", "excel-serial"],
    )
    def test_parses_supported_forms(self, raw, expected):
        """Test each supported input form becomes a naive UTC timestamp."""
        result = normalise_date(raw)

        assert result == expected
        assert result.tzinfo is None

    @pytest.mark.parametrize(
        "raw",
        [None, "", "   ", "not a date", "31/02/2025", float("nan"), np.nan, pd.NaT, True],
        ids=["none", "empty", "blank", "garbage", "impossible-day", "nan", "np-nan", "nat", "bool"],
    )
    def test_unusable_values_become_none(self, raw):
        """Test unusable values return None rather than raising."""
        assert normalise_date(raw) is None


class TestWholeDays:
    """Test whole-day arithmetic."""

    def test_floors_partial_days(self):
        """Test partial days are floored."""
        start = pd.Timestamp("2024-01-01 00:00")
        end = pd.Timestamp("2024-01-03 23:59")

        assert whole_days(start, end) == 2

    def test_unknown_bound_gives_none(self):
        """Test a missing bound yields None."""
        assert whole_days(None, pd.Timestamp("2024-01-01")) is None

    def test_negative_interval_is_reported(self):
        """Test reversed bounds give a negative count for the caller to reject."""
        assert whole_days(pd.Timestamp("2024-01-05"), pd.Timestamp("2024-01-01")) == -4


class TestRowHelpers:
    """Test nested relationship helpers."""

    def test_get_path_walks_relationships(self):
        """Test dotted access into nested relationship dicts."""
        row = {"Project__r": {"Account__r": {"Name": "Northwind"}}}

        assert get_path(row, "Project__r.Account__r.Name") == "Northwind"

    def test_get_path_stops_at_null_relationship(self):
        """Test a null relationship yields None instead of raising."""
        assert get_path({"Project__r": None}, "Project__r.Name") is None

    def test_nest_and_flatten_agree(self):
        """Test dotted columns fold into nested dicts and back."""
        flat = {"Id": "x", "Project__r.Name": "P", "Project__r.Account__r.Name": "A"}

        nested = nest_dotted(flat)

        assert nested["Project__r"]["Account__r"]["Name"] == "A"
        assert flatten_keys(nested) == set(flat)

    def test_flatten_skips_attributes(self):
        """Test REST ``attributes`` metadata is not treated as a column."""
        row = {"attributes": {"type": "Contributor_Project__c"}, "Id": "x"}

        assert flatten_keys(row) == {"Id"}

    def test_to_calendar_date(self):
        """Test instants serialise as YYYY-MM-DD."""
        assert to_calendar_date(pd.Timestamp("2024-01-15 23:00")) == "2024-01-15"
        assert to_calendar_date(None) is None
