"""
Record and timeline types shared by loaders, the reconstructor and the
aggregators.
"""

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from .config import ACTIVE_STATUSES


@dataclass
class StatusRecord:
    """One entity as delivered by a record source.

    Date-like fields hold raw source values; they are normalised only when a
    timeline is reconstructed.
    """

    id: str
    current_status: str | None
    milestones: dict[str, Any] = field(default_factory=dict)
    created_at: Any = None
    last_modified_at: Any = None
    group_key: str | None = None
    contributor_name: str | None = None
    project_name: str | None = None
    objective_name: str | None = None
    account_name: str | None = None


@dataclass
class StatusPeriod:
    status: str
    start: pd.Timestamp
    end: pd.Timestamp
    days: int


@dataclass
class Timeline:
    """Reconstructed, de-duplicated status history for one entity."""

    entity_id: str
    current_status: str
    periods: list[StatusPeriod] = field(default_factory=list)
    group_key: str | None = None
    last_modified_at: pd.Timestamp | None = None
    reinstated: bool = False
    record: StatusRecord | None = None

    def __len__(self) -> int:
        return len(self.periods)

    @property
    def is_empty(self) -> bool:
        return not self.periods

    @property
    def total_days(self) -> int:
        return sum(p.days for p in self.periods)

    @property
    def time_to_active(self) -> int | None:
        """Days spent in Active/Production, or None if never reached."""
        active = [p.days for p in self.periods if p.status in ACTIVE_STATUSES]
        if not active:
            return None
        return sum(active)

    def time_by_status(self) -> dict[str, int]:
        """Sum days per status within this entity's own timeline."""
        totals: dict[str, int] = {}
        for period in self.periods:
            totals[period.status] = totals.get(period.status, 0) + period.days
        return totals

    def days_in_current_status(self, now: pd.Timestamp) -> int:
        """Days of the first current-status period, else days since last modification."""
        for period in self.periods:
            if period.status == self.current_status:
                return period.days
        if self.last_modified_at is None:
            return 0
        days = (now - self.last_modified_at) // pd.Timedelta(days=1)
        return max(int(days), 0)
