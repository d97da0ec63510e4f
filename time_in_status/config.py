"""
Configuration: status vocabulary, milestone registry, source field names,
engine settings.

MILESTONE_REGISTRY maps each milestone to the Salesforce date field that
carries it and the status label the timeline uses once it is reached.
"""

import os
from dataclasses import dataclass, field

# ---------------------------------------------------------------------------
# Record source identity
# ---------------------------------------------------------------------------
SOURCE_OBJECT = "Contributor_Project__c"
DEFAULT_API_VERSION = "v59.0"

ID_FIELD = "Id"
STATUS_FIELD = "Status__c"
CREATED_FIELD = "CreatedDate"
LAST_MODIFIED_FIELD = "LastModifiedDate"
PROJECT_FIELD = "Project__c"
OBJECTIVE_FIELD = "Project_Objective__c"
ACCOUNT_FIELD = "Project__r.Account__c"

# Orgs differ on what the contributor lookup is called
CONTACT_FIELD_CANDIDATES = ("Contact__c", "Contributor__c")

# Relationship name fields, keyed by the lookup they hang off
RELATIONSHIP_FIELDS = {
    "Contact__c": "Contact__r.Name",
    "Contributor__c": "Contributor__r.Name",
    PROJECT_FIELD: "Project__r.Name",
    OBJECTIVE_FIELD: "Project_Objective__r.Name",
}
ACCOUNT_NAME_FIELD = "Project__r.Account__r.Name"

# ---------------------------------------------------------------------------
# Status vocabulary
# ---------------------------------------------------------------------------
DEFAULT_STATUS = "Draft"
START_STATUS = "Start"
REMOVED_STATUS = "Removed"
PRODUCTION_STATUS = "Production"
ACTIVE_STATUS = "Active"

# Funnel order used for Sankey nodes
STATUS_ORDER = [
    "Draft",
    "Invite",
    "App Received",
    "Matched",
    "Qualified",
    "Active",
    "Production",
    "Removed",
]

ACTIVE_STATUSES = (ACTIVE_STATUS, PRODUCTION_STATUS)

# Group keys that carry no grouping signal; kept out of heatmaps and group lists
GROUP_PLACEHOLDERS = {"Unknown", "All"}
GROUP_BY_OPTIONS = ("project", "objective", "account")

# ---------------------------------------------------------------------------
# Milestone registry
# ---------------------------------------------------------------------------
# field: source date field
# status: label once the milestone is reached
# status_when_current: statuses that replace the label when the entity is
#     currently in them (onboarded contributors may be Active or Production)
# requires_current: the milestone only counts while the entity is in `status`
MILESTONE_REGISTRY: dict[str, dict] = {
    "applied": {
        "field": "Applied_Date__c",
        "status": "App Received",
    },
    "qualified": {
        "field": "Qualified_Date__c",
        "status": "Qualified",
    },
    "onboarded": {
        "field": "Onboarded_Date__c",
        "status": ACTIVE_STATUS,
        "status_when_current": [PRODUCTION_STATUS],
    },
    "removed": {
        "field": "Removed_Date__c",
        "status": REMOVED_STATUS,
        "requires_current": True,
    },
}

MILESTONE_FIELDS: dict[str, str] = {
    name: entry["field"] for name, entry in MILESTONE_REGISTRY.items()
}


@dataclass(frozen=True)
class StatusVocabulary:
    """Status labels the reconstructor and the rankers agree on.

    Unknown statuses are passed through as opaque labels; only the labels
    named here get special treatment.
    """

    milestones: tuple = tuple(MILESTONE_REGISTRY.items())
    default_status: str = DEFAULT_STATUS
    start_status: str = START_STATUS
    removed_status: str = REMOVED_STATUS
    active_statuses: tuple = ACTIVE_STATUSES
    status_order: tuple = tuple(STATUS_ORDER)

    def milestone_label(self, milestone: str, current_status: str) -> str | None:
        """Return the status label a milestone contributes, or None to skip it."""
        entry = dict(self.milestones).get(milestone)
        if entry is None:
            return None
        label = entry["status"]
        if entry.get("requires_current") and current_status != label:
            return None
        if current_status in entry.get("status_when_current", ()):
            return current_status
        return label

    def milestone_fields(self) -> dict[str, str]:
        """Milestone name -> source date field for every milestone in this vocabulary."""
        return {name: entry["field"] for name, entry in self.milestones}

    def terminal_milestone(self) -> str | None:
        """Name of the milestone that ends the timeline (the removal date)."""
        for name, entry in self.milestones:
            if entry["status"] == self.removed_status:
                return name
        return None

    def matches(self, status: str | None, label: str) -> bool:
        """Case-insensitive label comparison for funnel-style lookups."""
        if status is None:
            return False
        return status.strip().lower() == label.strip().lower()


DEFAULT_VOCABULARY = StatusVocabulary()


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------
@dataclass
class EngineConfig:
    """Settings passed explicitly into the batch orchestrator."""

    max_execution_seconds: float = 240.0
    page_size: int = 2000
    max_records: int = 10_000
    page_retries: int = 2
    retry_backoff_seconds: float = 0.5
    workers: int = 1
    enable_interest_filter: bool = True
    top_n_bottlenecks: int = 10
    vocabulary: StatusVocabulary = field(default_factory=StatusVocabulary)

    @classmethod
    def from_env(cls, environ=None) -> "EngineConfig":
        """Build a config from TIS_* environment variables, keeping defaults for the rest."""
        env = os.environ if environ is None else environ
        defaults = cls()

        def _flag(name: str, default: bool) -> bool:
            raw = env.get(name)
            if raw is None:
                return default
            return raw.strip().lower() in ("1", "true", "yes", "on")

        return cls(
            max_execution_seconds=float(env.get("TIS_MAX_EXECUTION_SECONDS", defaults.max_execution_seconds)),
            page_size=int(env.get("TIS_PAGE_SIZE", defaults.page_size)),
            max_records=int(env.get("TIS_MAX_RECORDS", defaults.max_records)),
            page_retries=int(env.get("TIS_PAGE_RETRIES", defaults.page_retries)),
            retry_backoff_seconds=float(env.get("TIS_RETRY_BACKOFF_SECONDS", defaults.retry_backoff_seconds)),
            workers=int(env.get("TIS_WORKERS", defaults.workers)),
            enable_interest_filter=_flag("TIS_ENABLE_INTEREST_FILTER", defaults.enable_interest_filter),
            top_n_bottlenecks=int(env.get("TIS_TOP_N_BOTTLENECKS", defaults.top_n_bottlenecks)),
        )
