"""Shared enum values for tickets, phases, projects, clients and roles."""

ROLE_ADMIN = "admin"
ROLE_CLIENT = "client"
ROLE_CHOICES = (ROLE_ADMIN, ROLE_CLIENT)

CLIENT_STATUS_ACTIVE = "active"
CLIENT_STATUS_INACTIVE = "inactive"
CLIENT_STATUS_ARCHIVED = "archived"
CLIENT_STATUS_CHOICES = (CLIENT_STATUS_ACTIVE, CLIENT_STATUS_INACTIVE, CLIENT_STATUS_ARCHIVED)

PROJECT_STATUS_CHOICES = ("planning", "in_progress", "review", "completed", "on_hold")

TICKET_STATUS_OPEN = "open"
TICKET_STATUS_IN_PROGRESS = "in_progress"
TICKET_STATUS_WAITING_ON_CLIENT = "waiting_on_client"
TICKET_STATUS_RESOLVED = "resolved"
TICKET_STATUS_CLOSED = "closed"
TICKET_STATUS_CHOICES = (
    TICKET_STATUS_OPEN,
    TICKET_STATUS_IN_PROGRESS,
    TICKET_STATUS_WAITING_ON_CLIENT,
    TICKET_STATUS_RESOLVED,
    TICKET_STATUS_CLOSED,
)
# Tickets in these states accept no further claims and cannot be unclaimed.
TICKET_TERMINAL_STATUSES = {TICKET_STATUS_RESOLVED, TICKET_STATUS_CLOSED}

TICKET_PRIORITY_CHOICES = ("low", "medium", "high", "urgent")
TICKET_TYPE_CHOICES = ("general_support", "project_issue", "feature_request", "bug_report")
DEFAULT_TICKET_PRIORITY = "medium"
DEFAULT_TICKET_TYPE = "general_support"

PHASE_STATUS_PENDING = "pending"
PHASE_STATUS_IN_PROGRESS = "in_progress"
PHASE_STATUS_COMPLETED = "completed"
PHASE_STATUS_SKIPPED = "skipped"
PHASE_STATUS_CHOICES = (
    PHASE_STATUS_PENDING,
    PHASE_STATUS_IN_PROGRESS,
    PHASE_STATUS_COMPLETED,
    PHASE_STATUS_SKIPPED,
)


def choice_pattern(choices: tuple[str, ...]) -> str:
    """Regex usable as a pydantic ``pattern`` for one of ``choices``."""

    return f"^({'|'.join(choices)})$"


def normalize_choice(value: str | None, choices: tuple[str, ...], *, field: str) -> str:
    """Return a lowercase member of ``choices`` or raise ``ValueError``."""

    normalized = (value or "").strip().lower()
    if normalized not in choices:
        raise ValueError(f"Invalid {field} '{value}'")
    return normalized


def format_status_label(value: str) -> str:
    return " ".join(word.capitalize() for word in value.split("_"))


__all__ = [
    "CLIENT_STATUS_ACTIVE",
    "CLIENT_STATUS_ARCHIVED",
    "CLIENT_STATUS_CHOICES",
    "CLIENT_STATUS_INACTIVE",
    "DEFAULT_TICKET_PRIORITY",
    "DEFAULT_TICKET_TYPE",
    "PHASE_STATUS_CHOICES",
    "PHASE_STATUS_COMPLETED",
    "PHASE_STATUS_IN_PROGRESS",
    "PHASE_STATUS_PENDING",
    "PHASE_STATUS_SKIPPED",
    "PROJECT_STATUS_CHOICES",
    "ROLE_ADMIN",
    "ROLE_CHOICES",
    "ROLE_CLIENT",
    "TICKET_PRIORITY_CHOICES",
    "TICKET_STATUS_CHOICES",
    "TICKET_STATUS_CLOSED",
    "TICKET_STATUS_IN_PROGRESS",
    "TICKET_STATUS_OPEN",
    "TICKET_STATUS_RESOLVED",
    "TICKET_STATUS_WAITING_ON_CLIENT",
    "TICKET_TERMINAL_STATUSES",
    "TICKET_TYPE_CHOICES",
    "choice_pattern",
    "format_status_label",
    "normalize_choice",
]
