"""Synchronized data fields.

This module defines the fixed set of per-team data buckets and the
mapping from client-facing names to storage column names.
"""

from __future__ import annotations

from enum import Enum


class UnknownFieldError(ValueError):
    """Raised when a field name is not one of the synchronized buckets."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"Unknown data field '{name}'. Expected one of: "
            + ", ".join(f.value for f in DataField)
        )
        self.name = name


class DataField(str, Enum):
    """A synchronized per-team bucket.

    The value is the storage column name in the team data table.
    """

    TASKS = "tasks"
    PROJECTS = "projects"
    SALES = "sales"
    TEAM_MEMBERS = "team_members"
    MEETINGS = "meetings"
    ACTIVITIES = "activities"
    DOCUMENTS = "documents"
    MEETING_MINUTES = "meeting_minutes"
    LEADS = "leads"
    SERVICE_MATERIALS = "service_materials"
    SALES_EMAILS = "sales_emails"

    @property
    def column(self) -> str:
        """Storage column name."""
        return self.value


# Client-side storage keys used by the web UI
LEGACY_ALIASES: dict[str, DataField] = {
    "tasksData": DataField.TASKS,
    "projectsData": DataField.PROJECTS,
    "salesData": DataField.SALES,
    "teamMembers": DataField.TEAM_MEMBERS,
    "documentsData": DataField.DOCUMENTS,
    "meetingMinutes": DataField.MEETING_MINUTES,
    "leadsData": DataField.LEADS,
    "serviceMaterials": DataField.SERVICE_MATERIALS,
    "salesEmails": DataField.SALES_EMAILS,
}

# Fields returned by the "all data" endpoint
AGGREGATE_FIELDS: tuple[DataField, ...] = (
    DataField.TASKS,
    DataField.PROJECTS,
    DataField.SALES,
    DataField.TEAM_MEMBERS,
    DataField.MEETINGS,
    DataField.ACTIVITIES,
)


def parse_field(name: str | DataField) -> DataField:
    """Resolve a field name or legacy alias to a DataField.

    Args:
        name: Storage name (e.g. "meeting_minutes"), legacy alias
            (e.g. "meetingMinutes") or a DataField.

    Returns:
        The matching DataField.

    Raises:
        UnknownFieldError: If the name is not recognized.
    """
    if isinstance(name, DataField):
        return name
    try:
        return DataField(name)
    except ValueError:
        pass
    field = LEGACY_ALIASES.get(name)
    if field is None:
        raise UnknownFieldError(name)
    return field
