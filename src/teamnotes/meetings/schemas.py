"""Pydantic v2 schemas for meetings and action items.

Defines the meeting document, its action items (tasks), and the output
contract of the AI transcript analyzer. The task assignment engine, the
notification orchestrator and the team-aware processor all import from
this module.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` with a naive datetime read as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Enums ────────────────────────────────────────────────────────────────────


class TaskPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskStatus(str, Enum):
    """Task status. Any status may be set directly; there is no enforced order."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


PRIORITY_RANK: dict[TaskPriority, int] = {
    TaskPriority.HIGH: 0,
    TaskPriority.MEDIUM: 1,
    TaskPriority.LOW: 2,
}


# ── Action Items ─────────────────────────────────────────────────────────────


class ActionItem(BaseModel):
    """A unit of follow-up work extracted from a meeting.

    ``owner`` is the free-text speaker hint produced by the AI analyzer.
    The assignment fields travel together: assignee_id, assignee_name and
    assigned_by are either all set or all unset.
    """

    id: str = Field(default_factory=_new_id)
    description: str
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    owner: str | None = Field(None, description="Speaker hint from the transcript")
    assignee_id: str | None = None
    assignee_name: str | None = None
    assigned_by: str | None = None
    assigned_at: datetime | None = None
    deadline: datetime | None = None

    @field_validator("assigned_at", "deadline")
    @classmethod
    def _naive_as_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @model_validator(mode="after")
    def _assignment_fields_together(self) -> ActionItem:
        present = [
            self.assignee_id is not None,
            self.assignee_name is not None,
            self.assigned_by is not None,
        ]
        if any(present) and not all(present):
            raise ValueError(
                "assignee_id, assignee_name and assigned_by must be set together"
            )
        return self

    @property
    def is_assigned(self) -> bool:
        return self.assignee_id is not None


# ── Meetings ─────────────────────────────────────────────────────────────────


class Meeting(BaseModel):
    """A processed meeting owned by the uploading user.

    ``team_id`` is None for personal meetings.
    """

    id: str = Field(default_factory=_new_id)
    title: str
    date: datetime = Field(default_factory=_utcnow)
    summary: str = ""
    action_items: list[ActionItem] = Field(default_factory=list)
    raw_transcript: str = ""
    team_id: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def find_task(self, task_id: str) -> int:
        """Return the index of ``task_id`` in action_items, or -1."""
        for index, item in enumerate(self.action_items):
            if item.id == task_id:
                return index
        return -1


class MeetingUpdateType(str, Enum):
    """What changed on a meeting, for meeting_update notifications."""

    GENERAL = "general"
    SUMMARY = "summary"
    ACTION_ITEMS = "action_items"


# ── AI Analyzer Contract ─────────────────────────────────────────────────────


class ExtractedActionItem(BaseModel):
    """An action item as returned by the transcript analyzer (no id or status)."""

    description: str
    owner: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    deadline: datetime | None = None

    @field_validator("deadline")
    @classmethod
    def _naive_as_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class TranscriptAnalysis(BaseModel):
    """Output of the AI transcript analyzer."""

    summary: str = ""
    action_items: list[ExtractedActionItem] = Field(default_factory=list)
    confidence: float | None = Field(None, ge=0.0, le=1.0)
