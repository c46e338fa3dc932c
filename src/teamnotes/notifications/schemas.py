"""Pydantic v2 schemas for notifications.

The ``data`` payload of a notification is a tagged union discriminated by
its ``type`` field: one payload model per notification type. The
notification's own ``type`` is read from its payload, so the two can never
disagree.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from src.teamnotes.meetings.schemas import MeetingUpdateType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationType(str, Enum):
    TEAM_INVITATION = "team_invitation"
    TASK_ASSIGNMENT = "task_assignment"
    MEETING_ASSIGNMENT = "meeting_assignment"
    MEETING_UPDATE = "meeting_update"
    TASK_COMPLETED = "task_completed"


# ── Payload Variants ─────────────────────────────────────────────────────────


class TeamInvitationPayload(BaseModel):
    """Actionable invitation; accept/decline mutates team membership.

    ``team_id`` is optional so malformed stored invitations still load and
    can be rejected explicitly on accept/decline.
    """

    type: Literal["team_invitation"] = "team_invitation"
    team_id: str | None = None
    team_name: str = ""
    inviter_id: str | None = None
    inviter_name: str = ""
    invitee_email: str = ""
    invitee_display_name: str = ""


class TaskAssignmentPayload(BaseModel):
    type: Literal["task_assignment"] = "task_assignment"
    task_id: str
    task_description: str
    assignee_id: str
    assignee_name: str = ""
    meeting_id: str | None = None
    meeting_title: str = ""
    assigned_by: str | None = None
    team_id: str | None = None
    team_name: str | None = None
    reassigned: bool = Field(
        False,
        description="True when notifying a previous assignee the task moved away",
    )


class MeetingAssignmentPayload(BaseModel):
    type: Literal["meeting_assignment"] = "meeting_assignment"
    meeting_id: str
    meeting_title: str
    team_id: str
    team_name: str = ""
    assigned_by: str
    assigned_by_name: str = ""


class MeetingUpdatePayload(BaseModel):
    type: Literal["meeting_update"] = "meeting_update"
    meeting_id: str
    meeting_title: str
    team_id: str
    updated_by: str
    update_type: MeetingUpdateType = MeetingUpdateType.GENERAL


class TaskCompletedPayload(BaseModel):
    type: Literal["task_completed"] = "task_completed"
    task_id: str
    task_description: str
    meeting_id: str | None = None
    meeting_title: str = ""
    completed_by: str


NotificationPayload = Annotated[
    Union[
        TeamInvitationPayload,
        TaskAssignmentPayload,
        MeetingAssignmentPayload,
        MeetingUpdatePayload,
        TaskCompletedPayload,
    ],
    Field(discriminator="type"),
]


# ── Notifications ────────────────────────────────────────────────────────────


class NotificationCreate(BaseModel):
    """Request schema for creating a notification."""

    user_id: str = Field(description="Recipient user id")
    title: str
    message: str
    data: NotificationPayload

    @property
    def type(self) -> NotificationType:
        return NotificationType(self.data.type)


class Notification(NotificationCreate):
    """A persisted per-user notification."""

    id: str
    read: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


# ── Orchestrator Inputs ──────────────────────────────────────────────────────


class TeamInvitation(BaseModel):
    """Input for sending a team invitation."""

    team_id: str
    team_name: str
    inviter_id: str
    inviter_name: str
    invitee_email: str
    invitee_display_name: str = ""


class TaskAssignment(BaseModel):
    """Input for a task_assignment notification."""

    task_id: str
    task_description: str
    assignee_id: str
    assignee_name: str = ""
    meeting_id: str | None = None
    meeting_title: str = ""
    assigned_by: str
    team_id: str | None = None
    team_name: str | None = None


class MeetingAssignment(BaseModel):
    """Input for fanning out a meeting_assignment to a team."""

    meeting_id: str
    meeting_title: str
    team_id: str
    team_name: str = ""
    assigned_by: str
    assigned_by_name: str = ""
