"""Pydantic v2 schemas for teams, team members and users."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemberRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class MemberStatus(str, Enum):
    """``invited`` members are placeholders until the invitation resolves."""

    INVITED = "invited"
    ACTIVE = "active"


class TeamMember(BaseModel):
    """A user's membership record within a team."""

    user_id: str
    email: str
    display_name: str
    role: MemberRole = MemberRole.MEMBER
    status: MemberStatus = MemberStatus.ACTIVE
    joined_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE


class Team(BaseModel):
    """A named group of users with role-based membership.

    Members are kept in join order and are unique by user_id.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: str = ""
    created_by: str
    members: list[TeamMember] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _unique_members(self) -> Team:
        seen: set[str] = set()
        for member in self.members:
            if member.user_id in seen:
                raise ValueError(f"Duplicate team member: {member.user_id}")
            seen.add(member.user_id)
        return self

    def get_member(self, user_id: str) -> TeamMember | None:
        return next((m for m in self.members if m.user_id == user_id), None)

    def active_members(self) -> list[TeamMember]:
        return [m for m in self.members if m.is_active]


class User(BaseModel):
    """An identity-provider user record."""

    uid: str
    email: str | None = None
    display_name: str | None = None
