"""External collaborator interfaces -- persistence, identity and AI analysis.

The engine never talks to a database, auth provider or LLM directly. The
application shell supplies concrete implementations of these ABCs (a
document store adapter, an identity lookup, a transcript analyzer).

Persistence implementations raise ``StoreError`` with their own store code
(``unavailable``, ``permission-denied`` ...); the RetryExecutor classifies
those codes into retryable and non-retryable errors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from src.teamnotes.core.errors import StoreError
from src.teamnotes.meetings.schemas import Meeting, TranscriptAnalysis
from src.teamnotes.notifications.schemas import Notification, NotificationCreate
from src.teamnotes.teams.schemas import Team, TeamMember, User

__all__ = [
    "IdentityProvider",
    "NotificationCallback",
    "PersistenceStore",
    "StoreError",
    "TranscriptAnalyzer",
    "Unsubscribe",
]

Unsubscribe = Callable[[], None]
NotificationCallback = Callable[[list[Notification]], None]


class PersistenceStore(ABC):
    """Document-store operations on Team, Meeting and Notification entities.

    Methods:
        get_team_by_id / create_team / update_team: Team documents.
        add_team_member / update_team_member / remove_team_member: Membership.
        get_meeting_by_id / get_user_meetings / create_meeting / update_meeting:
            Meeting documents, scoped by the owning user.
        create_notification / get_user_notifications /
        mark_notification_as_read / delete_notification: Notifications.
        subscribe_to_user_notifications: Push updates for one recipient.
    """

    # ── Teams ────────────────────────────────────────────────────────────

    @abstractmethod
    async def get_team_by_id(self, team_id: str) -> Team | None:
        """Fetch a team with its member list."""
        ...

    @abstractmethod
    async def create_team(self, team: Team) -> str:
        """Persist a new team, return its id."""
        ...

    @abstractmethod
    async def update_team(self, team_id: str, updates: dict[str, Any]) -> bool:
        """Apply field updates to a team."""
        ...

    @abstractmethod
    async def add_team_member(self, team_id: str, member: TeamMember) -> bool:
        """Append a member to a team."""
        ...

    @abstractmethod
    async def update_team_member(
        self, team_id: str, user_id: str, updates: dict[str, Any]
    ) -> bool:
        """Apply field updates to one member record."""
        ...

    @abstractmethod
    async def remove_team_member(self, team_id: str, user_id: str) -> bool:
        """Remove one member record."""
        ...

    # ── Meetings ─────────────────────────────────────────────────────────

    @abstractmethod
    async def get_meeting_by_id(self, meeting_id: str, owner_id: str) -> Meeting | None:
        """Fetch a meeting in the owner's scope."""
        ...

    @abstractmethod
    async def get_user_meetings(
        self, user_id: str, team_id: str | None = None
    ) -> list[Meeting]:
        """List meetings the user can access, optionally one team's only."""
        ...

    @abstractmethod
    async def create_meeting(self, owner_id: str, meeting: Meeting) -> str:
        """Persist a new meeting in the owner's scope, return its id."""
        ...

    @abstractmethod
    async def update_meeting(
        self, meeting_id: str, owner_id: str, updates: dict[str, Any]
    ) -> bool:
        """Apply field updates to a meeting as one document write."""
        ...

    # ── Notifications ────────────────────────────────────────────────────

    @abstractmethod
    async def create_notification(self, data: NotificationCreate) -> str:
        """Persist a notification, return its id."""
        ...

    @abstractmethod
    async def get_user_notifications(self, user_id: str) -> list[Notification]:
        """List all notifications addressed to a user."""
        ...

    @abstractmethod
    async def mark_notification_as_read(self, notification_id: str) -> bool:
        """Set read=True on a notification."""
        ...

    @abstractmethod
    async def delete_notification(self, notification_id: str) -> bool:
        """Delete a notification."""
        ...

    @abstractmethod
    def subscribe_to_user_notifications(
        self, user_id: str, callback: NotificationCallback
    ) -> Unsubscribe:
        """Register a push subscription, return the unsubscribe handle."""
        ...


class IdentityProvider(ABC):
    """User lookup against the authentication provider."""

    @abstractmethod
    async def search_user_by_email(self, email: str) -> User | None:
        """Find a registered user by (normalized) email."""
        ...


class TranscriptAnalyzer(ABC):
    """Generative-AI transcript summarizer."""

    @abstractmethod
    async def process_transcript(
        self, text: str, roster: list[TeamMember]
    ) -> TranscriptAnalysis:
        """Summarize a transcript and extract action items.

        The roster is passed so the analyzer can prefer team member names
        when filling action item owners.
        """
        ...
