"""TeamService -- team creation, membership and invitations.

Teams are mutated only by admins. Inviting a member adds an ``invited``
placeholder record to the team and sends a team_invitation notification;
the placeholder becomes an active member when the invitee accepts it
(see NotificationOrchestrator.accept_team_invitation).
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog

from src.teamnotes.collaborators import IdentityProvider, PersistenceStore
from src.teamnotes.core.errors import TeamNotesError
from src.teamnotes.core.retry import RetryExecutor
from src.teamnotes.notifications.orchestrator import NotificationOrchestrator, is_valid_email
from src.teamnotes.notifications.schemas import TeamInvitation
from src.teamnotes.teams.schemas import (
    MemberRole,
    MemberStatus,
    Team,
    TeamMember,
    User,
)

logger = structlog.get_logger(__name__)


class TeamService:
    """Team management on top of the persistence collaborator."""

    def __init__(
        self,
        store: PersistenceStore,
        identity: IdentityProvider,
        orchestrator: NotificationOrchestrator,
        retry_executor: RetryExecutor | None = None,
    ) -> None:
        self._store = store
        self._identity = identity
        self._orchestrator = orchestrator
        self._retry = retry_executor or RetryExecutor()

    async def create_team(self, name: str, description: str, creator: User) -> Team:
        """Create a team with the creator as its first (admin) member."""
        if not name.strip():
            raise TeamNotesError.validation("Team name is required", field="name")

        now = datetime.now(timezone.utc)
        team = Team(
            name=name.strip(),
            description=description,
            created_by=creator.uid,
            members=[
                TeamMember(
                    user_id=creator.uid,
                    email=creator.email or "",
                    display_name=creator.display_name or creator.email or creator.uid,
                    role=MemberRole.ADMIN,
                    status=MemberStatus.ACTIVE,
                    joined_at=now,
                )
            ],
            created_at=now,
            updated_at=now,
        )
        team_id = await self._retry.execute(
            lambda: self._store.create_team(team),
            operation_name="create_team",
        )
        logger.info("teams.created", team_id=team_id, created_by=creator.uid)
        return team.model_copy(update={"id": team_id})

    async def get_team(self, team_id: str) -> Team:
        team = await self._retry.execute(
            lambda: self._store.get_team_by_id(team_id),
            operation_name="get_team_by_id",
        )
        if team is None:
            raise TeamNotesError.not_found("Team not found", team_id=team_id)
        return team

    async def is_team_admin(self, team_id: str, user_id: str) -> bool:
        team = await self.get_team(team_id)
        return _is_admin(team, user_id)

    async def get_active_members(self, team_id: str) -> list[TeamMember]:
        team = await self.get_team(team_id)
        return team.active_members()

    async def invite_member(
        self,
        team_id: str,
        inviter_id: str,
        email: str,
        display_name: str = "",
    ) -> str:
        """Invite a registered user to a team by email.

        Returns:
            The id of the team_invitation notification.

        Raises:
            TeamNotesError: VALIDATION_ERROR for a malformed email, NOT_FOUND for
                an unknown team or user, PERMISSION_DENIED if the inviter is not
                an admin, ALREADY_EXISTS if the user is already on the team.
        """
        email = email.strip().lower()
        if not is_valid_email(email):
            raise TeamNotesError.validation("Invalid email address format", field="email")

        team = await self.get_team(team_id)
        if not _is_admin(team, inviter_id):
            raise TeamNotesError.permission_denied(
                "Only team admins can invite members", team_id=team_id
            )

        if any(m.email.lower() == email for m in team.members):
            raise TeamNotesError.already_exists(
                "User is already a member of this team", email=email
            )

        user = await self._retry.execute(
            lambda: self._identity.search_user_by_email(email),
            operation_name="search_user_by_email",
        )
        if user is None:
            raise TeamNotesError.not_found("User not found", email=email)
        if team.get_member(user.uid) is not None:
            raise TeamNotesError.already_exists(
                "User is already a member of this team", user_id=user.uid
            )

        placeholder = TeamMember(
            user_id=user.uid,
            email=email,
            display_name=display_name or user.display_name or email,
            role=MemberRole.MEMBER,
            status=MemberStatus.INVITED,
        )
        await self._retry.execute(
            lambda: self._store.add_team_member(team.id, placeholder),
            operation_name="add_team_member",
        )

        inviter = team.get_member(inviter_id)
        notification_id = await self._orchestrator.send_team_invitation(
            TeamInvitation(
                team_id=team.id,
                team_name=team.name,
                inviter_id=inviter_id,
                inviter_name=inviter.display_name if inviter else "A team admin",
                invitee_email=email,
                invitee_display_name=placeholder.display_name,
            )
        )
        logger.info(
            "teams.member_invited",
            team_id=team.id,
            invitee_id=user.uid,
            inviter_id=inviter_id,
        )
        return notification_id

    async def remove_member(self, team_id: str, user_id: str, removed_by: str) -> bool:
        team = await self.get_team(team_id)
        if not _is_admin(team, removed_by):
            raise TeamNotesError.permission_denied(
                "Only team admins can remove members", team_id=team_id
            )
        if user_id == team.created_by:
            raise TeamNotesError.validation("The team creator cannot be removed")
        if team.get_member(user_id) is None:
            raise TeamNotesError.not_found("Member not found", user_id=user_id)

        removed = await self._retry.execute(
            lambda: self._store.remove_team_member(team.id, user_id),
            operation_name="remove_team_member",
        )
        logger.info("teams.member_removed", team_id=team.id, user_id=user_id)
        return removed


def _is_admin(team: Team, user_id: str) -> bool:
    if team.created_by == user_id:
        return True
    member = team.get_member(user_id)
    return (
        member is not None
        and member.role == MemberRole.ADMIN
        and member.status == MemberStatus.ACTIVE
    )
