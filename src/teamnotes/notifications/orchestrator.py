"""NotificationOrchestrator -- create, query, mutate and fan out notifications.

All store and identity calls run through the RetryExecutor. Multi-recipient
notifications (meeting assignment, meeting update) fan out one create per
recipient concurrently and settle all of them: a failed recipient never
cancels or blocks its siblings, and the caller receives only the ids that
were created. Failures are logged and counted separately.

Team invitations are actionable: accepting or declining mutates the team's
membership and then deletes the invitation.

Exports:
    NotificationOrchestrator: Main notification service.
"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timezone

import structlog

from src.teamnotes.collaborators import (
    IdentityProvider,
    NotificationCallback,
    PersistenceStore,
    Unsubscribe,
)
from src.teamnotes.config import get_settings
from src.teamnotes.core.errors import ErrorCode, TeamNotesError
from src.teamnotes.core.monitoring import (
    fanout_partial_failures_total,
    notifications_created_total,
)
from src.teamnotes.core.retry import RetryExecutor
from src.teamnotes.meetings.schemas import MeetingUpdateType
from src.teamnotes.notifications.schemas import (
    MeetingAssignment,
    MeetingAssignmentPayload,
    MeetingUpdatePayload,
    Notification,
    NotificationCreate,
    NotificationType,
    TaskAssignment,
    TaskAssignmentPayload,
    TaskCompletedPayload,
    TeamInvitation,
    TeamInvitationPayload,
)
from src.teamnotes.teams.schemas import MemberStatus, Team, TeamMember

logger = structlog.get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Unread badges degrade to zero on these instead of failing visibly.
_SILENT_UNREAD_CODES = frozenset({ErrorCode.AUTH_ERROR, ErrorCode.PERMISSION_DENIED})

_UPDATE_MESSAGES: dict[MeetingUpdateType, str] = {
    MeetingUpdateType.GENERAL: 'The meeting "{title}" was updated.',
    MeetingUpdateType.SUMMARY: 'The summary of "{title}" was updated.',
    MeetingUpdateType.ACTION_ITEMS: 'Action items in "{title}" were updated.',
}


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


class NotificationOrchestrator:
    """Creates and manages per-user notifications.

    Args:
        store: Persistence collaborator.
        identity: Identity collaborator used to resolve invitees by email.
        retry_executor: Shared RetryExecutor (a default one is created if omitted).
        fanout_limit: Max concurrent creates per fan-out (default from settings).
    """

    def __init__(
        self,
        store: PersistenceStore,
        identity: IdentityProvider,
        retry_executor: RetryExecutor | None = None,
        fanout_limit: int | None = None,
    ) -> None:
        self._store = store
        self._identity = identity
        self._retry = retry_executor or RetryExecutor()
        self._fanout_limit = fanout_limit or get_settings().NOTIFICATION_FANOUT_LIMIT

    # ── Create ───────────────────────────────────────────────────────────

    async def create(self, data: NotificationCreate) -> str:
        """Validate and persist one notification.

        Args:
            data: Notification to create.

        Returns:
            The new notification id.

        Raises:
            TeamNotesError: VALIDATION_ERROR for missing per-type fields, or the
                classified store error after retries.
        """
        self._validate(data)
        try:
            notification_id = await self._retry.execute(
                lambda: self._store.create_notification(data),
                operation_name="create_notification",
            )
        except TeamNotesError:
            notifications_created_total.labels(type=data.type.value, status="error").inc()
            raise

        notifications_created_total.labels(type=data.type.value, status="success").inc()
        logger.info(
            "notifications.created",
            notification_id=notification_id,
            user_id=data.user_id,
            type=data.type.value,
        )
        return notification_id

    @staticmethod
    def _validate(data: NotificationCreate) -> None:
        if not data.user_id.strip():
            raise TeamNotesError.validation("Notification recipient is required")
        if not data.title.strip():
            raise TeamNotesError.validation("Notification title is required")

        payload = data.data
        if isinstance(payload, TeamInvitationPayload):
            if not payload.team_id:
                raise TeamNotesError.validation(
                    "Team invitation requires a team id", field="team_id"
                )
            if not is_valid_email(payload.invitee_email):
                raise TeamNotesError.validation(
                    "Team invitation requires a valid invitee email",
                    field="invitee_email",
                )
        elif isinstance(payload, TaskAssignmentPayload):
            if not payload.assignee_id.strip():
                raise TeamNotesError.validation(
                    "Task assignment requires an assignee", field="assignee_id"
                )
        elif isinstance(payload, (MeetingAssignmentPayload, MeetingUpdatePayload)):
            if not payload.team_id.strip():
                raise TeamNotesError.validation(
                    "Meeting notification requires a team id", field="team_id"
                )

    # ── Team Invitations ─────────────────────────────────────────────────

    async def send_team_invitation(self, invitation: TeamInvitation) -> str:
        """Resolve the invitee by email and send them a team_invitation.

        Raises:
            TeamNotesError: VALIDATION_ERROR for a malformed email, NOT_FOUND
                "User not found" if no account has that email.
        """
        email = invitation.invitee_email.strip().lower()
        if not is_valid_email(email):
            raise TeamNotesError.validation(
                "Invalid email address format", field="invitee_email"
            )

        user = await self._retry.execute(
            lambda: self._identity.search_user_by_email(email),
            operation_name="search_user_by_email",
        )
        if user is None:
            raise TeamNotesError.not_found("User not found", email=email)

        display_name = invitation.invitee_display_name or user.display_name or email
        return await self.create(
            NotificationCreate(
                user_id=user.uid,
                title=f"Team Invitation: {invitation.team_name}",
                message=(
                    f"{invitation.inviter_name} has invited you to join the team "
                    f'"{invitation.team_name}". Click to accept or decline this invitation.'
                ),
                data=TeamInvitationPayload(
                    team_id=invitation.team_id,
                    team_name=invitation.team_name,
                    inviter_id=invitation.inviter_id,
                    inviter_name=invitation.inviter_name,
                    invitee_email=email,
                    invitee_display_name=display_name,
                ),
            )
        )

    async def accept_team_invitation(self, notification_id: str, user_id: str) -> None:
        """Accept an invitation: activate membership, then delete the notification.

        The invited placeholder is replaced by an active member record keyed
        to ``user_id``.

        Raises:
            TeamNotesError: NOT_FOUND for a missing invitation, team or
                placeholder; VALIDATION_ERROR for a non-invitation notification
                or a payload without team information.
        """
        payload = await self._load_invitation(notification_id, user_id)
        team = await self._get_team(payload.team_id)
        if team is None:
            raise TeamNotesError.not_found("Team no longer exists", team_id=payload.team_id)

        placeholder = _find_placeholder(team, user_id, payload.invitee_email)
        if placeholder is None:
            raise TeamNotesError.not_found(
                "Invitation record not found in team members",
                team_id=team.id,
                user_id=user_id,
            )

        if placeholder.user_id == user_id:
            await self._retry.execute(
                lambda: self._store.update_team_member(
                    team.id, user_id, {"status": MemberStatus.ACTIVE.value}
                ),
                operation_name="update_team_member",
            )
        else:
            active = placeholder.model_copy(
                update={
                    "user_id": user_id,
                    "status": MemberStatus.ACTIVE,
                    "joined_at": datetime.now(timezone.utc),
                }
            )
            # placeholder swapped in place by a single write
            members = [
                (active if m.user_id == placeholder.user_id else m).model_dump()
                for m in team.members
            ]
            await self._retry.execute(
                lambda: self._store.update_team(team.id, {"members": members}),
                operation_name="update_team",
            )

        await self._retry.execute(
            lambda: self._store.delete_notification(notification_id),
            operation_name="delete_notification",
        )
        logger.info(
            "notifications.invitation_accepted",
            notification_id=notification_id,
            team_id=team.id,
            user_id=user_id,
        )

    async def decline_team_invitation(self, notification_id: str, user_id: str) -> None:
        """Decline an invitation: drop the placeholder, then delete the notification."""
        payload = await self._load_invitation(notification_id, user_id)
        team = await self._get_team(payload.team_id)
        if team is not None:
            placeholder = _find_placeholder(team, user_id, payload.invitee_email)
            if placeholder is not None:
                await self._retry.execute(
                    lambda: self._store.remove_team_member(team.id, placeholder.user_id),
                    operation_name="remove_team_member",
                )

        await self._retry.execute(
            lambda: self._store.delete_notification(notification_id),
            operation_name="delete_notification",
        )
        logger.info(
            "notifications.invitation_declined",
            notification_id=notification_id,
            team_id=payload.team_id,
            user_id=user_id,
        )

    async def _load_invitation(
        self, notification_id: str, user_id: str
    ) -> TeamInvitationPayload:
        if not notification_id.strip():
            raise TeamNotesError.validation("Invitation ID is required")
        if not user_id.strip():
            raise TeamNotesError.validation("User ID is required")

        notifications = await self.get_user_notifications(user_id)
        notification = next((n for n in notifications if n.id == notification_id), None)
        if notification is None:
            raise TeamNotesError.not_found(
                "Invitation not found", notification_id=notification_id
            )
        if not isinstance(notification.data, TeamInvitationPayload):
            raise TeamNotesError.validation(
                "This is not a team invitation", notification_id=notification_id
            )
        if not notification.data.team_id:
            raise TeamNotesError.validation(
                "Missing team information in invitation",
                notification_id=notification_id,
            )
        return notification.data

    # ── Task Notifications ───────────────────────────────────────────────

    async def send_task_assignment(self, assignment: TaskAssignment) -> str:
        """Notify an assignee that a task was assigned to them."""
        return await self.create(
            NotificationCreate(
                user_id=assignment.assignee_id,
                title="New Task Assignment",
                message=(
                    f'You have been assigned a task: "{assignment.task_description}" '
                    f'in meeting "{assignment.meeting_title}"'
                ),
                data=TaskAssignmentPayload(**assignment.model_dump()),
            )
        )

    async def send_task_reassigned(
        self, assignment: TaskAssignment, previous_assignee_id: str
    ) -> str:
        """Tell a previous assignee their task moved to someone else."""
        return await self.create(
            NotificationCreate(
                user_id=previous_assignee_id,
                title="Task Reassigned",
                message=(
                    f'Task "{assignment.task_description}" from meeting '
                    f'"{assignment.meeting_title}" has been reassigned to someone else'
                ),
                data=TaskAssignmentPayload(**assignment.model_dump(), reassigned=True),
            )
        )

    async def send_task_completed(
        self,
        assigner_id: str,
        task_id: str,
        task_description: str,
        completed_by: str,
        meeting_id: str | None = None,
        meeting_title: str = "",
    ) -> str:
        """Notify the member who assigned a task that it was completed."""
        return await self.create(
            NotificationCreate(
                user_id=assigner_id,
                title="Task Completed",
                message=(
                    f'Task "{task_description}" from meeting "{meeting_title}" '
                    "has been completed"
                ),
                data=TaskCompletedPayload(
                    task_id=task_id,
                    task_description=task_description,
                    meeting_id=meeting_id,
                    meeting_title=meeting_title,
                    completed_by=completed_by,
                ),
            )
        )

    # ── Meeting Fan-out ──────────────────────────────────────────────────

    async def send_meeting_assignment(self, data: MeetingAssignment) -> list[str]:
        """Tell every other active team member a meeting was shared with the team.

        Returns:
            Ids of the notifications that were created. Fewer ids than
            recipients means some recipients failed (logged, not raised).

        Raises:
            TeamNotesError: NOT_FOUND if the team does not exist.
        """
        recipients = await self._team_recipients(data.team_id, exclude=data.assigned_by)
        team_name = data.team_name
        notifications = [
            NotificationCreate(
                user_id=member.user_id,
                title=f"New Team Meeting: {data.meeting_title}",
                message=(
                    f"{data.assigned_by_name or 'A team member'} has shared a meeting "
                    f'"{data.meeting_title}" with the team "{team_name}".'
                ),
                data=MeetingAssignmentPayload(**data.model_dump()),
            )
            for member in recipients
        ]
        return await self._fan_out(notifications, NotificationType.MEETING_ASSIGNMENT)

    async def send_meeting_update(
        self,
        meeting_id: str,
        meeting_title: str,
        team_id: str,
        updated_by: str,
        update_type: MeetingUpdateType = MeetingUpdateType.GENERAL,
    ) -> list[str]:
        """Tell every other active team member a team meeting changed.

        Returns:
            Ids of the notifications that were created.
        """
        recipients = await self._team_recipients(team_id, exclude=updated_by)
        message = _UPDATE_MESSAGES[update_type].format(title=meeting_title)
        notifications = [
            NotificationCreate(
                user_id=member.user_id,
                title=f"Meeting Updated: {meeting_title}",
                message=message,
                data=MeetingUpdatePayload(
                    meeting_id=meeting_id,
                    meeting_title=meeting_title,
                    team_id=team_id,
                    updated_by=updated_by,
                    update_type=update_type,
                ),
            )
            for member in recipients
        ]
        return await self._fan_out(notifications, NotificationType.MEETING_UPDATE)

    async def _team_recipients(self, team_id: str, exclude: str) -> list[TeamMember]:
        team = await self._get_team(team_id)
        if team is None:
            raise TeamNotesError.not_found("Team not found", team_id=team_id)
        return [m for m in team.active_members() if m.user_id != exclude]

    async def _fan_out(
        self,
        notifications: list[NotificationCreate],
        notification_type: NotificationType,
    ) -> list[str]:
        """Create notifications concurrently and keep only the successes.

        Settle-all join: every create runs to completion regardless of the
        others, so one failing recipient cannot cancel or block its siblings.
        """
        if not notifications:
            logger.info("notifications.fanout_no_recipients", type=notification_type.value)
            return []

        semaphore = asyncio.Semaphore(self._fanout_limit)

        async def _create_one(notification: NotificationCreate) -> str:
            async with semaphore:
                return await self.create(notification)

        results = await asyncio.gather(
            *[_create_one(n) for n in notifications],
            return_exceptions=True,
        )

        succeeded: list[str] = []
        failed: list[tuple[str, BaseException]] = []
        for notification, result in zip(notifications, results):
            if isinstance(result, BaseException):
                failed.append((notification.user_id, result))
            else:
                succeeded.append(result)

        if failed:
            fanout_partial_failures_total.labels(type=notification_type.value).inc()
            for user_id, error in failed:
                logger.warning(
                    "notifications.fanout_recipient_failed",
                    type=notification_type.value,
                    user_id=user_id,
                    error=str(error),
                    code=getattr(getattr(error, "code", None), "value", None),
                )

        logger.info(
            "notifications.fanout_completed",
            type=notification_type.value,
            recipients=len(notifications),
            succeeded=len(succeeded),
            failed=len(failed),
        )
        return succeeded

    # ── Query & Mutate ───────────────────────────────────────────────────

    async def get_user_notifications(self, user_id: str) -> list[Notification]:
        """All of a user's notifications, newest first."""
        notifications = await self._retry.execute(
            lambda: self._store.get_user_notifications(user_id),
            operation_name="get_user_notifications",
        )
        return sorted(notifications, key=lambda n: n.created_at, reverse=True)

    async def get_unread_count(self, user_id: str) -> int:
        """Count unread notifications; auth failures count as zero."""
        try:
            notifications = await self.get_user_notifications(user_id)
        except TeamNotesError as exc:
            if exc.code in _SILENT_UNREAD_CODES:
                logger.warning(
                    "notifications.unread_count_auth_failure",
                    user_id=user_id,
                    code=exc.code.value,
                )
                return 0
            raise
        return sum(1 for n in notifications if not n.read)

    async def mark_as_read(self, notification_id: str) -> bool:
        return await self._retry.execute(
            lambda: self._store.mark_notification_as_read(notification_id),
            operation_name="mark_notification_as_read",
        )

    async def mark_all_as_read(self, user_id: str) -> int:
        """Mark every unread notification read; returns how many were marked."""
        notifications = await self.get_user_notifications(user_id)
        unread = [n for n in notifications if not n.read]
        for notification in unread:
            await self.mark_as_read(notification.id)
        logger.info("notifications.marked_all_read", user_id=user_id, count=len(unread))
        return len(unread)

    async def delete(self, notification_id: str) -> bool:
        return await self._retry.execute(
            lambda: self._store.delete_notification(notification_id),
            operation_name="delete_notification",
        )

    def subscribe_to_notifications(
        self, user_id: str, callback: NotificationCallback
    ) -> Unsubscribe:
        """Register a push subscription for a user's notifications.

        The caller must invoke the returned handle to release it.
        """
        unsubscribe = self._store.subscribe_to_user_notifications(user_id, callback)
        logger.debug("notifications.subscribed", user_id=user_id)

        def _unsubscribe() -> None:
            unsubscribe()
            logger.debug("notifications.unsubscribed", user_id=user_id)

        return _unsubscribe

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _get_team(self, team_id: str) -> Team | None:
        return await self._retry.execute(
            lambda: self._store.get_team_by_id(team_id),
            operation_name="get_team_by_id",
        )


def _find_placeholder(
    team: Team, user_id: str, invitee_email: str
) -> TeamMember | None:
    email = invitee_email.lower()
    return next(
        (
            m
            for m in team.members
            if m.status == MemberStatus.INVITED
            and (m.user_id == user_id or (email and m.email.lower() == email))
        ),
        None,
    )
