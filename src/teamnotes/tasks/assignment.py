"""TaskAssignmentEngine -- automatic and manual assignment of action items.

Auto-assignment matches each unassigned action item's ``owner`` hint (and,
optionally, names mentioned in its description) against the team roster
via MemberMatcher. Manual, bulk and status operations load the meeting,
mutate its action item list in memory and write the full list back in one
``update_meeting`` call, then notify the affected members through the
NotificationOrchestrator.

Every store call runs through the RetryExecutor.

Exports:
    TaskAssignmentEngine: Main assignment service.
    TaskAssignmentRequest: One (task_id, assignee_id) pair for bulk_assign.
    AutoAssignResult: Outcome of assign_meeting_items and auto_assign_meeting.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel, Field

from src.teamnotes.collaborators import PersistenceStore
from src.teamnotes.core.errors import TeamNotesError
from src.teamnotes.core.retry import RetryExecutor
from src.teamnotes.meetings.schemas import (
    PRIORITY_RANK,
    ActionItem,
    Meeting,
    TaskStatus,
    as_utc,
)
from src.teamnotes.meetings.speakers import extract_names_from_text, extract_speaker_names
from src.teamnotes.notifications.orchestrator import NotificationOrchestrator
from src.teamnotes.notifications.schemas import TaskAssignment
from src.teamnotes.teams.matching import MemberMatcher
from src.teamnotes.teams.schemas import Team, TeamMember

logger = structlog.get_logger(__name__)


class TaskAssignmentRequest(BaseModel):
    task_id: str
    assignee_id: str


class AutoAssignResult(BaseModel):
    """Outcome of auto-assigning a meeting's action items."""

    action_items: list[ActionItem]
    assigned: list[ActionItem] = Field(default_factory=list)
    unassigned: list[ActionItem] = Field(default_factory=list)
    speaker_matches: dict[str, TeamMember | None] = Field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _task_sort_key(item: ActionItem) -> tuple:
    deadline = item.deadline
    return (
        PRIORITY_RANK[item.priority],
        deadline is None,
        as_utc(deadline).timestamp() if deadline is not None else 0.0,
    )


class TaskAssignmentEngine:
    """Assigns meeting action items to team members.

    Args:
        store: Persistence collaborator.
        notifier: NotificationOrchestrator for assignment/completion notices.
        retry_executor: Shared RetryExecutor (a default one is created if omitted).
        matcher: MemberMatcher (strict policy from settings if omitted).
        now: Clock used for assigned_at and overdue checks.
    """

    def __init__(
        self,
        store: PersistenceStore,
        notifier: NotificationOrchestrator,
        retry_executor: RetryExecutor | None = None,
        matcher: MemberMatcher | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._notifier = notifier
        self._retry = retry_executor or RetryExecutor()
        self._matcher = matcher or MemberMatcher()
        self._now = now or _utcnow

    # ── Auto Assignment ──────────────────────────────────────────────────

    def auto_assign(
        self,
        action_items: list[ActionItem],
        roster: list[TeamMember],
        acting_user_id: str,
        speaker_matches: dict[str, TeamMember | None] | None = None,
    ) -> list[ActionItem]:
        """Assign every unassigned item whose owner hint matches a member.

        Already-assigned items are returned unchanged, so running this twice
        gives the same result as running it once. Items with no match stay
        unassigned.

        Args:
            action_items: Items to assign (not mutated).
            roster: Active team members.
            acting_user_id: Recorded as ``assigned_by``.
            speaker_matches: Optional transcript speaker -> member map; speakers
                mentioned in an item's description are tried when the owner
                hint does not match.

        Returns:
            A new list of action items in the same order.
        """
        if not roster:
            return list(action_items)

        assigned_at = self._now()
        result: list[ActionItem] = []
        for item in action_items:
            if item.is_assigned:
                result.append(item)
                continue

            member = self._find_assignee(item, roster, speaker_matches)
            if member is None:
                result.append(item)
                continue

            result.append(
                item.model_copy(
                    update={
                        "assignee_id": member.user_id,
                        "assignee_name": member.display_name,
                        "assigned_by": acting_user_id,
                        "assigned_at": assigned_at,
                    }
                )
            )
            logger.debug(
                "assignment.auto_assigned",
                task_id=item.id,
                assignee_id=member.user_id,
                owner=item.owner,
            )
        return result

    def _find_assignee(
        self,
        item: ActionItem,
        roster: list[TeamMember],
        speaker_matches: dict[str, TeamMember | None] | None,
    ) -> TeamMember | None:
        if item.owner:
            member = self._matcher.match(item.owner, roster)
            if member is not None:
                return member

        if speaker_matches is None:
            return None

        for name in extract_names_from_text(item.description):
            member = self._matcher.match(name, roster)
            if member is not None:
                return member

        description = item.description.lower()
        for speaker, member in speaker_matches.items():
            if member is None:
                continue
            first_name = speaker.split()[0].lower()
            if first_name and first_name in description:
                return member
        return None

    def assign_meeting_items(
        self,
        meeting: Meeting,
        roster: list[TeamMember],
        acting_user_id: str,
    ) -> AutoAssignResult:
        """Auto-assign a meeting's items using its transcript speakers.

        Pure: nothing is persisted and nobody is notified.
        """
        speakers = extract_speaker_names(meeting.raw_transcript)
        speaker_matches = self._matcher.match_multiple(speakers, roster)
        items = self.auto_assign(
            meeting.action_items, roster, acting_user_id, speaker_matches
        )
        return AutoAssignResult(
            action_items=items,
            assigned=[i for i in items if i.is_assigned],
            unassigned=[i for i in items if not i.is_assigned],
            speaker_matches=speaker_matches,
        )

    async def auto_assign_meeting(
        self,
        meeting: Meeting,
        roster: list[TeamMember],
        acting_user_id: str,
    ) -> AutoAssignResult:
        """Auto-assign a meeting's items and notify the new assignees.

        Newly assigned members (other than the acting user) are notified;
        notification failures are logged and do not affect the result.
        """
        result = self.assign_meeting_items(meeting, roster, acting_user_id)
        previously_assigned = {i.id for i in meeting.action_items if i.is_assigned}
        newly_assigned = [
            i for i in result.assigned if i.id not in previously_assigned
        ]

        await self._notify_assignees(meeting, newly_assigned, acting_user_id)

        logger.info(
            "assignment.auto_assign_completed",
            meeting_id=meeting.id,
            speakers=len(result.speaker_matches),
            assigned=len(result.assigned),
            unassigned=len(result.unassigned),
        )
        return result

    # ── Manual Assignment ────────────────────────────────────────────────

    async def assign_manually(
        self,
        meeting_id: str,
        task_id: str,
        assignee_id: str,
        assigned_by: str,
        acting_owner_id: str,
    ) -> bool:
        """Assign one task to an active member of the meeting's team.

        Raises:
            TeamNotesError: NOT_FOUND for a missing meeting, task or assignee.
        """
        meeting = await self._load_meeting(meeting_id, acting_owner_id)
        index = meeting.find_task(task_id)
        if index < 0:
            raise TeamNotesError.not_found("Task not found", task_id=task_id)

        team = await self._load_team(meeting)
        assignee = _active_member(team, assignee_id)
        if assignee is None:
            raise TeamNotesError.not_found("Assignee not found", assignee_id=assignee_id)

        previous = meeting.action_items[index]
        updated = self._assigned(previous, assignee, assigned_by)
        items = list(meeting.action_items)
        items[index] = updated

        await self._persist_items(meeting, acting_owner_id, items)
        logger.info(
            "assignment.assigned",
            meeting_id=meeting.id,
            task_id=task_id,
            assignee_id=assignee_id,
            assigned_by=assigned_by,
        )

        assignment = self._assignment(meeting, team, updated)
        try:
            await self._notifier.send_task_assignment(assignment)
            if previous.assignee_id and previous.assignee_id != assignee_id:
                await self._notifier.send_task_reassigned(assignment, previous.assignee_id)
        except TeamNotesError as exc:
            logger.warning(
                "assignment.notification_failed",
                meeting_id=meeting.id,
                task_id=task_id,
                code=exc.code.value,
                error=exc.message,
            )
        return True

    async def reassign_task(
        self,
        meeting_id: str,
        task_id: str,
        new_assignee_id: str,
        reassigned_by: str,
        acting_owner_id: str,
    ) -> bool:
        """Move a task to another member; the previous assignee is told."""
        return await self.assign_manually(
            meeting_id, task_id, new_assignee_id, reassigned_by, acting_owner_id
        )

    async def bulk_assign(
        self,
        meeting_id: str,
        assignments: list[TaskAssignmentRequest],
        assigned_by: str,
        acting_owner_id: str,
    ) -> bool:
        """Apply several assignments with one persist.

        Pairs naming an unknown task or an assignee who is not an active
        member are skipped. Each applied pair gets one notification; the
        notifications are sent concurrently and failures are logged.

        Returns:
            True if at least one assignment was applied.
        """
        meeting = await self._load_meeting(meeting_id, acting_owner_id)
        team = await self._load_team(meeting)

        items = list(meeting.action_items)
        applied: list[ActionItem] = []
        for request in assignments:
            index = meeting.find_task(request.task_id)
            if index < 0:
                logger.warning(
                    "assignment.bulk_unknown_task",
                    meeting_id=meeting.id,
                    task_id=request.task_id,
                )
                continue
            assignee = _active_member(team, request.assignee_id)
            if assignee is None:
                logger.warning(
                    "assignment.bulk_unknown_assignee",
                    meeting_id=meeting.id,
                    assignee_id=request.assignee_id,
                )
                continue
            items[index] = self._assigned(items[index], assignee, assigned_by)
            applied.append(items[index])

        if not applied:
            return False

        await self._persist_items(meeting, acting_owner_id, items)
        logger.info(
            "assignment.bulk_assigned",
            meeting_id=meeting.id,
            requested=len(assignments),
            applied=len(applied),
        )

        results = await asyncio.gather(
            *[
                self._notifier.send_task_assignment(self._assignment(meeting, team, item))
                for item in applied
            ],
            return_exceptions=True,
        )
        for item, result in zip(applied, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "assignment.notification_failed",
                    meeting_id=meeting.id,
                    task_id=item.id,
                    error=str(result),
                )
        return True

    # ── Status ───────────────────────────────────────────────────────────

    async def update_status(
        self,
        meeting_id: str,
        task_id: str,
        new_status: TaskStatus | str,
        acting_user_id: str,
        acting_owner_id: str,
    ) -> bool:
        """Set a task's status; completion notifies whoever assigned it.

        Raises:
            TeamNotesError: VALIDATION_ERROR for an unknown status, NOT_FOUND
                for a missing meeting or task.
        """
        try:
            status = TaskStatus(new_status)
        except ValueError:
            raise TeamNotesError.validation(
                f"Invalid task status: {new_status}", field="status"
            ) from None

        meeting = await self._load_meeting(meeting_id, acting_owner_id)
        index = meeting.find_task(task_id)
        if index < 0:
            raise TeamNotesError.not_found("Task not found", task_id=task_id)

        previous = meeting.action_items[index]
        items = list(meeting.action_items)
        items[index] = previous.model_copy(update={"status": status})
        await self._persist_items(meeting, acting_owner_id, items)
        logger.info(
            "assignment.status_updated",
            meeting_id=meeting.id,
            task_id=task_id,
            old_status=previous.status.value,
            new_status=status.value,
        )

        completed_now = (
            status == TaskStatus.COMPLETED and previous.status != TaskStatus.COMPLETED
        )
        if completed_now and previous.assigned_by:
            try:
                await self._notifier.send_task_completed(
                    assigner_id=previous.assigned_by,
                    task_id=previous.id,
                    task_description=previous.description,
                    completed_by=acting_user_id,
                    meeting_id=meeting.id,
                    meeting_title=meeting.title,
                )
            except TeamNotesError as exc:
                logger.warning(
                    "assignment.notification_failed",
                    meeting_id=meeting.id,
                    task_id=task_id,
                    code=exc.code.value,
                    error=exc.message,
                )
        return True

    # ── Queries ──────────────────────────────────────────────────────────

    async def get_tasks_for_user(
        self, user_id: str, team_id: str | None = None
    ) -> list[ActionItem]:
        """Tasks assigned to a user, by priority then earliest deadline."""
        meetings = await self._retry.execute(
            lambda: self._store.get_user_meetings(user_id, team_id),
            operation_name="get_user_meetings",
        )
        tasks = [
            item
            for meeting in meetings
            for item in meeting.action_items
            if item.assignee_id == user_id
        ]
        return sorted(tasks, key=_task_sort_key)

    async def get_overdue_tasks(self, user_id: str) -> list[ActionItem]:
        now = self._now()
        return [
            task
            for task in await self.get_tasks_for_user(user_id)
            if task.status != TaskStatus.COMPLETED
            and task.deadline is not None
            and as_utc(task.deadline) < now
        ]

    async def get_tasks_by_status(
        self, user_id: str, status: TaskStatus
    ) -> list[ActionItem]:
        return [t for t in await self.get_tasks_for_user(user_id) if t.status == status]

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _load_meeting(self, meeting_id: str, owner_id: str) -> Meeting:
        meeting = await self._retry.execute(
            lambda: self._store.get_meeting_by_id(meeting_id, owner_id),
            operation_name="get_meeting_by_id",
        )
        if meeting is None:
            raise TeamNotesError.not_found("Meeting not found", meeting_id=meeting_id)
        return meeting

    async def _load_team(self, meeting: Meeting) -> Team | None:
        if meeting.team_id is None:
            return None
        return await self._retry.execute(
            lambda: self._store.get_team_by_id(meeting.team_id),
            operation_name="get_team_by_id",
        )

    async def _persist_items(
        self, meeting: Meeting, owner_id: str, items: list[ActionItem]
    ) -> None:
        updates = {
            "action_items": [item.model_dump(mode="json") for item in items],
            "updated_at": self._now(),
        }
        await self._retry.execute(
            lambda: self._store.update_meeting(meeting.id, owner_id, updates),
            operation_name="update_meeting",
        )

    def _assigned(
        self, item: ActionItem, assignee: TeamMember, assigned_by: str
    ) -> ActionItem:
        return item.model_copy(
            update={
                "assignee_id": assignee.user_id,
                "assignee_name": assignee.display_name,
                "assigned_by": assigned_by,
                "assigned_at": self._now(),
            }
        )

    @staticmethod
    def _assignment(meeting: Meeting, team: Team | None, item: ActionItem) -> TaskAssignment:
        return TaskAssignment(
            task_id=item.id,
            task_description=item.description,
            assignee_id=item.assignee_id or "",
            assignee_name=item.assignee_name or "",
            meeting_id=meeting.id,
            meeting_title=meeting.title,
            assigned_by=item.assigned_by or "",
            team_id=team.id if team else None,
            team_name=team.name if team else None,
        )

    async def _notify_assignees(
        self, meeting: Meeting, items: list[ActionItem], acting_user_id: str
    ) -> None:
        recipients = [i for i in items if i.assignee_id != acting_user_id]
        if not recipients:
            return
        results = await asyncio.gather(
            *[
                self._notifier.send_task_assignment(self._assignment(meeting, None, item))
                for item in recipients
            ],
            return_exceptions=True,
        )
        for item, result in zip(recipients, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "assignment.notification_failed",
                    meeting_id=meeting.id,
                    task_id=item.id,
                    error=str(result),
                )


def _active_member(team: Team | None, user_id: str) -> TeamMember | None:
    if team is None:
        return None
    member = team.get_member(user_id)
    if member is None or not member.is_active:
        return None
    return member
