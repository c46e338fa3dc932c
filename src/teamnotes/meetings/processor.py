"""TeamAwareMeetingProcessor -- transcript upload to assigned, shared meeting.

Pipeline for one uploaded transcript:
1. Load the team's active roster (team meetings only)
2. Run the AI transcript analyzer
3. Turn extracted action items into pending ActionItems
4. Auto-assign using owner hints and transcript speakers
5. Persist the meeting in the uploader's scope
6. Notify assignees (never the uploader) and fan out a meeting_assignment
   to the rest of the team

Notification failures are logged and never fail the upload; analyzer and
persistence failures propagate.
"""

from __future__ import annotations

import asyncio
from datetime import date

import structlog
from pydantic import BaseModel, Field

from src.teamnotes.collaborators import PersistenceStore, TranscriptAnalyzer
from src.teamnotes.core.errors import TeamNotesError
from src.teamnotes.core.retry import RetryExecutor
from src.teamnotes.meetings.schemas import ActionItem, Meeting
from src.teamnotes.notifications.orchestrator import NotificationOrchestrator
from src.teamnotes.notifications.schemas import MeetingAssignment, TaskAssignment
from src.teamnotes.tasks.assignment import TaskAssignmentEngine
from src.teamnotes.teams.schemas import Team, TeamMember
from src.teamnotes.teams.service import TeamService

logger = structlog.get_logger(__name__)


class AssignmentSummary(BaseModel):
    total: int = 0
    auto_assigned: int = 0
    unassigned: int = 0
    speaker_matches: dict[str, str | None] = Field(
        default_factory=dict,
        description="Transcript speaker -> matched user_id (None when unmatched)",
    )


class ProcessingResult(BaseModel):
    meeting: Meeting
    unassigned_tasks: list[ActionItem] = Field(default_factory=list)
    summary: AssignmentSummary = Field(default_factory=AssignmentSummary)


class TeamAwareMeetingProcessor:
    """Processes transcripts into team meetings with assigned action items."""

    def __init__(
        self,
        store: PersistenceStore,
        analyzer: TranscriptAnalyzer,
        engine: TaskAssignmentEngine,
        orchestrator: NotificationOrchestrator,
        team_service: TeamService,
        retry_executor: RetryExecutor | None = None,
    ) -> None:
        self._store = store
        self._analyzer = analyzer
        self._engine = engine
        self._orchestrator = orchestrator
        self._teams = team_service
        self._retry = retry_executor or RetryExecutor()

    async def process(
        self,
        transcript: str,
        user_id: str,
        team_id: str | None = None,
        title: str | None = None,
    ) -> ProcessingResult:
        """Analyze, assign, persist and announce one transcript.

        Args:
            transcript: Raw transcript text.
            user_id: Uploading user; owns the meeting and is the assigner.
            team_id: Team to share the meeting with (None for a personal meeting).
            title: Meeting title (a dated default is used if omitted).

        Returns:
            ProcessingResult with the persisted meeting and assignment summary.
        """
        if not transcript.strip():
            raise TeamNotesError.validation("Transcript is empty", field="transcript")

        team: Team | None = None
        roster: list[TeamMember] = []
        if team_id is not None:
            team = await self._teams.get_team(team_id)
            roster = team.active_members()

        analysis = await self._analyzer.process_transcript(transcript, roster)
        log = logger.bind(user_id=user_id, team_id=team_id)
        log.info(
            "processor.transcript_analyzed",
            action_items=len(analysis.action_items),
            confidence=analysis.confidence,
        )

        items = [
            ActionItem(
                description=extracted.description,
                owner=extracted.owner,
                priority=extracted.priority,
                deadline=extracted.deadline,
            )
            for extracted in analysis.action_items
        ]

        meeting = Meeting(
            title=title or _default_title(team),
            summary=analysis.summary,
            action_items=items,
            raw_transcript=transcript,
            team_id=team_id,
        )
        assignment = self._engine.assign_meeting_items(meeting, roster, user_id)
        items = assignment.action_items
        meeting = meeting.model_copy(update={"action_items": items})
        meeting_id = await self._retry.execute(
            lambda: self._store.create_meeting(user_id, meeting),
            operation_name="create_meeting",
        )
        meeting = meeting.model_copy(update={"id": meeting_id})

        assigned = assignment.assigned
        unassigned = assignment.unassigned
        log.info(
            "processor.meeting_created",
            meeting_id=meeting_id,
            total=len(items),
            auto_assigned=len(assigned),
            unassigned=len(unassigned),
        )

        if team is not None:
            await self._announce(meeting, team, assigned, user_id)

        return ProcessingResult(
            meeting=meeting,
            unassigned_tasks=unassigned,
            summary=AssignmentSummary(
                total=len(items),
                auto_assigned=len(assigned),
                unassigned=len(unassigned),
                speaker_matches={
                    name: member.user_id if member else None
                    for name, member in assignment.speaker_matches.items()
                },
            ),
        )

    async def _announce(
        self,
        meeting: Meeting,
        team: Team,
        assigned: list[ActionItem],
        user_id: str,
    ) -> None:
        uploader = team.get_member(user_id)
        task_notices = [
            self._orchestrator.send_task_assignment(
                TaskAssignment(
                    task_id=item.id,
                    task_description=item.description,
                    assignee_id=item.assignee_id or "",
                    assignee_name=item.assignee_name or "",
                    meeting_id=meeting.id,
                    meeting_title=meeting.title,
                    assigned_by=user_id,
                    team_id=team.id,
                    team_name=team.name,
                )
            )
            for item in assigned
            if item.assignee_id != user_id
        ]
        meeting_notice = self._orchestrator.send_meeting_assignment(
            MeetingAssignment(
                meeting_id=meeting.id,
                meeting_title=meeting.title,
                team_id=team.id,
                team_name=team.name,
                assigned_by=user_id,
                assigned_by_name=uploader.display_name if uploader else "",
            )
        )

        results = await asyncio.gather(*task_notices, meeting_notice, return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.warning(
                "processor.notifications_failed",
                meeting_id=meeting.id,
                failed=len(failures),
                errors=[str(f) for f in failures],
            )


def _default_title(team: Team | None) -> str:
    prefix = f"{team.name} meeting" if team else "Meeting"
    return f"{prefix} {date.today().isoformat()}"
