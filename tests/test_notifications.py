"""Tests for NotificationOrchestrator.

Covers per-type create validation, team invitation send/accept/decline
(including malformed invitations that must leave membership unchanged),
settle-all fan-out with partial failures, unread counting with auth
degradation, read/delete mutations and push subscriptions.
"""

from __future__ import annotations

import asyncio

import pytest

from src.teamnotes.core.errors import ErrorCode, StoreError, TeamNotesError
from src.teamnotes.meetings.schemas import MeetingUpdateType
from src.teamnotes.notifications.schemas import (
    MeetingAssignment,
    Notification,
    NotificationCreate,
    NotificationType,
    TaskAssignment,
    TaskAssignmentPayload,
    TaskCompletedPayload,
    TeamInvitation,
    TeamInvitationPayload,
)
from src.teamnotes.teams.schemas import MemberStatus, TeamMember
from tests.doubles import ALICE, BOB, CAROL, DAVE_INVITED, make_team

ERIN_PLACEHOLDER = TeamMember(
    user_id="u-erin",
    email="erin@example.com",
    display_name="Erin Green",
    status=MemberStatus.INVITED,
)


def _invitation(**overrides) -> TeamInvitation:
    defaults = {
        "team_id": "team-1",
        "team_name": "Platform",
        "inviter_id": ALICE.user_id,
        "inviter_name": "Alice Smith",
        "invitee_email": "erin@example.com",
    }
    defaults.update(overrides)
    return TeamInvitation(**defaults)


def _task_notice(user_id: str = BOB.user_id, **overrides) -> NotificationCreate:
    payload = {
        "task_id": "t1",
        "task_description": "Write the doc",
        "assignee_id": user_id,
    }
    payload.update(overrides)
    return NotificationCreate(
        user_id=user_id,
        title="New Task Assignment",
        message="You have a task",
        data=TaskAssignmentPayload(**payload),
    )


# ── Create ───────────────────────────────────────────────────────────────────


class TestCreate:
    @pytest.mark.asyncio
    async def test_persists_and_returns_id(self, orchestrator, store):
        notification_id = await orchestrator.create(_task_notice())
        stored = store.notifications[notification_id]
        assert stored.type == NotificationType.TASK_ASSIGNMENT
        assert stored.read is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data",
        [
            NotificationCreate(
                user_id="",
                title="x",
                message="",
                data=TaskCompletedPayload(task_id="t", task_description="d", completed_by="u"),
            ),
            NotificationCreate(
                user_id="u-bob",
                title="  ",
                message="",
                data=TaskCompletedPayload(task_id="t", task_description="d", completed_by="u"),
            ),
            NotificationCreate(
                user_id="u-erin",
                title="Team Invitation",
                message="",
                data=TeamInvitationPayload(team_id="team-1", invitee_email="not-an-email"),
            ),
            NotificationCreate(
                user_id="u-erin",
                title="Team Invitation",
                message="",
                data=TeamInvitationPayload(invitee_email="erin@example.com"),
            ),
        ],
    )
    async def test_validation_errors(self, orchestrator, store, data):
        with pytest.raises(TeamNotesError) as exc_info:
            await orchestrator.create(data)
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert store.notifications == {}

    @pytest.mark.asyncio
    async def test_task_assignment_requires_assignee(self, orchestrator, store):
        with pytest.raises(TeamNotesError) as exc_info:
            await orchestrator.create(_task_notice(assignee_id="  "))
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR
        assert store.notifications == {}

    @pytest.mark.asyncio
    async def test_validation_errors_are_not_retried(self, orchestrator, sleep):
        with pytest.raises(TeamNotesError):
            await orchestrator.create(_task_notice(assignee_id=""))
        sleep.assert_not_awaited()


# ── Team Invitations ─────────────────────────────────────────────────────────


class TestTeamInvitations:
    @pytest.mark.asyncio
    async def test_send_resolves_invitee_by_email(self, orchestrator, store):
        notification_id = await orchestrator.send_team_invitation(
            _invitation(invitee_email="  Erin@Example.com ")
        )
        notification = store.notifications[notification_id]
        assert notification.user_id == "u-erin"
        assert notification.type == NotificationType.TEAM_INVITATION
        assert notification.title == "Team Invitation: Platform"
        assert notification.data.invitee_email == "erin@example.com"
        assert notification.data.team_id == "team-1"

    @pytest.mark.asyncio
    async def test_send_unknown_user(self, orchestrator, store):
        with pytest.raises(TeamNotesError, match="User not found") as exc_info:
            await orchestrator.send_team_invitation(_invitation(invitee_email="zed@example.com"))
        assert exc_info.value.code == ErrorCode.NOT_FOUND
        assert store.notifications == {}

    @pytest.mark.asyncio
    async def test_send_malformed_email(self, orchestrator):
        with pytest.raises(TeamNotesError) as exc_info:
            await orchestrator.send_team_invitation(_invitation(invitee_email="erin"))
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_accept_activates_placeholder_and_deletes(self, orchestrator, store):
        store.teams["team-1"] = make_team(members=[ALICE, BOB, ERIN_PLACEHOLDER])
        notification_id = await orchestrator.send_team_invitation(_invitation())

        await orchestrator.accept_team_invitation(notification_id, "u-erin")

        member = store.teams["team-1"].get_member("u-erin")
        assert member is not None
        assert member.status == MemberStatus.ACTIVE
        assert len(store.teams["team-1"].members) == 3
        assert notification_id not in store.notifications

    @pytest.mark.asyncio
    async def test_accept_rebinds_placeholder_to_real_user_id(self, orchestrator, store):
        pending = ERIN_PLACEHOLDER.model_copy(update={"user_id": "pending:erin@example.com"})
        store.teams["team-1"] = make_team(members=[ALICE, pending])
        notification_id = await orchestrator.send_team_invitation(_invitation())

        await orchestrator.accept_team_invitation(notification_id, "u-erin")

        team = store.teams["team-1"]
        assert team.get_member("pending:erin@example.com") is None
        member = team.get_member("u-erin")
        assert member.status == MemberStatus.ACTIVE
        assert member.email == "erin@example.com"

    @pytest.mark.asyncio
    async def test_accept_missing_team_information(self, orchestrator, store):
        store.teams["team-1"] = make_team(members=[ALICE, ERIN_PLACEHOLDER])
        store.notifications["n-bad"] = Notification(
            id="n-bad",
            user_id="u-erin",
            title="Team Invitation: Platform",
            message="",
            data=TeamInvitationPayload(team_name="Platform", invitee_email="erin@example.com"),
        )
        members_before = list(store.teams["team-1"].members)

        with pytest.raises(TeamNotesError, match="Missing team information in invitation"):
            await orchestrator.accept_team_invitation("n-bad", "u-erin")

        assert store.teams["team-1"].members == members_before
        assert "n-bad" in store.notifications

    @pytest.mark.asyncio
    async def test_accept_non_invitation(self, orchestrator, store):
        notification_id = await orchestrator.create(_task_notice(user_id="u-erin"))
        with pytest.raises(TeamNotesError, match="This is not a team invitation"):
            await orchestrator.accept_team_invitation(notification_id, "u-erin")

    @pytest.mark.asyncio
    async def test_accept_unknown_invitation(self, orchestrator):
        with pytest.raises(TeamNotesError, match="Invitation not found") as exc_info:
            await orchestrator.accept_team_invitation("n-missing", "u-erin")
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_accept_after_team_deleted(self, orchestrator, store):
        notification_id = await orchestrator.send_team_invitation(_invitation())
        del store.teams["team-1"]
        with pytest.raises(TeamNotesError, match="Team no longer exists"):
            await orchestrator.accept_team_invitation(notification_id, "u-erin")

    @pytest.mark.asyncio
    async def test_decline_removes_placeholder_and_deletes(self, orchestrator, store):
        store.teams["team-1"] = make_team(members=[ALICE, BOB, ERIN_PLACEHOLDER])
        notification_id = await orchestrator.send_team_invitation(_invitation())

        await orchestrator.decline_team_invitation(notification_id, "u-erin")

        assert store.teams["team-1"].get_member("u-erin") is None
        assert [m.user_id for m in store.teams["team-1"].members] == ["u-alice", "u-bob"]
        assert notification_id not in store.notifications

    @pytest.mark.asyncio
    async def test_rebind_is_a_single_in_place_team_write(self, orchestrator, store):
        pending = ERIN_PLACEHOLDER.model_copy(update={"user_id": "pending:erin@example.com"})
        store.teams["team-1"] = make_team(members=[ALICE, pending, BOB])
        notification_id = await orchestrator.send_team_invitation(_invitation())
        untouched = StoreError("unavailable")
        store.errors["remove_team_member"] = [untouched]
        store.errors["add_team_member"] = [untouched]

        await orchestrator.accept_team_invitation(notification_id, "u-erin")

        members = store.teams["team-1"].members
        assert [m.user_id for m in members] == ["u-alice", "u-erin", "u-bob"]
        assert members[1].status == MemberStatus.ACTIVE
        assert store.errors["remove_team_member"] == [untouched]
        assert store.errors["add_team_member"] == [untouched]

    @pytest.mark.asyncio
    async def test_failed_rebind_keeps_placeholder_and_invitation(self, orchestrator, store):
        pending = ERIN_PLACEHOLDER.model_copy(update={"user_id": "pending:erin@example.com"})
        store.teams["team-1"] = make_team(members=[ALICE, pending])
        notification_id = await orchestrator.send_team_invitation(_invitation())
        store.errors["update_team"] = [StoreError("permission-denied")]

        with pytest.raises(TeamNotesError) as exc_info:
            await orchestrator.accept_team_invitation(notification_id, "u-erin")

        assert exc_info.value.code == ErrorCode.PERMISSION_DENIED
        team = store.teams["team-1"]
        assert team.get_member("pending:erin@example.com").status == MemberStatus.INVITED
        assert team.get_member("u-erin") is None
        assert notification_id in store.notifications


# ── Fan-out ──────────────────────────────────────────────────────────────────


def _meeting_assignment(**overrides) -> MeetingAssignment:
    defaults = {
        "meeting_id": "meeting-1",
        "meeting_title": "Sprint Planning",
        "team_id": "team-1",
        "team_name": "Platform",
        "assigned_by": ALICE.user_id,
        "assigned_by_name": "Alice Smith",
    }
    defaults.update(overrides)
    return MeetingAssignment(**defaults)


class TestFanOut:
    @pytest.mark.asyncio
    async def test_one_notification_per_other_active_member(self, orchestrator, store):
        store.teams["team-1"] = make_team(members=[ALICE, BOB, CAROL, DAVE_INVITED])

        ids = await orchestrator.send_meeting_assignment(_meeting_assignment())

        assert len(ids) == 2
        assert store.notifications_for(ALICE.user_id) == []
        assert store.notifications_for(DAVE_INVITED.user_id) == []
        for member in (BOB, CAROL):
            notices = store.notifications_for(member.user_id, "meeting_assignment")
            assert len(notices) == 1
            assert notices[0].title == "New Team Meeting: Sprint Planning"

    @pytest.mark.asyncio
    async def test_partial_failure_returns_successful_subset(self, orchestrator, store):
        store.fail_notifications_for = {BOB.user_id}

        ids = await orchestrator.send_meeting_assignment(_meeting_assignment())

        team_size = len(store.teams["team-1"].members)
        assert len(ids) <= team_size - 1
        assert len(ids) >= team_size - 2
        assert set(ids) == {n.id for n in store.notifications_for(CAROL.user_id)}

    @pytest.mark.asyncio
    async def test_recipients_are_notified_concurrently(self, orchestrator, store):
        started: list[str] = []
        all_started = asyncio.Event()
        create = store.create_notification

        async def gated_create(data):
            started.append(data.user_id)
            if len(started) == 2:
                all_started.set()
            await all_started.wait()
            return await create(data)

        store.create_notification = gated_create

        ids = await asyncio.wait_for(
            orchestrator.send_meeting_assignment(_meeting_assignment()), timeout=1.0
        )

        assert len(ids) == 2
        assert sorted(started) == [BOB.user_id, CAROL.user_id]

    @pytest.mark.asyncio
    async def test_all_recipients_failing_is_not_an_error(self, orchestrator, store):
        store.fail_notifications_for = {BOB.user_id, CAROL.user_id}
        assert await orchestrator.send_meeting_assignment(_meeting_assignment()) == []

    @pytest.mark.asyncio
    async def test_actor_alone_gets_nothing(self, orchestrator, store):
        store.teams["team-1"] = make_team(members=[ALICE])
        assert await orchestrator.send_meeting_assignment(_meeting_assignment()) == []
        assert store.notifications == {}

    @pytest.mark.asyncio
    async def test_unknown_team(self, orchestrator):
        with pytest.raises(TeamNotesError) as exc_info:
            await orchestrator.send_meeting_assignment(_meeting_assignment(team_id="nope"))
        assert exc_info.value.code == ErrorCode.NOT_FOUND

    @pytest.mark.asyncio
    async def test_meeting_update_excludes_updater(self, orchestrator, store):
        ids = await orchestrator.send_meeting_update(
            "meeting-1",
            "Sprint Planning",
            "team-1",
            BOB.user_id,
            MeetingUpdateType.SUMMARY,
        )
        assert len(ids) == 2
        assert store.notifications_for(BOB.user_id) == []
        notice = store.notifications_for(CAROL.user_id, "meeting_update")[0]
        assert notice.data.update_type == MeetingUpdateType.SUMMARY
        assert "summary" in notice.message


# ── Query & Mutate ───────────────────────────────────────────────────────────


class TestQueries:
    @pytest.mark.asyncio
    async def test_newest_first(self, orchestrator):
        first = await orchestrator.create(_task_notice(task_id="t1"))
        second = await orchestrator.create(_task_notice(task_id="t2"))
        notifications = await orchestrator.get_user_notifications(BOB.user_id)
        assert [n.id for n in notifications] == [second, first]

    @pytest.mark.asyncio
    async def test_unread_count_and_mark_as_read(self, orchestrator):
        first = await orchestrator.create(_task_notice(task_id="t1"))
        await orchestrator.create(_task_notice(task_id="t2"))
        assert await orchestrator.get_unread_count(BOB.user_id) == 2

        assert await orchestrator.mark_as_read(first) is True
        assert await orchestrator.get_unread_count(BOB.user_id) == 1

    @pytest.mark.asyncio
    async def test_mark_all_as_read(self, orchestrator):
        for task_id in ("t1", "t2", "t3"):
            await orchestrator.create(_task_notice(task_id=task_id))
        assert await orchestrator.mark_all_as_read(BOB.user_id) == 3
        assert await orchestrator.get_unread_count(BOB.user_id) == 0
        assert await orchestrator.mark_all_as_read(BOB.user_id) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("store_code", ["unauthenticated", "permission-denied"])
    async def test_unread_count_degrades_to_zero_on_auth_errors(
        self, orchestrator, store, store_code
    ):
        await orchestrator.create(_task_notice())
        store.errors["get_user_notifications"] = [StoreError(store_code)]
        assert await orchestrator.get_unread_count(BOB.user_id) == 0

    @pytest.mark.asyncio
    async def test_unread_count_propagates_other_errors(self, orchestrator, store):
        store.errors["get_user_notifications"] = [StoreError("resource-exhausted")]
        with pytest.raises(TeamNotesError) as exc_info:
            await orchestrator.get_unread_count(BOB.user_id)
        assert exc_info.value.code == ErrorCode.RESOURCE_EXHAUSTED

    @pytest.mark.asyncio
    async def test_delete(self, orchestrator, store):
        notification_id = await orchestrator.create(_task_notice())
        assert await orchestrator.delete(notification_id) is True
        assert store.notifications == {}

    @pytest.mark.asyncio
    async def test_send_task_completed(self, orchestrator, store):
        await orchestrator.send_task_completed(
            assigner_id=ALICE.user_id,
            task_id="t1",
            task_description="Write the doc",
            completed_by=BOB.user_id,
            meeting_id="meeting-1",
            meeting_title="Sprint Planning",
        )
        notice = store.notifications_for(ALICE.user_id, "task_completed")[0]
        assert notice.title == "Task Completed"
        assert notice.data.completed_by == BOB.user_id

    @pytest.mark.asyncio
    async def test_send_task_assignment(self, orchestrator, store):
        await orchestrator.send_task_assignment(
            TaskAssignment(
                task_id="t1",
                task_description="Write the doc",
                assignee_id=BOB.user_id,
                meeting_title="Sprint Planning",
                assigned_by=ALICE.user_id,
            )
        )
        notice = store.notifications_for(BOB.user_id, "task_assignment")[0]
        assert '"Write the doc"' in notice.message


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_push_until_unsubscribed(self, orchestrator):
        received = []
        unsubscribe = orchestrator.subscribe_to_notifications(
            BOB.user_id, lambda notifications: received.append(len(notifications))
        )

        await orchestrator.create(_task_notice(task_id="t1"))
        assert received == [1]

        unsubscribe()
        await orchestrator.create(_task_notice(task_id="t2"))
        assert received == [1]
