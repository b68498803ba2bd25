from datetime import timedelta

import pytest
from sqlalchemy import select

from bookings.engine import book_session
from bookings.state import can_transition, generate_meeting_link, submit_feedback, update_status
from conftest import MONDAY, NOW, at, make_user
from exceptions import (
    ForbiddenException,
    InsufficientNoticeException,
    NotFoundException,
    StateTransitionException,
    ValidationException,
)
from mentors.models import ActiveSession, MentorProfile

START = at(MONDAY, "10:00")
END = at(MONDAY, "11:00")


@pytest.fixture
async def booked(session, learner, mentor):
    return await book_session(session, learner.id, mentor.id, "Pairing", START, 60, now=NOW)


@pytest.fixture
async def confirmed(session, booked, mentor):
    return await update_status(session, booked.id, mentor.id, "confirmed", now=NOW)


@pytest.fixture
async def completed(session, confirmed, mentor):
    return await update_status(session, confirmed.id, mentor.id, "completed", now=END)


def test_transition_table():
    assert can_transition("pending", "confirmed")
    assert can_transition("pending", "cancelled")
    assert not can_transition("pending", "completed")
    assert can_transition("confirmed", "no-show")
    for terminal in ("cancelled", "completed", "no-show"):
        assert not can_transition(terminal, "confirmed")


async def test_confirm_notifies(session, booked, mentor, notifier):
    updated = await update_status(session, booked.id, mentor.id, "confirmed", notifier=notifier, now=NOW)

    assert updated.status == "confirmed"
    assert notifier.names() == ["session.confirmed"]


async def test_cancel_needs_full_notice(session, booked, learner):
    session_id = booked.id

    with pytest.raises(InsufficientNoticeException) as exc_info:
        await update_status(
            session, session_id, learner.id, "cancelled", now=START - timedelta(hours=23, minutes=59)
        )
    assert exc_info.value.code == "INSUFFICIENT_NOTICE"

    with pytest.raises(InsufficientNoticeException):
        await update_status(session, session_id, learner.id, "cancelled", now=START - timedelta(hours=24))

    cancelled = await update_status(
        session, session_id, learner.id, "cancelled", now=START - timedelta(hours=24, minutes=1)
    )
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_by == "learner"
    assert cancelled.cancellation_reason == "No reason provided"


async def test_mentor_cancel_records_reason(session, confirmed, mentor):
    cancelled = await update_status(
        session, confirmed.id, mentor.id, "cancelled", reason="Travelling", now=NOW
    )
    assert cancelled.cancelled_by == "mentor"
    assert cancelled.cancellation_reason == "Travelling"


async def test_complete_waits_for_end_time(session, confirmed, mentor):
    with pytest.raises(StateTransitionException) as exc_info:
        await update_status(session, confirmed.id, mentor.id, "completed", now=END - timedelta(minutes=1))
    assert exc_info.value.code == "SESSION_NOT_ENDED"


async def test_complete_bumps_counter_and_clears_active_list(session, completed, mentor):
    assert completed.status == "completed"

    profile = await session.get(MentorProfile, mentor.id, populate_existing=True)
    assert profile.sessions_completed == 1

    result = await session.execute(select(ActiveSession).where(ActiveSession.mentor_id == mentor.id))
    assert result.scalars().all() == []


async def test_cancel_keeps_active_list_entry(session, booked, learner, mentor):
    await update_status(session, booked.id, learner.id, "cancelled", now=NOW)

    result = await session.execute(select(ActiveSession).where(ActiveSession.mentor_id == mentor.id))
    assert [row.session_id for row in result.scalars().all()] == [booked.id]


async def test_no_show_only_after_start(session, confirmed, mentor):
    with pytest.raises(StateTransitionException) as exc_info:
        await update_status(session, confirmed.id, mentor.id, "no-show", now=START - timedelta(minutes=1))
    assert exc_info.value.code == "SESSION_NOT_STARTED"

    updated = await update_status(session, confirmed.id, mentor.id, "no-show", now=START)
    assert updated.status == "no-show"


async def test_terminal_states_reject_every_move(session, completed, mentor):
    for target in ("confirmed", "cancelled", "completed", "no-show"):
        with pytest.raises(StateTransitionException) as exc_info:
            await update_status(session, completed.id, mentor.id, target, now=END)
        assert exc_info.value.code == "ILLEGAL_TRANSITION"


async def test_pending_cannot_jump_to_completed(session, booked, mentor):
    with pytest.raises(StateTransitionException):
        await update_status(session, booked.id, mentor.id, "completed", now=END)


async def test_invalid_targets(session, booked, mentor):
    with pytest.raises(ValidationException):
        await update_status(session, booked.id, mentor.id, "pending", now=NOW)
    with pytest.raises(ValidationException):
        await update_status(session, booked.id, mentor.id, "archived", now=NOW)
    with pytest.raises(NotFoundException):
        await update_status(session, 999_999, mentor.id, "confirmed", now=NOW)


async def test_only_mentor_may_confirm(session, booked, learner):
    with pytest.raises(ForbiddenException):
        await update_status(session, booked.id, learner.id, "confirmed", now=NOW)


async def test_outsider_may_not_cancel(session, booked):
    stranger = await make_user(session)
    with pytest.raises(ForbiddenException):
        await update_status(session, booked.id, stranger.id, "cancelled", now=NOW)


async def test_feedback_requires_completed_session(session, confirmed, learner):
    with pytest.raises(StateTransitionException) as exc_info:
        await submit_feedback(session, confirmed.id, learner.id, "Great", 5, now=END)
    assert exc_info.value.code == "SESSION_NOT_COMPLETED"


async def test_feedback_once_per_party(session, completed, learner, mentor, notifier):
    updated, profile = await submit_feedback(
        session, completed.id, learner.id, "Very helpful", 5, notifier=notifier, now=END
    )
    assert updated.learner_feedback["rating"] == 5
    assert updated.learner_feedback["content"] == "Very helpful"
    assert profile.average_rating == 5.0
    assert profile.total_ratings == 1

    updated, profile = await submit_feedback(session, completed.id, mentor.id, "Prepared", 4, now=END)
    assert updated.mentor_feedback["rating"] == 4
    assert profile is None

    with pytest.raises(StateTransitionException) as exc_info:
        await submit_feedback(session, completed.id, learner.id, "Again", 3, now=END)
    assert exc_info.value.code == "FEEDBACK_EXISTS"
    assert notifier.names() == ["session.feedback"]


async def test_feedback_rating_bounds_and_parties(session, completed):
    with pytest.raises(ValidationException):
        await submit_feedback(session, completed.id, completed.learner_id, "Bad scale", 6, now=END)

    stranger = await make_user(session)
    with pytest.raises(ForbiddenException):
        await submit_feedback(session, completed.id, stranger.id, "Drive-by", 1, now=END)


async def test_meeting_link_for_confirmed_sessions(session, booked, learner, mentor):
    with pytest.raises(StateTransitionException):
        await generate_meeting_link(session, booked.id, mentor.id)

    await update_status(session, booked.id, mentor.id, "confirmed", now=NOW)
    with pytest.raises(ForbiddenException):
        await generate_meeting_link(session, booked.id, learner.id)

    linked = await generate_meeting_link(session, booked.id, mentor.id)
    assert linked.meeting_link == f"https://meet.mentorbook.dev/{booked.id}"
