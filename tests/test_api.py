from datetime import time, timedelta

from sqlalchemy import select

from availability.models import TimeSlot
from bookings.engine import book_session
from bookings.state import update_status
from conftest import MONDAY, NOW, at
from mentors.models import AvailabilityWindow
from reviews.models import Review


def _booking(mentor, start="10:00", minutes=60):
    return {
        "mentor_id": str(mentor.id),
        "title": "System design interview prep",
        "start_time": at(MONDAY, start).isoformat(),
        "duration_minutes": minutes,
        "meeting_type": "video",
    }


async def test_book_session_over_http(as_user, learner, mentor, notifier):
    client = as_user(learner)

    response = await client.post("/api/v1/sessions/", json=_booking(mentor, minutes=90))

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["price"] == 90.0
    assert body["learner_time_zone"] == "America/New_York"
    assert notifier.names() == ["session.booked"]


async def test_conflicting_booking_returns_409(as_user, learner, mentor):
    client = as_user(learner)
    first = await client.post("/api/v1/sessions/", json=_booking(mentor, "14:00"))
    assert first.status_code == 201

    response = await client.post("/api/v1/sessions/", json=_booking(mentor, "14:30"))

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "BOOKING_CONFLICT"
    assert detail["details"]["conflicting_session"]["id"] == first.json()["id"]


async def test_outside_availability_returns_422(as_user, learner, mentor):
    response = await as_user(learner).post("/api/v1/sessions/", json=_booking(mentor, "08:00"))

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "OUTSIDE_AVAILABILITY"


async def test_only_learners_book(as_user, mentor):
    response = await as_user(mentor).post("/api/v1/sessions/", json=_booking(mentor))
    assert response.status_code == 403


async def test_status_update_and_listing(as_user, learner, mentor):
    created = await as_user(learner).post("/api/v1/sessions/", json=_booking(mentor))
    session_id = created.json()["id"]

    mentor_client = as_user(mentor)
    response = await mentor_client.put(
        f"/api/v1/sessions/{session_id}/status", json={"status": "confirmed"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"

    response = await mentor_client.put(
        f"/api/v1/sessions/{session_id}/status", json={"status": "pending"}
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    response = await mentor_client.post(f"/api/v1/sessions/{session_id}/meeting-link")
    assert response.json()["meeting_link"].endswith(f"/{session_id}")

    response = await mentor_client.get("/api/v1/sessions/", params={"timeframe": "upcoming"})
    page = response.json()
    assert page["total_sessions"] == 1
    assert page["current_page"] == 1
    assert page["sessions"][0]["id"] == session_id


async def test_learner_cancels_over_http(as_user, learner, mentor):
    client = as_user(learner)
    created = await client.post("/api/v1/sessions/", json=_booking(mentor))
    session_id = created.json()["id"]

    response = await client.put(
        f"/api/v1/sessions/{session_id}/status",
        json={"status": "cancelled", "reason": "Conflict at work"},
    )

    assert response.status_code == 200
    assert response.json()["cancelled_by"] == "learner"
    assert response.json()["cancellation_reason"] == "Conflict at work"


async def test_feedback_returns_rating(as_user, session, learner, mentor):
    booked = await book_session(session, learner.id, mentor.id, "Pairing", at(MONDAY, "10:00"), 60, now=NOW)
    await update_status(session, booked.id, mentor.id, "confirmed", now=NOW)
    await update_status(session, booked.id, mentor.id, "completed", now=at(MONDAY, "11:00"))

    response = await as_user(learner).post(
        f"/api/v1/sessions/{booked.id}/feedback", json={"content": "Sharp", "rating": 4}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["session"]["learner_feedback"]["rating"] == 4
    assert body["rating"] == {"average_rating": 4.0, "total_ratings": 1}


async def test_feedback_on_pending_session_is_rejected(as_user, session, learner, mentor):
    booked = await book_session(session, learner.id, mentor.id, "Pairing", at(MONDAY, "10:00"), 60, now=NOW)

    response = await as_user(learner).post(
        f"/api/v1/sessions/{booked.id}/feedback", json={"content": "Early", "rating": 4}
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "SESSION_NOT_COMPLETED"


async def test_dated_availability_endpoints(as_user, learner, mentor):
    mentor_client = as_user(mentor)
    response = await mentor_client.post(
        f"/api/v1/availability/{mentor.id}/dates",
        json={"date": MONDAY.isoformat(), "time_slots": [{"start_time": "10:00", "end_time": "11:00"}]},
    )
    assert response.status_code == 200
    dates = response.json()["availability_dates"]
    assert dates[0]["time_slots"][0] == {
        "id": dates[0]["time_slots"][0]["id"],
        "start_time": "10:00",
        "end_time": "11:00",
        "is_booked": False,
        "session_id": None,
    }

    response = await as_user(learner).get(
        "/api/v1/availability/search",
        params={"date": MONDAY.isoformat(), "start_time": "10:00", "end_time": "11:00", "skills": "python,go"},
    )
    assert [m["full_name"] for m in response.json()] == ["Ada Mentor"]

    response = await as_user(learner).get(
        f"/api/v1/availability/{mentor.id}",
        params={"start_date": MONDAY.isoformat(), "end_date": (MONDAY + timedelta(days=6)).isoformat()},
    )
    assert len(response.json()["availability_dates"]) == 1


async def test_dated_availability_is_owner_only(as_user, learner, mentor):
    response = await as_user(learner).post(
        f"/api/v1/availability/{mentor.id}/dates",
        json={"date": MONDAY.isoformat(), "time_slots": [{"start_time": "10:00", "end_time": "11:00"}]},
    )
    assert response.status_code == 403


async def test_weekly_slots_endpoint(as_user, learner, mentor):
    response = await as_user(learner).get(
        f"/api/v1/mentors/{mentor.id}/slots", params={"date": MONDAY.isoformat()}
    )

    assert response.status_code == 200
    assert len(response.json()) == 8
    assert all(slot["available"] for slot in response.json())


async def test_moderation_is_admin_only(as_user, session, learner, mentor, admin):
    review = Review(mentor_id=mentor.id, reviewer_id=learner.id, rating=5)
    session.add(review)
    await session.commit()

    response = await as_user(learner).put(f"/api/v1/reviews/{review.id}/moderate", json={"action": "approve"})
    assert response.status_code == 403

    response = await as_user(admin).put(f"/api/v1/reviews/{review.id}/moderate", json={"action": "approve"})
    assert response.status_code == 200
    assert response.json()["rating"] == {"average_rating": 5.0, "total_ratings": 1}

    response = await as_user(learner).get(f"/api/v1/reviews/mentors/{mentor.id}")
    assert [r["rating"] for r in response.json()] == [5]


async def test_out_of_range_duration_is_a_validation_error(as_user, learner, mentor):
    response = await as_user(learner).post("/api/v1/sessions/", json=_booking(mentor, minutes=5))

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "VALIDATION_ERROR"
    assert detail["details"]["errors"][0]["loc"][-1] == "duration_minutes"


async def test_upcoming_replaces_status_filter(as_user, learner, mentor):
    client = as_user(learner)
    created = await client.post("/api/v1/sessions/", json=_booking(mentor))

    response = await client.get("/api/v1/sessions/", params={"status": "cancelled", "timeframe": "upcoming"})
    assert [s["id"] for s in response.json()["sessions"]] == [created.json()["id"]]

    response = await client.get("/api/v1/sessions/", params={"status": "cancelled"})
    assert response.json()["total_sessions"] == 0


async def test_replace_weekly_availability_over_http(as_user, session, mentor):
    response = await as_user(mentor).put(
        "/api/v1/mentors/me/availability",
        json={"availability": [{"day_of_week": 2, "start_time": "09:00", "end_time": "17:30"}]},
    )

    assert response.status_code == 200
    body = response.json()
    assert [(w["day_of_week"], w["start_time"], w["end_time"]) for w in body] == [(2, "09:00", "17:30")]

    result = await session.execute(
        select(AvailabilityWindow)
        .where(AvailabilityWindow.mentor_id == mentor.id)
        .execution_options(populate_existing=True)
    )
    stored = result.scalars().all()
    assert [(w.day_of_week, w.start_time, w.end_time) for w in stored] == [(2, time(9), time(17, 30))]


async def test_set_dated_availability_over_http(as_user, session, mentor):
    client = as_user(mentor)
    response = await client.post(
        f"/api/v1/availability/{mentor.id}",
        json={
            "availability_dates": [
                {"date": MONDAY.isoformat(), "time_slots": [{"start_time": "09:00", "end_time": "10:00"}]}
            ],
            "recurrence_rule": "FREQ=WEEKLY;BYDAY=MO",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["is_active"] is True
    assert body["recurrence_rule"] == "FREQ=WEEKLY;BYDAY=MO"
    assert body["availability_dates"][0]["date"] == MONDAY.isoformat()
    assert body["availability_dates"][0]["time_slots"][0]["start_time"] == "09:00"

    response = await client.post(
        f"/api/v1/availability/{mentor.id}/dates",
        json={"date": MONDAY.isoformat(), "time_slots": [{"start_time": "10:00", "end_time": "11:30"}]},
    )
    slots = response.json()["availability_dates"][0]["time_slots"]
    assert [(s["start_time"], s["end_time"]) for s in slots] == [("09:00", "10:00"), ("10:00", "11:30")]

    result = await session.execute(select(TimeSlot).order_by(TimeSlot.start_time))
    assert [(s.start_time, s.end_time) for s in result.scalars().all()] == [
        (time(9), time(10)),
        (time(10), time(11, 30)),
    ]
