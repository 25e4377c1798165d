"""Integration tests for schedule views, check-in and check-out endpoints."""

import uuid
from datetime import timedelta

import pytest
from libs.common.datetime_utils import utc_now
from services.schedule_service.models import ScheduleStatus
from tests.factories import AttendanceFactory, BookingFactory, ScheduleFactory, insert


async def _open_class(db, *, check_in_enabled=True):
    """Class starting in five minutes with one confirmed member."""
    schedule = await insert(
        db,
        ScheduleFactory.create(
            start_time=utc_now() + timedelta(minutes=5),
            current_bookings=1,
            check_in_enabled=check_in_enabled,
        ),
    )
    booking = await insert(db, BookingFactory.create(schedule_id=schedule.id))
    return schedule, booking


@pytest.mark.asyncio
@pytest.mark.integration
async def test_get_schedule(schedule_client, db_session):
    schedule = await insert(db_session, ScheduleFactory.create(max_capacity=12))

    response = await schedule_client.get(f"/schedules/{schedule.id}")
    assert response.status_code == 200
    data = response.json()
    assert data["id"] == str(schedule.id)
    assert data["status"] == "scheduled"
    assert data["max_capacity"] == 12
    assert data["current_bookings"] == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_get_unknown_schedule(schedule_client):
    response = await schedule_client.get(f"/schedules/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["code"] == "schedule_not_found"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_member_cannot_open_check_in(schedule_client, db_session):
    schedule, _ = await _open_class(db_session, check_in_enabled=False)

    response = await schedule_client.post(f"/schedules/{schedule.id}/check-in/enable")
    assert response.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_admin_opens_and_closes_check_in(admin_client, db_session):
    schedule, _ = await _open_class(db_session, check_in_enabled=False)

    opened = await admin_client.post(f"/schedules/{schedule.id}/check-in/enable")
    assert opened.status_code == 200, opened.text
    assert opened.json()["check_in_enabled"] is True
    assert opened.json()["check_in_opened_at"] is not None

    closed = await admin_client.post(f"/schedules/{schedule.id}/check-in/disable")
    assert closed.status_code == 200
    assert closed.json()["check_in_enabled"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_open_check_in_too_early(admin_client, db_session):
    schedule = await insert(db_session, ScheduleFactory.create())

    response = await admin_client.post(f"/schedules/{schedule.id}/check-in/enable")
    assert response.status_code == 409
    assert response.json()["code"] == "schedule_not_open"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_check_in_then_check_out(schedule_client, db_session):
    schedule, booking = await _open_class(db_session)
    body = {"member_id": str(booking.member_id)}

    checked_in = await schedule_client.post(
        f"/schedules/{schedule.id}/check-in", json=body
    )
    assert checked_in.status_code == 200, checked_in.text
    assert checked_in.json()["checked_out_at"] is None
    assert checked_in.json()["booking_id"] == str(booking.id)

    status = await schedule_client.get(
        f"/schedules/{schedule.id}/check-in-status",
        params={"member_id": str(booking.member_id)},
    )
    assert status.status_code == 200
    view = status.json()
    assert view["can_check_in"] is True
    assert view["currently_present"] == 1
    assert view["attendance"]["id"] == checked_in.json()["id"]
    assert view["booking"]["id"] == str(booking.id)

    checked_out = await schedule_client.post(
        f"/schedules/{schedule.id}/check-out", json=body
    )
    assert checked_out.status_code == 200, checked_out.text
    assert checked_out.json()["checked_out_at"] is not None
    assert checked_out.json()["check_out_method"] == "self"

    again = await schedule_client.post(f"/schedules/{schedule.id}/check-out", json=body)
    assert again.status_code == 409
    assert again.json()["code"] == "no_open_session"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_client_cannot_claim_auto_method(schedule_client, db_session):
    schedule, booking = await _open_class(db_session)
    body = {"member_id": str(booking.member_id)}

    auto_in = await schedule_client.post(
        f"/schedules/{schedule.id}/check-in", json={**body, "method": "auto"}
    )
    assert auto_in.status_code == 422

    checked_in = await schedule_client.post(
        f"/schedules/{schedule.id}/check-in", json=body
    )
    assert checked_in.status_code == 200, checked_in.text

    auto_out = await schedule_client.post(
        f"/schedules/{schedule.id}/check-out", json={**body, "method": "auto"}
    )
    assert auto_out.status_code == 422

    status = await schedule_client.get(f"/schedules/{schedule.id}/check-in-status")
    assert status.json()["currently_present"] == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_check_in_without_booking(schedule_client, db_session):
    schedule, _ = await _open_class(db_session)

    response = await schedule_client.post(
        f"/schedules/{schedule.id}/check-in", json={"member_id": str(uuid.uuid4())}
    )
    assert response.status_code == 403
    assert response.json()["code"] == "not_eligible"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_trainer_checks_everyone_out(admin_client, db_session):
    schedule = await insert(
        db_session,
        ScheduleFactory.create(
            start_time=utc_now() - timedelta(minutes=30),
            status=ScheduleStatus.IN_PROGRESS,
            check_in_enabled=True,
        ),
    )
    first = AttendanceFactory.create(
        schedule_id=schedule.id, checked_in_at=schedule.start_time
    )
    second = AttendanceFactory.create(
        schedule_id=schedule.id, checked_in_at=schedule.start_time
    )
    await insert(db_session, first, second)

    response = await admin_client.post(f"/schedules/{schedule.id}/check-out-all")
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["checked_out_count"] == 2
    assert sorted(data["member_ids"]) == sorted(
        [str(first.member_id), str(second.member_id)]
    )


@pytest.mark.asyncio
@pytest.mark.integration
async def test_request_id_echoed(schedule_client):
    response = await schedule_client.get("/health", headers={"X-Request-ID": "abc123"})
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "abc123"
    assert "X-Response-Time-Ms" in response.headers
