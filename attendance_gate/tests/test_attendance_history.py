"""
Tests for attendance history: window parsing, ordering and pagination
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import status

from attendance_gate.models.attendance import AttendanceRecord
from attendance_gate.services.attendance_service import AttendanceStateMachine, clamp_limit, clamp_page
from attendance_gate.utils.datetime_utils import EPOCH, parse_datetime_lenient
from conftest import auth_headers


@pytest.fixture
def week_of_records(db, test_employee):
    """Alternating IN/OUT records, one per day from 2024-03-01 to 2024-03-07"""
    start = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    for i in range(7):
        db.add(AttendanceRecord(
            employee_id=test_employee.id,
            seq=i + 1,
            type="in" if i % 2 == 0 else "out",
            timestamp=start + timedelta(days=i),
            device_id="dev-1",
            status="recorded",
            breaks=[],
            on_break=False,
        ))
    db.commit()
    return test_employee


def test_history_newest_first(client, week_of_records):
    response = client.get("/api/v1/attendance/history", headers=auth_headers(week_of_records))
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["total"] == 7
    assert [item["seq"] for item in data["items"]] == [7, 6, 5, 4, 3, 2, 1]
    assert data["page"] == 1
    assert data["limit"] == 50


def test_history_window_inclusive_dates(client, week_of_records):
    """A date-only upper bound covers the whole day"""
    response = client.get(
        "/api/v1/attendance/history?from=2024-03-02&to=2024-03-04",
        headers=auth_headers(week_of_records),
    )
    data = response.json()
    assert data["total"] == 3
    assert [item["seq"] for item in data["items"]] == [4, 3, 2]


def test_history_invalid_dates_fall_back(client, week_of_records):
    """Invalid from/to read as unbounded start and now"""
    response = client.get(
        "/api/v1/attendance/history?from=not-a-date&to=also-bad",
        headers=auth_headers(week_of_records),
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["total"] == 7


def test_history_pagination(client, week_of_records):
    response = client.get("/api/v1/attendance/history?page=2&limit=3", headers=auth_headers(week_of_records))
    data = response.json()
    assert data["total"] == 7
    assert [item["seq"] for item in data["items"]] == [4, 3, 2]


def test_history_clamps_page_and_limit(client, week_of_records):
    response = client.get("/api/v1/attendance/history?page=0&limit=9999", headers=auth_headers(week_of_records))
    data = response.json()
    assert data["page"] == 1
    assert data["limit"] == 500
    assert len(data["items"]) == 7


def test_history_garbage_pagination_uses_defaults(client, week_of_records):
    response = client.get("/api/v1/attendance/history?page=x&limit=y", headers=auth_headers(week_of_records))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["page"] == 1
    assert response.json()["limit"] == 50


def test_history_only_own_records(client, db, week_of_records, unbound_employee):
    response = client.get("/api/v1/attendance/history", headers=auth_headers(unbound_employee))
    assert response.json()["total"] == 0


def test_service_history_window(db, week_of_records):
    machine = AttendanceStateMachine(db)
    items, total = machine.history(
        week_of_records.id,
        start=datetime(2024, 3, 6, tzinfo=timezone.utc),
    )
    assert total == 2
    assert [r.seq for r in items] == [7, 6]


@pytest.mark.parametrize("page,expected", [(None, 1), (-3, 1), (0, 1), (4, 4)])
def test_clamp_page(page, expected):
    assert clamp_page(page) == expected


@pytest.mark.parametrize("limit,expected", [(None, 50), (0, 1), (10, 10), (501, 500)])
def test_clamp_limit(limit, expected):
    assert clamp_limit(limit) == expected


def test_parse_datetime_lenient():
    fallback = datetime(2000, 1, 1, tzinfo=timezone.utc)
    assert parse_datetime_lenient(None, fallback) == fallback
    assert parse_datetime_lenient("garbage", fallback) == fallback
    assert parse_datetime_lenient("2024-03-02T10:00:00Z", EPOCH) == datetime(2024, 3, 2, 10, tzinfo=timezone.utc)
    end = parse_datetime_lenient("2024-03-02", EPOCH, end_of_day=True)
    assert end.date().isoformat() == "2024-03-02"
    assert end.hour == 23
