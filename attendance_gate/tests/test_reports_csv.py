"""
Tests for company reports and CSV exports
"""
import csv
import io
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import status

from attendance_gate.services import report_service
from attendance_gate.utils.datetime_utils import EPOCH
from conftest import add_records, auth_headers, create_employee


@pytest.fixture
def two_employees_with_records(db, test_employee):
    other = create_employee(db, "bob@example.com", name="Bob", device_id="bob-phone")
    base = datetime(2024, 5, 13, 9, tzinfo=timezone.utc)
    add_records(db, test_employee, [base, base + timedelta(hours=8)])
    add_records(db, other, [base + timedelta(hours=1), base + timedelta(days=40)])
    return test_employee, other


def parse_csv(text):
    return list(csv.reader(io.StringIO(text)))


def test_export_all(client, admin_user, two_employees_with_records):
    response = client.get("/api/v1/admin/reports/export", headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_200_OK
    assert response.headers["content-type"].startswith("text/csv")
    assert 'filename="attendance_report.csv"' in response.headers["content-disposition"]

    rows = parse_csv(response.text)
    assert rows[0] == ["User", "Email", "Type", "Timestamp", "IP", "DeviceId"]
    assert len(rows) == 5
    assert rows[1][:3] == ["Test Employee", "emp@example.com", "in"]
    assert rows[2][:3] == ["Bob", "bob@example.com", "in"]
    assert rows[1][4] == "10.0.0.1"
    assert rows[1][5] == "dev-1"


def test_export_window(client, admin_user, two_employees_with_records):
    response = client.get(
        "/api/v1/admin/reports/export?from=2024-06-01&to=2024-12-31",
        headers=auth_headers(admin_user),
    )
    rows = parse_csv(response.text)
    assert len(rows) == 2
    assert rows[1][0] == "Bob"
    assert rows[1][2] == "out"


def test_export_header_only_when_empty(client, admin_user):
    response = client.get("/api/v1/admin/reports/export", headers=auth_headers(admin_user))
    assert parse_csv(response.text) == [["User", "Email", "Type", "Timestamp", "IP", "DeviceId"]]


def test_export_one_employee(client, admin_user, two_employees_with_records):
    employee, _ = two_employees_with_records
    response = client.get(
        f"/api/v1/admin/employees/{employee.id}/attendance/export",
        headers=auth_headers(admin_user),
    )
    assert response.status_code == status.HTTP_200_OK
    assert f'attendance_{employee.id}.csv' in response.headers["content-disposition"]
    rows = parse_csv(response.text)
    assert len(rows) == 3
    assert {r[1] for r in rows[1:]} == {"emp@example.com"}


def test_export_missing_values_are_blank(client, db, admin_user, test_employee):
    client.post(
        f"/api/v1/admin/employees/{test_employee.id}/attendance",
        json={"type": "in"},
        headers=auth_headers(admin_user),
    )
    rows = parse_csv(client.get("/api/v1/admin/reports/export", headers=auth_headers(admin_user)).text)
    # Admin marks carry no device id
    assert rows[1][5] == ""


def test_summary_per_employee(client, admin_user, two_employees_with_records):
    response = client.get("/api/v1/admin/reports", headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_200_OK
    items = response.json()["items"]
    assert [(i["name"], i["ins"], i["outs"], i["period"]) for i in items] == [
        ("Bob", 1, 1, None),
        ("Test Employee", 1, 1, None),
    ]


def test_summary_grouped_by_month(client, admin_user, two_employees_with_records):
    response = client.get("/api/v1/admin/reports?groupBy=month", headers=auth_headers(admin_user))
    items = response.json()["items"]
    assert [(i["period"], i["name"]) for i in items] == [
        ("2024-06", "Bob"),
        ("2024-05", "Bob"),
        ("2024-05", "Test Employee"),
    ]


def test_summary_bad_group_by(client, admin_user):
    response = client.get("/api/v1/admin/reports?groupBy=hour", headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_export_rows_service(db, two_employees_with_records):
    employee, other = two_employees_with_records
    rows = report_service.export_rows(db, EPOCH, datetime(2030, 1, 1, tzinfo=timezone.utc), employee_id=other.id)
    assert [r["Type"] for r in rows] == ["in", "out"]
    assert all(r["Timestamp"].endswith("Z") for r in rows)
