"""
Tests for device change requests: submission, review, cancellation and cleanup
"""
from datetime import datetime, timezone

import pytest
from fastapi import status

from attendance_gate.constants import CANCELLED_NOTE, SUPERSEDED_NOTE
from attendance_gate.core.errors import AlreadyReviewed, Conflict, Forbidden, InvalidState, NotFound
from attendance_gate.core.locks import KeyedLock
from attendance_gate.models.audit_log import AuditLog
from attendance_gate.models.device_request import DeviceChangeRequest
from attendance_gate.services.device_request_service import DeviceRequestLedger
from conftest import auth_headers, create_employee


def add_pending(db, employee, device_id, requested_at=None):
    req = DeviceChangeRequest(
        employee_id=employee.id,
        new_device_id=device_id,
        status="pending",
        requested_at=requested_at or datetime.now(timezone.utc),
    )
    db.add(req)
    db.commit()
    db.refresh(req)
    return req


# --- submission ---


def test_request_change_creates_pending(client, db, test_employee):
    response = client.post(
        "/api/v1/devices/request-change",
        json={"deviceId": "phone-2", "name": "New phone", "note": "old one broke"},
        headers=auth_headers(test_employee),
    )
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["bound"] is False
    assert data["request"]["status"] == "pending"
    assert data["request"]["new_device_id"] == "phone-2"
    assert data["request"]["new_device_info"]["name"] == "New phone"
    assert data["request"]["employee_email"] == "emp@example.com"


def test_request_change_device_from_header(client, test_employee):
    response = client.post(
        "/api/v1/devices/request-change",
        headers=auth_headers(test_employee, device_id="phone-3"),
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["request"]["new_device_id"] == "phone-3"


def test_request_change_requires_device(client, test_employee):
    response = client.post("/api/v1/devices/request-change", json={}, headers=auth_headers(test_employee))
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_second_request_conflicts_with_existing_id(client, test_employee):
    headers = auth_headers(test_employee)
    first = client.post("/api/v1/devices/request-change", json={"deviceId": "a"}, headers=headers).json()
    response = client.post("/api/v1/devices/request-change", json={"deviceId": "b"}, headers=headers)
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["request_id"] == first["request"]["id"]


def test_admin_request_change_binds_immediately(client, db, admin_user):
    response = client.post(
        "/api/v1/devices/request-change",
        json={"deviceId": "admin-phone"},
        headers=auth_headers(admin_user),
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["bound"] is True
    assert response.json()["employee"]["device_id"] == "admin-phone"
    assert db.query(DeviceChangeRequest).count() == 0


def test_my_requests_newest_first(client, db, test_employee):
    old = add_pending(db, test_employee, "a", datetime(2024, 1, 1, tzinfo=timezone.utc))
    old.status = "rejected"
    db.commit()
    new = add_pending(db, test_employee, "b", datetime(2024, 2, 1, tzinfo=timezone.utc))

    response = client.get("/api/v1/devices/my-requests", headers=auth_headers(test_employee))
    assert [r["id"] for r in response.json()] == [new.id, old.id]


# --- review ---


def test_approve_binds_device_and_unblocks_marks(client, db, test_employee, admin_user):
    headers = auth_headers(test_employee, device_id="phone-2")
    denied = client.post("/api/v1/attendance/mark", json={"type": "in"}, headers=headers)
    assert denied.status_code == status.HTTP_403_FORBIDDEN
    request_id = denied.json()["request_id"]

    approved = client.post(
        f"/api/v1/devices/requests/{request_id}/approve",
        json={"note": "ok"},
        headers=auth_headers(admin_user),
    )
    assert approved.status_code == status.HTTP_200_OK
    assert approved.json()["status"] == "approved"
    assert approved.json()["reviewed_by"] == admin_user.id
    assert approved.json()["admin_note"] == "ok"

    db.refresh(test_employee)
    assert test_employee.device_id == "phone-2"
    assert test_employee.device_info["request_id"] == request_id

    assert client.post("/api/v1/attendance/mark", json={"type": "in"}, headers=headers).status_code == 200
    old_device = auth_headers(test_employee, device_id="dev-1")
    assert client.post("/api/v1/attendance/mark", json={"type": "out"}, headers=old_device).status_code == 403


def test_approve_supersedes_other_pending(db, test_employee, admin_user):
    first = add_pending(db, test_employee, "a")
    second = add_pending(db, test_employee, "b")
    other_employee = create_employee(db, "other@example.com")
    unrelated = add_pending(db, other_employee, "c")

    ledger = DeviceRequestLedger(db, locks=KeyedLock())
    ledger.approve(second.id, admin_user.id)

    db.refresh(first)
    db.refresh(unrelated)
    assert first.status == "rejected"
    assert first.admin_note == SUPERSEDED_NOTE
    assert first.reviewed_by == admin_user.id
    assert unrelated.status == "pending"
    audit = db.query(AuditLog).filter(AuditLog.action == "DEVICE_REQUEST_APPROVE").one()
    assert audit.meta_json["superseded"] == 1


def test_review_twice_is_rejected(client, db, test_employee, admin_user):
    req = add_pending(db, test_employee, "a")
    headers = auth_headers(admin_user)
    assert client.post(f"/api/v1/devices/requests/{req.id}/reject", headers=headers).status_code == 200

    again = client.post(f"/api/v1/devices/requests/{req.id}/approve", headers=headers)
    assert again.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert again.json()["detail"] == "Request already reviewed"
    db.refresh(test_employee)
    assert test_employee.device_id == "dev-1"


def test_reject_keeps_binding(db, test_employee, admin_user):
    req = add_pending(db, test_employee, "a")
    ledger = DeviceRequestLedger(db, locks=KeyedLock())
    rejected = ledger.reject(req.id, admin_user.id, "not allowed")
    assert rejected.status == "rejected"
    assert rejected.admin_note == "not allowed"
    with pytest.raises(AlreadyReviewed):
        ledger.reject(req.id, admin_user.id)
    db.refresh(test_employee)
    assert test_employee.device_id == "dev-1"


def test_review_unknown_request(client, admin_user):
    response = client.post("/api/v1/devices/requests/999/approve", headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_review_requires_admin(client, db, test_employee):
    req = add_pending(db, test_employee, "a")
    response = client.post(f"/api/v1/devices/requests/{req.id}/approve", headers=auth_headers(test_employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_admin_list_with_employee_fields(client, db, test_employee, admin_user):
    add_pending(db, test_employee, "a")
    response = client.get("/api/v1/devices/requests?status=pending", headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_200_OK
    rows = response.json()
    assert len(rows) == 1
    assert rows[0]["employee_name"] == "Test Employee"
    assert rows[0]["employee_email"] == "emp@example.com"

    bad = client.get("/api/v1/devices/requests?status=weird", headers=auth_headers(admin_user))
    assert bad.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


# --- cancel / delete ---


def test_cancel_own_pending(client, db, test_employee):
    req = add_pending(db, test_employee, "a")
    response = client.post(f"/api/v1/devices/requests/{req.id}/cancel", headers=auth_headers(test_employee))
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "cancelled"
    assert response.json()["admin_note"] == CANCELLED_NOTE

    again = client.post(f"/api/v1/devices/requests/{req.id}/cancel", headers=auth_headers(test_employee))
    assert again.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert again.json()["detail"] == "Only pending requests can be cancelled"


def test_cancel_by_other_user_forbidden(client, db, test_employee, unbound_employee, admin_user):
    req = add_pending(db, test_employee, "a")
    for caller in (unbound_employee, admin_user):
        response = client.post(f"/api/v1/devices/requests/{req.id}/cancel", headers=auth_headers(caller))
        assert response.status_code == status.HTTP_403_FORBIDDEN
    db.refresh(req)
    assert req.status == "pending"


def test_cancel_with_note(db, test_employee):
    req = add_pending(db, test_employee, "a")
    cancelled = DeviceRequestLedger(db, locks=KeyedLock()).cancel(req.id, test_employee.id, "changed my mind")
    assert cancelled.admin_note == "changed my mind"


def test_delete_by_owner_admin_and_stranger(client, db, test_employee, unbound_employee, admin_user):
    mine = add_pending(db, test_employee, "a")
    response = client.delete(f"/api/v1/devices/requests/{mine.id}", headers=auth_headers(unbound_employee))
    assert response.status_code == status.HTTP_403_FORBIDDEN

    response = client.delete(f"/api/v1/devices/requests/{mine.id}", headers=auth_headers(test_employee))
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"deleted": True, "id": mine.id}

    theirs = add_pending(db, test_employee, "b")
    response = client.delete(f"/api/v1/devices/requests/{theirs.id}", headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_200_OK
    assert db.query(DeviceChangeRequest).count() == 0

    missing = client.delete(f"/api/v1/devices/requests/{theirs.id}", headers=auth_headers(admin_user))
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_bulk_delete_by_status(client, db, test_employee, unbound_employee, admin_user):
    rejected = add_pending(db, test_employee, "a")
    rejected.status = "rejected"
    db.commit()
    add_pending(db, unbound_employee, "b")

    response = client.delete("/api/v1/devices/requests?status=rejected", headers=auth_headers(admin_user))
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"deleted": 1, "status": "rejected"}
    assert db.query(DeviceChangeRequest).count() == 1


def test_bulk_delete_validation(client, admin_user, test_employee):
    headers = auth_headers(admin_user)
    missing = client.delete("/api/v1/devices/requests", headers=headers)
    assert missing.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert missing.json()["detail"] == "status query parameter required"

    invalid = client.delete("/api/v1/devices/requests?status=archived", headers=headers)
    assert invalid.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    assert invalid.json()["detail"] == "invalid status"

    forbidden = client.delete("/api/v1/devices/requests?status=rejected", headers=auth_headers(test_employee))
    assert forbidden.status_code == status.HTTP_403_FORBIDDEN


def test_ledger_errors(db, test_employee, unbound_employee):
    ledger = DeviceRequestLedger(db, locks=KeyedLock())
    with pytest.raises(NotFound):
        ledger.get(12345)
    with pytest.raises(Forbidden):
        ledger.bulk_delete_by_status("pending", test_employee)
    with pytest.raises(InvalidState):
        ledger.list_all("nope")

    ledger.submit(test_employee, "a")
    with pytest.raises(Conflict) as exc:
        ledger.submit(test_employee, "a")
    assert "request_id" in exc.value.extra

    req = ledger.find_pending(test_employee.id)
    with pytest.raises(Forbidden):
        ledger.cancel(req.id, unbound_employee.id)
    with pytest.raises(Forbidden):
        ledger.delete(req.id, unbound_employee)


def test_create_or_get_pending_prefers_same_device(db, test_employee):
    older = add_pending(db, test_employee, "a", datetime(2024, 1, 1, tzinfo=timezone.utc))
    add_pending(db, test_employee, "b", datetime(2024, 2, 1, tzinfo=timezone.utc))
    ledger = DeviceRequestLedger(db, locks=KeyedLock())

    req, created = ledger.create_or_get_pending(test_employee.id, "a")
    assert created is False
    assert req.id == older.id
