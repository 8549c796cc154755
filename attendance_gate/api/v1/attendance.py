"""
Attendance endpoints: check-in/check-out, breaks, history and current status.
Marks and break transitions pass the device/network gate first; history and
status are read-only and only need authentication.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from attendance_gate.constants import HISTORY_DEFAULT_LIMIT
from attendance_gate.core.deps import get_db, get_current_user, get_device_policy
from attendance_gate.models.attendance import AttendanceType
from attendance_gate.models.employee import Employee
from attendance_gate.schemas.attendance import (
    AttendanceRecordOut,
    AttendanceStatusOut,
    BreakRequest,
    HistoryResponse,
    MarkRequest,
)
from attendance_gate.services.attendance_service import AttendanceStateMachine, clamp_limit, clamp_page
from attendance_gate.services.device_policy import (
    Allow,
    DevicePolicy,
    extract_device_id,
    resolve_client_ip,
)
from attendance_gate.utils.datetime_utils import EPOCH, now_utc, parse_datetime_lenient

router = APIRouter()
_log = logging.getLogger(__name__)


def parse_mark_type(value: Optional[str]) -> str:
    """'in' or 'out' (case-insensitive); anything else is a 400."""
    normalized = (value or "").strip().lower()
    if normalized not in (AttendanceType.IN.value, AttendanceType.OUT.value):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="type must be 'in' or 'out'",
        )
    return normalized


def int_or_none(value: Optional[str]) -> Optional[int]:
    """Lenient integer query parameter: unparseable input reads as absent."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def enforce_gate(
    request: Request,
    current_user: Employee,
    policy: DevicePolicy,
    body_device_id: Optional[str] = None,
) -> Allow:
    """
    Run the device/network policy and raise the matching error unless allowed.
    """
    decision = policy.evaluate(
        current_user,
        claimed_device_id=extract_device_id(request, {"deviceId": body_device_id}),
        source_address=resolve_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    if not decision.allowed:
        raise decision.to_error()
    return decision


@router.post("/mark", response_model=AttendanceRecordOut)
def mark_attendance(
    request: Request,
    body: Optional[MarkRequest] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
    policy: DevicePolicy = Depends(get_device_policy),
):
    """
    Record a check-in or check-out for the current user.

    403 for network denial or a device needing review (with request_id),
    400 for a missing device id or malformed type, 422 if the mark does not
    alternate with the previous one.
    """
    payload = body or MarkRequest()
    mark_type = parse_mark_type(payload.type)
    decision = enforce_gate(request, current_user, policy, payload.device_id)
    return AttendanceStateMachine(db).mark(
        current_user.id,
        mark_type,
        ip=decision.ip,
        device_id=decision.device_id,
    )


@router.post("/break/start", response_model=AttendanceRecordOut)
def start_break(
    request: Request,
    body: Optional[BreakRequest] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
    policy: DevicePolicy = Depends(get_device_policy),
):
    """Open a break on the current check-in. 422 if not checked in or already on a break."""
    enforce_gate(request, current_user, policy, (body or BreakRequest()).device_id)
    return AttendanceStateMachine(db).start_break(current_user.id)


@router.post("/break/end", response_model=AttendanceRecordOut)
def end_break(
    request: Request,
    body: Optional[BreakRequest] = None,
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
    policy: DevicePolicy = Depends(get_device_policy),
):
    """Close the open break. 422 if not currently on a break."""
    enforce_gate(request, current_user, policy, (body or BreakRequest()).device_id)
    return AttendanceStateMachine(db).end_break(current_user.id)


@router.get("/history", response_model=HistoryResponse)
def history(
    from_: Optional[str] = Query(None, alias="from", description="Window start (ISO date/datetime); invalid means unbounded"),
    to: Optional[str] = Query(None, description="Window end (ISO date/datetime); invalid means now"),
    page: Optional[str] = Query(None, description="Page number, from 1"),
    limit: Optional[str] = Query(None, description="Page size, 1 to 500"),
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Current user's records in the window, newest first."""
    start = parse_datetime_lenient(from_, EPOCH)
    end = parse_datetime_lenient(to, now_utc(), end_of_day=True)
    page_no = clamp_page(int_or_none(page))
    page_size = clamp_limit(int_or_none(limit), default=HISTORY_DEFAULT_LIMIT)
    items, total = AttendanceStateMachine(db).history(current_user.id, start, end, page_no, page_size)
    return HistoryResponse(
        items=[AttendanceRecordOut.model_validate(r) for r in items],
        total=total,
        page=page_no,
        limit=page_size,
    )


@router.get("/status", response_model=AttendanceStatusOut)
def attendance_status(
    db: Session = Depends(get_db),
    current_user: Employee = Depends(get_current_user),
):
    """Whether the current user is checked in and on a break."""
    return AttendanceStateMachine(db).status(current_user.id)
