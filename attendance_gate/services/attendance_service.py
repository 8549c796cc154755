"""
Attendance service - IN/OUT state machine, breaks and history
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from attendance_gate.constants import HISTORY_DEFAULT_LIMIT, HISTORY_MAX_LIMIT
from attendance_gate.core.errors import (
    AlreadyOnBreak,
    NotCheckedIn,
    NotOnBreak,
    SequenceViolation,
)
from attendance_gate.core.locks import KeyedLock, user_locks
from attendance_gate.models.attendance import AttendanceRecord, AttendanceStatus, AttendanceType
from attendance_gate.services.audit_service import log_audit
from attendance_gate.utils.datetime_utils import EPOCH, iso_8601_utc, now_utc

_log = logging.getLogger(__name__)


def clamp_page(page: Optional[int]) -> int:
    if page is None or page < 1:
        return 1
    return page


def clamp_limit(limit: Optional[int], default: int = HISTORY_DEFAULT_LIMIT) -> int:
    if limit is None:
        return default
    return max(1, min(limit, HISTORY_MAX_LIMIT))


class AttendanceStateMachine:
    """
    Per-employee attendance sequence.

    Marks strictly alternate IN, OUT, IN, ... starting with IN. Each record
    carries a per-employee ``seq``; a mark is stored as seq = last + 1 under the
    employee's lock, and the (employee_id, seq) unique constraint turns a lost
    race between processes into a SequenceViolation instead of a duplicate.
    """

    def __init__(self, db: Session, locks: KeyedLock = user_locks):
        self.db = db
        self._locks = locks

    def last_record(self, employee_id: int) -> Optional[AttendanceRecord]:
        return (
            self.db.query(AttendanceRecord)
            .filter(AttendanceRecord.employee_id == employee_id)
            .order_by(AttendanceRecord.seq.desc())
            .populate_existing()
            .first()
        )

    def mark(
        self,
        employee_id: int,
        mark_type: str,
        ip: Optional[str] = None,
        device_id: Optional[str] = None,
        note: Optional[str] = None,
    ) -> AttendanceRecord:
        """
        Append an IN or OUT record with a server timestamp.

        Marking OUT while on a break closes the open break first.

        Raises:
            SequenceViolation: the mark repeats the previous type or lost a
                concurrent race for the same position
        """
        mark_type = AttendanceType(mark_type)
        with self._locks.hold(employee_id):
            last = self.last_record(employee_id)
            if last is not None and last.type == mark_type.value:
                if mark_type == AttendanceType.IN:
                    raise SequenceViolation("You have already marked IN. Please mark OUT before marking IN again.")
                raise SequenceViolation("You have already marked OUT. Please mark IN before marking OUT again.")

            now = now_utc()
            if mark_type == AttendanceType.OUT and last is not None and last.on_break:
                self._close_break(last, now)

            record = AttendanceRecord(
                employee_id=employee_id,
                seq=(last.seq + 1) if last is not None else 1,
                type=mark_type.value,
                timestamp=now,
                ip=ip,
                device_id=device_id,
                status=AttendanceStatus.RECORDED.value,
                note=note,
                breaks=[],
                on_break=False,
            )
            self.db.add(record)
            try:
                self.db.flush()
                log_audit(
                    db=self.db,
                    actor_id=employee_id,
                    action="ATTENDANCE_MARK",
                    entity_type="attendance_records",
                    entity_id=record.id,
                    meta={"type": record.type, "ip": ip, "device_id": device_id, "note": note},
                    commit=False,
                )
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                _log.warning("Attendance sequence collision: employee_id=%s seq=%s", employee_id, record.seq)
                raise SequenceViolation("Another attendance mark was recorded at the same time. Please retry.")
        self.db.refresh(record)
        _log.info("Attendance %s recorded: employee_id=%s seq=%s", record.type, employee_id, record.seq)
        return record

    def start_break(self, employee_id: int) -> AttendanceRecord:
        """
        Open a break on the current IN record.

        Raises:
            NotCheckedIn: no records, or the latest record is OUT
            AlreadyOnBreak: a break is already open
        """
        with self._locks.hold(employee_id):
            last = self.last_record(employee_id)
            if last is None or last.type != AttendanceType.IN.value:
                raise NotCheckedIn()
            if last.on_break:
                raise AlreadyOnBreak()
            # JSON columns only persist on reassignment
            last.breaks = list(last.breaks or []) + [{"start": iso_8601_utc(now_utc()), "end": None}]
            last.on_break = True
            self.db.commit()
        self.db.refresh(last)
        return last

    def end_break(self, employee_id: int) -> AttendanceRecord:
        """
        Close the open break on the current IN record.

        Raises:
            NotOnBreak: not checked in, no open break, or the last break is already closed
        """
        with self._locks.hold(employee_id):
            last = self.last_record(employee_id)
            if last is None or last.type != AttendanceType.IN.value or not last.on_break:
                raise NotOnBreak()
            breaks = list(last.breaks or [])
            if not breaks or breaks[-1].get("end"):
                raise NotOnBreak("No active break found.")
            self._close_break(last, now_utc())
            self.db.commit()
        self.db.refresh(last)
        return last

    @staticmethod
    def _close_break(record: AttendanceRecord, when: datetime) -> None:
        breaks = list(record.breaks or [])
        if breaks and not breaks[-1].get("end"):
            breaks[-1] = {**breaks[-1], "end": iso_8601_utc(when)}
        record.breaks = breaks
        record.on_break = False

    def history(
        self,
        employee_id: int,
        start: datetime = EPOCH,
        end: Optional[datetime] = None,
        page: Optional[int] = 1,
        limit: Optional[int] = HISTORY_DEFAULT_LIMIT,
    ) -> Tuple[List[AttendanceRecord], int]:
        """Records with start <= timestamp <= end, newest first, and the unpaginated total."""
        end = end or now_utc()
        page = clamp_page(page)
        limit = clamp_limit(limit)
        query = self.db.query(AttendanceRecord).filter(
            AttendanceRecord.employee_id == employee_id,
            AttendanceRecord.timestamp >= start,
            AttendanceRecord.timestamp <= end,
        )
        total = query.count()
        items = (
            query.order_by(AttendanceRecord.timestamp.desc(), AttendanceRecord.seq.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def status(self, employee_id: int) -> Dict[str, Any]:
        """Current IN/OUT and break sub-state, derived from the latest record."""
        last = self.last_record(employee_id)
        checked_in = last is not None and last.type == AttendanceType.IN.value
        return {
            "checked_in": checked_in,
            "on_break": bool(checked_in and last.on_break),
            "last_record": last,
        }
