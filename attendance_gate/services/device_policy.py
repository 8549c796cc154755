"""
Device/network policy evaluation for attendance marks.

Every mark attempt is checked in a fixed order:

1. network: the source address must parse, and must match the effective
   allowlist (per-employee entries plus company-wide entries from the settings
   store and environment) unless that list is empty or holds a wildcard token
2. device identifier: the request must carry one
3. device binding: admins auto-bind whatever device they use; employees must
   present their bound device, otherwise a pending change request is created
   (or the existing one is reused) and the mark is refused

Outcomes are returned as Decision values. Routes turn denials into the
matching AttendanceError with ``decision.to_error()``.
"""
import ipaddress
import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Union

from fastapi import Request
from sqlalchemy.orm import Session

from attendance_gate.constants import DEVICE_ID_HEADER, NETWORK_WILDCARDS
from attendance_gate.core import errors
from attendance_gate.core.locks import KeyedLock, user_locks
from attendance_gate.models.employee import Employee
from attendance_gate.services.audit_service import log_audit
from attendance_gate.services.device_request_service import DeviceRequestLedger
from attendance_gate.utils.datetime_utils import now_utc

_log = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


@dataclass(frozen=True)
class Allow:
    device_id: str
    ip: Optional[str] = None
    allowed = True

    def to_error(self) -> None:
        return None


@dataclass(frozen=True)
class DenyNetwork:
    ip: Optional[str] = None
    allowed = False

    def to_error(self) -> errors.AttendanceError:
        return errors.DenyNetwork(ip=self.ip)


@dataclass(frozen=True)
class DenyMissingDevice:
    ip: Optional[str] = None
    allowed = False

    def to_error(self) -> errors.AttendanceError:
        return errors.DenyMissingDevice()


@dataclass(frozen=True)
class ReviewRequired:
    request_id: int
    created: bool
    reason: str
    ip: Optional[str] = None
    allowed = False

    def to_error(self) -> errors.AttendanceError:
        return errors.ReviewRequired(self.reason, request_id=self.request_id)


Decision = Union[Allow, DenyNetwork, DenyMissingDevice, ReviewRequired]

# ReviewRequired reasons
UNREGISTERED_MESSAGE = "Device is not registered. Device change request pending admin approval."
MISMATCH_MESSAGE = "Device mismatch. Device change request pending admin approval."
PENDING_MESSAGE = "A device-change request is already pending. Please wait for admin approval."


# --- request inputs ---


def resolve_client_ip(request: Request) -> Optional[str]:
    """Client IP: X-Forwarded-For (first hop) when behind proxy, else request.client.host."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client:
        return request.client.host
    return None


def extract_device_id(request: Request, body: Optional[dict] = None) -> Optional[str]:
    """Device identifier from the x-device-id header, then body ``deviceId``, then query ``deviceId``."""
    candidates = [
        request.headers.get(DEVICE_ID_HEADER),
        (body or {}).get("deviceId"),
        request.query_params.get("deviceId"),
    ]
    for value in candidates:
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


# --- network matching ---


def parse_address(value: Optional[str]) -> Optional[IPAddress]:
    """Parse a client address; IPv4-mapped IPv6 (::ffff:a.b.c.d) is reduced to IPv4."""
    if not value:
        return None
    try:
        addr = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


def entry_matches(addr: IPAddress, entry: str) -> bool:
    """True if ``addr`` equals a literal entry or falls inside a CIDR entry. Malformed entries never match."""
    if "/" in entry:
        try:
            network = ipaddress.ip_network(entry, strict=False)
        except ValueError:
            _log.debug("Skipping malformed allowlist entry %r", entry)
            return False
        return addr.version == network.version and addr in network
    literal = parse_address(entry)
    if literal is None:
        _log.debug("Skipping malformed allowlist entry %r", entry)
        return False
    return addr == literal


def network_allows(address: Optional[str], allowlist: Iterable[str]) -> bool:
    """
    Check an address against an allowlist.

    An unparseable or missing address is always denied. Otherwise an empty
    allowlist, or one containing a wildcard token, allows everything.
    """
    addr = parse_address(address)
    if addr is None:
        return False
    entries = [str(e).strip() for e in allowlist if e is not None and str(e).strip()]
    if not entries:
        return True
    if any(e in NETWORK_WILDCARDS for e in entries):
        return True
    return any(entry_matches(addr, e) for e in entries)


# --- evaluator ---


class DevicePolicy:
    """
    Evaluates whether an employee may mark attendance from a given device and address.

    Collaborators are passed in so tests can substitute them:
        company_ips: loader for the company-wide allowlist held in the settings store
        ledger: device change request ledger
        env_allowlist: company-wide entries from configuration
        locks: per-employee lock registry
    """

    def __init__(
        self,
        db: Session,
        company_ips: Callable[[Session], List[str]],
        ledger: Optional[DeviceRequestLedger] = None,
        env_allowlist: Optional[List[str]] = None,
        locks: KeyedLock = user_locks,
    ):
        self.db = db
        self._company_ips = company_ips
        self._locks = locks
        self._ledger = ledger or DeviceRequestLedger(db, locks=locks)
        self._env_allowlist = list(env_allowlist or [])

    def effective_allowlist(self, principal: Employee) -> List[str]:
        """Union of per-employee, settings-store and environment entries, in that order, without duplicates."""
        merged: List[str] = []
        for source in (principal.allowed_ips or [], self._company_ips(self.db), self._env_allowlist):
            for entry in source:
                entry = str(entry).strip()
                if entry and entry not in merged:
                    merged.append(entry)
        return merged

    def evaluate(
        self,
        principal: Employee,
        claimed_device_id: Optional[str],
        source_address: Optional[str],
        user_agent: Optional[str] = None,
    ) -> Decision:
        allowlist = self.effective_allowlist(principal)
        if not allowlist:
            _log.debug("No network allowlist configured; any valid address passes for employee_id=%s", principal.id)
        if not network_allows(source_address, allowlist):
            _log.info("Network denied: employee_id=%s ip=%s", principal.id, source_address)
            return DenyNetwork(ip=source_address)

        if not claimed_device_id:
            return DenyMissingDevice(ip=source_address)

        info = {"ua": user_agent, "ip": source_address}
        with self._locks.hold(principal.id):
            self.db.refresh(principal, with_for_update=True)

            if principal.is_admin:
                if principal.device_id != claimed_device_id:
                    previous = principal.device_id
                    principal.bind_device(claimed_device_id, {**info, "name": "admin device"}, now_utc())
                    log_audit(
                        db=self.db,
                        actor_id=principal.id,
                        action="DEVICE_AUTO_BIND",
                        entity_type="employees",
                        entity_id=principal.id,
                        meta={"device_id": claimed_device_id, "previous_device_id": previous},
                        commit=False,
                    )
                    self.db.commit()
                    _log.info("Admin device auto-bound: employee_id=%s", principal.id)
                return Allow(device_id=claimed_device_id, ip=source_address)

            if principal.device_id == claimed_device_id:
                _log.debug("Device allowed: employee_id=%s", principal.id)
                return Allow(device_id=claimed_device_id, ip=source_address)

            unbound = principal.device_id is None
            req, created = self._ledger.create_or_get_pending(principal.id, claimed_device_id, info)

        if not created:
            reason = PENDING_MESSAGE
        elif unbound:
            reason = UNREGISTERED_MESSAGE
        else:
            reason = MISMATCH_MESSAGE
        _log.info(
            "Device review required: employee_id=%s request_id=%s created=%s",
            principal.id, req.id, created,
        )
        return ReviewRequired(request_id=req.id, created=created, reason=reason, ip=source_address)
