from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, Union

from flask import has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from school_audit import new_session
from school_audit.constants import audit as C
from school_audit.errors import AuditError, StorageError, ValidationError
from school_audit.models.audit import AuditEntry
from school_audit.services.context import SYSTEM, CallerContext, current_caller
from school_audit.services.snapshots import (
    FieldDiff, FieldDiffSnapshot, Snapshot, as_snapshot, encode_snapshot, snapshot_kind,
)

logger = logging.getLogger(__name__)

SnapshotInput = Union[Snapshot, Mapping[str, Any], None]


def utcnow() -> datetime:
    """Server clock as naive UTC, the form stored in ``changed_at``."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class AuditEvent:
    category: str
    record_id: Any
    action: str
    description: Optional[str] = None
    old_value: SnapshotInput = None
    new_value: SnapshotInput = None
    affected_user_name: Optional[str] = None
    actor_id: Any = None
    actor_role: Optional[str] = None
    ip_address: Optional[str] = None


class AuditSink(Protocol):
    """What business handlers get injected. ``record`` never raises and returns nothing."""

    def record(self, event: AuditEvent) -> None:
        ...


def resolve_ip_address(explicit: Optional[str] = None) -> str:
    if explicit:
        return explicit[:64]
    if not has_request_context():
        return C.UNKNOWN_IP
    forwarded = request.headers.get('X-Forwarded-For', '')
    ip = forwarded.split(',')[0].strip() if forwarded else request.remote_addr
    return (ip or C.UNKNOWN_IP)[:64]


def _require_int(value: Any, name: str) -> int:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f'{name} is required', field=name)
    if isinstance(value, bool):
        raise ValidationError(f'{name} must be an integer', field=name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer', field=name)


def _require_text(value: Any, name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f'{name} is required', field=name)
    text = str(value).strip()
    if len(text) > 64:
        raise ValidationError(f'{name} must be at most 64 characters', field=name)
    return text


class AuditWriter:
    """Appends audit entries on behalf of one caller.

    ``write`` is the strict path used by the ingestion endpoint: it raises
    ValidationError / StorageError. ``append``, ``record`` and the scenario helpers
    are the best-effort path used by business code: failures are logged and
    swallowed so the action being documented is never aborted by its audit row.

    The writer commits its own row through a session of its own, so the caller's
    pending business changes are neither committed nor rolled back by it.
    """

    def __init__(self, caller: CallerContext = SYSTEM,
                 session_factory: Optional[Callable[[], Any]] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.caller = caller
        self._session_factory = session_factory
        self._clock = clock

    def _session(self):
        return self._session_factory() if self._session_factory else new_session()

    def build_entry(self, event: AuditEvent) -> AuditEntry:
        actor_id = event.actor_id if event.actor_id is not None else self.caller.actor_id
        actor_role = event.actor_role if event.actor_role is not None else self.caller.role
        old_value, new_value = as_snapshot(event.old_value), as_snapshot(event.new_value)
        return AuditEntry(
            category=_require_text(event.category, 'category'),
            record_id=_require_int(event.record_id, 'recordId'),
            action=_require_text(event.action, 'action'),
            description=event.description,
            old_value=encode_snapshot(old_value),
            new_value=encode_snapshot(new_value),
            old_value_kind=snapshot_kind(old_value),
            new_value_kind=snapshot_kind(new_value),
            changed_by=_require_int(actor_id, 'actorId'),
            user_role=actor_role,
            affected_user_name=event.affected_user_name,
            ip_address=resolve_ip_address(event.ip_address),
            changed_at=self._clock(),
        )

    def write(self, event: AuditEvent) -> AuditEntry:
        entry = self.build_entry(event)
        session = self._session()
        try:
            session.add(entry)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f'Failed to persist audit entry: {e.__class__.__name__}') from e
        finally:
            session.close()
        return entry

    def append(self, category: str, record_id: Any, action: str, description: Optional[str] = None,
               old_value: SnapshotInput = None, new_value: SnapshotInput = None,
               affected_user_name: Optional[str] = None, actor_id: Any = None,
               actor_role: Optional[str] = None, ip_address: Optional[str] = None) -> Optional[int]:
        """Best-effort append. Returns the new entry id, or None when the write failed."""
        event = AuditEvent(category, record_id, action, description, old_value, new_value,
                           affected_user_name, actor_id, actor_role, ip_address)
        try:
            return self.write(event).id
        except ValidationError as e:
            logger.warning('Audit entry rejected (%s %s:%s): %s', action, category, record_id, e)
        except AuditError:
            logger.exception('Audit log error (%s %s:%s)', action, category, record_id)
        except Exception:
            logger.exception('Unexpected audit log error (%s %s:%s)', action, category, record_id)
        return None

    def record(self, event: AuditEvent) -> None:
        self.append(event.category, event.record_id, event.action, event.description,
                    event.old_value, event.new_value, event.affected_user_name,
                    event.actor_id, event.actor_role, event.ip_address)

    # --- User accounts ---

    def user_created(self, user_id, username: str, full_name: str, role: str, user_data: Mapping[str, Any]):
        return self.append(C.CAT_USER, user_id, C.ACT_INSERT,
                           f'Created new user account: {username} with role {role}',
                           None, user_data, full_name)

    def user_updated(self, user_id, username: str, full_name: str, old_data: Mapping[str, Any], new_data: Mapping[str, Any]):
        return self.append(C.CAT_USER, user_id, C.ACT_UPDATE, f'Updated user account: {username}',
                           old_data, new_data, full_name)

    def user_status_changed(self, user_id, username: str, full_name: str, is_active: bool):
        status_text = 'activated' if is_active else 'deactivated'
        return self.append(C.CAT_USER, user_id, C.ACT_STATUS_CHANGE,
                           f'User account {status_text}: {username}',
                           {'IsActive': not is_active}, {'IsActive': is_active}, full_name)

    def password_reset(self, user_id, username: str, full_name: str):
        return self.append(C.CAT_USER, user_id, C.ACT_PASSWORD_RESET,
                           f'Password reset for user: {username}', None, None, full_name)

    # --- Employees ---

    def employee_created(self, employee_id, full_name: str, position: str, employee_data: Mapping[str, Any]):
        return self.append(C.CAT_EMPLOYEE, employee_id, C.ACT_INSERT,
                           f'Added new employee: {full_name} as {position}',
                           None, employee_data, full_name)

    def employee_updated(self, employee_id, full_name: str, old_data: Mapping[str, Any], new_data: Mapping[str, Any]):
        return self.append(C.CAT_EMPLOYEE, employee_id, C.ACT_UPDATE,
                           f'Updated employee information: {full_name}', old_data, new_data, full_name)

    def employee_status_changed(self, employee_id, full_name: str, is_active: bool):
        status_text = 'activated' if is_active else 'deactivated'
        return self.append(C.CAT_EMPLOYEE, employee_id, C.ACT_STATUS_CHANGE,
                           f'Employee {status_text}: {full_name}',
                           {'IsActive': not is_active}, {'IsActive': is_active}, full_name)

    # --- Enrollment, sections, students ---

    def enrollment_created(self, enrollment_id, student_name: str, grade_level: str, enrollment_data: Mapping[str, Any]):
        return self.append(C.CAT_ENROLLMENT, enrollment_id, C.ACT_INSERT,
                           f'Enrolled student: {student_name} in {grade_level}',
                           None, enrollment_data, student_name)

    def enrollment_status_changed(self, enrollment_id, student_name: str, old_status: str, new_status: str):
        return self.append(C.CAT_ENROLLMENT, enrollment_id, C.ACT_UPDATE,
                           f'Enrollment status changed from {old_status} to {new_status} for: {student_name}',
                           {'Status': old_status}, {'Status': new_status}, student_name)

    def section_created(self, section_id, section_name: str, grade_level: str, section_data: Mapping[str, Any]):
        return self.append(C.CAT_SECTION, section_id, C.ACT_INSERT,
                           f'Created new section: {section_name} for {grade_level}', None, section_data)

    def section_assignment_created(self, assignment_id, student_name: str, section_name: str):
        return self.append(C.CAT_SECTION_ASSIGNMENT, assignment_id, C.ACT_INSERT,
                           f'Assigned student {student_name} to section {section_name}',
                           None, {'StudentName': student_name, 'SectionName': section_name}, student_name)

    def student_updated(self, student_id, student_name: str, old_data: Mapping[str, Any], new_data: Mapping[str, Any]):
        return self.append(C.CAT_STUDENT, student_id, C.ACT_UPDATE,
                           f'Updated student information: {student_name}', old_data, new_data, student_name)

    # --- Strands ---

    def strand_created(self, strand_id, strand_code: str, strand_data: Mapping[str, Any]):
        return self.append(C.CAT_STRAND, strand_id, C.ACT_INSERT, f'Strand created: {strand_code}',
                           None, strand_data)

    def strand_updated(self, strand_id, strand_code: str, old_data: Mapping[str, Any], new_data: Mapping[str, Any]):
        return self.append(C.CAT_STRAND, strand_id, C.ACT_UPDATE, f'Strand updated: {strand_code}',
                           old_data, new_data)

    def strand_status_changed(self, strand_id, strand_code: str, is_active: bool):
        status_text = 'activated' if is_active else 'deactivated'
        return self.append(C.CAT_STRAND, strand_id, C.ACT_STATUS_CHANGE, f'Strand {status_text}: {strand_code}',
                           {'IsActive': not is_active}, {'IsActive': is_active})

    def strand_deleted(self, strand_id, strand_code: Optional[str], strand_data: Optional[Mapping[str, Any]] = None):
        return self.append(C.CAT_STRAND, strand_id, C.ACT_DELETE, f"Strand deleted: {strand_code or 'Unknown'}",
                           strand_data, None)

    # --- Revision request workflow ---
    # Each step is its own entry sharing the request id; the request's current state
    # lives on the revision request itself, never here.

    def revision_requested(self, request_id, student_id, changed_fields: Iterable[Union[FieldDiff, Mapping[str, Any]]],
                           student_name: Optional[str] = None):
        return self.append(C.CAT_REVISION_REQUEST, request_id, C.ACT_REVISION_REQUEST,
                           f'Revision request created for Student ID: {student_id}',
                           None, FieldDiffSnapshot.of(changed_fields), student_name)

    def revision_approved(self, request_id, student_name: Optional[str] = None):
        return self.append(C.CAT_REVISION_REQUEST, request_id, C.ACT_REVISION_APPROVED,
                           'Revision request approved', {'Status': 'Pending'}, {'Status': 'Approved'}, student_name)

    def revision_rejected(self, request_id, review_notes: str, student_name: Optional[str] = None):
        return self.append(C.CAT_REVISION_REQUEST, request_id, C.ACT_REVISION_REJECTED,
                           f'Revision request rejected: {review_notes}',
                           {'Status': 'Pending'}, {'Status': 'Rejected'}, student_name)

    def revision_implemented(self, request_id, student_id, student_name: Optional[str] = None):
        return self.append(C.CAT_REVISION_REQUEST, request_id, C.ACT_REVISION_IMPLEMENTED,
                           f'Revision changes applied to Student ID: {student_id}',
                           {'Status': 'Approved'}, {'Status': 'Implemented'}, student_name)

    # --- Document submissions ---

    def document_submitted(self, submission_id, student_name: str, document_type: str,
                           submission_data: Optional[Mapping[str, Any]] = None):
        return self.append(C.CAT_DOCUMENT_SUBMISSION, submission_id, C.ACT_DOCUMENT_SUBMISSION,
                           f'Document submitted: {document_type} for {student_name}',
                           None, submission_data, student_name)

    def document_verified(self, submission_id, student_name: str, document_type: str, status: str = 'Verified'):
        return self.append(C.CAT_DOCUMENT_SUBMISSION, submission_id, C.ACT_DOCUMENT_VERIFICATION,
                           f'Document {status.lower()}: {document_type} for {student_name}',
                           {'Status': 'Submitted'}, {'Status': status}, student_name)


def audit_sink_for_request() -> AuditWriter:
    """Writer bound to the JWT caller of the current request, for injection into handlers."""
    return AuditWriter(current_caller())
