import json
import logging
import pytest
from flask_jwt_extended import verify_jwt_in_request
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from school_audit import get_db
from school_audit.constants import audit as C
from school_audit.errors import StorageError, ValidationError
from school_audit.models.audit import AuditEntry
from school_audit.models.directory import StaffUser
from school_audit.services.audit import AuditEvent, AuditWriter, audit_sink_for_request, resolve_ip_address, utcnow
from school_audit.services.audit_query import AuditQueryEngine
from school_audit.services.context import CallerContext, SYSTEM
from school_audit.services.snapshots import FieldDiff
from tests.test_utils_seed import jwt_headers


class BrokenSession:
    """Session stand-in whose commit fails like a locked store."""

    def __init__(self):
        self.rolled_back = False
        self.closed = False

    def add(self, obj):
        pass

    def commit(self):
        raise OperationalError('INSERT INTO audit_entries', {}, Exception('database is locked'))

    def rollback(self):
        self.rolled_back = True

    def close(self):
        self.closed = True


def _entry(entry_id):
    return get_db().get(AuditEntry, entry_id)


def test_ids_strictly_increase_and_timestamps_bounded(app_context):
    writer = AuditWriter(CallerContext(7, 'ICT_Coordinator'))
    before = utcnow()
    ids = [writer.append(C.CAT_USER, n, C.ACT_INSERT) for n in range(1, 4)]
    after = utcnow()
    assert None not in ids
    assert ids == sorted(ids) and len(set(ids)) == 3
    for entry_id in ids:
        e = _entry(entry_id)
        assert before <= e.changed_at <= after


def test_actor_and_role_default_to_caller(app_context):
    entry_id = AuditWriter(CallerContext(12, 'Registrar')).append(C.CAT_STUDENT, 5, C.ACT_UPDATE)
    e = _entry(entry_id)
    assert e.changed_by == 12
    assert e.user_role == 'Registrar'
    assert e.ip_address == C.UNKNOWN_IP


def test_explicit_actor_overrides_caller(app_context):
    entry_id = AuditWriter(CallerContext(12, 'Registrar')).append(
        C.CAT_STUDENT, 5, C.ACT_UPDATE, actor_id=3, actor_role='Admin', ip_address='192.0.2.4')
    e = _entry(entry_id)
    assert (e.changed_by, e.user_role, e.ip_address) == (3, 'Admin', '192.0.2.4')


def test_forwarded_for_first_hop_wins(app_instance):
    with app_instance.test_request_context('/', headers={'X-Forwarded-For': '10.0.0.5, 172.16.0.1'}):
        assert resolve_ip_address() == '10.0.0.5'
    with app_instance.test_request_context('/', environ_base={'REMOTE_ADDR': '198.51.100.9'}):
        assert resolve_ip_address() == '198.51.100.9'
    assert resolve_ip_address() == 'Unknown'


def test_strict_write_requires_actor(app_context):
    with pytest.raises(ValidationError) as exc:
        AuditWriter(SYSTEM).write(AuditEvent(C.CAT_USER, 1, C.ACT_INSERT))
    assert exc.value.field == 'actorId'
    assert get_db().execute(select(AuditEntry)).first() is None


def test_strict_write_rejects_non_integer_record_id(app_context):
    with pytest.raises(ValidationError):
        AuditWriter(CallerContext(1, 'Admin')).write(AuditEvent(C.CAT_USER, 'abc', C.ACT_INSERT))


def test_append_swallows_validation_failure(app_context, caplog):
    with caplog.at_level(logging.WARNING, logger='school_audit.services.audit'):
        assert AuditWriter(SYSTEM).append(C.CAT_USER, 1, C.ACT_INSERT) is None
    assert 'Audit entry rejected' in caplog.text


def test_storage_failure_raises_on_write_and_is_swallowed_by_append(caplog):
    broken = BrokenSession()
    writer = AuditWriter(CallerContext(1, 'Admin'), session_factory=lambda: broken)
    with pytest.raises(StorageError):
        writer.write(AuditEvent(C.CAT_USER, 1, C.ACT_INSERT))
    assert broken.rolled_back and broken.closed
    with caplog.at_level(logging.ERROR, logger='school_audit.services.audit'):
        assert writer.append(C.CAT_USER, 1, C.ACT_INSERT) is None
    assert 'Audit log error' in caplog.text


def test_sink_record_never_raises(app_context):
    writer = AuditWriter(SYSTEM)
    assert writer.record(AuditEvent('', None, '')) is None


def test_user_created_wrapper(app_context):
    writer = AuditWriter(CallerContext(1, 'ICT_Coordinator'))
    entry_id = writer.user_created(42, 'jdoe', 'John Doe', 'Adviser', {'Username': 'jdoe', 'Role': 'Adviser'})
    e = _entry(entry_id)
    assert e.category == 'user' and e.action == 'INSERT' and e.record_id == 42
    assert e.description == 'Created new user account: jdoe with role Adviser'
    assert e.old_value is None
    assert json.loads(e.new_value) == {'Username': 'jdoe', 'Role': 'Adviser'}
    assert e.affected_user_name == 'John Doe'


def test_status_change_wrappers_record_both_sides(app_context):
    writer = AuditWriter(CallerContext(1, 'ICT_Coordinator'))
    e = _entry(writer.user_status_changed(42, 'jdoe', 'John Doe', False))
    assert e.action == 'STATUS_CHANGE'
    assert e.description == 'User account deactivated: jdoe'
    assert json.loads(e.old_value) == {'IsActive': True}
    assert json.loads(e.new_value) == {'IsActive': False}
    s = _entry(writer.strand_status_changed(3, 'STEM', True))
    assert (s.category, s.description) == ('strand', 'Strand activated: STEM')


def test_password_reset_has_no_snapshots(app_context):
    e = _entry(AuditWriter(CallerContext(1, 'ICT_Coordinator')).password_reset(42, 'jdoe', 'John Doe'))
    assert e.action == 'PASSWORD_RESET'
    assert e.old_value is None and e.new_value is None


def test_enrollment_status_wrapper(app_context):
    e = _entry(AuditWriter(CallerContext(2, 'Registrar')).enrollment_status_changed(9, 'Ana Cruz', 'Pending', 'Enrolled'))
    assert e.description == 'Enrollment status changed from Pending to Enrolled for: Ana Cruz'
    assert json.loads(e.new_value) == {'Status': 'Enrolled'}


def test_revision_request_stores_field_diffs(app_context):
    writer = AuditWriter(CallerContext(5, 'Adviser'))
    entry_id = writer.revision_requested(77, 301, [FieldDiff('LastName', 'Santos', 'Reyes')], 'Maria Santos')
    e = _entry(entry_id)
    assert e.category == 'StudentRevisionRequest'
    assert e.action == 'REVISION_REQUEST'
    assert e.description == 'Revision request created for Student ID: 301'
    assert json.loads(e.new_value) == {'ChangedFields': [{'field': 'LastName', 'oldValue': 'Santos', 'newValue': 'Reyes'}]}


def test_strand_deleted_without_code(app_context):
    e = _entry(AuditWriter(CallerContext(1, 'ICT_Coordinator')).strand_deleted(4, None))
    assert e.action == 'DELETE'
    assert e.description == 'Strand deleted: Unknown'
    assert e.new_value is None


def test_document_wrappers(app_context):
    writer = AuditWriter(CallerContext(2, 'Registrar'))
    sub = _entry(writer.document_submitted(11, 'Ana Cruz', 'PSA Birth Certificate'))
    ver = _entry(writer.document_verified(11, 'Ana Cruz', 'PSA Birth Certificate'))
    assert sub.action == 'DOCUMENT_SUBMISSION'
    assert ver.description == 'Document verified: PSA Birth Certificate for Ana Cruz'
    assert sub.id < ver.id


def test_revision_request_kind_is_stored(app_context):
    e = _entry(AuditWriter(CallerContext(5, 'Adviser')).revision_requested(
        78, 302, [FieldDiff('Address', 'Old St', 'New St')]))
    assert e.old_value_kind is None
    assert e.new_value_kind == 'field_diff'


def test_key_value_snapshot_using_changed_fields_key_reads_back_unchanged(app_context):
    values = {'ChangedFields': [{'field': 'LastName', 'note': 'typo'}]}
    entry_id = AuditWriter(CallerContext(1, 'ICT_Coordinator')).append(
        C.CAT_STUDENT, 9, C.ACT_UPDATE, new_value=values)
    assert _entry(entry_id).new_value_kind == 'key_value'
    shown = AuditQueryEngine().get_entry(entry_id, 'ICT_Coordinator')
    assert shown['newValue'] == values
    assert shown['newValueKind'] == 'key_value'


def test_failed_append_keeps_callers_pending_changes(app_context):
    session = get_db()
    session.add(StaffUser(username='pending', first_name='Pia', last_name='Ramos', role='Adviser'))
    engine = session.get_bind()
    with engine.begin() as conn:
        conn.exec_driver_sql('ALTER TABLE audit_entries RENAME TO audit_entries_off')
    try:
        assert AuditWriter(CallerContext(1, 'Admin')).append(C.CAT_USER, 1, C.ACT_INSERT) is None
    finally:
        with engine.begin() as conn:
            conn.exec_driver_sql('ALTER TABLE audit_entries_off RENAME TO audit_entries')
    assert [u.username for u in session.new] == ['pending']
    session.commit()
    assert session.execute(select(StaffUser).filter_by(username='pending')).scalar_one().first_name == 'Pia'


def test_append_does_not_commit_callers_pending_changes(app_context):
    session = get_db()
    session.add(StaffUser(username='draft', first_name='Dan', last_name='Lim', role='Adviser'))
    assert AuditWriter(CallerContext(1, 'Admin')).append(C.CAT_USER, 1, C.ACT_INSERT) is not None
    session.rollback()
    assert session.execute(select(StaffUser).filter_by(username='draft')).first() is None


def test_request_sink_is_bound_to_jwt_caller(app_context):
    with app_context.test_request_context('/audit/entries', headers=jwt_headers(5, 'Registrar')):
        verify_jwt_in_request()
        sink = audit_sink_for_request()
        assert sink.caller == CallerContext(5, 'Registrar')
        sink.record(AuditEvent(C.CAT_ENROLLMENT, 12, C.ACT_INSERT, 'New enrollment created'))
    e = get_db().execute(select(AuditEntry).filter_by(record_id=12)).scalar_one()
    assert e.changed_by == 5 and e.user_role == 'Registrar'
