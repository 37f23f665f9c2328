from __future__ import annotations
from flask import Blueprint, g, request

from school_audit.decorators.auth import require_caller
from school_audit.errors import ValidationError
from school_audit.services.audit import AuditEvent, AuditWriter
from school_audit.services.audit_query import AuditQueryEngine
from school_audit.services.presentation import decorate_entry, filter_options
from school_audit.services.snapshots import snapshot_from_json
from school_audit.utils.listing import handle_conditional, make_cached_list_response

audit_bp = Blueprint('audit', __name__)

# query string name -> engine filter key
LIST_FILTER_PARAMS = {
    'category': 'category',
    'action': 'action',
    'actorId': 'actor_id',
    'dateFrom': 'date_from',
    'dateTo': 'date_to',
}

REQUIRED_FIELDS = ('category', 'recordId', 'action', 'actorId')


def _decorated(entries):
    return [decorate_entry(e) for e in entries]


@audit_bp.get('/entries')
@require_caller
def list_entries():
    filters = {key: request.args.get(param) for param, key in LIST_FILTER_PARAMS.items()}
    page = AuditQueryEngine().list_entries(
        filters, request.args.get('limit'), request.args.get('offset'), caller_role=g.caller.role)
    resp, etag = make_cached_list_response(_decorated(page.entries), page.total, page.limit, page.offset, page.latest)
    cond = handle_conditional(etag, page.latest)
    if cond:
        return cond
    if request.method == 'HEAD':
        resp.set_data(b'')
    return resp


@audit_bp.get('/entries/recent')
@require_caller
def recent_entries():
    entries = AuditQueryEngine().recent(request.args.get('limit'), caller_role=g.caller.role)
    return {'success': True, 'entries': _decorated(entries), 'count': len(entries)}


@audit_bp.get('/entries/<int:entry_id>')
@require_caller
def get_entry(entry_id: int):
    entry = AuditQueryEngine().get_entry(entry_id, caller_role=g.caller.role)
    return {'success': True, 'entry': decorate_entry(entry)}


@audit_bp.get('/categories/<category>/entries')
@require_caller
def entries_by_category(category: str):
    entries = AuditQueryEngine().by_category(category, caller_role=g.caller.role,
                                             limit=request.args.get('limit') or 100)
    return {'success': True, 'entries': _decorated(entries), 'count': len(entries)}


@audit_bp.get('/actors/<int:actor_id>/entries')
@require_caller
def entries_by_actor(actor_id: int):
    entries = AuditQueryEngine().by_actor(actor_id, caller_role=g.caller.role,
                                          limit=request.args.get('limit') or 100,
                                          offset=request.args.get('offset') or 0)
    return {'success': True, 'entries': _decorated(entries), 'count': len(entries)}


@audit_bp.get('/stats')
@require_caller
def stats():
    s = AuditQueryEngine().stats(caller_role=g.caller.role)
    overall = {k: v for k, v in s.items() if k != 'activityByCategory'}
    return {'success': True, 'data': {'overall': overall, 'byCategory': s['activityByCategory']}}


@audit_bp.get('/filters')
@require_caller
def filters():
    return {'success': True, **filter_options(g.caller.role)}


@audit_bp.post('/entries')
@require_caller
def create_entry():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('JSON object body required')
    for name in REQUIRED_FIELDS:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f'{name} is required', field=name)
    event = AuditEvent(
        category=data['category'],
        record_id=data['recordId'],
        action=data['action'],
        description=data.get('description'),
        old_value=snapshot_from_json(data.get('oldValue'), 'oldValue', data.get('oldValueKind')),
        new_value=snapshot_from_json(data.get('newValue'), 'newValue', data.get('newValueKind')),
        affected_user_name=data.get('affectedUserName'),
        actor_id=data['actorId'],
        actor_role=data.get('userRole') or g.caller.role,
        ip_address=data.get('ipAddress'),
    )
    entry = AuditWriter(g.caller).write(event)
    return {'success': True, 'message': 'Audit log created successfully', 'id': entry.id}, 201
