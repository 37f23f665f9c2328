from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy import and_, case, func, select
from sqlalchemy.exc import SQLAlchemyError

from school_audit import get_db
from school_audit.config.pagination import MAX_LIMIT, normalize_pagination
from school_audit.constants import audit as C
from school_audit.errors import NotFound, StorageError, ValidationError
from school_audit.models.audit import AuditEntry
from school_audit.models.directory import StaffUser
from school_audit.services.audit import utcnow
from school_audit.services.policy import RoleScopePolicy, get_policy
from school_audit.services.snapshots import snapshot_to_json
from school_audit.utils.filters import build_filter_clauses
from school_audit.utils.listing import isoformat_utc

logger = logging.getLogger(__name__)

_DATE_FORMATS = ('%Y-%m-%d', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%dT%H:%M:%SZ', '%Y-%m-%d %H:%M:%S')


def parse_day(value: Any) -> datetime:
    """Accepts a date or datetime string and returns midnight of that day."""
    if isinstance(value, datetime):
        return datetime.combine(value.date(), time.min)
    for fmt in _DATE_FORMATS:
        try:
            return datetime.combine(datetime.strptime(str(value).strip(), fmt).date(), time.min)
        except ValueError:
            continue
    raise ValueError(f'unrecognized date: {value!r}')


def serialize_entry(entry: AuditEntry, first_name: Optional[str] = None, last_name: Optional[str] = None,
                    current_role: Optional[str] = None) -> Dict[str, Any]:
    name = ' '.join(p for p in (first_name, last_name) if p) or None
    return {
        'id': entry.id,
        'category': entry.category,
        'recordId': entry.record_id,
        'action': entry.action,
        'description': entry.description,
        'oldValue': snapshot_to_json(entry.old_value, entry.old_value_kind),
        'newValue': snapshot_to_json(entry.new_value, entry.new_value_kind),
        'oldValueKind': entry.old_value_kind,
        'newValueKind': entry.new_value_kind,
        'changedBy': entry.changed_by,
        'userRole': entry.user_role,
        'affectedUserName': entry.affected_user_name,
        'ipAddress': entry.ip_address,
        'changedAt': isoformat_utc(entry.changed_at),
        # live directory data; userRole above stays the role held at the time
        'actorName': name,
        'actorCurrentRole': current_role,
    }


@dataclass
class AuditPage:
    entries: List[Dict[str, Any]]
    total: int
    limit: int
    offset: int
    latest: Optional[datetime] = field(default=None)


FILTER_SPECS: Dict[str, Dict[str, Any]] = {
    'category': {'op': lambda v: AuditEntry.category == v, 'coerce': lambda v: str(v).strip()},
    'action': {'op': lambda v: AuditEntry.action == v, 'coerce': lambda v: str(v).strip()},
    'actor_id': {'op': lambda v: AuditEntry.changed_by == v, 'coerce': int},
    'date_from': {'op': lambda v: AuditEntry.changed_at >= v, 'coerce': parse_day},
    'date_to': {'op': lambda v: AuditEntry.changed_at < v + timedelta(days=1), 'coerce': parse_day},
}


class AuditQueryEngine:
    """Read side of the audit trail. Every query is ANDed with the caller's role scope
    and ordered newest first (changed_at DESC, id DESC)."""

    def __init__(self, session=None, policy: Optional[RoleScopePolicy] = None,
                 clock: Callable[[], datetime] = utcnow):
        self._session = session
        self._policy = policy
        self._clock = clock

    @property
    def session(self):
        return self._session if self._session is not None else get_db()

    @property
    def policy(self) -> RoleScopePolicy:
        return self._policy if self._policy is not None else get_policy()

    def _scoped(self, caller_role: Optional[str], clauses: List[Any]) -> List[Any]:
        scope = self.policy.scope_clause(caller_role, AuditEntry.category)
        return clauses + [scope] if scope is not None else list(clauses)

    def _entries_stmt(self, clauses: List[Any]):
        stmt = (
            select(AuditEntry, StaffUser.first_name, StaffUser.last_name, StaffUser.role)
            .outerjoin(StaffUser, StaffUser.id == AuditEntry.changed_by)
            .order_by(AuditEntry.changed_at.desc(), AuditEntry.id.desc())
        )
        if clauses:
            stmt = stmt.where(and_(*clauses))
        return stmt

    def _fetch(self, clauses: List[Any], limit: int, offset: int = 0) -> List[Dict[str, Any]]:
        rows = self._execute(self._entries_stmt(clauses).limit(limit).offset(offset)).all()
        return [serialize_entry(entry, first, last, role) for entry, first, last, role in rows]

    def _execute(self, stmt):
        session = self.session
        try:
            return session.execute(stmt)
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception('Audit query failed')
            raise StorageError(f'Failed to read audit entries: {e.__class__.__name__}') from e

    @staticmethod
    def _page(limit, offset, default_limit: int, max_limit: int = MAX_LIMIT):
        try:
            return normalize_pagination(limit, offset, default_limit=default_limit, max_limit=max_limit)
        except ValueError:
            raise ValidationError('limit/offset must be integers', field='limit')

    def list_entries(self, filters: Optional[Mapping[str, Any]] = None, limit=None, offset=None,
                     caller_role: Optional[str] = None) -> AuditPage:
        limit, offset = self._page(limit, offset, C.LIST_DEFAULT_LIMIT)
        clauses = self._scoped(caller_role, build_filter_clauses(FILTER_SPECS, dict(filters or {})))
        count_stmt = select(func.count(AuditEntry.id), func.max(AuditEntry.changed_at))
        if clauses:
            count_stmt = count_stmt.where(and_(*clauses))
        total, latest = self._execute(count_stmt).one()
        entries = self._fetch(clauses, limit, offset) if total else []
        return AuditPage(entries, int(total or 0), limit, offset, latest)

    def recent(self, limit=None, caller_role: Optional[str] = None) -> List[Dict[str, Any]]:
        limit, _ = self._page(limit, 0, C.RECENT_DEFAULT_LIMIT)
        return self._fetch(self._scoped(caller_role, []), limit)

    def by_category(self, category: Optional[str], caller_role: Optional[str] = None,
                    limit: int = C.LOOKUP_CAP) -> List[Dict[str, Any]]:
        if category is None or not str(category).strip():
            raise ValidationError('category is required', field='category')
        category = str(category).strip()
        self.policy.assert_category_allowed(caller_role, category)
        limit, _ = self._page(limit, 0, C.LOOKUP_CAP, max_limit=C.LOOKUP_CAP)
        return self._fetch([AuditEntry.category == category], limit)

    def by_actor(self, actor_id, caller_role: Optional[str] = None, limit: int = C.LOOKUP_CAP,
                 offset: int = 0) -> List[Dict[str, Any]]:
        if actor_id is None or isinstance(actor_id, bool):
            raise ValidationError('actorId is required', field='actorId')
        try:
            actor_id = int(actor_id)
        except (TypeError, ValueError):
            raise ValidationError('actorId must be an integer', field='actorId')
        limit, offset = self._page(limit, offset, C.LOOKUP_CAP, max_limit=C.LOOKUP_CAP)
        return self._fetch(self._scoped(caller_role, [AuditEntry.changed_by == actor_id]), limit, offset)

    def get_entry(self, entry_id, caller_role: Optional[str] = None) -> Dict[str, Any]:
        row = self._execute(self._entries_stmt([AuditEntry.id == entry_id])).first()
        if row is None:
            raise NotFound('Audit entry not found')
        entry, first, last, role = row
        self.policy.assert_category_allowed(caller_role, entry.category)
        return serialize_entry(entry, first, last, role)

    def stats(self, caller_role: Optional[str] = None) -> Dict[str, Any]:
        """Aggregates over the caller's visible entries.

        Periods are anchored at 00:00 UTC: today, seven days back and thirty days back.
        """
        clauses = self._scoped(caller_role, [])
        midnight = datetime.combine(self._clock().date(), time.min)
        week_start = midnight - timedelta(days=7)
        month_start = midnight - timedelta(days=30)

        def since(start):
            return func.coalesce(func.sum(case((AuditEntry.changed_at >= start, 1), else_=0)), 0)

        overall = select(
            func.count(AuditEntry.id),
            func.count(func.distinct(AuditEntry.category)),
            func.count(func.distinct(AuditEntry.changed_by)),
            since(midnight), since(week_start), since(month_start),
        )
        by_action = select(AuditEntry.action, func.count(AuditEntry.id)).group_by(AuditEntry.action)
        by_category = (
            select(AuditEntry.category, func.count(AuditEntry.id).label('n'), func.max(AuditEntry.changed_at))
            .group_by(AuditEntry.category)
            .order_by(func.count(AuditEntry.id).desc(), AuditEntry.category.asc())
        )
        if clauses:
            cond = and_(*clauses)
            overall = overall.where(cond)
            by_action = by_action.where(cond)
            by_category = by_category.where(cond)

        total, categories, actors, today, week, month = self._execute(overall).one()
        return {
            'totalCount': int(total or 0),
            'distinctCategories': int(categories or 0),
            'distinctActors': int(actors or 0),
            'countsByAction': {action: int(n) for action, n in self._execute(by_action).all()},
            'countsByPeriod': {'today': int(today or 0), 'week': int(week or 0), 'month': int(month or 0)},
            'activityByCategory': [
                {'category': cat, 'count': int(n), 'lastActivityAt': isoformat_utc(last)}
                for cat, n, last in self._execute(by_category).all()
            ],
        }
