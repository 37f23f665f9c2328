"""Test seeding utilities to reduce duplication.

These helpers centralize creation of directory users, audit entries at fixed
timestamps and bearer headers for a given role.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from flask_jwt_extended import create_access_token
from school_audit import get_db
from school_audit.models.directory import StaffUser
from school_audit.services.audit import AuditWriter
from school_audit.services.context import CallerContext

BASE_TIME = datetime(2026, 3, 2, 9, 0, 0)


def ensure_user(username: str, role: str, first_name: str = 'Test', last_name: Optional[str] = None) -> StaffUser:
    session = get_db()
    u = session.query(StaffUser).filter_by(username=username).one_or_none()
    if not u:
        u = StaffUser(username=username, first_name=first_name, last_name=last_name or username.title(), role=role)
        session.add(u); session.commit(); session.refresh(u)
    return u


def jwt_headers(user_id: int, role: Optional[str]) -> Dict[str, str]:
    """Bearer header for ``user_id`` acting as ``role``. Needs an app context."""
    claims = {'role': role} if role else {}
    token = create_access_token(identity=str(user_id), additional_claims=claims)
    return {'Authorization': f'Bearer {token}'}


def fixed_clock(at: datetime):
    return lambda: at


def writer_at(at: datetime, actor_id: int = 1, role: Optional[str] = 'ICT_Coordinator') -> AuditWriter:
    """Writer whose clock is pinned to ``at``."""
    return AuditWriter(CallerContext(actor_id, role), clock=fixed_clock(at))


def add_entry(category: str, action: str = 'INSERT', record_id: int = 1, at: Optional[datetime] = None,
              actor_id: int = 1, role: Optional[str] = 'ICT_Coordinator', **kwargs: Any) -> int:
    """Append one entry and return its id; fails the test if the write was swallowed."""
    entry_id = writer_at(at or BASE_TIME, actor_id, role).append(category, record_id, action, **kwargs)
    assert entry_id is not None
    return entry_id


def minutes(n: int) -> timedelta:
    return timedelta(minutes=n)


__all__ = ['BASE_TIME', 'ensure_user', 'jwt_headers', 'fixed_clock', 'writer_at', 'add_entry', 'minutes']
