from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from flask import abort
from flask_jwt_extended import get_jwt, get_jwt_identity


@dataclass(frozen=True)
class CallerContext:
    """Who is acting: user id plus the role they hold right now."""
    actor_id: Optional[int]
    role: Optional[str]


SYSTEM = CallerContext(actor_id=None, role=None)


def current_caller() -> CallerContext:
    """Caller from the verified JWT of the current request.

    Identity is stored as a string (flask-jwt-extended v4 requirement) and cast back
    to int; the role comes from the ``role`` claim.
    """
    ident = get_jwt_identity()
    try:
        actor_id = int(ident) if ident is not None else None
    except (TypeError, ValueError):
        abort(401, description='token subject must be a user id')
    claims = get_jwt() or {}
    role = claims.get('role')
    return CallerContext(actor_id=actor_id, role=str(role) if role else None)
