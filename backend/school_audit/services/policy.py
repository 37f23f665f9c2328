from __future__ import annotations
import logging
from typing import Dict, Iterable, Mapping, Optional, Union

from school_audit.constants.audit import ALL, DEFAULT_SCOPE, ROLE_SCOPES, Scope
from school_audit.errors import AccessDenied

logger = logging.getLogger(__name__)


class RoleScopePolicy:
    """Maps a caller role to the audit categories it may read.

    The table is explicit: a role either maps to ALL or to an allow-list. Roles not
    in the table get ``default`` which is the empty set, so a newly introduced role
    sees nothing until someone grants it a scope.
    """

    def __init__(self, table: Optional[Mapping[str, Scope]] = None, default: Scope = DEFAULT_SCOPE):
        self._table: Dict[str, Scope] = {}
        for role, scope in (table if table is not None else ROLE_SCOPES).items():
            self._table[role] = _coerce_scope(scope)
        self._default = _coerce_scope(default)

    def allowed_categories(self, role: Optional[str]) -> Scope:
        if not role:
            return self._default
        return self._table.get(role, self._default)

    def is_unrestricted(self, role: Optional[str]) -> bool:
        return self.allowed_categories(role) == ALL

    def is_allowed(self, role: Optional[str], category: str) -> bool:
        scope = self.allowed_categories(role)
        return scope == ALL or category in scope

    def assert_category_allowed(self, role: Optional[str], category: str):
        if not self.is_allowed(role, category):
            raise AccessDenied('Access denied to this category')

    def scope_clause(self, role: Optional[str], column):
        """SQL clause restricting ``column`` to the role's categories, or None when unrestricted."""
        scope = self.allowed_categories(role)
        if scope == ALL:
            return None
        return column.in_(sorted(scope))

    def with_overrides(self, overrides: Optional[Mapping[str, Union[str, Iterable[str]]]]) -> 'RoleScopePolicy':
        merged: Dict[str, Scope] = dict(self._table)
        for role, scope in (overrides or {}).items():
            merged[role] = _coerce_scope(scope)
        return RoleScopePolicy(merged, self._default)


def _coerce_scope(scope) -> Scope:
    if scope == ALL:
        return ALL
    if isinstance(scope, str):
        raise ValueError(f'role scope must be "{ALL}" or a list of categories, got {scope!r}')
    return frozenset(scope)


_policy = RoleScopePolicy()


def configure_policy(overrides: Optional[Mapping[str, Union[str, Iterable[str]]]] = None) -> RoleScopePolicy:
    """Install the process-wide policy: defaults plus AUDIT_ROLE_SCOPES overrides."""
    global _policy
    _policy = RoleScopePolicy().with_overrides(overrides)
    if overrides:
        logger.info('Audit role scopes overridden for: %s', ', '.join(sorted(overrides)))
    return _policy


def get_policy() -> RoleScopePolicy:
    return _policy
