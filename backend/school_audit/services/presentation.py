"""Human-facing labels and badge colors for audit entries.

Consumes query engine output only. Unknown actions and categories are still
rendered: the label falls back to the stored text and the color to a neutral badge.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional

from school_audit.constants import audit as C
from school_audit.services.policy import RoleScopePolicy, get_policy

NEUTRAL_COLOR = 'bg-gray-100 text-gray-800'

ACTION_LABELS: Dict[str, str] = {
    C.ACT_INSERT: 'Created',
    C.ACT_UPDATE: 'Updated',
    C.ACT_DELETE: 'Deleted',
    C.ACT_STATUS_CHANGE: 'Status Changed',
    C.ACT_PASSWORD_RESET: 'Password Reset',
    C.ACT_REVISION_REQUEST: 'Edit Submitted (Pending Approval)',
    C.ACT_REVISION_APPROVED: 'Edit Approved',
    C.ACT_REVISION_REJECTED: 'Edit Rejected',
    C.ACT_REVISION_IMPLEMENTED: 'Edit Applied to Record',
    C.ACT_DOCUMENT_SUBMISSION: 'Document Submitted',
    C.ACT_DOCUMENT_VERIFICATION: 'Document Verified',
}

ACTION_COLORS: Dict[str, str] = {
    C.ACT_INSERT: 'bg-green-100 text-green-800',
    C.ACT_UPDATE: 'bg-blue-100 text-blue-800',
    C.ACT_DELETE: 'bg-red-100 text-red-800',
    C.ACT_STATUS_CHANGE: 'bg-yellow-100 text-yellow-800',
    C.ACT_PASSWORD_RESET: 'bg-purple-100 text-purple-800',
    C.ACT_REVISION_REQUEST: 'bg-indigo-100 text-indigo-800',
    C.ACT_REVISION_APPROVED: 'bg-green-100 text-green-800',
    C.ACT_REVISION_REJECTED: 'bg-red-100 text-red-800',
    C.ACT_REVISION_IMPLEMENTED: 'bg-blue-100 text-blue-800',
    C.ACT_DOCUMENT_SUBMISSION: 'bg-cyan-100 text-cyan-800',
    C.ACT_DOCUMENT_VERIFICATION: 'bg-teal-100 text-teal-800',
}

CATEGORY_LABELS: Dict[str, str] = {
    C.CAT_USER: 'User Account',
    C.CAT_EMPLOYEE: 'Employee',
    C.CAT_STUDENT: 'Student',
    C.CAT_ENROLLMENT: 'Enrollment',
    C.CAT_SECTION: 'Section',
    C.CAT_SECTION_ASSIGNMENT: 'Section Assignment',
    C.CAT_REVISION_REQUEST: 'Student Edit Request',
    C.CAT_STRAND: 'Strand',
    C.CAT_DOCUMENT_SUBMISSION: 'Document Submission',
}


def action_label(action: Optional[str]) -> str:
    return ACTION_LABELS.get(action or '', action or '')


def action_color(action: Optional[str]) -> str:
    return ACTION_COLORS.get(action or '', NEUTRAL_COLOR)


def category_label(category: Optional[str]) -> str:
    return CATEGORY_LABELS.get(category or '', category or '')


def decorate_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a serialized entry with display labels added."""
    out = dict(entry)
    out['actionLabel'] = action_label(entry.get('action'))
    out['actionColor'] = action_color(entry.get('action'))
    out['categoryLabel'] = category_label(entry.get('category'))
    out['actorDisplay'] = entry.get('actorName') or 'System'
    return out


def filter_options(caller_role: Optional[str], policy: Optional[RoleScopePolicy] = None) -> Dict[str, List[Dict[str, str]]]:
    policy = policy or get_policy()
    categories = [c for c in C.CATEGORIES if policy.is_allowed(caller_role, c)]
    return {
        'categories': [{'value': c, 'label': category_label(c)} for c in categories],
        'actions': [
            {'value': a, 'label': action_label(a), 'color': action_color(a)} for a in C.ACTIONS
        ],
    }
