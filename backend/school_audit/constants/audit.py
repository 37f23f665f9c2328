"""Central enum-like definitions for audit categories, actions and role scopes.
Extend cautiously; never rename stored values silently. Entries already written keep
their original text, so a rename splits history in two.
"""
from __future__ import annotations
from typing import Dict, FrozenSet, List, Union

# Categories (historically the name of the business table that changed)
CAT_USER = 'user'
CAT_EMPLOYEE = 'employee'
CAT_STUDENT = 'student'
CAT_ENROLLMENT = 'enrollment'
CAT_SECTION = 'section'
CAT_SECTION_ASSIGNMENT = 'sectionassignment'
CAT_STRAND = 'strand'
CAT_REVISION_REQUEST = 'StudentRevisionRequest'
CAT_DOCUMENT_SUBMISSION = 'documentsubmission'

CATEGORIES: List[str] = [
    CAT_USER, CAT_EMPLOYEE, CAT_STUDENT, CAT_ENROLLMENT, CAT_SECTION,
    CAT_SECTION_ASSIGNMENT, CAT_REVISION_REQUEST, CAT_STRAND, CAT_DOCUMENT_SUBMISSION,
]

# Actions. Stored as plain text so new kinds need no schema change.
ACT_INSERT = 'INSERT'
ACT_UPDATE = 'UPDATE'
ACT_DELETE = 'DELETE'
ACT_STATUS_CHANGE = 'STATUS_CHANGE'
ACT_PASSWORD_RESET = 'PASSWORD_RESET'
ACT_REVISION_REQUEST = 'REVISION_REQUEST'
ACT_REVISION_APPROVED = 'REVISION_APPROVED'
ACT_REVISION_REJECTED = 'REVISION_REJECTED'
ACT_REVISION_IMPLEMENTED = 'REVISION_IMPLEMENTED'
ACT_DOCUMENT_SUBMISSION = 'DOCUMENT_SUBMISSION'
ACT_DOCUMENT_VERIFICATION = 'DOCUMENT_VERIFICATION'

ACTIONS: List[str] = [
    ACT_INSERT, ACT_UPDATE, ACT_DELETE, ACT_STATUS_CHANGE, ACT_PASSWORD_RESET,
    ACT_REVISION_REQUEST, ACT_REVISION_APPROVED, ACT_REVISION_REJECTED, ACT_REVISION_IMPLEMENTED,
    ACT_DOCUMENT_SUBMISSION, ACT_DOCUMENT_VERIFICATION,
]

# Role scope table. ALL means unrestricted; anything else is an allow-list.
ALL = '*'
Scope = Union[str, FrozenSet[str]]

REGISTRAR_CATEGORIES: FrozenSet[str] = frozenset({
    CAT_STUDENT, CAT_ENROLLMENT, CAT_SECTION, CAT_SECTION_ASSIGNMENT,
    CAT_REVISION_REQUEST, CAT_DOCUMENT_SUBMISSION,
})

ROLE_SCOPES: Dict[str, Scope] = {
    'ICT_Coordinator': ALL,
    'Admin': ALL,
    'Registrar': REGISTRAR_CATEGORIES,
}

# Roles missing from the table (Adviser, Subject_Teacher, ...) see nothing.
DEFAULT_SCOPE: Scope = frozenset()

UNKNOWN_IP = 'Unknown'

# Listing defaults
LIST_DEFAULT_LIMIT = 100
RECENT_DEFAULT_LIMIT = 20
LOOKUP_CAP = 100
