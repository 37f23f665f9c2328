"""Error taxonomy for the audit subsystem.

Service code raises these; the app-level error handler renders them into the
standard failure body so every route shares one shape:

    {"success": false, "message": "...", "error": {"status": 403, "title": "...", "detail": "..."}}
"""
from __future__ import annotations
from typing import Any, Dict, Optional


class AuditError(Exception):
    status_code = 500
    title = 'Internal Server Error'


class ValidationError(AuditError):
    status_code = 400
    title = 'Bad Request'

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class AccessDenied(AuditError):
    status_code = 403
    title = 'Forbidden'


class NotFound(AuditError):
    status_code = 404
    title = 'Not Found'


class StorageError(AuditError):
    status_code = 500
    title = 'Storage Error'


def error_payload(status: int, title: str, detail: Any) -> Dict[str, Any]:
    return {
        'success': False,
        'message': detail,
        'error': {
            'status': status,
            'title': title,
            'detail': detail,
        }
    }
