from functools import wraps
from flask import g
from flask_jwt_extended import verify_jwt_in_request
from school_audit.services.context import current_caller


def require_caller(fn):
    """Verify the bearer token and expose the caller as ``g.caller``.

    Missing or invalid tokens are answered with 401 by flask-jwt-extended. Which
    entries the caller may see is decided later by the role scope policy.
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        g.caller = current_caller()
        return fn(*args, **kwargs)
    return wrapper
