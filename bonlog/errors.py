"""Domain error taxonomy shared by the services and the HTTP layer.

Services raise these for conditions that gate entry (auth, admin grant,
missing targets). Ordinary business-rule failures are returned to the caller
as ``{"error": message}`` results instead; ``ValidationError`` exists so
helpers can raise and the service boundary can convert.
"""
from __future__ import annotations


class BonLogError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class AuthenticationRequired(BonLogError):
    status_code = 401
    code = "authentication_required"


class PermissionDenied(BonLogError):
    status_code = 403
    code = "permission_denied"


class NotFound(BonLogError):
    status_code = 404
    code = "not_found"


class ValidationError(BonLogError):
    # Business-rule failures travel as 200 + {"error": ...}
    status_code = 200
    code = "validation_error"


class TransientStorageError(BonLogError):
    # Raised inside a component, converted to {"error"} at its boundary
    status_code = 503
    code = "storage_unavailable"
