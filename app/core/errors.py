"""
Domain failures raised by the services.

Routers never translate these by hand: `app.main` registers one handler that
renders every `DomainError` as `{"kind": ..., "detail": ...}` with the
matching status code.
"""


class DomainError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    kind = "validation_error"
    status_code = 400


class AuthorizationError(DomainError):
    kind = "authorization_error"
    status_code = 403


class NotFoundError(DomainError):
    kind = "not_found"
    status_code = 404


class ConflictError(DomainError):
    kind = "conflict"
    status_code = 400
