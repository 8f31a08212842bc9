"""
Service Exceptions

Errors raised by the service layer. Each carries a human-readable message and
the HTTP status the API layer renders it with.
"""


class ServiceError(Exception):
    """Base class for errors reported back to the caller"""

    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'success': False, 'error': self.message}


class NotFoundError(ServiceError):
    status_code = 404


class ValidationError(ServiceError):
    status_code = 400


class BalanceExceededError(ServiceError):
    """Payment would push the paid amount past the amount owed"""
    status_code = 400


class ConcurrencyConflictError(ServiceError):
    """Another transaction changed the same record first"""
    status_code = 409


class PermissionDeniedError(ServiceError):
    status_code = 403
