"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    status_code: int = 500
    error_code: str = "SYSTEM_ERROR"


class NotFoundError(DomainException):
    """Payment, fraud check, alert, sender or recipient does not exist"""

    status_code = 404
    error_code = "NOT_FOUND"


class InvalidOperationError(DomainException):
    """Operation not permitted in the entity's current state"""

    status_code = 409
    error_code = "INVALID_OPERATION"


class ValidationError(DomainException):
    """Malformed amount, currency, identifier or rule conditions"""

    status_code = 422
    error_code = "VALIDATION_ERROR"


class CollaboratorUnavailableError(DomainException):
    """External collaborator timed out or returned a server error"""

    status_code = 503
    error_code = "SERVICE_UNAVAILABLE"

    def __init__(self, collaborator: str, message: str):
        super().__init__(message)
        self.collaborator = collaborator


class InsufficientFundsError(DomainException):
    """Settlement reported insufficient funds"""

    status_code = 402
    error_code = "INSUFFICIENT_FUNDS"
