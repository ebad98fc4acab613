"""Error taxonomy shared by the relationship core and the HTTP layer."""

VALIDATION_ERROR = "VALIDATION_ERROR"
DUPLICATE = "DUPLICATE"
NOT_FOUND = "NOT_FOUND"
UNAUTHORIZED = "UNAUTHORIZED"
CONFLICT = "CONFLICT"


class NametagError(ValueError):
    """Base class; ``code`` names the failure for API clients."""

    code = VALIDATION_ERROR
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(NametagError):
    code = VALIDATION_ERROR
    status_code = 400


class DuplicateError(NametagError):
    code = DUPLICATE
    status_code = 409


class NotFoundError(NametagError):
    code = NOT_FOUND
    status_code = 404


class UnauthorizedError(NametagError):
    code = UNAUTHORIZED
    status_code = 401


class ConflictError(NametagError):
    code = CONFLICT
    status_code = 409
