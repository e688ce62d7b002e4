# apps/core/exceptions.py


class LanesError(Exception):
    """
    Base exception for board errors

    Carries the HTTP status and the machine-readable code that the API
    layer puts in the error envelope.
    """

    status = 500
    code = 'INTERNAL_ERROR'
    default_message = 'An unexpected error occurred'

    def __init__(self, message=None, code=None, details=None):
        self.message = message or self.default_message
        if code:
            self.code = code
        self.details = details
        super().__init__(self.message)

    def as_dict(self):
        error = {'code': self.code, 'message': self.message}
        if self.details is not None:
            error['details'] = self.details
        return error


class NotFound(LanesError):
    """Referenced project, list, card or checklist does not exist"""

    status = 404
    code = 'NOT_FOUND'
    default_message = 'Resource not found'

    def __init__(self, resource='Resource', identifier=None, code=None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} '{identifier}' not found"
        super().__init__(message, code=code)


class ValidationError(LanesError):
    """Missing or invalid input"""

    status = 400
    code = 'VALIDATION_ERROR'
    default_message = 'Validation failed'


class AccessDenied(LanesError):
    """User may not read or change this project"""

    status = 403
    code = 'FORBIDDEN'
    default_message = 'Access denied'


class TransactionFailure(LanesError):
    """The database aborted a position-mutating transaction"""

    status = 500
    code = 'DATABASE_ERROR'
    default_message = 'The operation could not be completed'


class ConflictError(TransactionFailure):
    """A concurrent change touched the same rows first"""

    status = 409
    code = 'RESOURCE_CONFLICT'
    default_message = 'The board changed while the operation was running, reload and retry'
