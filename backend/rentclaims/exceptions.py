"""Exception hierarchy for the claims core."""


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class ValidationError(AppError):
    """Raised when input validation fails. Nothing is persisted."""
    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class ClaimValidationError(ValidationError):
    """Malformed claim filing, response or resolution input."""
    pass


class NegotiationValidationError(ValidationError):
    """Malformed commission terms or an unknown negotiating party."""
    pass


class PayloadValidationError(ValidationError):
    """A notification payload does not match its template kind."""
    pass


class RefundLimitError(AppError):
    """A card refund would exceed the original authorization."""
    pass
