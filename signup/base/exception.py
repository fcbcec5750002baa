from typing import Any, Optional


class ValidationError(Exception):
    status_code = 400

    def __init__(self, field: str, message: str = None):
        self.field = field
        self.message = message or f"{field} is required"
        super().__init__(self.message)

    def __str__(self):
        return f"ValidationError: Field '{self.field}' - {self.message}"


class InvalidRequestError(Exception):
    status_code = 400

    def __init__(self, message: str = "Invalid request."):
        self.message = message
        super().__init__(self.message)

    def __str__(self):
        return f"InvalidRequestError: {self.message}"


class ForbiddenError(Exception):
    status_code = 403

    def __init__(self, message: str = "Verification failed."):
        self.message = message
        super().__init__(self.message)

    def __str__(self):
        return f"ForbiddenError: {self.message}"


class ExpiredOrInvalidError(Exception):
    status_code = 404

    def __init__(self, message: str = "This confirmation link has expired or is invalid."):
        self.message = message
        super().__init__(self.message)

    def __str__(self):
        return f"ExpiredOrInvalidError: {self.message}"


class ProviderError(Exception):
    """A downstream provider (email, mailing list, captcha) rejected the call."""

    def __init__(self, message: str = "Provider request failed.", status_code: int = 500, detail: Optional[Any] = None):
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(self.message)

    def __str__(self):
        return f"ProviderError: {self.message} Details: {self.detail or 'No further details provided.'}"


class InternalError(Exception):
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred."):
        self.message = message
        super().__init__(self.message)

    def __str__(self):
        return f"InternalError: {self.message}"


class DatabaseConnectionError(Exception):
    """MongoDB did not answer the startup ping."""

    def __init__(self, message: str = "MongoDB ping failed.", details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"DatabaseConnectionError: {self.message} ({self.details})"
        return f"DatabaseConnectionError: {self.message}"
