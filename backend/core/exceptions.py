"""Custom exceptions for the WhatsApp automation engine."""


class AutomationEngineError(Exception):
    """Base exception for the automation engine."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code used when surfaced through the API
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(AutomationEngineError):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, 404)


class UnauthorizedError(AutomationEngineError):
    """Missing or wrong credentials (cron secret, verify token)."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, 401)


class ValidationError(AutomationEngineError):
    """Malformed request payload."""

    def __init__(self, message: str = "Validation failed"):
        super().__init__(message, 400)


class MessagingGatewayError(AutomationEngineError):
    """The WhatsApp Cloud API rejected a call, timed out, or was unreachable."""

    def __init__(self, message: str = "Messaging gateway error", code: str = ""):
        self.code = code
        super().__init__(message, 502)


class UnsafeURLError(AutomationEngineError):
    """An HTTP action targeted a URL that is not allowed."""

    def __init__(self, message: str = "URL not allowed"):
        super().__init__(message, 400)
