"""Custom exceptions for Planilla."""


class PlanillaError(Exception):
    """Base exception for all Planilla errors."""

    pass


class ConfigurationError(PlanillaError):
    """Error in configuration or settings."""

    pass


class ExternalServiceError(PlanillaError):
    """A call to an external provider (billing) failed or timed out.

    The message is safe to return to callers; provider-internal detail is
    kept on ``operation`` for logging only.
    """

    def __init__(self, operation: str, message: str = "Billing provider request failed"):
        super().__init__(message)
        self.operation = operation
