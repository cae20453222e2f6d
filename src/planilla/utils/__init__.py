"""Utility modules for Planilla."""

from planilla.utils.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    PlanillaError,
)

__all__ = [
    "PlanillaError",
    "ConfigurationError",
    "ExternalServiceError",
]
