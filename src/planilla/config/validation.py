"""Configuration validation for startup checks.

Validates that required configuration is present and valid before the
application starts accepting requests.

Usage:
    from planilla.config.validation import validate_or_raise

    # During startup
    validate_or_raise(settings)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from planilla.config.settings import Settings, get_settings
from planilla.core.logging import get_logger
from planilla.core.plans import PAID_PLANS
from planilla.utils.exceptions import ConfigurationError

logger = get_logger(__name__)


class ValidationSeverity(str, Enum):
    """Severity of configuration validation issues."""

    ERROR = "error"  # Must be fixed, app cannot start
    WARNING = "warning"  # Should be fixed, app can start but may have issues


@dataclass
class ValidationResult:
    """Result of a configuration validation check."""

    field: str
    severity: ValidationSeverity
    message: str
    suggestion: str | None = None

    def __str__(self) -> str:
        prefix = "ERROR" if self.severity == ValidationSeverity.ERROR else "WARNING"
        result = f"[{prefix}] {self.field}: {self.message}"
        if self.suggestion:
            result += f"\n  Suggestion: {self.suggestion}"
        return result


def validate_configuration(settings: Settings | None = None) -> list[ValidationResult]:
    """Validate application configuration.

    Args:
        settings: Settings to validate (default: global settings)

    Returns:
        List of validation results (empty if all checks pass)
    """
    if settings is None:
        settings = get_settings()

    results: list[ValidationResult] = []
    results.extend(_validate_database(settings))
    results.extend(_validate_credentials(settings))
    results.extend(_validate_billing(settings))
    results.extend(_validate_environment(settings))
    return results


def validate_or_raise(settings: Settings | None = None) -> None:
    """Validate configuration and raise if errors found.

    Raises:
        ConfigurationError: If any validation errors are found
    """
    results = validate_configuration(settings)
    errors = [r for r in results if r.severity == ValidationSeverity.ERROR]

    if errors:
        error_messages = "\n".join(str(e) for e in errors)
        raise ConfigurationError(f"Configuration validation failed:\n{error_messages}")

    for warning in results:
        logger.warning("configuration_warning", field=warning.field, detail=warning.message)


def _validate_database(settings: Settings) -> list[ValidationResult]:
    results: list[ValidationResult] = []

    if not settings.DATABASE_URL:
        results.append(
            ValidationResult(
                field="DATABASE_URL",
                severity=ValidationSeverity.ERROR,
                message="Database URL is not configured",
                suggestion="Set DATABASE_URL environment variable",
            )
        )
    elif settings.ENVIRONMENT == "production" and settings.DATABASE_URL.startswith("sqlite"):
        # Row locks are no-ops on SQLite, per-tenant serialization relies on its file lock
        results.append(
            ValidationResult(
                field="DATABASE_URL",
                severity=ValidationSeverity.ERROR,
                message="SQLite is not supported in production",
                suggestion="Use a postgresql+asyncpg:// URL",
            )
        )

    return results


def _validate_credentials(settings: Settings) -> list[ValidationResult]:
    results: list[ValidationResult] = []

    if settings.JWT_SECRET_KEY is None:
        results.append(
            ValidationResult(
                field="JWT_SECRET_KEY",
                severity=(
                    ValidationSeverity.ERROR
                    if settings.ENVIRONMENT == "production"
                    else ValidationSeverity.WARNING
                ),
                message="JWT signing key is not configured",
                suggestion="Generate a random string of at least 32 characters",
            )
        )
    elif len(settings.JWT_SECRET_KEY.get_secret_value()) < 32:
        results.append(
            ValidationResult(
                field="JWT_SECRET_KEY",
                severity=ValidationSeverity.WARNING,
                message="JWT signing key is short and may be weak",
                suggestion="Use at least 32 characters",
            )
        )

    return results


def _validate_billing(settings: Settings) -> list[ValidationResult]:
    results: list[ValidationResult] = []

    if settings.STRIPE_SECRET_KEY is None:
        results.append(
            ValidationResult(
                field="STRIPE_SECRET_KEY",
                severity=ValidationSeverity.WARNING,
                message="Stripe is not configured - checkout and portal will fail",
            )
        )
    if settings.STRIPE_WEBHOOK_SECRET is None:
        results.append(
            ValidationResult(
                field="STRIPE_WEBHOOK_SECRET",
                severity=ValidationSeverity.WARNING,
                message="Webhook signing secret missing - billing webhooks will be rejected",
            )
        )

    missing = [plan.value for plan in PAID_PLANS if plan.value not in settings.stripe_prices]
    if missing:
        results.append(
            ValidationResult(
                field="stripe_prices",
                severity=ValidationSeverity.WARNING,
                message=f"No Stripe price configured for: {', '.join(missing)}",
            )
        )

    if settings.stripe_timeout_seconds <= 0:
        results.append(
            ValidationResult(
                field="stripe_timeout_seconds",
                severity=ValidationSeverity.ERROR,
                message="Billing provider timeout must be positive",
            )
        )

    return results


def _validate_environment(settings: Settings) -> list[ValidationResult]:
    results: list[ValidationResult] = []

    if settings.ENVIRONMENT == "production" and settings.DEBUG:
        results.append(
            ValidationResult(
                field="DEBUG",
                severity=ValidationSeverity.ERROR,
                message="Debug mode must be disabled in production",
                suggestion="Set DEBUG=false for production",
            )
        )

    if settings.ENVIRONMENT == "production" and "*" in settings.CORS_ORIGINS:
        results.append(
            ValidationResult(
                field="CORS_ORIGINS",
                severity=ValidationSeverity.ERROR,
                message="Wildcard CORS origin not allowed in production",
                suggestion="Specify exact allowed origins",
            )
        )

    return results


def get_configuration_summary(settings: Settings | None = None) -> dict[str, Any]:
    """Get a summary of current configuration (safe for logging).

    Excludes secrets and connection strings.
    """
    if settings is None:
        settings = get_settings()

    return {
        "environment": settings.ENVIRONMENT,
        "debug": settings.DEBUG,
        "log_level": settings.log_level,
        "cors_origins_count": len(settings.CORS_ORIGINS),
        "database_pool_size": settings.DATABASE_POOL_SIZE,
        "jwt_configured": settings.JWT_SECRET_KEY is not None,
        "stripe_configured": settings.STRIPE_SECRET_KEY is not None,
        "priced_plans": sorted(settings.stripe_prices),
        "trial_days": settings.trial_days,
    }
