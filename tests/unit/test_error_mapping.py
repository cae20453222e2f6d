"""Tests for mapping domain exceptions to HTTP responses."""

import pytest

from planilla.api.middleware.errors import map_exception
from planilla.api.schemas.errors import ErrorCode
from planilla.core.exceptions import (
    AuthenticationError,
    ConflictError,
    FeatureNotAvailableError,
    InsufficientRoleError,
    InvitationInvalidError,
    LastOwnerError,
    NotFoundError,
    PlanLimitExceededError,
    SubscriptionInactiveError,
    TenantInactiveError,
    UnauthorizedAccessError,
    ValidationFailedError,
)
from planilla.utils.exceptions import ExternalServiceError


@pytest.mark.parametrize(
    ("exc", "status_code", "error_code"),
    [
        (AuthenticationError("expired"), 401, ErrorCode.UNAUTHORIZED),
        (UnauthorizedAccessError(), 401, ErrorCode.UNAUTHORIZED),
        (InsufficientRoleError("Manager", "Admin"), 403, ErrorCode.FORBIDDEN),
        (TenantInactiveError(3), 403, ErrorCode.TENANT_INACTIVE),
        (NotFoundError("Employee", 9), 404, ErrorCode.NOT_FOUND),
        (ValidationFailedError("bad"), 400, ErrorCode.VALIDATION_ERROR),
        (ConflictError("taken"), 409, ErrorCode.CONFLICT),
        (LastOwnerError(3), 409, ErrorCode.LAST_OWNER),
        (InvitationInvalidError(), 400, ErrorCode.INVITATION_INVALID),
        (ExternalServiceError("create_customer"), 502, ErrorCode.PROVIDER_ERROR),
        (RuntimeError("boom"), 500, ErrorCode.INTERNAL_ERROR),
    ],
)
def test_status_and_code(exc, status_code, error_code):
    mapped_status, mapped_code, _, _ = map_exception(exc)

    assert mapped_status == status_code
    assert mapped_code == error_code.value


def test_role_denial_does_not_disclose_required_role():
    _, _, message, details = map_exception(InsufficientRoleError("Manager", "Owner"))

    assert "Owner" not in message
    assert details is None


def test_internal_error_hides_detail():
    _, _, message, details = map_exception(RuntimeError("password=hunter2"))

    assert "hunter2" not in message
    assert details is None


def test_plan_limit_carries_upgrade_details():
    exc = PlanLimitExceededError(
        "You have reached the limit of 5 employees on the Free plan. "
        "Upgrade to Starter to add more.",
        resource="employees",
        limit=5,
        suggested_plan="Starter",
    )

    status_code, error_code, message, details = map_exception(exc)

    assert status_code == 409
    assert error_code == "plan_limit_exceeded"
    assert "Upgrade to Starter" in message
    assert details == {"resource": "employees", "limit": 5, "suggested_plan": "Starter"}


def test_inactive_subscription_is_payment_required():
    status_code, error_code, _, details = map_exception(
        SubscriptionInactiveError("past due", status="PastDue")
    )

    assert status_code == 402
    assert error_code == "subscription_inactive"
    assert details["status"] == "PastDue"


def test_missing_feature_is_payment_required():
    status_code, _, _, details = map_exception(
        FeatureNotAvailableError(
            "PDF export is not included", feature="PDF export", suggested_plan="Professional"
        )
    )

    assert status_code == 402
    assert details == {"feature": "PDF export", "suggested_plan": "Professional"}


def test_validation_field_reported():
    _, _, message, details = map_exception(ValidationFailedError("Unknown plan", field="plan"))

    assert message == "Unknown plan"
    assert details == {"field": "plan"}
