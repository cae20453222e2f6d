"""Tests for the entitlement gatekeeper."""

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import delete, update

from planilla.core.entitlements import (
    DenialKind,
    EntitlementDecision,
    EntitlementGatekeeper,
    ExportFormat,
)
from planilla.core.exceptions import (
    FeatureNotAvailableError,
    PlanLimitExceededError,
    SubscriptionInactiveError,
)
from planilla.core.plans import SubscriptionPlan, SubscriptionStatus
from planilla.core.roles import TenantRole
from planilla.db.models.payroll import Employee
from planilla.db.models.tenant import Subscription
from planilla.db.models.user import Invitation
from planilla.db.repositories import EmployeeRepository, InvitationRepository


async def _add_employees(db_session, tenant_id: int, count: int, *, active: bool = True) -> None:
    repo = EmployeeRepository(db_session)
    for index in range(count):
        await repo.create(
            tenant_id,
            Employee(
                first_name="Emp",
                last_name=str(index),
                id_number=f"{'A' if active else 'I'}-{index}",
                base_salary=Decimal("900.00"),
                hire_date=date(2024, 3, 1),
                is_active=active,
            ),
        )


async def _add_invitation(db_session, tenant_id: int, email: str, **kwargs) -> Invitation:
    return await InvitationRepository(db_session).create(
        tenant_id,
        Invitation(
            email=email,
            role=int(TenantRole.EMPLOYEE),
            token=f"tok-{email}",
            expires_at=kwargs.pop("expires_at", datetime.now(UTC) + timedelta(days=7)),
            **kwargs,
        ),
    )


@pytest.mark.asyncio
class TestEmployeeLimit:
    async def test_free_allows_up_to_five(self, db_session, make_tenant):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.FREE, status=SubscriptionStatus.ACTIVE
        )
        await _add_employees(db_session, snapshot.tenant.id, 4)

        decision = await EntitlementGatekeeper(db_session).can_create_employee(snapshot.tenant.id)

        assert decision.allowed

    async def test_free_denies_sixth_with_upgrade(self, db_session, make_tenant):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.FREE, status=SubscriptionStatus.ACTIVE
        )
        await _add_employees(db_session, snapshot.tenant.id, 5)

        decision = await EntitlementGatekeeper(db_session).can_create_employee(snapshot.tenant.id)

        assert not decision.allowed
        assert decision.kind == DenialKind.LIMIT
        assert decision.limit == 5
        assert decision.suggested_plan == SubscriptionPlan.STARTER
        assert "5" in decision.reason
        assert "Starter" in decision.reason

    async def test_inactive_employees_do_not_count(self, db_session, make_tenant):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.FREE, status=SubscriptionStatus.ACTIVE
        )
        await _add_employees(db_session, snapshot.tenant.id, 4)
        await _add_employees(db_session, snapshot.tenant.id, 3, active=False)

        decision = await EntitlementGatekeeper(db_session).can_create_employee(snapshot.tenant.id)

        assert decision.allowed

    async def test_custom_override_raises_limit(self, db_session, make_tenant):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.FREE, status=SubscriptionStatus.ACTIVE
        )
        snapshot.subscription.custom_max_employees = 8
        await _add_employees(db_session, snapshot.tenant.id, 6)

        decision = await EntitlementGatekeeper(db_session).can_create_employee(snapshot.tenant.id)

        assert decision.allowed

    async def test_enterprise_limit_has_no_upgrade(self, db_session, make_tenant):
        snapshot = await make_tenant(
            db_session,
            "Acme",
            plan=SubscriptionPlan.ENTERPRISE,
            status=SubscriptionStatus.ACTIVE,
        )
        snapshot.subscription.custom_max_employees = 2
        await _add_employees(db_session, snapshot.tenant.id, 2)

        decision = await EntitlementGatekeeper(db_session).can_create_employee(snapshot.tenant.id)

        assert not decision.allowed
        assert decision.suggested_plan is None
        assert "contact support" in decision.reason


@pytest.mark.asyncio
class TestUserLimit:
    async def test_pending_invitations_count(self, db_session, make_tenant, add_member):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.STARTER, status=SubscriptionStatus.ACTIVE
        )
        tenant_id = snapshot.tenant.id
        await add_member(db_session, tenant_id, "owner@acme.test", TenantRole.OWNER)
        await _add_invitation(db_session, tenant_id, "a@acme.test")
        gatekeeper = EntitlementGatekeeper(db_session)

        assert (await gatekeeper.can_invite_user(tenant_id)).allowed

        await _add_invitation(db_session, tenant_id, "b@acme.test")
        decision = await gatekeeper.can_invite_user(tenant_id)

        assert not decision.allowed
        assert decision.limit == 3
        assert decision.suggested_plan == SubscriptionPlan.PROFESSIONAL

    async def test_expired_revoked_and_accepted_invitations_free_slots(
        self, db_session, make_tenant, add_member
    ):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.STARTER, status=SubscriptionStatus.ACTIVE
        )
        tenant_id = snapshot.tenant.id
        now = datetime.now(UTC)
        await add_member(db_session, tenant_id, "owner@acme.test", TenantRole.OWNER)
        await _add_invitation(db_session, tenant_id, "x@acme.test", expires_at=now - timedelta(1))
        await _add_invitation(db_session, tenant_id, "y@acme.test", is_revoked=True)
        await _add_invitation(db_session, tenant_id, "z@acme.test", accepted_at=now)
        await _add_invitation(db_session, tenant_id, "p@acme.test")

        decision = await EntitlementGatekeeper(db_session).can_invite_user(tenant_id)

        assert decision.allowed

    async def test_accepting_does_not_count_its_own_invitation(
        self, db_session, make_tenant, add_member
    ):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.STARTER, status=SubscriptionStatus.ACTIVE
        )
        tenant_id = snapshot.tenant.id
        await add_member(db_session, tenant_id, "owner@acme.test", TenantRole.OWNER)
        await _add_invitation(db_session, tenant_id, "a@acme.test")
        last = await _add_invitation(db_session, tenant_id, "b@acme.test")
        gatekeeper = EntitlementGatekeeper(db_session)

        assert not (await gatekeeper.can_invite_user(tenant_id)).allowed
        assert (
            await gatekeeper.can_invite_user(tenant_id, exclude_invitation_id=last.id)
        ).allowed


@pytest.mark.asyncio
class TestResolutionOrder:
    async def test_inactive_tenant_denied_first(self, db_session, make_tenant):
        snapshot = await make_tenant(db_session, "Acme")
        snapshot.tenant.is_active = False
        await db_session.flush()

        decision = await EntitlementGatekeeper(db_session).can_create_employee(snapshot.tenant.id)

        assert decision.kind == DenialKind.TENANT

    async def test_unknown_tenant_denied(self, db_session):
        decision = await EntitlementGatekeeper(db_session).can_create_employee(999_999)

        assert not decision.allowed
        assert decision.kind == DenialKind.TENANT

    @pytest.mark.parametrize(
        "status", [SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED]
    )
    async def test_unusable_status_denied_before_counts(self, db_session, make_tenant, status):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.STARTER, status=status
        )

        decision = await EntitlementGatekeeper(db_session).can_create_employee(snapshot.tenant.id)

        assert not decision.allowed
        assert decision.kind == DenialKind.STATUS
        assert decision.status == status.value

    async def test_expired_trial_denied(self, db_session, make_tenant):
        snapshot = await make_tenant(db_session, "Acme")
        await db_session.execute(
            update(Subscription)
            .where(Subscription.tenant_id == snapshot.tenant.id)
            .values(trial_ends_at=datetime.now(UTC) - timedelta(hours=1))
        )

        decision = await EntitlementGatekeeper(db_session).can_invite_user(snapshot.tenant.id)

        assert not decision.allowed
        assert "trial" in decision.reason.lower()

    async def test_canceled_at_period_end_still_usable(self, db_session, make_tenant):
        snapshot = await make_tenant(
            db_session,
            "Acme",
            plan=SubscriptionPlan.STARTER,
            status=SubscriptionStatus.CANCELED_AT_PERIOD_END,
        )

        decision = await EntitlementGatekeeper(db_session).can_create_employee(snapshot.tenant.id)

        assert decision.allowed

    async def test_missing_subscription_falls_back_to_free(self, db_session, make_tenant):
        snapshot = await make_tenant(db_session, "Acme")
        await db_session.execute(
            delete(Subscription).where(Subscription.tenant_id == snapshot.tenant.id)
        )
        await _add_employees(db_session, snapshot.tenant.id, 5)
        gatekeeper = EntitlementGatekeeper(db_session)

        decision = await gatekeeper.can_create_employee(snapshot.tenant.id)
        usage = await gatekeeper.get_usage(snapshot.tenant.id)

        assert decision.limit == 5
        assert usage.max_employees == 5
        assert usage.max_users == 1

    async def test_unexpected_error_fails_closed(self, db_session, make_tenant):
        snapshot = await make_tenant(db_session, "Acme")
        gatekeeper = EntitlementGatekeeper(db_session)
        gatekeeper.employees.count_active = AsyncMock(side_effect=RuntimeError("db down"))

        decision = await gatekeeper.can_create_employee(snapshot.tenant.id)

        assert not decision.allowed
        assert decision.kind == DenialKind.ERROR


@pytest.mark.asyncio
class TestFeatures:
    async def test_trial_grants_every_feature(self, db_session, make_tenant):
        snapshot = await make_tenant(db_session, "Acme")
        gatekeeper = EntitlementGatekeeper(db_session)

        assert (await gatekeeper.can_use_api(snapshot.tenant.id)).allowed
        assert (await gatekeeper.can_export_reports(snapshot.tenant.id, ExportFormat.PDF)).allowed

    async def test_starter_has_excel_but_not_pdf(self, db_session, make_tenant):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.STARTER, status=SubscriptionStatus.ACTIVE
        )
        gatekeeper = EntitlementGatekeeper(db_session)

        excel = await gatekeeper.can_export_reports(snapshot.tenant.id, ExportFormat.EXCEL)
        pdf = await gatekeeper.can_export_reports(snapshot.tenant.id, ExportFormat.PDF)

        assert excel.allowed
        assert not pdf.allowed
        assert pdf.kind == DenialKind.FEATURE
        assert pdf.suggested_plan == SubscriptionPlan.PROFESSIONAL

    async def test_free_has_no_api(self, db_session, make_tenant):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.FREE, status=SubscriptionStatus.ACTIVE
        )

        decision = await EntitlementGatekeeper(db_session).can_use_api(snapshot.tenant.id)

        assert not decision.allowed
        assert decision.suggested_plan == SubscriptionPlan.PROFESSIONAL


@pytest.mark.asyncio
class TestModifyData:
    async def test_active_and_trialing_may_write(self, db_session, make_tenant):
        trial = await make_tenant(db_session, "Trial")
        paid = await make_tenant(
            db_session, "Paid", plan=SubscriptionPlan.FREE, status=SubscriptionStatus.ACTIVE
        )
        gatekeeper = EntitlementGatekeeper(db_session)

        assert (await gatekeeper.can_modify_data(trial.tenant.id)).allowed
        assert (await gatekeeper.can_modify_data(paid.tenant.id)).allowed

    @pytest.mark.parametrize(
        "status", [SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED]
    )
    async def test_unusable_status_cannot_write(self, db_session, make_tenant, status):
        snapshot = await make_tenant(
            db_session, "Acme", plan=SubscriptionPlan.STARTER, status=status
        )

        with pytest.raises(SubscriptionInactiveError) as exc_info:
            await EntitlementGatekeeper(db_session).require_writable(snapshot.tenant.id)

        assert exc_info.value.status == status.value

    async def test_expired_trial_cannot_write(self, db_session, make_tenant):
        snapshot = await make_tenant(db_session, "Acme")
        await db_session.execute(
            update(Subscription)
            .where(Subscription.tenant_id == snapshot.tenant.id)
            .values(trial_ends_at=datetime.now(UTC) - timedelta(minutes=5))
        )

        decision = await EntitlementGatekeeper(db_session).can_modify_data(snapshot.tenant.id)

        assert not decision.allowed
        assert decision.kind == DenialKind.STATUS


@pytest.mark.asyncio
class TestUsage:
    async def test_usage_counts_members_and_pending(self, db_session, make_tenant, add_member):
        snapshot = await make_tenant(db_session, "Acme")
        tenant_id = snapshot.tenant.id
        await add_member(db_session, tenant_id, "owner@acme.test", TenantRole.OWNER)
        await _add_invitation(db_session, tenant_id, "a@acme.test")
        await _add_employees(db_session, tenant_id, 3)

        usage = await EntitlementGatekeeper(db_session).get_usage(tenant_id)

        assert usage.users_count == 2
        assert usage.employees_count == 3
        assert usage.max_users == 10
        assert usage.max_employees == 100


class TestEnforce:
    def test_allowed_is_noop(self):
        EntitlementGatekeeper.enforce(EntitlementDecision.allow())

    def test_limit_raises_plan_limit(self):
        decision = EntitlementDecision(
            allowed=False,
            reason="limit",
            kind=DenialKind.LIMIT,
            suggested_plan=SubscriptionPlan.STARTER,
            limit=5,
            resource="employees",
        )
        with pytest.raises(PlanLimitExceededError) as exc_info:
            EntitlementGatekeeper.enforce(decision)

        assert exc_info.value.limit == 5
        assert exc_info.value.suggested_plan == "Starter"
        assert exc_info.value.resource == "employees"

    def test_feature_raises_feature_error(self):
        decision = EntitlementDecision(
            allowed=False, reason="no", kind=DenialKind.FEATURE, resource="API access"
        )
        with pytest.raises(FeatureNotAvailableError):
            EntitlementGatekeeper.enforce(decision)

    @pytest.mark.parametrize("kind", [DenialKind.STATUS, DenialKind.TENANT, DenialKind.ERROR])
    def test_other_denials_raise_subscription_inactive(self, kind):
        decision = EntitlementDecision(allowed=False, reason="no", kind=kind, status="PastDue")
        with pytest.raises(SubscriptionInactiveError) as exc_info:
            EntitlementGatekeeper.enforce(decision)

        assert exc_info.value.status == "PastDue"
