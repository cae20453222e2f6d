"""Tests for signup, login and session refresh."""

import pytest

from planilla.core.accounts import AccountService
from planilla.core.context import resolve_context
from planilla.core.exceptions import AuthenticationError, ConflictError
from planilla.core.roles import TenantRole
from planilla.core.security import decode_access_token
from planilla.core.tenant import TenantService
from planilla.db.repositories import PayrollConfigRepository, TenantUserRepository

PASSWORD = "a-long-enough-password"


@pytest.fixture
def accounts(db_session, test_settings) -> AccountService:
    return AccountService(db_session, test_settings)


@pytest.mark.asyncio
class TestRegister:
    async def test_creates_tenant_owner_and_session(self, accounts, db_session, test_settings):
        grant = await accounts.register(
            email=" Owner@Acme.Test ", password=PASSWORD, company_name="Acme Corp"
        )

        assert grant.user.email == "owner@acme.test"
        assert grant.membership.role_enum == TenantRole.OWNER
        assert grant.subscription.plan == "Professional"
        assert grant.subscription.status == "Trialing"
        ctx = resolve_context(decode_access_token(test_settings, grant.token))
        assert ctx.tenant_id == grant.tenant.id
        assert ctx.role == TenantRole.OWNER
        assert ctx.plan == "Professional"

        configs = await PayrollConfigRepository(db_session).list(grant.tenant.id)
        assert len(configs) == 1

    async def test_email_registered_twice_conflicts(self, accounts):
        await accounts.register(email="owner@acme.test", password=PASSWORD, company_name="Acme")

        with pytest.raises(ConflictError):
            await accounts.register(
                email="OWNER@acme.test", password=PASSWORD, company_name="Other"
            )

    async def test_tenants_are_distinct(self, accounts):
        a = await accounts.register(email="a@acme.test", password=PASSWORD, company_name="Acme")
        b = await accounts.register(email="b@beta.test", password=PASSWORD, company_name="Acme")

        assert a.tenant.id != b.tenant.id
        assert a.tenant.subdomain != b.tenant.subdomain


@pytest.mark.asyncio
class TestLogin:
    async def test_login_succeeds(self, accounts, test_settings):
        registered = await accounts.register(
            email="owner@acme.test", password=PASSWORD, company_name="Acme"
        )

        grant = await accounts.login("owner@acme.test", PASSWORD)

        ctx = resolve_context(decode_access_token(test_settings, grant.token))
        assert ctx.tenant_id == registered.tenant.id
        assert grant.membership.last_login_at is not None

    @pytest.mark.parametrize(
        ("email", "password"),
        [("owner@acme.test", "wrong-password"), ("nobody@acme.test", PASSWORD)],
    )
    async def test_bad_credentials_are_indistinguishable(self, accounts, email, password):
        await accounts.register(email="owner@acme.test", password=PASSWORD, company_name="Acme")

        with pytest.raises(AuthenticationError) as exc_info:
            await accounts.login(email, password)
        assert exc_info.value.reason == "Invalid email or password"

    async def test_inactive_tenant_blocks_login(self, accounts, db_session):
        grant = await accounts.register(
            email="owner@acme.test", password=PASSWORD, company_name="Acme"
        )
        await TenantService(db_session).deactivate_tenant(grant.tenant.id)

        with pytest.raises(AuthenticationError):
            await accounts.login("owner@acme.test", PASSWORD)


@pytest.mark.asyncio
class TestCurrentAndRefresh:
    async def test_refresh_reflects_role_change(self, accounts, db_session, test_settings):
        grant = await accounts.register(
            email="owner@acme.test", password=PASSWORD, company_name="Acme"
        )
        ctx = grant.context
        await TenantUserRepository(db_session).update_by_id(
            grant.tenant.id, grant.membership.id, {"role": int(TenantRole.ADMIN)}
        )

        refreshed = await accounts.refresh(ctx)

        claims = decode_access_token(test_settings, refreshed.token)
        assert claims["tenant_role"] == "Admin"

    async def test_deactivated_membership_rejected(self, accounts, db_session):
        grant = await accounts.register(
            email="owner@acme.test", password=PASSWORD, company_name="Acme"
        )
        await TenantUserRepository(db_session).update_by_id(
            grant.tenant.id, grant.membership.id, {"is_active": False}
        )

        with pytest.raises(AuthenticationError):
            await accounts.current(grant.context)
