"""Tests for rbaccore.enforcement module."""

from __future__ import annotations

import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import TENANT

from rbaccore.config import RbacConfig
from rbaccore.enforcement import Actor, Decision, DenyDetails, Enforcer
from rbaccore.exceptions import (
    AuthorizationUnavailableError,
    ConfigurationError,
    RepositoryUnavailableError,
    UnauthenticatedError,
    get_http_status,
)
from rbaccore.permissions import Level, ResourceKey, Scope
from rbaccore.query_context import PERMISSIVE_CONTEXT

APPROVE = ResourceKey("ar", "ar-invoices", "approve")
INVOICES = ResourceKey("ar", "ar-invoices")


def _member(user_id: str = "u1") -> Actor:
    return Actor(user_id=user_id, tenant=TENANT, role="member")


class TestAuthentication:
    @pytest.mark.asyncio
    async def test_no_actor(self, enforcer):
        with pytest.raises(UnauthenticatedError):
            await enforcer.enforce(None, INVOICES)

    @pytest.mark.asyncio
    async def test_actor_without_user_id(self, enforcer):
        with pytest.raises(UnauthenticatedError):
            await enforcer.enforce(Actor(user_id="", tenant=TENANT), INVOICES)


class TestCapabilityDecisions:
    @pytest.mark.asyncio
    async def test_module_view_denies_full(self, store, enforcer):
        store.add_role("r1")
        store.add_policy("r1", "ar", level="view")
        store.grant("u1", "r1")

        decision = await enforcer.enforce(_member(), APPROVE, "POST", required="full")
        assert not decision.allowed
        assert decision.details.have is Level.VIEW
        assert decision.details.needed is Level.FULL

    @pytest.mark.asyncio
    async def test_specific_none_overrides_wildcard(self, store, enforcer):
        store.add_role("r1")
        store.add_policy("r1", "ar", level="view")
        store.add_policy("r1", "ar", "ar-invoices", "approve", level="none")
        store.grant("u1", "r1")

        decision = await enforcer.enforce(_member(), APPROVE, "POST", required="full")
        assert not decision.allowed
        assert decision.details.have is Level.NONE

    @pytest.mark.asyncio
    async def test_specific_none_denies_even_view(self, store, enforcer):
        store.add_role("r1")
        store.add_policy("r1", "ar", level="full")
        store.add_policy("r1", "ar", "ar-invoices", "approve", level="none")
        store.grant("u1", "r1")

        assert not await enforcer.enforce(_member(), APPROVE, "GET")
        assert await enforcer.enforce(_member(), INVOICES, "DELETE")

    @pytest.mark.asyncio
    async def test_get_needs_view(self, store, enforcer):
        store.add_role("r1")
        store.add_policy("r1", "ar", level="view")
        store.grant("u1", "r1")

        assert (await enforcer.enforce(_member(), INVOICES, "GET")).allowed
        assert (await enforcer.enforce(_member(), INVOICES, "head")).allowed
        decision = await enforcer.enforce(_member(), INVOICES, "PUT")
        assert not decision.allowed
        assert decision.details.needed is Level.FULL
        assert decision.details.method == "PUT"

    @pytest.mark.asyncio
    async def test_explicit_hint_overrides_method(self, store, enforcer):
        store.add_role("r1")
        store.add_policy("r1", "ar", level="view")
        store.grant("u1", "r1")

        assert (await enforcer.enforce(_member(), INVOICES, "POST", required=Level.VIEW)).allowed

    @pytest.mark.asyncio
    async def test_unknown_hint_rejected_not_allowed(self, store, enforcer):
        store.add_role("r1")
        store.grant("u1", "r1")

        with pytest.raises(ConfigurationError):
            await enforcer.enforce(_member(), APPROVE, "POST", required="write")
        assert store.calls["memberships"] == 0

    @pytest.mark.asyncio
    async def test_hint_string_is_normalized(self, store, enforcer):
        store.add_role("r1")
        store.add_policy("r1", "ar", level="view")
        store.grant("u1", "r1")

        assert (await enforcer.enforce(_member(), INVOICES, "POST", required=" View ")).allowed
        assert not (await enforcer.enforce(_member(), INVOICES, "GET", required="FULL")).allowed

    @pytest.mark.asyncio
    async def test_merged_roles_allow(self, store, enforcer):
        store.add_role("r1")
        store.add_role("r2")
        store.add_policy("r1", "ar", level="view")
        store.add_policy("r2", "ar", level="full")
        store.grant("u1", "r1", "r2")

        assert (await enforcer.enforce(_member(), INVOICES, "POST")).allowed

    @pytest.mark.asyncio
    async def test_no_roles_denied(self, enforcer):
        decision = await enforcer.enforce(_member("nobody"), INVOICES)
        assert not decision.allowed
        assert decision.details.have is Level.NONE

    @pytest.mark.asyncio
    async def test_no_tenant_denied(self, store, enforcer):
        store.add_role("r1")
        store.add_policy("r1", "ar", level="full")
        store.grant("u1", "r1")

        decision = await enforcer.enforce(Actor(user_id="u1", role="member"), INVOICES)
        assert not decision.allowed
        assert store.calls["memberships"] == 0


class TestBypassRoles:
    @pytest.mark.asyncio
    async def test_super_admin_allowed_everywhere(self, store, enforcer):
        actor = Actor(user_id="root", tenant=TENANT, role="super_admin")
        assert (await enforcer.enforce(actor, ResourceKey("tenants", "tenants"), "DELETE")).allowed
        assert (await enforcer.enforce(actor, APPROVE, "POST")).allowed
        assert store.calls["memberships"] == 0

    @pytest.mark.asyncio
    async def test_admin_allowed_outside_reserved_module(self, store, enforcer):
        actor = Actor(user_id="a1", tenant=TENANT, role="admin")
        assert (await enforcer.enforce(actor, APPROVE, "POST")).allowed
        assert store.calls["memberships"] == 0

    @pytest.mark.asyncio
    async def test_admin_denied_on_tenants_module(self, enforcer):
        actor = Actor(user_id="a1", tenant=TENANT, role="admin")
        decision = await enforcer.enforce(actor, ResourceKey("tenants", "tenants"), "GET")

        assert not decision.allowed
        assert decision.details.to_dict() == {
            "userId": "a1",
            "tenantId": TENANT,
            "module": "tenants",
            "router": "tenants",
            "action": "",
            "method": "GET",
            "needed": "full",
            "have": "none",
            "note": "admin cannot access tenants module",
        }

    @pytest.mark.asyncio
    async def test_reserved_module_from_config(self, permission_cache):
        enforcer = Enforcer(permission_cache, RbacConfig(reserved_module="platform"))
        actor = Actor(user_id="a1", tenant=TENANT, role="admin")
        assert (await enforcer.enforce(actor, ResourceKey("tenants"), "GET")).allowed
        assert not (await enforcer.enforce(actor, ResourceKey("platform"), "GET")).allowed


class TestDenyPayload:
    def test_note_omitted_when_absent(self):
        details = DenyDetails(
            user_id="u1",
            tenant_id=TENANT,
            module="ar",
            router="ar-invoices",
            action="approve",
            method="POST",
            needed=Level.FULL,
            have=Level.VIEW,
        )
        payload = details.to_dict()
        assert "note" not in payload
        assert set(payload) == {"userId", "tenantId", "module", "router", "action", "method", "needed", "have"}

    def test_decision_truthiness(self):
        assert Decision.allow()
        assert not Decision.deny(MagicMock())

    @pytest.mark.asyncio
    async def test_deny_is_audited(self, store, enforcer, caplog):
        store.add_role("r1")
        store.grant("u1", "r1")

        with caplog.at_level(logging.WARNING, logger="rbaccore.enforcement"):
            await enforcer.enforce(_member(), APPROVE, "POST")

        records = [r for r in caplog.records if r.getMessage() == "RBAC deny"]
        assert len(records) == 1
        assert records[0].levelno == logging.WARNING
        assert records[0].deny["needed"] == "full"
        assert records[0].user_id == "u1"
        assert records[0].tenant == TENANT


class TestFailures:
    @pytest.mark.asyncio
    async def test_repository_failure_is_unavailable_not_deny(self, store, enforcer):
        store.failing.add("memberships")
        with pytest.raises(RepositoryUnavailableError) as exc_info:
            await enforcer.enforce(_member(), INVOICES)
        assert get_http_status(exc_info.value) == 503

    @pytest.mark.asyncio
    async def test_unexpected_error_is_unavailable(self):
        cache = MagicMock()
        cache.get_or_resolve = AsyncMock(side_effect=RuntimeError("boom"))
        enforcer = Enforcer(cache)

        with pytest.raises(AuthorizationUnavailableError) as exc_info:
            await enforcer.enforce(_member(), INVOICES)
        assert get_http_status(exc_info.value) == 500


class TestQueryContext:
    @pytest.mark.asyncio
    async def test_bypass_role_gets_permissive_context(self, enforcer):
        actor = Actor(user_id="a1", tenant=TENANT, role="admin")
        assert await enforcer.query_context(actor, "ar", "ar-invoices") is PERMISSIVE_CONTEXT

    @pytest.mark.asyncio
    async def test_member_context_from_canon(self, store, enforcer):
        store.add_role("r1", scope=Scope.ASSIGNED_COMPANIES)
        store.add_state_filter("r1", "ar", "ar-invoices", ["sent"])
        store.company_members["u1"] = ["C1"]
        store.company_projects["C1"] = ["P1", "P2"]
        store.grant("u1", "r1")

        ctx = await enforcer.query_context(_member(), "ar", "ar-invoices")
        assert ctx.scope is Scope.ASSIGNED_COMPANIES
        assert ctx.project_ids == ("P1", "P2")
        assert ctx.visible_statuses == ("sent",)
