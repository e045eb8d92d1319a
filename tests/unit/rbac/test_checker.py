"""Tests for the role, permission, delete and field gates."""

import uuid

import pytest

from workshop.core.errors import ForbiddenError, NotFoundError
from workshop.core.rbac.checker import (
    FieldGate,
    Principal,
    ensure_same_organization,
    has_permission,
    require_admin_for_delete,
    require_any_role,
    require_field_permission,
    require_permission,
)
from workshop.core.rbac.roles import SystemRole


def make_principal(roles=(), permissions=(), org_id=None) -> Principal:
    return Principal(
        user_id=uuid.uuid4(),
        organization_id=org_id or uuid.uuid4(),
        is_active=True,
        roles=frozenset(roles),
        permissions=frozenset(permissions),
    )


class StubResolver:
    def __init__(self, permissions):
        self.permissions = frozenset(permissions)
        self.calls = 0

    def resolve(self, user_id):
        self.calls += 1
        return self.permissions


GATE = FieldGate(
    safe_fields=frozenset({"a", "b", "c", "d", "e", "f", "g", "h", "i"}),
    relaxed_roles=frozenset({"receptionist", "customer_service"}),
    strict_permission="invoices.update",
)


class TestPrincipal:

    def test_admin_flag_follows_role_key(self):
        assert make_principal(roles=["admin"]).is_admin
        assert not make_principal(roles=["receptionist"]).is_admin

    def test_has_role_accepts_enum(self):
        principal = make_principal(roles=["receptionist"])
        assert principal.has_role(SystemRole.RECEPTIONIST)
        assert principal.has_role("admin", "receptionist")
        assert not principal.has_role(SystemRole.ADMIN)

    def test_permissions_resolved_once(self):
        principal = Principal(user_id=uuid.uuid4(), organization_id=uuid.uuid4(), is_active=True)
        resolver = StubResolver(["invoices.view"])

        assert principal.effective_permissions(resolver) == {"invoices.view"}
        assert principal.effective_permissions(resolver) == {"invoices.view"}
        assert resolver.calls == 1

    def test_unresolved_without_resolver_is_an_error(self):
        principal = Principal(user_id=uuid.uuid4(), organization_id=uuid.uuid4(), is_active=True)
        with pytest.raises(ValueError):
            principal.effective_permissions()


class TestRoleGate:

    def test_passes_with_any_allowed_role(self):
        require_any_role(make_principal(roles=["receptionist"]), ["admin", "receptionist"])

    def test_denies_without_allowed_role(self):
        with pytest.raises(ForbiddenError):
            require_any_role(make_principal(roles=["receptionist"]), [SystemRole.ADMIN])

    def test_denies_principal_without_roles(self):
        with pytest.raises(ForbiddenError):
            require_any_role(make_principal(), ["admin"])


class TestPermissionGate:

    def test_passes_with_permission(self):
        require_permission(make_principal(permissions=["invoices.view"]), "invoices.view")

    def test_denies_without_permission(self):
        with pytest.raises(ForbiddenError):
            require_permission(make_principal(permissions=["invoices.view"]), "invoices.update")

    def test_admin_always_passes(self):
        require_permission(make_principal(roles=["admin"]), "salaries.approve")

    def test_unknown_key_is_a_programming_error(self):
        with pytest.raises(ValueError):
            has_permission(make_principal(roles=["admin"]), "invoices.approve")

    def test_uses_resolver_when_not_attached(self):
        principal = Principal(user_id=uuid.uuid4(), organization_id=uuid.uuid4(), is_active=True)
        assert has_permission(principal, "vehicles.view", StubResolver(["vehicles.view"]))


class TestDeleteLockdown:

    def test_admin_may_delete(self):
        require_admin_for_delete(make_principal(roles=["admin"]))

    @pytest.mark.parametrize("key", ["invoices.delete", "customers.delete", "users.delete"])
    def test_delete_permission_is_not_enough(self, key):
        principal = make_principal(roles=["customer_service"], permissions=[key])
        with pytest.raises(ForbiddenError):
            require_admin_for_delete(principal)


class TestFieldGate:

    def test_safe_subset_is_relaxed(self):
        assert GATE.is_relaxed({"a", "b"})
        assert not GATE.is_relaxed({"a", "total"})

    def test_empty_payload_is_not_relaxed(self):
        assert not GATE.is_relaxed(set())

    def test_relaxed_role_passes_safe_payload(self):
        require_field_permission(make_principal(roles=["receptionist"]), {"a": 1, "b": 2}, GATE)

    def test_strict_permission_passes_safe_payload(self):
        principal = make_principal(roles=["technician"], permissions=["invoices.update"])
        require_field_permission(principal, ["a"], GATE)

    def test_safe_payload_without_role_or_permission_denied(self):
        with pytest.raises(ForbiddenError):
            require_field_permission(make_principal(roles=["technician"]), ["a"], GATE)

    def test_one_smuggled_field_forces_strict_gate(self):
        """Nine safe fields plus one outsider still needs the strict permission."""
        payload = {name: 1 for name in "abcdefghi"}
        payload["total"] = 50

        with pytest.raises(ForbiddenError):
            require_field_permission(make_principal(roles=["receptionist"]), payload, GATE)

    def test_strict_gate_passes_with_permission(self):
        principal = make_principal(roles=["receptionist"], permissions=["invoices.update"])
        require_field_permission(principal, {"a": 1, "total": 50}, GATE)

    def test_empty_payload_uses_strict_gate(self):
        with pytest.raises(ForbiddenError):
            require_field_permission(make_principal(roles=["receptionist"]), {}, GATE)

    def test_admin_passes_strict_gate(self):
        require_field_permission(make_principal(roles=["admin"]), {"total": 1}, GATE)

    def test_gate_rejects_unknown_strict_permission(self):
        with pytest.raises(ValueError):
            FieldGate(frozenset({"a"}), frozenset({"admin"}), "invoices.edit")


class TestOwnership:

    def test_same_organization_passes(self):
        principal = make_principal()
        ensure_same_organization(principal, principal.organization_id)

    def test_other_organization_is_not_found(self):
        with pytest.raises(NotFoundError):
            ensure_same_organization(make_principal(roles=["admin"]), uuid.uuid4(), "Invoice")

    def test_missing_organization_is_not_found(self):
        with pytest.raises(NotFoundError):
            ensure_same_organization(make_principal(), None)
