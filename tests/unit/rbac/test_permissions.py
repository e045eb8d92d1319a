"""Tests for the permission catalog and system role definitions."""

import pytest

from workshop.core.rbac.permissions import (
    PERMISSION_DEFINITIONS,
    Action,
    Category,
    Permission,
    Resource,
    catalog_entries,
    category_of,
    get_all_permissions,
    get_permissions_for_resource,
    is_valid_permission,
    permission_key,
)
from workshop.core.rbac.roles import (
    ADMIN_PERMISSIONS,
    CUSTOMER_SERVICE_PERMISSIONS,
    DEFAULT_ROLES,
    RECEPTIONIST_PERMISSIONS,
    SystemRole,
    get_default_role_permissions,
)


class TestPermissionModel:
    """Test permission definitions."""

    def test_permission_string_format(self):
        perm = Permission(Resource.INVOICES, Action.VIEW)
        assert str(perm) == "invoices.view"
        assert perm.key == "invoices.view"

    def test_permission_from_string(self):
        perm = Permission.from_string("work_orders.complete")
        assert perm.resource == Resource.WORK_ORDERS
        assert perm.action == Action.COMPLETE

    def test_invalid_permission_format(self):
        with pytest.raises(ValueError):
            Permission.from_string("invoices")
        with pytest.raises(ValueError):
            Permission.from_string("too.many.parts")

    def test_from_string_rejects_combination_outside_matrix(self):
        """Both halves exist but the pair is not in the catalog."""
        with pytest.raises(ValueError):
            Permission.from_string("dashboard.delete")

    def test_is_valid_permission(self):
        assert is_valid_permission("invoices.update")
        assert is_valid_permission("users.manage_permissions")
        assert not is_valid_permission("invoices.fly")
        assert not is_valid_permission("spaceships.view")

    def test_permission_key_raises_on_typo(self):
        assert permission_key("audit_logs.view") == "audit_logs.view"
        with pytest.raises(ValueError):
            permission_key("audit_log.view")


class TestCatalog:

    def test_catalog_has_seventy_keys(self):
        assert len(get_all_permissions()) == 70
        assert len(PERMISSION_DEFINITIONS) == 70

    def test_permissions_for_resource(self):
        assert get_permissions_for_resource(Resource.DASHBOARD) == ["dashboard.view"]
        invoice_perms = get_permissions_for_resource(Resource.INVOICES)
        assert invoice_perms[0] == "invoices.view"
        assert "invoices.void" in invoice_perms

    def test_categories(self):
        assert category_of("dashboard.view") == Category.GENERAL
        assert category_of("vehicles.update") == Category.OPERATIONS
        assert category_of("salaries.approve") == Category.FINANCIAL
        assert category_of("reports.financial") == Category.REPORTS
        assert category_of("roles.manage_permissions") == Category.ADMINISTRATION

    def test_catalog_entries_match_definitions(self):
        entries = catalog_entries()
        assert {e["key"] for e in entries} == set(PERMISSION_DEFINITIONS)
        first_invoice = next(e for e in entries if e["resource"] == "invoices")
        assert first_invoice == {
            "key": "invoices.view",
            "resource": "invoices",
            "action": "view",
            "category": "financial",
            "display_order": 0,
        }


class TestSystemRoles:

    def test_three_system_roles(self):
        assert set(DEFAULT_ROLES) == {"admin", "customer_service", "receptionist"}
        assert SystemRole.ADMIN.value == "admin"

    def test_admin_has_no_explicit_links(self):
        assert ADMIN_PERMISSIONS == []

    def test_default_role_permissions_are_catalog_keys(self):
        for role in DEFAULT_ROLES.values():
            for key in role["permissions"]:
                assert is_valid_permission(key)

    def test_baseline_sizes(self):
        assert len(CUSTOMER_SERVICE_PERMISSIONS) == 18
        assert len(RECEPTIONIST_PERMISSIONS) == 8

    def test_receptionist_lacks_invoice_update(self):
        assert "invoices.view" in RECEPTIONIST_PERMISSIONS
        assert "invoices.update" not in RECEPTIONIST_PERMISSIONS

    def test_no_default_role_holds_a_delete_permission(self):
        for role in DEFAULT_ROLES.values():
            assert not any(key.endswith(".delete") for key in role["permissions"])

    def test_get_default_role_permissions(self):
        assert get_default_role_permissions("receptionist") == RECEPTIONIST_PERMISSIONS
        with pytest.raises(ValueError):
            get_default_role_permissions("superuser")

    def test_every_role_has_arabic_name(self):
        for role in DEFAULT_ROLES.values():
            assert role["name_ar"]
