"""Concurrent readers during a permission replace see the old or the new set.

Uses a file-backed SQLite database so that the replacing session and the
reading session hold separate connections.
"""

import pytest
from sqlalchemy.orm import sessionmaker

from workshop.api.middleware.audit import AuditRecorder
from workshop.core.rbac.checker import Principal
from workshop.core.rbac.resolver import PermissionResolver
from workshop.db.seed import get_admin_role, seed_organization, seed_permission_catalog
from workshop.db.tenant import bind_tenant
from workshop.services.access_control import AccessControlService
from tests.factories import create_override, create_role, create_user, make_sqlite_engine, permission_ids


class ObservingRecorder(AuditRecorder):
    """Runs ``observe`` from inside the open transaction, before the audit write."""

    def __init__(self, db, observe):
        super().__init__(db, "198.51.100.4", "pytest")
        self.observe = observe
        self.seen = []

    def record(self, **kwargs):
        self.seen.append(self.observe())
        return super().record(**kwargs)


@pytest.fixture
def file_sessions(tmp_path):
    engine = make_sqlite_engine(f"sqlite:///{tmp_path / 'workshop.db'}")
    factory = sessionmaker(bind=engine, autoflush=False)
    yield factory
    engine.dispose()


@pytest.fixture
def arranged(file_sessions):
    db = file_sessions()
    seed_permission_catalog(db)
    org = seed_organization(db, "Dune Road Motors")
    admin = create_user(db, org=org, roles=[get_admin_role(db, org.id)])
    front_desk = create_role(db, org=org, key="front_desk", permissions=["customers.view", "customers.create"])
    clerk = create_user(db, org=org, roles=[front_desk])
    create_override(db, user=clerk, permission="invoices.view")
    db.commit()
    ids = (org.id, admin.id, clerk.id)
    db.close()
    return ids


def resolve_in_new_session(factory, user_id):
    db = factory()
    try:
        return PermissionResolver(db).resolve(user_id)
    finally:
        db.close()


@pytest.mark.integration
class TestAtomicOverrideReplace:

    OLD = frozenset({"customers.view", "customers.create", "invoices.view"})

    def _service(self, db, org_id, admin_id, recorder):
        bind_tenant(db, org_id, admin_id)
        principal = Principal(user_id=admin_id, organization_id=org_id, is_active=True, roles=frozenset({"admin"}))
        return AccessControlService(db, principal, recorder)

    def test_reader_sees_old_set_until_commit(self, file_sessions, arranged):
        org_id, admin_id, clerk_id = arranged
        db = file_sessions()
        recorder = ObservingRecorder(db, lambda: resolve_in_new_session(file_sessions, clerk_id))
        service = self._service(db, org_id, admin_id, recorder)

        service.replace_user_permission_overrides(clerk_id, [])
        db.close()

        # Overrides already deleted and re-inserted in the open transaction
        assert recorder.seen == [self.OLD]
        assert resolve_in_new_session(file_sessions, clerk_id) == frozenset()

    def test_reader_never_sees_role_only_state(self, file_sessions, arranged):
        org_id, admin_id, clerk_id = arranged
        db = file_sessions()
        selection = ["customers.view", "reports.view"]
        recorder = ObservingRecorder(db, lambda: resolve_in_new_session(file_sessions, clerk_id))
        service = self._service(db, org_id, admin_id, recorder)

        service.replace_user_permission_overrides(clerk_id, permission_ids(db, selection))
        db.close()

        assert recorder.seen != [frozenset({"customers.view", "customers.create"})]
        assert recorder.seen == [self.OLD]
        assert resolve_in_new_session(file_sessions, clerk_id) == frozenset(selection)
