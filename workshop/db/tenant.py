"""Tenant isolation filter.

Once a session is bound to an organization with :func:`bind_tenant`, every
ORM ``SELECT`` is rewritten so that rows of tenant-scoped tables outside
that organization are invisible, and every flush is checked so that no
tenant-scoped row of another organization is written. On PostgreSQL the
bound ids are also published as transaction-local settings that the
row-level security policies read, so the database enforces the same
boundary independently.

Sessions opened for a request are marked with :func:`require_tenant`; on
such a session an ORM query issued before binding is an error unless it
runs inside a trusted subsystem (see :mod:`workshop.db.trusted`).
"""

import itertools
import logging
from typing import Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy import event, or_, text
from sqlalchemy.orm import Session, ORMExecuteState, with_loader_criteria
from sqlalchemy.sql import Select

from workshop.core.errors import InternalError, NotFoundError
from workshop.db.base import Base

logger = logging.getLogger(__name__)

TENANT_KEY = "organization_id"
USER_KEY = "user_id"
TENANT_REQUIRED_KEY = "tenant_required"
TRUSTED_DEPTH_KEY = "trusted_depth"

# Transaction-local settings read by the row-level security policies
PG_USER_SETTING = "app.current_user_id"
PG_TENANT_SETTING = "app.current_organization_id"

T = TypeVar("T")


class TenantScoped:
    """Mixin for tables whose rows belong to exactly one organization."""


class TenantShared:
    """Mixin for tables that also hold global rows (``organization_id`` NULL).

    Global rows are readable by every tenant and writable by none.
    """


def require_tenant(session: Session) -> Session:
    session.info[TENANT_REQUIRED_KEY] = True
    return session


def bind_identity(session: Session, user_id: UUID) -> None:
    """Publish the authenticated user id before the tenant is known."""
    session.info[USER_KEY] = user_id
    _refresh_pg_settings(session)


def bind_tenant(session: Session, organization_id: UUID, user_id: Optional[UUID] = None) -> None:
    """Scope every subsequent query and flush on ``session`` to one organization."""
    if organization_id is None:
        raise InternalError("cannot bind a session to a null organization")
    bound = session.info.get(TENANT_KEY)
    if bound is not None and bound != organization_id:
        raise InternalError("session is already bound to another organization")
    session.info[TENANT_KEY] = organization_id
    if user_id is not None:
        session.info[USER_KEY] = user_id
    _refresh_pg_settings(session)


def bound_organization(session: Session) -> Optional[UUID]:
    return session.info.get(TENANT_KEY)


def _is_trusted(session: Session) -> bool:
    return session.info.get(TRUSTED_DEPTH_KEY, 0) > 0


def _is_tenant_row(obj) -> bool:
    return isinstance(obj, (TenantScoped, TenantShared))


def _refresh_pg_settings(session: Session) -> None:
    if session.in_transaction():
        _apply_pg_settings(session, session.connection())


def _apply_pg_settings(session: Session, connection) -> None:
    if connection.dialect.name != "postgresql":
        return
    for setting, key in ((PG_USER_SETTING, USER_KEY), (PG_TENANT_SETTING, TENANT_KEY)):
        value = session.info.get(key)
        connection.execute(
            text("SELECT set_config(:name, :value, true)"),
            {"name": setting, "value": str(value) if value is not None else ""},
        )


@event.listens_for(Session, "after_begin")
def _publish_pg_settings(session, transaction, connection):
    _apply_pg_settings(session, connection)


@event.listens_for(Session, "do_orm_execute")
def _filter_tenant_rows(state: ORMExecuteState):
    if not state.is_select or state.is_column_load or state.is_relationship_load:
        return
    if not isinstance(state.statement, Select):
        return
    session = state.session
    if _is_trusted(session):
        return

    org_id = session.info.get(TENANT_KEY)
    if org_id is None:
        if session.info.get(TENANT_REQUIRED_KEY):
            raise InternalError("query issued on a request session before the tenant was bound")
        return

    state.statement = state.statement.options(*_tenant_criteria(org_id))


def _tenant_mapped_classes():
    """Mapped subclasses of the tenant mixins, shared ones flagged."""
    for mapper in Base.registry.mappers:
        cls = mapper.class_
        if issubclass(cls, TenantShared):
            yield cls, True
        elif issubclass(cls, TenantScoped):
            yield cls, False


def _tenant_criteria(org_id: UUID) -> list:
    # Criteria are built per mapped class: the mixins themselves carry no columns
    options = []
    for cls, shared in _tenant_mapped_classes():
        if shared:
            options.append(with_loader_criteria(
                cls,
                lambda c: or_(c.organization_id == org_id, c.organization_id.is_(None)),
                include_aliases=True,
            ))
        else:
            options.append(with_loader_criteria(
                cls,
                lambda c: c.organization_id == org_id,
                include_aliases=True,
            ))
    return options


@event.listens_for(Session, "before_flush")
def _guard_tenant_writes(session, flush_context, instances):
    if _is_trusted(session):
        return
    org_id = session.info.get(TENANT_KEY)
    if org_id is None:
        if session.info.get(TENANT_REQUIRED_KEY) and any(
            _is_tenant_row(obj)
            for obj in itertools.chain(session.new, session.dirty, session.deleted)
        ):
            raise InternalError("write issued on a request session before the tenant was bound")
        return

    for obj in session.new:
        if _is_tenant_row(obj) and obj.organization_id is None:
            obj.organization_id = org_id

    for obj in itertools.chain(session.new, session.dirty, session.deleted):
        if _is_tenant_row(obj) and obj.organization_id != org_id:
            logger.error(
                "Blocked cross-tenant write of %r (row org %s, session org %s)",
                obj, obj.organization_id, org_id,
            )
            raise InternalError("cross-tenant write blocked")


def get_scoped_or_404(
    db: Session,
    model: Type[T],
    object_id: UUID,
    organization_id: UUID,
    resource: Optional[str] = None,
) -> T:
    """Load one row by id within ``organization_id`` or raise NotFoundError.

    The organization is an explicit argument so the check holds even on a
    session that has not been bound.
    """
    if issubclass(model, TenantShared):
        scope = or_(model.organization_id == organization_id, model.organization_id.is_(None))
    else:
        scope = model.organization_id == organization_id
    obj = db.query(model).filter(model.id == object_id, scope).first()
    if obj is None:
        raise NotFoundError(resource or model.__name__)
    return obj
