"""Database seeding for workshop access control.

Loads the permission catalog and creates the system roles of a new
organization. Every function is idempotent.
"""

import logging
import uuid
from typing import Optional

from slugify import slugify
from sqlalchemy.orm import Session
from sqlalchemy import and_, event

from workshop.core.rbac.permissions import catalog_entries
from workshop.core.rbac.roles import DEFAULT_ROLES, SystemRole
from workshop.db.models import Organization, Permission, Role, RolePermission
from workshop.db.trusted import find_organization_by_slug

logger = logging.getLogger(__name__)


def seed_permission_catalog(db: Session, cache=None) -> dict[str, Permission]:
    """
    Synchronize the ``permissions`` table with the catalog.

    Missing keys are inserted, existing keys get their metadata refreshed,
    and keys no longer in the catalog are deactivated rather than deleted.
    When anything changed and a cache is given, its generation is bumped
    once the session commits.

    Returns:
        Dict mapping permission key to Permission row, active rows only
    """
    existing = {p.key: p for p in db.query(Permission).all()}
    seen = set()
    added = 0
    changed = 0

    for entry in catalog_entries():
        seen.add(entry["key"])
        perm = existing.get(entry["key"])
        if perm is None:
            perm = Permission(id=uuid.uuid4(), is_active=True, **entry)
            db.add(perm)
            existing[perm.key] = perm
            added += 1
            continue
        for field in ("resource", "action", "category", "display_order"):
            if getattr(perm, field) != entry[field]:
                setattr(perm, field, entry[field])
                changed += 1
        if not perm.is_active:
            logger.info("Reactivating permission %s", perm.key)
            perm.is_active = True
            changed += 1

    for key, perm in existing.items():
        if key not in seen and perm.is_active:
            logger.info("Deactivating retired permission %s", key)
            perm.is_active = False
            changed += 1

    db.flush()
    if added:
        logger.info("Seeded %d permissions", added)
    if cache is not None and (added or changed):
        event.listen(db, "after_commit", lambda session: cache.invalidate_all(), once=True)
    return {key: perm for key, perm in existing.items() if perm.is_active}


def seed_default_roles(db: Session, organization_id: uuid.UUID, cache=None) -> dict[str, Role]:
    """
    Create the system roles for an organization.

    Roles are idempotent - if they already exist, returns existing roles
    without touching their permission links, which administrators may have
    edited since.

    Args:
        db: Database session
        organization_id: Organization ID to create roles for
        cache: Optional PermissionCache to bump if the catalog changed

    Returns:
        Dict mapping role key to Role object
    """
    catalog = seed_permission_catalog(db, cache)
    created_roles = {}

    for role_key, role_config in DEFAULT_ROLES.items():
        existing = db.query(Role).filter(
            and_(
                Role.organization_id == organization_id,
                Role.key == role_key,
            )
        ).first()

        if existing:
            created_roles[role_key] = existing
            continue

        role = Role(
            id=uuid.uuid4(),
            organization_id=organization_id,
            key=role_key,
            name=role_config["name"],
            name_ar=role_config["name_ar"],
            description=role_config["description"],
            is_system_role=True,
            is_active=True,
        )
        db.add(role)
        for perm_key in role_config["permissions"]:
            db.add(RolePermission(role_id=role.id, permission_id=catalog[perm_key].id))
        created_roles[role_key] = role

    db.flush()
    return created_roles


def seed_organization(
    db: Session,
    name: str,
    slug: Optional[str] = None,
    *,
    settings: Optional[dict] = None,
    cache=None,
) -> Organization:
    """
    Create a new organization with its system roles.

    Args:
        db: Database session
        name: Organization name
        slug: URL-friendly slug, derived from the name when omitted
        settings: Optional organization settings
        cache: Optional PermissionCache to bump if the catalog changed

    Returns:
        Created (or already existing) organization
    """
    slug = slug or slugify(name, max_length=100)
    existing = find_organization_by_slug(db, slug)
    if existing:
        seed_default_roles(db, existing.id, cache)
        return existing

    org = Organization(
        id=uuid.uuid4(),
        name=name,
        slug=slug,
        settings=settings or {},
    )
    db.add(org)
    db.flush()

    seed_default_roles(db, org.id, cache)
    logger.info("Onboarded organization %s (%s)", org.name, org.id)
    return org


def get_role_by_key(db: Session, organization_id: uuid.UUID, key: str) -> Optional[Role]:
    """Get a role by key within an organization."""
    return db.query(Role).filter(
        and_(
            Role.organization_id == organization_id,
            Role.key == key,
        )
    ).first()


def get_admin_role(db: Session, organization_id: uuid.UUID) -> Optional[Role]:
    """Get the admin role for an organization."""
    return get_role_by_key(db, organization_id, SystemRole.ADMIN.value)


# CLI script for seeding
if __name__ == "__main__":
    import sys
    from workshop.core.config import get_settings
    from workshop.core.rbac.cache import PermissionCache
    from workshop.db.session import SessionLocal

    settings = get_settings()
    cache = None
    if settings.permission_cache_enabled:
        cache = PermissionCache.from_url(settings.redis_url, settings.permission_cache_ttl_seconds)

    db = SessionLocal()
    try:
        org_name = sys.argv[1] if len(sys.argv) > 1 else "Default Workshop"
        org = seed_organization(db, name=org_name, cache=cache)
        print(f"Organization: {org.name} (ID: {org.id})")

        roles = db.query(Role).filter(Role.organization_id == org.id).all()
        print(f"\n{len(roles)} system roles:")
        for role in roles:
            if role.key == SystemRole.ADMIN.value:
                perm_display = "all permissions"
            else:
                perm_display = f"{len(role.permission_links)} permissions"
            print(f"  - {role.name}: {perm_display}")

        db.commit()
        print("\nSeeding complete!")

    except Exception as e:
        db.rollback()
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.close()
