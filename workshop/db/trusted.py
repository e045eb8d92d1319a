"""Trusted subsystem boundary.

A small, reviewed set of functions is allowed to read across the tenant
isolation filter. Each one is registered with a justification and runs
with the filter suspended only for its own duration. Nothing outside this
module should suspend the filter.
"""

import logging
from functools import wraps
from typing import Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from workshop.db.models import User, Organization
from workshop.db.tenant import TRUSTED_DEPTH_KEY

logger = logging.getLogger(__name__)

# function name -> justification
TRUSTED_SUBSYSTEMS: Dict[str, str] = {}


def trusted_subsystem(reason: str):
    """Register a function that may bypass tenant isolation.

    The wrapped function must take the session as its first argument.
    """
    def decorator(func: Callable):
        TRUSTED_SUBSYSTEMS[func.__name__] = reason

        @wraps(func)
        def wrapper(db: Session, *args, **kwargs):
            db.info[TRUSTED_DEPTH_KEY] = db.info.get(TRUSTED_DEPTH_KEY, 0) + 1
            try:
                return func(db, *args, **kwargs)
            finally:
                db.info[TRUSTED_DEPTH_KEY] -= 1
        return wrapper
    return decorator


@trusted_subsystem("the caller's organization is not known until their profile is loaded")
def load_principal_profile(db: Session, user_id: UUID) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


@trusted_subsystem("organization onboarding runs before any tenant exists")
def find_organization_by_slug(db: Session, slug: str) -> Optional[Organization]:
    return db.query(Organization).filter(Organization.slug == slug).first()


@trusted_subsystem("user ids are issued globally; a profile in any organization blocks re-provisioning")
def profile_exists(db: Session, user_id: UUID) -> bool:
    return db.query(User.id).filter(User.id == user_id).first() is not None
