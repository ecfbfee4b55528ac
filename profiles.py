import logging
from typing import List, Optional

from sqlmodel import Session, col, select

from access import require_admin
from db import commit
from errors import NotFoundError, ValidationError
from models import Profile, utcnow

logger = logging.getLogger(__name__)


def get_profile(db: Session, identity_id: str) -> Profile:
    profile = db.get(Profile, identity_id)
    if profile is None:
        raise NotFoundError("Profile not found")
    return profile


def list_profiles(db: Session, admins_only: bool = False) -> List[Profile]:
    query = select(Profile)
    if admins_only:
        query = query.where(col(Profile.is_admin).is_(True))
    query = query.order_by(col(Profile.created_at).desc())
    return list(db.exec(query).all())


def update_username(db: Session, identity_id: Optional[str], username: str) -> Profile:
    """Rename the caller's own profile."""
    username = (username or "").strip()
    if not username:
        raise ValidationError("Please enter a valid username")

    profile = get_profile(db, identity_id or "")
    profile.username = username
    profile.updated_at = utcnow()
    db.add(profile)
    commit(db)
    db.refresh(profile)

    logger.info("Profile %s renamed", profile.id)
    return profile


def set_admin(db: Session, acting_id: Optional[str], target_id: str, is_admin: bool) -> Profile:
    require_admin(db, acting_id)

    profile = get_profile(db, target_id)
    profile.is_admin = is_admin
    profile.updated_at = utcnow()
    db.add(profile)
    commit(db)
    db.refresh(profile)

    logger.info(
        "Admin flag of %s set to %s by %s", target_id, is_admin, acting_id
    )
    return profile
