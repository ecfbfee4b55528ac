"""Email/password identity provider.

Owns the Identity records and the role metadata stored on them. Profiles are
created here as well, alongside every new identity.
"""
import logging
from typing import Optional

from passlib.context import CryptContext
from sqlmodel import Session, select

from db import commit
from errors import AuthError, RemoteError, ValidationError
from models import Identity, Profile, Role, utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_identity(db: Session, identity_id: Optional[str]) -> Optional[Identity]:
    if not identity_id:
        return None
    return db.get(Identity, identity_id)


def find_by_email(db: Session, email: str) -> Optional[Identity]:
    return db.exec(
        select(Identity).where(Identity.email == normalize_email(email))
    ).first()


def sign_up(
    db: Session,
    email: str,
    password: str,
    username: Optional[str] = None,
) -> Identity:
    """
    Register a new identity with a hashed password and create its profile.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    if find_by_email(db, email) is not None:
        raise RemoteError("User already registered", status_code=400)

    identity = Identity(
        email=normalize_email(email),
        password_hash=hash_password(password),
    )
    db.add(identity)
    # the profile row references the identity, so flush it first
    db.flush()

    username = (username or "").strip() or None
    db.add(Profile(id=identity.id, username=username))
    commit(db)
    db.refresh(identity)

    logger.info("Registered identity %s", identity.id)
    return identity


def sign_in(db: Session, email: str, password: str) -> Identity:
    identity = find_by_email(db, email)
    if identity is None or not verify_password(password, identity.password_hash):
        raise AuthError("Invalid email or password", status_code=400)
    return identity


def update_role(db: Session, identity: Identity, role: Role) -> Identity:
    """Write the role into the identity's metadata."""
    if identity.role == role:
        return identity

    identity.role = role
    db.add(identity)
    commit(db)
    db.refresh(identity)

    logger.info("Identity %s switched role to %s", identity.id, role.value)
    return identity


def ensure_profile(db: Session, identity: Identity) -> Profile:
    """Return the identity's profile, creating a blank one if it went missing."""
    profile = db.get(Profile, identity.id)
    if profile is None:
        profile = Profile(id=identity.id, created_at=utcnow())
        db.add(profile)
        commit(db)
        db.refresh(profile)
        logger.warning("Recreated missing profile for identity %s", identity.id)
    return profile
