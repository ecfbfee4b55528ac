"""Current identity, role and profile for one request.

The signed ``session`` cookie is the local cache: it carries the identity id
and the role picked on the login/signup form. The role stored on the
Identity is the provider's copy and wins whenever it is set.
"""
import logging
from dataclasses import dataclass
from typing import Annotated, Optional, Tuple

from fastapi import Cookie, Depends, Response
from itsdangerous import BadSignature, URLSafeTimedSerializer
from sqlmodel import Session

import config
from db import SessionDep
from errors import AuthError
from identity import ensure_profile, get_identity, update_role
from models import Identity, Profile, Role

logger = logging.getLogger(__name__)

serializer = URLSafeTimedSerializer(config.SECRET_KEY, salt="fooddrop-session")


@dataclass(frozen=True)
class SessionState:
    identity: Optional[Identity] = None
    role: Optional[Role] = None
    profile: Optional[Profile] = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def identity_id(self) -> Optional[str]:
        return self.identity.id if self.identity is not None else None

    @property
    def is_admin(self) -> bool:
        # display only; authorization re-reads the profile (see access.is_admin)
        return bool(self.profile and self.profile.is_admin)


ANONYMOUS = SessionState()


def create_session_token(identity_id: Optional[str], role: Optional[Role]) -> str:
    """
    Store identity id + role in the signed token.
    Example data:
        {"user_id": "5f0c…", "role": "donor"}
    """
    return serializer.dumps(
        {"user_id": identity_id, "role": role.value if role else None}
    )


def verify_session_token(token: str, max_age_seconds: int = config.SESSION_MAX_AGE):
    """
    Returns dict {'user_id': ..., 'role': ...} if valid,
    or None if token is invalid/expired.
    """
    try:
        return serializer.loads(token, max_age=max_age_seconds)
    except BadSignature:
        return None


def _parse_role(value) -> Optional[Role]:
    try:
        return Role(value) if value else None
    except ValueError:
        return None


def establish_session(db: Session, token: Optional[str]) -> SessionState:
    """
    Resolve the session behind a cookie token.

    The provider role wins when present. When the provider has none, the
    cached role is used and pushed back to the provider.
    """
    if not token:
        return ANONYMOUS

    data = verify_session_token(token)
    if not data:
        return ANONYMOUS

    cached_role = _parse_role(data.get("role"))
    identity = get_identity(db, data.get("user_id"))
    if identity is None:
        # the role survives locally until the next sign-in
        return SessionState(role=cached_role)

    if identity.role is None and cached_role is not None:
        identity = update_role(db, identity, cached_role)
    elif identity.role is not None and identity.role != cached_role:
        logger.debug(
            "Cached role %s for %s superseded by %s", cached_role, identity.id, identity.role
        )

    profile = ensure_profile(db, identity)
    return SessionState(identity=identity, role=identity.role, profile=profile)


def sign_in_session(db: Session, identity: Identity, role: Role) -> Tuple[SessionState, str]:
    """Open a session for a freshly authenticated identity under `role`."""
    state = SessionState(identity=identity, role=identity.role, profile=ensure_profile(db, identity))
    return set_role(db, state, role)


def set_role(db: Session, state: SessionState, role: Role) -> Tuple[SessionState, str]:
    """
    Persist the role locally (the returned token) and in the provider
    metadata. Without an identity only the local copy changes.
    """
    if state.identity is None:
        return SessionState(role=role), create_session_token(None, role)

    identity = update_role(db, state.identity, role)
    new_state = SessionState(identity=identity, role=identity.role, profile=state.profile)
    return new_state, create_session_token(identity.id, identity.role)


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=config.SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="lax",
        max_age=config.SESSION_MAX_AGE,
    )


def sign_out(response: Response) -> SessionState:
    """Drop the session cookie; the caller is anonymous from now on."""
    response.delete_cookie(config.SESSION_COOKIE)
    return ANONYMOUS


def get_session_state(
    db: SessionDep,
    session_token: Optional[str] = Cookie(default=None, alias=config.SESSION_COOKIE),
) -> SessionState:
    return establish_session(db, session_token)


SessionStateDep = Annotated[SessionState, Depends(get_session_state)]


def require_identity(state: SessionStateDep) -> SessionState:
    if not state.is_authenticated:
        raise AuthError("Not logged in")
    return state


CurrentSessionDep = Annotated[SessionState, Depends(require_identity)]
