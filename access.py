"""Page and action authorization derived from the session and the profile.

These checks decide what the app renders or accepts. The same rules are
re-applied by the services before every write.
"""
from typing import Optional

from sqlmodel import Session

from errors import AuthError
from models import Profile, Role
from session_store import SessionState

HOME_URL = "/"
LOGIN_URL = "/login"

DASHBOARD_URLS = {
    Role.donor: "/donor",
    Role.volunteer: "/volunteer",
}


def dashboard_redirect(state: SessionState, required_role: Role) -> Optional[str]:
    """Where to send `state` instead of the `required_role` dashboard, if anywhere."""
    if not state.is_authenticated:
        return LOGIN_URL
    if state.role != required_role:
        return HOME_URL
    return None


def auth_page_redirect(state: SessionState) -> Optional[str]:
    """Signed-in identities with a role skip the login and signup forms."""
    if state.is_authenticated and state.role is not None:
        return DASHBOARD_URLS[state.role]
    return None


def is_admin(db: Session, state: SessionState) -> bool:
    if not state.is_authenticated:
        return False
    profile = db.get(Profile, state.identity_id)
    if profile is None:
        return False
    # the session may hold a stale copy of the same row
    db.refresh(profile)
    return profile.is_admin


def require_role(state: SessionState, role: Role) -> SessionState:
    if not state.is_authenticated:
        raise AuthError("Not logged in")
    if state.role != role:
        raise AuthError(f"Only {role.value}s can do this.", status_code=403)
    return state


def require_admin(db: Session, identity_id: Optional[str]) -> Profile:
    if not identity_id:
        raise AuthError("Not logged in")
    profile = db.get(Profile, identity_id)
    if profile is not None:
        db.refresh(profile)
    if profile is None or not profile.is_admin:
        raise AuthError("Admin access required.", status_code=403)
    return profile


def require_completer(db: Session, state: SessionState, volunteer_id: Optional[str]) -> None:
    """Only the volunteer holding a donation, or an admin, may complete it."""
    if not state.is_authenticated:
        raise AuthError("Not logged in")
    if volunteer_id is not None and volunteer_id == state.identity_id:
        return
    if not is_admin(db, state):
        raise AuthError(
            "Only the volunteer who accepted this donation can complete it.",
            status_code=403,
        )
