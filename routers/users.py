# routers/users.py
from typing import List

from fastapi import APIRouter

import profiles
from access import require_admin
from db import SessionDep
from schemas import AdminFlagUpdate, ProfileRead, UsernameUpdate
from session_store import CurrentSessionDep

router = APIRouter(tags=["users"])


@router.get("/", response_model=List[ProfileRead])
def list_users(session: SessionDep, current: CurrentSessionDep, admins_only: bool = False):
    """
    List all profiles (admin only).
    """
    require_admin(session, current.identity_id)
    return profiles.list_profiles(session, admins_only=admins_only)


@router.get("/me", response_model=ProfileRead)
def read_own_profile(session: SessionDep, current: CurrentSessionDep):
    return profiles.get_profile(session, current.identity_id)


@router.patch("/me", response_model=ProfileRead)
def update_own_profile(
    update: UsernameUpdate,
    session: SessionDep,
    current: CurrentSessionDep,
):
    return profiles.update_username(session, current.identity_id, update.username)


@router.patch("/{user_id}/admin", response_model=ProfileRead)
def set_admin_flag(
    user_id: str,
    update: AdminFlagUpdate,
    session: SessionDep,
    current: CurrentSessionDep,
):
    return profiles.set_admin(session, current.identity_id, user_id, update.is_admin)
