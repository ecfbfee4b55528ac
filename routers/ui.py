import json
from typing import List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

import lifecycle
import profiles
from access import require_admin, require_completer, require_role
from changefeed import ChangeFeedDep
from db import SessionDep
from errors import FoodDropError, ValidationError
from models import Donation, DonationStatus, Role
from schemas import DonationFilter
from session_store import CurrentSessionDep
from storage import BlobStorageDep

from .common import (
    FLASH_ERROR,
    FLASH_SUCCESS,
    REFRESH_EVENT,
    flash,
    read_image,
    read_payload,
    render,
)

router = APIRouter(prefix="/ui", tags=["ui"])


DONOR_TABS = {
    "active": {DonationStatus.pending, DonationStatus.accepted},
    "completed": {DonationStatus.completed},
    "cancelled": {DonationStatus.cancelled},
}

VOLUNTEER_TABS = ("available", "claimed", "completed")


def _with_refresh(response: HTMLResponse, **extra: bool) -> HTMLResponse:
    response.headers["HX-Trigger"] = json.dumps({REFRESH_EVENT: True, **extra})
    return response


def _load_donor_donations(session: SessionDep, donor_id: str, tab: str, q: Optional[str]) -> List[Donation]:
    donations = lifecycle.list_donations(session, DonationFilter(donor_id=donor_id, search=q))
    wanted = DONOR_TABS.get(tab, DONOR_TABS["active"])
    return [d for d in donations if d.status in wanted]


def _load_volunteer_donations(
    session: SessionDep, volunteer_id: str, tab: str, q: Optional[str]
) -> List[Donation]:
    if tab == "claimed":
        filters = DonationFilter(volunteer_id=volunteer_id, status=DonationStatus.accepted, search=q)
    elif tab == "completed":
        filters = DonationFilter(volunteer_id=volunteer_id, status=DonationStatus.completed, search=q)
    else:
        filters = DonationFilter(status=DonationStatus.pending, search=q)
    return lifecycle.list_donations(session, filters)


def _render_list(
    request: Request,
    donations: List[Donation],
    mode: str,
    tab: str,
    flash_message: Optional[dict] = None,
    status_code: int = 200,
) -> HTMLResponse:
    return render(
        request,
        "fragments/donations_list.html",
        status_code=status_code,
        donations=donations,
        mode=mode,
        tab=tab,
        statuses=[s.value for s in DonationStatus],
        flash_message=flash_message,
    )


def _render_form(
    request: Request,
    form_data: dict,
    errors: List[str],
    flash_message: Optional[dict] = None,
    status_code: int = 200,
) -> HTMLResponse:
    return render(
        request,
        "fragments/donation_form.html",
        status_code=status_code,
        form_data=form_data,
        errors=errors,
        flash_message=flash_message,
    )


# ---- donor -----------------------------------------------------------------


@router.get("/donor/donations", response_class=HTMLResponse)
def donor_donations_fragment(
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    tab: str = "active",
    q: Optional[str] = None,
):
    require_role(current, Role.donor)
    donations = _load_donor_donations(session, current.identity_id, tab, q)
    return _render_list(request, donations, "donor", tab)


@router.get("/donor/donate-form", response_class=HTMLResponse)
def donor_donate_form(request: Request, current: CurrentSessionDep):
    require_role(current, Role.donor)
    return _render_form(request, {}, [])


@router.post("/donor/donations", response_class=HTMLResponse)
async def donor_create_donation(
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    storage: BlobStorageDep,
    feed: ChangeFeedDep,
):
    require_role(current, Role.donor)

    payload = await read_payload(request)
    image_field = payload.pop("image", None)
    form_data = {key: value for key, value in payload.items() if isinstance(value, str)}

    try:
        image = await read_image(image_field)
        lifecycle.create_donation(
            session,
            form_data,
            current.identity_id,
            image=image,
            storage=storage,
            feed=feed,
        )
    except ValidationError as exc:
        return _render_form(request, form_data, exc.errors, status_code=exc.status_code)
    except FoodDropError as exc:
        return _render_form(
            request,
            form_data,
            [],
            flash(FLASH_ERROR, f"Submission failed: {exc.message}"),
            status_code=exc.status_code,
        )

    response = _render_form(
        request,
        {},
        [],
        flash(FLASH_SUCCESS, "Donation submitted! Volunteers will be notified of your generous donation."),
    )
    return _with_refresh(response, **{"close-donate-modal": True})


@router.post("/donor/donations/{donation_id}/cancel", response_class=HTMLResponse)
def donor_cancel_donation(
    donation_id: str,
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    feed: ChangeFeedDep,
):
    require_role(current, Role.donor)

    try:
        lifecycle.cancel_donation(session, donation_id, current.identity_id, feed=feed)
        flash_message = flash(FLASH_SUCCESS, "Donation cancelled.")
        status_code = 200
    except FoodDropError as exc:
        flash_message = flash(FLASH_ERROR, exc.message)
        status_code = exc.status_code

    donations = _load_donor_donations(session, current.identity_id, "active", None)
    response = _render_list(request, donations, "donor", "active", flash_message, status_code)
    return _with_refresh(response) if status_code == 200 else response


# ---- volunteer -------------------------------------------------------------


@router.get("/volunteer/donations", response_class=HTMLResponse)
def volunteer_donations_fragment(
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    tab: str = "available",
    q: Optional[str] = None,
):
    require_role(current, Role.volunteer)
    if tab not in VOLUNTEER_TABS:
        tab = "available"
    donations = _load_volunteer_donations(session, current.identity_id, tab, q)
    return _render_list(request, donations, "volunteer", tab)


@router.post("/volunteer/donations/{donation_id}/accept", response_class=HTMLResponse)
def volunteer_accept_donation(
    donation_id: str,
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    feed: ChangeFeedDep,
):
    require_role(current, Role.volunteer)

    try:
        lifecycle.accept_donation(session, donation_id, current.identity_id, feed=feed)
        flash_message = flash(FLASH_SUCCESS, "Donation accepted. Thank you for picking it up!")
        status_code = 200
    except FoodDropError as exc:
        flash_message = flash(FLASH_ERROR, exc.message)
        status_code = exc.status_code

    donations = _load_volunteer_donations(session, current.identity_id, "available", None)
    response = _render_list(request, donations, "volunteer", "available", flash_message, status_code)
    return _with_refresh(response) if status_code == 200 else response


@router.post("/volunteer/donations/{donation_id}/complete", response_class=HTMLResponse)
def volunteer_complete_donation(
    donation_id: str,
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    feed: ChangeFeedDep,
):
    require_role(current, Role.volunteer)

    try:
        donation = lifecycle.get_donation(session, donation_id)
        require_completer(session, current, donation.volunteer_id)
        lifecycle.complete_donation(session, donation_id, feed=feed)
        flash_message = flash(FLASH_SUCCESS, "Donation marked as delivered.")
        status_code = 200
    except FoodDropError as exc:
        flash_message = flash(FLASH_ERROR, exc.message)
        status_code = exc.status_code

    donations = _load_volunteer_donations(session, current.identity_id, "claimed", None)
    response = _render_list(request, donations, "volunteer", "claimed", flash_message, status_code)
    return _with_refresh(response) if status_code == 200 else response


# ---- admin -----------------------------------------------------------------


@router.get("/admin/donations", response_class=HTMLResponse)
def admin_donations_fragment(
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    q: Optional[str] = None,
):
    require_admin(session, current.identity_id)
    donations = lifecycle.list_donations(session, DonationFilter(search=q))
    return _render_list(request, donations, "admin", "all")


@router.post("/admin/donations/{donation_id}/status", response_class=HTMLResponse)
async def admin_set_status(
    donation_id: str,
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    feed: ChangeFeedDep,
):
    require_admin(session, current.identity_id)
    payload = await read_payload(request)

    try:
        donation = lifecycle.set_status(session, donation_id, payload.get("status"), feed=feed)
        flash_message = flash(FLASH_SUCCESS, f"Donation status updated to {donation.status.value}.")
        status_code = 200
    except FoodDropError as exc:
        flash_message = flash(FLASH_ERROR, f"Error updating status: {exc.message}")
        status_code = exc.status_code

    donations = lifecycle.list_donations(session)
    return _render_list(request, donations, "admin", "all", flash_message, status_code)


@router.post("/admin/donations/{donation_id}/delete", response_class=HTMLResponse)
def admin_delete_donation(
    donation_id: str,
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    storage: BlobStorageDep,
    feed: ChangeFeedDep,
):
    require_admin(session, current.identity_id)

    try:
        lifecycle.delete_donation(session, donation_id, feed=feed, storage=storage)
        flash_message = flash(FLASH_SUCCESS, "Donation deleted.")
        status_code = 200
    except FoodDropError as exc:
        flash_message = flash(FLASH_ERROR, exc.message)
        status_code = exc.status_code

    donations = lifecycle.list_donations(session)
    return _render_list(request, donations, "admin", "all", flash_message, status_code)


@router.get("/admin/users", response_class=HTMLResponse)
def admin_users_fragment(request: Request, session: SessionDep, current: CurrentSessionDep):
    require_admin(session, current.identity_id)
    return render(
        request,
        "fragments/users_list.html",
        users=profiles.list_profiles(session),
        flash_message=None,
    )


@router.post("/admin/users/{user_id}/admin", response_class=HTMLResponse)
async def admin_toggle_admin(
    user_id: str,
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
):
    payload = await read_payload(request)
    make_admin = str(payload.get("is_admin", "")).lower() in {"1", "true", "on", "yes"}

    try:
        profiles.set_admin(session, current.identity_id, user_id, make_admin)
        flash_message = flash(FLASH_SUCCESS, "User's admin status has been updated successfully")
        status_code = 200
    except FoodDropError as exc:
        flash_message = flash(FLASH_ERROR, f"Error updating admin status: {exc.message}")
        status_code = exc.status_code

    return render(
        request,
        "fragments/users_list.html",
        status_code=status_code,
        users=profiles.list_profiles(session),
        flash_message=flash_message,
    )


# ---- profile ---------------------------------------------------------------


@router.post("/profile", response_class=HTMLResponse)
async def update_profile(request: Request, session: SessionDep, current: CurrentSessionDep):
    payload = await read_payload(request)
    username = str(payload.get("username", ""))

    try:
        profile = profiles.update_username(session, current.identity_id, username)
    except FoodDropError as exc:
        return render(
            request,
            "fragments/profile_form.html",
            current,
            status_code=exc.status_code,
            form_data={"username": username},
            errors=[exc.message],
            flash_message=None,
        )

    return render(
        request,
        "fragments/profile_form.html",
        current,
        form_data={"username": profile.username},
        errors=[],
        flash_message=flash(FLASH_SUCCESS, "Your username has been successfully updated"),
    )
