import asyncio
from typing import List, Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import StreamingResponse

import lifecycle
from access import require_admin, require_completer, require_role
from changefeed import ChangeFeedDep
from db import SessionDep
from models import Donation, DonationStatus, Role
from schemas import DonationFilter, StatusUpdate
from session_store import CurrentSessionDep
from storage import BlobStorageDep

from .common import read_image, read_payload

router = APIRouter(tags=["donations"])

KEEPALIVE_SECONDS = 15


@router.get("/", response_model=List[Donation])
def list_donations(
    session: SessionDep,
    current: CurrentSessionDep,
    status: Optional[DonationStatus] = None,
    donor_id: Optional[str] = None,
    volunteer_id: Optional[str] = None,
    search: Optional[str] = None,
):
    """
    List donations, optionally filtered by status, donor, volunteer and text.
    """
    return lifecycle.list_donations(
        session,
        DonationFilter(
            status=status,
            donor_id=donor_id,
            volunteer_id=volunteer_id,
            search=search,
        ),
    )


@router.get("/changes")
async def donation_changes(
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    feed: ChangeFeedDep,
):
    """
    Server-sent events announcing changes to the caller's own donations.
    Each event only says "re-fetch"; it carries ids, not the new row.
    """
    identity_id = current.identity_id
    # the stream outlives the request's session; give its connection back now
    session.close()

    async def event_stream():
        with feed.listen(identity_id) as subscription:
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(subscription.get(), KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"event: donations\ndata: {event.model_dump_json()}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


@router.get("/{donation_id}", response_model=Donation)
def get_donation(donation_id: str, session: SessionDep, current: CurrentSessionDep):
    """
    Get a single donation by ID.
    """
    return lifecycle.get_donation(session, donation_id)


@router.post("/", response_model=Donation, status_code=201)
async def create_donation(
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    storage: BlobStorageDep,
    feed: ChangeFeedDep,
):
    """
    Create a pending donation for the current donor.
    JSON bodies carry fields only; multipart forms may add an `image` file.
    """
    require_role(current, Role.donor)

    payload = await read_payload(request)
    image = await read_image(payload.pop("image", None))

    return lifecycle.create_donation(
        session,
        payload,
        current.identity_id,
        image=image,
        storage=storage,
        feed=feed,
    )


@router.patch("/{donation_id}", response_model=Donation)
async def update_donation(
    donation_id: str,
    request: Request,
    session: SessionDep,
    current: CurrentSessionDep,
    feed: ChangeFeedDep,
):
    require_role(current, Role.donor)
    payload = await read_payload(request)
    return lifecycle.update_donation(session, donation_id, current.identity_id, payload, feed=feed)


@router.post("/{donation_id}/cancel", response_model=Donation)
def cancel_donation(
    donation_id: str,
    session: SessionDep,
    current: CurrentSessionDep,
    feed: ChangeFeedDep,
):
    require_role(current, Role.donor)
    return lifecycle.cancel_donation(session, donation_id, current.identity_id, feed=feed)


@router.post("/{donation_id}/accept", response_model=Donation)
def accept_donation(
    donation_id: str,
    session: SessionDep,
    current: CurrentSessionDep,
    feed: ChangeFeedDep,
):
    require_role(current, Role.volunteer)
    return lifecycle.accept_donation(session, donation_id, current.identity_id, feed=feed)


@router.post("/{donation_id}/complete", response_model=Donation)
def complete_donation(
    donation_id: str,
    session: SessionDep,
    current: CurrentSessionDep,
    feed: ChangeFeedDep,
):
    """
    Mark a claimed donation as delivered. Only the volunteer who claimed it,
    or an admin, may do this.
    """
    donation = lifecycle.get_donation(session, donation_id)
    require_completer(session, current, donation.volunteer_id)
    return lifecycle.complete_donation(session, donation_id, feed=feed)


@router.patch("/{donation_id}/status", response_model=Donation)
def set_donation_status(
    donation_id: str,
    update: StatusUpdate,
    session: SessionDep,
    current: CurrentSessionDep,
    feed: ChangeFeedDep,
):
    require_admin(session, current.identity_id)
    return lifecycle.set_status(
        session,
        donation_id,
        update.status,
        volunteer_id=update.volunteer_id,
        feed=feed,
    )


@router.delete("/{donation_id}", status_code=204)
def delete_donation(
    donation_id: str,
    session: SessionDep,
    current: CurrentSessionDep,
    storage: BlobStorageDep,
    feed: ChangeFeedDep,
):
    require_admin(session, current.identity_id)
    lifecycle.delete_donation(session, donation_id, feed=feed, storage=storage)
    return Response(status_code=204)
