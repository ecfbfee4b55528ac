"""Donation listings and their status lifecycle.

    pending --accept--> accepted --complete--> completed
    pending | accepted --cancel--> cancelled

Volunteer transitions are conditional updates on the current status, so two
volunteers racing for the same listing cannot both win. Admin moderation
(`set_status`) overwrites the status unconditionally.
"""
import logging
from typing import Any, Iterable, List, Mapping, Optional

from sqlalchemy import or_, update
from sqlmodel import Session, col, select

from changefeed import ChangeFeed
from db import commit
from errors import AuthError, NotFoundError, StateError, UploadError, ValidationError
from models import TERMINAL_STATUSES, Donation, DonationStatus, Identity, Role
from schemas import (
    DONATION_FIELD_LABELS,
    ChangeEvent,
    DonationCreate,
    DonationFilter,
    parse_payload,
)
from storage import BlobStorage, ImageUpload

logger = logging.getLogger(__name__)

DONATION_FIELDS = tuple(DonationCreate.model_fields)


def parse_donation_fields(fields: Mapping[str, Any]) -> DonationCreate:
    """Validate raw form/JSON input, reporting every problem at once."""
    data = {name: fields.get(name) for name in DONATION_FIELDS}
    for name in DONATION_FIELD_LABELS:
        if data[name] is None:
            data[name] = ""
    return parse_payload(DonationCreate, data)


def coerce_status(value: Any) -> DonationStatus:
    try:
        return DonationStatus(value)
    except ValueError as exc:
        allowed = ", ".join(s.value for s in DonationStatus)
        raise ValidationError(f"Invalid status {value!r}; expected one of {allowed}") from exc


def _publish(feed: Optional[ChangeFeed], kind: str, donation: Donation) -> None:
    if feed is None:
        return
    feed.publish(
        ChangeEvent(
            type=kind,
            donation_id=donation.id,
            donor_id=donation.donor_id,
            volunteer_id=donation.volunteer_id,
        )
    )


def get_donation(db: Session, donation_id: str) -> Donation:
    donation = db.get(Donation, donation_id)
    if donation is None:
        raise NotFoundError("Donation not found")
    return donation


def create_donation(
    db: Session,
    fields: Mapping[str, Any],
    donor_id: Optional[str],
    image: Optional[ImageUpload] = None,
    storage: Optional[BlobStorage] = None,
    feed: Optional[ChangeFeed] = None,
) -> Donation:
    """
    Create a pending donation owned by `donor_id`.

    The image, if any, is uploaded before the row is written; a failed
    upload means no donation is created.
    """
    if not donor_id:
        raise AuthError("You need to be logged in to make a donation.")

    data = parse_donation_fields(fields)

    image_url = None
    if image is not None:
        if storage is None:
            raise UploadError("Image storage is not configured")
        image_url = storage.upload(donor_id, image)

    donation = Donation(
        donor_id=donor_id,
        status=DonationStatus.pending,
        image_url=image_url,
        **data.model_dump(),
    )
    db.add(donation)
    try:
        commit(db)
    except Exception:
        if storage is not None:
            storage.delete(image_url)
        raise
    db.refresh(donation)

    logger.info("Donation %s created by %s", donation.id, donor_id)
    _publish(feed, "INSERT", donation)
    return donation


def _transition(
    db: Session,
    donation_id: str,
    allowed: Iterable[DonationStatus],
    values: dict,
    extra_criteria: Iterable = (),
) -> Donation:
    """
    Apply `values` only if the donation's status is still in `allowed`.

    Runs as a single conditional UPDATE; when no row matches, the current
    state is reported as a StateError (or NotFoundError).
    """
    allowed = tuple(allowed)
    stmt = (
        update(Donation)
        .where(col(Donation.id) == donation_id, col(Donation.status).in_(allowed))
        .where(*extra_criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.exec(stmt)  # type: ignore[call-overload]

    if result.rowcount == 0:
        db.rollback()
        current = get_donation(db, donation_id)
        expected = " or ".join(s.value for s in allowed)
        raise StateError(
            f"Donation is {DonationStatus(current.status).value}, expected {expected}"
        )

    commit(db)
    donation = get_donation(db, donation_id)
    db.refresh(donation)
    return donation


def accept_donation(
    db: Session,
    donation_id: str,
    volunteer_id: Optional[str],
    feed: Optional[ChangeFeed] = None,
) -> Donation:
    if not volunteer_id:
        raise AuthError("Not logged in")
    volunteer = db.get(Identity, volunteer_id)
    if volunteer is None or volunteer.role != Role.volunteer:
        raise AuthError("Only volunteers can accept donations.", status_code=403)

    donation = _transition(
        db,
        donation_id,
        [DonationStatus.pending],
        {"status": DonationStatus.accepted, "volunteer_id": volunteer_id},
    )
    logger.info("Donation %s accepted by %s", donation_id, volunteer_id)
    _publish(feed, "UPDATE", donation)
    return donation


def complete_donation(
    db: Session,
    donation_id: str,
    feed: Optional[ChangeFeed] = None,
) -> Donation:
    donation = _transition(
        db,
        donation_id,
        [DonationStatus.accepted],
        {"status": DonationStatus.completed},
    )
    logger.info("Donation %s completed", donation_id)
    _publish(feed, "UPDATE", donation)
    return donation


def cancel_donation(
    db: Session,
    donation_id: str,
    donor_id: Optional[str],
    feed: Optional[ChangeFeed] = None,
) -> Donation:
    """Let a donor withdraw their own listing while it is still open."""
    donation = get_donation(db, donation_id)
    if not donor_id or donation.donor_id != donor_id:
        raise AuthError("You can only cancel your own donations.", status_code=403)

    open_states = [s for s in DonationStatus if s not in TERMINAL_STATUSES]
    donation = _transition(
        db,
        donation_id,
        open_states,
        {"status": DonationStatus.cancelled},
    )
    logger.info("Donation %s cancelled by its donor", donation_id)
    _publish(feed, "UPDATE", donation)
    return donation


def update_donation(
    db: Session,
    donation_id: str,
    donor_id: Optional[str],
    fields: Mapping[str, Any],
    feed: Optional[ChangeFeed] = None,
) -> Donation:
    """Edit the listing details of a donor's own pending donation."""
    donation = get_donation(db, donation_id)
    if not donor_id or donation.donor_id != donor_id:
        raise AuthError("You can only edit your own donations.", status_code=403)

    data = parse_donation_fields(fields)
    donation = _transition(
        db,
        donation_id,
        [DonationStatus.pending],
        data.model_dump(),
        extra_criteria=[col(Donation.donor_id) == donor_id],
    )
    logger.info("Donation %s edited by its donor", donation_id)
    _publish(feed, "UPDATE", donation)
    return donation


def set_status(
    db: Session,
    donation_id: str,
    status: Any,
    volunteer_id: Optional[str] = None,
    feed: Optional[ChangeFeed] = None,
) -> Donation:
    """Moderation overwrite: any status from any status, no lifecycle checks."""
    new_status = coerce_status(status)
    donation = get_donation(db, donation_id)

    if volunteer_id is not None:
        volunteer = db.get(Identity, volunteer_id)
        if volunteer is None or volunteer.role != Role.volunteer:
            raise ValidationError("volunteer_id must reference a volunteer")
        donation.volunteer_id = volunteer_id

    donation.status = new_status
    db.add(donation)
    commit(db)
    db.refresh(donation)

    logger.info("Donation %s set to %s by moderation", donation_id, new_status.value)
    _publish(feed, "UPDATE", donation)
    return donation


def delete_donation(
    db: Session,
    donation_id: str,
    feed: Optional[ChangeFeed] = None,
    storage: Optional[BlobStorage] = None,
) -> None:
    donation = get_donation(db, donation_id)
    image_url = donation.image_url
    event = ChangeEvent(
        type="DELETE",
        donation_id=donation.id,
        donor_id=donation.donor_id,
        volunteer_id=donation.volunteer_id,
    )

    db.delete(donation)
    commit(db)

    if storage is not None:
        storage.delete(image_url)
    logger.info("Donation %s deleted", donation_id)
    if feed is not None:
        feed.publish(event)


def list_donations(db: Session, filters: Optional[DonationFilter] = None) -> List[Donation]:
    """
    List donations, optionally filtered by status, donor, volunteer and a
    free-text search. Newest first.
    """
    filters = filters or DonationFilter()
    query = select(Donation)

    if filters.status is not None:
        query = query.where(Donation.status == filters.status)

    if filters.donor_id is not None:
        query = query.where(Donation.donor_id == filters.donor_id)

    if filters.volunteer_id is not None:
        query = query.where(Donation.volunteer_id == filters.volunteer_id)

    search = (filters.search or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                col(Donation.food_name).ilike(pattern),
                col(Donation.description).ilike(pattern),
                col(Donation.location).ilike(pattern),
            )
        )

    query = query.order_by(col(Donation.created_at).desc())
    return list(db.exec(query).all())
