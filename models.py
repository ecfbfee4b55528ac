import uuid
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    donor = "donor"
    volunteer = "volunteer"


class DonationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    completed = "completed"
    cancelled = "cancelled"


TERMINAL_STATUSES = frozenset({DonationStatus.completed, DonationStatus.cancelled})


class Identity(SQLModel, table=True):
    """Account record of the identity provider; `role` is its metadata."""

    id: str = Field(default_factory=new_id, primary_key=True)
    email: str = Field(index=True, unique=True)
    password_hash: str
    role: Optional[Role] = None
    created_at: datetime = Field(default_factory=utcnow)


class Profile(SQLModel, table=True):
    id: str = Field(primary_key=True, foreign_key="identity.id")
    username: Optional[str] = None
    is_admin: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Donation(SQLModel, table=True):
    id: str = Field(default_factory=new_id, primary_key=True)
    donor_id: str = Field(foreign_key="identity.id", index=True)

    food_name: str
    description: str
    quantity: str
    location: str
    expiry_date: Optional[date] = None
    available_time: Optional[time] = None
    contact_name: str
    contact_phone: str

    status: DonationStatus = Field(default=DonationStatus.pending, index=True)
    volunteer_id: Optional[str] = Field(
        default=None, foreign_key="identity.id", index=True
    )
    image_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, index=True)
