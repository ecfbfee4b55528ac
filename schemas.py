from datetime import date, datetime, time
from typing import Any, Literal, Mapping, Optional, Type, TypeVar

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    field_validator,
    model_validator,
)
from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError
from models import DonationStatus, Role

ModelT = TypeVar("ModelT", bound=BaseModel)

DONATION_FIELD_LABELS = {
    "food_name": "Food name",
    "description": "Description",
    "quantity": "Quantity",
    "location": "Location",
    "contact_name": "Contact name",
    "contact_phone": "Contact phone",
}


class DonationCreate(BaseModel):
    food_name: str
    description: str
    quantity: str
    location: str
    contact_name: str
    contact_phone: str
    expiry_date: Optional[date] = None
    available_time: Optional[time] = None

    @field_validator(*DONATION_FIELD_LABELS, mode="before")
    @classmethod
    def required_not_blank(cls, value, info):
        value = value.strip() if isinstance(value, str) else value
        if not value:
            raise ValueError(f"{DONATION_FIELD_LABELS[info.field_name]} is required")
        return value

    @field_validator("expiry_date", "available_time", mode="before")
    @classmethod
    def blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class StatusUpdate(BaseModel):
    status: DonationStatus
    volunteer_id: Optional[str] = None


class DonationFilter(BaseModel):
    status: Optional[DonationStatus] = None
    donor_id: Optional[str] = None
    volunteer_id: Optional[str] = None
    search: Optional[str] = None


class SignUpData(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    confirm_password: Optional[str] = None
    username: Optional[str] = None
    role: Role

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords don't match")
        return self


class LoginData(BaseModel):
    email: EmailStr
    password: str

    role: Role


class RoleUpdate(BaseModel):
    role: Role


class UsernameUpdate(BaseModel):
    username: str


class AdminFlagUpdate(BaseModel):
    is_admin: bool


class ProfileRead(BaseModel):
    id: str
    username: Optional[str]
    is_admin: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChangeEvent(BaseModel):
    type: Literal["INSERT", "UPDATE", "DELETE"]
    donation_id: str
    donor_id: str
    volunteer_id: Optional[str] = None


def _error_text(error: dict) -> str:
    return error["msg"].removeprefix("Value error, ")


def parse_payload(model: Type[ModelT], data: Mapping[str, Any]) -> ModelT:
    """Validate raw form/JSON input, reporting every problem at once."""
    try:
        return model.model_validate(dict(data))
    except PydanticValidationError as exc:
        messages = [_error_text(err) for err in exc.errors()]
        raise ValidationError("; ".join(messages), errors=messages) from exc
