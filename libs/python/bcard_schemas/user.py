"""User-related DTOs shared between the users service and its clients."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class Role(str, Enum):
    regular = "regular"
    business = "business"
    admin = "admin"


class PersonName(BaseModel):
    first: str = Field(..., min_length=2)
    middle: str = ""
    last: str = Field(..., min_length=2)


class Address(BaseModel):
    state: str = ""
    country: str = Field(..., min_length=2)
    city: str = Field(..., min_length=2)
    street: str = Field(..., min_length=2)
    house_number: int = Field(..., ge=0)
    zip: str = ""


class Image(BaseModel):
    url: str = ""
    alt: str = ""


class PublicClaims(BaseModel):
    """Non-secret account data carried inside a signed session token."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    name: PersonName
    email: EmailStr
    phone: str
    address: Address
    role: Role
    suspended_until: datetime | None = None


class UserProfile(BaseModel):
    """Read model returned by the list/detail routes."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    name: PersonName
    email: EmailStr
    phone: str
    address: Address
    image: Image | None = None
    gender: str | None = None
    role: Role
    suspended_until: datetime | None = None
