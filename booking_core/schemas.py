"""Pydantic schemas and value records shared across the services."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .models import ReservationStatus, RoleEnum


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserBase(BaseModel):
    name: str = Field(..., max_length=100)
    username: str = Field(..., max_length=50)
    email: EmailStr
    role: RoleEnum = RoleEnum.REGULAR


class UserCreate(UserBase):
    password: str = Field(..., min_length=8)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[EmailStr] = None
    role: Optional[RoleEnum] = None
    password: Optional[str] = Field(None, min_length=8)


class UserRead(UserBase):
    id: int
    is_active: bool = True
    created_at: datetime

    model_config = {"from_attributes": True}


class ItemBase(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    price_per_day: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    is_available: bool = True
    location: Optional[str] = Field(None, max_length=255)


class ItemCreate(ItemBase):
    pass


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    price_per_day: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    is_available: Optional[bool] = None
    location: Optional[str] = Field(None, max_length=255)


class ItemRead(ItemBase):
    id: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# Value records handed to the admission engine. They are detached from the
# ORM session and immutable.


class RequesterRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    username: str
    name: str
    role: RoleEnum


class ResourceRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: int
    name: str
    price_per_day: Decimal
    is_available: bool


class ReservationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    user_id: int
    item_id: int
    start_time: datetime
    end_time: datetime
    total_price: Decimal
    status: ReservationStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class BookingCreate(BaseModel):
    item_id: int
    start_time: datetime
    end_time: datetime
    notes: Optional[str] = Field(None, max_length=2000)
    requester_id: Optional[int] = Field(
        None, description="Book on behalf of another user (admins and service accounts only)."
    )


class AvailabilityRead(BaseModel):
    item_id: int
    start_time: datetime
    end_time: datetime
    available: bool


class BookingConfirmedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    reservation_id: str
    requester_id: int
    resource_name: str
    start_time: datetime
    end_time: datetime
    total_price: Decimal
    status: str
    committed_at: datetime
