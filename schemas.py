"""
Database Schemas for the Barbershop Booking API

Each Pydantic model in the first block represents a collection in MongoDB.
The collection name is the lowercase of the class name.

- Barber -> "barber"
- Appointment -> "appointment"

Documents are stored snake_case; everything on the wire is camelCase.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic.alias_generators import to_camel


# ----- Collections -----
class Barber(BaseModel):
    """Barbers collection schema"""
    first_name: str = Field(..., description="First name")
    last_name: str = Field(..., description="Last name")
    email: EmailStr = Field(..., description="Login email, unique")
    phone: str = Field(..., description="Contact phone")
    shop_name: str = Field(..., description="Shop the barber works at")
    address: str = Field(..., description="Shop address")
    experience: str = Field(..., description="Free-text experience, e.g. '3-5 yrs'")
    specialties: List[str] = Field(default_factory=list, description="Specialty tags")
    password_hash: str = Field(..., description="BCrypt hash of the login password")


class Appointment(BaseModel):
    """Appointments collection schema"""
    customer_name: str = Field(..., description="Customer full name")
    email: str = Field(..., description="Customer email, also the notification channel key")
    phone: str = Field(..., description="Customer phone")
    service: str = Field(..., description="Service name, free text")
    barber: str = Field(..., description="Barber display name (first + last)")
    barber_id: Optional[str] = Field(None, description="Barber id as string, when resolvable")
    date: str = Field(..., description="Calendar date as text")
    time: str = Field(..., description="Time of day as text")
    notes: Optional[str] = Field(None, description="Optional notes")
    approved: bool = Field(False, description="Set once by the barber; never reverted")


# ----- Wire models -----
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BarberCreate(CamelModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    shop_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    experience: str = Field(..., min_length=1)
    specialties: List[str] = Field(default_factory=list)
    password: str = Field(..., min_length=1)


class BarberProfile(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    shop_name: str
    address: str
    experience: str
    specialties: List[str] = []
    created_at: Optional[datetime] = None


class LoginRequest(BaseModel):
    # Older clients post {barbername, password}
    identifier: str = Field(..., min_length=1, validation_alias=AliasChoices("identifier", "barbername"))
    credential: str = Field(..., min_length=1, validation_alias=AliasChoices("credential", "password"))


class LoginResponse(CamelModel):
    id: str
    first_name: str
    last_name: str
    email: str
    shop_name: str
    access_token: str
    token_type: str = "bearer"


class BarberView(CamelModel):
    id: str
    name: str
    role: str
    experience: str
    shop_name: str
    email: str
    phone: str
    specialties: List[str] = []
    image: str


class AppointmentCreate(CamelModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    service: str = Field(..., min_length=1)
    barber: Optional[str] = Field(None, min_length=1)
    barber_id: Optional[str] = None
    date: str = Field(..., min_length=1)
    time: str = Field(..., min_length=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def barber_reference_given(self):
        if not self.barber and not self.barber_id:
            raise ValueError("barber or barberId is required")
        return self


class AppointmentOut(CamelModel):
    id: str
    customer_name: str
    email: str
    phone: str
    service: str
    barber: str
    barber_id: Optional[str] = None
    date: str
    time: str
    notes: Optional[str] = None
    approved: bool = False
    created_at: Optional[datetime] = None


class BarberAppointments(CamelModel):
    pending_appointments: List[AppointmentOut] = []
    confirmed_appointments: List[AppointmentOut] = []


class JoinRequest(BaseModel):
    type: Literal["user", "barber"]
    email: Optional[str] = None
    name: Optional[str] = None
    token: Optional[str] = None

    @model_validator(mode="after")
    def key_field_given(self):
        if self.type == "user" and not self.email:
            raise ValueError("email is required to join a user channel")
        if self.type == "barber" and not self.name:
            raise ValueError("name is required to join a barber channel")
        return self
