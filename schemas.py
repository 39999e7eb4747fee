from datetime import date, time
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_serializer, field_validator

from catalog import normalize_date, parse_time

PaymentMethod = Literal["carta", "contanti", "scontistica", "da-pagare"]


def _date(value):
    return normalize_date(value) if value is not None else value


def _time(value):
    return parse_time(value) if value is not None else value


# Data pura (senza timestamp) e orario HH:MM
BareDate = Annotated[date, BeforeValidator(_date)]
ClockTime = Annotated[time, BeforeValidator(_time)]


# --- APPUNTAMENTI ---

class AppointmentCreate(BaseModel):
    employee_id: int
    date: BareDate
    start_time: ClockTime
    end_time: Optional[ClockTime] = None  # calcolato dal servizio se assente
    client_name: str = Field(min_length=1)
    service_type: str = "Taglio"
    payment_method: PaymentMethod = "da-pagare"
    product_sold: Optional[str] = None
    is_recurring: bool = False

    @field_validator("client_name")
    @classmethod
    def strip_client(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Inserisci il nome del cliente")
        return v


class AppointmentUpdate(BaseModel):
    employee_id: Optional[int] = None
    date: Optional[BareDate] = None
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    client_name: Optional[str] = None
    service_type: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    product_sold: Optional[str] = None
    # Assente o false su un appuntamento di una serie: la ricorrenza viene tolta
    is_recurring: Optional[bool] = None


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    date: date
    start_time: time
    end_time: time
    client_name: str
    service_type: str
    payment_method: str
    product_sold: Optional[str] = None
    recurrence_group_id: Optional[str] = None
    is_recurring: bool = False

    @field_serializer("start_time", "end_time")
    def hhmm(self, value):
        return value.strftime("%H:%M")

    @field_serializer("date")
    def solo_data(self, value):
        return value.isoformat()


class AppointmentBatch(BaseModel):
    appointments: List[AppointmentCreate] = Field(min_length=1)
    recurrence_group_id: Optional[str] = None


class AppointmentEditOut(BaseModel):
    appointment: AppointmentOut
    state: str
    deleted_ids: List[int] = []


class SeriesOut(BaseModel):
    recurrence_group_id: str
    appointments: List[AppointmentOut]


# --- DIPENDENTI ---

class Credentials(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class EmployeeBase(BaseModel):
    full_name: str
    email: str
    fiscal_code: str = Field(max_length=16)
    birth_year: int
    monthly_salary: float
    color: str = "#ffffff"


class EmployeeCreate(EmployeeBase):
    create_credentials: bool = False
    credentials: Optional[Credentials] = None


class EmployeeUpdate(EmployeeBase):
    credentials: Optional[Credentials] = None


class EmployeeOut(EmployeeBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: Optional[str] = None


# --- SPESE ---

class ExpenseIn(BaseModel):
    type: str = Field(min_length=1)
    price: float = Field(ge=0)
    reason: Optional[str] = None


class NotesIn(BaseModel):
    notes: str = ""
    type: str = ""


class CustomCategoryIn(BaseModel):
    section: Literal["utilities", "bar", "product", "maintenance"]
    month_key: str
    name: str


class CustomCategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str


# --- REPORT ---

class DailyEarningsOut(BaseModel):
    date: date
    total: float
    earnings: float


class EmployeeEarningsOut(BaseModel):
    employee_id: int
    start: date
    end: date
    revenue: float
    earnings: float
    appointments: int
    daily: List[DailyEarningsOut]


class DailyTakingsOut(BaseModel):
    total: float
    cash: float
    card: float
    unpaid: List[AppointmentOut]


class AuthOut(BaseModel):
    id: int
    username: str
    role: str
    employee_id: Optional[int] = None

