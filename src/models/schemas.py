from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional
from datetime import date, datetime
from datetime import date as CalendarDate

CPF_PATTERN = r"^[0-9]{11}$"
PHONE_PATTERN = r"^(\+[0-9]{1,3}[- ]?)?[0-9]{10,}$"


# =====================================================================
# Domain records: what the store holds. Built by the mappers from remote
# documents, so they are permissive (legacy data must never break a snapshot).
# =====================================================================


class Customer(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    cpf: str = ""
    email: str = ""
    phone: str = ""
    created_at: datetime
    updated_at: Optional[datetime] = None


class Airline(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class Sale(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    date: date
    # Foreign Keys (always plain ids once mapped)
    customer_id: str = ""
    airline_id: str = ""
    value: float = 0.0
    cost: float = 0.0
    created_at: datetime
    updated_at: Optional[datetime] = None

    @property
    def profit(self) -> float:
        return self.value - self.cost


# =====================================================================
# Write contracts: validated before anything reaches the backend.
# =====================================================================


class _WriteModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class CustomerInput(_WriteModel):
    name: str = Field(min_length=2, max_length=50)
    cpf: str = Field(pattern=CPF_PATTERN, description="Brazilian CPF, digits only")
    email: EmailStr
    phone: str = Field(min_length=1)


class CustomerForm(CustomerInput):
    """Stricter variant used by data-entry forms: the phone must look dialable."""

    phone: str = Field(pattern=PHONE_PATTERN)


# Update contracts: omitted fields keep their unset default and stay out of
# the payload. An explicit None fails validation like any other bad value.


class CustomerUpdate(_WriteModel):
    name: str = Field(None, min_length=2, max_length=50)
    email: EmailStr = None
    phone: str = Field(None, min_length=1)
    cpf: Optional[str] = None

    @field_validator("cpf", mode="before")
    @classmethod
    def cpf_is_immutable(cls, value):
        raise ValueError("cpf cannot be changed after creation")


class AirlineInput(_WriteModel):
    name: str = Field(min_length=2, max_length=50)


class AirlineUpdate(_WriteModel):
    name: str = Field(None, min_length=2, max_length=50)


class SaleInput(_WriteModel):
    date: date
    customer_id: str = Field(min_length=1)
    airline_id: str = Field(min_length=1)
    value: float = Field(gt=0, allow_inf_nan=False)
    cost: float = Field(ge=0, allow_inf_nan=False)


class SaleUpdate(_WriteModel):
    date: CalendarDate = None
    customer_id: str = Field(None, min_length=1)
    airline_id: str = Field(None, min_length=1)
    value: float = Field(None, gt=0, allow_inf_nan=False)
    cost: float = Field(None, ge=0, allow_inf_nan=False)
