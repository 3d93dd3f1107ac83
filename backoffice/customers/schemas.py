# backoffice/customers/schemas.py

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backoffice.utils.money import to_money


class CustomerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    company_name: Optional[str] = Field(None, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    opening_balance: Decimal = Field(
        Decimal("0.00"), description="Amount owed before tracked invoices and payments (signed)"
    )

    @field_validator("opening_balance", mode="before")
    @classmethod
    def _quantize_amount(cls, value):
        return to_money(value)


class CustomerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    opening_balance: Decimal
    created_on: Optional[datetime] = None
