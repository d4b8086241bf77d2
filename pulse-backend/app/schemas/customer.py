from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.core.time_utils import as_utc
from app.schemas.common import PaginationMeta


class CustomerCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    phone: str | None = Field(default=None, max_length=40)
    total_spent: Decimal = Field(default=Decimal("0"), ge=0)
    last_order_date: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name is required")
        return cleaned

    @field_validator("phone")
    @classmethod
    def normalize_phone(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: EmailStr) -> EmailStr:
        return str(value).strip().lower()

    @field_validator("last_order_date")
    @classmethod
    def normalize_last_order_date(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Aisha Bello",
                "email": "aisha@example.com",
                "phone": "+2348011112222",
                "total_spent": 1200.5,
                "last_order_date": "2024-05-01T10:00:00Z",
                "metadata": {"source": "storefront"},
            }
        }
    )


class CustomerOut(BaseModel):
    id: str
    name: str
    email: str
    phone: str | None = None
    total_spent: float
    last_order_date: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class CustomerIngestOut(BaseModel):
    message: str | None = None
    data: CustomerOut | None = None
    job_id: str | None = None


class CustomerListOut(BaseModel):
    items: list[CustomerOut]
    pagination: PaginationMeta
