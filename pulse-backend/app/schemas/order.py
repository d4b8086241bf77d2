from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.core.time_utils import as_utc
from app.schemas.common import PaginationMeta


class OrderItemIn(BaseModel):
    sku: str = Field(min_length=1, max_length=80)
    qty: int = Field(ge=1)


class OrderCreateIn(BaseModel):
    customer_email: EmailStr
    amount: Decimal = Field(ge=0)
    date: datetime | None = None
    items: list[OrderItemIn] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("customer_email")
    @classmethod
    def normalize_email(cls, value: EmailStr) -> EmailStr:
        return str(value).strip().lower()

    @field_validator("date")
    @classmethod
    def normalize_date(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "customer_email": "aisha@example.com",
                "amount": 149.99,
                "date": "2024-05-03T14:30:00Z",
                "items": [{"sku": "ANK-6X6", "qty": 2}],
                "metadata": {"channel": "whatsapp"},
            }
        }
    )


class OrderItemOut(BaseModel):
    sku: str
    qty: int


class OrderOut(BaseModel):
    id: str
    customer_email: str
    amount: float
    date: datetime
    items: list[OrderItemOut] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class OrderIngestOut(BaseModel):
    message: str | None = None
    data: OrderOut | None = None
    job_id: str | None = None


class OrderListOut(BaseModel):
    items: list[OrderOut]
    pagination: PaginationMeta
    customer_email: str | None = None
