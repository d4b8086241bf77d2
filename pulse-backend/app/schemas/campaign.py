from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from app.schemas.common import PaginationMeta
from app.schemas.customer import CustomerOut


ConditionField = Literal["total_spent", "email", "last_order_date"]
ConditionOperator = Literal["gt", "gte", "lt", "lte", "eq", "neq"]
SegmentLogic = Literal["AND", "OR"]
CampaignStatus = Literal["CREATED", "SENDING", "NO_AUDIENCE", "SENT", "PARTIAL_FAILED"]


class ConditionIn(BaseModel):
    field: ConditionField
    op: ConditionOperator = Field(validation_alias=AliasChoices("op", "operator"))
    value: int | float | str

    @field_validator("value", mode="before")
    @classmethod
    def reject_booleans(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("value must be a number, string or ISO date")
        return value


class RuleSetIn(BaseModel):
    conditions: list[ConditionIn] = Field(min_length=1)
    logic: SegmentLogic = "AND"

    @field_validator("logic", mode="before")
    @classmethod
    def normalize_logic(cls, value: Any) -> Any:
        if value is None:
            return "AND"
        if isinstance(value, str):
            return value.strip().upper()
        return value

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "conditions": [
                    {"field": "total_spent", "op": "gt", "value": 500},
                    {"field": "last_order_date", "op": "lt", "value": "2024-01-01"},
                ],
                "logic": "AND",
            }
        }
    )


class SegmentCreateIn(RuleSetIn):
    name: str = Field(min_length=1, max_length=120)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name is required")
        return cleaned

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Lapsed big spenders",
                "conditions": [
                    {"field": "total_spent", "op": "gte", "value": 1000},
                    {"field": "last_order_date", "op": "lt", "value": "2024-01-01"},
                ],
                "logic": "AND",
            }
        }
    )


class ConditionOut(BaseModel):
    field: ConditionField
    op: ConditionOperator
    value: int | float | str


class SegmentOut(BaseModel):
    id: str
    name: str
    conditions: list[ConditionOut]
    logic: SegmentLogic
    created_by: str | None = None
    created_at: datetime


class SegmentListOut(BaseModel):
    items: list[SegmentOut]
    pagination: PaginationMeta


class SegmentPreviewOut(BaseModel):
    audience_count: int
    sample: list[CustomerOut]


class CampaignCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    segment_id: str = Field(validation_alias=AliasChoices("segment_id", "segmentId"), min_length=1)
    message: str = Field(min_length=1, max_length=2000)

    @field_validator("name", "message")
    @classmethod
    def validate_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("value cannot be empty")
        return cleaned

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Win-back May",
                "segment_id": "segment-id-here",
                "message": "We miss you! Here is 15% off your next order.",
            }
        }
    )


class CampaignOut(BaseModel):
    id: str
    name: str
    segment_id: str
    message: str
    status: CampaignStatus
    audience_count: int
    sent_count: int
    failed_count: int
    created_by: str | None = None
    dispatched_at: datetime | None = None
    created_at: datetime


class CampaignListOut(BaseModel):
    items: list[CampaignOut]
    pagination: PaginationMeta
    status: CampaignStatus | None = None


class CommunicationLogOut(BaseModel):
    id: str
    campaign_id: str
    customer_email: str
    status: str
    message: str
    timestamp: datetime
    delivered_at: datetime | None = None


class CommunicationLogListOut(BaseModel):
    items: list[CommunicationLogOut]
    pagination: PaginationMeta
    campaign_id: str | None = None


class CampaignSendOut(BaseModel):
    campaign_id: str
    campaign_status: CampaignStatus
    audience_count: int
    sent: int
    failed: int
    sample: list[CommunicationLogOut]


class DeliveryReceiptIn(BaseModel):
    """Vendor webhook body. Vendors disagree on key names, so aliases are accepted."""

    campaign_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("campaign_id", "campaignId", "campaignID"),
    )
    customer_email: str | None = Field(
        default=None,
        validation_alias=AliasChoices("customer_email", "email", "customerEmail"),
    )
    status: str | None = Field(default=None, validation_alias=AliasChoices("status", "state"))

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "campaign_id": "campaign-id-here",
                "customer_email": "aisha@example.com",
                "status": "DELIVERED",
            }
        }
    )


class DeliveryReceiptOut(BaseModel):
    id: str
    campaign_id: str
    customer_email: str
    status: str
    received_at: datetime


class DeliveryReceiptAcceptedOut(BaseModel):
    ok: bool = True
    data: DeliveryReceiptOut
