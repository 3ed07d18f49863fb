"""Pydantic models for commission detail API responses."""
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class CommissionDetailItem(BaseModel):
    """One line item of a commission record."""

    sku: str


class CommissionDetailRecord(BaseModel):
    """A commission as the affiliate network recorded it."""

    model_config = ConfigDict(populate_by_name=True)

    original: bool = Field(..., description="False for correction records")
    order_id: str = Field(..., alias="orderId", description="OID sent with the conversion")
    correction_reason: Optional[str] = Field(None, alias="correctionReason")
    sale_amount_pub_currency: Decimal = Field(..., alias="saleAmountPubCurrency")
    items: list[CommissionDetailItem] = Field(default_factory=list)


class CommissionDetailRecordSet(BaseModel):
    count: int
    records: list[CommissionDetailRecord] = Field(default_factory=list)


class AdvertiserCommissions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    advertiser_commissions: CommissionDetailRecordSet = Field(..., alias="advertiserCommissions")


class CommissionDetailQueryResponse(BaseModel):
    """GraphQL envelope: `data` on success, `errors` otherwise."""

    data: Optional[AdvertiserCommissions] = None
    errors: Optional[Any] = None
