"""COD 对账 Schema"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class CodReconciliationCreate(BaseModel):
    shipping_partner: str = Field(..., min_length=1, max_length=50)
    period_from: date
    period_to: date
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_period(self):
        if self.period_to < self.period_from:
            raise ValueError("结束日期不能早于开始日期")
        return self


class CodItemUpdate(BaseModel):
    item_id: int
    received_amount: Decimal = Field(..., ge=0)
    notes: Optional[str] = Field(None, max_length=200)


class CodItemsUpdate(BaseModel):
    items: List[CodItemUpdate]


class CodReconcile(BaseModel):
    fund_id: Optional[int] = Field(None, description="代收款入账账户，默认账户")
    notes: Optional[str] = None


class CodItemResponse(BaseModel):
    id: int
    order_id: int
    tracking_number: Optional[str] = None
    expected_amount: Decimal
    received_amount: Decimal
    difference: Decimal
    status: str
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class CodReconciliationResponse(BaseModel):
    id: int
    reconciliation_code: str
    shipping_partner: str
    shipping_partner_name: str = ""
    period_from: date
    period_to: date
    total_orders: int
    total_expected: Decimal
    total_received: Decimal
    difference: Decimal
    status: str
    status_display: str = ""
    notes: Optional[str] = None
    reconciled_at: Optional[datetime] = None
    reconciled_by: Optional[int] = None
    fund_id: Optional[int] = None
    created_at: datetime
    items: List[CodItemResponse] = []

    class Config:
        from_attributes = True


class CodReconciliationListResponse(BaseModel):
    data: List[CodReconciliationResponse]
    total: int
    page: int
    limit: int


class ShippingPartner(BaseModel):
    code: str
    name: str
