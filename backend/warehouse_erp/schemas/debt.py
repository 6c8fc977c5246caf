"""应收/应付 Schema"""
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class PayableCreate(BaseModel):
    supplier_id: int
    amount: Decimal = Field(..., gt=0)
    due_date: Optional[date] = None
    reference_type: Optional[str] = Field(None, max_length=30)
    reference_id: Optional[int] = None
    notes: Optional[str] = None


class DebtPaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    fund_id: Optional[int] = None
    payment_method: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=200)


class ReceivableWriteOff(BaseModel):
    reason: str = Field(..., min_length=1, max_length=200)


class ReceivableResponse(BaseModel):
    id: int
    ar_code: str
    order_id: Optional[int] = None
    customer_id: int
    customer_name: str = ""
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    due_date: Optional[date] = None
    status: str
    status_display: str = ""
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PayableResponse(BaseModel):
    id: int
    ap_code: str
    supplier_id: int
    supplier_name: str = ""
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    due_date: Optional[date] = None
    status: str
    status_display: str = ""
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ReceivableListResponse(BaseModel):
    data: List[ReceivableResponse]
    total: int
    page: int
    limit: int


class PayableListResponse(BaseModel):
    data: List[PayableResponse]
    total: int
    page: int
    limit: int


class StatusAmount(BaseModel):
    count: int
    remaining_amount: Decimal


class DebtSummary(BaseModel):
    """open_total = 未结清 + 部分结清 + 逾期 的剩余金额"""
    open_total: Decimal
    overdue_total: Decimal
    by_status: Dict[str, StatusAmount]
