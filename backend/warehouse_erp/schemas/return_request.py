"""退货 Schema"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class ReturnItemCreate(BaseModel):
    order_item_id: int
    quantity: Decimal = Field(..., gt=0)
    reason: Optional[str] = Field(None, max_length=200)


class ReturnCreate(BaseModel):
    order_id: int
    type: str = Field(default="return", pattern="^(return|exchange|refund_only)$")
    reason: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None
    items: List[ReturnItemCreate]


class ReturnApprove(BaseModel):
    refund_amount: Decimal = Field(default=Decimal("0"), ge=0)


class ReturnReject(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class ReturnReceiveItem(BaseModel):
    item_id: int
    received_quantity: Decimal = Field(..., ge=0)
    condition: str = Field(default="good", pattern="^(good|damaged|defective)$")
    action: str = Field(default="restock", pattern="^(restock|dispose)$")


class ReturnReceive(BaseModel):
    items: List[ReturnReceiveItem]


class ReturnComplete(BaseModel):
    warehouse_id: Optional[int] = Field(None, description="回库仓库，默认订单发货仓")


class ReturnItemResponse(BaseModel):
    id: int
    order_item_id: Optional[int] = None
    product_id: int
    product_name: str = ""
    quantity: Decimal
    received_quantity: Optional[Decimal] = None
    condition: Optional[str] = None
    action: Optional[str] = None
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class ReturnResponse(BaseModel):
    id: int
    return_code: str
    order_id: int
    customer_id: int
    customer_name: str = ""
    warehouse_id: Optional[int] = None
    type: str
    reason: Optional[str] = None
    status: str
    status_display: str = ""
    refund_amount: Decimal
    notes: Optional[str] = None
    requested_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    items: List[ReturnItemResponse] = []

    class Config:
        from_attributes = True


class ReturnListResponse(BaseModel):
    data: List[ReturnResponse]
    total: int
    page: int
    limit: int
