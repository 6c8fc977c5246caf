"""销售订单 Schema"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)


class OrderCreate(BaseModel):
    customer_id: int
    warehouse_id: int
    payment_method: str = Field(default="cash", max_length=20, description="cod/cash/bank/transfer")
    shipping_partner: Optional[str] = Field(None, max_length=50)
    tracking_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    items: List[OrderItemCreate]


class OrderDeliver(BaseModel):
    tracking_number: Optional[str] = Field(None, max_length=100)
    shipping_partner: Optional[str] = Field(None, max_length=50)


class OrderPayment(BaseModel):
    amount: Decimal = Field(..., gt=0)
    fund_id: Optional[int] = Field(None, description="收款账户，默认账户")
    payment_method: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str = ""
    quantity: Decimal
    unit_price: Decimal
    subtotal: Decimal
    cost_amount: Optional[Decimal] = None

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    order_code: str
    customer_id: int
    customer_name: str = ""
    warehouse_id: int
    warehouse_name: str = ""
    status: str
    status_display: str = ""
    payment_method: Optional[str] = None
    shipping_partner: Optional[str] = None
    tracking_number: Optional[str] = None
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    cost_amount: Decimal
    notes: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItemResponse] = []

    class Config:
        from_attributes = True


class OrderListResponse(BaseModel):
    data: List[OrderResponse]
    total: int
    page: int
    limit: int


class StockAvailabilityItem(BaseModel):
    product_id: int
    product_name: str = ""
    required: Decimal
    available: Decimal
    sufficient: bool


class StockAvailabilityResponse(BaseModel):
    available: bool
    items: List[StockAvailabilityItem]
