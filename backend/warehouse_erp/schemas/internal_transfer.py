"""内部调拨 Schema"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class TransferItemCreate(BaseModel):
    product_id: int
    quantity: Decimal = Field(..., gt=0)
    batch_id: Optional[int] = Field(None, description="指定批次，为空按 FEFO")
    notes: Optional[str] = Field(None, max_length=200)


class TransferCreate(BaseModel):
    from_warehouse_id: int
    to_warehouse_id: int
    notes: Optional[str] = None
    items: List[TransferItemCreate]


class TransferReceiveItem(BaseModel):
    item_id: int
    received_quantity: Decimal = Field(..., ge=0)


class TransferReceive(BaseModel):
    """收货（未列出的明细按发货数量收货）"""
    items: Optional[List[TransferReceiveItem]] = None


class TransferItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str = ""
    batch_id: Optional[int] = None
    quantity: Decimal
    received_quantity: Optional[Decimal] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class TransferResponse(BaseModel):
    id: int
    transfer_code: str
    from_warehouse_id: int
    from_warehouse_name: str = ""
    to_warehouse_id: int
    to_warehouse_name: str = ""
    status: str
    status_display: str = ""
    notes: Optional[str] = None
    shipped_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    created_by: int
    created_at: datetime
    items: List[TransferItemResponse] = []

    class Config:
        from_attributes = True


class TransferListResponse(BaseModel):
    data: List[TransferResponse]
    total: int
    page: int
    limit: int
