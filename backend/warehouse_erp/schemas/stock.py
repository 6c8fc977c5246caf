"""库存 Schema"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class StockUpdate(BaseModel):
    """更新库存设置（仅安全库存）"""
    safety_stock: Optional[Decimal] = Field(None, ge=0)


class StockAdjust(BaseModel):
    """手动调整库存（主管）"""
    warehouse_id: int
    product_id: int
    new_quantity: Decimal = Field(..., ge=0, description="调整后数量")
    reason: str = Field(..., min_length=1, max_length=200, description="调整原因")


class StockOutbound(BaseModel):
    warehouse_id: int
    product_id: int
    quantity: Decimal = Field(..., gt=0)
    batch_id: Optional[int] = Field(None, description="指定批次，为空按 FEFO")
    reference_type: Optional[str] = Field(None, max_length=30)
    reference_id: Optional[int] = None
    reason: Optional[str] = Field(None, max_length=200)


class StockResponse(BaseModel):
    id: int
    warehouse_id: int
    warehouse_name: str = ""
    product_id: int
    product_name: str = ""
    product_sku: str = ""
    product_unit: str = ""
    quantity: Decimal
    available_quantity: Optional[Decimal] = None
    safety_stock: Optional[Decimal] = None
    is_low_stock: bool = False
    inbound_batch_id: Optional[int] = None
    quality_check_id: Optional[int] = None
    last_check_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class StockListResponse(BaseModel):
    data: List[StockResponse]
    total: int
    page: int
    limit: int


class InventoryLogResponse(BaseModel):
    id: int
    stock_id: int
    warehouse_id: int
    warehouse_name: str = ""
    product_id: int
    product_name: str = ""
    batch_id: Optional[int] = None
    batch_code: Optional[str] = None
    movement_type: str
    type_display: str = ""
    quantity_change: Decimal
    quantity_before: Decimal
    quantity_after: Decimal
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    inbound_batch_id: Optional[int] = None
    quality_check_id: Optional[int] = None
    reason: Optional[str] = None
    note: Optional[str] = None
    operator_id: int
    operator_name: str = ""
    created_at: datetime

    class Config:
        from_attributes = True


class InventoryLogListResponse(BaseModel):
    data: List[InventoryLogResponse]
    total: int
    page: int
    limit: int


class StockDashboard(BaseModel):
    """库存看板"""
    warehouse_id: Optional[int] = None
    product_count: int
    total_quantity: Decimal
    total_value: Decimal
    low_stock_count: int
    expiring_soon_batches: int
    expired_batches: int
    locked: bool = False
