"""入库批次与质检 Schema"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


# ===== 入库批次 =====
class InboundItemCreate(BaseModel):
    product_id: int
    quantity_expected: Decimal = Field(..., gt=0, description="应收数量")
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0, description="采购单价")
    manufacturing_date: Optional[date] = None
    expiry_date: Optional[date] = None
    supplier_lot: Optional[str] = Field(None, max_length=50, description="供应商批号")


class InboundBatchCreate(BaseModel):
    warehouse_id: int = Field(..., description="收货仓库")
    supplier_id: Optional[int] = Field(None, description="供应商")
    notes: Optional[str] = None
    items: List[InboundItemCreate]


class InboundBatchUpdate(BaseModel):
    """修改入库批次（质检开始前）"""
    supplier_id: Optional[int] = None
    notes: Optional[str] = None
    received_date: Optional[date] = None
    items: Optional[List[InboundItemCreate]] = None


class InboundReceiveItem(BaseModel):
    item_id: int
    quantity_received: Decimal = Field(..., ge=0)


class InboundReceive(BaseModel):
    """收货（未列出的明细按应收数量收货）"""
    received_date: Optional[date] = None
    items: Optional[List[InboundReceiveItem]] = None


class InboundItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str = ""
    product_sku: str = ""
    quantity_expected: Decimal
    quantity_received: Decimal
    unit_cost: Decimal
    manufacturing_date: Optional[date] = None
    expiry_date: Optional[date] = None
    supplier_lot: Optional[str] = None
    quantity_passed: Optional[Decimal] = None
    quantity_failed: Optional[Decimal] = None

    class Config:
        from_attributes = True


# ===== 质检 =====
class QualityCheckItemResult(BaseModel):
    item_id: int
    quantity_passed: Decimal = Field(..., ge=0)


class QualityCheckCreate(BaseModel):
    status: str = Field(..., pattern="^(pass|fail|partial)$", description="质检结果")
    score: Optional[Decimal] = Field(None, ge=0, le=100)
    check_date: Optional[date] = None
    # 部分合格：单行明细可只填总合格数量，多行需逐行填写
    quantity_passed: Optional[Decimal] = Field(None, ge=0)
    items: Optional[List[QualityCheckItemResult]] = None
    notes: Optional[str] = None
    issues: Optional[List[str]] = None


class QualityCheckResponse(BaseModel):
    id: int
    inbound_batch_id: int
    warehouse_id: int
    supplier_id: Optional[int] = None
    inspector_id: int
    check_date: date
    status: str
    status_display: str = ""
    score: Optional[Decimal] = None
    quantity_passed: Decimal
    quantity_failed: Decimal
    notes: Optional[str] = None
    issues: Optional[List[str]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class InboundBatchResponse(BaseModel):
    id: int
    batch_number: str
    warehouse_id: int
    warehouse_name: str = ""
    supplier_id: Optional[int] = None
    supplier_name: str = ""
    status: str
    status_display: str = ""
    can_be_edited: bool = False
    received_date: Optional[date] = None
    notes: Optional[str] = None
    created_by: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    items: List[InboundItemResponse] = []
    quality_check: Optional[QualityCheckResponse] = None

    class Config:
        from_attributes = True


class InboundBatchListResponse(BaseModel):
    data: List[InboundBatchResponse]
    total: int
    page: int
    limit: int
