"""库存批次 Schema"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class BatchCreate(BaseModel):
    """期初批次"""
    warehouse_id: int
    product_id: int
    quantity: Decimal = Field(..., gt=0)
    unit_cost: Decimal = Field(default=Decimal("0"), ge=0)
    supplier_id: Optional[int] = None
    manufacturing_date: Optional[date] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = None


class BatchUpdate(BaseModel):
    """修改批次（数量只能通过库存操作变动）"""
    supplier_id: Optional[int] = None
    manufacturing_date: Optional[date] = None
    expiry_date: Optional[date] = None
    notes: Optional[str] = None


class BatchDispose(BaseModel):
    quantity: Optional[Decimal] = Field(None, gt=0, description="报废数量，默认全部剩余")
    reason: str = Field(..., min_length=1, max_length=200)


class BatchResponse(BaseModel):
    id: int
    batch_code: str
    product_id: int
    product_name: str = ""
    product_sku: str = ""
    warehouse_id: int
    warehouse_name: str = ""
    supplier_id: Optional[int] = None
    supplier_name: str = ""
    inbound_batch_id: Optional[int] = None
    quality_check_id: Optional[int] = None
    parent_batch_id: Optional[int] = None
    quantity: Decimal
    remaining_quantity: Decimal
    unit_cost: Decimal
    manufacturing_date: Optional[date] = None
    expiry_date: Optional[date] = None
    days_until_expiry: Optional[int] = None
    is_expired: bool = False
    status: str
    status_display: str = ""
    is_opening: bool = False
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class BatchListResponse(BaseModel):
    data: List[BatchResponse]
    total: int
    page: int
    limit: int


class AllocationPlanItem(BaseModel):
    batch_id: int
    batch_code: str
    expiry_date: Optional[date] = None
    remaining_quantity: Decimal
    allocate_quantity: Decimal
    unit_cost: Decimal


class AllocationPlanResponse(BaseModel):
    product_id: int
    warehouse_id: Optional[int] = None
    quantity: Decimal
    allocations: List[AllocationPlanItem]


class ExpiringSummaryItem(BaseModel):
    product_id: int
    product_name: str
    product_sku: str
    total_quantity: Decimal
    batch_count: int
    earliest_expiry: Optional[date] = None


class ProductCostHistoryResponse(BaseModel):
    id: int
    batch_id: Optional[int] = None
    action: str
    quantity: Decimal
    unit_cost: Decimal
    old_average_cost: Decimal
    new_average_cost: Decimal
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class ProductCostResponse(BaseModel):
    product_id: int
    average_cost: Decimal
    last_cost: Decimal
    total_quantity: Decimal
    total_value: Decimal
    last_updated_at: Optional[datetime] = None
    history: List[ProductCostHistoryResponse] = []
