"""盘点 Schema"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class StocktakeCreate(BaseModel):
    warehouse_id: int
    notes: Optional[str] = None


class StocktakeItemCount(BaseModel):
    item_id: int
    actual_quantity: Decimal = Field(..., ge=0)
    reason: Optional[str] = Field(None, max_length=200)


class StocktakeItemsUpdate(BaseModel):
    items: List[StocktakeItemCount]


class StocktakeItemResponse(BaseModel):
    id: int
    product_id: int
    product_name: str = ""
    product_sku: str = ""
    system_quantity: Decimal
    actual_quantity: Optional[Decimal] = None
    difference: Optional[Decimal] = None
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class StocktakeResponse(BaseModel):
    id: int
    stocktake_code: str
    warehouse_id: int
    warehouse_name: str = ""
    status: str
    status_display: str = ""
    is_locked: bool
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[int] = None
    created_by: int
    created_at: datetime
    total_items: int = 0
    counted_items: int = 0
    discrepancy_items: int = 0
    items: List[StocktakeItemResponse] = []

    class Config:
        from_attributes = True


class StocktakeListResponse(BaseModel):
    data: List[StocktakeResponse]
    total: int
    page: int
    limit: int
