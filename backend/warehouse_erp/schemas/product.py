"""商品 Schema"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    sku: str = Field(..., min_length=1, max_length=50)
    unit: str = Field(default="个", max_length=20)
    cost_price: Decimal = Field(default=Decimal("0"), ge=0, description="初始成本价")
    sale_price: Decimal = Field(default=Decimal("0"), ge=0)
    description: Optional[str] = None


class ProductUpdate(BaseModel):
    """cost_price 由移动加权平均维护，不允许直接修改"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    unit: Optional[str] = Field(None, max_length=20)
    sale_price: Optional[Decimal] = Field(None, ge=0)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ProductResponse(BaseModel):
    id: int
    name: str
    sku: str
    unit: str
    cost_price: Decimal
    sale_price: Decimal
    description: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ProductListResponse(BaseModel):
    data: List[ProductResponse]
    total: int
    page: int
    limit: int
