"""采购申请与库存预警 Schema"""
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


# ===== 采购申请 =====
class PurchaseRequestCreate(BaseModel):
    product_id: int
    warehouse_id: Optional[int] = None
    supplier_id: Optional[int] = None
    requested_quantity: Decimal = Field(..., gt=0)
    notes: Optional[str] = None


class PurchaseRequestUpdate(BaseModel):
    supplier_id: Optional[int] = None
    requested_quantity: Optional[Decimal] = Field(None, gt=0)
    notes: Optional[str] = None


class PurchaseRequestReject(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class PurchaseRequestResponse(BaseModel):
    id: int
    request_code: str
    product_id: int
    product_name: str = ""
    warehouse_id: Optional[int] = None
    warehouse_name: str = ""
    supplier_id: Optional[int] = None
    requested_quantity: Decimal
    current_stock: Optional[Decimal] = None
    min_stock: Optional[Decimal] = None
    status: str
    status_display: str = ""
    source: str
    notes: Optional[str] = None
    requested_by: Optional[int] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PurchaseRequestListResponse(BaseModel):
    data: List[PurchaseRequestResponse]
    total: int
    page: int
    limit: int


class PurchaseRequestSummary(BaseModel):
    total: int
    pending: int
    by_status: Dict[str, int]


# ===== 库存预警设置 =====
class InventorySettingSave(BaseModel):
    product_id: int
    warehouse_id: Optional[int] = None
    min_quantity: Decimal = Field(default=Decimal("0"), ge=0)
    max_quantity: Decimal = Field(default=Decimal("0"), ge=0)
    reorder_quantity: Decimal = Field(default=Decimal("0"), ge=0)
    auto_create_purchase_request: bool = False


class InventorySettingResponse(InventorySettingSave):
    id: int
    product_name: str = ""
    warehouse_name: str = ""
    current_stock: Optional[Decimal] = None

    class Config:
        from_attributes = True


class InventoryAlert(BaseModel):
    type: str = Field(..., description="low_stock / over_stock / expiring_soon")
    product_id: int
    product_name: str = ""
    warehouse_id: Optional[int] = None
    current_stock: Optional[Decimal] = None
    min_quantity: Optional[Decimal] = None
    max_quantity: Optional[Decimal] = None
    recommended_quantity: Optional[Decimal] = None
    batch_id: Optional[int] = None
    batch_code: Optional[str] = None
    expiry_date: Optional[date] = None
    days_until_expiry: Optional[int] = None
    message: str = ""


class InventoryAlertSummary(BaseModel):
    low_stock: int
    over_stock: int
    expiring_soon: int
    total: int


class AutoPurchaseResult(BaseModel):
    created: int
    skipped: int
    request_codes: List[str] = []
