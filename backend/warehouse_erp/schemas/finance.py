"""资金账户与收支 Schema"""
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


# ===== 资金账户 =====
class FundCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: Optional[str] = Field(None, max_length=50)
    type: str = Field(default="cash", pattern="^(cash|bank|other)$")
    initial_balance: Decimal = Field(default=Decimal("0"), ge=0)
    bank_name: Optional[str] = None
    bank_account: Optional[str] = None
    description: Optional[str] = None
    is_default: bool = False


class FundUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    bank_name: Optional[str] = None
    bank_account: Optional[str] = None
    description: Optional[str] = None
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None


class FundResponse(BaseModel):
    id: int
    name: str
    code: Optional[str] = None
    type: str
    balance: Decimal
    initial_balance: Decimal
    bank_name: Optional[str] = None
    bank_account: Optional[str] = None
    description: Optional[str] = None
    is_default: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ===== 收支流水 =====
class TransactionCreate(BaseModel):
    """手工收款/付款"""
    amount: Decimal = Field(..., gt=0)
    fund_id: Optional[int] = None
    transaction_date: Optional[date] = None
    category: Optional[str] = Field(None, max_length=50)
    warehouse_id: Optional[int] = None
    description: Optional[str] = Field(None, max_length=500)
    payment_method: Optional[str] = Field(None, max_length=20)
    reference_type: Optional[str] = Field(None, max_length=30)
    reference_id: Optional[int] = None
    reference_number: Optional[str] = Field(None, max_length=50)


class ExpenseCreate(BaseModel):
    """费用/其他收入登记"""
    type: str = Field(default="expense", pattern="^(expense|income)$")
    amount: Decimal = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=50)
    fund_id: Optional[int] = None
    transaction_date: Optional[date] = None
    warehouse_id: Optional[int] = None
    description: Optional[str] = Field(None, max_length=500)
    payment_method: Optional[str] = Field(None, max_length=20)


class ExpenseUpdate(BaseModel):
    """只允许修改描述性字段，金额错误请作废重录"""
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    transaction_date: Optional[date] = None
    warehouse_id: Optional[int] = None


class TransactionResponse(BaseModel):
    id: int
    transaction_code: str
    fund_id: int
    fund_name: str = ""
    type: str
    type_display: str = ""
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    transaction_date: date
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    reference_number: Optional[str] = None
    category: Optional[str] = None
    warehouse_id: Optional[int] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None
    status: str
    created_by: int
    created_at: datetime

    class Config:
        from_attributes = True


class TransactionListResponse(BaseModel):
    data: List[TransactionResponse]
    total: int
    page: int
    limit: int


class FundBalance(BaseModel):
    fund_id: int
    name: str
    balance: Decimal


class FinanceSummary(BaseModel):
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    total_receipts: Decimal
    total_payments: Decimal
    net: Decimal
    total_balance: Decimal
    funds: List[FundBalance]


class CategorySummary(BaseModel):
    category: str
    total_amount: Decimal
    count: int
