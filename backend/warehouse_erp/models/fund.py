"""
资金账户与收支流水

每一次余额变动都对应一条收支流水，记录变动前后余额
"""

from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, DECIMAL, Boolean
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class Fund(Base):
    """资金账户（现金、银行等）"""
    __tablename__ = "funds"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), unique=True, index=True)
    # cash / bank / other
    type = Column(String(20), nullable=False, default="cash")

    balance = Column(DECIMAL(14, 2), nullable=False, default=Decimal("0.00"), comment="当前余额")
    initial_balance = Column(DECIMAL(14, 2), nullable=False, default=Decimal("0.00"), comment="期初余额")

    bank_name = Column(String(100))
    bank_account = Column(String(50))
    description = Column(Text)

    is_default = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Fund {self.code}: {self.balance}>"

    def can_withdraw(self, amount: Decimal) -> bool:
        return (self.balance or Decimal("0")) >= amount


class FinanceTransaction(Base):
    """收支流水"""
    __tablename__ = "finance_transactions"

    id = Column(Integer, primary_key=True, index=True)
    # RC/PM + 年月日 + 序号
    transaction_code = Column(String(50), unique=True, nullable=False, index=True)

    fund_id = Column(Integer, ForeignKey("funds.id"), nullable=False, index=True)
    # receipt: 收款  payment: 付款
    type = Column(String(20), nullable=False, index=True)
    amount = Column(DECIMAL(14, 2), nullable=False)
    balance_before = Column(DECIMAL(14, 2), nullable=False)
    balance_after = Column(DECIMAL(14, 2), nullable=False)

    transaction_date = Column(Date, nullable=False, default=date.today, index=True)

    # 关联单据（order / receivable / payable / expense ...）
    reference_type = Column(String(30))
    reference_id = Column(Integer)
    reference_number = Column(String(50))

    category = Column(String(50), index=True, comment="收支分类")
    warehouse_id = Column(Integer, ForeignKey("entities.id"))
    description = Column(String(500))
    payment_method = Column(String(20))

    # approved: 已入账  voided: 已作废
    status = Column(String(20), default="approved", index=True)
    voided_at = Column(DateTime)

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    fund = relationship("Fund", foreign_keys=[fund_id])

    @property
    def type_display(self) -> str:
        return {"receipt": "收款", "payment": "付款"}.get(self.type, self.type)
