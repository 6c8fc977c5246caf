"""
应收/应付账款模型 - 往来账管理

- 销售完成未收清 → 应收账款（客户欠我们）
- 采购质检入库 → 应付账款（我们欠供应商）
"""

from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class DebtMixin:
    """应收/应付共用的金额和状态逻辑"""

    @property
    def is_overdue(self) -> bool:
        return (
            self.due_date is not None
            and self.due_date < date.today()
            and self.status not in ("paid", "written_off")
        )

    def record_payment(self, amount: Decimal):
        """登记一笔收/付款并更新状态"""
        self.paid_amount = (self.paid_amount or Decimal("0")) + amount
        self.remaining_amount = self.total_amount - self.paid_amount
        self.status = "paid" if self.remaining_amount <= 0 else "partial"

    @property
    def status_display(self) -> str:
        status_map = {
            "open": "未结清",
            "partial": "部分结清",
            "paid": "已结清",
            "overdue": "已逾期",
            "written_off": "已核销",
        }
        return status_map.get(self.status, self.status)


class AccountReceivable(DebtMixin, Base):
    """应收账款"""
    __tablename__ = "account_receivables"

    id = Column(Integer, primary_key=True, index=True)
    ar_code = Column(String(50), unique=True, nullable=False, index=True)

    order_id = Column(Integer, ForeignKey("orders.id"), index=True)
    customer_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)

    total_amount = Column(DECIMAL(12, 2), nullable=False)
    paid_amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"))
    remaining_amount = Column(DECIMAL(12, 2), nullable=False)
    due_date = Column(Date)

    # open / partial / paid / overdue / written_off
    status = Column(String(20), default="open", index=True)
    notes = Column(Text)

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Entity", foreign_keys=[customer_id])


class AccountPayable(DebtMixin, Base):
    """应付账款"""
    __tablename__ = "account_payables"

    id = Column(Integer, primary_key=True, index=True)
    ap_code = Column(String(50), unique=True, nullable=False, index=True)

    supplier_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)
    # 来源单据（inbound_batch / manual）
    reference_type = Column(String(30))
    reference_id = Column(Integer)

    total_amount = Column(DECIMAL(12, 2), nullable=False)
    paid_amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"))
    remaining_amount = Column(DECIMAL(12, 2), nullable=False)
    due_date = Column(Date)

    # open / partial / paid / overdue
    status = Column(String(20), default="open", index=True)
    notes = Column(Text)

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    supplier = relationship("Entity", foreign_keys=[supplier_id])


class DebtPayment(Base):
    """往来账收付记录（关联收支流水）"""
    __tablename__ = "debt_payments"

    id = Column(Integer, primary_key=True, index=True)
    # receivable / payable
    debt_type = Column(String(20), nullable=False, index=True)
    debt_id = Column(Integer, nullable=False, index=True)
    finance_transaction_id = Column(Integer, ForeignKey("finance_transactions.id"), nullable=False)

    amount = Column(DECIMAL(12, 2), nullable=False)
    payment_date = Column(Date, nullable=False, default=date.today)
    payment_method = Column(String(20))
    notes = Column(String(200))

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
