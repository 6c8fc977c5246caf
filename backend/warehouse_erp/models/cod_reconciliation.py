"""
COD 对账模型 - 核对物流商代收货款
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base

SHIPPING_PARTNERS = {
    "ghn": "Giao Hàng Nhanh",
    "ghtk": "Giao Hàng Tiết Kiệm",
    "viettel_post": "Viettel Post",
    "vnpost": "VNPost",
    "jt_express": "J&T Express",
    "ninja_van": "Ninja Van",
    "other": "其他",
}


class CodReconciliation(Base):
    """COD 对账单"""
    __tablename__ = "cod_reconciliations"

    id = Column(Integer, primary_key=True, index=True)
    reconciliation_code = Column(String(50), unique=True, nullable=False, index=True)
    shipping_partner = Column(String(50), nullable=False, index=True)
    period_from = Column(Date, nullable=False)
    period_to = Column(Date, nullable=False)

    total_orders = Column(Integer, default=0)
    total_expected = Column(DECIMAL(14, 2), default=Decimal("0.00"), comment="应收代收款")
    total_received = Column(DECIMAL(14, 2), default=Decimal("0.00"), comment="实收代收款")
    # 实收 - 应收
    difference = Column(DECIMAL(14, 2), default=Decimal("0.00"))

    # draft / matched / discrepancy / resolved
    status = Column(String(20), default="draft", index=True)
    notes = Column(Text)

    reconciled_at = Column(DateTime)
    reconciled_by = Column(Integer, ForeignKey("sys_user.id"))
    fund_id = Column(Integer, ForeignKey("funds.id"), comment="入账资金账户")

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("CodReconciliationItem", order_by="CodReconciliationItem.id")

    @property
    def shipping_partner_name(self) -> str:
        return SHIPPING_PARTNERS.get(self.shipping_partner, self.shipping_partner)

    @property
    def status_display(self) -> str:
        status_map = {
            "draft": "草稿",
            "matched": "已核对一致",
            "discrepancy": "有差异",
            "resolved": "已处理",
        }
        return status_map.get(self.status, self.status)


class CodReconciliationItem(Base):
    """COD 对账明细（每个订单一行）"""
    __tablename__ = "cod_reconciliation_items"

    id = Column(Integer, primary_key=True, index=True)
    reconciliation_id = Column(Integer, ForeignKey("cod_reconciliations.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    tracking_number = Column(String(100))

    expected_amount = Column(DECIMAL(12, 2), nullable=False)
    received_amount = Column(DECIMAL(12, 2), default=Decimal("0.00"))
    difference = Column(DECIMAL(12, 2), default=Decimal("0.00"))

    # pending / matched / over / short / missing
    status = Column(String(20), default="pending")
    notes = Column(String(200))

    def set_received(self, amount: Decimal):
        self.received_amount = amount
        self.difference = amount - self.expected_amount
        if amount == 0:
            self.status = "missing"
        elif self.difference == 0:
            self.status = "matched"
        elif self.difference > 0:
            self.status = "over"
        else:
            self.status = "short"
