"""
销售订单模型
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, DECIMAL
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class Order(Base):
    """销售订单

    pending → confirmed（扣库存）→ delivered → completed（生成应收）
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_code = Column(String(50), unique=True, nullable=False, index=True)

    customer_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)

    # pending / confirmed / delivered / completed / cancelled
    status = Column(String(20), default="pending", index=True)

    # cod / cash / bank / transfer
    payment_method = Column(String(20), default="cash")
    shipping_partner = Column(String(50), index=True, comment="物流商")
    tracking_number = Column(String(100))

    total_amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"))
    paid_amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"))
    remaining_amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"))
    cost_amount = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="销售成本")

    notes = Column(Text)

    confirmed_at = Column(DateTime)
    delivered_at = Column(DateTime)
    completed_at = Column(DateTime)
    cancelled_at = Column(DateTime)

    created_by = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = relationship("Entity", foreign_keys=[customer_id])
    warehouse = relationship("Entity", foreign_keys=[warehouse_id])
    items = relationship("OrderItem", order_by="OrderItem.id")

    @property
    def status_display(self) -> str:
        status_map = {
            "pending": "待确认",
            "confirmed": "已确认",
            "delivered": "已发货",
            "completed": "已完成",
            "cancelled": "已取消",
        }
        return status_map.get(self.status, self.status)

    def update_payment(self, amount: Decimal):
        """登记收款"""
        self.paid_amount = (self.paid_amount or Decimal("0")) + amount
        self.remaining_amount = self.total_amount - self.paid_amount


class OrderItem(Base):
    """订单明细"""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    quantity = Column(DECIMAL(12, 2), nullable=False)
    unit_price = Column(DECIMAL(12, 2), nullable=False)
    subtotal = Column(DECIMAL(12, 2), nullable=False)
    cost_amount = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="出库成本")

    product = relationship("Product", foreign_keys=[product_id])
