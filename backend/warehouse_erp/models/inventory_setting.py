"""
库存预警设置
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, DateTime, ForeignKey, DECIMAL, Boolean, UniqueConstraint
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class InventorySetting(Base):
    """商品库存上下限（warehouse_id 为空表示全部仓库合计）"""
    __tablename__ = "inventory_settings"
    __table_args__ = (
        UniqueConstraint('product_id', 'warehouse_id', name='uq_setting_product_warehouse'),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("entities.id"), index=True)

    min_quantity = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"))
    max_quantity = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"))
    reorder_quantity = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"))
    auto_create_purchase_request = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    product = relationship("Product", foreign_keys=[product_id])
    warehouse = relationship("Entity", foreign_keys=[warehouse_id])

    def is_below_min(self, current: Decimal) -> bool:
        return self.min_quantity > 0 and current < self.min_quantity

    def is_above_max(self, current: Decimal) -> bool:
        return self.max_quantity > 0 and current > self.max_quantity

    def recommended_order_quantity(self, current: Decimal) -> Decimal:
        """建议补货量：优先用补货量，否则补到上限（无上限时补到下限的两倍）"""
        if self.reorder_quantity > 0:
            return self.reorder_quantity
        target = self.max_quantity if self.max_quantity > 0 else self.min_quantity * 2
        return max(Decimal("0"), target - current)
