"""
库存模型 - 记录每个仓库中每个商品的库存数量
库存数量 = 该仓库该商品所有批次剩余数量之和
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, DECIMAL, UniqueConstraint
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class Stock(Base):
    """库存 - 仓库中商品的当前数量"""
    __tablename__ = "stocks"
    __table_args__ = (
        UniqueConstraint('warehouse_id', 'product_id', name='uq_stock_warehouse_product'),
    )

    id = Column(Integer, primary_key=True, index=True)

    warehouse_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)

    quantity = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0.00"), comment="当前库存数量")

    # 首次入库的来源追溯
    inbound_batch_id = Column(Integer, ForeignKey("inbound_batches.id"), comment="来源入库批次")
    quality_check_id = Column(Integer, ForeignKey("quality_checks.id"), comment="来源质检单")

    safety_stock = Column(DECIMAL(12, 2), default=Decimal("0.00"), comment="安全库存")
    last_check_at = Column(DateTime, comment="最后盘点时间")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    warehouse = relationship("Entity", foreign_keys=[warehouse_id])
    product = relationship("Product", foreign_keys=[product_id])

    def __repr__(self):
        return f"<Stock {self.warehouse_id}:{self.product_id} = {self.quantity}>"

    @property
    def is_low_stock(self) -> bool:
        """是否低于安全库存"""
        return (self.quantity or Decimal("0")) < (self.safety_stock or Decimal("0"))


class InventoryLog(Base):
    """库存流水 - 记录每次库存变动（只增不改）"""
    __tablename__ = "inventory_logs"

    id = Column(Integer, primary_key=True, index=True)

    stock_id = Column(Integer, ForeignKey("stocks.id"), nullable=False, index=True)
    warehouse_id = Column(Integer, ForeignKey("entities.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id"), index=True, comment="批次（可选）")

    # qc_pass / opening / outbound / adjust / stocktake / disposal / batch_delete
    # transfer_out / transfer_in / transfer_cancel / order_out / order_cancel / return_in
    movement_type = Column(String(30), nullable=False, index=True, comment="流水类型")

    # 变动数量（正数增加，负数减少）
    quantity_change = Column(DECIMAL(12, 2), nullable=False, comment="变动数量")
    quantity_before = Column(DECIMAL(12, 2), nullable=False, comment="变动前数量")
    quantity_after = Column(DECIMAL(12, 2), nullable=False, comment="变动后数量")

    # 关联业务单据
    reference_type = Column(String(30), comment="关联单据类型")
    reference_id = Column(Integer, comment="关联单据ID")
    inbound_batch_id = Column(Integer, ForeignKey("inbound_batches.id"), comment="入库批次")
    quality_check_id = Column(Integer, ForeignKey("quality_checks.id"), comment="质检单")

    reason = Column(String(200), comment="变动原因")
    note = Column(String(500), comment="备注")

    operator_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    warehouse = relationship("Entity", foreign_keys=[warehouse_id])
    product = relationship("Product", foreign_keys=[product_id])
    batch = relationship("Batch", foreign_keys=[batch_id])
    operator = relationship("User", foreign_keys=[operator_id])

    def __repr__(self):
        return f"<InventoryLog {self.stock_id}: {self.movement_type} {self.quantity_change}>"

    @property
    def type_display(self) -> str:
        type_map = {
            "qc_pass": "质检入库",
            "opening": "期初入库",
            "outbound": "出库",
            "adjust": "库存调整",
            "stocktake": "盘点调整",
            "disposal": "报废",
            "batch_delete": "删除批次",
            "transfer_out": "调拨出库",
            "transfer_in": "调拨入库",
            "transfer_cancel": "调拨取消",
            "order_out": "销售出库",
            "order_cancel": "销售取消回库",
            "return_in": "退货入库",
        }
        return type_map.get(self.movement_type, self.movement_type)
