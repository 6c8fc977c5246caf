"""
操作日志模型 - 记录系统中的所有重要操作
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from warehouse_erp.db.base import Base


class AuditLog(Base):
    """操作日志 - 审计追踪，只增不改"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(Integer, ForeignKey("sys_user.id"), nullable=False, index=True)

    # create / update / delete / confirm / cancel / approve / reject
    # receive / ship / complete / adjust / payment / reconcile
    action = Column(String(20), nullable=False, index=True, comment="操作类型")

    # batch / inbound_batch / quality_check / stock / stocktake / transfer
    # purchase_request / order / return / fund / transaction / receivable / payable / cod
    resource_type = Column(String(50), nullable=False, index=True, comment="资源类型")
    resource_id = Column(Integer, index=True, comment="资源ID")
    resource_name = Column(String(100), comment="资源名称/单号")

    description = Column(String(500), comment="操作描述")
    old_value = Column(JSON, comment="修改前")
    new_value = Column(JSON, comment="修改后")

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    user = relationship("User", foreign_keys=[user_id])

    def __repr__(self):
        return f"<AuditLog {self.action} {self.resource_type}:{self.resource_id}>"

    @property
    def action_display(self) -> str:
        action_map = {
            "create": "创建",
            "update": "更新",
            "delete": "删除",
            "confirm": "确认",
            "cancel": "取消",
            "approve": "审批",
            "reject": "驳回",
            "receive": "收货",
            "ship": "发货",
            "complete": "完成",
            "adjust": "调整",
            "payment": "收付款",
            "reconcile": "对账",
        }
        return action_map.get(self.action, self.action)
