"""V1 API 路由聚合 - 单机版（操作人由请求头传入）"""
from fastapi import APIRouter

from warehouse_erp.api.api_v1.endpoints import (
    entities, products, inbound_batches, batches, stocks, stocktakes, transfers,
    purchase_requests, inventory_alerts, orders, returns,
    finance, debts, cod_reconciliations, audit_logs, system,
)

api_router = APIRouter()

# 基础资料
api_router.include_router(entities.router, prefix="/entities", tags=["实体管理"])
api_router.include_router(products.router, prefix="/products", tags=["商品管理"])

# 仓储
api_router.include_router(inbound_batches.router, prefix="/inbound-batches", tags=["入库与质检"])
api_router.include_router(batches.router, prefix="/batches", tags=["批次管理"])
api_router.include_router(stocks.router, prefix="/stocks", tags=["库存管理"])
api_router.include_router(stocktakes.router, prefix="/stocktakes", tags=["盘点"])
api_router.include_router(transfers.router, prefix="/transfers", tags=["内部调拨"])
api_router.include_router(purchase_requests.router, prefix="/purchase-requests", tags=["采购申请"])
api_router.include_router(inventory_alerts.router, prefix="/inventory-alerts", tags=["库存预警"])

# 销售
api_router.include_router(orders.router, prefix="/orders", tags=["销售订单"])
api_router.include_router(returns.router, prefix="/returns", tags=["退货管理"])

# 财务
api_router.include_router(finance.router, prefix="/finance", tags=["资金与收支"])
api_router.include_router(debts.router, prefix="/debts", tags=["应收应付账款"])
api_router.include_router(cod_reconciliations.router, prefix="/cod-reconciliations", tags=["COD对账"])

# 系统
api_router.include_router(audit_logs.router, prefix="/audit-logs", tags=["操作日志"])
api_router.include_router(system.router, prefix="/system", tags=["系统管理"])
