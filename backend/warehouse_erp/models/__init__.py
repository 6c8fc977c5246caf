# 数据模型
# 导入全部模型，保证 Base.metadata 能创建所有表

from warehouse_erp.models.user import User
from warehouse_erp.models.entity import Entity
from warehouse_erp.models.product import Product
from warehouse_erp.models.inbound_batch import InboundBatch, InboundBatchItem, QualityCheck
from warehouse_erp.models.batch import Batch, BatchAllocation
from warehouse_erp.models.product_cost import ProductCost, ProductCostHistory
from warehouse_erp.models.stock import Stock, InventoryLog
from warehouse_erp.models.stocktake import Stocktake, StocktakeItem
from warehouse_erp.models.internal_transfer import InternalTransfer, InternalTransferItem
from warehouse_erp.models.purchase_request import PurchaseRequest
from warehouse_erp.models.inventory_setting import InventorySetting
from warehouse_erp.models.order import Order, OrderItem
from warehouse_erp.models.return_request import ReturnRequest, ReturnItem
from warehouse_erp.models.fund import Fund, FinanceTransaction
from warehouse_erp.models.debt import AccountReceivable, AccountPayable, DebtPayment
from warehouse_erp.models.cod_reconciliation import CodReconciliation, CodReconciliationItem
from warehouse_erp.models.audit_log import AuditLog

__all__ = [
    "User",
    "Entity",
    "Product",
    "InboundBatch",
    "InboundBatchItem",
    "QualityCheck",
    "Batch",
    "BatchAllocation",
    "ProductCost",
    "ProductCostHistory",
    "Stock",
    "InventoryLog",
    "Stocktake",
    "StocktakeItem",
    "InternalTransfer",
    "InternalTransferItem",
    "PurchaseRequest",
    "InventorySetting",
    "Order",
    "OrderItem",
    "ReturnRequest",
    "ReturnItem",
    "Fund",
    "FinanceTransaction",
    "AccountReceivable",
    "AccountPayable",
    "DebtPayment",
    "CodReconciliation",
    "CodReconciliationItem",
    "AuditLog",
]
