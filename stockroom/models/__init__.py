from stockroom.models.audit_log import AuditLog
from stockroom.models.branch import Branch
from stockroom.models.catalog import Item, ItemVariant, Unit
from stockroom.models.stock import StockLedgerEntry, StockMovement
from stockroom.models.transfer import Transfer, TransferLine
from stockroom.models.adjustment import StockAdjustment
from stockroom.models.front_stock import FrontStockTransfer, FrontStockTransferLine
