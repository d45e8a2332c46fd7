from stockledger.models.item import Item
from stockledger.models.counterparty import Counterparty
from stockledger.models.movement import Dispatch, Receipt, StockAdjustment
from stockledger.models.audit_log import AuditLog
