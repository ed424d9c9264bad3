from .branches import Branch, BranchStock
from .inventory import Product, Category, Presentation, Concentration, StockTransfer, StockTransferLine
from .registers import CashRegisterSummary, CashRegisterEntry
from .sales import Sale, SaleItem
from .expenses import Expense, NursingRecord
from .suppliers import Supplier, Purchase
from .auth import UserProfile, UserBranchAssignment, SessionToken

__all__ = [
    'Branch', 'BranchStock',
    'Product', 'Category', 'Presentation', 'Concentration',
    'StockTransfer', 'StockTransferLine',
    'CashRegisterSummary', 'CashRegisterEntry',
    'Sale', 'SaleItem',
    'Expense', 'NursingRecord',
    'Supplier', 'Purchase',
    'UserProfile', 'UserBranchAssignment', 'SessionToken',
]
