from .tenancy import Company, Branch, User
from .cards import Card, CustomerCard, BoxPayment, BoxState
from .customers import Customer, Payment
from .totals import WorkerDailyTotal, BranchDailyTotal, CompanyDailyTotal
from .audit import AuditLog

__all__ = [
    'Company', 'Branch', 'User',
    'Card', 'CustomerCard', 'BoxPayment', 'BoxState',
    'Customer', 'Payment',
    'WorkerDailyTotal', 'BranchDailyTotal', 'CompanyDailyTotal',
    'AuditLog',
]
