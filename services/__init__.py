"""
Service Layer

Business logic kept out of the route handlers:

- **LedgerService**: accounts payable, payment application and reversal,
  paid-status reconciliation
- **ReportingService**: dashboard statistics and analytics aggregations
- **SettingsService**: application settings and daily share computation
- **TransactionHelper**: transaction boundaries and conflict retry
"""

from .ledger_service import LedgerService
from .reporting_service import ReportingService
from .settings_service import SettingsService
from .transaction_helper import TransactionHelper

__all__ = [
    'LedgerService',
    'ReportingService',
    'SettingsService',
    'TransactionHelper'
]
