"""
ledger_services -- stateful orchestration over engines + kernel.

Dependency direction:
    ledger_services -> ledger_engines, ledger_kernel, ledger_config  (allowed)
    ledger_kernel / ledger_engines -> ledger_services                (FORBIDDEN)

``LedgerApi`` is the request-level surface; the services below it are
flush-only and expect the caller to own the transaction.
"""

from ledger_services.api import ApiError, ApiResult, LedgerApi
from ledger_services.balance_service import BalanceService
from ledger_services.period_close import PeriodCloseService
from ledger_services.reconciliation_service import ReconciliationService

__all__ = [
    "ApiError",
    "ApiResult",
    "BalanceService",
    "LedgerApi",
    "PeriodCloseService",
    "ReconciliationService",
]
