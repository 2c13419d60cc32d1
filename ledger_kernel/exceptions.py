"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LedgerKernelError:

    LedgerKernelError (base)
    |
    +-- ValidationError
    |   +-- UnbalancedEntryError
    |   +-- DuplicateAccountError
    |   +-- AccountInactiveError
    |   +-- DuplicateReconciliationError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- PeriodNotFoundError
    |   +-- EntryNotFoundError
    |   +-- JournalLineNotFoundError
    |   +-- AccountBalanceNotFoundError
    |   +-- BankAccountNotFoundError
    |   +-- ReconciliationNotFoundError
    |   +-- BankTransactionNotFoundError
    |
    +-- InvalidStateError
    +-- PeriodClosedError
    +-- DuplicatePeriodError
    +-- UnbalancedPeriodError
    +-- NotReconciledError

===============================================================================
ERROR CODES
===============================================================================

    Code                     | Raised when
    -------------------------+----------------------------------------------
    VALIDATION_ERROR         | Malformed input, business rule breach on input
    UNBALANCED_ENTRY         | Entry debits != credits, or totals are zero
    NOT_FOUND                | Referenced entity does not exist
    INVALID_STATE            | Operation not permitted from the current state
    PERIOD_CLOSED            | Posting/creating into a non-Open period
    DUPLICATE_PERIOD         | Fiscal period (year, month) already exists
    UNBALANCED_PERIOD        | Trial balance check failed during close
    NOT_RECONCILED           | Completing a reconciliation that does not tie

===============================================================================
HANDLING
===============================================================================

The kernel raises; it never retries and never coerces invalid state into a
valid one.  The API facade (ledger_services.api) catches LedgerKernelError and
renders ``code`` and ``str(exc)`` into an error envelope.  Every subclass
stores the values it was built from as attributes so that callers and the
structured log formatter never have to parse the message.
"""


class LedgerKernelError(Exception):
    """
    Base exception for all ledger kernel errors.

    All subclasses must have a `code` class attribute
    for machine-readable error identification.
    """

    code: str = "LEDGER_KERNEL_ERROR"


# Validation


class ValidationError(LedgerKernelError):
    """Input is malformed or violates a business rule."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class UnbalancedEntryError(ValidationError):
    """Journal entry debits do not equal credits (or both are zero)."""

    code: str = "UNBALANCED_ENTRY"

    def __init__(self, debits: int, credits: int):
        self.debits = debits
        self.credits = credits
        if debits == credits:
            message = "Journal entry totals must be greater than zero"
        else:
            message = (
                f"Journal entry is unbalanced: debits={debits}, credits={credits}"
            )
        super().__init__(message, field="lines")


class DuplicateAccountError(ValidationError):
    """An account with the same code already exists."""

    code: str = "DUPLICATE_ACCOUNT"

    def __init__(self, account_code: str):
        self.account_code = account_code
        super().__init__(f"Account code already exists: {account_code}", field="code")


class AccountInactiveError(ValidationError):
    """Account is not active for new journal lines."""

    code: str = "ACCOUNT_INACTIVE"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account is inactive: {account_id}", field="account_id")


class DuplicateReconciliationError(ValidationError):
    """A reconciliation already exists for the bank account and period."""

    code: str = "DUPLICATE_RECONCILIATION"

    def __init__(self, bank_account_id: str, fiscal_year: int, fiscal_month: int):
        self.bank_account_id = bank_account_id
        self.fiscal_year = fiscal_year
        self.fiscal_month = fiscal_month
        super().__init__(
            f"Reconciliation already exists for bank account {bank_account_id} "
            f"in {fiscal_year}-{fiscal_month:02d}"
        )


# Lookups


class NotFoundError(LedgerKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"

    def __init__(self, entity: str, identifier: str):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class AccountNotFoundError(NotFoundError):
    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__("Account", account_id)


class PeriodNotFoundError(NotFoundError):
    def __init__(self, fiscal_year: int, fiscal_month: int):
        self.fiscal_year = fiscal_year
        self.fiscal_month = fiscal_month
        super().__init__("Fiscal period", f"{fiscal_year}-{fiscal_month:02d}")


class EntryNotFoundError(NotFoundError):
    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__("Journal entry", entry_id)


class JournalLineNotFoundError(NotFoundError):
    def __init__(self, line_id: str):
        self.line_id = line_id
        super().__init__("Journal line", line_id)


class AccountBalanceNotFoundError(NotFoundError):
    """Balance was never calculated for the account and period."""

    def __init__(self, account_id: str, fiscal_year: int, fiscal_month: int):
        self.account_id = account_id
        self.fiscal_year = fiscal_year
        self.fiscal_month = fiscal_month
        super().__init__(
            "Account balance", f"{account_id} @ {fiscal_year}-{fiscal_month:02d}"
        )


class BankAccountNotFoundError(NotFoundError):
    def __init__(self, bank_account_id: str):
        self.bank_account_id = bank_account_id
        super().__init__("Bank account", bank_account_id)


class ReconciliationNotFoundError(NotFoundError):
    def __init__(self, reconciliation_id: str):
        self.reconciliation_id = reconciliation_id
        super().__init__("Reconciliation", reconciliation_id)


class BankTransactionNotFoundError(NotFoundError):
    def __init__(self, bank_transaction_id: str):
        self.bank_transaction_id = bank_transaction_id
        super().__init__("Bank transaction", bank_transaction_id)


# State machine violations


class InvalidStateError(LedgerKernelError):
    """Operation is not permitted from the entity's current state."""

    code: str = "INVALID_STATE"

    def __init__(
        self,
        entity: str,
        current_state: str,
        action: str,
        detail: str | None = None,
    ):
        self.entity = entity
        self.current_state = current_state
        self.action = action
        message = f"Cannot {action} {entity} in state {current_state}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class PeriodClosedError(LedgerKernelError):
    """Target fiscal period does not accept postings."""

    code: str = "PERIOD_CLOSED"

    def __init__(self, fiscal_year: int, fiscal_month: int, status: str):
        self.fiscal_year = fiscal_year
        self.fiscal_month = fiscal_month
        self.status = status
        super().__init__(
            f"Fiscal period {fiscal_year}-{fiscal_month:02d} is {status}"
        )


class DuplicatePeriodError(LedgerKernelError):
    """Fiscal period already exists."""

    code: str = "DUPLICATE_PERIOD"

    def __init__(self, fiscal_year: int, fiscal_month: int):
        self.fiscal_year = fiscal_year
        self.fiscal_month = fiscal_month
        super().__init__(
            f"Fiscal period {fiscal_year}-{fiscal_month:02d} already exists"
        )


class UnbalancedPeriodError(LedgerKernelError):
    """Trial balance does not balance at close."""

    code: str = "UNBALANCED_PERIOD"

    def __init__(
        self, fiscal_year: int, fiscal_month: int, total_debits: int, total_credits: int
    ):
        self.fiscal_year = fiscal_year
        self.fiscal_month = fiscal_month
        self.total_debits = total_debits
        self.total_credits = total_credits
        super().__init__(
            f"Trial balance for {fiscal_year}-{fiscal_month:02d} is unbalanced: "
            f"debits={total_debits}, credits={total_credits}"
        )


class NotReconciledError(LedgerKernelError):
    """Reconciliation cannot be completed."""

    code: str = "NOT_RECONCILED"

    def __init__(
        self,
        reconciliation_id: str,
        difference: int,
        unresolved_transactions: int = 0,
    ):
        self.reconciliation_id = reconciliation_id
        self.difference = difference
        self.unresolved_transactions = unresolved_transactions
        if difference != 0:
            message = (
                f"Reconciliation {reconciliation_id} does not tie: "
                f"difference={difference}"
            )
        else:
            message = (
                f"Reconciliation {reconciliation_id} has "
                f"{unresolved_transactions} unresolved bank transaction(s)"
            )
        super().__init__(message)
