"""
BankAccountService -- bank accounts linked to GL cash accounts.

Invariants enforced:
    - A bank account references an existing GL account.
    - (bank_name, account_number) is unique.
    - Only ACTIVE bank accounts accept new reconciliations; CLOSED is final.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import BankAccountInfo
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    BankAccountNotFoundError,
    InvalidStateError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.bank import BankAccount, BankAccountStatus
from ledger_kernel.services.base import BaseService

logger = get_logger("services.bank_account")


class BankAccountService(BaseService[BankAccount]):

    def create_bank_account(
        self,
        linked_account_id: UUID,
        bank_name: str,
        account_number: str,
        actor_id: UUID,
    ) -> BankAccountInfo:
        bank_name = (bank_name or "").strip()
        account_number = (account_number or "").strip()
        if not bank_name:
            raise ValidationError("Bank name is required", field="bank_name")
        if not account_number:
            raise ValidationError("Account number is required", field="account_number")
        if self.session.get(Account, linked_account_id) is None:
            raise AccountNotFoundError(str(linked_account_id))

        existing = self.session.execute(
            select(BankAccount).where(
                BankAccount.bank_name == bank_name,
                BankAccount.account_number == account_number,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError(
                f"Bank account {bank_name} {account_number} already exists",
                field="account_number",
            )

        bank_account = BankAccount(
            linked_account_id=linked_account_id,
            bank_name=bank_name,
            account_number=account_number,
            status=BankAccountStatus.ACTIVE,
            created_by_id=actor_id,
        )
        self.session.add(bank_account)
        self.session.flush()

        logger.info(
            "bank_account_created",
            extra={
                "bank_account_id": str(bank_account.id),
                "linked_account_id": str(linked_account_id),
            },
        )
        self._audit(
            "create", "bank_account", bank_account.id, actor_id,
            new_values={"bank_name": bank_name, "account_number": account_number},
        )
        return BankAccountInfo.from_model(bank_account)

    def get_bank_account(self, bank_account_id: UUID) -> BankAccountInfo:
        return BankAccountInfo.from_model(self.get_model(bank_account_id))

    def list_bank_accounts(self) -> list[BankAccountInfo]:
        query = select(BankAccount).order_by(BankAccount.bank_name, BankAccount.account_number)
        return [BankAccountInfo.from_model(b) for b in self.session.execute(query).scalars()]

    def set_status(
        self, bank_account_id: UUID, status: BankAccountStatus, actor_id: UUID
    ) -> BankAccountInfo:
        status = BankAccountStatus(status)
        bank_account = self.get_model(bank_account_id)
        current = BankAccountStatus(bank_account.status)
        if current == BankAccountStatus.CLOSED and status != BankAccountStatus.CLOSED:
            raise InvalidStateError("bank account", current.value, f"set {status.value} on")

        if current != status:
            bank_account.status = status
            bank_account.updated_by_id = actor_id
            self.session.flush()
            logger.info(
                "bank_account_status_changed",
                extra={
                    "bank_account_id": str(bank_account_id),
                    "old_status": current.value,
                    "new_status": status.value,
                },
            )
            self._audit(
                "status_change", "bank_account", bank_account.id, actor_id,
                old_values={"status": current.value},
                new_values={"status": status.value},
            )
        return BankAccountInfo.from_model(bank_account)

    def get_model(self, bank_account_id: UUID) -> BankAccount:
        bank_account = self.session.get(BankAccount, bank_account_id)
        if bank_account is None:
            raise BankAccountNotFoundError(str(bank_account_id))
        return bank_account
