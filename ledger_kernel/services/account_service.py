"""
AccountService -- the chart of accounts (Account Directory).

Responsibility:
    Create, look up, list, edit and deactivate ledger accounts.

Invariants enforced:
    - Account codes are unique.
    - Structural fields (code, account_type, normal_balance, parent_id)
      are frozen once a non-draft journal line references the account.
    - Accounts are never physically deleted; deactivation stops new lines.

Failure modes:
    - ValidationError on blank code/name.
    - DuplicateAccountError on a code collision.
    - AccountNotFoundError on an unknown account or parent.
    - InvalidStateError on a structural edit of a referenced account.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import AccountInfo
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    DuplicateAccountError,
    InvalidStateError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import (
    Account,
    AccountType,
    NormalBalance,
    natural_normal_balance,
)
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.services.base import BaseService

logger = get_logger("services.account")

_STRUCTURAL_FIELDS = ("code", "account_type", "normal_balance", "parent_id")


class AccountService(BaseService[Account]):
    """Write-side operations on the chart of accounts."""

    def create_account(
        self,
        code: str,
        name: str,
        account_type: AccountType,
        normal_balance: NormalBalance,
        actor_id: UUID,
        parent_id: UUID | None = None,
        description: str | None = None,
    ) -> AccountInfo:
        code = (code or "").strip()
        name = (name or "").strip()
        if not code:
            raise ValidationError("Account code is required", field="code")
        if not name:
            raise ValidationError("Account name is required", field="name")
        try:
            account_type = AccountType(account_type)
            normal_balance = NormalBalance(normal_balance)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        if self._find_by_code(code) is not None:
            logger.warning("account_code_duplicate", extra={"account_code": code})
            raise DuplicateAccountError(code)

        if parent_id is not None and self.session.get(Account, parent_id) is None:
            raise AccountNotFoundError(str(parent_id))

        if normal_balance != natural_normal_balance(account_type):
            logger.warning(
                "account_contra_normal_balance",
                extra={
                    "account_code": code,
                    "account_type": account_type.value,
                    "normal_balance": normal_balance.value,
                },
            )

        account = Account(
            code=code,
            name=name,
            account_type=account_type,
            normal_balance=normal_balance,
            parent_id=parent_id,
            description=description,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(account)
        self.session.flush()

        logger.info(
            "account_created",
            extra={"account_id": str(account.id), "account_code": code},
        )
        self._audit(
            "create", "account", account.id, actor_id,
            new_values={"code": code, "name": name, "account_type": account_type.value},
        )
        return AccountInfo.from_model(account)

    def get_account(self, account_id: UUID) -> AccountInfo:
        return AccountInfo.from_model(self._get(account_id))

    def get_account_by_code(self, code: str) -> AccountInfo:
        account = self._find_by_code(code)
        if account is None:
            raise AccountNotFoundError(code)
        return AccountInfo.from_model(account)

    def list_accounts(
        self,
        account_type: AccountType | None = None,
        active_only: bool = False,
    ) -> list[AccountInfo]:
        query = select(Account).order_by(Account.code)
        if account_type is not None:
            query = query.where(Account.account_type == AccountType(account_type))
        if active_only:
            query = query.where(Account.is_active.is_(True))
        return [AccountInfo.from_model(a) for a in self.session.execute(query).scalars()]

    def update_account(
        self,
        account_id: UUID,
        actor_id: UUID,
        **changes,
    ) -> AccountInfo:
        """
        Edit an account.  Accepts name, description, code, account_type,
        normal_balance and parent_id.  Structural edits are rejected once a
        posted line references the account.
        """
        allowed = {"name", "description", *_STRUCTURAL_FIELDS}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown account fields: {sorted(unknown)}")

        account = self._get(account_id)
        structural = {
            k: v for k, v in changes.items()
            if k in _STRUCTURAL_FIELDS and v != getattr(account, k)
        }
        if structural and JournalSelector(self.session).has_posted_lines(account_id):
            raise InvalidStateError(
                "account", "referenced", "change structure of",
                detail=f"fields {sorted(structural)} are frozen after posting",
            )

        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Account name is required", field="name")
        if "code" in structural:
            new_code = (changes["code"] or "").strip()
            if not new_code:
                raise ValidationError("Account code is required", field="code")
            if self._find_by_code(new_code) is not None:
                raise DuplicateAccountError(new_code)
            changes["code"] = new_code

        old_values = {k: getattr(account, k) for k in changes}
        for key, value in changes.items():
            if key == "account_type":
                value = AccountType(value)
            elif key == "normal_balance":
                value = NormalBalance(value)
            setattr(account, key, value)
        account.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "account_updated",
            extra={"account_id": str(account_id), "fields": sorted(changes)},
        )
        self._audit(
            "update", "account", account.id, actor_id,
            old_values=old_values, new_values=dict(changes),
        )
        return AccountInfo.from_model(account)

    def deactivate_account(self, account_id: UUID, actor_id: UUID) -> AccountInfo:
        account = self._get(account_id)
        if account.is_active:
            account.is_active = False
            account.updated_by_id = actor_id
            self.session.flush()
            logger.info("account_deactivated", extra={"account_id": str(account_id)})
            self._audit(
                "deactivate", "account", account.id, actor_id,
                old_values={"is_active": True}, new_values={"is_active": False},
            )
        return AccountInfo.from_model(account)

    def _get(self, account_id: UUID) -> Account:
        account = self.session.get(Account, account_id)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def _find_by_code(self, code: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.code == code)
        ).scalar_one_or_none()
