"""
Credit Ledger - enforces credit_used <= credit_limit per business account

reserve() and release() hold the account's lock for the whole
read-check-write, so concurrent reservations against one account are
serialized and cannot jointly overdraw the limit.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from models.business_account import BusinessAccount, AccountStatus
from models.credit import CreditReceipt, ReceiptStatus
from models.quote import to_cents
from services.entity_store import load_model, insert_model, save_model
from services.errors import (
    CreditLimitExceededError, NotFoundError, PreconditionError, ValidationError
)
from services.events import ChangeEvent
from services.locks import entity_key

logger = logging.getLogger(__name__)

ACCOUNTS = "business_accounts"
RECEIPTS = "credit_receipts"


class CreditLedger:
    def __init__(self, store, locks, events):
        self.store = store
        self.locks = locks
        self.events = events

    async def _load_account(self, account_id: str) -> BusinessAccount:
        account = await load_model(self.store, ACCOUNTS, BusinessAccount, account_id)
        if account is None:
            raise NotFoundError(f"Business account '{account_id}' not found", {"account_id": account_id})
        return account

    async def available(self, account_id: str) -> float:
        account = await self._load_account(account_id)
        return account.credit_available

    async def reserve(
        self,
        account_id: str,
        amount: float,
        reference: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> CreditReceipt:
        """Reserve `amount` of the account's credit or fail without reserving anything"""
        if amount is None or to_cents(amount) <= 0:
            raise ValidationError("Reservation amount must be positive", {"amount": "must be greater than 0"})
        amount = round(amount, 2)

        async with self.locks.hold(entity_key(ACCOUNTS, account_id)):
            account = await self._load_account(account_id)
            if account.status != AccountStatus.ACTIVE:
                raise PreconditionError(
                    f"Business account '{account_id}' is {account.status.value}; credit requires an active account",
                    {"account_id": account_id, "status": account.status.value},
                )

            available = account.credit_limit - account.credit_used
            if to_cents(amount) > to_cents(available):
                logger.info(
                    f"Credit reservation refused for {account_id}: requested {amount:.2f}, available {available:.2f}"
                )
                raise CreditLimitExceededError(account_id, amount, available)

            account.credit_used = round(account.credit_used + amount, 2)
            account.updated_at = datetime.now(timezone.utc)
            await save_model(self.store, ACCOUNTS, account)

            receipt = CreditReceipt(
                account_id=account_id,
                amount=amount,
                reference=reference,
                created_by=actor_id,
            )
            receipt = await insert_model(self.store, RECEIPTS, receipt)

        logger.info(
            f"Reserved {amount:.2f} credit on {account_id} (receipt {receipt.receipt_id}, ref {reference})"
        )
        await self.events.publish(ChangeEvent(
            entity_type="credit",
            entity_id=account_id,
            state="reserved",
            action="credit_reserved",
            actor_id=actor_id,
            changes={"receipt_id": receipt.receipt_id, "amount": amount, "reference": reference},
        ))
        return receipt

    async def release(self, receipt: Union[CreditReceipt, str], actor_id: Optional[str] = None) -> bool:
        """Give the receipt's amount back. Returns False when it was already released."""
        receipt_id = receipt.receipt_id if isinstance(receipt, CreditReceipt) else receipt
        stored = await load_model(self.store, RECEIPTS, CreditReceipt, receipt_id)
        if stored is None:
            raise NotFoundError(f"Credit receipt '{receipt_id}' not found", {"receipt_id": receipt_id})

        async with self.locks.hold(entity_key(ACCOUNTS, stored.account_id)):
            # Re-read under the lock, a concurrent release may have won
            stored = await load_model(self.store, RECEIPTS, CreditReceipt, receipt_id)
            if stored.status == ReceiptStatus.RELEASED:
                logger.info(f"Credit receipt {receipt_id} already released, nothing to do")
                return False

            account = await self._load_account(stored.account_id)
            account.credit_used = round(max(account.credit_used - stored.amount, 0.0), 2)
            account.updated_at = datetime.now(timezone.utc)
            await save_model(self.store, ACCOUNTS, account)

            stored.status = ReceiptStatus.RELEASED
            stored.released_at = datetime.now(timezone.utc)
            await save_model(self.store, RECEIPTS, stored)

        logger.info(f"Released {stored.amount:.2f} credit on {stored.account_id} (receipt {receipt_id})")
        await self.events.publish(ChangeEvent(
            entity_type="credit",
            entity_id=stored.account_id,
            state="released",
            action="credit_released",
            actor_id=actor_id,
            changes={"receipt_id": receipt_id, "amount": stored.amount, "reference": stored.reference},
        ))
        return True

    async def set_credit_limit(self, account_id: str, credit_limit: float, actor_id: Optional[str] = None) -> BusinessAccount:
        """Change the approved limit; it can never drop below what is already used"""
        if credit_limit is None or credit_limit < 0:
            raise ValidationError("Credit limit must be zero or more", {"credit_limit": "must be >= 0"})

        async with self.locks.hold(entity_key(ACCOUNTS, account_id)):
            account = await self._load_account(account_id)
            if to_cents(credit_limit) < to_cents(account.credit_used):
                raise PreconditionError(
                    f"Credit limit {credit_limit:.2f} is below credit already used ({account.credit_used:.2f})",
                    {"credit_limit": credit_limit, "credit_used": account.credit_used},
                )
            previous = account.credit_limit
            account.credit_limit = round(credit_limit, 2)
            account.updated_at = datetime.now(timezone.utc)
            account = await save_model(self.store, ACCOUNTS, account)

        logger.info(f"Credit limit for {account_id} changed {previous:.2f} -> {account.credit_limit:.2f}")
        await self.events.publish(ChangeEvent(
            entity_type="business_account",
            entity_id=account_id,
            state=account.status.value,
            action="credit_limit_updated",
            actor_id=actor_id,
            changes={"credit_limit": account.credit_limit, "previous": previous},
        ))
        return account
