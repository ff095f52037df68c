"""
Business account lifecycle: application, approval/suspension, order approval rules
"""
import logging
from datetime import datetime, timezone
from typing import Optional, List

from models.business_account import (
    BusinessAccount, BusinessAccountCreate, AccountStatus, AccountNote, AccountSettingsUpdate
)
from models.user import User
from services.entity_store import load_model, insert_model, save_model
from services.errors import NotFoundError
from services.events import ChangeEvent
from services.locks import entity_key

logger = logging.getLogger(__name__)

ACCOUNTS = "business_accounts"


def requires_order_approval(account: BusinessAccount, order_amount: float) -> bool:
    if not account.requires_approval:
        return False
    return order_amount > account.approval_limit


class BusinessAccountService:
    def __init__(self, store, locks, events):
        self.store = store
        self.locks = locks
        self.events = events

    async def apply(self, application: BusinessAccountCreate, user: Optional[User] = None) -> BusinessAccount:
        """Buyer application; the account waits for admin approval"""
        account = BusinessAccount(
            **application.model_dump(),
            user_id=user.user_id if user else None,
            status=AccountStatus.PENDING,
        )
        account = await insert_model(self.store, ACCOUNTS, account)
        logger.info(f"Business account application {account.account_id} ({account.company_name})")
        await self.events.publish(ChangeEvent(
            entity_type="business_account",
            entity_id=account.account_id,
            state=account.status.value,
            action="created",
            actor_id=user.user_id if user else None,
            changes={"company_name": account.company_name},
        ))
        return account

    async def get(self, account_id: str) -> BusinessAccount:
        account = await load_model(self.store, ACCOUNTS, BusinessAccount, account_id)
        if account is None:
            raise NotFoundError(f"Business account '{account_id}' not found", {"account_id": account_id})
        return account

    async def list_accounts(self, status: Optional[str] = None, business_type: Optional[str] = None) -> List[BusinessAccount]:
        query = {}
        if status:
            query["status"] = status
        if business_type:
            query["business_type"] = business_type
        docs = await self.store.find(ACCOUNTS, query)
        accounts = [BusinessAccount.model_validate(d) for d in docs]
        accounts.sort(key=lambda a: a.created_at, reverse=True)
        return accounts

    async def set_status(self, account_id: str, status: AccountStatus, actor: User, note: Optional[str] = None) -> BusinessAccount:
        async with self.locks.hold(entity_key(ACCOUNTS, account_id)):
            account = await self.get(account_id)
            previous = account.status
            account.status = status
            if note:
                account.notes.append(AccountNote(note=note, added_by=actor.user_id))
            account.updated_at = datetime.now(timezone.utc)
            account = await save_model(self.store, ACCOUNTS, account)

        logger.info(f"Business account {account_id} {previous.value} -> {status.value} by {actor.user_id}")
        await self.events.publish(ChangeEvent(
            entity_type="business_account",
            entity_id=account_id,
            state=account.status.value,
            action="status_changed",
            actor_id=actor.user_id,
            changes={"from": previous.value, "to": account.status.value},
        ))
        return account

    async def update_settings(self, account_id: str, updates: AccountSettingsUpdate, actor: User) -> BusinessAccount:
        update_data = {k: v for k, v in updates.model_dump().items() if v is not None}
        async with self.locks.hold(entity_key(ACCOUNTS, account_id)):
            account = await self.get(account_id)
            for key, value in update_data.items():
                setattr(account, key, value)
            account.updated_at = datetime.now(timezone.utc)
            account = await save_model(self.store, ACCOUNTS, account)

        await self.events.publish(ChangeEvent(
            entity_type="business_account",
            entity_id=account_id,
            state=account.status.value,
            action="updated",
            actor_id=actor.user_id,
            changes={k: getattr(v, "value", v) for k, v in update_data.items()},
        ))
        return account
