"""
Business Accounts Router
Buyer applications, admin approval, credit limits and account settings
"""
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional

from models.business_account import (
    BusinessAccountCreate, AccountStatusUpdate, CreditLimitUpdate, AccountSettingsUpdate
)
from models.user import User
from dependencies import get_current_user, require_admin, get_services, paginate
from services.container import Services

router = APIRouter(prefix="/business-accounts", tags=["business-accounts"])


def _ensure_access(account_id: str, user: User):
    if not user.is_admin and user.business_account_id != account_id:
        raise HTTPException(status_code=403, detail="Not your business account")


# ==================== APPLICATION ====================

@router.post("")
async def apply_for_account(
    application: BusinessAccountCreate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Submit a business account application (starts as pending)"""
    account = await services.accounts.apply(application, user)
    return {"success": True, "account": account.model_dump(mode="json")}


@router.get("")
async def list_accounts(
    status: Optional[str] = None,
    business_type: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    """List business accounts (admin)"""
    accounts = await services.accounts.list_accounts(status=status, business_type=business_type)
    items, pagination = paginate(accounts, page, page_size)
    return {
        "accounts": [a.model_dump(mode="json") for a in items],
        "pagination": pagination
    }


@router.get("/{account_id}")
async def get_account(
    account_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    _ensure_access(account_id, user)
    account = await services.accounts.get(account_id)
    return account.model_dump(mode="json")


@router.get("/{account_id}/credit")
async def get_credit(
    account_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Credit limit, credit used and available credit"""
    _ensure_access(account_id, user)
    account = await services.accounts.get(account_id)
    return {
        "account_id": account.account_id,
        "credit_limit": account.credit_limit,
        "credit_used": account.credit_used,
        "credit_available": account.credit_available,
        "payment_terms": account.payment_terms.value,
    }


# ==================== ADMIN ====================

@router.put("/{account_id}/status")
async def update_status(
    account_id: str,
    update: AccountStatusUpdate,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    """Approve or suspend a business account"""
    account = await services.accounts.set_status(account_id, update.status, user, update.note)
    return {"success": True, "message": f"Account {account.status.value}", "account": account.model_dump(mode="json")}


@router.put("/{account_id}/credit-limit")
async def update_credit_limit(
    account_id: str,
    update: CreditLimitUpdate,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    account = await services.ledger.set_credit_limit(account_id, update.credit_limit, actor_id=user.user_id)
    return {"success": True, "message": "Credit limit updated", "account": account.model_dump(mode="json")}


@router.put("/{account_id}/settings")
async def update_settings(
    account_id: str,
    updates: AccountSettingsUpdate,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    """Update payment terms, pricing tier and approval settings"""
    account = await services.accounts.update_settings(account_id, updates, user)
    return {"success": True, "message": "Account updated", "account": account.model_dump(mode="json")}
