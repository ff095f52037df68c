"""
Quotes Router
Buyer responses to quotes (accept / reject / convert) and admin quote listing
"""
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional

from models.order import ConvertOptions
from models.quote import Quote, QuoteReject
from models.user import User
from dependencies import get_current_user, require_admin, get_services, paginate
from services.container import Services

router = APIRouter(prefix="/quotes", tags=["quotes"])


async def _load_for(quote_id: str, user: User, services: Services) -> Quote:
    """Admins see every quote; buyers only quotes on their own leads or account"""
    quote = await services.quotes.get(quote_id)
    if user.is_admin:
        return quote
    if user.business_account_id and quote.business_account_id == user.business_account_id:
        return quote
    lead = await services.leads.get(quote.inquiry_id)
    if lead.buyer_user_id == user.user_id:
        return quote
    raise HTTPException(status_code=403, detail="Not your quote")


@router.get("")
async def list_quotes(
    status: Optional[str] = None,
    inquiry_id: Optional[str] = None,
    business_account_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    quotes = await services.quotes.list_quotes(
        status=status, inquiry_id=inquiry_id, business_account_id=business_account_id
    )
    items, pagination = paginate(quotes, page, page_size)
    return {
        "quotes": [q.model_dump(mode="json") for q in items],
        "pagination": pagination
    }


@router.get("/mine")
async def my_quotes(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    leads = await services.leads.my_inquiries(user)
    quotes = await services.quotes.my_quotes(user, [lead.lead_id for lead in leads])
    return {"quotes": [q.model_dump(mode="json") for q in quotes]}


@router.get("/{quote_id}")
async def get_quote(
    quote_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    quote = await _load_for(quote_id, user, services)
    return quote.model_dump(mode="json")


@router.post("/{quote_id}/accept")
async def accept_quote(
    quote_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    await _load_for(quote_id, user, services)
    quote = await services.quotes.accept(quote_id, actor_id=user.user_id)
    return {"success": True, "message": "Quote accepted", "quote": quote.model_dump(mode="json")}


@router.post("/{quote_id}/reject")
async def reject_quote(
    quote_id: str,
    rejection: QuoteReject,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    await _load_for(quote_id, user, services)
    quote = await services.quotes.reject(quote_id, rejection.reason, actor_id=user.user_id)
    return {"success": True, "message": "Quote rejected", "quote": quote.model_dump(mode="json")}


@router.post("/{quote_id}/convert")
async def convert_quote(
    quote_id: str,
    options: Optional[ConvertOptions] = None,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Place an order at the quote's locked prices"""
    quote = await _load_for(quote_id, user, services)
    options = options or ConvertOptions()
    if not user.is_admin:
        for account_id in (options.business_account_id, quote.business_account_id):
            if account_id and account_id != user.business_account_id:
                raise HTTPException(status_code=403, detail="Orders can only be placed for your own business account")
    if not options.business_account_id and not quote.business_account_id:
        options.business_account_id = user.business_account_id
    order = await services.quotes.convert_to_order(quote_id, options, actor=user)
    return {
        "success": True,
        "message": "Order placed successfully",
        "order": order.model_dump(mode="json")
    }
