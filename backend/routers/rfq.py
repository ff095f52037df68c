"""
Bulk RFQ Router
The buyer's draft RFQ list and its bulk submission
"""
from fastapi import APIRouter, Depends

from models.rfq import BuyerContact, DraftItemAdd, DraftQuantityUpdate
from models.user import User
from dependencies import get_current_user, get_services
from services.container import Services
from services.errors import NotFoundError
from services.rfq_aggregator import DraftCart

router = APIRouter(prefix="/rfq", tags=["rfq"])


async def _cart_for(user: User, services: Services) -> DraftCart:
    return await DraftCart(user.user_id, services.drafts).load()


def _cart_response(cart: DraftCart) -> dict:
    return {"items": [item.model_dump() for item in cart.items], "count": cart.count}


@router.get("")
async def get_rfq_list(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    cart = await _cart_for(user, services)
    return _cart_response(cart)


@router.post("/items")
async def add_rfq_item(
    item: DraftItemAdd,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Add a product; the quantity defaults to the product's MOQ"""
    product = await services.catalog.get_product(item.product_id)
    if product is None:
        raise NotFoundError(f"Product '{item.product_id}' not found", {"product_id": item.product_id})
    cart = await _cart_for(user, services)
    result = await cart.add_item(product, item.quantity)
    return {"success": result.added, **result.model_dump(), "items": [i.model_dump() for i in cart.items]}


@router.put("/items/{product_id}")
async def update_rfq_item(
    product_id: str,
    update: DraftQuantityUpdate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    cart = await _cart_for(user, services)
    await cart.update_quantity(product_id, update.quantity)
    return {"success": True, **_cart_response(cart)}


@router.delete("/items/{product_id}")
async def remove_rfq_item(
    product_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    cart = await _cart_for(user, services)
    removed = await cart.remove_item(product_id)
    return {"success": removed, **_cart_response(cart)}


@router.delete("")
async def clear_rfq_list(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    cart = await _cart_for(user, services)
    await cart.clear()
    return {"success": True, **_cart_response(cart)}


@router.post("/submit")
async def submit_rfq(
    contact: BuyerContact,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Submit the whole RFQ list as a bulk inquiry and clear it"""
    cart = await _cart_for(user, services)
    result = await services.rfq.submit_bulk_rfq(cart, contact, user)
    leads = result if isinstance(result, list) else [result]
    return {
        "success": True,
        "message": f"RFQ submitted for {sum(len(lead.products) or 1 for lead in leads)} products",
        "leads": [lead.model_dump(mode="json") for lead in leads]
    }
