"""
B2B Orders Router
Checkout orders, fulfillment status updates, approvals and payments
"""
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional

from models.order import Order, OrderCreate, OrderStatus, OrderStatusUpdate
from models.user import User
from dependencies import get_current_user, require_admin, get_services, paginate
from services.container import Services

router = APIRouter(prefix="/orders", tags=["orders"])


async def _load_for(order_id: str, user: User, services: Services) -> Order:
    order = await services.orders.get(order_id)
    if not user.is_admin and order.business_account_id != user.business_account_id:
        raise HTTPException(status_code=403, detail="Not your order")
    return order


@router.post("")
async def place_order(
    draft: OrderCreate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Checkout: credit and invoice orders reserve the account's credit"""
    if not user.is_admin and draft.business_account_id != user.business_account_id:
        raise HTTPException(status_code=403, detail="Orders can only be placed for your own business account")
    order = await services.orders.place_order(draft, actor=user)
    return {"success": True, "message": "Order placed successfully", "order": order.model_dump(mode="json")}


@router.get("")
async def list_orders(
    business_account_id: Optional[str] = None,
    order_status: Optional[str] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Admins list every order; buyers only their own account's orders"""
    if not user.is_admin:
        if not user.business_account_id:
            raise HTTPException(status_code=403, detail="No business account")
        business_account_id = user.business_account_id
    orders = await services.orders.list_orders(business_account_id=business_account_id, order_status=order_status)
    items, pagination = paginate(orders, page, page_size)
    return {
        "orders": [o.model_dump(mode="json") for o in items],
        "pagination": pagination
    }


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    order = await _load_for(order_id, user, services)
    return order.model_dump(mode="json")


@router.put("/{order_id}/status")
async def update_order_status(
    order_id: str,
    update: OrderStatusUpdate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    """Fulfillment transitions (admin); buyers may only cancel their own orders"""
    await _load_for(order_id, user, services)
    if not user.is_admin and update.order_status != OrderStatus.CANCELLED:
        raise HTTPException(status_code=403, detail="Admin access required")
    order = await services.orders.update_status(order_id, update.order_status, actor=user, note=update.note)
    return {"success": True, "message": f"Order {order.order_status.value}", "order": order.model_dump(mode="json")}


@router.post("/{order_id}/approve")
async def approve_order(
    order_id: str,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    order = await services.orders.approve(order_id, user)
    return {"success": True, "message": "Order approved", "order": order.model_dump(mode="json")}


@router.post("/{order_id}/mark-paid")
async def mark_order_paid(
    order_id: str,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    order = await services.orders.mark_paid(order_id, actor=user)
    return {"success": True, "message": "Payment recorded", "order": order.model_dump(mode="json")}
