"""
Order service - order creation with credit reservation and fulfillment transitions

Credit and invoice orders reserve their total on the owning account when they
are created; cancelling such an order releases the reservation.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, List

from models.business_account import BusinessAccount, AccountStatus
from models.order import (
    Order, OrderCreate, OrderStatus, PaymentType, PaymentStatus,
    ApprovalStatus, TimelineEntry, ORDER_TRANSITIONS,
)
from models.user import User
from services.business_accounts import requires_order_approval
from services.entity_store import load_model, insert_model, save_model
from services.errors import (
    NotFoundError, ValidationError, PreconditionError, InvalidTransitionError,
)
from services.events import ChangeEvent
from services.locks import entity_key

logger = logging.getLogger(__name__)

ORDERS = "orders"
ACCOUNTS = "business_accounts"


def payment_due_date(payment_terms: Optional[str], now: datetime) -> datetime:
    """netN terms are due N days out; any other terms fall back to 30 days"""
    days = 30
    if payment_terms and payment_terms.startswith("net"):
        try:
            days = int(payment_terms[3:])
        except ValueError:
            days = 30
    return now + timedelta(days=days)


def placement_note(payment_type: PaymentType, payment_terms: Optional[str]) -> str:
    if payment_type == PaymentType.COD:
        return "Order placed with Cash on Delivery"
    if payment_type == PaymentType.CREDIT:
        terms = (payment_terms or "net30").replace("net", "Net ")
        return f"Order placed with Credit Terms ({terms})"
    if payment_type == PaymentType.INVOICE:
        return "Order placed - Invoice will be generated"
    return "Order placed with Online Payment"


class OrderService:
    def __init__(self, store, locks, events, ledger):
        self.store = store
        self.locks = locks
        self.events = events
        self.ledger = ledger

    async def place_order(
        self,
        draft: OrderCreate,
        actor: Optional[User] = None,
        quote_id: Optional[str] = None,
        total_amount: Optional[float] = None,
    ) -> Order:
        """Create an order. `total_amount` pins the total (quote conversion);
        otherwise it is the sum of the line items."""
        if not draft.products:
            raise ValidationError("An order needs at least one product", {"products": "required"})

        account = await load_model(self.store, ACCOUNTS, BusinessAccount, draft.business_account_id)
        if account is None:
            raise NotFoundError(
                f"Business account '{draft.business_account_id}' not found",
                {"business_account_id": draft.business_account_id},
            )
        if account.status != AccountStatus.ACTIVE:
            raise PreconditionError(
                f"Business account '{account.account_id}' is {account.status.value}",
                {"business_account_id": account.account_id, "status": account.status.value},
            )

        if total_amount is None:
            total_amount = sum(line.quantity * line.price for line in draft.products)
        total_amount = round(total_amount, 2)

        now = datetime.now(timezone.utc)
        needs_approval = draft.requires_approval or requires_order_approval(account, total_amount)
        order = Order(
            business_account_id=account.account_id,
            user_id=actor.user_id if actor else None,
            products=draft.products,
            total_amount=total_amount,
            payment_type=draft.payment_type,
            purchase_order_number=draft.purchase_order_number,
            requires_approval=needs_approval,
            approval_status=ApprovalStatus.PENDING if needs_approval else ApprovalStatus.APPROVED,
            payment_terms=account.payment_terms.value,
            quote_id=quote_id,
            notes=draft.notes,
            order_timeline=[TimelineEntry(
                status=OrderStatus.PENDING.value,
                timestamp=now,
                note=placement_note(draft.payment_type, account.payment_terms.value),
            )],
            created_at=now,
            updated_at=now,
        )
        if order.uses_credit:
            order.due_date = payment_due_date(account.payment_terms.value, now)

        receipt = None
        if order.uses_credit and total_amount > 0:
            receipt = await self.ledger.reserve(
                account.account_id, total_amount, reference=order.order_id,
                actor_id=actor.user_id if actor else None,
            )
            order.credit_receipt_id = receipt.receipt_id

        try:
            order = await insert_model(self.store, ORDERS, order)
        except Exception:
            if receipt is not None:
                await self.ledger.release(receipt)
            raise

        logger.info(
            f"Order {order.order_id} placed for {order.business_account_id}: "
            f"{order.total_amount:.2f} via {order.payment_type.value}"
        )
        await self.events.publish(ChangeEvent(
            entity_type="order",
            entity_id=order.order_id,
            state=order.order_status.value,
            action="created",
            actor_id=actor.user_id if actor else None,
            changes={"total_amount": order.total_amount, "quote_id": quote_id},
        ))
        return order

    async def discard(self, order: Order):
        """Undo a just-placed order whose surrounding operation failed"""
        if order.credit_receipt_id:
            await self.ledger.release(order.credit_receipt_id)
        await self.store.delete(ORDERS, order.order_id)
        logger.warning(f"Order {order.order_id} discarded")

    async def get(self, order_id: str) -> Order:
        order = await load_model(self.store, ORDERS, Order, order_id)
        if order is None:
            raise NotFoundError(f"Order '{order_id}' not found", {"order_id": order_id})
        return order

    async def list_orders(self, business_account_id: Optional[str] = None, order_status: Optional[str] = None) -> List[Order]:
        query = {}
        if business_account_id:
            query["business_account_id"] = business_account_id
        if order_status:
            query["order_status"] = order_status
        orders = [Order.model_validate(d) for d in await self.store.find(ORDERS, query)]
        orders.sort(key=lambda o: o.created_at, reverse=True)
        return orders

    async def update_status(self, order_id: str, target: OrderStatus, actor: Optional[User] = None,
                            note: Optional[str] = None) -> Order:
        actor_id = actor.user_id if actor else None
        async with self.locks.hold(entity_key(ORDERS, order_id)):
            order = await self.get(order_id)
            allowed = ORDER_TRANSITIONS[order.order_status]
            if target not in allowed:
                raise InvalidTransitionError(
                    f"Order '{order_id}' cannot move from {order.order_status.value} to {target.value}",
                    {"from": order.order_status.value, "to": target.value},
                )
            if target == OrderStatus.CONFIRMED and order.approval_status != ApprovalStatus.APPROVED:
                raise PreconditionError(
                    f"Order '{order_id}' requires approval before confirmation",
                    {"approval_status": order.approval_status.value},
                )

            previous = order.order_status
            now = datetime.now(timezone.utc)
            order.order_status = target
            order.order_timeline.append(TimelineEntry(status=target.value, timestamp=now, note=note))
            order.updated_at = now
            order = await save_model(self.store, ORDERS, order)

            if target == OrderStatus.CANCELLED and order.credit_receipt_id:
                # Credit returns only after the cancellation is stored
                await self.ledger.release(order.credit_receipt_id, actor_id=actor_id)

        logger.info(f"Order {order_id} {previous.value} -> {target.value}")
        await self.events.publish(ChangeEvent(
            entity_type="order",
            entity_id=order_id,
            state=order.order_status.value,
            action="status_changed",
            actor_id=actor_id,
            changes={"from": previous.value, "to": target.value},
        ))
        return order

    async def approve(self, order_id: str, actor: User) -> Order:
        async with self.locks.hold(entity_key(ORDERS, order_id)):
            order = await self.get(order_id)
            if order.approval_status == ApprovalStatus.APPROVED:
                return order
            order.approval_status = ApprovalStatus.APPROVED
            order.order_timeline.append(TimelineEntry(status="approved", note=f"Approved by {actor.name or actor.user_id}"))
            order.updated_at = datetime.now(timezone.utc)
            order = await save_model(self.store, ORDERS, order)

        await self.events.publish(ChangeEvent(
            entity_type="order", entity_id=order_id, state=order.order_status.value,
            action="approved", actor_id=actor.user_id,
        ))
        return order

    async def mark_paid(self, order_id: str, actor: Optional[User] = None) -> Order:
        async with self.locks.hold(entity_key(ORDERS, order_id)):
            order = await self.get(order_id)
            if order.order_status == OrderStatus.CANCELLED:
                raise PreconditionError(f"Order '{order_id}' is cancelled", {"order_status": "cancelled"})
            if order.payment_status == PaymentStatus.PAID:
                return order
            order.payment_status = PaymentStatus.PAID
            order.order_timeline.append(TimelineEntry(status="paid", note="Payment received"))
            order.updated_at = datetime.now(timezone.utc)
            order = await save_model(self.store, ORDERS, order)

        await self.events.publish(ChangeEvent(
            entity_type="order", entity_id=order_id, state=order.order_status.value,
            action="paid", actor_id=actor.user_id if actor else None,
        ))
        return order
