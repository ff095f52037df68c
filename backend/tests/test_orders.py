"""
Order Service Tests
Checkout credit reservation, approval, fulfillment transitions and cancellation
"""
from datetime import datetime, timezone, timedelta

import pytest

from models.business_account import AccountSettingsUpdate, AccountStatus, PaymentTerms
from models.order import (
    OrderCreate, OrderLineItem, OrderStatus, PaymentType, PaymentStatus, ApprovalStatus
)
from services.errors import (
    ValidationError, PreconditionError, InvalidTransitionError, CreditLimitExceededError, NotFoundError,
    ConcurrentModificationError,
)
from services.order_service import payment_due_date, placement_note


def checkout(account_id, payment_type=PaymentType.CREDIT, quantity=10, price=100.0) -> OrderCreate:
    return OrderCreate(
        business_account_id=account_id,
        products=[OrderLineItem(product_id="prod_runner", product_name="Trail Runner", quantity=quantity, price=price)],
        payment_type=payment_type,
    )


class TestPlaceOrder:
    """place_order() from checkout"""

    @pytest.mark.asyncio
    async def test_credit_order_reserves_total(self, services, account, account_buyer):
        order = await services.orders.place_order(checkout(account.account_id), actor=account_buyer)

        assert order.total_amount == 1000.0
        assert order.credit_receipt_id is not None
        assert order.payment_terms == "net30"
        assert order.order_timeline[0].note == "Order placed with Credit Terms (Net 30)"
        assert await services.ledger.available(account.account_id) == 9000.0

    @pytest.mark.asyncio
    async def test_invoice_orders_use_credit_too(self, services, account):
        await services.orders.place_order(checkout(account.account_id, PaymentType.INVOICE))
        assert await services.ledger.available(account.account_id) == 9000.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payment_type", [PaymentType.COD, PaymentType.ONLINE])
    async def test_non_credit_orders_leave_credit_alone(self, services, account, payment_type):
        order = await services.orders.place_order(checkout(account.account_id, payment_type))

        assert order.credit_receipt_id is None
        assert order.due_date is None
        assert await services.ledger.available(account.account_id) == 10000.0

    @pytest.mark.asyncio
    async def test_over_limit_order_not_created(self, services, account):
        with pytest.raises(CreditLimitExceededError):
            await services.orders.place_order(checkout(account.account_id, quantity=200))

        assert await services.store.count("orders") == 0
        assert await services.ledger.available(account.account_id) == 10000.0

    @pytest.mark.asyncio
    async def test_empty_order_rejected(self, services, account):
        draft = OrderCreate(business_account_id=account.account_id, products=[], payment_type=PaymentType.COD)
        with pytest.raises(ValidationError):
            await services.orders.place_order(draft)

    @pytest.mark.asyncio
    async def test_unknown_or_inactive_account(self, services, account, admin):
        with pytest.raises(NotFoundError):
            await services.orders.place_order(checkout("acc_missing"))

        await services.accounts.set_status(account.account_id, AccountStatus.SUSPENDED, admin)
        with pytest.raises(PreconditionError):
            await services.orders.place_order(checkout(account.account_id, PaymentType.COD))

    @pytest.mark.asyncio
    async def test_large_orders_need_approval(self, services, account, admin):
        await services.accounts.update_settings(
            account.account_id, AccountSettingsUpdate(requires_approval=True, approval_limit=500.0), admin
        )
        order = await services.orders.place_order(checkout(account.account_id))

        assert order.requires_approval is True
        assert order.approval_status == ApprovalStatus.PENDING
        with pytest.raises(PreconditionError):
            await services.orders.update_status(order.order_id, OrderStatus.CONFIRMED, admin)

        await services.orders.approve(order.order_id, admin)
        order = await services.orders.update_status(order.order_id, OrderStatus.CONFIRMED, admin)
        assert order.order_status == OrderStatus.CONFIRMED


class TestFulfillment:
    """Status transitions and cancellation"""

    @pytest.mark.asyncio
    async def test_full_fulfillment_path(self, services, account, admin):
        order = await services.orders.place_order(checkout(account.account_id))

        for status in [OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]:
            order = await services.orders.update_status(order.order_id, status, admin)

        assert order.order_status == OrderStatus.DELIVERED
        assert [t.status for t in order.order_timeline] == ["pending", "confirmed", "processing", "shipped", "delivered"]
        with pytest.raises(InvalidTransitionError):
            await services.orders.update_status(order.order_id, OrderStatus.CANCELLED, admin)

    @pytest.mark.asyncio
    async def test_skipping_steps_is_refused(self, services, account, admin):
        order = await services.orders.place_order(checkout(account.account_id))
        with pytest.raises(InvalidTransitionError):
            await services.orders.update_status(order.order_id, OrderStatus.SHIPPED, admin)

    @pytest.mark.asyncio
    async def test_cancel_releases_credit_once(self, services, account, admin):
        order = await services.orders.place_order(checkout(account.account_id))

        order = await services.orders.update_status(order.order_id, OrderStatus.CANCELLED, admin, note="Buyer request")

        assert order.order_status == OrderStatus.CANCELLED
        assert await services.ledger.available(account.account_id) == 10000.0
        with pytest.raises(InvalidTransitionError):
            await services.orders.update_status(order.order_id, OrderStatus.CANCELLED, admin)
        assert await services.ledger.available(account.account_id) == 10000.0

    @pytest.mark.asyncio
    async def test_failed_cancel_keeps_credit_reserved(self, services, store, account, admin, monkeypatch):
        """A cancellation that cannot be stored leaves the order live and its credit held"""
        order = await services.orders.place_order(checkout(account.account_id))
        replace = store.replace

        async def stale_orders(collection, doc, expected_version):
            if collection == "orders":
                raise ConcurrentModificationError("Order changed elsewhere")
            return await replace(collection, doc, expected_version)

        monkeypatch.setattr(store, "replace", stale_orders)
        with pytest.raises(ConcurrentModificationError):
            await services.orders.update_status(order.order_id, OrderStatus.CANCELLED, admin)
        monkeypatch.undo()

        assert (await services.orders.get(order.order_id)).order_status == OrderStatus.PENDING
        assert await services.ledger.available(account.account_id) == 9000.0

        await services.orders.update_status(order.order_id, OrderStatus.CANCELLED, admin)
        assert await services.ledger.available(account.account_id) == 10000.0

    @pytest.mark.asyncio
    async def test_mark_paid(self, services, account, admin):
        order = await services.orders.place_order(checkout(account.account_id, PaymentType.COD))

        order = await services.orders.mark_paid(order.order_id, admin)
        assert order.payment_status == PaymentStatus.PAID

        await services.orders.update_status(order.order_id, OrderStatus.CANCELLED, admin)
        with pytest.raises(PreconditionError):
            await services.orders.mark_paid(order.order_id, admin)

    @pytest.mark.asyncio
    async def test_list_orders_by_account(self, services, account, open_account):
        other = await open_account(company="Footwear Hub")
        await services.orders.place_order(checkout(account.account_id, PaymentType.COD))
        await services.orders.place_order(checkout(other.account_id, PaymentType.COD))

        assert len(await services.orders.list_orders()) == 2
        mine = await services.orders.list_orders(business_account_id=account.account_id)
        assert [o.business_account_id for o in mine] == [account.account_id]


class TestPaymentTerms:
    def test_due_date_follows_net_terms(self):
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)

        assert payment_due_date(PaymentTerms.NET45.value, now) == now + timedelta(days=45)
        assert payment_due_date("cod", now) == now + timedelta(days=30)
        assert payment_due_date(None, now) == now + timedelta(days=30)

    def test_placement_notes(self):
        assert placement_note(PaymentType.COD, "net30") == "Order placed with Cash on Delivery"
        assert placement_note(PaymentType.INVOICE, "net30") == "Order placed - Invoice will be generated"
        assert placement_note(PaymentType.CREDIT, "net15") == "Order placed with Credit Terms (Net 15)"
