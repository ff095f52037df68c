"""
Quote State Machine Tests
Quote requests, totals, accept / reject / expire and one-time conversion
"""
import asyncio
from datetime import datetime, timezone, timedelta

import pytest

from models.business_account import AccountSettingsUpdate, PricingTier
from models.lead import LeadCreate, LeadStatus
from models.order import ConvertOptions, PaymentType, OrderStatus
from models.quote import QuoteRequest, QuoteItem, QuoteStatus
from services.errors import (
    ValidationError, PreconditionError, InvalidTransitionError, AlreadyConvertedError,
    CreditLimitExceededError, NotFoundError, ProductLookupError, ConcurrentModificationError,
)


@pytest.fixture
def submit_lead(services, products):
    async def _submit(user=None, product_id="prod_runner", quantity=20):
        return await services.leads.submit(LeadCreate(
            buyer_name="Meera Iyer",
            buyer_email="meera@shoemart.test",
            buyer_phone="9876500000",
            buyer_city="Chennai",
            product_id=product_id,
            quantity_required=quantity,
        ), user)
    return _submit


def manual_items():
    return [
        QuoteItem(product_id="prod_runner", product_name="Trail Runner", quantity=3, price=100.0),
        QuoteItem(product_id="prod_sandal", product_name="Leather Sandal", quantity=2, price=50.0),
    ]


class TestRequestQuote:
    """request_quote() prices the lead and moves it to quoted"""

    @pytest.mark.asyncio
    async def test_quote_priced_from_catalog(self, services, submit_lead, admin):
        lead = await submit_lead(quantity=20)

        quote = await services.quotes.request_quote(lead.lead_id, actor_id=admin.user_id)

        assert quote.status == QuoteStatus.PENDING
        assert quote.inquiry_id == lead.lead_id
        assert [(i.product_id, i.quantity, i.price) for i in quote.items] == [("prod_runner", 20, 100.0)]
        assert quote.total_amount == 2000.0
        assert quote.valid_until > datetime.now(timezone.utc) + timedelta(days=14)

        lead = await services.leads.get(lead.lead_id)
        assert lead.status == LeadStatus.QUOTED
        assert lead.quote_id == quote.quote_id
        assert lead.quoted_at is not None

    @pytest.mark.asyncio
    async def test_account_tier_and_quantity_pricing(self, services, submit_lead, account_buyer, account, admin):
        await services.accounts.update_settings(
            account.account_id, AccountSettingsUpdate(pricing_tier=PricingTier.WHOLESALER), admin
        )
        lead = await submit_lead(account_buyer, product_id="prod_boot", quantity=200)

        quote = await services.quotes.request_quote(lead.lead_id, actor_id=admin.user_id)

        # 180 wholesaler price, 10% off at 100+
        assert quote.items[0].price == 162.0
        assert quote.total_amount == 32400.0
        assert quote.business_account_id == account.account_id

    @pytest.mark.asyncio
    async def test_matching_total_accepted(self, services, submit_lead):
        lead = await submit_lead()
        quote = await services.quotes.request_quote(
            lead.lead_id, QuoteRequest(items=manual_items(), total_amount=400.0)
        )
        assert quote.total_amount == 400.0

    @pytest.mark.asyncio
    async def test_mismatched_total_rejected(self, services, submit_lead):
        """(3 x 100) + (2 x 50) is 400, not 350"""
        lead = await submit_lead()

        with pytest.raises(ValidationError):
            await services.quotes.request_quote(lead.lead_id, QuoteRequest(items=manual_items(), total_amount=350.0))

        lead = await services.leads.get(lead.lead_id)
        assert lead.status == LeadStatus.NEW
        assert await services.store.count("quotes") == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["interested", "quoted", "negotiating", "closed"])
    async def test_only_new_or_contacted_leads(self, services, submit_lead, admin, status):
        lead = await submit_lead()
        await services.leads.transition(lead.lead_id, status, admin.user_id)

        with pytest.raises(PreconditionError):
            await services.quotes.request_quote(lead.lead_id)

    @pytest.mark.asyncio
    async def test_contacted_lead_can_be_quoted(self, services, submit_lead, admin):
        lead = await submit_lead()
        await services.leads.transition(lead.lead_id, "contacted", admin.user_id)

        quote = await services.quotes.request_quote(lead.lead_id)
        assert quote.status == QuoteStatus.PENDING

    @pytest.mark.asyncio
    async def test_catalog_failure_is_fatal_for_quotes(self, services, submit_lead):
        lead = await submit_lead()

        class BrokenCatalog:
            async def get_product(self, product_id):
                raise ProductLookupError("Product catalog unavailable")

        services.quotes.catalog = BrokenCatalog()
        with pytest.raises(ProductLookupError):
            await services.quotes.request_quote(lead.lead_id)

        lead = await services.leads.get(lead.lead_id)
        assert lead.status == LeadStatus.NEW

    @pytest.mark.asyncio
    async def test_failed_lead_update_withdraws_quote(self, services, store, submit_lead, admin, monkeypatch):
        lead = await submit_lead()
        replace = store.replace

        async def stale_leads(collection, doc, expected_version):
            if collection == "leads":
                raise ConcurrentModificationError("Lead changed elsewhere")
            return await replace(collection, doc, expected_version)

        monkeypatch.setattr(store, "replace", stale_leads)
        with pytest.raises(ConcurrentModificationError):
            await services.quotes.request_quote(lead.lead_id, actor_id=admin.user_id)
        monkeypatch.undo()

        assert await store.count("quotes") == 0
        assert (await services.leads.get(lead.lead_id)).status == LeadStatus.NEW
        quote = await services.quotes.request_quote(lead.lead_id, actor_id=admin.user_id)
        assert quote.status == QuoteStatus.PENDING


class TestQuoteResponses:
    """accept / reject / expire from pending only"""

    @pytest.mark.asyncio
    async def test_accept(self, services, submit_lead, buyer):
        lead = await submit_lead()
        quote = await services.quotes.request_quote(lead.lead_id)

        quote = await services.quotes.accept(quote.quote_id, actor_id=buyer.user_id)

        assert quote.status == QuoteStatus.ACCEPTED
        assert quote.accepted_at is not None
        with pytest.raises(InvalidTransitionError):
            await services.quotes.accept(quote.quote_id)
        with pytest.raises(InvalidTransitionError):
            await services.quotes.reject(quote.quote_id, "changed my mind")

    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, services, submit_lead):
        lead = await submit_lead()
        quote = await services.quotes.request_quote(lead.lead_id)

        with pytest.raises(ValidationError):
            await services.quotes.reject(quote.quote_id, "   ")

        quote = await services.quotes.reject(quote.quote_id, " Price too high ")
        assert quote.status == QuoteStatus.REJECTED
        assert quote.rejection_reason == "Price too high"
        with pytest.raises(InvalidTransitionError):
            await services.quotes.accept(quote.quote_id)

    @pytest.mark.asyncio
    async def test_accepting_past_validity_expires(self, services, submit_lead):
        lead = await submit_lead()
        quote = await services.quotes.request_quote(
            lead.lead_id, QuoteRequest(valid_until=datetime.now(timezone.utc) - timedelta(days=1))
        )

        with pytest.raises(InvalidTransitionError):
            await services.quotes.accept(quote.quote_id)

        stored = await services.quotes.get(quote.quote_id)
        assert stored.status == QuoteStatus.EXPIRED
        assert stored.expired_at is not None

    @pytest.mark.asyncio
    async def test_expire_stale_sweep(self, services, submit_lead):
        stale_lead = await submit_lead()
        fresh_lead = await submit_lead()
        stale = await services.quotes.request_quote(
            stale_lead.lead_id, QuoteRequest(valid_until=datetime.now(timezone.utc) - timedelta(hours=1))
        )
        fresh = await services.quotes.request_quote(fresh_lead.lead_id)

        assert await services.quotes.expire_stale() == 1
        assert (await services.quotes.get(stale.quote_id)).status == QuoteStatus.EXPIRED
        assert (await services.quotes.get(fresh.quote_id)).status == QuoteStatus.PENDING
        assert await services.quotes.expire_stale() == 0

    @pytest.mark.asyncio
    async def test_unknown_quote(self, services):
        with pytest.raises(NotFoundError):
            await services.quotes.accept("quote_missing")


class TestConvertToOrder:
    """convert_to_order() places one order at the locked quote prices"""

    @pytest.fixture
    def accepted_quote(self, services, submit_lead):
        async def _accepted(user, quantity=20):
            lead = await submit_lead(user, quantity=quantity)
            quote = await services.quotes.request_quote(lead.lead_id)
            return await services.quotes.accept(quote.quote_id, actor_id=user.user_id)
        return _accepted

    @pytest.mark.asyncio
    async def test_convert_on_credit(self, services, accepted_quote, account_buyer, account):
        quote = await accepted_quote(account_buyer)

        order = await services.quotes.convert_to_order(
            quote.quote_id, ConvertOptions(purchase_order_number="PO-7781", sizes={"prod_runner": "UK 8"}),
            actor=account_buyer,
        )

        assert order.quote_id == quote.quote_id
        assert order.total_amount == quote.total_amount == 2000.0
        assert order.payment_type == PaymentType.CREDIT
        assert order.products[0].size == "UK 8"
        assert order.order_status == OrderStatus.PENDING
        assert order.due_date is not None

        converted = await services.quotes.get(quote.quote_id)
        assert converted.status == QuoteStatus.ACCEPTED
        assert converted.order_id == order.order_id
        assert await services.ledger.available(account.account_id) == 8000.0

    @pytest.mark.asyncio
    async def test_locked_prices_survive_catalog_changes(self, services, store, accepted_quote, account_buyer):
        quote = await accepted_quote(account_buyer)
        product = await store.get("products", "prod_runner")
        product["price"] = 999.0
        await store.replace("products", product, expected_version=product["version"])

        order = await services.quotes.convert_to_order(quote.quote_id, actor=account_buyer)

        assert order.products[0].price == 100.0
        assert order.total_amount == 2000.0

    @pytest.mark.asyncio
    async def test_second_conversion_fails(self, services, accepted_quote, account_buyer, account):
        quote = await accepted_quote(account_buyer)
        await services.quotes.convert_to_order(quote.quote_id, actor=account_buyer)

        with pytest.raises(AlreadyConvertedError):
            await services.quotes.convert_to_order(quote.quote_id, actor=account_buyer)

        assert await services.store.count("orders") == 1
        assert await services.ledger.available(account.account_id) == 8000.0

    @pytest.mark.asyncio
    async def test_concurrent_conversions_create_one_order(self, services, accepted_quote, account_buyer):
        quote = await accepted_quote(account_buyer)

        results = await asyncio.gather(
            services.quotes.convert_to_order(quote.quote_id, actor=account_buyer),
            services.quotes.convert_to_order(quote.quote_id, actor=account_buyer),
            return_exceptions=True,
        )

        orders = [r for r in results if not isinstance(r, Exception)]
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(orders) == 1
        assert len(errors) == 1 and isinstance(errors[0], AlreadyConvertedError)
        assert await services.store.count("orders") == 1

    @pytest.mark.asyncio
    async def test_pending_quote_cannot_convert(self, services, submit_lead, account_buyer):
        lead = await submit_lead(account_buyer)
        quote = await services.quotes.request_quote(lead.lead_id)

        with pytest.raises(PreconditionError):
            await services.quotes.convert_to_order(quote.quote_id, actor=account_buyer)

    @pytest.mark.asyncio
    async def test_insufficient_credit_leaves_quote_unconverted(self, services, accepted_quote, account_buyer, account):
        quote = await accepted_quote(account_buyer, quantity=150)  # 15,000 against a 10,000 limit

        with pytest.raises(CreditLimitExceededError) as exc_info:
            await services.quotes.convert_to_order(quote.quote_id, actor=account_buyer)

        assert exc_info.value.shortfall == 5000.0
        assert (await services.quotes.get(quote.quote_id)).order_id is None
        assert await services.store.count("orders") == 0

        # Cash on delivery does not touch credit
        order = await services.quotes.convert_to_order(
            quote.quote_id, ConvertOptions(payment_type=PaymentType.COD), actor=account_buyer
        )
        assert order.credit_receipt_id is None
        assert await services.ledger.available(account.account_id) == 10000.0

    @pytest.mark.asyncio
    async def test_account_required(self, services, accepted_quote, buyer):
        quote = await accepted_quote(buyer)

        with pytest.raises(ValidationError) as exc_info:
            await services.quotes.convert_to_order(quote.quote_id, actor=buyer)
        assert exc_info.value.fields == ["business_account_id"]


class TestQuoteQueries:
    @pytest.mark.asyncio
    async def test_list_and_my_quotes(self, services, submit_lead, buyer):
        mine = await submit_lead(buyer)
        other = await submit_lead()
        my_quote = await services.quotes.request_quote(mine.lead_id)
        await services.quotes.request_quote(other.lead_id)

        assert len(await services.quotes.list_quotes()) == 2
        assert [q.quote_id for q in await services.quotes.list_quotes(inquiry_id=mine.lead_id)] == [my_quote.quote_id]

        quotes = await services.quotes.my_quotes(buyer, [mine.lead_id])
        assert [q.quote_id for q in quotes] == [my_quote.quote_id]
