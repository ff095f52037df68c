"""
Quote State Machine

pending -> accepted | rejected | expired, and accepted -> (converted, exactly once)

Quotes are requested against a lead that is still new or contacted. Prices are
locked into the quote items; conversion uses those locked prices, never the
live catalog.
"""
import logging
from datetime import datetime, timezone, timedelta
from typing import Optional, List

from pydantic import ValidationError as PydanticValidationError

from models.business_account import BusinessAccount
from models.lead import Lead, LeadStatus, LeadProductLine, QUOTABLE_STATUSES
from models.order import Order, OrderCreate, OrderLineItem, ConvertOptions
from models.quote import Quote, QuoteItem, QuoteStatus, QuoteRequest, items_total
from models.user import User
from services.entity_store import load_model, insert_model, save_model
from services.errors import (
    NotFoundError, PreconditionError, InvalidTransitionError, ValidationError, AlreadyConvertedError,
)
from services.events import ChangeEvent
from services.lead_machine import apply_status, utc
from services.locks import entity_key
from services.pricing import calculate_b2b_price

logger = logging.getLogger(__name__)

QUOTES = "quotes"
LEADS = "leads"
ACCOUNTS = "business_accounts"


def _pydantic_details(error: PydanticValidationError) -> dict:
    details = {}
    for err in error.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "total_amount"
        details[field] = err.get("msg", "invalid")
    return details


class QuoteMachine:
    def __init__(self, store, locks, events, catalog, orders, validity_days: int = 15):
        self.store = store
        self.locks = locks
        self.events = events
        self.catalog = catalog
        self.orders = orders
        self.validity_days = validity_days

    async def get(self, quote_id: str) -> Quote:
        quote = await load_model(self.store, QUOTES, Quote, quote_id)
        if quote is None:
            raise NotFoundError(f"Quote '{quote_id}' not found", {"quote_id": quote_id})
        return quote

    async def _price_items(self, lead: Lead, account: Optional[BusinessAccount]) -> List[QuoteItem]:
        """Price every requested product from the catalog. Unlike lead capture,
        a catalog failure here is fatal: a quote needs real prices."""
        lines = lead.products or [LeadProductLine(
            product_id=lead.product_id, product_name=lead.product_name, quantity=lead.quantity_required,
        )]
        items = []
        for line in lines:
            product = await self.catalog.get_product(line.product_id)
            if product is None:
                raise NotFoundError(f"Product '{line.product_id}' not found", {"product_id": line.product_id})
            items.append(QuoteItem(
                product_id=product.product_id,
                product_name=product.name,
                quantity=line.quantity,
                price=calculate_b2b_price(product, account, line.quantity),
            ))
        return items

    async def request_quote(self, lead_id: str, request: Optional[QuoteRequest] = None,
                            actor_id: Optional[str] = None) -> Quote:
        request = request or QuoteRequest()

        async with self.locks.hold(entity_key(LEADS, lead_id)):
            lead = await load_model(self.store, LEADS, Lead, lead_id)
            if lead is None:
                raise NotFoundError(f"Lead '{lead_id}' not found", {"lead_id": lead_id})
            if lead.status not in QUOTABLE_STATUSES:
                raise PreconditionError(
                    f"Lead '{lead_id}' is {lead.status.value}; quotes can only be requested for new or contacted leads",
                    {"lead_id": lead_id, "status": lead.status.value},
                )

            account = None
            if lead.business_account_id:
                account = await load_model(self.store, ACCOUNTS, BusinessAccount, lead.business_account_id)

            items = request.items or await self._price_items(lead, account)
            total = request.total_amount if request.total_amount is not None else items_total(items)
            now = datetime.now(timezone.utc)
            try:
                quote = Quote(
                    inquiry_id=lead.lead_id,
                    product_id=lead.product_id,
                    business_account_id=lead.business_account_id,
                    items=items,
                    total_amount=total,
                    valid_until=utc(request.valid_until) or now + timedelta(days=self.validity_days),
                    terms=request.terms,
                    notes=request.notes,
                    created_by=actor_id,
                    created_at=now,
                    updated_at=now,
                )
            except PydanticValidationError as e:
                raise ValidationError("Quote totals do not match its line items", _pydantic_details(e))

            quote = await insert_model(self.store, QUOTES, quote)
            previous = lead.status
            apply_status(lead, LeadStatus.QUOTED, actor_id, now)
            lead.quote_id = quote.quote_id
            try:
                await save_model(self.store, LEADS, lead)
            except Exception:
                await self.store.delete(QUOTES, quote.quote_id)
                logger.warning(f"Quote {quote.quote_id} withdrawn: lead {lead_id} could not be marked quoted")
                raise

        logger.info(f"Quote {quote.quote_id} created for lead {lead_id}: {quote.total_amount:.2f}")
        await self.events.publish(ChangeEvent(
            entity_type="quote",
            entity_id=quote.quote_id,
            state=quote.status.value,
            action="created",
            actor_id=actor_id,
            changes={"inquiry_id": lead_id, "total_amount": quote.total_amount},
        ))
        await self.events.publish(ChangeEvent(
            entity_type="lead",
            entity_id=lead_id,
            state=LeadStatus.QUOTED.value,
            action="status_changed",
            actor_id=actor_id,
            changes={"from": previous.value, "to": LeadStatus.QUOTED.value, "quote_id": quote.quote_id},
        ))
        return quote

    async def _expire(self, quote: Quote, now: datetime) -> Quote:
        quote.status = QuoteStatus.EXPIRED
        quote.expired_at = now
        quote.updated_at = now
        return await save_model(self.store, QUOTES, quote)

    async def accept(self, quote_id: str, actor_id: Optional[str] = None) -> Quote:
        expired = False
        async with self.locks.hold(entity_key(QUOTES, quote_id)):
            quote = await self.get(quote_id)
            if quote.status != QuoteStatus.PENDING:
                raise InvalidTransitionError(
                    f"Quote '{quote_id}' is {quote.status.value}; only pending quotes can be accepted",
                    {"quote_id": quote_id, "status": quote.status.value},
                )
            now = datetime.now(timezone.utc)
            if quote.is_past_validity(now):
                quote = await self._expire(quote, now)
                expired = True
            else:
                quote.status = QuoteStatus.ACCEPTED
                quote.accepted_at = now
                quote.updated_at = now
                quote = await save_model(self.store, QUOTES, quote)

        await self.events.publish(ChangeEvent(
            entity_type="quote",
            entity_id=quote_id,
            state=quote.status.value,
            action="expired" if expired else "accepted",
            actor_id=actor_id,
        ))
        if expired:
            raise InvalidTransitionError(
                f"Quote '{quote_id}' expired on {quote.valid_until.isoformat()}",
                {"quote_id": quote_id, "status": QuoteStatus.EXPIRED.value},
            )
        logger.info(f"Quote {quote_id} accepted by {actor_id}")
        return quote

    async def reject(self, quote_id: str, reason: Optional[str], actor_id: Optional[str] = None) -> Quote:
        if not (reason or "").strip():
            raise ValidationError("A rejection reason is required", {"reason": "required"})

        async with self.locks.hold(entity_key(QUOTES, quote_id)):
            quote = await self.get(quote_id)
            if quote.status != QuoteStatus.PENDING:
                raise InvalidTransitionError(
                    f"Quote '{quote_id}' is {quote.status.value}; only pending quotes can be rejected",
                    {"quote_id": quote_id, "status": quote.status.value},
                )
            now = datetime.now(timezone.utc)
            quote.status = QuoteStatus.REJECTED
            quote.rejection_reason = reason.strip()
            quote.rejected_at = now
            quote.updated_at = now
            quote = await save_model(self.store, QUOTES, quote)

        logger.info(f"Quote {quote_id} rejected by {actor_id}: {quote.rejection_reason}")
        await self.events.publish(ChangeEvent(
            entity_type="quote",
            entity_id=quote_id,
            state=quote.status.value,
            action="rejected",
            actor_id=actor_id,
            changes={"reason": quote.rejection_reason},
        ))
        return quote

    async def convert_to_order(self, quote_id: str, options: Optional[ConvertOptions] = None,
                               actor: Optional[User] = None) -> Order:
        """Turn an accepted quote into an order, at most once"""
        options = options or ConvertOptions()
        actor_id = actor.user_id if actor else None

        async with self.locks.hold(entity_key(QUOTES, quote_id)):
            quote = await self.get(quote_id)
            if quote.is_converted:
                raise AlreadyConvertedError(
                    f"Quote '{quote_id}' was already converted to order {quote.order_id}",
                    {"quote_id": quote_id, "order_id": quote.order_id},
                )
            if quote.status != QuoteStatus.ACCEPTED:
                raise PreconditionError(
                    f"Quote '{quote_id}' is {quote.status.value}; only accepted quotes can be converted",
                    {"quote_id": quote_id, "status": quote.status.value},
                )

            account_id = options.business_account_id or quote.business_account_id
            if not account_id:
                raise ValidationError(
                    "A business account is required to place an order",
                    {"business_account_id": "required"},
                )

            lines = [
                OrderLineItem(
                    product_id=item.product_id or quote.product_id,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    price=item.price,
                    size=options.sizes.get(item.product_id or quote.product_id),
                )
                for item in quote.items
            ]
            order = await self.orders.place_order(
                OrderCreate(
                    business_account_id=account_id,
                    products=lines,
                    payment_type=options.payment_type,
                    purchase_order_number=options.purchase_order_number,
                    requires_approval=options.requires_approval,
                    notes=options.notes,
                ),
                actor=actor,
                quote_id=quote.quote_id,
                total_amount=quote.total_amount,
            )

            now = datetime.now(timezone.utc)
            quote.order_id = order.order_id
            quote.converted_at = now
            quote.updated_at = now
            try:
                await save_model(self.store, QUOTES, quote)
            except Exception:
                await self.orders.discard(order)
                raise

        logger.info(f"Quote {quote_id} converted to order {order.order_id}")
        await self.events.publish(ChangeEvent(
            entity_type="quote",
            entity_id=quote_id,
            state=QuoteStatus.ACCEPTED.value,
            action="converted",
            actor_id=actor_id,
            changes={"order_id": order.order_id},
        ))
        return order

    async def expire_stale(self, now: Optional[datetime] = None) -> int:
        """Expire every pending quote past its validity date"""
        now = now or datetime.now(timezone.utc)
        pending = [Quote.model_validate(d) for d in await self.store.find(QUOTES, {"status": QuoteStatus.PENDING.value})]
        expired = 0
        for candidate in pending:
            if not candidate.is_past_validity(now):
                continue
            async with self.locks.hold(entity_key(QUOTES, candidate.quote_id)):
                quote = await self.get(candidate.quote_id)
                if quote.status != QuoteStatus.PENDING or not quote.is_past_validity(now):
                    continue
                await self._expire(quote, now)
            expired += 1
            await self.events.publish(ChangeEvent(
                entity_type="quote", entity_id=quote.quote_id, state=QuoteStatus.EXPIRED.value, action="expired",
            ))
        if expired:
            logger.info(f"Expired {expired} stale quotes")
        return expired

    async def list_quotes(self, status: Optional[str] = None, inquiry_id: Optional[str] = None,
                          business_account_id: Optional[str] = None) -> List[Quote]:
        query = {}
        if status:
            query["status"] = status
        if inquiry_id:
            query["inquiry_id"] = inquiry_id
        if business_account_id:
            query["business_account_id"] = business_account_id
        quotes = [Quote.model_validate(d) for d in await self.store.find(QUOTES, query)]
        quotes.sort(key=lambda q: q.created_at, reverse=True)
        return quotes

    async def my_quotes(self, user: User, lead_ids: List[str]) -> List[Quote]:
        """Quotes on the buyer's own leads or addressed to the buyer's account"""
        docs = []
        if lead_ids:
            docs += await self.store.find(QUOTES, {"inquiry_id": list(lead_ids)})
        if user.business_account_id:
            docs += await self.store.find(QUOTES, {"business_account_id": user.business_account_id})
        seen = {}
        for doc in docs:
            seen.setdefault(doc["quote_id"], Quote.model_validate(doc))
        return sorted(seen.values(), key=lambda q: q.created_at, reverse=True)
