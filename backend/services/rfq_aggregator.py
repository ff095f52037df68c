"""
Bulk RFQ Aggregator

A buyer collects products in a draft cart and submits them together. The
composite policy turns the whole cart into one lead carrying every line in
`products`; the per_product policy fans out one lead per line.
"""
import copy
import logging
from typing import Optional, List, Dict, Callable, Union

from models.lead import Lead, LeadProductLine, InquiryType
from models.product import Product
from models.rfq import DraftItem, BuyerContact, AddItemResult
from models.user import User
from services.errors import ValidationError, NotFoundError

logger = logging.getLogger(__name__)

COMPOSITE = "composite"
PER_PRODUCT = "per_product"
RFQ_TAG = "bulk_rfq"


# ==================== DRAFT PERSISTENCE ====================

class DraftCartStorage:
    """Key-value persistence for draft carts: key -> list of item records"""

    async def read(self, key: str) -> List[dict]:
        raise NotImplementedError

    async def write(self, key: str, items: List[dict]):
        raise NotImplementedError


class InMemoryDraftStorage(DraftCartStorage):
    def __init__(self):
        self._carts: Dict[str, List[dict]] = {}

    async def read(self, key: str) -> List[dict]:
        return copy.deepcopy(self._carts.get(key, []))

    async def write(self, key: str, items: List[dict]):
        self._carts[key] = copy.deepcopy(items)


class StoreDraftStorage(DraftCartStorage):
    """Keeps carts in the entity store's rfq_drafts collection"""

    def __init__(self, store):
        self.store = store

    async def read(self, key: str) -> List[dict]:
        doc = await self.store.get("rfq_drafts", key)
        return doc.get("items", []) if doc else []

    async def write(self, key: str, items: List[dict]):
        doc = await self.store.get("rfq_drafts", key)
        if doc is None:
            await self.store.insert("rfq_drafts", {"cart_key": key, "items": items})
        else:
            doc["items"] = items
            await self.store.replace("rfq_drafts", doc, expected_version=doc["version"])


# ==================== DRAFT CART ====================

class DraftCart:
    """A buyer's RFQ list. Call load() before use; every change is written through."""

    def __init__(self, key: str, storage: DraftCartStorage):
        self.key = key
        self.storage = storage
        self._items: List[DraftItem] = []
        self._listeners: List[Callable[[int], None]] = []

    async def load(self) -> "DraftCart":
        self._items = [DraftItem.model_validate(d) for d in await self.storage.read(self.key)]
        return self

    @property
    def items(self) -> List[DraftItem]:
        return list(self._items)

    @property
    def count(self) -> int:
        return len(self._items)

    def subscribe(self, listener: Callable[[int], None]) -> Callable[[], None]:
        """Register for item-count changes; returns an unsubscribe function"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    async def _persist(self):
        await self.storage.write(self.key, [item.model_dump() for item in self._items])
        for listener in list(self._listeners):
            try:
                listener(self.count)
            except Exception:
                logger.exception(f"RFQ count listener failed for cart {self.key}")

    def _find(self, product_id: str) -> Optional[DraftItem]:
        return next((item for item in self._items if item.product_id == product_id), None)

    async def add_item(self, product: Product, quantity: Optional[int] = None) -> AddItemResult:
        if self._find(product.product_id) is not None:
            return AddItemResult(added=False, message="Product already in RFQ list", count=self.count)

        moq = product.moq or 1
        if quantity is None:
            quantity = moq
        elif quantity < moq:
            raise ValidationError(
                f"Quantity {quantity} is below the minimum order quantity of {moq}",
                {"quantity": f"must be at least {moq}"},
            )

        self._items.append(DraftItem(product_id=product.product_id, name=product.name, quantity=quantity, moq=moq))
        await self._persist()
        return AddItemResult(added=True, message="Product added to RFQ list", count=self.count)

    async def remove_item(self, product_id: str) -> bool:
        item = self._find(product_id)
        if item is None:
            return False
        self._items.remove(item)
        await self._persist()
        return True

    async def update_quantity(self, product_id: str, quantity: int) -> DraftItem:
        item = self._find(product_id)
        if item is None:
            raise NotFoundError(f"Product '{product_id}' is not in the RFQ list", {"product_id": product_id})
        if quantity < item.moq:
            raise ValidationError(
                f"Quantity {quantity} is below the minimum order quantity of {item.moq}",
                {"quantity": f"must be at least {item.moq}"},
            )
        item.quantity = quantity
        await self._persist()
        return item

    async def clear(self):
        self._items = []
        await self._persist()


# ==================== SUBMISSION ====================

def rfq_summary(items: List[DraftItem]) -> str:
    lines = [f"Bulk RFQ for {len(items)} products:"]
    for idx, item in enumerate(items, 1):
        lines.append(f"{idx}. {item.name or item.product_id} - Qty: {item.quantity} (MOQ: {item.moq})")
    return "\n".join(lines)


class RfqAggregator:
    def __init__(self, lead_machine, policy: str = COMPOSITE):
        if policy not in (COMPOSITE, PER_PRODUCT):
            raise ValueError(f"Unknown RFQ policy: {policy}")
        self.leads = lead_machine
        self.policy = policy

    def _validate(self, cart: DraftCart, contact: BuyerContact):
        errors = {field: "required" for field in contact.missing_fields()}
        if cart.count == 0:
            errors["items"] = "RFQ list is empty"
        for item in cart.items:
            if item.quantity < item.moq:
                errors[f"items.{item.product_id}.quantity"] = f"must be at least {item.moq}"
        if errors:
            raise ValidationError(f"Bulk RFQ is incomplete: {', '.join(errors)}", errors)

    def _lead_for(self, items: List[DraftItem], contact: BuyerContact, user: Optional[User],
                  degraded_reason: Optional[str]) -> Lead:
        total_quantity = sum(item.quantity for item in items)
        first = items[0]
        summary = rfq_summary(items)
        return Lead(
            buyer_name=contact.buyer_name.strip(),
            buyer_email=contact.buyer_email.strip().lower(),
            buyer_phone=contact.buyer_phone.strip(),
            buyer_city=contact.buyer_city.strip(),
            buyer_state=contact.buyer_state,
            buyer_country=contact.buyer_country or self.leads.default_country,
            business_type=contact.business_type,
            company_name=contact.company_name,
            gst_number=contact.gst_number,
            product_id=first.product_id,
            product_name=first.name,
            quantity_required=total_quantity,
            products=[
                LeadProductLine(product_id=i.product_id, product_name=i.name, quantity=i.quantity, moq=i.moq)
                for i in items
            ],
            inquiry_type=InquiryType.BULK_ORDER,
            priority=self.leads.derive_priority(total_quantity),
            notes=f"{summary}\n\n{contact.notes}" if contact.notes else summary,
            requirements=contact.requirements,
            buyer_user_id=user.user_id if user else None,
            business_account_id=user.business_account_id if user else None,
            tags=[RFQ_TAG],
            degraded=degraded_reason is not None,
            degraded_reason=degraded_reason,
        )

    async def submit_bulk_rfq(self, cart: DraftCart, contact: BuyerContact,
                              user: Optional[User] = None) -> Union[Lead, List[Lead]]:
        self._validate(cart, contact)
        items = cart.items

        degraded_reasons = {}
        for item in items:
            _, reason = await self.leads.resolve_product(item.product_id)
            if reason:
                degraded_reasons[item.product_id] = reason

        actor_id = user.user_id if user else None
        if self.policy == COMPOSITE:
            reason = "; ".join(dict.fromkeys(degraded_reasons.values())) or None
            result = await self.leads.capture(self._lead_for(items, contact, user, reason), actor_id=actor_id)
            logger.info(f"Bulk RFQ {result.lead_id} submitted with {len(items)} products")
        else:
            result = []
            for item in items:
                lead = self._lead_for([item], contact, user, degraded_reasons.get(item.product_id))
                result.append(await self.leads.capture(lead, actor_id=actor_id))
            logger.info(f"Bulk RFQ fanned out into {len(result)} leads")

        await cart.clear()
        return result

