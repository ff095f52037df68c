"""
Lead State Machine

new -> contacted -> interested -> quoted -> negotiating -> closed / rejected / lost

Admins may move a lead from any non-terminal status to any other status (the
workflow is a dropdown, not a strict pipeline). closed, rejected and lost are
final: no transition leaves them.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, List, Tuple

from models.lead import (
    Lead, LeadCreate, LeadStatus, LeadPriority, LeadDetailsUpdate, StatusChange
)
from models.product import Product
from models.user import User
from services.entity_store import load_model, insert_model, save_model
from services.errors import (
    ValidationError, NotFoundError, InvalidTransitionError, UnknownEntityTransitionError,
    ProductLookupError,
)
from services.events import ChangeEvent
from services.locks import entity_key

logger = logging.getLogger(__name__)

LEADS = "leads"
REQUIRED_CONTACT_FIELDS = ("buyer_name", "buyer_email", "buyer_phone", "buyer_city")


def utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC"""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_status(value) -> LeadStatus:
    try:
        return LeadStatus(value)
    except ValueError:
        raise ValidationError(
            f"Invalid lead status '{value}'",
            {"status": f"must be one of {', '.join(s.value for s in LeadStatus)}"},
        )


def apply_status(lead: Lead, status: LeadStatus, actor_id: Optional[str], now: Optional[datetime] = None) -> Lead:
    """Move `lead` to `status` and stamp the contact / quote timestamps"""
    now = now or datetime.now(timezone.utc)
    lead.status = status
    if status == LeadStatus.CONTACTED:
        if lead.contacted_at is None:
            lead.contacted_at = now
            lead.contacted_by = actor_id
        lead.last_contacted_at = now
    if status == LeadStatus.QUOTED and lead.quoted_at is None:
        lead.quoted_at = now
    lead.status_history.append(StatusChange(status=status, changed_by=actor_id, changed_at=now))
    lead.updated_at = now
    return lead


class LeadMachine:
    def __init__(self, store, locks, events, catalog,
                 high_priority_quantity: int = 1000,
                 medium_priority_quantity: int = 500,
                 default_country: str = "India"):
        self.store = store
        self.locks = locks
        self.events = events
        self.catalog = catalog
        self.high_priority_quantity = high_priority_quantity
        self.medium_priority_quantity = medium_priority_quantity
        self.default_country = default_country

    def derive_priority(self, quantity: int) -> LeadPriority:
        if quantity >= self.high_priority_quantity:
            return LeadPriority.HIGH
        if quantity >= self.medium_priority_quantity:
            return LeadPriority.MEDIUM
        return LeadPriority.LOW

    async def resolve_product(self, product_id: str) -> Tuple[Optional[Product], Optional[str]]:
        """Returns (product, degraded_reason). An unknown product is an error,
        an unreachable catalog only degrades the capture."""
        try:
            product = await self.catalog.get_product(product_id)
        except ProductLookupError as e:
            logger.warning(f"Product lookup unavailable for {product_id}, capturing lead degraded: {e.message}")
            return None, e.message
        if product is None:
            raise NotFoundError(f"Product '{product_id}' not found", {"product_id": product_id})
        return product, None

    async def submit(self, draft: LeadCreate, user: Optional[User] = None) -> Lead:
        """Capture a buyer inquiry as a new lead"""
        errors = {}
        for field in REQUIRED_CONTACT_FIELDS + ("product_id",):
            if not (getattr(draft, field) or "").strip():
                errors[field] = "required"
        if draft.quantity_required is None:
            errors["quantity_required"] = "required"
        elif draft.quantity_required < 1:
            errors["quantity_required"] = "must be at least 1"
        if errors:
            raise ValidationError(
                f"Missing or invalid fields: {', '.join(errors)}",
                errors,
            )

        product, degraded_reason = await self.resolve_product(draft.product_id.strip())

        lead = Lead(
            buyer_name=draft.buyer_name.strip(),
            buyer_email=draft.buyer_email.strip().lower(),
            buyer_phone=draft.buyer_phone.strip(),
            buyer_city=draft.buyer_city.strip(),
            buyer_state=draft.buyer_state.strip() if draft.buyer_state else None,
            buyer_country=draft.buyer_country or self.default_country,
            business_type=draft.business_type,
            company_name=draft.company_name.strip() if draft.company_name else None,
            gst_number=draft.gst_number.strip() if draft.gst_number else None,
            product_id=draft.product_id.strip(),
            product_name=product.name if product else None,
            quantity_required=draft.quantity_required,
            size=draft.size,
            color=draft.color,
            inquiry_type=draft.inquiry_type,
            priority=draft.priority or self.derive_priority(draft.quantity_required),
            notes=draft.notes.strip() if draft.notes else None,
            requirements=draft.requirements.strip() if draft.requirements else None,
            source=draft.source,
            buyer_user_id=user.user_id if user else None,
            business_account_id=user.business_account_id if user else None,
            degraded=degraded_reason is not None,
            degraded_reason=degraded_reason,
        )
        return await self.capture(lead, actor_id=user.user_id if user else None)

    async def capture(self, lead: Lead, actor_id: Optional[str] = None) -> Lead:
        """Persist an already-validated lead and announce it"""
        lead.status = LeadStatus.NEW
        lead.status_history = [StatusChange(status=LeadStatus.NEW, changed_by=actor_id, changed_at=lead.created_at)]
        lead = await insert_model(self.store, LEADS, lead)
        logger.info(
            f"New lead created: {lead.lead_id} product={lead.product_id} "
            f"qty={lead.quantity_required} buyer={lead.buyer_email}"
        )
        await self.events.publish(ChangeEvent(
            entity_type="lead",
            entity_id=lead.lead_id,
            state=lead.status.value,
            action="created",
            actor_id=actor_id,
            changes={"product_id": lead.product_id, "quantity_required": lead.quantity_required},
        ))
        return lead

    async def get(self, lead_id: str) -> Lead:
        lead = await load_model(self.store, LEADS, Lead, lead_id)
        if lead is None:
            raise NotFoundError(f"Lead '{lead_id}' not found", {"lead_id": lead_id})
        return lead

    async def transition(self, lead_id: str, target_status, actor_id: Optional[str]) -> Lead:
        status = parse_status(target_status)

        async with self.locks.hold(entity_key(LEADS, lead_id)):
            lead = await load_model(self.store, LEADS, Lead, lead_id)
            if lead is None:
                raise UnknownEntityTransitionError(f"Lead '{lead_id}' not found", {"lead_id": lead_id})
            if lead.is_terminal:
                raise InvalidTransitionError(
                    f"Lead '{lead_id}' is {lead.status.value}; closed, rejected and lost leads cannot change status",
                    {"lead_id": lead_id, "status": lead.status.value, "target": status.value},
                )
            previous = lead.status
            apply_status(lead, status, actor_id)
            lead = await save_model(self.store, LEADS, lead)

        logger.info(f"Lead {lead_id} {previous.value} -> {status.value} by {actor_id}")
        await self.events.publish(ChangeEvent(
            entity_type="lead",
            entity_id=lead_id,
            state=lead.status.value,
            action="status_changed",
            actor_id=actor_id,
            changes={"from": previous.value, "to": lead.status.value},
        ))
        return lead

    async def assign(self, lead_id: str, admin_id: str, actor_id: Optional[str] = None) -> Lead:
        if not (admin_id or "").strip():
            raise ValidationError("Assignee is required", {"assigned_to": "required"})

        async with self.locks.hold(entity_key(LEADS, lead_id)):
            lead = await self.get(lead_id)
            if lead.assigned_to == admin_id:
                return lead
            lead.assigned_to = admin_id
            lead.updated_at = datetime.now(timezone.utc)
            lead = await save_model(self.store, LEADS, lead)

        await self.events.publish(ChangeEvent(
            entity_type="lead",
            entity_id=lead_id,
            state=lead.status.value,
            action="assigned",
            actor_id=actor_id,
            changes={"assigned_to": admin_id},
        ))
        return lead

    async def schedule_follow_up(self, lead_id: str, follow_up_date: datetime, notes: Optional[str] = None,
                                 actor_id: Optional[str] = None) -> Lead:
        if follow_up_date is None:
            raise ValidationError("Follow-up date is required", {"follow_up_date": "required"})

        async with self.locks.hold(entity_key(LEADS, lead_id)):
            lead = await self.get(lead_id)
            lead.follow_up_date = utc(follow_up_date)
            if notes:
                lead.follow_up_notes = notes
            lead.updated_at = datetime.now(timezone.utc)
            lead = await save_model(self.store, LEADS, lead)

        await self.events.publish(ChangeEvent(
            entity_type="lead",
            entity_id=lead_id,
            state=lead.status.value,
            action="follow_up_scheduled",
            actor_id=actor_id,
            changes={"follow_up_date": lead.follow_up_date.isoformat()},
        ))
        return lead

    async def update_details(self, lead_id: str, updates: LeadDetailsUpdate, actor_id: Optional[str] = None) -> Lead:
        update_data = {k: v for k, v in updates.model_dump().items() if v is not None}
        if not update_data:
            raise ValidationError("No updates provided", {"body": "empty"})

        async with self.locks.hold(entity_key(LEADS, lead_id)):
            lead = await self.get(lead_id)
            for key, value in update_data.items():
                setattr(lead, key, value)
            lead.updated_at = datetime.now(timezone.utc)
            lead = await save_model(self.store, LEADS, lead)

        await self.events.publish(ChangeEvent(
            entity_type="lead",
            entity_id=lead_id,
            state=lead.status.value,
            action="updated",
            actor_id=actor_id,
            changes={k: getattr(v, "value", v) for k, v in update_data.items()},
        ))
        return lead

    async def delete(self, lead_id: str, actor_id: Optional[str] = None):
        """Administrative override; leads are otherwise never removed"""
        async with self.locks.hold(entity_key(LEADS, lead_id)):
            deleted = await self.store.delete(LEADS, lead_id)
        if not deleted:
            raise NotFoundError(f"Lead '{lead_id}' not found", {"lead_id": lead_id})

        logger.warning(f"Lead {lead_id} deleted by {actor_id}")
        await self.events.publish(ChangeEvent(
            entity_type="lead", entity_id=lead_id, state="deleted", action="deleted", actor_id=actor_id,
        ))

    async def list_leads(
        self,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        product_id: Optional[str] = None,
        business_type: Optional[str] = None,
        assigned_to: Optional[str] = None,
        search: Optional[str] = None,
        inquiry_type: Optional[str] = None,
        tag: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Lead]:
        query = {}
        if status:
            query["status"] = parse_status(status).value
        if priority:
            query["priority"] = priority
        if product_id:
            query["product_id"] = product_id
        if business_type:
            query["business_type"] = business_type
        if assigned_to:
            query["assigned_to"] = assigned_to
        if inquiry_type:
            query["inquiry_type"] = inquiry_type

        leads = [Lead.model_validate(d) for d in await self.store.find(LEADS, query)]

        start_date, end_date = utc(start_date), utc(end_date)
        if start_date:
            leads = [lead for lead in leads if lead.created_at >= start_date]
        if end_date:
            leads = [lead for lead in leads if lead.created_at <= end_date]
        if tag:
            leads = [lead for lead in leads if tag in lead.tags]
        if search:
            needle = search.lower()
            leads = [
                lead for lead in leads
                if any(needle in (value or "").lower() for value in (
                    lead.buyer_name, lead.buyer_email, lead.buyer_phone, lead.company_name, lead.product_name,
                ))
            ]

        leads.sort(key=lambda lead: lead.created_at, reverse=True)
        return leads

    async def my_inquiries(self, user: User) -> List[Lead]:
        """Leads submitted by the buyer, matched by user id or email"""
        docs = await self.store.find(LEADS, {"buyer_user_id": user.user_id})
        if user.email:
            docs += await self.store.find(LEADS, {"buyer_email": user.email.lower()})

        seen = {}
        for doc in docs:
            seen.setdefault(doc["lead_id"], Lead.model_validate(doc))
        return sorted(seen.values(), key=lambda lead: lead.created_at, reverse=True)
