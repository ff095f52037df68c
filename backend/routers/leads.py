"""
Leads Router
Buyer inquiries and the admin lead workflow (status, assignment, follow-ups)
"""
from fastapi import APIRouter, Depends, Query
from datetime import datetime
from typing import Optional

from models.lead import LeadCreate, LeadStatusUpdate, LeadAssign, LeadFollowUp, LeadDetailsUpdate
from models.quote import QuoteRequest
from models.user import User
from dependencies import get_current_user, get_optional_user, require_admin, get_services, paginate
from services.container import Services

router = APIRouter(prefix="/leads", tags=["leads"])


# ==================== BUYER ====================

@router.post("")
async def submit_inquiry(
    draft: LeadCreate,
    user: Optional[User] = Depends(get_optional_user),
    services: Services = Depends(get_services)
):
    """Submit a product inquiry (get best price, callback, ...)"""
    lead = await services.leads.submit(draft, user)
    message = "Inquiry submitted"
    if lead.degraded:
        message = "Inquiry submitted; product details will be confirmed by our team"
    return {"success": True, "message": message, "lead": lead.model_dump(mode="json")}


@router.get("/mine")
async def my_inquiries(
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services)
):
    leads = await services.leads.my_inquiries(user)
    return {"leads": [lead.model_dump(mode="json") for lead in leads]}


# ==================== ADMIN ====================

@router.get("")
async def list_leads(
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
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    """List leads with filtering"""
    leads = await services.leads.list_leads(
        status=status, priority=priority, product_id=product_id, business_type=business_type,
        assigned_to=assigned_to, search=search, inquiry_type=inquiry_type, tag=tag,
        start_date=start_date, end_date=end_date,
    )
    items, pagination = paginate(leads, page, page_size)
    return {
        "leads": [lead.model_dump(mode="json") for lead in items],
        "pagination": pagination
    }


@router.get("/{lead_id}")
async def get_lead(
    lead_id: str,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    lead = await services.leads.get(lead_id)
    activities = await services.store.find("activity_log", {"record_type": "lead", "record_id": lead_id})
    activities.sort(key=lambda a: a["created_at"], reverse=True)
    return {**lead.model_dump(mode="json"), "activities": activities[:50]}


@router.put("/{lead_id}/status")
async def update_status(
    lead_id: str,
    update: LeadStatusUpdate,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    lead = await services.leads.transition(lead_id, update.status, user.user_id)
    return {"success": True, "message": f"Lead marked {lead.status.value}", "lead": lead.model_dump(mode="json")}


@router.put("/{lead_id}/assign")
async def assign_lead(
    lead_id: str,
    assignment: LeadAssign,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    lead = await services.leads.assign(lead_id, assignment.assigned_to, actor_id=user.user_id)
    return {"success": True, "message": "Lead assigned", "lead": lead.model_dump(mode="json")}


@router.put("/{lead_id}/follow-up")
async def schedule_follow_up(
    lead_id: str,
    follow_up: LeadFollowUp,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    lead = await services.leads.schedule_follow_up(
        lead_id, follow_up.follow_up_date, follow_up.follow_up_notes, actor_id=user.user_id
    )
    return {"success": True, "message": "Follow-up scheduled", "lead": lead.model_dump(mode="json")}


@router.put("/{lead_id}")
async def update_lead(
    lead_id: str,
    updates: LeadDetailsUpdate,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    """Update priority, internal notes or tags"""
    lead = await services.leads.update_details(lead_id, updates, actor_id=user.user_id)
    return {"success": True, "message": "Lead updated", "lead": lead.model_dump(mode="json")}


@router.post("/{lead_id}/quote")
async def request_quote(
    lead_id: str,
    request: Optional[QuoteRequest] = None,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    """Create a quote for the lead; items are priced from the catalog when omitted"""
    quote = await services.quotes.request_quote(lead_id, request, actor_id=user.user_id)
    return {"success": True, "message": "Quote created", "quote": quote.model_dump(mode="json")}


@router.delete("/{lead_id}")
async def delete_lead(
    lead_id: str,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    await services.leads.delete(lead_id, actor_id=user.user_id)
    return {"success": True, "message": "Lead deleted"}
