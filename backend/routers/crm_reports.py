"""
CRM Reports & Dashboards Router
Lead rollups per account and team member, follow-up calendar, product demand
"""
from fastapi import APIRouter, Depends, Query
from datetime import datetime, timezone, date
from typing import Optional

from models.lead import Lead
from models.quote import Quote
from models.user import User
from dependencies import require_admin, get_services
from services import crm_aggregation
from services.container import Services

router = APIRouter(prefix="/crm/reports", tags=["crm-reports"])


async def _all_leads(services: Services):
    return [Lead.model_validate(d) for d in await services.store.find("leads")]


# ==================== DASHBOARD ====================

@router.get("/dashboard")
async def get_dashboard(
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    """Lead statistics and the quote pipeline"""
    leads = await _all_leads(services)
    quotes = [Quote.model_validate(d) for d in await services.store.find("quotes")]
    return {
        "leads": crm_aggregation.lead_stats(leads, datetime.now(timezone.utc)),
        "quotes": crm_aggregation.quote_pipeline(quotes),
    }


# ==================== PERFORMANCE ====================

@router.get("/accounts")
async def get_account_metrics(
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    """Total / open / closed leads per business account"""
    metrics = crm_aggregation.lead_metrics_by_account(await _all_leads(services))
    return {"accounts": [{"business_account_id": k, **v} for k, v in metrics.items()]}


@router.get("/team")
async def get_team_metrics(
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    """Per team member lead counts, contact rate and conversion rate"""
    metrics = crm_aggregation.lead_metrics_by_assignee(await _all_leads(services))
    team = [{"assigned_to": k, **v} for k, v in metrics.items()]
    team.sort(key=lambda m: m["total_leads"], reverse=True)
    return {"team": team}


# ==================== FOLLOW-UPS & PRODUCTS ====================

@router.get("/follow-ups")
async def get_follow_up_calendar(
    today: Optional[date] = None,
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    today = today or datetime.now(timezone.utc).date()
    calendar = crm_aggregation.follow_up_calendar(await _all_leads(services), today)
    overdue = sum(1 for day in calendar for entry in day["leads"] if entry["overdue"])
    return {"today": today.isoformat(), "days": calendar, "overdue": overdue}


@router.get("/top-products")
async def get_top_products(
    limit: int = Query(5, ge=1, le=50),
    user: User = Depends(require_admin),
    services: Services = Depends(get_services)
):
    return {"products": crm_aggregation.top_products(await _all_leads(services), limit)}
