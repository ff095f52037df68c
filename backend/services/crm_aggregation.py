"""
CRM Aggregation - read-side rollups over leads and quotes for dashboards

Pure functions; nothing here mutates the collections it is given. Each
function takes a list() snapshot of its input before iterating so a writer
appending concurrently cannot break or double-count the pass.
"""
from collections import OrderedDict
from datetime import datetime, date, timedelta, timezone
from typing import Iterable, Dict, List, Optional

from models.lead import Lead, LeadStatus, LeadPriority, TERMINAL_STATUSES, CONTACTED_STATUSES
from models.quote import Quote, QuoteStatus


def _empty_stats() -> dict:
    return {"total_leads": 0, "open_leads": 0, "closed_deals": 0}


def _count(stats: dict, lead: Lead):
    stats["total_leads"] += 1
    if lead.status not in TERMINAL_STATUSES:
        stats["open_leads"] += 1
    if lead.status == LeadStatus.CLOSED:
        stats["closed_deals"] += 1


def percent(part: int, whole: int) -> int:
    """part/whole as an integer percent, rounding half up; 0 when whole is 0"""
    if whole <= 0:
        return 0
    return (part * 200 + whole) // (2 * whole)


def conversion_rate(stats: dict) -> int:
    total = stats.get("total_leads", 0)
    closed = stats.get("closed_deals", 0)
    if total <= 0 or closed <= 0:
        return 0
    return percent(closed, total)


def lead_metrics_by_account(leads: Iterable[Lead]) -> Dict[str, dict]:
    """account_id -> {total_leads, open_leads, closed_deals, conversion_rate}.
    Leads without a business account are left out."""
    metrics: Dict[str, dict] = {}
    for lead in list(leads):
        if not lead.business_account_id:
            continue
        _count(metrics.setdefault(lead.business_account_id, _empty_stats()), lead)
    for stats in metrics.values():
        stats["conversion_rate"] = conversion_rate(stats)
    return metrics


def lead_metrics_by_assignee(leads: Iterable[Lead]) -> Dict[str, dict]:
    """admin_id -> account-style stats plus the contacted rollup and contact rate"""
    metrics: Dict[str, dict] = {}
    for lead in list(leads):
        if not lead.assigned_to:
            continue
        stats = metrics.setdefault(lead.assigned_to, {**_empty_stats(), "contacted": 0})
        _count(stats, lead)
        if lead.status in CONTACTED_STATUSES:
            stats["contacted"] += 1
    for stats in metrics.values():
        stats["contact_rate"] = percent(stats["contacted"], stats["total_leads"])
        stats["conversion_rate"] = conversion_rate(stats)
    return metrics


def _day(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def is_overdue(lead: Lead, today: date) -> bool:
    if lead.follow_up_date is None or lead.status == LeadStatus.CLOSED:
        return False
    return _day(lead.follow_up_date) < today


def follow_up_calendar(leads: Iterable[Lead], today: date) -> List[dict]:
    """Leads with a follow-up date, grouped by calendar day, earliest day first"""
    days: Dict[date, List[dict]] = {}
    for lead in list(leads):
        if lead.follow_up_date is None:
            continue
        days.setdefault(_day(lead.follow_up_date), []).append({
            "lead_id": lead.lead_id,
            "buyer_name": lead.buyer_name,
            "company_name": lead.company_name,
            "status": lead.status.value,
            "assigned_to": lead.assigned_to,
            "follow_up_notes": lead.follow_up_notes,
            "overdue": is_overdue(lead, today),
        })
    return [
        {"date": day.isoformat(), "overdue": day < today, "leads": entries}
        for day, entries in sorted(days.items())
    ]


def top_products(leads: Iterable[Lead], limit: int = 5) -> List[dict]:
    """Products by number of leads mentioning them; ties keep first-seen order"""
    counts: "OrderedDict[str, dict]" = OrderedDict()
    for lead in list(leads):
        names = {line.product_id: line.product_name for line in lead.products}
        for product_id in lead.product_ids:
            entry = counts.get(product_id)
            if entry is None:
                entry = counts[product_id] = {
                    "product_id": product_id,
                    "product_name": names.get(product_id) or (lead.product_name if product_id == lead.product_id else None),
                    "lead_count": 0,
                }
            entry["lead_count"] += 1
    # sorted() is stable, so equal counts stay in insertion order
    ranked = sorted(counts.values(), key=lambda e: e["lead_count"], reverse=True)
    return ranked[:max(limit, 0)]


def status_counts(leads: Iterable[Lead]) -> Dict[str, int]:
    counts = {s.value: 0 for s in LeadStatus}
    for lead in list(leads):
        counts[lead.status.value] += 1
    return counts


def lead_stats(leads: Iterable[Lead], now: Optional[datetime] = None) -> dict:
    """Dashboard summary: totals, status / priority breakdown, new this week"""
    now = now or datetime.now(timezone.utc)
    snapshot = list(leads)
    week_ago = now - timedelta(days=7)

    stats = _empty_stats()
    priorities = {p.value: 0 for p in LeadPriority}
    recent = 0
    for lead in snapshot:
        _count(stats, lead)
        priorities[lead.priority.value] += 1
        if lead.created_at >= week_ago:
            recent += 1

    return {
        **stats,
        "conversion_rate": conversion_rate(stats),
        "by_status": status_counts(snapshot),
        "by_priority": priorities,
        "new_last_7_days": recent,
        "overdue_follow_ups": sum(1 for lead in snapshot if is_overdue(lead, _day(now))),
    }


def quote_pipeline(quotes: Iterable[Quote]) -> dict:
    """Count and value of quotes per status, plus how many were converted"""
    pipeline = {s.value: {"count": 0, "value": 0.0} for s in QuoteStatus}
    converted = 0
    for quote in list(quotes):
        bucket = pipeline[quote.status.value]
        bucket["count"] += 1
        bucket["value"] = round(bucket["value"] + quote.total_amount, 2)
        if quote.is_converted:
            converted += 1
    return {"by_status": pipeline, "converted": converted}
