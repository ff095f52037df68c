"""
Lead State Machine Tests
Submission validation, permissive transitions, terminal closure, follow-ups
"""
from datetime import datetime, timezone, timedelta

import pytest

from models.lead import LeadCreate, LeadStatus, LeadPriority, LeadDetailsUpdate
from services.errors import (
    ValidationError, InvalidTransitionError, NotFoundError, UnknownEntityTransitionError,
    ProductLookupError,
)
from services.lead_machine import LeadMachine


def inquiry(**overrides) -> LeadCreate:
    data = {
        "buyer_name": "Ravi Kumar",
        "buyer_email": "Ravi@ShoeMart.test",
        "buyer_phone": "+91 98765 43210",
        "buyer_city": "Agra",
        "company_name": "Shoe Mart",
        "product_id": "prod_runner",
        "quantity_required": 120,
    }
    data.update(overrides)
    return LeadCreate(**data)


class UnavailableCatalog:
    async def get_product(self, product_id):
        raise ProductLookupError("Product catalog unavailable: timed out")


class TestSubmit:
    """submit() captures a buyer inquiry as a new lead"""

    @pytest.mark.asyncio
    async def test_submit_creates_new_lead(self, services, products, buyer):
        lead = await services.leads.submit(inquiry(), buyer)

        assert lead.status == LeadStatus.NEW
        assert lead.product_name == "Trail Runner"
        assert lead.buyer_email == "ravi@shoemart.test"
        assert lead.buyer_user_id == buyer.user_id
        assert lead.buyer_country == "India"
        assert lead.degraded is False
        assert [h.status for h in lead.status_history] == [LeadStatus.NEW]

        stored = await services.leads.get(lead.lead_id)
        assert stored.lead_id == lead.lead_id

    @pytest.mark.asyncio
    async def test_every_missing_field_is_listed(self, services, products):
        draft = LeadCreate(product_id="prod_runner", buyer_city="  ")

        with pytest.raises(ValidationError) as exc_info:
            await services.leads.submit(draft)

        assert set(exc_info.value.fields) == {
            "buyer_name", "buyer_email", "buyer_phone", "buyer_city", "quantity_required",
        }

    @pytest.mark.asyncio
    async def test_quantity_must_be_positive(self, services, products):
        with pytest.raises(ValidationError) as exc_info:
            await services.leads.submit(inquiry(quantity_required=0))
        assert exc_info.value.fields == ["quantity_required"]

    @pytest.mark.asyncio
    async def test_unknown_product_is_reported(self, services, products):
        with pytest.raises(NotFoundError):
            await services.leads.submit(inquiry(product_id="prod_nope"))

    @pytest.mark.asyncio
    async def test_catalog_outage_captures_degraded_lead(self, services, store):
        leads = LeadMachine(store, services.leads.locks, services.events, UnavailableCatalog())

        lead = await leads.submit(inquiry())

        assert lead.degraded is True
        assert "unavailable" in lead.degraded_reason
        assert lead.product_name is None
        assert await store.count("leads") == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity,priority", [
        (1000, LeadPriority.HIGH),
        (500, LeadPriority.MEDIUM),
        (499, LeadPriority.LOW),
    ])
    async def test_priority_from_quantity(self, services, products, quantity, priority):
        lead = await services.leads.submit(inquiry(quantity_required=quantity))
        assert lead.priority == priority


class TestTransition:
    """transition() is permissive until a terminal status is reached"""

    @pytest.mark.asyncio
    async def test_contacted_stamps_contact_time(self, services, products, admin):
        lead = await services.leads.submit(inquiry())

        lead = await services.leads.transition(lead.lead_id, "contacted", admin.user_id)

        assert lead.status == LeadStatus.CONTACTED
        assert lead.contacted_by == admin.user_id
        assert lead.contacted_at is not None
        assert lead.last_contacted_at is not None

    @pytest.mark.asyncio
    async def test_backward_moves_are_allowed(self, services, products, admin):
        lead = await services.leads.submit(inquiry())
        await services.leads.transition(lead.lead_id, "negotiating", admin.user_id)

        lead = await services.leads.transition(lead.lead_id, "new", admin.user_id)

        assert lead.status == LeadStatus.NEW
        assert [h.status.value for h in lead.status_history] == ["new", "negotiating", "new"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal", ["closed", "rejected", "lost"])
    async def test_terminal_status_is_final(self, services, products, admin, terminal):
        lead = await services.leads.submit(inquiry())
        await services.leads.transition(lead.lead_id, terminal, admin.user_id)

        for target in [s.value for s in LeadStatus]:
            with pytest.raises(InvalidTransitionError):
                await services.leads.transition(lead.lead_id, target, admin.user_id)

        stored = await services.leads.get(lead.lead_id)
        assert stored.status.value == terminal

    @pytest.mark.asyncio
    async def test_invalid_status_string(self, services, products, admin):
        lead = await services.leads.submit(inquiry())
        with pytest.raises(ValidationError):
            await services.leads.transition(lead.lead_id, "won", admin.user_id)

    @pytest.mark.asyncio
    async def test_unknown_lead(self, services, admin):
        with pytest.raises(InvalidTransitionError) as exc_info:
            await services.leads.transition("lead_missing", "contacted", admin.user_id)
        assert isinstance(exc_info.value, UnknownEntityTransitionError)
        assert isinstance(exc_info.value, NotFoundError)


class TestLeadManagement:
    """Assignment, follow-ups, details and listing"""

    @pytest.mark.asyncio
    async def test_assign_is_idempotent_and_keeps_status(self, services, products, admin):
        lead = await services.leads.submit(inquiry())

        first = await services.leads.assign(lead.lead_id, "user_sales_1", actor_id=admin.user_id)
        second = await services.leads.assign(lead.lead_id, "user_sales_1", actor_id=admin.user_id)

        assert first.assigned_to == second.assigned_to == "user_sales_1"
        assert second.status == LeadStatus.NEW
        assert second.version == first.version

    @pytest.mark.asyncio
    async def test_schedule_follow_up(self, services, products, admin):
        lead = await services.leads.submit(inquiry())
        when = datetime(2030, 5, 1, 10, 30)

        lead = await services.leads.schedule_follow_up(lead.lead_id, when, "Send sample catalog", admin.user_id)

        assert lead.follow_up_date == when.replace(tzinfo=timezone.utc)
        assert lead.follow_up_notes == "Send sample catalog"

    @pytest.mark.asyncio
    async def test_update_details(self, services, products, admin):
        lead = await services.leads.submit(inquiry())

        lead = await services.leads.update_details(
            lead.lead_id, LeadDetailsUpdate(priority=LeadPriority.URGENT, tags=["festive"]), admin.user_id
        )

        assert lead.priority == LeadPriority.URGENT
        assert lead.tags == ["festive"]

    @pytest.mark.asyncio
    async def test_empty_details_update_rejected(self, services, products, admin):
        lead = await services.leads.submit(inquiry())
        with pytest.raises(ValidationError):
            await services.leads.update_details(lead.lead_id, LeadDetailsUpdate(), admin.user_id)

    @pytest.mark.asyncio
    async def test_list_filters_and_search(self, services, products, admin):
        runner = await services.leads.submit(inquiry())
        sandal = await services.leads.submit(inquiry(product_id="prod_sandal", buyer_name="Neha Shah"))
        await services.leads.transition(sandal.lead_id, "contacted", admin.user_id)

        contacted = await services.leads.list_leads(status="contacted")
        assert [lead.lead_id for lead in contacted] == [sandal.lead_id]

        found = await services.leads.list_leads(search="neha")
        assert [lead.lead_id for lead in found] == [sandal.lead_id]

        by_product = await services.leads.list_leads(product_id="prod_runner")
        assert [lead.lead_id for lead in by_product] == [runner.lead_id]

        recent = await services.leads.list_leads(start_date=datetime.now(timezone.utc) - timedelta(hours=1))
        assert len(recent) == 2

    @pytest.mark.asyncio
    async def test_my_inquiries_match_user_or_email(self, services, products, buyer):
        mine = await services.leads.submit(inquiry(), buyer)
        by_email = await services.leads.submit(inquiry(buyer_email="ravi@shoemart.test"))
        await services.leads.submit(inquiry(buyer_email="someone@else.test"))

        leads = await services.leads.my_inquiries(buyer)

        assert {lead.lead_id for lead in leads} == {mine.lead_id, by_email.lead_id}

    @pytest.mark.asyncio
    async def test_delete(self, services, products, admin):
        lead = await services.leads.submit(inquiry())
        await services.leads.delete(lead.lead_id, admin.user_id)

        with pytest.raises(NotFoundError):
            await services.leads.get(lead.lead_id)
        with pytest.raises(NotFoundError):
            await services.leads.delete(lead.lead_id, admin.user_id)
