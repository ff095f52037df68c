"""
Service wiring. Every collaborator is passed in explicitly; nothing here is a
process-wide singleton, so tests build as many independent graphs as they like.
"""
from dataclasses import dataclass
from typing import Optional

import config
from services.business_accounts import BusinessAccountService
from services.credit_ledger import CreditLedger
from services.events import EventBus
from services.lead_machine import LeadMachine
from services.locks import KeyedLocks
from services.order_service import OrderService
from services.product_catalog import ProductCatalog, StoreProductCatalog
from services.quote_machine import QuoteMachine
from services.rfq_aggregator import RfqAggregator, DraftCartStorage, StoreDraftStorage


@dataclass
class Services:
    store: object
    events: EventBus
    catalog: ProductCatalog
    drafts: DraftCartStorage
    accounts: BusinessAccountService
    ledger: CreditLedger
    orders: OrderService
    leads: LeadMachine
    quotes: QuoteMachine
    rfq: RfqAggregator


def build_services(
    store,
    catalog: Optional[ProductCatalog] = None,
    drafts: Optional[DraftCartStorage] = None,
    events: Optional[EventBus] = None,
    rfq_policy: str = config.RFQ_POLICY,
    quote_validity_days: int = config.QUOTE_VALIDITY_DAYS,
) -> Services:
    locks = KeyedLocks()
    events = events or EventBus()
    catalog = catalog or StoreProductCatalog(store)

    ledger = CreditLedger(store, locks, events)
    orders = OrderService(store, locks, events, ledger)
    leads = LeadMachine(
        store, locks, events, catalog,
        high_priority_quantity=config.HIGH_PRIORITY_QUANTITY,
        medium_priority_quantity=config.MEDIUM_PRIORITY_QUANTITY,
        default_country=config.DEFAULT_BUYER_COUNTRY,
    )
    return Services(
        store=store,
        events=events,
        catalog=catalog,
        drafts=drafts or StoreDraftStorage(store),
        accounts=BusinessAccountService(store, locks, events),
        ledger=ledger,
        orders=orders,
        leads=leads,
        quotes=QuoteMachine(store, locks, events, catalog, orders, validity_days=quote_validity_days),
        rfq=RfqAggregator(leads, policy=rfq_policy),
    )
