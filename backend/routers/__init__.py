from routers.business_accounts import router as business_accounts_router
from routers.leads import router as leads_router
from routers.quotes import router as quotes_router
from routers.orders import router as orders_router
from routers.rfq import router as rfq_router
from routers.crm_reports import router as crm_reports_router

__all__ = [
    "business_accounts_router",
    "leads_router",
    "quotes_router",
    "orders_router",
    "rfq_router",
    "crm_reports_router"
]
