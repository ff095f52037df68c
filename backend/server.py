from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
import logging

import config
from database import connect, create_indexes
from routers import (
    business_accounts_router,
    leads_router,
    quotes_router,
    orders_router,
    rfq_router,
    crm_reports_router
)
from services.container import Services, build_services
from services.entity_store import InMemoryEntityStore, MongoEntityStore
from services.errors import DomainError, CollaboratorError
from services.events import ActivityLogSubscriber
from services.product_catalog import HttpProductCatalog
from services.scheduler import start_scheduler, stop_scheduler, get_scheduler_status

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(services: Services = None) -> FastAPI:
    """Build the API. Passing `services` skips store setup on startup (tests)."""
    app = FastAPI(title="StepSeva B2B API", version="1.0.0")
    app.state.services = services
    app.state.mongo_client = None

    # Create main API router with /api prefix
    api_router = APIRouter(prefix="/api")

    api_router.include_router(business_accounts_router)
    api_router.include_router(leads_router)
    api_router.include_router(quotes_router)
    api_router.include_router(orders_router)
    api_router.include_router(rfq_router)
    api_router.include_router(crm_reports_router)

    # Root endpoint
    @api_router.get("/")
    async def root():
        return {"message": "StepSeva B2B API", "status": "running"}

    @api_router.get("/scheduler/status")
    async def scheduler_status():
        return get_scheduler_status()

    app.include_router(api_router)

    # ============== Error Handling ==============

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(CollaboratorError)
    async def collaborator_error_handler(request: Request, exc: CollaboratorError):
        logger.error(f"{request.method} {request.url.path} -> {exc.collaborator} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    # ============== Lifecycle ==============

    @app.on_event("startup")
    async def startup():
        if app.state.services is None:
            if config.STORE_BACKEND == "mongo":
                client, db = connect(config.MONGO_URL, config.DB_NAME)
                await create_indexes(db)
                app.state.mongo_client = client
                store = MongoEntityStore(db)
            else:
                logger.warning("Using the in-memory entity store; data is lost on restart")
                store = InMemoryEntityStore()

            catalog = None
            if config.PRODUCT_CATALOG_URL:
                catalog = HttpProductCatalog(config.PRODUCT_CATALOG_URL, timeout=config.PRODUCT_LOOKUP_TIMEOUT)

            app.state.services = build_services(store, catalog=catalog)
            app.state.services.events.subscribe(ActivityLogSubscriber(store))

        if config.ENABLE_SCHEDULER:
            start_scheduler(app.state.services.quotes, hour=config.QUOTE_EXPIRY_HOUR)

    @app.on_event("shutdown")
    async def shutdown():
        stop_scheduler()
        if app.state.mongo_client is not None:
            app.state.mongo_client.close()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
