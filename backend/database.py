from motor.motor_asyncio import AsyncIOMotorClient
import logging

from config import MONGO_URL, DB_NAME

logger = logging.getLogger(__name__)


def connect(mongo_url: str = MONGO_URL, db_name: str = DB_NAME):
    """Open a Motor client and return (client, database)"""
    client = AsyncIOMotorClient(mongo_url)
    db = client[db_name]
    logger.info(f"[Database] Connected to: {db_name}")
    return client, db


async def create_indexes(db):
    """Create database indexes for the lead / quote / order collections"""
    try:
        # business_accounts indexes
        await db.business_accounts.create_index("account_id", unique=True)
        await db.business_accounts.create_index("status")
        await db.business_accounts.create_index("business_type")

        # leads indexes
        await db.leads.create_index("lead_id", unique=True)
        await db.leads.create_index([("status", 1), ("created_at", -1)])
        await db.leads.create_index("product_id")
        await db.leads.create_index("buyer_email")
        await db.leads.create_index("assigned_to")
        await db.leads.create_index("business_account_id")

        # quotes indexes
        await db.quotes.create_index("quote_id", unique=True)
        await db.quotes.create_index("inquiry_id")
        await db.quotes.create_index("status")

        # orders indexes
        await db.orders.create_index("order_id", unique=True)
        await db.orders.create_index("business_account_id")
        await db.orders.create_index(
            "quote_id", unique=True, partialFilterExpression={"quote_id": {"$type": "string"}}
        )
        await db.orders.create_index("order_status")

        # credit receipts / drafts / activity
        await db.credit_receipts.create_index("receipt_id", unique=True)
        await db.credit_receipts.create_index("account_id")
        await db.rfq_drafts.create_index("cart_key", unique=True)
        await db.products.create_index("product_id", unique=True)
        await db.activity_log.create_index([("record_id", 1), ("created_at", -1)])

        logger.info("[Database] Indexes created successfully")
    except Exception as e:
        logger.warning(f"[Database] Index creation error (may already exist): {e}")
