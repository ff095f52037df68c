from dotenv import load_dotenv
from pathlib import Path
import os

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Persistence
STORE_BACKEND = os.environ.get("STORE_BACKEND", "memory").lower()  # memory, mongo
MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.environ.get("DB_NAME", "stepseva_b2b")

# Product catalog collaborator (falls back to the products collection when unset)
PRODUCT_CATALOG_URL = os.environ.get("PRODUCT_CATALOG_URL", "").rstrip("/")
PRODUCT_LOOKUP_TIMEOUT = float(os.environ.get("PRODUCT_LOOKUP_TIMEOUT", "5.0"))

# Quotes
QUOTE_VALIDITY_DAYS = int(os.environ.get("QUOTE_VALIDITY_DAYS", "15"))
QUOTE_EXPIRY_HOUR = int(os.environ.get("QUOTE_EXPIRY_HOUR", "2"))
ENABLE_SCHEDULER = os.environ.get("ENABLE_SCHEDULER", "false").lower() == "true"

# Leads / RFQ
RFQ_POLICY = os.environ.get("RFQ_POLICY", "composite").lower()  # composite, per_product
HIGH_PRIORITY_QUANTITY = int(os.environ.get("HIGH_PRIORITY_QUANTITY", "1000"))
MEDIUM_PRIORITY_QUANTITY = int(os.environ.get("MEDIUM_PRIORITY_QUANTITY", "500"))
DEFAULT_BUYER_COUNTRY = os.environ.get("DEFAULT_BUYER_COUNTRY", "India")

# CORS
CORS_ORIGINS = [o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()]
