from pydantic import BaseModel, Field, ConfigDict
from typing import Optional
from datetime import datetime, timezone
from enum import Enum
import uuid


class ReceiptStatus(str, Enum):
    RESERVED = "reserved"
    RELEASED = "released"


class CreditReceipt(BaseModel):
    """Reversible record of one credit reservation"""
    model_config = ConfigDict(extra="ignore")
    receipt_id: str = Field(default_factory=lambda: f"crd_{uuid.uuid4().hex[:12]}")
    account_id: str
    amount: float = Field(gt=0)
    reference: Optional[str] = None  # e.g. order_id
    status: ReceiptStatus = ReceiptStatus.RESERVED
    created_by: Optional[str] = None
    released_at: Optional[datetime] = None
    version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
