"""
Quote Models
Priced, time-bounded offers generated in response to a lead
"""
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
import uuid


class QuoteStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


def to_cents(amount: float) -> int:
    return int(round(amount * 100))


class QuoteItem(BaseModel):
    product_id: Optional[str] = None
    product_name: str
    quantity: int = Field(gt=0)
    price: float = Field(ge=0)  # Unit price locked at quote time

    @property
    def line_total(self) -> float:
        return self.quantity * self.price


def items_total(items: List[QuoteItem]) -> float:
    return round(sum(item.line_total for item in items), 2)


class Quote(BaseModel):
    model_config = ConfigDict(extra="ignore")
    quote_id: str = Field(default_factory=lambda: f"quote_{uuid.uuid4().hex[:12]}")
    inquiry_id: str  # Owning lead
    product_id: str
    business_account_id: Optional[str] = None
    items: List[QuoteItem]
    total_amount: float
    status: QuoteStatus = QuoteStatus.PENDING
    valid_until: Optional[datetime] = None
    terms: Optional[str] = None
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_by: Optional[str] = None
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    # One-to-one link to the order created by conversion
    order_id: Optional[str] = None
    converted_at: Optional[datetime] = None
    version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="after")
    def check_total(self):
        if not self.items:
            raise ValueError("A quote needs at least one item")
        expected = items_total(self.items)
        if to_cents(self.total_amount) != to_cents(expected):
            raise ValueError(
                f"total_amount {self.total_amount:.2f} does not match sum of line items {expected:.2f}"
            )
        return self

    @property
    def is_converted(self) -> bool:
        return self.order_id is not None

    def is_past_validity(self, now: datetime) -> bool:
        return self.valid_until is not None and self.valid_until < now


class QuoteRequest(BaseModel):
    """Admin-supplied quote details; items are priced from the catalog when omitted"""
    items: Optional[List[QuoteItem]] = None
    total_amount: Optional[float] = None
    valid_until: Optional[datetime] = None
    terms: Optional[str] = None
    notes: Optional[str] = None


class QuoteReject(BaseModel):
    reason: Optional[str] = None
