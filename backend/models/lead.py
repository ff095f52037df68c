"""
Lead (Inquiry) Models
Buyer-initiated requests for pricing on one or more products
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
import uuid

from models.business_account import BusinessType


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    INTERESTED = "interested"
    QUOTED = "quoted"
    NEGOTIATING = "negotiating"
    CLOSED = "closed"
    REJECTED = "rejected"
    LOST = "lost"


class LeadPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class InquiryType(str, Enum):
    GET_BEST_PRICE = "get_best_price"
    REQUEST_CALLBACK = "request_callback"
    CONTACT_SUPPLIER = "contact_supplier"
    BULK_ORDER = "bulk_order"
    CUSTOMIZATION = "customization"
    OTHER = "other"


class LeadSource(str, Enum):
    WEBSITE = "website"
    PHONE = "phone"
    EMAIL = "email"
    REFERRAL = "referral"
    OTHER = "other"


TERMINAL_STATUSES = frozenset({LeadStatus.CLOSED, LeadStatus.REJECTED, LeadStatus.LOST})
QUOTABLE_STATUSES = frozenset({LeadStatus.NEW, LeadStatus.CONTACTED})
CONTACTED_STATUSES = frozenset({
    LeadStatus.CONTACTED, LeadStatus.INTERESTED, LeadStatus.QUOTED,
    LeadStatus.NEGOTIATING, LeadStatus.CLOSED,
})


class LeadProductLine(BaseModel):
    """One line of a composite (bulk RFQ) lead"""
    product_id: str
    product_name: Optional[str] = None
    quantity: int = Field(gt=0)
    moq: Optional[int] = None


class StatusChange(BaseModel):
    status: LeadStatus
    changed_by: Optional[str] = None
    changed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Lead(BaseModel):
    model_config = ConfigDict(extra="ignore")
    lead_id: str = Field(default_factory=lambda: f"lead_{uuid.uuid4().hex[:12]}")
    # Buyer information
    buyer_name: str
    buyer_email: str
    buyer_phone: str
    buyer_city: str
    buyer_state: Optional[str] = None
    buyer_country: str = "India"
    business_type: BusinessType = BusinessType.OTHER
    company_name: Optional[str] = None
    gst_number: Optional[str] = None
    # Product information
    product_id: str
    product_name: Optional[str] = None
    quantity_required: int = Field(gt=0)
    size: Optional[str] = None
    color: Optional[str] = None
    products: List[LeadProductLine] = []  # Composite bulk RFQ payload
    # Inquiry details
    inquiry_type: InquiryType = InquiryType.GET_BEST_PRICE
    notes: Optional[str] = None
    requirements: Optional[str] = None
    # Status & management
    status: LeadStatus = LeadStatus.NEW
    priority: LeadPriority = LeadPriority.MEDIUM
    assigned_to: Optional[str] = None  # admin user_id
    contacted_by: Optional[str] = None
    contacted_at: Optional[datetime] = None
    last_contacted_at: Optional[datetime] = None
    quoted_at: Optional[datetime] = None
    quote_id: Optional[str] = None
    status_history: List[StatusChange] = []
    # Follow-up
    follow_up_date: Optional[datetime] = None
    follow_up_notes: Optional[str] = None
    # Source & ownership
    source: LeadSource = LeadSource.WEBSITE
    buyer_user_id: Optional[str] = None
    business_account_id: Optional[str] = None  # Weak reference, lookup only
    internal_notes: Optional[str] = None
    tags: List[str] = []
    # Set when the catalog could not be reached at capture time
    degraded: bool = False
    degraded_reason: Optional[str] = None
    version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_open(self) -> bool:
        return self.status not in TERMINAL_STATUSES

    @property
    def product_ids(self) -> List[str]:
        """Distinct product ids in first-seen order"""
        ids = [line.product_id for line in self.products] or [self.product_id]
        return list(dict.fromkeys(ids))


class LeadCreate(BaseModel):
    """Buyer submission. Required fields are checked by the lead machine so
    that every missing field can be reported at once."""
    buyer_name: Optional[str] = None
    buyer_email: Optional[str] = None
    buyer_phone: Optional[str] = None
    buyer_city: Optional[str] = None
    buyer_state: Optional[str] = None
    buyer_country: Optional[str] = None
    business_type: BusinessType = BusinessType.OTHER
    company_name: Optional[str] = None
    gst_number: Optional[str] = None
    product_id: Optional[str] = None
    quantity_required: Optional[int] = None
    size: Optional[str] = None
    color: Optional[str] = None
    inquiry_type: InquiryType = InquiryType.GET_BEST_PRICE
    priority: Optional[LeadPriority] = None
    notes: Optional[str] = None
    requirements: Optional[str] = None
    source: LeadSource = LeadSource.WEBSITE


class LeadStatusUpdate(BaseModel):
    status: str  # Validated by the lead machine


class LeadAssign(BaseModel):
    assigned_to: str


class LeadFollowUp(BaseModel):
    follow_up_date: datetime
    follow_up_notes: Optional[str] = None


class LeadDetailsUpdate(BaseModel):
    priority: Optional[LeadPriority] = None
    internal_notes: Optional[str] = None
    tags: Optional[List[str]] = None
