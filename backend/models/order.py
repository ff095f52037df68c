from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from datetime import datetime, timezone
from enum import Enum
import uuid


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentType(str, Enum):
    COD = "cod"
    CREDIT = "credit"
    INVOICE = "invoice"
    ONLINE = "online"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


CREDIT_PAYMENT_TYPES = frozenset({PaymentType.CREDIT, PaymentType.INVOICE})

# Fulfillment edges; delivered and cancelled are terminal
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}


class OrderLineItem(BaseModel):
    product_id: str
    product_name: Optional[str] = None
    quantity: int = Field(gt=0)
    price: float = Field(ge=0)
    size: Optional[str] = None


class TimelineEntry(BaseModel):
    status: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    note: Optional[str] = None


class Order(BaseModel):
    model_config = ConfigDict(extra="ignore")
    order_id: str = Field(default_factory=lambda: f"ord_{uuid.uuid4().hex[:12]}")
    business_account_id: str
    user_id: Optional[str] = None
    products: List[OrderLineItem]
    total_amount: float = Field(ge=0)
    order_status: OrderStatus = OrderStatus.PENDING
    payment_type: PaymentType
    payment_status: PaymentStatus = PaymentStatus.PENDING
    is_b2b_order: bool = True
    purchase_order_number: Optional[str] = None
    requires_approval: bool = False
    approval_status: ApprovalStatus = ApprovalStatus.APPROVED
    payment_terms: Optional[str] = None
    due_date: Optional[datetime] = None
    quote_id: Optional[str] = None  # Weak back-reference to the originating quote
    credit_receipt_id: Optional[str] = None
    order_timeline: List[TimelineEntry] = []
    notes: Optional[str] = None
    version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def uses_credit(self) -> bool:
        return self.payment_type in CREDIT_PAYMENT_TYPES


class OrderCreate(BaseModel):
    """Checkout payload for orders that do not come from a quote"""
    business_account_id: str
    products: List[OrderLineItem]
    payment_type: PaymentType
    purchase_order_number: Optional[str] = None
    requires_approval: bool = False
    notes: Optional[str] = None


class ConvertOptions(BaseModel):
    """Buyer options when converting an accepted quote into an order"""
    payment_type: PaymentType = PaymentType.CREDIT
    business_account_id: Optional[str] = None  # Defaults to the quote's account
    purchase_order_number: Optional[str] = None
    requires_approval: bool = False
    sizes: dict = {}  # product_id -> size
    notes: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    order_status: OrderStatus
    note: Optional[str] = None
