"""
Business Account Models
Buyer companies with credit terms, pricing tier and approval settings
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
import uuid


class BusinessType(str, Enum):
    RETAILER = "retailer"
    WHOLESALER = "wholesaler"
    DISTRIBUTOR = "distributor"
    MANUFACTURER = "manufacturer"
    BUSINESS_CUSTOMER = "business_customer"
    OTHER = "other"


class AccountStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


class PaymentTerms(str, Enum):
    NET15 = "net15"
    NET30 = "net30"
    NET45 = "net45"
    NET60 = "net60"
    COD = "cod"
    PREPAID = "prepaid"


class PricingTier(str, Enum):
    STANDARD = "standard"
    RETAILER = "retailer"
    WHOLESALER = "wholesaler"
    PREMIUM = "premium"


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class ContactPerson(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    designation: Optional[str] = None


class AccountNote(BaseModel):
    note: str
    added_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class BusinessAccount(BaseModel):
    model_config = ConfigDict(extra="ignore")
    account_id: str = Field(default_factory=lambda: f"acc_{uuid.uuid4().hex[:12]}")
    user_id: Optional[str] = None  # Owning buyer user
    company_name: str
    business_type: BusinessType = BusinessType.OTHER
    status: AccountStatus = AccountStatus.PENDING
    credit_limit: float = Field(default=0.0, ge=0)
    credit_used: float = Field(default=0.0, ge=0)
    payment_terms: PaymentTerms = PaymentTerms.NET30
    pricing_tier: PricingTier = PricingTier.STANDARD
    requires_approval: bool = False
    approval_limit: float = 0.0  # Orders above this amount require approval
    tax_id: Optional[str] = None
    business_registration_number: Optional[str] = None
    business_address: Optional[Address] = None
    contact_person: Optional[ContactPerson] = None
    notes: List[AccountNote] = []
    version: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def credit_available(self) -> float:
        return round(self.credit_limit - self.credit_used, 2)


class BusinessAccountCreate(BaseModel):
    company_name: str
    business_type: BusinessType = BusinessType.OTHER
    payment_terms: PaymentTerms = PaymentTerms.NET30
    tax_id: Optional[str] = None
    business_registration_number: Optional[str] = None
    business_address: Optional[Address] = None
    contact_person: Optional[ContactPerson] = None


class AccountStatusUpdate(BaseModel):
    status: AccountStatus
    note: Optional[str] = None


class CreditLimitUpdate(BaseModel):
    credit_limit: float = Field(ge=0)


class AccountSettingsUpdate(BaseModel):
    payment_terms: Optional[PaymentTerms] = None
    pricing_tier: Optional[PricingTier] = None
    requires_approval: Optional[bool] = None
    approval_limit: Optional[float] = Field(default=None, ge=0)
