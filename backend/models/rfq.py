"""
Bulk RFQ Models
Draft cart records and buyer contact details for bulk submissions
"""
from pydantic import BaseModel, Field
from typing import Optional, List, ClassVar, Tuple

from models.business_account import BusinessType


class DraftItem(BaseModel):
    """Persisted draft cart record"""
    product_id: str
    name: Optional[str] = None
    quantity: int = Field(gt=0)
    moq: int = 1


class BuyerContact(BaseModel):
    buyer_name: Optional[str] = None
    buyer_email: Optional[str] = None
    buyer_phone: Optional[str] = None
    buyer_city: Optional[str] = None
    buyer_state: Optional[str] = None
    buyer_country: Optional[str] = None
    business_type: BusinessType = BusinessType.OTHER
    company_name: Optional[str] = None
    gst_number: Optional[str] = None
    notes: Optional[str] = None
    requirements: Optional[str] = None

    REQUIRED_FIELDS: ClassVar[Tuple[str, ...]] = ("buyer_name", "buyer_email", "buyer_phone", "buyer_city")

    def missing_fields(self) -> List[str]:
        return [f for f in self.REQUIRED_FIELDS if not (getattr(self, f) or "").strip()]


class DraftItemAdd(BaseModel):
    product_id: str
    quantity: Optional[int] = None  # Defaults to the product MOQ


class DraftQuantityUpdate(BaseModel):
    quantity: int


class AddItemResult(BaseModel):
    added: bool
    message: str
    count: int
