from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List


class VolumePrice(BaseModel):
    tier: str  # standard, retailer, wholesaler, premium
    price: float = Field(ge=0)


class QuantityPrice(BaseModel):
    min_quantity: int = Field(ge=1)
    max_quantity: Optional[int] = None
    price: Optional[float] = None  # Fixed tier price
    discount: Optional[float] = None  # Percent off base price


class Product(BaseModel):
    """Catalog view of a product as returned by the catalog collaborator"""
    model_config = ConfigDict(extra="ignore")
    product_id: str
    name: str
    price: float = 0.0
    moq: int = 1
    image: Optional[str] = None
    volume_pricing: List[VolumePrice] = []
    quantity_pricing: List[QuantityPrice] = []
