from models.user import User
from models.business_account import BusinessAccount, BusinessAccountCreate, AccountStatus
from models.lead import Lead, LeadCreate, LeadStatus
from models.quote import Quote, QuoteItem, QuoteStatus
from models.order import Order, OrderCreate, OrderStatus, PaymentType
from models.credit import CreditReceipt
from models.product import Product
from models.rfq import DraftItem, BuyerContact

__all__ = [
    "User",
    "BusinessAccount", "BusinessAccountCreate", "AccountStatus",
    "Lead", "LeadCreate", "LeadStatus",
    "Quote", "QuoteItem", "QuoteStatus",
    "Order", "OrderCreate", "OrderStatus", "PaymentType",
    "CreditReceipt",
    "Product",
    "DraftItem", "BuyerContact"
]
