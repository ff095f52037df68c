"""
B2B pricing - price per unit based on the account's pricing tier and quantity
"""
from typing import Optional

from models.product import Product
from models.business_account import BusinessAccount


def calculate_b2b_price(product: Product, account: Optional[BusinessAccount] = None, quantity: int = 1) -> float:
    """Unit price for `quantity` units of `product` bought by `account`.

    A matching volume-pricing entry for the account's pricing tier replaces the
    base price, then the highest quantity tier the quantity reaches applies
    either its fixed price or its percentage discount.
    """
    base_price = product.price or 0

    if account is not None and account.pricing_tier:
        tier_price = next(
            (vp for vp in product.volume_pricing if vp.tier == account.pricing_tier),
            None,
        )
        if tier_price is not None and tier_price.price:
            base_price = tier_price.price

    return round(_quantity_price(product, base_price, quantity), 2)


def _quantity_price(product: Product, base_price: float, quantity: int) -> float:
    if not product.quantity_pricing:
        return base_price

    for tier in sorted(product.quantity_pricing, key=lambda t: t.min_quantity, reverse=True):
        if quantity < tier.min_quantity:
            continue
        if tier.max_quantity and quantity > tier.max_quantity:
            continue
        if tier.price:
            return tier.price
        if tier.discount:
            return base_price * (1 - tier.discount / 100)

    return base_price
