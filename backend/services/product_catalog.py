"""
Product catalog collaborator

Resolves product_id -> Product. Returns None for an unknown product and raises
ProductLookupError when the catalog itself cannot be reached.
"""
import logging
from typing import Optional

import httpx

from models.product import Product
from services.errors import ProductLookupError

logger = logging.getLogger(__name__)


class ProductCatalog:
    async def get_product(self, product_id: str) -> Optional[Product]:
        raise NotImplementedError


class StoreProductCatalog(ProductCatalog):
    """Reads products from the entity store's products collection"""

    def __init__(self, store):
        self.store = store

    async def get_product(self, product_id: str) -> Optional[Product]:
        try:
            doc = await self.store.get("products", product_id)
        except Exception as e:
            raise ProductLookupError(f"Product lookup failed for {product_id}: {e}") from e
        return Product.model_validate(doc) if doc else None


class HttpProductCatalog(ProductCatalog):
    """Calls the catalog service at GET {base_url}/products/{product_id}"""

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def get_product(self, product_id: str) -> Optional[Product]:
        url = f"{self.base_url}/products/{product_id}"
        try:
            if self._client is not None:
                response = await self._client.get(url, timeout=self.timeout)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.error(f"Catalog request failed for {product_id}: {e}")
            raise ProductLookupError(f"Product catalog unavailable: {e}") from e

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise ProductLookupError(
                f"Product catalog returned {response.status_code} for {product_id}"
            )
        return Product.model_validate(response.json())
