"""Catalog and order backend interfaces."""
from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional
from pydantic import BaseModel


class Product(BaseModel):
    """Catalog product."""

    name: str
    sku: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    price: float  # Rand, incl. VAT
    stock: int = 0


class OrderLine(BaseModel):
    """Product line on an order."""

    name: str
    quantity: int = 1


class OrderRecord(BaseModel):
    """Customer order as stored by the shop backend."""

    order_id: str
    status_id: int
    placed_on: date
    total: float
    items: List[OrderLine] = []
    tracking_ref: Optional[str] = None
    carrier: Optional[str] = None


# Shop order status ids
ORDER_STATUSES = {
    1: "pending payment",
    2: "being processed",
    3: "shipped",
    5: "complete",
    7: "cancelled",
    10: "failed",
    11: "refunded",
    18: "shipped",
    29: "awaiting collection",
}


class CatalogBackend(ABC):
    """Abstract base class for product catalog backends."""

    @abstractmethod
    async def search_products(self, query: str, limit: int = 10) -> List[Product]:
        """Search products by name, brand, category or SKU."""
        pass


class OrderBackend(ABC):
    """Abstract base class for order tracking backends."""

    @abstractmethod
    async def get_order(self, order_id: str) -> Optional[OrderRecord]:
        """Get an order by id, or None if it does not exist."""
        pass
