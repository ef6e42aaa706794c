"""In-memory catalog and order backend."""
import yaml
from datetime import date
from pathlib import Path
from typing import List, Optional

from app.services.tools.base import (
    CatalogBackend,
    OrderBackend,
    OrderLine,
    OrderRecord,
    Product,
)


class InMemoryCatalogProvider(CatalogBackend, OrderBackend):
    """Catalog and order backend using YAML configuration."""

    def __init__(self, catalog_file: Optional[str] = None):
        """Initialize with optional catalog file path."""
        if catalog_file is None:
            catalog_file = Path(__file__).parent / "data" / "catalog.yaml"
        self.catalog_file = Path(catalog_file)
        self._products: Optional[List[Product]] = None
        self._orders: Optional[List[OrderRecord]] = None

    def _load(self) -> None:
        """Load products and orders from YAML file."""
        if self._products is not None:
            return
        if not self.catalog_file.exists():
            # Default catalog if file doesn't exist
            self._products = [
                Product(
                    name="Denon AVR-X1800H 7.2 Channel AV Receiver",
                    sku="AVR-X1800H",
                    brand="Denon",
                    category="receivers",
                    price=8990.0,
                    stock=12,
                ),
                Product(
                    name="JBL Tune 520BT Wireless Headphones",
                    sku="JBLT520BT",
                    brand="JBL",
                    category="headphones",
                    price=899.0,
                    stock=40,
                ),
                Product(
                    name="Sonos Arc Soundbar",
                    sku="ARCG1",
                    brand="Sonos",
                    category="soundbars",
                    price=16490.0,
                    stock=0,
                ),
            ]
            self._orders = [
                OrderRecord(
                    order_id="28630",
                    status_id=3,
                    placed_on=date(2024, 11, 4),
                    total=9889.0,
                    items=[
                        OrderLine(name="Denon AVR-X1800H 7.2 Channel AV Receiver"),
                        OrderLine(name="JBL Tune 520BT Wireless Headphones"),
                    ],
                    tracking_ref="TCG4471902",
                    carrier="The Courier Guy",
                ),
            ]
            return
        with open(self.catalog_file, "r") as f:
            data = yaml.safe_load(f) or {}
        self._products = [Product(**item) for item in data.get("products", [])]
        self._orders = [OrderRecord(**order) for order in data.get("orders", [])]

    async def search_products(self, query: str, limit: int = 10) -> List[Product]:
        """Match every query word against name, brand, category and SKU."""
        self._load()
        words = [word for word in query.lower().split() if word]
        if not words:
            return []
        matches = []
        for product in self._products:
            haystack = " ".join(
                value.lower()
                for value in (product.name, product.brand, product.category, product.sku)
                if value
            )
            if all(word in haystack for word in words):
                matches.append(product)
        return matches[:limit]

    async def get_order(self, order_id: str) -> Optional[OrderRecord]:
        """Get an order by id."""
        self._load()
        order_id = order_id.strip().lstrip("#")
        for order in self._orders:
            if order.order_id == order_id:
                return order
        return None
