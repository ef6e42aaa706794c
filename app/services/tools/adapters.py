"""Tool adapters the dialogue engine calls on behalf of the language model."""
import asyncio
import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from app.core.config import settings
from app.core.exceptions import ToolError
from app.services.agent.constants import NO_PRODUCTS_MESSAGE
from app.services.agent.prompt import SEARCH_PRODUCTS_TOOL, TRACK_ORDER_TOOL
from app.services.tools.base import ORDER_STATUSES, CatalogBackend, OrderBackend
from app.services.tools.spoken import spoken_rand

logger = logging.getLogger(__name__)

ToolResult = Union[Dict[str, Any], List[Dict[str, Any]]]


class ToolAdapters:
    """
    Thin wrappers over the catalog and order backends.

    Results are plain JSON-serialisable structures with amounts already in
    spoken form. Backend failures surface as ToolError from the individual
    adapters; `dispatch` turns every failure into a structured result so the
    model can recover conversationally.
    """

    def __init__(
        self,
        catalog: CatalogBackend,
        orders: OrderBackend,
        timeout: Optional[float] = None,
    ):
        self.catalog = catalog
        self.orders = orders
        self.timeout = timeout if timeout is not None else settings.tool_timeout_seconds

    async def search_catalog(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Search products; returns [{name, price, stock}] or a no-results message."""
        try:
            products = await asyncio.wait_for(
                self.catalog.search_products(query, limit=limit), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise ToolError(f"Product search timed out after {self.timeout}s") from e
        except Exception as e:
            raise ToolError(f"Product search failed: {e}") from e

        if not products:
            return [{"message": NO_PRODUCTS_MESSAGE}]
        return [
            {
                "name": product.name,
                "price": spoken_rand(product.price),
                "stock": product.stock,
                "in_stock": product.stock > 0,
            }
            for product in products
        ]

    async def track_order(self, order_id: str) -> Dict[str, Any]:
        """Look up an order; returns its status summary or an error entry when not found."""
        try:
            order = await asyncio.wait_for(
                self.orders.get_order(order_id), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise ToolError(f"Order lookup timed out after {self.timeout}s") from e
        except Exception as e:
            raise ToolError(f"Order lookup failed: {e}") from e

        if order is None:
            return {"error": f"Order {order_id} not found in our system"}
        return {
            "order_id": order.order_id,
            "status": ORDER_STATUSES.get(order.status_id, "unknown"),
            "placed_on": order.placed_on.strftime("%d %B %Y"),
            "items": [
                f"{line.quantity} x {line.name}" if line.quantity > 1 else line.name
                for line in order.items
            ],
            "total": spoken_rand(order.total),
            "tracking_ref": order.tracking_ref,
            "carrier": order.carrier,
        }

    async def dispatch(
        self,
        name: str,
        arguments: Optional[str],
        allowed: Optional[Iterable[str]] = None,
    ) -> ToolResult:
        """Run a model-requested tool call. Never raises."""
        if allowed is not None and name not in set(allowed):
            logger.warning(f"[TOOLS] Tool '{name}' is not available to this persona")
            return {"error": f"Tool {name} is not available"}

        try:
            args = json.loads(arguments) if arguments else {}
        except json.JSONDecodeError:
            logger.warning(f"[TOOLS] Malformed arguments for {name}: {arguments!r}")
            return {"error": "Invalid tool arguments"}
        if not isinstance(args, dict):
            return {"error": "Invalid tool arguments"}

        logger.info(f"[TOOLS] {name} called with {args}")
        try:
            if name == SEARCH_PRODUCTS_TOOL:
                query = str(args.get("query") or "").strip()
                if not query:
                    return {"error": "A search query is required"}
                limit = args.get("limit", 10)
                if not isinstance(limit, int) or limit < 1:
                    limit = 10
                return await self.search_catalog(query, limit=limit)
            if name == TRACK_ORDER_TOOL:
                order_id = str(args.get("order_id") or "").strip()
                if not order_id:
                    return {"error": "An order number is required"}
                return await self.track_order(order_id)
        except ToolError as e:
            logger.error(f"[TOOLS] {name} failed: {e}")
            return {"error": "That system is not available right now"}
        except Exception as e:
            logger.error(f"[TOOLS] {name} raised {type(e).__name__}: {e}", exc_info=True)
            return {"error": "That system is not available right now"}

        logger.warning(f"[TOOLS] Unknown tool requested: {name}")
        return {"error": f"Unknown tool {name}"}
