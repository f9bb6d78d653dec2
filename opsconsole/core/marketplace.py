import logging
from typing import Any, Dict, List, Optional

from opsconsole.core.config import settings
from opsconsole.core.errors import BackendError
from opsconsole.db.backend import Backend

logger = logging.getLogger(__name__)

PAGE_SIZE = 50


class MarketplaceClient:
    """
    Marketplace API reached through the backend's edge-function proxy.
    Every call posts `{"action": ..., **payload}`; the proxy answers `{"success": bool, "data": ..., "error": ...}`.
    """

    def __init__(self, backend: Backend, function: Optional[str] = None):
        self.backend = backend
        self.function = function or settings.MARKETPLACE_FUNCTION

    async def call(self, action: str, **payload) -> Any:
        data = await self.backend.invoke(self.function, {"action": action, **payload})
        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else None
            raise BackendError(error or "API call failed", details={"action": action})
        return data.get("data")

    async def get_order_detail(self, order_number: str) -> Optional[Dict[str, Any]]:
        return await self.call("getOrderDetail", orderNumber=order_number)

    async def get_order_history(self, start_timestamp: int, end_timestamp: int, page: int = 1, rows: int = PAGE_SIZE) -> List[Dict[str, Any]]:
        result = await self.call(
            "getOrderHistory",
            rows=rows,
            page=page,
            startTimestamp=start_timestamp,
            endTimestamp=end_timestamp,
        )
        if isinstance(result, dict):
            result = result.get("data") or []
        return result if isinstance(result, list) else []

    async def fetch_verified_buyer_name(self, order_number: str) -> Optional[str]:
        """Buyer's verified real name (nickname as a fallback); None when the detail call fails."""
        try:
            detail = await self.get_order_detail(order_number)
        except BackendError as e:
            logger.warning(f"Order detail lookup failed for {order_number}: {e.message}")
            return None
        if not detail:
            return None
        return detail.get("buyerRealName") or detail.get("buyerNickName") or None
