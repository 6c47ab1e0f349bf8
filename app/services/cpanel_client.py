"""
CPanel Invoice API Client

Handles HTTP requests to the CPanel-hosted PHP invoice API.
Authenticates with the X-API-Key header. When the API is not configured the
fetch helpers return {"success": False} without touching the network.
"""

import logging
import os
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_INVOICE_LIMIT = int(os.getenv("CPANEL_INVOICE_LIMIT", "1000"))


class CPanelClient:
    """Client for CPanel invoice API requests"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = (base_url or os.getenv("CPANEL_API_URL", "")).rstrip("/")
        self.api_key = api_key or os.getenv("CPANEL_API_KEY", "")
        self.timeout = timeout or float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def _get_headers(self) -> Dict[str, str]:
        """Get default headers for CPanel API requests"""
        if not self.api_key:
            raise ValueError("No CPanel API key available")
        return {
            "X-API-Key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json"
        }

    async def get(self, endpoint: str, params: Optional[Dict] = None) -> Any:
        """Make GET request to the CPanel API"""
        url = f"{self.base_url}/{endpoint}"
        logger.debug(f"[CPanel] GET {url} params={params}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(url, headers=self._get_headers(), params=params)
            response.raise_for_status()
            return response.json()

    async def fetch_all_invoices(
        self,
        limit: int = DEFAULT_INVOICE_LIMIT,
        only_cpanel_only: bool = False
    ) -> Dict[str, Any]:
        """
        Fetch invoices from the CPanel database.

        Args:
            limit: Maximum number of invoices
            only_cpanel_only: Only invoices created in CPanel (not mirrored from the app)

        Returns:
            {"success": bool, "invoices": [...]}
        """
        if not self.is_configured():
            logger.warning("[CPanel] API not configured, skipping invoice fetch")
            return {"success": False, "invoices": []}

        payload = await self.get("get-invoices.php", {
            "limit": limit,
            "onlyCPanelOnly": "true" if only_cpanel_only else "false"
        })
        if not isinstance(payload, dict):
            return {"success": False, "invoices": []}

        invoices = payload.get("invoices")
        if invoices is None:
            invoices = payload.get("data")
        if not isinstance(invoices, list):
            invoices = []

        logger.info(f"[CPanel] Fetched {len(invoices)} invoices (limit={limit}, onlyCPanelOnly={only_cpanel_only})")
        return {"success": bool(payload.get("success")), "invoices": invoices}

    async def fetch_payments_analytics(self) -> Dict[str, Any]:
        """
        Fetch payment analytics (collected/invoiced totals, method and monthly breakdowns).

        Returns:
            {"success": bool, "data": {...}}
        """
        if not self.is_configured():
            logger.warning("[CPanel] API not configured, skipping payment analytics")
            return {"success": False, "data": None}

        payload = await self.get("get-payments-analytics.php")
        if not isinstance(payload, dict):
            return {"success": False, "data": None}
        return {"success": bool(payload.get("success")), "data": payload.get("data")}


# Singleton instance
_cpanel_client: Optional[CPanelClient] = None


def get_cpanel_client() -> CPanelClient:
    """Get or create CPanel client instance"""
    global _cpanel_client
    if _cpanel_client is None:
        _cpanel_client = CPanelClient()
    return _cpanel_client
