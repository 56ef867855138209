# backend/inventory_client.py

"""
Client for the upstream inventory REST API.

Responses use the envelope {"code": "200", "message": "...", "data": ...}.
Non-2xx responses and envelopes with a non-2xx code raise InventoryApiError;
transport failures (connection errors, timeouts) propagate unchanged to the
caller.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from dashboard_config import INVENTORY_API_URL, INVENTORY_API_TIMEOUT

logger = logging.getLogger(__name__)

# ==================== ENDPOINTS ====================

UNITS = "/api/units"
PRODUCT_BY_BARCODE = "/api/products/barcode/{barcode}"
CURRENT_STOCK_REPORT = "/api/reports/current-stock"
DEFECTS = "/api/defects"
DEFECT_DETAIL = "/api/defects/{defect_id}"
DEFECT_STATUS = "/api/defects/{defect_id}/status"
DEFECT_STOCK_IN_ITEMS = "/api/defects/stock-in-items"
STOCK_IN_ITEMS_BY_BARCODE = "/api/stock-in/{stock_in_id}/items/barcode"
STOCK_OUT_ITEMS_BY_BARCODE = "/api/stock-out/{stock_out_id}/items/barcode"


class InventoryApiError(Exception):
    """Upstream API rejected a request"""
    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Any] = None):
        self.message = message
        self.status_code = status_code
        self.payload = payload
        super().__init__(self.message)


def _envelope_code(body: Dict[str, Any], fallback: int) -> int:
    code = str(body.get("code", fallback))
    return int(code) if code.isdigit() else fallback


class InventoryApiClient:
    """Thin wrapper over the inventory REST API for one user's token"""

    def __init__(
        self,
        token: Optional[str],
        base_url: str = INVENTORY_API_URL,
        timeout: float = INVENTORY_API_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def close(self) -> None:
        self.session.close()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            # The API expects the raw token, not "Bearer <token>"
            headers["Authorization"] = self.token
        return headers

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        response = self.session.request(
            method,
            url,
            json=payload,
            headers=self._headers(),
            timeout=self.timeout
        )

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            message = response.reason or "Request failed"
            if isinstance(body, dict):
                message = body.get("message") or body.get("messages") or body.get("error") or message
            logger.warning(f"{method} {path} failed with {response.status_code}: {message}")
            raise InventoryApiError(message, status_code=response.status_code, payload=body)

        body = response.json()
        if not isinstance(body, dict) or "code" not in body:
            return body

        code = _envelope_code(body, response.status_code)
        if not 200 <= code < 300:
            message = body.get("message") or body.get("messages") or body.get("error") or "Request failed"
            logger.warning(f"{method} {path} returned envelope code {code}: {message}")
            raise InventoryApiError(message, status_code=code, payload=body)

        return body.get("data", body.get("value"))

    # ==================== REFERENCE DATA ====================

    def get_units(self) -> List[Dict[str, Any]]:
        return self._request("GET", UNITS) or []

    def get_unit(self, unit_id: Any) -> Dict[str, Any]:
        """Find a unit by id in the unit list."""
        for unit in self.get_units():
            if str(unit.get("id", unit.get("unit_id"))) == str(unit_id):
                return unit
        raise InventoryApiError(f"Unit '{unit_id}' not found", status_code=404)

    def scan_barcode(self, barcode: str) -> Dict[str, Any]:
        """Product, scan_info (detected_unit_type, total_pieces_in_stock) and unit_conversion for a barcode."""
        return self._request("GET", PRODUCT_BY_BARCODE.format(barcode=quote(barcode, safe="")))

    def get_current_stock_report(self) -> List[Dict[str, Any]]:
        return self._request("GET", CURRENT_STOCK_REPORT) or []

    def get_current_stock_pieces(self, product_id: Any) -> Any:
        """Current stock in pieces for one product, from the current-stock report."""
        for row in self.get_current_stock_report():
            if str(row.get("product_id", row.get("id"))) == str(product_id):
                return row.get("current_stock_pieces", row.get("total_pieces"))
        raise InventoryApiError(f"No current stock found for product '{product_id}'", status_code=404)

    # ==================== DEFECTS ====================

    def get_stock_in_items_for_defect(self) -> List[Dict[str, Any]]:
        return self._request("GET", DEFECT_STOCK_IN_ITEMS) or []

    def get_stock_in_item_for_defect(self, stock_in_item_id: Any) -> Dict[str, Any]:
        for item in self.get_stock_in_items_for_defect():
            if str(item.get("id")) == str(stock_in_item_id):
                return item
        raise InventoryApiError(f"Stock in item '{stock_in_item_id}' not found", status_code=404)

    def report_defect(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", DEFECTS, payload)

    def get_defect(self, defect_id: str) -> Dict[str, Any]:
        return self._request("GET", DEFECT_DETAIL.format(defect_id=defect_id))

    def update_defect_status(self, defect_id: str, status: str) -> Dict[str, Any]:
        return self._request("PUT", DEFECT_STATUS.format(defect_id=defect_id), {"status": status})

    # ==================== STOCK IN / OUT ====================

    def add_stock_in_item_by_barcode(self, stock_in_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", STOCK_IN_ITEMS_BY_BARCODE.format(stock_in_id=stock_in_id), payload)

    def add_stock_out_item_by_barcode(self, stock_out_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", STOCK_OUT_ITEMS_BY_BARCODE.format(stock_out_id=stock_out_id), payload)
