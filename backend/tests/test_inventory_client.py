# backend/tests/test_inventory_client.py

"""
Unit tests for the inventory API client, against an in-memory session
"""

import pytest
import requests
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from inventory_client import InventoryApiClient, InventoryApiError


class FakeResponse:
    """Minimal requests.Response stand-in"""
    def __init__(self, status_code=200, body=None, reason="OK"):
        self.status_code = status_code
        self.body = body
        self.reason = reason

    def json(self):
        if self.body is None:
            raise ValueError("No JSON body")
        return self.body


class FakeSession:
    """Records requests and replays canned responses per (method, path)"""
    def __init__(self, base_url="http://inventory.test"):
        self.base_url = base_url
        self.responses = {}
        self.calls = []
        self.error = None
        self.closed = False

    def close(self):
        self.closed = True

    def add(self, method, path, response):
        self.responses[(method, self.base_url + path)] = response

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.responses[(method, url)]


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(session):
    return InventoryApiClient("raw-token", base_url="http://inventory.test/", timeout=3, session=session)


def envelope(data, code="200", message="Success"):
    return {"code": code, "message": message, "data": data}


class TestRequests:
    """Test request building and envelope handling"""

    def test_sends_raw_token(self, client, session):
        session.add("GET", "/api/units", FakeResponse(body=envelope([])))

        client.get_units()

        call = session.calls[0]
        assert call["url"] == "http://inventory.test/api/units"
        assert call["headers"]["Authorization"] == "raw-token"
        assert call["timeout"] == 3

    def test_no_token_no_header(self, session):
        session.add("GET", "/api/units", FakeResponse(body=envelope([])))

        InventoryApiClient(None, base_url="http://inventory.test", session=session).get_units()

        assert "Authorization" not in session.calls[0]["headers"]

    def test_unwraps_envelope(self, client, session):
        session.add("GET", "/api/units", FakeResponse(body=envelope([{"id": 1, "name": "Piece"}])))

        assert client.get_units() == [{"id": 1, "name": "Piece"}]

    def test_plain_body_returned_as_is(self, client, session):
        session.add("GET", "/api/defects/D-1", FakeResponse(body={"id": "D-1", "status": "pending"}))

        assert client.get_defect("D-1") == {"id": "D-1", "status": "pending"}

    def test_http_error(self, client, session):
        session.add(
            "POST", "/api/defects",
            FakeResponse(status_code=400, body={"code": "400", "message": "Quantity exceeds stock"})
        )

        with pytest.raises(InventoryApiError) as exc_info:
            client.report_defect({"quantity": 999})

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Quantity exceeds stock"

    def test_http_error_without_json(self, client, session):
        session.add("GET", "/api/units", FakeResponse(status_code=503, body=None, reason="Service Unavailable"))

        with pytest.raises(InventoryApiError) as exc_info:
            client.get_units()

        assert exc_info.value.message == "Service Unavailable"
        assert exc_info.value.payload is None

    def test_envelope_error_code(self, client, session):
        session.add("GET", "/api/units", FakeResponse(body={"code": "401", "message": "Token expired"}))

        with pytest.raises(InventoryApiError) as exc_info:
            client.get_units()

        assert exc_info.value.status_code == 401

    def test_close_releases_session(self, client, session):
        client.close()

        assert session.closed is True

    def test_transport_errors_propagate(self, client, session):
        session.error = requests.ConnectionError("refused")

        with pytest.raises(requests.ConnectionError):
            client.get_units()


class TestLookups:
    """Test list-based lookups"""

    def test_get_unit(self, client, session):
        session.add("GET", "/api/units", FakeResponse(body=envelope([
            {"id": 1, "name": "Piece"},
            {"id": 2, "name": "Pack"},
        ])))

        assert client.get_unit("2") == {"id": 2, "name": "Pack"}

    def test_get_unit_missing(self, client, session):
        session.add("GET", "/api/units", FakeResponse(body=envelope([])))

        with pytest.raises(InventoryApiError) as exc_info:
            client.get_unit(5)

        assert exc_info.value.status_code == 404

    def test_current_stock_pieces(self, client, session):
        session.add("GET", "/api/reports/current-stock", FakeResponse(body=envelope([
            {"product_id": "PRD-001", "current_stock_pieces": 150},
            {"product_id": "PRD-002", "total_pieces": 0},
        ])))

        assert client.get_current_stock_pieces("PRD-001") == 150
        assert client.get_current_stock_pieces("PRD-002") == 0
        with pytest.raises(InventoryApiError):
            client.get_current_stock_pieces("PRD-404")

    def test_stock_in_item_for_defect(self, client, session):
        session.add("GET", "/api/defects/stock-in-items", FakeResponse(body=envelope([{"id": "SII-001"}])))

        assert client.get_stock_in_item_for_defect("SII-001") == {"id": "SII-001"}
        with pytest.raises(InventoryApiError):
            client.get_stock_in_item_for_defect("SII-404")

    def test_scan_barcode_is_quoted(self, client, session):
        session.add("GET", "/api/products/barcode/AB%2F12", FakeResponse(body=envelope({"product": {}})))

        assert client.scan_barcode("AB/12") == {"product": {}}


class TestWrites:
    """Test write endpoints"""

    def test_update_defect_status(self, client, session):
        session.add("PUT", "/api/defects/D-1/status", FakeResponse(body=envelope({"id": "D-1", "status": "resolved"})))

        assert client.update_defect_status("D-1", "resolved")["status"] == "resolved"
        assert session.calls[0]["json"] == {"status": "resolved"}

    def test_add_stock_out_item(self, client, session):
        session.add("POST", "/api/stock-out/SO-1/items/barcode", FakeResponse(body=envelope({"id": "SOI-1"})))

        client.add_stock_out_item_by_barcode("SO-1", {"barcode": "123", "requested_quantity": 1})

        assert session.calls[0]["json"]["requested_quantity"] == 1

    def test_add_stock_in_item(self, client, session):
        session.add("POST", "/api/stock-in/SI-1/items/barcode", FakeResponse(body=envelope({"id": "SII-9"})))

        assert client.add_stock_in_item_by_barcode("SI-1", {"barcode": "123"}) == {"id": "SII-9"}
