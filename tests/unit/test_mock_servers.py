"""Unit tests for the mock vendor apps."""

import pytest
from fastapi.testclient import TestClient

from dynprov.mock_servers.app import create_app, create_json_vendor_app, create_text_vendor_app


HANDLER = "/stubs/handler_api.php"


class TestTextVendor:

    @pytest.fixture
    def client(self):
        return TestClient(create_text_vendor_app())

    def get(self, client, **params):
        return client.get(HANDLER, params={"api_key": "test-key", **params})

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "server": "text-vendor"}

    def test_bad_key(self, client):
        response = client.get(HANDLER, params={"api_key": "wrong", "action": "getBalance"})
        assert response.text == "BAD_KEY"

    def test_balance(self, client):
        assert self.get(client, action="getBalance").text == "ACCESS_BALANCE:100.50"

    def test_countries_are_json(self, client):
        response = self.get(client, action="getCountries")
        assert response.headers["content-type"].startswith("application/json")
        assert response.json()["0"]["eng"] == "Russia"

    def test_purchase_lifecycle(self, client):
        assert self.get(client, action="getNumber", service="wa", country="0").text == "ACCESS_NUMBER:100001:79000100001"
        assert self.get(client, action="getStatus", id="100001").text == "STATUS_WAIT_CODE"
        assert self.get(client, action="getStatus", id="100001").text == "STATUS_OK:123456"
        assert self.get(client, action="setStatus", id="100001", status="6").text == "ACCESS_ACTIVATION"

    def test_cancel(self, client):
        self.get(client, action="getNumber", service="wa")
        assert self.get(client, action="setStatus", id="100001", status="8").text == "ACCESS_CANCEL"
        assert self.get(client, action="getStatus", id="100001").text == "STATUS_CANCEL"

    def test_out_of_stock_and_unknown(self, client):
        assert self.get(client, action="getNumber", service="tg").text == "NO_NUMBERS"
        assert self.get(client, action="getStatus", id="1").text == "NO_ACTIVATION"
        assert self.get(client, action="dance").text == "BAD_ACTION"

    def test_stock_lines(self, client):
        assert self.get(client, action="getNumbersStatus").text == "wa_0:5\ntg_0:0"

    def test_failure_injection(self):
        client = TestClient(create_text_vendor_app(rate_limit_first=1, fail_first=1, retry_after=2))

        first = self.get(client, action="getBalance")
        assert first.status_code == 429
        assert first.headers["retry-after"] == "2"
        assert self.get(client, action="getBalance").status_code == 503
        assert self.get(client, action="getBalance").status_code == 200


class TestJsonVendor:

    @pytest.fixture
    def client(self):
        return TestClient(create_json_vendor_app())

    @pytest.fixture
    def auth(self):
        return {"Authorization": "Bearer test-token"}

    def test_guest_routes(self, client):
        assert client.get("/v1/guest/countries").json()["russia"]["iso"] == {"ru": 1}
        products = client.get("/v1/guest/products/russia/any").json()
        assert products["whatsapp"] == {"Category": "activation", "Qty": 120, "Price": 18.5}

    def test_prices_filter(self, client):
        prices = client.get("/v1/guest/prices", params={"country": "england"}).json()
        assert list(prices) == ["england"]
        assert prices["england"]["whatsapp"]["virtual4"]["cost"] == 60

    def test_user_routes_require_token(self, client):
        response = client.get("/v1/user/profile", headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 401

    def test_order_lifecycle(self, client, auth):
        order = client.get("/v1/user/buy/activation/russia/any/whatsapp", headers=auth).json()
        assert order["id"] == 501
        assert order["phone"] == "+79000000501"
        assert order["operator"] == "virtual21"
        assert "polls" not in order

        assert client.get("/v1/user/check/501", headers=auth).json()["status"] == "PENDING"
        received = client.get("/v1/user/check/501", headers=auth).json()
        assert received["status"] == "RECEIVED"
        assert received["sms"][0]["code"] == "654321"

    def test_batch_orders(self, client, auth):
        client.get("/v1/user/buy/activation/russia/any/whatsapp", headers=auth)
        batch = client.get("/v1/user/orders", params={"ids": "501,999"}, headers=auth).json()
        assert [order["id"] for order in batch["Data"]] == [501]

    def test_cancel_twice(self, client, auth):
        client.get("/v1/user/buy/activation/russia/any/whatsapp", headers=auth)
        assert client.get("/v1/user/cancel/501", headers=auth).json()["status"] == "CANCELED"
        assert client.get("/v1/user/cancel/501", headers=auth).text == "order has already been canceled"

    def test_out_of_stock(self, client, auth):
        response = client.get("/v1/user/buy/activation/russia/any/telegram", headers=auth)
        assert response.text == "no free phones"

    def test_unknown_order(self, client, auth):
        assert client.get("/v1/user/check/42", headers=auth).status_code == 404

    def test_failure_injection_skips_health(self):
        client = TestClient(create_json_vendor_app(fail_first=1))
        assert client.get("/health").status_code == 200
        assert client.get("/v1/guest/countries").status_code == 503
        assert client.get("/v1/guest/countries").status_code == 200


def test_create_app_reads_vendor_style(monkeypatch):
    monkeypatch.setenv("VENDOR_STYLE", "json")
    assert TestClient(create_app()).get("/health").json()["server"] == "json-vendor"

    monkeypatch.setenv("VENDOR_STYLE", "text")
    assert TestClient(create_app()).get("/health").json()["server"] == "text-vendor"
