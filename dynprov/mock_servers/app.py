"""FastAPI mock vendors for exercising provider configurations end to end.

Two wire styles are emulated:

- ``create_text_vendor_app``: an SMS-Activate style ``handler_api.php`` that
  answers with status-coded text lines (``ACCESS_NUMBER:id:phone``).
- ``create_json_vendor_app``: a 5sim style REST API with bearer auth and
  nested dictionary responses.

Both keep their state in memory and are deterministic.
"""

import os
from typing import Dict, Optional

from fastapi import FastAPI, Header, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse


TEXT_COUNTRIES = {
    "0": {"id": 0, "rus": "Россия", "eng": "Russia"},
    "6": {"id": 6, "rus": "Индонезия", "eng": "Indonesia"},
    "187": {"id": 187, "rus": "США", "eng": "USA"},
}

TEXT_SERVICES = [
    {"code": "wa", "name": "WhatsApp"},
    {"code": "tg", "name": "Telegram"},
]

JSON_COUNTRIES = {
    "russia": {"iso": {"ru": 1}, "prefix": {"+7": 1}, "text_en": "Russia"},
    "england": {"iso": {"gb": 1}, "prefix": {"+44": 1}, "text_en": "England"},
}

JSON_PRICES = {
    "russia": {
        "whatsapp": {
            "virtual21": {"cost": 21, "count": 120, "rate": 99.5},
            "virtual38": {"cost": 18.5, "count": 0},
        },
        "telegram": {
            "virtual21": {"cost": 35, "count": 40},
        },
    },
    "england": {
        "whatsapp": {
            "virtual4": {"cost": 60, "count": 7},
        },
    },
}


class _FailureInjector:
    """Counts down injected 503 and 429 responses before serving normally."""

    def __init__(self, fail_first: int = 0, rate_limit_first: int = 0, retry_after: int = 1):
        self.fail_remaining = fail_first
        self.rate_limit_remaining = rate_limit_first
        self.retry_after = retry_after

    def check(self) -> Optional[Response]:
        if self.rate_limit_remaining > 0:
            self.rate_limit_remaining -= 1
            return PlainTextResponse(
                "Too Many Requests",
                status_code=429,
                headers={"Retry-After": str(self.retry_after)},
            )
        if self.fail_remaining > 0:
            self.fail_remaining -= 1
            return PlainTextResponse("Service Unavailable", status_code=503)
        return None


def create_text_vendor_app(
    name: str = "text-vendor",
    api_key: str = "test-key",
    balance: float = 100.5,
    stock: Optional[Dict[str, int]] = None,
    sms_code: str = "123456",
    polls_before_sms: int = 1,
    fail_first: int = 0,
    rate_limit_first: int = 0,
    retry_after: int = 1,
) -> FastAPI:
    """
    Create an SMS-Activate style vendor.

    Args:
        name: Server name
        api_key: Accepted ``api_key`` query value
        balance: Account balance reported by ``getBalance``
        stock: Numbers available per service code
        sms_code: Code delivered to every activation
        polls_before_sms: ``getStatus`` calls answered with WAIT_CODE first
        fail_first: Leading requests answered with 503
        rate_limit_first: Leading requests answered with 429
        retry_after: ``Retry-After`` seconds on injected 429s

    Returns:
        FastAPI application
    """
    app = FastAPI(title=f"Mock text vendor - {name}")
    injector = _FailureInjector(fail_first, rate_limit_first, retry_after)
    available = dict(stock if stock is not None else {"wa": 5, "tg": 0})
    activations: Dict[str, Dict] = {}
    counter = {"next_id": 100000}

    def buy(service: str, country: str) -> str:
        if available.get(service, 0) <= 0:
            return "NO_NUMBERS"
        available[service] -= 1
        counter["next_id"] += 1
        activation_id = str(counter["next_id"])
        activations[activation_id] = {
            "phone": f"7{9000000000 + counter['next_id']}",
            "service": service,
            "country": country,
            "state": "WAIT_CODE",
            "polls": 0,
        }
        return f"ACCESS_NUMBER:{activation_id}:{activations[activation_id]['phone']}"

    def status_of(activation_id: str) -> str:
        activation = activations.get(activation_id)
        if activation is None:
            return "NO_ACTIVATION"
        if activation["state"] == "CANCEL":
            return "STATUS_CANCEL"
        activation["polls"] += 1
        if activation["state"] == "WAIT_CODE" and activation["polls"] > polls_before_sms:
            activation["state"] = "OK"
        if activation["state"] == "OK":
            return f"STATUS_OK:{sms_code}"
        return f"STATUS_{activation['state']}"

    def set_status(activation_id: str, status: str) -> str:
        activation = activations.get(activation_id)
        if activation is None:
            return "NO_ACTIVATION"
        if status == "8":
            activation["state"] = "CANCEL"
            return "ACCESS_CANCEL"
        if status == "3":
            activation["state"] = "WAIT_RETRY"
            return "ACCESS_RETRY_GET"
        if status == "6":
            activation["state"] = "FINISHED"
            return "ACCESS_ACTIVATION"
        return "ACCESS_READY"

    @app.get("/stubs/handler_api.php")
    async def handler(request: Request):
        """Single SMS-Activate style entry point dispatched on ``action``."""
        injected = injector.check()
        if injected is not None:
            return injected

        query = request.query_params
        if query.get("api_key") != api_key:
            return PlainTextResponse("BAD_KEY")

        action = query.get("action")
        if action == "getBalance":
            return PlainTextResponse(f"ACCESS_BALANCE:{balance:.2f}")
        if action == "getCountries":
            return JSONResponse(TEXT_COUNTRIES)
        if action == "getServicesList":
            return JSONResponse({"status": "success", "services": TEXT_SERVICES})
        if action == "getNumber":
            return PlainTextResponse(buy(query.get("service", ""), query.get("country", "0")))
        if action == "getStatus":
            return PlainTextResponse(status_of(query.get("id", "")))
        if action == "setStatus":
            return PlainTextResponse(set_status(query.get("id", ""), query.get("status", "")))
        if action == "getNumbersStatus":
            lines = [f"{service}_0:{count}" for service, count in available.items()]
            return PlainTextResponse("\n".join(lines))
        return PlainTextResponse("BAD_ACTION")

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "server": name}

    return app


def create_json_vendor_app(
    name: str = "json-vendor",
    token: str = "test-token",
    balance: float = 250.0,
    stock: Optional[Dict[str, int]] = None,
    sms_code: str = "654321",
    polls_before_sms: int = 1,
    fail_first: int = 0,
    rate_limit_first: int = 0,
    retry_after: int = 1,
) -> FastAPI:
    """
    Create a 5sim style vendor.

    Args:
        name: Server name
        token: Accepted bearer token for ``/v1/user`` routes
        balance: Reported profile balance
        stock: Numbers available per product
        sms_code: Code delivered to every order
        polls_before_sms: ``check`` calls answered without SMS first
        fail_first: Leading requests answered with 503
        rate_limit_first: Leading requests answered with 429
        retry_after: ``Retry-After`` seconds on injected 429s

    Returns:
        FastAPI application
    """
    app = FastAPI(title=f"Mock JSON vendor - {name}")
    injector = _FailureInjector(fail_first, rate_limit_first, retry_after)
    available = dict(stock if stock is not None else {"whatsapp": 3, "telegram": 0})
    orders: Dict[int, Dict] = {}
    counter = {"next_id": 500}

    def authorized(authorization: Optional[str]) -> bool:
        return authorization == f"Bearer {token}"

    def unauthorized() -> Response:
        return PlainTextResponse("Unauthorized", status_code=401)

    def public_order(order: Dict) -> Dict:
        return {key: value for key, value in order.items() if key != "polls"}

    @app.middleware("http")
    async def inject_failures(request: Request, call_next):
        if request.url.path.startswith("/v1/"):
            injected = injector.check()
            if injected is not None:
                return injected
        return await call_next(request)

    @app.get("/v1/guest/countries")
    async def countries():
        return JSON_COUNTRIES

    @app.get("/v1/guest/products/{country}/{operator}")
    async def products(country: str, operator: str):
        services = JSON_PRICES.get(country, {})
        return {
            product: {
                "Category": "activation",
                "Qty": sum(op.get("count", 0) for op in operators.values()),
                "Price": min(op["cost"] for op in operators.values()),
            }
            for product, operators in services.items()
        }

    @app.get("/v1/guest/prices")
    async def prices(country: Optional[str] = None, product: Optional[str] = None):
        result = {}
        for country_name, services in JSON_PRICES.items():
            if country and country_name != country:
                continue
            selected = {
                service: operators
                for service, operators in services.items()
                if not product or service == product
            }
            if selected:
                result[country_name] = selected
        return result

    @app.get("/v1/user/profile")
    async def profile(authorization: Optional[str] = Header(default=None)):
        if not authorized(authorization):
            return unauthorized()
        return {"id": 1, "email": "buyer@example.com", "balance": balance, "rating": 96}

    @app.get("/v1/user/buy/activation/{country}/{operator}/{product}")
    async def buy(country: str, operator: str, product: str, authorization: Optional[str] = Header(default=None)):
        if not authorized(authorization):
            return unauthorized()
        if available.get(product, 0) <= 0:
            return PlainTextResponse("no free phones")
        available[product] -= 1
        counter["next_id"] += 1
        order_id = counter["next_id"]
        orders[order_id] = {
            "id": order_id,
            "phone": f"+7900{order_id:07d}",
            "operator": "virtual21" if operator == "any" else operator,
            "product": product,
            "price": 21,
            "status": "PENDING",
            "country": country,
            "sms": [],
            "polls": 0,
        }
        return public_order(orders[order_id])

    def poll(order_id: int) -> Optional[Dict]:
        order = orders.get(order_id)
        if order is None:
            return None
        if order["status"] in ("PENDING", "RECEIVED"):
            order["polls"] += 1
            if order["polls"] > polls_before_sms and not order["sms"]:
                order["status"] = "RECEIVED"
                order["sms"] = [{
                    "created_at": "2026-01-01T00:00:00Z",
                    "date": "2026-01-01T00:00:00Z",
                    "sender": order["product"],
                    "text": f"Your code is {sms_code}",
                    "code": sms_code,
                }]
        return public_order(order)

    @app.get("/v1/user/check/{order_id}")
    async def check(order_id: int, authorization: Optional[str] = Header(default=None)):
        if not authorized(authorization):
            return unauthorized()
        order = poll(order_id)
        if order is None:
            return PlainTextResponse("order not found", status_code=404)
        return order

    @app.get("/v1/user/orders")
    async def batch(ids: str = "", authorization: Optional[str] = Header(default=None)):
        if not authorized(authorization):
            return unauthorized()
        found = [poll(int(i)) for i in ids.split(",") if i.strip().isdigit()]
        return {"Data": [order for order in found if order is not None], "Total": len(found)}

    @app.get("/v1/user/cancel/{order_id}")
    async def cancel(order_id: int, authorization: Optional[str] = Header(default=None)):
        if not authorized(authorization):
            return unauthorized()
        order = orders.get(order_id)
        if order is None:
            return PlainTextResponse("order not found", status_code=404)
        if order["status"] == "CANCELED":
            return PlainTextResponse("order has already been canceled")
        order["status"] = "CANCELED"
        return public_order(order)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "server": name}

    return app


def create_app() -> FastAPI:
    """
    Factory function for uvicorn --factory.

    Reads VENDOR_STYLE (``text`` or ``json``) from the environment.
    """
    if os.getenv("VENDOR_STYLE", "text") == "json":
        return create_json_vendor_app(token=os.getenv("VENDOR_TOKEN", "test-token"))
    return create_text_vendor_app(api_key=os.getenv("VENDOR_API_KEY", "test-key"))
