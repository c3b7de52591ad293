"""
Shared test fixtures.

HTTP is faked with httpx.MockTransport over an in-memory backend that
implements the cart and upload-session contract. Async code is driven
with asyncio.run inside ordinary tests.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

import asyncio
import json
from decimal import Decimal
from typing import Any, Optional

import httpx
import pytest

from config.settings import Settings
from integrations.api_client import ApiClient
from services.cart_session import create_cart_session
from tests.factories import CartFactory

API_PREFIX = "/api/v1"
BASE_URL = f"http://pos.test{API_PREFIX}"

CART_TRANSITIONS = {
    "CREATED": {"PENDING"},
    "PENDING": {"COMPLETED", "CREATED"},
    "COMPLETED": set(),
}


def ok(data: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json={"success": True, "data": data})


def fail(status_code: int, message: str, errors: Optional[dict] = None) -> httpx.Response:
    body = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return httpx.Response(status_code, json=body)


# ===================
# FAKE BACKEND
# ===================

class FakeBackend:
    """
    In-memory backend.

    Attributes:
        cart: Current cart payload (None = no cart)
        requests: (method, path, params, body) of every request received
        stock: Optional per-item stock limits (upserts above them get 422)
        failures: Queue of responses/exceptions returned before normal handling
        upsert_gate: When set, upserts wait for this event before answering
        uploads: token -> {"statuses": [...], "items": [...], "error": str}
    """

    def __init__(self):
        self.cart: Optional[dict] = None
        self.requests: list[tuple[str, str, dict, Any]] = []
        self.stock: dict[str, int] = {}
        self.failures: list[Any] = []
        self.upsert_gate: Optional[asyncio.Event] = None
        self.uploads: dict[str, dict] = {}
        self.in_flight = 0
        self.max_in_flight = 0
        self._purchase_counter = 0
        self._token_counter = 0

    # ---- helpers for tests ----

    def seed_cart(self, **kwargs) -> dict:
        self.cart = CartFactory.create(**kwargs)
        return self.cart

    def calls(self, method: str, path: str) -> list[tuple]:
        return [r for r in self.requests if r[0] == method and r[1] == path]

    def upsert_bodies(self) -> list[dict]:
        return [r[3] for r in self.calls("POST", "/cart/upsert")]

    def add_upload(self, statuses: list[str], items: Optional[list] = None, error: Optional[str] = None) -> str:
        self._token_counter += 1
        token = f"tok-{self._token_counter}"
        self.uploads[token] = {"statuses": list(statuses), "items": items or [], "error": error}
        return token

    # ---- transport ----

    async def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len(API_PREFIX):] if request.url.path.startswith(API_PREFIX) else request.url.path
        params = dict(request.url.params)
        body = None
        if request.headers.get("content-type", "").startswith("application/json") and request.content:
            body = json.loads(request.content)
        self.requests.append((request.method, path, params, body))

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.failures:
                failure = self.failures.pop(0)
                if isinstance(failure, Exception):
                    raise failure
                return failure
            return await self._route(request, path, params, body)
        finally:
            self.in_flight -= 1

    async def _route(self, request, path, params, body) -> httpx.Response:
        if request.method == "GET" and path == "/cart":
            return ok(self.cart) if self.cart else fail(404, "Cart not found")
        if request.method == "POST" and path == "/cart/upsert":
            if self.upsert_gate is not None:
                await self.upsert_gate.wait()
            return self._upsert(body)
        if request.method == "POST" and path == "/cart/status":
            return self._status(body)
        if request.method == "GET" and path.startswith("/invoices/"):
            purchase_id = path.split("/")[2]
            if not self.cart or self.cart["purchaseId"] != purchase_id:
                return fail(404, "Invoice not found")
            return httpx.Response(200, content=b"%PDF-1.4 fake", headers={"content-type": "application/pdf"})
        if path.startswith("/upload-session/"):
            return self._upload(request, path.rsplit("/", 1)[1], params)
        return fail(404, f"No route {path}")

    def _upsert(self, body: dict) -> httpx.Response:
        if self.cart is None or self.cart["status"] == "COMPLETED":
            self._purchase_counter += 1
            self.cart = CartFactory.create(purchase_id=f"purchase-{self._purchase_counter}")
        if self.cart["status"] != "CREATED":
            return fail(409, "Cart is not editable")

        lines = {line["inventoryId"]: dict(line) for line in self.cart["items"]}
        for item in body["items"]:
            line = lines.get(item["id"])
            if "quantity" in item:
                current = line["quantity"] if line else 0
                new_quantity = current + item["quantity"]
                limit = self.stock.get(item["id"])
                if limit is not None and new_quantity > limit:
                    return fail(422, f"Only {limit} items available", errors={item["id"]: [f"Only {limit} items available"]})
                if new_quantity <= 0:
                    lines.pop(item["id"], None)
                    continue
                if line is None:
                    line = {"inventoryId": item["id"], "name": item["id"].upper(), "discount": 0}
                    lines[item["id"]] = line
                line["quantity"] = new_quantity
                line["sellingPrice"] = float(Decimal(str(item.get("sellingPrice", line.get("sellingPrice", 0)))))
                line["maximumRetailPrice"] = line["sellingPrice"]
            if "additionalDiscount" in item and line is not None:
                line["additionalDiscount"] = float(Decimal(str(item["additionalDiscount"])))

        self.cart = CartFactory.create(
            purchase_id=self.cart["purchaseId"],
            status="CREATED",
            items=list(lines.values()),
            **{k: v for k, v in self.cart.items() if k.startswith("customer")}
        )
        for key, value in body.items():
            if key.startswith("customer"):
                self.cart[key] = value
        return ok(self.cart)

    def _status(self, body: dict) -> httpx.Response:
        if not self.cart or self.cart["purchaseId"] != body["purchaseId"]:
            return fail(404, "Cart not found")
        if body["status"] not in CART_TRANSITIONS[self.cart["status"]]:
            return fail(409, f"Cannot move cart from {self.cart['status']} to {body['status']}")
        self.cart = dict(self.cart, status=body["status"], paymentMethod=body["paymentMethod"])
        return ok(self.cart)

    def _upload(self, request, action: str, params: dict) -> httpx.Response:
        if action == "create":
            token = self.add_upload(["PENDING"])
            return ok({"token": token, "uploadUrl": f"http://pos.test/m/upload?token={token}", "expiresInSeconds": 600})

        upload = self.uploads.get(params.get("token"))
        if upload is None:
            return fail(404, "Upload token not found")
        statuses = upload["statuses"]

        if action == "status":
            status = statuses.pop(0) if len(statuses) > 1 else statuses[0]
            return ok({"token": params["token"], "status": status, "errorMessage": upload["error"]})
        if action == "items":
            return ok({"items": upload["items"], "totalItems": len(upload["items"])})
        if action == "validate":
            return ok({"token": params["token"], "status": statuses[0], "expiresAt": "2026-10-19T10:10:00Z", "errorMessage": None})
        if action == "upload":
            if statuses[0] != "PENDING":
                return fail(409, "Token already used")
            upload["statuses"] = ["UPLOADING"]
            return ok("Image received")
        return fail(404, f"No upload action {action}")


# ===================
# FIXTURES
# ===================

@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_base_url=BASE_URL,
        api_token="test-token",
        shop_id="shop-1",
        business_type="pharmacy",
        load_dedupe_window_ms=200,
        upload_poll_interval_seconds=0.01,
    )


@pytest.fixture
def api(backend, settings) -> ApiClient:
    return ApiClient(settings=settings, transport=httpx.MockTransport(backend.handle))


@pytest.fixture
def session(api, settings):
    """
    Wired cart session against the fake backend.

    Usage:
        def test_something(session, backend):
            backend.seed_cart(items=[...])
            asyncio.run(session.checkout.resume())
    """
    return create_cart_session(settings=settings, api=api)


@pytest.fixture
def run():
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run


