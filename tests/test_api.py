import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from db.database import get_async_session
from main import app, status_for
from core.exceptions import (
    ConcurrencyConflictError,
    ConstraintViolation,
    InsufficientStockError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)


@pytest.fixture
async def client(session_maker):
    async def _session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = _session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def _create_bom(client):
    a = (await client.post("/items/", json={"name": "A", "stock_quantity": 10})).json()
    b = (await client.post("/items/", json={"name": "B", "stock_quantity": 3})).json()
    p = (await client.post("/products/", json={"name": "P"})).json()
    for item, qty in ((a, 2), (b, 1)):
        r = await client.post(f"/products/{p['id']}/components", json={"item_id": item["id"], "quantity": qty})
        assert r.status_code == 201
    return a, b, p


class TestStatusMapping:
    @pytest.mark.parametrize(
        "exc, code",
        [
            (NotFoundError("x"), 404),
            (ValidationError("x"), 400),
            (ConstraintViolation(["x"]), 422),
            (InsufficientStockError([]), 409),
            (ConcurrencyConflictError("x"), 409),
            (StoreUnavailableError("x"), 503),
        ],
    )
    def test_status_for(self, exc, code):
        assert status_for(exc) == code


class TestCatalogEndpoints:
    async def test_product_shows_derived_stock_and_components(self, client):
        _a, _b, p = await _create_bom(client)

        r = await client.get(f"/products/{p['id']}")

        assert r.status_code == 200
        body = r.json()
        assert body["stock_quantity"] == 3
        assert sorted((c["item_name"], c["quantity"]) for c in body["components"]) == [("A", 2), ("B", 1)]

    async def test_item_stock_update_recomputes(self, client):
        a, _b, p = await _create_bom(client)

        r = await client.put(f"/items/{a['id']}/stock", json={"stock_quantity": 2})
        assert r.status_code == 200

        assert (await client.get(f"/products/{p['id']}")).json()["stock_quantity"] == 1

    async def test_recompute_endpoint(self, client):
        _a, _b, p = await _create_bom(client)

        r = await client.post(f"/products/{p['id']}/recompute")

        assert r.status_code == 200
        assert r.json() == {"product_id": p["id"], "stock_quantity": 3}
        assert (await client.post(f"/products/{uuid.uuid4()}/recompute")).status_code == 404

    async def test_manual_stock_on_derived_product_is_400(self, client):
        _a, _b, p = await _create_bom(client)

        r = await client.patch(f"/products/{p['id']}", json={"stock_quantity": 50})

        assert r.status_code == 400
        assert r.json()["error"] == "VALIDATION_ERROR"

    async def test_unknown_item_is_404(self, client):
        r = await client.get(f"/items/{uuid.uuid4()}")
        assert r.status_code == 404
        assert r.json()["error"] == "NOT_FOUND"


class TestStockEndpoints:
    async def test_reserve_then_shortage(self, client):
        _a, b, p = await _create_bom(client)

        ok = await client.post(f"/stock/products/{p['id']}/reserve", json={"quantity": 2})
        assert ok.status_code == 200
        assert ok.json()["stock_quantity"] == 1

        short = await client.post(f"/stock/products/{p['id']}/reserve", json={"quantity": 2})
        assert short.status_code == 409
        body = short.json()
        assert body["error"] == "INSUFFICIENT_STOCK"
        assert body["shortages"] == [{"item_id": b["id"], "item_name": "B", "available": 1, "required": 2}]

    async def test_validate_does_not_mutate(self, client):
        a, _b, p = await _create_bom(client)

        r = await client.post("/stock/validate", json={"lines": [{"product_id": p["id"], "quantity": 5}]})

        assert r.status_code == 200
        assert r.json()["valid"] is False
        assert (await client.get(f"/items/{a['id']}")).json()["stock_quantity"] == 10

    async def test_checkout_rejected_by_constraint_is_422(self, client):
        a, _b, p = await _create_bom(client)
        card = (await client.post("/items/", json={"name": "card", "stock_quantity": 5})).json()
        r = await client.post(
            "/constraints/",
            json={
                "target_item_id": p["id"],
                "target_item_type": "PRODUCT",
                "constraint_type": "MUTUALLY_EXCLUSIVE",
                "related_item_id": card["id"],
                "related_item_type": "ADDITIONAL",
                "message": "No cards with P",
            },
        )
        assert r.status_code == 201

        r = await client.post(
            "/stock/checkout",
            json={"lines": [{"product_id": p["id"], "additionals": [{"additional_id": card["id"]}]}]},
        )

        assert r.status_code == 422
        assert r.json()["violations"] == ["No cards with P"]
        assert (await client.get(f"/items/{a['id']}")).json()["stock_quantity"] == 10

    async def test_checkout_accepted(self, client):
        _a, _b, p = await _create_bom(client)

        r = await client.post("/stock/checkout", json={"lines": [{"product_id": p["id"], "quantity": 3}]})

        assert r.status_code == 200
        assert r.json() == {"accepted": True, "stock": {p["id"]: 0}}


class TestReportEndpoints:
    async def test_stock_report(self, client):
        await _create_bom(client)

        r = await client.get("/reports/stock", params={"threshold": 3})

        assert r.status_code == 200
        body = r.json()
        assert body["total_products"] == 1
        assert body["total_additionals"] == 2
        assert {i["name"] for i in body["low_stock_items"]} == {"P", "B"}

    async def test_alerts(self, client):
        a, _b, _p = await _create_bom(client)
        await client.put(f"/items/{a['id']}/stock", json={"stock_quantity": 0})

        r = await client.get("/reports/alerts")

        assert r.status_code == 200
        assert r.json()["has_critical"] is True
