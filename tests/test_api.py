"""HTTP tests against the app with in-memory collaborators."""
import pytest
from fastapi.testclient import TestClient

from app import main
from application.use_cases import OrderDesk
from domain.errors import EmptyInput, MalformedResponse, UpstreamError
from domain.workspace import Customer, WorkspaceState


class FakeNormalizer:
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error
        self.calls = []

    async def normalize(self, current_items, utterance):
        if not (utterance or "").strip():
            raise EmptyInput("blank")
        self.calls.append((list(current_items), utterance))
        if self.error:
            raise self.error
        return self.items


@pytest.fixture
def fake_normalizer():
    return FakeNormalizer(items=[{"name": "番茄", "quantity": 3, "unit": "斤", "price": 5}])


@pytest.fixture
def test_client(fake_normalizer):
    main.normalizer = fake_normalizer
    main.desk = OrderDesk(
        state=WorkspaceState(customers=(Customer("c1", "张记"), Customer("c2", "李记"))),
        normalizer=fake_normalizer,
    )
    # raise_server_exceptions=False allows us to test error responses
    client = TestClient(main.app, raise_server_exceptions=False)
    yield client
    main.normalizer = None
    main.desk = None


def test_relay_returns_items(test_client, fake_normalizer):
    response = test_client.post(
        "/api/process-order",
        json={"text": "番茄改成3斤", "currentItems": [{"name": "番茄", "quantity": 2, "unit": "斤", "price": 5}]},
    )

    assert response.status_code == 200
    assert response.json() == {"items": [{"name": "番茄", "quantity": 3, "unit": "斤", "price": 5}]}
    assert fake_normalizer.calls[0][0] == [{"name": "番茄", "quantity": 2, "unit": "斤", "price": 5}]


@pytest.mark.parametrize("body", [{}, {"text": "  "}, {"currentItems": []}])
def test_relay_requires_text(test_client, body):
    response = test_client.post("/api/process-order", json=body)

    assert response.status_code == 400
    assert "error" in response.json()


@pytest.mark.parametrize(
    "error, fragment",
    [
        (UpstreamError("rate limited", status_code=500), "rate limited"),
        (MalformedResponse("Model reply has no items list"), "items"),
    ],
)
def test_relay_reports_upstream_failures_as_500(test_client, fake_normalizer, error, fragment):
    fake_normalizer.error = error

    response = test_client.post("/api/process-order", json={"text": "土豆五斤"})

    assert response.status_code == 500
    assert fragment in response.json()["error"]


def test_relay_checks_text_before_model_availability(test_client):
    main.normalizer = None

    response = test_client.post("/api/process-order", json={"currentItems": []})

    assert response.status_code == 400
    assert "error" in response.json()


def test_relay_without_model_returns_503(test_client):
    main.normalizer = None

    response = test_client.post("/api/process-order", json={"text": "土豆五斤"})

    assert response.status_code == 503
    assert "error" in response.json()


def test_order_flow_from_draft_to_report(test_client):
    response = test_client.post("/draft", json={"customer_id": "c1"})
    assert response.status_code == 201
    draft = response.json()
    assert draft["items"] == [{"name": "", "quantity": 1, "unit": "", "price": 0, "amount": 0}]

    response = test_client.post("/draft/normalize", json={"text": "番茄三斤五块"})
    assert response.status_code == 200
    assert response.json()["grand_total"] == 15.0

    assert test_client.post("/draft/items").json()["items"][-1]["name"] == ""
    response = test_client.patch("/draft/items/1", json={"field": "name", "value": "葱"})
    assert response.json()["items"][1]["name"] == "葱"
    response = test_client.patch("/draft/items/1", json={"field": "price", "value": 2})
    assert response.json()["grand_total"] == 17.0
    response = test_client.delete("/draft/items/1")
    assert response.json()["grand_total"] == 15.0

    response = test_client.post("/draft/save")
    assert response.status_code == 201
    saved = response.json()
    assert saved["customer_id"] == "c1"

    assert test_client.get("/draft").status_code == 409

    listing = test_client.get("/orders").json()
    assert [o["id"] for o in listing["orders"]] == [saved["id"]]
    assert listing["total"] == 15.0

    assert test_client.get("/orders/today").json()["total"] == 15.0
    assert test_client.get("/orders", params={"period": "month"}).json()["total"] == 15.0
    assert test_client.get("/orders", params={"customer_id": "c2"}).json()["orders"] == []

    stats = test_client.get("/stats").json()
    assert stats["today_orders"] == 1
    assert stats["total_customers"] == 2

    report = test_client.get("/reports/print")
    assert report.status_code == 200
    assert report.headers["content-type"].startswith("text/html")
    assert "番茄" in report.text


def test_normalize_with_blank_names_keeps_draft(test_client, fake_normalizer):
    test_client.post("/draft", json={"customer_id": "c1"})
    fake_normalizer.items = [{"name": "", "quantity": 1, "unit": "", "price": 0}]

    response = test_client.post("/draft/normalize", json={"text": "嗯嗯"})

    assert response.status_code == 400
    assert response.json()["error_type"] == "NoValidItems"
    assert test_client.get("/draft").json()["items"][0]["name"] == ""


def test_normalize_upstream_error_maps_to_502(test_client, fake_normalizer):
    test_client.post("/draft", json={"customer_id": "c1"})
    fake_normalizer.error = UpstreamError("rate limited", status_code=500)

    response = test_client.post("/draft/normalize", json={"text": "土豆五斤"})

    assert response.status_code == 502
    assert response.json() == {"detail": "HTTP 500: rate limited", "error_type": "UpstreamError"}


def test_save_without_named_items_is_rejected(test_client):
    test_client.post("/draft", json={"customer_id": "c1"})

    response = test_client.post("/draft/save")

    assert response.status_code == 400
    assert response.json()["error_type"] == "ValidationFailed"
    assert test_client.get("/draft").status_code == 200


def test_edit_with_bad_value_is_rejected(test_client):
    test_client.post("/draft", json={"customer_id": "c1"})

    response = test_client.patch("/draft/items/0", json={"field": "quantity", "value": -2})

    assert response.status_code == 400
    assert test_client.get("/draft").json()["items"][0]["quantity"] == 1


def test_customers_crud_and_cascade(test_client):
    response = test_client.post("/customers", json={"name": " 王记 "})
    assert response.status_code == 201
    customer_id = response.json()["id"]
    assert response.json()["name"] == "王记"

    test_client.post("/draft", json={"customer_id": customer_id})
    test_client.post("/draft/normalize", json={"text": "番茄三斤"})
    test_client.post("/draft/save")
    assert len(test_client.get("/orders").json()["orders"]) == 1

    assert test_client.delete(f"/customers/{customer_id}").status_code == 204
    assert test_client.get("/orders").json()["orders"] == []
    assert [c["id"] for c in test_client.get("/customers").json()] == ["c1", "c2"]


def test_unknown_customer_returns_404(test_client):
    assert test_client.delete("/customers/nobody").status_code == 404
    assert test_client.post("/draft", json={"customer_id": "nobody"}).status_code == 404


def test_blank_customer_name_returns_400(test_client):
    response = test_client.post("/customers", json={"name": "  "})

    assert response.status_code == 400
    assert response.json()["error_type"] == "ValidationFailed"


def test_draft_operations_without_draft_return_409(test_client):
    assert test_client.post("/draft/items").status_code == 409
    assert test_client.post("/draft/normalize", json={"text": "土豆"}).status_code == 409


def test_report_without_orders_returns_400(test_client):
    assert test_client.get("/reports/print").status_code == 400
    assert test_client.get("/reports/print", params={"start": "2026-01-01"}).status_code == 400


def test_malformed_json_returns_400(test_client):
    response = test_client.post(
        "/draft",
        content="not-valid-json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error_type"] == "RequestValidationError"


def test_metrics_endpoint_lists_counters(test_client):
    response = test_client.get("/metrics")

    assert response.status_code == 200
    assert "normalizations_total" in response.text
    assert "orders_saved_total" in response.text


def test_uninitialized_state_returns_500():
    main.desk = None
    client = TestClient(main.app, raise_server_exceptions=False)

    response = client.get("/customers")

    assert response.status_code == 500
