import logging

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from craftstore.core.errors import DatabaseError, NotFoundError


def test_not_found_body(client):
    response = client.get("/api/products/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {
        "detail": "Product with identifier 'does-not-exist' not found",
        "code": "NotFoundError",
        "context": {"resource": "Product", "identifier": "does-not-exist"},
    }


def test_validation_errors_list_fields(client):
    response = client.post("/api/orders", json={"customerName": "Asha", "items": [{"productId": "p1", "quantity": 0}]})

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "ValidationError"
    fields = {issue["field"] for issue in body["context"]["issues"]}
    assert {"customerPhone", "district", "road", "items.0.quantity"} <= fields


def test_unknown_routes_use_the_error_shape(client):
    response = client.get("/api/nowhere")
    assert response.status_code == 404
    assert response.json()["code"] == "HTTPException"


def test_database_failures_are_opaque(app, repos, monkeypatch, caplog):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

    monkeypatch.setattr(repos.products._sessions, "begin", broken)

    with pytest.raises(DatabaseError):
        repos.products.get_product("anything")

    with TestClient(app, raise_server_exceptions=False) as client, caplog.at_level(logging.ERROR):
        response = client.get("/api/products/anything-else")

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error", "code": "InternalError"}
    assert "database_error" in caplog.text


def test_responses_carry_request_id_and_security_headers(client):
    response = client.get("/health", headers={"X-Request-ID": "abc123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "abc123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_not_found_message_without_identifier():
    assert NotFoundError("Order").message == "Order not found"
