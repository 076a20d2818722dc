"""Tests for the order endpoints."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient


@pytest.fixture()
def shirt(app_engine, make_product):
    return make_product(app_engine, name="Test Shirt", price="40.00", variants=(("M", "White", 5),))


@pytest.fixture()
def place_order(client: TestClient, order_payload, shirt):
    """Submit an order for the shirt and return the created order."""

    def submit(headers=None, quantity: int = 1, **overrides) -> dict:
        items = [{"product": str(shirt), "variant": {"size": "M", "color": "White"}, "quantity": quantity}]
        response = client.post("/orders", json=order_payload(items, **overrides), headers=headers or {})
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return submit


def _set_status(client: TestClient, order_id: str, status: str, headers) -> dict:
    response = client.patch(f"/orders/{order_id}/status", json={"status": status}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]


def _variant_stock(client: TestClient, product_id) -> int:
    return client.get(f"/products/{product_id}").json()["data"]["variants"][0]["stock"]


# -- creation --------------------------------------------------------------


def test_guest_order_is_priced_and_persisted(client: TestClient, order_payload, shirt) -> None:
    items = [{"product": str(shirt), "variant": {"size": "M", "color": "White"}, "quantity": 1}]

    response = client.post("/orders", json=order_payload(items, notes="Leave at the door"))

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["message"] == "Order created successfully"
    order = body["data"]
    assert response.headers["Location"].endswith(f"/orders/{order['id']}")
    assert re.match(r"^ORD-\d{8}-[0-9A-F]{10}$", order["orderNumber"])
    assert order["user"] is None
    assert order["status"] == "pending"
    assert order["paymentStatus"] == "pending"
    assert order["paymentMethod"] == "cash-on-delivery"
    assert order["pricing"] == {"subtotal": 40.0, "shipping": 10.0, "tax": 6.4, "discount": 0.0, "total": 56.4}
    assert order["customerInfo"]["email"] == "ada@example.com"
    assert order["customerName"] == "Ada Lovelace"
    assert order["billingAddress"]["sameAsShipping"] is True
    assert order["notes"]["customer"] == "Leave at the door"
    snapshot = order["items"][0]["productSnapshot"]
    assert (snapshot["name"], snapshot["price"], snapshot["image"]) == ("Test Shirt", 40.0, "https://images.example.com/test.jpg")
    assert snapshot["sku"].startswith("T-")
    assert [entry["status"] for entry in order["statusHistory"]] == ["pending"]


def test_order_decrements_stock_and_counts_sales(client: TestClient, place_order, shirt) -> None:
    place_order(quantity=2)

    product = client.get(f"/products/{shirt}").json()["data"]

    assert product["variants"][0]["stock"] == 3
    assert product["totalStock"] == 3
    assert product["salesCount"] == 2


def test_free_shipping_above_one_hundred(client: TestClient, place_order) -> None:
    order = place_order(quantity=3)

    assert order["pricing"] == {"subtotal": 120.0, "shipping": 0.0, "tax": 19.2, "discount": 0.0, "total": 139.2}


def test_authenticated_order_is_attached_to_the_user(client: TestClient, place_order, customer) -> None:
    order = place_order(headers=customer["headers"])

    me = client.get("/auth/me", headers=customer["headers"]).json()["data"]

    assert order["user"] == str(customer["id"])
    assert me["stats"] == {"totalOrders": 1, "totalSpent": 56.4}


def test_unusable_token_still_places_a_guest_order(place_order) -> None:
    order = place_order(headers={"Authorization": "Bearer expired.or.bogus"})

    assert order["user"] is None


@pytest.mark.parametrize(
    "mutate",
    [
        lambda body: body.update(items=[]),
        lambda body: body["items"][0].update(quantity=0),
        lambda body: body["items"][0].update(quantity=101),
        lambda body: body["customerInfo"].update(email="not-an-email"),
        lambda body: body["customerInfo"].update(phone="call me"),
        lambda body: body["shippingAddress"].pop("city"),
        lambda body: body.update(paymentMethod="barter"),
    ],
    ids=["no-items", "zero-quantity", "too-many", "bad-email", "bad-phone", "no-city", "bad-payment"],
)
def test_malformed_orders_are_rejected(client: TestClient, order_payload, shirt, mutate) -> None:
    body = order_payload([{"product": str(shirt), "quantity": 1}])
    mutate(body)

    response = client.post("/orders", json=body)

    assert response.status_code == 400
    problem = response.json()
    assert problem["error"] == "Validation failed"
    assert problem["details"]


def test_unknown_product_is_a_bad_request(client: TestClient, order_payload) -> None:
    product_id = uuid4()

    response = client.post("/orders", json=order_payload([{"product": str(product_id), "quantity": 1}]))

    assert response.status_code == 400
    assert response.json()["error"] == f"Product not found: {product_id}"


def test_insufficient_stock_rejects_the_whole_order(client: TestClient, app_engine, order_payload, make_product) -> None:
    plenty = make_product(app_engine, name="Plenty", variants=(("M", "White", 50),))
    scarce = make_product(app_engine, name="Scarce", variants=(("S", "Black", 1),))
    items = [
        {"product": str(plenty), "variant": {"size": "M", "color": "White"}, "quantity": 2},
        {"product": str(scarce), "variant": {"size": "S", "color": "Black"}, "quantity": 2},
    ]

    response = client.post("/orders", json=order_payload(items))

    assert response.status_code == 400
    assert response.json()["error"] == "Insufficient stock for Scarce (S Black)"
    assert _variant_stock(client, plenty) == 50
    assert _variant_stock(client, scarce) == 1


def test_unknown_variant_is_rejected(client: TestClient, order_payload, shirt) -> None:
    items = [{"product": str(shirt), "variant": {"size": "XL", "color": "White"}, "quantity": 1}]

    response = client.post("/orders", json=order_payload(items))

    assert response.status_code == 400
    assert response.json()["error"] == "Variant not found for product: Test Shirt"


# -- reading ---------------------------------------------------------------


def test_orders_are_visible_to_owner_and_admin_only(
    client: TestClient, place_order, customer, other_customer, admin
) -> None:
    order = place_order(headers=customer["headers"])
    url = f"/orders/{order['id']}"

    assert client.get(url, headers=customer["headers"]).status_code == 200
    assert client.get(url, headers=admin["headers"]).status_code == 200
    assert client.get(url, headers=other_customer["headers"]).status_code == 403
    assert client.get(url).status_code == 401
    assert client.get(f"/orders/{uuid4()}", headers=admin["headers"]).status_code == 404


def test_guest_orders_are_not_visible_to_customers(client: TestClient, place_order, customer) -> None:
    order = place_order()

    response = client.get(f"/orders/{order['id']}", headers=customer["headers"])

    assert response.status_code == 403


def test_order_list_is_scoped_to_the_caller(client: TestClient, place_order, customer, other_customer, admin) -> None:
    place_order(headers=customer["headers"])
    place_order(headers=customer["headers"])
    place_order(headers=other_customer["headers"])
    place_order()

    mine = client.get("/orders", headers=customer["headers"])
    everything = client.get("/orders", headers=admin["headers"])

    assert mine.headers["X-Total-Count"] == "2"
    assert {order["user"] for order in mine.json()["data"]["orders"]} == {str(customer["id"])}
    assert everything.headers["X-Total-Count"] == "4"
    assert client.get("/orders").status_code == 401


def test_order_list_filters_by_status(client: TestClient, place_order, admin) -> None:
    first = place_order()
    place_order()
    _set_status(client, first["id"], "confirmed", admin["headers"])

    response = client.get("/orders", params={"status": "confirmed"}, headers=admin["headers"])

    assert [order["id"] for order in response.json()["data"]["orders"]] == [first["id"]]


def test_tracking_is_public_and_hides_internal_ids(client: TestClient, place_order, customer) -> None:
    order = place_order(headers=customer["headers"])

    response = client.get(f"/orders/track/{order['orderNumber'].lower()}")

    assert response.status_code == 200
    tracked = response.json()["data"]
    assert tracked["orderNumber"] == order["orderNumber"]
    assert tracked["customerName"] == "Ada Lovelace"
    assert tracked["pricing"]["total"] == 56.4
    assert "id" not in tracked and "user" not in tracked and "customerInfo" not in tracked
    assert all(set(entry) == {"status", "timestamp", "note"} for entry in tracked["statusHistory"])


def test_tracking_unknown_number(client: TestClient) -> None:
    response = client.get("/orders/track/ORD-20240101-0000000000")

    assert response.status_code == 404
    assert response.json()["error"] == "Order not found"


# -- lifecycle -------------------------------------------------------------


def test_admin_advances_order_and_delivery_settles_cash(client: TestClient, place_order, admin) -> None:
    order = place_order()

    for status in ("confirmed", "processing", "shipped"):
        updated = _set_status(client, order["id"], status, admin["headers"])
        assert updated["paymentStatus"] == "pending"
    delivered = _set_status(client, order["id"], "delivered", admin["headers"])

    assert delivered["paymentStatus"] == "paid"
    assert delivered["paymentDetails"]["paymentGateway"] == "cash-on-delivery"
    assert delivered["shipping"]["actualDelivery"] is not None
    assert [entry["status"] for entry in delivered["statusHistory"]] == [
        "pending",
        "confirmed",
        "processing",
        "shipped",
        "delivered",
    ]
    assert delivered["statusHistory"][-1]["updatedBy"] == str(admin["id"])


def test_backward_transition_is_rejected(client: TestClient, place_order, admin) -> None:
    order = place_order()
    _set_status(client, order["id"], "shipped", admin["headers"])

    response = client.patch(f"/orders/{order['id']}/status", json={"status": "confirmed"}, headers=admin["headers"])

    assert response.status_code == 400
    assert response.json()["error"] == "Cannot change order status from shipped to confirmed"


def test_customers_cannot_change_status(client: TestClient, place_order, customer) -> None:
    order = place_order(headers=customer["headers"])

    response = client.patch(
        f"/orders/{order['id']}/status", json={"status": "confirmed"}, headers=customer["headers"]
    )

    assert response.status_code == 403


def test_unknown_status_value_is_rejected(client: TestClient, place_order, admin) -> None:
    order = place_order()

    response = client.patch(f"/orders/{order['id']}/status", json={"status": "lost"}, headers=admin["headers"])

    assert response.status_code == 400


def test_owner_cancels_and_stock_returns(client: TestClient, place_order, customer, shirt) -> None:
    order = place_order(headers=customer["headers"], quantity=2)
    assert _variant_stock(client, shirt) == 3

    response = client.post(
        f"/orders/{order['id']}/cancel", json={"reason": "Changed my mind"}, headers=customer["headers"]
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Order cancelled successfully"
    cancelled = response.json()["data"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["statusHistory"][-1]["note"] == "Changed my mind"
    assert _variant_stock(client, shirt) == 5


def test_cancel_without_a_body_uses_default_note(client: TestClient, place_order, customer) -> None:
    order = place_order(headers=customer["headers"])

    response = client.post(f"/orders/{order['id']}/cancel", headers=customer["headers"])

    assert response.status_code == 200
    assert response.json()["data"]["statusHistory"][-1]["note"] == "Order cancelled by user"


def test_cancel_twice_is_rejected_and_restocks_once(client: TestClient, place_order, customer, shirt) -> None:
    order = place_order(headers=customer["headers"])
    url = f"/orders/{order['id']}/cancel"
    client.post(url, headers=customer["headers"])

    response = client.post(url, headers=customer["headers"])

    assert response.status_code == 400
    assert response.json()["error"] == "Order cannot be cancelled at this stage"
    assert _variant_stock(client, shirt) == 5


def test_shipped_orders_cannot_be_cancelled(client: TestClient, place_order, customer, admin, shirt) -> None:
    order = place_order(headers=customer["headers"])
    _set_status(client, order["id"], "shipped", admin["headers"])

    response = client.post(f"/orders/{order['id']}/cancel", headers=customer["headers"])

    assert response.status_code == 400
    assert _variant_stock(client, shirt) == 4


def test_strangers_cannot_cancel(client: TestClient, place_order, customer, other_customer) -> None:
    order = place_order(headers=customer["headers"])

    response = client.post(f"/orders/{order['id']}/cancel", headers=other_customer["headers"])

    assert response.status_code == 403


def test_admin_updates_shipping(client: TestClient, place_order, admin, customer) -> None:
    order = place_order()
    url = f"/orders/{order['id']}/shipping"
    body = {"trackingNumber": "1Z999", "carrier": "UPS", "method": "express"}

    forbidden = client.patch(url, json=body, headers=customer["headers"])
    response = client.patch(url, json=body, headers=admin["headers"])

    assert forbidden.status_code == 403
    assert response.status_code == 200
    shipping = response.json()["data"]["shipping"]
    assert (shipping["trackingNumber"], shipping["carrier"], shipping["method"]) == ("1Z999", "UPS", "express")


def test_stats_are_admin_only(client: TestClient, place_order, admin, customer) -> None:
    first = place_order()
    place_order()
    _set_status(client, first["id"], "delivered", admin["headers"])

    forbidden = client.get("/orders/stats", headers=customer["headers"])
    response = client.get("/orders/stats", headers=admin["headers"])

    assert forbidden.status_code == 403
    stats = response.json()["data"]
    assert stats["totalOrders"] == 2
    assert stats["totalRevenue"] == 56.4
    assert {entry["status"]: entry["count"] for entry in stats["statusBreakdown"]} == {"delivered": 1, "pending": 1}
    assert len(stats["recentOrders"]) == 2
    today = datetime.now(timezone.utc)
    assert stats["monthlyRevenue"] == [{"year": today.year, "month": today.month, "revenue": 56.4, "orderCount": 1}]
