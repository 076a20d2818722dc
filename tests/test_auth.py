"""Tests for registration, login and bearer-token authentication."""

from __future__ import annotations

from uuid import uuid4

from fastapi.testclient import TestClient
from sqlmodel import Session

from storefront.models import User, UserStatus
from storefront.security import create_access_token

REGISTRATION = {
    "firstName": "Grace",
    "lastName": "Hopper",
    "email": "Grace.Hopper@Example.com",
    "password": "Cobol1959",
    "phone": "+1 555 0199",
}


def test_register_creates_customer_and_returns_token(client: TestClient) -> None:
    response = client.post("/auth/register", json=REGISTRATION)

    assert response.status_code == 201
    assert response.headers["Location"].endswith("/auth/me")
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "User registered successfully"
    user = body["data"]["user"]
    assert user["email"] == "grace.hopper@example.com"
    assert user["fullName"] == "Grace Hopper"
    assert user["role"] == "customer"
    assert user["stats"] == {"totalOrders": 0, "totalSpent": 0.0}
    assert "password" not in user and "passwordHash" not in user

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['data']['token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["id"] == user["id"]


def test_register_rejects_duplicate_email_in_any_case(client: TestClient) -> None:
    assert client.post("/auth/register", json=REGISTRATION).status_code == 201

    response = client.post("/auth/register", json={**REGISTRATION, "email": "GRACE.HOPPER@example.com"})

    assert response.status_code == 400
    assert response.json()["error"] == "User with this email already exists"


def test_register_rejects_weak_password(client: TestClient) -> None:
    response = client.post("/auth/register", json={**REGISTRATION, "password": "alllowercase"})

    assert response.status_code == 400
    details = response.json()["details"]
    assert any(detail.startswith("password") and "uppercase" in detail for detail in details)


def test_login_returns_token_and_records_last_login(client: TestClient, customer) -> None:
    response = client.post("/auth/login", json={"email": "CUSTOMER@example.com", "password": "Secret123"})

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Login successful"
    assert body["data"]["user"]["lastLogin"] is not None
    assert body["data"]["token"]


def test_login_with_wrong_password_is_unauthorized(client: TestClient, customer) -> None:
    response = client.post("/auth/login", json={"email": customer["email"], "password": "Wrong123"})

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid email or password"
    assert response.headers["WWW-Authenticate"].startswith("Bearer")


def test_login_with_unknown_email_gives_the_same_answer(client: TestClient) -> None:
    response = client.post("/auth/login", json={"email": "nobody@example.com", "password": "Secret123"})

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid email or password"


def test_inactive_accounts_cannot_log_in_or_use_tokens(client: TestClient, app_engine, customer) -> None:
    with Session(app_engine) as session:
        user = session.get(User, customer["id"])
        user.status = UserStatus.SUSPENDED
        session.add(user)
        session.commit()

    login = client.post("/auth/login", json={"email": customer["email"], "password": "Secret123"})
    me = client.get("/auth/me", headers=customer["headers"])

    assert login.status_code == 401
    assert login.json()["error"] == "Account is not active"
    assert me.status_code == 401


def test_me_requires_a_token(client: TestClient) -> None:
    response = client.get("/auth/me")

    assert response.status_code == 401
    assert response.json()["error"] == "Access denied. No token provided."
    assert response.headers["WWW-Authenticate"] == 'Bearer realm="api"'


def test_me_rejects_tampered_and_foreign_tokens(client: TestClient, settings) -> None:
    tampered = client.get("/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
    foreign = create_access_token(uuid4(), settings.model_copy(update={"secret_key": "someone-else"}))
    wrong_key = client.get("/auth/me", headers={"Authorization": f"Bearer {foreign}"})
    orphan = client.get("/auth/me", headers={"Authorization": f"Bearer {create_access_token(uuid4(), settings)}"})

    assert tampered.status_code == 401
    assert wrong_key.status_code == 401
    assert orphan.status_code == 401
    assert orphan.json()["error"] == "Token is valid but user not found."


def test_me_carries_an_etag(client: TestClient, customer) -> None:
    response = client.get("/auth/me", headers=customer["headers"])

    assert response.status_code == 200
    assert response.headers["ETag"].startswith('W/"')
    assert response.headers["Cache-Control"] == "no-cache"
    assert response.json()["data"]["email"] == customer["email"]


def test_logout(client: TestClient, customer) -> None:
    response = client.post("/auth/logout", headers=customer["headers"])

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Logged out successfully", "data": None}


def test_change_password_replaces_the_credential(client: TestClient, customer) -> None:
    response = client.post(
        "/auth/change-password",
        json={"currentPassword": "Secret123", "newPassword": "Fresh4567"},
        headers=customer["headers"],
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Password changed successfully"
    old = client.post("/auth/login", json={"email": customer["email"], "password": "Secret123"})
    new = client.post("/auth/login", json={"email": customer["email"], "password": "Fresh4567"})
    assert old.status_code == 401
    assert new.status_code == 200


def test_change_password_checks_the_current_one(client: TestClient, customer) -> None:
    response = client.post(
        "/auth/change-password",
        json={"currentPassword": "Wrong123", "newPassword": "Fresh4567"},
        headers=customer["headers"],
    )

    assert response.status_code == 401
    assert response.json()["error"] == "Current password is incorrect"


def test_change_password_validates_the_new_one(client: TestClient, customer) -> None:
    weak = client.post(
        "/auth/change-password",
        json={"currentPassword": "Secret123", "newPassword": "short"},
        headers=customer["headers"],
    )
    anonymous = client.post("/auth/change-password", json={"currentPassword": "Secret123", "newPassword": "Fresh4567"})

    assert weak.status_code == 400
    assert any(detail.startswith("newPassword") for detail in weak.json()["details"])
    assert anonymous.status_code == 401


def test_verify_token_returns_the_profile(client: TestClient, customer) -> None:
    response = client.post("/auth/verify-token", headers=customer["headers"])

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "Token is valid"
    assert body["data"]["user"]["email"] == customer["email"]
    assert client.post("/auth/verify-token").status_code == 401
