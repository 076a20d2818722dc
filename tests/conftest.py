"""Shared fixtures for the storefront test suite."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Iterator, Optional, Sequence, Tuple
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlmodel import Session

from storefront.config import Settings
from storefront.db import create_db_and_tables, create_db_engine, session_scope
from storefront.main import create_app
from storefront.models import Product, ProductCategory, ProductImage, ProductStatus, Role, User, Variant
from storefront.passwords import hash_password

TEST_PASSWORD = "Secret123"

VariantSpec = Tuple[Optional[str], Optional[str], int]


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        environment="test",
        database_url="sqlite://",
        secret_key="test-secret",
        bcrypt_rounds=4,
        seed_demo_data=False,
        log_level="DEBUG",
    )


@pytest.fixture()
def client(settings: Settings) -> Iterator[TestClient]:
    """Provide a TestClient bound to a fresh application over an in-memory database."""

    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def app_engine(client: TestClient) -> Engine:
    return client.app.state.engine


@pytest.fixture()
def engine(tmp_path) -> Iterator[Engine]:
    """A file-backed database so independent sessions see each other's commits."""

    db_engine = create_db_engine(f"sqlite:///{tmp_path / 'storefront-test.db'}")
    create_db_and_tables(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture()
def session(engine: Engine) -> Iterator[Session]:
    with Session(engine) as db_session:
        yield db_session


@pytest.fixture()
def make_product() -> Callable[..., UUID]:
    """Insert a product and return its id."""

    def factory(
        engine: Engine,
        *,
        name: str = "Test Shirt",
        price: str = "50.00",
        variants: Sequence[Any] = (("M", "White", 5),),
        status: ProductStatus = ProductStatus.ACTIVE,
        total_stock: Optional[int] = None,
        category: ProductCategory = ProductCategory.MEN_SHIRTS,
        featured: bool = False,
        original_price: Optional[str] = None,
        sku: Optional[str] = None,
    ) -> UUID:
        product = Product(
            name=name,
            description="A product created for tests.",
            price=Decimal(price),
            original_price=Decimal(original_price) if original_price else None,
            category=category,
            sku=sku or f"T-{uuid4().hex[:8].upper()}",
            status=status,
            featured=featured,
            images=[ProductImage(url="https://images.example.com/test.jpg", alt=name, is_primary=True)],
            variants=[
                Variant(size=size, color=color, stock=stock, price=Decimal(extra[0]) if extra else None)
                for size, color, stock, *extra in variants
            ],
        )
        if total_stock is not None:
            product.total_stock = total_stock
        product.refresh_stock()
        with session_scope(engine) as db_session:
            db_session.add(product)
            return product.id

    return factory


@pytest.fixture()
def make_user() -> Callable[..., UUID]:
    """Insert a user and return its id."""

    def factory(
        engine: Engine,
        *,
        email: Optional[str] = None,
        role: Role = Role.CUSTOMER,
        password: str = TEST_PASSWORD,
        first_name: str = "Ada",
        last_name: str = "Lovelace",
    ) -> UUID:
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            password_hash=hash_password(password, rounds=4),
            role=role,
        )
        with session_scope(engine) as db_session:
            db_session.add(user)
            return user.id

    return factory


@pytest.fixture()
def order_payload() -> Callable[..., dict]:
    """Build a camelCase order request body."""

    def factory(items: Sequence[dict], **overrides: Any) -> dict:
        payload = {
            "customerInfo": {
                "firstName": "Ada",
                "lastName": "Lovelace",
                "email": "Ada@Example.com",
                "phone": "+1 555 0100",
            },
            "shippingAddress": {
                "street": "1 Main St",
                "city": "Springfield",
                "state": "IL",
                "zipCode": "62701",
                "country": "US",
            },
            "items": list(items),
        }
        payload.update(overrides)
        return payload

    return factory


def login(client: TestClient, email: str, password: str = TEST_PASSWORD) -> dict[str, str]:
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


@pytest.fixture()
def customer(client: TestClient, app_engine: Engine, make_user) -> dict[str, Any]:
    email = "customer@example.com"
    user_id = make_user(app_engine, email=email)
    return {"id": user_id, "email": email, "headers": login(client, email)}


@pytest.fixture()
def other_customer(client: TestClient, app_engine: Engine, make_user) -> dict[str, Any]:
    email = "someone-else@example.com"
    user_id = make_user(app_engine, email=email, first_name="Grace", last_name="Hopper")
    return {"id": user_id, "email": email, "headers": login(client, email)}


@pytest.fixture()
def admin(client: TestClient, app_engine: Engine, make_user) -> dict[str, Any]:
    email = "admin@example.com"
    user_id = make_user(app_engine, email=email, role=Role.ADMIN)
    return {"id": user_id, "email": email, "headers": login(client, email)}
