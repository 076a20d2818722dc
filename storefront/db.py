"""Database utilities and seed data."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from .models import Product, ProductCategory, ProductImage, Role, User, Variant
from .passwords import DEFAULT_ROUNDS, hash_password

logger = logging.getLogger(__name__)

IN_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def create_db_engine(database_url: str) -> Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""

    connect_args: dict[str, object] = {}
    options: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if database_url in IN_MEMORY_URLS:
            options["poolclass"] = StaticPool
    return create_engine(database_url, echo=False, connect_args=connect_args, **options)


def create_db_and_tables(engine: Engine) -> None:
    """Create all database tables."""

    SQLModel.metadata.create_all(engine)


def get_session(request: Request) -> Iterator[Session]:
    """Yield a database session for request handling."""

    with Session(request.app.state.engine) as session:
        yield session


@contextmanager
def session_scope(engine: Engine) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""

    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


DEMO_ADMIN_EMAIL = "admin@storefront.example"
DEMO_ADMIN_PASSWORD = "Admin12345"


def _demo_products() -> list[Product]:
    shirt = Product(
        name="Classic White Cotton Shirt",
        description="Premium white cotton shirt for formal and casual occasions.",
        price=Decimal("45.99"),
        original_price=Decimal("59.99"),
        category=ProductCategory.MEN_SHIRTS,
        brand="Storefront",
        sku="SF-MS-001",
        featured=True,
        tags=["cotton", "formal", "casual", "white", "shirt"],
        images=[
            ProductImage(url="https://images.example.com/shirt-front.jpg", alt="Front view", is_primary=True),
            ProductImage(url="https://images.example.com/shirt-side.jpg", alt="Side view"),
        ],
        variants=[
            Variant(size="S", color="White", stock=15),
            Variant(size="M", color="White", stock=20),
            Variant(size="L", color="White", stock=18),
            Variant(size="XL", color="White", stock=12),
        ],
    )
    dress = Product(
        name="Elegant Black Evening Dress",
        description="Black evening dress with a flattering silhouette and premium fabric.",
        price=Decimal("89.99"),
        original_price=Decimal("119.99"),
        category=ProductCategory.WOMEN_DRESSES,
        brand="Storefront",
        sku="SF-WD-001",
        featured=True,
        tags=["dress", "evening", "black"],
        images=[ProductImage(url="https://images.example.com/dress.jpg", alt="Evening dress", is_primary=True)],
        variants=[
            Variant(size="XS", color="Black", stock=8),
            Variant(size="S", color="Black", stock=12),
            Variant(size="M", color="Black", stock=15),
            Variant(size="L", color="Black", stock=10, price=Decimal("94.99")),
        ],
    )
    sneakers = Product(
        name="Kids Running Sneakers",
        description="Lightweight sneakers with a cushioned sole for everyday play.",
        price=Decimal("34.50"),
        category=ProductCategory.KIDS_SHOES,
        sku="SF-KS-001",
        tags=["kids", "shoes"],
        images=[ProductImage(url="https://images.example.com/sneakers.jpg", alt="Sneakers", is_primary=True)],
        variants=[
            Variant(size="30", color="Blue", stock=9),
            Variant(size="32", color="Blue", stock=7),
        ],
    )
    products = [shirt, dress, sneakers]
    for product in products:
        product.refresh_stock()
    return products


def seed_data(engine: Engine, *, bcrypt_rounds: int = DEFAULT_ROUNDS) -> bool:
    """Seed the database with demo data. Returns False when users already exist."""

    with session_scope(engine) as session:
        if session.exec(select(User)).first() is not None:
            return False

        session.add(
            User(
                first_name="Store",
                last_name="Admin",
                email=DEMO_ADMIN_EMAIL,
                password_hash=hash_password(DEMO_ADMIN_PASSWORD, rounds=bcrypt_rounds),
                role=Role.ADMIN,
            )
        )
        session.add_all(_demo_products())

    logger.info("Seeded demo catalog and admin account %s", DEMO_ADMIN_EMAIL)
    return True


def init_db(engine: Engine, *, seed: bool = True, bcrypt_rounds: int = DEFAULT_ROUNDS) -> None:
    """Initialize database tables and optionally seed data."""

    create_db_and_tables(engine)
    if seed:
        seed_data(engine, bcrypt_rounds=bcrypt_rounds)
