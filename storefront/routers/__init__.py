"""HTTP routers."""

from . import auth, health, orders, products, users

__all__ = ["auth", "health", "orders", "products", "users"]
