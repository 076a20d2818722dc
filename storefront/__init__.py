"""Storefront order service."""
from .version import APP_VERSION

__all__ = ["APP_VERSION"]
