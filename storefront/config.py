"""Application settings."""

from __future__ import annotations

import logging
import os
from enum import Enum
from functools import lru_cache
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class StockPolicy(str, Enum):
    """How the order workflow applies inventory decrements."""

    LEGACY = "legacy"
    ATOMIC = "atomic"


class Settings(BaseModel):
    """Application settings."""

    model_config = ConfigDict(frozen=True)

    environment: str = "development"
    database_url: str = "sqlite:///./storefront.db"
    secret_key: str = "storefront-development-secret"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=7 * 24 * 60, gt=0)
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)
    log_level: str = "INFO"
    stock_policy: StockPolicy = StockPolicy.ATOMIC
    seed_demo_data: bool = True
    cors_origins: Tuple[str, ...] = ("*",)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``STOREFRONT_*`` environment variables."""

        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        mapping = {
            "STOREFRONT_ENV": "environment",
            "STOREFRONT_DATABASE_URL": "database_url",
            "STOREFRONT_SECRET_KEY": "secret_key",
            "STOREFRONT_TOKEN_EXPIRE_MINUTES": "access_token_expire_minutes",
            "STOREFRONT_LOG_LEVEL": "log_level",
            "STOREFRONT_STOCK_POLICY": "stock_policy",
        }
        for variable, field in mapping.items():
            if env.get(variable):
                values[field] = env[variable]

        seed = env.get("STOREFRONT_SEED")
        if seed:
            values["seed_demo_data"] = seed.strip().lower() in {"1", "true", "yes", "on"}

        origins = env.get("STOREFRONT_CORS_ORIGINS")
        if origins:
            values["cors_origins"] = tuple(origin.strip() for origin in origins.split(",") if origin.strip())

        return cls.model_validate(values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Provide application settings."""

    return Settings.from_env()


def configure_logging(settings: Settings) -> None:
    """Install the process-wide log handler."""

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("storefront").setLevel(level)
