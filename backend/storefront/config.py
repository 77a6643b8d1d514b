import os
import tempfile
from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    # cart limits
    MAX_ITEM_QUANTITY: int = 10
    MAX_CART_ITEMS: int = 50
    USER_CART_TTL_DAYS: int = 30
    GUEST_CART_TTL_DAYS: int = 7

    # order pricing, all amounts in cents
    TAX_RATE: Decimal = Decimal("0.08")
    SHIPPING_RATE_CENTS: int = 999
    FREE_SHIPPING_THRESHOLD_CENTS: int = 5000
    CURRENCY: str = "USD"
    CURRENCY_SYMBOL: str = "$"

    # entity locks (see utils/locking.py)
    LOCK_DIR: str = os.path.join(tempfile.gettempdir(), "storefront_locks")
    LOCK_TIMEOUT_SECONDS: float = 10

    # identity transport at the HTTP boundary
    CART_SESSION_COOKIE: str = "cart_session"
    USER_ID_HEADER: str = "X-User-Id"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
