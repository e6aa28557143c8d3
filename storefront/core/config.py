# storefront/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized storefront settings loaded from environment.

    Required env vars (.env):
      - SUPABASE_URL
      - SUPABASE_KEY (anon key; row-level security applies per shopper token)
      - SUPABASE_JWT_SECRET (JWT signing secret from Supabase project settings)

    Everything else has a default matching the live storefront.
    """

    PROJECT_NAME: str = "Matica Storefront"
    STORE_NAME: str = "Matica.life"
    API_V1_STR: str = "/api/v1"

    # Browser origins allowed to call the API
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
    ]

    # Supabase
    SUPABASE_URL: str
    SUPABASE_KEY: str

    # JWT verification (shopper session tokens)
    SUPABASE_JWT_SECRET: str
    SUPABASE_JWT_ALG: str = "HS256"

    # Payment gateway (public key only; secret lives in the edge functions)
    RAZORPAY_KEY_ID: str = ""
    CURRENCY: str = "INR"

    # Local cart snapshot (one directory per browser session)
    CART_STORAGE_DIR: str = ".storefront/carts"
    CART_STORAGE_KEY: str = "matica:cart:v1"

    # Browser sessions kept in memory
    SESSION_IDLE_TTL_SECONDS: int = 1800
    SESSION_MAX_COUNT: int = 10000

    # Cart write-back
    CART_SAVE_DEBOUNCE_MS: int = 700
    CART_MAX_QUANTITY: int = 999
    CART_SAVE_ATTEMPTS: int = 3
    CART_SAVE_BACKOFF_SECONDS: float = 0.3

    # Checkout pricing (whole rupees)
    FREE_SHIPPING_THRESHOLD: int = 999
    SHIPPING_FEE: int = 99
    TAX_RATE: float = 0.05

    # Object storage
    AVATAR_BUCKET: str = "avatars"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
