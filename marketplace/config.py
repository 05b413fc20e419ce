from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import List


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # App
    APP_NAME: str = "Marketplace Cart & Ratings"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"

    # Database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./marketplace.db",
        description="Database connection URL"
    )

    # Security - tokens are issued by the auth service, we only verify them
    SECRET_KEY: str = Field(
        default="change-me-in-production-this-key-is-only-good-for-local-development-0000",
        min_length=32,
        description="Shared secret used to verify bearer tokens"
    )
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Cart service
    TAX_RATE: float = 0.15
    CURRENCY: str = "CAD"
    CART_PAGE_LIMIT: int = 50
    CART_EXPIRY_DAYS: int = 7
    CART_CLEANUP_HOUR: int = 3  # Daily expired cart purge, server local time

    # Cart client (storefront side)
    CART_API_URL: str = "http://gateway:8080/api/v1/cart"
    CART_REFRESH_DEBOUNCE_SECONDS: float = 0.3
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # CORS
    CORS_ORIGINS: List[str] = Field(default_factory=lambda: [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ])

    # Rate limiting
    RATE_LIMIT_PER_MINUTE: str = "120/minute"
    RATE_LIMIT_ENABLED: bool = True

    @field_validator("TAX_RATE")
    @classmethod
    def _check_tax_rate(cls, value: float) -> float:
        if not 0 <= value <= 1:
            raise ValueError("TAX_RATE must be between 0 and 1")
        return value

    @field_validator("CART_REFRESH_DEBOUNCE_SECONDS")
    @classmethod
    def _check_debounce(cls, value: float) -> float:
        if value < 0:
            raise ValueError("CART_REFRESH_DEBOUNCE_SECONDS cannot be negative")
        return value

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _assemble_cors_origins(cls, value):
        """Ensure CORS origins env value always becomes a list of strings."""
        if isinstance(value, str):
            # Support JSON-style lists or simple comma-separated strings
            value = value.strip()
            if value.startswith("[") and value.endswith("]"):
                import json
                return json.loads(value)
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        if isinstance(value, (list, tuple)):
            return list(value)
        return value


settings = Settings()
