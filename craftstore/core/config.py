from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    project_name: str = Field(default="Craftstore")
    environment: Literal["development", "production", "test"] = Field(default="production")
    database_url: str = Field(...)
    secret_key: str = Field(...)
    log_level: str = Field(default="INFO")

    admin_token_max_age: int = Field(default=60 * 60 * 24)
    customer_token_max_age: int = Field(default=60 * 60 * 24 * 7)
    login_rate_limit_window_seconds: int = Field(default=900)
    login_rate_limit_max_attempts: int = Field(default=5)

    cache_enabled: bool = Field(default=True)
    cache_default_ttl: int = Field(default=300, ge=1)
    cache_categories_ttl: int = Field(default=3600, ge=1)
    cache_products_ttl: int = Field(default=300, ge=1)
    cache_orders_ttl: int = Field(default=300, ge=1)
    cache_stats_ttl: int = Field(default=300, ge=1)
    cache_analytics_ttl: int = Field(default=300, ge=1)
    cache_max_keys: int = Field(default=1000, ge=10)

    upload_dir: str = Field(default="uploads/images")
    upload_max_bytes: int = Field(default=10 * 1024 * 1024)
    import_max_bytes: int = Field(default=10 * 1024 * 1024)

    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    smtp_host: str | None = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_username: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    smtp_sender: str | None = Field(default=None)
    smtp_use_tls: bool = Field(default=True)
    notification_email: str | None = Field(default=None)

    @model_validator(mode="after")
    def validate_security(self) -> "Settings":
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long.")
        if "://" not in self.database_url:
            raise ValueError("DATABASE_URL must be a valid connection string.")
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def cache_ttls(self) -> dict[str, int]:
        return {
            "categories": self.cache_categories_ttl,
            "products": self.cache_products_ttl,
            "orders": self.cache_orders_ttl,
            "stats": self.cache_stats_ttl,
            "analytics": self.cache_analytics_ttl,
        }

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
