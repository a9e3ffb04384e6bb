"""Configuration settings for the Homico backend."""

from functools import lru_cache

from pydantic_settings import BaseSettings

from homico.marketplace import MarketplaceConfig


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Supabase
    supabase_url: str
    supabase_secret_key: str | None = None  # Backend/admin access
    # Legacy key (deprecated)
    supabase_service_role_key: str | None = None

    # JWT
    jwt_secret_key: str  # Required - no default for security
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 7  # 1 week

    # Marketplace
    job_lifetime_days: int = 30
    proposal_categories: list[str] = ["design", "architecture"]
    site_url: str = "https://www.homico.ge"

    # Rate limiting: comma-separated proxy CIDRs allowed to set X-Forwarded-For
    trusted_proxy_cidrs: str = ""

    # App
    debug: bool = False
    # CORS: Allowed origins for cross-origin requests
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "https://homico.ge",
        "https://www.homico.ge",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    def marketplace_config(self) -> MarketplaceConfig:
        return MarketplaceConfig(
            job_lifetime_days=self.job_lifetime_days,
            proposal_categories=tuple(self.proposal_categories),
            site_url=self.site_url,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
