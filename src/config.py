"""Configuration settings for the Scrape Worker."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    port: int = 5000
    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "text"

    # CORS (comma-separated list of allowed origins)
    cors_origins: str = "http://localhost:3000"

    # Auth (Supabase). Empty URL means every caller is unauthenticated.
    supabase_url: str = ""
    supabase_anon_key: str = ""
    auth_timeout_seconds: float = 10.0

    # Render fallback (Cloudflare Browser Rendering)
    cloudflare_account_id: str = ""
    cloudflare_br_api_token: str = ""
    render_timeout_seconds: float = 45.0

    # Outbound fetch limits
    max_response_bytes: int = 5 * 1024 * 1024
    max_redirects: int = 5
    fetch_timeout_seconds: float = 15.0
    user_agent: str = "Mozilla/5.0 (compatible; CookSnap/1.0; +https://cooksnap.app)"

    # Rate limiting (per caller, in-memory, single process)
    rate_limit_window_seconds: float = 60.0
    rate_limit_max: int = 10
    rate_limit_sweep_seconds: float = 60.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def clear_settings_cache():
    """Clear settings cache (useful for testing)."""
    get_settings.cache_clear()
