"""Client configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from influx_write.models import WritePrecision


class Settings(BaseSettings):
    """All settings are read from environment variables (case-insensitive)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Server ────────────────────────────────────────────────────────────────
    influx_url: str = "http://localhost:8086"
    influx_timeout: float = 10.0
    # Set to False only against a server with a self-signed certificate that is
    # not in the local trust store.
    influx_verify_ssl: bool = True

    # ── Authentication ────────────────────────────────────────────────────────
    influx_token: str = ""
    # "Token" for InfluxDB API tokens, "Bearer" for JWT-based deployments
    influx_token_type: str = "Token"

    # ── Write defaults (overridable per write call) ───────────────────────────
    influx_org: str = ""
    influx_bucket: str = ""
    influx_precision: WritePrecision = WritePrecision.NS

    # Log every request body at DEBUG level
    influx_debug: bool = False


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
