from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Any, ClassVar
from pathlib import Path
import os


# Environment markers set by serverless hosts with a bounded wall-clock budget.
_CONSTRAINED_RUNTIME_MARKERS = ("VERCEL", "AWS_LAMBDA_FUNCTION_NAME", "K_SERVICE_TIMEOUT")


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"

    # Bearer token decoding. Tokens are issued by the auth layer; this service
    # only reads the clientId/userId claims.
    SECRET_KEY: str = "fallback_secret_for_dev_only"
    ALGORITHM: str = "HS256"

    # Database URL
    # Use an absolute path so running the app from different directories
    # (e.g., repo root or backend/) always resolves the same DB file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'freight_quote.db'}"

    # Redis holds the provider auth token between requests and instances
    REDIS_URL: str = "redis://localhost:6379/0"

    # Rate provider
    RATE_PROVIDER_RATES_URL: str = ""
    RATE_PROVIDER_LOGIN_URL: str = ""
    RATE_PROVIDER_USERNAME: str = ""
    RATE_PROVIDER_PASSWORD: str = ""
    RATE_PROVIDER_TOKEN_TTL: int = 3000  # seconds; provider tokens live 1h

    # Provider booking gateway (optional)
    BOOKING_GATEWAY_URL: str = ""
    BOOKING_GATEWAY_API_KEY: str = ""

    # Dispatch
    UPSTREAM_BATCH_SIZE: int = 3
    UPSTREAM_CALL_TIMEOUT: float = 28.0
    CONSTRAINED_RUNTIME: bool = False

    # Quota
    DEFAULT_RATE_TOKENS: int = 3

    # Persistence
    PERSIST_CHUNK_SIZE: int = 50

    # Empty city/state substitution. "placeholder" is the only built-in
    # resolver; see services.request_normalizer.register_location_resolver.
    LOCATION_RESOLVER: str = "placeholder"
    LOCATION_PLACEHOLDER_CITY: str = "UNKNOWN"
    LOCATION_PLACEHOLDER_STATE: str = "NA"

    # CRM hand-off
    HUBSPOT_ACCESS_TOKEN: str = ""
    CRM_TOP_RATES: int = 3

    LOG_LEVEL: str = "INFO"
    ENABLE_TRACING: bool = False

    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=True,
    )

    @field_validator(
        "RATE_PROVIDER_RATES_URL",
        "RATE_PROVIDER_LOGIN_URL",
        "BOOKING_GATEWAY_URL",
        "HUBSPOT_ACCESS_TOKEN",
        mode="before",
    )
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("UPSTREAM_BATCH_SIZE", "PERSIST_CHUNK_SIZE")
    def at_least_one(cls, v: int) -> int:
        return max(1, v)

    @model_validator(mode="after")
    def detect_constrained_runtime(cls, values: "Settings") -> "Settings":
        """Apply per-call upstream deadlines automatically on serverless hosts."""
        if not values.CONSTRAINED_RUNTIME:
            if any(os.getenv(marker) for marker in _CONSTRAINED_RUNTIME_MARKERS):
                values.CONSTRAINED_RUNTIME = True
        return values


def load_settings() -> "Settings":
    return Settings(_env_file=os.getenv("ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env")))


settings = load_settings()
