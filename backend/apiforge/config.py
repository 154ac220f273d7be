"""
apiforge — Application Configuration
=====================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by the container, the app factory and the CLI.
When:  Loaded once at module import time; a fresh `Settings(...)` can be
       passed to `create_app()` for tests.

Comma-separated values:
    List-like settings (API keys, versions, CORS origins) are stored as
    plain strings and exposed through `*_list` properties, the same way
    `cors_origins` is handled. Environment variables stay simple strings.
"""

from typing import Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Production deployments MUST override security-sensitive values
    (JWT_SECRET, API_KEYS, DATABASE_URL) and set ENVIRONMENT=production,
    which enables hardened token verification and hides stack traces.
    """

    # ── Service ───────────────────────────────────────────────────────────
    service_name: str = Field(default="apiforge")
    environment: str = Field(
        default="development",
        description="development | test | production",
    )
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    # ── Database ──────────────────────────────────────────────────────────
    # Format: sqlite+aiosqlite:///./file.db or postgresql+asyncpg://user:pw@host/db
    database_url: str = Field(
        default="sqlite+aiosqlite:///./apiforge.db",
        description="Async SQLAlchemy connection URL",
    )
    # "memory" serves every resource from the in-memory provider;
    # "sqlalchemy" uses the ORM models in apiforge.models.
    persistence_backend: str = Field(default="sqlalchemy")

    @field_validator("persistence_backend")
    @classmethod
    def validate_persistence_backend(cls, v: str) -> str:
        if v not in {"memory", "sqlalchemy"}:
            raise ValueError("persistence_backend must be 'memory' or 'sqlalchemy'")
        return v

    # ── Pagination ────────────────────────────────────────────────────────
    pagination_default_limit: int = Field(default=20, ge=1, le=1000)
    pagination_max_limit: int = Field(default=100, ge=1, le=1000)

    # ── Rate Limiting ─────────────────────────────────────────────────────
    # Fixed window: at most rate_limit_max requests per key per window.
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_max: int = Field(default=100, ge=1, le=100_000)
    rate_limit_window_ms: int = Field(default=15 * 60 * 1000, ge=1000)
    # Expired records are swept every N checks and by a background task.
    rate_limit_sweep_every: int = Field(default=1000, ge=1)
    rate_limit_sweep_interval_seconds: int = Field(default=60, ge=1)

    # ── Authentication ────────────────────────────────────────────────────
    auth_provider: str = Field(
        default="token",
        description="token | api_key | custom | none",
    )
    require_auth_by_default: bool = Field(default=True)
    jwt_secret: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    # Verify signature and expiry even outside production.
    auth_hardened: bool = Field(default=False)
    api_key_header: str = Field(default="X-API-Key")
    api_keys: str = Field(default="", description="Comma-separated accepted API keys")
    default_role: str = Field(default="PLAYER")

    @field_validator("auth_provider")
    @classmethod
    def validate_auth_provider(cls, v: str) -> str:
        valid = {"token", "api_key", "custom", "none"}
        if v not in valid:
            raise ValueError(f"Invalid auth_provider '{v}'. Must be one of: {valid}")
        return v

    @property
    def api_keys_list(self) -> List[str]:
        return _split_csv(self.api_keys)

    @property
    def verify_tokens(self) -> bool:
        """Tokens are cryptographically verified in hardened or production mode."""
        return self.auth_hardened or self.is_production

    # ── Versioning ────────────────────────────────────────────────────────
    supported_versions: str = Field(default="v1,v2")
    default_version: str = Field(default="v1")
    version_header: str = Field(default="API-Version")
    version_query_param: str = Field(default="version")
    deprecated_versions: str = Field(default="")
    # Format: "v1=2025-01-01,v2=2026-01-01"
    deprecation_dates: str = Field(default="")
    sunset_dates: str = Field(default="")

    @property
    def supported_versions_list(self) -> List[str]:
        return _split_csv(self.supported_versions)

    @property
    def deprecated_versions_list(self) -> List[str]:
        return _split_csv(self.deprecated_versions)

    @staticmethod
    def _parse_version_dates(raw: str) -> Dict[str, str]:
        dates: Dict[str, str] = {}
        for item in _split_csv(raw):
            version, _, date = item.partition("=")
            if version and date:
                dates[version.strip()] = date.strip()
        return dates

    @property
    def deprecation_dates_map(self) -> Dict[str, str]:
        return self._parse_version_dates(self.deprecation_dates)

    @property
    def sunset_dates_map(self) -> Dict[str, str]:
        return self._parse_version_dates(self.sunset_dates)

    # ── Validation ────────────────────────────────────────────────────────
    sanitize_input: bool = Field(default=True)

    # ── Error Handling ────────────────────────────────────────────────────
    # Stack traces are never exposed in production regardless of this flag.
    expose_stack_trace: bool = Field(default=True)
    include_request_id: bool = Field(default=True)

    # ── Request Handling ──────────────────────────────────────────────────
    request_timeout_seconds: float = Field(default=30.0, gt=0, le=600)

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        return _split_csv(self.cors_origins)

    # ── Documentation ─────────────────────────────────────────────────────
    docs_title: str = Field(default="Junior Football Nutrition Tracker API")
    docs_version: str = Field(default="1.0.0")
    docs_servers: str = Field(default="http://localhost:8000")
    docs_output_dir: str = Field(default="./docs/api")

    @property
    def docs_servers_list(self) -> List[str]:
        return _split_csv(self.docs_servers)

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    def validate_required_for_production(self) -> None:
        """
        What:  Validates that security-critical settings are configured.
        When:  Called during app startup (lifespan).
        How:   Collects every problem and raises one ValueError listing them.
        """
        if not self.is_production:
            return
        errors = []
        if self.jwt_secret == "change-me-in-production" and self.auth_provider == "token":
            errors.append("JWT_SECRET must be set when AUTH_PROVIDER=token in production")
        if self.auth_provider == "api_key" and not self.api_keys_list:
            errors.append("API_KEYS must list at least one key when AUTH_PROVIDER=api_key")
        if self.default_version not in self.supported_versions_list:
            errors.append(
                f"DEFAULT_VERSION '{self.default_version}' is not in SUPPORTED_VERSIONS"
            )
        if errors:
            raise ValueError(
                "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
            )


# Default instance, read from the environment at import time
settings = Settings()
