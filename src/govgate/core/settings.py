"""Gateway settings.

``GatewaySettings`` is the single configuration object for the process.
Provider sections are nested models, so a Whitebooks password is read from
``GOVGATE_WHITEBOOKS_EWAY__PASSWORD`` and a VAHAN public key from
``GOVGATE_VAHAN__PUBLIC_KEY``.

Order of precedence (highest → lowest):
    1. Environment variables (``GOVGATE_`` prefix, ``__`` nesting)
    2. ``.env`` file
    3. Defaults below

A provider whose ``url`` is unset is treated as not configured; calls routed
to it fail with :class:`~govgate.core.errors.MissingConfigError` instead of
failing at startup.

Tags:
    settings, configuration, pydantic, environment, govgate

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SIX_HOURS = 6 * 60 * 60


class ProviderSettings(BaseModel):
    """Fields every provider section shares."""

    url: str | None = Field(default=None, description="Base URL; unset means not configured")
    timeout: float = Field(default=30.0, description="Per-request timeout in seconds")
    token_ttl_seconds: float = Field(
        default=SIX_HOURS,
        description="Token lifetime used when the provider does not supply an expiry",
    )

    @property
    def configured(self) -> bool:
        return bool(self.url)


class WhitebooksSettings(ProviderSettings):
    """Whitebooks GSP credentials (eway and einvoice use separate sections)."""

    email: str = ""
    username: str = ""
    password: str = ""
    ip_address: str = ""
    client_id: str = ""
    client_secret: str = ""
    gstin: str = ""


class NicSettings(ProviderSettings):
    """NIC eway bill credentials. ``url`` ends with a slash, e.g. ``.../ewayapi/``."""

    username: str = ""
    password: str = ""
    asp_id: str = ""
    gstin: str = ""
    public_key: str = Field(default="", description="NIC RSA public key (PEM)")

    @field_validator("public_key")
    @classmethod
    def _unescape_pem(cls, value: str) -> str:
        return value.replace("\\n", "\n")


class VahanSettings(ProviderSettings):
    """VAHAN (Protean) credentials and envelope key material.

    ``url`` hosts the OAuth token endpoint; ``api_url`` hosts the lookup
    endpoints and defaults to ``url``.
    """

    api_url: str | None = None
    api_key: str = ""
    secret_key: str = ""
    ss_key: str = Field(default="", description="Shared symmetric secret for the envelope")
    env: str = Field(default="UAT", description="UAT or PROD")
    public_key: str = Field(default="", description="VAHAN RSA public key (PEM)")
    private_key: str = Field(default="", description="Gateway RSA private key (PEM)")

    @field_validator("public_key", "private_key")
    @classmethod
    def _unescape_pem(cls, value: str) -> str:
        return value.replace("\\n", "\n")

    @property
    def lookup_url(self) -> str | None:
        return self.api_url or self.url


class RetrySettings(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = 1.0
    max_delay: float = 10.0


class CircuitBreakerSettings(BaseModel):
    failure_threshold: int = Field(default=5, ge=1)
    success_threshold: int = Field(default=2, ge=1)
    reset_timeout: float = 30.0


class IdempotencySettings(BaseModel):
    ttl_seconds: float = 24 * 60 * 60
    max_entries: int = 10_000
    sweep_interval: float = 60 * 60


class RateLimitSettings(BaseModel):
    """Requests per window, keyed by dispatcher id (or client IP)."""

    enabled: bool = True
    window_seconds: float = 60.0
    vahan: int = 100
    eway: int = 200
    einvoice: int = 150
    global_limit: int = 500


class FeatureFlags(BaseModel):
    enable_retry: bool = True
    enable_circuit_breaker: bool = True
    enable_idempotency: bool = True
    auto_generate_idempotency_keys: bool = False


class GatewaySettings(BaseSettings):
    """Settings for the govgate process."""

    # ── Server ───────────────────────────────────────────────────────────
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=12010, description="Bind port")
    debug: bool = Field(default=False, description="Expose exception detail in 500 responses")
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool | None = Field(default=None, description="Force JSON logs (None = auto)")

    # ── API ──────────────────────────────────────────────────────────────
    api_prefix: str = Field(default="/api/v1", description="URL prefix for gateway endpoints")
    api_title: str = Field(default="govgate", description="OpenAPI title")
    api_version: str = Field(default="0.3.0", description="OpenAPI version string")

    # ── Storage ──────────────────────────────────────────────────────────
    database_url: str | None = Field(
        default=None,
        description="SQLAlchemy URL for usage counters and snapshots; None keeps them in memory",
    )

    # ── Resilience ───────────────────────────────────────────────────────
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    idempotency: IdempotencySettings = Field(default_factory=IdempotencySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)

    # ── Providers ────────────────────────────────────────────────────────
    vahan: VahanSettings = Field(default_factory=VahanSettings)
    nic: NicSettings = Field(default_factory=NicSettings)
    whitebooks_eway: WhitebooksSettings = Field(default_factory=WhitebooksSettings)
    whitebooks_einvoice: WhitebooksSettings = Field(default_factory=WhitebooksSettings)

    model_config = SettingsConfigDict(
        env_prefix="GOVGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )


__all__ = [
    "GatewaySettings",
    "ProviderSettings",
    "WhitebooksSettings",
    "NicSettings",
    "VahanSettings",
    "RetrySettings",
    "CircuitBreakerSettings",
    "IdempotencySettings",
    "RateLimitSettings",
    "FeatureFlags",
]
