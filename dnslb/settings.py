from __future__ import annotations

import os
from dataclasses import dataclass, field


class ConfigError(ValueError):
    """Invalid or missing configuration. Fatal at startup."""


def _env_str(name: str, default: str | None = None) -> str | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    # Cloudflare
    cf_token: str | None = field(default_factory=lambda: _env_str("CF_TOKEN"))
    cf_api_base: str = field(
        default_factory=lambda: _env_str("CF_API_BASE", "https://api.cloudflare.com/client/v4")
    )
    cf_proxied: bool = field(default_factory=lambda: _env_bool("CF_PROXIED", True))

    # Targets: inline JSON wins over a file path.
    service_targets: str | None = field(default_factory=lambda: _env_str("SERVICE_TARGETS"))
    service_targets_file: str | None = field(default_factory=lambda: _env_str("SERVICE_TARGETS_FILE"))

    # Core
    check_interval_s: int = field(default_factory=lambda: _env_int("CHECK_INTERVAL", 30))
    icmp_privileged: bool = field(default_factory=lambda: _env_bool("ICMP_PRIVILEGED", False))
    log_level: str = field(default_factory=lambda: _env_str("LOG_LEVEL", "INFO"))

    # Metrics endpoint (optional)
    metrics_enabled: bool = field(default_factory=lambda: _env_bool("METRICS_ENABLED", False))
    metrics_host: str = field(default_factory=lambda: _env_str("METRICS_HOST", "0.0.0.0"))
    metrics_port: int = field(default_factory=lambda: _env_int("METRICS_PORT", 8000))

    def validate(self) -> None:
        """Raise ConfigError for settings the balancer cannot start without."""
        if not self.cf_token:
            raise ConfigError("Please provide a CF_TOKEN in env!")
        if not self.service_targets and not self.service_targets_file:
            raise ConfigError("Please provide SERVICE_TARGETS or SERVICE_TARGETS_FILE in env!")
        if self.check_interval_s < 0:
            raise ConfigError("CHECK_INTERVAL must not be negative.")
        if not 1 <= self.metrics_port <= 65535:
            raise ConfigError("METRICS_PORT must be between 1 and 65535.")
