"""
Hermes Configuration — Load and validate the relay YAML plus process settings.

Two layers:
    - RelayConfig: the ``registers`` / ``settings`` YAML file (config.yml)
    - ServerSettings: bind address, port, logging, timeouts — CLI flags with
      HERMES_* environment fallbacks

Usage:
    from hermes.engine.config import load_config, ServerSettings
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from hermes.engine.errors import HermesConfigError

SUPPORTED_METHODS = ("GET", "POST", "PUT", "DELETE", "PATCH")


# ---------------------------------------------------------------------------
# Pydantic models for config.yml
# ---------------------------------------------------------------------------

class RetryConfig(BaseModel):
    attempts: int = Field(ge=1)
    delay_ms: int = Field(ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class Target(BaseModel):
    url: str
    method: str
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: Optional[int] = Field(default=None, gt=0)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("target URL cannot be empty")
        return v


class WebhookRegister(BaseModel):
    """One inbound endpoint → outbound target binding."""
    endpoint: str
    method: str
    target: Target
    template: str
    retry_config: Optional[RetryConfig] = None

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"endpoint must start with '/', got '{v}'")
        return v


class AppSettings(BaseModel):
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=1000, ge=0)
    enable_metrics: bool = False


class RelayConfig(BaseModel):
    """Root model for config.yml."""
    registers: List[WebhookRegister] = Field(default_factory=list)
    settings: AppSettings = AppSettings()

    def find(self, endpoint: str) -> Optional[WebhookRegister]:
        """Return the first register declared for *endpoint*."""
        for register in self.registers:
            if register.endpoint == endpoint:
                return register
        return None


def find_duplicate_endpoints(registers: List[WebhookRegister]) -> List[str]:
    """Endpoints declared more than once, in first-seen order."""
    seen: set = set()
    duplicates: List[str] = []
    for register in registers:
        if register.endpoint in seen and register.endpoint not in duplicates:
            duplicates.append(register.endpoint)
        seen.add(register.endpoint)
    return duplicates


def load_config(config_path: Union[str, Path]) -> RelayConfig:
    """
    Load and validate config.yml.

    Raises:
        FileNotFoundError if the file does not exist.
        HermesConfigError on unparsable YAML or a schema violation.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise HermesConfigError(f"Invalid YAML in {path}: {e}", config_path=str(path)) from e

    if not isinstance(raw, dict):
        raise HermesConfigError(
            f"Config root must be a mapping, got {type(raw).__name__}",
            config_path=str(path),
        )

    try:
        return RelayConfig(**raw)
    except ValidationError as e:
        raise HermesConfigError(f"Invalid config {path}: {e}", config_path=str(path)) from e


# ---------------------------------------------------------------------------
# Process settings (flags + environment)
# ---------------------------------------------------------------------------

ENV_VARS: Dict[str, str] = {
    "config_path": "HERMES_CONFIG_PATH",
    "bind_address": "HERMES_BIND_ADDRESS",
    "port": "HERMES_PORT",
    "log_level": "HERMES_LOG_LEVEL",
    "log_format": "HERMES_LOG_FORMAT",
    "request_timeout": "HERMES_REQUEST_TIMEOUT",
    "max_concurrent_requests": "HERMES_MAX_CONCURRENT_REQUESTS",
    "health_check_enabled": "HERMES_HEALTH_CHECK_ENABLED",
}


class ServerSettings(BaseModel):
    config_path: str = "config.yml"
    bind_address: str = "0.0.0.0"
    port: int = Field(default=3000, ge=0, le=65535)
    log_level: str = "info"
    log_format: str = "pretty"
    request_timeout: int = Field(default=30, gt=0)
    max_concurrent_requests: int = Field(default=1000, gt=0)
    health_check_enabled: bool = True

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("json", "pretty"):
            raise ValueError(f"log_format must be json/pretty, got '{v}'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.lower()
        if v not in ("trace", "debug", "info", "warning", "warn", "error", "critical"):
            raise ValueError(f"unknown log level '{v}'")
        return v

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None, **overrides: Any) -> "ServerSettings":
        """
        Build settings from HERMES_* variables, then apply explicit overrides.
        Overrides set to None are ignored so unset CLI flags fall through.
        """
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {
            field: environ[var] for field, var in ENV_VARS.items() if var in environ
        }
        data.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return cls(**data)
        except ValidationError as e:
            raise HermesConfigError(f"Invalid server settings: {e}") from e
