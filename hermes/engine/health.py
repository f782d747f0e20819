"""
Hermes Health Check — Payloads for the /health and /ready endpoints.

Both endpoints are gated by ServerSettings.health_check_enabled. Readiness
only reports on the configuration: there are no backing services to check.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Dict, Optional

from hermes import __version__

SERVICE_NAME = "hermes-rs"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    READY = "ready"
    NOT_READY = "not_ready"


def health_payload(now: Optional[float] = None) -> Dict[str, Any]:
    """Liveness: the process is up and serving."""
    timestamp = int(now if now is not None else time.time())
    return {
        "status": HealthStatus.HEALTHY.value,
        "timestamp": timestamp,
        "service": SERVICE_NAME,
        "version": __version__,
    }


def readiness_payload(config_loaded: bool = True) -> Dict[str, Any]:
    """Readiness: the registry was built from a valid configuration."""
    return {
        "status": (HealthStatus.READY if config_loaded else HealthStatus.NOT_READY).value,
        "checks": {"config": "ok" if config_loaded else "missing"},
    }
