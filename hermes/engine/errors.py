"""
Hermes Error Hierarchy — Structured exceptions for the relay pipeline.

Every per-request error carries the HTTP status it maps to, so the server
layer can turn any HermesError into a JSON error response without a lookup
table. Startup errors (config, template compile) carry 500 but are never
returned to a caller: they abort the process before it binds.

Hierarchy:
    HermesError
    ├── EndpointNotFoundError   — 404, no rule for the exact inbound path
    ├── InvalidPayloadError     — 400, inbound body is not JSON
    ├── TemplateRenderError     — 500, template engine rejected the render
    ├── RenderedPayloadError    — 500, template output is not JSON
    ├── UnsupportedMethodError  — 500, target method outside the verb set
    ├── ForwardError            — 500, network/timeout reaching the target
    ├── TemplateCompileError    — startup-fatal, malformed template source
    └── HermesConfigError       — startup-fatal, invalid configuration
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class HermesError(Exception):
    """
    Base error for all relay failures.
    All context is serializable to JSON for structured logging.
    """

    status_code: int = 500

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.endpoint: Optional[str] = context.get("endpoint")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "status_code": self.status_code,
            "endpoint": self.endpoint,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k != "endpoint"
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def to_response(self) -> Dict[str, str]:
        """Body returned to the original caller."""
        return {"error": self.message}

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.endpoint:
            parts.append(f"endpoint={self.endpoint}")
        return " | ".join(parts)


class EndpointNotFoundError(HermesError):
    """No registry entry for the exact inbound path."""

    status_code = 404

    def __init__(self, message: str = "Endpoint not found", **context: Any):
        super().__init__(message, **context)


class InvalidPayloadError(HermesError):
    """Inbound request body does not parse as JSON."""

    status_code = 400


class TemplateRenderError(HermesError):
    """The template engine failed while rendering."""
    pass


class RenderedPayloadError(HermesError):
    """
    The template rendered, but its output is not JSON.
    Kept apart from TemplateRenderError so operators can tell templating
    logic problems from templating output problems.
    """

    def __init__(self, message: str, **context: Any):
        self.rendered: Optional[str] = context.get("rendered")
        super().__init__(message, **context)


class UnsupportedMethodError(HermesError):
    """Configured target method is not one of GET/POST/PUT/DELETE/PATCH."""

    def __init__(self, message: str, **context: Any):
        self.method: Optional[str] = context.get("method")
        super().__init__(message, **context)


class ForwardError(HermesError):
    """Network, connect or timeout failure reaching the target."""

    def __init__(self, message: str, **context: Any):
        self.url: Optional[str] = context.get("url")
        self.attempts: int = context.get("attempts", 1)
        self.retryable: bool = context.get("retryable", False)
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["url"] = self.url
        d["attempts"] = self.attempts
        d["retryable"] = self.retryable
        return d


class TemplateCompileError(HermesError):
    """Malformed template source. Fatal at startup."""
    pass


class HermesConfigError(HermesError):
    """Configuration error — unreadable YAML, schema violation, duplicates."""
    pass
