"""
Hermes Dispatch Handler — Inbound request pipeline for registered endpoints.

Pipeline (per-request, no state survives between requests):
    1. Received   — path + raw body captured by the server layer
    2. Looked up  — exact-path registry lookup           (404 on miss)
    3. Parsed     — body parsed as JSON                   (400 on failure)
    4. Rendered   — template rendered, non-objects wrapped (500)
    5. Validated  — rendered text re-parsed as JSON        (500)
    6. Forwarded  — sent to the target with retry          (500)
    7. Responded  — {"status": "success", "target_response": ...}

Any failing step short-circuits to a terminal error response. Nothing is
retried here; retries live in the forwarding client and cover transport
failures only.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from hermes.engine.config import AppSettings, RetryConfig
from hermes.engine.errors import HermesError, InvalidPayloadError, RenderedPayloadError
from hermes.engine.forwarder import ForwardingClient, resolve_retry_policy
from hermes.engine.logging import dispatch_event
from hermes.engine.registry import EndpointRegistry
from hermes.engine.templates import TemplateRenderer, to_template_data

logger = logging.getLogger("hermes.engine.dispatcher")

DEBUG_RESPONSE = {"status": "success", "message": "Payload logged"}


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def loads_strict(text: Union[str, bytes]) -> Any:
    """json.loads without the NaN/Infinity extensions."""
    return json.loads(text, parse_constant=_reject_constant)


@dataclass(frozen=True)
class OutboundRequest:
    """Everything needed to call the target. A pure function of rule + body."""
    method: str
    url: str
    json_body: Any
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: Optional[float] = None
    retry_policy: Optional[RetryConfig] = None


@dataclass
class DispatchResult:
    """Terminal state of one request: HTTP status plus JSON body."""
    status_code: int
    body: Dict[str, Any]


class DispatchHandler:
    """
    Orchestrates registry, renderer and forwarder for one inbound request.

    All collaborators are shared and read-only after startup; the handler
    itself holds no per-request state and is safe to call concurrently.
    """

    def __init__(
        self,
        registry: EndpointRegistry,
        renderer: TemplateRenderer,
        forwarder: ForwardingClient,
        settings: Optional[AppSettings] = None,
    ):
        self._registry = registry
        self._renderer = renderer
        self._forwarder = forwarder
        self._settings = settings or AppSettings()

    @property
    def registry(self) -> EndpointRegistry:
        return self._registry

    def prepare(self, path: str, body: Union[str, bytes]) -> OutboundRequest:
        """
        Steps 2–5: lookup, parse, render, validate.

        Raises:
            EndpointNotFoundError, InvalidPayloadError, TemplateRenderError,
            RenderedPayloadError.
        """
        rule = self._registry.lookup(path)

        try:
            request_data = loads_strict(body)
        except ValueError as e:
            raise InvalidPayloadError(f"Invalid JSON: {e}", endpoint=path) from e

        rendered = self._renderer.render(rule.template, to_template_data(request_data))

        try:
            payload = loads_strict(rendered)
        except ValueError as e:
            raise RenderedPayloadError(
                f"Rendered template is not valid JSON: {e}",
                endpoint=path,
                rendered=rendered,
            ) from e

        return OutboundRequest(
            method=rule.target.method,
            url=rule.target.url,
            json_body=payload,
            headers=dict(rule.target.headers),
            timeout=rule.target.timeout_seconds,
            retry_policy=rule.retry_policy,
        )

    async def dispatch(self, path: str, body: Union[str, bytes], method: str = "POST") -> DispatchResult:
        """Run the full pipeline. Never raises; every failure becomes a JSON error result."""
        start_time = time.monotonic()
        try:
            result = await self._run(path, body)
        except HermesError as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            log_fn = logger.warning if e.status_code < 500 else logger.error
            log_fn(
                f"{method} {path} -> {e.status_code}: {e.message}",
                extra={"event_data": dispatch_event(
                    path, method, e.status_code, duration_ms, error=e.error_type,
                )},
            )
            return DispatchResult(status_code=e.status_code, body=e.to_response())
        except Exception as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.exception(
                f"Unhandled error dispatching {method} {path}: {e}",
                extra={"event_data": dispatch_event(
                    path, method, 500, duration_ms, error=e.__class__.__name__,
                )},
            )
            return DispatchResult(status_code=500, body={"error": "Internal server error"})

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            f"{method} {path} -> {result.status_code}",
            extra={"event_data": dispatch_event(path, method, result.status_code, duration_ms)},
        )
        return result

    async def _run(self, path: str, body: Union[str, bytes]) -> DispatchResult:
        outbound = self.prepare(path, body)
        policy = resolve_retry_policy(outbound.retry_policy, self._settings)

        response = await self._forwarder.send_with_retry(
            outbound.method,
            outbound.url,
            outbound.json_body,
            policy,
            headers=outbound.headers,
            timeout=outbound.timeout,
        )
        return DispatchResult(
            status_code=200,
            body={"status": "success", "target_response": response.body},
        )


def handle_debug(body: Union[str, bytes]) -> DispatchResult:
    """Log any payload and acknowledge. No lookup, no forwarding."""
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    logger.info(f"Debug request payload: {text}")
    return DispatchResult(status_code=200, body=dict(DEBUG_RESPONSE))
