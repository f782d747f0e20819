"""
Hermes Forwarding Client — Outbound HTTP call pipeline for rendered payloads.

Pipeline (per call):
    1. Map the configured method onto GET/POST/PUT/DELETE/PATCH
    2. Merge per-target headers, force Content-Type: application/json
    3. Execute via httpx.AsyncClient (one pooled client per process)
    4. Per-call timeout: target override, else the process-wide default
    5. Retry transport failures with exponential backoff
    6. Read the body fully; JSON if it parses, else the raw text

Any HTTP response, whatever its status code, is a successful forward: the
upstream body is relayed to the caller as-is.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from hermes.engine.config import AppSettings, RetryConfig, SUPPORTED_METHODS
from hermes.engine.errors import ForwardError, UnsupportedMethodError
from hermes.engine.logging import forward_event

logger = logging.getLogger("hermes.engine.forwarder")


@dataclass(frozen=True)
class ForwardResponse:
    """Upstream reply: status code plus parsed-or-text body."""
    status_code: int
    body: Any


def resolve_method(method: str) -> str:
    """
    Normalize a configured target method.

    Raises:
        UnsupportedMethodError for anything outside the supported verb set.
    """
    normalized = method.upper()
    if normalized not in SUPPORTED_METHODS:
        raise UnsupportedMethodError(
            f"Unsupported HTTP method: {normalized}",
            method=method,
        )
    return normalized


def resolve_retry_policy(
    rule_policy: Optional[RetryConfig],
    settings: Optional[AppSettings] = None,
) -> RetryConfig:
    """Rule-level retry_config wins; otherwise fall back to global settings."""
    if rule_policy is not None:
        return rule_policy
    settings = settings or AppSettings()
    return RetryConfig(
        attempts=settings.retry_attempts,
        delay_ms=settings.retry_delay_ms,
    )


def calc_delay(attempt: int, policy: RetryConfig) -> float:
    """Seconds to wait before retry number *attempt* (0-based)."""
    return (policy.delay_ms / 1000.0) * (policy.backoff_multiplier ** attempt)


def _describe(exc: Exception) -> str:
    # httpx timeouts often carry an empty message
    return str(exc) or exc.__class__.__name__


def parse_body(response: httpx.Response) -> Any:
    """JSON body when it parses, raw text otherwise."""
    try:
        return response.json()
    except ValueError:
        return response.text


class ForwardingClient:
    """
    Sends rendered payloads to upstream targets.

    The httpx client is created lazily and reused across calls; its
    connection pool is the only mutable shared resource. Lifecycle is
    owned by the server lifespan: call ``aclose()`` on shutdown.
    """

    def __init__(
        self,
        timeout: float = 30,
        client: Optional[httpx.AsyncClient] = None,
        max_connections: int = 100,
    ):
        self._default_timeout = timeout
        self._client = client
        self._max_connections = max_connections

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_connections=self._max_connections),
                timeout=httpx.Timeout(self._default_timeout),
            )
            logger.info(f"Created httpx client (timeout {self._default_timeout}s)")
        return self._client

    async def aclose(self) -> None:
        """Close the pooled client. Safe to call when never opened."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Closed httpx client")

    async def send(
        self,
        method: str,
        url: str,
        json_body: Any,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ForwardResponse:
        """
        One outbound attempt.

        Raises:
            UnsupportedMethodError for an unknown method (before any I/O).
            ForwardError on transport failure, or when the body cannot be
            encoded as strict JSON (not retryable).
        """
        verb = resolve_method(method)
        try:
            content = json.dumps(json_body, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise ForwardError(f"Failed to encode payload as JSON: {e}", url=url) from e

        request_headers = dict(headers or {})
        request_headers["Content-Type"] = "application/json"
        effective_timeout = timeout or self._default_timeout

        try:
            response = await self._get_client().request(
                verb,
                url,
                content=content,
                headers=request_headers,
                timeout=effective_timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ForwardError(
                f"Failed to send request to target: {_describe(e)}",
                url=url,
                retryable=isinstance(e, httpx.TransportError),
            ) from e

        return ForwardResponse(status_code=response.status_code, body=parse_body(response))

    async def send_with_retry(
        self,
        method: str,
        url: str,
        json_body: Any,
        policy: RetryConfig,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ForwardResponse:
        """
        Bounded retry around ``send``. Only transport failures are retried;
        any HTTP response ends the loop.

        Raises:
            UnsupportedMethodError immediately, without retrying.
            ForwardError once ``policy.attempts`` tries have all failed.
        """
        verb = resolve_method(method)
        attempts = max(policy.attempts, 1)
        attempt = 0

        while True:
            start_time = time.monotonic()
            try:
                result = await self.send(verb, url, json_body, headers=headers, timeout=timeout)
            except ForwardError as e:
                duration_ms = (time.monotonic() - start_time) * 1000
                logger.warning(
                    f"Forward to {url} failed: {e.message}",
                    extra={"event_data": forward_event(
                        verb, url, 0, duration_ms, attempt + 1, error=e.message,
                    )},
                )
                e.attempts = attempt + 1
                if not e.retryable or attempt + 1 >= attempts:
                    raise
                delay = calc_delay(attempt, policy)
                logger.info(f"Retrying {url} in {delay:.2f}s (attempt {attempt + 2}/{attempts})")
                await asyncio.sleep(delay)
                attempt += 1
                continue

            duration_ms = (time.monotonic() - start_time) * 1000
            logger.info(
                f"Forwarded to {url}: HTTP {result.status_code}",
                extra={"event_data": forward_event(
                    verb, url, result.status_code, duration_ms, attempt + 1,
                )},
            )
            return result
