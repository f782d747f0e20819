"""
Hermes Endpoint Registry — Exact-path lookup of compiled webhook rules.

The registry is the COMPILED STATE layer: built once at startup from the
loaded RelayConfig, then shared read-only by every request task. It is
never mutated after construction, so concurrent readers need no locking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional

from hermes.engine.config import RelayConfig, RetryConfig, Target, find_duplicate_endpoints
from hermes.engine.errors import EndpointNotFoundError, HermesConfigError
from hermes.engine.templates import TemplateHandle, TemplateRenderer

logger = logging.getLogger("hermes.engine.registry")


@dataclass(frozen=True)
class WebhookRule:
    """A configured register with its template compiled."""

    endpoint: str                 # e.g., "/github/push"
    inbound_method: str           # informational, not enforced
    target: Target
    template: TemplateHandle
    retry_policy: Optional[RetryConfig] = None


class EndpointRegistry:
    """
    Immutable mapping endpoint → WebhookRule.

    Usage:
        registry = EndpointRegistry.from_config(config, renderer)
        rule = registry.lookup("/github/push")
    """

    def __init__(self, rules: Mapping[str, WebhookRule]):
        self._rules: Mapping[str, WebhookRule] = MappingProxyType(dict(rules))

    @classmethod
    def from_config(
        cls,
        config: RelayConfig,
        renderer: TemplateRenderer,
        strict: bool = True,
    ) -> "EndpointRegistry":
        """
        Compile every register's template and index it by endpoint.

        Args:
            config: Loaded relay configuration.
            renderer: Renderer used to compile templates.
            strict: Reject duplicate endpoints. When False the last
                register for an endpoint wins and a warning is logged.

        Raises:
            HermesConfigError on duplicate endpoints (strict).
            TemplateCompileError on malformed template source.
        """
        duplicates = find_duplicate_endpoints(config.registers)
        if duplicates and strict:
            raise HermesConfigError(
                f"Duplicate endpoints in configuration: {', '.join(duplicates)}",
                duplicates=duplicates,
            )

        rules: Dict[str, WebhookRule] = {}
        for register in config.registers:
            if register.endpoint in rules:
                logger.warning(f"Endpoint {register.endpoint} shadowed by a later register")
            rules[register.endpoint] = WebhookRule(
                endpoint=register.endpoint,
                inbound_method=register.method,
                target=register.target,
                template=renderer.compile(register.template, name=register.endpoint),
                retry_policy=register.retry_config,
            )
            logger.debug(
                f"Registered: {register.method} {register.endpoint} -> "
                f"{register.target.method} {register.target.url}"
            )

        return cls(rules)

    def lookup(self, path: str) -> WebhookRule:
        """
        Resolve an inbound path verbatim.

        Raises:
            EndpointNotFoundError when no rule matches exactly.
        """
        rule = self._rules.get(path)
        if rule is None:
            raise EndpointNotFoundError(endpoint=path)
        return rule

    def endpoints(self) -> List[str]:
        return list(self._rules.keys())

    @property
    def rules(self) -> Mapping[str, WebhookRule]:
        """Read-only view of all rules."""
        return self._rules

    def __contains__(self, path: object) -> bool:
        return path in self._rules

    def __iter__(self) -> Iterator[WebhookRule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)
