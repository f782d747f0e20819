"""Hermes Engine — Registry, templating, forwarding and the dispatch pipeline."""

from hermes.engine.dispatcher import DispatchHandler, DispatchResult  # noqa: F401
from hermes.engine.forwarder import ForwardingClient, ForwardResponse  # noqa: F401
from hermes.engine.registry import EndpointRegistry, WebhookRule  # noqa: F401
from hermes.engine.templates import TemplateRenderer  # noqa: F401

__all__ = [
    "DispatchHandler",
    "DispatchResult",
    "ForwardingClient",
    "ForwardResponse",
    "EndpointRegistry",
    "WebhookRule",
    "TemplateRenderer",
]
