"""
Hermes — Configuration-driven webhook relay.

Accepts inbound HTTP requests on arbitrary paths, reshapes the JSON body
through a per-endpoint template, and forwards the result to a configured
upstream target.
"""

__version__ = "0.1.0"
__all__ = ["engine", "server", "cli", "admin"]
