"""
Hermes Template Renderer — Compile once at startup, render per request.

Narrow interface over Jinja2's SandboxedEnvironment:
    compile(source) -> TemplateHandle
    render(handle, data) -> str

Templates are logic-less. Only ``{{ ... }}`` substitutions are accepted,
each a variable path (``a.b``, ``a["b"]``, ``a[0]``) optionally piped
through one of ALLOWED_FILTERS with literal arguments. Statement tags
(``{% for %}``, ``{% include %}``, ...), arithmetic, comparisons, calls
and private attributes are rejected at compile time. The sandbox and the
absence of a loader remain in place underneath.

Substituted values are rendered JSON-style: booleans as ``true``/``false``,
objects and arrays as JSON text. Null and missing variables, including
attributes of missing variables, render as empty strings. Strings are
inserted bare; the template supplies the quotes. Output carries no JSON
guarantee; callers validate.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from jinja2 import ChainableUndefined, Template, TemplateSyntaxError, nodes
from jinja2.sandbox import SandboxedEnvironment

from hermes.engine.errors import TemplateCompileError, TemplateRenderError

logger = logging.getLogger("hermes.engine.templates")

ALLOWED_FILTERS = frozenset({"tojson", "length", "default", "lower", "upper", "trim"})


@dataclass(frozen=True)
class TemplateHandle:
    """A compiled template. Opaque to everything except the renderer."""
    name: str
    source: str
    compiled: Template = field(repr=False, compare=False)


def _finalize(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return value


def _check_expr(node: nodes.Node) -> None:
    """Raise ValueError unless *node* is a plain variable path or allowed filter."""
    if isinstance(node, (nodes.TemplateData, nodes.Name, nodes.Const)):
        return
    if isinstance(node, nodes.Getattr):
        if node.attr.startswith("_"):
            raise ValueError(f"access to private attribute '{node.attr}' is not allowed")
        _check_expr(node.node)
        return
    if isinstance(node, nodes.Getitem):
        if not isinstance(node.arg, nodes.Const):
            raise ValueError("subscripts must be literal keys or indexes")
        if isinstance(node.arg.value, str) and node.arg.value.startswith("_"):
            raise ValueError(f"access to private attribute '{node.arg.value}' is not allowed")
        _check_expr(node.node)
        return
    if isinstance(node, nodes.Filter):
        if node.name not in ALLOWED_FILTERS:
            raise ValueError(f"filter '{node.name}' is not allowed")
        if node.dyn_args is not None or node.dyn_kwargs is not None:
            raise ValueError("filter arguments must be literals")
        for arg in list(node.args) + [kw.value for kw in node.kwargs]:
            if not isinstance(arg, nodes.Const):
                raise ValueError("filter arguments must be literals")
        _check_expr(node.node)
        return
    raise ValueError(f"{type(node).__name__} expressions are not allowed")


def check_logic_less(tree: nodes.Template) -> None:
    """
    Reject anything beyond substitution.

    Raises:
        ValueError naming the offending construct (``.lineno`` attached).
    """
    for stmt in tree.body:
        if not isinstance(stmt, nodes.Output):
            err = ValueError(f"'{type(stmt).__name__.lower()}' tags are not allowed")
            err.lineno = stmt.lineno  # type: ignore[attr-defined]
            raise err
        for expr in stmt.nodes:
            try:
                _check_expr(expr)
            except ValueError as e:
                e.lineno = expr.lineno  # type: ignore[attr-defined]
                raise


class TemplateRenderer:
    """
    Usage:
        renderer = TemplateRenderer()
        handle = renderer.compile('{"text": "{{ message }}"}', name="/slack")
        payload = renderer.render(handle, {"message": "hi"})
    """

    def __init__(self) -> None:
        self._env = SandboxedEnvironment(
            autoescape=False,
            undefined=ChainableUndefined,
            keep_trailing_newline=True,
            finalize=_finalize,
        )

    def compile(self, source: str, name: str = "<template>") -> TemplateHandle:
        """
        Compile template source.

        Raises:
            TemplateCompileError on invalid syntax or on logic beyond
            substitution.
        """
        try:
            tree = self._env.parse(source)
        except TemplateSyntaxError as e:
            hint = ""
            if "{{#" in source or "{{/" in source:
                hint = "; block helpers such as {{#each}} are not supported"
            raise TemplateCompileError(
                f"Template compile failed for '{name}': {e.message} (line {e.lineno}){hint}",
                endpoint=name,
            ) from e

        try:
            check_logic_less(tree)
        except ValueError as e:
            raise TemplateCompileError(
                f"Template compile failed for '{name}': {e} (line {getattr(e, 'lineno', '?')})",
                endpoint=name,
            ) from e

        compiled = self._env.from_string(tree)
        logger.debug(f"Compiled template: {name}")
        return TemplateHandle(name=name, source=source, compiled=compiled)

    def render(self, handle: TemplateHandle, data: Dict[str, Any]) -> str:
        """
        Render a compiled template with root-level fields of *data* as
        variables.

        Raises:
            TemplateRenderError if the engine fails (sandbox violation,
            a filter applied to the wrong type, ...).
        """
        try:
            return handle.compiled.render(data)
        except Exception as e:
            raise TemplateRenderError(
                f"Template rendering failed: {e}",
                endpoint=handle.name,
            ) from e


def to_template_data(value: Any) -> Dict[str, Any]:
    """Objects pass through; every other JSON value is wrapped as {"data": value}."""
    if isinstance(value, dict):
        return dict(value)
    return {"data": value}
