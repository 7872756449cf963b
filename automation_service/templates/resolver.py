"""
Template Resolver - two-pass text substitution for node configuration fields.

Pass 1: single-brace campaign tokens ({first_name}) from the Token Registry.
Pass 2: double-brace expressions ({{contact.firstName}}) evaluated against
        the full execution context by dotted-path lookup.

Only the author's template is ever parsed as expression syntax. Token values
reach pass 2 as render variables, so contact data containing braces is
emitted as literal text.

A template the expression engine cannot parse degrades to the pass-1
output; raw parser errors never reach an end user.
"""

import logging
from typing import Any, Dict, Optional

from jinja2 import ChainableUndefined, TemplateError
from jinja2.sandbox import SandboxedEnvironment
from jinja2.utils import missing

from .tokens import (
    CAMPAIGN_TOKEN_PATTERN,
    ResolverContext,
    resolve_campaign_tokens,
    resolve_token_values,
)

logger = logging.getLogger(__name__)

TOKEN_VARIABLE_PREFIX = "__token_"
EXPRESSION_MARKERS = ("{{", "{%", "{#")


class PassThroughUndefined(ChainableUndefined):
    """
    Unknown top-level names render as their original {{name}} expression.
    Missing paths below a name ({{contact.nickname}}, {{review.text}} with no
    review) render empty.
    """
    __slots__ = ()

    def _is_bare_name(self) -> bool:
        return self._undefined_obj is missing and bool(self._undefined_name)

    def __str__(self) -> str:
        if self._is_bare_name():
            return "{{" + str(self._undefined_name) + "}}"
        return ""

    def __getattr__(self, name: str) -> "PassThroughUndefined":
        if isinstance(name, str) and name[:2] == "__":
            raise AttributeError(name)
        return type(self)(obj=None, name=name)

    __getitem__ = __getattr__


def _finalize(value: Any) -> Any:
    # Missing and null values render empty, never "None"
    return "" if value is None else value


_expression_env = SandboxedEnvironment(
    autoescape=False,  # SMS/email bodies, not HTML documents
    undefined=PassThroughUndefined,
    keep_trailing_newline=True,
    finalize=_finalize,
)


def has_expressions(template: str) -> bool:
    return any(marker in template for marker in EXPRESSION_MARKERS)


def build_resolver_context(
    context: Dict[str, Any],
    contact: Optional[Dict[str, Any]] = None,
    workspace: Optional[Dict[str, Any]] = None,
) -> ResolverContext:
    """Assemble pass-1 inputs, preferring explicitly loaded snapshots."""
    if contact is None and isinstance(context.get("contact"), dict):
        contact = context["contact"]
    if workspace is None and isinstance(context.get("workspace"), dict):
        workspace = context["workspace"]
    return ResolverContext(workflow=context, contact=contact, workspace=workspace)


def resolve_expressions(template: str, context: Dict[str, Any]) -> str:
    """
    Evaluate {{path.to.value}} expressions against the execution context.

    Returns the input unchanged if it has no expressions or fails to parse.
    """
    if not has_expressions(template):
        return template

    try:
        return _expression_env.from_string(template).render(context)
    except TemplateError as e:
        logger.warning(f"Template expression failed, using token pass output: {e}")
        return template


def _bind_tokens(template: str, token_values: Dict[str, str]) -> str:
    """Swap each known {token} for a reference to its render variable."""
    def replace(match) -> str:
        name = match.group(1)
        if name not in token_values:
            return match.group(0)
        return "{{ " + TOKEN_VARIABLE_PREFIX + name + " }}"

    return CAMPAIGN_TOKEN_PATTERN.sub(replace, template)


def resolve_template(
    template: Optional[str],
    context: Dict[str, Any],
    contact: Optional[Dict[str, Any]] = None,
    workspace: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Resolve a configurable text field against the execution context.

    Args:
        template: Text with {token} and/or {{expression}} placeholders
        context: Execution context (pass 2 lookup root)
        contact: Loaded contact snapshot (defaults to context["contact"])
        workspace: Loaded workspace snapshot (defaults to context["workspace"])

    Returns:
        Resolved text. Deterministic for a given template and context.
    """
    if not template:
        return ""

    resolver_ctx = build_resolver_context(context, contact, workspace)
    if not has_expressions(template):
        return resolve_campaign_tokens(template, resolver_ctx)

    token_values = resolve_token_values(resolver_ctx)

    expression_ctx = dict(context)
    if resolver_ctx.contact is not None:
        expression_ctx["contact"] = resolver_ctx.contact
    if resolver_ctx.workspace is not None:
        expression_ctx["workspace"] = resolver_ctx.workspace
    for name, value in token_values.items():
        expression_ctx[TOKEN_VARIABLE_PREFIX + name] = value

    try:
        return _expression_env.from_string(_bind_tokens(template, token_values)).render(expression_ctx)
    except TemplateError as e:
        logger.warning(f"Template expression failed, using token pass output: {e}")
        return resolve_campaign_tokens(template, resolver_ctx)
