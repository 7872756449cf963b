"""
Template Resolver & Token Registry

- tokens: closed registry of {single_brace} campaign tokens
- resolver: two-pass resolution ({token} then {{expression}})
"""

from .tokens import (
    TOKEN_DEFINITIONS,
    TOKEN_CATEGORIES,
    ResolverContext,
    TokenDefinition,
    list_tokens,
    resolve_campaign_tokens,
)
from .resolver import build_resolver_context, resolve_expressions, resolve_template

__all__ = [
    "TOKEN_DEFINITIONS",
    "TOKEN_CATEGORIES",
    "ResolverContext",
    "TokenDefinition",
    "list_tokens",
    "resolve_campaign_tokens",
    "build_resolver_context",
    "resolve_expressions",
    "resolve_template",
]
