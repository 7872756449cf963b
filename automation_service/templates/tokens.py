"""
Token Registry - single-brace campaign tokens ({first_name}, {location_name}).

Tokens resolve against the workflow context plus loaded contact and
workspace snapshots. The registry is closed: unknown tokens are left
verbatim by the resolver.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..config import get_automation_settings


@dataclass
class ResolverContext:
    """Inputs available to token resolvers."""
    workflow: Dict[str, Any]
    contact: Optional[Dict[str, Any]] = None
    workspace: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class TokenDefinition:
    """Maps a campaign token name to a pure resolver function."""
    token: str
    label: str
    category: str
    resolve: Callable[[ResolverContext], str] = field(compare=False)


def _contact_field(name: str) -> Callable[[ResolverContext], str]:
    def resolve(ctx: ResolverContext) -> str:
        return _as_text((ctx.contact or {}).get(name))
    return resolve


def _workspace_field(name: str) -> Callable[[ResolverContext], str]:
    def resolve(ctx: ResolverContext) -> str:
        return _as_text((ctx.workspace or {}).get(name))
    return resolve


def _review_field(name: str) -> Callable[[ResolverContext], str]:
    def resolve(ctx: ResolverContext) -> str:
        review = ctx.workflow.get("review")
        if not isinstance(review, dict):
            return ""
        return _as_text(review.get(name))
    return resolve


def _as_text(value: Any) -> str:
    if value is None or value == "":
        return ""
    return str(value)


def _full_name(ctx: ResolverContext) -> str:
    contact = ctx.contact or {}
    parts = [contact.get("firstName"), contact.get("lastName")]
    return " ".join(p for p in parts if p)


def _location_name(ctx: ResolverContext) -> str:
    name = (ctx.workspace or {}).get("name")
    if name:
        return str(name)
    fallback = ctx.workflow.get("location_name")
    return fallback if isinstance(fallback, str) else ""


def _feedback_link(ctx: ResolverContext) -> str:
    slug = (ctx.workspace or {}).get("feedbackSlug")
    if not slug:
        return ""
    base = get_automation_settings().app_base_url.rstrip("/")
    return f"{base}/feedback/{slug}"


def _ai_output(ctx: ResolverContext) -> str:
    value = ctx.workflow.get("aiOutput")
    return value if isinstance(value, str) else ""


TOKEN_DEFINITIONS = (
    TokenDefinition("first_name", "First Name", "contact", _contact_field("firstName")),
    TokenDefinition("last_name", "Last Name", "contact", _contact_field("lastName")),
    TokenDefinition("full_name", "Full Name", "contact", _full_name),
    TokenDefinition("email", "Email", "contact", _contact_field("email")),
    TokenDefinition("phone", "Phone", "contact", _contact_field("phone")),
    TokenDefinition("location_name", "Business Name", "location", _location_name),
    TokenDefinition("location_phone", "Business Phone", "location", _workspace_field("phone")),
    TokenDefinition("review_link", "Google Review Link", "link", _workspace_field("googleReviewUrl")),
    TokenDefinition("feedback_link", "Feedback Page Link", "link", _feedback_link),
    TokenDefinition("review_rating", "Review Rating", "review", _review_field("rating")),
    TokenDefinition("review_text", "Review Text", "review", _review_field("text")),
    TokenDefinition("reviewer_name", "Reviewer Name", "review", _review_field("authorName")),
    TokenDefinition("ai_output", "AI Output", "ai", _ai_output),
)

TOKEN_CATEGORIES = [
    {"id": "contact", "label": "Contact"},
    {"id": "location", "label": "Business"},
    {"id": "link", "label": "Links"},
    {"id": "review", "label": "Review"},
    {"id": "ai", "label": "AI"},
]

# {token} not adjacent to a second brace, so {{handlebars}} are never consumed
CAMPAIGN_TOKEN_PATTERN = re.compile(r"(?<!\{)\{([a-z_]+)\}(?!\})")


def list_tokens() -> List[TokenDefinition]:
    """Token catalog for the editor."""
    return list(TOKEN_DEFINITIONS)


def resolve_token_values(ctx: ResolverContext) -> Dict[str, str]:
    """Resolved text for every registered token."""
    return {definition.token: definition.resolve(ctx) for definition in TOKEN_DEFINITIONS}


def resolve_campaign_tokens(template: str, ctx: ResolverContext) -> str:
    """
    Resolve all {campaign_tokens} in a template string.

    Args:
        template: Text containing {token_name} placeholders
        ctx: Resolver context

    Returns:
        Text with known tokens replaced; unknown tokens left as-is
    """
    if not template:
        return ""

    token_map = resolve_token_values(ctx)

    def replace(match: "re.Match[str]") -> str:
        value = token_map.get(match.group(1))
        return value if value is not None else match.group(0)

    return CAMPAIGN_TOKEN_PATTERN.sub(replace, template)
