"""
Brand profile loading and formatting for AI system prompts.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from database.models import Workspace
from ..errors import NotFoundError


@dataclass
class BrandProfile:
    location_name: str
    tone: Optional[str] = None
    industry: Optional[str] = None
    services: Optional[str] = None
    usps: Optional[str] = None
    instructions: Optional[str] = None

    def as_template_data(self) -> Dict[str, Any]:
        """Exposed to prompt templates as {{brand.*}}."""
        data = asdict(self)
        data["locationName"] = data.pop("location_name")
        return data


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def brand_from_context(context: Mapping[str, Any]) -> Optional[BrandProfile]:
    """
    Brand profile from the workspace snapshot already in the context.
    Returns None when there is no snapshot or it has no name.
    """
    workspace = context.get("workspace")
    if not isinstance(workspace, dict):
        return None

    name = workspace.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    return BrandProfile(
        location_name=name,
        tone=_text(workspace.get("brandTone")),
        industry=_text(workspace.get("brandIndustry")),
        services=_text(workspace.get("brandServices")),
        usps=_text(workspace.get("brandUsps")),
        instructions=_text(workspace.get("brandInstructions")),
    )


def load_brand_profile(db: Session, workspace_id: str) -> BrandProfile:
    """
    Load the brand profile from the store.

    Raises:
        NotFoundError: Workspace doesn't exist
    """
    workspace = db.query(Workspace).filter(Workspace.id == workspace_id).first()
    if not workspace:
        raise NotFoundError(f"Workspace {workspace_id} not found")

    return BrandProfile(
        location_name=workspace.name,
        tone=workspace.brand_tone,
        industry=workspace.brand_industry,
        services=workspace.brand_services,
        usps=workspace.brand_usps,
        instructions=workspace.brand_instructions,
    )


def format_brand_prompt(brand: BrandProfile) -> str:
    """
    Format the brand profile as a system prompt section.

    Returns "" when only the business name is known.
    """
    parts = [f"Business: {brand.location_name}"]

    if brand.industry:
        parts.append(f"Industry: {brand.industry}")
    if brand.tone:
        parts.append(f"Tone: {brand.tone}")
    if brand.services:
        parts.append(f"Services: {brand.services}")
    if brand.usps:
        parts.append(f"Unique selling points: {brand.usps}")
    if brand.instructions:
        parts.append(f"Special instructions: {brand.instructions}")

    if len(parts) <= 1:
        return ""

    return "\n\nBusiness context:\n" + "\n".join(parts)
