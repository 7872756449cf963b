"""
AI orchestration: presets, brand context, budget gate, usage logging
"""

from .brand import BrandProfile, brand_from_context, format_brand_prompt, load_brand_profile
from .orchestrator import AICallMeta, AIOrchestrator, AssembledPrompt
from .presets import AI_PRESETS, AIPreset, get_preset, get_presets_by_mode
from .usage import PRICING, AIBudgetGate, AIUsageLogger, UsageRecord, estimate_cost

__all__ = [
    "BrandProfile",
    "brand_from_context",
    "format_brand_prompt",
    "load_brand_profile",
    "AICallMeta",
    "AIOrchestrator",
    "AssembledPrompt",
    "AI_PRESETS",
    "AIPreset",
    "get_preset",
    "get_presets_by_mode",
    "PRICING",
    "AIBudgetGate",
    "AIUsageLogger",
    "UsageRecord",
    "estimate_cost",
]
