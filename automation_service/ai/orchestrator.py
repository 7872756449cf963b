"""
AI Orchestrator - assembles prompts and dispatches AI node calls.

1. Resolve prompts from explicit config or the named preset
2. Inject the workspace brand profile
3. Sanitize context values, delimit user data and frame the system prompt
4. Check the workspace budget (no provider call if not allowed)
5. Call the provider backend
6. Log usage in the background
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import sessionmaker

from database.database import SessionLocal
from services.input_sanitizer import InputSanitizer
from ..clients.ai_providers import ProviderRegistry
from ..config import get_automation_settings
from ..errors import BudgetExceededError, ConfigurationError
from ..models import AICallConfig, AIResult
from ..templates.resolver import resolve_template
from .brand import BrandProfile, brand_from_context, format_brand_prompt, load_brand_profile
from .presets import get_preset
from .usage import AIBudgetGate, AIUsageLogger, UsageRecord, estimate_cost

logger = logging.getLogger(__name__)


@dataclass
class AICallMeta:
    """Telemetry identifiers for one AI call."""
    workspace_id: str
    node_id: Optional[str] = None
    workflow_id: Optional[str] = None
    execution_id: Optional[str] = None


@dataclass
class AssembledPrompt:
    system_prompt: str
    user_prompt: str


class AIOrchestrator:
    """
    Runs AI node calls against an injected provider registry.
    """

    def __init__(
        self,
        providers: ProviderRegistry,
        session_factory: Optional[sessionmaker] = None,
        budget_gate: Optional[AIBudgetGate] = None,
        usage_logger: Optional[AIUsageLogger] = None,
        sanitizer: Optional[InputSanitizer] = None,
    ):
        self.providers = providers
        self.session_factory = session_factory or SessionLocal
        self.budget_gate = budget_gate or AIBudgetGate(self.session_factory)
        self.usage_logger = usage_logger or AIUsageLogger(self.session_factory)
        self.sanitizer = sanitizer or InputSanitizer()
        self.max_tokens = get_automation_settings().ai_max_output_tokens

    # =========================================================================
    # Prompt Assembly
    # =========================================================================

    @staticmethod
    def resolve_prompts(config: AICallConfig) -> Tuple[str, str]:
        """Explicit prompts win; otherwise fall back to the preset's text."""
        system_prompt = config.system_prompt or ""
        user_prompt = config.user_prompt or ""

        if config.preset_id:
            preset = get_preset(config.preset_id)
            if preset is None:
                logger.warning(f"Unknown AI preset '{config.preset_id}'")
            else:
                system_prompt = system_prompt or preset.system_prompt
                user_prompt = user_prompt or preset.user_prompt_template

        return system_prompt, user_prompt

    def _load_brand(self, context: Dict[str, Any], workspace_id: str) -> BrandProfile:
        brand = brand_from_context(context)
        if brand is not None:
            return brand

        db = self.session_factory()
        try:
            return load_brand_profile(db, workspace_id)
        finally:
            db.close()

    def assemble_prompt(self, config: AICallConfig, context: Dict[str, Any], workspace_id: str) -> AssembledPrompt:
        """
        Build the final system and user prompts.

        Every string in the context is sanitized before it is interpolated
        into the user prompt template.

        Raises:
            ConfigurationError: No user prompt after resolution
            NotFoundError: Workspace brand profile not found
        """
        system_prompt, user_template = self.resolve_prompts(config)
        if not user_template.strip():
            raise ConfigurationError("AI node has no user prompt")

        brand = self._load_brand(context, workspace_id)

        template_ctx = self.sanitizer.sanitize_context(context)
        template_ctx["location_name"] = self.sanitizer.sanitize(brand.location_name)
        template_ctx["brand"] = self.sanitizer.sanitize_context(brand.as_template_data())

        user_prompt = resolve_template(user_template, template_ctx)
        if not user_prompt.strip():
            raise ConfigurationError("AI node user prompt resolved to empty text")

        return AssembledPrompt(
            system_prompt=self.sanitizer.frame_system_prompt(system_prompt + format_brand_prompt(brand)),
            user_prompt=self.sanitizer.wrap_user_data(user_prompt),
        )

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(self, config: AICallConfig, context: Dict[str, Any], meta: AICallMeta) -> AIResult:
        """
        Execute an AI call with the configured provider.

        Raises:
            BudgetExceededError: Workspace budget does not allow the call
            ProviderError: Provider call failed
        """
        prompt = self.assemble_prompt(config, context, meta.workspace_id)

        if not self.budget_gate.is_allowed(meta.workspace_id):
            raise BudgetExceededError(f"AI budget exceeded for workspace {meta.workspace_id}")

        backend = self.providers.get(config.provider)
        model = config.model or self.providers.default_model(config.provider)

        logger.info(
            f"AI call: provider={config.provider.value}, model={model}, "
            f"mode={config.mode.value}, preset={config.preset_id or 'custom'}"
        )
        result = await backend.generate(prompt.system_prompt, prompt.user_prompt, model, self.max_tokens)

        self.usage_logger.log_detached(UsageRecord(
            workspace_id=meta.workspace_id,
            node_id=meta.node_id,
            workflow_id=meta.workflow_id,
            execution_id=meta.execution_id,
            provider=config.provider.value,
            model=model,
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
            estimated_cost=estimate_cost(model, result.input_tokens, result.output_tokens),
            purpose=f"{config.mode.value}:{config.preset_id or 'custom'}",
        ))

        return result
