"""
Script Orchestrator - request-level facade for creating and adjusting scripts.

Composes the intelligence context, model generation, diagnostics and the
background style-profile refresh. Only ScriptScopeNotFoundError (and
ValueError for empty input) reach the caller; every other degradation is
reported through diagnostics.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .feature_service import FeatureKey, FeatureService
from .intelligence_service import (
    ScriptIntelligenceService,
    build_intelligence_prompt_block,
    build_intelligence_prompt_snapshot,
)
from .models import ScriptGenerationResult, ScriptIntelligenceContext
from .scoped_adjustment import detect_adjust_scope
from .script_generation_service import ScriptGenerationService
from .style_training_service import ScriptStyleProfileService
from .telemetry import (
    PerformanceTracker,
    ScriptOutputDiagnostics,
    build_script_output_diagnostics,
    get_performance_tracker,
    log_scripts_generation_observability,
)

logger = logging.getLogger(__name__)


class ScriptRun(BaseModel):
    """Outcome of one create/adjust request."""
    result: ScriptGenerationResult
    diagnostics: ScriptOutputDiagnostics
    intelligence: Optional[Dict[str, Any]] = None


class ScriptOrchestrator:
    """Creates and adjusts scripts for a creator."""

    def __init__(
        self,
        intelligence_service: Optional[ScriptIntelligenceService] = None,
        generation_service: Optional[ScriptGenerationService] = None,
        style_service: Optional[ScriptStyleProfileService] = None,
        feature_service: Optional[FeatureService] = None,
        tracker: Optional[PerformanceTracker] = None,
    ):
        self.tracker = tracker or get_performance_tracker()
        self.style_service = style_service or ScriptStyleProfileService()
        self.intelligence = intelligence_service or ScriptIntelligenceService(
            style_service=self.style_service, tracker=self.tracker
        )
        self.generation = generation_service or ScriptGenerationService(tracker=self.tracker)
        self.features = feature_service or FeatureService()

    async def create_script(self, creator_id: str, prompt: str) -> ScriptRun:
        """
        Generate a new script for a creator.

        Args:
            creator_id: Creator the script is for
            prompt: Free-text request

        Returns:
            ScriptRun with the generation result, diagnostics and the
            intelligence snapshot (None when no context was built)
        """
        if not (prompt or "").strip():
            raise ValueError("Prompt is required")

        style_enabled = await self.features.is_enabled(FeatureKey.SCRIPTS_STYLE_TRAINING_V1, default=True)
        context = await self._build_context(creator_id, prompt, style_enabled)
        block = build_intelligence_prompt_block(context) if context else None

        result = await self.generation.generate_script(prompt, block)
        return self._finish(creator_id, "create", prompt, result, context, style_enabled)

    async def adjust_script(
        self,
        creator_id: str,
        prompt: str,
        title: str,
        content: str,
        script_id: Optional[str] = None,
    ) -> ScriptRun:
        """
        Adjust an existing script.

        Raises:
            ValueError: Empty prompt or content
            ScriptScopeNotFoundError: The targeted scene/paragraph doesn't exist
        """
        if not (prompt or "").strip():
            raise ValueError("Prompt is required")
        if not (content or "").strip():
            raise ValueError("Script content is required")

        scope = detect_adjust_scope(prompt)
        style_enabled = await self.features.is_enabled(FeatureKey.SCRIPTS_STYLE_TRAINING_V1, default=True)
        context = await self._build_context(creator_id, prompt, style_enabled)
        block = build_intelligence_prompt_block(context) if context else None

        result = await self.generation.adjust_script(prompt, title, content, block, scope=scope)
        return self._finish(
            creator_id, "adjust", prompt, result, context, style_enabled,
            previous_content=content, script_id=script_id,
        )

    async def _build_context(
        self,
        creator_id: str,
        prompt: str,
        include_style: bool,
    ) -> Optional[ScriptIntelligenceContext]:
        if not await self.features.is_enabled(FeatureKey.SCRIPTS_INTELLIGENCE_V2, default=True):
            return None
        try:
            return await self.intelligence.build_context(creator_id, prompt, include_style=include_style)
        except Exception as e:
            logger.warning(f"Intelligence context failed for creator {creator_id}, generating without it: {e}")
            return None

    def _finish(
        self,
        creator_id: str,
        operation: str,
        prompt: str,
        result: ScriptGenerationResult,
        context: Optional[ScriptIntelligenceContext],
        style_enabled: bool,
        previous_content: Optional[str] = None,
        script_id: Optional[str] = None,
    ) -> ScriptRun:
        diagnostics = build_script_output_diagnostics(
            operation, prompt, result, context=context, previous_content=previous_content
        )
        log_scripts_generation_observability(
            creator_id, operation, diagnostics, script_id=script_id, tracker=self.tracker
        )
        if style_enabled:
            self.style_service.schedule_refresh(creator_id)
        return ScriptRun(
            result=result,
            diagnostics=diagnostics,
            intelligence=build_intelligence_prompt_snapshot(context) if context else None,
        )
