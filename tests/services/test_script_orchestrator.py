"""
Tests for ScriptOrchestrator - feature gating, degradation and refresh scheduling.

Every collaborator is mocked; the orchestrator only wires them together.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from scriptintel.services.feature_service import FeatureKey
from scriptintel.services.models import (
    AdjustMode,
    CategorySelection,
    ParsedPrompt,
    ScopeTarget,
    ScriptDraft,
    ScriptGenerationResult,
    ScriptIntelligenceContext,
    TargetType,
    TechnicalScriptQualityScore,
)
from scriptintel.services.scoped_adjustment import ScriptScopeNotFoundError
from scriptintel.services.script_format import TechnicalScene, render_technical_script
from scriptintel.services.script_orchestrator import ScriptOrchestrator
from scriptintel.services.telemetry import PerformanceTracker

SCRIPT = render_technical_script([
    TechnicalScene("GANCHO", "00-03s", "Close", "Entra", "Erro", "Você erra isso.", "Urgente"),
    TechnicalScene("CTA", "03-10s", "Close", "Aponta", "Comenta", "Comenta aqui embaixo.", "Sorriso"),
])


def _result():
    return ScriptGenerationResult(
        draft=ScriptDraft(title="Roteiro", content=SCRIPT),
        quality=TechnicalScriptQualityScore(perceived_quality=0.8, scene_count=2),
        model_used="gpt-4.1",
    )


def _context():
    return ScriptIntelligenceContext(
        creator_id="c1",
        prompt="roteiro de dicas",
        parsed=ParsedPrompt(explicit_categories=CategorySelection(proposal="tips")),
        resolved_categories=CategorySelection(
            proposal="tips", context="general", format="reel", tone="educational", references="pop_culture"
        ),
    )


@pytest.fixture
def flags():
    return {}


@pytest.fixture
def mocks(flags):
    async def is_enabled(key, default=True):
        return flags.get(key, default)

    features = MagicMock()
    features.is_enabled = AsyncMock(side_effect=is_enabled)

    intelligence = MagicMock()
    intelligence.build_context = AsyncMock(return_value=_context())

    generation = MagicMock()
    generation.generate_script = AsyncMock(return_value=_result())
    generation.adjust_script = AsyncMock(return_value=_result())

    style = MagicMock()
    return {"features": features, "intelligence": intelligence, "generation": generation, "style": style}


@pytest.fixture
def orchestrator(mocks):
    return ScriptOrchestrator(
        intelligence_service=mocks["intelligence"],
        generation_service=mocks["generation"],
        style_service=mocks["style"],
        feature_service=mocks["features"],
        tracker=PerformanceTracker(window=10),
    )


# ============================================================================
# create_script
# ============================================================================

class TestCreateScript:

    @pytest.mark.asyncio
    async def test_full_pipeline(self, orchestrator, mocks):
        run = await orchestrator.create_script("c1", "roteiro de dicas")

        mocks["intelligence"].build_context.assert_awaited_once_with("c1", "roteiro de dicas", include_style=True)
        prompt, block = mocks["generation"].generate_script.call_args.args
        assert prompt == "roteiro de dicas"
        assert block.startswith("CONTEXTO DE INTELIGÊNCIA DO CRIADOR:")
        assert run.intelligence["resolved_categories"]["proposal"] == "tips"
        assert run.diagnostics.operation == "create"
        assert run.diagnostics.category_compliance_rate == 1.0
        mocks["style"].schedule_refresh.assert_called_once_with("c1")

    @pytest.mark.asyncio
    async def test_intelligence_disabled(self, orchestrator, mocks, flags):
        flags[FeatureKey.SCRIPTS_INTELLIGENCE_V2] = False

        run = await orchestrator.create_script("c1", "roteiro de dicas")

        mocks["intelligence"].build_context.assert_not_called()
        mocks["generation"].generate_script.assert_awaited_once_with("roteiro de dicas", None)
        assert run.intelligence is None

    @pytest.mark.asyncio
    async def test_style_training_disabled(self, orchestrator, mocks, flags):
        flags[FeatureKey.SCRIPTS_STYLE_TRAINING_V1] = False

        await orchestrator.create_script("c1", "roteiro de dicas")

        assert mocks["intelligence"].build_context.call_args.kwargs["include_style"] is False
        mocks["style"].schedule_refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_intelligence_failure_degrades(self, orchestrator, mocks):
        mocks["intelligence"].build_context.side_effect = RuntimeError("rpc timeout")

        run = await orchestrator.create_script("c1", "roteiro de dicas")

        mocks["generation"].generate_script.assert_awaited_once_with("roteiro de dicas", None)
        assert run.intelligence is None
        assert run.result.draft.content == SCRIPT

    @pytest.mark.asyncio
    async def test_empty_prompt(self, orchestrator, mocks):
        with pytest.raises(ValueError):
            await orchestrator.create_script("c1", "   ")
        mocks["generation"].generate_script.assert_not_called()


# ============================================================================
# adjust_script
# ============================================================================

class TestAdjustScript:

    @pytest.mark.asyncio
    async def test_scope_is_passed_to_generation(self, orchestrator, mocks):
        run = await orchestrator.adjust_script(
            "c1", "Ajuste apenas a Cena 2 para ficar mais curta", "Roteiro", SCRIPT, script_id="s1"
        )

        scope = mocks["generation"].adjust_script.call_args.kwargs["scope"]
        assert scope.mode == AdjustMode.PATCH
        assert scope.target == ScopeTarget(type=TargetType.SCENE, index=2)
        assert run.diagnostics.operation == "adjust"
        assert run.diagnostics.content_length_delta == 0

    @pytest.mark.asyncio
    async def test_scope_not_found_propagates(self, orchestrator, mocks):
        mocks["generation"].adjust_script.side_effect = ScriptScopeNotFoundError(
            ScopeTarget(type=TargetType.SCENE, index=9)
        )

        with pytest.raises(ScriptScopeNotFoundError) as exc_info:
            await orchestrator.adjust_script("c1", "Ajuste a cena 9", "Roteiro", SCRIPT)

        assert exc_info.value.to_dict()["code"] == "SCOPE_NOT_FOUND"
        mocks["style"].schedule_refresh.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_content(self, orchestrator):
        with pytest.raises(ValueError, match="content"):
            await orchestrator.adjust_script("c1", "Ajuste o final", "Roteiro", "")
