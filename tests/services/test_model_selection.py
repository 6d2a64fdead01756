"""
Tests for model tier routing.

Environment is read at call time, so each test sets it with monkeypatch.
"""

import pytest

from scriptintel.services.model_selection import (
    OPERATION_ADJUST,
    OPERATION_GENERATE,
    compute_prompt_complexity,
    has_premium_intent,
    select_script_model_for_prompt,
)
from scriptintel.services.models import ModelTier


@pytest.fixture(autouse=True)
def model_env(monkeypatch):
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4o-mini")
    monkeypatch.setenv("OPENAI_MODEL_ADVANCED", "gpt-4.1")
    monkeypatch.setenv("OPENAI_MODEL_HYBRID_ENABLED", "true")
    monkeypatch.setenv("OPENAI_MODEL_HYBRID_OPERATION_ROUTING_ENABLED", "true")
    monkeypatch.setenv("OPENAI_MODEL_HYBRID_SCORE_THRESHOLD", "2")
    return monkeypatch


class TestSelectScriptModel:

    def test_generate_defaults_to_premium(self):
        selected = select_script_model_for_prompt(
            "quero uma versão premium com storytelling cinematográfico e tom de voz forte",
            OPERATION_GENERATE,
        )
        assert selected.tier == ModelTier.PREMIUM
        assert selected.model == "gpt-4.1"
        assert selected.reason == "operation_generate_default"
        assert selected.fallback_model == "gpt-4o-mini"

    def test_adjust_defaults_to_base(self):
        selected = select_script_model_for_prompt("roteiro curto sobre produtividade", OPERATION_ADJUST)
        assert selected.tier == ModelTier.BASE
        assert selected.model == "gpt-4o-mini"
        assert selected.reason == "operation_adjust_default"
        assert selected.fallback_model is None

    def test_hybrid_disabled_keeps_base(self, model_env):
        model_env.setenv("OPENAI_MODEL_HYBRID_ENABLED", "false")
        selected = select_script_model_for_prompt("quero uma versão premium e detalhada", OPERATION_ADJUST)
        assert selected.tier == ModelTier.BASE
        assert selected.model == "gpt-4o-mini"
        assert selected.reason == "hybrid_disabled"

    def test_routing_disabled_uses_intent(self, model_env):
        model_env.setenv("OPENAI_MODEL_HYBRID_OPERATION_ROUTING_ENABLED", "false")
        selected = select_script_model_for_prompt(
            "quero uma versão premium com storytelling cinematográfico",
            OPERATION_GENERATE,
        )
        assert selected.tier == ModelTier.PREMIUM
        assert selected.model == "gpt-4.1"
        assert selected.reason == "explicit_intent"
        assert selected.fallback_model == "gpt-4o-mini"

    def test_complex_adjustment_is_promoted(self):
        prompt = (
            "Ajuste o roteiro mantendo o mesmo público.\n"
            "- Evite gírias\n"
            "- Inclua um gancho com número\n"
        )
        selected = select_script_model_for_prompt(prompt, OPERATION_ADJUST)
        assert selected.tier == ModelTier.PREMIUM
        assert selected.reason == "complexity_score"
        assert selected.complexity_score >= 2

    def test_routing_disabled_plain_prompt(self, model_env):
        model_env.setenv("OPENAI_MODEL_HYBRID_OPERATION_ROUTING_ENABLED", "false")
        selected = select_script_model_for_prompt("roteiro curto", OPERATION_GENERATE)
        assert selected.tier == ModelTier.BASE
        assert selected.reason == "default"

    def test_unset_models_fall_back_to_defaults(self, model_env):
        model_env.delenv("OPENAI_MODEL")
        model_env.delenv("OPENAI_MODEL_ADVANCED")
        selected = select_script_model_for_prompt("roteiro", OPERATION_GENERATE)
        assert selected.model == "gpt-4.1"
        assert selected.fallback_model == "gpt-4o-mini"


class TestComplexity:

    def test_short_prompt_scores_zero(self):
        assert compute_prompt_complexity("roteiro curto sobre produtividade") == 0

    def test_constraint_points_are_capped(self):
        prompt = "persona, objetivo, estrutura, formato, segundos e referências"
        assert compute_prompt_complexity(prompt) == 3

    def test_long_prompt_points(self):
        assert compute_prompt_complexity("a" * 650) == 2

    def test_premium_intent(self):
        assert has_premium_intent("Quero a versão mais elaborada")
        assert not has_premium_intent("Quero uma versão curta")
