"""
Tests for ScriptGenerationService.

The OpenAI client is replaced by a MagicMock whose chat.completions.create
is an AsyncMock, so no network calls are made.
"""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from scriptintel.services.models import AdjustMode, ModelTier, ScriptDraft, TargetType
from scriptintel.services.scoped_adjustment import ScriptScopeNotFoundError, list_scene_segments
from scriptintel.services.script_format import (
    TechnicalScene,
    is_technical_script,
    parse_technical_scenes,
    render_technical_script,
)
from scriptintel.services.script_generation_service import (
    ScriptGenerationService,
    has_shorten_intent,
    sanitize_adjusted_script,
    sanitize_script_identity_leakage,
)
from scriptintel.services.telemetry import STAGE_MODEL_CALL, PerformanceTracker


STRONG_SCRIPT = render_technical_script([
    TechnicalScene(
        "GANCHO", "00-03s", "Close no rosto", "Entra em quadro e para a 1 passo da câmera", "Erro nº 1",
        "Se você ainda perde clientes no direct, para tudo agora: tem um erro simples aqui.",
        "Tom urgente, olhar fixo na lente",
    ),
    TechnicalScene(
        "CONTEXTO", "03-10s", "Plano médio", "Mostra o celular com 3 conversas abertas na tela", "Metade some",
        "Eu respondia todo mundo no improviso e você sabe: metade sumia sem responder.",
        "Ritmo conversacional, mãos abertas",
    ),
    TechnicalScene(
        "DEMONSTRAÇÃO", "10-22s", "Close nas mãos", "Conta nos dedos as 3 mensagens com corte seco",
        "Mensagem 1, 2 e 3",
        "Agora eu uso um roteiro de três mensagens e você pode copiar hoje mesmo.",
        "Didático e confiante, ênfase nos números",
    ),
    TechnicalScene(
        "CTA", "22-30s", "Close frontal", "Aponta para a legenda do lado direito da tela", "Comenta QUERO",
        "Comenta QUERO aqui embaixo que eu te mando o modelo completo agora.",
        "Sorriso aberto, tom convidativo",
    ),
])


def _response(payload):
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=json.dumps(payload, ensure_ascii=False)))]
    return response


@pytest.fixture(autouse=True)
def model_env(monkeypatch):
    monkeypatch.setenv("OPENAI_MODEL", "gpt-4o-mini")
    monkeypatch.setenv("OPENAI_MODEL_ADVANCED", "gpt-4.1")
    monkeypatch.setenv("OPENAI_MODEL_HYBRID_ENABLED", "true")
    monkeypatch.setenv("OPENAI_MODEL_HYBRID_OPERATION_ROUTING_ENABLED", "true")
    monkeypatch.setenv("OPENAI_MODEL_HYBRID_SCORE_THRESHOLD", "4")


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=_response({"title": "Direct que vende", "content": STRONG_SCRIPT})
    )
    return client


@pytest.fixture
def tracker():
    return PerformanceTracker(window=50)


@pytest.fixture
def service(mock_client, tracker):
    return ScriptGenerationService(client=mock_client, tracker=tracker)


@pytest.fixture
def offline_service(tracker):
    service = ScriptGenerationService(client=MagicMock(), tracker=tracker)
    service.client = None
    return service


# ============================================================================
# Sanitizers
# ============================================================================

class TestIdentitySanitization:

    def test_removes_unauthorized_mentions_and_hashtags(self):
        sanitized = sanitize_script_identity_leakage(
            ScriptDraft(
                title="Roteiro com @outraPessoa",
                content="Hoje vamos falar de rotina com @usuarioaleatorio e #viral. Comenta aqui no final.",
            ),
            allowed_text="quero um roteiro de humor",
        )
        assert "@outraPessoa" not in sanitized.title
        assert "@usuarioaleatorio" not in sanitized.content
        assert "#viral" not in sanitized.content
        assert "Comenta aqui no final" in sanitized.content

    def test_keeps_identities_present_in_allowed_text(self):
        sanitized = sanitize_script_identity_leakage(
            ScriptDraft(title="Roteiro para @meuperfil", content="Use #meutema e @meuperfil no final."),
            allowed_text="fazer roteiro para @meuperfil com #meutema",
        )
        assert "@meuperfil" in sanitized.title
        assert "#meutema" in sanitized.content
        assert "@meuperfil" in sanitized.content


class TestSanitizeAdjustedScript:

    def test_reverts_shrunken_free_text_without_shorten_intent(self):
        original = "Um texto bem longo. " * 20
        content, reverted = sanitize_adjusted_script(original, "Curto.", "Deixa o tom mais leve")
        assert reverted is True
        assert content == original

    def test_accepts_shorter_text_when_asked(self):
        original = "Um texto bem longo. " * 20
        content, reverted = sanitize_adjusted_script(original, "Curto.", "Deixa bem mais curto")
        assert reverted is False
        assert content == "Curto."

    def test_accepts_shorter_technical_script(self):
        original = STRONG_SCRIPT + "\n" + "x" * 3000
        content, reverted = sanitize_adjusted_script(original, STRONG_SCRIPT, "Deixa o tom mais leve")
        assert reverted is False

    def test_empty_revision_reverts(self):
        assert sanitize_adjusted_script("original", "  ", "qualquer") == ("original", True)

    def test_shorten_intent(self):
        assert has_shorten_intent("Pode encurtar a fala?")
        assert has_shorten_intent("resume em 30 segundos")
        assert not has_shorten_intent("Deixa mais engraçado")


# ============================================================================
# Generation
# ============================================================================

class TestGenerateScript:

    @pytest.mark.asyncio
    async def test_generates_with_premium_model(self, service, mock_client, tracker):
        result = await service.generate_script("Roteiro sobre vendas no direct", context_block="CONTEXTO X")

        assert result.model_used == "gpt-4.1"
        assert result.model_selection.tier == ModelTier.PREMIUM
        assert result.used_local_fallback is False
        assert result.draft.title == "Direct que vende"
        assert result.draft.content == STRONG_SCRIPT
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4.1"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert "CONTEXTO X" in kwargs["messages"][1]["content"]
        assert tracker.stage_snapshot(STAGE_MODEL_CALL)["count"] == 1

    @pytest.mark.asyncio
    async def test_premium_failure_retries_on_base(self, service, mock_client):
        mock_client.chat.completions.create.side_effect = [
            RuntimeError("premium down"),
            _response({"title": "Direct", "content": STRONG_SCRIPT}),
        ]

        result = await service.generate_script("Roteiro sobre vendas no direct")

        assert result.model_used == "gpt-4o-mini"
        assert result.used_local_fallback is False
        models = [call.kwargs["model"] for call in mock_client.chat.completions.create.call_args_list]
        assert models == ["gpt-4.1", "gpt-4o-mini"]

    @pytest.mark.asyncio
    async def test_all_tiers_failing_uses_local_draft(self, service, mock_client):
        mock_client.chat.completions.create.side_effect = RuntimeError("provider down")

        result = await service.generate_script("Roteiro sobre finanças pessoais")

        assert result.used_local_fallback is True
        assert result.model_used is None
        assert result.fallback_reason.startswith("All model tiers failed")
        assert is_technical_script(result.draft.content)
        assert result.contract.synthesized_scenes == [1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_unconfigured_client_uses_local_draft(self, offline_service):
        result = await offline_service.generate_script("Roteiro sobre finanças pessoais")

        assert result.used_local_fallback is True
        assert "not configured" in result.fallback_reason
        assert len(parse_technical_scenes(result.draft.content)) == 4
        assert result.draft.title == "Roteiro: finanças pessoais"

    @pytest.mark.asyncio
    async def test_invalid_json_counts_as_failure(self, service, mock_client):
        bad = MagicMock()
        bad.choices = [MagicMock(message=MagicMock(content="not json at all"))]
        mock_client.chat.completions.create.return_value = bad

        result = await service.generate_script("Roteiro sobre vendas")

        assert result.used_local_fallback is True

    @pytest.mark.asyncio
    async def test_identity_leakage_is_removed(self, service, mock_client):
        leaked = STRONG_SCRIPT.replace("Comenta QUERO aqui embaixo", "Comenta QUERO pro @fulano #viral")
        mock_client.chat.completions.create.return_value = _response({"title": "Roteiro", "content": leaked})

        result = await service.generate_script("Roteiro sobre vendas no direct")

        assert "@fulano" not in result.draft.content
        assert "#viral" not in result.draft.content

    @pytest.mark.asyncio
    async def test_empty_prompt_raises(self, service):
        with pytest.raises(ValueError):
            await service.generate_script("   ")


# ============================================================================
# Adjustment
# ============================================================================

def _three_scene_script():
    return render_technical_script([
        TechnicalScene("GANCHO", "00-03s", "Close", "Entra em quadro", "Erro nº 1", "Você erra isso todo dia.", "Urgente"),
        TechnicalScene("CONTEXTO", "03-10s", "Plano médio", "Caminha", "Por quê?", "Todo mundo faz no improviso.", "Calmo"),
        TechnicalScene("CTA", "10-20s", "Close", "Aponta", "Comenta", "Comenta QUERO aqui.", "Sorriso"),
    ])


class TestAdjustScript:

    @pytest.mark.asyncio
    async def test_scene_patch_only_changes_that_scene(self, service, mock_client):
        content = _three_scene_script()
        mock_client.chat.completions.create.return_value = _response(
            {"segment": "No improviso ninguém te responde."}
        )

        result = await service.adjust_script(
            "Ajuste apenas a Cena 2 para ficar mais curta", "Roteiro", content
        )

        before = list_scene_segments(content)
        after = list_scene_segments(result.draft.content)
        assert result.adjust_meta.scope.mode == AdjustMode.PATCH
        assert result.adjust_meta.scope.target.type == TargetType.SCENE
        assert result.adjust_meta.scope.target.index == 2
        assert result.adjust_meta.segment_index == 2
        assert after[0].text == before[0].text
        assert after[2].text == before[2].text
        assert parse_technical_scenes(result.draft.content)[1].speech == "No improviso ninguém te responde."
        assert result.model_used == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_scene_patch_keeps_other_scenes_byte_identical(self, service, mock_client):
        content = render_technical_script([
            TechnicalScene("GANCHO", "00-03s", "Close", "Entra em quadro", "Erro nº 1", "Você erra  isso todo dia.", "Urgente"),
            TechnicalScene("CONTEXTO", "03-10s", "Plano médio", "Caminha", "Por quê?", "Todo mundo faz no improviso.", "Calmo"),
            TechnicalScene("CTA", "10-20s", "Close", "Aponta", "Comenta", "Comenta QUERO  aqui.", "Sorriso"),
        ])
        mock_client.chat.completions.create.return_value = _response(
            {"segment": "No improviso @estranho nunca responde."}
        )

        result = await service.adjust_script(
            "Ajuste apenas a Cena 2 para ficar mais curta", "Roteiro", content
        )

        before = list_scene_segments(content)
        after = list_scene_segments(result.draft.content)
        assert after[0].text == before[0].text
        assert after[2].text == before[2].text
        assert "Você erra  isso todo dia." in result.draft.content
        assert result.draft.content[:before[1].start] == content[:before[1].start]
        assert result.draft.content.endswith(content[before[1].end:])
        assert "@estranho" not in result.draft.content

    @pytest.mark.asyncio
    async def test_missing_scene_raises_scope_not_found(self, service, mock_client):
        with pytest.raises(ScriptScopeNotFoundError):
            await service.adjust_script("Ajuste a cena 7", "Roteiro", _three_scene_script())

        mock_client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_scoped_model_failure_keeps_original(self, service, mock_client):
        content = _three_scene_script()
        mock_client.chat.completions.create.side_effect = RuntimeError("down")

        result = await service.adjust_script("Melhore a cena 1", "Roteiro", content)

        assert result.draft.content == content
        assert result.used_local_fallback is True

    @pytest.mark.asyncio
    async def test_full_rewrite_that_shrinks_is_reverted(self, service, mock_client):
        mock_client.chat.completions.create.return_value = _response({"title": "Novo", "content": "Texto curto."})

        result = await service.adjust_script("Deixa o tom mais leve", "Direct", STRONG_SCRIPT)

        assert result.adjust_meta.revision_reverted is True
        assert result.draft.content == STRONG_SCRIPT

    @pytest.mark.asyncio
    async def test_reverted_weak_script_is_returned_unpolished(self, service, mock_client):
        weak = render_technical_script([
            TechnicalScene("GANCHO", "00-03s", "Close", "Fala", "Oi", "Mostre o produto.", "Normal"),
            TechnicalScene("FINAL", "03-06s", "Close", "Fala", "Tchau", "É isso.", "Normal"),
        ])
        mock_client.chat.completions.create.return_value = _response({"title": "Novo", "content": "curto"})

        result = await service.adjust_script("melhore o texto", "Produto", weak)

        assert result.adjust_meta.revision_reverted is True
        assert result.draft.content == weak
        assert result.draft.title == "Produto"
        assert result.contract.synthesized_fields == {}
        assert result.adjust_meta.content_length_after == len(weak)

    @pytest.mark.asyncio
    async def test_full_adjust_model_failure_keeps_original(self, service, mock_client):
        weak = render_technical_script([
            TechnicalScene("GANCHO", "00-03s", "Close", "Fala", "Oi", "Mostre o produto.", "Normal"),
        ])
        mock_client.chat.completions.create.side_effect = RuntimeError("down")

        result = await service.adjust_script("melhore o texto", "Produto", weak)

        assert result.draft.content == weak
        assert result.used_local_fallback is True
        assert result.adjust_meta.revision_reverted is False

    @pytest.mark.asyncio
    async def test_rewrite_full_uses_rewrite_instruction(self, service, mock_client):
        await service.adjust_script("Reescreva tudo do zero com outra abordagem", "Direct", STRONG_SCRIPT)

        prompt = mock_client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
        assert ScriptGenerationService.REWRITE_INSTRUCTION in prompt

    @pytest.mark.asyncio
    async def test_new_script_request_generates(self, service, mock_client):
        result = await service.adjust_script("Cria um novo roteiro sobre viagens", "Direct", STRONG_SCRIPT)

        assert result.adjust_meta.scope.mode == AdjustMode.NEW_SCRIPT
        assert result.model_selection.tier == ModelTier.PREMIUM
        assert mock_client.chat.completions.create.call_args.kwargs["model"] == "gpt-4.1"

    @pytest.mark.asyncio
    async def test_legacy_content_is_converted_first(self, service, mock_client):
        legacy = "Você sabia disso?\n\nEu faço assim todo dia.\n\nSalva esse vídeo."
        mock_client.chat.completions.create.return_value = _response({"segment": "Você ainda não sabia disso?"})

        result = await service.adjust_script("Melhore a cena 1", "Roteiro", legacy)

        assert result.adjust_meta.legacy_converted is True
        assert is_technical_script(result.draft.content)
        assert parse_technical_scenes(result.draft.content)[0].speech == "Você ainda não sabia disso?"

    @pytest.mark.asyncio
    async def test_empty_content_raises(self, service):
        with pytest.raises(ValueError):
            await service.adjust_script("Melhore a cena 1", "Roteiro", "")


class TestParseJsonResponse:

    def test_fenced_json(self, service):
        assert service._parse_json_response('```json\n{"title": "a"}\n```') == {"title": "a"}

    def test_json_embedded_in_text(self, service):
        assert service._parse_json_response('Aqui está: {"content": "x"} fim') == {"content": "x"}

    def test_unparsable_raises(self, service):
        with pytest.raises(ValueError):
            service._parse_json_response("sem json")
