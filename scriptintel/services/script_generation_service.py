"""
Script Generation Service - model-backed generation and adjustment.

Uses OpenAI chat completions (JSON mode) to:
1. Generate a technical script from a creator request plus intelligence context
2. Adjust an existing script, either a single scene/paragraph or the whole text

Every result passes through identity sanitization and the script contract.
When the model is unconfigured or every tier fails, a deterministic local
draft is used instead and the result is flagged with used_local_fallback.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from openai import AsyncOpenAI

from ..core.config import Config
from ..core.observability import get_logfire
from .model_selection import OPERATION_ADJUST, OPERATION_GENERATE, select_script_model_for_prompt
from .models import (
    AdjustMeta,
    AdjustMode,
    ContractReport,
    ModelSelection,
    ScriptAdjustScope,
    ScriptDraft,
    ScriptGenerationResult,
    ScriptSegment,
    TargetType,
)
from .scoped_adjustment import (
    describe_target,
    detect_adjust_scope,
    list_scene_segments,
    merge_scoped_segment,
    require_scoped_segment,
)
from .script_contract import (
    TITLE_MAX_LENGTH,
    clamp_text,
    convert_legacy_script_to_technical,
    enforce_technical_script_contract,
    evaluate_technical_script_quality,
)
from .script_format import (
    SCRIPT_END_TAG,
    SCRIPT_START_TAG,
    TABLE_HEADER,
    TABLE_SEPARATOR,
    WRAPPER_TAG_RE,
    is_technical_script,
    parse_technical_scenes,
    render_scene_block,
)
from .telemetry import STAGE_MODEL_CALL, PerformanceTracker, get_performance_tracker
from .text_features import normalize_for_matching

logger = logging.getLogger(__name__)

MENTION_RE = re.compile(r"(?<![\w@])@([A-Za-z0-9_.]{2,30})")
HASHTAG_RE = re.compile(r"(?<![\w#&])#([^\W\d_][\w]{1,60})")
SHORTEN_INTENT_RE = re.compile(
    r"\b(encurt\w*|mais curt[oa]s?|diminu\w*|reduz\w*|resum\w*|menor|enxug\w*|cort[ae]\w*|mais objetiv[oa])\b"
)
# revisions that keep less than this share of the original are suspicious
MIN_KEPT_RATIO = 0.55
IDENTITY_PLACEHOLDER = "criador"


class ModelUnavailableError(Exception):
    """Raised when the model is unconfigured or every tier failed."""


# ============================================================================
# Sanitizers
# ============================================================================

def sanitize_identity_text(text: str, allowed_text: str = "") -> str:
    """
    Remove identities the creator never supplied from one piece of text.

    @mentions not present in allowed_text become "criador"; unknown
    #hashtags are dropped.
    """
    allowed_mentions = {m.lower() for m in MENTION_RE.findall(allowed_text or "")}
    allowed_tags = {t.lower() for t in HASHTAG_RE.findall(allowed_text or "")}

    text = MENTION_RE.sub(
        lambda m: m.group(0) if m.group(1).lower() in allowed_mentions else IDENTITY_PLACEHOLDER,
        text or "",
    )
    text = HASHTAG_RE.sub(lambda m: m.group(0) if m.group(1).lower() in allowed_tags else "", text)
    return re.sub(r"[ \t]{2,}", " ", text)


def sanitize_script_identity_leakage(draft: ScriptDraft, allowed_text: str = "") -> ScriptDraft:
    return ScriptDraft(
        title=sanitize_identity_text(draft.title, allowed_text).strip(),
        content=sanitize_identity_text(draft.content, allowed_text),
    )


def has_shorten_intent(prompt: str) -> bool:
    return bool(SHORTEN_INTENT_RE.search(normalize_for_matching(prompt)))


def sanitize_adjusted_script(original: str, revised: str, prompt: str) -> Tuple[str, bool]:
    """
    Reject over-aggressive revisions.

    Returns (content, reverted). The original is kept when the revision is
    not a technical script, lost more than 45% of the length and the
    request never asked for a shorter text.
    """
    if not revised.strip():
        return original, True
    shrank = len(revised.strip()) < len(original.strip()) * MIN_KEPT_RATIO
    if not is_technical_script(revised) and shrank and not has_shorten_intent(prompt):
        logger.warning(
            f"Reverting adjusted script: {len(original)} -> {len(revised)} chars without shorten intent"
        )
        return original, True
    return revised, False


def normalize_scene_replacement(replacement: str, segment: ScriptSegment) -> str:
    """
    Coerce a model replacement into a single scene block.

    Accepts a full block, a block wrapped in script tags, a block followed by
    extra scenes (only the first is used) or bare speech text. Missing
    fields are kept from the original scene.
    """
    text = WRAPPER_TAG_RE.sub("", replacement or "").strip()
    original_scenes = parse_technical_scenes(f"{SCRIPT_START_TAG}\n{segment.text}")
    if not original_scenes:
        return text

    original = original_scenes[0]
    blocks = list_scene_segments(text)
    if blocks:
        candidates = parse_technical_scenes(f"{SCRIPT_START_TAG}\n{blocks[0].text}")
        scene = candidates[0] if candidates else original.copy()
        for name in scene.missing_fields():
            setattr(scene, name, getattr(original, name))
        scene.heading = scene.heading or original.heading
    else:
        scene = original.copy()
        speech = re.sub(r"\s+", " ", text).strip().strip('"“”')
        if speech:
            scene.speech = speech
    return render_scene_block(scene, segment.index)


# ============================================================================
# Service
# ============================================================================

class ScriptGenerationService:
    """
    Service for generating and adjusting technical scripts.

    Model tier is chosen per call (see model_selection); a premium call that
    fails is retried once on the base model.
    """

    SYSTEM_PROMPT = """Você é roteirista de vídeos curtos (Reels) para criadores de conteúdo brasileiros.
Responda SEMPRE com um JSON válido.

O roteiro deve seguir exatamente esta gramática:
{start_tag}

[CENA 1: GANCHO]
{header}
{separator}
| 00-03s | enquadramento | ação/movimento | texto na tela | fala literal | direção de performance |

[CENA 2: CONTEXTO]
... (mesmo cabeçalho, separador e uma única linha de dados)

[CENA N: CTA]
...

{end_tag}

Regras:
- Entre 4 e 6 cenas. A última cena é sempre CTA com chamada explícita (comentar, salvar, compartilhar, seguir ou link).
- A coluna "Fala (literal)" traz exatamente o que o criador diz em voz alta, em primeira pessoa, falando com "você".
- Nunca escreva instruções na fala (por exemplo "mostre", "explique", "finalize").
- Ações com detalhes concretos: números, posição na tela, gestos.
- Não invente nomes, @perfis, #hashtags, marcas ou dados pessoais que não estejam no pedido.
- Use as legendas de referência apenas como estilo; não copie frases literalmente."""

    GENERATE_PROMPT = """Pedido do criador:
{prompt}

{context_block}

Devolva JSON no formato {{"title": "título curto (até 80 caracteres)", "content": "roteiro completo"}}."""

    ADJUST_PROMPT = """Roteiro atual:
Título: {title}
{content}

Pedido de ajuste:
{prompt}

{mode_instruction}

{context_block}

Devolva JSON no formato {{"title": "título", "content": "roteiro completo ajustado"}}."""

    SCOPED_ADJUST_PROMPT = """Roteiro atual (apenas contexto, não reescreva):
{content}

Trecho a ajustar ({description}):
{segment}

Pedido de ajuste:
{prompt}

Ajuste SOMENTE o trecho indicado, mantendo o mesmo formato (mesmo cabeçalho de cena e a mesma tabela).
Devolva JSON no formato {{"segment": "trecho ajustado"}}."""

    PATCH_INSTRUCTION = "Aplique apenas o ajuste pedido e preserve todo o resto do roteiro."
    REWRITE_INSTRUCTION = "Reescreva o roteiro inteiro do zero, mantendo o tema e o formato técnico."

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[Any] = None,
        tracker: Optional[PerformanceTracker] = None,
    ):
        """
        Initialize ScriptGenerationService.

        Args:
            api_key: Optional API key (defaults to OPENAI_API_KEY)
            client: Optional pre-built AsyncOpenAI-compatible client
            tracker: Latency tracker (defaults to the module-level one)
        """
        self.api_key = api_key or Config.get_openai_api_key()
        self.client = client
        self.tracker = tracker or get_performance_tracker()

        if self.client is None and self.api_key:
            self.client = AsyncOpenAI(api_key=self.api_key, timeout=Config.OPENAI_TIMEOUT_SECONDS)
        elif self.client is None:
            logger.warning("ScriptGenerationService initialized without API key, using local drafts")

    # =========================================================================
    # Generation
    # =========================================================================

    async def generate_script(self, prompt: str, context_block: Optional[str] = None) -> ScriptGenerationResult:
        """
        Generate a technical script from a creator request.

        Args:
            prompt: Creator request text
            context_block: Intelligence prompt block (categories, evidence, style)

        Returns:
            ScriptGenerationResult; never raises for model failures
        """
        if not (prompt or "").strip():
            raise ValueError("Prompt is required")

        selection = select_script_model_for_prompt(prompt, OPERATION_GENERATE)
        messages = self._messages(self.GENERATE_PROMPT.format(prompt=prompt.strip(), context_block=context_block or ""))

        model_used = None
        fallback_reason = None
        try:
            payload, model_used = await self._complete_json(messages, selection)
            draft = ScriptDraft(title=str(payload.get("title") or ""), content=str(payload.get("content") or ""))
        except ModelUnavailableError as e:
            logger.warning(f"Script generation using local fallback: {e}")
            fallback_reason = str(e)
            draft = ScriptDraft()

        draft = sanitize_script_identity_leakage(draft, allowed_text=prompt)
        outcome = enforce_technical_script_contract(draft, prompt)
        logger.info(
            f"Generated script ({outcome.quality.scene_count} scenes, "
            f"quality {outcome.quality.perceived_quality}, model {model_used or 'local'})"
        )
        return ScriptGenerationResult(
            draft=outcome.draft,
            quality=outcome.quality,
            contract=outcome.report,
            model_selection=selection,
            model_used=model_used,
            used_local_fallback=model_used is None,
            fallback_reason=fallback_reason,
        )

    # =========================================================================
    # Adjustment
    # =========================================================================

    async def adjust_script(
        self,
        prompt: str,
        title: str,
        content: str,
        context_block: Optional[str] = None,
        scope: Optional[ScriptAdjustScope] = None,
    ) -> ScriptGenerationResult:
        """
        Adjust an existing script.

        Args:
            prompt: Adjustment request
            title: Current title
            content: Current script (technical or legacy free-form)
            context_block: Optional intelligence prompt block
            scope: Pre-detected scope (detected from prompt when omitted)

        Returns:
            ScriptGenerationResult with adjust_meta

        Raises:
            ValueError: Empty prompt or content
            ScriptScopeNotFoundError: The targeted scene/paragraph doesn't exist
        """
        if not (prompt or "").strip():
            raise ValueError("Prompt is required")
        if not (content or "").strip():
            raise ValueError("Script content is required")

        scope = scope or detect_adjust_scope(prompt)
        if scope.mode == AdjustMode.NEW_SCRIPT:
            result = await self.generate_script(prompt, context_block)
            result.adjust_meta = AdjustMeta(
                scope=scope,
                content_length_before=len(content),
                content_length_after=len(result.draft.content),
            )
            return result

        legacy = not is_technical_script(content)
        working = convert_legacy_script_to_technical(content, prompt or title) if legacy else content
        if legacy:
            logger.info("Converted legacy script to technical format before adjustment")

        if scope.target.type != TargetType.NONE:
            segment = require_scoped_segment(working, scope.target)
            return await self._adjust_segment(prompt, title, working, content, segment, scope, legacy, context_block)
        return await self._adjust_full(prompt, title, working, content, scope, legacy, context_block)

    async def _adjust_segment(
        self,
        prompt: str,
        title: str,
        working: str,
        original: str,
        segment: ScriptSegment,
        scope: ScriptAdjustScope,
        legacy: bool,
        context_block: Optional[str],
    ) -> ScriptGenerationResult:
        selection = select_script_model_for_prompt(prompt, OPERATION_ADJUST)
        messages = self._messages(self.SCOPED_ADJUST_PROMPT.format(
            content=working,
            description=describe_target(scope.target),
            segment=segment.text,
            prompt=prompt.strip(),
        ), context_block)

        model_used = None
        fallback_reason = None
        merged = working
        allowed_text = f"{prompt}\n{original}\n{title}"
        try:
            payload, model_used = await self._complete_json(messages, selection)
            replacement = str(payload.get("segment") or payload.get("content") or "")
            if not replacement.strip():
                raise ModelUnavailableError("Model returned an empty segment")
            # only the replacement is sanitized; the rest of the script is merged back verbatim
            replacement = sanitize_identity_text(replacement, allowed_text)
            if segment.kind == "scene" or segment.heading:
                replacement = normalize_scene_replacement(replacement, segment)
            else:
                replacement = WRAPPER_TAG_RE.sub("", replacement).strip()
            merged = merge_scoped_segment(working, segment, replacement)
        except ModelUnavailableError as e:
            logger.warning(f"Scoped adjustment kept original content: {e}")
            fallback_reason = str(e)
            model_used = None

        draft = ScriptDraft(title=clamp_text(title, TITLE_MAX_LENGTH), content=merged)
        meta = AdjustMeta(
            scope=scope,
            segment_kind=segment.kind,
            segment_index=segment.index,
            segment_start=segment.start,
            segment_end=segment.end,
            legacy_converted=legacy,
            content_length_before=len(original),
            content_length_after=len(draft.content),
        )
        return ScriptGenerationResult(
            draft=draft,
            quality=evaluate_technical_script_quality(draft.content),
            contract=ContractReport(legacy_converted=legacy),
            model_selection=selection,
            model_used=model_used,
            used_local_fallback=model_used is None,
            fallback_reason=fallback_reason,
            adjust_meta=meta,
        )

    async def _adjust_full(
        self,
        prompt: str,
        title: str,
        working: str,
        original: str,
        scope: ScriptAdjustScope,
        legacy: bool,
        context_block: Optional[str],
    ) -> ScriptGenerationResult:
        selection = select_script_model_for_prompt(prompt, OPERATION_ADJUST)
        instruction = self.REWRITE_INSTRUCTION if scope.mode == AdjustMode.REWRITE_FULL else self.PATCH_INSTRUCTION
        messages = self._messages(self.ADJUST_PROMPT.format(
            title=title or "",
            content=working,
            prompt=prompt.strip(),
            mode_instruction=instruction,
            context_block=context_block or "",
        ))

        model_used = None
        fallback_reason = None
        reverted = False
        revised = None
        revised_title = title or ""
        try:
            payload, model_used = await self._complete_json(messages, selection)
            revised_title = str(payload.get("title") or title or "")
            content, reverted = sanitize_adjusted_script(working, str(payload.get("content") or ""), prompt)
            if not reverted:
                revised = content
        except ModelUnavailableError as e:
            logger.warning(f"Adjustment kept original content: {e}")
            fallback_reason = str(e)

        if revised is None:
            # kept content is returned as-is, without the contract polish
            draft = ScriptDraft(title=clamp_text(title or "", TITLE_MAX_LENGTH), content=working)
            quality = evaluate_technical_script_quality(working)
            report = ContractReport(legacy_converted=legacy)
        else:
            draft = sanitize_script_identity_leakage(
                ScriptDraft(title=revised_title, content=revised),
                allowed_text=f"{prompt}\n{original}\n{title}",
            )
            outcome = enforce_technical_script_contract(draft, prompt or title)
            outcome.report.legacy_converted = outcome.report.legacy_converted or legacy
            draft, quality, report = outcome.draft, outcome.quality, outcome.report

        meta = AdjustMeta(
            scope=scope,
            legacy_converted=legacy,
            revision_reverted=reverted,
            content_length_before=len(original),
            content_length_after=len(draft.content),
        )
        return ScriptGenerationResult(
            draft=draft,
            quality=quality,
            contract=report,
            model_selection=selection,
            model_used=model_used,
            used_local_fallback=model_used is None,
            fallback_reason=fallback_reason,
            adjust_meta=meta,
        )

    # =========================================================================
    # Model calls
    # =========================================================================

    def _messages(self, user_content: str, context_block: Optional[str] = None) -> List[Dict[str, str]]:
        system = self.SYSTEM_PROMPT.format(
            start_tag=SCRIPT_START_TAG,
            end_tag=SCRIPT_END_TAG,
            header=TABLE_HEADER,
            separator=TABLE_SEPARATOR,
        )
        if context_block:
            user_content = f"{user_content}\n\n{context_block}"
        return [{"role": "system", "content": system}, {"role": "user", "content": user_content}]

    async def _complete_json(
        self,
        messages: List[Dict[str, str]],
        selection: ModelSelection,
    ) -> Tuple[Dict[str, Any], str]:
        """
        Call the selected model, then the fallback model once.

        Returns:
            (parsed JSON payload, model that produced it)

        Raises:
            ModelUnavailableError: No client, or every attempt failed
        """
        if self.client is None:
            raise ModelUnavailableError("OpenAI client not configured")

        models = [selection.model]
        if selection.fallback_model and selection.fallback_model != selection.model:
            models.append(selection.fallback_model)

        last_error: Optional[Exception] = None
        for model in models:
            try:
                with self.tracker.track(STAGE_MODEL_CALL), get_logfire().span("scripts.model_call", model=model):
                    content = await asyncio.wait_for(
                        self._call_model(model, messages),
                        timeout=Config.OPENAI_TIMEOUT_SECONDS,
                    )
                return self._parse_json_response(content), model
            except Exception as e:
                last_error = e
                logger.error(f"Script model call failed ({model}): {e}")

        raise ModelUnavailableError(f"All model tiers failed: {last_error}")

    async def _call_model(self, model: str, messages: List[Dict[str, str]]) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=Config.OPENAI_TEMP,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""

    def _parse_json_response(self, content: str) -> Dict[str, Any]:
        """
        Parse JSON from LLM response, handling common formatting issues.

        Args:
            content: Raw response content

        Returns:
            Parsed JSON as dict
        """
        content = (content or "").strip()

        # Remove markdown code blocks if present
        if content.startswith("```"):
            lines = content.split("\n")
            start_idx = 1 if lines[0].startswith("```") else 0
            end_idx = len(lines) - 1 if lines[-1].strip() == "```" else len(lines)
            content = "\n".join(lines[start_idx:end_idx])

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as e:
            match = re.search(r"\{.*\}", content, re.DOTALL)
            if not match:
                logger.error(f"JSON parse error: {e}")
                logger.debug(f"Raw content: {content[:1000]}")
                raise ValueError(f"Failed to parse LLM response as JSON: {e}")
            try:
                parsed = json.loads(match.group(0))
            except json.JSONDecodeError as inner:
                logger.error(f"JSON parse error: {inner}")
                raise ValueError(f"Failed to parse LLM response as JSON: {inner}")

        if not isinstance(parsed, dict):
            raise ValueError("LLM response is not a JSON object")
        return parsed
