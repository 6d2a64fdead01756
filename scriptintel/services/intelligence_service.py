"""
Category Resolver & Evidence Retriever.

Fills the dimensions a request left open from the creator's historical
performance, then gathers supporting captions with a relaxation search: start
by requiring every resolved dimension to match and drop requirements until at
least MIN_EVIDENCE_SAMPLE captions qualify.

Ranking and evidence results are cached per creator/window (and selection)
with a TTL. Concurrent identical requests share one computation.

Usage:
    service = ScriptIntelligenceService()
    context = await service.build_context(creator_id, "Roteiro de humor sobre home office")
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..core.cache import SingleFlightTTLCache, make_cache_key
from ..core.config import Config
from ..core.observability import get_logfire
from .category_catalog import (
    DEFAULT_CATEGORIES,
    HUMOR_DEFAULTS,
    SHORT_VIDEO_FORMAT,
    category_label,
    category_query_values,
    normalize_category_id,
)
from .content_store import ContentMetricsStore
from .dna_profile import build_creator_dna_profile_from_captions
from .models import (
    DIMENSIONS,
    CaptionEvidence,
    CategorySelection,
    EvidenceResult,
    NarrativeIntent,
    PromptMode,
    RankedCategory,
    ScriptIntelligenceContext,
)
from .prompt_parser import parse_prompt
from .style_context import build_style_context
from .style_training_service import ScriptStyleProfileService
from .telemetry import (
    STAGE_EVIDENCE,
    STAGE_INTELLIGENCE_TOTAL,
    STAGE_RANKING,
    STAGE_STYLE_PROFILE,
    PerformanceTracker,
    get_performance_tracker,
)
from .text_features import build_style_example, normalize_for_matching

logger = logging.getLogger(__name__)

INTELLIGENCE_VERSION = "scripts_intelligence_v2"
RANKING_METRIC = "avg_total_interactions"
DEFAULT_LOOKBACK_DAYS = 180
TOP_CATEGORIES_LIMIT = 5
MIN_EVIDENCE_SAMPLE = 6
CANDIDATE_POOL_LIMIT = 240
EVIDENCE_RESULT_LIMIT = 30

DIMENSION_LABELS = {
    "proposal": "Proposta",
    "context": "Contexto",
    "format": "Formato",
    "tone": "Tom",
    "references": "Referências",
}


# ============================================================================
# Category resolution
# ============================================================================

def resolve_final_categories(
    prompt_mode: PromptMode,
    intent: NarrativeIntent,
    explicit: CategorySelection,
    ranked: Optional[Dict[str, List[RankedCategory]]] = None,
) -> CategorySelection:
    """
    Fill every dimension.

    Full prompts keep their explicit categories. Open/partial prompts fill gaps
    with humor defaults (when humor was asked for), then the top-ranked
    category, then the per-dimension default. Format is always the
    short-video format.
    """
    ranked = ranked or {}
    values: Dict[str, Optional[str]] = {
        dim: normalize_category_id(dim, explicit.get(dim)) for dim in DIMENSIONS
    }

    if prompt_mode != PromptMode.FULL:
        if intent.wants_humor:
            for dim, category_id in HUMOR_DEFAULTS.items():
                if not values[dim]:
                    values[dim] = category_id
        for dim in DIMENSIONS:
            if not values[dim]:
                candidates = ranked.get(dim) or []
                values[dim] = candidates[0].id if candidates else None

    for dim in DIMENSIONS:
        if not values[dim]:
            values[dim] = DEFAULT_CATEGORIES[dim]
    values["format"] = SHORT_VIDEO_FORMAT
    return CategorySelection(**values)


# ============================================================================
# Relaxation search
# ============================================================================

def build_relaxation_strategies(
    resolved: CategorySelection,
    explicit: CategorySelection,
) -> List[List[str]]:
    """
    Ordered dimension sets, strictest first, ending with no constraint.

    Each level requires a subset of the previous one, so widening is monotonic.
    The explicit-only level keeps only the explicitly requested dimensions
    among proposal/context, not every explicit dimension: an explicit format,
    tone or reference was already dropped by an earlier level, and adding it
    back would make this level stricter than the core level before it.
    """
    available = [dim for dim in DIMENSIONS if resolved.get(dim)]

    def without(*dropped: str) -> List[str]:
        return [dim for dim in available if dim not in dropped]

    core = [dim for dim in ("proposal", "context") if dim in available]
    candidates = [
        available,
        without("references"),
        without("references", "tone"),
        without("references", "tone", "format"),
        core,
        [dim for dim in core if explicit.get(dim)],
        [],
    ]

    strategies: List[List[str]] = []
    seen = set()
    for candidate in candidates:
        key = tuple(candidate)
        if key in seen:
            continue
        seen.add(key)
        strategies.append(list(candidate))
    return strategies


def _fold_category_value(value: str) -> str:
    return normalize_for_matching(value.replace("_", " "))


def caption_matches_strategy(
    caption: CaptionEvidence,
    resolved: CategorySelection,
    dimensions: Sequence[str],
) -> bool:
    """
    True when the caption carries the resolved category for every dimension.

    Stored values may be ids, labels or underscore/space variants.
    """
    for dim in dimensions:
        target = resolved.get(dim)
        if not target:
            continue
        if caption.categories.get(dim) == target:
            continue
        accepted = {_fold_category_value(v) for v in category_query_values(dim, target)}
        stored = {_fold_category_value(v) for v in caption.raw_categories.get(dim, [])}
        if not accepted & stored:
            return False
    return True


def with_caption_text(captions: Sequence[CaptionEvidence]) -> List[CaptionEvidence]:
    return [c for c in captions if (c.caption_text or "").strip()]


def select_evidence_from_pool(
    pool: Sequence[CaptionEvidence],
    resolved: CategorySelection,
    explicit: CategorySelection,
    strategies: Optional[List[List[str]]] = None,
    limit: int = EVIDENCE_RESULT_LIMIT,
) -> EvidenceResult:
    """
    Pick the strictest strategy with at least MIN_EVIDENCE_SAMPLE matches.

    Captions with no text never count as matches. When no strategy gets
    there, the one with the most matches wins (the stricter one on ties)
    and the result is flagged insufficient.
    """
    strategies = strategies if strategies is not None else build_relaxation_strategies(resolved, explicit)
    usable = with_caption_text(pool)
    tried: List[List[str]] = []
    chosen: Optional[Tuple[int, List[str], List[CaptionEvidence]]] = None
    best: Optional[Tuple[int, List[str], List[CaptionEvidence]]] = None

    for level, strategy in enumerate(strategies):
        matches = [c for c in usable if caption_matches_strategy(c, resolved, strategy)]
        tried.append(strategy)
        if len(matches) >= MIN_EVIDENCE_SAMPLE:
            chosen = (level, strategy, matches)
            break
        if best is None or len(matches) > len(best[2]):
            best = (level, strategy, matches)

    if chosen is None:
        chosen = best or (0, [], [])

    level, strategy, matches = chosen
    return EvidenceResult(
        captions=list(matches[:limit]),
        match_count=len(matches),
        pool_size=len(pool),
        relaxation_level=level,
        strategy=strategy,
        strategies_tried=tried,
        used_fallback_rules=level > 0,
        insufficient=len(matches) < MIN_EVIDENCE_SAMPLE,
    )


# ============================================================================
# Prompt block & snapshot
# ============================================================================

def build_intelligence_prompt_block(context: ScriptIntelligenceContext) -> str:
    """pt-BR context block injected into model prompts."""
    lines = ["CONTEXTO DE INTELIGÊNCIA DO CRIADOR:"]
    for dim in DIMENSIONS:
        category_id = context.resolved_categories.get(dim)
        if category_id:
            lines.append(f"- {DIMENSION_LABELS[dim]}: {category_label(dim, category_id)}")

    intent = context.parsed.intent
    if intent.subject_hint:
        lines.append(f"- Tema pedido: {intent.subject_hint}")
    if intent.wants_humor:
        lines.append("- O pedido quer humor: use situações cômicas reconhecíveis e timing de piada.")
    if intent.wants_engagement:
        lines.append("- Foco em engajamento: provoque comentários e compartilhamentos.")

    evidence = context.evidence
    if evidence.match_count:
        lines.append(
            f"- Baseado em {evidence.match_count} posts de melhor desempenho do criador "
            f"nos últimos {context.lookback_days} dias."
        )
        examples = [build_style_example(c.caption_text, limit=160) for c in evidence.captions[:3]]
        examples = [e for e in examples if e]
        if examples:
            lines.append("EXEMPLOS DE LEGENDAS QUE PERFORMARAM BEM (apenas referência de tom, não copie):")
            lines.extend(f'- "{example}"' for example in examples)

    lines.append("DIRETRIZES DE ESCRITA DO CRIADOR:")
    lines.extend(f"- {g}" for g in context.dna_profile.writing_guidelines)

    style = context.style_context
    if style is not None and style.has_enough_evidence and style.writing_guidelines:
        lines.append("ESTILO DOS ROTEIROS DO CRIADOR:")
        lines.extend(f"- {g}" for g in style.writing_guidelines)
    return "\n".join(lines)


def build_intelligence_prompt_snapshot(context: ScriptIntelligenceContext) -> Dict[str, Any]:
    """Compact, JSON-safe record of the context used for a generation."""
    evidence = context.evidence
    interactions = [c.interaction_count for c in evidence.captions]
    style = context.style_context
    return {
        "version": context.intelligence_version,
        "metric": context.metric,
        "lookback_days": context.lookback_days,
        "prompt_mode": context.parsed.prompt_mode.value,
        "explicit_categories": context.parsed.explicit_categories.model_dump(),
        "resolved_categories": context.resolved_categories.model_dump(),
        "ranked_categories": {
            dim: [c.id for c in ranked] for dim, ranked in context.ranked_categories.items()
        },
        "intent": context.parsed.intent.model_dump(),
        "evidence": {
            "match_count": evidence.match_count,
            "relaxation_level": evidence.relaxation_level,
            "strategy": evidence.strategy,
            "used_fallback_rules": evidence.used_fallback_rules,
            "second_pass_used": evidence.second_pass_used,
            "caption_ids": [c.id for c in evidence.captions[:10]],
            "avg_interactions": round(sum(interactions) / len(interactions), 2) if interactions else 0.0,
        },
        "dna": {
            "sample_size": context.dna_profile.sample_size,
            "has_enough_evidence": context.dna_profile.has_enough_evidence,
        },
        "style": {
            "profile_version": style.profile_version,
            "sample_size": style.sample_size,
            "has_enough_evidence": style.has_enough_evidence,
        } if style else None,
        "timings_ms": dict(context.timings_ms),
    }


# ============================================================================
# Service
# ============================================================================

class ScriptIntelligenceService:
    """Builds the intelligence context for a script request."""

    def __init__(
        self,
        content_store: Optional[ContentMetricsStore] = None,
        style_service: Optional[ScriptStyleProfileService] = None,
        tracker: Optional[PerformanceTracker] = None,
        ranking_cache: Optional[SingleFlightTTLCache] = None,
        evidence_cache: Optional[SingleFlightTTLCache] = None,
    ):
        """
        Args:
            content_store: Historical content repository (Supabase by default)
            style_service: Style profile service; None disables style context
            tracker: Latency tracker (process-wide by default)
            ranking_cache: Cache for ranked categories
            evidence_cache: Cache for caption evidence
        """
        self.store = content_store or ContentMetricsStore()
        self.style_service = style_service
        self.tracker = tracker or get_performance_tracker()
        self.ranking_cache = ranking_cache or SingleFlightTTLCache(
            "ranking", Config.SCRIPTS_CACHE_TTL_SECONDS, Config.SCRIPTS_RANKING_CACHE_MAX
        )
        self.evidence_cache = evidence_cache or SingleFlightTTLCache(
            "evidence", Config.SCRIPTS_CACHE_TTL_SECONDS, Config.SCRIPTS_EVIDENCE_CACHE_MAX
        )

    @staticmethod
    def build_window(lookback_days: int, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
        end = now or datetime.now(timezone.utc)
        return end - timedelta(days=lookback_days), end

    @staticmethod
    def _window_key(start: datetime, end: datetime) -> str:
        return f"{start.date().isoformat()}:{end.date().isoformat()}"

    async def fetch_ranked_categories(
        self,
        creator_id: str,
        start: datetime,
        end: datetime,
    ) -> Dict[str, List[RankedCategory]]:
        """Top categories per dimension; cached and coalesced per creator/window."""
        key = make_cache_key("ranking", creator_id, self._window_key(start, end))
        return await self.ranking_cache.get_or_compute(
            key, lambda: self._compute_ranking(creator_id, start, end)
        )

    async def _compute_ranking(
        self,
        creator_id: str,
        start: datetime,
        end: datetime,
    ) -> Dict[str, List[RankedCategory]]:
        results = await asyncio.gather(
            *(
                self.store.fetch_ranked_categories(creator_id, dim, start, end, limit=TOP_CATEGORIES_LIMIT)
                for dim in DIMENSIONS
            ),
            return_exceptions=True,
        )
        ranked: Dict[str, List[RankedCategory]] = {}
        for dim, result in zip(DIMENSIONS, results):
            if isinstance(result, BaseException):
                logger.warning(f"Category ranking failed for creator {creator_id}, dimension {dim}: {result}")
                ranked[dim] = []
            else:
                ranked[dim] = list(result)
        return ranked

    async def fetch_caption_evidence(
        self,
        creator_id: str,
        start: datetime,
        end: datetime,
        resolved: CategorySelection,
        explicit: CategorySelection,
    ) -> EvidenceResult:
        """Relaxation search; cached and coalesced per creator/window/selection."""
        key = make_cache_key(
            "evidence",
            creator_id,
            self._window_key(start, end),
            resolved.model_dump(),
            explicit.model_dump(),
        )
        return await self.evidence_cache.get_or_compute(
            key, lambda: self._compute_evidence(creator_id, start, end, resolved, explicit)
        )

    async def _compute_evidence(
        self,
        creator_id: str,
        start: datetime,
        end: datetime,
        resolved: CategorySelection,
        explicit: CategorySelection,
    ) -> EvidenceResult:
        try:
            pool = await self.store.fetch_caption_candidates(
                creator_id, start, end, limit=CANDIDATE_POOL_LIMIT
            )
        except Exception as e:
            logger.warning(f"Caption candidate query failed for creator {creator_id}: {e}")
            pool = []

        strategies = build_relaxation_strategies(resolved, explicit)
        result = select_evidence_from_pool(pool, resolved, explicit, strategies)

        # A capped pool can hide matches for stricter strategies; ask the store directly.
        if result.used_fallback_rules and len(pool) >= CANDIDATE_POOL_LIMIT:
            second = await self._second_pass(
                creator_id, start, end, resolved, strategies[:result.relaxation_level]
            )
            if second is not None:
                level, strategy, captions = second
                result = EvidenceResult(
                    captions=captions[:EVIDENCE_RESULT_LIMIT],
                    match_count=len(captions),
                    pool_size=len(pool),
                    relaxation_level=level,
                    strategy=strategy,
                    strategies_tried=result.strategies_tried,
                    used_fallback_rules=level > 0,
                    second_pass_used=True,
                    insufficient=False,
                )

        if result.used_fallback_rules:
            logger.info(
                f"Evidence for creator {creator_id} relaxed to level {result.relaxation_level} "
                f"({result.strategy or 'no constraint'}), {result.match_count} matches"
            )
        if result.insufficient:
            logger.warning(
                f"Only {result.match_count} captions for creator {creator_id} after full relaxation"
            )
        return result

    async def _second_pass(
        self,
        creator_id: str,
        start: datetime,
        end: datetime,
        resolved: CategorySelection,
        stricter: List[List[str]],
    ) -> Optional[Tuple[int, List[str], List[CaptionEvidence]]]:
        for level, strategy in enumerate(stricter):
            filters = {dim: category_query_values(dim, resolved.get(dim)) for dim in strategy}
            try:
                captions = await self.store.fetch_caption_candidates(
                    creator_id, start, end, filters=filters, limit=EVIDENCE_RESULT_LIMIT
                )
            except Exception as e:
                logger.warning(f"Second-pass evidence query failed at level {level}: {e}")
                continue
            captions = with_caption_text(captions)
            if len(captions) >= MIN_EVIDENCE_SAMPLE:
                return level, strategy, captions
        return None

    async def build_context(
        self,
        creator_id: str,
        prompt: str,
        lookback_days: Optional[int] = None,
        include_style: bool = True,
        now: Optional[datetime] = None,
    ) -> ScriptIntelligenceContext:
        """
        Parse the request and gather everything known about the creator.

        Args:
            creator_id: Creator the script is for
            prompt: Free-text request
            lookback_days: History window (defaults to SCRIPTS_LOOKBACK_DAYS)
            include_style: Load the persisted style profile
            now: Window end, for tests

        Returns:
            ScriptIntelligenceContext
        """
        lookback = lookback_days or Config.SCRIPTS_LOOKBACK_DAYS or DEFAULT_LOOKBACK_DAYS
        start, end = self.build_window(lookback, now)
        parsed = parse_prompt(prompt)
        timings: Dict[str, float] = {}

        with get_logfire().span("scripts.intelligence_context", creator_id=creator_id):
            with self.tracker.track(STAGE_INTELLIGENCE_TOTAL) as total:
                ranked: Dict[str, List[RankedCategory]] = {}
                if parsed.prompt_mode != PromptMode.FULL:
                    with self.tracker.track(STAGE_RANKING) as timing:
                        ranked = await self.fetch_ranked_categories(creator_id, start, end)
                    timings["ranking_ms"] = round(timing["ms"], 2)

                resolved = resolve_final_categories(
                    parsed.prompt_mode, parsed.intent, parsed.explicit_categories, ranked
                )

                with self.tracker.track(STAGE_EVIDENCE) as timing:
                    evidence = await self.fetch_caption_evidence(
                        creator_id, start, end, resolved, parsed.explicit_categories
                    )
                timings["evidence_ms"] = round(timing["ms"], 2)

                dna = build_creator_dna_profile_from_captions(evidence.captions)

                style_context = None
                if include_style and self.style_service is not None:
                    with self.tracker.track(STAGE_STYLE_PROFILE) as timing:
                        try:
                            profile = await self.style_service.get_profile(creator_id)
                            style_context = build_style_context(profile)
                        except Exception as e:
                            logger.warning(f"Style profile unavailable for creator {creator_id}: {e}")
                    timings["style_profile_ms"] = round(timing["ms"], 2)
            timings["total_ms"] = round(total["ms"], 2)

        logger.info(
            f"Built intelligence context for creator {creator_id}: mode={parsed.prompt_mode.value}, "
            f"evidence={evidence.match_count} (level {evidence.relaxation_level}), "
            f"dna_sample={dna.sample_size}, total={timings['total_ms']}ms"
        )

        return ScriptIntelligenceContext(
            creator_id=creator_id,
            prompt=prompt,
            parsed=parsed,
            resolved_categories=resolved,
            ranked_categories=ranked,
            evidence=evidence,
            dna_profile=dna,
            style_context=style_context,
            lookback_days=lookback,
            window_start=start,
            window_end=end,
            timings_ms=timings,
            intelligence_version=INTELLIGENCE_VERSION,
            metric=RANKING_METRIC,
        )
