"""
Observability & Telemetry for script generation.

Provides:
- PerformanceTracker: rolling per-stage latency windows (p50/p95/avg/last)
- build_script_output_diagnostics: per-call diagnostics derived from a result
- log_scripts_generation_observability: emits the diagnostics event to the
  standard logger and to Logfire
"""

import logging
import time
from collections import deque
from contextlib import contextmanager
from typing import Any, Deque, Dict, Iterator, List, Optional

import numpy as np
from pydantic import BaseModel, Field

from ..core.config import Config
from ..core.observability import get_logfire
from .models import CategorySelection, ScriptGenerationResult, ScriptIntelligenceContext
from .script_format import parse_technical_scenes
from .style_context import compute_style_similarity_score
from .text_features import has_call_to_action, normalize_script_content, split_paragraphs

logger = logging.getLogger(__name__)

STAGE_INTELLIGENCE_TOTAL = "intelligence_context_total"
STAGE_RANKING = "ranking"
STAGE_EVIDENCE = "evidence_fetch"
STAGE_STYLE_PROFILE = "style_profile_load"
STAGE_MODEL_CALL = "model_call"

TRACKED_STAGES = (
    STAGE_INTELLIGENCE_TOTAL,
    STAGE_RANKING,
    STAGE_EVIDENCE,
    STAGE_STYLE_PROFILE,
    STAGE_MODEL_CALL,
)


# ============================================================================
# Latency tracking
# ============================================================================

class PerformanceTracker:
    """Bounded latency samples per pipeline stage."""

    def __init__(self, window: Optional[int] = None):
        self.window = window or Config.SCRIPTS_PERF_WINDOW
        self._samples: Dict[str, Deque[float]] = {}

    def record(self, stage: str, duration_ms: float) -> None:
        samples = self._samples.get(stage)
        if samples is None:
            samples = self._samples[stage] = deque(maxlen=self.window)
        samples.append(max(0.0, float(duration_ms)))

    @contextmanager
    def track(self, stage: str) -> Iterator[Dict[str, float]]:
        """
        Time a block and record it under ``stage``.

        Yields a dict whose ``ms`` key holds the duration once the block exits.
        Failed blocks are recorded too.
        """
        timing: Dict[str, float] = {}
        started = time.perf_counter()
        try:
            yield timing
        finally:
            timing["ms"] = (time.perf_counter() - started) * 1000
            self.record(stage, timing["ms"])

    def stage_snapshot(self, stage: str) -> Optional[Dict[str, float]]:
        samples = self._samples.get(stage)
        if not samples:
            return None
        values = np.array(samples, dtype=float)
        return {
            "count": int(values.size),
            "p50": round(float(np.percentile(values, 50)), 2),
            "p95": round(float(np.percentile(values, 95)), 2),
            "avg": round(float(values.mean()), 2),
            "last": round(float(values[-1]), 2),
        }

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        result = {}
        for stage in list(TRACKED_STAGES) + sorted(set(self._samples) - set(TRACKED_STAGES)):
            stage_stats = self.stage_snapshot(stage)
            if stage_stats is not None:
                result[stage] = stage_stats
        return result

    def reset(self) -> None:
        self._samples.clear()


_performance_tracker: Optional[PerformanceTracker] = None


def get_performance_tracker() -> PerformanceTracker:
    """Process-wide tracker (singleton pattern)."""
    global _performance_tracker
    if _performance_tracker is None:
        _performance_tracker = PerformanceTracker()
    return _performance_tracker


# ============================================================================
# Diagnostics
# ============================================================================

class ScriptOutputDiagnostics(BaseModel):
    operation: str
    prompt_length: int = 0
    title_length: int = 0
    content_length: int = 0
    paragraph_count: int = 0
    scene_count: int = 0
    has_cta: bool = False

    # Categories
    prompt_mode: Optional[str] = None
    explicit_categories: Dict[str, Optional[str]] = Field(default_factory=dict)
    resolved_categories: Dict[str, Optional[str]] = Field(default_factory=dict)
    category_compliance_rate: Optional[float] = None

    # Evidence & profiles
    evidence_match_count: int = 0
    evidence_relaxation_level: Optional[int] = None
    evidence_used_fallback_rules: bool = False
    dna_sample_size: int = 0
    dna_has_enough_evidence: bool = False
    style_sample_size: int = 0
    style_has_enough_evidence: bool = False
    style_similarity_score: Optional[float] = None

    # Adjustments
    scope_mode: Optional[str] = None
    scope_target_type: Optional[str] = None
    scope_target_index: Optional[int] = None
    legacy_converted: bool = False
    revision_reverted: bool = False
    content_length_delta: Optional[int] = None

    # Quality & contract
    perceived_quality: float = 0.0
    hook_strength: float = 0.0
    specificity_score: float = 0.0
    speakability_score: float = 0.0
    cta_strength: float = 0.0
    diversity_score: float = 0.0
    polish_applied: bool = False
    regenerated_from_defaults: bool = False
    synthesized_scenes: List[int] = Field(default_factory=list)
    synthesized_field_count: int = 0

    # Model
    model_used: Optional[str] = None
    model_tier: Optional[str] = None
    model_selection_reason: Optional[str] = None
    used_local_fallback: bool = False
    fallback_reason: Optional[str] = None


def category_compliance_rate(explicit: CategorySelection, resolved: CategorySelection) -> Optional[float]:
    """Share of explicitly requested dimensions kept in the resolved selection."""
    requested = explicit.filled_dimensions()
    if not requested:
        return None
    kept = sum(1 for dim in requested if resolved.get(dim) == explicit.get(dim))
    return round(kept / len(requested), 4)


def build_script_output_diagnostics(
    operation: str,
    prompt: str,
    result: ScriptGenerationResult,
    context: Optional[ScriptIntelligenceContext] = None,
    previous_content: Optional[str] = None,
) -> ScriptOutputDiagnostics:
    """
    Derive diagnostics for one create/adjust call.

    Args:
        operation: "create" or "adjust"
        prompt: User request text
        result: Generation result
        context: Intelligence context, when one was built
        previous_content: Script content before an adjustment
    """
    draft = result.draft
    spoken = normalize_script_content(draft.content)
    quality = result.quality
    contract = result.contract

    diagnostics = ScriptOutputDiagnostics(
        operation=operation,
        prompt_length=len(prompt or ""),
        title_length=len(draft.title or ""),
        content_length=len(draft.content or ""),
        paragraph_count=len(split_paragraphs(spoken)),
        scene_count=len(parse_technical_scenes(draft.content)),
        has_cta=has_call_to_action(spoken),
        perceived_quality=quality.perceived_quality,
        hook_strength=quality.hook_strength,
        specificity_score=quality.specificity_score,
        speakability_score=quality.speakability_score,
        cta_strength=quality.cta_strength,
        diversity_score=quality.diversity_score,
        polish_applied=contract.polish_applied,
        regenerated_from_defaults=contract.regenerated_from_defaults,
        legacy_converted=contract.legacy_converted,
        synthesized_scenes=list(contract.synthesized_scenes),
        synthesized_field_count=sum(len(names) for names in contract.synthesized_fields.values()),
        model_used=result.model_used,
        model_tier=result.model_selection.tier.value if result.model_selection else None,
        model_selection_reason=result.model_selection.reason if result.model_selection else None,
        used_local_fallback=result.used_local_fallback,
        fallback_reason=result.fallback_reason,
    )

    if context is not None:
        explicit = context.parsed.explicit_categories
        diagnostics.prompt_mode = context.parsed.prompt_mode.value
        diagnostics.explicit_categories = explicit.model_dump()
        diagnostics.resolved_categories = context.resolved_categories.model_dump()
        diagnostics.category_compliance_rate = category_compliance_rate(explicit, context.resolved_categories)
        diagnostics.evidence_match_count = context.evidence.match_count
        diagnostics.evidence_relaxation_level = context.evidence.relaxation_level
        diagnostics.evidence_used_fallback_rules = context.evidence.used_fallback_rules
        diagnostics.dna_sample_size = context.dna_profile.sample_size
        diagnostics.dna_has_enough_evidence = context.dna_profile.has_enough_evidence
        if context.style_context is not None:
            diagnostics.style_sample_size = context.style_context.sample_size
            diagnostics.style_has_enough_evidence = context.style_context.has_enough_evidence
            diagnostics.style_similarity_score = compute_style_similarity_score(
                draft.content, context.style_context
            )

    meta = result.adjust_meta
    if meta is not None:
        diagnostics.scope_mode = meta.scope.mode.value
        diagnostics.scope_target_type = meta.scope.target.type.value
        diagnostics.scope_target_index = meta.scope.target.index
        diagnostics.revision_reverted = meta.revision_reverted
        diagnostics.legacy_converted = diagnostics.legacy_converted or meta.legacy_converted
    if previous_content is not None:
        diagnostics.content_length_delta = len(draft.content or "") - len(previous_content)

    return diagnostics


def log_scripts_generation_observability(
    creator_id: str,
    operation: str,
    diagnostics: ScriptOutputDiagnostics,
    script_id: Optional[str] = None,
    version_id: Optional[str] = None,
    tracker: Optional[PerformanceTracker] = None,
) -> Dict[str, Any]:
    """
    Emit the diagnostics event.

    Returns:
        The event payload (creator, operation, ids, diagnostics, performance)
    """
    payload: Dict[str, Any] = {
        "creator_id": creator_id,
        "operation": operation,
        "script_id": script_id,
        "version_id": version_id,
        "diagnostics": diagnostics.model_dump(mode="json"),
        "performance": (tracker or get_performance_tracker()).snapshot(),
    }

    logger.info(
        f"scripts.generation operation={operation} creator={creator_id} "
        f"quality={diagnostics.perceived_quality:.2f} scenes={diagnostics.scene_count} "
        f"fallback={diagnostics.used_local_fallback}",
        extra={"scripts_diagnostics": payload},
    )
    get_logfire().info("scripts.generation {operation}", **payload)
    return payload
