"""
Pydantic models for the script intelligence pipeline.

These models provide validated data structures for:
- Category selections across the five script dimensions
- Prompt intent (mode, narrative intent)
- Historical caption evidence and the relaxation search result
- Creator DNA and style profiles
- Script drafts, adjustment scopes and resolved segments
- Quality scores, model selection and generation results

All models use Pydantic v2.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


DIMENSIONS = ("proposal", "context", "format", "tone", "references")


# ============================================================================
# Categories & Prompt Intent
# ============================================================================

class CategorySelection(BaseModel):
    """
    One optional catalog id per dimension.

    Values are always canonical catalog ids; free-text synonyms are resolved
    before they get here.
    """
    proposal: Optional[str] = None
    context: Optional[str] = None
    format: Optional[str] = None
    tone: Optional[str] = None
    references: Optional[str] = None

    def get(self, dimension: str) -> Optional[str]:
        return getattr(self, dimension)

    def with_value(self, dimension: str, value: Optional[str]) -> "CategorySelection":
        return self.model_copy(update={dimension: value})

    def filled_dimensions(self) -> List[str]:
        return [dim for dim in DIMENSIONS if getattr(self, dim)]

    def missing_dimensions(self) -> List[str]:
        return [dim for dim in DIMENSIONS if not getattr(self, dim)]


class RankedCategory(BaseModel):
    """A category ranked by mean engagement within a lookback window."""
    id: str
    label: str
    avg_interactions: float = 0.0
    post_count: int = 0


class PromptMode(str, Enum):
    """How many dimensions the request named explicitly."""
    OPEN = "open"
    PARTIAL = "partial"
    FULL = "full"


class NarrativeIntent(BaseModel):
    """Humor/engagement intent and subject hint; fixed once extracted."""
    model_config = ConfigDict(frozen=True)

    wants_humor: bool = False
    wants_engagement: bool = False
    subject_hint: Optional[str] = None


class ParsedPrompt(BaseModel):
    explicit_categories: CategorySelection = Field(default_factory=CategorySelection)
    prompt_mode: PromptMode = PromptMode.OPEN
    intent: NarrativeIntent = Field(default_factory=NarrativeIntent)
    matched_terms: Dict[str, str] = Field(default_factory=dict, description="Dimension -> matched prompt term")


# ============================================================================
# Evidence
# ============================================================================

class CaptionEvidence(BaseModel):
    """One historical content item of the creator (read-only)."""
    id: str
    caption_text: str = ""
    interaction_count: float = Field(default=0.0, ge=0)
    post_date: Optional[datetime] = None
    categories: CategorySelection = Field(default_factory=CategorySelection)
    raw_categories: Dict[str, List[str]] = Field(
        default_factory=dict,
        description="Stored category values per dimension, as found in the store",
    )


class EvidenceResult(BaseModel):
    """Outcome of the relaxation search."""
    captions: List[CaptionEvidence] = Field(default_factory=list)
    match_count: int = 0
    pool_size: int = 0
    relaxation_level: int = 0
    strategy: List[str] = Field(default_factory=list, description="Dimensions required by the winning strategy")
    strategies_tried: List[List[str]] = Field(default_factory=list)
    used_fallback_rules: bool = False
    second_pass_used: bool = False
    insufficient: bool = False


# ============================================================================
# Creator Profiles
# ============================================================================

class CreatorDnaProfile(BaseModel):
    """Request-scoped writing profile built from captions; never persisted."""
    sample_size: int = 0
    has_enough_evidence: bool = False
    average_sentence_length: float = 0.0
    emoji_density: float = 0.0
    opening_patterns: List[str] = Field(default_factory=list)
    cta_patterns: List[str] = Field(default_factory=list)
    recurring_expressions: List[str] = Field(default_factory=list)
    writing_guidelines: List[str] = Field(default_factory=list)


class ScriptSource(str, Enum):
    MANUAL = "manual"
    AI = "ai"
    PLANNER = "planner"


class StyleTrainingEntry(BaseModel):
    """A creator's historical script as used for style training."""
    id: str
    source: ScriptSource = ScriptSource.MANUAL
    content: str = ""
    ai_version_id: Optional[str] = None
    base_text: Optional[str] = Field(None, description="Original AI-generated text, for ai entries")
    is_admin_recommendation: bool = False
    updated_at: Optional[datetime] = None


class NarrativeCadence(BaseModel):
    """Average characters in the opening, middle and closing paragraphs."""
    opening: float = 0.0
    middle: float = 0.0
    closing: float = 0.0


class StyleSignals(BaseModel):
    avg_paragraphs: float = 0.0
    avg_sentence_length: float = 0.0
    emoji_density: float = 0.0
    question_rate: float = 0.0
    exclamation_rate: float = 0.0
    narrative_cadence: NarrativeCadence = Field(default_factory=NarrativeCadence)
    hook_patterns: List[str] = Field(default_factory=list)
    cta_patterns: List[str] = Field(default_factory=list)
    humor_markers: List[str] = Field(default_factory=list)
    recurring_expressions: List[str] = Field(default_factory=list)


class SourceMix(BaseModel):
    manual: int = 0
    ai: int = 0
    planner: int = 0


class ExclusionStats(BaseModel):
    """Why entries were left out of a style profile build."""
    considered: int = 0
    admin_recommendation: int = 0
    too_short: int = 0
    duplicate: int = 0
    over_cap: int = 0

    @property
    def total_excluded(self) -> int:
        return self.admin_recommendation + self.too_short + self.duplicate + self.over_cap


class CreatorStyleProfile(BaseModel):
    """Persisted, versioned style profile keyed by creator."""
    profile_version: str
    creator_id: Optional[str] = None
    sample_size: int = 0
    last_script_at: Optional[datetime] = None
    source_mix: SourceMix = Field(default_factory=SourceMix)
    style_signals: Optional[StyleSignals] = None
    style_examples: List[str] = Field(default_factory=list)
    exclusion_stats: ExclusionStats = Field(default_factory=ExclusionStats)
    updated_at: Optional[datetime] = None


class StyleContext(BaseModel):
    """Prompt-ready view of a style profile."""
    has_enough_evidence: bool = False
    sample_size: int = 0
    profile_version: Optional[str] = None
    writing_guidelines: List[str] = Field(default_factory=list)
    style_signals_used: Dict[str, Any] = Field(default_factory=dict)
    style_examples: List[str] = Field(default_factory=list)
    avg_sentence_length: float = 0.0
    emoji_density: float = 0.0
    cta_patterns: List[str] = Field(default_factory=list)
    hook_patterns: List[str] = Field(default_factory=list)


# ============================================================================
# Scripts, Scopes & Segments
# ============================================================================

class ScriptDraft(BaseModel):
    title: str = ""
    content: str = ""


class AdjustMode(str, Enum):
    PATCH = "patch"
    REWRITE_FULL = "rewrite_full"
    NEW_SCRIPT = "new_script"


class TargetType(str, Enum):
    NONE = "none"
    SCENE = "scene"
    PARAGRAPH = "paragraph"
    FIRST_PARAGRAPH = "first_paragraph"
    LAST_PARAGRAPH = "last_paragraph"


class ScopeTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: TargetType = TargetType.NONE
    index: Optional[int] = Field(None, ge=1, description="1-based scene/paragraph number")


class ScriptAdjustScope(BaseModel):
    mode: AdjustMode = AdjustMode.PATCH
    target: ScopeTarget = Field(default_factory=ScopeTarget)
    is_partial_edit: bool = False
    raw_prompt: str = ""


class ScriptSegment(BaseModel):
    """A char-offset slice ``content[start:end]`` of a script."""
    kind: Literal["scene", "paragraph"]
    index: int
    start: int
    end: int
    text: str
    heading: Optional[str] = None


# ============================================================================
# Quality, Model Selection & Results
# ============================================================================

class TechnicalScriptQualityScore(BaseModel):
    perceived_quality: float = Field(0.0, ge=0, le=1)
    hook_strength: float = Field(0.0, ge=0, le=1)
    specificity_score: float = Field(0.0, ge=0, le=1)
    speakability_score: float = Field(0.0, ge=0, le=1)
    cta_strength: float = Field(0.0, ge=0, le=1)
    diversity_score: float = Field(0.0, ge=0, le=1)
    scene_count: int = 0


class ModelTier(str, Enum):
    BASE = "base"
    PREMIUM = "premium"


class ModelSelection(BaseModel):
    model: str
    tier: ModelTier
    reason: str
    complexity_score: int = 0
    fallback_model: Optional[str] = None


class ContractReport(BaseModel):
    """What the contract engine changed, per scene (1-based) and field."""
    legacy_converted: bool = False
    polish_applied: bool = False
    regenerated_from_defaults: bool = False
    synthesized_fields: Dict[int, List[str]] = Field(default_factory=dict)
    synthesized_scenes: List[int] = Field(default_factory=list)
    quality_before_polish: Optional[TechnicalScriptQualityScore] = None


class AdjustMeta(BaseModel):
    scope: ScriptAdjustScope
    segment_kind: Optional[str] = None
    segment_index: Optional[int] = None
    segment_start: Optional[int] = None
    segment_end: Optional[int] = None
    legacy_converted: bool = False
    revision_reverted: bool = False
    content_length_before: int = 0
    content_length_after: int = 0


class ScriptGenerationResult(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    draft: ScriptDraft
    quality: TechnicalScriptQualityScore
    contract: ContractReport = Field(default_factory=ContractReport)
    model_selection: Optional[ModelSelection] = None
    model_used: Optional[str] = None
    used_local_fallback: bool = False
    fallback_reason: Optional[str] = None
    adjust_meta: Optional[AdjustMeta] = None


class ScriptIntelligenceContext(BaseModel):
    """Everything the orchestrator knows about a creator for one request."""
    creator_id: str
    prompt: str
    parsed: ParsedPrompt
    resolved_categories: CategorySelection
    ranked_categories: Dict[str, List[RankedCategory]] = Field(default_factory=dict)
    evidence: EvidenceResult = Field(default_factory=EvidenceResult)
    dna_profile: CreatorDnaProfile = Field(default_factory=CreatorDnaProfile)
    style_context: Optional[StyleContext] = None
    lookback_days: int = 180
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    timings_ms: Dict[str, float] = Field(default_factory=dict)
    intelligence_version: str = "scripts_intelligence_v2"
    metric: str = "avg_total_interactions"
