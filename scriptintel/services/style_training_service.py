"""
Creator Style Profile Trainer.

Aggregates a creator's own past scripts into a persisted, versioned style
profile. Entries are weighted by source trust (manual > ai > planner) plus a
bonus for how much the creator rewrote an AI-generated base.

Usage:
    service = ScriptStyleProfileService()
    profile = await service.get_profile(creator_id)    # builds when missing/corrupted
    service.schedule_refresh(creator_id)               # fire-and-forget rebuild
"""

import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set, Union

from pydantic import ValidationError

from .content_store import ScriptStore
from .models import (
    CreatorStyleProfile,
    ExclusionStats,
    NarrativeCadence,
    ScriptSource,
    SourceMix,
    StyleSignals,
    StyleTrainingEntry,
)
from .text_features import (
    ScriptStyleFeatures,
    build_style_example,
    extract_script_style_features,
    normalize_for_matching,
    normalize_script_content,
    tokenize,
)

logger = logging.getLogger(__name__)

STYLE_PROFILE_VERSION = "scripts_style_profile_v1"
MIN_CONTENT_LENGTH = 160
MAX_PROFILE_ENTRIES = 240
TRAINING_FETCH_MULTIPLIER = 3
MAX_STYLE_EXAMPLES = 12

SOURCE_WEIGHTS = {
    ScriptSource.MANUAL: 1.0,
    ScriptSource.AI: 0.7,
    ScriptSource.PLANNER: 0.6,
}
MAX_REWRITE_BONUS = 0.25

TOP_HOOK_PATTERNS = 6
TOP_CTA_PATTERNS = 6
TOP_HUMOR_MARKERS = 10
TOP_RECURRING_EXPRESSIONS = 20


# ============================================================================
# Pure builder
# ============================================================================

def estimate_rewrite_ratio(base_text: str, edited_text: str) -> float:
    """
    How much of an AI base the creator rewrote, in [0, 1].

    Multiset token overlap: ``1 - overlap / max(len_a, len_b)``.
    """
    base_tokens = Counter(tokenize(normalize_script_content(base_text)))
    edited_tokens = Counter(tokenize(normalize_script_content(edited_text)))
    longest = max(sum(base_tokens.values()), sum(edited_tokens.values()))
    if longest == 0:
        return 0.0
    overlap = sum((base_tokens & edited_tokens).values())
    return max(0.0, min(1.0, 1 - overlap / longest))


def entry_weight(entry: StyleTrainingEntry) -> float:
    weight = SOURCE_WEIGHTS.get(entry.source, SOURCE_WEIGHTS[ScriptSource.MANUAL])
    if entry.base_text:
        weight += MAX_REWRITE_BONUS * estimate_rewrite_ratio(entry.base_text, entry.content)
    return weight


def _timestamp(entry: StyleTrainingEntry) -> float:
    return entry.updated_at.timestamp() if entry.updated_at else float("-inf")


def _weighted_top(tallies: Dict[str, float], limit: int) -> List[str]:
    # dict keeps first-seen order, so ties resolve to the more recent entry
    ranked = sorted(tallies.items(), key=lambda item: -item[1])
    return [key for key, _ in ranked[:limit]]


def _weighted_mean(values: List[float], weights: List[float]) -> float:
    total = sum(weights)
    if total <= 0:
        return 0.0
    return sum(v * w for v, w in zip(values, weights)) / total


def build_style_profile_from_entries(
    entries: Sequence[StyleTrainingEntry],
    creator_id: Optional[str] = None,
) -> CreatorStyleProfile:
    """
    Build a style profile from script entries.

    Steps: sort newest first, drop admin recommendations, extract features,
    drop short content, drop duplicates (keeping the newest), cap.

    Args:
        entries: Script entries (``base_text`` filled for ai entries when known)
        creator_id: Owner, recorded on the profile

    Returns:
        CreatorStyleProfile with exclusion counters for every skipped entry
    """
    stats = ExclusionStats(considered=len(entries))
    ordered = sorted(entries, key=_timestamp, reverse=True)

    kept: List[StyleTrainingEntry] = []
    kept_features: List[ScriptStyleFeatures] = []
    seen: Set[str] = set()
    for entry in ordered:
        if entry.is_admin_recommendation:
            stats.admin_recommendation += 1
            continue
        features = extract_script_style_features(entry.content)
        if len(features.normalized_content) < MIN_CONTENT_LENGTH:
            stats.too_short += 1
            continue
        dedupe_key = normalize_for_matching(features.normalized_content)
        if dedupe_key in seen:
            stats.duplicate += 1
            continue
        if len(kept) >= MAX_PROFILE_ENTRIES:
            stats.over_cap += 1
            continue
        seen.add(dedupe_key)
        kept.append(entry)
        kept_features.append(features)

    weights = [entry_weight(entry) for entry in kept]
    mix = SourceMix()
    for entry in kept:
        setattr(mix, entry.source.value, getattr(mix, entry.source.value) + 1)

    hooks: Dict[str, float] = {}
    ctas: Dict[str, float] = {}
    humor: Dict[str, float] = {}
    recurring: Dict[str, float] = {}
    for features, weight in zip(kept_features, weights):
        if features.hook_pattern:
            hooks[features.hook_pattern] = hooks.get(features.hook_pattern, 0.0) + weight
        for label in features.cta_patterns:
            ctas[label] = ctas.get(label, 0.0) + weight
        for marker in features.humor_markers:
            humor[marker] = humor.get(marker, 0.0) + weight
        for token in features.recurring_tokens:
            recurring[token] = recurring.get(token, 0.0) + weight

    def mean_of(attr: str) -> float:
        return _weighted_mean([getattr(f, attr) for f in kept_features], weights)

    signals = StyleSignals(
        avg_paragraphs=round(mean_of("paragraph_count"), 2),
        avg_sentence_length=round(mean_of("avg_sentence_length"), 2),
        emoji_density=round(mean_of("emoji_density"), 4),
        question_rate=round(mean_of("question_rate"), 4),
        exclamation_rate=round(mean_of("exclamation_rate"), 4),
        narrative_cadence=NarrativeCadence(
            opening=round(mean_of("cadence_opening"), 1),
            middle=round(mean_of("cadence_middle"), 1),
            closing=round(mean_of("cadence_closing"), 1),
        ),
        hook_patterns=_weighted_top(hooks, TOP_HOOK_PATTERNS),
        cta_patterns=_weighted_top(ctas, TOP_CTA_PATTERNS),
        humor_markers=_weighted_top(humor, TOP_HUMOR_MARKERS),
        recurring_expressions=_weighted_top(recurring, TOP_RECURRING_EXPRESSIONS),
    )

    examples = [build_style_example(f.normalized_content) for f in kept_features[:MAX_STYLE_EXAMPLES]]
    dated = [entry.updated_at for entry in kept if entry.updated_at]

    return CreatorStyleProfile(
        profile_version=STYLE_PROFILE_VERSION,
        creator_id=creator_id,
        sample_size=len(kept),
        last_script_at=max(dated, key=lambda d: d.timestamp()) if dated else None,
        source_mix=mix,
        style_signals=signals,
        style_examples=[e for e in examples if e],
        exclusion_stats=stats,
        updated_at=datetime.now(timezone.utc),
    )


def load_style_profile(raw: Union[CreatorStyleProfile, Dict[str, Any], None]) -> Optional[CreatorStyleProfile]:
    """
    Validate a stored profile document.

    Returns:
        The profile, or None when it is missing or corrupted (wrong version,
        missing signal block, negative sample size, unparsable shape)
    """
    if raw is None:
        return None
    if isinstance(raw, CreatorStyleProfile):
        profile = raw
    else:
        try:
            profile = CreatorStyleProfile.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Stored style profile failed validation: {e.error_count()} errors")
            return None
    if profile.profile_version != STYLE_PROFILE_VERSION:
        return None
    if profile.style_signals is None or profile.sample_size < 0:
        return None
    return profile


def is_style_profile_corrupted(raw: Union[CreatorStyleProfile, Dict[str, Any], None]) -> bool:
    """True for a stored document that exists but cannot be used as-is."""
    return raw is not None and load_style_profile(raw) is None


# ============================================================================
# Service
# ============================================================================

class ScriptStyleProfileService:
    """Loads, rebuilds and refreshes persisted creator style profiles."""

    def __init__(self, script_store: Optional[ScriptStore] = None):
        self.store = script_store or ScriptStore()
        self._refresh_tasks: Dict[str, "asyncio.Task[None]"] = {}

    async def get_profile(self, creator_id: str) -> CreatorStyleProfile:
        """
        Stored profile, rebuilt synchronously when missing or corrupted.
        """
        raw = await self.store.get_style_profile(creator_id)
        profile = load_style_profile(raw)
        if profile is not None:
            return profile

        if raw is not None:
            logger.warning(f"Style profile for creator {creator_id} is corrupted, rebuilding")
        else:
            logger.info(f"No style profile for creator {creator_id}, building")
        return await self.rebuild_profile(creator_id)

    async def rebuild_profile(self, creator_id: str) -> CreatorStyleProfile:
        entries = await self.store.fetch_training_entries(
            creator_id, limit=MAX_PROFILE_ENTRIES * TRAINING_FETCH_MULTIPLIER
        )

        ai_ids = [e.ai_version_id for e in entries if e.source == ScriptSource.AI and e.ai_version_id]
        if ai_ids:
            base_texts = await self.store.fetch_ai_base_texts(ai_ids)
            entries = [
                e.model_copy(update={"base_text": base_texts.get(str(e.ai_version_id))})
                if e.ai_version_id else e
                for e in entries
            ]

        profile = build_style_profile_from_entries(entries, creator_id=creator_id)
        await self.store.save_style_profile(creator_id, profile.model_dump(mode="json"))

        stats = profile.exclusion_stats
        logger.info(
            f"Rebuilt style profile for creator {creator_id}: sample_size={profile.sample_size}, "
            f"excluded admin={stats.admin_recommendation} short={stats.too_short} "
            f"duplicate={stats.duplicate} over_cap={stats.over_cap}"
        )
        return profile

    def schedule_refresh(self, creator_id: str) -> Optional["asyncio.Task[None]"]:
        """
        Rebuild the profile in the background; the caller never awaits it.

        A refresh already running for the creator is reused. Errors are logged
        and swallowed.
        """
        running = self._refresh_tasks.get(creator_id)
        if running is not None and not running.done():
            return running

        try:
            task = asyncio.get_running_loop().create_task(self._refresh(creator_id))
        except RuntimeError:
            logger.warning(f"No running event loop, skipped style profile refresh for {creator_id}")
            return None

        self._refresh_tasks[creator_id] = task
        task.add_done_callback(lambda done, key=creator_id: self._forget_refresh(key, done))
        return task

    async def wait_for_refreshes(self) -> None:
        """Await pending background refreshes (CLI shutdown and tests)."""
        pending = list(self._refresh_tasks.values())
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _forget_refresh(self, creator_id: str, task: "asyncio.Task[None]") -> None:
        if self._refresh_tasks.get(creator_id) is task:
            del self._refresh_tasks[creator_id]

    async def _refresh(self, creator_id: str) -> None:
        try:
            await self.rebuild_profile(creator_id)
        except Exception as e:
            logger.warning(f"Background style profile refresh failed for creator {creator_id}: {e}")
