"""
Content Store - Supabase repositories for the script intelligence pipeline.

Tables:
    content_metrics          creator's historical posts (caption, interactions,
                             post date, category arrays per dimension)
    script_entries           creator's scripts used for style training
    ai_generated_scripts     original AI texts that script entries were based on
    script_style_profiles    one persisted style profile per creator

RPC:
    rank_script_categories   categories of one dimension ordered by mean
                             total interactions within a date window

The supabase-py client is synchronous, so every query runs in a worker thread.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..core.database import get_supabase_client, rows_of
from .category_catalog import category_label, normalize_category_id
from .models import (
    DIMENSIONS,
    CaptionEvidence,
    CategorySelection,
    RankedCategory,
    ScriptSource,
    StyleTrainingEntry,
)

logger = logging.getLogger(__name__)

CAPTION_COLUMNS = (
    "id, description, text_content, total_interactions, post_date, "
    "proposal, context, format, tone, references"
)
TRAINING_COLUMNS = "id, source, content, ai_version_id, is_admin_recommendation, updated_at"


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    return [str(value)] if str(value).strip() else []


def caption_from_row(row: Dict[str, Any]) -> CaptionEvidence:
    """Map a content_metrics row to CaptionEvidence."""
    raw_categories: Dict[str, List[str]] = {}
    normalized: Dict[str, Optional[str]] = {}
    for dimension in DIMENSIONS:
        values = _as_list(row.get(dimension))
        raw_categories[dimension] = values
        normalized[dimension] = next(
            (cid for cid in (normalize_category_id(dimension, v) for v in values) if cid),
            None,
        )

    text = row.get("description") or ""
    if not text.strip():
        text = row.get("text_content") or ""

    return CaptionEvidence(
        id=str(row.get("id")),
        caption_text=text,
        interaction_count=max(float(row.get("total_interactions") or 0), 0.0),
        post_date=row.get("post_date"),
        categories=CategorySelection(**normalized),
        raw_categories=raw_categories,
    )


class ContentMetricsStore:
    """Read access to a creator's historical content metrics."""

    TABLE = "content_metrics"
    RANKING_RPC = "rank_script_categories"
    RANKING_METRIC = "avg_total_interactions"

    def __init__(self, supabase_client: Optional[Any] = None):
        self.supabase = supabase_client or get_supabase_client()

    async def fetch_ranked_categories(
        self,
        creator_id: str,
        dimension: str,
        start: datetime,
        end: datetime,
        limit: int = 5,
    ) -> List[RankedCategory]:
        """
        Rank one dimension's categories by mean engagement.

        Args:
            creator_id: Creator whose content is ranked
            dimension: One of the five dimensions
            start: Window start (inclusive)
            end: Window end (inclusive)
            limit: Maximum categories returned

        Returns:
            RankedCategory list, best first. Values not in the catalog are dropped.
        """
        result = await asyncio.to_thread(
            lambda: self.supabase.rpc(self.RANKING_RPC, {
                "p_creator_id": creator_id,
                "p_dimension": dimension,
                "p_start": start.isoformat(),
                "p_end": end.isoformat(),
                "p_metric": self.RANKING_METRIC,
                "p_limit": limit * 2,
            }).execute()
        )

        ranked: List[RankedCategory] = []
        seen = set()
        for row in rows_of(result):
            category_id = normalize_category_id(dimension, row.get("category"))
            if not category_id or category_id in seen:
                continue
            seen.add(category_id)
            ranked.append(RankedCategory(
                id=category_id,
                label=category_label(dimension, category_id),
                avg_interactions=float(row.get(self.RANKING_METRIC) or 0),
                post_count=int(row.get("post_count") or 0),
            ))
            if len(ranked) >= limit:
                break
        return ranked

    async def fetch_caption_candidates(
        self,
        creator_id: str,
        start: datetime,
        end: datetime,
        filters: Optional[Dict[str, Sequence[str]]] = None,
        limit: int = 240,
    ) -> List[CaptionEvidence]:
        """
        Fetch the creator's most-engaged posts in a window.

        Args:
            filters: Dimension -> accepted stored values (array overlap)
            limit: Maximum rows

        Returns:
            CaptionEvidence list ordered by interactions, highest first
        """
        def build():
            query = (
                self.supabase.table(self.TABLE)
                .select(CAPTION_COLUMNS)
                .eq("creator_id", creator_id)
                .gte("post_date", start.isoformat())
                .lte("post_date", end.isoformat())
            )
            for dimension, values in (filters or {}).items():
                query = query.overlaps(dimension, list(values))
            return (
                query.order("total_interactions", desc=True)
                .limit(limit)
                .execute()
            )

        result = await asyncio.to_thread(build)
        return [caption_from_row(row) for row in rows_of(result)]


class ScriptStore:
    """Script entries and persisted style profiles."""

    ENTRIES_TABLE = "script_entries"
    AI_SCRIPTS_TABLE = "ai_generated_scripts"
    PROFILES_TABLE = "script_style_profiles"

    def __init__(self, supabase_client: Optional[Any] = None):
        self.supabase = supabase_client or get_supabase_client()

    async def fetch_training_entries(self, creator_id: str, limit: int) -> List[StyleTrainingEntry]:
        """Most recently updated script entries of a creator."""
        result = await asyncio.to_thread(
            lambda: self.supabase.table(self.ENTRIES_TABLE)
                .select(TRAINING_COLUMNS)
                .eq("creator_id", creator_id)
                .order("updated_at", desc=True)
                .limit(limit)
                .execute()
        )

        entries = []
        for row in rows_of(result):
            source = row.get("source") or ScriptSource.MANUAL.value
            if source not in ScriptSource._value2member_map_:
                logger.debug(f"Unknown script source '{source}' on entry {row.get('id')}, treating as manual")
                source = ScriptSource.MANUAL.value
            entries.append(StyleTrainingEntry(
                id=str(row.get("id")),
                source=source,
                content=row.get("content") or "",
                ai_version_id=row.get("ai_version_id"),
                is_admin_recommendation=bool(row.get("is_admin_recommendation")),
                updated_at=row.get("updated_at"),
            ))
        return entries

    async def fetch_ai_base_texts(self, ai_version_ids: Sequence[str]) -> Dict[str, str]:
        """Original AI-generated text per ai version id."""
        ids = sorted({str(i) for i in ai_version_ids if i})
        if not ids:
            return {}
        result = await asyncio.to_thread(
            lambda: self.supabase.table(self.AI_SCRIPTS_TABLE)
                .select("id, content")
                .in_("id", ids)
                .execute()
        )
        return {str(row["id"]): row.get("content") or "" for row in rows_of(result) if row.get("id")}

    async def get_style_profile(self, creator_id: str) -> Optional[Dict[str, Any]]:
        """Raw stored profile document, or None when the creator has none."""
        result = await asyncio.to_thread(
            lambda: self.supabase.table(self.PROFILES_TABLE)
                .select("profile")
                .eq("creator_id", creator_id)
                .limit(1)
                .execute()
        )
        rows = rows_of(result)
        if not rows:
            return None
        return rows[0].get("profile")

    async def save_style_profile(self, creator_id: str, profile: Dict[str, Any]) -> None:
        await asyncio.to_thread(
            lambda: self.supabase.table(self.PROFILES_TABLE).upsert({
                "creator_id": creator_id,
                "profile": profile,
                "profile_version": profile.get("profile_version"),
                "sample_size": profile.get("sample_size", 0),
                "updated_at": datetime.utcnow().isoformat(),
            }, on_conflict="creator_id").execute()
        )
        logger.info(f"Saved style profile for creator {creator_id} (sample_size={profile.get('sample_size', 0)})")
