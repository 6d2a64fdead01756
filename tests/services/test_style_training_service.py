"""
Tests for the creator style profile trainer.

ScriptStore is mocked with AsyncMock methods; profile building itself is pure.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from scriptintel.services.models import ScriptSource, StyleTrainingEntry
from scriptintel.services.style_training_service import (
    MAX_PROFILE_ENTRIES,
    STYLE_PROFILE_VERSION,
    ScriptStyleProfileService,
    build_style_profile_from_entries,
    entry_weight,
    estimate_rewrite_ratio,
    is_style_profile_corrupted,
    load_style_profile,
)

BASE_DATE = datetime(2026, 2, 1, tzinfo=timezone.utc)

SCRIPT_TEXT = (
    "Hoje eu vou te mostrar como organizar sua rotina de estudos sem perder o foco. "
    "Primeiro, separe blocos de quarenta minutos. Depois, faça pausas curtas e beba água. "
    "Comenta aqui se você já testou!"
)


def _entry(id, content=SCRIPT_TEXT, days_ago=0, **kwargs):
    return StyleTrainingEntry(
        id=id,
        content=content,
        updated_at=BASE_DATE - timedelta(days=days_ago),
        **kwargs,
    )


# ============================================================================
# Weights
# ============================================================================

class TestWeights:

    def test_rewrite_ratio_bounds(self):
        assert estimate_rewrite_ratio("um dois tres", "um dois tres") == 0.0
        assert estimate_rewrite_ratio("um dois", "tres quatro") == 1.0
        assert estimate_rewrite_ratio("", "") == 0.0

    def test_source_weights(self):
        assert entry_weight(_entry("1", source=ScriptSource.MANUAL)) == 1.0
        assert entry_weight(_entry("2", source=ScriptSource.PLANNER)) == 0.6

    def test_rewrite_bonus_for_ai_entries(self):
        untouched = _entry("1", source=ScriptSource.AI, base_text=SCRIPT_TEXT)
        rewritten = _entry("2", source=ScriptSource.AI, base_text="texto completamente diferente")

        assert entry_weight(untouched) == pytest.approx(0.7)
        assert entry_weight(rewritten) == pytest.approx(0.95)


# ============================================================================
# Profile building
# ============================================================================

class TestBuildStyleProfile:

    def test_exclusions_are_counted(self):
        entries = [
            _entry("admin", days_ago=1, is_admin_recommendation=True),
            _entry("short", content="Curto demais.", days_ago=2),
            _entry("newest", days_ago=0, source=ScriptSource.AI),
            _entry("older-copy", days_ago=5, source=ScriptSource.MANUAL),
            _entry("other", content=SCRIPT_TEXT + " Segue para mais dicas.", days_ago=3),
        ]
        profile = build_style_profile_from_entries(entries, creator_id="c1")

        stats = profile.exclusion_stats
        assert stats.considered == 5
        assert stats.admin_recommendation == 1
        assert stats.too_short == 1
        assert stats.duplicate == 1
        assert stats.total_excluded == 3
        assert profile.sample_size == 2
        assert profile.profile_version == STYLE_PROFILE_VERSION
        assert profile.creator_id == "c1"

    def test_duplicates_keep_newest(self):
        entries = [
            _entry("older", days_ago=5, source=ScriptSource.MANUAL),
            _entry("newer", days_ago=1, source=ScriptSource.AI),
        ]
        profile = build_style_profile_from_entries(entries)

        assert profile.source_mix.ai == 1
        assert profile.source_mix.manual == 0
        assert profile.last_script_at == BASE_DATE - timedelta(days=1)

    def test_signals_are_aggregated(self):
        profile = build_style_profile_from_entries([_entry("1"), _entry("2", content=SCRIPT_TEXT + " Salva esse vídeo.")])
        signals = profile.style_signals

        assert "comentario" in signals.cta_patterns
        assert signals.avg_paragraphs == 1.0
        assert signals.exclamation_rate > 0
        assert len(profile.style_examples) == 2

    def test_empty_entries(self):
        profile = build_style_profile_from_entries([])
        assert profile.sample_size == 0
        assert profile.style_signals is not None
        assert profile.last_script_at is None


class TestLoadStyleProfile:

    def test_round_trip_from_storage(self):
        stored = build_style_profile_from_entries([_entry("1")]).model_dump(mode="json")
        profile = load_style_profile(stored)

        assert profile is not None
        assert profile.sample_size == 1
        assert is_style_profile_corrupted(stored) is False

    @pytest.mark.parametrize("raw", [
        {"profile_version": "scripts_style_profile_v0", "style_signals": {}},
        {"profile_version": STYLE_PROFILE_VERSION},
        {"profile_version": STYLE_PROFILE_VERSION, "style_signals": {}, "sample_size": -1},
        {"profile_version": STYLE_PROFILE_VERSION, "style_signals": "broken"},
        {"sample_size": 3},
    ])
    def test_corrupted_documents(self, raw):
        assert load_style_profile(raw) is None
        assert is_style_profile_corrupted(raw) is True

    def test_missing_is_not_corrupted(self):
        assert load_style_profile(None) is None
        assert is_style_profile_corrupted(None) is False


# ============================================================================
# Service
# ============================================================================

@pytest.fixture
def mock_store():
    store = MagicMock()
    store.get_style_profile = AsyncMock(return_value=None)
    store.fetch_training_entries = AsyncMock(return_value=[_entry("1")])
    store.fetch_ai_base_texts = AsyncMock(return_value={})
    store.save_style_profile = AsyncMock(return_value=None)
    return store


@pytest.fixture
def service(mock_store):
    return ScriptStyleProfileService(script_store=mock_store)


class TestScriptStyleProfileService:

    @pytest.mark.asyncio
    async def test_stored_profile_is_returned(self, service, mock_store):
        mock_store.get_style_profile.return_value = build_style_profile_from_entries(
            [_entry("1")]
        ).model_dump(mode="json")

        profile = await service.get_profile("c1")

        assert profile.sample_size == 1
        mock_store.fetch_training_entries.assert_not_called()
        mock_store.save_style_profile.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_profile_is_built_and_saved(self, service, mock_store):
        profile = await service.get_profile("c1")

        assert profile.sample_size == 1
        mock_store.fetch_training_entries.assert_awaited_once_with("c1", limit=MAX_PROFILE_ENTRIES * 3)
        creator_id, saved = mock_store.save_style_profile.call_args.args
        assert creator_id == "c1"
        assert saved["profile_version"] == STYLE_PROFILE_VERSION

    @pytest.mark.asyncio
    async def test_corrupted_profile_is_rebuilt(self, service, mock_store):
        mock_store.get_style_profile.return_value = {"profile_version": "old"}

        await service.get_profile("c1")

        mock_store.save_style_profile.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rebuild_attaches_ai_base_texts(self, service, mock_store):
        mock_store.fetch_training_entries.return_value = [
            _entry("1", source=ScriptSource.AI, ai_version_id="v1"),
            _entry("2", content=SCRIPT_TEXT + " Outro final.", days_ago=1),
        ]
        mock_store.fetch_ai_base_texts.return_value = {"v1": "base totalmente diferente"}

        profile = await service.rebuild_profile("c1")

        mock_store.fetch_ai_base_texts.assert_awaited_once_with(["v1"])
        assert profile.source_mix.ai == 1
        assert profile.source_mix.manual == 1

    @pytest.mark.asyncio
    async def test_schedule_refresh_reuses_running_task(self, service, mock_store):
        first = service.schedule_refresh("c1")
        second = service.schedule_refresh("c1")

        assert first is second
        await service.wait_for_refreshes()
        mock_store.save_style_profile.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_refresh_errors_are_swallowed(self, service, mock_store):
        mock_store.fetch_training_entries.side_effect = RuntimeError("db down")

        task = service.schedule_refresh("c1")
        await service.wait_for_refreshes()

        assert task.done()
        assert task.exception() is None
        mock_store.save_style_profile.assert_not_called()

    def test_schedule_refresh_without_loop(self, service):
        assert service.schedule_refresh("c1") is None
