"""
Tests for FeatureService - env override, TTL cache and database fallbacks.
"""

import pytest
from unittest.mock import MagicMock

from scriptintel.services.feature_service import FeatureKey, FeatureService


@pytest.fixture(autouse=True)
def clear_feature_env(monkeypatch):
    monkeypatch.delenv("FEATURE_SCRIPTS_STYLE_TRAINING_V1", raising=False)
    monkeypatch.delenv("FEATURE_SCRIPTS_INTELLIGENCE_V2", raising=False)


@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def clock():
    state = {"now": 100.0}

    def now():
        return state["now"]

    now.state = state
    return now


@pytest.fixture
def service(mock_db, clock):
    return FeatureService(supabase_client=mock_db, ttl_seconds=30, clock=clock)


def _flag_rows(mock_db, rows):
    chain = mock_db.table.return_value.select.return_value.eq.return_value.limit.return_value
    chain.execute.return_value = MagicMock(data=rows)
    return chain


class TestIsEnabled:

    @pytest.mark.asyncio
    async def test_reads_flag_from_table(self, service, mock_db):
        _flag_rows(mock_db, [{"enabled": False}])

        assert await service.is_enabled(FeatureKey.SCRIPTS_STYLE_TRAINING_V1, default=True) is False
        mock_db.table.assert_called_with("feature_flags")
        mock_db.table.return_value.select.return_value.eq.assert_called_with(
            "key", "scripts_style_training_v1"
        )

    @pytest.mark.asyncio
    async def test_missing_row_uses_default(self, service, mock_db):
        _flag_rows(mock_db, [])
        assert await service.is_enabled(FeatureKey.SCRIPTS_INTELLIGENCE_V2, default=True) is True
        assert await service.is_enabled(FeatureKey.SCRIPTS_INTELLIGENCE_V2, default=False) is False

    @pytest.mark.asyncio
    async def test_env_override_wins(self, service, mock_db, monkeypatch):
        monkeypatch.setenv("FEATURE_SCRIPTS_STYLE_TRAINING_V1", "off")

        assert await service.is_enabled(FeatureKey.SCRIPTS_STYLE_TRAINING_V1, default=True) is False
        mock_db.table.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_env_value_is_ignored(self, service, mock_db, monkeypatch):
        monkeypatch.setenv("FEATURE_SCRIPTS_STYLE_TRAINING_V1", "maybe")
        _flag_rows(mock_db, [{"enabled": True}])

        assert await service.is_enabled(FeatureKey.SCRIPTS_STYLE_TRAINING_V1) is True

    @pytest.mark.asyncio
    async def test_lookups_are_cached_until_ttl(self, service, mock_db, clock):
        chain = _flag_rows(mock_db, [{"enabled": True}])

        await service.is_enabled(FeatureKey.SCRIPTS_INTELLIGENCE_V2)
        await service.is_enabled(FeatureKey.SCRIPTS_INTELLIGENCE_V2)
        assert chain.execute.call_count == 1

        clock.state["now"] += 31
        await service.is_enabled(FeatureKey.SCRIPTS_INTELLIGENCE_V2)
        assert chain.execute.call_count == 2

    @pytest.mark.asyncio
    async def test_database_error_returns_default_and_is_not_cached(self, service, mock_db):
        chain = mock_db.table.return_value.select.return_value.eq.return_value.limit.return_value
        chain.execute.side_effect = Exception("connection refused")

        assert await service.is_enabled(FeatureKey.SCRIPTS_INTELLIGENCE_V2, default=True) is True
        assert await service.is_enabled(FeatureKey.SCRIPTS_INTELLIGENCE_V2, default=True) is True
        assert chain.execute.call_count == 2


class TestSetFeature:

    @pytest.mark.asyncio
    async def test_upserts_and_invalidates_cache(self, service, mock_db):
        chain = _flag_rows(mock_db, [{"enabled": True}])
        await service.is_enabled(FeatureKey.SCRIPTS_INTELLIGENCE_V2)

        await service.set_feature(FeatureKey.SCRIPTS_INTELLIGENCE_V2, False)

        mock_db.table.return_value.upsert.assert_called_once_with(
            {"key": "scripts_intelligence_v2", "enabled": False}, on_conflict="key"
        )
        await service.is_enabled(FeatureKey.SCRIPTS_INTELLIGENCE_V2)
        assert chain.execute.call_count == 2
