"""
Feature Service - Feature Flag Resolution

Resolves global feature flags for the script pipeline.

Usage:
    from scriptintel.services.feature_service import FeatureService, FeatureKey

    service = FeatureService()
    if await service.is_enabled(FeatureKey.SCRIPTS_STYLE_TRAINING_V1):
        # Refresh the creator's style profile
"""

import asyncio
import logging
import os
import time
from typing import Any, Callable, Dict, Optional, Tuple

from ..core.config import Config, parse_env_bool
from ..core.database import get_supabase_client, rows_of

logger = logging.getLogger(__name__)


class FeatureKey:
    """
    Feature flag keys.

    Use these constants when checking/setting features to avoid typos.
    Each key can be forced through an environment variable named
    ``FEATURE_<KEY>`` (upper-cased), e.g. ``FEATURE_SCRIPTS_STYLE_TRAINING_V1=false``.
    """

    SCRIPTS_INTELLIGENCE_V2 = "scripts_intelligence_v2"
    SCRIPTS_STYLE_TRAINING_V1 = "scripts_style_training_v1"


class FeatureService:
    """Service for feature flag resolution: env override, then table, then default."""

    TABLE = "feature_flags"

    def __init__(
        self,
        supabase_client: Optional[Any] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize FeatureService.

        Args:
            supabase_client: Supabase client instance (resolved lazily when omitted)
            ttl_seconds: How long table lookups are cached
            clock: Monotonic clock, injectable for tests
        """
        self._client = supabase_client
        self.ttl_seconds = Config.FEATURE_FLAG_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._cache: Dict[str, Tuple[float, Optional[bool]]] = {}  # key -> (expires_at, enabled)

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    @staticmethod
    def env_override(flag_key: str) -> Optional[bool]:
        raw = os.getenv(f"FEATURE_{flag_key.upper()}")
        if raw is None:
            return None
        value = parse_env_bool(raw, None)
        if value is None and raw.strip():
            logger.warning(f"Ignoring invalid value for FEATURE_{flag_key.upper()}: {raw!r}")
        return value

    async def is_enabled(self, flag_key: str, default: bool = False) -> bool:
        """
        Check whether a feature is enabled.

        Args:
            flag_key: Feature to check (use FeatureKey constants)
            default: Value used when neither env nor table define the flag

        Returns:
            True if the feature is enabled. Database errors yield the default.
        """
        override = self.env_override(flag_key)
        if override is not None:
            return override

        now = self._clock()
        cached = self._cache.get(flag_key)
        if cached is not None and cached[0] > now:
            return default if cached[1] is None else cached[1]

        try:
            result = await asyncio.to_thread(
                lambda: self.client.table(self.TABLE)
                    .select("enabled")
                    .eq("key", flag_key)
                    .limit(1)
                    .execute()
            )
            rows = rows_of(result)
            enabled = bool(rows[0].get("enabled")) if rows else None
        except Exception as e:
            logger.warning(f"Feature flag lookup failed for {flag_key}: {e}")
            return default

        self._cache[flag_key] = (now + self.ttl_seconds, enabled)
        return default if enabled is None else enabled

    async def set_feature(self, flag_key: str, enabled: bool) -> None:
        """Enable or disable a feature globally."""
        await asyncio.to_thread(
            lambda: self.client.table(self.TABLE)
                .upsert({"key": flag_key, "enabled": enabled}, on_conflict="key")
                .execute()
        )
        self._cache.pop(flag_key, None)
        logger.info(f"Feature {flag_key} {'enabled' if enabled else 'disabled'}")

    def clear_cache(self) -> None:
        self._cache.clear()
