"""
Configuration management for ScriptIntel
"""

import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off'}


def parse_env_bool(value: Optional[str], default: bool) -> bool:
    """Parse a boolean-ish environment value, returning default when unset or unknown."""
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return default


class Config:
    """Application configuration"""

    # Supabase
    SUPABASE_URL: str = os.getenv('SUPABASE_URL', '')
    SUPABASE_SERVICE_KEY: str = os.getenv('SUPABASE_SERVICE_KEY', '')

    # OpenAI
    OPENAI_API_KEY: str = os.getenv('OPENAI_API_KEY', '')
    DEFAULT_BASE_MODEL: str = 'gpt-4o-mini'
    DEFAULT_PREMIUM_MODEL: str = 'gpt-4.1'
    OPENAI_TEMP: float = float(os.getenv('OPENAI_TEMP', '0.4'))
    OPENAI_TIMEOUT_SECONDS: float = float(os.getenv('OPENAI_TIMEOUT_SECONDS', '45'))

    # Script intelligence
    SCRIPTS_LOOKBACK_DAYS: int = int(os.getenv('SCRIPTS_LOOKBACK_DAYS', '180'))
    SCRIPTS_CACHE_TTL_SECONDS: float = float(os.getenv('SCRIPTS_CACHE_TTL_SECONDS', '90'))
    SCRIPTS_RANKING_CACHE_MAX: int = int(os.getenv('SCRIPTS_RANKING_CACHE_MAX', '160'))
    SCRIPTS_EVIDENCE_CACHE_MAX: int = int(os.getenv('SCRIPTS_EVIDENCE_CACHE_MAX', '240'))

    # Telemetry
    SCRIPTS_PERF_WINDOW: int = int(os.getenv('SCRIPTS_PERF_WINDOW', '200'))

    # Feature flags
    FEATURE_FLAG_CACHE_TTL_SECONDS: float = float(os.getenv('FEATURE_FLAG_CACHE_TTL_SECONDS', '30'))

    @classmethod
    def validate(cls) -> bool:
        """Validate required configuration"""
        required = {
            'SUPABASE_URL': cls.SUPABASE_URL,
            'SUPABASE_SERVICE_KEY': cls.SUPABASE_SERVICE_KEY,
        }

        missing = [k for k, v in required.items() if not v]

        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

        return True

    @classmethod
    def get(cls, key: str, default: Optional[str] = None) -> Optional[str]:
        """Get configuration value"""
        return getattr(cls, key, default)

    # ========================================================================
    # Model Configuration
    # ========================================================================

    @classmethod
    def get_openai_api_key(cls) -> str:
        return os.getenv('OPENAI_API_KEY', cls.OPENAI_API_KEY) or ''

    @classmethod
    def get_base_model(cls) -> str:
        """Base-tier model, used by default for adjustments."""
        return (os.getenv('OPENAI_MODEL') or '').strip() or cls.DEFAULT_BASE_MODEL

    @classmethod
    def get_premium_model(cls) -> str:
        """Premium-tier model, used by default for new scripts."""
        return (os.getenv('OPENAI_MODEL_ADVANCED') or '').strip() or cls.DEFAULT_PREMIUM_MODEL

    @classmethod
    def is_hybrid_enabled(cls) -> bool:
        return parse_env_bool(os.getenv('OPENAI_MODEL_HYBRID_ENABLED'), True)

    @classmethod
    def is_operation_routing_enabled(cls) -> bool:
        return parse_env_bool(os.getenv('OPENAI_MODEL_HYBRID_OPERATION_ROUTING_ENABLED'), True)

    @classmethod
    def get_hybrid_score_threshold(cls) -> int:
        """
        Complexity score at which a prompt is routed to the premium tier.

        Read at call time so operators can tune routing without a restart.
        """
        raw = os.getenv('OPENAI_MODEL_HYBRID_SCORE_THRESHOLD')
        try:
            value = int(raw) if raw is not None else 4
        except ValueError:
            value = 4
        return max(1, value)


class ScriptQualityPolicy:
    """
    Thresholds for the technical script quality gate.

    These are tuning policy derived from observed output quality, not fixed
    truths. Adjust per deployment if generated scripts are polished too often
    (or not often enough).
    """

    MIN_PERCEIVED_QUALITY = 0.78
    MIN_HOOK_STRENGTH = 0.62
    MIN_SPECIFICITY = 0.62
    MIN_SPEAKABILITY = 0.75
    MIN_CTA_STRENGTH = 0.8
    MIN_SCENES = 4
    MAX_SCENES = 6
    REGENERATE_BELOW = 0.62
