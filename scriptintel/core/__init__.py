"""
Core module - Database, configuration, caching and observability
"""

from .database import get_supabase_client
from .config import Config, ScriptQualityPolicy

__all__ = ['get_supabase_client', 'Config', 'ScriptQualityPolicy']
