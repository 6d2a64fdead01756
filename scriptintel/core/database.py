"""
Database client and helpers for running Supabase queries from async code.

The supabase-py client is synchronous; async services run each query chain
through ``asyncio.to_thread`` and read rows with ``rows_of``.
"""

from typing import Any, Optional
from supabase import create_client, Client
from .config import Config


_supabase_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get or create the shared Supabase client.

    Returns:
        Supabase client instance

    Raises:
        ValueError: If SUPABASE_URL or SUPABASE_SERVICE_KEY is missing
    """
    global _supabase_client

    if _supabase_client is None:
        Config.validate()
        _supabase_client = create_client(
            Config.SUPABASE_URL,
            Config.SUPABASE_SERVICE_KEY
        )

    return _supabase_client


def reset_supabase_client():
    """Drop the cached client so the next call reconnects (used by tests)."""
    global _supabase_client
    _supabase_client = None


def rows_of(response: Any) -> list:
    """Return ``response.data`` as a list, tolerating None responses."""
    data = getattr(response, "data", None) if response is not None else None
    if not data:
        return []
    if isinstance(data, list):
        return data
    return [data]
