"""Shared Supabase client for modifications, listings and the reference overlay.

One lazily created client per process; the repository is built around it per
request. Tests bypass this module by overriding ``get_supabase``.
"""

import threading

from supabase import Client, create_client

from buildpass.core.config import get_settings

_supabase: Client | None = None
_client_lock = threading.Lock()


class SupabaseNotConfiguredError(RuntimeError):
    """SUPABASE_URL or SUPABASE_KEY is empty."""


def get_supabase_client() -> Client:
    """Get or create the shared Supabase client (thread-safe).

    Raises:
        SupabaseNotConfiguredError: credentials are missing, so no client
            can be created (the lifespan normally refuses to start first)
    """
    global _supabase
    if _supabase is None:
        with _client_lock:
            if _supabase is None:
                settings = get_settings()
                if not settings.supabase_url or not settings.supabase_key:
                    raise SupabaseNotConfiguredError(
                        "SUPABASE_URL and SUPABASE_KEY must be set"
                    )
                _supabase = create_client(settings.supabase_url, settings.supabase_key)
    return _supabase
