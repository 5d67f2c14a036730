"""
Supabase Client

Single service-role client for the hosted store (tables) and auth provider.
"""

from typing import Optional

from supabase import Client, create_client

from app.config import Settings, get_settings


def create_supabase_client(settings: Settings) -> Client:
    """
    Build a client from settings.

    Raises:
        ValueError if the URL or key is missing
    """
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be set")
    return create_client(settings.supabase_url, settings.supabase_key)


# Singleton instance
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create the shared Supabase client"""
    global _client
    if _client is None:
        _client = create_supabase_client(get_settings())
    return _client
