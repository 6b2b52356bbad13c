"""Supabase client construction and request-scoped access.

The client is built once in the application lifespan and stored on
``app.state``; handlers receive it through the ``get_supabase`` dependency.
"""

from fastapi import Request
from supabase import Client, create_client

from app.core.config import Settings


def create_supabase(settings: Settings) -> Client:
    """
    Create a Supabase client configured with the service role key.

    Raises:
        RuntimeError: If client initialization fails
    """
    try:
        return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e


def get_supabase(request: Request) -> Client:
    """FastAPI dependency returning the application's Supabase client."""
    return request.app.state.supabase
