"""Supabase client construction.

Clients are built explicitly and handed to whoever needs them; the API layer
creates one per application lifespan and tests pass fakes.
"""

from supabase import AsyncClient, AsyncClientOptions, acreate_client

from app.core.config import Settings


async def create_supabase(settings: Settings) -> AsyncClient:
    """
    Create an async Supabase client configured with the service role key.

    Args:
        settings: Application settings

    Returns:
        Supabase async client

    Raises:
        RuntimeError: If client initialization fails
    """
    try:
        return await acreate_client(
            settings.SUPABASE_URL,
            settings.SUPABASE_SERVICE_ROLE_KEY,
            options=AsyncClientOptions(postgrest_client_timeout=settings.DB_TIMEOUT_SECONDS),
        )
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client: {e}") from e
