"""
Repository Factory for flowgraph.

Creates the configured repository (JSON files or Supabase) from Settings.
"""

import logging
from typing import TYPE_CHECKING

from flowgraph.config import Settings
from flowgraph.storage.json_backend import JsonFileRepository

if TYPE_CHECKING:
    from flowgraph.storage.protocol import Repository

logger = logging.getLogger(__name__)


def create_repository(settings: Settings, supabase_client=None) -> "Repository":
    """
    Create a repository instance.

    Args:
        settings: Resolved settings
        supabase_client: Optional pre-configured Supabase client

    Returns:
        Repository instance (JsonFileRepository or SupabaseRepository)
    """
    if settings.backend == "supabase":
        # Imported here so the JSON backend works without Supabase credentials
        from flowgraph.storage.supabase_backend import SupabaseRepository

        logger.info("Using Supabase repository")
        return SupabaseRepository(
            client=supabase_client,
            supabase_url=settings.supabase_url,
            supabase_key=settings.supabase_key
        )

    logger.info(f"Using JSON repository at {settings.data_dir}")
    return JsonFileRepository(str(settings.data_dir))
