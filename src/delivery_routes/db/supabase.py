"""Supabase client shared by the delivery store and the database health check."""

import logging
from functools import lru_cache

from supabase import Client, create_client

from ..config import settings

logger = logging.getLogger(__name__)


@lru_cache()
def get_supabase_client() -> Client | None:
    """Return the process-wide Supabase client, or None when it cannot be built.

    No query is issued here; ``/health/database`` is what confirms the
    database actually answers.
    """
    url, key = settings.supabase_url, settings.supabase_key
    if not url or not key:
        logger.warning("Supabase credentials not configured (DELIVERY_SUPABASE_URL / DELIVERY_SUPABASE_KEY)")
        return None

    try:
        client = create_client(url, key)
    except Exception as exc:
        logger.error(f"Failed to create Supabase client for {url}: {exc}")
        return None
    logger.info(f"Supabase client created for {url}")
    return client
