"""Supabase access for the delivery store."""

from .supabase import get_supabase_client

__all__ = ["get_supabase_client"]
