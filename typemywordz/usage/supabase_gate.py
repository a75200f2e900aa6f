"""
Supabase-backed usage gate.

Tables:
    users           one row per profile, keyed by uid
    transcriptions  one row per finished job
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client, create_client

from .gate import UsageGate

logger = logging.getLogger('TypeMyworDz.Usage.Supabase')

_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create the global Supabase client."""
    global _client
    if _client is None:
        from ..config import Config
        if not Config.SUPABASE_URL or not Config.SUPABASE_KEY:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
        _client = create_client(Config.SUPABASE_URL, Config.SUPABASE_KEY)
        logger.info("Supabase client initialized")
    return _client


class SupabaseUsageGate(UsageGate):
    """Profiles and transcription history stored in Supabase."""

    def __init__(self, client: Optional[Client] = None, admin_emails: Optional[Iterable[str]] = None):
        super().__init__(admin_emails)
        self.client = client or get_supabase_client()

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        result = self.client.table("users").select("*").eq("uid", user_id).limit(1).execute()
        if result.data:
            return result.data[0]
        logger.debug(f"No user profile found for {user_id}")
        return None

    def _insert_profile(self, profile: Dict[str, Any]) -> None:
        self.client.table("users").insert(profile).execute()

    def _update_profile(self, user_id: str, changes: Dict[str, Any]) -> None:
        self.client.table("users").update(changes).eq("uid", user_id).execute()

    def _insert_transcription(self, record: Dict[str, Any]) -> str:
        result = self.client.table("transcriptions").insert(record).execute()
        if not result.data:
            raise RuntimeError("Supabase returned no row for the inserted transcription")
        return str(result.data[0]['id'])

    def list_transcriptions(self, user_id: str) -> List[Dict[str, Any]]:
        result = self.client.table("transcriptions").select("*").eq(
            "user_id", user_id
        ).order("created_at", desc=True).execute()
        return result.data or []
