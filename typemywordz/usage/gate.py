"""
Usage gate - plan/usage checks and result persistence.

The orchestrator asks ``can_transcribe`` before any provider is called and
runs ``record_usage`` + ``persist_result`` once per finished job.
Storage lives in subclasses (in-memory here, Supabase in supabase_gate).
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from .plans import (
    DEFAULT_PLAN,
    MAX_AUDIO_DURATION_SECONDS,
    PLAN_LIMITS,
    current_billing_cycle,
    get_plan,
)

logger = logging.getLogger('TypeMyworDz.Usage.Gate')


class UsageLimitError(Exception):
    """The user may not start this transcription; send them to upgrade."""
    pass


class UsageGate(ABC):
    """Plan rules shared by every storage backend."""

    def __init__(self, admin_emails: Optional[Iterable[str]] = None):
        if admin_emails is None:
            from ..config import Config
            admin_emails = Config.ADMIN_EMAILS
        self.admin_emails = {email.lower() for email in admin_emails}

    # =========================================================================
    # STORAGE
    # =========================================================================

    @abstractmethod
    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def _insert_profile(self, profile: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def _update_profile(self, user_id: str, changes: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    def _insert_transcription(self, record: Dict[str, Any]) -> str:
        pass

    @abstractmethod
    def list_transcriptions(self, user_id: str) -> List[Dict[str, Any]]:
        pass

    # =========================================================================
    # PROFILES
    # =========================================================================

    def create_profile(self, user_id: str, email: str, name: str = '') -> Dict[str, Any]:
        """Create a free-plan profile for a new user."""
        now = _now()
        profile = {
            'uid': user_id,
            'email': email,
            'name': name,
            'plan': DEFAULT_PLAN,
            'monthly_minutes': 0,
            'total_minutes': 0,
            'created_at': now,
            'last_active': now,
            'billing_cycle': current_billing_cycle(),
        }
        self._insert_profile(profile)
        logger.info(f"Created profile for {user_id}")
        return profile

    def upgrade_plan(self, user_id: str, plan: str) -> bool:
        if plan not in PLAN_LIMITS:
            raise ValueError(f"Unknown plan: {plan}")
        self._update_profile(user_id, {'plan': plan, 'last_active': _now()})
        logger.info(f"User {user_id} plan upgraded to {plan}")
        return True

    def get_plan_name(self, user_id: Optional[str]) -> str:
        if not user_id:
            return DEFAULT_PLAN
        profile = self.get_profile(user_id)
        if not profile:
            return DEFAULT_PLAN
        if self.is_admin(profile):
            return 'business'
        return profile.get('plan') or DEFAULT_PLAN

    def is_admin(self, profile: Dict[str, Any]) -> bool:
        return (profile.get('email') or '').lower() in self.admin_emails

    # =========================================================================
    # GATE
    # =========================================================================

    def can_transcribe(self, user_id: str, estimated_minutes: int) -> bool:
        """
        Check whether the user may transcribe ``estimated_minutes`` of audio.

        Raises:
            UsageLimitError: The file is longer than the per-file cap
        """
        profile = self.get_profile(user_id)
        if not profile:
            logger.warning(f"No profile for {user_id}")
            return False

        if self.is_admin(profile):
            logger.info(f"Admin access granted for {profile.get('email')}")
            return True

        if estimated_minutes * 60 > MAX_AUDIO_DURATION_SECONDS:
            raise UsageLimitError(f"Audio exceeds {MAX_AUDIO_DURATION_SECONDS // 60} minutes limit.")

        limit = get_plan(profile.get('plan'))['monthly_minutes']
        if limit == -1:
            return True

        used = profile.get('monthly_minutes') or 0
        if profile.get('billing_cycle') != current_billing_cycle():
            used = 0

        allowed = used + estimated_minutes <= limit
        if not allowed:
            logger.info(f"User {user_id} would exceed {limit} min/month ({used} used, {estimated_minutes} requested)")
        return allowed

    def record_usage(self, user_id: str, minutes: int) -> Optional[Dict[str, Any]]:
        """Add minutes to the user's counters, starting over on a new billing cycle."""
        profile = self.get_profile(user_id)
        if not profile:
            logger.warning(f"Cannot record usage, no profile for {user_id}")
            return None

        cycle = current_billing_cycle()
        monthly = minutes if profile.get('billing_cycle') != cycle else (profile.get('monthly_minutes') or 0) + minutes
        total = (profile.get('total_minutes') or 0) + minutes

        self._update_profile(user_id, {
            'monthly_minutes': monthly,
            'total_minutes': total,
            'last_active': _now(),
            'billing_cycle': cycle,
        })
        logger.debug(f"Usage for {user_id}: {monthly} min this cycle, {total} total")
        return {'monthly_minutes': monthly, 'total_minutes': total, 'plan': profile.get('plan')}

    def persist_result(
        self,
        user_id: str,
        file_name: str,
        transcript: str,
        minutes: int,
        job_id: str,
    ) -> str:
        """Store a completed transcription and return its record id."""
        record = {
            'user_id': user_id,
            'file_name': file_name,
            'duration': minutes,
            'transcription_text': transcript,
            'status': 'completed',
            'job_id': job_id,
            'created_at': _now(),
        }
        record_id = self._insert_transcription(record)
        logger.info(f"Transcription saved with ID: {record_id}")
        return record_id


class InMemoryUsageGate(UsageGate):
    """Process-local gate, used by default and in tests."""

    def __init__(self, admin_emails: Optional[Iterable[str]] = None):
        super().__init__(admin_emails)
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self.transcriptions: List[Dict[str, Any]] = []

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        profile = self.profiles.get(user_id)
        return dict(profile) if profile else None

    def _insert_profile(self, profile: Dict[str, Any]) -> None:
        self.profiles[profile['uid']] = dict(profile)

    def _update_profile(self, user_id: str, changes: Dict[str, Any]) -> None:
        if user_id not in self.profiles:
            raise KeyError(f"No profile for {user_id}")
        self.profiles[user_id].update(changes)

    def _insert_transcription(self, record: Dict[str, Any]) -> str:
        record_id = str(uuid.uuid4())
        self.transcriptions.append({'id': record_id, **record})
        return record_id

    def list_transcriptions(self, user_id: str) -> List[Dict[str, Any]]:
        return [dict(t) for t in self.transcriptions if t['user_id'] == user_id]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
