"""Usage gate: plan limits, usage accounting and transcript persistence."""

from .gate import InMemoryUsageGate, UsageGate, UsageLimitError
from .plans import PLAN_LIMITS, MAX_AUDIO_DURATION_SECONDS


def get_usage_gate() -> UsageGate:
    """Build the gate selected by USAGE_BACKEND (memory or supabase)."""
    from ..config import Config

    if Config.USAGE_BACKEND == 'supabase':
        from .supabase_gate import SupabaseUsageGate
        return SupabaseUsageGate()
    return InMemoryUsageGate()


__all__ = [
    'UsageGate',
    'InMemoryUsageGate',
    'UsageLimitError',
    'PLAN_LIMITS',
    'MAX_AUDIO_DURATION_SECONDS',
    'get_usage_gate',
]
