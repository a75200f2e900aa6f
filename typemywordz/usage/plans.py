"""Plan limits, features and billing cycles."""

from datetime import datetime, timezone
from typing import Optional

PLAN_LIMITS = {
    'free': {
        'monthly_minutes': 30,
        'features': ['basic_transcription'],
        'price': 0,
        'name': 'Free Plan',
    },
    'starter': {
        'monthly_minutes': 300,
        'features': ['basic_transcription', 'download_formats'],
        'price': 9.99,
        'name': 'Starter Plan',
    },
    'pro': {
        'monthly_minutes': 1200,
        'features': ['basic_transcription', 'download_formats', 'priority_processing'],
        'price': 19.99,
        'name': 'Pro Plan',
    },
    'business': {
        'monthly_minutes': -1,  # unlimited
        'features': ['all'],
        'price': 49.99,
        'name': 'Business Plan',
    },
}

DEFAULT_PLAN = 'free'

# Per-file cap for everyone except admins
MAX_AUDIO_DURATION_SECONDS = 5 * 60


def current_billing_cycle(now: Optional[datetime] = None) -> str:
    """Billing cycle key in YYYY-MM format."""
    now = now or datetime.now(timezone.utc)
    return f"{now.year}-{now.month:02d}"


def get_plan(plan: Optional[str]) -> dict:
    return PLAN_LIMITS.get(plan or DEFAULT_PLAN, PLAN_LIMITS[DEFAULT_PLAN])


def is_unlimited(plan: Optional[str]) -> bool:
    return get_plan(plan)['monthly_minutes'] == -1


def has_feature(plan: Optional[str], feature: str) -> bool:
    features = get_plan(plan)['features']
    return 'all' in features or feature in features


def is_paid(plan: Optional[str]) -> bool:
    return (plan or DEFAULT_PLAN) != 'free'
