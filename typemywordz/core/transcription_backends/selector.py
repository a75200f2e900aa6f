"""
Service Selector - picks the first backend to try for a small file.

Backends whose success rate has dropped to 30% or below sit out of primary
selection; the rest take turns in round-robin order.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

logger = logging.getLogger('TypeMyworDz.Transcription.Selector')

PROVIDER_ORDER = ['local', 'api', 'queued']
MIN_SUCCESS_RATE = 0.30


@dataclass
class ServiceStats:
    """Rolling counters for one provider."""
    successes: int = 0
    failures: int = 0
    avg_response_time_ms: float = 0.0

    @property
    def attempts(self) -> int:
        return self.successes + self.failures

    @property
    def success_rate(self) -> float:
        # No history counts as a perfect record
        if self.attempts == 0:
            return 1.0
        return self.successes / self.attempts

    def record_success(self, elapsed_ms: float) -> None:
        self.successes += 1
        self.avg_response_time_ms += (elapsed_ms - self.avg_response_time_ms) / self.successes

    def record_failure(self) -> None:
        self.failures += 1

    def to_dict(self) -> dict:
        return {
            'successes': self.successes,
            'failures': self.failures,
            'avg_response_time_ms': round(self.avg_response_time_ms, 1),
            'success_rate': round(self.success_rate, 3),
        }


class ServiceSelector:
    """Owns the per-provider stats and the rotation cursor."""

    def __init__(self, providers: Optional[Iterable[str]] = None):
        self.providers: List[str] = list(providers or PROVIDER_ORDER)
        self.stats: Dict[str, ServiceStats] = {name: ServiceStats() for name in self.providers}
        self.rotation_cursor = 0

    def is_eligible(self, name: str) -> bool:
        stats = self.stats[name]
        return stats.attempts == 0 or stats.success_rate > MIN_SUCCESS_RATE

    def eligible_providers(self) -> List[str]:
        return [name for name in self.providers if self.is_eligible(name)]

    def select(self) -> str:
        """Pick the primary provider and advance the rotation cursor."""
        eligible = self.eligible_providers()
        cursor = self.rotation_cursor
        self.rotation_cursor += 1

        if not eligible:
            logger.warning("No provider above the success threshold, defaulting to local")
            return 'local'

        selected = eligible[cursor % len(eligible)]
        logger.debug(f"Selected {selected} from {eligible} (cursor={cursor})")
        return selected

    def fallback_order(self, tried: str) -> List[str]:
        """Every other provider in fixed priority order, eligible or not."""
        return [name for name in self.providers if name != tried]

    def record_success(self, name: str, elapsed_ms: float) -> None:
        self.stats[name].record_success(elapsed_ms)

    def record_failure(self, name: str) -> None:
        self.stats[name].record_failure()

    def snapshot(self) -> Dict[str, dict]:
        return {name: stats.to_dict() for name, stats in self.stats.items()}
