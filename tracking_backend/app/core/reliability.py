"""
Reliability utilities.

Resubscribe policy with exponential backoff for change feeds.
"""

from dataclasses import dataclass
from typing import Optional

from tracking_backend.app.core.config import settings


@dataclass(frozen=True)
class ResubscribePolicy:
    """
    Exponential backoff for re-opening a dropped change feed.

    When disabled, a transport failure is reported and the feed stops.
    """
    enabled: bool = False
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    max_attempts: int = 10

    def next_delay(self, attempt: int) -> Optional[float]:
        """Delay before retry number ``attempt`` (0-based), or None to give up."""
        if not self.enabled or attempt >= self.max_attempts:
            return None
        delay = self.initial_delay * (self.multiplier ** attempt)
        return min(delay, self.max_delay)

    @classmethod
    def from_settings(cls) -> "ResubscribePolicy":
        return cls(
            enabled=settings.resubscribe_enabled,
            initial_delay=settings.resubscribe_initial_delay,
            max_delay=settings.resubscribe_max_delay,
            multiplier=settings.resubscribe_multiplier,
            max_attempts=settings.resubscribe_max_attempts,
        )
