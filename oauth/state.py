"""One-time OAuth state tokens (CSRF protection for /callback).

Each /login stores ``state -> return_to``; /callback pops it. A state that
was never issued, has already been used, or has outlived the TTL is invalid.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)

# Bytes of entropy in each state token
STATE_BYTES = 32


@dataclass
class PendingAuthState:
    state: str
    return_to: str
    created_at: float = field(default_factory=time.monotonic)


class StateRegistry:
    """In-memory map of pending authorization requests.

    ``ttl`` is in seconds; 0 or less keeps entries until they are consumed.
    """

    def __init__(self, ttl: float = 600, clock=time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._pending: dict[str, PendingAuthState] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def _expired(self, entry: PendingAuthState) -> bool:
        return self.ttl > 0 and (self._clock() - entry.created_at) > self.ttl

    def sweep(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        if self.ttl <= 0:
            return 0
        expired = [s for s, entry in self._pending.items() if self._expired(entry)]
        for s in expired:
            del self._pending[s]
        if expired:
            logger.debug(f"[STATE] Swept {len(expired)} expired state(s)")
        return len(expired)

    def create(self, return_to: str) -> str:
        self.sweep()
        state = secrets.token_urlsafe(STATE_BYTES)
        self._pending[state] = PendingAuthState(state=state, return_to=return_to, created_at=self._clock())
        return state

    def consume(self, state: Optional[str]) -> Optional[str]:
        """Remove and return the bound return_to, or None if the state is invalid."""
        if not state:
            return None
        entry = self._pending.pop(state, None)
        if entry is None:
            logger.warning("[STATE] Unknown or already used state")
            return None
        if self._expired(entry):
            logger.warning("[STATE] Expired state rejected")
            return None
        return entry.return_to
