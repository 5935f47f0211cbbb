"""Process-wide token state.

One SessionState is built at startup and handed to AuthFlow and the
upstream client. It is the only holder of the live TokenPair.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class TokenPair:
    access_token: str = ""
    refresh_token: str = ""

    def is_empty(self) -> bool:
        return not self.access_token and not self.refresh_token

    def to_record(self) -> dict:
        return {"access_token": self.access_token, "refresh_token": self.refresh_token}

    @classmethod
    def from_record(cls, record: dict) -> "TokenPair":
        return cls(
            access_token=record.get("access_token") or "",
            refresh_token=record.get("refresh_token") or "",
        )


class SessionState:
    """Owns the live TokenPair and persists it on every change."""

    def __init__(self, store, tokens: TokenPair = None):
        self.store = store
        self.tokens = tokens or TokenPair()

    @property
    def access_token(self) -> str:
        return self.tokens.access_token

    @property
    def refresh_token(self) -> str:
        return self.tokens.refresh_token

    @property
    def is_authenticated(self) -> bool:
        return bool(self.tokens.access_token)

    async def load(self) -> TokenPair:
        """Initialize from the store; an absent record leaves an empty pair."""
        stored = await self.store.load()
        if stored is not None:
            self.tokens = stored
            logger.info("[TOKENS] Tokens loaded from store")
        else:
            self.tokens = TokenPair()
            logger.info("[TOKENS] No tokens found in store, starting fresh")
        return self.tokens

    async def update(self, tokens: TokenPair) -> bool:
        """Replace the live pair, then persist it once.

        The in-memory pair is kept even when the save fails.
        """
        self.tokens = tokens
        return await self.store.save(tokens)
