"""Durable storage for the service's single token record.

Two backends share one contract:

- ``load()``  -> TokenPair, or None when no record exists or the read failed
- ``save()``  -> True on success, False on failure (upsert)
- ``clear()`` -> True when the record is gone afterwards

Failures are wrapped in PersistenceError, logged, and never propagate;
the caller's in-memory pair stays authoritative.
"""

import asyncio
import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from supabase import create_client

from oauth.errors import PersistenceError
from oauth.session import TokenPair

logger = logging.getLogger(__name__)

# Fixed id of the one token record kept by the service
TOKEN_RECORD_ID = "user_tokens"


def _record(tokens: TokenPair) -> dict:
    return {
        "id": TOKEN_RECORD_ID,
        **tokens.to_record(),
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }


class TokenStore:
    """Async facade over a blocking backend; subclasses implement the _sync methods."""

    name = "base"

    async def load(self) -> Optional[TokenPair]:
        try:
            return await asyncio.to_thread(self._load_sync)
        except PersistenceError as e:
            logger.error(f"[TOKENS] Error loading tokens from {self.name}: {e.message}")
            return None

    async def save(self, tokens: TokenPair) -> bool:
        try:
            await asyncio.to_thread(self._save_sync, tokens)
        except PersistenceError as e:
            logger.error(f"[TOKENS] Error saving tokens to {self.name}: {e.message}")
            return False
        logger.info(f"[TOKENS] Tokens saved to {self.name}")
        return True

    async def clear(self) -> bool:
        try:
            await asyncio.to_thread(self._clear_sync)
        except PersistenceError as e:
            logger.error(f"[TOKENS] Error clearing tokens in {self.name}: {e.message}")
            return False
        logger.info(f"[TOKENS] Tokens cleared from {self.name}")
        return True

    def describe(self) -> str:
        return self.name

    def _load_sync(self) -> Optional[TokenPair]:
        raise NotImplementedError

    def _save_sync(self, tokens: TokenPair) -> None:
        raise NotImplementedError

    def _clear_sync(self) -> None:
        raise NotImplementedError


class FileTokenStore(TokenStore):
    """JSON file on local disk, written atomically with owner-only permissions."""

    name = "file"

    def __init__(self, path):
        self.path = Path(path)

    def describe(self) -> str:
        return str(self.path)

    def _load_sync(self) -> Optional[TokenPair]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            raise PersistenceError(str(e)) from e
        if not isinstance(data, dict) or data.get("id", TOKEN_RECORD_ID) != TOKEN_RECORD_ID:
            raise PersistenceError(f"Unexpected token record in {self.path}")
        return TokenPair.from_record(data)

    def _save_sync(self, tokens: TokenPair) -> None:
        # Temp file + rename so a crash mid-write never corrupts the record
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        except OSError as e:
            raise PersistenceError(str(e)) from e
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(_record(tokens), f, indent=2)
                f.write("\n")
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except OSError as e:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise PersistenceError(str(e)) from e

    def _clear_sync(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(str(e)) from e


class SupabaseTokenStore(TokenStore):
    """One row in a Supabase table, keyed by TOKEN_RECORD_ID."""

    name = "supabase"

    def __init__(self, client, table: str = "tokens"):
        self.client = client
        self.table = table

    def describe(self) -> str:
        return f"supabase table '{self.table}'"

    def _load_sync(self) -> Optional[TokenPair]:
        try:
            response = (
                self.client.table(self.table)
                .select("*")
                .eq("id", TOKEN_RECORD_ID)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise PersistenceError(str(e)) from e
        rows = response.data or []
        if not rows:
            return None
        return TokenPair.from_record(rows[0])

    def _save_sync(self, tokens: TokenPair) -> None:
        try:
            self.client.table(self.table).upsert(_record(tokens)).execute()
        except Exception as e:
            raise PersistenceError(str(e)) from e

    def _clear_sync(self) -> None:
        try:
            self.client.table(self.table).delete().eq("id", TOKEN_RECORD_ID).execute()
        except Exception as e:
            raise PersistenceError(str(e)) from e


def create_token_store(settings, supabase_client=None) -> TokenStore:
    """Pick the backend named by TOKEN_STORE."""
    if settings.token_store == "supabase":
        if supabase_client is None:
            supabase_client = create_client(settings.supabase_url, settings.supabase_key)
        return SupabaseTokenStore(supabase_client, settings.supabase_tokens_table)
    return FileTokenStore(settings.token_file)
