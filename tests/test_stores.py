import json
import os
import stat

import pytest

from config import Settings
from oauth.session import SessionState, TokenPair
from oauth.stores import (
    TOKEN_RECORD_ID,
    FileTokenStore,
    SupabaseTokenStore,
    create_token_store,
)

from conftest import MemoryTokenStore


# ============== File store ==============

@pytest.mark.asyncio
async def test_file_store_missing_record_is_none(tmp_path):
    store = FileTokenStore(tmp_path / "tokens.json")
    assert await store.load() is None


@pytest.mark.asyncio
async def test_file_store_round_trip(tmp_path):
    path = tmp_path / "nested" / "tokens.json"
    store = FileTokenStore(path)

    assert await store.save(TokenPair("access-1", "refresh-1")) is True
    assert await store.load() == TokenPair("access-1", "refresh-1")

    data = json.loads(path.read_text())
    assert data["id"] == TOKEN_RECORD_ID
    assert data["access_token"] == "access-1"
    assert "updated_at" in data


@pytest.mark.asyncio
async def test_file_store_save_overwrites(tmp_path):
    store = FileTokenStore(tmp_path / "tokens.json")
    await store.save(TokenPair("access-1", "refresh-1"))
    await store.save(TokenPair("access-2", "refresh-1"))
    assert await store.load() == TokenPair("access-2", "refresh-1")
    assert [p.name for p in tmp_path.iterdir()] == ["tokens.json"]


@pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
@pytest.mark.asyncio
async def test_file_store_is_owner_only(tmp_path):
    path = tmp_path / "tokens.json"
    await FileTokenStore(path).save(TokenPair("a", "r"))
    assert stat.S_IMODE(path.stat().st_mode) == 0o600


@pytest.mark.asyncio
async def test_file_store_corrupt_file_loads_as_none(tmp_path):
    path = tmp_path / "tokens.json"
    path.write_text("{not json")
    assert await FileTokenStore(path).load() is None


@pytest.mark.asyncio
async def test_file_store_save_failure_returns_false(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    # Parent "directory" is a regular file
    store = FileTokenStore(blocker / "tokens.json")
    assert await store.save(TokenPair("a", "r")) is False


@pytest.mark.asyncio
async def test_file_store_clear(tmp_path):
    store = FileTokenStore(tmp_path / "tokens.json")
    await store.save(TokenPair("a", "r"))
    assert await store.clear() is True
    assert await store.load() is None
    assert await store.clear() is True


# ============== Supabase store ==============

class FakeQuery:
    def __init__(self, table):
        self.table = table
        self.op = None
        self.payload = None
        self.filters = {}

    def select(self, *args):
        self.op = "select"
        return self

    def upsert(self, payload):
        self.op = "upsert"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters[column] = value
        return self

    def limit(self, n):
        return self

    def execute(self):
        if self.table.fail:
            raise ConnectionError("connection refused")
        rows = self.table.rows
        if self.op == "upsert":
            rows[self.payload["id"]] = dict(self.payload)
            return FakeResponse([self.payload])
        if self.op == "delete":
            rows.pop(self.filters["id"], None)
            return FakeResponse([])
        row = rows.get(self.filters.get("id"))
        return FakeResponse([row] if row else [])


class FakeResponse:
    def __init__(self, data):
        self.data = data


class FakeTable:
    def __init__(self):
        self.rows = {}
        self.fail = False


class FakeSupabase:
    def __init__(self):
        self.tables = {}

    def table(self, name):
        return FakeQuery(self.tables.setdefault(name, FakeTable()))


@pytest.mark.asyncio
async def test_supabase_store_round_trip():
    client = FakeSupabase()
    store = SupabaseTokenStore(client, table="tokens")

    assert await store.load() is None
    assert await store.save(TokenPair("access-1", "refresh-1")) is True
    assert await store.save(TokenPair("access-2", "refresh-1")) is True

    assert list(client.tables["tokens"].rows) == [TOKEN_RECORD_ID]
    assert await store.load() == TokenPair("access-2", "refresh-1")


@pytest.mark.asyncio
async def test_supabase_store_errors_are_contained():
    client = FakeSupabase()
    store = SupabaseTokenStore(client)
    client.table("tokens").table.fail = True

    assert await store.load() is None
    assert await store.save(TokenPair("a", "r")) is False
    assert await store.clear() is False


def test_create_token_store_selects_backend(tmp_path):
    file_settings = Settings({"token_file": str(tmp_path / "t.json")})
    assert isinstance(create_token_store(file_settings), FileTokenStore)

    supabase_settings = Settings({"token_store": "supabase", "supabase_tokens_table": "spotify_tokens"})
    store = create_token_store(supabase_settings, supabase_client=FakeSupabase())
    assert isinstance(store, SupabaseTokenStore)
    assert store.table == "spotify_tokens"


# ============== Session state ==============

@pytest.mark.asyncio
async def test_session_starts_empty_without_record():
    session = SessionState(MemoryTokenStore())
    tokens = await session.load()
    assert tokens.is_empty()
    assert not session.is_authenticated


@pytest.mark.asyncio
async def test_session_keeps_tokens_when_save_fails():
    store = MemoryTokenStore(fail_saves=True)
    session = SessionState(store)
    assert await session.update(TokenPair("a", "r")) is False
    assert session.access_token == "a"
    assert store.saves == 1
