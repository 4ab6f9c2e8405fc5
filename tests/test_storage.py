import asyncio
import json
from datetime import datetime, timedelta, timezone

import asyncpg
import pytest

from altguard.errors import StorageError
from altguard.identity import Candidate, IdentityCorrelator, MatchType
from altguard.storage import InMemoryStorage, JsonFileStorage, PostgresStorage, create_storage_from_env
from altguard.token import ConsumeReason, Token, TokenLedger


def test_json_file_storage_persists_across_instances(tmp_path) -> None:
    path = tmp_path / "data.json"

    async def run() -> None:
        ledger = TokenLedger(storage=JsonFileStorage(path))
        token = await ledger.issue("u1", "g1")
        await IdentityCorrelator(storage=JsonFileStorage(path)).record("u1", Candidate("fp-A", "1.2.3.4", {"ua": "x"}))

        reopened = JsonFileStorage(path)
        assert (await TokenLedger(storage=reopened).consume(token)).ok is True
        assert (await TokenLedger(storage=reopened).consume(token)).reason is ConsumeReason.ALREADY_USED

        result = await IdentityCorrelator(storage=reopened).correlate(Candidate("fp-B", "1.2.3.4"))
        assert result.match_type is MatchType.IP
        assert result.existing is not None
        assert result.existing.metadata == {"ua": "x"}

    asyncio.run(run())
    data = json.loads(path.read_text())
    assert set(data) == {"tokens", "identities"}
    assert data["tokens"][0]["consumed"] is True


def test_json_file_storage_deletes_old_tokens(tmp_path) -> None:
    async def run() -> None:
        storage = JsonFileStorage(tmp_path / "data.json")
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        await storage.save_token(Token("old", "u1", "g1", now - timedelta(minutes=20)))
        await storage.save_token(Token("new", "u2", "g1", now))

        assert await storage.delete_tokens_created_before(now - timedelta(minutes=10)) == 1
        assert await storage.get_token("old") is None
        assert await storage.get_token("new") is not None

    asyncio.run(run())


def test_json_file_storage_rejects_malformed_file(tmp_path) -> None:
    path = tmp_path / "data.json"
    path.write_text("{not json")

    async def run() -> None:
        with pytest.raises(StorageError):
            await JsonFileStorage(path).get_token("anything")

    asyncio.run(run())


def test_in_memory_mark_consumed_is_compare_and_swap() -> None:
    async def run() -> None:
        storage = InMemoryStorage()
        await storage.save_token(Token("t", "u1", "g1", datetime.now(timezone.utc)))
        assert await storage.mark_token_consumed("t") is True
        assert await storage.mark_token_consumed("t") is False
        assert await storage.mark_token_consumed("missing") is False

    asyncio.run(run())


def test_create_storage_from_env(monkeypatch, tmp_path) -> None:
    for name in ("ALTGUARD_PG_DSN", "DATABASE_URL", "ALTGUARD_DATA_FILE"):
        monkeypatch.delenv(name, raising=False)
    assert isinstance(create_storage_from_env(), InMemoryStorage)

    monkeypatch.setenv("ALTGUARD_DATA_FILE", str(tmp_path / "data.json"))
    assert isinstance(create_storage_from_env(), JsonFileStorage)

    monkeypatch.setenv("DATABASE_URL", "postgresql://user:pw@localhost:5432/db")
    storage = create_storage_from_env()
    assert isinstance(storage, PostgresStorage)
    assert storage.pool is None


def test_postgres_concurrent_connect_creates_one_pool(monkeypatch) -> None:
    created = []

    async def fake_create_pool(**kwargs):
        await asyncio.sleep(0.01)
        pool = object()
        created.append(pool)
        return pool

    monkeypatch.setattr(asyncpg, "create_pool", fake_create_pool)

    async def run() -> None:
        storage = PostgresStorage("postgresql://user:pw@localhost:5432/db")
        await asyncio.gather(storage.connect(), storage.connect(), storage.connect())
        assert len(created) == 1
        assert storage.pool is created[0]

    asyncio.run(run())


def test_in_memory_identities_are_isolated_from_callers() -> None:
    async def run() -> None:
        storage = InMemoryStorage()
        correlator = IdentityCorrelator(storage=storage)
        recorded = await correlator.record("u1", Candidate("fp-A", "1.2.3.4", {"components": {"canvas": "c1"}}))

        recorded.metadata["components"]["canvas"] = "tampered"
        found = await storage.find_identity_by_fingerprint("fp-A")
        assert found is not None
        found.metadata["extra"] = True

        stored = (await storage.list_identities())[0]
        assert stored.metadata == {"components": {"canvas": "c1"}}

    asyncio.run(run())


def test_json_file_sweep_skips_malformed_tokens(tmp_path) -> None:
    path = tmp_path / "data.json"
    now = datetime(2024, 1, 1, tzinfo=timezone.utc)
    path.write_text(
        json.dumps(
            {
                "tokens": [
                    {"value": "broken", "subject_id": "u0"},
                    {"value": "old", "subject_id": "u1", "group_id": "g1", "created_at": (now - timedelta(minutes=30)).isoformat()},
                    {"value": "new", "subject_id": "u2", "group_id": "g1", "created_at": now.isoformat()},
                ],
                "identities": [],
            }
        )
    )

    async def run() -> None:
        storage = JsonFileStorage(path)
        assert await storage.delete_tokens_created_before(now - timedelta(minutes=10)) == 1
        assert await storage.get_token("old") is None
        assert await storage.get_token("new") is not None

    asyncio.run(run())
    values = [t["value"] for t in json.loads(path.read_text())["tokens"]]
    assert values == ["broken", "new"]
