"""Storage adapters for verification tokens and recorded identities."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import asdict, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import asyncpg

from .errors import StorageError
from .identity.types import Identity
from .token.types import Token
from .utils.time import parse_utc

logger = logging.getLogger(__name__)


class VerificationStorage(ABC):
    """Abstract storage backend for the token and identity collections.

    Implementations hold no business rules. The only atomicity they owe is
    ``mark_token_consumed``, which must be a compare-and-swap on the
    ``consumed`` flag.
    """

    @abstractmethod
    async def save_token(self, token: Token) -> None:
        """Persist a newly issued token."""

    @abstractmethod
    async def get_token(self, value: str) -> Optional[Token]:
        """Fetch token by value."""

    @abstractmethod
    async def mark_token_consumed(self, value: str) -> bool:
        """Flip ``consumed`` to True. Return False if missing or already consumed."""

    @abstractmethod
    async def delete_tokens_created_before(self, cutoff: datetime) -> int:
        """Delete tokens with ``created_at <= cutoff`` and return how many were removed."""

    @abstractmethod
    async def find_identity_by_fingerprint(self, fingerprint: str) -> Optional[Identity]:
        """Return the earliest identity recorded with this exact fingerprint."""

    @abstractmethod
    async def find_identity_by_address(self, source_address: str) -> Optional[Identity]:
        """Return the earliest identity recorded from this exact address."""

    @abstractmethod
    async def save_identity(self, identity: Identity) -> None:
        """Append an identity record."""

    @abstractmethod
    async def list_identities(self) -> list[Identity]:
        """Return all identity records in recording order."""

    async def close(self) -> None:
        """Release backend resources if needed."""


def token_to_record(token: Token) -> dict[str, Any]:
    record = asdict(token)
    record["created_at"] = token.created_at.isoformat()
    return record


def token_from_record(record: dict[str, Any]) -> Token:
    try:
        return Token(
            value=str(record["value"]),
            subject_id=str(record["subject_id"]),
            group_id=str(record["group_id"]),
            created_at=parse_utc(record["created_at"]),
            consumed=bool(record.get("consumed", False)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise StorageError(f"malformed token record: {exc}") from exc


def identity_to_record(identity: Identity) -> dict[str, Any]:
    record = asdict(identity)
    record["recorded_at"] = identity.recorded_at.isoformat()
    return record


def identity_from_record(record: dict[str, Any]) -> Identity:
    try:
        metadata = record.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        return Identity(
            subject_id=str(record["subject_id"]),
            fingerprint=str(record["fingerprint"]),
            source_address=str(record["source_address"]),
            recorded_at=parse_utc(record["recorded_at"]),
            metadata=dict(metadata),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise StorageError(f"malformed identity record: {exc}") from exc


def _detached(identity: Identity) -> Identity:
    """Copy whose metadata shares nothing with the stored record."""
    return replace(identity, metadata=copy.deepcopy(identity.metadata))


class InMemoryStorage(VerificationStorage):
    """In-memory storage backend, also used as the test double."""

    def __init__(self) -> None:
        self.tokens: dict[str, Token] = {}
        self.identities: list[Identity] = []
        self._lock = asyncio.Lock()

    async def save_token(self, token: Token) -> None:
        async with self._lock:
            self.tokens[token.value] = token

    async def get_token(self, value: str) -> Optional[Token]:
        return self.tokens.get(value)

    async def mark_token_consumed(self, value: str) -> bool:
        async with self._lock:
            token = self.tokens.get(value)
            if token is None or token.consumed:
                return False
            self.tokens[value] = token.mark_consumed()
            return True

    async def delete_tokens_created_before(self, cutoff: datetime) -> int:
        async with self._lock:
            stale = [k for k, t in self.tokens.items() if t.created_at <= cutoff]
            for key in stale:
                self.tokens.pop(key, None)
            return len(stale)

    async def find_identity_by_fingerprint(self, fingerprint: str) -> Optional[Identity]:
        found = next((i for i in self.identities if i.fingerprint == fingerprint), None)
        return _detached(found) if found is not None else None

    async def find_identity_by_address(self, source_address: str) -> Optional[Identity]:
        found = next((i for i in self.identities if i.source_address == source_address), None)
        return _detached(found) if found is not None else None

    async def save_identity(self, identity: Identity) -> None:
        async with self._lock:
            self.identities.append(_detached(identity))

    async def list_identities(self) -> list[Identity]:
        return [_detached(i) for i in self.identities]


class JsonFileStorage(VerificationStorage):
    """Single JSON document holding both collections, rewritten on every write.

    Layout: ``{"tokens": [...], "identities": [...]}``. All access goes through
    one lock, so a read-modify-write never interleaves with another.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_sync(self) -> dict[str, list[dict[str, Any]]]:
        if not self.path.exists():
            return {"tokens": [], "identities": []}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"cannot read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not hold a JSON object")
        data.setdefault("tokens", [])
        data.setdefault("identities", [])
        return data

    def _write_sync(self, data: dict[str, list[dict[str, Any]]]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"cannot write {self.path}: {exc}") from exc

    async def _read(self) -> dict[str, list[dict[str, Any]]]:
        return await asyncio.to_thread(self._read_sync)

    async def _write(self, data: dict[str, list[dict[str, Any]]]) -> None:
        await asyncio.to_thread(self._write_sync, data)

    async def save_token(self, token: Token) -> None:
        async with self._lock:
            data = await self._read()
            data["tokens"].append(token_to_record(token))
            await self._write(data)

    async def get_token(self, value: str) -> Optional[Token]:
        async with self._lock:
            data = await self._read()
        for record in data["tokens"]:
            if record.get("value") == value:
                return token_from_record(record)
        return None

    async def mark_token_consumed(self, value: str) -> bool:
        async with self._lock:
            data = await self._read()
            for record in data["tokens"]:
                if record.get("value") != value:
                    continue
                if record.get("consumed"):
                    return False
                record["consumed"] = True
                await self._write(data)
                return True
            return False

    async def delete_tokens_created_before(self, cutoff: datetime) -> int:
        async with self._lock:
            data = await self._read()
            kept = []
            for record in data["tokens"]:
                try:
                    created_at = token_from_record(record).created_at
                except StorageError as exc:
                    # Unparseable records are left in place for inspection.
                    logger.warning("Skipping token record during sweep: %s", exc)
                    kept.append(record)
                    continue
                if created_at > cutoff:
                    kept.append(record)
            removed = len(data["tokens"]) - len(kept)
            if removed:
                data["tokens"] = kept
                await self._write(data)
            return removed

    async def find_identity_by_fingerprint(self, fingerprint: str) -> Optional[Identity]:
        for identity in await self.list_identities():
            if identity.fingerprint == fingerprint:
                return identity
        return None

    async def find_identity_by_address(self, source_address: str) -> Optional[Identity]:
        for identity in await self.list_identities():
            if identity.source_address == source_address:
                return identity
        return None

    async def save_identity(self, identity: Identity) -> None:
        async with self._lock:
            data = await self._read()
            data["identities"].append(identity_to_record(identity))
            await self._write(data)

    async def list_identities(self) -> list[Identity]:
        async with self._lock:
            data = await self._read()
        return [identity_from_record(r) for r in data["identities"]]


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS verification_tokens (
    value TEXT PRIMARY KEY,
    subject_id TEXT NOT NULL,
    group_id TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    consumed BOOLEAN NOT NULL DEFAULT FALSE
);
CREATE TABLE IF NOT EXISTS verified_identities (
    id BIGSERIAL PRIMARY KEY,
    subject_id TEXT NOT NULL,
    fingerprint TEXT NOT NULL,
    source_address TEXT NOT NULL,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    recorded_at TIMESTAMPTZ NOT NULL
);
CREATE INDEX IF NOT EXISTS verified_identities_fingerprint_idx ON verified_identities (fingerprint);
CREATE INDEX IF NOT EXISTS verified_identities_address_idx ON verified_identities (source_address);
"""


class PostgresStorage(VerificationStorage):
    """Postgres-backed storage using asyncpg."""

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 4) -> None:
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.pool: asyncpg.Pool | None = None
        self._connect_lock = asyncio.Lock()

    async def connect(self) -> None:
        if self.pool is not None:
            return
        async with self._connect_lock:
            if self.pool is not None:
                return
            try:
                self.pool = await asyncpg.create_pool(dsn=self.dsn, min_size=self.min_size, max_size=self.max_size)
            except (OSError, asyncpg.PostgresError) as exc:
                raise StorageError(f"cannot connect to postgres: {exc}") from exc

    async def ensure_schema(self) -> None:
        await self.connect()
        assert self.pool is not None
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None

    async def save_token(self, token: Token) -> None:
        await self.connect()
        assert self.pool is not None
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO verification_tokens (value, subject_id, group_id, created_at, consumed)
                VALUES ($1, $2, $3, $4, $5)
                """,
                token.value,
                token.subject_id,
                token.group_id,
                token.created_at,
                token.consumed,
            )

    async def get_token(self, value: str) -> Optional[Token]:
        await self.connect()
        assert self.pool is not None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM verification_tokens WHERE value=$1", value)
            return token_from_record(dict(row)) if row else None

    async def mark_token_consumed(self, value: str) -> bool:
        await self.connect()
        assert self.pool is not None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "UPDATE verification_tokens SET consumed = TRUE WHERE value=$1 AND consumed = FALSE RETURNING value",
                value,
            )
            return row is not None

    async def delete_tokens_created_before(self, cutoff: datetime) -> int:
        await self.connect()
        assert self.pool is not None
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("DELETE FROM verification_tokens WHERE created_at <= $1 RETURNING value", cutoff)
            return len(rows)

    async def _find_identity(self, column: str, value: str) -> Optional[Identity]:
        await self.connect()
        assert self.pool is not None
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT * FROM verified_identities WHERE {column}=$1 ORDER BY id LIMIT 1",
                value,
            )
            return identity_from_record(dict(row)) if row else None

    async def find_identity_by_fingerprint(self, fingerprint: str) -> Optional[Identity]:
        return await self._find_identity("fingerprint", fingerprint)

    async def find_identity_by_address(self, source_address: str) -> Optional[Identity]:
        return await self._find_identity("source_address", source_address)

    async def save_identity(self, identity: Identity) -> None:
        await self.connect()
        assert self.pool is not None
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO verified_identities (subject_id, fingerprint, source_address, metadata, recorded_at)
                VALUES ($1, $2, $3, $4::jsonb, $5)
                """,
                identity.subject_id,
                identity.fingerprint,
                identity.source_address,
                json.dumps(identity.metadata, default=str),
                identity.recorded_at,
            )

    async def list_identities(self) -> list[Identity]:
        await self.connect()
        assert self.pool is not None
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("SELECT * FROM verified_identities ORDER BY id")
            return [identity_from_record(dict(r)) for r in rows]


def create_storage_from_env() -> VerificationStorage:
    """Create Postgres storage if a DSN is configured, a JSON file if a path is, otherwise in-memory."""
    dsn = os.getenv("ALTGUARD_PG_DSN") or os.getenv("DATABASE_URL")
    if dsn:
        logger.info("Using postgres storage")
        return PostgresStorage(dsn=dsn)
    data_file = os.getenv("ALTGUARD_DATA_FILE")
    if data_file:
        logger.info("Using %s for storage", data_file)
        return JsonFileStorage(data_file)
    logger.info("Using in-memory storage")
    return InMemoryStorage()
