import asyncio
from datetime import timedelta

from altguard.storage import InMemoryStorage
from altguard.token import ConsumeReason, TokenLedger
from altguard.utils.time import ManualClock


def make_ledger(ttl: timedelta = timedelta(minutes=10)) -> tuple[TokenLedger, InMemoryStorage, ManualClock]:
    storage = InMemoryStorage()
    clock = ManualClock()
    return TokenLedger(storage=storage, ttl=ttl, clock=clock), storage, clock


def test_issue_then_consume_succeeds_once() -> None:
    async def run() -> None:
        ledger, storage, _ = make_ledger()
        value = await ledger.issue("u1", "g1")

        first = await ledger.consume(value)
        second = await ledger.consume(value)

        assert first.ok is True
        assert (first.subject_id, first.group_id) == ("u1", "g1")
        assert second.ok is False
        assert second.reason is ConsumeReason.ALREADY_USED
        assert storage.tokens[value].consumed is True

    asyncio.run(run())


def test_unknown_token_is_not_found() -> None:
    async def run() -> None:
        ledger, _, _ = make_ledger()
        result = await ledger.consume("bogus-token")
        assert result.ok is False
        assert result.reason is ConsumeReason.NOT_FOUND

    asyncio.run(run())


def test_token_expires_after_ttl_even_if_unused() -> None:
    async def run() -> None:
        ledger, storage, clock = make_ledger()
        value = await ledger.issue("u1", "g1")
        clock.advance(timedelta(minutes=11))

        result = await ledger.consume(value)

        assert result.reason is ConsumeReason.EXPIRED
        assert storage.tokens[value].consumed is False

    asyncio.run(run())


def test_token_exactly_at_ttl_is_expired() -> None:
    async def run() -> None:
        ledger, _, clock = make_ledger()
        value = await ledger.issue("u1", "g1")
        clock.advance(timedelta(minutes=10))
        assert (await ledger.consume(value)).reason is ConsumeReason.EXPIRED

    asyncio.run(run())


def test_token_just_before_ttl_is_usable() -> None:
    async def run() -> None:
        ledger, _, clock = make_ledger()
        value = await ledger.issue("u1", "g1")
        clock.advance(timedelta(minutes=10) - timedelta(milliseconds=1))
        assert (await ledger.consume(value)).ok is True

    asyncio.run(run())


def test_consumed_and_expired_reports_expired() -> None:
    async def run() -> None:
        ledger, _, clock = make_ledger()
        value = await ledger.issue("u1", "g1")
        await ledger.consume(value)
        clock.advance(timedelta(minutes=30))
        assert (await ledger.consume(value)).reason is ConsumeReason.EXPIRED

    asyncio.run(run())


def test_reissue_gives_independent_live_tokens() -> None:
    async def run() -> None:
        ledger, _, _ = make_ledger()
        first = await ledger.issue("u1", "g1")
        second = await ledger.issue("u1", "g1")

        assert first != second
        assert (await ledger.consume(second)).ok is True
        assert (await ledger.consume(first)).ok is True

    asyncio.run(run())


def test_concurrent_consume_has_exactly_one_winner() -> None:
    async def run() -> None:
        ledger, _, _ = make_ledger()
        value = await ledger.issue("u1", "g1")

        results = await asyncio.gather(*(ledger.consume(value) for _ in range(20)))

        assert sum(1 for r in results if r.ok) == 1
        assert all(r.reason is ConsumeReason.ALREADY_USED for r in results if not r.ok)

    asyncio.run(run())


def test_sweep_removes_only_expired_tokens_and_is_idempotent() -> None:
    async def run() -> None:
        ledger, storage, clock = make_ledger()
        old_used = await ledger.issue("u1", "g1")
        await ledger.consume(old_used)
        old_unused = await ledger.issue("u2", "g1")
        clock.advance(timedelta(minutes=10))
        fresh = await ledger.issue("u3", "g1")

        assert await ledger.sweep_expired() == 2
        assert await ledger.sweep_expired() == 0
        assert set(storage.tokens) == {fresh}
        assert (await ledger.consume(old_unused)).reason is ConsumeReason.NOT_FOUND

    asyncio.run(run())
