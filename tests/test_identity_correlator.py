import asyncio

from altguard.identity import Candidate, IdentityCorrelator, MatchType
from altguard.storage import InMemoryStorage


def test_unseen_candidate_has_no_match() -> None:
    async def run() -> None:
        correlator = IdentityCorrelator(storage=InMemoryStorage())
        result = await correlator.correlate(Candidate("fp-A", "1.2.3.4"))
        assert result.match_type is MatchType.NONE
        assert result.existing is None

    asyncio.run(run())


def test_same_fingerprint_matches_regardless_of_address() -> None:
    async def run() -> None:
        correlator = IdentityCorrelator(storage=InMemoryStorage())
        await correlator.record("u1", Candidate("fp-A", "1.2.3.4"))

        for address in ("9.9.9.9", "1.2.3.4"):
            result = await correlator.correlate(Candidate("fp-A", address))
            assert result.match_type is MatchType.FINGERPRINT
            assert result.existing is not None
            assert result.existing.subject_id == "u1"

    asyncio.run(run())


def test_same_address_different_fingerprint_matches_ip() -> None:
    async def run() -> None:
        correlator = IdentityCorrelator(storage=InMemoryStorage())
        await correlator.record("u1", Candidate("fp-A", "1.2.3.4"))

        result = await correlator.correlate(Candidate("fp-B", "1.2.3.4"))

        assert result.match_type is MatchType.IP
        assert result.existing is not None
        assert result.existing.source_address == "1.2.3.4"

    asyncio.run(run())


def test_fingerprint_match_wins_over_address_match_on_other_identity() -> None:
    async def run() -> None:
        correlator = IdentityCorrelator(storage=InMemoryStorage())
        await correlator.record("u1", Candidate("fp-A", "1.1.1.1"))
        await correlator.record("u2", Candidate("fp-B", "2.2.2.2"))

        result = await correlator.correlate(Candidate("fp-A", "2.2.2.2"))

        assert result.match_type is MatchType.FINGERPRINT
        assert result.existing is not None
        assert result.existing.subject_id == "u1"

    asyncio.run(run())


def test_matching_is_exact_string_equality() -> None:
    async def run() -> None:
        correlator = IdentityCorrelator(storage=InMemoryStorage())
        await correlator.record("u1", Candidate("fp-A", "1.2.3.4"))

        result = await correlator.correlate(Candidate("FP-A", "1.2.3.40"))

        assert result.match_type is MatchType.NONE

    asyncio.run(run())


def test_correlate_is_read_only() -> None:
    async def run() -> None:
        storage = InMemoryStorage()
        correlator = IdentityCorrelator(storage=storage)
        await correlator.correlate(Candidate("fp-A", "1.2.3.4"))
        assert storage.identities == []

    asyncio.run(run())


def test_recorded_candidate_always_matches_itself() -> None:
    async def run() -> None:
        correlator = IdentityCorrelator(storage=InMemoryStorage())
        candidate = Candidate("fp-Z", "10.0.0.1", {"user_agent": "x"})
        recorded = await correlator.record("u9", candidate)

        result = await correlator.correlate(candidate)

        assert result.matched is True
        assert recorded.metadata == {"user_agent": "x"}

    asyncio.run(run())


def test_concurrent_attempts_sharing_an_address_record_once() -> None:
    async def run() -> None:
        storage = InMemoryStorage()
        correlator = IdentityCorrelator(storage=storage)

        results = await asyncio.gather(
            correlator.correlate_and_record("u1", Candidate("fp-1", "5.5.5.5")),
            correlator.correlate_and_record("u2", Candidate("fp-2", "5.5.5.5")),
        )

        assert len(storage.identities) == 1
        assert sorted(r.match_type.value for r in results) == ["ip", "none"]
        assert sum(1 for r in results if r.recorded is not None) == 1

    asyncio.run(run())


def test_empty_address_never_matches_by_ip() -> None:
    async def run() -> None:
        storage = InMemoryStorage()
        correlator = IdentityCorrelator(storage=storage)

        first = await correlator.correlate_and_record("u1", Candidate("fp-1", ""))
        second = await correlator.correlate_and_record("u2", Candidate("fp-2", ""))

        assert first.match_type is MatchType.NONE
        assert second.match_type is MatchType.NONE
        assert len(storage.identities) == 2
        # Fingerprints are still compared when the address is missing.
        assert (await correlator.correlate(Candidate("fp-1", ""))).match_type is MatchType.FINGERPRINT

    asyncio.run(run())
