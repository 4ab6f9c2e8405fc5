"""Run join -> verify scenarios against in-memory storage, including an alt and a replay."""

from __future__ import annotations

import asyncio
from datetime import timedelta

from ..config import VerifierConfig, configure_logging
from ..service import build_service
from ..storage import InMemoryStorage
from ..utils.time import ManualClock
from ..verification.membership import JoiningMember
from ..verification.sink import RecordingSink


async def main() -> None:
    configure_logging("INFO")
    clock = ManualClock()
    sink = RecordingSink()
    service = build_service(storage=InMemoryStorage(), sink=sink, config=VerifierConfig(), clock=clock)
    membership, coordinator = service.membership, service.coordinator

    try:
        first = await membership.on_member_join(JoiningMember("u1", "g1", group_name="Demo"))
        print("FIRST ACCOUNT:", (await coordinator.attempt(first, "fp-A", {}, "1.2.3.4")).to_payload())

        alt = await membership.on_member_join(JoiningMember("u2", "g1", group_name="Demo"))
        print("SAME DEVICE:", (await coordinator.attempt(alt, "fp-A", {}, "9.9.9.9")).to_payload())

        same_network = await membership.on_member_join(JoiningMember("u3", "g1", group_name="Demo"))
        print("SAME NETWORK:", (await coordinator.attempt(same_network, "fp-B", {}, "1.2.3.4")).to_payload())

        print("REPLAY:", (await coordinator.attempt(first, "fp-E", {}, "7.7.7.7")).to_payload())

        late = await membership.on_member_join(JoiningMember("u4", "g1", group_name="Demo"))
        clock.advance(timedelta(minutes=11))
        print("EXPIRED:", (await coordinator.attempt(late, "fp-D", {}, "6.6.6.6")).to_payload())
        print("SWEPT:", await service.ledger.sweep_expired())

        print("SINK CALLS:", sink.names())
    finally:
        await service.close()


if __name__ == "__main__":
    asyncio.run(main())
