"""Tests for the claim protocol."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
import redis.exceptions

from ticket_claims.contracts import (
    ClaimFailure,
    ClaimSuccess,
    FailureReason,
    PreviousState,
    TicketClaimRecord,
)
from ticket_claims.errors import StorageError
from ticket_claims.protocols import ClaimProtocol
from ticket_claims.service import TicketClaimService


@pytest.fixture(params=["local", "remote"])
def service(request, local_service, remote_service) -> TicketClaimService:
    """Run the backend-agnostic scenarios against both stores."""
    return local_service if request.param == "local" else remote_service


@pytest.mark.asyncio
async def test_first_claim_wins_second_sees_owner(service) -> None:
    await service.store_ticket_notification("TCK-100", "chatA", "msg1")

    first = await service.claim_ticket_notification("chatA", "msg1", "+1111", "Alice")
    second = await service.claim_ticket_notification("chatA", "msg1", "+2222", "Bob")

    assert isinstance(first, ClaimSuccess)
    assert first.was_claimed is False
    assert first.record.claimed is True
    assert first.record.claimed_by_identity == "+1111"
    assert first.record.claimed_by_display_name == "Alice"

    assert isinstance(second, ClaimSuccess)
    assert second.was_claimed is True
    assert second.claimed_by_identity == "+1111"


@pytest.mark.asyncio
async def test_claim_unknown_key_not_found(service) -> None:
    result = await service.claim_ticket_notification("chatA", "unknown", "+1111", "Alice")

    assert isinstance(result, ClaimFailure)
    assert result.reason == FailureReason.NOT_FOUND


@pytest.mark.asyncio
async def test_repeat_claim_by_same_claimant_is_idempotent(service) -> None:
    await service.store_ticket_notification("TCK-100", "chatA", "msg1")
    await service.claim_ticket_notification("chatA", "msg1", "+1111", "Alice")
    before = await service.load_ticket_notification("chatA", "msg1")

    again = await service.claim_ticket_notification("chatA", "msg1", "+1111", "Alice")
    once_more = await service.claim_ticket_notification("chatA", "msg1", "+1111", "Alice")

    assert again.was_claimed is True
    assert once_more.was_claimed is True
    assert await service.load_ticket_notification("chatA", "msg1") == before


@pytest.mark.asyncio
async def test_claim_stamps_time_and_snapshot(service, clock) -> None:
    await service.store_ticket_notification("TCK-100", "chatA", "msg1")
    previous = PreviousState(
        status="Open",
        assignee_tag="Tier 1",
        assignee_name=None,
        group_name="Network",
    )

    result = await service.claim_ticket_notification("chatA", "msg1", "+1111", "Alice", previous)

    assert result.record.claimed_at == clock()
    assert result.record.previous_state == previous


@pytest.mark.asyncio
async def test_reclaim_keeps_first_snapshot(service) -> None:
    await service.store_ticket_notification("TCK-100", "chatA", "msg1")
    await service.claim_ticket_notification(
        "chatA", "msg1", "+1111", "Alice", PreviousState(status="Open")
    )
    await service.unclaim_ticket_notification("chatA", "msg1", "+1111")

    result = await service.claim_ticket_notification(
        "chatA", "msg1", "+2222", "Bob", PreviousState(status="In Progress")
    )

    assert result.was_claimed is False
    assert result.record.previous_state.status == "Open"


@pytest.mark.asyncio
async def test_invalid_stored_record(remote_service, redis_sync) -> None:
    redis_sync.set("ticket_claim:chatA:msg1", '{"ticketId": "", "claimed": false}')

    result = await remote_service.claim_ticket_notification("chatA", "msg1", "+1111", "Alice")

    assert isinstance(result, ClaimFailure)
    assert result.reason == FailureReason.INVALID_RECORD
    assert result.detail
    assert redis_sync.get("ticket_claim_lock:chatA:msg1") is None


@pytest.mark.asyncio
async def test_concurrent_claims_in_one_process(local_service) -> None:
    await local_service.store_ticket_notification("TCK-100", "chatA", "msg1")
    claimants = [f"+{n:04d}" for n in range(10)]

    results = await asyncio.gather(
        *(
            local_service.claim_ticket_notification("chatA", "msg1", who, f"Tech {who}")
            for who in claimants
        )
    )

    winners = [r for r in results if not r.was_claimed]
    assert len(winners) == 1
    winner = winners[0].record.claimed_by_identity
    assert all(r.record.claimed_by_identity == winner for r in results)


@pytest.mark.asyncio
async def test_concurrent_claims_across_processes(make_remote_store, redis_sync, clock) -> None:
    services = [TicketClaimService(make_remote_store(), clock=clock) for _ in range(8)]
    await services[0].store_ticket_notification("TCK-100", "chatA", "msg1")

    results = await asyncio.gather(
        *(
            svc.claim_ticket_notification("chatA", "msg1", f"+{n:04d}", f"Tech {n}")
            for n, svc in enumerate(services)
        )
    )

    assert all(isinstance(r, ClaimSuccess) for r in results)
    winners = [r for r in results if not r.was_claimed]
    assert len(winners) == 1

    winner = winners[0].record.claimed_by_identity
    stored = TicketClaimRecord.from_json("k", redis_sync.get("ticket_claim:chatA:msg1"))
    assert stored.claimed_by_identity == winner
    assert redis_sync.get("ticket_claim_lock:chatA:msg1") == winner
    assert all(r.record.claimed for r in results)
    assert all(r.claimed_by_identity == winner for r in results)


@pytest.mark.asyncio
async def test_loser_sees_winner_whose_write_is_slow(make_remote_store, clock) -> None:
    winner_store = make_remote_store()
    winner = TicketClaimService(winner_store, clock=clock)
    loser = TicketClaimService(make_remote_store(), clock=clock)
    await winner.store_ticket_notification("TCK-100", "chatA", "msg1")
    original_put = winner_store.put

    async def slow_put(key, record):
        await asyncio.sleep(0.05)
        await original_put(key, record)

    async def late_claim():
        await asyncio.sleep(0.01)
        return await loser.claim_ticket_notification("chatA", "msg1", "+2222", "Bob")

    with patch.object(winner_store, "put", new=slow_put):
        won, lost = await asyncio.gather(
            winner.claim_ticket_notification("chatA", "msg1", "+1111", "Alice"),
            late_claim(),
        )

    assert won.was_claimed is False
    assert lost.was_claimed is True
    assert lost.claimed_by_identity == "+1111"
    assert lost.record.claimed_by_display_name == "Alice"


@pytest.mark.asyncio
async def test_storage_failure_mid_claim(remote_service, remote_store, redis_sync) -> None:
    await remote_service.store_ticket_notification("TCK-100", "chatA", "msg1")
    client = remote_store._get_client()
    original_set = client.set

    async def failing_record_write(name, *args, **kwargs):
        if name.startswith("ticket_claim:"):
            raise redis.exceptions.ConnectionError("Connection reset by peer")
        return await original_set(name, *args, **kwargs)

    with patch.object(client, "set", new=failing_record_write):
        result = await remote_service.claim_ticket_notification("chatA", "msg1", "+1111", "Alice")

    assert isinstance(result, ClaimFailure)
    assert result.reason == FailureReason.STORAGE_ERROR
    assert result.endpoint == "redis.test:6379"
    assert "Connection reset by peer" in result.detail

    stored = TicketClaimRecord.from_json("k", redis_sync.get("ticket_claim:chatA:msg1"))
    assert stored.claimed is False
    # The lock taken before the failed write was released again.
    assert redis_sync.get("ticket_claim_lock:chatA:msg1") is None

    retry = await remote_service.claim_ticket_notification("chatA", "msg1", "+2222", "Bob")
    assert retry.was_claimed is False


@pytest.mark.asyncio
async def test_lock_acquire_timeout_is_storage_error(remote_service, remote_store, redis_sync) -> None:
    await remote_service.store_ticket_notification("TCK-100", "chatA", "msg1")
    client = remote_store._get_client()

    async def timeout(*args, **kwargs):
        raise redis.exceptions.TimeoutError("Timeout connecting to server")

    with patch.object(client, "set", new=timeout):
        result = await remote_service.claim_ticket_notification("chatA", "msg1", "+1111", "Alice")

    assert result.reason == FailureReason.STORAGE_ERROR
    stored = TicketClaimRecord.from_json("k", redis_sync.get("ticket_claim:chatA:msg1"))
    assert stored.claimed is False


@pytest.mark.asyncio
async def test_lost_race_reports_lock_holder(local_store, key, clock) -> None:
    record = TicketClaimRecord.for_notification("TCK-100", key)
    await local_store.put(key, record)
    # Another process holds the lock but never writes the record.
    await local_store.acquire_lock(key, "+1111", 86400)

    protocol = ClaimProtocol(local_store, clock=clock, race_reload_wait_seconds=0)
    with patch.object(local_store, "get", wraps=local_store.get) as get:
        result = await protocol.execute(key, "+2222", "Bob")

    assert result.was_claimed is True
    assert result.record.claimed is True
    assert result.claimed_by_identity == "+1111"
    # One initial read plus every reload attempt.
    assert get.await_count == 1 + 5
    assert local_store._records[key.record_key] == record
    assert await local_store.lock_holder(key) == "+1111"


@pytest.mark.asyncio
async def test_lock_freed_by_failed_winner_is_retried(local_store, key, clock) -> None:
    await local_store.put(key, TicketClaimRecord.for_notification("TCK-100", key))
    protocol = ClaimProtocol(local_store, clock=clock, race_reload_wait_seconds=0)

    with patch.object(local_store, "acquire_lock", new=AsyncMock(side_effect=[False, True])):
        result = await protocol.execute(key, "+2222", "Bob")

    assert result.was_claimed is False
    assert result.claimed_by_identity == "+2222"
    assert local_store._records[key.record_key].claimed_by_identity == "+2222"


@pytest.mark.asyncio
async def test_record_claimed_between_read_and_lock(local_store, key, clock) -> None:
    unclaimed = TicketClaimRecord.for_notification("TCK-100", key)
    claimed = unclaimed.claimed_by("+1111", "Alice", clock())
    get = AsyncMock(side_effect=[unclaimed, claimed])

    protocol = ClaimProtocol(local_store, clock=clock)
    with patch.object(local_store, "get", new=get):
        result = await protocol.execute(key, "+2222", "Bob")

    assert result.was_claimed is True
    assert result.record.claimed_by_identity == "+1111"
    assert await local_store.lock_holder(key) is None


@pytest.mark.asyncio
async def test_release_failure_after_write_error_still_reports_storage_error(local_store, key, clock) -> None:
    await local_store.put(key, TicketClaimRecord.for_notification("TCK-100", key))
    protocol = ClaimProtocol(local_store, clock=clock)
    error = StorageError("write failed", endpoint="redis:6379")

    with patch.object(local_store, "put", new=AsyncMock(side_effect=error)), patch.object(
        local_store, "release_lock", new=AsyncMock(side_effect=error)
    ):
        result = await protocol.execute(key, "+1111", "Alice")

    assert result.reason == FailureReason.STORAGE_ERROR
    assert result.endpoint == "redis:6379"


@pytest.mark.asyncio
async def test_lock_ttl_from_constructor(local_store, key, clock) -> None:
    await local_store.put(key, TicketClaimRecord.for_notification("TCK-100", key))
    protocol = ClaimProtocol(local_store, lock_ttl_seconds=30, clock=clock)

    with patch.object(local_store, "acquire_lock", wraps=local_store.acquire_lock) as acquire:
        await protocol.execute(key, "+1111", "Alice")

    acquire.assert_awaited_once_with(key, "+1111", 30)


@pytest.mark.asyncio
async def test_unusable_claimant_leaves_record_and_lock_untouched(local_store, key, clock) -> None:
    record = TicketClaimRecord.for_notification("TCK-100", key)
    await local_store.put(key, record)
    protocol = ClaimProtocol(local_store, clock=clock)

    result = await protocol.execute(key, "", "Nobody")

    assert isinstance(result, ClaimFailure)
    assert result.reason == FailureReason.INVALID_RECORD
    assert local_store._records[key.record_key] == record
    assert await local_store.lock_holder(key) is None
