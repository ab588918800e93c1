import asyncio
from datetime import timedelta

import pytest

from timekeeping.errors import IllegalTransitionError, InvalidBreakError, TransientGatewayError
from timekeeping.schemas.time_entry import EntryAction, EntryStatus, ManualEntryDraft, TimeEntryUpdate
from timekeeping.services.entry_service import EntrySnapshotStore, TimeEntryService


@pytest.mark.asyncio
async def test_illegal_transition_never_reaches_gateway(gateway, make_entry, t0):
    store = EntrySnapshotStore([make_entry(EntryStatus.STOPPED, total_duration=900)])
    service = TimeEntryService(gateway, store=store, clock=lambda: t0)

    with pytest.raises(IllegalTransitionError):
        await service.pause("entry-1")

    gateway.apply_transition.assert_not_awaited()
    assert store.get("entry-1").status == EntryStatus.STOPPED


@pytest.mark.asyncio
async def test_confirmed_snapshot_replaces_local_one(gateway, make_entry, t0):
    store = EntrySnapshotStore([make_entry(EntryStatus.RUNNING)])
    confirmed = make_entry(EntryStatus.PAUSED, total_duration=90, paused_at=t0 + timedelta(seconds=90))
    gateway.apply_transition.return_value = confirmed
    service = TimeEntryService(gateway, store=store, clock=lambda: t0 + timedelta(seconds=90))

    result = await service.pause("entry-1")

    gateway.apply_transition.assert_awaited_once_with("entry-1", EntryAction.PAUSE)
    assert result is confirmed
    assert store.get("entry-1") is confirmed


@pytest.mark.asyncio
async def test_unknown_entry_is_fetched_before_validation(gateway, make_entry, t0):
    gateway.fetch_entry.return_value = make_entry(EntryStatus.PAUSED, total_duration=600)
    gateway.apply_transition.return_value = make_entry(EntryStatus.RUNNING, total_duration=600)
    service = TimeEntryService(gateway, clock=lambda: t0)

    result = await service.resume("entry-1")

    gateway.fetch_entry.assert_awaited_once_with("entry-1")
    assert result.status == EntryStatus.RUNNING
    assert service.store.get("entry-1").status == EntryStatus.RUNNING


@pytest.mark.asyncio
async def test_gateway_failure_keeps_previous_snapshot(gateway, make_entry, t0):
    previous = make_entry(EntryStatus.RUNNING)
    store = EntrySnapshotStore([previous])
    gateway.apply_transition.side_effect = TransientGatewayError("connection reset")
    service = TimeEntryService(gateway, store=store, clock=lambda: t0)

    with pytest.raises(TransientGatewayError):
        await service.stop("entry-1")

    assert store.get("entry-1") is previous


@pytest.mark.asyncio
async def test_readers_see_old_snapshot_while_transition_is_in_flight(gateway, make_entry, t0):
    previous = make_entry(EntryStatus.RUNNING)
    confirmed = make_entry(EntryStatus.STOPPED, total_duration=300)
    store = EntrySnapshotStore([previous])
    release = asyncio.Event()
    started = asyncio.Event()

    async def slow_transition(entry_id, action):
        started.set()
        await release.wait()
        return confirmed

    gateway.apply_transition.side_effect = slow_transition
    service = TimeEntryService(gateway, store=store, clock=lambda: t0)

    task = asyncio.create_task(service.stop("entry-1"))
    await started.wait()
    assert store.get("entry-1") is previous

    release.set()
    await task
    assert store.get("entry-1") is confirmed


@pytest.mark.asyncio
async def test_add_break_validates_window_locally(gateway, make_entry, t0):
    service = TimeEntryService(gateway, store=EntrySnapshotStore([make_entry()]))

    with pytest.raises(InvalidBreakError):
        await service.add_break("entry-1", t0 + timedelta(minutes=5), t0)

    gateway.add_break.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [EntryStatus.STOPPED, EntryStatus.COMPLETED])
async def test_add_break_rejected_for_finished_entry(gateway, make_entry, t0, status):
    store = EntrySnapshotStore([make_entry(status, total_duration=600)])
    service = TimeEntryService(gateway, store=store)

    with pytest.raises(IllegalTransitionError) as exc_info:
        await service.add_break("entry-1", t0, t0 + timedelta(seconds=30))

    assert exc_info.value.user_message == (
        f"Cannot add a break to a time entry that is {status.value.lower()}. Refresh and try again."
    )
    assert gateway.add_break.await_count == 0


@pytest.mark.asyncio
async def test_add_break_on_paused_entry_fetched_when_not_stored(gateway, make_entry, t0):
    gateway.fetch_entry.return_value = make_entry(EntryStatus.PAUSED, total_duration=600)
    gateway.add_break.return_value = make_entry(EntryStatus.PAUSED, total_duration=600)
    service = TimeEntryService(gateway)

    await service.add_break("entry-1", t0, t0 + timedelta(seconds=30))

    gateway.fetch_entry.assert_awaited_once_with("entry-1")
    gateway.add_break.assert_awaited_once()


@pytest.mark.asyncio
async def test_add_break_stores_confirmed_entry(gateway, make_entry, make_break, t0):
    with_break = make_entry(EntryStatus.RUNNING, breaks=[make_break(60, 120, duration=60)])
    gateway.add_break.return_value = with_break
    service = TimeEntryService(gateway, store=EntrySnapshotStore([make_entry(EntryStatus.RUNNING)]))

    await service.add_break("entry-1", t0 + timedelta(seconds=60), t0 + timedelta(seconds=120), "Coffee")

    gateway.add_break.assert_awaited_once_with(
        "entry-1", t0 + timedelta(seconds=60), t0 + timedelta(seconds=120), "Coffee"
    )
    assert service.store.get("entry-1") is with_break


@pytest.mark.asyncio
async def test_delete_removes_entry_from_store_and_visible_list(gateway, make_entry):
    store = EntrySnapshotStore([make_entry(id="a"), make_entry(id="b")])
    store.set_visible(["a", "b"])
    service = TimeEntryService(gateway, store=store)

    await service.delete("a")

    gateway.delete_entry.assert_awaited_once_with("a")
    assert store.get("a") is None
    assert [entry.id for entry in store.visible()] == ["b"]


@pytest.mark.asyncio
async def test_refresh_active_populates_store(gateway, make_entry):
    gateway.list_active_entries.return_value = [
        make_entry(EntryStatus.RUNNING, id="a"),
        make_entry(EntryStatus.PAUSED, id="b"),
    ]
    service = TimeEntryService(gateway)

    entries = await service.refresh_active()

    assert [entry.id for entry in entries] == ["a", "b"]
    assert {entry.id for entry in service.store.all()} == {"a", "b"}


def test_visible_skips_unknown_ids_and_keeps_display_order(make_entry):
    store = EntrySnapshotStore([make_entry(id="a"), make_entry(id="b")])
    store.set_visible(["b", "missing", "a", "b"])

    assert [entry.id for entry in store.visible()] == ["b", "a"]


@pytest.mark.asyncio
async def test_update_stores_server_version_after_edit(gateway, make_entry):
    edited = make_entry(EntryStatus.STOPPED, name="Client support (billed)", billable=True)
    gateway.fetch_entry.return_value = edited
    store = EntrySnapshotStore([make_entry(EntryStatus.STOPPED)])
    service = TimeEntryService(gateway, store=store)
    update = TimeEntryUpdate(name="Client support (billed)", billable=True)

    result = await service.update("entry-1", update)

    gateway.update_entry.assert_awaited_once_with("entry-1", update)
    assert result is edited
    assert store.get("entry-1") is edited


@pytest.mark.asyncio
async def test_unarchive_refreshes_entry(gateway, make_entry):
    gateway.fetch_entry.return_value = make_entry(EntryStatus.COMPLETED)
    service = TimeEntryService(gateway)

    result = await service.unarchive("entry-1")

    gateway.unarchive_entry.assert_awaited_once_with("entry-1")
    assert not result.is_archived


@pytest.mark.asyncio
async def test_add_manual_fetches_created_entry(gateway, make_entry, t0):
    gateway.add_manual_entry.return_value = "manual-1"
    gateway.fetch_entry.return_value = make_entry(EntryStatus.STOPPED, id="manual-1", total_duration=5400)
    service = TimeEntryService(gateway)

    result = await service.add_manual(ManualEntryDraft(name="Workshop", hours=1, minutes=30, started_at=t0))

    gateway.fetch_entry.assert_awaited_once_with("manual-1")
    assert result.total_duration == 5400
    assert service.store.get("manual-1") is result
