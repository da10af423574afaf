from __future__ import annotations

import random
from dataclasses import replace

import pytest

from backend.domain.models import (
    AssignmentError,
    ResourceCategory,
    RsvpStatus,
    WritePhase,
)
from backend.repository.data_repository import DataRepository, PersistenceError
from backend.services.directory_service import GuestDirectory
from backend.services.ledger_service import AssignmentLedger
from backend.services.lifecycle_service import ResourcePoolService
from backend.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str, **overrides):
    base = get_settings()
    return replace(base, database_path=tmp_path / filename, **overrides)


def _build_services(tmp_path, filename: str = "ledger.db", **overrides):
    settings = _build_test_settings(tmp_path, filename, **overrides)
    repository = DataRepository(settings)
    repository.initialize_database()
    directory = GuestDirectory(repository=repository, settings=settings)
    ledger = AssignmentLedger(repository=repository, directory=directory, settings=settings)
    pool = ResourcePoolService(repository=repository, ledger=ledger, settings=settings)
    return repository, directory, ledger, pool


def _make_guests(directory: GuestDirectory, count: int) -> list[str]:
    return [
        directory.create_guest(f"Guest{index}", "Test", RsvpStatus.YES).guest_id
        for index in range(count)
    ]


def _failing(*args, **kwargs):
    raise PersistenceError("simulated outage")


def test_assign_updates_container_and_backref(tmp_path):
    repository, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Grand Plaza Hotel")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    (guest_id,) = _make_guests(directory, 1)

    result = ledger.assign(guest_id, room.container_id)

    assert result.phase is WritePhase.APPLIED
    assert result.changed
    assert ledger.get_container(room.container_id).assigned_guest_ids == (guest_id,)
    assert repository.get_container(room.container_id).assigned_guest_ids == (guest_id,)
    stored_guest = repository.get_guest(guest_id)
    assert stored_guest.assigned_room_id == room.container_id
    assert stored_guest.assigned_hotel_id == hotel.parent_id


def test_assign_bumps_updated_at(tmp_path):
    _, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    (guest_id,) = _make_guests(directory, 1)

    ledger.assign(guest_id, room.container_id)

    assert ledger.get_container(room.container_id).updated_at >= room.updated_at


def test_capacity_rejection_leaves_occupants_unchanged(tmp_path):
    repository, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101", capacity=2)
    first, second, third = _make_guests(directory, 3)
    ledger.assign(first, room.container_id)
    ledger.assign(second, room.container_id)

    result = ledger.assign(third, room.container_id)

    assert result.phase is WritePhase.REJECTED
    assert result.error is AssignmentError.CAPACITY_EXCEEDED
    assert result.message == "Room 101 is at full capacity (2 guests)"
    assert ledger.get_container(room.container_id).assigned_guest_ids == (first, second)
    assert repository.get_container(room.container_id).assigned_guest_ids == (first, second)
    assert repository.get_guest(third).assigned_room_id is None


def test_assign_unknown_container_or_guest_is_not_found(tmp_path):
    _, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    (guest_id,) = _make_guests(directory, 1)

    missing_container = ledger.assign(guest_id, "no-such-room")
    missing_guest = ledger.assign("no-such-guest", room.container_id)

    assert missing_container.error is AssignmentError.NOT_FOUND
    assert missing_guest.error is AssignmentError.NOT_FOUND
    assert ledger.get_container(room.container_id).assigned_guest_ids == ()


def test_assign_same_container_twice_is_a_no_op(tmp_path):
    _, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    (guest_id,) = _make_guests(directory, 1)

    ledger.assign(guest_id, room.container_id)
    again = ledger.assign(guest_id, room.container_id)

    assert again.phase is WritePhase.APPLIED
    assert not again.changed
    assert ledger.get_container(room.container_id).assigned_guest_ids == (guest_id,)


def test_assign_to_second_room_moves_guest(tmp_path):
    repository, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    first_room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    second_room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "102")
    (guest_id,) = _make_guests(directory, 1)

    ledger.assign(guest_id, first_room.container_id)
    ledger.assign(guest_id, second_room.container_id)

    assert ledger.get_container(first_room.container_id).assigned_guest_ids == ()
    assert ledger.get_container(second_room.container_id).assigned_guest_ids == (guest_id,)
    assert repository.get_guest(guest_id).assigned_room_id == second_room.container_id


def test_categories_are_independent_namespaces(tmp_path):
    repository, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    route = pool.create_parent(ResourceCategory.VEHICLE, "Airport Shuttle")
    event = pool.create_parent(ResourceCategory.TABLE, "Reception")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    vehicle = pool.create_container(ResourceCategory.VEHICLE, route.parent_id, "Van 1")
    table = pool.create_container(ResourceCategory.TABLE, event.parent_id, "Table 1")
    (guest_id,) = _make_guests(directory, 1)

    for container in (room, vehicle, table):
        assert ledger.assign(guest_id, container.container_id).changed

    assert ledger.container_for(guest_id, ResourceCategory.ROOM).container_id == room.container_id
    assert (
        ledger.container_for(guest_id, ResourceCategory.VEHICLE).container_id
        == vehicle.container_id
    )
    assert (
        ledger.container_for(guest_id, ResourceCategory.TABLE, event.parent_id).container_id
        == table.container_id
    )
    stored = repository.get_guest(guest_id)
    assert stored.assigned_room_id == room.container_id
    assert stored.assigned_vehicle_id == vehicle.container_id


def test_table_seat_is_unique_per_event_only(tmp_path):
    repository, directory, ledger, pool = _build_services(tmp_path)
    dinner = pool.create_parent(ResourceCategory.TABLE, "Welcome Dinner")
    reception = pool.create_parent(ResourceCategory.TABLE, "Reception")
    dinner_one = pool.create_container(ResourceCategory.TABLE, dinner.parent_id, "Table 1")
    dinner_two = pool.create_container(ResourceCategory.TABLE, dinner.parent_id, "Table 2")
    reception_one = pool.create_container(ResourceCategory.TABLE, reception.parent_id, "Table 1")
    (guest_id,) = _make_guests(directory, 1)

    ledger.assign(guest_id, dinner_one.container_id, assigned_by_user_id="planner-7")
    ledger.assign(guest_id, reception_one.container_id)
    ledger.assign(guest_id, dinner_two.container_id)

    assert ledger.get_container(dinner_one.container_id).assigned_guest_ids == ()
    assert ledger.get_container(dinner_two.container_id).assigned_guest_ids == (guest_id,)
    assert ledger.get_container(reception_one.container_id).assigned_guest_ids == (guest_id,)

    records = repository.list_table_assignments()
    assert sorted(record.table_id for record in records) == sorted(
        [dinner_two.container_id, reception_one.container_id]
    )
    assert {record.assigned_by_user_id for record in records} == {"1"}


def test_table_assignment_records_assigning_user(tmp_path):
    repository, directory, ledger, pool = _build_services(tmp_path)
    event = pool.create_parent(ResourceCategory.TABLE, "Reception")
    table = pool.create_container(ResourceCategory.TABLE, event.parent_id, "Table 1")
    (guest_id,) = _make_guests(directory, 1)

    ledger.assign(guest_id, table.container_id, assigned_by_user_id="planner-7", seat_number=3)

    (record,) = repository.list_table_assignments([table.container_id])
    assert record.guest_id == guest_id
    assert record.assigned_by_user_id == "planner-7"
    assert record.seat_number == 3
    assert record.assigned_at


def test_unassign_clears_backref_and_is_idempotent(tmp_path):
    repository, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    first, second = _make_guests(directory, 2)
    ledger.assign(first, room.container_id)
    ledger.assign(second, room.container_id)

    once = ledger.unassign(first, room.container_id)
    state_after_once = (
        ledger.get_container(room.container_id),
        repository.get_container(room.container_id),
        repository.get_guest(first),
    )
    twice = ledger.unassign(first, room.container_id)
    state_after_twice = (
        ledger.get_container(room.container_id),
        repository.get_container(room.container_id),
        repository.get_guest(first),
    )

    assert once.changed
    assert not twice.changed
    assert twice.phase is WritePhase.APPLIED
    assert state_after_once == state_after_twice
    assert state_after_twice[0].assigned_guest_ids == (second,)
    assert state_after_twice[2].assigned_room_id is None
    assert state_after_twice[2].assigned_hotel_id is None


def test_unassign_unknown_container_is_a_no_op(tmp_path):
    _, directory, ledger, _ = _build_services(tmp_path)
    (guest_id,) = _make_guests(directory, 1)

    result = ledger.unassign(guest_id, "no-such-room")

    assert result.phase is WritePhase.APPLIED
    assert result.error is None
    assert not result.changed


def test_reassign_into_full_container_leaves_guest_unassigned(tmp_path):
    repository, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    room_a = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101", capacity=1)
    room_b = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "102", capacity=1)
    mover, occupant = _make_guests(directory, 2)
    ledger.assign(mover, room_a.container_id)
    ledger.assign(occupant, room_b.container_id)

    result = ledger.reassign(mover, room_a.container_id, room_b.container_id)

    assert result.error is AssignmentError.CAPACITY_EXCEEDED
    assert ledger.get_container(room_a.container_id).assigned_guest_ids == ()
    assert ledger.get_container(room_b.container_id).assigned_guest_ids == (occupant,)
    assert ledger.container_for(mover, ResourceCategory.ROOM) is None
    assert repository.get_guest(mover).assigned_room_id is None


def test_reassign_moves_guest_when_destination_has_space(tmp_path):
    repository, directory, ledger, pool = _build_services(tmp_path)
    route = pool.create_parent(ResourceCategory.VEHICLE, "Airport Shuttle")
    bus = pool.create_container(ResourceCategory.VEHICLE, route.parent_id, "Shuttle A")
    van = pool.create_container(ResourceCategory.VEHICLE, route.parent_id, "Van 1", capacity=12)
    (guest_id,) = _make_guests(directory, 1)
    ledger.assign(guest_id, bus.container_id)

    result = ledger.reassign(guest_id, bus.container_id, van.container_id)

    assert result.phase is WritePhase.APPLIED
    assert ledger.get_container(bus.container_id).assigned_guest_ids == ()
    assert ledger.get_container(van.container_id).assigned_guest_ids == (guest_id,)
    assert repository.get_guest(guest_id).assigned_vehicle_id == van.container_id


def test_bulk_assign_reports_each_guest(tmp_path):
    _, directory, ledger, pool = _build_services(tmp_path)
    event = pool.create_parent(ResourceCategory.TABLE, "Reception")
    table = pool.create_container(ResourceCategory.TABLE, event.parent_id, "Table 1", capacity=2)
    guest_ids = _make_guests(directory, 3)

    results = ledger.bulk_assign(guest_ids, table.container_id)

    assert [result.phase for result in results] == [
        WritePhase.APPLIED,
        WritePhase.APPLIED,
        WritePhase.REJECTED,
    ]
    assert results[2].error is AssignmentError.CAPACITY_EXCEEDED
    assert ledger.get_container(table.container_id).assigned_guest_ids == tuple(guest_ids[:2])


@pytest.mark.parametrize("seed", [3, 17, 42, 2024])
def test_random_operations_keep_capacity_and_uniqueness(tmp_path, seed):
    repository, directory, ledger, pool = _build_services(tmp_path, f"random_{seed}.db")
    rng = random.Random(seed)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    rooms = [
        pool.create_container(
            ResourceCategory.ROOM, hotel.parent_id, str(100 + index), capacity=rng.randint(1, 3)
        ).container_id
        for index in range(4)
    ]
    guest_ids = _make_guests(directory, 10)

    for _ in range(60):
        guest_id = rng.choice(guest_ids)
        operation = rng.choice(["assign", "reassign", "unassign"])
        if operation == "assign":
            ledger.assign(guest_id, rng.choice(rooms))
        elif operation == "reassign":
            ledger.reassign(guest_id, rng.choice(rooms), rng.choice(rooms))
        else:
            ledger.unassign(guest_id, rng.choice(rooms))

        containers = ledger.containers(category=ResourceCategory.ROOM)
        for container in containers:
            assert container.occupancy <= container.capacity
            assert len(set(container.assigned_guest_ids)) == container.occupancy
        for candidate in guest_ids:
            holders = [c for c in containers if c.holds(candidate)]
            assert len(holders) <= 1

    for candidate in guest_ids:
        holder = ledger.container_for(candidate, ResourceCategory.ROOM)
        expected = holder.container_id if holder is not None else None
        assert repository.get_guest(candidate).assigned_room_id == expected


def test_remote_failure_leaves_cache_ahead_of_store(tmp_path, monkeypatch):
    repository, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    (guest_id,) = _make_guests(directory, 1)

    monkeypatch.setattr(repository, "update_container", _failing)
    result = ledger.assign(guest_id, room.container_id)
    monkeypatch.undo()

    assert result.phase is WritePhase.LOCAL_ONLY
    assert result.error is AssignmentError.REMOTE_WRITE_FAILED
    assert result.changed
    assert ledger.get_container(room.container_id).assigned_guest_ids == (guest_id,)
    assert repository.get_container(room.container_id).assigned_guest_ids == ()

    ledger.reload()
    assert ledger.get_container(room.container_id).assigned_guest_ids == ()


def test_strict_mode_restores_cache_and_store(tmp_path, monkeypatch):
    repository, directory, ledger, pool = _build_services(
        tmp_path, "strict.db", strict_remote_writes=True
    )
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    (guest_id,) = _make_guests(directory, 1)

    monkeypatch.setattr(directory, "update_backref", _failing)
    result = ledger.assign(guest_id, room.container_id)
    monkeypatch.undo()

    assert result.phase is WritePhase.REJECTED
    assert result.error is AssignmentError.REMOTE_WRITE_FAILED
    assert not result.changed
    assert ledger.get_container(room.container_id).assigned_guest_ids == ()
    assert repository.get_container(room.container_id).assigned_guest_ids == ()


def test_strict_unassign_with_failed_guest_read_keeps_cache_and_store(tmp_path, monkeypatch):
    repository, directory, ledger, pool = _build_services(
        tmp_path, "strict_read.db", strict_remote_writes=True
    )
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    (guest_id,) = _make_guests(directory, 1)
    ledger.assign(guest_id, room.container_id)

    monkeypatch.setattr(repository, "get_guest", _failing)
    result = ledger.unassign(guest_id, room.container_id)
    monkeypatch.undo()

    assert result.phase is WritePhase.REJECTED
    assert result.error is AssignmentError.REMOTE_WRITE_FAILED
    assert not result.changed
    assert ledger.get_container(room.container_id).assigned_guest_ids == (guest_id,)
    assert repository.get_container(room.container_id).assigned_guest_ids == (guest_id,)
    assert repository.get_guest(guest_id).assigned_room_id == room.container_id


def test_failed_guest_read_rejects_assign_and_reassign(tmp_path, monkeypatch):
    repository, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    first_room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101")
    second_room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "102")
    seated, waiting = _make_guests(directory, 2)
    ledger.assign(seated, first_room.container_id)

    monkeypatch.setattr(repository, "get_guest", _failing)
    assigned = ledger.assign(waiting, first_room.container_id)
    moved = ledger.reassign(seated, first_room.container_id, second_room.container_id)
    monkeypatch.undo()

    assert assigned.phase is WritePhase.REJECTED
    assert assigned.error is AssignmentError.REMOTE_WRITE_FAILED
    assert moved.phase is WritePhase.REJECTED
    assert ledger.get_container(first_room.container_id).assigned_guest_ids == (seated,)
    assert ledger.get_container(second_room.container_id).assigned_guest_ids == ()


def test_deleted_guest_keeps_occupying_its_container(tmp_path):
    repository, directory, ledger, pool = _build_services(tmp_path)
    hotel = pool.create_parent(ResourceCategory.ROOM, "Hotel")
    room = pool.create_container(ResourceCategory.ROOM, hotel.parent_id, "101", capacity=1)
    gone, waiting = _make_guests(directory, 2)
    ledger.assign(gone, room.container_id)

    directory.delete_guest(gone)

    assert ledger.get_container(room.container_id).assigned_guest_ids == (gone,)
    assert ledger.assign(waiting, room.container_id).error is AssignmentError.CAPACITY_EXCEEDED
    ledger.unassign(gone, room.container_id)
    assert ledger.assign(waiting, room.container_id).changed


def test_two_ledgers_can_jointly_overshoot_capacity(tmp_path):
    """Nothing guards the store write, so stale caches both pass the check."""
    repository, directory, ledger_a, pool = _build_services(tmp_path)
    event = pool.create_parent(ResourceCategory.TABLE, "Reception")
    table = pool.create_container(ResourceCategory.TABLE, event.parent_id, "Table 1", capacity=1)
    first, second = _make_guests(directory, 2)
    ledger_b = AssignmentLedger(repository=repository, directory=directory)
    ledger_a.reload()
    ledger_b.reload()

    assert ledger_a.assign(first, table.container_id).phase is WritePhase.APPLIED
    assert ledger_b.assign(second, table.container_id).phase is WritePhase.APPLIED

    fresh = AssignmentLedger(repository=repository, directory=directory)
    fresh.reload()
    merged = fresh.get_container(table.container_id)
    assert merged.occupancy == 2
    assert merged.capacity == 1
    assert not fresh.can_assign(table.container_id)
