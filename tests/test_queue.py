"""Queue ordering and cached projection."""

import json
import uuid
from datetime import time

import redis

from mediq.schemas import QueueEntry
from mediq.services import cache as cache_mod
from mediq.services.queue import order_queue

from conftest import BOOKING_DATE


def _entry(token: int, status: str = "confirmed", token_type: str = "normal") -> QueueEntry:
    return QueueEntry(
        appointment_id=uuid.uuid4(),
        token_number=token,
        token_type=token_type,
        patient_display_name=f"Patient {token}",
        status=status,
        appointment_time=time(10, 0),
    )


def test_order_queue_sorts_by_token_number() -> None:
    ordered = order_queue([_entry(2), _entry(1), _entry(3)])

    assert [entry.token_number for entry in ordered] == [1, 2, 3]
    assert [entry.queue_position for entry in ordered] == [1, 2, 3]


def test_order_queue_drops_cancelled_and_renumbers() -> None:
    ordered = order_queue([_entry(1), _entry(2, status="cancelled"), _entry(3)])

    assert [entry.token_number for entry in ordered] == [1, 3]
    assert [entry.queue_position for entry in ordered] == [1, 2]


def test_completed_entries_have_no_position() -> None:
    ordered = order_queue(
        [_entry(1, status="completed"), _entry(2, status="in_consultation"), _entry(3)]
    )

    assert [entry.queue_position for entry in ordered] == [None, 1, 2]


def test_priority_tokens_go_first() -> None:
    entries = [_entry(1), _entry(2, token_type="priority"), _entry(3)]

    ordered = order_queue(entries)
    assert [entry.token_number for entry in ordered] == [2, 1, 3]
    assert [entry.queue_position for entry in ordered] == [1, 2, 3]

    entries[1] = entries[1].model_copy(update={"status": "cancelled"})
    ordered = order_queue(entries)
    assert [entry.token_number for entry in ordered] == [1, 3]
    assert [entry.queue_position for entry in ordered] == [1, 2]


def test_projection_reflects_cancellation(book, lifecycle, projector, patients, world) -> None:
    booked = [book(patient_index=index) for index in range(3)]

    lifecycle.cancel(booked[1].appointment.id, patients[1])
    queue = projector.project(world.doctor_id, BOOKING_DATE)

    assert [entry.token_number for entry in queue] == [1, 3]
    assert [entry.queue_position for entry in queue] == [1, 2]
    assert queue[0].patient_display_name == "Asha Patel"
    assert projector.position_of(world.doctor_id, BOOKING_DATE, booked[2].appointment.id) == 2
    assert projector.position_of(world.doctor_id, BOOKING_DATE, booked[1].appointment.id) is None


def test_projection_is_cached_until_invalidated(book, projector, world, fake_redis) -> None:
    book()
    projector.project(world.doctor_id, BOOKING_DATE)

    key = f"mediq:queue:{world.doctor_id}:{BOOKING_DATE.isoformat()}"
    assert len(json.loads(fake_redis.store[key])) == 1

    projector.invalidate(world.doctor_id, BOOKING_DATE)
    assert key not in fake_redis.store


def test_projection_survives_cache_outage(
    book, lifecycle, projector, doctor_caller, world, monkeypatch
) -> None:
    lifecycle.prioritize(book().appointment.id, doctor_caller)

    class BrokenRedis:
        def _fail(self, *args, **kwargs):
            raise redis.ConnectionError("redis down")

        get = set = delete = _fail

    monkeypatch.setattr(cache_mod, "redis_client", BrokenRedis())

    queue = projector.project(world.doctor_id, BOOKING_DATE)
    projector.invalidate(world.doctor_id, BOOKING_DATE)

    assert [entry.token_type for entry in queue] == ["priority"]


def test_corrupt_cache_entry_is_recomputed(book, projector, world, fake_redis) -> None:
    book()
    key = f"mediq:queue:{world.doctor_id}:{BOOKING_DATE.isoformat()}"
    fake_redis.store[key] = "not json"

    queue = projector.project(world.doctor_id, BOOKING_DATE)

    assert [entry.token_number for entry in queue] == [1]
