"""Token allocation: uniqueness, gaplessness and bounded retries."""

import threading
import uuid
from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from mediq.errors import TokenAllocationExhausted, TokenClaimConflict
from mediq.models.token_issue import TokenIssue
from mediq.services.db import get_session
from mediq.services.tokens import TokenAllocator

DAY = date(2024, 6, 1)


def test_first_token_of_partition_is_one() -> None:
    allocator = TokenAllocator(backoff_seconds=0)
    assert allocator.allocate(uuid.uuid4(), DAY) == 1


def test_sequential_allocations_are_gapless() -> None:
    allocator = TokenAllocator(backoff_seconds=0)
    doctor_id = uuid.uuid4()

    tokens = [allocator.allocate(doctor_id, DAY) for _ in range(6)]

    assert tokens == [1, 2, 3, 4, 5, 6]


def test_partitions_are_independent() -> None:
    allocator = TokenAllocator(backoff_seconds=0)
    doctor_a, doctor_b = uuid.uuid4(), uuid.uuid4()

    assert allocator.allocate(doctor_a, DAY) == 1
    assert allocator.allocate(doctor_a, DAY) == 2
    assert allocator.allocate(doctor_b, DAY) == 1
    assert allocator.allocate(doctor_a, date(2024, 6, 2)) == 1


def test_claim_reference_returns_same_token() -> None:
    allocator = TokenAllocator(backoff_seconds=0)
    doctor_id = uuid.uuid4()

    first = allocator.allocate(doctor_id, DAY, claim_ref="pay_abc")
    other = allocator.allocate(doctor_id, DAY)
    again = allocator.allocate(doctor_id, DAY, claim_ref="pay_abc")

    assert (first, other, again) == (1, 2, 1)
    assert allocator.claimed_token("pay_abc") == 1
    assert allocator.claimed_token("pay_missing") is None


def test_claim_reference_is_bound_to_its_partition() -> None:
    allocator = TokenAllocator(backoff_seconds=0)
    doctor_id = uuid.uuid4()
    next_day = date(2024, 6, 2)

    assert allocator.allocate(doctor_id, DAY, claim_ref="pay_x") == 1
    with pytest.raises(TokenClaimConflict) as excinfo:
        allocator.allocate(doctor_id, next_day, claim_ref="pay_x")

    assert excinfo.value.payment_reference == "pay_x"
    assert allocator.allocate(doctor_id, next_day) == 1


def test_concurrent_allocations_are_unique_and_gapless() -> None:
    allocator = TokenAllocator(max_retries=50, backoff_seconds=0.001)
    doctor_id = uuid.uuid4()
    workers = 10
    barrier = threading.Barrier(workers)
    tokens = []
    errors = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        try:
            token = allocator.allocate(doctor_id, DAY)
        except Exception as exc:  # surfaced through the assertion below
            with lock:
                errors.append(exc)
            return
        with lock:
            tokens.append(token)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sorted(tokens) == list(range(1, workers + 1))

    with get_session() as session:
        stored = session.execute(
            select(TokenIssue.token_number).where(TokenIssue.doctor_id == doctor_id)
        ).scalars().all()
    assert sorted(stored) == list(range(1, workers + 1))


def test_persistent_conflict_exhausts_with_growing_backoff(monkeypatch) -> None:
    delays = []
    allocator = TokenAllocator(max_retries=4, backoff_seconds=0.01, sleep=delays.append)

    def always_conflict(session, doctor_id, appointment_date, claim_ref):
        raise IntegrityError("INSERT INTO token_issues", {}, Exception("duplicate token"))

    monkeypatch.setattr(TokenAllocator, "_issue_next", staticmethod(always_conflict))

    with pytest.raises(TokenAllocationExhausted) as excinfo:
        allocator.allocate(uuid.uuid4(), DAY, claim_ref="pay_hot")

    assert excinfo.value.payment_reference == "pay_hot"
    assert len(delays) == 3
    assert delays == sorted(delays)
    assert delays[0] >= 0.01
