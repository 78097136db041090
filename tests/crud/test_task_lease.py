# tests/crud/test_task_lease.py

from earnings_engine import crud


def test_acquire_free_lease(db):
    assert crud.task_lease.acquire(db, task_name="daily_batch_payout", holder="a", ttl_seconds=60)

    lease = crud.task_lease.get(db, "daily_batch_payout")
    assert lease.holder == "a"
    assert lease.expires_at is not None


def test_held_lease_is_not_acquired(db):
    crud.task_lease.acquire(db, task_name="daily_batch_payout", holder="a", ttl_seconds=60)

    assert not crud.task_lease.acquire(db, task_name="daily_batch_payout", holder="b", ttl_seconds=60)
    db.expire_all()
    assert crud.task_lease.get(db, "daily_batch_payout").holder == "a"


def test_release_then_reacquire(db):
    crud.task_lease.acquire(db, task_name="daily_batch_payout", holder="a", ttl_seconds=60)

    crud.task_lease.release(db, task_name="daily_batch_payout", holder="a")

    assert crud.task_lease.acquire(db, task_name="daily_batch_payout", holder="b", ttl_seconds=60)


def test_release_by_other_holder_is_ignored(db):
    crud.task_lease.acquire(db, task_name="daily_batch_payout", holder="a", ttl_seconds=60)

    crud.task_lease.release(db, task_name="daily_batch_payout", holder="b")

    db.expire_all()
    assert crud.task_lease.get(db, "daily_batch_payout").holder == "a"


def test_expired_lease_is_taken_over(db):
    crud.task_lease.acquire(db, task_name="daily_batch_payout", holder="a", ttl_seconds=-1)

    assert crud.task_lease.acquire(db, task_name="daily_batch_payout", holder="b", ttl_seconds=60)
    db.expire_all()
    assert crud.task_lease.get(db, "daily_batch_payout").holder == "b"


def test_leases_are_per_task(db):
    crud.task_lease.acquire(db, task_name="daily_batch_payout", holder="a", ttl_seconds=60)

    assert crud.task_lease.acquire(db, task_name="weekly_reconciliation", holder="a", ttl_seconds=60)
