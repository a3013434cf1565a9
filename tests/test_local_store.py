import asyncio
import json

from finance_tracker.ledger.models import NewTransaction
from finance_tracker.storage.base import UserScope
from finance_tracker.storage.local_store import LocalTransactionStore


def _tx(amount: float = 10.0, category: str = "Groceries", date: str = "2024-05-10") -> NewTransaction:
    return NewTransaction(amount=amount, kind="expense", category=category, description="N/A", date=date)


def test_append_assigns_id_and_increasing_created_at(tmp_path):
    store = LocalTransactionStore(tmp_path)
    scope = UserScope(uid="u1")

    async def run():
        a = await store.append(scope, _tx(1))
        b = await store.append(scope, _tx(2))
        return a, b

    a, b = asyncio.run(run())
    assert a.id and b.id and a.id != b.id
    assert b.createdAt > a.createdAt
    assert a.amount == 1 and a.kind == "expense"


def test_subscribe_delivers_immediately_and_after_each_append(tmp_path):
    store = LocalTransactionStore(tmp_path)
    scope = UserScope(uid="u1")
    snapshots: list[list] = []
    errors: list = []

    async def run():
        sub = store.subscribe(scope, snapshots.append, errors.append)
        await store.append(scope, _tx(1, date="2024-01-01"))
        await store.append(scope, _tx(2, date="2023-01-01"))
        sub()
        await store.append(scope, _tx(3))

    asyncio.run(run())

    assert errors == []
    assert [len(s) for s in snapshots] == [0, 1, 2]
    # newest write first regardless of the entered date
    assert [t.amount for t in snapshots[-1]] == [2, 1]


def test_scopes_are_isolated(tmp_path):
    store = LocalTransactionStore(tmp_path)
    seen_b: list[list] = []

    async def run():
        store.subscribe(UserScope(uid="b"), seen_b.append, lambda e: None)
        await store.append(UserScope(uid="a"), _tx(5))

    asyncio.run(run())

    assert seen_b == [[]]
    assert len(store.load(UserScope(uid="a"))) == 1
    assert store.load(UserScope(uid="b")) == []


def test_cancel_is_idempotent(tmp_path):
    store = LocalTransactionStore(tmp_path)
    scope = UserScope(uid="u1")
    sub = store.subscribe(scope, lambda s: None, lambda e: None)
    assert store.listener_count(scope) == 1
    sub.cancel()
    sub.cancel()
    assert not sub.active
    assert store.listener_count(scope) == 0


def test_corrupted_and_invalid_lines_are_skipped(tmp_path):
    store = LocalTransactionStore(tmp_path)
    scope = UserScope(uid="u1")
    path = tmp_path / "u1" / "transactions.jsonl"
    path.parent.mkdir(parents=True, exist_ok=True)
    good = {
        "id": "x1",
        "amount": 3.5,
        "kind": "expense",
        "category": "Other",
        "description": "N/A",
        "date": "2024-02-01",
        "createdAt": 5,
    }
    bad_amount = dict(good, id="x2", amount=-1)
    path.write_text(
        json.dumps(good) + "\n" + "{not json\n" + json.dumps(bad_amount) + "\n",
        encoding="utf-8",
    )

    items = store.load(scope)
    assert [t.id for t in items] == ["x1"]

    async def run():
        return await store.append(scope, _tx(1))

    stored = asyncio.run(run())
    assert stored.createdAt > 5
