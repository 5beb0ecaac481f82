from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from cryptodesk.db import session_scope
from cryptodesk.errors import NotFoundError
from cryptodesk.models import Transaction, TransactionStatus, TransactionType
from cryptodesk.transaction_store import TransactionStore


def _record(tx_id, user_id, type="buy", status="pending", created_at=None):
    return Transaction(
        id=tx_id,
        user_id=user_id,
        asset_id="bitcoin",
        type=type,
        amount=Decimal("1"),
        price=Decimal("100"),
        status=status,
        created_at=created_at or datetime.utcnow(),
    )


def test_insert_and_get(session_factory, make_user):
    user_id = make_user()
    with session_scope(session_factory) as db:
        TransactionStore(db).insert(_record("tx-1", user_id))

    with session_scope(session_factory) as db:
        record = TransactionStore(db).get("tx-1")
        assert record.user_id == user_id
        assert record.status == "pending"
        assert record.settled_at is None


def test_get_unknown(session_factory):
    with session_scope(session_factory) as db:
        with pytest.raises(NotFoundError):
            TransactionStore(db).get("missing")


def test_compare_and_set_only_from_expected_status(session_factory, make_user):
    user_id = make_user()
    with session_scope(session_factory) as db:
        TransactionStore(db).insert(_record("tx-1", user_id))

    with session_scope(session_factory) as db:
        store = TransactionStore(db)
        assert store.compare_and_set_status("tx-1", TransactionStatus.PENDING, TransactionStatus.COMPLETED)

    with session_scope(session_factory) as db:
        store = TransactionStore(db)
        assert not store.compare_and_set_status("tx-1", TransactionStatus.PENDING, TransactionStatus.CANCELLED)
        assert not store.compare_and_set_status("missing", TransactionStatus.PENDING, TransactionStatus.CANCELLED)

    with session_scope(session_factory) as db:
        record = TransactionStore(db).get("tx-1")
        assert record.status == "completed"
        assert record.settled_at is not None


def test_list_filters_and_order(session_factory, make_user):
    alice = make_user()
    bob = make_user()
    now = datetime.utcnow()
    with session_scope(session_factory) as db:
        store = TransactionStore(db)
        store.insert(_record("a-old", alice, created_at=now - timedelta(minutes=5)))
        store.insert(_record("a-new", alice, type="sell", created_at=now))
        store.insert(_record("a-done", alice, status="completed", created_at=now - timedelta(minutes=1)))
        store.insert(_record("b-1", bob, type="deposit"))

    with session_scope(session_factory) as db:
        store = TransactionStore(db)
        assert [t.id for t in store.list_transactions(user_id=alice)] == ["a-new", "a-done", "a-old"]
        assert [t.id for t in store.list_transactions(user_id=alice, status=TransactionStatus.PENDING)] == ["a-new", "a-old"]
        assert [t.id for t in store.list_transactions(type=TransactionType.DEPOSIT)] == ["b-1"]
        assert len(store.list_transactions(limit=2)) == 2
