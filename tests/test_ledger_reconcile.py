from decimal import Decimal

import pytest

from cryptodesk.db import session_scope
from cryptodesk.errors import InsufficientBalanceError
from cryptodesk.models import CASH, Holding
from cryptodesk.reconcile import reconcile


def test_settlements_keep_ledger_reconciled(engine, intake, session_factory, make_user):
    """Deposit, buy, sell and withdraw; audit trail must match stored balances"""
    user_id = make_user(cash="100", holdings={"bitcoin": "1"})

    for args in [
        (None, "deposit", "5", "20"),
        ("bitcoin", "buy", "0.5", "50000"),
        ("bitcoin", "sell", "0.7", "50000"),
        ("bitcoin", "withdrawal", "0.5", "50000"),
    ]:
        engine.approve(intake.submit(user_id, *args).id)

    # a rejected approval must not leave audit rows behind
    tx = intake.submit(user_id, "bitcoin", "withdrawal", "5", "50000")
    with pytest.raises(InsufficientBalanceError):
        engine.approve(tx.id)

    with session_scope(session_factory) as db:
        assert reconcile(db) == []


def test_reconcile_reports_tampered_holding(session_factory, make_user):
    user_id = make_user(cash="10", holdings={"ethereum": "2"})

    with session_scope(session_factory) as db:
        db.query(Holding).filter(Holding.user_id == user_id).update({"amount": Decimal("3")})

    with session_scope(session_factory) as db:
        mismatches = reconcile(db)

    assert len(mismatches) == 1
    m = mismatches[0]
    assert (m.user_id, m.currency) == (user_id, "ethereum")
    assert m.ledger == Decimal("2")
    assert m.stored == Decimal("3")
    assert CASH not in [x.currency for x in mismatches]
