# Reconciliation: check ledger entry aggregates vs stored balances and holdings
from collections import defaultdict
from decimal import Decimal
from typing import List, NamedTuple

from sqlalchemy.orm import Session

from cryptodesk.models import CASH, Holding, LedgerEntry, User
from cryptodesk.utils import quantize_money


class Mismatch(NamedTuple):
    user_id: int
    currency: str
    ledger: Decimal
    stored: Decimal


def _q(value) -> Decimal:
    return quantize_money(Decimal(str(value or 0)))


def reconcile(db: Session) -> List[Mismatch]:
    # summed in Python: SQLite would add the fixed-point text as floats
    totals = defaultdict(Decimal)
    for uid, cur, amount in db.query(LedgerEntry.user_id, LedgerEntry.currency, LedgerEntry.amount):
        totals[(uid, cur)] += amount
    ledger_map = {key: _q(total) for key, total in totals.items()}

    stored_map = {(u.id, CASH): _q(u.cash_balance) for u in db.query(User).all()}
    for h in db.query(Holding).all():
        stored_map[(h.user_id, h.asset_id)] = _q(h.amount)

    mismatches = []
    for key in sorted(set(ledger_map) | set(stored_map)):
        ledger_val = ledger_map.get(key, _q(0))
        stored_val = stored_map.get(key, _q(0))
        if ledger_val != stored_val:
            mismatches.append(Mismatch(key[0], key[1], ledger_val, stored_val))
    return mismatches


if __name__ == '__main__':
    from cryptodesk.config import Settings
    from cryptodesk.db import create_db_engine, create_session_factory, session_scope

    settings = Settings.from_env()
    factory = create_session_factory(create_db_engine(settings.database_url, settings.store_timeout))
    with session_scope(factory) as db:
        inc = reconcile(db)
    if not inc:
        print('All reconciled ✅')
    else:
        print('Inconsistencies found:')
        for i in inc: print(i)
