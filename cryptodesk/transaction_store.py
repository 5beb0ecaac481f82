# cryptodesk/transaction_store.py
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from cryptodesk.errors import NotFoundError
from cryptodesk.models import Transaction, TransactionStatus, TransactionType
from cryptodesk.utils import timestamp


class TransactionStore:
    """Persistence for transaction requests, scoped to the caller's session."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, transaction_id: str) -> Transaction:
        record = self.db.get(Transaction, transaction_id)
        if record is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return record

    def insert(self, record: Transaction) -> Transaction:
        self.db.add(record)
        self.db.flush()
        return record

    def compare_and_set_status(
        self,
        transaction_id: str,
        expected: TransactionStatus,
        new: TransactionStatus,
        **fields,
    ) -> bool:
        """
        Move the transaction from `expected` to `new` in a single UPDATE.

        Returns False when the row is no longer in `expected`, i.e. another
        caller already settled it. This is the only place a status changes.
        """
        result = self.db.execute(
            update(Transaction)
            .where(Transaction.id == transaction_id, Transaction.status == expected.value)
            .values(status=new.value, settled_at=timestamp(), **fields)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_transactions(
        self,
        user_id: Optional[int] = None,
        status: Optional[TransactionStatus] = None,
        type: Optional[TransactionType] = None,
        limit: int = 100,
    ) -> List[Transaction]:
        query = self.db.query(Transaction)
        if user_id is not None:
            query = query.filter(Transaction.user_id == user_id)
        if status is not None:
            query = query.filter(Transaction.status == TransactionStatus(status).value)
        if type is not None:
            query = query.filter(Transaction.type == TransactionType(type).value)
        return query.order_by(Transaction.created_at.desc()).limit(limit).all()
