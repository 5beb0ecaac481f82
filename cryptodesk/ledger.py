# cryptodesk/ledger.py
"""
Ledger store: per-user cash balance and per-(user, asset) holdings.

Every adjustment locks the row it changes (SELECT ... FOR UPDATE, or the
BEGIN IMMEDIATE write lock on SQLite), checks the result against zero and
only then writes, so a rejected delta leaves nothing behind. The store works
inside the caller's session and never commits; whoever owns the unit of work
decides when the changes become visible.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cryptodesk.config import DEFAULT_DUST_EPSILON
from cryptodesk.errors import InsufficientBalanceError, NotFoundError
from cryptodesk.models import CASH, Holding, LedgerEntry, User
from cryptodesk.utils import to_money

ZERO = Decimal("0")


class LedgerStore:
    def __init__(self, db: Session, dust_epsilon: Decimal = DEFAULT_DUST_EPSILON):
        self.db = db
        self.dust_epsilon = dust_epsilon

    # ==================
    # CASH
    # ==================

    def get_balance(self, user_id: int) -> Decimal:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return Decimal(user.cash_balance or 0)

    def adjust_balance(
        self,
        user_id: int,
        delta,
        txn_type: str = "adjustment",
        transaction_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Decimal:
        """Add `delta` to the user's cash and return the new balance."""
        delta = to_money(delta, "delta")
        user = (
            self.db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .first()
        )
        if user is None:
            raise NotFoundError(f"User {user_id} not found")

        new_balance = to_money(Decimal(user.cash_balance or 0) + delta, "cash balance")
        if new_balance < ZERO:
            raise InsufficientBalanceError(
                f"Cash balance of user {user_id} would become {new_balance}"
            )

        user.cash_balance = new_balance
        self._record(user_id, CASH, delta, new_balance, txn_type, transaction_id, description)
        self.db.flush()
        return new_balance

    # ==================
    # HOLDINGS
    # ==================

    def get_holding(self, user_id: int, asset_id: str) -> Decimal:
        holding = (
            self.db.query(Holding)
            .filter(Holding.user_id == user_id, Holding.asset_id == asset_id)
            .first()
        )
        return Decimal(holding.amount) if holding else ZERO

    def adjust_holding(
        self,
        user_id: int,
        asset_id: str,
        delta,
        txn_type: str = "adjustment",
        transaction_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Decimal:
        """
        Add `delta` to the holding and return the new amount.

        A missing row counts as zero and is created on the first credit.
        Raises InsufficientBalanceError, without touching anything, when the
        holding would go negative.
        """
        delta = to_money(delta, "delta")
        if self.db.get(User, user_id) is None:
            raise NotFoundError(f"User {user_id} not found")

        holding = self._locked_holding(user_id, asset_id)
        if holding is None:
            if delta < ZERO:
                raise InsufficientBalanceError(
                    f"User {user_id} holds no {asset_id}, cannot apply {delta}"
                )
            holding = self._create_holding(user_id, asset_id)

        current = Decimal(holding.amount or 0)
        new_amount = to_money(current + delta, "holding")
        if new_amount < ZERO:
            raise InsufficientBalanceError(
                f"Holding {asset_id} of user {user_id} is {current}, cannot apply {delta}"
            )

        holding.amount = new_amount
        self._record(user_id, asset_id, delta, new_amount, txn_type, transaction_id, description)
        self.db.flush()
        return new_amount

    def list_holdings(self, user_id: int, include_dust: bool = False) -> List[Holding]:
        holdings = (
            self.db.query(Holding)
            .filter(Holding.user_id == user_id)
            .order_by(Holding.asset_id)
            .all()
        )
        if include_dust:
            return holdings
        return [h for h in holdings if Decimal(h.amount) >= self.dust_epsilon]

    # ==================
    # HELPERS
    # ==================

    def _locked_holding(self, user_id: int, asset_id: str) -> Optional[Holding]:
        return (
            self.db.query(Holding)
            .filter(Holding.user_id == user_id, Holding.asset_id == asset_id)
            .with_for_update()
            .first()
        )

    def _create_holding(self, user_id: int, asset_id: str) -> Holding:
        # Another writer may insert the same pair first; fall back to its row.
        try:
            with self.db.begin_nested():
                holding = Holding(user_id=user_id, asset_id=asset_id, amount=ZERO)
                self.db.add(holding)
            return holding
        except IntegrityError:
            return self._locked_holding(user_id, asset_id)

    def _record(self, user_id, currency, delta, balance_after, txn_type, transaction_id, description):
        self.db.add(LedgerEntry(
            user_id=user_id,
            currency=currency,
            amount=delta,
            balance_after=balance_after,
            txn_type=txn_type,
            transaction_id=transaction_id,
            description=description,
        ))
