# cryptodesk/settlement.py
"""
Settlement Engine
=================
Approves or cancels pending transactions.

Lifecycle:
    pending -> completed   (approve: ledger deltas applied)
    pending -> cancelled   (cancel: no ledger effect)

Both terminal states are final. The status compare-and-set runs first inside
the unit of work, so when two administrators act on the same id only one of
them gets past it; the other sees InvalidStateError. If a delta is rejected
the whole unit rolls back, status included.

Delta table (fee_rate defaults to 0.14):
    buy         holding += amount
    sell        holding -= amount,  cash += amount * price
    deposit                         cash += amount * price
    withdrawal  holding -= amount + amount * fee_rate

Amounts and prices carry at most 8 decimal places, but their product and the
fee may not. Cash proceeds are rounded down and fees rounded up to the 8th
place, so rounding never favours the account holder.
"""

from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_UP, Decimal
from typing import Optional, Union

from loguru import logger
from sqlalchemy.orm import sessionmaker

from cryptodesk.config import DEFAULT_DUST_EPSILON, DEFAULT_WITHDRAWAL_FEE_RATE
from cryptodesk.db import session_scope
from cryptodesk.errors import InsufficientBalanceError, InvalidStateError
from cryptodesk.ledger import LedgerStore
from cryptodesk.models import Transaction, TransactionStatus, TransactionType
from cryptodesk.transaction_store import TransactionStore
from cryptodesk.utils import quantize_money

ZERO = Decimal("0")


# ====================
# SETTLEMENT REQUESTS
# ====================
@dataclass(frozen=True)
class Buy:
    user_id: int
    asset_id: str
    amount: Decimal


@dataclass(frozen=True)
class Sell:
    user_id: int
    asset_id: str
    amount: Decimal
    price: Decimal


@dataclass(frozen=True)
class Deposit:
    user_id: int
    amount: Decimal
    price: Decimal


@dataclass(frozen=True)
class Withdrawal:
    user_id: int
    asset_id: str
    amount: Decimal


SettlementRequest = Union[Buy, Sell, Deposit, Withdrawal]


@dataclass(frozen=True)
class LedgerDelta:
    cash: Decimal = ZERO
    asset_id: Optional[str] = None
    holding: Decimal = ZERO


def request_from_record(record: Transaction) -> SettlementRequest:
    kind = TransactionType(record.type)
    amount = Decimal(record.amount)
    price = Decimal(record.price)

    if kind is TransactionType.BUY:
        return Buy(record.user_id, record.asset_id, amount)
    if kind is TransactionType.SELL:
        return Sell(record.user_id, record.asset_id, amount, price)
    if kind is TransactionType.DEPOSIT:
        return Deposit(record.user_id, amount, price)
    if kind is TransactionType.WITHDRAWAL:
        return Withdrawal(record.user_id, record.asset_id, amount)
    raise TypeError(f"Unhandled transaction type: {kind}")


def compute_delta(request: SettlementRequest, fee_rate: Decimal = DEFAULT_WITHDRAWAL_FEE_RATE) -> LedgerDelta:
    if isinstance(request, Buy):
        return LedgerDelta(asset_id=request.asset_id, holding=request.amount)
    if isinstance(request, Sell):
        return LedgerDelta(
            cash=quantize_money(request.amount * request.price, ROUND_DOWN),
            asset_id=request.asset_id,
            holding=-request.amount,
        )
    if isinstance(request, Deposit):
        return LedgerDelta(cash=quantize_money(request.amount * request.price, ROUND_DOWN))
    if isinstance(request, Withdrawal):
        fee = quantize_money(request.amount * fee_rate, ROUND_UP)
        return LedgerDelta(asset_id=request.asset_id, holding=-(request.amount + fee))
    raise TypeError(f"Unsupported settlement request: {request!r}")


# ====================
# ENGINE
# ====================
class SettlementEngine:
    def __init__(
        self,
        session_factory: sessionmaker,
        fee_rate: Decimal = DEFAULT_WITHDRAWAL_FEE_RATE,
        dust_epsilon: Decimal = DEFAULT_DUST_EPSILON,
    ):
        self.session_factory = session_factory
        self.fee_rate = Decimal(fee_rate)
        self.dust_epsilon = dust_epsilon

    def approve(self, transaction_id: str) -> Transaction:
        with session_scope(self.session_factory) as db:
            store = TransactionStore(db)
            record = store.get(transaction_id)
            self._claim(store, record, TransactionStatus.COMPLETED)

            delta = compute_delta(request_from_record(record), self.fee_rate)
            try:
                self._apply(LedgerStore(db, self.dust_epsilon), record, delta)
            except InsufficientBalanceError as e:
                logger.warning(f"Approval of {transaction_id} rejected: {e}")
                raise

        logger.info(
            f"Transaction {transaction_id} approved: {record.type} {record.amount} "
            f"{record.asset_id or ''} user={record.user_id} cash={delta.cash} holding={delta.holding}"
        )
        return record

    def cancel(self, transaction_id: str, reason: Optional[str] = None) -> Transaction:
        with session_scope(self.session_factory) as db:
            store = TransactionStore(db)
            record = store.get(transaction_id)
            self._claim(store, record, TransactionStatus.CANCELLED, cancellation_reason=reason)

        logger.info(f"Transaction {transaction_id} cancelled" + (f": {reason}" if reason else ""))
        return record

    # ====================
    # HELPERS
    # ====================
    def _claim(self, store: TransactionStore, record: Transaction, new: TransactionStatus, **fields):
        if TransactionStatus(record.status).is_terminal:
            raise InvalidStateError(f"Transaction {record.id} is already {record.status}")
        if not store.compare_and_set_status(record.id, TransactionStatus.PENDING, new, **fields):
            raise InvalidStateError(f"Transaction {record.id} was settled by another request")
        store.db.refresh(record)

    def _apply(self, ledger: LedgerStore, record: Transaction, delta: LedgerDelta):
        description = f"{record.type} {record.amount} @ {record.price}"
        if delta.holding != ZERO:
            ledger.adjust_holding(
                record.user_id, delta.asset_id, delta.holding,
                txn_type=record.type, transaction_id=record.id, description=description,
            )
        if delta.cash != ZERO:
            ledger.adjust_balance(
                record.user_id, delta.cash,
                txn_type=record.type, transaction_id=record.id, description=description,
            )
