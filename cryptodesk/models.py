# cryptodesk/models.py
"""
Cryptodesk - Database Models
============================
SQLAlchemy ORM models for the custodial ledger.
Includes: User, Asset, Holding, Transaction, LedgerEntry

Cash lives on the User row; crypto quantities live in Holding, one row per
user-asset pair. Transactions are requests waiting for an administrator and
only touch balances once they are approved.
"""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from cryptodesk.db import Base
from cryptodesk.utils import MONEY_DIGITS, MONEY_PLACES, quantize_money

# Currency code used for cash rows in the audit trail
CASH = "CASH"


class Money(TypeDecorator):
    """
    NUMERIC(20, 8) that round-trips Decimal exactly.

    SQLite has no decimal type and would hand the value to a REAL column, so
    there it is kept as fixed-point text instead.
    """
    impl = Numeric(MONEY_DIGITS, MONEY_PLACES)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(MONEY_DIGITS + 2))
        return dialect.type_descriptor(Numeric(MONEY_DIGITS, MONEY_PLACES, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = quantize_money(Decimal(str(value)))
        if dialect.name == "sqlite":
            return format(value, "f")
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"


class TransactionType(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=True)
    role = Column(String(10), default=UserRole.USER.value, nullable=False)
    cash_balance = Column(Money, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    holdings = relationship("Holding", back_populates="user", cascade="all, delete-orphan")
    transactions = relationship("Transaction", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role}')>"


class Asset(Base):
    """A crypto asset users can hold, e.g. id='bitcoin', symbol='BTC'."""
    __tablename__ = "assets"

    id = Column(String(64), primary_key=True)
    symbol = Column(String(20), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    is_tradable = Column(Boolean, default=True, nullable=False)
    # Last known quote, refreshed by the market-data side
    current_price = Column(Money, nullable=True)

    def __repr__(self):
        return f"<Asset(id='{self.id}', symbol='{self.symbol}')>"


class Holding(Base):
    """
    Quantity of one asset held by one user.
    Rows are kept when they reach zero so a later credit updates in place.
    """
    __tablename__ = "holdings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    asset_id = Column(String(64), ForeignKey("assets.id"), nullable=False, index=True)
    amount = Column(Money, default=0, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "asset_id", name="uq_holding_user_asset"),
    )

    user = relationship("User", back_populates="holdings")

    def __repr__(self):
        return f"<Holding(user_id={self.user_id}, asset_id='{self.asset_id}', amount={self.amount})>"


class Transaction(Base):
    """
    A buy/sell/deposit/withdrawal request.
    `status` moves pending -> completed or pending -> cancelled, exactly once.
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    asset_id = Column(String(64), nullable=True, index=True)
    type = Column(String(16), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    price = Column(Money, nullable=False)
    wallet = Column(String(255), nullable=True)
    status = Column(String(16), default=TransactionStatus.PENDING.value, nullable=False, index=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    settled_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_transactions_user_status", "user_id", "status"),
    )

    user = relationship("User", back_populates="transactions")

    def __repr__(self):
        return f"<Transaction(id='{self.id}', type='{self.type}', status='{self.status}')>"


class LedgerEntry(Base):
    """
    Audit log of every applied cash or holding delta.
    Summing `amount` per (user, currency) must give the stored balance.
    """
    __tablename__ = "ledger_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    currency = Column(String(64), nullable=False, index=True)  # CASH or an asset id
    amount = Column(Money, nullable=False)  # signed
    balance_after = Column(Money, nullable=False)
    txn_type = Column(String(50), nullable=False, index=True)
    transaction_id = Column(String(36), nullable=True, index=True)
    description = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<LedgerEntry(id={self.id}, user_id={self.user_id}, currency='{self.currency}', amount={self.amount})>"
