# cryptodesk/intake.py
"""
Request intake: validates a transaction request and stores it as pending.
Pending transactions have no effect on balances until they are approved.
"""

import uuid
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import sessionmaker

from cryptodesk.db import session_scope
from cryptodesk.directory import UserDirectory
from cryptodesk.errors import ValidationError
from cryptodesk.models import Transaction, TransactionStatus, TransactionType
from cryptodesk.price_feed import PriceSource
from cryptodesk.schemas import TransactionRequest
from cryptodesk.transaction_store import TransactionStore
from cryptodesk.utils import MONEY_DIGITS, MONEY_PLACES, timestamp, to_money

TRADE_TYPES = (TransactionType.BUY, TransactionType.SELL)
# Types that credit amount * price to the cash balance on approval
CASH_TYPES = (TransactionType.SELL, TransactionType.DEPOSIT)


def _describe(error: PydanticValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "request"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)


class TransactionIntake:
    def __init__(self, session_factory: sessionmaker, price_source: Optional[PriceSource] = None):
        self.session_factory = session_factory
        self.price_source = price_source

    def submit(
        self,
        user_id,
        asset_id,
        type,
        amount,
        price=None,
        wallet: Optional[str] = None,
    ) -> Transaction:
        try:
            request = TransactionRequest(
                user_id=user_id,
                asset_id=asset_id,
                type=type,
                amount=amount,
                price=price,
                wallet=wallet,
            )
        except PydanticValidationError as e:
            logger.warning(f"Rejected transaction request: {_describe(e)}")
            raise ValidationError(_describe(e)) from e

        quote = request.price if request.price is not None else self._quote(request)
        if request.type in CASH_TYPES and (request.amount * quote).adjusted() >= MONEY_DIGITS - MONEY_PLACES:
            raise ValidationError(f"amount * price is out of range for {request.type.value}")

        with session_scope(self.session_factory) as db:
            directory = UserDirectory(db)
            directory.get_user(request.user_id)
            if request.type in TRADE_TYPES:
                directory.get_tradable_asset(request.asset_id)

            record = TransactionStore(db).insert(Transaction(
                id=str(uuid.uuid4()),
                user_id=request.user_id,
                asset_id=request.asset_id,
                type=request.type.value,
                amount=request.amount,
                price=quote,
                wallet=request.wallet,
                status=TransactionStatus.PENDING.value,
                created_at=timestamp(),
            ))

        logger.info(
            f"Transaction {record.id} submitted: {record.type} {request.amount} "
            f"{record.asset_id or ''} @ {quote} user={record.user_id}"
        )
        return record

    def _quote(self, request: TransactionRequest) -> Decimal:
        if self.price_source is None or not request.asset_id:
            raise ValidationError("price is required")
        price = to_money(self.price_source.quote(request.asset_id), "price", rounding=ROUND_HALF_EVEN)
        if price < 0:
            raise ValidationError(f"Quoted price for {request.asset_id} is negative")
        return price
