# cryptodesk/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cryptodesk.models import TransactionStatus, TransactionType
from cryptodesk.utils import MONEY_DIGITS, MONEY_PLACES

# Types whose settlement touches a holding and so need an asset
ASSET_TYPES = (TransactionType.BUY, TransactionType.SELL, TransactionType.WITHDRAWAL)


# ====================
# REQUESTS
# ====================
class TransactionRequest(BaseModel):
    user_id: int
    asset_id: Optional[str] = None
    type: TransactionType
    amount: Decimal = Field(ge=0, allow_inf_nan=False, max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES)
    price: Optional[Decimal] = Field(
        default=None, ge=0, allow_inf_nan=False, max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES,
    )
    wallet: Optional[str] = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _asset_required(self):
        if self.type in ASSET_TYPES and not self.asset_id:
            raise ValueError(f"asset_id is required for {self.type.value} transactions")
        return self


class CancelRequest(BaseModel):
    reason: Optional[str] = None


# ====================
# RESPONSES
# ====================
class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: int
    asset_id: Optional[str] = None
    type: TransactionType
    amount: Decimal
    price: Decimal
    wallet: Optional[str] = None
    status: TransactionStatus
    cancellation_reason: Optional[str] = None
    created_at: datetime
    settled_at: Optional[datetime] = None


class HoldingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    asset_id: str
    amount: Decimal


class BalanceOut(BaseModel):
    user_id: int
    cash_balance: Decimal


class HoldingsOut(BaseModel):
    user_id: int
    holdings: List[HoldingOut]


class LedgerEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    currency: str
    amount: Decimal
    balance_after: Decimal
    txn_type: str
    transaction_id: Optional[str] = None
    description: Optional[str] = None
    timestamp: datetime
