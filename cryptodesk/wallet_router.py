from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cryptodesk.config import Settings
from cryptodesk.dependencies import get_db, get_settings
from cryptodesk.directory import UserDirectory
from cryptodesk.ledger import LedgerStore
from cryptodesk.schemas import BalanceOut, HoldingOut, HoldingsOut

# ✅ NO PREFIX HERE - we add it in main.py
router = APIRouter(tags=["wallet"])


@router.get("/{user_id}/balance", response_model=BalanceOut)
def get_balance(user_id: int, db: Session = Depends(get_db)):
    """Cash balance for one user."""
    return BalanceOut(user_id=user_id, cash_balance=LedgerStore(db).get_balance(user_id))


@router.get("/{user_id}/holdings", response_model=HoldingsOut)
def get_holdings(
    user_id: int,
    include_dust: bool = Query(False),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Crypto holdings; zero and near-zero rows are hidden unless include_dust is set."""
    UserDirectory(db).get_user(user_id)
    holdings = LedgerStore(db, settings.dust_epsilon).list_holdings(user_id, include_dust=include_dust)
    return HoldingsOut(user_id=user_id, holdings=[HoldingOut.model_validate(h) for h in holdings])
