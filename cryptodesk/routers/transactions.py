from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from cryptodesk.dependencies import get_db, get_engine, get_intake
from cryptodesk.intake import TransactionIntake
from cryptodesk.models import TransactionStatus, TransactionType
from cryptodesk.schemas import CancelRequest, TransactionOut, TransactionRequest
from cryptodesk.settlement import SettlementEngine
from cryptodesk.transaction_store import TransactionStore

router = APIRouter(prefix="/api/transactions", tags=["Transactions"])


@router.post("", response_model=TransactionOut, status_code=201)
def submit_transaction(req: TransactionRequest, intake: TransactionIntake = Depends(get_intake)):
    """Create a pending transaction awaiting admin approval."""
    return intake.submit(
        user_id=req.user_id,
        asset_id=req.asset_id,
        type=req.type,
        amount=req.amount,
        price=req.price,
        wallet=req.wallet,
    )


@router.get("", response_model=List[TransactionOut])
def list_transactions(
    user_id: Optional[int] = None,
    status: Optional[TransactionStatus] = None,
    type: Optional[TransactionType] = None,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return TransactionStore(db).list_transactions(user_id=user_id, status=status, type=type, limit=limit)


@router.get("/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: str, db: Session = Depends(get_db)):
    return TransactionStore(db).get(transaction_id)


@router.patch("/{transaction_id}/approve", response_model=TransactionOut)
def approve_transaction(transaction_id: str, engine: SettlementEngine = Depends(get_engine)):
    return engine.approve(transaction_id)


@router.patch("/{transaction_id}/cancel", response_model=TransactionOut)
def cancel_transaction(
    transaction_id: str,
    req: Optional[CancelRequest] = Body(None),
    engine: SettlementEngine = Depends(get_engine),
):
    return engine.cancel(transaction_id, reason=req.reason if req else None)
