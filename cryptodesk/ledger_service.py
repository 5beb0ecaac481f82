"""
Ledger Service – Cryptodesk
Handles:
 - User-specific audit trail (every applied cash/holding delta)
 - Reconciliation of the audit trail against stored balances
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from cryptodesk.dependencies import get_db
from cryptodesk.directory import UserDirectory
from cryptodesk.models import LedgerEntry
from cryptodesk.reconcile import reconcile
from cryptodesk.schemas import LedgerEntryOut

router = APIRouter(prefix="/api/ledger", tags=["Ledger"])


# ✅ Get user-specific ledger (newest first)
@router.get("/user/{user_id}")
def get_user_ledger(
    user_id: int,
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    UserDirectory(db).get_user(user_id)
    entries = (
        db.query(LedgerEntry)
        .filter(LedgerEntry.user_id == user_id)
        .order_by(LedgerEntry.timestamp.desc(), LedgerEntry.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "user_id": user_id,
        "count": len(entries),
        "entries": [LedgerEntryOut.model_validate(e).model_dump(mode="json") for e in entries],
    }


# ✅ Compare ledger sums with stored balances
@router.get("/reconcile")
def get_reconciliation(db: Session = Depends(get_db)) -> Dict[str, Any]:
    mismatches = reconcile(db)
    return {
        "status": "ok" if not mismatches else "mismatch",
        "mismatches": [
            {"user_id": m.user_id, "currency": m.currency, "ledger": str(m.ledger), "stored": str(m.stored)}
            for m in mismatches
        ],
    }
