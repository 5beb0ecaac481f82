from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cryptodesk.db import ping
from cryptodesk.dependencies import get_db

router = APIRouter(prefix="/health", tags=["Health"])
_start = datetime.utcnow()


@router.get("")
def health(db: Session = Depends(get_db)):
    ok = ping(db)
    return {
        "status": "healthy" if ok else "unhealthy",
        "db": "connected" if ok else "disconnected",
        "timestamp": datetime.utcnow().isoformat(),
        "uptime_seconds": (datetime.utcnow() - _start).total_seconds(),
    }


@router.get("/live")
def live():
    return {"status": "alive", "timestamp": datetime.utcnow().isoformat()}
