# cryptodesk/dependencies.py
from typing import Iterator

from fastapi import Request
from sqlalchemy.orm import Session

from cryptodesk.config import Settings
from cryptodesk.intake import TransactionIntake
from cryptodesk.settlement import SettlementEngine


def get_db(request: Request) -> Iterator[Session]:
    """FastAPI dependency that yields a read session from the app's factory."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_engine(request: Request) -> SettlementEngine:
    return request.app.state.settlement


def get_intake(request: Request) -> TransactionIntake:
    return request.app.state.intake
