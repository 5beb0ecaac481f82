from decimal import Decimal

import pytest

from cryptodesk.config import Settings
from cryptodesk.db import Base, create_db_engine, create_session_factory, init_db, session_scope
from cryptodesk.intake import TransactionIntake
from cryptodesk.ledger import LedgerStore
from cryptodesk.models import Asset, User
from cryptodesk.price_feed import StaticPriceSource
from cryptodesk.settlement import SettlementEngine


@pytest.fixture
def settings(tmp_path):
    return Settings(database_url=f"sqlite:///{tmp_path / 'cryptodesk_test.db'}", store_timeout=10.0)


@pytest.fixture
def db_engine(settings):
    """Create fresh database for each test"""
    engine = create_db_engine(settings.database_url, timeout=settings.store_timeout)
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def engine(session_factory, settings):
    return SettlementEngine(session_factory, fee_rate=settings.withdrawal_fee_rate)


@pytest.fixture
def intake(session_factory):
    return TransactionIntake(
        session_factory,
        price_source=StaticPriceSource({"bitcoin": "50000", "ethereum": "3000"}),
    )


@pytest.fixture
def assets(session_factory):
    with session_scope(session_factory) as db:
        db.add_all([
            Asset(id="bitcoin", symbol="BTC", name="Bitcoin", current_price=Decimal("50000")),
            Asset(id="ethereum", symbol="ETH", name="Ethereum", current_price=Decimal("3000")),
            Asset(id="delisted", symbol="DLST", name="Delisted Coin", is_tradable=False),
        ])
    return ["bitcoin", "ethereum", "delisted"]


@pytest.fixture
def make_user(session_factory, assets):
    """Create a user and fund it through the ledger so the audit trail stays consistent."""
    counter = {"n": 0}

    def _make(cash="0", holdings=None, role="user"):
        counter["n"] += 1
        with session_scope(session_factory) as db:
            user = User(username=f"user{counter['n']}", email=f"user{counter['n']}@test.local", role=role)
            db.add(user)
            db.flush()
            ledger = LedgerStore(db)
            if Decimal(cash) != 0:
                ledger.adjust_balance(user.id, cash, txn_type="opening")
            for asset_id, amount in (holdings or {}).items():
                ledger.adjust_holding(user.id, asset_id, amount, txn_type="opening")
            return user.id

    return _make


@pytest.fixture
def snapshot(session_factory):
    """Read cash and one holding in a short-lived unit of work."""

    def _snapshot(user_id, asset_id):
        with session_scope(session_factory) as db:
            ledger = LedgerStore(db)
            return ledger.get_balance(user_id), ledger.get_holding(user_id, asset_id)

    return _snapshot
