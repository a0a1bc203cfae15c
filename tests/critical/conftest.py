"""
Critical Path Test Fixtures

Shared fixtures for cost basis critical path testing.
In-memory event builders for pure tests, and an on-disk SQLite database
(aiosqlite) for persistence and end-to-end tests.
"""

import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

from cost_basis_engine.events import AcquisitionEvent, DisposalEvent
from cost_basis_engine.models import EventSource, SourceRef
from database_manager.database_session_manager import DatabaseSessionManager
from TableModels import ChainTransfer, ExchangeTrade

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

WALLET = "0x1111111111111111111111111111111111111111"
COUNTERPARTY = "0x2222222222222222222222222222222222222222"
EXCHANGE_ACCOUNT = "kraken-main"


def at(hours: int) -> datetime:
    """T0 shifted by whole hours."""
    return T0 + timedelta(hours=hours)


@pytest.fixture
def mock_logger():
    """Mock logger (CustomLogger surface)"""
    logger = MagicMock()
    logger.info = MagicMock()
    logger.warning = MagicMock()
    logger.error = MagicMock()
    logger.debug = MagicMock()
    logger.link = MagicMock()
    logger.finding = MagicMock()
    return logger


@pytest.fixture
def mock_logger_manager(mock_logger):
    """Mock LoggerManager whose get_logger always hands back mock_logger"""
    manager = MagicMock()
    manager.get_logger = MagicMock(return_value=mock_logger)
    return manager


@pytest.fixture
def make_acquisition():
    """Factory: make_acquisition(id, 'ETH', hours, '10', source=EventSource.CHAIN, consumed='0')"""
    def _make(event_id, currency, hours, quantity, source=EventSource.CHAIN, consumed="0"):
        return AcquisitionEvent(
            source_ref=SourceRef(source, event_id),
            currency=currency,
            timestamp=at(hours),
            quantity=Decimal(quantity),
            consumed=Decimal(consumed),
        )
    return _make


@pytest.fixture
def make_disposal():
    """Factory: make_disposal(id, 'ETH', hours, '15', source=EventSource.CHAIN, linked='0')"""
    def _make(event_id, currency, hours, quantity, source=EventSource.CHAIN, linked="0"):
        return DisposalEvent(
            source_ref=SourceRef(source, event_id),
            currency=currency,
            timestamp=at(hours),
            quantity=Decimal(quantity),
            linked=Decimal(linked),
        )
    return _make


# =========================================================================
# DATABASE
# =========================================================================

class LedgerSeeder:
    """Inserts source rows directly; the engine never writes these itself."""

    _counter = itertools.count(1)

    def __init__(self, db: DatabaseSessionManager):
        self.db = db

    async def chain_transfer(self, *, hours, value, symbol="ETH", decimals=18,
                             from_address=COUNTERPARTY, to_address=WALLET, value_adjustment="0"):
        n = next(self._counter)
        row = ChainTransfer(
            block_number=1_000_000 + n,
            time_stamp=at(hours),
            transaction_hash=f"0x{n:064x}",
            from_address=from_address,
            to_address=to_address,
            contract_address="0x" + "c" * 40,
            value=str(value),
            value_adjustment=str(value_adjustment),
            token_name=symbol,
            token_symbol=symbol,
            token_decimal=decimals,
        )
        return await self._add(row)

    async def exchange_trade(self, *, hours, side, vol, base="ETH", quote="USD", account=EXCHANGE_ACCOUNT,
                             base_fee="0", quote_fee="0", withdrawal_fee="0", price="2000"):
        n = next(self._counter)
        row = ExchangeTrade(
            exchange="kraken",
            account=account,
            txid=f"T{n:08d}",
            pair=f"{base}{quote}",
            base_currency=base,
            quote_currency=quote,
            time=at(hours),
            side=side,
            price=Decimal(price),
            cost=Decimal(price) * Decimal(vol),
            vol=Decimal(vol),
            base_fee=Decimal(base_fee),
            quote_fee=Decimal(quote_fee),
            withdrawal_fee=Decimal(withdrawal_fee),
        )
        return await self._add(row)

    async def _add(self, row):
        async with self.db.async_session() as session:
            async with session.begin():
                session.add(row)
            return row


@pytest_asyncio.fixture
async def db_manager(tmp_path):
    """Fresh on-disk SQLite database per test, schema bootstrapped on first use"""
    db = DatabaseSessionManager(f"sqlite+aiosqlite:///{tmp_path / 'cost_basis.db'}")
    yield db
    await db.disconnect()


@pytest.fixture
def seeder(db_manager):
    return LedgerSeeder(db_manager)
