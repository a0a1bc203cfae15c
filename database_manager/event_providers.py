"""
Event providers: one per source kind.

Each provider lists in-scope source rows with the links that already reference
them eagerly loaded, so wrappers can compute their opening balances without
touching the database again. "Unlinked" means not yet fully linked: a row with
no links, or whose links cover only part of its quantity.
"""

from decimal import Decimal
from typing import List, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import selectinload

from Config.constants_core import SORT_ASC, SORT_DESC, ZERO
from cost_basis_engine.events import acquisition_quantity, disposal_quantity, linked_quantity
from cost_basis_engine.models import EventSource
from database_manager.database_session_manager import DatabaseSessionManager
from Shared_Utils.precision import subtract, to_decimal
from TableModels import ChainTransfer, ExchangeTrade


def _normalize_accounts(accounts: Sequence[str]) -> List[str]:
    return sorted({a.strip().lower() for a in accounts if a and a.strip()})


def _check_order(order: str) -> str:
    order = (order or SORT_ASC).upper()
    if order not in (SORT_ASC, SORT_DESC):
        raise ValueError(f"Sort order must be {SORT_ASC} or {SORT_DESC}, got {order!r}")
    return order


class _BaseEventProvider:
    source: EventSource = None
    model = None
    time_attr: str = None

    def __init__(self, database_session_manager: DatabaseSessionManager):
        self.db = database_session_manager

    def _acquisition_filter(self, accounts: List[str]):
        raise NotImplementedError

    def _disposal_filter(self, accounts: List[str]):
        raise NotImplementedError

    def _ordered(self, stmt, order: str):
        time_col = getattr(self.model, self.time_attr)
        if _check_order(order) == SORT_DESC:
            return stmt.order_by(time_col.desc(), self.model.id.desc())
        return stmt.order_by(time_col.asc(), self.model.id.asc())

    @DatabaseSessionManager.db_retry_once
    async def _fetch(self, where, relation, order: str):
        stmt = self._ordered(
            select(self.model).where(where).options(selectinload(relation)),
            order,
        )
        async with self.db.async_session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ---------- acquisitions ----------

    async def list_acquisitions(self, accounts: Sequence[str], order: str = SORT_ASC) -> list:
        accounts = _normalize_accounts(accounts)
        if not accounts:
            return []
        return await self._fetch(self._acquisition_filter(accounts), self.model.acquisition_links, order)

    async def list_unlinked_acquisitions(self, accounts: Sequence[str], order: str = SORT_ASC) -> list:
        """In-scope acquisitions with quantity left to consume, links embedded."""
        rows = await self.list_acquisitions(accounts, order)
        return [r for r in rows if self._remaining(acquisition_quantity(self.source, r), r.acquisition_links) > ZERO]

    async def list_linked_acquisitions(self, accounts: Sequence[str], order: str = SORT_ASC) -> list:
        rows = await self.list_acquisitions(accounts, order)
        return [r for r in rows if r.acquisition_links]

    # ---------- disposals ----------

    async def list_disposals(self, accounts: Sequence[str], order: str = SORT_ASC) -> list:
        accounts = _normalize_accounts(accounts)
        if not accounts:
            return []
        return await self._fetch(self._disposal_filter(accounts), self.model.disposal_links, order)

    async def list_unlinked_disposals(self, accounts: Sequence[str], order: str = SORT_ASC) -> list:
        """In-scope disposals with quantity still unaccounted for, links embedded."""
        rows = await self.list_disposals(accounts, order)
        return [r for r in rows if self._remaining(disposal_quantity(self.source, r), r.disposal_links) > ZERO]

    async def list_linked_disposals(self, accounts: Sequence[str], order: str = SORT_ASC) -> list:
        rows = await self.list_disposals(accounts, order)
        return [r for r in rows if r.disposal_links]

    @staticmethod
    def _remaining(quantity: Decimal, links) -> Decimal:
        return subtract(quantity, linked_quantity(links))


class ChainTransferProvider(_BaseEventProvider):
    """Token transfers: inbound to a scoped address acquires, outbound from one disposes."""

    source = EventSource.CHAIN
    model = ChainTransfer
    time_attr = "time_stamp"

    def _acquisition_filter(self, accounts: List[str]):
        return func.lower(ChainTransfer.to_address).in_(accounts)

    def _disposal_filter(self, accounts: List[str]):
        return func.lower(ChainTransfer.from_address).in_(accounts)

    async def adjust_value(self, chain_transfer_id: int, adjustment) -> ChainTransfer:
        """
        Set the signed raw-unit correction applied on top of ``value``.

        Raises LookupError when the transfer does not exist.
        """
        adjustment = to_decimal(adjustment, 'value_adjustment')
        if adjustment != adjustment.to_integral_value():
            raise ValueError(f"value_adjustment is in raw token units and must be integral, got {adjustment}")

        async with self.db.async_session() as session:
            async with session.begin():
                result = await session.execute(
                    update(ChainTransfer)
                    .where(ChainTransfer.id == chain_transfer_id)
                    .values(value_adjustment=str(int(adjustment)))
                )
                if result.rowcount == 0:
                    raise LookupError(f"Chain transfer {chain_transfer_id} not found")
            return await session.get(ChainTransfer, chain_transfer_id)


class ExchangeTradeProvider(_BaseEventProvider):
    """Exchange trades: a buy acquires the base currency, a sell disposes of it."""

    source = EventSource.EXCHANGE
    model = ExchangeTrade
    time_attr = "time"

    def _acquisition_filter(self, accounts: List[str]):
        return (func.lower(ExchangeTrade.account).in_(accounts)) & (ExchangeTrade.side == 'buy')

    def _disposal_filter(self, accounts: List[str]):
        return (func.lower(ExchangeTrade.account).in_(accounts)) & (ExchangeTrade.side == 'sell')
