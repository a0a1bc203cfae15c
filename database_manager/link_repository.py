"""
Repository for cost_basis_links.

Writes are batch-atomic: a run's links are inserted in one transaction, so a
failure part way leaves no row of that batch behind.
"""

from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from cost_basis_engine.events import acquisition_quantity, disposal_quantity, event_currency
from cost_basis_engine.models import (
    CostBasisLink, EventRole, PersistedLink, SourceRef, SourceSnapshot,
)
from database_manager.database_session_manager import DatabaseSessionManager
from TableModels import CostBasisLinkRecord


class CostBasisLinkRepository:
    def __init__(self, database_session_manager: DatabaseSessionManager):
        self.db = database_session_manager

    async def create_many(self, links: Sequence[CostBasisLink]) -> List[CostBasisLink]:
        """
        Persist ``links`` all-or-nothing.

        On success each link gets its database id and timestamps; on any error
        the transaction is rolled back and the error propagates.
        """
        links = list(links)
        if not links:
            return []

        records = [CostBasisLinkRecord(**link.to_row()) for link in links]
        async with self.db.async_session() as session:
            async with session.begin():
                session.add_all(records)
                await session.flush()
                for record in records:
                    await session.refresh(record, attribute_names=['created_at', 'updated_at'])

        for link, record in zip(links, records):
            link.id = record.id
            link.created_at = record.created_at
            link.updated_at = record.updated_at
        return links

    @DatabaseSessionManager.db_retry_once
    async def count(self) -> int:
        async with self.db.async_session() as session:
            result = await session.execute(select(func.count(CostBasisLinkRecord.id)))
            return int(result.scalar_one())

    @DatabaseSessionManager.db_retry_once
    async def list_with_sources(self) -> List[PersistedLink]:
        """Every stored link, ordered by id, with both endpoints resolved."""
        stmt = (
            select(CostBasisLinkRecord)
            .options(
                selectinload(CostBasisLinkRecord.acquisition_chain_event),
                selectinload(CostBasisLinkRecord.acquisition_exchange_event),
                selectinload(CostBasisLinkRecord.disposal_chain_event),
                selectinload(CostBasisLinkRecord.disposal_exchange_event),
            )
            .order_by(CostBasisLinkRecord.id.asc())
        )
        async with self.db.async_session() as session:
            result = await session.execute(stmt)
            return [self._to_persisted(r) for r in result.scalars().all()]

    # ---------- conversion ----------

    @classmethod
    def _to_persisted(cls, record: CostBasisLinkRecord) -> PersistedLink:
        acq_ref, acq_row = cls._endpoint(
            record.acquisition_chain_event_id, record.acquisition_chain_event,
            record.acquisition_exchange_event_id, record.acquisition_exchange_event,
        )
        disp_ref, disp_row = cls._endpoint(
            record.disposal_chain_event_id, record.disposal_chain_event,
            record.disposal_exchange_event_id, record.disposal_exchange_event,
        )
        return PersistedLink(
            link_id=record.id,
            quantity=record.quantity,
            acquisition_ref=acq_ref,
            disposal_ref=disp_ref,
            acquisition=cls._snapshot(acq_ref, EventRole.ACQUISITION, acq_row),
            disposal=cls._snapshot(disp_ref, EventRole.DISPOSAL, disp_row),
        )

    @staticmethod
    def _endpoint(chain_id, chain_row, exchange_id, exchange_row):
        if chain_id is not None:
            return SourceRef.chain(chain_id), chain_row
        if exchange_id is not None:
            return SourceRef.exchange(exchange_id), exchange_row
        return None, None

    @staticmethod
    def _snapshot(ref: Optional[SourceRef], role: EventRole, row) -> Optional[SourceSnapshot]:
        if ref is None or row is None:
            return None
        if role == EventRole.ACQUISITION:
            quantity = acquisition_quantity(ref.source, row)
        else:
            quantity = disposal_quantity(ref.source, row)
        return SourceSnapshot(
            ref=ref,
            role=role,
            currency=event_currency(ref.source, row),
            quantity=quantity,
        )
