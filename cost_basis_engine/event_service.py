"""
Event service: merges chain transfers and exchange trades into one stream of
acquisition and disposal wrappers for a scope of accounts.
"""

from decimal import Decimal
from typing import Dict, List, Sequence

from Config.constants_core import SORT_ASC, SORT_DESC
from Shared_Utils.currency_grouping import total_by_currency

from .events import AcquisitionEvent, DisposalEvent
from .models import EventSource


def _sort_events(events: list, order: str) -> list:
    # Providers order within one source; the merged list needs a total order
    return sorted(
        events,
        key=lambda e: (e.timestamp, e.source_ref.sort_key),
        reverse=(order == SORT_DESC),
    )


class CostBasisEventService:
    def __init__(self, chain_provider, exchange_provider):
        self._providers = (
            (EventSource.CHAIN, chain_provider),
            (EventSource.EXCHANGE, exchange_provider),
        )

    async def get_unlinked_acquisitions(self, accounts: Sequence[str], order: str = SORT_ASC) -> List[AcquisitionEvent]:
        events = []
        for source, provider in self._providers:
            for record in await provider.list_unlinked_acquisitions(accounts, order):
                events.append(AcquisitionEvent.from_source(source, record))
        return _sort_events(events, order)

    async def get_unlinked_disposals(self, accounts: Sequence[str], order: str = SORT_ASC) -> List[DisposalEvent]:
        events = []
        for source, provider in self._providers:
            for record in await provider.list_unlinked_disposals(accounts, order):
                events.append(DisposalEvent.from_source(source, record))
        return _sort_events(events, order)

    async def get_linked_acquisitions(self, accounts: Sequence[str], order: str = SORT_ASC) -> List[AcquisitionEvent]:
        events = []
        for source, provider in self._providers:
            for record in await provider.list_linked_acquisitions(accounts, order):
                events.append(AcquisitionEvent.from_source(source, record))
        return _sort_events(events, order)

    async def get_linked_disposals(self, accounts: Sequence[str], order: str = SORT_ASC) -> List[DisposalEvent]:
        events = []
        for source, provider in self._providers:
            for record in await provider.list_linked_disposals(accounts, order):
                events.append(DisposalEvent.from_source(source, record))
        return _sort_events(events, order)

    async def unlinked_acquisition_totals(self, accounts: Sequence[str]) -> Dict[str, Decimal]:
        """Available acquisition quantity per currency."""
        events = await self.get_unlinked_acquisitions(accounts)
        return total_by_currency(events, lambda e: e.available_quantity)

    async def unlinked_disposal_totals(self, accounts: Sequence[str]) -> Dict[str, Decimal]:
        """Unaccounted disposal quantity per currency."""
        events = await self.get_unlinked_disposals(accounts)
        return total_by_currency(events, lambda e: e.unaccounted_quantity)
