"""
FIFO Cost Basis Matcher

Attributes every unlinked disposal in a scope of accounts to the oldest
available acquisitions of the same currency and persists the resulting links
as one batch.
"""

import uuid
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from Config.constants_core import MATCHER_LOGGER, PREFLIGHT_TOLERANCE, SORT_ASC, SORT_DESC, ZERO
from Shared_Utils.currency_grouping import group_by_currency
from Shared_Utils.dates_and_times import utc_now
from Shared_Utils.logging_manager import LoggerManager
from Shared_Utils.precision import add, format_quantity
from Shared_Utils.scope_lock import ScopeLockRegistry

from .event_service import CostBasisEventService
from .events import AcquisitionEvent, DisposalEvent
from .exceptions import CostBasisError, PreflightMismatchError, StarvationError
from .models import CostBasisLink, CurrencyImbalance, MatchResult


class CostBasisMatcher:
    """
    FIFO matcher for one scope of accounts.

    Core Principles:
    - Source events are immutable facts; links are the only thing written
    - A run is all-or-nothing: any fatal error leaves the ledger untouched
    - Runs over overlapping scopes never interleave

    Usage:
        matcher = CostBasisMatcher(event_service, link_repository, logger_manager)
        result = await matcher.run(['0xabc...', 'kraken-main'])
    """

    def __init__(
        self,
        event_service: CostBasisEventService,
        link_repository,
        logger_manager: LoggerManager,
        scope_locks: Optional[ScopeLockRegistry] = None
    ):
        """
        Initialize the matcher.

        Args:
            event_service: Source of acquisition/disposal wrappers
            link_repository: Batch persistence for links (``create_many``)
            logger_manager: Logging manager
            scope_locks: Shared single-flight registry (one per process)
        """
        self.event_service = event_service
        self.link_repository = link_repository
        self.logger = logger_manager.get_logger(MATCHER_LOGGER)
        self.scope_locks = scope_locks or ScopeLockRegistry()

    async def run(self, accounts: Sequence[str]) -> MatchResult:
        """
        Match and persist links for ``accounts``.

        Returns:
            MatchResult with statistics

        Raises:
            PreflightMismatchError, InvariantViolationError, StarvationError
            and any persistence error; nothing is written in that case.
        """
        scope = ScopeLockRegistry.normalize(accounts)
        if not scope:
            raise ValueError("A matching run needs at least one account")

        batch_id = uuid.uuid4()
        async with self.scope_locks.hold(scope):
            start_time = utc_now()
            self.logger.info(f"🚀 Starting cost basis run (Batch {batch_id}, accounts: {', '.join(scope)})")

            await self._preflight(scope)

            disposals = await self.event_service.get_unlinked_disposals(scope, SORT_ASC)
            acquisitions = await self.event_service.get_unlinked_acquisitions(scope, SORT_DESC)
            self.logger.debug(f"   Loaded {len(disposals)} disposals, {len(acquisitions)} acquisitions")

            try:
                links = self.build_links(disposals, acquisitions)
            except CostBasisError as e:
                self.logger.error(f"❌ Cost basis run {batch_id} aborted: {e}")
                raise

            try:
                await self.link_repository.create_many(links)
            except Exception as e:
                self.logger.error(f"❌ Failed to persist {len(links)} links for batch {batch_id}: {e}", exc_info=True)
                raise

            for link in links:
                self.logger.link(str(link))

            result = MatchResult(
                batch_id=batch_id,
                accounts=scope,
                disposals_processed=len(disposals),
                acquisitions_loaded=len(acquisitions),
                links_created=len(links),
                linked_by_currency=self._linked_by_currency(disposals, links),
                duration_ms=int((utc_now() - start_time).total_seconds() * 1000),
            )

        self.logger.info(str(result))
        return result

    # =========================================================================
    # PREFLIGHT
    # =========================================================================

    async def _preflight(self, scope: List[str]) -> None:
        acquired = await self.event_service.unlinked_acquisition_totals(scope)
        disposed = await self.event_service.unlinked_disposal_totals(scope)

        imbalances = self.check_totals(acquired, disposed)
        if imbalances:
            error = PreflightMismatchError(imbalances)
            self.logger.error(f"❌ Preflight failed: {error}")
            raise error

        for currency in sorted(disposed):
            self.logger.debug(f"   Preflight {currency}: {format_quantity(disposed[currency])} balanced")

    @staticmethod
    def check_totals(acquired: Dict[str, Decimal], disposed: Dict[str, Decimal]) -> List[CurrencyImbalance]:
        """Currencies whose acquired and disposed totals differ, alphabetically."""
        imbalances = []
        for currency in sorted(set(acquired) | set(disposed)):
            imbalance = CurrencyImbalance(
                currency=currency,
                acquired=acquired.get(currency, ZERO),
                disposed=disposed.get(currency, ZERO),
            )
            if imbalance.differential > PREFLIGHT_TOLERANCE:
                imbalances.append(imbalance)
        return imbalances

    # =========================================================================
    # FIFO MATCHING ALGORITHM
    # =========================================================================

    @staticmethod
    def build_links(disposals: Sequence[DisposalEvent],
                    acquisitions_desc: Sequence[AcquisitionEvent]) -> List[CostBasisLink]:
        """
        Link ``disposals`` (oldest first) against ``acquisitions_desc`` (newest first).

        Each currency bucket keeps the descending order, so its last element is
        always the oldest lot still available.
        """
        buckets = group_by_currency(acquisitions_desc)
        links = []

        for disposal in disposals:
            bucket = buckets.get(disposal.currency, [])
            while not disposal.is_exhausted:
                if not bucket:
                    raise StarvationError(disposal.currency, disposal.source_ref, disposal.unaccounted_quantity)

                outcome = disposal.link_with(bucket[-1])
                links.append(outcome.new_link)
                if outcome.acquisition_exhausted:
                    bucket.pop()

        return links

    @staticmethod
    def _linked_by_currency(disposals: Sequence[DisposalEvent], links: Sequence[CostBasisLink]) -> Dict[str, Decimal]:
        currency_of = {d.source_ref: d.currency for d in disposals}
        totals: Dict[str, Decimal] = {}
        for link in links:
            currency = currency_of[link.disposal_ref]
            totals[currency] = add(totals.get(currency, ZERO), link.quantity)
        return totals
