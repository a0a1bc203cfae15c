"""
Reconciliation Validator

Checks that the persisted links conserve quantity exactly: every source event
referenced by a link must be fully accounted for by the links that reference
it, and both sides of a link must be in the same currency.
"""

from collections import OrderedDict
from decimal import Decimal
from typing import Dict, List, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError

from Config.constants_core import VALIDATOR_LOGGER, ZERO
from Shared_Utils.logging_manager import LoggerManager
from Shared_Utils.precision import format_quantity, subtract

from .models import (
    EventRole, FindingKind, PersistedLink, ReconciliationFinding, SourceRef, ValidationResult,
)

BalanceKey = Tuple[EventRole, SourceRef]


def _balance_sort_key(key: BalanceKey):
    role, ref = key
    return (role.value, ref.sort_key)


class ReconciliationValidator:
    """
    Validates persisted cost basis links.

    Checks:
    - Every link endpoint resolves to an existing source event
    - Both endpoints of a link carry the same currency
    - Each referenced event's quantity minus its links is exactly zero

    Read-only; safe to run alongside a matching run. Never raises: load
    failures are reported as findings.
    """

    def __init__(self, link_repository, logger_manager: LoggerManager):
        self.link_repository = link_repository
        self.logger = logger_manager.get_logger(VALIDATOR_LOGGER)

    async def validate(self) -> ValidationResult:
        self.logger.info("🔍 Validating cost basis links")

        try:
            links = await self.link_repository.list_with_sources()
        except (SQLAlchemyError, OSError, ValueError, TypeError) as e:
            return self._failure(FindingKind.LOAD_FAILURE, f"Could not load cost basis links: {e}")

        try:
            result = self.reconcile(links)
        except ArithmeticError as e:
            # decimal traps (Inexact, Overflow) on quantities the exact context cannot hold
            return self._failure(FindingKind.RECONCILE_FAILURE, f"Could not reconcile cost basis links: {e!r}")

        for finding in result.findings:
            self.logger.finding(finding.message)

        if result.is_valid:
            self.logger.info(f"✅ Validation PASSED ({result.total_links} links, {result.events_checked} events)")
        else:
            self.logger.error(f"❌ Validation FAILED with {len(result.findings)} findings")
        return result

    def _failure(self, kind: FindingKind, message: str) -> ValidationResult:
        self.logger.error(f"❌ {message}", exc_info=True)
        return ValidationResult(findings=[ReconciliationFinding(kind=kind, message=message)])

    @staticmethod
    def reconcile(links: Sequence[PersistedLink]) -> ValidationResult:
        """
        Pure reconciliation over already-loaded links.

        Findings come out in a fixed order: per link (by id) dangling references
        then currency mismatches, followed by unresolved balances sorted by
        role, source and id.
        """
        links = sorted(links, key=lambda l: l.link_id)
        balances = ReconciliationValidator._seed_balances(links)
        findings: List[ReconciliationFinding] = []

        for link in links:
            for role, ref, snapshot in (
                (EventRole.ACQUISITION, link.acquisition_ref, link.acquisition),
                (EventRole.DISPOSAL, link.disposal_ref, link.disposal),
            ):
                if snapshot is None:
                    findings.append(_dangling(link, role, ref))
                    continue
                key = (role, ref)
                balances[key] = subtract(balances[key], link.quantity)

            if link.acquisition is not None and link.disposal is not None \
                    and link.acquisition.currency != link.disposal.currency:
                findings.append(ReconciliationFinding(
                    kind=FindingKind.CURRENCY_MISMATCH,
                    message=(
                        f"Link {link.link_id} pairs acquisition {link.acquisition_ref} "
                        f"({link.acquisition.currency}) with disposal {link.disposal_ref} "
                        f"({link.disposal.currency})"
                    ),
                    link_id=link.link_id,
                ))

        for key in sorted(balances, key=_balance_sort_key):
            remaining = balances[key]
            if remaining != ZERO:
                findings.append(_unresolved(key, remaining))

        return ValidationResult(
            total_links=len(links),
            events_checked=len(balances),
            findings=findings,
        )

    @staticmethod
    def _seed_balances(links: Sequence[PersistedLink]) -> Dict[BalanceKey, Decimal]:
        # Each distinct (role, event) starts at its own full quantity, once
        balances: Dict[BalanceKey, Decimal] = OrderedDict()
        for link in links:
            for snapshot in (link.acquisition, link.disposal):
                if snapshot is not None:
                    balances.setdefault((snapshot.role, snapshot.ref), snapshot.quantity)
        return balances


def _dangling(link: PersistedLink, role: EventRole, ref) -> ReconciliationFinding:
    if ref is None:
        message = f"Link {link.link_id} has no {role.value} reference"
    else:
        message = f"Link {link.link_id} references missing {role.value} event {ref}"
    return ReconciliationFinding(
        kind=FindingKind.DANGLING_REFERENCE,
        message=message,
        link_id=link.link_id,
        ref=ref,
        role=role,
        amount=link.quantity,
    )


def _unresolved(key: BalanceKey, remaining: Decimal) -> ReconciliationFinding:
    role, ref = key
    state = "under-linked" if remaining > ZERO else "over-linked"
    return ReconciliationFinding(
        kind=FindingKind.UNRESOLVED_QUANTITY,
        message=(
            f"{role.value.capitalize()} event {ref} has unresolved quantity "
            f"{format_quantity(remaining)} ({state})"
        ),
        ref=ref,
        role=role,
        amount=remaining,
    )
