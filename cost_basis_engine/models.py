"""
Data models for the cost basis engine.

Defines the tagged source reference, the link record produced by matching,
and the result objects returned by the matcher and the validator.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from Config.constants_core import COST_BASIS_METHOD_FIFO
from Shared_Utils.precision import format_quantity, subtract


class EventSource(str, Enum):
    """Which stream a source event came from. Decided once, never re-probed."""

    CHAIN = 'chain'
    EXCHANGE = 'exchange'


class EventRole(str, Enum):
    """Which side of a link an event plays."""

    ACQUISITION = 'acquisition'
    DISPOSAL = 'disposal'


@dataclass(frozen=True)
class SourceRef:
    """Tagged id of a source event: chain transfer id or exchange trade id."""

    source: EventSource
    event_id: int

    @classmethod
    def chain(cls, event_id: int) -> 'SourceRef':
        return cls(EventSource.CHAIN, event_id)

    @classmethod
    def exchange(cls, event_id: int) -> 'SourceRef':
        return cls(EventSource.EXCHANGE, event_id)

    @property
    def sort_key(self):
        return (self.source.value, self.event_id)

    def column_for(self, role: EventRole) -> str:
        """Name of the link column holding this ref, e.g. ``acquisition_chain_event_id``."""
        return f"{role.value}_{self.source.value}_event_id"

    def __str__(self) -> str:
        return f"{self.source.value}:{self.event_id}"


LINK_REF_COLUMNS = (
    'acquisition_chain_event_id',
    'acquisition_exchange_event_id',
    'disposal_chain_event_id',
    'disposal_exchange_event_id',
)


@dataclass
class CostBasisLink:
    """
    Pairs part or all of one disposal with part or all of one acquisition.

    This is the only durable output of a matching run; it is persisted as a
    row of ``cost_basis_links`` where exactly one acquisition column and
    exactly one disposal column are set.
    """

    acquisition_ref: SourceRef
    disposal_ref: SourceRef
    quantity: Decimal
    method: str = COST_BASIS_METHOD_FIFO
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def ref_columns(self) -> Dict[str, Optional[int]]:
        columns = dict.fromkeys(LINK_REF_COLUMNS)
        columns[self.acquisition_ref.column_for(EventRole.ACQUISITION)] = self.acquisition_ref.event_id
        columns[self.disposal_ref.column_for(EventRole.DISPOSAL)] = self.disposal_ref.event_id
        return columns

    def to_row(self) -> Dict[str, Any]:
        row = self.ref_columns()
        row['quantity'] = self.quantity
        row['method'] = self.method
        return row

    def __str__(self) -> str:
        return (
            f"CostBasisLink({format_quantity(self.quantity)}: "
            f"{self.acquisition_ref} → {self.disposal_ref}, {self.method})"
        )


@dataclass(frozen=True)
class LinkOutcome:
    """Result of DisposalEvent.link_with."""

    new_link: CostBasisLink
    acquisition_exhausted: bool
    disposal_exhausted: bool


@dataclass(frozen=True)
class CurrencyImbalance:
    """Per-currency preflight totals that did not balance."""

    currency: str
    acquired: Decimal
    disposed: Decimal

    @property
    def differential(self) -> Decimal:
        return abs(subtract(self.acquired, self.disposed))


@dataclass
class MatchResult:
    """
    Summary of one matching run.

    Contains statistics and timing; fatal failures are raised, not returned.
    """

    batch_id: uuid.UUID
    accounts: List[str]

    disposals_processed: int = 0
    acquisitions_loaded: int = 0
    links_created: int = 0
    linked_by_currency: Dict[str, Decimal] = field(default_factory=dict)

    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'batch_id': str(self.batch_id),
            'accounts': list(self.accounts),
            'disposals_processed': self.disposals_processed,
            'acquisitions_loaded': self.acquisitions_loaded,
            'links_created': self.links_created,
            'linked_by_currency': {
                currency: format_quantity(quantity)
                for currency, quantity in sorted(self.linked_by_currency.items())
            },
            'duration_ms': self.duration_ms,
        }

    def __str__(self) -> str:
        return (
            f"MatchResult(✅ Batch {self.batch_id}: "
            f"{self.links_created} links from {self.disposals_processed} disposals, "
            f"{len(self.linked_by_currency)} currencies, {self.duration_ms or 0}ms)"
        )


# =========================================================================
# RECONCILIATION
# =========================================================================

@dataclass(frozen=True)
class SourceSnapshot:
    """What the validator needs from one endpoint of a persisted link."""

    ref: SourceRef
    role: EventRole
    currency: str
    quantity: Decimal


@dataclass(frozen=True)
class PersistedLink:
    """A stored link with its endpoints resolved (None when the row is missing)."""

    link_id: int
    quantity: Decimal
    acquisition_ref: Optional[SourceRef]
    disposal_ref: Optional[SourceRef]
    acquisition: Optional[SourceSnapshot] = None
    disposal: Optional[SourceSnapshot] = None


class FindingKind(str, Enum):
    DANGLING_REFERENCE = 'dangling_reference'
    CURRENCY_MISMATCH = 'currency_mismatch'
    UNRESOLVED_QUANTITY = 'unresolved_quantity'
    LOAD_FAILURE = 'load_failure'
    RECONCILE_FAILURE = 'reconcile_failure'


@dataclass(frozen=True)
class ReconciliationFinding:
    """One inspectable problem found by the validator."""

    kind: FindingKind
    message: str
    link_id: Optional[int] = None
    ref: Optional[SourceRef] = None
    role: Optional[EventRole] = None
    amount: Optional[Decimal] = None

    def __str__(self) -> str:
        return self.message


@dataclass
class ValidationResult:
    """
    Result of a reconciliation pass.

    Contains counts and the findings; an empty findings list means the
    persisted ledger conserves quantity exactly.
    """

    total_links: int = 0
    events_checked: int = 0
    findings: List[ReconciliationFinding] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.findings

    @property
    def error_messages(self) -> List[str]:
        return [finding.message for finding in self.findings]

    def findings_of(self, kind: FindingKind) -> List[ReconciliationFinding]:
        return [f for f in self.findings if f.kind == kind]

    def to_dict(self) -> Dict[str, Any]:
        return {'success': self.is_valid, 'errors': self.error_messages}

    def __str__(self) -> str:
        status = "✅ VALID" if self.is_valid else "❌ INVALID"
        parts = [
            f"ValidationResult({status})",
            f"  Links: {self.total_links}",
            f"  Events: {self.events_checked}",
        ]
        if self.findings:
            parts.append(f"  ❌ Findings: {len(self.findings)}")
            for finding in self.findings[:3]:  # Show first 3
                parts.append(f"    - {finding.message}")
        return "\n".join(parts)
