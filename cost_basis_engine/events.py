"""
Acquisition and disposal wrappers around immutable source events.

A wrapper is built fresh for every run from one source record (chain transfer
or exchange trade) plus the links that already reference it. The variant is
decided once, at construction, by the factory that is called; after that every
wrapper carries an explicit SourceRef tag and plain Decimal balances.

Quantity derivation per variant:

    acquisition, chain     (value + value_adjustment) * 10^-token_decimal
    acquisition, exchange  vol - quote_fee - withdrawal_fee
    disposal, chain        (value + value_adjustment) * 10^-token_decimal
    disposal, exchange     vol + base_fee
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from Config.constants_core import ZERO
from Shared_Utils.dates_and_times import ensure_utc
from Shared_Utils.precision import add, format_quantity, scale_token_amount, subtract, to_decimal, total

from .exceptions import ExhaustedEntityError, InvariantViolationError, LinkPrecondition
from .models import CostBasisLink, EventRole, EventSource, LinkOutcome, SourceRef


# =========================================================================
# QUANTITY DERIVATION
# =========================================================================

def chain_transfer_quantity(transfer) -> Decimal:
    return scale_token_amount(transfer.value, transfer.value_adjustment, transfer.token_decimal)


def acquisition_quantity(source: EventSource, record) -> Decimal:
    """Full lot size of ``record`` when it is used as an acquisition."""
    if source == EventSource.CHAIN:
        return chain_transfer_quantity(record)
    if source == EventSource.EXCHANGE:
        # Fees reduce what was actually acquired
        acquired = subtract(to_decimal(record.vol, 'vol'), to_decimal(record.quote_fee, 'quote_fee'))
        return subtract(acquired, to_decimal(record.withdrawal_fee, 'withdrawal_fee'))
    raise ValueError(f"Unknown event source: {source!r}")


def disposal_quantity(source: EventSource, record) -> Decimal:
    """Full quantity of ``record`` when it is used as a disposal."""
    if source == EventSource.CHAIN:
        return chain_transfer_quantity(record)
    if source == EventSource.EXCHANGE:
        # The base fee left the account too
        return add(to_decimal(record.vol, 'vol'), to_decimal(record.base_fee, 'base_fee'))
    raise ValueError(f"Unknown event source: {source!r}")


def event_currency(source: EventSource, record) -> str:
    if source == EventSource.CHAIN:
        return record.token_symbol
    if source == EventSource.EXCHANGE:
        return record.base_currency
    raise ValueError(f"Unknown event source: {source!r}")


def event_timestamp(source: EventSource, record) -> datetime:
    if source == EventSource.CHAIN:
        return record.time_stamp
    if source == EventSource.EXCHANGE:
        return record.time
    raise ValueError(f"Unknown event source: {source!r}")


def linked_quantity(links: Optional[Iterable]) -> Decimal:
    """Sum of ``quantity`` over already-persisted links (None/empty -> 0)."""
    return total(to_decimal(link.quantity) for link in (links or ()))


def _opening_balance(quantity: Decimal, consumed: Decimal) -> Decimal:
    # available = total - already consumed, clamped to [0, quantity]
    remaining = subtract(quantity, consumed)
    if remaining <= ZERO or quantity <= ZERO:
        return ZERO
    return min(remaining, quantity)


# =========================================================================
# ACQUISITION
# =========================================================================

class AcquisitionEvent:
    """
    One inbound value event seen as a consumable tax lot.

    ``available_quantity`` starts at quantity minus what earlier links already
    consumed and only ever decreases through ``spend``.
    """

    role = EventRole.ACQUISITION

    def __init__(self, source_ref: SourceRef, currency: str, timestamp: datetime,
                 quantity: Decimal, consumed: Decimal = ZERO):
        self._source_ref = source_ref
        self._currency = currency
        self._timestamp = ensure_utc(timestamp)
        self._quantity = quantity
        self._available = _opening_balance(quantity, consumed)

    @classmethod
    def from_chain_transfer(cls, transfer, consumed: Optional[Decimal] = None) -> 'AcquisitionEvent':
        return cls._build(EventSource.CHAIN, transfer, consumed)

    @classmethod
    def from_exchange_trade(cls, trade, consumed: Optional[Decimal] = None) -> 'AcquisitionEvent':
        return cls._build(EventSource.EXCHANGE, trade, consumed)

    @classmethod
    def from_source(cls, source: EventSource, record, consumed: Optional[Decimal] = None) -> 'AcquisitionEvent':
        return cls._build(source, record, consumed)

    @classmethod
    def _build(cls, source: EventSource, record, consumed: Optional[Decimal]):
        if consumed is None:
            consumed = linked_quantity(record.acquisition_links)
        return cls(
            source_ref=SourceRef(source, record.id),
            currency=event_currency(source, record),
            timestamp=event_timestamp(source, record),
            quantity=acquisition_quantity(source, record),
            consumed=consumed,
        )

    @property
    def id(self) -> int:
        return self._source_ref.event_id

    @property
    def source_ref(self) -> SourceRef:
        return self._source_ref

    @property
    def currency(self) -> str:
        return self._currency

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    @property
    def quantity(self) -> Decimal:
        return self._quantity

    @property
    def available_quantity(self) -> Decimal:
        return self._available

    @property
    def is_exhausted(self) -> bool:
        return self._available == ZERO

    def spend(self, quantity: Decimal) -> None:
        """Consume ``quantity`` from this lot. Raises without mutating on failure."""
        if quantity <= ZERO:
            raise ValueError(f"Spend quantity must be positive, got {quantity}")
        if self.is_exhausted:
            raise ExhaustedEntityError(
                f"Acquisition event {self._source_ref} is exhausted",
                event_ref=self._source_ref, requested=quantity, available=self._available,
            )
        if quantity > self._available:
            raise ExhaustedEntityError(
                f"Acquisition event {self._source_ref} has {format_quantity(self._available)} "
                f"available, cannot spend {format_quantity(quantity)}",
                event_ref=self._source_ref, requested=quantity, available=self._available,
            )
        self._available = subtract(self._available, quantity)

    def __repr__(self) -> str:
        return (
            f"AcquisitionEvent({self._source_ref}, {self._currency}, "
            f"{format_quantity(self._available)}/{format_quantity(self._quantity)}, "
            f"{self._timestamp.isoformat()})"
        )


# =========================================================================
# DISPOSAL
# =========================================================================

class DisposalEvent:
    """One outbound value event whose quantity must be attributed to earlier lots."""

    role = EventRole.DISPOSAL

    def __init__(self, source_ref: SourceRef, currency: str, timestamp: datetime,
                 quantity: Decimal, linked: Decimal = ZERO):
        self._source_ref = source_ref
        self._currency = currency
        self._timestamp = ensure_utc(timestamp)
        self._quantity = quantity
        self._unaccounted = _opening_balance(quantity, linked)

    @classmethod
    def from_chain_transfer(cls, transfer, linked: Optional[Decimal] = None) -> 'DisposalEvent':
        return cls._build(EventSource.CHAIN, transfer, linked)

    @classmethod
    def from_exchange_trade(cls, trade, linked: Optional[Decimal] = None) -> 'DisposalEvent':
        return cls._build(EventSource.EXCHANGE, trade, linked)

    @classmethod
    def from_source(cls, source: EventSource, record, linked: Optional[Decimal] = None) -> 'DisposalEvent':
        return cls._build(source, record, linked)

    @classmethod
    def _build(cls, source: EventSource, record, linked: Optional[Decimal]):
        if linked is None:
            linked = linked_quantity(record.disposal_links)
        return cls(
            source_ref=SourceRef(source, record.id),
            currency=event_currency(source, record),
            timestamp=event_timestamp(source, record),
            quantity=disposal_quantity(source, record),
            linked=linked,
        )

    @property
    def id(self) -> int:
        return self._source_ref.event_id

    @property
    def source_ref(self) -> SourceRef:
        return self._source_ref

    @property
    def currency(self) -> str:
        return self._currency

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    @property
    def quantity(self) -> Decimal:
        return self._quantity

    @property
    def unaccounted_quantity(self) -> Decimal:
        return self._unaccounted

    @property
    def is_exhausted(self) -> bool:
        return self._unaccounted == ZERO

    def _check_can_link(self, acquisition: AcquisitionEvent) -> None:
        if self.is_exhausted:
            raise ExhaustedEntityError(
                f"Disposal event {self._source_ref} is exhausted",
                event_ref=self._source_ref,
                precondition=LinkPrecondition.DISPOSAL_NOT_EXHAUSTED,
            )

        if acquisition.is_exhausted:
            raise ExhaustedEntityError(
                f"Acquisition event {acquisition.source_ref} is exhausted",
                event_ref=acquisition.source_ref,
                precondition=LinkPrecondition.ACQUISITION_NOT_EXHAUSTED,
            )

        if acquisition.currency != self._currency:
            raise InvariantViolationError(
                f"Acquisition event {acquisition.source_ref} currency {acquisition.currency} "
                f"does not match disposal event {self._source_ref} currency {self._currency}",
                LinkPrecondition.SAME_CURRENCY,
                disposal_ref=self._source_ref, acquisition_ref=acquisition.source_ref,
            )

        if not acquisition.timestamp < self._timestamp:
            raise InvariantViolationError(
                f"Acquisition event {acquisition.source_ref} at {acquisition.timestamp.isoformat()} "
                f"is not strictly before disposal event {self._source_ref} at {self._timestamp.isoformat()}",
                LinkPrecondition.ACQUIRED_BEFORE_DISPOSAL,
                disposal_ref=self._source_ref, acquisition_ref=acquisition.source_ref,
            )

    def link_with(self, acquisition: AcquisitionEvent) -> LinkOutcome:
        """
        Attribute as much of this disposal as possible to ``acquisition``.

        Raises InvariantViolationError (or ExhaustedEntityError) without
        mutating either event when a precondition fails.
        """
        self._check_can_link(acquisition)

        used = min(self._unaccounted, acquisition.available_quantity)
        acquisition.spend(used)
        self._unaccounted = subtract(self._unaccounted, used)

        return LinkOutcome(
            new_link=CostBasisLink(
                acquisition_ref=acquisition.source_ref,
                disposal_ref=self._source_ref,
                quantity=used,
            ),
            acquisition_exhausted=acquisition.is_exhausted,
            disposal_exhausted=self.is_exhausted,
        )

    def __repr__(self) -> str:
        return (
            f"DisposalEvent({self._source_ref}, {self._currency}, "
            f"{format_quantity(self._unaccounted)}/{format_quantity(self._quantity)}, "
            f"{self._timestamp.isoformat()})"
        )
