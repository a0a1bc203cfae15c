"""
Cost basis engine errors.

Every fatal condition of a matching run derives from CostBasisError and aborts
the whole batch. Reconciliation findings are data (see models.py), not errors.
"""

from decimal import Decimal
from enum import Enum
from typing import List, Optional, TYPE_CHECKING

from Shared_Utils.precision import format_quantity

if TYPE_CHECKING:
    from .models import CurrencyImbalance, SourceRef


class LinkPrecondition(str, Enum):
    """Preconditions checked by DisposalEvent.link_with, in order."""

    DISPOSAL_NOT_EXHAUSTED = 'disposal_not_exhausted'
    ACQUISITION_NOT_EXHAUSTED = 'acquisition_not_exhausted'
    SAME_CURRENCY = 'same_currency'
    ACQUIRED_BEFORE_DISPOSAL = 'acquired_before_disposal'


class CostBasisError(Exception):
    """Base class for all fatal cost basis errors."""
    pass


class InvariantViolationError(CostBasisError):
    """Raised when a link attempt breaks a precondition. Nothing is mutated."""

    def __init__(self, message: str, precondition: LinkPrecondition,
                 disposal_ref: Optional['SourceRef'] = None,
                 acquisition_ref: Optional['SourceRef'] = None):
        super().__init__(message)
        self.precondition = precondition
        self.disposal_ref = disposal_ref
        self.acquisition_ref = acquisition_ref


class ExhaustedEntityError(InvariantViolationError):
    """Raised when spending from or linking an event whose balance is zero (or too small)."""

    def __init__(self, message: str, event_ref: 'SourceRef',
                 precondition: LinkPrecondition = LinkPrecondition.ACQUISITION_NOT_EXHAUSTED,
                 requested: Optional[Decimal] = None, available: Optional[Decimal] = None):
        super().__init__(message, precondition)
        self.event_ref = event_ref
        self.requested = requested
        self.available = available
        if precondition == LinkPrecondition.DISPOSAL_NOT_EXHAUSTED:
            self.disposal_ref = event_ref
        else:
            self.acquisition_ref = event_ref


class PreflightMismatchError(CostBasisError):
    """
    Raised before any linking when per-currency totals do not balance.

    ``currency`` and ``differential`` describe the first offending currency
    (alphabetical); ``imbalances`` lists all of them.
    """

    def __init__(self, imbalances: List['CurrencyImbalance']):
        if not imbalances:
            raise ValueError("PreflightMismatchError needs at least one imbalance")
        self.imbalances = imbalances
        first = imbalances[0]
        self.currency = first.currency
        self.differential = first.differential
        message = (
            f"Total quantity mismatch for currency {first.currency}: "
            f"off by {format_quantity(first.differential)} "
            f"(acquired={format_quantity(first.acquired)}, disposed={format_quantity(first.disposed)})"
        )
        if len(imbalances) > 1:
            others = ', '.join(i.currency for i in imbalances[1:])
            message += f"; also unbalanced: {others}"
        super().__init__(message)


class StarvationError(CostBasisError):
    """Raised when a disposal still has quantity to account for but no lot remains."""

    def __init__(self, currency: str, disposal_ref: 'SourceRef', unaccounted: Decimal):
        super().__init__(
            f"No acquisition lots remain for currency {currency} "
            f"(disposal {disposal_ref} still has {format_quantity(unaccounted)} unaccounted)"
        )
        self.currency = currency
        self.disposal_ref = disposal_ref
        self.unaccounted = unaccounted
