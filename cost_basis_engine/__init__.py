"""
FIFO Cost Basis Engine

This module attributes every disposal of a currency (outbound transfer or
sell) to the earlier acquisitions (inbound transfer or buy) it consumed, in
first-in-first-out order, and checks that the stored links conserve quantity.

Key Components:
- CostBasisMatcher: Links unlinked disposals to acquisitions for a scope
- ReconciliationValidator: Checks persisted links for conservation
- CostBasisEventService: Merges chain transfers and exchange trades
- Models: Source refs, links and run/validation results

Architecture:
- Source events are immutable facts (what happened)
- Links are the only output (what it means)
- A run is all-or-nothing

Usage:
    from cost_basis_engine import CostBasisMatcher

    matcher = CostBasisMatcher(event_service, link_repository, logger_manager)
    result = await matcher.run(accounts)
"""

from .event_service import CostBasisEventService
from .events import AcquisitionEvent, DisposalEvent
from .exceptions import (
    CostBasisError, ExhaustedEntityError, InvariantViolationError, LinkPrecondition,
    PreflightMismatchError, StarvationError,
)
from .matcher import CostBasisMatcher
from .models import (
    CostBasisLink, EventRole, EventSource, FindingKind, MatchResult,
    ReconciliationFinding, SourceRef, ValidationResult,
)
from .validator import ReconciliationValidator

__all__ = [
    'CostBasisMatcher',
    'ReconciliationValidator',
    'CostBasisEventService',
    'AcquisitionEvent',
    'DisposalEvent',
    'CostBasisLink',
    'EventRole',
    'EventSource',
    'SourceRef',
    'MatchResult',
    'ValidationResult',
    'ReconciliationFinding',
    'FindingKind',
    'CostBasisError',
    'InvariantViolationError',
    'ExhaustedEntityError',
    'PreflightMismatchError',
    'StarvationError',
    'LinkPrecondition',
]

__version__ = '1.0.0'
