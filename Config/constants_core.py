"""
Core system constants shared across all modules.

These define fundamental engine behavior and rarely change.
Changes to these values affect every matching and reconciliation run.
"""
from decimal import Decimal

# ============================================================================
# Precision
# ============================================================================

QUANTITY_SCALE = 18
"""Maximum fractional digits carried by any quantity (wei-level precision)"""

QUANTITY_PRECISION = 60
"""Significant digits available to exact arithmetic before Inexact is raised"""

ZERO = Decimal('0')

PREFLIGHT_TOLERANCE = Decimal('0')
"""Allowed per-currency acquired/disposed differential (none)"""

# ============================================================================
# Cost Basis
# ============================================================================

COST_BASIS_METHOD_FIFO = 'fifo'
"""Only supported lot consumption method"""

SORT_ASC = 'ASC'
SORT_DESC = 'DESC'

# ============================================================================
# Logger Names
# ============================================================================

MATCHER_LOGGER = 'matcher_logger'
VALIDATOR_LOGGER = 'validator_logger'
API_LOGGER = 'api_logger'
SHARED_LOGGER = 'shared_logger'

# ============================================================================
# API Defaults
# ============================================================================

DEFAULT_API_HOST = '0.0.0.0'
DEFAULT_API_PORT = 8085
