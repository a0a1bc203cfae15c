"""
Configuration package for the cost basis ledger.

Provides centralized access to engine constants and environment configuration.

Usage:
    from Config import constants_core as core
    print(core.QUANTITY_SCALE)

    from Config.config_manager import CentralConfig
    config = CentralConfig()
    print(config.database_url)
"""

from Config import constants_core
from Config.config_manager import CentralConfig

__all__ = [
    'constants_core',
    'CentralConfig',
]
