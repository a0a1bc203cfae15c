import os
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from Config.constants_core import DEFAULT_API_HOST, DEFAULT_API_PORT
from Config.exceptions import ConfigMissingError, ConfigRangeError, ConfigValidationError
from Shared_Utils.runtime_env import running_in_docker
from Shared_Utils.url_helper import build_async_url

_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class CentralConfig:
    """Centralized configuration manager shared across all modules."""
    _instance = None  # Singleton instance
    _is_loaded = False

    def __new__(cls, is_docker=None):
        if cls._instance is None:
            cls._instance = super(CentralConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self, is_docker=None):
        if not self._is_loaded:
            self.is_docker = running_in_docker() if is_docker is None else is_docker
            self._initialize_default_values()
            self._load_configuration()
            self._is_loaded = True

    def _initialize_default_values(self):
        """Set default values for all configuration attributes."""
        self.db_url = self._database_url = None
        self.db_host = self.db_port = self.db_name = self.db_user = self.db_password = None
        self._api_host = self._api_port = self._accounts = None

        # Default values
        self._log_level = "INFO"
        self._log_dir = "logs"
        self._retention_days = 7

    def _load_configuration(self):
        """Load configuration from environment variables."""
        self.load_dotenv_settings(self.is_docker)
        self._load_environment_variables()
        self._validate()
        self.db_url = build_async_url(
            self._database_url, host=self.db_host, port=self.db_port, name=self.db_name,
            user=self.db_user, password=self.db_password,
        )

    @staticmethod
    def load_dotenv_settings(is_docker: bool = False):
        if is_docker:
            # Containers get their environment from compose/secrets
            return
        env_path = Path(__file__).resolve().parent.parent / '.env_costbasis'
        load_dotenv(dotenv_path=env_path, override=False)

    def _load_environment_variables(self):
        env_vars = {
            "_database_url": "DATABASE_URL",
            "db_host": "DB_HOST",
            "db_port": "DB_PORT",
            "db_name": "DB_NAME",
            "db_user": "DB_USER",
            "db_password": "DB_PASSWORD",
            "_log_level": "LOG_LEVEL",
            "_log_dir": "LOG_DIR",
            "_retention_days": "LOG_RETENTION_DAYS",
            "_api_host": "API_HOST",
            "_api_port": "API_PORT",
            "_accounts": "COST_BASIS_ACCOUNTS",
        }
        for attr, env_var in env_vars.items():
            value = os.getenv(env_var)
            if value is not None:
                setattr(self, attr, value)

    def _validate(self):
        level = str(self._log_level).upper()
        if level not in _LOG_LEVELS:
            raise ConfigValidationError(
                "LOG_LEVEL", self._log_level,
                f"Must be one of {', '.join(_LOG_LEVELS)}",
                suggestion="LOG_LEVEL=INFO",
            )
        self._log_level = level

        if self._api_port is not None:
            try:
                port = int(self._api_port)
            except (TypeError, ValueError):
                raise ConfigValidationError("API_PORT", self._api_port, "Expected an integer port")
            if not 1 <= port <= 65535:
                raise ConfigRangeError("API_PORT", port, 1, 65535)
            self._api_port = port

        if self.db_port is not None:
            try:
                db_port = int(self.db_port)
            except (TypeError, ValueError):
                raise ConfigValidationError("DB_PORT", self.db_port, "Expected an integer port")
            if not 1 <= db_port <= 65535:
                raise ConfigRangeError("DB_PORT", db_port, 1, 65535)

        try:
            retention = int(self._retention_days)
        except (TypeError, ValueError):
            raise ConfigValidationError("LOG_RETENTION_DAYS", self._retention_days, "Expected a whole number of days")
        if not 1 <= retention <= 365:
            raise ConfigRangeError("LOG_RETENTION_DAYS", retention, 1, 365)
        self._retention_days = retention

    @property
    def database_url(self) -> str:
        return self.db_url

    @property
    def log_level(self) -> str:
        return self._log_level

    @property
    def log_level_num(self) -> int:
        return getattr(logging, self._log_level)

    @property
    def log_dir(self) -> str:
        return self._log_dir

    @property
    def log_retention_days(self) -> int:
        return self._retention_days

    @property
    def api_host(self) -> str:
        return self._api_host or DEFAULT_API_HOST

    @property
    def api_port(self) -> int:
        return self._api_port or DEFAULT_API_PORT

    @property
    def default_accounts(self) -> List[str]:
        if not self._accounts:
            return []
        return [a.strip() for a in self._accounts.split(',') if a.strip()]

    def require_accounts(self, accounts: Optional[List[str]] = None) -> List[str]:
        """Return explicit accounts or the configured default scope."""
        resolved = [a for a in (accounts or []) if a] or self.default_accounts
        if not resolved:
            raise ConfigMissingError("COST_BASIS_ACCOUNTS", "environment or --accounts")
        return resolved
