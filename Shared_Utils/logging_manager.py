import logging
import os
from logging.handlers import TimedRotatingFileHandler

from Config.constants_core import API_LOGGER, MATCHER_LOGGER, SHARED_LOGGER, VALIDATOR_LOGGER

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s (%(filename)s:%(lineno)d)"

# logger name -> sub folder of log_dir
LOGGER_FOLDERS = {
    MATCHER_LOGGER: 'matcher',
    VALIDATOR_LOGGER: 'validator',
    API_LOGGER: 'api',
    SHARED_LOGGER: 'shared',
}


class CustomLogger(logging.Logger):
    # Domain levels: LINK sits just under INFO, FINDING between INFO and WARNING
    LINK_LEVEL_NUM = 19
    FINDING_LEVEL_NUM = 27

    logging.addLevelName(LINK_LEVEL_NUM, "LINK")
    logging.addLevelName(FINDING_LEVEL_NUM, "FINDING")

    def link(self, message, *args, **kwargs):
        """One persisted cost basis link."""
        if self.isEnabledFor(self.LINK_LEVEL_NUM):
            self._log(self.LINK_LEVEL_NUM, f"LINK: {message}", args, **kwargs)

    def finding(self, message, *args, **kwargs):
        """One reconciliation finding."""
        if self.isEnabledFor(self.FINDING_LEVEL_NUM):
            self._log(self.FINDING_LEVEL_NUM, f"FINDING: {message}", args, **kwargs)


logging.setLoggerClass(CustomLogger)


class CustomFormatter(logging.Formatter):
    """Console formatter: one ANSI colour per level."""

    COLORS = {
        logging.DEBUG: "\x1b[38;21m",                  # grey
        logging.INFO: "\x1b[38;21m",                   # grey
        CustomLogger.LINK_LEVEL_NUM: "\x1b[34;21m",    # blue
        CustomLogger.FINDING_LEVEL_NUM: "\x1b[35;21m", # magenta
        logging.WARNING: "\x1b[38;5;214m",             # orange
        logging.ERROR: "\x1b[31;21m",                  # red
        logging.CRITICAL: "\x1b[31;1m",                # bold red
    }
    RESET = "\x1b[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelno, "")
        formatter = logging.Formatter(f"{color}{FILE_FORMAT}{self.RESET}", "%Y-%m-%d %H:%M:%S")
        return formatter.format(record)


class LoggerManager:
    """
    Process-wide owner of the named loggers.

    Config keys: ``log_level`` (console threshold), ``log_dir`` and
    ``retention_days`` (rotated files kept per logger).
    """

    _instance = None
    _is_initialized = False

    def __new__(cls, *args, **kwargs):
        if not cls._instance:
            cls._instance = super(LoggerManager, cls).__new__(cls)
        return cls._instance

    def __init__(self, config, log_dir=None):
        if not self._is_initialized:
            self._log_level = config.get('log_level', logging.INFO)
            self.log_dir = log_dir or config.get('log_dir') or "logs"
            self.retention_days = int(config.get('retention_days', 7))
            self.loggers = {}
            self.setup_logging()
            self._is_initialized = True

    @property
    def log_level(self):
        return self._log_level

    def setup_logging(self):
        for logger_name, subfolder in LOGGER_FOLDERS.items():
            self.loggers[logger_name] = self._build_logger(logger_name, subfolder)
        self.setup_sqlalchemy_logging(logging.WARNING)

    def _build_logger(self, logger_name, subfolder) -> CustomLogger:
        logger = CustomLogger(logger_name)
        logger.setLevel(logging.DEBUG)  # handlers decide what is shown
        logger.addHandler(self._console_handler(self._log_level))
        logger.addHandler(self._file_handler(logger_name, subfolder))
        return logger

    @staticmethod
    def _console_handler(level) -> logging.Handler:
        handler = logging.StreamHandler()
        handler.setLevel(level)
        handler.setFormatter(CustomFormatter())
        return handler

    def _file_handler(self, logger_name, subfolder) -> logging.Handler:
        # Files always keep DEBUG for postmortem analysis
        log_path = os.path.join(self.log_dir, subfolder)
        os.makedirs(log_path, exist_ok=True)
        handler = TimedRotatingFileHandler(
            os.path.join(log_path, f"{logger_name}.log"),
            when="midnight", interval=1, backupCount=self.retention_days,
        )
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(FILE_FORMAT))
        return handler

    def get_logger(self, logger_name):
        return self.loggers.get(logger_name)

    def close(self):
        """Flush and detach every handler (end of process or between tests)."""
        for logger in self.loggers.values():
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)

    @staticmethod
    def setup_sqlalchemy_logging(level=logging.WARNING):
        sqlalchemy_logger = logging.getLogger('sqlalchemy.engine')
        sqlalchemy_logger.setLevel(level)
        sqlalchemy_logger.handlers.clear()
        sqlalchemy_logger.addHandler(LoggerManager._console_handler(level))
