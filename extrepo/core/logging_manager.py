"""Logging setup for extrepo.

Library modules log through ``logging.getLogger(__name__)`` and work
without any setup. The :class:`LoggingManager` attaches the handlers used
by the command line and by hosts that run extrepo from configuration: a
console handler on stderr, so command output on stdout stays parseable,
and an optional size-rotated log file.
"""

from __future__ import annotations

import atexit
import logging
import logging.handlers
import pathlib
import re
import sys
from typing import Any, Dict, Optional, Union

import structlog
from pythonjsonlogger import jsonlogger

from extrepo.core.base import ExtrepoManager
from extrepo.utils.exceptions import ManagerInitializationError, ManagerShutdownError

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
JSON_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

SIZE_UNITS = {"B": 1, "KB": 1024, "MB": 1024 ** 2, "GB": 1024 ** 3}


def parse_level(level: Any) -> int:
    """Translate a level name or number into a logging constant, defaulting to INFO."""
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(str(level).strip().upper(), logging.INFO)


def parse_size(size: Union[str, int]) -> int:
    """Bytes for a rotation size such as ``"10 MB"``; a bare number is bytes.

    Raises:
        ValueError: If the size cannot be read
    """
    if isinstance(size, int):
        return size
    match = re.fullmatch(r"\s*(\d+)\s*([KMG]?B)?\s*", str(size), re.IGNORECASE)
    if not match:
        raise ValueError(f"Invalid log rotation size: {size!r}")
    return int(match.group(1)) * SIZE_UNITS[(match.group(2) or "B").upper()]


def parse_retention(retention: Union[str, int]) -> int:
    """Number of rotated files kept for a retention such as ``"30 days"``.

    One rotated file is kept per day of retention.

    Raises:
        ValueError: If the retention cannot be read
    """
    if isinstance(retention, int):
        return retention
    match = re.fullmatch(r"\s*(\d+)\s*(days?|files?)?\s*", str(retention), re.IGNORECASE)
    if not match:
        raise ValueError(f"Invalid log retention: {retention!r}")
    return int(match.group(1))


class LoggingManager(ExtrepoManager):
    """Applies the ``logging`` configuration section to the root logger.

    With ``format: json`` records are written by python-json-logger and
    structlog loggers hand their key/value pairs to it as record fields.
    """

    def __init__(self, config_manager: Any) -> None:
        """Initialize the Logging Manager.

        Args:
            config_manager: The Configuration Manager to use for logging settings.
        """
        super().__init__(name="logging_manager")
        self._config_manager = config_manager
        self._root_logger: Optional[logging.Logger] = None
        self._console_handler: Optional[logging.Handler] = None
        self._file_handler: Optional[logging.handlers.RotatingFileHandler] = None
        self._log_file: Optional[pathlib.Path] = None
        self._structured = False

    def initialize(self) -> None:
        """Attach the configured handlers to the root logger.

        Raises:
            ManagerInitializationError: If initialization fails.
        """
        try:
            logging_config = self._config_manager.get("logging", {})
            level = parse_level(logging_config.get("level", "INFO"))
            self._structured = str(logging_config.get("format", "json")).lower() == "json"
            formatter = self._build_formatter()

            self._root_logger = logging.getLogger()
            self._root_logger.setLevel(level)
            for handler in list(self._root_logger.handlers):
                self._root_logger.removeHandler(handler)

            console_config = logging_config.get("console", {})
            if console_config.get("enabled", True):
                self._console_handler = logging.StreamHandler(sys.stderr)
                self._attach(self._console_handler, console_config.get("level", "INFO"), formatter)

            file_config = logging_config.get("file", {})
            if file_config.get("enabled", False):
                self._file_handler = self._open_log_file(file_config)
                self._attach(self._file_handler, level, formatter)

            if self._structured:
                self._configure_structlog()

            self._config_manager.register_listener("logging", self._on_config_changed)
            atexit.register(self.shutdown)

            self._initialized = True
            self._healthy = True
            self._root_logger.debug(
                "Logging Manager initialized",
                extra={"manager": self.name, "structured": self._structured},
            )

        except Exception as e:
            self._detach_handlers()
            raise ManagerInitializationError(
                f"Failed to initialize LoggingManager: {str(e)}",
                manager_name=self.name,
            ) from e

    def _build_formatter(self) -> logging.Formatter:
        if self._structured:
            return jsonlogger.JsonFormatter(
                JSON_FORMAT,
                datefmt="%Y-%m-%dT%H:%M:%S%z",
                json_ensure_ascii=False,
            )
        return logging.Formatter(TEXT_FORMAT)

    def _open_log_file(self, file_config: Dict[str, Any]) -> logging.handlers.RotatingFileHandler:
        self._log_file = pathlib.Path(file_config.get("path", "logs/extrepo.log")).expanduser()
        self._log_file.parent.mkdir(parents=True, exist_ok=True)
        return logging.handlers.RotatingFileHandler(
            self._log_file,
            maxBytes=parse_size(file_config.get("rotation", "10 MB")),
            backupCount=parse_retention(file_config.get("retention", "30 days")),
            encoding="utf-8",
        )

    def _attach(self, handler: logging.Handler, level: Any, formatter: logging.Formatter) -> None:
        handler.setLevel(parse_level(level))
        handler.setFormatter(formatter)
        self._root_logger.addHandler(handler)

    def _detach_handlers(self) -> None:
        for handler in (self._console_handler, self._file_handler):
            if handler is None:
                continue
            if self._root_logger is not None:
                self._root_logger.removeHandler(handler)
            handler.flush()
            handler.close()
        self._console_handler = None
        self._file_handler = None

    @staticmethod
    def _configure_structlog() -> None:
        # Key/value pairs become record attributes, which the JSON formatter emits
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.render_to_log_kwargs,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def get_logger(self, name: str) -> Union[logging.Logger, Any]:
        """Get a logger for a specific component.

        Args:
            name: The name of the component requesting a logger.

        Returns:
            A structlog logger when JSON logging is enabled, a standard
            logger otherwise.
        """
        if self._initialized and self._structured:
            return structlog.get_logger(name)
        return logging.getLogger(name)

    def _on_config_changed(self, key: str, value: Any) -> None:
        if key == "logging.level" and self._root_logger:
            level = parse_level(value)
            self._root_logger.setLevel(level)
            if self._file_handler:
                self._file_handler.setLevel(level)
        elif key == "logging.console.level":
            self.set_console_level(value)

    def set_console_level(self, level: Any) -> None:
        """Change the console handler's level without touching configuration.

        Args:
            level: Level name such as ``"warning"``
        """
        if self._console_handler:
            self._console_handler.setLevel(parse_level(level))

    def shutdown(self) -> None:
        """Detach and close the handlers.

        Raises:
            ManagerShutdownError: If shutdown fails.
        """
        if not self._initialized:
            return

        try:
            self._detach_handlers()
            self._config_manager.unregister_listener("logging", self._on_config_changed)
            atexit.unregister(self.shutdown)

            self._initialized = False
            self._healthy = False

        except Exception as e:
            raise ManagerShutdownError(
                f"Failed to shut down LoggingManager: {str(e)}",
                manager_name=self.name,
            ) from e

    def status(self) -> Dict[str, Any]:
        """Get the status of the Logging Manager.

        Returns:
            Dict[str, Any]: Status information about the Logging Manager.
        """
        status = super().status()

        if self._initialized and self._root_logger:
            status.update({
                "level": logging.getLevelName(self._root_logger.level),
                "log_file": str(self._log_file) if self._file_handler else None,
                "handlers": {
                    "console": self._console_handler is not None,
                    "file": self._file_handler is not None,
                },
                "structured_logging": self._structured,
            })

        return status
