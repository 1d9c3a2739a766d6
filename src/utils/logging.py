"""Logging utilities module."""

import logging
import re
import sys
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import ClassVar

import colorama
from colorama import Fore, Style

__all__ = ["CleanFormatter", "ColorFormatter", "Logger", "get_logger"]

LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s\t%(message)s"
DEBUG_LOG_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s\t%(filename)s:%(lineno)d\t%(message)s"
)

# Highlight markers understood by the formatters:
#   $$'value'$$  -> a quoted value (titles, paths, usernames)
#   $${k: v}$$   -> de-emphasised structured context
QUOTED_MARKER = re.compile(r"\$\$'((?:[^']|'(?!\$\$))*)'\$\$")
BRACED_MARKER = re.compile(r"\$\$\{(.*?)\}\$\$")


class _MarkerFormatter(logging.Formatter):
    """Formatter base that rewrites highlight markers before formatting."""

    def render_markers(self, msg: str) -> str:
        raise NotImplementedError

    def format(self, record: logging.LogRecord) -> str:
        """Format a record, temporarily rewriting its message markers.

        Args:
            record (logging.LogRecord): Log record to format

        Returns:
            str: The formatted log line
        """
        if not isinstance(record.msg, str):
            return super().format(record)

        original = record.msg
        record.msg = self.render_markers(original)
        try:
            return super().format(record)
        finally:
            record.msg = original


class ColorFormatter(_MarkerFormatter):
    """Terminal formatter colouring level names and highlight markers.

    Quoted values are rendered light blue and braced values dimmed; the level
    name is coloured by severity.
    """

    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.GREEN,
        "SUCCESS": Fore.GREEN + Style.BRIGHT,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.RED + Style.BRIGHT,
    }

    def render_markers(self, msg: str) -> str:
        msg = QUOTED_MARKER.sub(f"{Fore.LIGHTBLUE_EX}'\\1'{Style.RESET_ALL}", msg)
        return BRACED_MARKER.sub(f"{Style.DIM}{{\\1}}{Style.RESET_ALL}", msg)

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        record.levelname = (
            f"{self.COLORS.get(levelname, '')}{levelname}{Style.RESET_ALL}"
        )
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class CleanFormatter(_MarkerFormatter):
    """Plain formatter that strips highlight markers but keeps their content."""

    def render_markers(self, msg: str) -> str:
        msg = QUOTED_MARKER.sub("'\\1'", msg)
        return BRACED_MARKER.sub("{\\1}", msg)


class Logger(logging.Logger):
    """Application logger with a SUCCESS level and class-name prefixes."""

    SUCCESS = logging.INFO + 5

    def __init__(self, name: str, level: int = logging.NOTSET) -> None:
        """Initialize the logger and register the SUCCESS level name.

        Args:
            name (str): Logger name
            level (int): Initial logging level
        """
        super().__init__(name, level)
        if logging.getLevelName(self.SUCCESS) != "SUCCESS":
            logging.addLevelName(self.SUCCESS, "SUCCESS")

    @staticmethod
    def _caller_class_name() -> str | None:
        # 0: this helper, 1: _log, 2: debug/info/..., 3: the calling code
        frame = sys._getframe(3)
        owner = frame.f_locals.get("self")
        if owner is not None and not isinstance(owner, logging.Logger):
            return type(owner).__name__
        cls = frame.f_locals.get("cls")
        if isinstance(cls, type):
            return cls.__name__
        return None

    def _log(
        self,
        level,
        msg,
        args,
        exc_info=None,
        extra=None,
        stack_info=False,
        stacklevel=1,
    ):
        """Prefix messages logged from inside a method with the class name."""
        if isinstance(msg, str):
            try:
                class_name = self._caller_class_name()
            except ValueError:
                class_name = None
            if class_name:
                msg = f"{class_name}: {msg}"

        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )

    def success(self, msg, *args, **kwargs) -> None:
        """Log a message with the SUCCESS level."""
        if self.isEnabledFor(self.SUCCESS):
            self._log(self.SUCCESS, msg, args, **kwargs)

    def configure(self, log_level: str, log_dir: Path | None = None) -> None:
        """Attach console and (optionally) rotating file handlers.

        Existing handlers are replaced, so calling this twice is safe.

        Args:
            log_level (str): Level name, including the custom ``SUCCESS``
            log_dir (Path | None): Directory for ``<name>.<level>.log`` files
        """
        level = self.SUCCESS if log_level == "SUCCESS" else logging.getLevelName(
            log_level
        )
        self.setLevel(level)
        for handler in list(self.handlers):
            self.removeHandler(handler)

        fmt = DEBUG_LOG_FORMAT if level <= logging.DEBUG else LOG_FORMAT

        use_color = False
        try:
            from src.utils.terminal import supports_color

            if supports_color():
                if sys.platform == "win32":
                    colorama.just_fix_windows_console()
                use_color = True
        except OSError:
            use_color = False

        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(
            ColorFormatter(fmt, datefmt=LOG_DATE_FORMAT)
            if use_color
            else CleanFormatter(fmt, datefmt=LOG_DATE_FORMAT)
        )
        self.addHandler(console)

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_dir / f"{self.name}.{log_level}.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(CleanFormatter(fmt, datefmt=LOG_DATE_FORMAT))
            self.addHandler(file_handler)


logging.setLoggerClass(Logger)


def _get_logger(
    log_name: str, log_level: str = "INFO", log_dir: str | Path | None = None
) -> Logger:
    """Build (or reconfigure) a named application logger.

    Args:
        log_name (str): Name of the logger and base name of its log file.
        log_level (str): Logging level name. Defaults to "INFO".
        log_dir (str | Path | None): Directory where log files are written.

    Returns:
        Logger: The configured logger.
    """
    logger = logging.getLogger(log_name)
    if not isinstance(logger, Logger):
        logger = Logger(log_name)
    logger.configure(log_level, Path(log_dir) if log_dir is not None else None)
    return logger


@lru_cache(maxsize=1)
def get_logger() -> Logger:
    """Return the main application logger configured from settings."""
    from src.config.settings import get_config

    config = get_config()
    return _get_logger(
        log_name="WatchlistBridge",
        log_level=str(config.log_level),
        log_dir=config.data_path / "logs",
    )
