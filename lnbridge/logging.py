import inspect
import logging
import sys

from decouple import config as dconfig
from loguru import logger

# Format strings follow https://loguru.readthedocs.io/en/stable/api/logger.html
_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}:{line}</cyan> | "
    "<level>{message}</level>\n"
)

# libraries lnbridge runs on that log through the standard library
_STDLIB_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "aiohttp")


def _format(record) -> str:
    if record["exception"] is not None:
        return _LOG_FORMAT + "{exception}\n"

    return _LOG_FORMAT


def configure_logger() -> None:
    """Replaces loguru's default sink with the configured ones.

    `log_level` applies to every sink. If `log_file` is set, records are
    written there as well, rotated at 10 MB.
    """
    level = dconfig("log_level", default="INFO", cast=str).upper()
    log_file = dconfig("log_file", default="", cast=str)

    logger.remove()
    logger.add(sys.stdout, level=level, format=_format, colorize=True)

    if log_file != "":
        logger.add(
            log_file,
            level=level,
            format=_format,
            colorize=False,
            rotation="10 MB",
            retention=5,
        )

    for name in _STDLIB_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    logger.debug(f"Logging configured, level={level} file={log_file or '-'}")


class InterceptHandler(logging.Handler):
    """Forwards standard library log records to loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # report the caller of the stdlib logger, not this handler
        frame, depth = inspect.currentframe(), 0
        while frame is not None and (
            depth == 0 or frame.f_code.co_filename == logging.__file__
        ):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )
