import logging
import os
import traceback
from typing import Optional, Union

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


def _resolve_level(level: Union[int, str, None]) -> int:
    """Turn a level name such as "debug" into its logging constant."""
    if level is None:
        level = os.environ.get("KRANE_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: Union[int, str, None] = None, fmt: Optional[str] = None) -> None:
    """Configure root logging once. Subsequent calls only adjust the level.
    If fmt is not provided, a sensible default is used.
    """
    root = logging.getLogger()
    if root.handlers:
        # Already configured; honour an explicit level change (e.g. --verbose)
        if level is not None:
            root.setLevel(_resolve_level(level))
        return
    logging.basicConfig(level=_resolve_level(level), format=fmt or DEFAULT_FORMAT)
    # botocore logs request signing details at DEBUG
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module/logger by name, after ensuring logging is configured."""
    setup_logging()
    return logging.getLogger(name) if name else logging.getLogger("krane")


def log_exception(logger: logging.Logger, message: str = "An error occurred", exc_info: Exception = None) -> None:
    """Centralized exception logging with full traceback.

    Args:
        logger: Logger instance to use
        message: Custom error message to log before the traceback
        exc_info: Exception instance (if None, uses current exception context)
    """
    logger.error(message)
    if exc_info is not None:
        logger.error(f"Exception type: {type(exc_info).__name__}")
        logger.error(f"Exception message: {str(exc_info)}")
    logger.error("Full traceback:")
    logger.error(traceback.format_exc())
