"""Compatibility utilities."""
import logging
from typing import Any, AnyStr, Mapping, Union, cast

__all__ = ['get_errno', 'want_str', 'flatten_table', 'get_logger']


def get_errno(exc: Any) -> int:
    """Get exception errno (if set)."""
    try:
        return exc.errno or 0
    except AttributeError:
        try:
            # e.args = (errno, reason)
            if isinstance(exc.args, tuple) and len(exc.args) == 2:
                return exc.args[0]
        except AttributeError:
            pass
    return 0


def want_str(s: AnyStr) -> str:
    if isinstance(s, bytes):
        return cast(bytes, s).decode('utf-8', 'surrogatepass')
    return s


def flatten_table(table: Any) -> Mapping[str, Any]:
    """Convert an AMQP field table into a plain ``str``-keyed dict.

    Nested tables are converted recursively, ``None`` gives an empty dict.
    """
    if not table:
        return {}
    return {
        want_str(key): flatten_table(value) if isinstance(value, dict)
        else value
        for key, value in dict(table).items()
    }


def get_logger(logger: Union[logging.Logger, str] = None) -> logging.Logger:
    """Get logger by name."""
    if isinstance(logger, str):
        logger = logging.getLogger(logger)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger
