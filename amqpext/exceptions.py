"""Exceptions used by amqpext."""
# Copyright (C) 2007-2008 Barry Pederson <bp@barryp.org>
#
# This library is free software; you can redistribute it and/or
# modify it under the terms of the GNU Lesser General Public
# License as published by the Free Software Foundation; either
# version 2.1 of the License, or (at your option) any later version.
#
# This library is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# License along with this library; if not, write to the Free Software
# Foundation, Inc., 51 Franklin Street, Fifth Floor, Boston, MA  02110-1301
from contextlib import contextmanager
from typing import Any, Iterator, Tuple, Type

from amqp import exceptions as engine

__all__ = [
    'AMQPError',
    'ConnectionError', 'ChannelError',
    'ExchangeError', 'QueueError', 'EnvelopeError',
    'UnsupportedOperationError', 'InvalidFlagsError',
    'AMQPDeprecationWarning',
    'CONNECTION_FAILURES', 'is_connection_failure', 'classify',
    'translate_errors',
]

#: Engine exceptions meaning the transport session is gone.
CONNECTION_FAILURES: Tuple[type, ...] = (
    engine.ConnectionError,
    OSError,
)


class AMQPDeprecationWarning(UserWarning):
    """Warning for deprecated things."""


class AMQPError(Exception):
    """Base class for all amqpext exceptions.

    The engine exception that caused the error, if any, is kept
    in :attr:`cause`; its reply code and text are copied over
    so callers never have to look at engine types.
    """

    code = 0

    def __init__(self,
                 reply_text: str = None,
                 cause: BaseException = None,
                 reply_code: int = None) -> None:
        if reply_text is None and cause is not None:
            reply_text = getattr(cause, 'reply_text', None) or str(cause)
        if reply_code is None and cause is not None:
            reply_code = getattr(cause, 'reply_code', None)
        self.message = reply_text
        self.reply_text = reply_text
        self.reply_code = reply_code or self.code
        self.cause = cause
        Exception.__init__(self, reply_text)

    def __str__(self) -> str:
        if self.reply_code:
            return '({0.reply_code}) {0.reply_text}'.format(self)
        return self.reply_text or '<{0}: unknown error>'.format(
            type(self).__name__)


class ConnectionError(AMQPError):
    """The connection to the broker is not open or was lost."""


class ChannelError(AMQPError):
    """Operation attempted on a closed or stale channel."""


class ExchangeError(AMQPError):
    """Exchange operation rejected by the broker."""


class QueueError(AMQPError):
    """Queue operation rejected by the broker."""


class EnvelopeError(AMQPError):
    """Malformed envelope.

    Reserved: :meth:`~amqpext.Envelope.from_message` never raises it.
    """


class UnsupportedOperationError(AMQPError, NotImplementedError):
    """Operation not supported by this client (persistent connections)."""


class InvalidFlagsError(AMQPError, ValueError):
    """Flag bits outside the legal set of an operation."""


def is_connection_failure(exc: BaseException) -> bool:
    """Return true if ``exc`` means the underlying connection is gone."""
    if isinstance(exc, ConnectionError):
        return True
    if isinstance(exc, AMQPError):
        return False
    return isinstance(exc, CONNECTION_FAILURES)


def classify(exc: BaseException, default: Type[AMQPError]) -> AMQPError:
    """Wrap an engine exception into a :class:`ConnectionError` or ``default``.

    Exceptions that already belong to this package are returned as-is.
    """
    if isinstance(exc, AMQPError):
        return exc
    if is_connection_failure(exc):
        return ConnectionError(cause=exc)
    return default(cause=exc)


@contextmanager
def translate_errors(default: Type[AMQPError]) -> Iterator[Any]:
    """Reraise engine errors raised in the block as amqpext errors."""
    try:
        yield
    except AMQPError:
        raise
    except Exception as exc:
        raise classify(exc, default) from exc
