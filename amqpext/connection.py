"""AMQP Connections."""
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
import logging
import warnings
from typing import Any, Callable, Mapping, Optional

import amqp
from amqp import exceptions as engine

from .channel import Channel
from .exceptions import (
    AMQPDeprecationWarning, CONNECTION_FAILURES,
    ConnectionError, UnsupportedOperationError,
)
from .utils import get_logger

__all__ = ['Connection', 'DEFAULTS']

logger: logging.Logger = get_logger(__name__)

W_TIMEOUT_DEPRECATED = """\
Connection.{0}_timeout() is deprecated, use the read_timeout \
attribute instead.\
"""

#: Default connection options, overridden by the credentials mapping
#: and keyword arguments given to :class:`Connection`.
DEFAULTS: Mapping[str, Any] = {
    'host': 'localhost',
    'port': 5672,
    'vhost': '/',
    'login': '',
    'password': '',
    'connect_timeout': 3,
    'read_timeout': 3,
    'write_timeout': 3,
    'heartbeat': 0,
    'keepalive': False,
}


def _max_length(limit: int) -> Callable:

    def check(name: str, value: str) -> str:
        value = str(value)
        if len(value) > limit:
            raise ConnectionError(
                'Parameter {0!r} exceeds {1} characters limit.'.format(
                    name, limit))
        return value
    return check


def _port(name: str, value: Any) -> int:
    port = int(value)
    if not 1 <= port <= 65535:
        raise ConnectionError(
            'Parameter {0!r} must be between 1 and 65535.'.format(name))
    return port


def _non_negative(name: str, value: Any) -> float:
    if value is None or float(value) < 0:
        raise ConnectionError(
            'Parameter {0!r} must be greater than or equal to zero.'.format(
                name))
    return value


class setting:
    """Connection option validated on assignment."""

    def __init__(self, check: Callable) -> None:
        self.check = check

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, obj: Any, type: type = None) -> Any:
        if obj is None:
            return self
        return obj.__dict__[self.name]

    def __set__(self, obj: Any, value: Any) -> None:
        obj.__dict__[self.name] = self.check(self.name, value)


class Connection:
    """Transient connection to an AMQP broker.

    Options are taken from :data:`DEFAULTS`, then from the ``credentials``
    mapping, then from keyword arguments::

        conn = Connection({'host': 'rabbit', 'login': 'guest'},
                          password='guest')
        conn.connect()

    No network activity happens before :meth:`connect` is called.

    The broker session is owned by the connection: it exists exactly
    while the connection is open.  Read and write timeouts are stored
    separately but the session is given the larger of the two as its
    single I/O timeout (see :attr:`io_timeout`).
    """

    #: Protocol engine session class.
    Session: type = amqp.Connection

    #: Channel class returned by :meth:`channel`.
    Channel: type = Channel

    host = setting(_max_length(1024))
    port = setting(_port)
    vhost = setting(_max_length(128))
    login = setting(_max_length(128))
    password = setting(_max_length(128))
    connect_timeout = setting(_non_negative)
    read_timeout = setting(_non_negative)
    write_timeout = setting(_non_negative)
    heartbeat = setting(_non_negative)

    def __init__(self,
                 credentials: Mapping[str, Any] = None,
                 **options) -> None:
        config = dict(DEFAULTS)
        config.update(credentials or {})
        config.update(options)
        unknown = set(config) - set(DEFAULTS)
        if unknown:
            logger.debug('Ignoring unknown connection options: %r',
                         sorted(unknown))
        self._session: amqp.Connection = None
        self.host = config['host']
        self.port = config['port']
        self.vhost = config['vhost']
        self.login = config['login']
        self.password = config['password']
        self.connect_timeout = config['connect_timeout']
        self.read_timeout = config['read_timeout']
        self.write_timeout = config['write_timeout']
        self.heartbeat = config['heartbeat']
        self.keepalive: bool = bool(config['keepalive'])

    def __enter__(self) -> 'Connection':
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.disconnect()

    @property
    def io_timeout(self) -> float:
        """Combined read/write timeout handed to the broker session."""
        return max(self.read_timeout, self.write_timeout)

    @property
    def session(self) -> Optional[amqp.Connection]:
        """The underlying :class:`amqp.Connection` while connected."""
        return self._session

    def is_connected(self) -> bool:
        session = self._session
        return bool(session is not None and session.connected)

    def is_persistent(self) -> bool:
        return False

    def connect(self) -> bool:
        """Establish a transient connection with the broker.

        Does nothing if the connection is already open.

        Raises:
            ~amqpext.exceptions.ConnectionError: if the session could
                not be established; no partial session is kept.
        """
        if self.is_connected():
            return True
        stale, self._session = self._session, None
        if stale is not None:
            self._discard(stale)
        logger.debug('Connecting to %s:%s%s', self.host, self.port, self.vhost)
        session = None
        try:
            session = self.Session(
                host='{0}:{1}'.format(self.host, self.port),
                userid=self.login,
                password=self.password,
                virtual_host=self.vhost,
                login_method='AMQPLAIN',
                connect_timeout=self.connect_timeout,
                read_timeout=self.io_timeout,
                write_timeout=self.io_timeout,
                heartbeat=self.heartbeat,
            )
            session.connect()
        except Exception as exc:
            if session is not None:
                self._discard(session)
            raise ConnectionError(
                'Could not connect to {0}:{1}: {2}'.format(
                    self.host, self.port, exc),
                cause=exc) from exc
        self._session = session
        logger.debug('Connected to %s:%s%s', self.host, self.port, self.vhost)
        return True

    def disconnect(self) -> bool:
        """Close the transient connection.

        Closing a connection that is not open is a no-op and
        returns :const:`True`.  Returns :const:`False` if the broker
        did not acknowledge the close, the session is discarded
        in either case.
        """
        session, self._session = self._session, None
        if session is None:
            return True
        try:
            session.close()
        except CONNECTION_FAILURES + (engine.AMQPError,) as exc:
            logger.warning('Error while closing connection to %s:%s: %r',
                           self.host, self.port, exc)
            self._discard(session)
            return False
        logger.debug('Disconnected from %s:%s', self.host, self.port)
        return True

    def _discard(self, session: amqp.Connection) -> None:
        try:
            session.collect()
        except CONNECTION_FAILURES:
            pass  # connection already closed on the other end

    def reconnect(self) -> bool:
        """Close any open session and connect again.

        Returns :const:`False` if the new connection could not be
        established.
        """
        self.disconnect()
        try:
            return self.connect()
        except ConnectionError as exc:
            logger.warning('Reconnect to %s:%s failed: %s',
                           self.host, self.port, exc)
            return False

    def pconnect(self) -> bool:
        raise UnsupportedOperationError(
            'Persistent connections are not supported')

    def pdisconnect(self) -> bool:
        raise UnsupportedOperationError(
            'Persistent connections are not supported')

    def preconnect(self) -> bool:
        raise UnsupportedOperationError(
            'Persistent connections are not supported')

    def channel(self) -> Channel:
        """Open a new channel on this connection."""
        return self.Channel(self)

    @property
    def used_channels(self) -> int:
        """Number of channels open on the current session."""
        if not self.is_connected():
            return 0
        return sum(1 for channel_id in self._session.channels or {}
                   if channel_id)

    @property
    def max_channels(self) -> Optional[int]:
        if not self.is_connected():
            return None
        return self._session.channel_max

    @property
    def max_frame_size(self) -> Optional[int]:
        if not self.is_connected():
            return None
        return self._session.frame_max

    @property
    def heartbeat_interval(self) -> Optional[float]:
        """Heartbeat interval negotiated with the broker."""
        if not self.is_connected():
            return None
        return self._session.heartbeat

    def set_timeout(self, timeout: float) -> bool:
        warnings.warn(AMQPDeprecationWarning(
            W_TIMEOUT_DEPRECATED.format('set')))
        self.read_timeout = timeout
        return True

    def get_timeout(self) -> float:
        warnings.warn(AMQPDeprecationWarning(
            W_TIMEOUT_DEPRECATED.format('get')))
        return self.read_timeout

    def __repr__(self) -> str:
        return '<{name} {0.host}:{0.port}{0.vhost} {state}>'.format(
            self, name=type(self).__name__,
            state='connected' if self.is_connected() else 'disconnected')
