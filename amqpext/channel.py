"""AMQP Channels."""
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
import errno
import logging
import select
import socket
from time import monotonic
from typing import (
    TYPE_CHECKING, Any, Callable, MutableMapping, Optional, Type,
)

from vine import promise

from .envelope import Envelope
from .exceptions import (
    AMQPError, ChannelError, ConnectionError, classify, translate_errors,
)
from .utils import get_errno, get_logger

if TYPE_CHECKING:  # pragma: no cover
    from .connection import Connection
    from .queue import Queue

__all__ = ['Channel', 'DeliveryCallback']

logger: logging.Logger = get_logger(__name__)

#: ``callback(envelope, queue)``, returning :const:`False` stops consuming.
DeliveryCallback = Callable[[Envelope, 'Queue'], Optional[bool]]

_TIMEOUT_ERRNOS = frozenset({errno.EAGAIN, errno.EWOULDBLOCK, errno.EINTR})


def _is_timeout(exc: BaseException) -> bool:
    return isinstance(exc, socket.timeout) or (
        isinstance(exc, OSError) and get_errno(exc) in _TIMEOUT_ERRNOS)


class Channel:
    """A channel opened on a :class:`~amqpext.Connection`.

    The channel keeps a reference to the connection but never closes
    it.  It is bound to the broker session that was current when it was
    opened: once the connection is closed every operation raises
    :exc:`~amqpext.exceptions.ConnectionError`, and once the connection
    has been re-established (or the channel closed) every operation
    raises :exc:`~amqpext.exceptions.ChannelError`.

    All frame reading for the channel goes through :meth:`wait`, which
    both the blocking consume loop and the non-blocking :meth:`poll`
    build on.  Deliveries are dispatched to the callback of the
    subscribing queue, or to the channel's default handler (the first
    callback ever given to ``Queue.consume`` on this channel), or else
    buffered on the queue for ``Queue.get``.
    """

    #: Prefetch count applied when the channel is opened.
    DEFAULT_PREFETCH_COUNT = 3

    def __init__(self, connection: 'Connection') -> None:
        if not connection.is_connected():
            raise ConnectionError(
                'Could not create channel. No connection available.')
        self.connection = connection
        self._session = connection.session
        with translate_errors(ChannelError):
            self._handle = self._session.channel()
        self._closed = False

        #: consumer tag -> subscribed queue.
        self.subscriptions: MutableMapping[str, 'Queue'] = {}
        #: Handler for subscriptions registered without a callback.
        self.default_handler: DeliveryCallback = None
        self._stopped = False
        self._callback_exc: BaseException = None

        self._confirm_mode = False
        self._pending_confirm: promise = None
        self._on_ack: Callable = None
        self._on_nack: Callable = None
        self._on_return: Callable = None

        self._handle.events['basic_ack'].add(self._on_basic_ack)
        self._handle.events['basic_nack'].add(self._on_basic_nack)
        self._handle.events['basic_return'].add(self._on_basic_return)

        self.prefetch_size = 0
        self.prefetch_count = 0
        self.qos(0, self.DEFAULT_PREFETCH_COUNT)
        logger.debug('Opened channel %r on %r', self.channel_id, connection)

    def __enter__(self) -> 'Channel':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def handle(self) -> Any:
        """The underlying :class:`amqp.Channel`, if still usable."""
        if not self.connection.is_connected():
            raise ConnectionError('Connection to the broker is not open.')
        if self.connection.session is not self._session:
            raise ChannelError(
                'Channel belongs to a previous connection session.')
        if self._closed or not self._handle.is_open:
            raise ChannelError('Channel is not open.')
        return self._handle

    @property
    def channel_id(self) -> int:
        return self._handle.channel_id

    @property
    def subscription_count(self) -> int:
        """Number of consumers the engine still dispatches to."""
        return len(self._handle.callbacks or ())

    def is_connected(self) -> bool:
        try:
            self.handle
        except AMQPError:
            return False
        return True

    def close(self) -> None:
        """Close the channel, does nothing if it is already closed."""
        if self._closed:
            return
        self._closed = True
        for queue in list(self.subscriptions.values()):
            queue._on_cancelled()
        self.subscriptions.clear()
        if self.connection.session is self._session and \
                self.connection.is_connected():
            with translate_errors(ChannelError):
                self._handle.close()
        logger.debug('Closed channel %r', self.channel_id)

    def qos(self, prefetch_size: int, prefetch_count: int) -> bool:
        """Set the prefetch window of the channel."""
        with translate_errors(ChannelError):
            self.handle.basic_qos(prefetch_size, prefetch_count, False)
        self.prefetch_size = prefetch_size
        self.prefetch_count = prefetch_count
        return True

    def set_prefetch_count(self, count: int) -> bool:
        return self.qos(0, count)

    def set_prefetch_size(self, size: int) -> bool:
        return self.qos(size, 0)

    def start_transaction(self) -> bool:
        with translate_errors(ChannelError):
            self.handle.tx_select()
        return True

    def commit_transaction(self) -> bool:
        with translate_errors(ChannelError):
            self.handle.tx_commit()
        return True

    def rollback_transaction(self) -> bool:
        with translate_errors(ChannelError):
            self.handle.tx_rollback()
        return True

    def basic_recover(self, requeue: bool = True) -> bool:
        """Ask the broker to redeliver all unacknowledged messages."""
        with translate_errors(ChannelError):
            self.handle.basic_recover(requeue)
        return True

    def confirm_select(self) -> bool:
        """Put the channel in publisher confirm mode (once)."""
        if not self._confirm_mode:
            with translate_errors(ChannelError):
                self.handle.confirm_select()
            self._confirm_mode = True
        return True

    def set_confirm_callback(self,
                             on_ack: Callable = None,
                             on_nack: Callable = None) -> None:
        """Set ``callback(delivery_tag, multiple)`` for broker confirms."""
        self._on_ack = on_ack
        self._on_nack = on_nack

    def set_return_callback(self, callback: Callable = None) -> None:
        """Set ``callback(reply_code, reply_text, envelope)``.

        Called for messages published with the mandatory or immediate
        flag that the broker could not route.
        """
        self._on_return = callback

    def set_default_handler(self, callback: DeliveryCallback) -> bool:
        """Install the channel-wide delivery handler.

        The slot can only be filled once, later calls return
        :const:`False` and leave the first handler in place.
        """
        if self.default_handler is not None:
            return False
        self.default_handler = callback
        return True

    def subscribe(self,
                  queue: 'Queue',
                  consumer_tag: str = '',
                  auto_ack: bool = False) -> str:
        """Register a consumer for ``queue``, returns its consumer tag."""
        consumer_tag = self.handle.basic_consume(
            queue=queue.name,
            consumer_tag=consumer_tag or '',
            no_ack=auto_ack,
            callback=self._on_message,
            on_cancel=self._on_cancel,
        )
        self.subscriptions[consumer_tag] = queue
        logger.debug('Subscribed %r to queue %r on channel %r',
                     consumer_tag, queue.name, self.channel_id)
        return consumer_tag

    def unsubscribe(self, consumer_tag: str) -> None:
        self.handle.basic_cancel(consumer_tag)
        self.subscriptions.pop(consumer_tag, None)
        logger.debug('Cancelled %r on channel %r',
                     consumer_tag, self.channel_id)

    def wait(self,
             timeout: float = None,
             error_type: Type[AMQPError] = ChannelError) -> bool:
        """Read and dispatch the next method from the broker.

        Returns :const:`False` if nothing arrived within ``timeout``.
        Heartbeats are sent here when they are due.

        Exceptions raised by delivery callbacks propagate unchanged.
        """
        self.handle
        session = self._session
        try:
            session.drain_events(timeout=timeout)
        except Exception as exc:
            if exc is self._callback_exc:
                self._callback_exc = None
                raise
            if not _is_timeout(exc):
                raise classify(exc, error_type) from exc
            received = False
        else:
            received = True
        if session.heartbeat:
            with translate_errors(error_type):
                session.heartbeat_tick()
        return received

    def poll(self, error_type: Type[AMQPError] = ChannelError) -> int:
        """Process the frames already readable on the socket.

        Never blocks waiting for the broker: the socket is checked with
        a zero timeout and frames are only read while it is readable.
        Returns the number of methods dispatched.
        """
        processed = 0
        while self._readable():
            if not self.wait(self.connection.io_timeout, error_type):
                break
            processed += 1
        return processed

    def consume(self, error_type: Type[AMQPError] = ChannelError) -> None:
        """Dispatch deliveries until a callback stops consumption.

        Also returns when no consumer is left on the channel, for example
        after the last one was cancelled from within a callback.
        """
        self._stopped = False
        try:
            while not self._stopped and self.subscription_count:
                self.wait(self._tick_interval(), error_type)
        finally:
            # deliveries outside the loop are buffered
            self._stopped = True

    def publish(self,
                message: Any,
                exchange: str,
                routing_key: str = '',
                mandatory: bool = False,
                immediate: bool = False,
                confirm: bool = True,
                error_type: Type[AMQPError] = ChannelError) -> Optional[bool]:
        """Publish ``message``, waiting for the broker confirm if asked.

        Returns :const:`True` once the broker acknowledged the message,
        :const:`False` if it was rejected, and :const:`None` if no
        confirm arrived within the connection I/O timeout.  Without
        ``confirm`` it returns :const:`True` once the frames are sent.
        """
        if confirm:
            self.confirm_select()
        p = self._pending_confirm = promise() if confirm else None
        try:
            with translate_errors(error_type):
                self.handle.basic_publish(
                    message, exchange=exchange, routing_key=routing_key,
                    mandatory=mandatory, immediate=immediate,
                )
            if p is None:
                return True
            deadline = monotonic() + self.connection.io_timeout
            while not p.ready:
                remaining = deadline - monotonic()
                if remaining <= 0:
                    return None
                self.wait(remaining, error_type)
            args, _ = p.value
            return args[0]
        finally:
            self._pending_confirm = None

    def _readable(self) -> bool:
        self.handle
        sock = self._session.sock
        readable, _, _ = select.select([sock], [], [], 0)
        return bool(readable)

    def _tick_interval(self) -> Optional[float]:
        heartbeat = self._session.heartbeat
        if heartbeat:
            return heartbeat / 2.0
        return self.connection.io_timeout or None

    def _on_message(self, message: Any) -> None:
        envelope = Envelope.from_message(message)
        queue = self.subscriptions.get(envelope.consumer_tag)
        if queue is None:
            logger.warning(
                'Delivery %r for unknown consumer %r on channel %r',
                envelope.delivery_tag, envelope.consumer_tag,
                self.channel_id)
            return
        handler = queue.handler
        if handler is None and not queue.buffering:
            handler = self.default_handler
        if self._stopped or handler is None:
            queue.buffer(envelope)
            return
        try:
            result = handler(envelope, queue)
        except Exception as exc:
            self._callback_exc = exc
            raise
        if result is False:
            self._stopped = True

    def _on_cancel(self, consumer_tag: str) -> None:
        logger.debug('Consumer %r cancelled by broker', consumer_tag)
        queue = self.subscriptions.pop(consumer_tag, None)
        if queue is not None:
            queue._on_cancelled()

    def _on_basic_ack(self, delivery_tag: int, multiple: bool) -> None:
        if self._on_ack is not None:
            self._on_ack(delivery_tag, multiple)
        p = self._pending_confirm
        if p is not None and not p.ready:
            p(True)

    def _on_basic_nack(self, delivery_tag: int, multiple: bool) -> None:
        if self._on_nack is not None:
            self._on_nack(delivery_tag, multiple)
        p = self._pending_confirm
        if p is not None and not p.ready:
            p(False)

    def _on_basic_return(self,
                         exc: BaseException,
                         exchange: str,
                         routing_key: str,
                         message: Any) -> None:
        envelope = Envelope.from_message(message)._replace(
            exchange_name=exchange, routing_key=routing_key)
        reply_code = getattr(exc, 'reply_code', 0)
        reply_text = getattr(exc, 'reply_text', str(exc))
        if self._on_return is None:
            logger.warning(
                'Message returned by broker (%s %s), exchange=%r '
                'routing_key=%r', reply_code, reply_text,
                exchange, routing_key)
            return
        self._on_return(reply_code, reply_text, envelope)

    def __repr__(self) -> str:
        return '<{name} {0.channel_id} of {0.connection!r}>'.format(
            self, name=type(self).__name__)
