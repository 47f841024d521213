"""AMQP Queues."""
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
import enum
import logging
from collections import deque
from typing import Any, Deque, Mapping, MutableMapping, Optional

from .channel import Channel, DeliveryCallback
from .envelope import Envelope
from .exceptions import QueueError, translate_errors
from .flags import (
    NOPARAM, AckOptions, ConsumeOptions, NackOptions, QueueDeleteOptions,
    QueueOptions, RejectOptions, is_legal, to_options,
)
from .utils import get_logger

__all__ = ['Queue', 'QueueState']

logger: logging.Logger = get_logger(__name__)


class QueueState(enum.Enum):
    """Consumer state of a :class:`Queue`."""

    #: No consumer registered with the broker.
    IDLE = 'idle'

    #: A consumer tag is registered with the broker.
    SUBSCRIBED = 'subscribed'


class Queue:
    """A queue on a :class:`~amqpext.Channel`.

    Declaration, binding and acknowledgement methods report broker
    refusals as :const:`False` (or ``0`` for counts) and log them, but
    always raise :exc:`~amqpext.exceptions.ConnectionError` when the
    connection is gone.

    Consuming state::

        IDLE --consume()/get()--> SUBSCRIBED --cancel()--> IDLE

    :meth:`get` subscribes lazily the first time it is called and
    keeps using that subscription afterwards.
    """

    def __init__(self, channel: Channel, name: str = '') -> None:
        self.channel = channel
        self.name = name
        self.arguments: MutableMapping[str, Any] = {}
        self._flags = NOPARAM
        self.state = QueueState.IDLE
        self.consumer_tag: str = None

        #: Callback for this queue's deliveries, if consume() was given one.
        self.handler: DeliveryCallback = None

        #: Set when subscribed by get(): deliveries always go to the buffer.
        self.buffering = False
        self._messages: Deque[Envelope] = deque()

    @property
    def connection(self) -> Any:
        return self.channel.connection

    @property
    def consuming(self) -> bool:
        return self.state is QueueState.SUBSCRIBED

    @property
    def flags(self) -> int:
        return self._flags

    def set_flags(self, flags: int) -> bool:
        """Set any of DURABLE, PASSIVE, EXCLUSIVE, AUTODELETE."""
        if flags is None:
            flags = NOPARAM
        if not is_legal(flags, QueueOptions):
            return False
        self._flags = flags
        return True

    def set_name(self, name: str) -> bool:
        self.name = name
        return True

    def get_argument(self, key: str, default: Any = None) -> Any:
        return self.arguments.get(key, default)

    def set_argument(self, key: str, value: Any) -> bool:
        self.arguments[key] = value
        return True

    def set_arguments(self, arguments: Mapping[str, Any]) -> bool:
        self.arguments = dict(arguments)
        return True

    def declare(self) -> int:
        """Declare the queue, returns the number of messages in it.

        If the queue has no name the broker generated name is stored.
        Returns ``0`` if the broker refused the declaration.
        """
        options = to_options(self._flags, QueueOptions)
        try:
            with translate_errors(QueueError):
                ok = self.channel.handle.queue_declare(
                    queue=self.name,
                    passive=options.passive,
                    durable=options.durable,
                    exclusive=options.exclusive,
                    auto_delete=options.auto_delete,
                    arguments=self.arguments,
                )
        except QueueError as exc:
            logger.warning('Declaring queue %r failed: %s', self.name, exc)
            return 0
        if not self.name:
            self.name = ok.queue
        return ok.message_count

    def delete(self, flags: int = NOPARAM) -> int:
        """Delete the queue, returns the number of messages deleted.

        Accepts IFUNUSED and IFEMPTY.
        """
        options = to_options(flags, QueueDeleteOptions)
        try:
            with translate_errors(QueueError):
                count = self.channel.handle.queue_delete(
                    queue=self.name,
                    if_unused=options.if_unused,
                    if_empty=options.if_empty,
                )
        except QueueError as exc:
            logger.warning('Deleting queue %r failed: %s', self.name, exc)
            return 0
        return count or 0

    def bind(self,
             exchange_name: str,
             routing_key: str = '',
             arguments: Mapping[str, Any] = None) -> bool:
        return self._call(
            'queue_bind', queue=self.name, exchange=exchange_name,
            routing_key=routing_key or '', arguments=dict(arguments or {}),
        )

    def unbind(self,
               exchange_name: str,
               routing_key: str = '',
               arguments: Mapping[str, Any] = None) -> bool:
        return self._call(
            'queue_unbind', queue=self.name, exchange=exchange_name,
            routing_key=routing_key or '', arguments=dict(arguments or {}),
        )

    def purge(self) -> bool:
        return self._call('queue_purge', queue=self.name)

    def ack(self, delivery_tag: Any, flags: int = NOPARAM) -> bool:
        """Acknowledge a delivery, accepts MULTIPLE.

        Only valid for messages received without AUTOACK, acknowledging
        an auto-acked delivery is a protocol error on the broker side.
        """
        options = to_options(flags, AckOptions)
        return self._call(
            'basic_ack', delivery_tag, multiple=options.multiple)

    def nack(self, delivery_tag: Any, flags: int = NOPARAM) -> bool:
        """Negatively acknowledge a delivery, accepts REQUEUE and MULTIPLE.

        Same restrictions as :meth:`ack`.
        """
        options = to_options(flags, NackOptions)
        return self._call(
            'basic_nack', delivery_tag,
            multiple=options.multiple, requeue=options.requeue)

    def reject(self, delivery_tag: Any, flags: int = NOPARAM) -> bool:
        """Reject a delivery, accepts REQUEUE.

        Same restrictions as :meth:`ack`.
        """
        options = to_options(flags, RejectOptions)
        return self._call(
            'basic_reject', delivery_tag, requeue=options.requeue)

    def consume(self,
                callback: DeliveryCallback = None,
                flags: int = NOPARAM,
                consumer_tag: str = None) -> None:
        """Subscribe to the queue and process deliveries.

        ``callback(envelope, queue)`` is called for every delivery on
        the channel, not only for this queue, unless the delivering
        queue has a callback of its own.  Only a return value of exactly
        :const:`False` makes this method return early; other falsy values
        such as :const:`None` keep consuming.  Otherwise it returns once
        no consumer is left on the channel, or when the callback raises.
        Deliveries arriving after that are buffered for :meth:`get`.

        Without a callback the consumer is only registered, its
        deliveries go to the first callback that was used to consume
        on this channel.

        Accepts AUTOACK.  An existing subscription is reused as-is.
        """
        options = to_options(flags, ConsumeOptions)
        self._subscribe(options, consumer_tag)
        if callback is None:
            return
        self.handler = callback
        self.buffering = False
        self.channel.set_default_handler(callback)
        while self._messages:
            if callback(self._messages.popleft(), self) is False:
                return
        self.channel.consume(QueueError)

    def get(self, flags: int = NOPARAM) -> Optional[Envelope]:
        """Return the next delivered message, or :const:`None`.

        Never waits for the broker: frames already readable on the
        socket are processed, then the oldest buffered message is
        returned.  The first call registers a consumer for the queue
        (accepts AUTOACK), which later calls reuse.
        """
        options = to_options(flags, ConsumeOptions)
        if self.state is QueueState.IDLE:
            self._subscribe(options, buffering=True)
        self.channel.poll(QueueError)
        if self._messages:
            return self._messages.popleft()
        return None

    def cancel(self, consumer_tag: str = '') -> bool:
        """Cancel a consumer, this queue's own by default.

        Does nothing when the queue is not subscribed.
        """
        consumer_tag = consumer_tag or self.consumer_tag
        if not consumer_tag:
            return True
        queue = self.channel.subscriptions.get(consumer_tag, self)
        try:
            with translate_errors(QueueError):
                self.channel.unsubscribe(consumer_tag)
        except QueueError as exc:
            logger.warning('Cancelling %r failed: %s', consumer_tag, exc)
            return False
        if queue.consumer_tag == consumer_tag:
            queue._on_cancelled()
        return True

    def buffer(self, envelope: Envelope) -> None:
        self._messages.append(envelope)

    def _subscribe(self,
                   options: ConsumeOptions,
                   consumer_tag: str = None,
                   buffering: bool = False) -> str:
        if self.state is QueueState.SUBSCRIBED:
            return self.consumer_tag
        with translate_errors(QueueError):
            consumer_tag = self.channel.subscribe(
                self, consumer_tag, auto_ack=options.auto_ack)
        self.buffering = buffering
        self._transition(QueueState.SUBSCRIBED, consumer_tag)
        return consumer_tag

    def _on_cancelled(self) -> None:
        self._transition(QueueState.IDLE)

    def _transition(self, state: QueueState, consumer_tag: str = None) -> None:
        logger.debug('Queue %r: %s -> %s (%r)',
                     self.name, self.state.value, state.value, consumer_tag)
        self.state = state
        self.consumer_tag = consumer_tag
        if state is QueueState.IDLE:
            self.handler = None
            self.buffering = False

    def _call(self, method: str, *args, **kwargs) -> bool:
        try:
            with translate_errors(QueueError):
                getattr(self.channel.handle, method)(*args, **kwargs)
        except QueueError as exc:
            logger.warning('%s on queue %r failed: %s', method, self.name, exc)
            return False
        return True

    def __repr__(self) -> str:
        return '<{name} {0.name!r} {0.state.value}>'.format(
            self, name=type(self).__name__)
