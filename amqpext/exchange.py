"""AMQP Exchanges."""
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
from typing import Any, Mapping, MutableMapping, Union

import amqp

from .channel import Channel
from .exceptions import ExchangeError, translate_errors
from .flags import (
    EXCHANGE_TYPES, NOPARAM, ExchangeDeleteOptions, ExchangeOptions,
    PublishOptions, is_legal, to_options,
)
from .utils import get_logger

__all__ = ['Exchange']

logger: logging.Logger = get_logger(__name__)


class Exchange:
    """An exchange on a :class:`~amqpext.Channel`.

    Every failed operation raises
    :exc:`~amqpext.exceptions.ExchangeError`, or
    :exc:`~amqpext.exceptions.ConnectionError` when the connection
    to the broker is gone.
    """

    #: Message class used by :meth:`publish`.
    Message: type = amqp.Message

    def __init__(self, channel: Channel, name: str = '') -> None:
        self.channel = channel
        self.name = name
        self.arguments: MutableMapping[str, Any] = {}
        self._type: str = None
        self._flags = NOPARAM

        #: Wait for the broker to confirm every published message.
        self.publisher_confirms = True

    @property
    def connection(self) -> Any:
        return self.channel.connection

    @property
    def type(self) -> str:
        return self._type

    @property
    def flags(self) -> int:
        return self._flags

    def set_type(self, exchange_type: str) -> bool:
        """Set one of ``direct``, ``fanout``, ``topic`` or ``headers``."""
        if exchange_type not in EXCHANGE_TYPES:
            return False
        self._type = exchange_type
        return True

    def set_flags(self, flags: int) -> bool:
        """Set any of DURABLE, PASSIVE, AUTODELETE."""
        if flags is None:
            flags = NOPARAM
        if not is_legal(flags, ExchangeOptions):
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

    def declare(self) -> bool:
        """Declare the exchange on the broker."""
        if self._type is None:
            raise ExchangeError(
                'Could not declare exchange {0!r}: type not set.'.format(
                    self.name))
        options = to_options(self._flags, ExchangeOptions)
        with translate_errors(ExchangeError):
            self.channel.handle.exchange_declare(
                self.name, self._type,
                passive=options.passive,
                durable=options.durable,
                auto_delete=options.auto_delete,
                arguments=self.arguments,
            )
        logger.debug('Declared exchange %r (%s)', self.name, self._type)
        return True

    def bind(self,
             exchange_name: str,
             routing_key: str = '',
             arguments: Mapping[str, Any] = None) -> bool:
        """Bind this exchange to the source exchange ``exchange_name``."""
        with translate_errors(ExchangeError):
            self.channel.handle.exchange_bind(
                destination=self.name, source=exchange_name,
                routing_key=routing_key or '',
                arguments=dict(arguments or {}),
            )
        return True

    def unbind(self,
               exchange_name: str,
               routing_key: str = '',
               arguments: Mapping[str, Any] = None) -> bool:
        """Remove a binding made by :meth:`bind`."""
        with translate_errors(ExchangeError):
            self.channel.handle.exchange_unbind(
                destination=self.name, source=exchange_name,
                routing_key=routing_key or '',
                arguments=dict(arguments or {}),
            )
        return True

    def delete(self, exchange_name: str = None, flags: int = NOPARAM) -> bool:
        """Delete this exchange, or ``exchange_name``; accepts IFUNUSED."""
        options = to_options(flags, ExchangeDeleteOptions)
        if exchange_name is None:
            exchange_name = self.name
        with translate_errors(ExchangeError):
            self.channel.handle.exchange_delete(
                exchange_name, if_unused=options.if_unused)
        logger.debug('Deleted exchange %r', exchange_name)
        return True

    def publish(self,
                message: Union[bytes, str],
                routing_key: str = None,
                flags: int = NOPARAM,
                attributes: Mapping[str, Any] = None) -> bool:
        """Publish a message to the exchange.

        Arguments:
            message: Message body.
            routing_key: Defaults to the empty string.
            flags: Any of MANDATORY, IMMEDIATE.
            attributes: Message properties (``content_type``,
                ``delivery_mode``, ``headers``, ...).  ``headers`` is sent
                as the application headers table.

        With :attr:`publisher_confirms` enabled this only returns once
        the broker has confirmed the message; returned (unroutable)
        messages are passed to the channel's return callback first.
        """
        options = to_options(flags, PublishOptions)
        properties = dict(attributes or {})
        if 'headers' in properties:
            properties['application_headers'] = dict(
                properties.pop('headers') or {})
        msg = self.Message(message, **properties)
        confirmed = self.channel.publish(
            msg, self.name, routing_key or '',
            mandatory=options.mandatory,
            immediate=options.immediate,
            confirm=self.publisher_confirms,
            error_type=ExchangeError,
        )
        if confirmed is None:
            raise ExchangeError(
                'Timed out waiting for the broker to confirm a message '
                'published to {0!r}.'.format(self.name))
        if not confirmed:
            raise ExchangeError(
                'Message published to {0!r} was rejected by the '
                'broker.'.format(self.name))
        return True

    def __repr__(self) -> str:
        return '<{name} {0.name!r} ({0.type})>'.format(
            self, name=type(self).__name__)
