"""Delivered messages."""
import calendar
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, NamedTuple

from .utils import flatten_table

__all__ = ['Envelope']

#: Message property name -> default when absent from the wire.
PROPERTY_DEFAULTS: Mapping[str, Any] = {
    'app_id': '',
    'content_encoding': '',
    'content_type': '',
    'correlation_id': '',
    'delivery_mode': 0,
    'expiration': '',
    'message_id': '',
    'priority': 0,
    'reply_to': '',
    'timestamp': 0,
    'type': '',
    'user_id': '',
}

#: Delivery info key -> envelope field.
DELIVERY_INFO_FIELDS: Mapping[str, str] = {
    'delivery_tag': 'delivery_tag',
    'consumer_tag': 'consumer_tag',
    'exchange': 'exchange_name',
    'routing_key': 'routing_key',
    'redelivered': 'redelivered',
}


def _timestamp(value: Any) -> int:
    if isinstance(value, datetime):
        return calendar.timegm(value.utctimetuple())
    return value


class Envelope(NamedTuple):
    """Snapshot of a delivered message.

    Every attribute has a default (empty string, ``0``, ``False`` or an
    empty dict) used when the attribute was not sent by the broker.

    The delivery tag is only meaningful on the channel the message was
    delivered on, and only until that channel is closed.
    """

    body: bytes = b''
    delivery_tag: Any = ''
    consumer_tag: str = ''
    exchange_name: str = ''
    routing_key: str = ''
    redelivered: bool = False
    headers: Mapping[str, Any] = MappingProxyType({})
    app_id: str = ''
    content_encoding: str = ''
    content_type: str = ''
    correlation_id: str = ''
    delivery_mode: int = 0
    expiration: str = ''
    message_id: str = ''
    priority: int = 0
    reply_to: str = ''
    timestamp: int = 0
    type: str = ''
    user_id: str = ''

    @classmethod
    def from_message(cls, message: Any) -> 'Envelope':
        """Build an envelope from a :class:`amqp.Message`.

        Never raises for missing attributes: anything absent,
        or sent as ``None``, takes its default.
        """
        properties = getattr(message, 'properties', None) or {}
        delivery_info = getattr(message, 'delivery_info', None) or {}
        fields = {
            name: properties[name]
            for name in PROPERTY_DEFAULTS
            if properties.get(name) is not None
        }
        for key, name in DELIVERY_INFO_FIELDS.items():
            value = delivery_info.get(key)
            if value is not None:
                fields[name] = value
        if 'timestamp' in fields:
            fields['timestamp'] = _timestamp(fields['timestamp'])
        body = getattr(message, 'body', None)
        return cls(
            body=body if body is not None else b'',
            headers=flatten_table(properties.get('application_headers')),
            **fields)

    def get_header(self, key: str, default: Any = None) -> Any:
        return self.headers.get(key, default)

    def has_header(self, key: str) -> bool:
        return key in self.headers

    @property
    def is_redelivery(self) -> bool:
        return bool(self.redelivered)
