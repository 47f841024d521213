"""Option flags.

Every operation accepts its options as an integer bitmask, using the
same bit values as the PHP AMQP extension.  The bitmask is translated
into a small named tuple of booleans right at the API boundary, and
bits that are not legal for the operation are refused before anything
is translated.
"""
from functools import reduce
from operator import or_
from typing import Any, FrozenSet, Mapping, NamedTuple, Type

from .exceptions import InvalidFlagsError

__all__ = [
    'NOPARAM', 'JUST_CONSUME', 'DURABLE', 'PASSIVE', 'EXCLUSIVE',
    'AUTODELETE', 'INTERNAL', 'NOLOCAL', 'AUTOACK', 'IFEMPTY', 'IFUNUSED',
    'MANDATORY', 'IMMEDIATE', 'MULTIPLE', 'NOWAIT', 'REQUEUE',
    'EX_TYPE_DIRECT', 'EX_TYPE_FANOUT', 'EX_TYPE_TOPIC', 'EX_TYPE_HEADERS',
    'EXCHANGE_TYPES',
    'ExchangeOptions', 'QueueOptions', 'ConsumeOptions', 'PublishOptions',
    'AckOptions', 'NackOptions', 'RejectOptions',
    'ExchangeDeleteOptions', 'QueueDeleteOptions',
    'legal_mask', 'is_legal', 'to_options', 'to_flags',
]

NOPARAM = 0
JUST_CONSUME = 1
DURABLE = 2
PASSIVE = 4
EXCLUSIVE = 8
AUTODELETE = 16
INTERNAL = 32
NOLOCAL = 64
AUTOACK = 128
IFEMPTY = 256
IFUNUSED = 512
MANDATORY = 1024
IMMEDIATE = 2048
MULTIPLE = 4096
NOWAIT = 8192
REQUEUE = 16384

EX_TYPE_DIRECT = 'direct'
EX_TYPE_FANOUT = 'fanout'
EX_TYPE_TOPIC = 'topic'
EX_TYPE_HEADERS = 'headers'

EXCHANGE_TYPES: FrozenSet[str] = frozenset({
    EX_TYPE_DIRECT, EX_TYPE_FANOUT, EX_TYPE_TOPIC, EX_TYPE_HEADERS,
})


class ExchangeOptions(NamedTuple):
    durable: bool = False
    passive: bool = False
    auto_delete: bool = False

    bits = {'durable': DURABLE, 'passive': PASSIVE,
            'auto_delete': AUTODELETE}


class QueueOptions(NamedTuple):
    durable: bool = False
    passive: bool = False
    exclusive: bool = False
    auto_delete: bool = False

    bits = {'durable': DURABLE, 'passive': PASSIVE,
            'exclusive': EXCLUSIVE, 'auto_delete': AUTODELETE}


class ConsumeOptions(NamedTuple):
    auto_ack: bool = False

    bits = {'auto_ack': AUTOACK}


class PublishOptions(NamedTuple):
    mandatory: bool = False
    immediate: bool = False

    bits = {'mandatory': MANDATORY, 'immediate': IMMEDIATE}


class AckOptions(NamedTuple):
    multiple: bool = False

    bits = {'multiple': MULTIPLE}


class NackOptions(NamedTuple):
    requeue: bool = False
    multiple: bool = False

    bits = {'requeue': REQUEUE, 'multiple': MULTIPLE}


class RejectOptions(NamedTuple):
    requeue: bool = False

    bits = {'requeue': REQUEUE}


class ExchangeDeleteOptions(NamedTuple):
    if_unused: bool = False

    bits = {'if_unused': IFUNUSED}


class QueueDeleteOptions(NamedTuple):
    if_unused: bool = False
    if_empty: bool = False

    bits = {'if_unused': IFUNUSED, 'if_empty': IFEMPTY}


def _bits(options_type: Type) -> Mapping[str, int]:
    return options_type.bits


def legal_mask(options_type: Type) -> int:
    """Return the union of all bits legal for ``options_type``."""
    return reduce(or_, _bits(options_type).values(), NOPARAM)


def is_legal(flags: int, options_type: Type) -> bool:
    return not int(flags) & ~legal_mask(options_type)


def to_options(flags: int, options_type: Type) -> Any:
    """Translate a bitmask into an ``options_type`` instance.

    Raises:
        ~amqpext.exceptions.InvalidFlagsError: if ``flags`` has bits
            set that are not legal for ``options_type``.
    """
    if flags is None:
        flags = NOPARAM
    if not is_legal(flags, options_type):
        raise InvalidFlagsError(
            'Flags {0:#x} not legal for {1}, allowed: {2:#x}'.format(
                int(flags), options_type.__name__,
                legal_mask(options_type)))
    return options_type(**{
        field: bool(flags & bit)
        for field, bit in _bits(options_type).items()
    })


def to_flags(options: Any) -> int:
    """Reverse of :func:`to_options`."""
    return reduce(or_, (
        bit for field, bit in _bits(type(options)).items()
        if getattr(options, field)
    ), NOPARAM)
