"""Synchronous entity API (connection, exchange, queue) on top of py-amqp."""
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
import re
from typing import NamedTuple

__version__ = '1.0.0'
__author__ = 'Barry Pederson'
__maintainer__ = 'Ask Solem'
__contact__ = 'pyamqp@celeryproject.org'
__homepage__ = 'http://github.com/celery/py-amqp'
__docformat__ = 'restructuredtext'

# -eof meta-

from .channel import Channel            # noqa: F401
from .connection import Connection      # noqa: F401
from .envelope import Envelope          # noqa: F401
from .exchange import Exchange          # noqa: F401
from .queue import Queue, QueueState    # noqa: F401
from .exceptions import (               # noqa: F401
    AMQPError,
    ConnectionError,
    ChannelError,
    ExchangeError,
    QueueError,
    EnvelopeError,
    UnsupportedOperationError,
    InvalidFlagsError,
    AMQPDeprecationWarning,
)
from .flags import (                    # noqa: F401
    NOPARAM, JUST_CONSUME, DURABLE, PASSIVE, EXCLUSIVE, AUTODELETE,
    INTERNAL, NOLOCAL, AUTOACK, IFEMPTY, IFUNUSED, MANDATORY, IMMEDIATE,
    MULTIPLE, NOWAIT, REQUEUE,
    EX_TYPE_DIRECT, EX_TYPE_FANOUT, EX_TYPE_TOPIC, EX_TYPE_HEADERS,
)

__all__ = [
    'Connection',
    'Channel',
    'Exchange',
    'Queue',
    'QueueState',
    'Envelope',
    'AMQPError',
    'ConnectionError',
    'ChannelError',
    'ExchangeError',
    'QueueError',
    'EnvelopeError',
    'UnsupportedOperationError',
    'InvalidFlagsError',
    'AMQPDeprecationWarning',
    'NOPARAM', 'JUST_CONSUME', 'DURABLE', 'PASSIVE', 'EXCLUSIVE',
    'AUTODELETE', 'INTERNAL', 'NOLOCAL', 'AUTOACK', 'IFEMPTY', 'IFUNUSED',
    'MANDATORY', 'IMMEDIATE', 'MULTIPLE', 'NOWAIT', 'REQUEUE',
    'EX_TYPE_DIRECT', 'EX_TYPE_FANOUT', 'EX_TYPE_TOPIC', 'EX_TYPE_HEADERS',
    'version_info_t',
]


class version_info_t(NamedTuple):
    major: int
    minor: int
    micro: int
    releaselevel: str
    serial: str


# bumpversion can only search for {current_version}
# so we have to parse the version here.
_temp = re.match(
    r'(\d+)\.(\d+).(\d+)(.+)?', __version__).groups()
VERSION = version_info = version_info_t(
    int(_temp[0]), int(_temp[1]), int(_temp[2]), _temp[3] or '', '')
del(_temp)
del(re)
