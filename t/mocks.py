import itertools
import socket
from collections import defaultdict
from unittest.mock import Mock

import amqp


def mock_handle(channel_id=1):
    """Mock :class:`amqp.Channel` keeping track of its consumers."""
    handle = Mock(name='channel')
    handle.channel_id = channel_id
    handle.is_open = True
    handle.callbacks = {}
    handle.cancel_callbacks = {}
    handle.events = defaultdict(set)
    tags = itertools.count(1)

    def basic_consume(queue='', consumer_tag='', no_ack=False,
                      callback=None, on_cancel=None, **kwargs):
        consumer_tag = consumer_tag or 'amq.ctag-{0}'.format(next(tags))
        handle.callbacks[consumer_tag] = callback
        handle.cancel_callbacks[consumer_tag] = on_cancel
        return consumer_tag

    def basic_cancel(consumer_tag, **kwargs):
        handle.callbacks.pop(consumer_tag, None)

    handle.basic_consume.side_effect = basic_consume
    handle.basic_cancel.side_effect = basic_cancel
    return handle


def mock_session():
    """Mock :class:`amqp.Connection` with a single mock channel."""
    session = Mock(name='session')
    session.connected = True
    session.heartbeat = 0
    session.channel_max = 2047
    session.frame_max = 131072
    session.channels = {0: session}
    session.channel.return_value = mock_handle()
    return session


def message(body=b'', consumer_tag='amq.ctag-1', delivery_tag=1,
            redelivered=False, exchange='', routing_key='', **properties):
    """Wire message as delivered by py-amqp."""
    msg = amqp.Message(body, **properties)
    msg.delivery_info = {
        'consumer_tag': consumer_tag,
        'delivery_tag': delivery_tag,
        'redelivered': redelivered,
        'exchange': exchange,
        'routing_key': routing_key,
    }
    return msg


def deliver(session, *messages):
    """Make ``session.drain_events`` dispatch one message per call.

    Once all messages are dispatched every call times out.
    """
    pending = list(messages)
    handle = session.channel.return_value

    def drain_events(timeout=None):
        if not pending:
            raise socket.timeout()
        msg = pending.pop(0)
        handle.callbacks[msg.delivery_info['consumer_tag']](msg)

    session.drain_events.side_effect = drain_events
    return pending
