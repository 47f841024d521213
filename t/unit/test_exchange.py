import socket
from unittest.mock import Mock, patch

import pytest
from amqp import exceptions as engine

from amqpext import (
    AUTOACK, DURABLE, EX_TYPE_FANOUT, EX_TYPE_TOPIC, EXCLUSIVE, IFUNUSED,
    MANDATORY, NOPARAM, PASSIVE, ChannelError, Connection, ConnectionError,
    Exchange, ExchangeError, InvalidFlagsError,
)

from t.mocks import message, mock_session


class test_Exchange:

    @pytest.fixture(autouse=True)
    def setup_exchange(self):
        self.session = mock_session()
        self.handle = self.session.channel.return_value
        self.conn = Connection()
        self.conn.Session = Mock(name='Session', return_value=self.session)
        self.conn.connect()
        self.channel = self.conn.channel()
        self.exchange = Exchange(self.channel, 'ex')

    def fire(self, event, *args):
        for callback in list(self.handle.events[event]):
            callback(*args)

    def confirm_on(self, event, frame=1, before=None):
        frames = []

        def drain_events(timeout=None):
            frames.append(timeout)
            if len(frames) == frame:
                if before is not None:
                    before()
                self.fire(event, 1, False)
        self.session.drain_events.side_effect = drain_events
        return frames

    def test_init(self):
        assert self.exchange.name == 'ex'
        assert self.exchange.type is None
        assert self.exchange.flags == NOPARAM
        assert self.exchange.connection is self.conn
        assert self.exchange.publisher_confirms

    def test_set_type(self):
        assert self.exchange.set_type(EX_TYPE_TOPIC) is True
        assert self.exchange.type == 'topic'
        assert self.exchange.set_type('x-delayed') is False
        assert self.exchange.type == 'topic'

    def test_set_flags(self):
        assert self.exchange.set_flags(DURABLE | PASSIVE) is True
        assert self.exchange.set_flags(DURABLE | EXCLUSIVE) is False
        assert self.exchange.flags == DURABLE | PASSIVE

    def test_set_name(self):
        self.exchange.set_name('other')
        assert self.exchange.name == 'other'

    def test_declare(self):
        self.exchange.set_type(EX_TYPE_TOPIC)
        self.exchange.set_flags(DURABLE)
        self.exchange.set_argument('alternate-exchange', 'ae')
        assert self.exchange.declare() is True
        self.handle.exchange_declare.assert_called_with(
            'ex', 'topic', passive=False, durable=True, auto_delete=False,
            arguments={'alternate-exchange': 'ae'},
        )

    def test_declare__no_type(self):
        with pytest.raises(ExchangeError):
            self.exchange.declare()
        self.handle.exchange_declare.assert_not_called()

    def test_declare__refused(self):
        exc = engine.PreconditionFailed(
            "inequivalent arg 'type' for exchange 'ex'")
        self.handle.exchange_declare.side_effect = exc
        self.exchange.set_type(EX_TYPE_FANOUT)
        with pytest.raises(ExchangeError) as excinfo:
            self.exchange.declare()
        assert excinfo.value.cause is exc
        assert excinfo.value.reply_code == 406
        assert 'inequivalent' in str(excinfo.value)

    def test_declare__connection_lost(self):
        self.handle.exchange_declare.side_effect = socket.error('reset')
        self.exchange.set_type(EX_TYPE_FANOUT)
        with pytest.raises(ConnectionError):
            self.exchange.declare()

    def test_declare__disconnected(self):
        self.conn.disconnect()
        self.exchange.set_type(EX_TYPE_FANOUT)
        with pytest.raises(ConnectionError):
            self.exchange.declare()

    def test_bind(self):
        assert self.exchange.bind('source', 'rk.#') is True
        self.handle.exchange_bind.assert_called_with(
            destination='ex', source='source', routing_key='rk.#',
            arguments={},
        )

    def test_unbind(self):
        assert self.exchange.unbind('source', arguments={'a': 1}) is True
        self.handle.exchange_unbind.assert_called_with(
            destination='ex', source='source', routing_key='',
            arguments={'a': 1},
        )

    def test_bind__refused(self):
        self.handle.exchange_bind.side_effect = engine.NotFound(
            "no exchange 'source'")
        with pytest.raises(ExchangeError):
            self.exchange.bind('source')

    def test_delete(self):
        assert self.exchange.delete(flags=IFUNUSED) is True
        self.handle.exchange_delete.assert_called_with('ex', if_unused=True)
        self.exchange.delete('other')
        self.handle.exchange_delete.assert_called_with(
            'other', if_unused=False)

    def test_delete__illegal_flags(self):
        with pytest.raises(InvalidFlagsError):
            self.exchange.delete(flags=DURABLE)

    def test_publish__without_confirms(self):
        self.exchange.publisher_confirms = False
        attributes = {'content_type': 'text/plain', 'headers': {'a': 1}}
        assert self.exchange.publish('hello', 'rk', MANDATORY,
                                     attributes) is True
        (msg,), kwargs = self.handle.basic_publish.call_args
        assert msg.body == 'hello'
        assert msg.properties['content_type'] == 'text/plain'
        assert msg.properties['application_headers'] == {'a': 1}
        assert kwargs == {
            'exchange': 'ex', 'routing_key': 'rk',
            'mandatory': True, 'immediate': False,
        }
        assert attributes == {'content_type': 'text/plain',
                              'headers': {'a': 1}}
        self.handle.confirm_select.assert_not_called()

    def test_publish__default_routing_key(self):
        self.exchange.publisher_confirms = False
        self.exchange.publish(b'x')
        _, kwargs = self.handle.basic_publish.call_args
        assert kwargs['routing_key'] == ''

    def test_publish__confirmed(self):
        frames = self.confirm_on('basic_ack', frame=3)
        assert self.exchange.publish(b'x', 'rk') is True
        self.handle.confirm_select.assert_called_once_with()
        assert len(frames) == 3

    def test_publish__nacked(self):
        self.confirm_on('basic_nack')
        with pytest.raises(ExchangeError):
            self.exchange.publish(b'x', 'rk')

    def test_publish__confirm_timeout(self):
        self.session.drain_events.side_effect = socket.timeout()
        with patch('amqpext.channel.monotonic') as monotonic:
            monotonic.side_effect = [0, 0, 10]
            with pytest.raises(ExchangeError):
                self.exchange.publish(b'x', 'rk')

    def test_publish__returned(self):
        on_return = Mock(name='on_return')
        self.channel.set_return_callback(on_return)
        self.confirm_on('basic_ack', before=lambda: self.fire(
            'basic_return', engine.ChannelError('NO_ROUTE', reply_code=312),
            'ex', 'nowhere', message(b'x')))
        assert self.exchange.publish(b'x', 'nowhere', MANDATORY) is True
        reply_code, _, envelope = on_return.call_args[0]
        assert reply_code == 312
        assert envelope.routing_key == 'nowhere'

    def test_publish__illegal_flags(self):
        with pytest.raises(InvalidFlagsError):
            self.exchange.publish(b'x', 'rk', AUTOACK)
        self.handle.basic_publish.assert_not_called()

    def test_publish__connection_lost(self):
        self.handle.basic_publish.side_effect = socket.error('broken pipe')
        with pytest.raises(ConnectionError):
            self.exchange.publish(b'x', 'rk')

    def test_publish__channel_closed(self):
        self.channel.close()
        with pytest.raises(ChannelError):
            self.exchange.publish(b'x', 'rk')

    def test_repr(self):
        self.exchange.set_type(EX_TYPE_FANOUT)
        assert repr(self.exchange) == "<Exchange 'ex' (fanout)>"
