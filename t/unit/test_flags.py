import pytest

from amqpext import flags
from amqpext.exceptions import InvalidFlagsError
from amqpext.flags import (
    AUTOACK, AUTODELETE, DURABLE, EXCLUSIVE, IFEMPTY, IFUNUSED, IMMEDIATE,
    MANDATORY, MULTIPLE, NOPARAM, PASSIVE, REQUEUE, AckOptions,
    ConsumeOptions, ExchangeOptions, NackOptions, PublishOptions,
    QueueDeleteOptions, QueueOptions, is_legal, legal_mask, to_flags,
    to_options,
)


class test_constants:

    def test_distinct_bits(self):
        bits = [
            getattr(flags, name) for name in flags.__all__
            if name.isupper() and not name.startswith('EX_TYPE')
            and name not in ('NOPARAM', 'EXCHANGE_TYPES')
        ]
        assert len(bits) == 15
        for bit in bits:
            assert bit and not bit & (bit - 1)
        assert len(set(bits)) == len(bits)

    def test_exchange_types(self):
        assert flags.EXCHANGE_TYPES == {
            'direct', 'fanout', 'topic', 'headers'}


class test_legal_mask:

    @pytest.mark.parametrize('options_type,mask', [
        (ExchangeOptions, DURABLE | PASSIVE | AUTODELETE),
        (QueueOptions, DURABLE | PASSIVE | EXCLUSIVE | AUTODELETE),
        (ConsumeOptions, AUTOACK),
        (PublishOptions, MANDATORY | IMMEDIATE),
        (AckOptions, MULTIPLE),
        (NackOptions, REQUEUE | MULTIPLE),
        (QueueDeleteOptions, IFUNUSED | IFEMPTY),
    ])
    def test_mask(self, options_type, mask):
        assert legal_mask(options_type) == mask

    def test_is_legal(self):
        assert is_legal(NOPARAM, AckOptions)
        assert is_legal(MULTIPLE, AckOptions)
        assert not is_legal(MULTIPLE | REQUEUE, AckOptions)


class test_to_options:

    def test_translate(self):
        assert to_options(DURABLE | EXCLUSIVE, QueueOptions) == QueueOptions(
            durable=True, exclusive=True)

    def test_none(self):
        assert to_options(None, NackOptions) == NackOptions()

    def test_illegal(self):
        with pytest.raises(InvalidFlagsError) as excinfo:
            to_options(EXCLUSIVE, ExchangeOptions)
        assert isinstance(excinfo.value, ValueError)
        assert 'ExchangeOptions' in str(excinfo.value)

    def test_to_flags(self):
        assert to_flags(NackOptions(requeue=True)) == REQUEUE
        assert to_flags(QueueOptions()) == NOPARAM
        assert to_flags(to_options(
            PASSIVE | AUTODELETE, ExchangeOptions)) == PASSIVE | AUTODELETE
