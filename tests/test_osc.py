"""
Tests for the OSC codec wrapper, validation helpers and statistics.
"""

import threading

import pytest
from pythonosc import osc_bundle_builder, osc_message_builder

from x32agent import osc
from x32agent.values import ParamType, coerce


class TestEncodeMessage:
    """Test encode_message() against python-osc's parser."""

    def test_bare_query_has_no_arguments(self):
        dgram = osc.encode_message("/ch/01/mix/on")
        assert osc.decode_datagram(dgram) == [("/ch/01/mix/on", [])]

    def test_int32_argument(self):
        dgram = osc.encode_message("/ch/15/gate/keysrc", coerce(ParamType.INT32, 59))
        assert b",i" in dgram
        assert osc.decode_datagram(dgram) == [("/ch/15/gate/keysrc", [59])]

    def test_float32_argument_survives_wire(self):
        value = coerce(ParamType.FLOAT32, 0.99999)
        dgram = osc.encode_message("/ch/15/gate/hold", value)
        assert b",f" in dgram
        (address, args), = osc.decode_datagram(dgram)
        assert coerce(ParamType.FLOAT32, args[0]) == value

    def test_float32_sent_as_float_even_for_integral_value(self):
        dgram = osc.encode_message("/config/mute/2", coerce(ParamType.FLOAT32, 0))
        assert b",f" in dgram

    def test_opaque_string_encoded_as_string(self):
        dgram = osc.encode_message("/ch/01/config/name", coerce(ParamType.OPAQUE, "Vox"))
        assert b",s" in dgram
        assert osc.decode_datagram(dgram) == [("/ch/01/config/name", ["Vox"])]

    def test_opaque_bytes_encoded_as_blob(self):
        dgram = osc.encode_message("/blob", coerce(ParamType.OPAQUE, b"\x00\x01"))
        assert b",b" in dgram

    def test_unencodable_value_raises_encode_error(self):
        with pytest.raises(osc.EncodeError):
            osc.encode_message("/x", coerce(ParamType.OPAQUE, object()))


class TestDecodeDatagram:
    """Test decode_datagram() failure handling and bundles."""

    def test_garbage_raises_decode_error(self):
        with pytest.raises(osc.DecodeError):
            osc.decode_datagram(b"not an osc packet")

    def test_empty_raises_decode_error(self):
        with pytest.raises(osc.DecodeError):
            osc.decode_datagram(b"")

    def test_truncated_message_raises_decode_error(self):
        builder = osc_message_builder.OscMessageBuilder(address="/ch/01/config/name")
        builder.add_arg("x" * 2000)
        dgram = builder.build().dgram
        with pytest.raises(osc.DecodeError):
            osc.decode_datagram(dgram[:osc.RECV_BUFFER_SIZE])

    def test_bundle_is_flattened(self):
        bundle = osc_bundle_builder.OscBundleBuilder(osc_bundle_builder.IMMEDIATELY)
        for address, arg in (("/ch/01/mix/on", 1), ("/ch/02/mix/on", 0)):
            msg = osc_message_builder.OscMessageBuilder(address=address)
            msg.add_arg(arg)
            bundle.add_content(msg.build())
        messages = osc.decode_datagram(bundle.build().dgram)
        assert sorted(messages) == [("/ch/01/mix/on", [1]), ("/ch/02/mix/on", [0])]


class TestValidation:
    """Test port and address validation."""

    def test_validate_port_accepts_range(self):
        osc.validate_port(1)
        osc.validate_port(osc.DEFAULT_MIXER_PORT)
        osc.validate_port(65535)

    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_validate_port_rejects_out_of_range(self, port):
        with pytest.raises(ValueError):
            osc.validate_port(port)

    def test_validate_address_accepts_path(self):
        osc.validate_address("/ch/01/mix/on")

    @pytest.mark.parametrize("address", ["ch/01", "", None, "/ch/01 on", 5])
    def test_validate_address_rejects_malformed(self, address):
        with pytest.raises(ValueError):
            osc.validate_address(address)


class TestMessageStatistics:
    """Test MessageStatistics counters."""

    def test_unknown_counter_is_zero(self):
        assert osc.MessageStatistics().get('sent') == 0

    def test_concurrent_increments(self):
        stats = osc.MessageStatistics()

        def work():
            for _ in range(1000):
                stats.increment('sent')

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert stats.get('sent') == 4000

    def test_summary_lists_counters_sorted(self):
        stats = osc.MessageStatistics()
        stats.increment('sent', 12)
        stats.increment('decode_errors', 3)
        assert stats.summary() == "decode_errors=3, sent=12"

    def test_summary_without_counts(self):
        assert osc.MessageStatistics().summary() == "no traffic"

    def test_reading_unknown_counter_does_not_create_it(self):
        stats = osc.MessageStatistics()
        stats.get('cascades')
        assert stats.snapshot() == {}
