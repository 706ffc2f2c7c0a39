import pytest

from ecmaster import types
from ecmaster.types import (
    Command,
    DatagramHeader,
    ErrorRecord,
    ErrorType,
    EtherHeader,
    Register,
    State,
    hi_byte,
    hi_word,
    lo_byte,
    lo_word,
    mbx_hdr_set_cnt,
    mk_word,
    swap,
)


def test_ether_header_default_wire_bytes():
    data = EtherHeader().pack()
    assert len(data) == types.ETH_HEADERSIZE
    assert data[:6] == b"\xff" * 6
    assert data[6:12] == b"\x01" * 6
    assert data[12:] == b"\x88\xa4"


def test_ether_header_round_trip():
    header = EtherHeader(source=types.SECONDARY_MAC, etype=0x0800)
    assert EtherHeader.unpack(header.pack()) == header


def test_ether_header_too_short():
    with pytest.raises(ValueError):
        EtherHeader.unpack(b"\x00" * 5)


def test_datagram_header_round_trip():
    header = DatagramHeader(elength=0x1234, command=Command.BRD, index=5,
                            adp=0x0001, ado=Register.ALSTAT, dlength=2, irpt=0)
    data = header.pack()
    assert len(data) == types.HEADERSIZE
    back = DatagramHeader.unpack(data)
    assert back == header
    assert back.command is Command.BRD


def test_datagram_header_is_little_endian():
    data = DatagramHeader(ado=Register.ALSTAT).pack()
    assert data[6] == lo_byte(Register.ALSTAT)
    assert data[7] == hi_byte(Register.ALSTAT)


def test_datagram_header_unpack_from_longer_buffer():
    header = DatagramHeader(elength=7, command=Command.LRW, index=3)
    assert DatagramHeader.unpack(header.pack() + b"\xaa\xbb") == header


def test_datagram_header_too_short():
    with pytest.raises(ValueError):
        DatagramHeader.unpack(b"\x00" * (types.HEADERSIZE - 1))


def test_ethertype_in_default_header():
    assert EtherHeader.unpack(EtherHeader().pack()).etype == 0x88A4


def test_state_aliases():
    assert State(0x10) is State.ACK
    assert State(0x10) is State.ERROR
    assert State(State.INIT | State.PRE_OP) is State.BOOT


def test_commands_are_consecutive():
    assert [Command(i) for i in range(15)] == list(Command)


@pytest.mark.parametrize("cnt", range(1, 8))
def test_mbx_counter_in_upper_nibble(cnt):
    value = mbx_hdr_set_cnt(cnt)
    assert value >> 4 == cnt
    assert value & 0x0F == 0


@pytest.mark.parametrize("w", [0x0000, 0x00FF, 0x1234, 0xFF00, 0xFFFF])
def test_word_helpers(w):
    assert mk_word(hi_byte(w), lo_byte(w)) == w
    assert swap(swap(w)) == w
    assert hi_byte(swap(w)) == lo_byte(w)


@pytest.mark.parametrize("value", [0, 0x0001FFFF, 0xDEADBEEF, 0xFFFFFFFF])
def test_dword_helpers(value):
    assert (hi_word(value) << 16) | lo_word(value) == value


def test_error_record_defaults():
    rec = ErrorRecord(slave=3, etype=ErrorType.EMERGENCY, error_code=0x8130)
    assert rec.signal is False
    assert rec.slave == 3
    assert rec.etype is ErrorType.EMERGENCY
    assert rec.abort_code == 0