import socket
import struct
import time

import pytest

from ecmaster.nicdrv import (
    Port,
    RedundancyMode,
    RedundantPort,
    setup_header,
)
from ecmaster.types import (
    BUFSIZE,
    ETH_HEADERSIZE,
    ETH_P_ECAT,
    MAXBUF,
    NOFRAME,
    OTHERFRAME,
    PRIMARY_MAC,
    SECONDARY_MAC,
    BufState,
    Command,
    DatagramHeader,
    EtherHeader,
)


class _Wires:
    """Socket factory handing out one end of a datagram socket pair per call."""

    def __init__(self):
        self.far_ends = []
        self.near_ends = []

    def __call__(self, ifname):
        near, far = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
        self.near_ends.append(near)
        self.far_ends.append(far)
        return near

    def close(self):
        for sock in self.far_ends + self.near_ends:
            sock.close()


def make_frame(index, wkc, data=b"\x00\x00", source=PRIMARY_MAC, etype=ETH_P_ECAT):
    eth = EtherHeader(source=source, etype=etype).pack()
    header = DatagramHeader(
        elength=10 + len(data) + 2, command=Command.BRD, index=index, dlength=len(data)
    ).pack()
    return eth + header + data + wkc.to_bytes(2, "little")


@pytest.fixture
def wires():
    w = _Wires()
    yield w
    w.close()


@pytest.fixture
def port(wires):
    p = Port(socket_factory=wires)
    p.setup_nic("test0")
    return p


def prepare(port, idx, data=b"\x00\x00"):
    frame = make_frame(idx, 0, data)
    port.txbuf[idx][: len(frame)] = frame
    port.txbuflength[idx] = len(frame)
    return frame


def test_setup_header_writes_broadcast_ecat_header():
    buf = bytearray(BUFSIZE)
    setup_header(buf)
    assert buf[:6] == b"\xff" * 6
    assert buf[6:12] == b"\x01" * 6
    assert buf[12:14] == b"\x88\xa4"


def test_setup_nic_prepares_tx_headers(port):
    assert all(EtherHeader.unpack(buf).etype == ETH_P_ECAT for buf in port.txbuf)
    assert port.redstate == RedundancyMode.NONE
    assert all(stat == BufState.EMPTY for stat in port.rxbufstat)


def test_secondary_without_redport_raises(port):
    with pytest.raises(ValueError):
        port.setup_nic("test1", secondary=True)


def test_get_index_starts_after_last(port):
    assert port.get_index() == 1
    assert port.rxbufstat[1] == BufState.ALLOC
    assert port.lastidx == 1


def test_get_index_wraps_and_skips_busy(port):
    port.lastidx = MAXBUF - 1
    assert port.get_index() == 0
    port.lastidx = 1
    port.rxbufstat[2] = BufState.TX
    assert port.get_index() == 3


def test_get_index_gives_distinct_indices(port):
    indices = [port.get_index() for _ in range(MAXBUF)]
    assert sorted(indices) == list(range(MAXBUF))


def test_set_buf_stat_mirrors_redundant(wires):
    p = Port(redport=RedundantPort(), socket_factory=wires)
    p.setup_nic("a")
    p.setup_nic("b", secondary=True)
    p.set_buf_stat(4, BufState.RCVD)
    assert p.rxbufstat[4] == BufState.RCVD
    assert p.redport.rxbufstat[4] == BufState.RCVD


def test_out_frame_sends_bytes(port, wires):
    idx = port.get_index()
    frame = prepare(port, idx)
    sent = port.out_frame(idx, 0)
    assert sent == len(frame)
    assert port.rxbufstat[idx] == BufState.TX
    assert wires.far_ends[0].recv(BUFSIZE) == frame


def test_out_frame_failure_resets_status(port):
    idx = port.get_index()
    prepare(port, idx)
    port.sockhandle.close()
    assert port.out_frame(idx, 0) == -1
    assert port.rxbufstat[idx] == BufState.EMPTY


def test_in_frame_without_data_is_noframe(port):
    idx = port.get_index()
    assert port.in_frame(idx, 0) == NOFRAME


def test_in_frame_matching_returns_wkc(port, wires):
    idx = port.get_index()
    prepare(port, idx)
    port.out_frame(idx, 0)
    wires.far_ends[0].send(make_frame(idx, 5, source=SECONDARY_MAC))
    assert port.in_frame(idx, 0) == 5
    assert port.rxbufstat[idx] == BufState.COMPLETE
    assert port.rxsa[idx] == SECONDARY_MAC[1]
    assert port.stack.rxcnt == 1


def test_in_frame_out_of_order_is_stored(port, wires):
    a = port.get_index()
    b = port.get_index()
    prepare(port, a)
    prepare(port, b)
    port.out_frame(a, 0)
    port.out_frame(b, 0)
    wires.far_ends[0].send(make_frame(b, 7))
    assert port.in_frame(a, 0) == OTHERFRAME
    assert port.rxbufstat[b] == BufState.RCVD
    assert port.in_frame(b, 0) == 7
    assert port.rxbufstat[b] == BufState.COMPLETE


def test_in_frame_ignores_other_ethertype(port, wires):
    idx = port.get_index()
    prepare(port, idx)
    port.out_frame(idx, 0)
    wires.far_ends[0].send(make_frame(idx, 3, etype=0x0800))
    assert port.in_frame(idx, 0) == OTHERFRAME
    assert port.stack.rxcnt == 0
    assert port.rxbufstat[idx] == BufState.TX


def test_in_frame_rejects_bad_index(port):
    with pytest.raises(IndexError):
        port.in_frame(MAXBUF, 0)


def test_sr_confirm_returns_wkc(port, wires):
    idx = port.get_index()
    prepare(port, idx, b"\x12\x34")
    wires.far_ends[0].send(make_frame(idx, 2, b"\xab\xcd"))
    assert port.sr_confirm(idx, 20000) == 2
    assert port.rxbuf[idx][12:14] == b"\xab\xcd"


def test_sr_confirm_times_out(port):
    idx = port.get_index()
    prepare(port, idx)
    start = time.monotonic()
    assert port.sr_confirm(idx, 5000) == NOFRAME
    assert time.monotonic() - start < 1.0


def test_wait_in_frame_reads_reply(port, wires):
    idx = port.get_index()
    prepare(port, idx)
    port.out_frame(idx, 0)
    wires.far_ends[0].send(make_frame(idx, 4))
    assert port.wait_in_frame(idx, 20000) == 4


def test_out_frame_red_sends_dummy_on_secondary(wires):
    p = Port(redport=RedundantPort(), socket_factory=wires)
    p.setup_nic("a")
    p.setup_nic("b", secondary=True)
    assert p.redstate == RedundancyMode.DOUBLE
    idx = p.get_index()
    frame = prepare(p, idx)
    p.txbuflength2 = len(frame)
    p.out_frame_red(idx)
    primary = wires.far_ends[0].recv(BUFSIZE)
    secondary = wires.far_ends[1].recv(BUFSIZE)
    assert struct.unpack_from(">H", primary, 8)[0] == PRIMARY_MAC[1]
    assert struct.unpack_from(">H", secondary, 8)[0] == SECONDARY_MAC[1]
    assert DatagramHeader.unpack(secondary[ETH_HEADERSIZE:]).index == idx
    assert p.redport.rxbufstat[idx] == BufState.TX


def test_redundant_normal_route_uses_secondary_result(wires):
    p = Port(redport=RedundantPort(), socket_factory=wires)
    p.setup_nic("a")
    p.setup_nic("b", secondary=True)
    idx = p.get_index()
    prepare(p, idx)
    p.set_buf_stat(idx, BufState.TX)
    wires.far_ends[0].send(make_frame(idx, 1, b"\x01\x01", source=SECONDARY_MAC))
    wires.far_ends[1].send(make_frame(idx, 3, b"\x09\x09", source=PRIMARY_MAC))
    assert p.wait_in_frame(idx, 20000) == 3
    assert p.rxbuf[idx][12:14] == b"\x09\x09"


def test_redundant_broken_primary_resends_on_secondary(wires):
    p = Port(redport=RedundantPort(), socket_factory=wires)
    p.setup_nic("a")
    p.setup_nic("b", secondary=True)
    idx = p.get_index()
    frame = prepare(p, idx)
    p.set_buf_stat(idx, BufState.TX)
    wires.far_ends[1].send(make_frame(idx, 0, source=SECONDARY_MAC))
    wires.far_ends[1].send(make_frame(idx, 2, b"\x05\x06", source=SECONDARY_MAC))
    assert p.wait_in_frame(idx, 2000) == 2
    assert p.rxbuf[idx][12:14] == b"\x05\x06"
    assert wires.far_ends[1].recv(BUFSIZE) == frame


def test_close_nic_closes_sockets(port):
    port.close_nic()
    idx = port.get_index()
    prepare(port, idx)
    assert port.out_frame(idx, 0) == -1
    assert port.rxbufstat[idx] == BufState.EMPTY