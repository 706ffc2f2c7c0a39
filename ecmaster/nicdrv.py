"""Raw-socket frame layer: sends EtherCAT frames and matches the answers.

The master sends every frame and every frame comes back. Each frame carries
an index in its datagram header; received frames are stored in the buffer of
that index, which also copes with frames that return out of order. In
redundant mode a second interface is driven as well, and the route a frame
took is read from the middle word of its source MAC address.
"""

from __future__ import annotations

import select
import socket
import struct
import threading
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Callable, Optional

from ecmaster.osal import Timer
from ecmaster.types import (
    BUFSIZE,
    ETH_HEADERSIZE,
    ETH_P_ECAT,
    MAXBUF,
    NOFRAME,
    OTHERFRAME,
    PRIMARY_MAC,
    SECONDARY_MAC,
    TIMEOUTRET,
    BufState,
    EtherHeader,
)

#: second MAC word identifies the route a frame took
RX_PRIM = PRIMARY_MAC[1]
RX_SEC = SECONDARY_MAC[1]

#: offset of the source MAC middle word in the Ethernet header
_SA1_OFFSET = 8
#: offset of the ethertype in the Ethernet header
_ETYPE_OFFSET = 12
#: offset of the index byte of the first datagram in a frame
_INDEX_OFFSET = ETH_HEADERSIZE + 3

#: time spent in one poll of the sockets, in seconds
_POLL_INTERVAL = 50e-6

_IFNAMSIZ = 16
_SIOCGIFFLAGS = 0x8913
_SIOCSIFFLAGS = 0x8914
_IFF_BROADCAST = 0x2
_IFF_PROMISC = 0x100
_IFREQ_FLAGS = struct.Struct("16sH14x")

SocketFactory = Callable[[str], Any]


class RedundancyMode(IntEnum):
    NONE = 0
    DOUBLE = 1


def _buffers() -> list[bytearray]:
    return [bytearray(BUFSIZE) for _ in range(MAXBUF)]


def _empty_status() -> list[BufState]:
    return [BufState.EMPTY] * MAXBUF


@dataclass
class Stack:
    """The socket and buffers one side (primary or secondary) works with."""

    txbuf: list[bytearray]
    txbuflength: list[int]
    tempbuf: bytearray
    rxbuf: list[bytearray]
    rxbufstat: list[BufState]
    rxsa: list[int]
    sock: Any = None
    rxcnt: int = 0


@dataclass
class RedundantPort:
    """Receive buffers and socket of the secondary interface."""

    sockhandle: Any = None
    rxbuf: list[bytearray] = field(default_factory=_buffers)
    rxbufstat: list[BufState] = field(default_factory=_empty_status)
    rxsa: list[int] = field(default_factory=lambda: [0] * MAXBUF)
    tempinbuf: bytearray = field(default_factory=lambda: bytearray(BUFSIZE))
    stack: Optional[Stack] = None


def setup_header(buf: bytearray) -> None:
    """Write the Ethernet header: broadcast destination, primary source, EtherCAT type."""
    buf[0:ETH_HEADERSIZE] = EtherHeader().pack()


def open_raw_socket(ifname: str) -> socket.socket:
    """Open a raw EtherCAT socket bound to ``ifname`` in promiscuous mode."""
    if not hasattr(socket, "AF_PACKET"):
        raise OSError("raw packet sockets are not available on this platform")
    import fcntl

    sock = socket.socket(socket.AF_PACKET, socket.SOCK_RAW, socket.htons(ETH_P_ECAT))
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_DONTROUTE, 1)
        name = ifname.encode()[: _IFNAMSIZ - 1]
        reply = fcntl.ioctl(sock.fileno(), _SIOCGIFFLAGS, _IFREQ_FLAGS.pack(name, 0))
        flags = _IFREQ_FLAGS.unpack(reply)[1]
        flags = (flags | _IFF_PROMISC | _IFF_BROADCAST) & 0xFFFF
        fcntl.ioctl(sock.fileno(), _SIOCSIFFLAGS, _IFREQ_FLAGS.pack(name, flags))
        sock.bind((ifname, ETH_P_ECAT))
    except OSError:
        sock.close()
        raise
    return sock


def _read_wkc(buf: bytearray, length: int) -> int:
    return buf[length] | (buf[length + 1] << 8)


class Port:
    """A network port with its frame buffers, optionally with a redundant port."""

    def __init__(
        self,
        redport: Optional[RedundantPort] = None,
        socket_factory: Optional[SocketFactory] = None,
    ) -> None:
        self.socket_factory: SocketFactory = socket_factory or open_raw_socket
        self.sockhandle: Any = None
        self.rxbuf = _buffers()
        self.rxbufstat = _empty_status()
        self.rxsa = [0] * MAXBUF
        self.tempinbuf = bytearray(BUFSIZE)
        self.tempinbufs = 0
        self.txbuf = _buffers()
        self.txbuflength = [0] * MAXBUF
        self.txbuf2 = bytearray(BUFSIZE)
        self.txbuflength2 = 0
        self.lastidx = 0
        self.redstate = RedundancyMode.NONE
        self.redport = redport
        self.getindex_mutex = threading.Lock()
        self.tx_mutex = threading.Lock()
        self.rx_mutex = threading.Lock()
        self.stack = Stack(
            txbuf=self.txbuf,
            txbuflength=self.txbuflength,
            tempbuf=self.tempinbuf,
            rxbuf=self.rxbuf,
            rxbufstat=self.rxbufstat,
            rxsa=self.rxsa,
        )

    # -- set-up -----------------------------------------------------------

    def setup_nic(self, ifname: str, secondary: bool = False) -> None:
        """Open the socket for ``ifname`` on the primary or the secondary side.

        Opening the secondary side switches the port to redundant mode.
        """
        if secondary:
            red = self.redport
            if red is None:
                raise ValueError("no redundant port to open a secondary interface on")
            red.sockhandle = None
            self.redstate = RedundancyMode.DOUBLE
            red.rxbufstat[:] = _empty_status()
            red.stack = Stack(
                txbuf=self.txbuf,
                txbuflength=self.txbuflength,
                tempbuf=red.tempinbuf,
                rxbuf=red.rxbuf,
                rxbufstat=red.rxbufstat,
                rxsa=red.rxsa,
            )
            sock = self.socket_factory(ifname)
            red.sockhandle = sock
            red.stack.sock = sock
        else:
            self.sockhandle = None
            self.lastidx = 0
            self.redstate = RedundancyMode.NONE
            sock = self.socket_factory(ifname)
            self.sockhandle = sock
            self.stack.sock = sock
        for buf in self.txbuf:
            setup_header(buf)
        self.rxbufstat[:] = _empty_status()
        setup_header(self.txbuf2)

    def close_nic(self) -> None:
        """Close the sockets of both sides."""
        if self.sockhandle is not None:
            self.sockhandle.close()
        if self.redport is not None and self.redport.sockhandle is not None:
            self.redport.sockhandle.close()

    # -- buffer bookkeeping ----------------------------------------------

    def get_index(self) -> int:
        """Allocate a frame index, preferring the one after the last used."""
        with self.getindex_mutex:
            idx = self.lastidx + 1
            if idx >= MAXBUF:
                idx = 0
            tried = 0
            while self.rxbufstat[idx] != BufState.EMPTY and tried < MAXBUF:
                idx += 1
                tried += 1
                if idx >= MAXBUF:
                    idx = 0
            self.rxbufstat[idx] = BufState.ALLOC
            if self.redstate != RedundancyMode.NONE and self.redport is not None:
                self.redport.rxbufstat[idx] = BufState.ALLOC
            self.lastidx = idx
            return idx

    def set_buf_stat(self, idx: int, bufstat: BufState) -> None:
        """Set the receive status of buffer ``idx`` on both sides."""
        self.rxbufstat[idx] = BufState(bufstat)
        if self.redstate != RedundancyMode.NONE and self.redport is not None:
            self.redport.rxbufstat[idx] = BufState(bufstat)

    def _stack(self, stacknumber: int) -> Stack:
        if not stacknumber:
            return self.stack
        if self.redport is None or self.redport.stack is None:
            raise ValueError("secondary stack is not set up")
        return self.redport.stack

    @staticmethod
    def _check_index(idx: int) -> None:
        if not 0 <= idx < MAXBUF:
            raise IndexError(f"frame index {idx} out of range 0..{MAXBUF - 1}")

    def _rx_copy_length(self, idx: int) -> int:
        return max(0, min(self.txbuflength[idx] - ETH_HEADERSIZE, BUFSIZE - ETH_HEADERSIZE))

    # -- transmit ---------------------------------------------------------

    def out_frame(self, idx: int, stacknumber: int = 0) -> int:
        """Send tx buffer ``idx`` on one side; returns the bytes sent or -1."""
        self._check_index(idx)
        stack = self._stack(stacknumber)
        length = stack.txbuflength[idx]
        stack.rxbufstat[idx] = BufState.TX
        try:
            return stack.sock.send(bytes(stack.txbuf[idx][:length]))
        except (OSError, AttributeError):
            stack.rxbufstat[idx] = BufState.EMPTY
            return -1

    def out_frame_red(self, idx: int) -> int:
        """Send frame ``idx`` on the primary side and, if redundant, a dummy on the secondary."""
        self._check_index(idx)
        struct.pack_into(">H", self.txbuf[idx], _SA1_OFFSET, PRIMARY_MAC[1])
        rval = self.out_frame(idx, 0)
        red = self.redport
        if self.redstate != RedundancyMode.NONE and red is not None:
            with self.tx_mutex:
                self.txbuf2[_INDEX_OFFSET] = idx
                struct.pack_into(">H", self.txbuf2, _SA1_OFFSET, SECONDARY_MAC[1])
                red.rxbufstat[idx] = BufState.TX
                try:
                    red.sockhandle.send(bytes(self.txbuf2[: self.txbuflength2]))
                except (OSError, AttributeError):
                    red.rxbufstat[idx] = BufState.EMPTY
        return rval

    # -- receive ----------------------------------------------------------

    def _recv_packet(self, stack: Stack) -> bool:
        try:
            received = stack.sock.recv_into(stack.tempbuf, len(stack.tempbuf), socket.MSG_DONTWAIT)
        except (BlockingIOError, InterruptedError):
            received = 0
        except (OSError, AttributeError):
            received = -1
        self.tempinbufs = received
        return received > 0

    def _take_received(self, stack: Stack, idx: int) -> int:
        buf = stack.rxbuf[idx]
        length = buf[0] | ((buf[1] & 0x0F) << 8)
        stack.rxbufstat[idx] = BufState.COMPLETE
        return _read_wkc(buf, length)

    def in_frame(self, idx: int, stacknumber: int = 0) -> int:
        """Non-blocking receive of frame ``idx``.

        Returns the working counter when the frame is in, otherwise NOFRAME
        (nothing read) or OTHERFRAME (some other frame read and stored).
        """
        self._check_index(idx)
        stack = self._stack(stacknumber)
        if stack.rxbufstat[idx] == BufState.RCVD:
            return self._take_received(stack, idx)
        with self.rx_mutex:
            if stack.rxbufstat[idx] == BufState.RCVD:
                return self._take_received(stack, idx)
            if not self._recv_packet(stack):
                return NOFRAME
            temp = stack.tempbuf
            etype = struct.unpack_from(">H", temp, _ETYPE_OFFSET)[0]
            if etype != ETH_P_ECAT:
                return OTHERFRAME
            stack.rxcnt += 1
            length = struct.unpack_from("<H", temp, ETH_HEADERSIZE)[0] & 0x0FFF
            idxf = temp[_INDEX_OFFSET]
            source = struct.unpack_from(">H", temp, _SA1_OFFSET)[0]
            if length + 2 > BUFSIZE:
                return OTHERFRAME
            if idxf == idx:
                n = self._rx_copy_length(idx)
                stack.rxbuf[idx][:n] = temp[ETH_HEADERSIZE:ETH_HEADERSIZE + n]
                stack.rxbufstat[idx] = BufState.COMPLETE
                stack.rxsa[idx] = source
                return _read_wkc(stack.rxbuf[idx], length)
            if idxf < MAXBUF and stack.rxbufstat[idxf] == BufState.TX:
                n = self._rx_copy_length(idxf)
                stack.rxbuf[idxf][:n] = temp[ETH_HEADERSIZE:ETH_HEADERSIZE + n]
                stack.rxbufstat[idxf] = BufState.RCVD
                stack.rxsa[idxf] = source
            return OTHERFRAME

    def _poll(self) -> bool:
        socks = [self.sockhandle]
        if self.redstate != RedundancyMode.NONE and self.redport is not None:
            socks.append(self.redport.sockhandle)
        socks = [sock for sock in socks if sock is not None]
        if not socks:
            return False
        try:
            select.select(socks, [], [], _POLL_INTERVAL)
        except (OSError, ValueError):
            return False
        return True

    def _wait_in_frame_red(self, idx: int, timer: Timer) -> int:
        redundant = self.redstate != RedundancyMode.NONE and self.redport is not None
        wkc = NOFRAME
        wkc2 = NOFRAME if redundant else 0
        while True:
            if self._poll():
                if wkc <= NOFRAME:
                    wkc = self.in_frame(idx, 0)
                if redundant and wkc2 <= NOFRAME:
                    wkc2 = self.in_frame(idx, 1)
            if not ((wkc <= NOFRAME or wkc2 <= NOFRAME) and not timer.is_expired()):
                break
        if not redundant:
            return wkc

        red = self.redport
        n = self._rx_copy_length(idx)
        primrx = self.rxsa[idx] if wkc > NOFRAME else 0
        secrx = red.rxsa[idx] if wkc2 > NOFRAME else 0

        if primrx == RX_SEC and secrx == RX_PRIM:
            self.rxbuf[idx][:n] = red.rxbuf[idx][:n]
            wkc = wkc2
        if (primrx == 0 and secrx == RX_SEC) or (primrx == RX_PRIM and secrx == RX_SEC):
            if primrx == RX_PRIM and secrx == RX_SEC:
                self.txbuf[idx][ETH_HEADERSIZE:ETH_HEADERSIZE + n] = self.rxbuf[idx][:n]
            resend_timer = Timer()
            resend_timer.start(TIMEOUTRET)
            self.out_frame(idx, 1)
            while True:
                wkc2 = self.in_frame(idx, 1)
                if not (wkc2 <= NOFRAME and not resend_timer.is_expired()):
                    break
            if wkc2 > NOFRAME:
                self.rxbuf[idx][:n] = red.rxbuf[idx][:n]
                wkc = wkc2
        return wkc

    def wait_in_frame(self, idx: int, timeout: int) -> int:
        """Wait up to ``timeout`` microseconds for frame ``idx``; returns WKC or NOFRAME."""
        self._check_index(idx)
        timer = Timer()
        timer.start(timeout)
        return self._wait_in_frame_red(idx, timer)

    def sr_confirm(self, idx: int, timeout: int) -> int:
        """Send frame ``idx`` and wait for it, resending until ``timeout`` microseconds pass."""
        self._check_index(idx)
        timer = Timer()
        timer.start(timeout)
        while True:
            self.out_frame_red(idx)
            read_timer = Timer()
            read_timer.start(min(timeout, TIMEOUTRET))
            wkc = self._wait_in_frame_red(idx, read_timer)
            if not (wkc <= NOFRAME and not timer.is_expired()):
                return wkc