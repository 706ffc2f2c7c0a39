"""Ethernet over EtherCAT header fields, frame types and IP parameters."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import Optional, Union

from ecmaster.types import MAXMBX

#: size of the standard mailbox header in bytes
MAILBOX_HEADER_SIZE = 6
#: maximum EoE payload: mailbox minus mailbox header and both frame info words
MAXEOEDATA = MAXMBX - (MAILBOX_HEADER_SIZE + 2 + 2)

DNS_NAME_LENGTH = 32
ETHADDR_LENGTH = 6
IP4_LENGTH = 4
PARAM_OFFSET = 4

IPv4Like = Union[ipaddress.IPv4Address, str, int]


class EoEFrameType(IntEnum):
    FRAG_DATA = 0
    INIT_RESP_TIMESTAMP = 1
    INIT_REQ = 2
    INIT_RESP = 3
    SET_ADDR_FILTER_REQ = 4
    SET_ADDR_FILTER_RESP = 5
    GET_IP_PARAM_REQ = 6
    GET_IP_PARAM_RESP = 7
    GET_ADDR_FILTER_REQ = 8
    GET_ADDR_FILTER_RESP = 9


class EoEResult(IntEnum):
    SUCCESS = 0x0000
    UNSPECIFIED_ERROR = 0x0001
    UNSUPPORTED_FRAME_TYPE = 0x0002
    NO_IP_SUPPORT = 0x0201
    NO_DHCP_SUPPORT = 0x0202
    NO_FILTER_SUPPORT = 0x0401


class EoEParamFlag(IntFlag):
    MAC_INCLUDE = 1 << 0
    IP_INCLUDE = 1 << 1
    SUBNET_IP_INCLUDE = 1 << 2
    DEFAULT_GATEWAY_INCLUDE = 1 << 3
    DNS_IP_INCLUDE = 1 << 4
    DNS_NAME_INCLUDE = 1 << 5


@dataclass
class FrameInfo1:
    """First EoE header word: frame type, port and fragment flags."""

    frame_type: int = EoEFrameType.FRAG_DATA
    port: int = 0
    last_fragment: bool = False
    time_appended: bool = False
    time_requested: bool = False

    def encode(self) -> int:
        return (
            (self.frame_type & 0xF)
            | ((self.port & 0xF) << 4)
            | (int(self.last_fragment) & 0x1) << 8
            | (int(self.time_appended) & 0x1) << 9
            | (int(self.time_requested) & 0x1) << 10
        )

    @classmethod
    def decode(cls, value: int) -> "FrameInfo1":
        frame_type = value & 0xF
        try:
            frame_type = EoEFrameType(frame_type)
        except ValueError:
            pass
        return cls(
            frame_type=frame_type,
            port=(value >> 4) & 0xF,
            last_fragment=bool((value >> 8) & 0x1),
            time_appended=bool((value >> 9) & 0x1),
            time_requested=bool((value >> 10) & 0x1),
        )


@dataclass
class FrameInfo2:
    """Second EoE header word: fragment number, frame offset and frame number."""

    fragment_no: int = 0
    frame_offset: int = 0
    frame_no: int = 0

    def encode(self) -> int:
        return (
            (self.fragment_no & 0x3F)
            | ((self.frame_offset & 0x3F) << 6)
            | ((self.frame_no & 0xF) << 12)
        )

    @classmethod
    def decode(cls, value: int) -> "FrameInfo2":
        return cls(
            fragment_no=value & 0x3F,
            frame_offset=(value >> 6) & 0x3F,
            frame_no=(value >> 12) & 0xF,
        )


def _to_ip(value: Optional[IPv4Like]) -> Optional[ipaddress.IPv4Address]:
    if value is None:
        return None
    return ipaddress.IPv4Address(value)


@dataclass
class EoEParam:
    """IP parameters of an EoE port; a field left as None is not included."""

    mac: Optional[bytes] = None
    ip: Optional[IPv4Like] = None
    subnet: Optional[IPv4Like] = None
    default_gateway: Optional[IPv4Like] = None
    dns_ip: Optional[IPv4Like] = None
    dns_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.mac is not None:
            self.mac = bytes(self.mac)
            if len(self.mac) != ETHADDR_LENGTH:
                raise ValueError(f"MAC address must be {ETHADDR_LENGTH} bytes")
        self.ip = _to_ip(self.ip)
        self.subnet = _to_ip(self.subnet)
        self.default_gateway = _to_ip(self.default_gateway)
        self.dns_ip = _to_ip(self.dns_ip)
        if self.dns_name is not None and len(self.dns_name.encode()) > DNS_NAME_LENGTH:
            raise ValueError(f"DNS name longer than {DNS_NAME_LENGTH} bytes")

    def flags(self) -> EoEParamFlag:
        """Return the include flags for the fields that are set."""
        result = EoEParamFlag(0)
        for value, flag in (
            (self.mac, EoEParamFlag.MAC_INCLUDE),
            (self.ip, EoEParamFlag.IP_INCLUDE),
            (self.subnet, EoEParamFlag.SUBNET_IP_INCLUDE),
            (self.default_gateway, EoEParamFlag.DEFAULT_GATEWAY_INCLUDE),
            (self.dns_ip, EoEParamFlag.DNS_IP_INCLUDE),
            (self.dns_name, EoEParamFlag.DNS_NAME_INCLUDE),
        ):
            if value is not None:
                result |= flag
        return result


def make_u32(a: int, b: int, c: int, d: int) -> int:
    """Combine four bytes into a 32-bit value, ``a`` most significant."""
    return ((a & 0xFF) << 24) | ((b & 0xFF) << 16) | ((c & 0xFF) << 8) | (d & 0xFF)


def ip4_from_parts(a: int, b: int, c: int, d: int) -> ipaddress.IPv4Address:
    """Build the address a.b.c.d."""
    return ipaddress.IPv4Address(make_u32(a, b, c, d))


def ip4_parts(addr: IPv4Like) -> tuple[int, int, int, int]:
    """Split an address into its four bytes in network order."""
    a, b, c, d = ipaddress.IPv4Address(addr).packed
    return a, b, c, d