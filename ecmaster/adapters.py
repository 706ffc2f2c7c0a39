"""Byte-order helpers and discovery of network adapters."""

from __future__ import annotations

import socket
from dataclasses import dataclass

from ecmaster.types import MAXLEN_ADAPTERNAME


@dataclass(frozen=True)
class Adapter:
    """A network interface that a port can be opened on."""

    name: str
    desc: str


def htons(host: int) -> int:
    """Convert a 16-bit value from host to network (big endian) order.

    EtherCAT data is little endian; only the Ethernet header is big endian.
    """
    return socket.htons(host)


def ntohs(network: int) -> int:
    """Convert a 16-bit value from network (big endian) to host order."""
    return socket.ntohs(network)


def _truncate(name: str) -> str:
    return name[: MAXLEN_ADAPTERNAME - 1]


def find_adapters() -> list[Adapter]:
    """List the available network interfaces, in system order.

    On this platform the description is the interface name itself.
    """
    adapters = []
    for _index, name in socket.if_nameindex():
        label = _truncate(name) if name else ""
        adapters.append(Adapter(name=label, desc=label))
    return adapters