"""Slave-side records: FMMU and sync manager layouts, mailbox headers,
PDO mapping lists, EEPROM (SII) summaries and ENI start-up commands."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import Optional

from ecmaster.types import MAXEEPDO, MAXMBX, MAXSM

#: size of a mailbox buffer in bytes
MAILBOX_BUFFER_SIZE = MAXMBX + 1
#: mask that clears the sync manager enable bit
SMENABLEMASK = 0xFFFEFFFF
#: maximum number of entries in a PDO assign or description list
MAXPDOLIST = 256

_FMMU = struct.Struct("<IHBBHBBBBH")
_SM = struct.Struct("<HHI")
_STATE_STATUS = struct.Struct("<HHH")
_MAILBOX_HEADER = struct.Struct("<HHBB")
_LIST_HEADER = struct.Struct("<BB")


class MailboxProtocol(IntFlag):
    AOE = 0x0001
    EOE = 0x0002
    COE = 0x0004
    FOE = 0x0008
    SOE = 0x0010
    VOE = 0x0020


class CoEDetail(IntFlag):
    SDO = 0x01
    SDOINFO = 0x02
    PDOASSIGN = 0x04
    PDOCONFIG = 0x08
    UPLOAD = 0x10
    SDOCA = 0x20


class EsmTransition(IntFlag):
    IP = 0x0001
    PS = 0x0002
    PI = 0x0004
    SP = 0x0008
    SO = 0x0010
    SI = 0x0020
    OS = 0x0040
    OP = 0x0080
    OI = 0x0100
    IB = 0x0200
    BI = 0x0400
    II = 0x0800
    PP = 0x1000
    SS = 0x2000


class MailboxQueueState(IntEnum):
    NONE = 0
    REQ = 1
    FAIL = 2
    DONE = 3


class MailboxHandlerState(IntEnum):
    NONE = 0
    CYCLIC = 1
    LOST = 2


def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


def _pack(layout: struct.Struct, what: str, *values: int) -> bytes:
    try:
        return layout.pack(*values)
    except struct.error as exc:
        raise ValueError(f"{what}: {exc}") from None


@dataclass
class Fmmu:
    """Fieldbus memory management unit record as written to the slave."""

    log_start: int = 0
    log_length: int = 0
    log_startbit: int = 0
    log_endbit: int = 0
    phys_start: int = 0
    phys_startbit: int = 0
    fmmu_type: int = 0
    fmmu_active: int = 0
    unused1: int = 0
    unused2: int = 0

    SIZE = _FMMU.size

    def pack(self) -> bytes:
        return _pack(
            _FMMU, "FMMU",
            self.log_start, self.log_length, self.log_startbit, self.log_endbit,
            self.phys_start, self.phys_startbit, self.fmmu_type, self.fmmu_active,
            self.unused1, self.unused2,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "Fmmu":
        _require(data, _FMMU.size, "FMMU")
        return cls(*_FMMU.unpack_from(data))


@dataclass
class SyncManager:
    """Sync manager record: start address, length and flags."""

    start_addr: int = 0
    length: int = 0
    flags: int = 0

    SIZE = _SM.size

    def pack(self) -> bytes:
        return _pack(_SM, "sync manager", self.start_addr, self.length, self.flags)

    @classmethod
    def unpack(cls, data: bytes) -> "SyncManager":
        _require(data, _SM.size, "sync manager")
        return cls(*_SM.unpack_from(data))


@dataclass
class StateStatus:
    """AL status register block: state, a reserved word and the status code."""

    state: int = 0
    unused: int = 0
    al_status_code: int = 0

    SIZE = _STATE_STATUS.size

    def pack(self) -> bytes:
        return _pack(_STATE_STATUS, "state status", self.state, self.unused, self.al_status_code)

    @classmethod
    def unpack(cls, data: bytes) -> "StateStatus":
        _require(data, _STATE_STATUS.size, "state status")
        return cls(*_STATE_STATUS.unpack_from(data))


@dataclass
class MailboxHeader:
    """Standard EtherCAT mailbox header."""

    length: int = 0
    address: int = 0
    priority: int = 0
    mbxtype: int = 0

    SIZE = _MAILBOX_HEADER.size

    def pack(self) -> bytes:
        return _pack(
            _MAILBOX_HEADER, "mailbox header",
            self.length, self.address, self.priority, self.mbxtype,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "MailboxHeader":
        _require(data, _MAILBOX_HEADER.size, "mailbox header")
        return cls(*_MAILBOX_HEADER.unpack_from(data))


def _pack_list(what: str, fmt: str, entries: list[int], limit: int, reserved: int) -> bytes:
    if len(entries) > limit:
        raise ValueError(f"{what} holds at most {limit} entries, got {len(entries)}")
    header = _pack(_LIST_HEADER, what, len(entries), reserved)
    return header + _pack(struct.Struct(f"<{len(entries)}{fmt}"), what, *entries)


def _unpack_list(what: str, fmt: str, data: bytes, limit: int) -> tuple[list[int], int]:
    _require(data, _LIST_HEADER.size, what)
    count, reserved = _LIST_HEADER.unpack_from(data)
    if count > limit:
        raise ValueError(f"{what} holds at most {limit} entries, got {count}")
    layout = struct.Struct(f"<{count}{fmt}")
    _require(data, _LIST_HEADER.size + layout.size, what)
    return list(layout.unpack_from(data, _LIST_HEADER.size)), reserved


@dataclass
class SMCommType:
    """Sync manager communication types as read by complete access (0x1C00).

    Packing writes only the entries in use; unpacking ignores trailing bytes.
    """

    types: list[int] = field(default_factory=list)
    reserved: int = 0

    def pack(self) -> bytes:
        return _pack_list("SM comm type", "B", self.types, MAXSM, self.reserved)

    @classmethod
    def unpack(cls, data: bytes) -> "SMCommType":
        types, reserved = _unpack_list("SM comm type", "B", data, MAXSM)
        return cls(types, reserved)


@dataclass
class PDOAssign:
    """PDO assignment list (object indexes) as read by complete access."""

    indexes: list[int] = field(default_factory=list)
    reserved: int = 0

    def pack(self) -> bytes:
        return _pack_list("PDO assign", "H", self.indexes, MAXPDOLIST, self.reserved)

    @classmethod
    def unpack(cls, data: bytes) -> "PDOAssign":
        indexes, reserved = _unpack_list("PDO assign", "H", data, MAXPDOLIST)
        return cls(indexes, reserved)


@dataclass
class PDODesc:
    """PDO description list (mapping entries) as read by complete access."""

    entries: list[int] = field(default_factory=list)
    reserved: int = 0

    def pack(self) -> bytes:
        return _pack_list("PDO description", "I", self.entries, MAXPDOLIST, self.reserved)

    @classmethod
    def unpack(cls, data: bytes) -> "PDODesc":
        entries, reserved = _unpack_list("PDO description", "I", data, MAXPDOLIST)
        return cls(entries, reserved)


@dataclass
class EepromFmmu:
    """FMMU category read from the slave information interface."""

    startpos: int = 0
    n_fmmu: int = 0
    functions: list[int] = field(default_factory=lambda: [0, 0, 0, 0])


@dataclass
class EepromSM:
    """Sync manager category read from the slave information interface."""

    startpos: int = 0
    n_sm: int = 0
    ph_start: int = 0
    p_length: int = 0
    creg: int = 0
    sreg: int = 0
    activate: int = 0
    pdi_ctrl: int = 0


@dataclass
class EepromPDO:
    """RxPDO or TxPDO table read from the slave information interface."""

    startpos: int = 0
    length: int = 0
    n_pdo: int = 0
    index: list[int] = field(default_factory=list)
    sync_m: list[int] = field(default_factory=list)
    bit_size: list[int] = field(default_factory=list)
    sm_bitsize: list[int] = field(default_factory=lambda: [0] * MAXSM)

    def __post_init__(self) -> None:
        for name in ("index", "sync_m", "bit_size"):
            if len(getattr(self, name)) > MAXEEPDO:
                raise ValueError(f"{name} holds at most {MAXEEPDO} entries")
        if len(self.sm_bitsize) > MAXSM:
            raise ValueError(f"sm_bitsize holds at most {MAXSM} entries")


@dataclass
class EniCoECommand:
    """A CoE command from the network information, sent during transitions."""

    transition: EsmTransition = EsmTransition(0)
    ca: bool = False
    ccs: int = 0
    index: int = 0
    subidx: int = 0
    timeout: int = 0
    data: bytes = b""

    @property
    def data_size(self) -> int:
        return len(self.data)


@dataclass
class EniSlave:
    """Identity of a slave in the network information and its CoE commands."""

    slave: int = 0
    vendor_id: int = 0
    product_code: int = 0
    revision_no: int = 0
    coe_cmds: list[EniCoECommand] = field(default_factory=list)


@dataclass
class Eni:
    """Network information: the expected slaves."""

    slaves: list[EniSlave] = field(default_factory=list)

    def find_slave(self, slave: int) -> Optional[EniSlave]:
        """Return the entry for slave number ``slave``, or None."""
        return next((entry for entry in self.slaves if entry.slave == slave), None)