"""Core EtherCAT types, protocol constants and wire header layouts."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

# Build-time options

#: standard frame buffer size in bytes
MAXECATFRAME = 1518
BUFSIZE = MAXECATFRAME
#: number of frame buffers per channel (tx, rx1, rx2)
MAXBUF = 16
MAXEEPBITMAP = 128
MAXEEPBUF = MAXEEPBITMAP << 5
LOGGROUPOFFSET = 16
MAXELIST = 64
MAXNAME = 40
MAXSLAVE = 200
MAXGROUP = 2
MAXIOSEGMENTS = 64
MAXMBX = 1486
MBXPOOLSIZE = 32
MAXEEPDO = 0x200
MAXSM = 8
MAXFMMU = 4
MAXLEN_ADAPTERNAME = 128
MAX_MAPT = 1
MAXODLIST = 1024
MAXOELIST = 256
SOE_MAXNAME = 60
SOE_MAXMAPPING = 64

# Timeouts in microseconds
TIMEOUTRET = 2000
TIMEOUTRET3 = TIMEOUTRET * 3
TIMEOUTSAFE = 20000
TIMEOUTEEP = 20000
TIMEOUTTXM = 20000
TIMEOUTRXM = 700000
TIMEOUTSTATE = 2000000
DEFAULTRETRIES = 3

#: Source MAC words used to tell the primary route from the secondary one.
PRIMARY_MAC = (0x0101, 0x0101, 0x0101)
SECONDARY_MAC = (0x0404, 0x0404, 0x0404)

# Return values of the frame layer
NOFRAME = -1
OTHERFRAME = -2
ERROR = -3
SLAVECOUNTEXCEEDED = -4
TIMEOUT = -5

FIRSTDCDATAGRAM = 20
ECATTYPE = 0x1000
#: MTU - Ethernet header - length - datagram header - WKC - FCS
MAXLRWDATA = MAXECATFRAME - 14 - 2 - 10 - 2 - 4

ETH_P_ECAT = 0x88A4

_ETHER_HEADER = struct.Struct(">7H")
_DATAGRAM_HEADER = struct.Struct("<HBBHHHH")

ETH_HEADERSIZE = _ETHER_HEADER.size
HEADERSIZE = _DATAGRAM_HEADER.size
ELENGTHSIZE = 2
CMDOFFSET = ELENGTHSIZE
WKCSIZE = 2
DATAGRAMFOLLOWS = 1 << 15

# EEPROM state machine flags
ESTAT_R64 = 0x0040
ESTAT_BUSY = 0x8000
ESTAT_EMASK = 0x7800
ESTAT_NACK = 0x2000

#: start address of SII sections in EEPROM
SII_START = 0x0040

SDO_SMCOMMTYPE = 0x1C00
SDO_PDOASSIGN = 0x1C10
SDO_RXPDOASSIGN = 0x1C12
SDO_TXPDOASSIGN = 0x1C13


class Err(IntEnum):
    OK = 0
    ALREADY_INITIALIZED = 1
    NOT_INITIALIZED = 2
    TIMEOUT = 3
    NO_SLAVES = 4
    NOK = 5


class State(IntEnum):
    NONE = 0x00
    INIT = 0x01
    PRE_OP = 0x02
    BOOT = 0x03
    SAFE_OP = 0x04
    OPERATIONAL = 0x08
    ACK = 0x10
    ERROR = 0x10


class BufState(IntEnum):
    EMPTY = 0x00
    ALLOC = 0x01
    TX = 0x02
    RCVD = 0x03
    COMPLETE = 0x04


class DataType(IntEnum):
    BOOLEAN = 0x0001
    INTEGER8 = 0x0002
    INTEGER16 = 0x0003
    INTEGER32 = 0x0004
    UNSIGNED8 = 0x0005
    UNSIGNED16 = 0x0006
    UNSIGNED32 = 0x0007
    REAL32 = 0x0008
    VISIBLE_STRING = 0x0009
    OCTET_STRING = 0x000A
    UNICODE_STRING = 0x000B
    TIME_OF_DAY = 0x000C
    TIME_DIFFERENCE = 0x000D
    DOMAIN = 0x000F
    INTEGER24 = 0x0010
    REAL64 = 0x0011
    INTEGER64 = 0x0015
    UNSIGNED24 = 0x0016
    UNSIGNED64 = 0x001B
    BIT1 = 0x0030
    BIT2 = 0x0031
    BIT3 = 0x0032
    BIT4 = 0x0033
    BIT5 = 0x0034
    BIT6 = 0x0035
    BIT7 = 0x0036
    BIT8 = 0x0037


class Command(IntEnum):
    NOP = 0x00
    APRD = 0x01
    APWR = 0x02
    APRW = 0x03
    FPRD = 0x04
    FPWR = 0x05
    FPRW = 0x06
    BRD = 0x07
    BWR = 0x08
    BRW = 0x09
    LRD = 0x0A
    LWR = 0x0B
    LRW = 0x0C
    ARMW = 0x0D
    FRMW = 0x0E


class EepromCommand(IntEnum):
    NOP = 0x0000
    READ = 0x0100
    WRITE = 0x0201
    RELOAD = 0x0300


class SiiCategory(IntEnum):
    STRING = 10
    GENERAL = 30
    FMMU = 40
    SM = 41
    PDO = 50


class SiiGeneral(IntEnum):
    MANUF = 0x0008
    ID = 0x000A
    REV = 0x000C
    SER = 0x000E
    BOOTRXMBX = 0x0014
    BOOTTXMBX = 0x0016
    MBXSIZE = 0x0019
    TXMBXADR = 0x001A
    RXMBXADR = 0x0018
    MBXPROTO = 0x001C


class MailboxType(IntEnum):
    ERR = 0x00
    AOE = 0x01
    EOE = 0x02
    COE = 0x03
    FOE = 0x04
    SOE = 0x05
    VOE = 0x0F


class CoEService(IntEnum):
    EMERGENCY = 0x01
    SDOREQ = 0x02
    SDORES = 0x03
    TXPDO = 0x04
    RXPDO = 0x05
    TXPDO_RR = 0x06
    RXPDO_RR = 0x07
    SDOINFO = 0x08


class SdoCommand(IntEnum):
    DOWN_INIT = 0x21
    DOWN_EXP = 0x23
    DOWN_INIT_CA = 0x31
    UP_REQ = 0x40
    UP_REQ_CA = 0x50
    SEG_UP_REQ = 0x60
    ABORT = 0x80


class ODCommand(IntEnum):
    GET_ODLIST_REQ = 0x01
    GET_ODLIST_RES = 0x02
    GET_OD_REQ = 0x03
    GET_OD_RES = 0x04
    GET_OE_REQ = 0x05
    GET_OE_RES = 0x06
    SDOINFO_ERROR = 0x07


class FoEOpcode(IntEnum):
    READ = 0x01
    WRITE = 0x02
    DATA = 0x03
    ACK = 0x04
    ERROR = 0x05
    BUSY = 0x06


class SoEOpcode(IntEnum):
    READREQ = 0x01
    READRES = 0x02
    WRITEREQ = 0x03
    WRITERES = 0x04
    NOTIFICATION = 0x05
    EMERGENCY = 0x06


class Register(IntEnum):
    TYPE = 0x0000
    PORTDES = 0x0007
    ESCSUP = 0x0008
    STADR = 0x0010
    ALIAS = 0x0012
    DLCTL = 0x0100
    DLPORT = 0x0101
    DLALIAS = 0x0103
    DLSTAT = 0x0110
    ALCTL = 0x0120
    ALSTAT = 0x0130
    ALSTATCODE = 0x0134
    PDICTL = 0x0140
    IRQMASK = 0x0200
    RXERR = 0x0300
    FRXERR = 0x0308
    EPUECNT = 0x030C
    PECNT = 0x030D
    PECODE = 0x030E
    LLCNT = 0x0310
    WDCNT = 0x0442
    EEPCFG = 0x0500
    EEPCTL = 0x0502
    EEPSTAT = 0x0502
    EEPADR = 0x0504
    EEPDAT = 0x0508
    FMMU0 = 0x0600
    FMMU1 = 0x0610
    FMMU2 = 0x0620
    FMMU3 = 0x0630
    SM0 = 0x0800
    SM1 = 0x0808
    SM2 = 0x0810
    SM3 = 0x0818
    SM0STAT = 0x0805
    SM1STAT = 0x080D
    SM1ACT = 0x080E
    SM1CONTR = 0x080F
    DCTIME0 = 0x0900
    DCTIME1 = 0x0904
    DCTIME2 = 0x0908
    DCTIME3 = 0x090C
    DCSYSTIME = 0x0910
    DCSOF = 0x0918
    DCSYSOFFSET = 0x0920
    DCSYSDELAY = 0x0928
    DCSYSDIFF = 0x092C
    DCSPEEDCNT = 0x0930
    DCTIMEFILT = 0x0934
    DCCUC = 0x0980
    DCSYNCACT = 0x0981
    DCSTART0 = 0x0990
    DCCYCLE0 = 0x09A0
    DCCYCLE1 = 0x09A4


class ErrorType(IntEnum):
    SDO_ERROR = 0
    EMERGENCY = 1
    PACKET_ERROR = 3
    SDOINFO_ERROR = 4
    FOE_ERROR = 5
    FOE_BUF2SMALL = 6
    FOE_PACKETNUMBER = 7
    SOE_ERROR = 8
    MBX_ERROR = 9
    FOE_FILE_NOTFOUND = 10
    EOE_INVALID_RX_DATA = 11


def _require(data: bytes, size: int, what: str) -> None:
    if len(data) < size:
        raise ValueError(f"{what} needs {size} bytes, got {len(data)}")


@dataclass
class EtherHeader:
    """Ethernet header; MAC addresses are three 16-bit words, big endian on the wire."""

    destination: tuple[int, int, int] = (0xFFFF, 0xFFFF, 0xFFFF)
    source: tuple[int, int, int] = PRIMARY_MAC
    etype: int = ETH_P_ECAT

    def pack(self) -> bytes:
        return _ETHER_HEADER.pack(*self.destination, *self.source, self.etype)

    @classmethod
    def unpack(cls, data: bytes) -> "EtherHeader":
        _require(data, ETH_HEADERSIZE, "Ethernet header")
        words = _ETHER_HEADER.unpack_from(data)
        return cls(tuple(words[0:3]), tuple(words[3:6]), words[6])


@dataclass
class DatagramHeader:
    """EtherCAT datagram header, little endian on the wire."""

    elength: int = 0
    command: int = Command.NOP
    index: int = 0
    adp: int = 0
    ado: int = 0
    dlength: int = 0
    irpt: int = 0

    def pack(self) -> bytes:
        return _DATAGRAM_HEADER.pack(
            self.elength, self.command, self.index,
            self.adp, self.ado, self.dlength, self.irpt,
        )

    @classmethod
    def unpack(cls, data: bytes) -> "DatagramHeader":
        _require(data, HEADERSIZE, "datagram header")
        elength, command, index, adp, ado, dlength, irpt = _DATAGRAM_HEADER.unpack_from(data)
        try:
            command = Command(command)
        except ValueError:
            pass
        return cls(elength, command, index, adp, ado, dlength, irpt)


@dataclass
class ErrorRecord:
    """An error reported by a slave or by the master itself."""

    time: float = 0.0
    signal: bool = False
    slave: int = 0
    index: int = 0
    subidx: int = 0
    etype: ErrorType = ErrorType.SDO_ERROR
    abort_code: int = 0
    error_code: int = 0
    error_reg: int = 0
    b1: int = 0
    w1: int = 0
    w2: int = 0
    extra: dict = field(default_factory=dict)


def mbx_hdr_set_cnt(cnt: int) -> int:
    """Place a mailbox counter in the upper nibble of the header byte."""
    return (cnt << 4) & 0xFF


def mk_word(msb: int, lsb: int) -> int:
    return ((msb & 0xFFFF) << 8) | lsb


def hi_byte(w: int) -> int:
    return w >> 8


def lo_byte(w: int) -> int:
    return w & 0x00FF


def swap(w: int) -> int:
    return ((w & 0xFF00) >> 8) | ((w & 0x00FF) << 8)


def lo_word(value: int) -> int:
    return value & 0xFFFF


def hi_word(value: int) -> int:
    return value >> 16