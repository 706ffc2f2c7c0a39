# ecmaster

Low-layer building blocks for an EtherCAT master in Python: protocol
constants and enumerations, the packed records that travel on the wire,
Ethernet-over-EtherCAT header fields, timing helpers, network adapter
discovery and a raw-socket frame driver.

## Modules

- `ecmaster.types` – build options and timeouts (`MAXBUF`, `BUFSIZE`,
  `TIMEOUTRET`, …), frame-layer return values (`NOFRAME`, `OTHERFRAME`, …),
  the enumerations `Err`, `State`, `BufState`, `DataType`, `Command`,
  `EepromCommand`, `SiiCategory`, `SiiGeneral`, `MailboxType`, `CoEService`,
  `SdoCommand`, `ODCommand`, `FoEOpcode`, `SoEOpcode`, `Register` and
  `ErrorType`; the headers `EtherHeader` (big endian) and `DatagramHeader`
  (little endian) with `pack()` / `unpack()`; the `ErrorRecord` dataclass;
  and the helpers `mbx_hdr_set_cnt`, `mk_word`, `hi_byte`, `lo_byte`,
  `swap`, `lo_word`, `hi_word`.
- `ecmaster.eoe` – `EoEFrameType`, `EoEResult`, `EoEParamFlag`; the two
  frame-info words `FrameInfo1` and `FrameInfo2` with `encode()` /
  `decode()`; `EoEParam`, which validates its MAC, IPv4 and DNS-name fields
  and reports which are set through `flags()`; and `make_u32`,
  `ip4_from_parts`, `ip4_parts`.
- `ecmaster.osal` – `Timespec` (seconds and nanoseconds, with addition,
  subtraction and ordering), a monotonic `Timer`, `monotonic_time`,
  `current_time`, `time_diff`, `usleep`, `monotonic_sleep`, and
  `thread_create` / `thread_create_rt`, which start a daemon thread; the
  latter also asks, best effort, for FIFO real-time scheduling.
- `ecmaster.adapters` – `htons`, `ntohs` and `find_adapters()`, which lists
  the host's interfaces as `Adapter(name, desc)` records.
- `ecmaster.structures` – packed records `Fmmu`, `SyncManager`,
  `StateStatus`, `MailboxHeader`, `SMCommType`, `PDOAssign`, `PDODesc`
  (all with `pack()` / `unpack()`, raising `ValueError` on bad sizes or
  values); EEPROM summaries `EepromFmmu`, `EepromSM`, `EepromPDO`; the
  flag sets `MailboxProtocol`, `CoEDetail`, `EsmTransition`; the states
  `MailboxQueueState`, `MailboxHandlerState`; and the network-information
  records `EniCoECommand`, `EniSlave` and `Eni` with `Eni.find_slave()`.
- `ecmaster.nicdrv` – the frame driver. `Port` owns `MAXBUF` indexed
  transmit and receive buffers. `setup_nic()` opens the primary or, given a
  `RedundantPort`, the secondary interface (which turns on redundant mode);
  `get_index()` allocates a frame index; `out_frame()` / `out_frame_red()`
  send; `in_frame()` receives without blocking and stores frames that arrive
  for other indexes; `wait_in_frame()` and `sr_confirm()` wait, and resend,
  until a timeout given in microseconds. `setup_header()` writes the
  Ethernet header and `open_raw_socket()` opens a promiscuous `AF_PACKET`
  socket. `Port` accepts a `socket_factory` so any object with `send`,
  `recv_into` and `close` can stand in for the socket.

## Installation

```
pip install .
```

Opening a real interface needs Linux and the right to use raw sockets
(root, or the `CAP_NET_RAW` capability).

## Examples

Build and parse a datagram header:

```python
from ecmaster.types import Command, DatagramHeader

hdr = DatagramHeader(elength=0x100C, command=Command.BRD, index=1,
                     adp=0, ado=0x0130, dlength=2, irpt=0)
assert DatagramHeader.unpack(hdr.pack()) == hdr
```

Encode an EoE frame-info word:

```python
from ecmaster.eoe import EoEFrameType, FrameInfo1

word = FrameInfo1(frame_type=EoEFrameType.INIT_REQ, last_fragment=True).encode()
assert FrameInfo1.decode(word).frame_type is EoEFrameType.INIT_REQ
```

Wait with a timer:

```python
from ecmaster.osal import Timer

timer = Timer()
timer.start(2000)          # microseconds
while not timer.is_expired():
    ...
```

List network adapters:

```python
from ecmaster.adapters import find_adapters

for adapter in find_adapters():
    print(adapter.name, adapter.desc)
```

Send a frame and wait for its return:

```python
from ecmaster.nicdrv import Port

port = Port()
port.setup_nic("eth0", False)
idx = port.get_index()
# put a datagram after the Ethernet header in port.txbuf[idx]
# and its total length in port.txbuflength[idx], then:
wkc = port.sr_confirm(idx, 2000)
port.close_nic()
```

## What this package does not do

It stops at the frame layer. There is no datagram builder on top of the
driver, no slave discovery or configuration, no EEPROM access, no process
data exchange, no distributed-clock set-up, and no CoE, FoE, SoE or EoE
mailbox transfers; the EoE and structure modules only describe the fields
and records those would use. There is no command-line program.

## Tests

```
pip install .[test]
pytest
```