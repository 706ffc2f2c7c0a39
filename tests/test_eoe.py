import ipaddress
import struct

import pytest

from ecmaster import eoe, types
from ecmaster.eoe import (
    EoEFrameType,
    EoEParam,
    EoEParamFlag,
    FrameInfo1,
    FrameInfo2,
    ip4_from_parts,
    ip4_parts,
    make_u32,
)


@pytest.mark.parametrize(
    "info",
    [
        FrameInfo1(),
        FrameInfo1(EoEFrameType.INIT_REQ, 3, True, False, True),
        FrameInfo1(EoEFrameType.GET_ADDR_FILTER_RESP, 15, True, True, True),
    ],
)
def test_frameinfo1_round_trip(info):
    assert FrameInfo1.decode(info.encode()) == info


@pytest.mark.parametrize(
    "info",
    [FrameInfo2(), FrameInfo2(63, 63, 15), FrameInfo2(5, 12, 7)],
)
def test_frameinfo2_round_trip(info):
    assert FrameInfo2.decode(info.encode()) == info


def test_frameinfo1_frame_type_is_low_nibble():
    value = FrameInfo1(frame_type=EoEFrameType.INIT_RESP).encode()
    assert value == EoEFrameType.INIT_RESP
    assert FrameInfo1.decode(value).frame_type is EoEFrameType.INIT_RESP


def test_frameinfo2_masks_fields():
    assert FrameInfo2(frame_no=0x1F).encode() == FrameInfo2(frame_no=0xF).encode()
    assert FrameInfo2(fragment_no=0x7F).encode() == FrameInfo2(fragment_no=0x3F).encode()


def test_frameinfo_encodes_fit_in_word():
    assert FrameInfo2(63, 63, 15).encode() <= 0xFFFF
    assert FrameInfo1(0xF, 0xF, True, True, True).encode() < 1 << 11


def test_make_u32_matches_dotted_address():
    assert make_u32(192, 168, 1, 10) == int(ipaddress.IPv4Address("192.168.1.10"))


def test_make_u32_masks_bytes():
    assert make_u32(0x1FF, 0, 0, 0) == make_u32(0xFF, 0, 0, 0)


def test_ip4_parts_round_trip():
    addr = ip4_from_parts(10, 0, 0, 1)
    assert addr == ipaddress.IPv4Address("10.0.0.1")
    assert ip4_parts(addr) == (10, 0, 0, 1)
    assert ip4_parts("172.16.5.4") == (172, 16, 5, 4)


def test_param_flags_empty():
    assert EoEParam().flags() == EoEParamFlag(0)


def test_param_flags_selected_fields():
    param = EoEParam(ip="192.168.0.2", dns_name="drive")
    assert param.flags() == EoEParamFlag.IP_INCLUDE | EoEParamFlag.DNS_NAME_INCLUDE
    assert param.ip == ipaddress.IPv4Address("192.168.0.2")


def test_param_flags_all_fields():
    param = EoEParam(
        mac=bytes(6), ip="10.0.0.2", subnet="255.0.0.0",
        default_gateway="10.0.0.1", dns_ip="10.0.0.3", dns_name="node",
    )
    assert param.flags() == EoEParamFlag(sum(EoEParamFlag))


def test_param_rejects_bad_mac():
    with pytest.raises(ValueError):
        EoEParam(mac=b"\x02\x00\x00")


def test_param_rejects_long_dns_name():
    with pytest.raises(ValueError):
        EoEParam(dns_name="x" * (eoe.DNS_NAME_LENGTH + 1))


def test_maxeoedata_fills_mailbox():
    frame_infos = struct.pack("<HH", FrameInfo1().encode(), FrameInfo2().encode())
    assert eoe.MAXEOEDATA + eoe.MAILBOX_HEADER_SIZE + len(frame_infos) == types.MAXMBX