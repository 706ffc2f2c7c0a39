import sys
from unittest import mock

import pytest

from ecmaster.adapters import Adapter, find_adapters, htons, ntohs
from ecmaster.types import ETH_P_ECAT, MAXLEN_ADAPTERNAME


@pytest.mark.parametrize("value", [0x0000, 0x0001, 0x1234, ETH_P_ECAT, 0xFFFF])
def test_htons_ntohs_round_trip(value):
    assert ntohs(htons(value)) == value
    assert htons(ntohs(value)) == value


@pytest.mark.parametrize("value", [0x0102, ETH_P_ECAT, 0xABCD])
def test_htons_gives_big_endian_layout(value):
    assert htons(value).to_bytes(2, sys.byteorder) == value.to_bytes(2, "big")


def test_htons_of_ethercat_type_puts_88_first():
    assert htons(ETH_P_ECAT).to_bytes(2, sys.byteorder) == b"\x88\xa4"


def test_find_adapters_uses_interface_names():
    with mock.patch(
        "ecmaster.adapters.socket.if_nameindex",
        return_value=[(1, "lo"), (2, "eth0")],
    ):
        adapters = find_adapters()
    assert adapters == [Adapter("lo", "lo"), Adapter("eth0", "eth0")]


def test_find_adapters_empty():
    with mock.patch("ecmaster.adapters.socket.if_nameindex", return_value=[]):
        assert find_adapters() == []


def test_find_adapters_truncates_long_names():
    long_name = "n" * (MAXLEN_ADAPTERNAME + 50)
    with mock.patch(
        "ecmaster.adapters.socket.if_nameindex", return_value=[(7, long_name)]
    ):
        (adapter,) = find_adapters()
    assert len(adapter.name) == MAXLEN_ADAPTERNAME - 1
    assert long_name.startswith(adapter.name)
    assert adapter.desc == adapter.name


def test_find_adapters_on_this_host_has_name_equal_desc():
    adapters = find_adapters()
    assert all(a.name == a.desc for a in adapters)
    assert all(len(a.name) < MAXLEN_ADAPTERNAME for a in adapters)