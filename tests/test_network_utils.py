import ipaddress

import pytest

from hostname_discovery.utils.error_handler import ValidationError
from hostname_discovery.utils.network_utils import (
    address_sort_key,
    expand_targets,
    get_network_hosts,
    get_network_info,
    is_valid_target,
)


def test_expand_targets_dedups_and_keeps_order():
    expanded = expand_targets(["10.0.0.2", "10.0.0.0/30", "10.0.0.2"], 16)
    assert [str(a) for a in expanded] == ["10.0.0.2", "10.0.0.1"]


def test_expand_targets_honours_cap():
    with pytest.raises(ValidationError):
        expand_targets(["10.0.0.0/24"], 100)
    with pytest.raises(ValidationError):
        expand_targets(["10.0.0.1", "10.0.0.2", "10.0.0.3"], 2)


def test_expand_targets_rejects_garbage():
    with pytest.raises(ValidationError):
        expand_targets(["printer.local"], 10)


def test_single_address_network():
    assert expand_targets(["10.0.0.7/32"], 4) == [ipaddress.ip_address("10.0.0.7")]


def test_network_info():
    assert get_network_info("192.168.1.77", "24") == ("192.168.1.0", "192.168.1.255", "192.168.1.0/24")
    assert get_network_info("10.1.2.3", "255.255.0.0")[1] == "10.1.255.255"


def test_network_hosts_are_limited():
    hosts = get_network_hosts("192.168.1.0/24", 3)
    assert [str(h) for h in hosts] == ["192.168.1.1", "192.168.1.2", "192.168.1.3"]


def test_is_valid_target():
    assert is_valid_target("192.168.1.0/24")
    assert is_valid_target("fe80::1")
    assert not is_valid_target("not-an-ip")


def test_address_sort_key_orders_numerically():
    addresses = ["10.0.0.10", "fe80::1", "10.0.0.9"]
    assert sorted(addresses, key=address_sort_key) == ["10.0.0.9", "10.0.0.10", "fe80::1"]
