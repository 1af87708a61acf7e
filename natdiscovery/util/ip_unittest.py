import socket

from natdiscovery.util import ip as ip_util


def create_mock_address(mocker, family, address):
    mock_addr = mocker.MagicMock()
    mock_addr.family = family
    mock_addr.address = address
    return mock_addr


class TestIpUtils:

    def test_no_interfaces(self, mocker):
        mock_net_if_addrs = mocker.patch("psutil.net_if_addrs")
        mock_net_if_addrs.return_value = {}

        assert ip_util.get_all_address_strings() == []
        mock_net_if_addrs.assert_called_once()

    def test_interface_without_ipv4(self, mocker):
        mock_net_if_addrs = mocker.patch("psutil.net_if_addrs")
        mock_net_if_addrs.return_value = {
            "eth0": [
                create_mock_address(mocker, socket.AF_INET6, "fe80::1"),
                create_mock_address(mocker, socket.AF_PACKET, "00:11:22:33:44:55"),  # type: ignore
            ]
        }

        assert ip_util.get_all_address_strings() == []

    def test_multiple_interfaces_keep_order(self, mocker):
        mock_net_if_addrs = mocker.patch("psutil.net_if_addrs")
        mock_net_if_addrs.return_value = {
            "eth0": [
                create_mock_address(mocker, socket.AF_INET, "192.168.1.103"),
                create_mock_address(mocker, socket.AF_INET6, "fe80::3"),
            ],
            "eth1": [
                create_mock_address(mocker, socket.AF_INET, "10.0.0.5"),
                create_mock_address(mocker, socket.AF_INET, "10.0.0.6"),
            ],
        }

        result = ip_util.get_all_address_strings()

        assert result == ["192.168.1.103", "10.0.0.5", "10.0.0.6"]

    def test_loopback_excluded_by_default(self, mocker):
        mock_net_if_addrs = mocker.patch("psutil.net_if_addrs")
        mock_net_if_addrs.return_value = {
            "lo": [create_mock_address(mocker, socket.AF_INET, "127.0.0.1")],
            "eth0": [create_mock_address(mocker, socket.AF_INET, "172.16.0.10")],
        }

        assert ip_util.get_all_address_strings() == ["172.16.0.10"]

    def test_loopback_included_on_request(self, mocker):
        mock_net_if_addrs = mocker.patch("psutil.net_if_addrs")
        mock_net_if_addrs.return_value = {
            "lo": [create_mock_address(mocker, socket.AF_INET, "127.0.0.1")],
            "eth0": [create_mock_address(mocker, socket.AF_INET, "172.16.0.10")],
        }

        result = ip_util.get_all_address_strings(include_loopback=True)

        assert result == ["127.0.0.1", "172.16.0.10"]

    def test_duplicate_addresses_reported_once(self, mocker):
        mock_net_if_addrs = mocker.patch("psutil.net_if_addrs")
        mock_net_if_addrs.return_value = {
            "eth0": [create_mock_address(mocker, socket.AF_INET, "10.1.1.1")],
            "eth0:1": [create_mock_address(mocker, socket.AF_INET, "10.1.1.1")],
        }

        assert ip_util.get_all_address_strings() == ["10.1.1.1"]
