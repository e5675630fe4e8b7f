import pytest

from netgear_router_client_exceptions import ConfigException
from netgear_router_utils import hm_to_seconds, normalize_url, safe_float, strip_new_prefix, to_bool


@pytest.mark.parametrize("value, expected", [
    ("2:30", 9000),
    ("0:0", 0),
    ("10:05", 36300),
    ("3", 10800),
    ("", 0),
])
def test_hm_to_seconds(value, expected):
    assert hm_to_seconds(value) == expected


@pytest.mark.parametrize("url, expected", [
    ("routerlogin.net", "https://routerlogin.net"),
    ("https://routerlogin.net/", "https://routerlogin.net"),
    ("http://192.168.1.1:5000", "http://192.168.1.1:5000"),
])
def test_normalize_url(url, expected):
    assert normalize_url(url) == expected


def test_normalize_url_rejects_garbage():
    with pytest.raises(ConfigException):
        normalize_url("https://[::1")


def test_strip_new_prefix():
    assert strip_new_prefix("NewCPUUtilization") == "CPUUtilization"
    assert strip_new_prefix("ResponseCode") == "ResponseCode"


def test_safe_float():
    assert safe_float("1.5") == 1.5
    assert safe_float("N/A") == 0.0
    assert safe_float(None) == 0.0


@pytest.mark.parametrize("value, expected", [("1", True), ("TRUE", True), ("on", True), ("0", False),
                                             ("", False), (True, True)])
def test_to_bool(value, expected):
    assert to_bool(value) is expected
