from unittest.mock import Mock

import pytest
import requests

from netgear_router_client import RouterClient

SOAP_ENVELOPE = """<?xml version="1.0" encoding="UTF-8"?>
<soap-env:Envelope xmlns:soap-env="http://schemas.xmlsoap.org/soap/envelope/" soap-env:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">
<soap-env:Body>
{payload}
{code}
</soap-env:Body>
</soap-env:Envelope>"""


def soap_body(payload: str = "", code: str | None = "000") -> bytes:
    code_element = f"<ResponseCode>{code}</ResponseCode>" if code is not None else ""
    return SOAP_ENVELOPE.format(payload=payload, code=code_element).encode("utf-8")


def system_info_payload(**fields: str) -> str:
    children = "".join(f"<New{name}>{value}</New{name}>" for name, value in fields.items())
    return f'<m:GetSystemInfoResponse xmlns:m="urn:NETGEAR-ROUTER:service:DeviceInfo:1">{children}</m:GetSystemInfoResponse>'


def http_response(content: bytes, status_code: int = 200, cookie: str | None = None) -> Mock:
    response = Mock(spec=requests.Response)
    response.content = content
    response.text = content.decode("utf-8", errors="replace")
    response.status_code = status_code
    response.headers = {"Set-Cookie": cookie} if cookie else {}
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(session):
    return RouterClient(url="192.168.1.1", password="secret", session=session)
