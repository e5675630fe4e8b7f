from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from xml.sax.saxutils import escape

import requests
import urllib3

from netgear_router_client_exceptions import *
from netgear_router_decoder import decode, parse_envelope, to_devices, to_flat_map
from netgear_router_models import *
from netgear_router_utils import normalize_url

logger = logging.getLogger(__name__)

NETGEAR_CLIENT_DEFAULT_HEADERS = {
    "Content-Type": "text/xml;charset=utf-8",
    "User-Agent": "curl/7.59.0",
}

DEFAULT_URL = "https://www.routerlogin.com"
DEFAULT_USERNAME = "admin"
DEFAULT_TIMEOUT = 2

SOAP_PATH = "/soap/server_sa/"
SESSION_ID = "A7D88AE69687E58D9A00"
UNSET_COOKIE = "UNSET"
NOT_LOGGED_IN = "401"

_ENVELOPE = """<?xml version="1.0" encoding="UTF-8" standalone="no"?>
<SOAP-ENV:Envelope
  xmlns:SOAPSDK1="http://www.w3.org/2001/XMLSchema"
  xmlns:SOAPSDK2="http://www.w3.org/2001/XMLSchema-instance"
  xmlns:SOAPSDK3="http://schemas.xmlsoap.org/soap/encoding/"
  xmlns:SOAP-ENV="http://schemas.xmlsoap.org/soap/envelope/">
  <SOAP-ENV:Header>
    <SessionID>{{session_id}}</SessionID>
  </SOAP-ENV:Header>
  <SOAP-ENV:Body>
    {body}
  </SOAP-ENV:Body>
</SOAP-ENV:Envelope>"""

LOGIN = RemoteOperation(
    name="SOAPLogin",
    soap_action="urn:NETGEAR-ROUTER:service:DeviceConfig:1#SOAPLogin",
    template=_ENVELOPE.format(body="""<M1:SOAPLogin xmlns:M1="urn:NETGEAR-ROUTER:service:DeviceConfig:1">
      <Username>{username}</Username>
      <Password>{password}</Password>
    </M1:SOAPLogin>"""),
)

GET_ATTACH_DEVICE = RemoteOperation(
    name="GetAttachDevice",
    soap_action="urn:NETGEAR-ROUTER:service:DeviceInfo:1#GetAttachDevice",
    template=_ENVELOPE.format(body='<M1:GetAttachDevice xsi:nil="true" />'),
)

GET_SYSTEM_INFO = RemoteOperation(
    name="GetSystemInfo",
    soap_action="urn:NETGEAR-ROUTER:service:DeviceInfo:1#GetSystemInfo",
    template=_ENVELOPE.format(body='<M1:GetSystemInfo xsi:nil="true" />'),
)

GET_TRAFFIC_METER_STATISTICS = RemoteOperation(
    name="GetTrafficMeterStatistics",
    soap_action="urn:NETGEAR-ROUTER:service:DeviceConfig:1#GetTrafficMeterStatistics",
    template=_ENVELOPE.format(body="""<M1:GetTrafficMeterStatistics xmlns:M1="urn:NETGEAR-ROUTER:service:DeviceConfig:1">
    </M1:GetTrafficMeterStatistics>"""),
)

_PASSWORD_PATTERN = re.compile(r"<Password>.*?</Password>", re.DOTALL)


def _is_success(response_code: str | None) -> bool:
    if response_code is None or response_code == "":
        return True
    return response_code.isdigit() and int(response_code) == 0


@dataclass
class RouterClient:
    """SOAP session client for a Netgear router.

    One client holds one session: the server-issued cookie and the
    client-chosen session id. Both are private and only changed under the
    client's lock, so the collectors can share a single instance.
    """
    url: str = DEFAULT_URL
    username: str = DEFAULT_USERNAME
    password: str = field(default="", repr=False)
    insecure: bool = False
    timeout: float = DEFAULT_TIMEOUT
    debug: bool = False
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    _cookie: str = field(default=UNSET_COOKIE, init=False, repr=False)
    _session_id: str = field(default=SESSION_ID, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self):
        if self.debug:
            logger.info("Constructing debug client")
        if not self.url:
            self.url = DEFAULT_URL
        if not self.username:
            self.username = DEFAULT_USERNAME
        if not self.password:
            raise ConfigException("Admin password is required")
        self.url = normalize_url(self.url)

        if self.insecure:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def endpoint(self) -> str:
        return f"{self.url}{SOAP_PATH}"

    def __log_request(self, operation: RemoteOperation, data: str):
        logger.info(f"Sending {operation.name} to {self.endpoint} (SOAPAction: {operation.soap_action})")
        logger.info(f"Request body:\n{_PASSWORD_PATTERN.sub('<Password>*****</Password>', data)}")

    def __log_response(self, response: requests.Response):
        logger.info(f"Response code: {response.status_code}")
        for name, value in response.headers.items():
            logger.info(f"  {name}: {value}")
        logger.info(f"Response body:\n{response.text}")

    def __send(self, operation: RemoteOperation, params: dict[str, str]) -> SoapResponse:
        data = operation.render(session_id=self._session_id, **params)
        headers = {
            **NETGEAR_CLIENT_DEFAULT_HEADERS,
            "SOAPAction": operation.soap_action,
            "Cookie": self._cookie,
        }
        if self.debug:
            self.__log_request(operation, data)

        try:
            response = self.session.post(self.endpoint,
                                         data=data.encode("utf-8"),
                                         headers=headers,
                                         verify=not self.insecure,
                                         timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportException(f"{operation.name} request to {self.endpoint} failed: {e}") from e

        cookie = response.headers.get("Set-Cookie")
        if cookie:
            self._cookie = cookie

        if self.debug:
            self.__log_response(response)

        try:
            parsed = parse_envelope(response.content)
        except DecodeException as e:
            if response.status_code >= 400:
                raise ProtocolException(
                    f"{operation.name} failed with HTTP {response.status_code}",
                    response_text=response.text,
                ) from e
            raise

        # a 401 ResponseCode is left to invoke(), whatever the HTTP status
        if parsed.response_code != NOT_LOGGED_IN:
            if parsed.fault is not None:
                raise ProtocolException(
                    f"{operation.name} returned a SOAP fault: {parsed.fault}",
                    response_code=parsed.response_code,
                    response_text=response.text,
                )
            if response.status_code >= 400:
                raise ProtocolException(
                    f"{operation.name} failed with HTTP {response.status_code}",
                    response_code=parsed.response_code,
                    response_text=response.text,
                )
        return parsed

    def invoke(self, operation: RemoteOperation, attempt_login: bool = True, **params: str) -> bytes:
        """Run one remote operation and return the payload of its SOAP body.

        A 401 on the first attempt triggers one login and one retry; a 401 on
        the retry (or when ``attempt_login`` is false) raises
        AuthenticationException.
        """
        with self._lock:
            response = self.__send(operation, params)

            if response.response_code == NOT_LOGGED_IN:
                if not attempt_login:
                    raise AuthenticationException(f"{operation.name}: the router reports the client is not logged in")
                if self.debug:
                    logger.info("Detected client not being logged in. Executing login...")
                self.login()

                response = self.__send(operation, params)
                if response.response_code == NOT_LOGGED_IN:
                    raise AuthenticationException(f"{operation.name}: still not logged in after a successful login")

            if not _is_success(response.response_code):
                raise ProtocolException(
                    f"{operation.name} failed with ResponseCode {response.response_code}",
                    response_code=response.response_code,
                    response_text=response.body.decode("utf-8", errors="replace"),
                )
            return response.body

    def login(self):
        with self._lock:
            try:
                self.invoke(LOGIN,
                            attempt_login=False,
                            username=escape(self.username),
                            password=escape(self.password))
            except ProtocolException as e:
                raise AuthenticationException(f"Login as '{self.username}' failed: {e}") from e

    def get_attached_devices(self) -> list[DeviceInfo]:
        return to_devices(decode(self.invoke(GET_ATTACH_DEVICE)))

    def get_system_info(self) -> dict[str, str]:
        return to_flat_map(decode(self.invoke(GET_SYSTEM_INFO)))

    def get_traffic_meter_statistics(self) -> dict[str, str]:
        return to_flat_map(decode(self.invoke(GET_TRAFFIC_METER_STATISTICS)), split_averages=True)
