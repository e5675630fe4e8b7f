from __future__ import annotations


class RouterClientException(Exception):
    """Base class for every error raised while talking to the router."""


class ConfigException(RouterClientException):
    """Invalid construction-time input (bad URL, missing password, unknown collector)."""


class TransportException(RouterClientException):
    """Connection refused, timeout, TLS failure."""


class ProtocolException(RouterClientException):
    def __init__(self, message: str, response_code: str | None = None, response_text: str = ""):
        super().__init__(message)
        self.response_code = response_code
        self.response_text = response_text


class AuthenticationException(RouterClientException):
    """Login failed or the router kept reporting 401 after a fresh login."""


class DecodeException(RouterClientException):
    pass
