import dataclasses
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

import requests

from airbrake_notifier.notice import Notice
from airbrake_notifier.options import OptionSet
from airbrake_notifier.utils import exception_formatter, prefix_logger

logger = logging.getLogger(__name__)

XML_CONTENT_TYPE = "text/xml; charset=utf-8"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"


@dataclasses.dataclass(frozen=True)
class TransportResult:
    status: int
    error: str = ""

    @property
    def success(self) -> bool:
        return not self.error and 100 <= self.status < 400


def join_url(base_url: str, path: str) -> str:
    return "/".join((base_url.rstrip("/"), path.lstrip("/")))


def encode_form(payload: Mapping[str, Any]) -> str:
    return urlencode([(str(k), "" if v is None else str(v)) for k, v in payload.items()], safe="[]")


def encode_payload(payload: Any) -> tuple[dict[str, str], bytes | str | None]:
    """
    Returns the headers and body for `payload`: notices go out as XML, flat mappings as a
    form and anything else as is.
    """
    if isinstance(payload, Notice):
        return {"Content-Type": XML_CONTENT_TYPE}, payload.to_xml()
    if isinstance(payload, Mapping):
        return {"Content-Type": FORM_CONTENT_TYPE}, encode_form(payload)
    return {}, payload


class Transport(ABC):
    debug: bool = False

    @abstractmethod
    def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | str | None,
        options: OptionSet,
    ) -> tuple[TransportResult, bytes]:
        pass

    def send(
        self, base_url: str, path: str, payload: Any, options: OptionSet, debug: bool = False
    ) -> tuple[TransportResult, bytes]:
        url = join_url(base_url, path)
        headers, body = encode_payload(payload)
        return self._perform("POST", url, headers, body, options, debug)

    def fetch(
        self, url: str, options: OptionSet, debug: bool = False
    ) -> tuple[TransportResult, bytes]:
        return self._perform("GET", url, {}, None, options, debug)

    def _perform(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | str | None,
        options: OptionSet,
        debug: bool = False,
    ) -> tuple[TransportResult, bytes]:
        headers = {**(options.get("headers") or {}), **headers}
        result, raw = self._request(method, url, headers, body, options)
        if not result.success and (debug or self.debug):
            detail = raw.decode("utf-8", errors="replace") if raw else result.error
            prefix_logger("AIRBRAKE ", logger).error(f"API ERROR :: {url}\n\n{detail}")
        return result, raw


def _timeout(options: OptionSet) -> tuple[float | None, float | None] | None:
    connect = options.get("connect_timeout")
    read = options.get("timeout")
    if connect is None and read is None:
        return None
    return connect, read


def _head(response: requests.Response) -> bytes:
    lines = [f"HTTP {response.status_code} {response.reason or ''}".rstrip()]
    lines.extend(f"{k}: {v}" for k, v in response.headers.items())
    return ("\r\n".join(lines) + "\r\n\r\n").encode("utf-8")


@dataclasses.dataclass
class RequestsTransport(Transport):
    """
    Issues each call on its own `requests.Session`, closed before the call returns.
    """

    debug: bool = False

    def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | str | None,
        options: OptionSet,
    ) -> tuple[TransportResult, bytes]:
        try:
            with requests.Session() as session:
                response = session.request(
                    method,
                    url,
                    data=body or None,
                    headers=headers,
                    timeout=_timeout(options),
                    allow_redirects=bool(options.get("follow_redirects", False)),
                    verify=options.get("verify", True),
                    proxies=options.get("proxies"),
                )
        except requests.RequestException as e:
            return TransportResult(status=0, error=exception_formatter(e)), b""

        raw = response.content
        if options.get("include_headers"):
            raw = _head(response) + raw
        return TransportResult(status=response.status_code), raw


@dataclasses.dataclass
class Invocation:
    method: str
    url: str
    headers: dict[str, str]
    body: bytes | str | None
    options: OptionSet


@dataclasses.dataclass
class DummyTransport(Transport):
    """
    A transport that never touches the network. Every call is recorded in `invocations` and
    answered with the next entry of `responses`, or with `default_response` once those run out.
    """

    debug: bool = False
    invocations: list[Invocation] = dataclasses.field(default_factory=list)
    responses: list[tuple[TransportResult, bytes]] = dataclasses.field(default_factory=list)
    default_response: tuple[TransportResult, bytes] = (TransportResult(status=404), b"Not Found")

    def respond_with(self, status: int, body: bytes = b"", error: str = "") -> "DummyTransport":
        self.responses.append((TransportResult(status=status, error=error), body))
        return self

    def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes | str | None,
        options: OptionSet,
    ) -> tuple[TransportResult, bytes]:
        logger.debug(f"{method} {url} handled by DummyTransport")
        self.invocations.append(Invocation(method, url, headers, body, dict(options)))
        if self.responses:
            return self.responses.pop(0)
        return self.default_response
