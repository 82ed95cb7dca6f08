import logging
import re
from collections.abc import Mapping
from typing import Any, Sequence
from urllib.parse import quote

from pydantic import BaseModel

from airbrake_notifier.configuration import NotifierConfig
from airbrake_notifier.notice import (
    InvalidNoticeData,
    build_notice,
    parse_notice_response,
)
from airbrake_notifier.options import OptionSet, merge_options
from airbrake_notifier.request_context import RequestContext
from airbrake_notifier.trace import Frame, trace_from_exception
from airbrake_notifier.transport import RequestsTransport, Transport, join_url
from airbrake_notifier.utils import prefix_logger, safe_str

logger = logging.getLogger(__name__)

DEPLOYS_PATH = "deploys.txt"

_ERROR_ID = re.compile(r"errors/(\d+)")
_NOTICE_ID = re.compile(r"notices/(\d+)")

# Locator lookups must see the redirect itself, not where it leads.
_LOCATOR_OPTIONS: OptionSet = {"follow_redirects": False, "include_headers": True}


class LocatorMetadata(BaseModel):
    error_id: str = ""
    notice_id: str = ""
    is_valid: bool = False


class Notifier:
    """
    Reports errors and deploys to Airbrake. Every public call is a single blocking round trip;
    failures to reach the service are reported through the return value, never raised.
    """

    def __init__(
        self,
        config: NotifierConfig,
        options: Mapping[str, Any] | None = None,
        transport: Transport | None = None,
    ):
        config.do_validation()
        self.config = config
        self.options: OptionSet = merge_options(
            config.AIRBRAKE_REQUIRED_TRANSPORT_OPTIONS,
            options,
            config.AIRBRAKE_DEFAULT_TRANSPORT_OPTIONS,
        )
        self.transport = transport or RequestsTransport(debug=config.debug)
        self.logger = prefix_logger("AIRBRAKE ", logger)

    @property
    def api_key(self) -> str:
        return self.config.api_key

    def notify(
        self,
        message: Any,
        exception_type: Any,
        frames: Sequence[Frame | Mapping[str, Any]] | None = None,
        extra_data: Mapping[str, Any] | None = None,
        request_context: RequestContext | None = None,
    ) -> str:
        """
        Sends one notice and returns the id Airbrake assigned to it, or "" if it was not
        accepted.
        """
        notice = build_notice(
            self.api_key,
            message,
            exception_type,
            frames,
            extra_data,
            self.config,
            request_context,
        )
        result, body = self.transport.send(
            self.config.AIRBRAKE_API_BASE_URL,
            self.config.notices_path,
            notice,
            self.options,
            debug=self.config.debug,
        )
        if not result.success:
            return ""

        response = parse_notice_response(body)
        if response is None:
            return ""

        if self.config.debug and response.url:
            self.logger.info(f"NOTICE CREATED: {response.url}")
        return response.id

    def notify_exception(
        self,
        exception: BaseException,
        extra_data: Mapping[str, Any] | None = None,
        request_context: RequestContext | None = None,
    ) -> str:
        return self.notify(
            safe_str(exception),
            type(exception).__name__,
            trace_from_exception(exception),
            extra_data,
            request_context,
        )

    def deploy(self, deploy: Mapping[str, Any] | None = None) -> bool:
        if deploy is not None and not isinstance(deploy, Mapping):
            raise InvalidNoticeData(f"deploy must be a mapping, got {type(deploy).__name__}")

        payload: dict[str, Any] = {"api_key": self.api_key}
        for key, value in (deploy or {}).items():
            payload[f"deploy[{key}]"] = value

        result, _ = self.transport.send(
            self.config.AIRBRAKE_API_BASE_URL,
            DEPLOYS_PATH,
            payload,
            self.options,
            debug=self.config.debug,
        )
        return result.success

    def resolve_locator(self, token: str | None) -> LocatorMetadata:
        """
        Looks up the error and notice ids behind a locator token returned by `notify`.
        """
        token = (token or "").strip()
        if not token:
            return LocatorMetadata()

        url = join_url(self.config.AIRBRAKE_API_BASE_URL, f"locate/{quote(token, safe='')}")
        _, raw = self.transport.fetch(
            url, merge_options(_LOCATOR_OPTIONS, self.options, None), debug=self.config.debug
        )
        return parse_locator_response(raw.decode("utf-8", errors="replace"))


def parse_locator_response(text: str) -> LocatorMetadata:
    error_match = _ERROR_ID.search(text)
    notice_match = _NOTICE_ID.search(text)
    error_id = error_match.group(1) if error_match else ""
    notice_id = notice_match.group(1) if notice_match else ""
    return LocatorMetadata(
        error_id=error_id,
        notice_id=notice_id,
        is_valid=error_id.isdigit() and notice_id.isdigit(),
    )
