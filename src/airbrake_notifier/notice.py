"""
Builds the notice document for one error occurrence and its XML wire form.

The document layout follows the Airbrake notifier API 2.2 schema:

    <notice version="2.2">
      <api-key/>
      <notifier><name/><version/><url/></notifier>
      <request><params/><component/><action/><url/><session/><cgi-data/></request>
      <error><message/><class/><backtrace><line file="" number="" method=""/></backtrace></error>
      <server-environment><project-root/><environment-name/><app-version/><hostname/></server-environment>
    </notice>
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Sequence
from xml.etree import ElementTree as ET

from pydantic import BaseModel, ConfigDict, Field

from airbrake_notifier.configuration import (
    API_VERSION,
    NOTIFIER_NAME,
    NOTIFIER_URL,
    NOTIFIER_VERSION,
    NotifierConfig,
)
from airbrake_notifier.request_context import RequestContext
from airbrake_notifier.trace import Frame, Trace, as_frame, capture_trace
from airbrake_notifier.utils import escape
from airbrake_notifier.variables import VariableNode, serialize_variables

logger = logging.getLogger(__name__)

DEFAULT_COMPONENT = __name__
DEFAULT_ACTION = "build_notice"
EXTRA_DATA_KEY = "EXTRA_DATA"


class InvalidNoticeData(TypeError):
    pass


class NotifierInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = NOTIFIER_NAME
    version: str = NOTIFIER_VERSION
    url: str = NOTIFIER_URL


class BacktraceLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    file: str
    number: str
    method: Optional[str] = None


class NoticeError(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message: str
    class_name: str = Field(alias="class")
    backtrace: list[BacktraceLine] = Field(min_length=1)


class NoticeRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    params: list[VariableNode]
    component: str
    action: str
    url: str
    session: Optional[list[VariableNode]] = None
    cgi_data: list[VariableNode]


class ServerEnvironment(BaseModel):
    model_config = ConfigDict(frozen=True)

    project_root: str
    environment_name: str
    app_version: str
    hostname: str


class Notice(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str = API_VERSION
    api_key: str
    notifier: NotifierInfo = Field(default_factory=NotifierInfo)
    request: NoticeRequest
    error: NoticeError
    server_environment: ServerEnvironment

    def to_xml_tree(self) -> ET.Element:
        notice = ET.Element("notice", version=self.version)
        _text_element(notice, "api-key", self.api_key)

        notifier = ET.SubElement(notice, "notifier")
        _text_element(notifier, "name", self.notifier.name)
        _text_element(notifier, "version", self.notifier.version)
        _text_element(notifier, "url", self.notifier.url)

        request = ET.SubElement(notice, "request")
        _var_elements(ET.SubElement(request, "params"), self.request.params)
        _text_element(request, "component", self.request.component)
        _text_element(request, "action", self.request.action)
        _text_element(request, "url", self.request.url)
        if self.request.session is not None:
            _var_elements(ET.SubElement(request, "session"), self.request.session)
        _var_elements(ET.SubElement(request, "cgi-data"), self.request.cgi_data)

        error = ET.SubElement(notice, "error")
        _text_element(error, "message", self.error.message)
        _text_element(error, "class", self.error.class_name)
        backtrace = ET.SubElement(error, "backtrace")
        for line in self.error.backtrace:
            attributes = {"file": line.file, "number": line.number}
            if line.method is not None:
                attributes["method"] = line.method
            ET.SubElement(backtrace, "line", attributes)

        server_environment = ET.SubElement(notice, "server-environment")
        _text_element(server_environment, "project-root", self.server_environment.project_root)
        _text_element(
            server_environment, "environment-name", self.server_environment.environment_name
        )
        _text_element(server_environment, "app-version", self.server_environment.app_version)
        _text_element(server_environment, "hostname", self.server_environment.hostname)
        return notice

    def to_xml(self) -> bytes:
        return ET.tostring(self.to_xml_tree(), encoding="utf-8", xml_declaration=True)


def _text_element(parent: ET.Element, tag: str, text: str) -> ET.Element:
    child = ET.SubElement(parent, tag)
    child.text = text
    return child


def _var_elements(parent: ET.Element, nodes: Sequence[VariableNode]):
    for node in nodes:
        var = ET.SubElement(parent, "var", key=node.key)
        if node.children is not None:
            _var_elements(var, node.children)
        else:
            var.text = node.value


class NoticeResponse(BaseModel):
    id: str = ""
    url: str = ""


def parse_notice_response(body: bytes) -> NoticeResponse | None:
    """
    Reads the `<notice>` document Airbrake answers with. Anything else, including an empty
    body, yields None.
    """
    if not body or not body.strip():
        return None
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        logger.warning(f"Could not parse notice response: {e}")
        return None
    if root.tag != "notice":
        logger.warning(f"Unexpected notice response root <{root.tag}>")
        return None
    return NoticeResponse(
        id=(root.findtext("id") or "").strip(),
        url=(root.findtext("url") or "").strip(),
    )


def _require_mapping(name: str, value: Any) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidNoticeData(f"{name} must be a mapping, got {type(value).__name__}")
    return value


def resolve_component_action(frame: Frame, context: RequestContext) -> tuple[str, str]:
    component = escape(frame.class_name if frame.class_name is not None else DEFAULT_COMPONENT)
    action = escape(frame.function if frame.function is not None else DEFAULT_ACTION)
    if context.request:
        # Frameworks report the controller as the component.
        component = escape(context.request.get("controller", component))
        action = escape(context.request.get("action", action))
    return component, action


def collect_params(extra_data: Mapping[str, Any], context: RequestContext) -> dict[str, Any]:
    params: dict[str, Any] = {}
    if extra_data:
        params[EXTRA_DATA_KEY] = extra_data
    for name, bucket in context.param_buckets().items():
        if bucket:
            params[name] = bucket
    return params


def resolve_url(frame: Frame, context: RequestContext) -> str:
    if "url" in context.request:
        return escape(context.request["url"])

    server = context.server
    protocol = escape(server.get("SERVER_PROTOCOL", "")).split("/")[0].lower()
    if protocol:
        host = escape(server.get("HTTP_HOST", ""))
        path = escape(server.get("REQUEST_URI", ""))
        return f"{protocol}://{host}{path}"

    return escape(frame.file)


def backtrace_lines(trace: Trace) -> list[BacktraceLine]:
    return [
        BacktraceLine(
            file=escape(frame.file),
            number=escape(frame.line),
            method=escape(frame.function) if frame.function is not None else None,
        )
        for frame in trace
    ]


def build_server_environment(env: NotifierConfig) -> ServerEnvironment:
    return ServerEnvironment(
        project_root=escape(env.AIRBRAKE_PROJECT_ROOT),
        environment_name=escape(env.environment_name),
        app_version=escape(env.AIRBRAKE_PROJECT_VERSION),
        hostname=escape(env.HOSTNAME),
    )


def build_notice(
    api_key: str,
    message: Any,
    exception_type: Any,
    frames: Sequence[Frame | Mapping[str, Any]] | None,
    extra_data: Mapping[str, Any] | None,
    env: NotifierConfig,
    request_context: RequestContext | None = None,
) -> Notice:
    """
    Assembles the notice for one error. When no frames are given the current stack is
    captured, starting at the first frame outside this library.

    Raises `InvalidNoticeData` when `extra_data` is not a mapping, and
    pydantic's `ValidationError` for frames that cannot be read.
    """
    extra_data = _require_mapping("extra_data", extra_data)
    context = request_context or RequestContext()

    trace = [as_frame(f) for f in frames] if frames else capture_trace()
    origin = trace[0]

    component, action = resolve_component_action(origin, context)
    params = serialize_variables(collect_params(extra_data, context))
    session = serialize_variables(context.session) if context.session else None

    return Notice(
        api_key=api_key,
        request=NoticeRequest(
            params=params,
            component=component,
            action=action,
            url=resolve_url(origin, context),
            session=session,
            cgi_data=serialize_variables(context.server),
        ),
        error=NoticeError(
            message=escape(message),
            class_name=escape(exception_type),
            backtrace=backtrace_lines(trace),
        ),
        server_environment=build_server_environment(env),
    )
