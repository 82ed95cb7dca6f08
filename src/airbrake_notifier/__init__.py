from airbrake_notifier.configuration import NotifierConfig, load_from_environment
from airbrake_notifier.notice import InvalidNoticeData, Notice, build_notice
from airbrake_notifier.notifier import LocatorMetadata, Notifier
from airbrake_notifier.options import merge_options
from airbrake_notifier.request_context import RequestContext
from airbrake_notifier.trace import Frame, capture_trace, normalize_trace, trace_from_exception
from airbrake_notifier.transport import (
    DummyTransport,
    RequestsTransport,
    Transport,
    TransportResult,
)
from airbrake_notifier.variables import VariableNode, serialize_variable

__all__ = [
    "DummyTransport",
    "Frame",
    "InvalidNoticeData",
    "LocatorMetadata",
    "Notice",
    "Notifier",
    "NotifierConfig",
    "RequestContext",
    "RequestsTransport",
    "Transport",
    "TransportResult",
    "VariableNode",
    "build_notice",
    "capture_trace",
    "load_from_environment",
    "merge_options",
    "normalize_trace",
    "serialize_variable",
    "trace_from_exception",
]
