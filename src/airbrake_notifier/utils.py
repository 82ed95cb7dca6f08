import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

# XML 1.0 forbids these even when escaped.
_ILLEGAL_XML_CHARS = re.compile("[\x01-\x08\x0b\x0c\x0e-\x1f\ud800-\udfff\ufffe\uffff]")


def exception_formatter(exception: BaseException) -> str:
    return f"{type(exception).__module__}.{type(exception).__qualname__}: {exception}"


def safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return safe_repr(value)


def safe_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception:
        return "<unprintable>"


def display_string(value: Any) -> str:
    """
    Converts a leaf value into the text that is reported for it.
    None becomes an empty string, bytes are decoded leniently and everything else
    goes through str().
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return safe_str(value)


def escape(value: Any) -> str:
    """
    Returns the XML-safe text for `value`. NUL bytes, lone surrogates and the other
    characters XML 1.0 cannot carry become "_"; markup characters are escaped by the XML
    writer itself.
    """
    text = display_string(value).replace("\0", "_")
    return _ILLEGAL_XML_CHARS.sub("_", text)


def prefix_logger(prefix: str, logger: logging.Logger) -> logging.LoggerAdapter:
    """
    Returns a logger that prefixes all messages with `prefix`.
    """

    class PrefixedLoggingAdapter(logging.LoggerAdapter):
        def process(self, msg, kwargs):
            return f"{prefix}{msg}", kwargs

    return PrefixedLoggingAdapter(logger)
