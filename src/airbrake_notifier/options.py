"""
Transport options are layered: options the notifier cannot work without, options the
caller asked for, and defaults used when nobody said otherwise.

    merge_options({"follow_redirects": True}, {"timeout": 2}, DEFAULT_OPTIONS)
    # {"follow_redirects": True, "timeout": 2, "connect_timeout": 30}
"""

from typing import Any, Mapping

OptionSet = dict[str, Any]

REQUIRED_OPTIONS: Mapping[str, Any] = {
    "follow_redirects": True,
}

DEFAULT_OPTIONS: Mapping[str, Any] = {
    "connect_timeout": 30,
    "timeout": 6,
}


def merge_options(
    mandatory: Mapping[str, Any] | None,
    caller: Mapping[str, Any] | None,
    defaults: Mapping[str, Any] | None,
) -> OptionSet:
    """
    Each key takes its value from the first layer that defines it, in the order
    mandatory, caller, defaults. Keys no layer defines stay absent.
    """
    merged: OptionSet = {}
    for layer in (mandatory, caller, defaults):
        for key, value in (layer or {}).items():
            merged.setdefault(key, value)
    return merged
