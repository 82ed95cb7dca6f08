"""
Call stack capture and the frame attribution fix-up applied to it.

Raw stacks are recorded as "call records": each record holds the file and line of a call
site, but the function and class of the function being *called* there. Reporting wants the
opposite pairing, where a frame names the function that owns its file/line, and wants the
fault site itself as the first frame. `normalize_trace` performs that correction.
"""

import logging
import sys
from types import CodeType, FrameType, TracebackType
from typing import Any, Iterator, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_FILE = __file__
DEFAULT_LINE = 0

_LIBRARY_PACKAGE = __name__.rsplit(".", 1)[0]


class Frame(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    file: str = DEFAULT_FILE
    line: int = DEFAULT_LINE
    function: str | None = None
    class_name: str | None = Field(default=None, alias="class")

    @field_validator("file", mode="before")
    @classmethod
    def default_file(cls, file: Any) -> Any:
        return DEFAULT_FILE if file is None or file == "" else file

    @field_validator("line", mode="before")
    @classmethod
    def default_line(cls, line: Any) -> Any:
        return DEFAULT_LINE if line is None or line == "" else line


Trace = list[Frame]


def as_frame(frame: Frame | Mapping[str, Any]) -> Frame:
    if isinstance(frame, Frame):
        return frame
    return Frame.model_validate(frame)


def normalize_trace(
    raw_frames: Sequence[Frame | Mapping[str, Any]],
    origin_file: str | None,
    origin_line: int | None,
) -> Trace:
    """
    Prepends the fault site to `raw_frames` and shifts function/class attribution down by
    one, so that every frame names the function its file/line belongs to.

    The result is one frame longer than the input. The last frame has nothing to borrow
    from and keeps its own function/class.
    """
    frames = [Frame(file=origin_file, line=origin_line)]
    frames.extend(as_frame(f) for f in raw_frames)

    normalized: Trace = []
    for i, frame in enumerate(frames):
        if i + 1 < len(frames):
            caller = frames[i + 1]
            frame = frame.model_copy(
                update={"function": caller.function, "class_name": caller.class_name}
            )
        normalized.append(frame)
    return normalized


def class_name_of(code: CodeType) -> str | None:
    qualname: str = getattr(code, "co_qualname", code.co_name)
    owner, _, _ = qualname.rpartition(".")
    if not owner or owner.endswith("<locals>"):
        return None
    return owner


def _is_library_frame(frame: FrameType) -> bool:
    module = frame.f_globals.get("__name__", "")
    return module == _LIBRARY_PACKAGE or module.startswith(f"{_LIBRARY_PACKAGE}.")


def _normalized_from_stack(stack: Sequence[tuple[FrameType, int]]) -> Trace:
    """
    `stack` is innermost first, each entry a frame object and the line it is executing.
    """
    records = [
        Frame(
            file=caller.f_code.co_filename,
            line=lineno,
            function=callee.f_code.co_name,
            class_name=class_name_of(callee.f_code),
        )
        for (callee, _), (caller, lineno) in zip(stack, stack[1:])
    ]
    origin, origin_line = stack[0]
    trace = normalize_trace(records, origin.f_code.co_filename, origin_line)

    # The outermost frame is known here, so give it its real owner.
    outermost = stack[-1][0].f_code
    trace[-1] = trace[-1].model_copy(
        update={"function": outermost.co_name, "class_name": class_name_of(outermost)}
    )
    return trace


def iter_traceback(tb: TracebackType | None) -> Iterator[tuple[FrameType, int]]:
    while tb is not None:
        yield tb.tb_frame, tb.tb_lineno
        tb = tb.tb_next


def capture_trace(skip: int = 0) -> Trace:
    """
    Captures the stack of the caller, skipping `skip` additional frames and any frames that
    belong to this library.
    """
    frame: FrameType | None = sys._getframe(1 + skip)
    while frame is not None and _is_library_frame(frame) and frame.f_back is not None:
        frame = frame.f_back

    stack = []
    while frame is not None:
        stack.append((frame, frame.f_lineno))
        frame = frame.f_back
    return _normalized_from_stack(stack)


def trace_from_exception(exception: BaseException) -> Trace:
    stack = list(iter_traceback(exception.__traceback__))
    if not stack:
        logger.debug(f"{type(exception).__name__} has no traceback, capturing current stack")
        return capture_trace(skip=1)

    # The traceback stops at the handler; its callers are still live on the stack.
    callers = []
    caller = stack[0][0].f_back
    while caller is not None:
        callers.append((caller, caller.f_lineno))
        caller = caller.f_back

    stack.reverse()
    stack.extend(callers)
    return _normalized_from_stack(stack)
