import pytest
from pydantic import ValidationError

from airbrake_notifier.trace import (
    DEFAULT_FILE,
    DEFAULT_LINE,
    Frame,
    capture_trace,
    class_name_of,
    normalize_trace,
    trace_from_exception,
)


class TestNormalizeTrace:
    def test_shifts_attribution(self):
        raw = [
            {"file": "a.py", "line": 10, "function": "inner", "class": "Service"},
            {"file": "b.py", "line": 20, "function": "middle"},
            {"file": "c.py", "line": 30, "function": "outer", "class": "App"},
        ]

        trace = normalize_trace(raw, "fault.py", 5)

        assert len(trace) == len(raw) + 1
        assert (trace[0].file, trace[0].line) == ("fault.py", 5)
        assert (trace[0].function, trace[0].class_name) == ("inner", "Service")
        assert (trace[1].file, trace[1].line) == ("a.py", 10)
        assert (trace[1].function, trace[1].class_name) == ("middle", None)
        assert (trace[2].file, trace[2].line) == ("b.py", 20)
        assert (trace[2].function, trace[2].class_name) == ("outer", "App")
        # Nothing above the last frame, it keeps its own attribution.
        assert (trace[3].file, trace[3].line) == ("c.py", 30)
        assert (trace[3].function, trace[3].class_name) == ("outer", "App")

    @pytest.mark.parametrize("length", [1, 2, 5])
    def test_frame_i_takes_raw_frame_i_function(self, length: int):
        raw = [
            Frame(file=f"f{i}.py", line=i, function=f"fn{i}", class_name=f"C{i}")
            for i in range(length)
        ]

        trace = normalize_trace(raw, "origin.py", 99)

        assert len(trace) == length + 1
        for i in range(length):
            assert trace[i].function == raw[i].function
            assert trace[i].class_name == raw[i].class_name
            assert trace[i + 1].file == raw[i].file

    def test_last_frame_without_function(self):
        trace = normalize_trace([{"file": "a.py", "line": 1}], "origin.py", 2)

        assert trace[0].function is None
        assert trace[1].function is None
        assert trace[1].class_name is None

    def test_empty_raw_frames(self):
        trace = normalize_trace([], "origin.py", 3)
        assert trace == [Frame(file="origin.py", line=3)]

    def test_missing_location_uses_defaults(self):
        trace = normalize_trace([{"function": "f"}], None, None)

        assert (trace[0].file, trace[0].line) == (DEFAULT_FILE, DEFAULT_LINE)
        assert (trace[1].file, trace[1].line) == (DEFAULT_FILE, DEFAULT_LINE)
        assert trace[0].function == "f"

    def test_input_frames_are_not_modified(self):
        raw = [Frame(file="a.py", line=1, function="a"), Frame(file="b.py", line=2, function="b")]
        normalize_trace(raw, "origin.py", 1)
        assert raw[0].function == "a"
        assert raw[1].function == "b"


def test_frame_rejects_bad_line():
    with pytest.raises(ValidationError):
        Frame.model_validate({"file": "a.py", "line": "not a number"})


def test_frame_is_frozen():
    with pytest.raises(ValidationError):
        Frame(file="a.py").file = "b.py"  # type: ignore[misc]


class Widget:
    def method(self):
        pass


def test_class_name_of():
    assert class_name_of(Widget.method.__code__) == "Widget"
    assert class_name_of(test_class_name_of.__code__) is None

    def local():
        pass

    assert class_name_of(local.__code__) is None


def _capture_here():
    return capture_trace()


def test_capture_trace_starts_at_caller():
    trace = _capture_here()

    assert trace[0].file == __file__
    assert trace[0].function == "_capture_here"
    assert trace[1].file == __file__
    assert trace[1].function == "test_capture_trace_starts_at_caller"
    assert all(isinstance(frame, Frame) for frame in trace)


class Failing:
    def explode(self):
        raise RuntimeError("boom")


def _call_explode():
    Failing().explode()


def test_trace_from_exception():
    try:
        _call_explode()
    except RuntimeError as e:
        trace = trace_from_exception(e)
    else:
        pytest.fail("expected RuntimeError")

    assert trace[0].file == __file__
    assert trace[0].function == "explode"
    assert trace[0].class_name == "Failing"
    assert trace[1].function == "_call_explode"
    assert trace[1].class_name is None
    assert trace[2].function == "test_trace_from_exception"
    assert trace[2].file == __file__
    # Callers above the handler are reported too.
    assert len(trace) > 3
    assert trace[3].file != __file__


def _catch_and_trace():
    try:
        _call_explode()
    except RuntimeError as e:
        return trace_from_exception(e)


def test_trace_from_exception_includes_handler_callers():
    trace = _catch_and_trace()

    assert [frame.function for frame in trace[:4]] == [
        "explode",
        "_call_explode",
        "_catch_and_trace",
        "test_trace_from_exception_includes_handler_callers",
    ]
    assert trace[3].file == __file__


def test_trace_from_unraised_exception_captures_stack():
    trace = trace_from_exception(ValueError("never raised"))

    assert trace[0].file == __file__
    assert trace[0].function == "test_trace_from_unraised_exception_captures_stack"
