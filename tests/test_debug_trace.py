"""
tests/test_debug_trace.py

Trace switches, categories and the log file copy.
"""

from __future__ import annotations

import pytest

import debug_trace
from debug_trace import close_log, set_trace_enabled, trace, trace_call


@pytest.fixture(autouse=True)
def tracing_off():
    yield
    set_trace_enabled(False)


class TestTrace:
    def test_silent_by_default(self, capsys):
        trace("hello", "BUILD")
        assert capsys.readouterr().err == ""

    def test_enabled(self, capsys):
        set_trace_enabled(True)
        trace("hello", "BUILD")
        assert "[BUILD] hello" in capsys.readouterr().err

    def test_primitive_category_is_opt_in(self, capsys):
        set_trace_enabled(True)
        trace("rect", "PRIM")
        assert capsys.readouterr().err == ""
        set_trace_enabled(True, primitives=True)
        trace("rect", "PRIM")
        assert "[PRIM] rect" in capsys.readouterr().err

    def test_log_file(self, tmp_path):
        log = tmp_path / "trace.log"
        set_trace_enabled(True, str(log))
        trace("to file", "BATCH")
        close_log()
        assert "[BATCH] to file" in log.read_text(encoding="utf-8")


class TestTraceCall:
    def test_entry_and_exit(self, capsys):
        @trace_call("PIPELINE")
        def double(x):
            return 2 * x

        set_trace_enabled(True)
        assert double(4) == 8
        err = capsys.readouterr().err
        assert ">>> " in err and "<<< " in err

    def test_exception_reraised(self, capsys):
        @trace_call()
        def boom():
            raise RuntimeError("bad")

        set_trace_enabled(True)
        with pytest.raises(RuntimeError):
            boom()
        assert "raised RuntimeError: bad" in capsys.readouterr().err

    def test_disabled_passthrough(self, capsys):
        @trace_call()
        def same(x):
            return x

        assert not debug_trace.DEBUG_TRACE
        assert same(3) == 3
        assert capsys.readouterr().err == ""
