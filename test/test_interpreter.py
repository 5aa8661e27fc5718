"""Test session interpreters"""
import sys
import threading
import time

import pytest

from multirepl.config_classes import SessionConfig
from multirepl.exceptions import NamespaceCollisionError, SessionClosedError
from multirepl.interpreter import Interpreter, analyse_names
from multirepl.results import Outcome


@pytest.fixture
def session(store):
    interpreter = Interpreter(1, store)
    yield interpreter
    interpreter.close()


@pytest.fixture
def other(store):
    interpreter = Interpreter(2, store)
    yield interpreter
    interpreter.close()


def test_bindings_carry_over(session):
    r = session.compile_and_eval("x = 5")
    assert r.ok
    assert r.bound_names == ("x",)
    assert r.result_name is None
    assert r.module_name == "session_1.line1"

    r = session.compile_and_eval("x + 1")
    assert r.ok
    assert r.value == 6
    assert r.result_name == "res0"
    assert r.module_name == "session_1.line2"
    assert session.bindings == {"x": 5, "res0": 6}


def test_sessions_are_isolated(session, other):
    assert session.compile_and_eval("x = 5").ok
    assert session.compile_and_eval("x + 1").value == 6

    r = other.compile_and_eval("x + 1")
    assert r.outcome is Outcome.COMPILE_ERROR
    assert "'x'" in r.diagnostic.message
    assert r.diagnostic.span.lineno == 1
    assert r.diagnostic.span.col_offset == 0


def test_identical_snippets(session, other):
    a = session.compile_and_eval("items = []")
    b = other.compile_and_eval("items = []")
    assert a.module_name != b.module_name

    session.compile_and_eval("items.append(1)")
    assert session.bindings["items"] == [1]
    assert other.bindings["items"] == []
    assert other.compile_and_eval("len(items)").value == 0


def test_results_are_numbered(session):
    assert session.compile_and_eval("1").result_name == "res0"
    assert session.compile_and_eval("y = 2").result_name is None
    r = session.compile_and_eval("res0 + y")
    assert r.result_name == "res1"
    assert r.value == 3


def test_functions_and_classes(session):
    session.compile_and_eval("x = 5")
    session.compile_and_eval("def double():\n    return x * 2")
    assert session.compile_and_eval("double()").value == 10

    r = session.compile_and_eval(
        "class Point:\n    def __init__(self, a):\n        self.a = a"
    )
    assert r.ok
    point = session.bindings["Point"]
    assert point.__module__ == r.module_name
    assert sys.modules[r.module_name].Point is point


def test_functions_keep_their_bindings(session):
    session.compile_and_eval("x = 5")
    session.compile_and_eval("def get():\n    return x")
    session.compile_and_eval("x = 6")
    # like any REPL that wraps lines: get() still sees the x it was defined with
    assert session.compile_and_eval("(x, get())").value == (6, 5)


def test_source_in_store(session, store):
    session.compile_and_eval("x = 5")
    session.compile_and_eval("x + 1")
    source = store.path_for("session_1.line2").read_text()
    assert "from session_1.line1 import x" in source
    assert "res0 = x + 1" in source


def test_syntax_error(session):
    r = session.compile_and_eval("x = = 1")
    assert r.outcome is Outcome.COMPILE_ERROR
    assert r.diagnostic.span.lineno == 1
    assert r.diagnostic.text.strip() == "x = = 1"
    # nothing was written
    assert session.lines == []
    assert session.compile_and_eval("x = 1").module_name == "session_1.line1"


@pytest.mark.parametrize("snippet", ["return 1", "break", "nonlocal q"])
def test_compile_only_errors(session, snippet):
    assert session.compile_and_eval(snippet).outcome is Outcome.COMPILE_ERROR


def test_undefined_name_in_function(session):
    r = session.compile_and_eval("def f():\n    return nope")
    assert r.outcome is Outcome.COMPILE_ERROR
    assert r.diagnostic.message == "name 'nope' is not defined"
    assert r.diagnostic.span.lineno == 2


def test_names_defined_by_snippet_are_fine(session):
    snippet = "def f():\n    return later\nlater = 3\nf() + len([i for i in range(2)])"
    assert session.compile_and_eval(snippet).value == 5


def test_star_import(session):
    r = session.compile_and_eval("from math import *\nfloor(2.5)")
    assert r.ok
    assert r.value == 2
    assert "floor" in r.bound_names
    assert session.compile_and_eval("floor(7.5) + ceil(0.5)").value == 8


def test_star_import_of_missing_name(session):
    r = session.compile_and_eval("from math import *\nnope")
    assert r.outcome is Outcome.RUNTIME_ERROR
    assert r.error.type_name == "NameError"


def test_usable_after_every_error_kind(session, store):
    session.compile_and_eval("x = 1")
    assert session.compile_and_eval("x = = 2").outcome is Outcome.COMPILE_ERROR
    assert session.compile_and_eval("y").outcome is Outcome.COMPILE_ERROR
    assert session.compile_and_eval("x + 1").value == 2

    # someone else wrote the next line module
    store.write("session_1.line3", "taken = True\n")
    with pytest.raises(NamespaceCollisionError):
        session.compile_and_eval("z = x + 2")
    assert session.compile_and_eval("x + 3").value == 4

    assert session.compile_and_eval("1 / 0").outcome is Outcome.RUNTIME_ERROR
    assert session.compile_and_eval("x + 4").value == 5
    assert "z" not in session.bindings
    assert session.lines == [
        "session_1.line1",
        "session_1.line2",
        "session_1.line4",
        "session_1.line6",
    ]


def test_runtime_error_is_captured(session):
    session.compile_and_eval("x = 1")
    r = session.compile_and_eval("y = 2\n1 / 0")
    assert r.outcome is Outcome.RUNTIME_ERROR
    assert r.error.type_name == "ZeroDivisionError"
    assert "division by zero" in r.error.message
    assert "ZeroDivisionError" in r.error.traceback
    assert r.module_name not in sys.modules

    # nothing from the failed line is bound, and the session carries on
    assert "y" not in session.bindings
    assert session.compile_and_eval("x + 1").value == 2


def test_runtime_error_can_propagate(store):
    interpreter = Interpreter(1, store, config=SessionConfig(propagate_exceptions=True))
    try:
        with pytest.raises(ZeroDivisionError):
            interpreter.compile_and_eval("1 / 0")
        assert interpreter.compile_and_eval("2").value == 2
    finally:
        interpreter.close()


def test_system_exit_is_captured(session):
    r = session.compile_and_eval("raise SystemExit(3)")
    assert r.outcome is Outcome.RUNTIME_ERROR
    assert r.error.type_name == "SystemExit"


def test_delete_binding(session):
    session.compile_and_eval("x = 1")
    assert session.compile_and_eval("del x").ok
    assert "x" not in session.bindings
    assert session.compile_and_eval("x").outcome is Outcome.COMPILE_ERROR


def test_empty_snippet(session):
    r = session.compile_and_eval("# nothing here\n")
    assert r.ok
    assert r.module_name is None
    assert session.lines == []


def test_closed_session(store):
    interpreter = Interpreter(1, store)
    interpreter.compile_and_eval("x = 1")
    interpreter.close()
    assert interpreter.closed
    assert "session_1.line1" not in sys.modules
    with pytest.raises(SessionClosedError):
        interpreter.compile_and_eval("x")
    # artifacts stay
    assert store.contains("session_1.line1")


def test_recreated_session_continues_numbering(store):
    first = Interpreter(1, store)
    first.compile_and_eval("x = 1")
    first.compile_and_eval("x = 2")
    first.close()

    second = Interpreter(1, store)
    try:
        r = second.compile_and_eval("y = 3")
        assert r.module_name == "session_1.line3"
        assert second.bindings == {"y": 3}
    finally:
        second.close()


def test_two_live_interpreters_for_one_session(session, tmp_path):
    from multirepl.store import CompiledOutputStore

    with pytest.raises(NamespaceCollisionError):
        Interpreter(1, CompiledOutputStore(tmp_path / "elsewhere"))


@pytest.mark.skipif(sys.gettrace() is not None, reason="another tracer is active")
def test_cancel(session):
    assert not session.cancel()
    results = []
    snippet = "import time\nwhile True:\n    time.sleep(0.01)"

    def evaluate():
        results.append(session.compile_and_eval(snippet))

    worker = threading.Thread(target=evaluate)
    worker.start()
    deadline = time.time() + 5
    while not session.cancel():
        assert time.time() < deadline
        time.sleep(0.01)
    worker.join(5)
    assert not worker.is_alive()
    assert results[0].outcome is Outcome.RUNTIME_ERROR
    assert results[0].error.type_name == "EvaluationCancelled"
    assert session.compile_and_eval("1 + 1").value == 2


def test_analyse_names():
    bound, mentioned, unbound = analyse_names(
        "import os\ndef f(a):\n    return a + b\nc = d", "<test>"
    )
    assert bound == {"os", "f", "c"}
    assert {"os", "f", "b", "c", "d"} <= mentioned
    assert unbound == ["d", "b"]
