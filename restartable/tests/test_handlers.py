# -*- coding: utf-8 -*-

from concurrent.futures import ThreadPoolExecutor

import pytest

from ..cleanup import defer, scope
from ..collections import unbox
from ..extent import Discipline, ExtentState, ScopeViolation, current_scopes
from ..handlers import (handlers, with_handlers, exiting, calling,
                        try_catch, with_calling_handlers, available_handlers)
from ..signaler import signal, CONTINUE, UnhandledError

# --------------------------------------------------------------------------------
# Handler search order

def test_innermost_wins():
    def inner():
        return with_handlers([exiting("oops", lambda c: "inner")],
                             lambda: signal("oops"))
    assert with_handlers([exiting("oops", lambda c: "outer")], inner) == "inner"

def test_registration_order_within_one_form():
    assert with_handlers([exiting("oops", lambda c: "first"),
                          exiting("oops", lambda c: "second")],
                         lambda: signal("oops")) == "first"
    # first applicable, not best match
    assert with_handlers([exiting("condition", lambda c: "general"),
                          exiting("oops", lambda c: "specific")],
                         lambda: signal("oops")) == "general"

def test_search_continues_outward():
    def inner():
        return with_handlers([exiting("other", lambda c: "inner")],
                             lambda: signal("oops"))
    assert with_handlers([exiting("oops", lambda c: "outer")], inner) == "outer"

def test_tuple_filters():
    spec = exiting(("foo", "bar"), lambda c: c.classes[0])
    assert with_handlers([spec], lambda: signal("bar")) == "bar"
    assert with_handlers([spec], lambda: signal("foo")) == "foo"

def test_calling_handlers_fall_through():
    log = []
    def inner():
        return with_handlers([calling("oops", lambda c: log.append("inner calling"))],
                             lambda: signal("oops"))
    def middle():
        return with_handlers([calling("oops", lambda c: log.append("middle calling"))],
                             inner)
    assert with_handlers([exiting("oops", lambda c: "outer exiting")], middle) == "outer exiting"
    assert log == ["inner calling", "middle calling"]

    # declining handlers' return values are ignored; a plain condition then just returns
    assert with_handlers([calling("oops", lambda c: "mine")],
                         lambda: signal("oops")) is CONTINUE

def test_box_syntax():
    with handlers(exiting("error", lambda c: c.message)) as result:
        signal(("oops", "error"), "it broke")
        result << "not reached"  # pragma: no cover
    assert unbox(result) == "it broke"

    with handlers(exiting("error", lambda c: c.message)) as result:
        result << "normal exit"
    assert unbox(result) == "normal exit"

    # the default value of the block is None
    with handlers(exiting("error", lambda c: c.message)) as result:
        pass
    assert unbox(result) is None

def test_tuple_specs():
    assert with_handlers([("exiting", "oops", lambda c: 42)], lambda: signal("oops")) == 42
    with pytest.raises(TypeError):
        handlers(42)
    with pytest.raises(TypeError):
        exiting((), lambda c: None)
    with pytest.raises(TypeError):
        calling("oops", "not callable")
    with pytest.raises(ValueError):
        handlers(("resumable", "oops", lambda c: None))

# --------------------------------------------------------------------------------
# Unwinding

def test_exiting_handler_runs_after_cleanup():
    log = []
    with handlers(exiting("oops", lambda c: log.append("handler"))):
        defer(log.append, "outer cleanup")
        with scope():
            defer(log.append, "inner cleanup")
            signal("oops")
            log.append("not reached")  # pragma: no cover
    assert log == ["inner cleanup", "outer cleanup", "handler"]

def test_scopes_restored_after_unwind():
    depth = len(current_scopes())
    with handlers(exiting("oops", lambda c: None)):
        with scope():
            with scope():
                signal("oops")
    assert len(current_scopes()) == depth

def test_unhandled_error_propagates_through_handlers():
    log = []
    with pytest.raises(UnhandledError):
        with handlers(exiting("warning", lambda c: "wrong handler"),
                      calling("other", lambda c: log.append("wrong handler"))):
            defer(log.append, "cleanup")
            signal(("boom", "error"))
    assert log == ["cleanup"]

# --------------------------------------------------------------------------------
# Python exceptions

def test_exceptions_bridged_to_exiting_handlers():
    err = try_catch(lambda: int("not a number"), ValueError=lambda c: c.cause)
    assert isinstance(err, ValueError)

    def lookup():
        return {}["k"]
    assert try_catch(lookup, error=lambda c: c.classes) == ("KeyError", "LookupError", "error", "condition")

    # no matching handler: the exception propagates unchanged
    with pytest.raises(KeyError):
        try_catch(lookup, ValueError=lambda c: None)

def test_exceptions_not_seen_by_calling_handlers():
    log = []
    with pytest.raises(ValueError):
        with handlers(calling("error", log.append)):
            raise ValueError("x")
    assert log == []

def test_control_exceptions_not_bridged():
    # this UnhandledError already went through a full search of our handlers
    with pytest.raises(UnhandledError):
        with handlers(exiting("UnhandledError", lambda c: "caught")):
            with handlers(exiting("other", lambda c: None)):
                signal(("boom", "error"))

def test_unhandled_error_from_worker_thread_is_bridged():
    # the worker's handler search never saw our handlers
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(signal, ("boom", "error"), "it broke in a worker")
        assert try_catch(future.result, boom=lambda c: c.message) == "it broke in a worker"
        future = pool.submit(signal, ("boom", "error"))
        assert try_catch(future.result, error=lambda c: c.classes) == ("boom", "error", "condition")

# --------------------------------------------------------------------------------
# Calling handlers and masking

def test_handler_masked_while_running():
    log = []
    outer_log = []
    def handler(c):
        log.append(c.message)
        if c.message == "first":
            signal("oops", "second")  # does not reach this handler again
    with handlers(calling("oops", lambda c: outer_log.append(c.message))):
        with handlers(calling("oops", handler)):
            signal("oops", "first")
    assert log == ["first"]
    assert outer_log == ["second", "first"]

def test_exception_from_handler_skips_masked_exiting_handlers():
    def raiser(c):
        raise ValueError("from handler")
    def inner():
        return with_handlers([exiting("ValueError", lambda c: "inner caught"),
                              calling("oops", raiser)],
                             lambda: signal("oops"))
    assert with_handlers([exiting("ValueError", lambda c: "outer caught")], inner) == "outer caught"

def test_reentrant_signal_from_handler():
    log = []
    def handler(c):
        log.append(with_handlers([exiting("nested", lambda c2: "nested handled")],
                                 lambda: signal("nested")))
    with handlers(calling("oops", handler)):
        depth = len(current_scopes())
        signal("oops")
        assert len(current_scopes()) == depth
    assert log == ["nested handled"]

# --------------------------------------------------------------------------------
# Manual scope management

def test_manual_release_must_be_lifo():
    a = handlers(exiting("oops", lambda c: 1)).enter()
    b = handlers(exiting("oops", lambda c: 2)).enter()
    with pytest.raises(ScopeViolation):
        a.release()
    # the offending scope is retired anyway; the rest of the stack is unharmed
    assert a.state is ExtentState.EXITED
    assert current_scopes() == [b]
    b.release()
    assert current_scopes() == []
    with pytest.raises(ScopeViolation):
        a.release()  # already gone
    with pytest.raises(ScopeViolation):
        a.enter()  # a scope is entered only once

def test_generator_suspended_inside_handlers():
    log = []
    def gen():
        with handlers(exiting("oops", lambda c: "stale handler")):
            defer(log.append, "generator cleanup")
            yield 1
    g = gen()
    next(g)
    with pytest.raises(ScopeViolation):
        with scope():
            next(g, None)  # leaves the `with handlers` while our scope is innermost
    assert log == ["generator cleanup"]
    assert current_scopes() == []
    # the stale handler is gone for good
    assert available_handlers() == []
    assert with_handlers([exiting("oops", lambda c: "fresh handler")],
                         lambda: signal("oops")) == "fresh handler"

# --------------------------------------------------------------------------------
# Functional forms

def test_try_catch():
    log = []
    assert try_catch(lambda: signal(("oops", "error"), "hi"),
                     oops=lambda c: c.message,
                     finally_=lambda: log.append("finally")) == "hi"
    assert log == ["finally"]

    assert try_catch(lambda x: 2 * x, 21, finally_=lambda: log.append("finally again")) == 42
    assert log == ["finally", "finally again"]

    with pytest.raises(UnhandledError):
        try_catch(lambda: signal(("oops", "error")),
                  warning=lambda c: None,
                  finally_=lambda: log.append("finally on abort"))
    assert log[-1] == "finally on abort"

def test_with_calling_handlers():
    log = []
    def body():
        signal("oops", "hello")
        return "done"
    assert with_calling_handlers(body, oops=log.append) == "done"
    assert [c.message for c in log] == ["hello"]

def test_available_handlers():
    def f(c): pass  # pragma: no cover
    def g(c): pass  # pragma: no cover
    def h(c): pass  # pragma: no cover
    assert available_handlers() == []
    with handlers(exiting("a", f), calling(("b", "c"), g)):
        with handlers(calling("a", h)):
            assert available_handlers() == [("a", Discipline.CALLING, h),
                                            ("b", Discipline.CALLING, g),
                                            ("c", Discipline.CALLING, g)]
        assert available_handlers()[0] == ("a", Discipline.EXITING, f)

    # a running calling handler does not see itself
    seen = []
    with handlers(calling("oops", lambda c: seen.append(available_handlers()))):
        signal("oops")
    assert seen == [[]]
