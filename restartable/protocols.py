# -*- coding: utf-8 -*-
"""Standard signaling protocols, built on top of the `signal` form.

Each of `error`, `cerror` (correctable error), `warn`, `inform` and `interrupt`
makes sure the condition carries the corresponding severity tag, and then
implements its own protocol on top of `signal`. `warn` and `inform` come with
a ``muffle`` restart, and `cerror` with a ``proceed`` restart; we also provide
the ready-made restart functions `muffle` and `proceed`.

Although these protocols cover the most common use cases, they might not cover
all conceivable uses. In such a situation just create a custom protocol; see
the existing protocols as examples.

This module also provides `attempt` (R's ``try``), which turns an error into
a returned `TryError`, and `toplevel`, which runs a computation in its own,
fresh handler and restart context.
"""

__all__ = ["error", "cerror", "proceed",
           "warn", "inform", "muffle",
           "interrupt",
           "suppress_warnings", "suppress_messages",
           "attempt", "TryError",
           "toplevel", "ABORTED"]

import contextvars
import logging

from .condition import Condition, Severity, make_condition
from .config import Config
from .extent import current_state, fresh_state
from .handlers import handlers, calling, exiting
from .restarts import restarts, with_restart, find_restart, invoke_restart, invoker
from .signaler import signal, UnhandledError, _Marker

logger = logging.getLogger(__name__)

ABORTED = _Marker("ABORTED")

def error(condition, message="", origin=None, *, cause=None, **data):
    """Like `signal`, but for ``"error"`` conditions; never returns normally.

    If no handler takes over, the computation is aborted by raising
    `UnhandledError` (after the unhandled-error hook has had its say; see
    `on_unhandled_error`). Note *handled* means that a handler must actually
    transfer control, by exiting or by invoking a restart; a condition does not
    count as handled simply because a calling handler was triggered.
    """
    condition = make_condition(condition, message, origin, cause=cause, data=data,
                               severity=Severity.ERROR)
    signal(condition)
    # The hook chose to resume; but `error` is not allowed to.
    raise UnhandledError(condition, current_state())

def cerror(condition, message="", origin=None, *, cause=None, **data):
    """Like `error`, but allow a handler to instruct the caller to ignore the error.

    `cerror` internally establishes a restart named ``proceed``, which can be
    invoked to make `cerror` return normally to its caller::

        with handlers(calling("odd_number", proceed)):
            out = []
            for x in range(10):
                if x % 2 == 1:
                    cerror("odd_number", f"{x} is odd")  # if unhandled, raises UnhandledError
                out.append(x)

    We use the name "proceed" instead of Common Lisp's "continue", because in
    Python `continue` is a reserved word.
    """
    with restarts(proceed=(lambda: None)):  # just for control, no return value
        error(condition, message, origin, cause=cause, **data)

proceed = invoker("proceed")
proceed.__doc__ = "Invoke the 'proceed' restart. Restart function for use with `cerror`."

def warn(condition, message="", origin=None, *, cause=None, **data):
    """Like `signal`, but for ``"warning"`` conditions.

    Establishes a restart ``muffle``, which a handler can invoke to suppress
    the warning; execution then continues normally after the `warn` call.

    If no handler takes over, the warning is reported using Python's standard
    `warnings` module, with category `ConditionWarning`, and `warn` returns
    normally.

    `Config.warn_level` changes this: when negative, unhandled warnings are
    not reported; when 2 or more, the warning is escalated into an error
    (classes ``("escalated_warning", "error", "condition")``, with the original
    warning as the `warning` field) before any handler sees it.
    """
    condition = make_condition(condition, message, origin, cause=cause, data=data,
                               severity=Severity.WARNING)
    if Config.warn_level >= 2:
        error(Condition(("escalated_warning", "error"),
                        f"(converted from warning) {condition.message}",
                        condition.origin, cause=condition.cause,
                        data={"warning": condition}))
    with restarts(muffle=(lambda: None)):
        signal(condition)

def inform(condition, message="", origin=None, *, cause=None, **data):
    """Like `signal`, but for ``"message"`` conditions; like R's ``message``.

    For convenience, a single string argument is taken as the message of a
    plain ``"message"`` condition::

        inform("reading input...")

    Establishes a restart ``muffle``. If no handler takes over, the message is
    printed using `Config.printer`.
    """
    if isinstance(condition, str) and not message:
        condition, message = "message", condition
    condition = make_condition(condition, message, origin, cause=cause, data=data,
                               severity=Severity.MESSAGE)
    with restarts(muffle=(lambda: None)):
        signal(condition)

muffle = invoker("muffle")
muffle.__doc__ = "Invoke the 'muffle' restart. Restart function for use with `warn` and `inform`."

def interrupt(condition="interrupt", message="interrupted", origin=None, *, cause=None, **data):
    """Signal an ``"interrupt"`` condition. Never returns normally.

    An interrupt terminates the computation (by raising `UnhandledInterrupt`)
    unless an exiting handler for it, or a restart, takes over. Calling handlers
    see it, but returning normally from them does not stop it.
    """
    condition = make_condition(condition, message, origin, cause=cause, data=data,
                               severity=Severity.INTERRUPT)
    signal(condition)

def _muffle_if_possible(condition):
    restart = find_restart("muffle")
    if restart is not None:
        invoke_restart(restart)

def suppress_warnings():
    """Context manager. Muffle all warnings signaled by `warn` in the block.

    Like R's ``suppressWarnings``. Warnings signaled without a ``muffle``
    restart (e.g. by plain `signal`) are left alone.
    """
    return handlers(calling("warning", _muffle_if_possible))

def suppress_messages():
    """Context manager. Muffle all messages signaled by `inform` in the block.

    Like R's ``suppressMessages``.
    """
    return handlers(calling("message", _muffle_if_possible))

class TryError:
    """The value of `attempt` when the body signaled an error.

    The error condition is available as the `condition` attribute. A `TryError`
    is falsy, so ``if not result: ...`` works as an error check.
    """
    def __init__(self, condition):
        self.condition = condition
    def __repr__(self):
        return f"TryError({repr(self.condition)})"
    def __bool__(self):
        return False

def attempt(body, *args, silent=False, **kwargs):
    """Call `body(*args, **kwargs)`, turning errors into a `TryError` value.

    Like R's ``try``. Any ``"error"`` condition (signaled, or a raised Python
    exception) not handled inside `body` makes `attempt` return a `TryError`;
    the error message is printed with `Config.printer` unless `silent`.
    """
    def caught(condition):
        if not silent:
            Config.printer(f"Error: {condition.message}")
        return TryError(condition)
    with handlers(exiting("error", caught)) as result:
        result << body(*args, **kwargs)
    return result.get()

def toplevel(thunk, *args, **kwargs):
    """Run `thunk(*args, **kwargs)` as an independent top-level computation.

    The computation gets a fresh, empty handler and restart stack, so nothing
    established by the caller is visible inside it (and vice versa). It runs in
    a copy of the current `contextvars` context.

    A restart named ``abort`` is established around the computation; invoking
    it ends the computation, and `toplevel` then returns `ABORTED`. An
    unhandled error propagates out of `toplevel` as `UnhandledError`, after
    all cleanup actions of the computation have run.
    """
    def run():
        fresh_state()
        logger.debug("toplevel computation %r starting", thunk)
        return with_restart("abort", lambda: ABORTED, thunk, *args, **kwargs)
    return contextvars.copy_context().run(run)
