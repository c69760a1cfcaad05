# -*- coding: utf-8 -*-
"""Deferred cleanup actions, run when a dynamic extent ends.

`defer` registers an action in the innermost live scope. When that scope
exits, by whatever route (normal exit, an exiting handler or a restart
unwinding past it, or an exception propagating through it), its deferred
actions run exactly once, most recently deferred first::

    with scope():
        f = open(path)
        defer(f.close)
        ...

Registrations accumulate; a later `defer` never replaces an earlier one.

If a deferred action raises, the remaining actions still run. Afterwards each
failure is reported as a secondary ``"cleanup_error"`` warning condition,
which handlers can muffle or claim like any other warning (see `warn`). The
failing exception is available as the `cause` of that condition.
"""

__all__ = ["defer", "scope", "scoped"]

from functools import partial, wraps
import logging

from .condition import Condition
from .config import Config
from .extent import Scope, ScopeViolation, current_scope

logger = logging.getLogger(__name__)

def defer(action, *args, **kwargs):
    """Run `action(*args, **kwargs)` when the innermost live scope exits.

    Valid only inside the dynamic extent of some scope (`scope`, `handlers`,
    `restarts`, or anything built on them); elsewhere raises `ScopeViolation`.

    Returns `action`, so this can also be used as a decorator::

        with scope():
            @defer
            def _():
                print("bye")
    """
    if not callable(action):
        raise TypeError(f"Expected a callable, got {type(action)} with value {repr(action)}")
    target = current_scope()
    if target is None:
        raise ScopeViolation("defer() called outside the dynamic extent of any scope")
    target.deferred.append(partial(action, *args, **kwargs) if (args or kwargs) else action)
    return action

def scope():
    """Introduce a bare dynamic extent, with no handlers or restarts.

    Context manager. Its only use is to collect `defer`red cleanup actions,
    like the frame of a function in R collects its ``on.exit`` actions.
    The as-binding, if any, is the `Scope` object itself.
    """
    return Scope()

def scoped(f):
    """Decorator. Run each call of `f` in its own `scope`.

    Then `defer` inside `f` attaches to the call of `f`, and the actions run
    when that call returns or is unwound.
    """
    @wraps(f)
    def scoped_call(*args, **kwargs):
        with scope():
            return f(*args, **kwargs)
    return scoped_call

def report_cleanup_failures(failures):
    """Report each exception in `failures` as a ``"cleanup_error"`` warning.

    Every failure gets reported, even if reporting an earlier one transfers
    control elsewhere (a handler claiming the warning), so none is silently
    dropped.
    """
    if not failures:
        return
    first, *rest = failures
    try:
        if Config.report_cleanup_failures:
            # Late import; the protocols build on the scope machinery.
            from .protocols import warn
            warn(Condition(("cleanup_error", "warning"),
                           f"error in deferred cleanup action: {type(first).__name__}: {first}",
                           cause=first))
        else:
            logger.debug("suppressed report of cleanup failure %r", first)
    finally:
        report_cleanup_failures(rest)
