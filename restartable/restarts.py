# -*- coding: utf-8 -*-
"""Restarts: named resumption points. Known as `RESTART-CASE` in Common Lisp.

Roughly, restarts can be thought of as canned error recovery strategies.
Low-level code defines what recovery actions are available; high-level code,
in a condition handler, chooses which one to take::

    def parse_entry(line):
        with restarts(use_value=(lambda x: x),
                      skip=(lambda: None)) as result:
            if not valid(line):
                error(("malformed_entry", "error"), line, line=line)
            result << parse(line)
        return unbox(result)

    with handlers(calling("malformed_entry", lambda c: invoke_restart("skip"))):
        entries = [parse_entry(line) for line in lines]

Invoking a restart unwinds the call stack up to the `with restarts` block
that established it (running all cleanup actions on the way), calls the
restart function, and makes its return value the value of that block.
Execution then continues after the block, **not** after the signal.

The most recently established restart of a given name wins. A restart is
reachable only while its block is running; invoking a restart whose block
has exited raises `NoSuchRestart`.
"""

__all__ = ["restarts", "with_restart", "with_restarts",
           "invoke_restart", "find_restart", "compute_restarts", "available_restarts",
           "invoker", "use_value",
           "BoundRestart", "NoSuchRestart"]

from collections import namedtuple
from functools import partial
from operator import itemgetter

from .collections import unbox
from .extent import ControlError, Scope, Unwind, current_state

class NoSuchRestart(ControlError):
    """Tried to invoke a restart that is not currently in (dynamic) scope."""

BoundRestart = namedtuple("BoundRestart", ["name", "function", "scope"])
BoundRestart.__doc__ = """A restart that is in scope, as returned by `find_restart`.

`name` is `None` for an anonymous restart. Accepted by `invoke_restart`.
"""

class Restarts(Scope):
    def __init__(self, bindings):
        """bindings: iterable of (name, callable); name is str or None."""
        bindings = list(bindings)
        for name, function in bindings:
            if not ((name is None or isinstance(name, str)) and callable(function)):
                raise TypeError(f"Each restart must be of the form name=callable, got {repr(name)}={repr(function)}")
        super().__init__(restarts=bindings)

    def __enter__(self):
        self.enter()
        return self.result

def restarts(**bindings):
    """Provide restarts. Context manager.

    Example::

        with restarts(use_value=(lambda x: x)) as result:
            ...
            result << 42

    The as-binding is a `box` holding the value of the block. Use `unbox`
    to get it. If the block invokes one of the restarts defined here, the box
    receives the value returned by the restart, and execution continues from
    immediately after the block. The ``result << ...`` at the end of the block
    sets the value for a normal exit. The default is `None`.

    A restart function can take any args and kwargs; its call signature
    depends only on how it is intended to be invoked.

    If you'd like a function instead of a ``with`` block, see `with_restart`
    and `with_restarts`.
    """
    return Restarts(bindings.items())

def with_restart(name, function, body, *args, **kwargs):
    """Call `body(*args, **kwargs)` with the restart `name` established.

    Functional form of `with restarts`, for one restart. `name` may be `None`
    for an anonymous restart, reachable only through `compute_restarts`.

    Return the value of `body`, or if the restart is invoked, the value
    of `function` called with the arguments given to `invoke_restart`.
    """
    with Restarts([(name, function)]) as result:
        result << body(*args, **kwargs)
    return unbox(result)

def with_restarts(**bindings):
    """Alternate syntax. Use restarts with a `def` instead of a `with`.

    Parametric decorator. Returns a `call_with_restarts` function that calls
    its argument with the restarts specified here. As a decorator, the def'd
    name is replaced by the result::

        @with_restarts(use_value=(lambda x: x))
        def result():  # must take no parameters, essentially just a variable
            ...
            return 42
        # now `result` is either 42 or the return value of a restart

    As a regular function, a restart context can be set up once and reused::

        with_usevalue = with_restarts(use_value=(lambda x: x))
        result = with_usevalue(dostuff)
    """
    def call_with_restarts(f):
        """Call `f` with the restarts stored in this closure.

        Invoking such a restart terminates `f`, and instead of its normal
        return value, returns whatever the restart returns.
        """
        with restarts(**bindings) as result:
            result << f()
        return unbox(result)
    return call_with_restarts

def find_restart(name):
    """Look up a restart. Known as `FIND-RESTART` in Common Lisp.

    Return a `BoundRestart` for the dynamically innermost restart called
    `name`, or `None` if there is no such restart in scope.
    """
    for scope in reversed(current_state().scopes):
        for restart_name, function in scope.restarts:
            if restart_name is not None and restart_name == name:
                return BoundRestart(restart_name, function, scope)
    return None

def compute_restarts():
    """Return all restarts currently in scope, innermost first.

    Shadowed and anonymous restarts are included. The format is
    ``[BoundRestart, ...]``.
    """
    return [BoundRestart(name, function, scope)
            for scope in reversed(current_state().scopes)
            for name, function in scope.restarts]

def available_restarts():
    """Return a sorted list of named restarts currently in scope.

    Shadowing is respected; for each unique name, the return value contains
    only the most recently bound restart. The format is ``[(name, callable), ...]``.
    """
    out = []
    seen = set()
    for restart in compute_restarts():
        if restart.name is not None and restart.name not in seen:
            seen.add(restart.name)
            out.append((restart.name, restart.function))
    return sorted(out, key=itemgetter(0))

def invoke_restart(name_or_restart, *args, **kwargs):
    """Invoke a restart currently in scope. Known as `INVOKE-RESTART` in Common Lisp.

    `name_or_restart` can be the name of a restart, or a `BoundRestart`
    returned by `find_restart` or `compute_restarts`. Any args and kwargs are
    passed through to the restart function.

    To *handle* a condition, call `invoke_restart` from a calling handler.
    The call terminates the handler, transferring control to the restart.

    If there is no such restart in scope, raises `NoSuchRestart`.

    This function never returns normally.
    """
    st = current_state()
    if isinstance(name_or_restart, str):
        restart = find_restart(name_or_restart)
        if restart is None:
            raise NoSuchRestart(f"No such restart: {repr(name_or_restart)}; available restarts: {[name for name, _ in available_restarts()]}")
    elif isinstance(name_or_restart, BoundRestart):
        restart = name_or_restart
        if not (restart.scope.live and any(s is restart.scope for s in st.scopes)):
            raise NoSuchRestart(f"Restart {repr(restart.name)} is no longer in scope")
    else:
        raise TypeError(f"Expected str or a BoundRestart, got {type(name_or_restart)} with value {repr(name_or_restart)}")
    # Found it; we are now guaranteed to unwind only up to the matching scope.
    raise Unwind(restart.scope, partial(restart.function, *args, **kwargs), reason=restart)

def invoker(restart_name, *args, **kwargs):
    """Create a handler action that just invokes the named restart.

    The args and kwargs are frozen into the created function, and passed
    through to the restart whenever it fires. The condition instance argument
    is accepted but ignored::

        with handlers(calling("oops", invoker("use_value", 42))):
            ...

    The returned function has the same name as the restart it invokes,
    to ease debugging.
    """
    def the_invoker(condition=None):
        invoke_restart(restart_name, *args, **kwargs)
    the_invoker.__name__ = the_invoker.__qualname__ = restart_name
    the_invoker.__doc__ = f"Invoke the '{restart_name}' restart."
    return the_invoker

def use_value(*args, **kwargs):
    """Invoke the 'use_value' restart immediately with given args and kwargs.

    A handler that just invokes the `use_value` restart is such a common use
    case that it is useful to have an abbreviation for it::

        with handlers(calling("oops", lambda c: use_value(c.fallback))):
            ...
    """
    invoke_restart("use_value", *args, **kwargs)
