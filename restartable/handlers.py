# -*- coding: utf-8 -*-
"""Condition handlers: the `with handlers` form and its relatives.

Usage::

    with handlers(exiting("error", lambda c: f"recovered from {c.message}"),
                  calling("warning", lambda c: log.append(c))) as result:
        ...
        result << value_for_normal_exit
    print(unbox(result))

`exiting` and `calling` build handler specs; see `restartable.extent.Discipline`
for what the two disciplines mean. Each spec has *filters*, one class tag or a
tuple of them; the handler applies to a condition carrying any of those tags.

All specs given to one `handlers` form live in one scope and are tried in
the order given, so among those, the first applicable one wins (not the
"best match"). Nested `handlers` forms are tried from the dynamically innermost
outward.

If you use only exiting handlers, and signal only errors, the condition
system reduces into an exception system; `try_catch` is the shorthand for
that, in the spirit of R's ``tryCatch``::

    result = try_catch(lambda: compute(),
                       error=lambda c: None,
                       finally_=lambda: print("done"))

Python exceptions raised in the body of a `handlers` form are offered to its
exiting handlers too, converted into conditions by
`Condition.from_exception` (so `ValueError("x")` matches the filters
``"ValueError"`` and ``"error"``). Calling handlers do not see raised
exceptions; by the time the exception arrives, the stack below has already
been unwound.

An `UnhandledError` (or `UnhandledInterrupt`) that comes from somewhere else,
such as a `toplevel` computation or the result of a worker thread, is offered
as the condition it carries. One that was raised by a search of this same
task's handlers is not, since those handlers already declined it.
"""

__all__ = ["handlers", "with_handlers", "exiting", "calling",
           "try_catch", "with_calling_handlers",
           "available_handlers"]

from operator import itemgetter

from .collections import unbox
from .condition import Condition
from .extent import Discipline, HandlerFrame, Scope, Unwind, current_state
from .signaler import UnhandledError, UnhandledInterrupt

def exiting(filters, action):
    """Make an exiting handler spec for `handlers`.

    `filters`: class tag, or tuple of class tags.
    `action`: condition -> value. Its return value becomes the value of the
              `handlers` block that registered it.
    """
    return HandlerFrame(Discipline.EXITING, filters, action)

def calling(filters, action):
    """Make a calling handler spec for `handlers`.

    `filters`: class tag, or tuple of class tags.
    `action`: condition -> anything. Runs at the signal site. To decline,
              return normally; the return value is ignored. To handle,
              invoke a restart.
    """
    return HandlerFrame(Discipline.CALLING, filters, action)

class handlers(Scope):
    """Set up condition handlers. Context manager.

    Usage::

        with handlers(spec, ...) as result:
            ...

    where each `spec` is made by `exiting` or `calling`, or is a tuple
    ``(discipline, filters, action)``.

    The as-binding is a `box` for the value of the block. When an exiting
    handler of this form claims a condition, the box receives the return
    value of the handler, and execution continues after the ``with``.

    For manual scope management, `enter` pushes the handlers (returning the
    scope as a token), and `release` pops them again. Releasing out of LIFO
    order raises `ScopeViolation`.
    """
    def __init__(self, *specs):
        frames = []
        for spec in specs:
            if isinstance(spec, HandlerFrame):
                frames.append(spec)
            elif isinstance(spec, tuple) and len(spec) == 3:
                frames.append(HandlerFrame(*spec))
            else:
                raise TypeError(f"Each handler must be made by exiting() or calling(), or be a (discipline, filters, action) tuple; got {type(spec)} with value {repr(spec)}")
        super().__init__(handlers=frames)

    def __enter__(self):
        self.enter()
        return self.result

    def claim(self, exc):
        thunk = super().claim(exc)
        if thunk is not None:
            return thunk
        # Bridge Python exceptions into conditions. Those that already went
        # through a full search of this task's handlers are not offered again.
        if isinstance(exc, Unwind):
            return None
        if not isinstance(exc, (Exception, KeyboardInterrupt)):
            return None
        if self in getattr(exc, "_restartable_bypass", ()):
            return None
        if isinstance(exc, (UnhandledError, UnhandledInterrupt)):
            if exc.searched is current_state():
                return None
            # unhandled elsewhere (a `toplevel` run, another thread or process)
            condition = exc.condition
        else:
            condition = Condition.from_exception(exc)
        for frame in self.handlers:
            if frame.discipline is Discipline.EXITING and frame.matches(condition):
                return lambda: frame.action(condition)
        return None

def with_handlers(specs, body, *args, **kwargs):
    """Call `body(*args, **kwargs)` with the handlers `specs` in effect.

    Functional form of `with handlers`. Return the value of `body`, or if
    one of these handlers is exiting and claims a condition, the value of
    that handler.
    """
    with handlers(*specs) as result:
        result << body(*args, **kwargs)
    return unbox(result)

def try_catch(body, *args, finally_=None, **by_class):
    """Call `body(*args)` with exiting handlers; like R's ``tryCatch``.

    Each keyword argument ``tag=action`` registers an exiting handler for
    the class tag `tag`, in the order given. Keyword arguments of `body`
    cannot be passed through; use a closure.

    `finally_`, if given, is a thunk that runs exactly once when `try_catch`
    exits, after any handler, whatever the exit route. An exception in it
    propagates, as in a ``finally`` block.

    Example::

        try_catch(lambda: signal(("oops", "error"), "hi"),
                  oops=lambda c: c.message)  # --> "hi"
    """
    specs = [exiting(tag, action) for tag, action in by_class.items()]
    try:
        return with_handlers(specs, body, *args)
    finally:
        if finally_ is not None:
            finally_()

def with_calling_handlers(body, *args, **by_class):
    """Call `body(*args)` with calling handlers; like R's ``withCallingHandlers``.

    Each keyword argument ``tag=action`` registers a calling handler for
    the class tag `tag`, in the order given.
    """
    specs = [calling(tag, action) for tag, action in by_class.items()]
    return with_handlers(specs, body, *args)

def available_handlers():
    """Return a sorted list of handlers currently in scope.

    Shadowing is respected: for each class tag, only the dynamically innermost
    handler is listed. A handler registered for several tags is listed
    separately for each of them. Masked handlers (see `signal`) are omitted.

    The return value format is ``[(tag, discipline, action), ...]``.
    """
    out = []
    seen = set()
    for scope in reversed(current_state().scopes):
        if scope.masked:
            continue
        for frame in scope.handlers:
            for tag in sorted(frame.filters):
                if tag not in seen:
                    seen.add(tag)
                    out.append((tag, frame.discipline, frame.action))
    return sorted(out, key=itemgetter(0))
