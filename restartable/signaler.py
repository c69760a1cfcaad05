# -*- coding: utf-8 -*-
"""The `signal` form: find and run the handlers for a condition.

Signaling a condition works similarly to raising an exception, but the act of
signaling itself does **not** unwind the call stack. Handlers are searched from
the dynamically innermost scope outward (within one scope, in registration
order):

  - A *calling* handler runs right there, at the signal site, while the whole
    call stack is still intact. If it returns normally, the search continues
    outward; its return value is discarded. To take over instead, it can
    invoke a restart (see `restartable.restarts`), or raise.

  - An *exiting* handler claims the condition. The call stack is unwound up
    to the scope that registered the handler (running all cleanup actions on
    the way), and then the handler runs. Its return value becomes the value
    of that `with handlers` block.

If no handler claims the condition, what happens depends on its severity:

  - ``"error"``: the unhandled-error hook is called (see `on_unhandled_error`),
    while the stack is still intact. By default the computation is then
    aborted by raising `UnhandledError`.
  - ``"interrupt"``: the hook is informed, then `UnhandledInterrupt` is raised.
    Nothing but an exiting handler or a restart can stop an interrupt.
  - ``"warning"``: reported using Python's `warnings` module, and `signal`
    returns `CONTINUE`.
  - ``"message"``: printed using `Config.printer`, and `signal` returns `CONTINUE`.
  - no severity tag: `signal` just returns `CONTINUE`.

While a calling handler runs, the handlers of its own scope, and of all scopes
inside it, are masked. So if the handler signals again (possibly the same
condition), it sees only the handlers outside its own, plus any new ones it
establishes itself. Restarts are never masked.
"""

__all__ = ["signal", "CONTINUE",
           "Disposition", "on_unhandled_error",
           "UnhandledError", "UnhandledInterrupt", "ConditionWarning"]

from enum import Enum
import logging
import os
import sys
import threading
import warnings

from .condition import Severity, make_condition
from .config import Config
from .extent import Discipline, ExtentState, Unwind, current_state

logger = logging.getLogger(__name__)

class _Marker:
    def __init__(self, name):
        self.name = name
    def __repr__(self):
        return self.name
    def __reduce__(self):
        return self.name  # pickles as a reference to the module-level instance

CONTINUE = _Marker("CONTINUE")

class UnhandledError(Exception):
    """Raised when an ``"error"`` condition was not handled.

    The condition is available as the `condition` attribute.

    `searched` is the task state whose handlers were already searched for the
    condition, or `None`. Handlers of that same task do not get the exception
    offered again (see `restartable.handlers`); anyone else, e.g. the caller
    of `toplevel` or of a worker thread, does.
    """
    def __init__(self, condition, searched=None):
        super().__init__(f"Unhandled error condition {condition.classes}: {condition.message}")
        self.condition = condition
        self.searched = searched
        self.__cause__ = condition.cause
    def __reduce__(self):
        return (type(self), (self.condition,))

class UnhandledInterrupt(KeyboardInterrupt):
    """Raised when an ``"interrupt"`` condition was not handled.

    A `KeyboardInterrupt`, so it terminates the computation through any
    ``except Exception``. The condition is available as the `condition` attribute.
    """
    def __init__(self, condition, searched=None):
        super().__init__(f"Unhandled interrupt {condition.classes}: {condition.message}")
        self.condition = condition
        self.searched = searched
    def __reduce__(self):
        return (type(self), (self.condition,))

class ConditionWarning(UserWarning):
    """Category for reports of unhandled ``"warning"`` conditions.

    The condition is available as the `condition` attribute.
    """
    def __init__(self, condition):
        super().__init__(condition.message)
        self.condition = condition
    def __reduce__(self):
        return (type(self), (self.condition,))

# --------------------------------------------------------------------------------
# Unhandled-error hook

class Disposition(Enum):
    """What to do with an unhandled ``"error"`` condition.

    `ABORT`:  raise `UnhandledError`, aborting the computation.
    `RESUME`: make `signal` return `CONTINUE`. (The `error` protocol still
              refuses to return normally.)
    """
    ABORT = "abort"
    RESUME = "resume"

def default_unhandled_error_hook(condition):
    """The default hook. Aborts."""
    return Disposition.ABORT

_hook = default_unhandled_error_hook
_hook_lock = threading.Lock()

def on_unhandled_error(handler):
    """Install a process-wide hook for unhandled errors and interrupts.

    `handler`: condition -> `Disposition`; or `None` to restore the default.

    The hook is called exactly once per unhandled ``"error"`` or ``"interrupt"``
    condition, at the signal site, before the call stack unwinds. So this is
    the place to plug in a debugger. The hook may also invoke a restart, like
    any handler. For interrupts, the returned disposition is ignored.

    Returns the previously installed hook.
    """
    global _hook
    if handler is None:
        handler = default_unhandled_error_hook
    if not callable(handler):
        raise TypeError(f"Expected a callable or None, got {type(handler)} with value {repr(handler)}")
    with _hook_lock:
        previous, _hook = _hook, handler
    return previous

def _notify_unhandled(condition):
    with _hook_lock:
        hook = _hook
    disposition = hook(condition)
    if disposition is None:
        return Disposition.ABORT
    return Disposition(disposition)

# --------------------------------------------------------------------------------

def signal(condition, message="", origin=None, *, cause=None, **data):
    """Signal a condition.

    `condition` can be a `Condition` instance, a class tag or a tuple of class
    tags (then `message`, `origin`, `cause` and any extra keyword arguments are
    used to build the condition), or a Python exception instance or class.
    See `restartable.condition.make_condition`.

    Returns `CONTINUE` if execution resumes after the signal (see the module
    docstring for when that happens). Otherwise does not return normally.
    """
    condition = make_condition(condition, message, origin, cause=cause, data=data)
    st = current_state()
    snapshot = list(reversed(st.scopes))
    site = snapshot[0] if snapshot else None
    previous = site.state if site is not None else None
    logger.debug("signal %r", condition)
    if site is not None:
        site.state = ExtentState.SIGNALED
    try:
        for scope in snapshot:
            if scope.masked:  # belongs to a calling handler that is running right now
                continue
            for frame in scope.handlers:
                if not frame.matches(condition):
                    continue
                if frame.discipline is Discipline.EXITING:
                    logger.debug("%r claimed by %r", condition, frame)
                    raise Unwind(scope, _bind(frame.action, condition), reason=condition)
                _call_handler(st, scope, frame, condition)
        value = _dispose(condition)
    finally:
        if site is not None:
            site.state = previous
    if site is not None and previous is not ExtentState.SIGNALED:
        site.state = ExtentState.RESUMED
    return value

def _bind(action, condition):
    def handle():
        return action(condition)
    return handle

def _call_handler(st, scope, frame, condition):
    masked = st.scopes[st.scopes.index(scope):]
    for s in masked:
        s.masked += 1
    try:
        frame.action(condition)
    except Unwind:
        raise
    except BaseException as err:
        # An exception escaping the handler must not be caught by the exiting
        # handlers that were masked while it ran.
        err._restartable_bypass = tuple(masked) + getattr(err, "_restartable_bypass", ())
        raise
    finally:
        for s in masked:
            s.masked -= 1

def _dispose(condition):
    severity = condition.severity
    if severity is Severity.INTERRUPT:
        logger.debug("unhandled interrupt %r", condition)
        _notify_unhandled(condition)
        raise UnhandledInterrupt(condition, current_state())
    if severity is Severity.ERROR:
        logger.debug("unhandled error %r", condition)
        if _notify_unhandled(condition) is Disposition.RESUME:
            return CONTINUE
        raise UnhandledError(condition, current_state())
    if severity is Severity.WARNING:
        if Config.warn_level >= 0:
            warnings.warn(ConditionWarning(condition), stacklevel=_external_stacklevel())
    elif severity is Severity.MESSAGE:
        Config.printer(condition.message)
    return CONTINUE

_here = os.path.dirname(os.path.abspath(__file__))

def _external_stacklevel():
    """Return the `warnings.warn` stack level of the nearest frame outside this library.

    Counted as seen from our caller, so that the warning points at the user code
    that made the call, whichever route (`signal`, `warn`, a scope's cleanup)
    led here. Uses `sys._getframe`, which exists in CPython and PyPy3.
    """
    level = 1
    frame = sys._getframe(1)
    while frame is not None and os.path.dirname(os.path.abspath(frame.f_code.co_filename)) == _here:
        frame = frame.f_back
        level += 1
    return level
