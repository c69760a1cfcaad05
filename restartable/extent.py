# -*- coding: utf-8 -*-
"""Dynamic extents, and the task-local stack they live on.

A `Scope` represents the dynamic extent of one `with handlers`,
`with restarts` or `with scope` block. It owns:

  - the handler frames registered by that block (see `restartable.handlers`),
  - the restart frames established by that block (see `restartable.restarts`),
  - the cleanup actions deferred into it (see `restartable.cleanup`).

Scopes are pushed when the block is entered and popped when it exits, strictly
LIFO. Each asyncio task (or, outside of any task, each thread) has its own
stack; a task never sees the scopes of another task, not even those of the
task that created it.

Non-local transfers of control (an exiting handler claiming a condition, or a
restart being invoked) are implemented by raising an `Unwind` that carries its
target scope. Each scope the `Unwind` passes through runs its cleanup and pops
itself; the target scope recognizes the `Unwind` as its own, stops it, and
produces the value that the block then returns.
"""

__all__ = ["Scope", "ExtentState", "Discipline", "HandlerFrame",
           "ControlError", "ScopeViolation",
           "current_scope", "current_scopes"]

import asyncio
import contextvars
import logging
import threading
from enum import Enum

from .collections import box

logger = logging.getLogger(__name__)

class ControlError(Exception):
    """Errors detected by the condition system itself.

    Known in Common Lisp as `CONTROL-ERROR`.
    """

class ScopeViolation(ControlError):
    """A scope was released out of LIFO order, from the wrong task, or
    something needed a scope outside the dynamic extent of any."""

class ExtentState(Enum):
    """Lifecycle of a dynamic extent.

    `ACTIVE`:   normal execution.
    `SIGNALED`: a `signal` call made in this extent is searching for handlers.
    `RESUMED`:  the most recent signal in this extent was declined by all
                handlers (or disposed of by default) and execution resumed.
                A resumed extent is active.
    `UNWOUND`:  control is leaving this extent non-locally (a handler or a
                restart claimed a signal, or an exception is propagating).
    `EXITED`:   terminal; the extent's frames are gone for good.
    """
    ACTIVE = "active"
    SIGNALED = "signaled"
    RESUMED = "resumed"
    UNWOUND = "unwound"
    EXITED = "exited"

_live_states = (ExtentState.ACTIVE, ExtentState.SIGNALED, ExtentState.RESUMED)

class Discipline(Enum):
    """How a handler handles.

    `EXITING`: unwind to the scope that registered the handler, then run the
               handler; its return value becomes the value of that scope.
               Like ``except``, or R's ``tryCatch``.
    `CALLING`: run the handler at the signal site, without unwinding. If it
               returns normally, the search continues outward. Like Common
               Lisp's ``HANDLER-BIND``, or R's ``withCallingHandlers``.
    """
    EXITING = "exiting"
    CALLING = "calling"

class HandlerFrame:
    """A handler registration: `discipline`, `filters` (frozenset of class tags), `action`."""
    __slots__ = ("discipline", "filters", "action")

    def __init__(self, discipline, filters, action):
        discipline = Discipline(discipline)  # also accepts "exiting", "calling"
        if isinstance(filters, str):
            filters = (filters,)
        filters = frozenset(filters)
        if not filters or not all(isinstance(tag, str) for tag in filters):
            raise TypeError(f"Handler filters must be a class tag or a nonempty tuple of class tags, got {repr(filters)}")
        if not callable(action):
            raise TypeError(f"Expected a callable handler action, got {type(action)} with value {repr(action)}")
        self.discipline, self.filters, self.action = discipline, filters, action

    def __repr__(self):  # pragma: no cover
        return f"<HandlerFrame {self.discipline.value} {sorted(self.filters)} {self.action!r}>"

    def matches(self, condition):
        return not self.filters.isdisjoint(condition.classes)

class Unwind(BaseException):
    """Non-local transfer of control to the exit point of `target`.

    A `BaseException`, so that ``except Exception`` in user code does not
    intercept handler and restart transfers.

    `thunk` is called by the target scope, after all intervening scopes (and
    the target itself) have been cleaned up and popped. Its return value
    becomes the result of the target block. `reason` is the condition or the
    restart that caused the transfer, for debugging.
    """
    def __init__(self, target, thunk, reason=None):
        self.target, self.thunk, self.reason = target, thunk, reason
        # message when uncaught
        self.args = ("restartable: internal error: uncaught unwind (target scope is not on this stack)",)
    def __call__(self):
        return self.thunk()

# --------------------------------------------------------------------------------
# Task-local state

class _TaskState:
    def __init__(self, owner):
        self.owner = owner
        self.scopes = []

_state = contextvars.ContextVar("restartable_state", default=None)

def _owner():
    try:
        task = asyncio.current_task()
    except RuntimeError:  # no running event loop
        task = None
    if task is not None:
        return task
    return threading.current_thread()

def current_state():
    """Return the scope stack state of the current task (or thread).

    Contexts are inherited by new tasks, so a state owned by someone else
    is replaced with a fresh one on first access.
    """
    st = _state.get()
    owner = _owner()
    if st is None or st.owner is not owner:
        st = _TaskState(owner)
        _state.set(st)
    return st

def fresh_state():
    """Replace the current task's state with an empty one.

    This is meant to be called inside a copied `contextvars` context, to start
    an independent top-level computation (see `restartable.protocols.toplevel`).
    """
    st = _TaskState(_owner())
    _state.set(st)
    return st

def current_scope():
    """Return the innermost live scope of the current task, or `None`."""
    scopes = current_state().scopes
    return scopes[-1] if scopes else None

def current_scopes():
    """Return a snapshot of the current task's scopes, innermost first."""
    return list(reversed(current_state().scopes))

# --------------------------------------------------------------------------------

class Scope:
    """One dynamic extent.

    `handlers`: iterable of handler frames, in registration order.
    `restarts`: iterable of ``(name, callable)`` pairs, in registration order.

    As a context manager, pushes itself on entry and cleans up and pops itself
    on exit. The manual equivalent is `enter` and `release`.

    The `result` attribute is a `box` holding the value of the block; it is
    set by whatever claims an unwind targeting this scope.
    """
    def __init__(self, handlers=(), restarts=()):
        self.handlers = tuple(handlers)
        self.restarts = tuple(restarts)
        self.deferred = []
        self.cleanup_failures = []
        self.result = box(None)
        self.state = None  # not entered yet
        self.masked = 0  # > 0 while a calling handler of this scope or of an outer one runs
        self._taskstate = None

    def __repr__(self):  # pragma: no cover
        return f"<{type(self).__name__} {self.state.value if self.state else 'new'}, {len(self.handlers)} handler(s), {len(self.restarts)} restart(s) at 0x{id(self):x}>"

    @property
    def live(self):
        """Whether this extent is still running, so its frames are reachable."""
        return self.state in _live_states

    def enter(self):
        """Push this scope on the current task's stack. Return the scope itself."""
        if self.state is not None:
            raise ScopeViolation(f"{self!r} has already been entered; a scope can be entered only once")
        st = current_state()
        st.scopes.append(self)
        self._taskstate = st
        self.state = ExtentState.ACTIVE
        return self

    def release(self):
        """Normal exit: clean up and pop this scope, which must be the innermost one."""
        self.exit(None)

    def _pop(self):
        st = current_state()
        if self._taskstate is not st:
            raise ScopeViolation(f"{self!r} belongs to another task or has not been entered")
        if st.scopes and st.scopes[-1] is self:
            st.scopes.pop()
            return
        msg = f"{self!r} released out of order; innermost is {st.scopes[-1] if st.scopes else None!r}"
        if any(s is self for s in st.scopes):
            # E.g. a generator suspended inside the block, finished inside another one.
            # Retire the scope anyway, so that its frames cannot be found by later signals.
            st.scopes[:] = [s for s in st.scopes if s is not self]
            logger.debug("discarding %r", self)
            try:
                self._cleanup()
            finally:
                self.state = ExtentState.EXITED
        raise ScopeViolation(msg)

    def claim(self, exc):
        """Decide whether this scope stops the exception `exc` that is leaving it.

        Return a thunk computing the block's result to stop `exc`, or `None` to
        let it propagate. The base implementation claims unwinds that target
        this scope.
        """
        if isinstance(exc, Unwind) and exc.target is self:
            return exc
        return None

    def exit(self, exc):
        """Exit this extent, with `exc` being the exception leaving it (or `None`).

        Pops the scope, runs its deferred cleanup actions, and then, if the scope
        claims `exc`, computes the result of the block. Return whether `exc` was
        claimed (i.e. should be suppressed).
        """
        self._pop()
        if exc is not None:
            self.state = ExtentState.UNWOUND
        thunk = self.claim(exc) if exc is not None else None
        try:
            self._cleanup()
        finally:
            self.state = ExtentState.EXITED
        if thunk is None:
            return False
        logger.debug("unwound to %r, reason: %r", self, getattr(exc, "reason", exc))
        self.result << thunk()
        return True

    def __enter__(self):
        return self.enter()

    def __exit__(self, exctype, excvalue, traceback):
        return self.exit(excvalue)

    def _cleanup(self):
        actions, self.deferred = self.deferred, []
        if not actions:
            return
        failures = []
        try:
            _run_all(reversed(actions), failures)
        finally:
            if failures:
                self.cleanup_failures.extend(failures)
                # Late import; the protocols build on everything in this module.
                from .cleanup import report_cleanup_failures
                report_cleanup_failures(failures)

def _run_all(thunks, failures):
    """Call each thunk exactly once, in order, even if some of them raise.

    Any `Exception` is appended to `failures`. Anything more drastic (such as an
    `Unwind` or a `KeyboardInterrupt`) propagates, but only after the remaining
    thunks have run.
    """
    thunks = list(thunks)
    for k, thunk in enumerate(thunks):
        try:
            thunk()
        except Exception as err:
            logger.debug("deferred action %r failed: %r", thunk, err)
            failures.append(err)
        except BaseException:
            _run_all(thunks[k + 1:], failures)
            raise
