# -*- coding: utf-8 -*-
"""Condition objects: immutable values describing a signaled event.

A condition carries an ordered tuple of *class tags*, most specific first,
always ending in the root tag ``"condition"``::

    c = Condition(("disk_full", "error"), "no space left on device", data={"free": 0})
    assert c.classes == ("disk_full", "error", "condition")
    assert c.severity is Severity.ERROR
    assert c.free == 0

Handlers select conditions by tag membership (see `Condition.inherits`);
there is no reflection on Python classes. Four tags are special, because they
decide what happens to a condition that no handler claims; these are the
severities, see `Severity`.

Python exceptions can be converted into conditions with
`Condition.from_exception`. The class tags then come from the names in the
exception's MRO, so a `KeyError` becomes
``("KeyError", "LookupError", "error", "condition")``.
"""

__all__ = ["Condition", "Severity", "ROOT", "make_condition"]

from enum import Enum
from types import MappingProxyType

ROOT = "condition"

class Severity(Enum):
    """The built-in severity tags, in increasing order of severity."""
    MESSAGE = "message"
    WARNING = "warning"
    ERROR = "error"
    INTERRUPT = "interrupt"

_by_rank = list(Severity)  # declaration order is the severity order

def _rebuild(classes, message, origin, cause, data):  # pickle support
    return Condition(classes, message, origin, cause=cause, data=data)

class Condition:
    """An immutable signaled event.

    `classes`: str, or iterable of str
        The class tags, most specific first. The root tag ``"condition"``
        is appended if not already last.

    `message`: str
        Human-readable description.

    `origin`: anything, optional
        Where the condition came from (e.g. a call description or a frame).
        Diagnostic only; never used for matching.

    `cause`: exception instance, optional
        Underlying Python exception, if any (like ``raise ... from ...``).

    `data`: mapping, optional
        Extra fields. They are readable as attributes of the condition.
    """
    __slots__ = ("classes", "message", "origin", "cause", "data")

    def __init__(self, classes, message="", origin=None, *, cause=None, data=None):
        if isinstance(classes, str):
            classes = (classes,)
        try:
            classes = tuple(classes)
        except TypeError:
            raise TypeError(f"Expected str or iterable of str as condition classes, got {type(classes)} with value {repr(classes)}") from None
        if not all(isinstance(tag, str) for tag in classes):
            raise TypeError(f"Condition class tags must be str, got {repr(classes)}")
        if not classes:
            raise ValueError("A condition must have at least one class tag")
        if classes[-1] != ROOT:
            classes = tuple(tag for tag in classes if tag != ROOT) + (ROOT,)
        if not isinstance(message, str):
            raise TypeError(f"Expected str message, got {type(message)} with value {repr(message)}")
        setter = object.__setattr__
        setter(self, "classes", classes)
        setter(self, "message", message)
        setter(self, "origin", origin)
        setter(self, "cause", cause)
        setter(self, "data", MappingProxyType(dict(data or {})))

    def __setattr__(self, name, value):
        raise AttributeError(f"Condition is immutable; cannot set {repr(name)}")

    def __delattr__(self, name):
        raise AttributeError(f"Condition is immutable; cannot delete {repr(name)}")

    def __getattr__(self, name):
        # Only reached when normal lookup fails, i.e. for the data fields.
        try:
            return object.__getattribute__(self, "data")[name]
        except KeyError:
            raise AttributeError(f"Condition has no field {repr(name)}") from None

    def __reduce__(self):
        return (_rebuild, (self.classes, self.message, self.origin, self.cause, dict(self.data)))

    def __repr__(self):
        return f"<Condition {self.classes} {repr(self.message)}>"

    def __str__(self):
        return self.message

    def inherits(self, tag):
        """Return whether `tag` is one of this condition's class tags."""
        return tag in self.classes

    @property
    def severity(self):
        """The most severe `Severity` among the class tags, or `None` for a plain condition."""
        found = None
        for severity in _by_rank:
            if severity.value in self.classes:
                found = severity
        return found

    def ensure_class(self, tag):
        """Return a condition that has `tag`; `self` if it already does.

        A missing tag is inserted just before the root tag, i.e. as the least
        specific one. This is how the signaling protocols make sure e.g. an
        `error` call really signals an ``"error"``.
        """
        if tag in self.classes:
            return self
        return Condition(self.classes[:-1] + (tag, ROOT), self.message, self.origin,
                         cause=self.cause, data=self.data)

    @classmethod
    def from_exception(cls, exc, severity=None):
        """Convert a Python exception instance into a condition.

        The class tags are the names of the classes in the MRO of the
        exception type (skipping `BaseException`, `Exception` and `object`),
        followed by a severity tag. If `severity` is not given, it is
        ``"interrupt"`` for `KeyboardInterrupt`, ``"warning"`` for `Warning`,
        and ``"error"`` for everything else.

        The exception is kept as the `cause` of the condition.
        """
        if not isinstance(exc, BaseException):
            raise TypeError(f"Expected an exception instance, got {type(exc)} with value {repr(exc)}")
        if severity is None:
            if isinstance(exc, KeyboardInterrupt):
                severity = Severity.INTERRUPT
            elif isinstance(exc, Warning):
                severity = Severity.WARNING
            else:
                severity = Severity.ERROR
        tags = [c.__name__ for c in type(exc).__mro__
                if c not in (BaseException, Exception, object)]
        tags.append(severity.value)
        message = str(exc) or type(exc).__name__
        return cls(tags, message, cause=exc)

def make_condition(what, message="", origin=None, *, cause=None, data=None, severity=None):
    """Canonize the things the signaling functions accept into a `Condition`.

    `what` can be:

      - a `Condition` instance, used as-is (the other arguments must then be
        left at their defaults);
      - a Python exception instance or class (a class is instantiated with
        no arguments, like ``raise`` does), converted by
        `Condition.from_exception`;
      - a class tag, or an iterable of class tags, used with `message`,
        `origin`, `cause` and `data` to construct a new `Condition`.

    If `severity` is given, the result is guaranteed to carry that tag.
    """
    if isinstance(what, Condition):
        if message or origin is not None or cause is not None or data:
            raise TypeError("When signaling an existing Condition instance, do not pass message, origin, cause or data")
        condition = what
    elif isinstance(what, BaseException):
        condition = Condition.from_exception(what, severity)
    elif isinstance(what, type) and issubclass(what, BaseException):
        condition = Condition.from_exception(what(), severity)
    else:
        condition = Condition(what, message, origin, cause=cause, data=data)
    if severity is not None:
        condition = condition.ensure_class(severity.value)
    return condition
