# -*- coding: utf-8 -*-
"""A result box for blocks that cannot return a value directly."""

__all__ = ["box", "unbox"]

class box:
    """Minimalistic, mutable single-item container à la Racket.

    The `with handlers(...) as result` and `with restarts(...) as result`
    blocks bind a box, because a `with` statement cannot have a value::

        with restarts(use_value=(lambda x: x)) as result:
            ...
            result << 42     # value for a normal exit
        print(unbox(result)) # 42, or whatever a restart returned

    `b << x` is the same as `b.set(x)`, and `unbox(b)` is the same as
    `b.get()`. A box compares equal to the item it contains. It is not
    hashable, because it is mutable.
    """
    def __init__(self, x=None):
        self.x = x
    def __repr__(self):  # pragma: no cover
        return f"box({repr(self.x)})"
    def __eq__(self, other):
        if isinstance(other, box):
            other = other.x
        return other == self.x
    __hash__ = None
    def set(self, x):
        """Store a new value in the box, replacing the old one. Return the new value."""
        self.x = x
        return x
    def __lshift__(self, x):
        return self.set(x)
    def get(self):
        """Return the value currently in the box."""
        return self.x

def unbox(b):
    """Return the value from inside the box `b`.

    If `b` is not a `box`, raises `TypeError`.
    """
    if not isinstance(b, box):
        raise TypeError(f"Expected box, got {type(b)} with value {repr(b)}")
    return b.get()
