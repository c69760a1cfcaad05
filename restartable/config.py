# -*- coding: utf-8 -*-
"""Global settings for the condition system."""

__all__ = ["Config"]

from functools import partial
import sys

class Config:
    """Global settings for the condition system.

    This is just a bunch of constants.

    If you want to change the settings, just assign new values to the attributes
    at any point (the new values take effect from that point forward).

    `printer`:                 str -> None; side effect should be to display the string
                               in some appropriate way. Used for reporting unhandled
                               messages (see `inform`) and errors caught by `attempt`.
                               Default is to `print` to `sys.stderr`.
    `warn_level`:              int; what the `warn` protocol does, like R's `options(warn=)`:
                                 - negative: unhandled warnings are dropped silently,
                                 - 0 or 1: unhandled warnings are reported via `warnings.warn`,
                                 - 2 or more: warnings are escalated into errors before
                                   they are signaled.
                               Default is 0.
    `report_cleanup_failures`: bool; whether an exception in a deferred cleanup action is
                               reported as a ``"cleanup_error"`` warning condition. If
                               `False`, it is only logged (at `DEBUG` level). Either way,
                               the remaining cleanup actions run. Default is `True`.
    """
    printer = partial(print, file=sys.stderr)
    warn_level = 0
    report_cleanup_failures = True
