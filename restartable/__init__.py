# -*- coding: utf-8 -*-
"""Resumable conditions, restarts and cleanup for Python.

A condition system in the Common Lisp and R tradition: signal a condition,
let handlers further out on the call stack decide what to do about it
(without necessarily unwinding the stack), resume at a restart established
by the low-level code, and run deferred cleanup actions on every exit path.

See ``dir(restartable)`` and submodule docstrings for more.
"""

__version__ = '0.1.0'

from .cleanup import *  # noqa: F401, F403
from .collections import *  # noqa: F401, F403
from .condition import *  # noqa: F401, F403
from .config import *  # noqa: F401, F403
from .extent import *  # noqa: F401, F403
from .handlers import *  # noqa: F401, F403
from .protocols import *  # noqa: F401, F403
from .restarts import *  # noqa: F401, F403
from .signaler import *  # noqa: F401, F403
