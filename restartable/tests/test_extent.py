# -*- coding: utf-8 -*-

import asyncio
import threading

import pytest

from ..collections import unbox
from ..extent import Scope, ExtentState, ScopeViolation, current_scope, current_scopes
from ..handlers import handlers, exiting, available_handlers
from ..restarts import restarts, find_restart, invoke_restart
from ..signaler import signal

def test_push_and_pop():
    assert current_scope() is None
    with Scope() as outer:
        assert current_scope() is outer
        with Scope() as inner:
            assert current_scopes() == [inner, outer]
        assert current_scopes() == [outer]
    assert current_scopes() == []

def test_release_from_another_thread():
    s = Scope().enter()
    try:
        errors = []
        def worker():
            try:
                s.release()
            except ScopeViolation as err:
                errors.append(err)
        t = threading.Thread(target=worker)
        t.start()
        t.join()
        assert len(errors) == 1
        assert s.state is ExtentState.ACTIVE
    finally:
        s.release()

# --------------------------------------------------------------------------------
# Each thread and each task has its own stack

def test_thread_isolation():
    results = []
    def worker():
        results.append(available_handlers())
        results.append(find_restart("r"))
    with handlers(exiting("oops", lambda c: None)):
        with restarts(r=(lambda: None)):
            t = threading.Thread(target=worker)
            t.start()
            t.join()
    assert results == [[], None]

def test_task_isolation():
    async def child():
        return len(current_scopes()), find_restart("r")
    async def main():
        with restarts(r=(lambda: None)):
            # the child inherits our context, but not our stack
            return await asyncio.create_task(child())
    assert asyncio.run(main()) == (0, None)

def test_interleaved_tasks():
    async def worker(tag):
        with handlers(exiting(tag, lambda c: f"handled {c.classes[0]}")) as result:
            await asyncio.sleep(0)
            seen = [t for t, _, _ in available_handlers()]
            await asyncio.sleep(0)
            signal(tag)
        return seen, unbox(result)
    async def main():
        return await asyncio.gather(worker("a"), worker("b"), worker("c"))
    assert asyncio.run(main()) == [(["a"], "handled a"),
                                   (["b"], "handled b"),
                                   (["c"], "handled c")]

def test_restart_across_await():
    async def lowlevel():
        with restarts(use_value=(lambda x: x)) as result:
            await asyncio.sleep(0)
            invoke_restart("use_value", "restarted")
        return unbox(result)
    async def main():
        return await asyncio.gather(lowlevel(), lowlevel())
    assert asyncio.run(main()) == ["restarted", "restarted"]

def test_no_stack_outside_tasks_leaks_in():
    async def main():
        return current_scopes()
    with restarts(r=(lambda: None)):
        assert asyncio.run(main()) == []

@pytest.mark.parametrize("n", [1, 10])
def test_many_threads(n):
    results = [None] * n
    def worker(k):
        with restarts(r=(lambda x: x)) as result:
            invoke_restart("r", k)
        results[k] = unbox(result)
    threads = [threading.Thread(target=worker, args=(k,)) for k in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert results == list(range(n))
