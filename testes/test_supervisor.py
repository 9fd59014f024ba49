import os
import sys

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest

from bc2notion.utils.run_context import RunContext, ShutdownRequested
from bc2notion.utils.supervisor import OperationRestartLimitError, SessionUnusableError, SupervisedSession


class Factory:
    def __init__(self):
        self.created = 0
        self.closed = []

    def __call__(self):
        self.created += 1
        return f"driver-{self.created}"

    def close(self, resource):
        self.closed.append(resource)


def flaky(failures):
    state = {"left": failures}

    def op(resource):
        if state["left"] > 0:
            state["left"] -= 1
            raise RuntimeError("boom")
        return resource

    return op


def test_success_reuses_resource():
    f = Factory()
    s = SupervisedSession(f, closer=f.close)
    assert s.run(lambda r: r) == "driver-1"
    assert s.run(lambda r: r) == "driver-1"
    assert f.created == 1


def test_failures_below_threshold_retry_without_restart():
    f = Factory()
    s = SupervisedSession(f, closer=f.close, max_consecutive_failures=3)
    assert s.run(flaky(2)) == "driver-1"
    assert f.created == 1 and s.global_restarts == 0


def test_threshold_triggers_restart():
    f = Factory()
    s = SupervisedSession(f, closer=f.close, max_consecutive_failures=2)
    assert s.run(flaky(2)) == "driver-2"
    assert f.closed == ["driver-1"]
    assert s.global_restarts == 1


def test_per_operation_restart_limit():
    f = Factory()
    s = SupervisedSession(f, closer=f.close, max_consecutive_failures=1, max_restarts_per_operation=2)
    with pytest.raises(OperationRestartLimitError):
        s.run(flaky(100))
    assert s.global_restarts == 2
    # the session is still usable for the next operation
    assert s.run(lambda r: r) == "driver-3"


def test_global_budget_makes_session_unusable():
    f = Factory()
    s = SupervisedSession(f, closer=f.close, max_consecutive_failures=1, max_restarts_per_operation=5, max_global_restarts=1)
    with pytest.raises(SessionUnusableError):
        s.run(flaky(100))
    assert s.unusable
    with pytest.raises(SessionUnusableError):
        s.run(lambda r: r)


def test_shutdown_is_not_counted_as_a_failure():
    f = Factory()
    s = SupervisedSession(f, closer=f.close, max_consecutive_failures=1)

    def op(resource):
        raise ShutdownRequested("stop")

    with pytest.raises(ShutdownRequested):
        s.run(op)
    assert s.consecutive_failures == 0 and s.global_restarts == 0


def test_context_manager_closes_resource():
    f = Factory()
    with SupervisedSession(f, closer=f.close) as s:
        s.run(lambda r: r)
    assert f.closed == ["driver-1"]


def test_run_context_counters_and_shutdown():
    ctx = RunContext()
    assert ctx.increment("items") == 1
    assert ctx.increment("items", 2) == 3
    assert ctx.counters() == {"items": 3}
    ctx.check_shutdown("before anything")
    ctx.request_shutdown()
    assert ctx.shutdown_requested
    assert ctx.sleep(10) is True
    with pytest.raises(ShutdownRequested):
        ctx.check_shutdown("loop")


def test_manual_uploads_are_deduplicated():
    ctx = RunContext()
    assert ctx.record_manual_upload("https://x/a.png", "p1", "Item 1")
    assert not ctx.record_manual_upload(" https://x/a.png ", "p2", "Item 2")
    assert not ctx.record_manual_upload("", "p3")
    assert ctx.manual_uploads() == [{"url": "https://x/a.png", "notion_page_id": "p1", "context": "Item 1"}]


class Refused(Exception):
    pass


def test_permanent_errors_skip_the_restart_policy():
    f = Factory()
    s = SupervisedSession(f, closer=f.close, max_consecutive_failures=1, max_global_restarts=1, permanent_errors=(Refused,))

    def refuse(resource):
        raise Refused("403")

    for _ in range(5):
        with pytest.raises(Refused):
            s.run(refuse)
    assert f.created == 1
    assert s.global_restarts == 0 and s.consecutive_failures == 0 and not s.unusable


def test_factory_failure_on_restart_counts_as_a_failure():
    starts = {"n": 0}

    def factory():
        starts["n"] += 1
        if starts["n"] > 1:
            raise OSError("chromedriver not found")
        return "driver-1"

    s = SupervisedSession(factory, max_consecutive_failures=1, max_restarts_per_operation=2)
    with pytest.raises(OperationRestartLimitError):
        s.run(flaky(100))
    assert starts["n"] == 3
