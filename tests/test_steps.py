import logging

import pytest

from opskit.errors import StepError
from opskit.steps import StepRegistry


@pytest.fixture
def registry():
    calls = []
    reg = StepRegistry()
    # registration order deliberately differs from execution order
    for name in ("a", "c", "b"):
        reg.register("setup", name, lambda name=name: calls.append(name))
    reg.register("teardown", "a", lambda: calls.append("teardown"))
    reg.calls = calls
    return reg


def test_steps_run_in_lexical_order(registry):
    report = registry.run("setup")
    assert registry.calls == ["a", "b", "c"]
    assert report.names == ["setup::a", "setup::b", "setup::c"]
    assert report.ok


def test_start_name_skips_earlier_steps(registry, caplog):
    with caplog.at_level(logging.WARNING, logger="opskit.steps"):
        report = registry.run("setup", "b")
    assert registry.calls == ["b", "c"]
    assert report.start == "b"
    assert any("setup::b" in r.getMessage() for r in caplog.records if r.levelno == logging.WARNING)


def test_start_name_between_steps(registry):
    assert registry.names("setup", "bb") == ["setup::c"]


def test_ordering_is_bytewise():
    reg = StepRegistry()
    for name in ("b", "B", "a", "10", "9"):
        reg.register("x", name, lambda: None)
    assert reg.names("x") == ["x::10", "x::9", "x::B", "x::a", "x::b"]


def test_runs_are_deterministic(registry):
    first = registry.run("setup", "b").names
    second = registry.run("setup", "b").names
    assert first == second


def test_fail_fast_stops_at_first_failure():
    calls = []
    reg = StepRegistry()
    reg.register("s", "1", lambda: calls.append(1))
    reg.register("s", "2", lambda: 1 / 0)
    reg.register("s", "3", lambda: calls.append(3))

    report = reg.run("s")
    assert calls == [1]
    assert not report.ok
    assert [r.name for r in report.failures] == ["s::2"]
    assert isinstance(report.failures[0].error, ZeroDivisionError)
    with pytest.raises(StepError, match="s::2"):
        report.raise_for_failure()


def test_continue_on_error_runs_everything():
    calls = []
    reg = StepRegistry()
    reg.register("s", "1", lambda: 1 / 0)
    reg.register("s", "2", lambda: calls.append(2))
    report = reg.run("s", fail_fast=False)
    assert calls == [2]
    assert [r.ok for r in report.results] == [False, True]


def test_context_is_filtered_per_step():
    seen = {}
    reg = StepRegistry()

    @reg.step("deploy")
    def a_hosts(hosts):
        seen["hosts"] = hosts

    @reg.step("deploy", "b_all")
    def everything(**kwargs):
        seen["all"] = kwargs

    @reg.step("deploy")
    def c_nothing():
        seen["nothing"] = True

    reg.run("deploy", hosts=["h1"], user="ubuntu")
    assert seen == {"hosts": ["h1"], "all": {"hosts": ["h1"], "user": "ubuntu"}, "nothing": True}
    assert "deploy::a_hosts" in reg


def test_duplicate_step_is_rejected(registry):
    with pytest.raises(StepError):
        registry.register("setup", "a", lambda: None)


def test_run_step_dispatches_by_key(registry):
    registry.run_step("teardown::a")
    assert registry.calls == ["teardown"]
    with pytest.raises(StepError, match="Unknown step"):
        registry.run_step("setup::zzz")


def test_unknown_prefix_runs_nothing(registry):
    report = registry.run("nope")
    assert report.results == []
    assert report.ok


def test_positional_args_reach_every_step():
    seen = []
    reg = StepRegistry()
    reg.register("s", "1", lambda host, user=None: seen.append((host, user)))
    reg.register("s", "2", lambda host: seen.append((host, None)))
    report = reg.run("s", None, "h1", user="ubuntu")
    assert report.ok
    assert seen == [("h1", "ubuntu"), ("h1", None)]
    assert reg.run_step("s::2", "h2") is None
    assert seen[-1] == ("h2", None)
