"""Crash policy: restart counting and the rolling time window."""

from __future__ import annotations

import pytest

from lsclients.engine.crash_policy import CrashPolicy, CrashRecord, crash_loop_message
from lsclients.engine.models import CrashAction


def _clock(times):
    it = iter(times)
    return lambda: next(it)


def test_crashes_within_window_stop_on_the_fifth():
    policy = CrashPolicy(5, 180.0, clock=_clock([0, 10, 20, 30, 40]))
    record = CrashRecord()
    actions = [policy.evaluate(record) for _ in range(5)]
    assert actions == [CrashAction.REPLACE] * 4 + [CrashAction.STOP]
    assert len(record) == 5


def test_slow_crashes_keep_a_rolling_window():
    policy = CrashPolicy(5, 180.0, clock=_clock([0, 100, 200, 300, 400, 410, 420]))
    record = CrashRecord()
    actions = [policy.evaluate(record) for _ in range(7)]
    assert actions == [CrashAction.REPLACE] * 7
    assert len(record) == 4
    assert record.timestamps == [300, 400, 410, 420]


def test_fifth_crash_exactly_at_window_edge_stops():
    policy = CrashPolicy(5, 180.0, clock=_clock([0, 45, 90, 135, 180]))
    record = CrashRecord()
    actions = [policy.evaluate(record) for _ in range(5)]
    assert actions[-1] is CrashAction.STOP


def test_record_span():
    record = CrashRecord([5.0])
    assert record.span == 0.0
    record.append(65.0)
    assert record.span == 60.0
    record.drop_oldest()
    assert record.timestamps == [65.0]


def test_max_crashes_must_be_positive():
    with pytest.raises(ValueError):
        CrashPolicy(0)


def test_crash_loop_message_names_the_folder_only_when_multi_root():
    assert crash_loop_message("engine", True) == (
        "The language server for 'engine' crashed 5 times in the last "
        "3 minutes. It will not be restarted."
    )
    assert crash_loop_message("engine", False) == (
        "The language server crashed 5 times in the last 3 minutes. "
        "It will not be restarted."
    )
    assert "90 seconds" in crash_loop_message("x", False, 3, 90)
    assert "1 minute." in crash_loop_message("x", False, 3, 60)
