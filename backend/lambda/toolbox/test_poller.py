"""Spot fulfillment poller tests."""

from __future__ import annotations

import os
import sys

sys.path.insert(0, os.path.dirname(__file__))

from errors import GatewayError  # noqa: E402
from poller import FulfillmentOutcome, FulfillmentPoller, RequestState  # noqa: E402


class _Log:
    def __init__(self) -> None:
        self.lines: list = []

    def __call__(self, fmt, *args) -> None:
        self.lines.append(fmt % args if args else fmt)


def _record(rid: str, iid: str = "") -> dict:
    record = {"SpotInstanceRequestId": rid, "State": "open"}
    if iid:
        record["InstanceId"] = iid
    return record


def _describe(*responses):
    calls: list = []
    queue = list(responses)

    def describe(ids):
        calls.append(list(ids))
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return describe, calls


def test_fulfills_after_third_describe():
    describe, calls = _describe(
        [_record("sir-a"), _record("sir-b"), _record("sir-c")],
        [_record("sir-a", "i-a"), _record("sir-b"), _record("sir-c")],
        [_record("sir-a", "i-a"), _record("sir-b", "i-b"), _record("sir-c", "i-c")],
    )
    sleeps: list = []
    log = _Log()

    result = FulfillmentPoller(describe, interval_seconds=0.5, sleep=sleeps.append).wait(
        ["sir-a", "sir-b", "sir-c"], log
    )

    assert result.outcome is FulfillmentOutcome.FULFILLED
    assert result.instance_ids == ["i-a", "i-b", "i-c"]
    assert result.attempts == 3
    assert len(calls) == 3
    assert all(c == ["sir-a", "sir-b", "sir-c"] for c in calls)
    assert sleeps == [0.5, 0.5]
    assert log.lines == [
        "sir-a is not fulfilled",
        "sir-b is not fulfilled",
        "sir-c is not fulfilled",
        "sir-b is not fulfilled",
        "sir-c is not fulfilled",
    ]
    assert set(result.states.values()) == {RequestState.FULFILLED}


def test_instance_ids_keep_submission_order():
    describe, _ = _describe([_record("sir-b", "i-b"), _record("sir-a", "i-a")])

    result = FulfillmentPoller(describe, sleep=lambda _s: None).wait(["sir-a", "sir-b"], _Log())

    assert result.instance_ids == ["i-a", "i-b"]


def test_single_describe_failure_is_tolerated():
    describe, calls = _describe(
        GatewayError("DescribeSpotInstanceRequests", message="throttled"),
        [_record("sir-a", "i-a")],
    )
    sleeps: list = []
    log = _Log()

    result = FulfillmentPoller(describe, sleep=sleeps.append).wait(["sir-a"], log)

    assert result.outcome is FulfillmentOutcome.FULFILLED
    assert len(calls) == 2
    assert sleeps == [1.0]
    assert log.lines == ["DescribeSpotInstanceRequests: throttled"]


def test_second_consecutive_failure_aborts():
    describe, calls = _describe(
        GatewayError("DescribeSpotInstanceRequests", message="first"),
        GatewayError("DescribeSpotInstanceRequests", message="second"),
        [_record("sir-a", "i-a")],
    )

    result = FulfillmentPoller(describe, sleep=lambda _s: None).wait(["sir-a"], _Log())

    assert result.outcome is FulfillmentOutcome.FAILED
    assert len(calls) == 2
    assert result.instance_ids == []
    assert result.error == "DescribeSpotInstanceRequests: second"


def test_failure_counter_resets_after_success():
    describe, calls = _describe(
        GatewayError("DescribeSpotInstanceRequests", message="one"),
        [_record("sir-a")],
        GatewayError("DescribeSpotInstanceRequests", message="two"),
        [_record("sir-a", "i-a")],
    )

    result = FulfillmentPoller(describe, sleep=lambda _s: None).wait(["sir-a"], _Log())

    assert result.outcome is FulfillmentOutcome.FULFILLED
    assert len(calls) == 4


def test_bounded_attempts_time_out():
    describe, calls = _describe(*([[_record("sir-a")]] * 3))
    sleeps: list = []
    log = _Log()

    result = FulfillmentPoller(describe, max_attempts=3, sleep=sleeps.append).wait(["sir-a"], log)

    assert result.outcome is FulfillmentOutcome.TIMED_OUT
    assert len(calls) == 3
    assert len(sleeps) == 2
    assert log.lines[-1] == "spot requests not fulfilled after 3 attempts"
    assert result.states["sir-a"] is RequestState.PENDING
