"""poller.py - Spot capacity fulfillment poller.

Drives a batch of submitted spot instance requests until every request has
an instance assigned. Per request the state moves
SUBMITTED -> PENDING -> FULFILLED; cancellation or failure of the underlying
request is not distinguished from pending.

The describe call is re-issued for the whole batch on every attempt. One
describe failure is tolerated (logged, then retried after the interval); a
second consecutive failure aborts. The loop is bounded by ``max_attempts``
describe calls, after which the outcome is ``TIMED_OUT``.
"""
from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from config import logger
from errors import GatewayError

__all__ = [
    "FulfillmentOutcome",
    "FulfillmentPoller",
    "FulfillmentResult",
    "RequestState",
]

MAX_CONSECUTIVE_FAILURES = 2


class RequestState(str, enum.Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    FULFILLED = "fulfilled"


class FulfillmentOutcome(str, enum.Enum):
    FULFILLED = "fulfilled"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass
class FulfillmentResult:
    outcome: FulfillmentOutcome
    # request id -> assigned instance id (None while unassigned), in submission order
    assignments: Dict[str, Optional[str]] = field(default_factory=dict)
    states: Dict[str, RequestState] = field(default_factory=dict)
    attempts: int = 0
    error: Optional[str] = None

    @property
    def instance_ids(self) -> List[str]:
        return [iid for iid in self.assignments.values() if iid]


class FulfillmentPoller:
    def __init__(
        self,
        describe: Callable[[List[str]], List[Dict[str, Any]]],
        *,
        interval_seconds: float = 1.0,
        max_attempts: int = 300,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.describe = describe
        self.interval_seconds = interval_seconds
        self.max_attempts = max(1, int(max_attempts))
        self.sleep = sleep

    def wait(self, request_ids: Sequence[str], log: Callable[..., None]) -> FulfillmentResult:
        ids = list(request_ids)
        result = FulfillmentResult(
            outcome=FulfillmentOutcome.TIMED_OUT,
            assignments={rid: None for rid in ids},
            states={rid: RequestState.SUBMITTED for rid in ids},
        )
        consecutive_failures = 0

        while result.attempts < self.max_attempts:
            result.attempts += 1
            try:
                records = self.describe(ids)
            except GatewayError as exc:
                consecutive_failures += 1
                log("%s", exc)
                if consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
                    result.outcome = FulfillmentOutcome.FAILED
                    result.error = str(exc)
                    logger.warning("spot fulfillment aborted after %d attempts: %s", result.attempts, exc)
                    return result
                self._pause(result)
                continue
            consecutive_failures = 0

            for record in records:
                rid = record.get("SpotInstanceRequestId")
                if rid not in result.assignments:
                    continue
                instance_id = record.get("InstanceId") or None
                if instance_id:
                    result.assignments[rid] = instance_id
            pending = []
            for rid, instance_id in result.assignments.items():
                if instance_id:
                    result.states[rid] = RequestState.FULFILLED
                else:
                    result.states[rid] = RequestState.PENDING
                    pending.append(rid)
            if not pending:
                result.outcome = FulfillmentOutcome.FULFILLED
                return result
            for rid in pending:
                log("%s is not fulfilled", rid)
            self._pause(result)

        log("spot requests not fulfilled after %d attempts", result.attempts)
        logger.warning("spot fulfillment timed out after %d attempts", result.attempts)
        return result

    def _pause(self, result: FulfillmentResult) -> None:
        if result.attempts < self.max_attempts:
            self.sleep(self.interval_seconds)
