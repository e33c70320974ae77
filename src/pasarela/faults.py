"""
Injectable fault decisions for the simulated wallet and facilitator.

The simulators ask a FaultPolicy whether a call should fail instead of
rolling dice inline, so tests can force either branch.
"""

from __future__ import annotations

import random
from collections import deque
from typing import Iterable, Optional, Protocol


# Operation names the simulators ask about.
SIGN = "sign"
SETTLE = "settle"

# Failure rates observed in the reference demo flow.
REFERENCE_REJECTION_RATE = 0.2
REFERENCE_SETTLEMENT_FAILURE_RATE = 0.1


class FaultPolicy(Protocol):
    def should_fail(self, operation: str) -> bool:
        ...


class NoFaults:
    def should_fail(self, operation: str) -> bool:
        return False


class AlwaysFail:
    """Fail the named operations (all operations when none given)."""

    def __init__(self, *operations: str):
        self.operations = frozenset(operations)

    def should_fail(self, operation: str) -> bool:
        return not self.operations or operation in self.operations


class RandomFaults:
    """Fail with a fixed probability, drawn from an injectable RNG."""

    def __init__(self, probability: float, rng: Optional[random.Random] = None):
        if not 0.0 <= probability <= 1.0:
            raise ValueError(f"Fault probability must be within [0, 1]: {probability}")
        self.probability = probability
        self._rng = rng or random.Random()

    def should_fail(self, operation: str) -> bool:
        return self._rng.random() < self.probability


class ScriptedFaults:
    """Replay a fixed sequence of outcomes; succeeds once exhausted."""

    def __init__(self, outcomes: Iterable[bool]):
        self._outcomes = deque(outcomes)
        self.calls: list[str] = []

    def should_fail(self, operation: str) -> bool:
        self.calls.append(operation)
        if not self._outcomes:
            return False
        return self._outcomes.popleft()
