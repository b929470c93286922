from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class RewardOutcomeSnapshot:
    operations: Dict[str, Dict[str, int]]

    def as_dict(self) -> Dict[str, object]:
        return {key: dict(value) for key, value in self.operations.items()}


class RewardObservabilityStore:
    """Count reward outcomes per operation for dashboards. Never read by the engine."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._outcomes: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))

    def record_outcome(self, operation: str, outcome: str) -> None:
        with self._lock:
            self._outcomes[operation][outcome] += 1

    def snapshot(self) -> RewardOutcomeSnapshot:
        with self._lock:
            operations = {key: dict(value) for key, value in self._outcomes.items()}
        return RewardOutcomeSnapshot(operations=operations)

    def reset(self) -> None:
        with self._lock:
            self._outcomes.clear()


_STORE = RewardObservabilityStore()


def get_reward_store() -> RewardObservabilityStore:
    return _STORE


__all__ = ["get_reward_store", "RewardObservabilityStore", "RewardOutcomeSnapshot"]
