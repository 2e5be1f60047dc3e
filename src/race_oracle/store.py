import asyncio
import logging
from collections import Counter, deque
from typing import Protocol

from race_oracle.models import ScenarioReport

log = logging.getLogger("race_oracle.store")


class Store(Protocol):
    async def record(self, report: ScenarioReport) -> None: ...
    async def all_records(self) -> list[dict]: ...
    async def failures(self) -> list[dict]: ...
    def snapshot_stats(self) -> dict: ...


class InMemoryStore:
    """Recent scenario reports and verdict tallies for the control API."""

    def __init__(self, maxlen: int = 5000) -> None:
        self._lock = asyncio.Lock()
        self.reports: deque[ScenarioReport] = deque(maxlen=maxlen)
        self.count_by_verdict: dict[str, int] = {}
        self.count_by_kind: dict[str, int] = {}
        self.passed = 0
        self.failed = 0

    def _recount(self) -> None:
        self.count_by_verdict = Counter(str(r.verdict) for r in self.reports)
        self.count_by_kind = Counter(str(r.kind) for r in self.reports)
        self.passed = sum(r.passed for r in self.reports)
        self.failed = len(self.reports) - self.passed

    async def record(self, report: ScenarioReport) -> None:
        async with self._lock:
            self.reports.append(report)
            self._recount()
        log.debug("Recorded %s k=%s -> %s", report.kind, report.capacity, report.verdict)

    async def all_records(self) -> list[dict]:
        async with self._lock:
            return [r.to_dict() for r in self.reports]

    async def failures(self) -> list[dict]:
        async with self._lock:
            return [r.to_dict() for r in self.reports if not r.passed]

    def snapshot_stats(self) -> dict:
        return {
            "total": len(self.reports),
            "passed": self.passed,
            "failed": self.failed,
            "by_verdict": dict(self.count_by_verdict),
            "by_kind": dict(self.count_by_kind),
        }
