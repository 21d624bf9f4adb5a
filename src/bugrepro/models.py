from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union


@dataclass(frozen=True, slots=True)
class IssueRecord:
    issue_id: int
    revision: str | None
    run_options: str = ""


@dataclass(frozen=True, slots=True)
class Completed:
    exit_code: int | None  # None when the process was ended by a signal


@dataclass(frozen=True, slots=True)
class TimedOut:
    pass


@dataclass(frozen=True, slots=True)
class SpawnFailed:
    message: str


@dataclass(frozen=True, slots=True)
class WaitFailed:
    message: str


RunOutcome = Union[Completed, TimedOut, SpawnFailed, WaitFailed]


@dataclass(slots=True)
class IssueResult:
    issue_id: int
    status: str  # skipped|checkout_failed|cache_reset_failed|completed|interrupted
    revision: str | None = None
    runs_completed: int = 0
    error: str | None = None


@dataclass(slots=True)
class BatchSummary:
    counts: dict[str, int] = field(default_factory=dict)
    stopped: bool = False

    def record(self, result: IssueResult) -> None:
        self.counts[result.status] = self.counts.get(result.status, 0) + 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())


@dataclass(slots=True)
class RunTally:
    issue_id: int
    revision: str | None
    passed: int = 0
    failed: int = 0
    timed_out: int = 0
    errored: int = 0
    missing: int = 0

    @property
    def total(self) -> int:
        return self.passed + self.failed + self.timed_out + self.errored + self.missing
