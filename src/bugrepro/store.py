from __future__ import annotations

import os
import re
from pathlib import Path

from .models import Completed, RunOutcome, RunTally, SpawnFailed, TimedOut, WaitFailed

STDOUT_FILE = "stdout.txt"
STDERR_FILE = "stderr.txt"
STATUS_FILE = "exit_code.txt"
COMMIT_FILE = "commit.txt"

TIMED_OUT_TOKEN = "-1 timed out"
UNAVAILABLE_TOKEN = "-2"

_RUN_DIR_RE = re.compile(r"^run_(\d+)$")
_PLAIN_INT_RE = re.compile(r"^-?\d+$")


def encode_status(outcome: RunOutcome) -> str:
    if isinstance(outcome, Completed):
        if outcome.exit_code is None:
            return UNAVAILABLE_TOKEN
        return str(outcome.exit_code)
    if isinstance(outcome, TimedOut):
        return TIMED_OUT_TOKEN
    if isinstance(outcome, (SpawnFailed, WaitFailed)):
        return UNAVAILABLE_TOKEN
    raise TypeError(f"Unknown run outcome: {outcome!r}")


def classify_status(token: str | None) -> str:
    """Map an ``exit_code.txt`` token to passed|failed|timed_out|errored|missing.

    ``-2`` is reserved for spawn/wait failures and unreportable exit codes, so it
    counts as ``errored`` rather than as a workload failure. Anything that is not
    a plain integer is abnormal.
    """
    if token is None:
        return "missing"
    clean = token.strip()
    if clean == TIMED_OUT_TOKEN:
        return "timed_out"
    if not _PLAIN_INT_RE.match(clean):
        return "errored"
    if clean == UNAVAILABLE_TOKEN:
        return "errored"
    return "passed" if int(clean) == 0 else "failed"


def _atomic_write_bytes(path: Path, payload: bytes) -> None:
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_bytes(payload)
    os.replace(tmp, path)


class ResultStore:
    def __init__(self, root: Path):
        self.root = Path(root)

    def issue_dir(self, issue_id: int) -> Path:
        return self.root / str(issue_id)

    def run_dir(self, issue_id: int, run_index: int) -> Path:
        return self.issue_dir(issue_id) / f"run_{run_index}"

    def ensure_dir(self, path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        return path

    def write_commit(self, issue_id: int, revision: str) -> Path:
        issue_dir = self.ensure_dir(self.issue_dir(issue_id))
        commit_path = issue_dir / COMMIT_FILE
        _atomic_write_bytes(commit_path, f"{revision}\n".encode("utf-8"))
        return commit_path

    def write_run_artifacts(
        self,
        run_dir: Path,
        stdout: bytes,
        stderr: bytes,
        outcome: RunOutcome,
    ) -> None:
        self.ensure_dir(run_dir)
        _atomic_write_bytes(run_dir / STDOUT_FILE, stdout)
        _atomic_write_bytes(run_dir / STDERR_FILE, stderr)
        _atomic_write_bytes(run_dir / STATUS_FILE, encode_status(outcome).encode("utf-8"))

    def list_issue_ids(self) -> list[int]:
        if not self.root.is_dir():
            return []
        ids = [int(entry.name) for entry in self.root.iterdir() if entry.is_dir() and entry.name.isdigit()]
        return sorted(ids)

    def read_commit(self, issue_id: int) -> str | None:
        path = self.issue_dir(issue_id) / COMMIT_FILE
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8", errors="replace").strip() or None

    def read_status(self, run_dir: Path) -> str | None:
        path = run_dir / STATUS_FILE
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8", errors="replace")

    def tally(self, issue_id: int) -> RunTally:
        tally = RunTally(issue_id=issue_id, revision=self.read_commit(issue_id))
        issue_dir = self.issue_dir(issue_id)
        if not issue_dir.is_dir():
            return tally
        for entry in sorted(issue_dir.iterdir()):
            if not entry.is_dir() or not _RUN_DIR_RE.match(entry.name):
                continue
            kind = classify_status(self.read_status(entry))
            setattr(tally, kind, getattr(tally, kind) + 1)
        return tally
