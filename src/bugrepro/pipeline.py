from __future__ import annotations

import logging
from typing import Callable

from .config import Config
from .models import IssueRecord, IssueResult
from .store import ResultStore, encode_status
from .supervisor import RunSupervisor
from .vcs import CollaboratorError, SourceControl


def build_run_command(template: str, run_options: str) -> str:
    return template.replace("{opts}", run_options)


class IssuePipeline:
    def __init__(
        self,
        config: Config,
        store: ResultStore,
        supervisor: RunSupervisor,
        vcs: SourceControl,
        stop_requested: Callable[[], bool] | None = None,
    ):
        self.config = config
        self.store = store
        self.supervisor = supervisor
        self.vcs = vcs
        self.stop_requested = stop_requested or (lambda: False)
        self.log = logging.getLogger(__name__)

    def process(self, record: IssueRecord) -> IssueResult:
        issue_id = record.issue_id
        revision = (record.revision or "").strip()
        if not revision:
            self.log.info("issue skipped id=%s reason=missing revision", issue_id)
            return IssueResult(issue_id=issue_id, status="skipped")

        self.log.info("processing issue id=%s revision=%s", issue_id, revision)
        try:
            self.vcs.checkout(revision)
        except CollaboratorError as exc:
            self.log.error("checkout failed id=%s revision=%s error=%s", issue_id, revision, exc)
            return IssueResult(issue_id=issue_id, status="checkout_failed", revision=revision, error=str(exc))

        self.store.write_commit(issue_id, revision)

        try:
            self.vcs.reset_cache()
        except CollaboratorError as exc:
            self.log.error("cache reset failed id=%s error=%s", issue_id, exc)
            return IssueResult(
                issue_id=issue_id,
                status="cache_reset_failed",
                revision=revision,
                error=str(exc),
            )

        command = build_run_command(self.config.run_command_template, record.run_options)
        total = self.config.runs_per_issue
        completed = 0
        for run_index in range(1, total + 1):
            if self.stop_requested():
                self.log.warning("issue interrupted id=%s runs_completed=%s/%s", issue_id, completed, total)
                return IssueResult(
                    issue_id=issue_id,
                    status="interrupted",
                    revision=revision,
                    runs_completed=completed,
                )
            outcome = self.supervisor.supervise(
                command,
                self.config.timeout_secs,
                self.store.run_dir(issue_id, run_index),
            )
            completed += 1
            self.log.info(
                "run complete id=%s run=%s/%s status=%s",
                issue_id,
                run_index,
                total,
                encode_status(outcome),
            )

        self.log.info("issue complete id=%s runs=%s", issue_id, completed)
        return IssueResult(issue_id=issue_id, status="completed", revision=revision, runs_completed=completed)
