from __future__ import annotations

import logging
import signal
import time
from typing import Iterable

from .config import Config
from .models import BatchSummary, IssueRecord
from .pipeline import IssuePipeline
from .store import ResultStore
from .supervisor import RunSupervisor
from .vcs import SourceControl


class BatchDriver:
    def __init__(self, config: Config, pipeline: IssuePipeline):
        self.config = config
        self.pipeline = pipeline
        self.log = logging.getLogger(__name__)
        self._stop_requested = False
        pipeline.stop_requested = self.stop_requested

    @classmethod
    def from_config(cls, config: Config) -> "BatchDriver":
        store = ResultStore(config.results_dir)
        supervisor = RunSupervisor(
            store=store,
            shell=config.run_shell,
            heartbeat_seconds=config.heartbeat_seconds,
        )
        vcs = SourceControl(
            repo_root=config.repo_root,
            checkout_cmd=config.checkout_cmd,
            reset_cache_cmd=config.reset_cache_cmd,
            shell=config.run_shell,
        )
        pipeline = IssuePipeline(config=config, store=store, supervisor=supervisor, vcs=vcs)
        return cls(config=config, pipeline=pipeline)

    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        self._stop_requested = True

    def handle_signal(self, signum: int) -> None:
        if not self._stop_requested:
            self.log.info(
                "signal received signum=%s stop_requested=true; finishing current run (signal again to kill it)",
                signum,
            )
            self._stop_requested = True
            return
        self.log.warning("signal received again signum=%s; killing current run", signum)
        self.pipeline.supervisor.kill_active()

    def install_signal_handlers(self) -> None:
        def _handler(signum: int, _frame) -> None:
            self.handle_signal(signum)

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)

    def run(self, records: Iterable[IssueRecord], issue_ids: set[int] | None = None) -> BatchSummary:
        summary = BatchSummary()
        started = time.monotonic()
        self.log.info(
            "batch started runs_per_issue=%s timeout_secs=%s results_dir=%s",
            self.config.runs_per_issue,
            self.config.timeout_secs,
            self.config.results_dir,
        )
        for record in records:
            if issue_ids is not None and record.issue_id not in issue_ids:
                continue
            if self._stop_requested:
                summary.stopped = True
                self.log.warning("batch stopped before issue id=%s", record.issue_id)
                break
            result = self.pipeline.process(record)
            summary.record(result)
            if result.status == "interrupted":
                summary.stopped = True
                break

        self.log.info(
            "batch complete issues=%s counts=%s stopped=%s elapsed_seconds=%s",
            summary.total,
            summary.counts,
            summary.stopped,
            int(time.monotonic() - started),
        )
        return summary
