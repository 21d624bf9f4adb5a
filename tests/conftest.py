from __future__ import annotations

from pathlib import Path

import pytest

from bugrepro.config import Config
from bugrepro.store import ResultStore


@pytest.fixture
def store(tmp_path: Path) -> ResultStore:
    return ResultStore(tmp_path / "results")


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        repo_root=tmp_path,
        issues_csv=tmp_path / "issues.csv",
        results_dir=tmp_path / "results",
        runs_per_issue=3,
        timeout_secs=10,
        heartbeat_seconds=1,
        run_command_template="echo {opts}",
        checkout_cmd="true {revision}",
        reset_cache_cmd="true",
    )
