from __future__ import annotations

import os

import pytest

from bugrepro.config import Config
from bugrepro.models import IssueRecord
from bugrepro.pipeline import IssuePipeline, build_run_command
from bugrepro.store import ResultStore
from bugrepro.supervisor import RunSupervisor
from bugrepro.vcs import CollaboratorError

pytestmark = pytest.mark.skipif(os.name == "nt", reason="runs workloads through /bin/sh")


class FakeVcs:
    def __init__(self, fail_checkout: set[str] | None = None, fail_reset: bool = False):
        self.fail_checkout = fail_checkout or set()
        self.fail_reset = fail_reset
        self.calls: list[tuple[str, str | None]] = []

    def checkout(self, revision: str) -> None:
        self.calls.append(("checkout", revision))
        if revision in self.fail_checkout:
            raise CollaboratorError(cmd=f"git checkout {revision}", exit_code=1, stderr="unknown revision")

    def reset_cache(self) -> None:
        self.calls.append(("reset_cache", None))
        if self.fail_reset:
            raise CollaboratorError(cmd="cargo cache -a", exit_code=101, stderr="no cargo-cache")


def _pipeline(config: Config, vcs: FakeVcs, **kwargs) -> IssuePipeline:
    store = ResultStore(config.results_dir)
    supervisor = RunSupervisor(store, heartbeat_seconds=config.heartbeat_seconds)
    return IssuePipeline(config=config, store=store, supervisor=supervisor, vcs=vcs, **kwargs)


def test_build_run_command_interpolates_options_verbatim() -> None:
    template = "RUST_LOG=limbo_sim=debug cargo run --bin limbo_sim -- {opts}"
    assert build_run_command(template, "--seed 5 --mode 'a b'") == (
        "RUST_LOG=limbo_sim=debug cargo run --bin limbo_sim -- --seed 5 --mode 'a b'"
    )
    assert build_run_command(template, "").endswith("-- ")


def test_shell_braces_in_template_are_left_to_the_shell(
    config: Config, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("BUGREPRO_TEST_VALUE", "from-env")
    config.runs_per_issue = 1
    config.run_command_template = 'echo "${BUGREPRO_TEST_VALUE}" "${UNSET_BUGREPRO_VAR:-fallback}" {opts}'

    result = _pipeline(config, FakeVcs()).process(IssueRecord(issue_id=1, revision="abc", run_options="x"))

    assert result.status == "completed"
    stdout = (config.results_dir / "1" / "run_1" / "stdout.txt").read_bytes()
    assert stdout == b"from-env fallback x\n"


@pytest.mark.parametrize("revision", [None, "", "   "])
def test_blank_revision_is_skipped_without_side_effects(config: Config, revision: str | None) -> None:
    vcs = FakeVcs()
    result = _pipeline(config, vcs).process(IssueRecord(issue_id=8, revision=revision, run_options="x"))

    assert result.status == "skipped"
    assert vcs.calls == []
    assert not (config.results_dir / "8").exists()


def test_checkout_failure_creates_no_issue_directory(config: Config) -> None:
    vcs = FakeVcs(fail_checkout={"bad"})
    result = _pipeline(config, vcs).process(IssueRecord(issue_id=8, revision="bad"))

    assert result.status == "checkout_failed"
    assert "unknown revision" in (result.error or "")
    assert vcs.calls == [("checkout", "bad")]
    assert not (config.results_dir / "8").exists()


def test_cache_reset_failure_stops_before_any_run(config: Config) -> None:
    vcs = FakeVcs(fail_reset=True)
    result = _pipeline(config, vcs).process(IssueRecord(issue_id=8, revision="abc"))

    assert result.status == "cache_reset_failed"
    issue_dir = config.results_dir / "8"
    assert (issue_dir / "commit.txt").read_text(encoding="utf-8") == "abc\n"
    assert list(issue_dir.glob("run_*")) == []


def test_successful_issue_creates_every_run_directory(config: Config) -> None:
    vcs = FakeVcs()
    result = _pipeline(config, vcs).process(
        IssueRecord(issue_id=12, revision="abc123", run_options="--seed 5 --mode fast")
    )

    assert result.status == "completed"
    assert result.runs_completed == 3
    assert vcs.calls == [("checkout", "abc123"), ("reset_cache", None)]
    issue_dir = config.results_dir / "12"
    assert (issue_dir / "commit.txt").read_text(encoding="utf-8") == "abc123\n"
    assert sorted(path.name for path in issue_dir.glob("run_*")) == ["run_1", "run_2", "run_3"]
    for index in range(1, 4):
        run_dir = issue_dir / f"run_{index}"
        assert (run_dir / "stdout.txt").read_bytes() == b"--seed 5 --mode fast\n"
        assert (run_dir / "stderr.txt").read_bytes() == b""
        assert (run_dir / "exit_code.txt").read_text(encoding="utf-8") == "0"


def test_timed_out_runs_do_not_stop_later_runs(config: Config) -> None:
    config.run_command_template = "{opts}"
    config.timeout_secs = 1
    result = _pipeline(config, FakeVcs()).process(IssueRecord(issue_id=3, revision="abc", run_options="sleep 5"))

    assert result.status == "completed"
    for index in range(1, 4):
        status = (config.results_dir / "3" / f"run_{index}" / "exit_code.txt").read_text(encoding="utf-8")
        assert status == "-1 timed out"


def test_stop_request_interrupts_between_runs(config: Config) -> None:
    checks: list[int] = []

    def stop_after_two() -> bool:
        checks.append(1)
        return len(checks) > 2

    result = _pipeline(config, FakeVcs(), stop_requested=stop_after_two).process(
        IssueRecord(issue_id=4, revision="abc")
    )

    assert result.status == "interrupted"
    assert result.runs_completed == 2
    assert sorted(path.name for path in (config.results_dir / "4").glob("run_*")) == ["run_1", "run_2"]
