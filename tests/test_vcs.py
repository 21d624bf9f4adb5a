from __future__ import annotations

import os
from pathlib import Path

import pytest

from bugrepro.vcs import CollaboratorError, SourceControl

pytestmark = pytest.mark.skipif(os.name == "nt", reason="uses /bin/sh")


def test_checkout_quotes_revision(tmp_path: Path) -> None:
    vcs = SourceControl(tmp_path, checkout_cmd="echo {revision} > rev.txt")

    vcs.checkout("abc; touch pwned")

    assert (tmp_path / "rev.txt").read_text(encoding="utf-8") == "abc; touch pwned\n"
    assert not (tmp_path / "pwned").exists()


def test_checkout_command_may_contain_shell_braces(tmp_path: Path) -> None:
    vcs = SourceControl(tmp_path, checkout_cmd="echo {revision} | awk '{print $1}' > rev.txt")

    vcs.checkout("abc123")

    assert (tmp_path / "rev.txt").read_text(encoding="utf-8") == "abc123\n"


def test_checkout_failure_raises_with_stderr(tmp_path: Path) -> None:
    vcs = SourceControl(tmp_path, checkout_cmd="echo 'no such revision {revision}' >&2; exit 128")

    with pytest.raises(CollaboratorError) as excinfo:
        vcs.checkout("abc")

    assert excinfo.value.exit_code == 128
    assert "no such revision abc" in str(excinfo.value)


def test_reset_cache_runs_in_repo_root(tmp_path: Path) -> None:
    SourceControl(tmp_path, reset_cache_cmd="touch cleared").reset_cache()
    assert (tmp_path / "cleared").exists()


def test_missing_shell_is_a_collaborator_error(tmp_path: Path) -> None:
    vcs = SourceControl(tmp_path, shell=str(tmp_path / "missing-shell"))

    with pytest.raises(CollaboratorError) as excinfo:
        vcs.reset_cache()

    assert excinfo.value.exit_code == -2
