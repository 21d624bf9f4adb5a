from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .issues import IssueTableError, load_issues


@dataclass(slots=True)
class CheckResult:
    name: str
    ok: bool
    message: str


def _run(cmd: list[str], cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        cmd,
        cwd=cwd,
        text=True,
        capture_output=True,
        check=False,
    )


def run_doctor(config: Config) -> tuple[list[CheckResult], bool]:
    results: list[CheckResult] = []

    shell_path = shutil.which(config.run_shell)
    if shell_path:
        results.append(CheckResult("shell", True, shell_path))
    else:
        results.append(CheckResult("shell", False, f"{config.run_shell!r} not found; set run_shell in config"))

    git_path = shutil.which("git")
    if git_path:
        results.append(CheckResult("git binary", True, git_path))
    else:
        results.append(CheckResult("git binary", False, "git not found in PATH"))

    if git_path:
        if config.repo_root.is_dir():
            proc = _run(["git", "rev-parse", "--show-toplevel"], cwd=config.repo_root)
            if proc.returncode == 0:
                results.append(CheckResult("git repository", True, proc.stdout.strip()))
            else:
                results.append(
                    CheckResult("git repository", False, (proc.stderr or "not a git repository").strip())
                )
        else:
            results.append(CheckResult("git repository", False, f"repo_root not found: {config.repo_root}"))

    try:
        records = load_issues(config.issues_csv)
        runnable = sum(1 for record in records if (record.revision or "").strip())
        results.append(
            CheckResult("issue table", True, f"{config.issues_csv} ({len(records)} issues, {runnable} runnable)")
        )
    except IssueTableError as exc:
        results.append(CheckResult("issue table", False, str(exc)))

    try:
        config.ensure_directories()
        probe = config.results_dir / ".doctor_write_test"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink(missing_ok=True)
        results.append(CheckResult("results dir writable", True, str(config.results_dir)))
    except OSError as exc:
        results.append(CheckResult("results dir writable", False, str(exc)))

    success = all(item.ok for item in results)
    return results, success


def print_doctor_report(results: list[CheckResult]) -> None:
    for item in results:
        status = "PASS" if item.ok else "FAIL"
        print(f"[{status}] {item.name}: {item.message}")
