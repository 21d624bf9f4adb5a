from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class CollaboratorError(RuntimeError):
    cmd: str
    exit_code: int
    stderr: str

    def __str__(self) -> str:
        return f"Command failed ({self.exit_code}): {self.cmd}\nstderr: {self.stderr.strip()}"


class SourceControl:
    """Shell-backed checkout and cache-reset steps run between supervised runs."""

    def __init__(
        self,
        repo_root: Path,
        checkout_cmd: str = "git checkout {revision}",
        reset_cache_cmd: str = "cargo cache -a",
        shell: str = "/bin/sh",
    ):
        self.repo_root = repo_root
        self.checkout_cmd = checkout_cmd
        self.reset_cache_cmd = reset_cache_cmd
        self.shell = shell
        self.log = logging.getLogger(__name__)

    def checkout(self, revision: str) -> None:
        cmd = self.checkout_cmd.replace("{revision}", shlex.quote(revision))
        self._run(cmd)
        self.log.info("checked out revision=%s", revision)

    def reset_cache(self) -> None:
        self._run(self.reset_cache_cmd)
        self.log.info("cache reset cmd=%s", self.reset_cache_cmd)

    def _run(self, cmd: str) -> None:
        try:
            proc = subprocess.run(
                [self.shell, "-c", cmd],
                cwd=self.repo_root,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise CollaboratorError(cmd=cmd, exit_code=-2, stderr=str(exc)) from exc
        if proc.returncode != 0:
            raise CollaboratorError(cmd=cmd, exit_code=proc.returncode, stderr=proc.stderr or "")
