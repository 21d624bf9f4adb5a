"""Run one shell command under a wall-clock limit and record what it produced.

The child gets its own process group so a timeout can take down everything it
started. Both pipes are drained by separate workers for the whole lifetime of
the child; each worker owns its buffer and hands it back through its future.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import IO, Any

from .models import Completed, RunOutcome, SpawnFailed, TimedOut, WaitFailed
from .store import ResultStore, encode_status


def _drain(stream: IO[bytes]) -> bytes:
    with stream:
        return stream.read()


class RunSupervisor:
    _DRAIN_GRACE_SECONDS = 30.0

    def __init__(self, store: ResultStore, shell: str = "/bin/sh", heartbeat_seconds: int = 60):
        self.store = store
        self.shell = shell
        self.heartbeat_seconds = max(1, heartbeat_seconds)
        self.log = logging.getLogger(__name__)
        self._active: subprocess.Popen[bytes] | None = None

    def supervise(self, command: str, time_limit: float, output_dir: Path) -> RunOutcome:
        # Failing to create the run directory is not a classified outcome.
        self.store.ensure_dir(output_dir)
        started = time.monotonic()
        deadline = started + max(0.0, float(time_limit))

        outcome: RunOutcome
        try:
            proc = self._spawn(command)
        except OSError as exc:
            outcome = SpawnFailed(str(exc))
            self.log.error("spawn failed output_dir=%s error=%s", output_dir, exc)
            self.store.write_run_artifacts(output_dir, b"", f"error: {exc}".encode("utf-8"), outcome)
            return outcome

        self.log.debug("spawned pid=%s time_limit=%s cmd=%s", proc.pid, time_limit, command)
        self._active = proc
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="bugrepro-drain")
        try:
            stdout_future = executor.submit(_drain, proc.stdout)
            stderr_future = executor.submit(_drain, proc.stderr)

            try:
                returncode = self._wait_until(proc, deadline, started, output_dir)
            except OSError as exc:
                self.log.error("wait failed pid=%s output_dir=%s error=%s", proc.pid, output_dir, exc)
                self._kill_process_tree(proc)
                outcome = WaitFailed(str(exc))
                self.store.write_run_artifacts(output_dir, b"", f"error: {exc}".encode("utf-8"), outcome)
                return outcome

            if returncode is None:
                self.log.warning(
                    "run timed out pid=%s time_limit=%s output_dir=%s",
                    proc.pid,
                    time_limit,
                    output_dir,
                )
                self._kill_process_tree(proc)
                proc.wait()
                outcome = TimedOut()
                stdout, stderr = self._collect(stdout_future, stderr_future, self._DRAIN_GRACE_SECONDS)
            else:
                # Descendants may still hold the pipes open after the shell exits.
                remaining = max(0.0, deadline - time.monotonic())
                _, pending = wait([stdout_future, stderr_future], timeout=remaining)
                if pending:
                    self.log.warning(
                        "output still open after exit pid=%s; terminating process group", proc.pid
                    )
                    self._kill_process_tree(proc)
                else:
                    self._kill_leftover_group(proc)
                outcome = Completed(returncode if returncode >= 0 else None)
                stdout, stderr = self._collect(stdout_future, stderr_future, self._DRAIN_GRACE_SECONDS)

            self.store.write_run_artifacts(output_dir, stdout, stderr, outcome)
            self.log.debug(
                "run recorded pid=%s status=%s elapsed_seconds=%s stdout_bytes=%s stderr_bytes=%s",
                proc.pid,
                encode_status(outcome),
                int(time.monotonic() - started),
                len(stdout),
                len(stderr),
            )
            return outcome
        finally:
            self._active = None
            executor.shutdown(wait=False)

    def _spawn(self, command: str) -> subprocess.Popen[bytes]:
        kwargs: dict[str, Any] = {}
        if os.name == "nt":
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = True
        return subprocess.Popen(
            [self.shell, "-c", command],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            **kwargs,
        )

    def _wait_until(
        self,
        proc: subprocess.Popen[bytes],
        deadline: float,
        started: float,
        output_dir: Path,
    ) -> int | None:
        """Return the exit status, or None once the deadline passes."""
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            try:
                return proc.wait(timeout=min(self.heartbeat_seconds, remaining))
            except subprocess.TimeoutExpired:
                if time.monotonic() >= deadline:
                    return None
                self.log.info(
                    "run still running pid=%s elapsed_seconds=%s output_dir=%s",
                    proc.pid,
                    int(time.monotonic() - started),
                    output_dir,
                )

    def _collect(
        self,
        stdout_future: Future[bytes],
        stderr_future: Future[bytes],
        timeout: float,
    ) -> tuple[bytes, bytes]:
        wait([stdout_future, stderr_future], timeout=timeout)
        buffers: list[bytes] = []
        for name, future in (("stdout", stdout_future), ("stderr", stderr_future)):
            if not future.done():
                self.log.error("%s drain did not finish within %ss; recording it empty", name, timeout)
                buffers.append(b"")
                continue
            exc = future.exception()
            if exc is not None:
                self.log.error("%s drain failed error=%s", name, exc)
                buffers.append(b"")
                continue
            buffers.append(future.result())
        return buffers[0], buffers[1]

    def kill_active(self) -> bool:
        """Kill the process tree of the run in progress, if any.

        Safe to call from a signal handler; the interrupted run is still
        classified and recorded by ``supervise``.
        """
        proc = self._active
        if proc is None:
            return False
        self.log.warning("killing active run pid=%s", proc.pid)
        self._kill_process_tree(proc)
        return True

    def _kill_leftover_group(self, proc: subprocess.Popen[bytes]) -> None:
        # The shell has exited and the pipes are closed; background descendants
        # that detached from the pipes may still be in the group.
        if os.name == "nt":
            return
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            return
        except PermissionError as exc:
            self.log.warning("process group sweep refused pid=%s error=%s", proc.pid, exc)
            return
        self.log.info("killed leftover descendants pid=%s", proc.pid)

    def _kill_process_tree(self, proc: subprocess.Popen[bytes]) -> None:
        if os.name == "nt":
            subprocess.call(
                ["taskkill", "/PID", str(proc.pid), "/T", "/F"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        else:
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass
            except PermissionError as exc:
                self.log.warning("process group kill refused pid=%s error=%s", proc.pid, exc)
        if proc.poll() is None:
            proc.kill()
