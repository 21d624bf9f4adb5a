from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
import tomllib

DEFAULT_RUN_COMMAND = "RUST_LOG=limbo_sim=debug cargo run --bin limbo_sim -- {opts}"

log = logging.getLogger(__name__)


def _coalesce_env(name: str) -> str | None:
    prefixed = f"BUGREPRO_{name}"
    if prefixed in os.environ:
        return os.environ[prefixed]
    if name in os.environ:
        return os.environ[name]
    return None


def default_config_path() -> Path:
    return (Path.cwd() / "bugrepro.toml").resolve()


@dataclass(slots=True)
class Config:
    repo_root: Path
    issues_csv: Path
    results_dir: Path
    runs_per_issue: int = 100
    timeout_secs: int = 600
    heartbeat_seconds: int = 60
    run_shell: str = "/bin/sh"
    run_command_template: str = DEFAULT_RUN_COMMAND
    checkout_cmd: str = "git checkout {revision}"
    reset_cache_cmd: str = "cargo cache -a"

    def ensure_directories(self) -> None:
        self.results_dir.mkdir(parents=True, exist_ok=True)


def load_config(config_path: str | Path | None = None) -> Config:
    raw: dict[str, object] = {}
    resolved_config_path: Path | None = None
    default_path = default_config_path()
    if config_path:
        candidate = Path(config_path).expanduser()
        if candidate.exists():
            resolved_config_path = candidate.resolve()
            with candidate.open("rb") as handle:
                raw = tomllib.load(handle)
        elif candidate.resolve() != default_path:
            raise FileNotFoundError(f"Config file not found: {config_path}")
    elif default_path.exists():
        resolved_config_path = default_path
        with default_path.open("rb") as handle:
            raw = tomllib.load(handle)

    config_dir = resolved_config_path.parent if resolved_config_path else Path.cwd()

    def path_value(key: str, default: str) -> Path:
        env = _coalesce_env(key.upper())
        val = raw.get(key)
        text = env if env is not None else (default if val is None else str(val))
        path = Path(text).expanduser()
        if not path.is_absolute():
            path = (config_dir / path).resolve()
        return path

    def int_value(key: str, default: int) -> int:
        env = _coalesce_env(key.upper())
        val = raw.get(key)
        if env is not None:
            val = env
        if val is None:
            return default
        try:
            parsed = int(str(val).strip())
        except ValueError:
            log.warning("ignoring unparseable setting key=%s value=%r default=%s", key, val, default)
            return default
        if parsed < 0:
            log.warning("ignoring negative setting key=%s value=%s default=%s", key, parsed, default)
            return default
        return parsed

    def str_value(key: str, default: str) -> str:
        env = _coalesce_env(key.upper())
        if env is not None:
            return env
        val = raw.get(key)
        return default if val is None else str(val)

    return Config(
        repo_root=path_value("repo_root", "."),
        issues_csv=path_value("issues_csv", "LimboBugs.csv"),
        results_dir=path_value("results_dir", "results"),
        runs_per_issue=int_value("runs_per_issue", 100),
        timeout_secs=int_value("timeout_secs", 600),
        heartbeat_seconds=int_value("heartbeat_seconds", 60),
        run_shell=str_value("run_shell", "/bin/sh"),
        run_command_template=str_value("run_command_template", DEFAULT_RUN_COMMAND),
        checkout_cmd=str_value("checkout_cmd", "git checkout {revision}"),
        reset_cache_cmd=str_value("reset_cache_cmd", "cargo cache -a"),
    )
