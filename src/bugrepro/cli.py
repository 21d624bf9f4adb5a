from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import Config, default_config_path, load_config
from .doctor import print_doctor_report, run_doctor
from .driver import BatchDriver
from .issues import load_issues
from .store import ResultStore


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reproduce intermittent failures by re-running a workload per issue")

    def add_common_args(target: argparse.ArgumentParser, *, with_defaults: bool) -> None:
        config_default = str(default_config_path()) if with_defaults else argparse.SUPPRESS
        log_default = "INFO" if with_defaults else argparse.SUPPRESS
        log_file_default = None if with_defaults else argparse.SUPPRESS
        target.add_argument("--config", default=config_default, help="Path to config TOML file")
        target.add_argument(
            "--log-level",
            default=log_default,
            choices=["DEBUG", "INFO", "WARNING", "ERROR"],
            help="Logging level",
        )
        target.add_argument(
            "--log-file",
            default=log_file_default,
            help="Optional path to a log file (logs are still written to stderr)",
        )

    add_common_args(parser, with_defaults=True)

    sub = parser.add_subparsers(dest="command", required=True)
    run_parser = sub.add_parser("run", help="Check out each issue's revision and run the workload repeatedly")
    add_common_args(run_parser, with_defaults=False)
    run_parser.add_argument(
        "--issue",
        "--issue-id",
        dest="issue_ids",
        type=int,
        action="append",
        help="Only process this issue id (repeatable)",
    )
    run_parser.add_argument("--runs", type=int, help="Runs per issue (overrides config)")
    run_parser.add_argument("--timeout", type=int, help="Per-run time limit in seconds (overrides config)")
    add_common_args(
        sub.add_parser("status", help="Summarize recorded run outcomes per issue"),
        with_defaults=False,
    )
    add_common_args(
        sub.add_parser("doctor", help="Run environment readiness checks"),
        with_defaults=False,
    )
    return parser


def apply_overrides(config: Config, runs: int | None, timeout: int | None) -> Config:
    if runs is not None:
        if runs < 0:
            raise ValueError(f"--runs must be non-negative, got {runs}")
        config.runs_per_issue = runs
    if timeout is not None:
        if timeout < 0:
            raise ValueError(f"--timeout must be non-negative, got {timeout}")
        config.timeout_secs = timeout
    return config


def cmd_run(
    config_path: str,
    issue_ids: list[int] | None = None,
    runs: int | None = None,
    timeout: int | None = None,
) -> int:
    config = apply_overrides(load_config(config_path), runs, timeout)
    records = load_issues(config.issues_csv)
    config.ensure_directories()
    driver = BatchDriver.from_config(config)
    driver.install_signal_handlers()
    summary = driver.run(records, issue_ids=set(issue_ids) if issue_ids else None)
    print(f"Issues processed: {summary.total}")
    for status in sorted(summary.counts):
        print(f"{status}: {summary.counts[status]}")
    return 130 if summary.stopped else 0


def cmd_status(config_path: str) -> int:
    config = load_config(config_path)
    store = ResultStore(config.results_dir)
    issue_ids = store.list_issue_ids()
    if not issue_ids:
        print(f"No results recorded yet in: {config.results_dir}")
        return 0
    print(f"Results dir: {config.results_dir}")
    for issue_id in issue_ids:
        tally = store.tally(issue_id)
        print(
            f"{issue_id} {tally.revision or '-'}: runs={tally.total} passed={tally.passed} "
            f"failed={tally.failed} timed_out={tally.timed_out} errored={tally.errored} "
            f"missing={tally.missing}"
        )
    return 0


def cmd_doctor(config_path: str) -> int:
    config = load_config(config_path)
    results, ok = run_doctor(config=config)
    print_doctor_report(results)
    return 0 if ok else 1


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    log_file = getattr(args, "log_file", None)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        resolved_log_file = Path(log_file).expanduser().resolve()
        resolved_log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(resolved_log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=handlers,
        force=True,
    )
    if log_file:
        logging.getLogger(__name__).info("file logging enabled path=%s", resolved_log_file)

    try:
        if args.command == "run":
            return cmd_run(
                args.config,
                issue_ids=getattr(args, "issue_ids", None),
                runs=getattr(args, "runs", None),
                timeout=getattr(args, "timeout", None),
            )
        if args.command == "status":
            return cmd_status(args.config)
        if args.command == "doctor":
            return cmd_doctor(args.config)
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        logging.getLogger(__name__).exception("fatal error: %s", exc)
        return 1
    parser.print_help(sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
