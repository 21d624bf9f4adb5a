from __future__ import annotations

import csv
import logging
import re
from pathlib import Path

from .models import IssueRecord

ISSUE_COLUMN = "Issue"
COMMITS_COLUMN = "Commit IDs"
OPTS_COLUMN = "Opts"

log = logging.getLogger(__name__)


class IssueTableError(RuntimeError):
    pass


def first_revision(commit_ids: str | None) -> str | None:
    if not commit_ids:
        return None
    tokens = [token for token in re.split(r"[,\s]+", commit_ids) if token]
    return tokens[0] if tokens else None


def parse_issue_rows(rows: list[dict[str, str | None]], source: str = "<rows>") -> list[IssueRecord]:
    records: list[IssueRecord] = []
    seen: set[int] = set()
    for line_no, row in enumerate(rows, start=2):
        raw_id = (row.get(ISSUE_COLUMN) or "").strip()
        try:
            issue_id = int(raw_id)
        except ValueError as exc:
            raise IssueTableError(f"{source}:{line_no}: invalid {ISSUE_COLUMN!r} value {raw_id!r}") from exc
        if issue_id in seen:
            raise IssueTableError(f"{source}:{line_no}: duplicate issue {issue_id}")
        seen.add(issue_id)
        records.append(
            IssueRecord(
                issue_id=issue_id,
                revision=first_revision(row.get(COMMITS_COLUMN)),
                run_options=row.get(OPTS_COLUMN) or "",
            )
        )
    return records


def load_issues(csv_path: Path) -> list[IssueRecord]:
    try:
        with csv_path.open(newline="", encoding="utf-8") as handle:
            reader = csv.DictReader(handle)
            fieldnames = reader.fieldnames or []
            # Opts is optional; a table without it runs every issue with empty options.
            missing = [name for name in (ISSUE_COLUMN, COMMITS_COLUMN) if name not in fieldnames]
            if missing:
                raise IssueTableError(f"{csv_path}: missing column(s): {', '.join(missing)}")
            rows = list(reader)
    except (OSError, UnicodeDecodeError, csv.Error) as exc:
        raise IssueTableError(f"cannot read issue table {csv_path}: {exc}") from exc

    records = parse_issue_rows(rows, source=str(csv_path))
    log.info("issue table loaded path=%s issues=%s", csv_path, len(records))
    return records
