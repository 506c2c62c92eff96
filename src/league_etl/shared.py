"""league_etl.shared

Run bookkeeping shared by the orchestrator and the CLI: per-kind counters,
the import summary, the reject CSV writer, and report writing.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from league_etl.settings import KINDS

MAX_REPORT_MESSAGES = 20

KIND_LABELS: dict[str, str] = {
    "division": "Divisions",
    "venue":    "Venues",
    "team":     "Teams",
    "player":   "Players",
    "match":    "Fixtures",
    "singles":  "Singles Frames",
    "doubles":  "Doubles Frames",
}


# ---------------------------------------------------------------------------
# RejectWriter
# ---------------------------------------------------------------------------

class RejectWriter:
    """Lazy-open CSV writer for skipped staging rows.

    Rows from every table share one file, so the staged fields are stored
    as a JSON payload next to the kind and reason.
    """

    FIELDNAMES = ["_kind", "_reject_reason", "_legacy_ref", "_payload"]

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh = None
        self._writer = None
        self.rows_written = 0

    @property
    def path(self) -> Path:
        return self._path

    def write(self, kind: str, row: dict[str, Any], reason: str, legacy_ref: Any = None) -> None:
        if self._fh is None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = open(self._path, "w", newline="", encoding="utf-8")
            self._writer = csv.DictWriter(self._fh, fieldnames=self.FIELDNAMES)
            self._writer.writeheader()
        self._writer.writerow({
            "_kind": kind,
            "_reject_reason": reason,
            "_legacy_ref": "" if legacy_ref is None else legacy_ref,
            "_payload": json.dumps(row, sort_keys=True, default=str),
        })
        self._fh.flush()
        self.rows_written += 1

    def close(self) -> None:
        if self._fh:
            self._fh.close()
            self._fh = None


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

@dataclass
class KindCounters:
    records_read: int = 0
    imported: int = 0
    skipped_duplicate: int = 0
    skipped_orphaned: int = 0
    skipped_placeholder: int = 0
    skipped_invalid: int = 0

    @property
    def skipped(self) -> int:
        return self.skipped_duplicate + self.skipped_orphaned

    def to_dict(self) -> dict[str, int]:
        d = dict(self.__dict__)
        d["skipped"] = self.skipped
        return d


@dataclass
class ImportSummary:
    success: bool = False
    counters: dict[str, KindCounters] = field(
        default_factory=lambda: {kind: KindCounters() for kind in KINDS}
    )
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    date_min: date | None = None
    date_max: date | None = None
    cancelled: bool = False

    def kind(self, kind: str) -> KindCounters:
        return self.counters.setdefault(kind, KindCounters())

    def imported(self) -> dict[str, int]:
        return {k: c.imported for k, c in self.counters.items()}

    def skipped(self) -> dict[str, int]:
        return {k: c.skipped for k, c in self.counters.items()}

    def observe_date(self, value: date | None) -> None:
        if value is None:
            return
        if self.date_min is None or value < self.date_min:
            self.date_min = value
        if self.date_max is None or value > self.date_max:
            self.date_max = value

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "cancelled": self.cancelled,
            "counters": {k: c.to_dict() for k, c in self.counters.items()},
            "date_min": self.date_min.isoformat() if self.date_min else None,
            "date_max": self.date_max.isoformat() if self.date_max else None,
            "warnings": self.warnings[:50],
            "errors": self.errors,
        }

    def summary_text(self) -> str:
        lines = ["Import Summary:"]
        for kind, counters in self.counters.items():
            label = KIND_LABELS.get(kind, kind)
            lines.append(
                f"  - {label}: {counters.imported} imported, {counters.skipped} skipped"
            )
        if self.date_min and self.date_max:
            lines.append("")
            lines.append(
                f"Season dates: {self.date_min:%d/%m/%Y} - {self.date_max:%d/%m/%Y}"
            )
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def build_import_report(summary: ImportSummary, dry_run: bool) -> str:
    lines = [
        "=== League Import Run Report ===",
        f"dry_run   : {dry_run}",
        f"success   : {summary.success}",
        f"cancelled : {summary.cancelled}",
        "",
        "--- Entities (imported / duplicate / orphaned / placeholder) ---",
    ]
    for kind, c in summary.counters.items():
        lines.append(
            f"{kind:<9}: {c.imported:>5} / {c.skipped_duplicate:>5} / "
            f"{c.skipped_orphaned:>5} / {c.skipped_placeholder:>5}"
        )
    if summary.date_min or summary.date_max:
        lines += ["", f"match dates: {summary.date_min} .. {summary.date_max}"]
    lines += _message_block("Errors", summary.errors)
    lines += _message_block("Warnings", summary.warnings)
    return "\n".join(lines)


def _message_block(title: str, messages: list[str]) -> list[str]:
    if not messages:
        return []
    out = ["", f"--- {title} ({len(messages)}) ---"]
    out += [f"  {m}" for m in messages[:MAX_REPORT_MESSAGES]]
    if len(messages) > MAX_REPORT_MESSAGES:
        out.append(f"  ... and {len(messages) - MAX_REPORT_MESSAGES} more")
    return out


def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    source_paths: dict[str, str],
    summary: Any,
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        "dry_run": dry_run,
        **source_paths,
        "summary": summary.to_dict(),
    }
    report_path = Path(f"./artifacts/reports/{run_id}.json")
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
