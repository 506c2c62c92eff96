"""league_etl.source_files

Locating the legacy table files in a source directory.

Lookups try the exact file name first, then fall back to a
case-insensitive match among the directory's top-level files, since
exports copied off older systems often arrive upper- or lower-cased.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from league_etl.settings import KINDS, ImportSettings


def find_table_file(source_dir: Path, candidates: list[str]) -> Path | None:
    """Return the first candidate present in source_dir, or None."""
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        return None
    for name in candidates:
        exact = source_dir / name
        if exact.is_file():
            return exact
    by_lower = {
        p.name.lower(): p for p in sorted(source_dir.iterdir()) if p.is_file()
    }
    for name in candidates:
        match = by_lower.get(name.lower())
        if match is not None:
            return match
    return None


@dataclass
class ScanResult:
    source_dir: Path
    found: dict[str, tuple[Path, int]] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def has_any_data(self) -> bool:
        return bool(self.found)

    def missing(self) -> list[str]:
        return [k for k in KINDS if k not in self.found]

    def summary_text(self) -> str:
        if self.errors:
            return "\n".join(self.errors)
        lines = ["Paradox files found:"]
        for kind in KINDS:
            if kind in self.found:
                path, size = self.found[kind]
                lines.append(f"  + {path.name} ({size // 1024:,} KB)")
        if not self.found:
            lines.append("  (none)")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        return {
            "source_dir": str(self.source_dir),
            "found": {k: {"path": str(p), "size": s} for k, (p, s) in self.found.items()},
            "missing": self.missing(),
            "errors": self.errors,
        }


def scan_source_dir(source_dir: Path, settings: ImportSettings | None = None) -> ScanResult:
    """Report which expected tables are present, without parsing them."""
    settings = settings or ImportSettings()
    source_dir = Path(source_dir)
    result = ScanResult(source_dir=source_dir)
    if not source_dir.is_dir():
        result.errors.append(f"Folder not found: {source_dir}")
        return result
    try:
        for kind in KINDS:
            path = find_table_file(source_dir, settings.file_candidates(kind))
            if path is not None:
                result.found[kind] = (path, path.stat().st_size)
    except OSError as exc:
        result.errors.append(f"Error scanning folder: {exc}")
    return result
