"""
taxdash.verify_dataset — Dataset consistency report and CLI.

Usage:
    python -m taxdash.verify_dataset
    python -m taxdash.verify_dataset --json
    python -m taxdash.verify_dataset --quiet --data-dir data/jurisdictions

Checks, in order:
    1. directory_exists     — region directory present and non-empty
    2. region_files_parse   — every region file is a JSON array
    3. record_invariants    — every entry validates (ranges, enums, score 0–5)
    4. region_membership    — every record sits in the file its region slugs to
    5. unique_countries     — no country appears twice (case-insensitive)
    6. legacy_matches       — legacy file equals the union of region files

Exit codes:
    0: Valid — all checks passed.
    1: Missing files — region directory or legacy file not found.
    2: Parse error — a dataset file is not a JSON array.
    3: Invariant violation — invalid entry, misplaced record or duplicate.
    4: Legacy mismatch — combined file disagrees with the region files.

Output:
    Default: human-readable summary to stdout.
    --json: structured JSON report to stdout.
    --quiet: no output, only exit code.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from taxdash.config import load_settings
from taxdash.errors import ValidationError
from taxdash.schema import JurisdictionRecord, normalize_record, sort_records
from taxdash.store import DatasetStore, region_slug

EXIT_OK: int = 0
EXIT_MISSING_FILES: int = 1
EXIT_PARSE_ERROR: int = 2
EXIT_INVARIANT_VIOLATION: int = 3
EXIT_LEGACY_MISMATCH: int = 4

EXIT_CODE_LABELS: dict[int, str] = {
    EXIT_OK: "VALID",
    EXIT_MISSING_FILES: "MISSING_FILES",
    EXIT_PARSE_ERROR: "PARSE_ERROR",
    EXIT_INVARIANT_VIOLATION: "INVARIANT_VIOLATION",
    EXIT_LEGACY_MISMATCH: "LEGACY_MISMATCH",
}


# ---------------------------------------------------------------------------
# DatasetReport
# ---------------------------------------------------------------------------

@dataclass
class DatasetReport:
    """Structured report from dataset validation.

    Fields:
        valid: True only if ALL checks pass.
        checks: List of check results, each {check, passed, detail}.
        errors: Flat list of human-readable error strings.
        exit_code: First failing check's exit code (0 = ok).
    """
    valid: bool = True
    data_dir: str = ""
    legacy_path: str = ""
    checks: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    exit_code: int = EXIT_OK

    def fail(self, check: str, detail: str, code: int) -> None:
        self.valid = False
        self.checks.append({"check": check, "passed": False, "detail": detail})
        self.errors.append(f"[{check}] {detail}")
        if self.exit_code == EXIT_OK:
            self.exit_code = code

    def ok(self, check: str, detail: str = "") -> None:
        self.checks.append({"check": check, "passed": True, "detail": detail})

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "data_dir": self.data_dir,
            "legacy_path": self.legacy_path,
            "exit_code": self.exit_code,
            "checks": self.checks,
            "errors": self.errors,
        }


# ---------------------------------------------------------------------------
# Individual validation steps
# ---------------------------------------------------------------------------

def _decode_array(path: Path) -> list[Any]:
    """Decode a dataset file. Raises ValueError with a readable reason."""
    try:
        decoded = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise ValueError(f"{path.name}: unreadable ({exc})") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path.name}: malformed JSON ({exc.msg} at line {exc.lineno})") from exc
    if not isinstance(decoded, list):
        raise ValueError(f"{path.name}: expected a JSON array, got {type(decoded).__name__}")
    return decoded


def _validate_entries(
    path: Path,
    entries: list[Any],
) -> tuple[list[JurisdictionRecord], list[str]]:
    records: list[JurisdictionRecord] = []
    problems: list[str] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            problems.append(f"{path.name}[{index}]: not an object")
            continue
        try:
            records.append(normalize_record(entry))
        except ValidationError as exc:
            problems.append(f"{path.name}[{index}]: {exc.message}")
    return records, problems


def _check_region_files(
    paths: list[Path],
    report: DatasetReport,
) -> list[JurisdictionRecord]:
    """Checks 2–4. Returns every valid record from the region files."""
    all_records: list[JurisdictionRecord] = []
    parse_failures: list[str] = []
    invalid: list[str] = []
    misplaced: list[str] = []

    for path in paths:
        try:
            entries = _decode_array(path)
        except ValueError as exc:
            parse_failures.append(str(exc))
            continue
        records, problems = _validate_entries(path, entries)
        invalid.extend(problems)
        for record in records:
            expected = f"{region_slug(record.region)}.json"
            if expected != path.name:
                misplaced.append(f"{record.country} ({record.region}) in {path.name}, expected {expected}")
        all_records.extend(records)

    if parse_failures:
        report.fail("region_files_parse", "; ".join(parse_failures), EXIT_PARSE_ERROR)
    else:
        report.ok("region_files_parse", f"{len(paths)} region files parsed")

    if invalid:
        report.fail("record_invariants", "; ".join(invalid), EXIT_INVARIANT_VIOLATION)
    else:
        report.ok("record_invariants", f"{len(all_records)} records valid")

    if misplaced:
        report.fail("region_membership", "; ".join(misplaced), EXIT_INVARIANT_VIOLATION)
    else:
        report.ok("region_membership", "every record is in its region file")

    return all_records


def _check_unique(records: list[JurisdictionRecord], report: DatasetReport) -> None:
    """Check 5: no country appears twice."""
    seen: set[str] = set()
    duplicates: list[str] = []
    for record in records:
        if record.key in seen:
            duplicates.append(record.country)
        seen.add(record.key)
    if duplicates:
        report.fail(
            "unique_countries",
            f"Duplicate countries: {sorted(set(duplicates), key=str.lower)}",
            EXIT_INVARIANT_VIOLATION,
        )
    else:
        report.ok("unique_countries", f"{len(seen)} distinct countries")


def _check_legacy(
    legacy_path: Path,
    region_records: list[JurisdictionRecord],
    report: DatasetReport,
) -> None:
    """Check 6: legacy file equals the union of the region files."""
    if not legacy_path.is_file():
        report.fail("legacy_matches", f"Legacy file not found: {legacy_path}", EXIT_MISSING_FILES)
        return
    try:
        entries = _decode_array(legacy_path)
    except ValueError as exc:
        report.fail("legacy_matches", str(exc), EXIT_PARSE_ERROR)
        return

    legacy_records, problems = _validate_entries(legacy_path, entries)
    if problems:
        report.fail("legacy_matches", "; ".join(problems), EXIT_INVARIANT_VIOLATION)
        return

    expected = {r.key: r for r in region_records}
    actual = {r.key: r for r in legacy_records}
    missing = sorted(expected.keys() - actual.keys())
    extra = sorted(actual.keys() - expected.keys())
    differing = sorted(k for k in expected.keys() & actual.keys() if expected[k] != actual[k])

    if missing or extra or differing:
        parts = []
        if missing:
            parts.append(f"missing from legacy: {missing}")
        if extra:
            parts.append(f"only in legacy: {extra}")
        if differing:
            parts.append(f"fields differ: {differing}")
        report.fail("legacy_matches", "; ".join(parts), EXIT_LEGACY_MISMATCH)
        return

    in_order = [r.key for r in legacy_records] == [r.key for r in sort_records(legacy_records)]
    detail = f"{len(actual)} records match"
    if not in_order:
        detail += " (legacy file not in country order)"
    report.ok("legacy_matches", detail)


# ---------------------------------------------------------------------------
# Main validation entry point
# ---------------------------------------------------------------------------

def validate_dataset(data_dir: Path, legacy_path: Path) -> DatasetReport:
    """Validate the region files under ``data_dir`` against ``legacy_path``.

    Returns:
        DatasetReport with all checks recorded.
        report.valid is True only if ALL checks pass.
    """
    report = DatasetReport(data_dir=str(data_dir), legacy_path=str(legacy_path))
    store = DatasetStore(data_dir, legacy_path)

    paths = store.region_file_paths()
    if not paths:
        report.fail(
            "directory_exists",
            f"No region files found in {data_dir}",
            EXIT_MISSING_FILES,
        )
        return report
    report.ok("directory_exists", f"{len(paths)} region files in {data_dir}")

    records = _check_region_files(paths, report)
    _check_unique(records, report)
    _check_legacy(Path(legacy_path), records, report)
    return report


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    settings = load_settings()
    parser = argparse.ArgumentParser(
        prog="taxdash-verify",
        description="Verify the jurisdiction dataset: region files, invariants, legacy file.",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=settings.data_dir,
        help=f"Region file directory (default: {settings.data_dir}).",
    )
    parser.add_argument(
        "--legacy",
        type=Path,
        default=settings.legacy_path,
        help=f"Combined legacy dataset file (default: {settings.legacy_path}).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output structured JSON report.",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all output. Exit code only.",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run dataset verification. Returns exit code."""
    args = _build_parser().parse_args(argv)

    report = validate_dataset(args.data_dir, args.legacy)

    if args.quiet:
        return report.exit_code

    if args.json_output:
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        return report.exit_code

    status = EXIT_CODE_LABELS.get(report.exit_code, "FAILED")
    print(f"Dataset:  {args.data_dir}")
    print(f"Legacy:   {args.legacy}")
    print(f"Status:   {status}")
    print(f"Checks:   {len(report.checks)}")

    for check in report.checks:
        marker = "✓" if check["passed"] else "✗"
        detail = f" — {check['detail']}" if check.get("detail") else ""
        print(f"  {marker} {check['check']}{detail}")

    if report.errors:
        print(f"\nErrors ({len(report.errors)}):")
        for err in report.errors:
            print(f"  • {err}")

    print(f"\nExit code: {report.exit_code}")
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
