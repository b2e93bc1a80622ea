#!/usr/bin/env python3
"""
export_dataset.py — Jurisdiction Dataset Builder CLI

Reads the source CSV, derives every heuristic field, and writes the
region-partitioned dataset plus the legacy combined file:

    <output-dir>/<region-slug>.json
    <legacy>

Usage:
    python -m taxdash.export_dataset
    python -m taxdash.export_dataset --source data/sources/rates.csv \\
        --output-dir data/jurisdictions --legacy data/jurisdictions.json

Protocol:
    1. Read and trim the CSV (BOM tolerated, blank lines skipped).
    2. Drop unusable rows (logged), keep the first of duplicate countries.
    3. Write region files, remove stale ones, write the legacy file last.

Exit codes:
    0: Dataset written.
    1: Source missing, no usable rows, or a write failed.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from taxdash.builder import build, read_source_csv
from taxdash.config import load_settings
from taxdash.errors import BuildError, ParseError, StorageError, ValidationError
from taxdash.store import DatasetStore


def fatal(msg: str) -> int:
    """Print error to stderr and return the failure exit code."""
    print(f"FATAL: {msg}", file=sys.stderr)
    return 1


def build_dataset(source_csv: Path, output_dir: Path, legacy_path: Path) -> int:
    """Build the dataset from ``source_csv`` and write it. Returns exit code."""
    print(f"Reading source: {source_csv}")
    try:
        rows = read_source_csv(source_csv)
    except StorageError as exc:
        return fatal(exc.message)
    except ParseError as exc:
        return fatal(str(exc))
    print(f"  {len(rows)} source rows")

    try:
        records = build(rows)
    except BuildError as exc:
        return fatal(str(exc))
    print(f"  {len(records)} jurisdictions built, {len(rows) - len(records)} rows dropped")

    store = DatasetStore(output_dir, legacy_path)
    try:
        written = store.save(records)
    except (StorageError, ValidationError) as exc:
        return fatal(exc.message)

    region_files = len(written) - 1
    print(
        f"Wrote {len(records)} jurisdictions across {region_files} region files "
        f"in {output_dir} and updated {legacy_path}"
    )
    return 0


def _build_parser() -> argparse.ArgumentParser:
    settings = load_settings()
    parser = argparse.ArgumentParser(
        prog="taxdash-build",
        description="Build the jurisdiction dataset from the source CSV.",
    )
    parser.add_argument(
        "--source",
        type=Path,
        default=settings.source_csv,
        help=f"Source CSV (default: {settings.source_csv}).",
    )
    parser.add_argument(
        "--output-dir",
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
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = _build_parser().parse_args(argv)
    return build_dataset(args.source, args.output_dir, args.legacy)


if __name__ == "__main__":
    sys.exit(main())
