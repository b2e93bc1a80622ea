"""
taxdash.store — Region-partitioned flat-file dataset store.

Layout:
    <data_dir>/<region-slug>.json   — one JSON array per region
    <legacy_path>                   — combined JSON array of every record

The in-memory record list is the source of truth. save() derives both
the partitioned and the combined representation from it; load() reads
the partitioned files and only falls back to the combined file when no
region file yields a record.

Design contract:
    - Files are UTF-8, two-space indented, keys in schema order,
      newline-terminated.
    - Every file write holds an exclusive flock on the target file.
      upsert() additionally holds the dataset lock across its
      load → mutate → save cycle.
    - Unreadable or malformed files are skipped by load(), never fatal.
    - A failed write raises StorageError and aborts the remaining writes.
      Files already written stay written; callers rebuild the dataset.
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import re
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from taxdash.constants import DEFAULT_REGION
from taxdash.errors import ParseError, StorageError, ValidationError
from taxdash.schema import JurisdictionRecord, country_key, normalize_record, sort_records

logger = logging.getLogger("taxdash.store")

LOCK_FILENAME = ".dataset.lock"

_SLUG_RE = re.compile(r"[^a-z0-9]+")
_DIGITS_RE = re.compile(r"(\d+)")


# ---------------------------------------------------------------------------
# Naming & encoding
# ---------------------------------------------------------------------------

def region_slug(region: str) -> str:
    """Filesystem-safe slug for a region: "North America & Caribbean" → "north-america-caribbean"."""
    slug = _SLUG_RE.sub("-", region.lower()).strip("-")
    return slug or "region"


def _natural_key(path: Path) -> list[Any]:
    """Natural, case-insensitive ordering: region2.json < region10.json."""
    return [
        int(part) if part.isdigit() else part
        for part in _DIGITS_RE.split(path.name.lower())
    ]


def encode_records(records: Iterable[JurisdictionRecord]) -> str:
    """Encode records as a two-space indented JSON array with trailing newline."""
    payload = [record.to_json_dict() for record in records]
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def partition_by_region(records: Iterable[JurisdictionRecord]) -> dict[str, list[JurisdictionRecord]]:
    """Group records by region (empty → Global); partitions sorted by country."""
    grouped: dict[str, list[JurisdictionRecord]] = {}
    for record in records:
        region = record.region.strip() or DEFAULT_REGION
        grouped.setdefault(region, []).append(record)
    return {region: sort_records(items) for region, items in grouped.items()}


def ensure_unique(records: Iterable[JurisdictionRecord]) -> None:
    """Raise ValidationError if two records share a country name (case-insensitive)."""
    seen: dict[str, str] = {}
    for record in records:
        if record.key in seen:
            raise ValidationError(
                f"Duplicate country '{record.country}' (conflicts with '{seen[record.key]}')."
            )
        seen[record.key] = record.country


# ---------------------------------------------------------------------------
# Locked file primitives
# ---------------------------------------------------------------------------

@contextmanager
def _flock(path: Path, mode: int, flags: int) -> Iterator[int]:
    fd = os.open(path, flags, 0o664)
    try:
        fcntl.flock(fd, mode)
        try:
            yield fd
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def write_locked(path: Path, content: str) -> None:
    """Replace a file's contents while holding an exclusive lock on it."""
    data = content.encode("utf-8")
    with _flock(path, fcntl.LOCK_EX, os.O_RDWR | os.O_CREAT) as fd:
        os.ftruncate(fd, 0)
        view = memoryview(data)
        while view:
            written = os.write(fd, view)
            view = view[written:]
        os.fsync(fd)


def read_locked(path: Path) -> str:
    """Read a file's contents while holding a shared lock on it."""
    with _flock(path, fcntl.LOCK_SH, os.O_RDONLY) as fd:
        chunks = []
        while True:
            chunk = os.read(fd, 65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks).decode("utf-8")


# ---------------------------------------------------------------------------
# DatasetStore
# ---------------------------------------------------------------------------

class DatasetStore:
    """Flat-file jurisdiction store.

    Usage::

        store = DatasetStore(Path("data/jurisdictions"), Path("data/jurisdictions.json"))
        records = store.load()
        store.upsert(edited_record, original_country="Qatar")
    """

    def __init__(self, data_dir: Path, legacy_path: Path) -> None:
        self.data_dir = Path(data_dir)
        self.legacy_path = Path(legacy_path)

    def __repr__(self) -> str:
        return f"DatasetStore(data_dir={str(self.data_dir)!r}, legacy_path={str(self.legacy_path)!r})"

    # -- paths ---------------------------------------------------------------

    def region_file_path(self, region: str) -> Path:
        return self.data_dir / f"{region_slug(region)}.json"

    def region_file_paths(self) -> list[Path]:
        """Region files on disk, in natural case-insensitive filename order."""
        if not self.data_dir.is_dir():
            return []
        legacy = self.legacy_path.resolve()
        paths = [
            p for p in self.data_dir.glob("*.json")
            if p.is_file() and p.resolve() != legacy
        ]
        return sorted(paths, key=_natural_key)

    def data_present(self) -> bool:
        return bool(self.region_file_paths()) or self.legacy_path.is_file()

    def ensure_data_directory(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(
                f"Unable to create data directory {self.data_dir}: {exc}", path=self.data_dir,
            ) from exc

    # -- reading -------------------------------------------------------------

    def read_file(self, path: Path) -> list[JurisdictionRecord]:
        """Read one dataset file.

        Entries that fail validation are skipped and logged.

        Raises:
            StorageError: If the file cannot be read.
            ParseError: If the file is not a JSON array.
        """
        try:
            text = read_locked(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageError(f"Unable to read {path}: {exc}", path=path) from exc

        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ParseError(path.name, f"malformed JSON ({exc.msg} at line {exc.lineno})") from exc
        if not isinstance(decoded, list):
            raise ParseError(path.name, f"expected a JSON array, got {type(decoded).__name__}")

        records: list[JurisdictionRecord] = []
        for index, entry in enumerate(decoded):
            if not isinstance(entry, Mapping):
                continue
            try:
                records.append(normalize_record(entry))
            except ValidationError as exc:
                logger.warning(json.dumps({
                    "event": "entry_skipped",
                    "file": path.name,
                    "index": index,
                    "reason": exc.message,
                }))
        return records

    def _read_many(self, paths: Iterable[Path]) -> list[JurisdictionRecord]:
        records: list[JurisdictionRecord] = []
        for path in paths:
            try:
                records.extend(self.read_file(path))
            except (StorageError, ParseError) as exc:
                logger.warning(json.dumps({
                    "event": "file_skipped",
                    "file": path.name,
                    "error_type": type(exc).__name__,
                    "reason": str(exc),
                }))
        return records

    def load(self) -> list[JurisdictionRecord]:
        """Load every record, sorted by country (case-insensitive).

        Duplicate countries across files keep the first occurrence.
        """
        records = self._read_many(self.region_file_paths())
        source = "regions"
        if not records and self.legacy_path.is_file():
            records = self._read_many([self.legacy_path])
            source = "legacy"

        unique: list[JurisdictionRecord] = []
        seen: set[str] = set()
        for record in records:
            if record.key in seen:
                logger.warning(json.dumps({
                    "event": "duplicate_country_skipped",
                    "country": record.country,
                }))
                continue
            seen.add(record.key)
            unique.append(record)

        logger.debug(json.dumps({"event": "dataset_loaded", "source": source, "records": len(unique)}))
        return sort_records(unique)

    def find(self, country: str) -> JurisdictionRecord | None:
        key = country_key(country)
        for record in self.load():
            if record.key == key:
                return record
        return None

    # -- writing -------------------------------------------------------------

    @contextmanager
    def lock(self) -> Iterator[None]:
        """Hold the exclusive dataset lock (serialises writers across processes)."""
        self.ensure_data_directory()
        lock_path = self.data_dir / LOCK_FILENAME
        try:
            fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o664)
        except OSError as exc:
            raise StorageError(f"Unable to lock dataset in {self.data_dir}: {exc}", path=lock_path) from exc
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def save(self, records: Iterable[JurisdictionRecord | Mapping[str, Any]]) -> list[Path]:
        """Write region files and the legacy combined file.

        Returns the paths written, legacy file last.

        Raises:
            ValidationError: If a record is invalid or countries collide.
            StorageError: If any file cannot be written.
        """
        with self.lock():
            return self._save_unlocked(records)

    def _save_unlocked(self, records: Iterable[JurisdictionRecord | Mapping[str, Any]]) -> list[Path]:
        normalized = [
            r if isinstance(r, JurisdictionRecord) else normalize_record(r)
            for r in records
        ]
        ensure_unique(normalized)
        ordered = sort_records(normalized)

        existing = self.region_file_paths()
        written: list[Path] = []

        grouped = partition_by_region(ordered)
        targets: dict[Path, str] = {}
        for region in sorted(grouped, key=str.lower):
            path = self.region_file_path(region)
            if path in targets:
                raise ValidationError(
                    f"Regions '{targets[path]}' and '{region}' both map to {path.name}."
                )
            targets[path] = region

        for path, region in targets.items():
            self._write(path, encode_records(grouped[region]))
            written.append(path)

        for path in existing:
            if path not in written:
                try:
                    path.unlink(missing_ok=True)
                except OSError as exc:
                    logger.warning(json.dumps({
                        "event": "stale_file_not_removed",
                        "file": path.name,
                        "reason": str(exc),
                    }))

        try:
            self.legacy_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Unable to create {self.legacy_path.parent}: {exc}", path=self.legacy_path) from exc
        self._write(self.legacy_path, encode_records(ordered))
        written.append(self.legacy_path)

        logger.info(json.dumps({
            "event": "dataset_saved",
            "records": len(ordered),
            "region_files": len(grouped),
        }))
        return written

    def _write(self, path: Path, content: str) -> None:
        try:
            write_locked(path, content)
        except OSError as exc:
            logger.error(json.dumps({
                "event": "write_failed",
                "file": str(path),
                "reason": str(exc),
            }))
            raise StorageError(f"Failed to write dataset file {path}: {exc}", path=path) from exc

    def upsert(
        self,
        record: JurisdictionRecord,
        original_country: str | None = None,
    ) -> list[JurisdictionRecord]:
        """Insert or replace one record, then save.

        Matching is case-insensitive. The record named ``original_country``
        is replaced in place (a rename); failing that, the record with the
        new country name; otherwise the record is appended. Any other record
        already holding the new name is dropped so names stay unique.

        Returns the saved, sorted record list.
        """
        with self.lock():
            records = self.load()
            updated = replace_or_append(records, record, original_country)
            self._save_unlocked(updated)
            return updated


def replace_or_append(
    records: list[JurisdictionRecord],
    record: JurisdictionRecord,
    original_country: str | None = None,
) -> list[JurisdictionRecord]:
    """Pure upsert on a record list. Returns a new sorted list."""
    original_key = country_key(original_country) if original_country else ""
    new_key = record.key

    target = None
    if original_key:
        target = next((i for i, r in enumerate(records) if r.key == original_key), None)
    if target is None:
        target = next((i for i, r in enumerate(records) if r.key == new_key), None)

    result: list[JurisdictionRecord] = []
    for i, existing in enumerate(records):
        if i == target:
            result.append(record)
        elif existing.key == new_key:
            continue
        else:
            result.append(existing)
    if target is None:
        result.append(record)

    return sort_records(result)
