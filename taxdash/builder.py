"""
taxdash.builder — Dataset Builder: raw CSV rows → JurisdictionRecord list.

Pure transformation. Reading the CSV file and writing the dataset are
handled by export_dataset.py and store.py respectively.

Row acceptance:
    - non-empty ``country``
    - non-empty ``continent`` code
    - numeric, finite, non-negative ``rate``
Rows failing any check are dropped and logged, never raised.

Duplicate countries (after name canonicalisation) keep the first row.
"""

from __future__ import annotations

import csv
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from taxdash import derivation
from taxdash.constants import (
    COUNTRY_NAME_REPLACEMENTS,
    DEFAULT_REGION,
    GROUP_COLUMNS,
    REGION_MAP,
    REQUIRED_SOURCE_COLUMNS,
)
from taxdash.errors import BuildError, ParseError, StorageError
from taxdash.schema import JurisdictionRecord, coerce_number, country_key, sort_records

logger = logging.getLogger("taxdash.builder")


# ---------------------------------------------------------------------------
# Parsed source row
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class RawJurisdiction:
    """A source row after canonicalisation, before derivation."""

    country: str
    region: str
    tax_rate: float
    gdp: float | None = None
    groups: dict[str, bool] = field(default_factory=dict)


def canonical_country_name(raw: str) -> str:
    name = raw.strip()
    return COUNTRY_NAME_REPLACEMENTS.get(name, name)


def region_for_code(code: str) -> str:
    return REGION_MAP.get(code.strip(), DEFAULT_REGION)


def _flag(row: Mapping[str, str], column: str) -> bool:
    return str(row.get(column) or "").strip() == "1"


def parse_source_row(row: Mapping[str, str]) -> RawJurisdiction:
    """Parse one CSV row. Raises ParseError when the row is unusable."""
    country_raw = str(row.get("country") or "").strip()
    if not country_raw:
        raise ParseError("row", "missing country")

    continent = str(row.get("continent") or "").strip()
    if not continent:
        raise ParseError("row", f"missing continent code for '{country_raw}'")

    rate = coerce_number(row.get("rate"))
    if rate is None:
        raise ParseError("row", f"non-numeric rate {row.get('rate')!r} for '{country_raw}'")
    if rate < 0.0:
        raise ParseError("row", f"negative rate {rate} for '{country_raw}'")

    gdp_raw = str(row.get("gdp") or "").strip()
    gdp = None if gdp_raw.upper() == "NA" else coerce_number(gdp_raw)

    return RawJurisdiction(
        country=canonical_country_name(country_raw),
        region=region_for_code(continent),
        tax_rate=rate,
        gdp=gdp,
        groups={flag: _flag(row, column) for flag, column in GROUP_COLUMNS.items()},
    )


# ---------------------------------------------------------------------------
# Record derivation
# ---------------------------------------------------------------------------

def build_record(raw: RawJurisdiction) -> JurisdictionRecord:
    """Derive every heuristic field for one jurisdiction."""
    rate = raw.tax_rate
    cost = derivation.operating_cost_index(raw.region, rate, raw.gdp)
    social = derivation.social_security_rate(raw.region, rate, cost)
    fee = derivation.incorporation_fee(raw.region, rate, cost)
    annual = derivation.annual_filing_cost(cost, social, raw.gdp)
    burden = derivation.compliance_burden(cost, rate)
    risk = derivation.reputation_risk(raw.region, rate)

    return JurisdictionRecord(
        country=raw.country,
        region=raw.region,
        corporate_tax_rate=round(rate, 3),
        operating_cost_index=int(round(cost)),
        employer_social_security_rate=round(social, 2),
        incorporation_fees_usd=fee,
        annual_filing_cost_usd=annual,
        treaty_network_strength=derivation.treaty_network_strength(raw.region, rate, raw.groups),
        compliance_burden=burden,
        reputation_risk=risk,
        incentives=derivation.incentives(raw.region, rate, fee),
        notes=derivation.notes(social, annual),
        foundation_terms=derivation.foundation_terms(raw.region, rate, annual, burden, risk),
    )


def build(rows: Iterable[Mapping[str, str]]) -> list[JurisdictionRecord]:
    """Build the full dataset from raw CSV rows.

    Returns records sorted by country (case-insensitive).

    Raises:
        BuildError: If no row produced a record.
    """
    records: list[JurisdictionRecord] = []
    seen: set[str] = set()
    dropped = 0

    # Line 1 is the CSV header.
    for line_no, row in enumerate(rows, start=2):
        try:
            raw = parse_source_row(row)
        except ParseError as exc:
            dropped += 1
            logger.warning(json.dumps({
                "event": "row_dropped",
                "line": line_no,
                "reason": exc.detail,
            }))
            continue

        key = country_key(raw.country)
        if key in seen:
            dropped += 1
            logger.warning(json.dumps({
                "event": "duplicate_country_dropped",
                "line": line_no,
                "country": raw.country,
            }))
            continue
        seen.add(key)
        records.append(build_record(raw))

    if not records:
        raise BuildError("No usable rows in source data.")

    logger.info(json.dumps({
        "event": "dataset_built",
        "records": len(records),
        "dropped": dropped,
    }))
    return sort_records(records)


# ---------------------------------------------------------------------------
# Source loading
# ---------------------------------------------------------------------------

def read_source_csv(filepath: Path) -> list[dict[str, str]]:
    """Read the source CSV. Header names are trimmed; a UTF-8 BOM is tolerated.

    Raises:
        StorageError: If the file is missing or unreadable.
        ParseError: If a required column is absent from the header.
    """
    if not filepath.is_file():
        raise StorageError(f"Source CSV not found: {filepath}", path=filepath)
    try:
        with open(filepath, newline="", encoding="utf-8-sig") as fh:
            reader = csv.reader(fh)
            header = next(reader, None)
            if header is None:
                return []
            keys = [h.strip().strip('"') for h in header]
            missing = REQUIRED_SOURCE_COLUMNS.difference(keys)
            if missing:
                raise ParseError(filepath.name, f"missing required columns: {sorted(missing)}")
            rows = []
            for values in reader:
                if not any(v.strip() for v in values):
                    continue
                rows.append({
                    key: (values[i] if i < len(values) else "")
                    for i, key in enumerate(keys)
                    if key
                })
            return rows
    except (OSError, UnicodeDecodeError) as exc:
        raise StorageError(f"Unable to read source CSV {filepath}: {exc}", path=filepath) from exc
