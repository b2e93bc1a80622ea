"""
taxdash.query — Query Engine over an in-memory record collection.

Pure-computation module. No I/O. Every function takes a record list and
returns new values; inputs are never mutated.

    filter_records(records, criteria)   → conjunctive filter, order preserved
    summarize_by_region(records)        → {region: RegionSummary}, regions sorted
    top_n(records, n, sort_key)         → stable ascending sort, first n
    chart_rows(records)                 → top-12-by-tax rows for the overview chart
    highlights(records)                 → lowest tax, lowest cost, top foundation score
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from taxdash.constants import CHART_SIZE, DEFAULT_SORT_KEY, NUMERIC_SORT_KEYS
from taxdash.derivation import render_stars
from taxdash.schema import JurisdictionRecord, coerce_number, country_key


# ---------------------------------------------------------------------------
# Filter criteria — tolerant, never-400 parsing of query parameters
# ---------------------------------------------------------------------------

class FilterCriteria(BaseModel):
    """Dashboard filter criteria.

    Design principle: a bad query parameter never fails the request.
    - Blank strings → None (criterion omitted)
    - Non-numeric bounds → None
    - Unknown parameters → ignored
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    query: Optional[str] = None
    region: Optional[str] = None
    max_tax: Optional[float] = None
    max_cost: Optional[float] = None
    max_social: Optional[float] = None
    max_incorporation: Optional[float] = None
    min_foundation: Optional[int] = None

    @field_validator("query", "region", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("max_tax", "max_cost", "max_social", "max_incorporation", mode="before")
    @classmethod
    def _lenient_float(cls, v: Any) -> Optional[float]:
        return coerce_number(v)

    @field_validator("min_foundation", mode="before")
    @classmethod
    def _lenient_int(cls, v: Any) -> Optional[int]:
        number = coerce_number(v)
        return None if number is None else int(number)

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> FilterCriteria:
        """Build criteria from request query parameters."""
        return cls.model_validate(dict(params))

    @property
    def region_filter(self) -> Optional[str]:
        """Lower-cased region to match, or None for "all regions"."""
        if self.region is None or self.region.lower() == "all":
            return None
        return self.region.lower()


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------

def _haystacks(record: JurisdictionRecord) -> tuple[str, ...]:
    return (
        record.country.lower(),
        record.region.lower(),
        " ".join(record.incentives).lower(),
        " ".join(record.notes).lower(),
        record.foundation_terms.availability.lower(),
    )


def matches(record: JurisdictionRecord, criteria: FilterCriteria) -> bool:
    """True when the record satisfies every supplied criterion."""
    region = criteria.region_filter
    if region is not None and record.region.lower() != region:
        return False

    if criteria.query is not None:
        needle = criteria.query.lower()
        if not any(needle in haystack for haystack in _haystacks(record)):
            return False

    bounds = (
        (criteria.max_tax, record.corporate_tax_rate),
        (criteria.max_cost, record.operating_cost_index),
        (criteria.max_social, record.employer_social_security_rate),
        (criteria.max_incorporation, record.incorporation_fees_usd),
    )
    for limit, value in bounds:
        if limit is not None and float(value) > limit:
            return False

    if criteria.min_foundation is not None and record.friendly_score < criteria.min_foundation:
        return False

    return True


def filter_records(
    records: Iterable[JurisdictionRecord],
    criteria: FilterCriteria | None = None,
) -> list[JurisdictionRecord]:
    """Return records matching all criteria, in input order."""
    if criteria is None:
        return list(records)
    return [record for record in records if matches(record, criteria)]


# ---------------------------------------------------------------------------
# Regional rollup
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class RegionSummary:
    count: int
    tax_total: float
    cost_total: float
    foundation_total: int
    avg_tax: float
    avg_cost: float
    avg_foundation: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def summarize_by_region(records: Iterable[JurisdictionRecord]) -> dict[str, RegionSummary]:
    """Count and average tax rate, cost index and friendliness per region.

    Keys are region names in alphabetical order.
    """
    totals: dict[str, list[float]] = {}
    for record in records:
        bucket = totals.setdefault(record.region, [0, 0.0, 0.0, 0])
        bucket[0] += 1
        bucket[1] += float(record.corporate_tax_rate)
        bucket[2] += float(record.operating_cost_index)
        bucket[3] += record.friendly_score

    summaries: dict[str, RegionSummary] = {}
    for region in sorted(totals):
        count, tax_total, cost_total, foundation_total = totals[region]
        divisor = max(1, int(count))
        summaries[region] = RegionSummary(
            count=int(count),
            tax_total=tax_total,
            cost_total=cost_total,
            foundation_total=int(foundation_total),
            avg_tax=tax_total / divisor,
            avg_cost=cost_total / divisor,
            avg_foundation=foundation_total / divisor,
        )
    return summaries


def region_options(records: Iterable[JurisdictionRecord]) -> list[str]:
    """Distinct region names, sorted."""
    return sorted({record.region for record in records})


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------

def sort_value(record: JurisdictionRecord, sort_key: str) -> float:
    """Numeric value of ``sort_key`` for a record.

    Raises:
        ValueError: If sort_key is not a numeric field.
    """
    if sort_key not in NUMERIC_SORT_KEYS:
        raise ValueError(
            f"Unknown sort key '{sort_key}'. Valid keys: {sorted(NUMERIC_SORT_KEYS)}."
        )
    if sort_key == "friendly_score":
        return float(record.friendly_score)
    return float(getattr(record, sort_key))


def top_n(
    records: Sequence[JurisdictionRecord],
    n: int = CHART_SIZE,
    sort_key: str = DEFAULT_SORT_KEY,
) -> list[JurisdictionRecord]:
    """First ``n`` records by ascending ``sort_key``; ties keep input order."""
    if n < 0:
        raise ValueError(f"n must be non-negative, got {n}.")
    ranked = sorted(records, key=lambda r: sort_value(r, sort_key))
    return ranked[:n]


def chart_rows(
    records: Sequence[JurisdictionRecord],
    n: int = CHART_SIZE,
    sort_key: str = DEFAULT_SORT_KEY,
) -> list[dict[str, Any]]:
    """Rows for the ranked overview chart."""
    return [
        {
            "country": record.country,
            "corporate_tax_rate": float(record.corporate_tax_rate),
            "friendly_score": record.friendly_score,
            "friendly_stars": render_stars(record.friendly_score),
            "operating_cost_index": int(record.operating_cost_index),
        }
        for record in top_n(records, n, sort_key)
    ]


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def find_record(records: Iterable[JurisdictionRecord], country: str | None) -> JurisdictionRecord | None:
    """Case-insensitive lookup by country name. None for blank or unknown names."""
    if not country or not country.strip():
        return None
    key = country_key(country)
    return next((record for record in records if record.key == key), None)


def highlights(records: Sequence[JurisdictionRecord]) -> dict[str, JurisdictionRecord | None]:
    """Headline picks: lowest tax rate, lowest cost index, highest friendliness.

    Ties go to the record that appears first.
    """
    result: dict[str, JurisdictionRecord | None] = {
        "lowest_tax": None,
        "lowest_cost": None,
        "top_foundation": None,
    }
    for record in records:
        lowest_tax = result["lowest_tax"]
        if lowest_tax is None or record.corporate_tax_rate < lowest_tax.corporate_tax_rate:
            result["lowest_tax"] = record
        lowest_cost = result["lowest_cost"]
        if lowest_cost is None or record.operating_cost_index < lowest_cost.operating_cost_index:
            result["lowest_cost"] = record
        top = result["top_foundation"]
        if top is None or record.friendly_score > top.friendly_score:
            result["top_foundation"] = record
    return result
