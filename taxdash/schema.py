"""
taxdash.schema — Jurisdiction record shape and coercion rules.

A JurisdictionRecord is one country/territory in the dataset. Records are
immutable pydantic models; edits replace the whole record. Field order is
the on-disk JSON key order.

    {
      "country": str,                       # unique, case-insensitive
      "region": str,                        # empty → "Global"
      "corporate_tax_rate": float,          # %, >= 0
      "operating_cost_index": int,          # >= 0
      "employer_social_security_rate": float,
      "incorporation_fees_usd": int,
      "annual_filing_cost_usd": int,
      "treaty_network_strength": str,
      "compliance_burden": "Low" | "Moderate" | "High",
      "reputation_risk": "Very Low" | "Low" | "Moderate" | "Elevated" | "High",
      "incentives": [str, ...],
      "notes": [str, ...],
      "foundation_terms": {
          "availability": str,
          "control_requirements": str,
          "reporting": str,
          "substance_requirements": str,
          "notes": [str, ...],
          "friendly_score": int             # 0–5
      }
    }
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from taxdash.constants import DEFAULT_REGION, FRIENDLY_SCORE_MAX, FRIENDLY_SCORE_MIN
from taxdash.errors import ValidationError

ComplianceBurden = Literal["Low", "Moderate", "High"]
ReputationRisk = Literal["Very Low", "Low", "Moderate", "Elevated", "High"]

# Plain decimal or scientific notation. Rejects "nan", "inf", "1_000".
_NUMERIC_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class FoundationTerms(BaseModel):
    """Governance terms for privately controlled foundations."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    availability: str = ""
    control_requirements: str = ""
    reporting: str = ""
    substance_requirements: str = ""
    notes: list[str] = Field(default_factory=list)
    friendly_score: int = Field(0, ge=FRIENDLY_SCORE_MIN, le=FRIENDLY_SCORE_MAX)


class JurisdictionRecord(BaseModel):
    """One jurisdiction in the dataset."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    country: str
    region: str = DEFAULT_REGION
    corporate_tax_rate: float = Field(..., ge=0, allow_inf_nan=False)
    operating_cost_index: int = Field(..., ge=0)
    employer_social_security_rate: float = Field(..., ge=0, allow_inf_nan=False)
    incorporation_fees_usd: int = Field(..., ge=0)
    annual_filing_cost_usd: int = Field(..., ge=0)
    treaty_network_strength: str = ""
    compliance_burden: ComplianceBurden
    reputation_risk: ReputationRisk
    incentives: list[str] = Field(default_factory=list)
    notes: list[str] = Field(default_factory=list)
    foundation_terms: FoundationTerms = Field(default_factory=FoundationTerms)

    @field_validator("country")
    @classmethod
    def _strip_country(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("country must not be empty.")
        return v

    @field_validator("region", mode="before")
    @classmethod
    def _default_region(cls, v: Any) -> str:
        if v is None:
            return DEFAULT_REGION
        v = str(v).strip()
        return v or DEFAULT_REGION

    @property
    def key(self) -> str:
        """Case-insensitive identity of the record."""
        return country_key(self.country)

    @property
    def friendly_score(self) -> int:
        return self.foundation_terms.friendly_score

    def to_json_dict(self) -> dict[str, Any]:
        """Plain dict in schema key order, ready for json.dumps()."""
        return self.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def country_key(name: str) -> str:
    """Normalise a country name for case-insensitive comparison."""
    return name.strip().lower()


def sort_records(records: Iterable[JurisdictionRecord]) -> list[JurisdictionRecord]:
    """Return records sorted by country name, case-insensitive."""
    return sorted(records, key=lambda r: r.country.lower())


def is_numeric(raw: Any) -> bool:
    """True for finite numbers and strings holding a finite plain decimal number.

    "1e999" parses to infinity and is rejected like any other non-number.
    """
    if isinstance(raw, bool):
        return False
    if isinstance(raw, int):
        try:
            return math.isfinite(float(raw))
        except OverflowError:
            return False
    if isinstance(raw, float):
        return math.isfinite(raw)
    if isinstance(raw, str):
        text = raw.strip()
        return bool(_NUMERIC_RE.match(text)) and math.isfinite(float(text))
    return False


def coerce_number(raw: Any) -> float | None:
    """Parse a form or query value to float. Returns None when not numeric."""
    if not is_numeric(raw):
        return None
    return float(raw.strip() if isinstance(raw, str) else raw)


def parse_multiline_field(value: Any) -> list[str]:
    """Split a newline-delimited textarea value into trimmed, non-empty lines.

    Lists are accepted as-is (each item trimmed, blanks dropped).
    """
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        lines = [str(item) for item in value]
    else:
        lines = _LINE_SPLIT_RE.split(str(value))
    return [line.strip() for line in lines if line.strip()]


def normalize_record(raw: Mapping[str, Any]) -> JurisdictionRecord:
    """Validate a raw mapping into a JurisdictionRecord.

    Raises taxdash.errors.ValidationError with a flattened message
    describing the first failing field.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Record must be an object, got {type(raw).__name__}.")
    try:
        return JurisdictionRecord.model_validate(dict(raw))
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "record"
        raise ValidationError(f"{field}: {first.get('msg', 'invalid value')}") from exc
