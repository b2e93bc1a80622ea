"""
taxdash.submission — Dataset edit submissions.

Turns a submitted edit form into a validated JurisdictionRecord and
upserts it into the store. Every failure raises an error carrying the
submitted values (token blanked) so the form can be shown again.

Check order:
    1. token configured         → AuthError("disabled")
    2. token supplied           → AuthError("missing")
    3. token matches            → AuthError("invalid")
    4. country and region       → ValidationError
    5. numeric fields, >= 0     → ValidationError
    6. friendliness score       → ValidationError (rounded, clamped to 0–5)
    7. compliance / reputation  → ValidationError
    8. write                    → StorageError
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from taxdash.constants import (
    COMPLIANCE_LEVELS,
    FRIENDLY_SCORE_MAX,
    FRIENDLY_SCORE_MIN,
    REPUTATION_LEVELS,
)
from taxdash.errors import AuthError, StorageError, ValidationError
from taxdash.schema import JurisdictionRecord, coerce_number, normalize_record, parse_multiline_field
from taxdash.security import check_update_token
from taxdash.store import DatasetStore

logger = logging.getLogger("taxdash.submission")

TEXT_FIELDS: tuple[str, ...] = (
    "country",
    "original_country",
    "region",
    "corporate_tax_rate",
    "operating_cost_index",
    "employer_social_security_rate",
    "incorporation_fees_usd",
    "annual_filing_cost_usd",
    "treaty_network_strength",
    "compliance_burden",
    "reputation_risk",
    "foundation_availability",
    "foundation_control",
    "foundation_reporting",
    "foundation_substance",
    "foundation_friendly_score",
)

MULTILINE_FIELDS: tuple[str, ...] = ("incentives", "notes", "foundation_notes")

# Numeric field → stored as int
NUMERIC_FIELDS: dict[str, bool] = {
    "corporate_tax_rate": False,
    "operating_cost_index": True,
    "employer_social_security_rate": False,
    "incorporation_fees_usd": True,
    "annual_filing_cost_usd": True,
}


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    """Outcome of a successful submission."""

    country: str
    message: str
    values: dict[str, str]


# ---------------------------------------------------------------------------
# Form values
# ---------------------------------------------------------------------------

def _format_number(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def default_form_values(record: JurisdictionRecord | None = None) -> dict[str, str]:
    """Edit-form values, blank or seeded from an existing record."""
    if record is None:
        values = {name: "" for name in TEXT_FIELDS + MULTILINE_FIELDS}
        values["token"] = ""
        return values

    terms = record.foundation_terms
    return {
        "country": record.country,
        "original_country": record.country,
        "region": record.region,
        "corporate_tax_rate": _format_number(record.corporate_tax_rate),
        "operating_cost_index": _format_number(record.operating_cost_index),
        "employer_social_security_rate": _format_number(record.employer_social_security_rate),
        "incorporation_fees_usd": _format_number(record.incorporation_fees_usd),
        "annual_filing_cost_usd": _format_number(record.annual_filing_cost_usd),
        "treaty_network_strength": record.treaty_network_strength,
        "compliance_burden": record.compliance_burden,
        "reputation_risk": record.reputation_risk,
        "incentives": "\n".join(record.incentives),
        "notes": "\n".join(record.notes),
        "foundation_availability": terms.availability,
        "foundation_control": terms.control_requirements,
        "foundation_reporting": terms.reporting,
        "foundation_substance": terms.substance_requirements,
        "foundation_friendly_score": str(terms.friendly_score),
        "foundation_notes": "\n".join(terms.notes),
        "token": "",
    }


def collect_form_values(form: Mapping[str, Any]) -> dict[str, str]:
    """Normalise submitted fields to strings; the token is never echoed back."""
    values = default_form_values()
    for name in TEXT_FIELDS:
        raw = form.get(name)
        values[name] = "" if raw is None else str(raw).strip()
    for name in MULTILINE_FIELDS:
        raw = form.get(name)
        if isinstance(raw, (list, tuple)):
            values[name] = "\n".join(str(item) for item in raw)
        else:
            values[name] = "" if raw is None else str(raw)
    if form.get("original_country") is None:
        values["original_country"] = values["country"]
    values["token"] = ""
    return values


def _match_level(raw: str, levels: tuple[str, ...]) -> str | None:
    lowered = raw.strip().lower()
    return next((level for level in levels if level.lower() == lowered), None)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def record_from_form(values: Mapping[str, str]) -> JurisdictionRecord:
    """Validate collected form values into a record.

    Raises:
        ValidationError: With a user-facing message and the values.
    """
    snapshot = dict(values)

    if not values["country"] or not values["region"]:
        raise ValidationError("Country and region are required to save a jurisdiction.", snapshot)

    numbers: dict[str, float | int] = {}
    for name, as_int in NUMERIC_FIELDS.items():
        number = coerce_number(values[name])
        if number is None:
            raise ValidationError("Provide numeric values for tax, cost, and fee fields.", snapshot)
        if number < 0:
            raise ValidationError("Numeric fields must be greater than or equal to zero.", snapshot)
        numbers[name] = int(round(number)) if as_int else number

    score = coerce_number(values["foundation_friendly_score"])
    if score is None:
        raise ValidationError("Provide a foundation friendliness score between 0 and 5.", snapshot)
    friendly = max(FRIENDLY_SCORE_MIN, min(FRIENDLY_SCORE_MAX, int(round(score))))

    burden = _match_level(values["compliance_burden"], COMPLIANCE_LEVELS)
    if burden is None:
        raise ValidationError(
            f"Compliance burden must be one of: {', '.join(COMPLIANCE_LEVELS)}.", snapshot,
        )
    risk = _match_level(values["reputation_risk"], REPUTATION_LEVELS)
    if risk is None:
        raise ValidationError(
            f"Reputation risk must be one of: {', '.join(REPUTATION_LEVELS)}.", snapshot,
        )

    try:
        return normalize_record({
            "country": values["country"],
            "region": values["region"],
            **numbers,
            "treaty_network_strength": values["treaty_network_strength"],
            "compliance_burden": burden,
            "reputation_risk": risk,
            "incentives": parse_multiline_field(values["incentives"]),
            "notes": parse_multiline_field(values["notes"]),
            "foundation_terms": {
                "availability": values["foundation_availability"],
                "control_requirements": values["foundation_control"],
                "reporting": values["foundation_reporting"],
                "substance_requirements": values["foundation_substance"],
                "notes": parse_multiline_field(values["foundation_notes"]),
                "friendly_score": friendly,
            },
        })
    except ValidationError as exc:
        raise ValidationError(exc.message, snapshot) from exc


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

def handle_submission(
    form: Mapping[str, Any],
    store: DatasetStore,
    expected_token: str | None,
) -> SubmissionResult:
    """Authorise, validate and save one jurisdiction edit.

    Raises:
        AuthError, ValidationError, StorageError — each carrying ``values``.
    """
    values = collect_form_values(form)

    try:
        check_update_token(expected_token, form.get("token"))
    except AuthError as exc:
        raise AuthError(exc.reason, exc.message, values) from exc

    record = record_from_form(values)

    try:
        store.upsert(record, original_country=values["original_country"] or None)
    except StorageError as exc:
        raise StorageError(
            "Failed to write the regional JSON files. Check file permissions and try again.",
            path=exc.path,
            values=values,
        ) from exc
    except ValidationError as exc:
        raise ValidationError(exc.message, values) from exc

    logger.info(json.dumps({
        "event": "jurisdiction_saved",
        "country": record.country,
        "original_country": values["original_country"],
        "region": record.region,
    }))

    return SubmissionResult(
        country=record.country,
        message="Jurisdiction saved successfully. Regional JSON files are now updated.",
        values=default_form_values(record),
    )
