"""
tests/test_submission.py — Token-protected dataset edits.

Covers:
    - Form values seeded from a record and collected from a submission
    - Token checks (disabled / missing / invalid) leave files untouched
    - Field validation messages and preserved values
    - Upsert and rename through handle_submission
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from taxdash.errors import AuthError, StorageError, ValidationError
from taxdash.security import check_update_token
from taxdash.store import DatasetStore
from taxdash.submission import (
    collect_form_values,
    default_form_values,
    handle_submission,
    record_from_form,
)

TOKEN = "s3cret-token"


def form(country: str = "Malta", **overrides: Any) -> dict[str, Any]:
    values: dict[str, Any] = {
        "country": country,
        "region": "Europe",
        "corporate_tax_rate": "5",
        "operating_cost_index": "72.4",
        "employer_social_security_rate": "10",
        "incorporation_fees_usd": "1200",
        "annual_filing_cost_usd": "2400",
        "treaty_network_strength": "EU membership provides extensive directive coverage.",
        "compliance_burden": "moderate",
        "reputation_risk": "Low",
        "incentives": "Refund system for shareholders.\n\n  Participation exemption.  ",
        "notes": "Note one.",
        "foundation_availability": "Available.",
        "foundation_control": "Council member.",
        "foundation_reporting": "Annual accounts.",
        "foundation_substance": "Local administrator.",
        "foundation_friendly_score": "4",
        "foundation_notes": "Foundation note.",
        "token": TOKEN,
    }
    values.update(overrides)
    return values


def snapshot(store: DatasetStore) -> dict[str, str]:
    paths = [*store.region_file_paths(), store.legacy_path]
    return {p.name: p.read_text(encoding="utf-8") for p in paths if p.is_file()}


class TestCheckUpdateToken:
    """Shared-secret comparison."""

    def test_disabled(self):
        with pytest.raises(AuthError) as exc_info:
            check_update_token(None, TOKEN)
        assert exc_info.value.reason == AuthError.DISABLED

    def test_missing(self):
        with pytest.raises(AuthError) as exc_info:
            check_update_token(TOKEN, "   ")
        assert exc_info.value.reason == AuthError.MISSING

    def test_invalid(self):
        with pytest.raises(AuthError) as exc_info:
            check_update_token(TOKEN, "guess")
        assert exc_info.value.reason == AuthError.INVALID
        assert TOKEN not in exc_info.value.message

    def test_valid(self):
        check_update_token(TOKEN, f"  {TOKEN} ")


class TestFormValues:
    """Edit-form defaults and collection."""

    def test_blank_defaults(self):
        values = default_form_values()
        assert values["country"] == ""
        assert values["token"] == ""

    def test_seeded_from_record(self, make_record):
        record = make_record("Malta", corporate_tax_rate=35.0, notes=["One.", "Two."])
        values = default_form_values(record)
        assert values["original_country"] == "Malta"
        assert values["corporate_tax_rate"] == "35"
        assert values["employer_social_security_rate"] == "12"
        assert values["notes"] == "One.\nTwo."
        assert values["foundation_friendly_score"] == "3"
        assert values["token"] == ""

    def test_collect_trims_and_blanks_token(self):
        values = collect_form_values(form(country="  Malta  "))
        assert values["country"] == "Malta"
        assert values["original_country"] == "Malta"
        assert values["token"] == ""

    def test_collect_accepts_lists(self):
        values = collect_form_values(form(incentives=["A.", "B."]))
        assert values["incentives"] == "A.\nB."


class TestRecordFromForm:
    """Field validation."""

    def test_valid(self):
        record = record_from_form(collect_form_values(form()))
        assert record.operating_cost_index == 72
        assert record.compliance_burden == "Moderate"
        assert record.incentives == ["Refund system for shareholders.", "Participation exemption."]
        assert record.friendly_score == 4

    @pytest.mark.parametrize(
        ("overrides", "message"),
        [
            ({"country": ""}, "Country and region are required"),
            ({"region": " "}, "Country and region are required"),
            ({"corporate_tax_rate": "abc"}, "Provide numeric values"),
            ({"annual_filing_cost_usd": ""}, "Provide numeric values"),
            ({"incorporation_fees_usd": "-10"}, "greater than or equal to zero"),
            ({"incorporation_fees_usd": "1e999"}, "Provide numeric values"),
            ({"corporate_tax_rate": "1e999"}, "Provide numeric values"),
            ({"foundation_friendly_score": "lots"}, "friendliness score"),
            ({"foundation_friendly_score": "1e999"}, "friendliness score"),
            ({"compliance_burden": "Extreme"}, "Compliance burden must be one of"),
            ({"reputation_risk": ""}, "Reputation risk must be one of"),
        ],
    )
    def test_rejections(self, overrides: dict[str, str], message: str):
        submitted = collect_form_values(form(**overrides))
        with pytest.raises(ValidationError) as exc_info:
            record_from_form(submitted)
        assert message in exc_info.value.message
        assert exc_info.value.values["country"] == submitted["country"]

    @pytest.mark.parametrize(("raw", "expected"), [("7", 5), ("-2", 0), ("2.6", 3)])
    def test_friendly_score_rounded_and_clamped(self, raw: str, expected: int):
        record = record_from_form(collect_form_values(form(foundation_friendly_score=raw)))
        assert record.friendly_score == expected


class TestHandleSubmission:
    """Authorise → validate → upsert."""

    def test_update_existing(self, seeded_store: DatasetStore):
        result = handle_submission(form("Malta"), seeded_store, TOKEN)
        assert result.country == "Malta"
        malta = seeded_store.find("Malta")
        assert malta is not None
        assert malta.corporate_tax_rate == 5.0
        assert len(seeded_store.load()) == 5
        assert result.values["token"] == ""

    def test_insert_new(self, seeded_store: DatasetStore):
        handle_submission(form("Chile", region="South America"), seeded_store, TOKEN)
        assert seeded_store.find("chile") is not None
        assert len(seeded_store.load()) == 6

    def test_rename(self, seeded_store: DatasetStore):
        handle_submission(
            form("State of Qatar", original_country="Qatar", region="Asia-Pacific"),
            seeded_store,
            TOKEN,
        )
        names = [r.country for r in seeded_store.load()]
        assert "Qatar" not in names
        assert "State of Qatar" in names

    @pytest.mark.parametrize(
        ("expected", "provided", "reason"),
        [
            (TOKEN, "", AuthError.MISSING),
            (TOKEN, "wrong", AuthError.INVALID),
            (None, TOKEN, AuthError.DISABLED),
        ],
    )
    def test_auth_failures_leave_files_unchanged(
        self, seeded_store: DatasetStore, expected: str | None, provided: str, reason: str,
    ):
        before = snapshot(seeded_store)
        with pytest.raises(AuthError) as exc_info:
            handle_submission(form(token=provided), seeded_store, expected)
        assert exc_info.value.reason == reason
        assert exc_info.value.values["country"] == "Malta"
        assert exc_info.value.values["token"] == ""
        assert snapshot(seeded_store) == before

    def test_validation_failure_leaves_files_unchanged(self, seeded_store: DatasetStore):
        before = snapshot(seeded_store)
        with pytest.raises(ValidationError):
            handle_submission(form(corporate_tax_rate="n/a"), seeded_store, TOKEN)
        assert snapshot(seeded_store) == before

    def test_storage_failure_carries_values(self, tmp_path: Path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("", encoding="utf-8")
        store = DatasetStore(blocker / "jurisdictions", tmp_path / "jurisdictions.json")
        with pytest.raises(StorageError) as exc_info:
            handle_submission(form(), store, TOKEN)
        assert "Check file permissions" in exc_info.value.message
        assert exc_info.value.values["country"] == "Malta"
