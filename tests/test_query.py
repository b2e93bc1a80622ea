"""
tests/test_query.py — Query Engine: filtering, regional rollup, ranking.

Pure in-memory tests. No files.
"""

from __future__ import annotations

from collections.abc import Callable

import pytest

from taxdash.query import (
    FilterCriteria,
    chart_rows,
    filter_records,
    find_record,
    highlights,
    region_options,
    summarize_by_region,
    top_n,
)
from taxdash.schema import JurisdictionRecord

MakeRecord = Callable[..., JurisdictionRecord]


@pytest.fixture()
def records(make_record: MakeRecord) -> list[JurisdictionRecord]:
    return [
        make_record("Cayman Islands", "North America & Caribbean",
                    corporate_tax_rate=0.0, operating_cost_index=61, friendly_score=4,
                    incentives=["Tax neutral fund domicile."]),
        make_record("Ireland", "Europe", corporate_tax_rate=12.5, operating_cost_index=78,
                    employer_social_security_rate=11.05, friendly_score=3),
        make_record("Malta", "Europe", corporate_tax_rate=35.0, operating_cost_index=72,
                    incorporation_fees_usd=1200, friendly_score=2),
        make_record("Qatar", "Asia-Pacific", corporate_tax_rate=10.0, operating_cost_index=55,
                    friendly_score=4),
        make_record("Singapore", "Asia-Pacific", corporate_tax_rate=17.0, operating_cost_index=58,
                    friendly_score=5, notes=["Strong fintech ecosystem."]),
    ]


def names(items: list[JurisdictionRecord]) -> list[str]:
    return [r.country for r in items]


class TestFilterCriteria:
    """Lenient parameter parsing."""

    def test_blank_and_non_numeric_ignored(self):
        criteria = FilterCriteria.from_params({
            "query": "  ",
            "region": "",
            "max_tax": "abc",
            "max_cost": "",
            "min_foundation": "x",
            "unknown": "1",
        })
        assert criteria == FilterCriteria()

    @pytest.mark.parametrize("overflow", ["1e999", "-1e999", "1E400"])
    def test_overflowing_numbers_ignored(self, overflow: str):
        criteria = FilterCriteria.from_params({"max_tax": overflow, "min_foundation": overflow})
        assert criteria.max_tax is None
        assert criteria.min_foundation is None

    def test_numeric_strings_parsed(self):
        criteria = FilterCriteria.from_params({"max_tax": "15", "min_foundation": "4"})
        assert criteria.max_tax == 15.0
        assert criteria.min_foundation == 4

    def test_region_all_means_no_filter(self):
        assert FilterCriteria(region="All").region_filter is None
        assert FilterCriteria(region="Europe").region_filter == "europe"


class TestFilterRecords:
    """Conjunctive filtering, order preserved."""

    def test_no_criteria_returns_all(self, records):
        assert filter_records(records) == records
        assert filter_records(records, FilterCriteria()) == records

    def test_region_case_insensitive(self, records):
        assert names(filter_records(records, FilterCriteria(region="europe"))) == ["Ireland", "Malta"]

    def test_keyword_searches_text_fields(self, records):
        assert names(filter_records(records, FilterCriteria(query="FINTECH"))) == ["Singapore"]
        assert names(filter_records(records, FilterCriteria(query="fund domicile"))) == ["Cayman Islands"]
        assert names(filter_records(records, FilterCriteria(query="asia"))) == ["Qatar", "Singapore"]

    def test_upper_bounds_inclusive(self, records):
        assert names(filter_records(records, FilterCriteria(max_tax=12.5))) == [
            "Cayman Islands", "Ireland", "Qatar",
        ]
        assert names(filter_records(records, FilterCriteria(max_cost=58))) == ["Qatar", "Singapore"]
        assert names(filter_records(records, FilterCriteria(max_incorporation=400))) == [
            "Cayman Islands", "Ireland", "Qatar", "Singapore",
        ]
        assert names(filter_records(records, FilterCriteria(max_social=11.05))) == ["Ireland"]

    def test_min_foundation(self, records):
        assert names(filter_records(records, FilterCriteria(min_foundation=4))) == [
            "Cayman Islands", "Qatar", "Singapore",
        ]

    def test_criteria_combine(self, records):
        criteria = FilterCriteria(region="Asia-Pacific", max_tax=15)
        assert names(filter_records(records, criteria)) == ["Qatar"]

    def test_idempotent(self, records):
        criteria = FilterCriteria(max_tax=20, min_foundation=3)
        once = filter_records(records, criteria)
        assert filter_records(once, criteria) == once


class TestSummarizeByRegion:
    """Counts and averages per region."""

    def test_average_example(self, make_record: MakeRecord):
        records = [
            make_record("A", "Europe", corporate_tax_rate=10.0),
            make_record("B", "Europe", corporate_tax_rate=20.0),
            make_record("C", "Europe", corporate_tax_rate=30.0),
        ]
        summary = summarize_by_region(records)["Europe"]
        assert summary.count == 3
        assert summary.avg_tax == pytest.approx(20.0)

    def test_keys_sorted(self, records):
        assert list(summarize_by_region(records)) == [
            "Asia-Pacific", "Europe", "North America & Caribbean",
        ]

    def test_averages(self, records):
        europe = summarize_by_region(records)["Europe"]
        assert europe.avg_cost == pytest.approx(75.0)
        assert europe.avg_foundation == pytest.approx(2.5)

    def test_empty(self):
        assert summarize_by_region([]) == {}

    def test_region_options(self, records):
        assert region_options(records) == ["Asia-Pacific", "Europe", "North America & Caribbean"]


class TestTopN:
    """Stable ascending ranking."""

    def test_default_sort_by_tax(self, records):
        assert names(top_n(records, 3)) == ["Cayman Islands", "Qatar", "Ireland"]

    def test_bounds(self, records):
        assert len(top_n(records, 0)) == 0
        assert len(top_n(records, 100)) == len(records)

    def test_negative_n_rejected(self, records):
        with pytest.raises(ValueError):
            top_n(records, -1)

    def test_unknown_sort_key_rejected(self, records):
        with pytest.raises(ValueError):
            top_n(records, 3, "country")

    def test_sort_by_cost(self, records):
        assert names(top_n(records, 2, "operating_cost_index")) == ["Qatar", "Singapore"]

    def test_ties_keep_input_order(self, records):
        ranked = top_n(records, 5, "friendly_score")
        assert names(ranked) == ["Malta", "Ireland", "Cayman Islands", "Qatar", "Singapore"]

    def test_sorted_ascending(self, records):
        ranked = top_n(records, 5)
        rates = [r.corporate_tax_rate for r in ranked]
        assert rates == sorted(rates)

    def test_chart_rows_shape(self, records):
        rows = chart_rows(records)
        assert rows[0] == {
            "country": "Cayman Islands",
            "corporate_tax_rate": 0.0,
            "friendly_score": 4,
            "friendly_stars": "★★★★☆",
            "operating_cost_index": 61,
        }
        assert len(rows) == 5


class TestLookups:
    """Detail lookup and headline picks."""

    def test_find_record_case_insensitive(self, records):
        found = find_record(records, "  singapore ")
        assert found is not None and found.country == "Singapore"
        assert find_record(records, "Atlantis") is None
        assert find_record(records, "") is None
        assert find_record(records, None) is None

    def test_highlights(self, records):
        picks = highlights(records)
        assert picks["lowest_tax"].country == "Cayman Islands"
        assert picks["lowest_cost"].country == "Qatar"
        assert picks["top_foundation"].country == "Singapore"

    def test_highlights_empty(self):
        assert highlights([]) == {"lowest_tax": None, "lowest_cost": None, "top_foundation": None}
