import pandas as pd
import pytest

from hitsbench.eval.reference import (
    distinct_counts,
    grouped_distinct_counts,
    reference_result,
    reference_results,
)
from hitsbench.workload.queries import QUERY_NAMES


class TestDistinctCounts:
    def test_nulls_not_counted(self, tiny_hits):
        df = distinct_counts(tiny_hits, ["SearchPhrase", "MobilePhone", "MobilePhoneModel"])
        assert df.iloc[0].tolist() == [3, 3, 3]

    def test_result_column_names(self, tiny_hits):
        df = distinct_counts(tiny_hits, ["HitColor"], ["distinct_hit_color"])
        assert list(df.columns) == ["distinct_hit_color"]
        assert df["distinct_hit_color"].iloc[0] == 3

    def test_empty_table(self, tiny_hits):
        df = distinct_counts(tiny_hits.iloc[0:0], ["HitColor", "BrowserCountry"])
        assert df.iloc[0].tolist() == [0, 0]


class TestGroupedDistinctCounts:
    def _run(self, df, limit=10):
        return grouped_distinct_counts(
            df,
            "BrowserCountry",
            ["HitColor", "BrowserCountry", "BrowserLanguage"],
            ["distinct_hit_color", "distinct_browser_country", "distinct_browser_language"],
            order_col="distinct_hit_color",
            limit=limit,
        )

    def test_null_group_kept(self, tiny_hits):
        df = self._run(tiny_hits)
        assert len(df) == 3
        last = df.iloc[-1]
        assert pd.isna(last["BrowserCountry"])
        assert [last["distinct_hit_color"], last["distinct_browser_country"],
                last["distinct_browser_language"]] == [0, 0, 1]

    def test_ordering_and_ties(self, tiny_hits):
        df = self._run(tiny_hits)
        assert df["distinct_hit_color"].tolist() == [2, 2, 0]
        assert df["BrowserCountry"].iloc[:2].tolist() == ["RU", "US"]

    def test_per_group_values(self, tiny_hits):
        df = self._run(tiny_hits).set_index("BrowserCountry")
        assert df.loc["RU", "distinct_browser_language"] == 2
        assert df.loc["US", "distinct_browser_language"] == 1
        assert df.loc["US", "distinct_browser_country"] == 1

    def test_limit(self, tiny_hits):
        assert len(self._run(tiny_hits, limit=1)) == 1

    def test_empty_table(self, tiny_hits):
        df = self._run(tiny_hits.iloc[0:0])
        assert len(df) == 0
        assert "BrowserCountry" in df.columns

    def test_at_most_ten_on_sample(self, sample_hits):
        df = self._run(sample_hits)
        assert len(df) == 10
        assert df["distinct_hit_color"].is_monotonic_decreasing


class TestReferenceResult:
    def test_all_queries(self, tiny_hits):
        results = reference_results(tiny_hits)
        assert sorted(results) == sorted(QUERY_NAMES)
        assert results["distinct_hit_color_browser_country_language"].iloc[0].tolist() == [3, 2, 3]

    def test_unknown(self, tiny_hits):
        with pytest.raises(KeyError):
            reference_result("query_7", tiny_hits)
