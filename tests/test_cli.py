import pandas as pd
import pytest

from hitsbench.eval.benchmark import read_result, write_result
from hitsbench.pipeline import evaluate, run_benchmark

GROUPED = "top_10_browser_countries_by_distinct_hit_color"


def _two_runs(hits_parquet, tmp_path):
    dirs = (tmp_path / "expected", tmp_path / "actual")
    for out in dirs:
        run_benchmark.main([
            "--hits-path", str(hits_parquet), "--output-dir", str(out), "--iterations", "1",
        ])
    return dirs


class TestRunBenchmarkCli:
    def test_check_only(self, capsys):
        assert run_benchmark.main(["--check-only"]) == 0
        assert "3/3 queries valid" in capsys.readouterr().out

    def test_run_and_verify(self, hits_parquet, tmp_path, capsys):
        out = tmp_path / "results"
        code = run_benchmark.main([
            "--hits-path", str(hits_parquet),
            "--output-dir", str(out),
            "--iterations", "1",
            "--verify",
        ])
        printed = capsys.readouterr().out
        assert code == 0, printed
        assert "3/3 queries succeeded" in printed
        assert "FAIL" not in printed
        assert (out / "timings.json").exists()

    def test_select_queries(self, hits_parquet, tmp_path):
        out = tmp_path / "results"
        code = run_benchmark.main([
            "--hits-path", str(hits_parquet),
            "--output-dir", str(out),
            "--queries", "2",
            "--iterations", "1",
        ])
        assert code == 0
        assert [p.name for p in out.glob("*.csv")] == [
            "top_10_browser_countries_by_distinct_hit_color.csv",
        ]

    def test_failing_query_sets_exit_code(self, hits_parquet, tmp_path):
        qfile = tmp_path / "bad.sql"
        qfile.write_text('SELECT COUNT(*) FROM hits;\nSELECT SUM("HitColor") FROM hits;\n')
        code = run_benchmark.main([
            "--hits-path", str(hits_parquet),
            "--queries-file", str(qfile),
            "--output-dir", str(tmp_path / "results"),
            "--iterations", "1",
        ])
        assert code == 1

    @pytest.mark.parametrize("threads", ["0", "-2"])
    def test_non_positive_threads_rejected(self, hits_parquet, tmp_path, capsys, threads):
        with pytest.raises(SystemExit) as exc:
            run_benchmark.main([
                "--hits-path", str(hits_parquet),
                "--output-dir", str(tmp_path / "results"),
                "--threads", threads,
            ])
        assert exc.value.code == 2
        assert "--threads must be at least 1" in capsys.readouterr().err
        assert not (tmp_path / "results").exists()

    def test_zero_iterations_rejected(self, hits_parquet, tmp_path):
        with pytest.raises(SystemExit) as exc:
            run_benchmark.main(["--hits-path", str(hits_parquet), "--iterations", "0"])
        assert exc.value.code == 2

    def test_unsupported_hits_suffix_rejected(self, tmp_path, capsys):
        path = tmp_path / "hits.json"
        path.write_text("{}")
        with pytest.raises(SystemExit) as exc:
            run_benchmark.main(["--hits-path", str(path), "--output-dir", str(tmp_path / "results")])
        assert exc.value.code == 2
        assert "Unsupported hits source" in capsys.readouterr().err

    def test_headerless_tsv_rejected(self, sample_hits, tmp_path, capsys):
        path = tmp_path / "hits.tsv"
        sample_hits.head(50).to_csv(path, sep="\t", header=False, index=False)
        with pytest.raises(SystemExit) as exc:
            run_benchmark.main(["--hits-path", str(path), "--output-dir", str(tmp_path / "results")])
        assert exc.value.code == 2
        assert "no header row" in capsys.readouterr().err

    def test_missing_hits_path_rejected(self, tmp_path):
        with pytest.raises(SystemExit):
            run_benchmark.main(["--hits-path", str(tmp_path / "nope.parquet")])


class TestEvaluateCli:
    def test_same_results_pass(self, hits_parquet, tmp_path, capsys):
        first = tmp_path / "first"
        second = tmp_path / "second"
        for out in (first, second):
            run_benchmark.main([
                "--hits-path", str(hits_parquet), "--output-dir", str(out), "--iterations", "1",
            ])
        summary = tmp_path / "summary.csv"
        code = evaluate.main([
            "--expected-dir", str(first),
            "--actual-dir", str(second),
            "--output", str(summary),
        ])
        assert code == 0
        assert "Overall: 3/3 queries passed" in capsys.readouterr().out
        assert summary.exists()

    def test_missing_results_fail(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        assert evaluate.main(["--expected-dir", str(tmp_path / "a"), "--actual-dir", str(tmp_path / "b")]) == 1

    def test_failed_metrics_listed(self, hits_parquet, tmp_path, capsys):
        expected, actual = _two_runs(hits_parquet, tmp_path)
        path = actual / f"{GROUPED}.csv"
        df = read_result(path)
        df["distinct_hit_color"] = range(1, len(df) + 1)
        write_result(df, path)
        detail = tmp_path / "detail.csv"

        code = evaluate.main([
            "--expected-dir", str(expected),
            "--actual-dir", str(actual),
            "--detailed-output", str(detail),
        ])
        printed = capsys.readouterr().out
        assert code == 1
        assert f"[FAIL] {GROUPED}" in printed
        assert "ordering (hard) distinct_hit_color: not descending" in printed
        assert "Overall: 2/3 queries passed" in printed
        failed = pd.read_csv(detail).query("not passed")
        assert "ordering" in set(failed["metric_type"])

    def test_evaluation_error_reported(self, hits_parquet, tmp_path, capsys):
        expected, actual = _two_runs(hits_parquet, tmp_path)
        path = actual / f"{GROUPED}.csv"
        write_result(read_result(path).drop(columns=["distinct_hit_color"]), path)
        summary = tmp_path / "summary.csv"

        code = evaluate.main([
            "--expected-dir", str(expected),
            "--actual-dir", str(actual),
            "--output", str(summary),
        ])
        printed = capsys.readouterr().out
        assert code == 1
        assert f"[ERROR] {GROUPED}: 'distinct_hit_color'" in printed
        assert "missing CSVs" not in printed
        assert "1 queries could not be evaluated" in printed
        row = pd.read_csv(summary, keep_default_na=False).set_index("query").loc[GROUPED]
        assert row["error"] == "'distinct_hit_color'"

    def test_missing_csv_error_text(self, hits_parquet, tmp_path, capsys):
        expected, actual = _two_runs(hits_parquet, tmp_path)
        (actual / f"{GROUPED}.csv").unlink()
        assert evaluate.main(["--expected-dir", str(expected), "--actual-dir", str(actual)]) == 1
        assert f"[ERROR] {GROUPED}: actual CSV not found" in capsys.readouterr().out
