from pathlib import Path

import pandas as pd

from hitsbench.eval.benchmark import run_benchmark
from hitsbench.eval.compare import check_result_shape, evaluate_results, results_to_dataframe, detailed_results_to_dataframe
from hitsbench.eval.reference import reference_results
from hitsbench.pipeline.build_hits import make_sample_hits, write_hits
from hitsbench.workload.queries import check_queries, load_queries

SAMPLE_ROWS = 200_000
SAMPLE_HITS = Path("data/smoke/hits")
EXACT_RESULTS = Path("data/smoke/results/exact")
APPROX_RESULTS = Path("data/smoke/results/approx")
EVAL_DIR = Path("data/smoke")
# HyperLogLog estimates are typically within a few percent
APPROX_REL_TOL = 0.05


def _print_breakdown(eval_df: pd.DataFrame) -> None:
    for _, row in eval_df.iterrows():
        if row["error"]:
            status = f"ERROR: {row['error']}"
        elif row["passed"]:
            status = f"PASS  score={row['score']:.3f}"
        else:
            status = f"FAIL  score={row['score']:.3f}  [{row['failed_metrics']}]"
        print(f"  {row['query'][:55]:55s} {status}")


def main():
    queries = load_queries()
    errors = check_queries(queries)
    if errors:
        raise SystemExit(f"Invalid queries: {errors}")

    print(f"Generating {SAMPLE_ROWS:,} sample hits rows")
    hits = make_sample_hits(SAMPLE_ROWS)
    write_hits(hits, SAMPLE_HITS, partitions=4)

    print(f"\nRunning {len(queries)} queries (exact)...")
    exact, exact_timings = run_benchmark(queries, SAMPLE_HITS, iterations=3, output_dir=EXACT_RESULTS)
    for t in exact_timings:
        print(f"  {t.query_name}: min {t.min_ms:.1f} ms" if t.ok else f"  FAIL {t.query_name}: {t.error}")
    for name, df in exact.items():
        for problem in check_result_shape(name, df):
            print(f"  WARN {name}: {problem}")

    print(f"\nRunning {len(queries)} queries (approx_count_distinct)...")
    approx, _ = run_benchmark(queries, SAMPLE_HITS, iterations=3, output_dir=APPROX_RESULTS, approx=True)

    print("\nExact vs pandas reference:")
    ref_df = results_to_dataframe(evaluate_results(reference_results(hits), exact))
    _print_breakdown(ref_df)

    print(f"\nApprox vs exact (rel_tol={APPROX_REL_TOL}):")
    approx_results = evaluate_results(exact, approx, rel_tol=APPROX_REL_TOL)
    approx_df = results_to_dataframe(approx_results)
    _print_breakdown(approx_df)

    detail_path = EVAL_DIR / "evaluation_approx_detail.csv"
    detailed_results_to_dataframe(approx_results).to_csv(detail_path, index=False)
    print(f"\nSaved: {detail_path}")


if __name__ == "__main__":
    main()
