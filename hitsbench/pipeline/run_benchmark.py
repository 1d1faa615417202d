from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import pandas as pd

from hitsbench.eval.benchmark import QueryTiming, hits_source, load_hits, run_benchmark
from hitsbench.eval.compare import QueryResult, check_result_shape, evaluate_results
from hitsbench.eval.reference import reference_results
from hitsbench.workload.queries import QUERY_METADATA, check_queries, load_queries, select_queries
from hitsbench.workload.schema import WORKLOAD_COLUMNS

logger = logging.getLogger(__name__)

DEFAULT_HITS_PATH = Path("data/hits.parquet")
DEFAULT_OUTPUT_DIR = Path("data/results/duckdb")
# ClickBench runs every query three times and reports each run
DEFAULT_ITERATIONS = 3


def run_all(
    hits_path: Path,
    output_dir: Path | None,
    queries_file: Path | None = None,
    query_names: list[str] | None = None,
    iterations: int = DEFAULT_ITERATIONS,
    approx: bool = False,
    threads: int | None = None,
    memory_limit: str | None = None,
    verbose: bool = True,
) -> tuple[dict[str, pd.DataFrame], list[QueryTiming]]:
    queries = select_queries(load_queries(queries_file), query_names)
    results, timings = run_benchmark(
        queries, hits_path,
        iterations=iterations,
        output_dir=output_dir,
        approx=approx,
        threads=threads,
        memory_limit=memory_limit,
    )

    if verbose:
        for t in timings:
            if not t.ok:
                print(f"  FAIL {t.query_name}: {t.error}")
                continue
            df = results[t.query_name]
            print(f"  OK {t.query_name}: {len(df)} rows x {len(df.columns)} cols "
                  f"(min {t.min_ms:.1f} ms, median {t.median_ms:.1f} ms)")
            for problem in check_result_shape(t.query_name, df):
                print(f"  WARN {t.query_name}: {problem}")

    return results, timings


def verify_against_reference(
    hits_path: Path,
    results: dict[str, pd.DataFrame],
    rel_tol: float = 0.0,
) -> list[QueryResult]:
    """Compare engine results with the pandas implementation on the same data."""
    names = [n for n in results if n in QUERY_METADATA]
    if not names:
        return []
    hits = load_hits(hits_path, columns=WORKLOAD_COLUMNS)
    logger.info("Loaded %d hits rows for reference evaluation", len(hits))
    expected = reference_results(hits, names)
    return evaluate_results(expected, results, rel_tol=rel_tol)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the extended ClickBench distinct-count queries")
    parser.add_argument("--hits-path", type=Path, default=DEFAULT_HITS_PATH,
                        help="hits source: .parquet file, partition directory, .csv/.tsv, or .duckdb")
    parser.add_argument("--queries-file", type=Path, default=None,
                        help="SQL file with ;-separated queries (default: packaged extended.sql)")
    parser.add_argument("--queries", nargs="*", default=None,
                        help="Query indices or names to run (default: all)")
    parser.add_argument("--iterations", type=int, default=DEFAULT_ITERATIONS,
                        help=f"Runs per query (default: {DEFAULT_ITERATIONS})")
    parser.add_argument("--output-dir", type=Path, default=DEFAULT_OUTPUT_DIR,
                        help="Output directory for result CSVs and timings.json")
    parser.add_argument("--approx", action="store_true",
                        help="Use approx_count_distinct instead of COUNT(DISTINCT ...)")
    parser.add_argument("--threads", type=int, default=None,
                        help="DuckDB worker threads (default: engine default)")
    parser.add_argument("--memory-limit", default=None,
                        help="DuckDB memory limit, e.g. 8GB")
    parser.add_argument("--check-only", action="store_true",
                        help="Validate the queries against the hits schema and exit")
    parser.add_argument("--verify", action="store_true",
                        help="Compare results with the pandas reference implementation")
    parser.add_argument("--rel-tol", type=float, default=0.0,
                        help="Relative error tolerance for --verify (default: 0.0)")
    parser.add_argument("--log-level", default="WARNING",
                        help="Logging level (default: WARNING)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.threads is not None and args.threads < 1:
        parser.error(f"--threads must be at least 1, got {args.threads}")
    if args.iterations < 1:
        parser.error(f"--iterations must be at least 1, got {args.iterations}")

    try:
        queries = select_queries(load_queries(args.queries_file), args.queries)
    except (FileNotFoundError, KeyError) as e:
        parser.error(str(e))
    errors = check_queries(queries)
    for name, err in errors.items():
        print(f"  INVALID {name}: {err}")
    if args.check_only:
        print(f"\n{len(queries) - len(errors)}/{len(queries)} queries valid.")
        return 1 if errors else 0

    try:
        hits_source(args.hits_path)
    except (FileNotFoundError, ValueError) as e:
        parser.error(str(e))

    print(f"Running benchmark: {args.hits_path} -> {args.output_dir}")
    results, timings = run_all(
        args.hits_path, args.output_dir,
        queries_file=args.queries_file,
        query_names=args.queries,
        iterations=args.iterations,
        approx=args.approx,
        threads=args.threads,
        memory_limit=args.memory_limit,
    )
    n_failed = sum(1 for t in timings if not t.ok)
    n_bad_shape = sum(1 for name, df in results.items() if check_result_shape(name, df))
    print(f"\n{len(results)}/{len(timings)} queries succeeded.")

    n_unverified = 0
    if args.verify:
        print("\nVerifying against pandas reference...")
        for r in verify_against_reference(args.hits_path, results, rel_tol=args.rel_tol):
            if r.error:
                status = f"ERROR: {r.error}"
                n_unverified += 1
            elif r.passed and r.n_passed == r.n_total:
                status = "PASS"
            else:
                status = f"FAIL  {r.n_passed}/{r.n_total} metrics passed"
                n_unverified += 1
            print(f"  {r.query_name[:55]:55s} {status}")

    return 1 if (n_failed or n_bad_shape or n_unverified or errors) else 0


if __name__ == "__main__":
    sys.exit(main())
