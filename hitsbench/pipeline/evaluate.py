from __future__ import annotations

import argparse
import sys
from pathlib import Path

from hitsbench.eval.compare import (
    HARD_METRICS,
    QueryResult,
    detailed_results_to_dataframe,
    evaluate_all,
    results_to_dataframe,
)
from hitsbench.pipeline.run_benchmark import DEFAULT_OUTPUT_DIR


def print_result(r: QueryResult) -> None:
    if r.error:
        print(f"  [ERROR] {r.query_name}: {r.error}")
        return
    status = "PASS" if r.passed else "FAIL"
    print(f"  [{status}] {r.query_name}: {r.n_passed}/{r.n_total} "
          f"metrics passed (score={r.overall_score:.2f})")
    if r.passed:
        return
    for m in r.failed_metrics:
        hard = " (hard)" if m.metric_type in HARD_METRICS else ""
        print(f"      {m.metric_type}{hard} {m.column}: {m.detail}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Compare two sets of workload results")
    parser.add_argument("--expected-dir", type=Path, default=DEFAULT_OUTPUT_DIR,
                        help="Directory with expected result CSVs")
    parser.add_argument("--actual-dir", type=Path, required=True,
                        help="Directory with result CSVs to check")
    parser.add_argument("--output", type=Path, default=None,
                        help="Output CSV for the per-query summary")
    parser.add_argument("--detailed-output", type=Path, default=None,
                        help="Output CSV for per-metric results")
    parser.add_argument("--rel-tol", type=float, default=0.0,
                        help="Relative error tolerance (default: 0.0, exact)")
    parser.add_argument("--rho-tol", type=float, default=0.5,
                        help="Spearman rho tolerance (default: 0.5)")
    args = parser.parse_args(argv)

    print(f"Evaluating: {args.expected_dir} vs {args.actual_dir}")
    results = evaluate_all(
        args.expected_dir, args.actual_dir,
        rel_tol=args.rel_tol, rho_tol=args.rho_tol,
    )

    print("\nResults:")
    for r in results:
        print_result(r)

    evaluated = [r for r in results if not r.error]
    n_passed = sum(1 for r in evaluated if r.passed)
    n_errors = len(results) - len(evaluated)
    print(f"\nOverall: {n_passed}/{len(evaluated)} queries passed")
    if n_errors:
        print(f"{n_errors} queries could not be evaluated")

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        results_to_dataframe(results).to_csv(args.output, index=False)
        print(f"\nSummary saved to {args.output}")

    if args.detailed_output:
        args.detailed_output.parent.mkdir(parents=True, exist_ok=True)
        detailed_results_to_dataframe(results).to_csv(args.detailed_output, index=False)
        print(f"Detailed metrics saved to {args.detailed_output}")

    return 0 if evaluated and n_passed == len(results) else 1


if __name__ == "__main__":
    sys.exit(main())
