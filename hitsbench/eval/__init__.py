from .benchmark import (
    QueryTiming,
    adapt_sql,
    connect,
    hits_source,
    load_hits,
    read_result,
    run_benchmark,
    run_query,
    write_result,
    write_timings,
)
from .compare import (
    check_result_shape,
    detailed_results_to_dataframe,
    evaluate_all,
    evaluate_query,
    evaluate_results,
    results_to_dataframe,
)
from .reference import distinct_counts, grouped_distinct_counts, reference_result, reference_results
