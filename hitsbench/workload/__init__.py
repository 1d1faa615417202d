from .queries import (
    DEFAULT_QUERIES_FILE,
    QUERY_METADATA,
    QUERY_NAMES,
    Query,
    check_queries,
    defined_names,
    load_queries,
    referenced_columns,
    referenced_tables,
    result_columns,
    select_queries,
    split_statements,
    validate_query,
)
from .schema import HITS_COLUMNS, HITS_SCHEMA, HITS_TABLE, WORKLOAD_COLUMNS, create_table_sql
