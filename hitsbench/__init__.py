"""Extended ClickBench distinct-count workload on DuckDB."""

__version__ = "0.1.0"
