"""
taxdash — Corporate tax & foundation intelligence backend.

Builds the flat-file jurisdiction dataset from a CSV source, stores it as
region-partitioned JSON, and serves filter / rollup / chart queries.
"""

__version__ = "1.0.0"
