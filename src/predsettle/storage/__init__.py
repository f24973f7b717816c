"""DuckDB persistence: plain functions over a connection."""
