"""PropMetrics core: multi-property GA4 CVR aggregation and reporting.

Fetches metric dimensions from BigQuery GA4 exports for every enabled
property, merges them per (period, property), computes period-over-period
change rates, ranks properties, and writes report tables to a sink
(Google Sheets or SQLite).
"""
