"""Multi-source aggregation engine.

Orchestrator  - concurrent dimension fan-out with per-source isolation
Merger        - (period, source) join of dimension row sets
Change rates  - sequential period-over-period ratios per source
Summary       - latest-period snapshot and CVR ranking
"""
from .change_rates import compute_change_rates
from .merger import RowSet, merge
from .models import DimensionName, PerformanceRank, SourceFailure, SummarySnapshot, UnifiedRecord
from .orchestrator import Orchestrator
from .summary import rank, summarize

__all__ = [
    "DimensionName",
    "Orchestrator",
    "PerformanceRank",
    "RowSet",
    "SourceFailure",
    "SummarySnapshot",
    "UnifiedRecord",
    "compute_change_rates",
    "merge",
    "rank",
    "summarize",
]
