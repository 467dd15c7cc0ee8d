"""
Operational metrics engine.

Components, leaf-first:
    - reference_resolver: Foreign keys to display summaries, placeholder fallbacks
    - store_groups: Brand-level store roll-ups
    - status_normalizer: Free-text ticket statuses onto CanonicalStatus
    - time_bucketer: Day/week/month trend series
    - ranker: Stable top-N / bottom-N rankings
    - client_analytics, stock_analytics: Supplementary snapshot sections
    - assembler: MetricsAssembler, the root that builds OperationalSnapshot
"""

from .assembler import MetricsAssembler
from .client_analytics import ClientAnalyzer
from .periods import resolve_window
from .ranker import top_n
from .reference_resolver import Lookups, ReferenceResolver, ResolvedSale
from .status_normalizer import StatusNormalizer, normalize
from .stock_analytics import StockAnalyzer
from .store_groups import aggregate_groups, group_stores
from .time_bucketer import TimeBucketer, select_granularity

__all__ = [
    "ClientAnalyzer",
    "Lookups",
    "MetricsAssembler",
    "ReferenceResolver",
    "ResolvedSale",
    "StatusNormalizer",
    "StockAnalyzer",
    "TimeBucketer",
    "aggregate_groups",
    "group_stores",
    "normalize",
    "resolve_window",
    "select_granularity",
    "top_n",
]
