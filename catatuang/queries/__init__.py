"""Period aggregation and dashboard period resolution."""

from catatuang.queries.aggregator import PeriodAggregator, category_label, summarize
from catatuang.queries.periods import parse_month_key, parse_week, resolve_period

__all__ = [
    "PeriodAggregator",
    "category_label",
    "parse_month_key",
    "parse_week",
    "resolve_period",
    "summarize",
]
