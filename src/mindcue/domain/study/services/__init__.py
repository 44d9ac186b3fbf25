from .stats_aggregator import SessionStatsAggregator

__all__ = ["SessionStatsAggregator"]
