"""
Status Service - Alarm Status

Counts active alarms per priority in MariaDB and publishes the summary.
"""

from .aggregator import StatusAggregator
from .alarm_store import AlarmStatusSummary, AlarmStore

__all__ = ["StatusAggregator", "AlarmStatusSummary", "AlarmStore"]
