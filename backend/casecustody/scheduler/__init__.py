"""Background jobs"""
from .retention_scheduler import RetentionScheduler, get_scheduler, start_scheduler, stop_scheduler

__all__ = [
    "RetentionScheduler",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
]
