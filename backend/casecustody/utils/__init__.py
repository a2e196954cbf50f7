"""Logging, clock and ID helpers shared by the engine and the service"""
from .logger import get_logger, setup_logging, get_correlation_id, set_correlation_id
from .idgen import generate_id, generate_report_id, generate_correlation_id
from .time import utc_now, ensure_utc, parse_iso

__all__ = [
    "get_logger",
    "setup_logging",
    "get_correlation_id",
    "set_correlation_id",
    "generate_id",
    "generate_report_id",
    "generate_correlation_id",
    "utc_now",
    "ensure_utc",
    "parse_iso",
]
