"""Service layer - Host-side orchestration"""
from .report_service import ReportCustodyService, SYSTEM_ACTOR

__all__ = [
    "ReportCustodyService",
    "SYSTEM_ACTOR",
]
