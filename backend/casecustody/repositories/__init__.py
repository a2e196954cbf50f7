"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection, create_indexes, close_connection, health_check
from .report_store import ReportStore, MongoReportStore, InMemoryReportStore, get_report_store
from .audit_repo import AuditRepository, InMemoryAuditRepository, get_audit_repository

__all__ = [
    "get_database",
    "get_collection",
    "create_indexes",
    "close_connection",
    "health_check",
    "ReportStore",
    "MongoReportStore",
    "InMemoryReportStore",
    "get_report_store",
    "AuditRepository",
    "InMemoryAuditRepository",
    "get_audit_repository",
]
