"""Custody Engine - Pure decision logic for reports and case folders"""
from .case_key import normalize_case_key, same_case
from .lock_evaluator import compute_lock_state, compute_auto_lock_horizon
from .numbering import next_sequence_number, latest_sequence_number, summarize_case
from .snapshot_builder import build_snapshot, seed_content_from_snapshot
from .transition_resolver import TransitionResolver
from .case_folder import (
    CaseFolderAggregator, canonicalize_case_folder_keys, migrate_case_folders_from_reports
)
from .state_machine import ReportStateMachine
from .retention import RetentionPolicy
from .audit_writer import AuditWriter

__all__ = [
    "normalize_case_key",
    "same_case",
    "compute_lock_state",
    "compute_auto_lock_horizon",
    "next_sequence_number",
    "latest_sequence_number",
    "summarize_case",
    "build_snapshot",
    "seed_content_from_snapshot",
    "TransitionResolver",
    "CaseFolderAggregator",
    "canonicalize_case_folder_keys",
    "migrate_case_folders_from_reports",
    "ReportStateMachine",
    "RetentionPolicy",
    "AuditWriter",
]
