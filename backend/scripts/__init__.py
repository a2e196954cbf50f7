"""
Backend Scripts Module

This module contains utility scripts for database maintenance.

Available scripts:
    - migrate_case_folders.py: Canonicalizes case folder keys and backfills sent history

Usage:
    python -m scripts.migrate_case_folders --dry-run
"""
