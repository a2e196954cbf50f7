"""
Test Suite

This module contains all tests for the case custody backend.

Structure:
    tests/
    ├── __init__.py         # This file
    ├── conftest.py         # Pytest fixtures
    └── unit/               # Unit tests
        ├── __init__.py
        ├── test_engine/    # Engine tests
        ├── test_services/  # Service layer tests
        ├── test_scheduler/ # Retention scheduler tests
        └── test_utils/     # Utility tests

To run tests:
    pytest backend/tests/
    pytest backend/tests/unit/test_engine/
"""
