"""
Test Suite

This module contains all tests for the Expense Approval backend.

Structure:
    tests/
    ├── __init__.py         # This file
    ├── conftest.py         # Pytest fixtures (in-memory repositories, factories)
    ├── unit/               # Unit tests
    │   ├── __init__.py
    │   ├── test_services/  # Service layer tests
    │   ├── test_engine/    # Engine tests
    │   └── test_utils/     # Utility tests
    └── integration/        # Integration tests
        ├── __init__.py
        └── test_api/       # API endpoint tests

To run tests:
    pytest backend/tests/
    pytest backend/tests/unit/
    pytest backend/tests/integration/
"""
