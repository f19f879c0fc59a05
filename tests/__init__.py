"""Test suite for ATAC-Bridge.

Test organization:
- fixtures/: Synthetic AnnData, expression and fragment-file generators
- unit/: Unit tests for individual modules

Run tests with:
    pytest tests/
    pytest tests/unit/ -v --tb=short
"""
