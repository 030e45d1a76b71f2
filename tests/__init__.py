"""
Test suite for Guincoin bulk import.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_name_matching_service.py -v
"""
