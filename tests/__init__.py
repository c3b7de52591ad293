"""
Test suite for the point-of-sale cart client.

Run all tests: pytest
Run unit tests only: pytest tests/unit/
Run specific file: pytest tests/unit/test_delta_sync_service.py -v
"""
