# ============================================================================
# src/lab_intake/constants/__init__.py
# ============================================================================
"""
Reference data shipped with the service.
"""

from .test_types import DEFAULT_TEST_TYPES, seed_test_types

__all__ = ["DEFAULT_TEST_TYPES", "seed_test_types"]
