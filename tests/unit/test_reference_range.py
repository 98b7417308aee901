# ============================================================================
# FILE: tests/unit/test_reference_range.py
# ============================================================================
"""
Unit tests for reference range evaluation
"""

import math

import pytest

from lab_intake.core.reference_range import format_reference_range, is_abnormal


class TestIsAbnormal:

    @pytest.mark.parametrize("value,expected", [
        (3.9, True),
        (4.0, False),
        (7.5, False),
        (11.0, False),
        (11.1, True),
        (12.0, True),
    ])
    def test_range_decides(self, value, expected):
        assert is_abnormal(value, 4.0, 11.0) is expected

    def test_range_overrides_asserted_flag(self):
        # In range but reported abnormal
        assert is_abnormal(7.0, 4.0, 11.0, asserted_abnormal=True) is False
        # Out of range but reported normal
        assert is_abnormal(12.0, 4.0, 11.0, asserted_abnormal=False) is True

    @pytest.mark.parametrize("min_value,max_value", [
        (None, None),
        (4.0, None),
        (None, 11.0),
    ])
    def test_incomplete_range_uses_asserted_flag(self, min_value, max_value):
        assert is_abnormal(100.0, min_value, max_value, asserted_abnormal=True) is True
        assert is_abnormal(100.0, min_value, max_value, asserted_abnormal=False) is False

    def test_asserted_flag_defaults_to_normal(self):
        assert is_abnormal(100.0, None, None) is False

    def test_degenerate_range(self):
        assert is_abnormal(5.0, 5.0, 5.0) is False
        assert is_abnormal(5.01, 5.0, 5.0) is True

    def test_nan_is_abnormal(self):
        assert is_abnormal(math.nan, 4.0, 11.0) is True

    def test_negative_values(self):
        assert is_abnormal(-1.0, 0.0, 200.0) is True


class TestFormatReferenceRange:

    def test_formats_bounds(self):
        assert format_reference_range(4.0, 11.0) == "4 - 11"
        assert format_reference_range(0.7, 1.3) == "0.7 - 1.3"

    def test_incomplete_range(self):
        assert format_reference_range(None, 11.0) is None
        assert format_reference_range(4.0, None) is None
        assert format_reference_range(None, None) is None
