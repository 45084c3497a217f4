"""
Test Policy Module
==================
Unit tests cho ScalingBand, ScalingPolicy và calculate_range.
"""

import math
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from poolscaler.autoscaling.policy import (
    ScalingBand,
    ScalingPolicy,
    DEFAULT_BANDS,
    calculate_range
)


class TestScalingBand:
    """Test cases cho ScalingBand."""

    def test_contains_inclusive_bounds(self):
        """Test cả hai cận đều inclusive."""
        band = ScalingBand(0.60, 0.69, 1.20)

        assert band.contains(0.60)
        assert band.contains(0.69)
        assert band.contains(0.65)
        assert not band.contains(0.595)
        assert not band.contains(0.695)

    def test_invalid_bounds(self):
        """Test band với lower > upper hoặc ngoài [0, 1]."""
        with pytest.raises(ValueError):
            ScalingBand(0.8, 0.7, 1.5)
        with pytest.raises(ValueError):
            ScalingBand(0.9, 1.2, 1.5)
        with pytest.raises(ValueError):
            ScalingBand(-0.1, 0.5, 1.5)

    def test_multiplier_must_grow(self):
        """Test multiplier phải > 1.0."""
        with pytest.raises(ValueError):
            ScalingBand(0.6, 0.7, 1.0)
        with pytest.raises(ValueError):
            ScalingBand(0.6, 0.7, 0.5)


class TestCalculateRange:
    """Test cases cho calculate_range."""

    @pytest.mark.parametrize("utilization", [0.0, 0.05, 0.3, 0.59])
    def test_below_lowest_band(self, utilization):
        """Test utilization dưới mọi band -> 0."""
        for size in (1, 4, 17):
            assert calculate_range(utilization, size) == 0

    @pytest.mark.parametrize("band", DEFAULT_BANDS)
    def test_matches_formula(self, band):
        """Test ceil(n * m) - n cho mỗi band mặc định."""
        midpoint = (band.lower + band.upper) / 2
        for size in (1, 2, 5, 10, 33):
            expected = math.ceil(size * band.multiplier) - size
            assert calculate_range(midpoint, size) == expected
            assert calculate_range(band.lower, size) == expected
            assert calculate_range(band.upper, size) == expected
            assert expected >= 0

    def test_single_instance_top_band(self):
        """Test 1 instance ở 95% -> thêm 1 instance."""
        assert calculate_range(0.95, 1) == 1

    def test_gap_between_bands(self):
        """Test giá trị nằm giữa 0.69 và 0.70 không khớp band nào."""
        assert calculate_range(0.695, 10) == 0

    def test_full_utilization(self):
        """Test utilization 1.0 thuộc band cao nhất."""
        assert calculate_range(1.0, 10) == math.ceil(10 * 1.80) - 10

    def test_first_match_wins(self):
        """Test bands chồng nhau: band đầu tiên được dùng."""
        bands = (ScalingBand(0.5, 1.0, 1.5), ScalingBand(0.8, 1.0, 3.0))
        assert calculate_range(0.9, 2, bands) == 1

    def test_empty_table(self):
        """Test bảng rỗng -> không bao giờ scale-out."""
        assert calculate_range(0.99, 10, bands=()) == 0


class TestScalingPolicy:
    """Test cases cho ScalingPolicy."""

    def test_default_policy(self):
        """Test default policy values."""
        policy = ScalingPolicy()

        assert policy.min_pool_size == 4
        assert policy.destroy_threshold == 0.10
        assert policy.idle_hit_threshold == 30
        assert policy.bands == DEFAULT_BANDS
        assert [b.multiplier for b in policy.bands] == [1.20, 1.40, 1.60, 1.80]

    def test_custom_policy(self):
        """Test custom policy values."""
        policy = ScalingPolicy(
            min_pool_size=1,
            destroy_threshold=0.2,
            idle_hit_threshold=5,
            bands=[ScalingBand(0.5, 1.0, 2.0)]
        )

        assert policy.min_pool_size == 1
        assert policy.destroy_threshold == 0.2
        assert policy.idle_hit_threshold == 5
        assert isinstance(policy.bands, tuple)
        assert policy.calculate_range(0.75, 3) == 3

    @pytest.mark.parametrize("kwargs", [
        {'min_pool_size': -1},
        {'destroy_threshold': 1.5},
        {'destroy_threshold': -0.1},
        {'idle_hit_threshold': 0},
    ])
    def test_invalid_policy(self, kwargs):
        """Test validation khi khởi tạo."""
        with pytest.raises(ValueError):
            ScalingPolicy(**kwargs)

    def test_from_dict(self):
        """Test tạo policy từ dict."""
        policy = ScalingPolicy.from_dict({
            'min_pool_size': 2,
            'bands': [
                {'lower': 0.5, 'upper': 0.74, 'multiplier': 1.5},
                (0.75, 1.0, 2.0)
            ]
        })

        assert policy.min_pool_size == 2
        assert policy.idle_hit_threshold == 30
        assert policy.bands == (
            ScalingBand(0.5, 0.74, 1.5),
            ScalingBand(0.75, 1.0, 2.0)
        )

    def test_from_dict_keeps_default_bands(self):
        """Test bands=None giữ bảng mặc định."""
        policy = ScalingPolicy.from_dict({'bands': None, 'destroy_threshold': 0.05})

        assert policy.bands == DEFAULT_BANDS
        assert policy.destroy_threshold == 0.05

    def test_to_dict(self):
        """Test policy -> dict."""
        data = ScalingPolicy().to_dict()

        assert data['min_pool_size'] == 4
        assert data['bands'][0] == {'lower': 0.60, 'upper': 0.69, 'multiplier': 1.20}
        assert ScalingPolicy.from_dict(data) == ScalingPolicy()
