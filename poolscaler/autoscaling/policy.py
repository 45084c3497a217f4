"""
Autoscaling Policy Module
=========================
Module định nghĩa cấu hình và bảng scaling cho autoscaling controller.

Policy gồm:
    1. Pool floor: Số instances tối thiểu cho mỗi kind
    2. Destroy threshold: Utilization dưới ngưỡng này thì instance idle bị destroy
    3. Idle-hit threshold: Số ticks idle liên tiếp trước khi destroy sole survivor
    4. Scaling bands: Bảng (utilization range -> multiplier) chỉ dùng cho scale-out

Band boundaries là inclusive-inclusive: u thuộc band nếu lower <= u <= upper.
Band đầu tiên khớp sẽ được dùng.

Usage:
    >>> policy = ScalingPolicy(min_pool_size=2)
    >>> policy.calculate_range(0.95, 10)
    8
"""

import numpy as np
from typing import Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field, asdict


@dataclass(frozen=True)
class ScalingBand:
    """
    Một dải utilization và hệ số scale-out tương ứng.

    Attributes:
        lower: Cận dưới của utilization (inclusive)
        upper: Cận trên của utilization (inclusive)
        multiplier: Hệ số nhân group size, luôn > 1.0
    """
    lower: float
    upper: float
    multiplier: float

    def __post_init__(self):
        if not 0.0 <= self.lower <= self.upper <= 1.0:
            raise ValueError(
                f"Band [{self.lower}, {self.upper}] phải nằm trong [0, 1] với lower <= upper"
            )
        if self.multiplier <= 1.0:
            raise ValueError(
                f"Multiplier {self.multiplier} phải > 1.0 (bảng chỉ dùng cho scale-out)"
            )

    def contains(self, utilization: float) -> bool:
        """Kiểm tra utilization có nằm trong band không."""
        return self.lower <= utilization <= self.upper


# Adjustments by 20%, 40%, 60% and 80%
DEFAULT_BANDS: Tuple[ScalingBand, ...] = (
    ScalingBand(0.60, 0.69, 1.20),
    ScalingBand(0.70, 0.79, 1.40),
    ScalingBand(0.80, 0.89, 1.60),
    ScalingBand(0.90, 1.00, 1.80),
)


def calculate_range(
    utilization: float,
    group_size: int,
    bands: Sequence[ScalingBand] = DEFAULT_BANDS
) -> int:
    """
    Tính số instances cần thêm cho một group.

    Args:
        utilization: Average trailing utilization của group
        group_size: Số instances hiện tại (> 0)
        bands: Bảng scaling, duyệt theo thứ tự, band đầu tiên khớp được dùng

    Returns:
        ceil(group_size * multiplier) - group_size, hoặc 0 nếu không band nào khớp
    """
    for band in bands:
        if band.contains(utilization):
            return max(int(np.ceil(group_size * band.multiplier)) - group_size, 0)
    return 0


@dataclass
class ScalingPolicy:
    """
    Cấu hình autoscaling policy.

    Attributes:
        min_pool_size: Số instances tối thiểu mỗi kind (pool floor)
        destroy_threshold: Trailing utilization dưới ngưỡng này thì instance
            idle bị destroy (khi group có nhiều hơn 1 instance)
        idle_hit_threshold: Số ticks idle liên tiếp trước khi destroy sole
            survivor (grace period = idle_hit_threshold * tick interval)
        bands: Bảng scaling bands cho scale-out
    """
    min_pool_size: int = 4
    destroy_threshold: float = 0.10
    idle_hit_threshold: int = 30
    bands: Tuple[ScalingBand, ...] = field(default_factory=lambda: DEFAULT_BANDS)

    def __post_init__(self):
        self.bands = tuple(self.bands)
        if self.min_pool_size < 0:
            raise ValueError(f"min_pool_size phải >= 0, nhận {self.min_pool_size}")
        if not 0.0 <= self.destroy_threshold <= 1.0:
            raise ValueError(
                f"destroy_threshold phải nằm trong [0, 1], nhận {self.destroy_threshold}"
            )
        if self.idle_hit_threshold < 1:
            raise ValueError(
                f"idle_hit_threshold phải >= 1, nhận {self.idle_hit_threshold}"
            )

    def calculate_range(self, utilization: float, group_size: int) -> int:
        """Số instances cần thêm theo bảng bands của policy này."""
        return calculate_range(utilization, group_size, self.bands)

    def to_dict(self) -> Dict:
        """Chuyển policy thành dict (dùng cho API)."""
        data = asdict(self)
        data['bands'] = [asdict(band) for band in self.bands]
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'ScalingPolicy':
        """
        Tạo policy từ dict, các key thiếu dùng giá trị mặc định.

        Args:
            data: Dict với các keys của ScalingPolicy; 'bands' là list các
                dict {'lower', 'upper', 'multiplier'} hoặc tuple 3 phần tử

        Returns:
            ScalingPolicy instance
        """
        params = {k: v for k, v in data.items() if k != 'bands' and v is not None}
        bands: Optional[List] = data.get('bands')
        if bands is not None:
            params['bands'] = tuple(
                ScalingBand(**band) if isinstance(band, dict) else ScalingBand(*band)
                for band in bands
            )
        return cls(**params)
