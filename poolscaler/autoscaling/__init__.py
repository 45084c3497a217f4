"""
Autoscaling Module
==================
Controller autoscaling theo từng workload kind, chạy mỗi tick.

Classes:
- AutoscalingController: Controller chính xử lý reconciliation mỗi tick
- ScalingPolicy: Cấu hình pool floor, destroy threshold, idle grace period
- ScalingBand: Một dải utilization -> multiplier
- InstancePool: Backend in-memory ghi lại requests (dry-run, testing)
- VirtualInfrastructure: Backend mô phỏng cho simulation
- PoolSimulator: Simulator chạy controller trên workload DataFrame

Enums:
- ScalingRule: POOL_FLOOR, SOLE_SURVIVOR, RECLAMATION, GROWTH, NONE
"""

from .policy import (
    ScalingBand,
    ScalingPolicy,
    DEFAULT_BANDS,
    calculate_range
)
from .infrastructure import (
    Instance,
    InstancePool,
    ProvisioningBackend,
    SimulationConfig,
    VirtualInfrastructure
)
from .controller import (
    AutoscalingController,
    KindDecision,
    ScalingEvent,
    ScalingRule,
    TickReport
)
from .simulator import PoolSimulator

__all__ = [
    'ScalingBand',
    'ScalingPolicy',
    'DEFAULT_BANDS',
    'calculate_range',
    'Instance',
    'InstancePool',
    'ProvisioningBackend',
    'SimulationConfig',
    'VirtualInfrastructure',
    'AutoscalingController',
    'KindDecision',
    'ScalingEvent',
    'ScalingRule',
    'TickReport',
    'PoolSimulator'
]
