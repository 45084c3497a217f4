"""
API Schemas
===========
Pydantic schemas cho FastAPI endpoints.
"""

from pydantic import BaseModel, Field
from typing import List, Optional, Dict
from datetime import datetime


# =============================================================================
# Policy Schemas
# =============================================================================

class BandSchema(BaseModel):
    """Một scaling band: utilization range -> multiplier."""
    lower: float = Field(..., ge=0, le=1, description="Cận dưới (inclusive)")
    upper: float = Field(..., ge=0, le=1, description="Cận trên (inclusive)")
    multiplier: float = Field(..., gt=1.0, description="Hệ số scale-out")


class PolicySchema(BaseModel):
    """Cấu hình autoscaling policy."""
    min_pool_size: int = Field(default=4, ge=0, description="Pool floor mỗi kind")
    destroy_threshold: float = Field(
        default=0.10,
        ge=0,
        le=1,
        description="Utilization dưới ngưỡng này thì instance idle bị destroy"
    )
    idle_hit_threshold: int = Field(
        default=30,
        ge=1,
        description="Số ticks idle trước khi destroy sole survivor"
    )
    bands: Optional[List[BandSchema]] = Field(
        default=None,
        description="Bảng scaling bands (mặc định: bảng chuẩn 4 bands)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "min_pool_size": 4,
                "destroy_threshold": 0.1,
                "idle_hit_threshold": 30,
                "bands": [
                    {"lower": 0.6, "upper": 0.69, "multiplier": 1.2},
                    {"lower": 0.7, "upper": 0.79, "multiplier": 1.4},
                    {"lower": 0.8, "upper": 0.89, "multiplier": 1.6},
                    {"lower": 0.9, "upper": 1.0, "multiplier": 1.8}
                ]
            }
        }


# =============================================================================
# Evaluate Schemas
# =============================================================================

class InstanceSnapshot(BaseModel):
    """Trạng thái một instance tại thời điểm evaluate."""
    instance_id: str = Field(..., min_length=1)
    busy: bool = Field(default=False, description="Có work đang xử lý hoặc đang chờ")
    utilization: float = Field(default=0.0, ge=0, le=1, description="Trailing utilization")
    idle_hits: int = Field(default=0, ge=0, description="Idle-hit counter hiện tại")


class EvaluateRequest(BaseModel):
    """Request schema cho dry-run evaluation."""
    policy: PolicySchema = Field(default_factory=PolicySchema)
    groups: Dict[str, List[InstanceSnapshot]] = Field(
        ...,
        description="Kind -> danh sách instances"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "groups": {
                    "render": [
                        {"instance_id": "render-1", "busy": True, "utilization": 0.95}
                    ]
                },
                "policy": {"min_pool_size": 1}
            }
        }


class KindDecisionSchema(BaseModel):
    """Quyết định cho một kind."""
    kind: str
    group_size: int
    rule: str
    provision: int
    destroy: List[str]
    retire: bool
    idle_hits: Optional[int] = None
    average_utilization: Optional[float] = None
    reason: str = ""


class EvaluateResponse(BaseModel):
    """Response schema cho dry-run evaluation."""
    decisions: List[KindDecisionSchema]
    total_provision: int
    total_destroy: int


# =============================================================================
# Simulation Schemas
# =============================================================================

class SimulationRequest(BaseModel):
    """Request schema cho simulation."""
    workload: Dict[str, List[float]] = Field(
        ...,
        description="Kind -> work units đến mỗi tick (các list phải cùng độ dài)"
    )
    policy: PolicySchema = Field(default_factory=PolicySchema)
    boot_delay_ticks: int = Field(default=1, ge=0, le=100)
    utilization_window: int = Field(default=30, ge=1, le=1440)
    instance_capacity: float = Field(default=1.0, gt=0)

    class Config:
        json_schema_extra = {
            "example": {
                "workload": {"render": [0.5, 1.0, 2.0, 4.0, 4.0, 0.0]},
                "policy": {"min_pool_size": 2, "idle_hit_threshold": 5},
                "boot_delay_ticks": 1
            }
        }


class SimulationTick(BaseModel):
    """Kết quả simulation cho một (tick, kind)."""
    tick: int
    kind: str
    instances: int
    pending: int
    requested: int
    destroyed: int
    rule: str
    utilization: float
    backlog: float
    tracked: bool


class SimulationResponse(BaseModel):
    """Response schema cho simulation."""
    metrics: Dict[str, float]
    ticks: List[SimulationTick]


# =============================================================================
# Health Schemas
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    timestamp: datetime
