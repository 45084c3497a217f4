"""
FastAPI Application
===================
API endpoints cho poolscaler autoscaling controller.

Endpoints:
    - GET /health: Health check
    - GET /policy/default: Policy mặc định
    - POST /evaluate: Dry-run một tick reconciliation trên snapshot của groups
    - POST /simulate: Chạy simulation trên workload cho trước

Run:
    uvicorn api.main:app --reload --port 8000
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime
import logging
import pandas as pd
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.schemas import (
    PolicySchema,
    EvaluateRequest, EvaluateResponse, KindDecisionSchema,
    SimulationRequest, SimulationResponse, SimulationTick,
    HealthResponse
)
from poolscaler import __version__
from poolscaler.autoscaling import (
    AutoscalingController,
    InstancePool,
    PoolSimulator,
    ScalingPolicy,
    SimulationConfig
)
from poolscaler.autoscaling.infrastructure import Instance


logger = logging.getLogger(__name__)

# =============================================================================
# App Configuration
# =============================================================================

app = FastAPI(
    title="Poolscaler API",
    description="""
    API cho autoscaling controller theo workload kind.

    ## Features
    - **Evaluate**: Dry-run quyết định scaling cho một snapshot của pool
    - **Simulation**: Mô phỏng controller trên workload theo thời gian
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def build_policy(schema: PolicySchema) -> ScalingPolicy:
    """Chuyển PolicySchema thành ScalingPolicy, raise HTTP 400 nếu không hợp lệ."""
    try:
        return ScalingPolicy.from_dict(schema.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid policy: {e}")


# =============================================================================
# Health & Info Endpoints
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now()
    )


@app.get("/policy/default", response_model=PolicySchema, tags=["Policy"])
async def default_policy():
    """Policy mặc định của controller."""
    return PolicySchema(**ScalingPolicy().to_dict())


# =============================================================================
# Autoscaling Endpoints
# =============================================================================

@app.post("/evaluate", response_model=EvaluateResponse, tags=["Autoscaling"])
async def evaluate(request: EvaluateRequest):
    """
    Dry-run một tick reconciliation.

    Không có side effect: trả về quyết định cho từng kind dựa trên trạng thái
    instances và idle-hit counters được gửi lên.
    """
    policy = build_policy(request.policy)

    groups = {
        kind: [
            Instance(
                instance_id=snap.instance_id,
                kind=kind,
                busy=snap.busy,
                hourly_utilization=snap.utilization
            )
            for snap in snapshots
        ]
        for kind, snapshots in request.groups.items()
    }
    controller = AutoscalingController(InstancePool(groups), policy)
    controller.idle_hits = {
        snap.instance_id: snap.idle_hits
        for snapshots in request.groups.values()
        for snap in snapshots
        if snap.idle_hits > 0
    }

    decisions = controller.plan()
    return EvaluateResponse(
        decisions=[KindDecisionSchema(**d.to_dict()) for d in decisions],
        total_provision=sum(d.provision for d in decisions),
        total_destroy=sum(len(d.destroy) for d in decisions)
    )


@app.post("/simulate", response_model=SimulationResponse, tags=["Simulation"])
async def run_simulation(request: SimulationRequest):
    """Chạy simulation với workload và policy cho trước."""
    policy = build_policy(request.policy)

    lengths = {len(series) for series in request.workload.values()}
    if len(lengths) != 1:
        raise HTTPException(
            status_code=400,
            detail="Workload series phải khác rỗng và cùng độ dài"
        )

    try:
        sim_config = SimulationConfig(
            boot_delay_ticks=request.boot_delay_ticks,
            utilization_window=request.utilization_window,
            instance_capacity=request.instance_capacity
        )
        simulator = PoolSimulator(policy, sim_config)
        sim_df = simulator.simulate(pd.DataFrame(request.workload))
        metrics = simulator.calculate_metrics(sim_df)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Simulation error: {e}")

    logger.info("Simulated %d ticks", metrics['ticks'])
    return SimulationResponse(
        metrics={k: float(v) for k, v in metrics.items()},
        ticks=[
            SimulationTick(tick=int(tick), **row)
            for tick, row in zip(sim_df.index, sim_df.to_dict('records'))
        ]
    )


if __name__ == "__main__":
    import uvicorn
    from poolscaler.utils.logging import configure_logging

    configure_logging()
    uvicorn.run(app, host="0.0.0.0", port=8000)
