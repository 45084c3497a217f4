"""
Autoscaling Simulator
=====================
Module simulate autoscaling controller trên một workload theo thời gian.

Cho phép:
    - Test các scaling policies khác nhau
    - Quan sát pool floor, idle grace period và growth theo từng kind
    - So sánh policies trên cùng một workload

Workload là DataFrame: index là các tick (timestamp hoặc số), mỗi column là
một workload kind, giá trị là số work units đến trong tick đó.

Usage:
    >>> simulator = PoolSimulator(ScalingPolicy(min_pool_size=2))
    >>> results = simulator.simulate(workload_df)
    >>> metrics = simulator.calculate_metrics(results)
"""

import logging
import numpy as np
import pandas as pd
from typing import Dict, List, Optional

from .controller import AutoscalingController
from .infrastructure import SimulationConfig, VirtualInfrastructure
from .policy import ScalingPolicy


logger = logging.getLogger(__name__)


class PoolSimulator:
    """
    Simulator cho autoscaling controller.

    Mỗi tick:
        1. Work của tick được đưa vào backlog của từng kind
        2. VirtualInfrastructure advance (boot, destroy, xử lý work)
        3. Controller tick trên trạng thái mới

    Attributes:
        policy: ScalingPolicy
        sim_config: SimulationConfig

    Example:
        >>> sim = PoolSimulator(ScalingPolicy(), SimulationConfig(boot_delay_ticks=2))
        >>> results = sim.simulate(df)
        >>> print(sim.calculate_metrics(results)['max_instances'])
    """

    def __init__(
        self,
        policy: Optional[ScalingPolicy] = None,
        sim_config: Optional[SimulationConfig] = None
    ):
        """
        Khởi tạo simulator.

        Args:
            policy: Cấu hình policy
            sim_config: Cấu hình infrastructure mô phỏng
        """
        self.policy = policy or ScalingPolicy()
        self.sim_config = sim_config or SimulationConfig()

    @staticmethod
    def _validate_workload(workload: pd.DataFrame):
        if workload is None or len(workload) == 0:
            raise ValueError("Workload DataFrame rỗng")
        if len(workload.columns) == 0:
            raise ValueError("Workload phải có ít nhất một kind (column)")
        values = workload.to_numpy(dtype=float)
        if np.isnan(values).any():
            raise ValueError("Workload chứa giá trị NaN")
        if (values < 0).any():
            raise ValueError("Workload chứa giá trị âm")

    def simulate(self, workload: pd.DataFrame) -> pd.DataFrame:
        """
        Chạy simulation.

        Args:
            workload: DataFrame (index: ticks, columns: kinds, values: work units)

        Returns:
            DataFrame (index: timestamp) với một row cho mỗi (tick, kind):
                - kind
                - instances: Group size controller quan sát (gồm cả instances đang boot)
                - pending: Số instances trong group đang boot
                - requested, destroyed: Requests controller gửi trong tick
                - rule: Rule đã quyết định
                - utilization: Average trailing utilization của group
                - backlog: Work chưa được giao cho instance nào
                - tracked: Kind còn được track sau tick
        """
        self._validate_workload(workload)

        infra = VirtualInfrastructure(self.sim_config)
        controller = AutoscalingController(infra, self.policy)
        kinds = [str(c) for c in workload.columns]

        results = []
        for timestamp, row in workload.iterrows():
            for kind, units in zip(kinds, row.to_numpy(dtype=float)):
                if units > 0:
                    infra.submit_work(kind, float(units))

            infra.advance()
            groups = infra.groups_by_kind()
            report = controller.tick(timestamp)

            for kind in kinds:
                decision = report.decision_for(kind)
                group = groups.get(kind, ())
                utilization = (
                    float(np.mean([i.hourly_utilization for i in group])) if group else 0.0
                )
                results.append({
                    'timestamp': timestamp,
                    'kind': kind,
                    'instances': len(group),
                    'pending': infra.pending_boots(kind),
                    'requested': decision.provision if decision else 0,
                    'destroyed': len(decision.destroy) if decision else 0,
                    'rule': decision.rule.value if decision else 'untracked',
                    'utilization': utilization,
                    'backlog': infra.backlog(kind),
                    'tracked': kind in infra.groups_by_kind()
                })

        logger.debug("Simulated %d ticks for %d kinds", len(workload), len(kinds))
        return pd.DataFrame(results).set_index('timestamp')

    def calculate_metrics(self, simulation_df: pd.DataFrame) -> Dict:
        """
        Tính các metrics từ simulation.

        Args:
            simulation_df: DataFrame từ simulate()

        Returns:
            Dict với các metrics
        """
        per_tick = simulation_df.groupby(level=0, sort=False)['instances'].sum()
        busy_rows = simulation_df[simulation_df['instances'] > 0]

        return {
            'ticks': int(len(per_tick)),
            'kinds': int(simulation_df['kind'].nunique()),
            'avg_instances': float(per_tick.mean()),
            'max_instances': int(per_tick.max()),
            'total_requested': int(simulation_df['requested'].sum()),
            'total_destroyed': int(simulation_df['destroyed'].sum()),
            'growth_events': int((simulation_df['rule'] == 'growth').sum()),
            'reclamation_events': int((simulation_df['rule'] == 'reclamation').sum()),
            'avg_utilization': float(busy_rows['utilization'].mean()) if len(busy_rows) else 0.0,
            'backlog_periods': int((simulation_df['backlog'] > 0).sum()),
            'max_backlog': float(simulation_df['backlog'].max())
        }

    def compare_policies(
        self,
        workload: pd.DataFrame,
        policies: Dict[str, ScalingPolicy] = None
    ) -> pd.DataFrame:
        """
        So sánh nhiều policies trên cùng workload.

        Args:
            workload: Workload DataFrame
            policies: Dict {name: ScalingPolicy}

        Returns:
            DataFrame so sánh các policies
        """
        if policies is None:
            policies = {
                'Default': self.policy,
                'No Pool Floor': ScalingPolicy(min_pool_size=1),
                'Short Grace Period': ScalingPolicy(idle_hit_threshold=5),
                'Aggressive Reclamation': ScalingPolicy(destroy_threshold=0.3)
            }

        rows: List[Dict] = []
        for name, policy in policies.items():
            logger.info("Simulating policy: %s", name)
            sim = PoolSimulator(policy, self.sim_config)
            metrics = sim.calculate_metrics(sim.simulate(workload))
            metrics['policy'] = name
            rows.append(metrics)

        df = pd.DataFrame(rows)
        cols = ['policy'] + [c for c in df.columns if c != 'policy']
        return df[cols]


if __name__ == "__main__":
    from poolscaler.utils.logging import configure_logging

    configure_logging()

    # Demo: một kind với traffic tăng dần rồi tắt hẳn
    ticks = pd.RangeIndex(0, 120, name='tick')
    demand = np.concatenate([
        np.linspace(0.5, 8.0, 60),
        np.zeros(60)
    ])
    workload = pd.DataFrame({'render': demand}, index=ticks)

    simulator = PoolSimulator(ScalingPolicy(min_pool_size=2, idle_hit_threshold=10))
    results = simulator.simulate(workload)

    print("\nSimulation Metrics:")
    for k, v in simulator.calculate_metrics(results).items():
        if isinstance(v, float):
            print(f"  {k}: {v:.2f}")
        else:
            print(f"  {k}: {v}")

    print("\nPolicy comparison:")
    print(simulator.compare_policies(workload).to_string(index=False))
