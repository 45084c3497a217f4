"""
Autoscaling Controller Module
=============================
Controller chạy mỗi tick, quyết định provision, destroy hoặc giữ nguyên pool
cho từng workload kind.

Rules (theo thứ tự, short-circuit cho mỗi kind):
    1. Pool floor: group nhỏ hơn min_pool_size -> request đúng 1 instance
    2. Sole survivor: group chỉ còn 1 instance
        - idle: tăng idle-hit counter, đạt threshold thì destroy và retire kind
        - busy: xóa counter, tiếp tục xét growth
    3. Reclamation: group > 1, destroy mọi instance idle có utilization dưới
       destroy_threshold; nếu có destroy thì bỏ qua growth tick này
    4. Growth: average utilization -> bảng scaling bands -> số instances thêm

Mỗi tick gồm hai pha:
    - Plan: duyệt read-only trên snapshot của groups, tạo KindDecision cho mỗi kind
    - Apply: cập nhật idle-hit counters và gửi requests tới backend

Requests là fire-and-forget: membership chỉ thay đổi khi backend cập nhật groups.

Usage:
    >>> controller = AutoscalingController(backend, ScalingPolicy())
    >>> report = controller.tick(current_time)
    >>> print(report.provisioned, report.destroyed)
"""

import logging
import numpy as np
import pandas as pd
from typing import Any, Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field
from enum import Enum

from .infrastructure import Instance, ProvisioningBackend
from .policy import ScalingPolicy


logger = logging.getLogger(__name__)


class ScalingRule(Enum):
    """Rule đã quyết định cho một kind trong tick."""
    NONE = "none"
    POOL_FLOOR = "pool_floor"
    SOLE_SURVIVOR = "sole_survivor"
    RECLAMATION = "reclamation"
    GROWTH = "growth"


@dataclass
class KindDecision:
    """
    Quyết định cho một kind trong một tick.

    Attributes:
        kind: Workload kind
        group_size: Số instances lúc bắt đầu xử lý kind
        rule: Rule đã quyết định
        provision: Số instances cần request
        destroy: Các instances cần destroy
        retire: Bỏ tracking kind (group sẽ rỗng)
        idle_hits: Giá trị idle-hit counter mới của sole survivor (None = xóa)
        average_utilization: Average utilization dùng cho growth (nếu có)
        reason: Mô tả ngắn
    """
    kind: str
    group_size: int
    rule: ScalingRule = ScalingRule.NONE
    provision: int = 0
    destroy: List[Instance] = field(default_factory=list)
    retire: bool = False
    idle_hits: Optional[int] = None
    average_utilization: Optional[float] = None
    reason: str = ""

    def to_dict(self) -> Dict:
        return {
            'kind': self.kind,
            'group_size': self.group_size,
            'rule': self.rule.value,
            'provision': self.provision,
            'destroy': [i.instance_id for i in self.destroy],
            'retire': self.retire,
            'idle_hits': self.idle_hits,
            'average_utilization': self.average_utilization,
            'reason': self.reason
        }


@dataclass
class ScalingEvent:
    """Record của một action đã gửi tới backend."""
    timestamp: Any
    kind: str
    action: str  # 'provision', 'destroy' hoặc 'retire'
    rule: str
    instance_id: Optional[str]
    reason: str
    utilization: Optional[float]


@dataclass
class TickReport:
    """Kết quả của một tick."""
    timestamp: Any
    decisions: List[KindDecision] = field(default_factory=list)

    @property
    def provisioned(self) -> int:
        return sum(d.provision for d in self.decisions)

    @property
    def destroyed(self) -> int:
        return sum(len(d.destroy) for d in self.decisions)

    @property
    def retired(self) -> List[str]:
        return [d.kind for d in self.decisions if d.retire]

    def decision_for(self, kind: str) -> Optional[KindDecision]:
        for decision in self.decisions:
            if decision.kind == kind:
                return decision
        return None


class AutoscalingController:
    """
    Controller autoscaling theo từng workload kind.

    Controller không tự tạo hay hủy instances; nó đọc trạng thái idle/busy và
    utilization từ backend rồi gửi requests qua backend.

    Attributes:
        backend: ProvisioningBackend
        policy: ScalingPolicy
        idle_hits: instance_id -> số ticks idle liên tiếp khi là sole survivor
        scaling_history: Lịch sử các actions đã gửi
        tick_count: Số ticks đã chạy

    Example:
        >>> infra = VirtualInfrastructure()
        >>> controller = AutoscalingController(infra, ScalingPolicy(min_pool_size=2))
        >>> for t in range(100):
        ...     controller.tick(t)
        ...     infra.advance()
    """

    def __init__(
        self,
        backend: ProvisioningBackend,
        policy: Optional[ScalingPolicy] = None
    ):
        """
        Khởi tạo controller.

        Args:
            backend: Provisioning/lifecycle collaborator
            policy: Cấu hình policy (mặc định: ScalingPolicy())
        """
        self.backend = backend
        self.policy = policy or ScalingPolicy()

        # State
        self.idle_hits: Dict[str, int] = {}
        self.tick_count = 0
        self.last_tick_time = None

        # History
        self.scaling_history: List[ScalingEvent] = []

    def reset(self):
        """Reset controller về trạng thái ban đầu."""
        self.idle_hits = {}
        self.tick_count = 0
        self.last_tick_time = None
        self.scaling_history = []

    def calculate_range(self, average_utilization: float, group_size: int) -> int:
        """Số instances cần thêm cho group theo bảng bands của policy."""
        return self.policy.calculate_range(average_utilization, group_size)

    def _snapshot(
        self,
        instances: Sequence[Instance]
    ) -> List[Tuple[Instance, bool, float]]:
        return [
            (i, self.backend.is_idle(i), self.backend.trailing_utilization(i))
            for i in instances
        ]

    def _decide_growth(
        self,
        decision: KindDecision,
        snapshot: List[Tuple[Instance, bool, float]]
    ) -> KindDecision:
        average = float(np.mean([util for _, _, util in snapshot]))
        required = self.calculate_range(average, len(snapshot))

        decision.average_utilization = average
        if required > 0:
            decision.rule = ScalingRule.GROWTH
            decision.provision = required
            decision.reason = (
                f"Average utilization {average:.1%} across {len(snapshot)} instances"
            )
        return decision

    def evaluate_kind(self, kind: str, instances: Sequence[Instance]) -> KindDecision:
        """
        Đánh giá rules cho một kind, không gây side effect.

        Args:
            kind: Workload kind
            instances: Snapshot group của kind

        Returns:
            KindDecision
        """
        snapshot = self._snapshot(instances)
        size = len(snapshot)
        decision = KindDecision(kind=kind, group_size=size)

        # Pool floor
        if size < self.policy.min_pool_size:
            decision.rule = ScalingRule.POOL_FLOOR
            decision.provision = 1
            decision.reason = f"Group size {size} below pool floor {self.policy.min_pool_size}"
            return decision

        if size == 0:
            decision.retire = True
            decision.reason = "Empty group"
            return decision

        # Sole survivor
        if size == 1:
            instance, idle, _ = snapshot[0]
            if idle:
                hits = self.idle_hits.get(instance.instance_id, 0) + 1
                decision.rule = ScalingRule.SOLE_SURVIVOR
                if hits < self.policy.idle_hit_threshold:
                    decision.idle_hits = hits
                    decision.reason = (
                        f"Sole instance idle for {hits}/{self.policy.idle_hit_threshold} ticks"
                    )
                else:
                    decision.destroy = [instance]
                    decision.retire = True
                    decision.reason = f"Sole instance idle for {hits} ticks"
                return decision
            return self._decide_growth(decision, snapshot)

        # Reclamation
        threshold = self.policy.destroy_threshold
        reclaim = [i for i, idle, util in snapshot if idle and util < threshold]
        if reclaim:
            decision.rule = ScalingRule.RECLAMATION
            decision.destroy = reclaim
            decision.retire = len(reclaim) == size
            decision.reason = f"Idle with utilization below {threshold:.0%}"
            return decision

        return self._decide_growth(decision, snapshot)

    def plan(self) -> List[KindDecision]:
        """Tạo decisions cho mọi kind đang được track (read-only)."""
        groups = self.backend.groups_by_kind()
        return [self.evaluate_kind(kind, group) for kind, group in groups.items()]

    def _update_idle_hits(self, groups: Dict[str, Sequence[Instance]], decisions: List[KindDecision]):
        hits: Dict[str, int] = {}
        for decision in decisions:
            if decision.idle_hits is not None:
                (instance,) = groups[decision.kind]
                hits[instance.instance_id] = decision.idle_hits
        self.idle_hits = hits

    def _record(self, timestamp, decision: KindDecision, action: str, instance_id: Optional[str] = None):
        self.scaling_history.append(ScalingEvent(
            timestamp=timestamp,
            kind=decision.kind,
            action=action,
            rule=decision.rule.value,
            instance_id=instance_id,
            reason=decision.reason,
            utilization=decision.average_utilization
        ))

    def _apply(self, timestamp, decision: KindDecision):
        for instance in decision.destroy:
            logger.info("Destroying %s (%s): %s", instance.instance_id, decision.kind, decision.reason)
            self.backend.destroy_instance(instance)
            self._record(timestamp, decision, 'destroy', instance.instance_id)

        if decision.provision > 0:
            logger.info(
                "Requesting %d instance(s) of %s: %s",
                decision.provision, decision.kind, decision.reason
            )
        for _ in range(decision.provision):
            self.backend.request_instance(decision.kind)
            self._record(timestamp, decision, 'provision')

        if decision.retire:
            logger.info("Retiring kind %s", decision.kind)
            self.backend.retire_kind(decision.kind)
            self._record(timestamp, decision, 'retire')

    def tick(self, current_time: Any = None) -> TickReport:
        """
        Chạy reconciliation cho mọi kind.

        Args:
            current_time: Thời điểm hiện tại (tick number hoặc pd.Timestamp)

        Returns:
            TickReport với decisions của tick này
        """
        timestamp = current_time if current_time is not None else self.tick_count
        groups = dict(self.backend.groups_by_kind())
        decisions = [self.evaluate_kind(kind, group) for kind, group in groups.items()]

        # Counters chỉ giữ cho sole survivors còn idle trong tick này
        self._update_idle_hits(groups, decisions)

        for decision in decisions:
            logger.debug(
                "Kind %s: size=%d rule=%s provision=%d destroy=%d",
                decision.kind, decision.group_size, decision.rule.value,
                decision.provision, len(decision.destroy)
            )
            self._apply(timestamp, decision)

        self.tick_count += 1
        self.last_tick_time = timestamp
        return TickReport(timestamp=timestamp, decisions=decisions)

    def get_scaling_history(self) -> pd.DataFrame:
        """Lấy scaling history dưới dạng DataFrame."""
        if not self.scaling_history:
            return pd.DataFrame()

        return pd.DataFrame([
            {
                'timestamp': e.timestamp,
                'kind': e.kind,
                'action': e.action,
                'rule': e.rule,
                'instance_id': e.instance_id,
                'reason': e.reason,
                'utilization': e.utilization
            }
            for e in self.scaling_history
        ])

    def get_stats(self) -> Dict:
        """Lấy thống kê về scaling."""
        history_df = self.get_scaling_history()

        if len(history_df) == 0:
            return {
                'ticks': self.tick_count,
                'total_events': 0,
                'provision_count': 0,
                'destroy_count': 0,
                'retire_count': 0,
                'tracked_idle_instances': len(self.idle_hits)
            }

        return {
            'ticks': self.tick_count,
            'total_events': len(history_df),
            'provision_count': int((history_df['action'] == 'provision').sum()),
            'destroy_count': int((history_df['action'] == 'destroy').sum()),
            'retire_count': int((history_df['action'] == 'retire').sum()),
            'tracked_idle_instances': len(self.idle_hits)
        }
