"""
Infrastructure Module
=====================
Các collaborator mà controller sử dụng: provisioning backend và instance
lifecycle bookkeeping.

Gồm:
    - ProvisioningBackend: Interface controller dùng (request/destroy/query)
    - InstancePool: Backend in-memory đơn giản, ghi lại các requests và chỉ
      cập nhật groups khi gọi fulfil() (fire-and-forget semantics)
    - VirtualInfrastructure: Backend mô phỏng có boot delay, work queue và
      utilization sampling theo trailing window

Usage:
    >>> infra = VirtualInfrastructure(SimulationConfig(boot_delay_ticks=2))
    >>> infra.submit_work('render', 3.0)
    >>> controller = AutoscalingController(infra, ScalingPolicy())
    >>> controller.tick(0)
    >>> infra.advance()
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

import numpy as np


logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Instance:
    """
    Một compute instance đã được provision.

    Attributes:
        instance_id: Identifier ổn định, dùng làm key cho idle-hit counters
        kind: Workload kind của instance
        busy: Có work đang xử lý hoặc đang chờ
        hourly_utilization: Trailing utilization trong [0, 1]
    """
    instance_id: str
    kind: str
    busy: bool = False
    hourly_utilization: float = 0.0


class ProvisioningBackend(Protocol):
    """Interface của provisioning/lifecycle collaborator mà controller sử dụng."""

    def request_instance(self, kind: str) -> None:
        ...

    def destroy_instance(self, instance: Instance) -> None:
        ...

    def is_idle(self, instance: Instance) -> bool:
        ...

    def trailing_utilization(self, instance: Instance) -> float:
        ...

    def groups_by_kind(self) -> Mapping[str, Sequence[Instance]]:
        ...

    def retire_kind(self, kind: str) -> None:
        ...


class InstancePool:
    """
    Backend in-memory giữ groups theo kind.

    Requests chỉ được ghi lại; groups thay đổi khi gọi fulfil(). Dùng cho
    dry-run evaluation và testing.

    Attributes:
        requested: Các kinds đã được request instance mới (chưa fulfil)
        destroyed: Các instances đã được request destroy (chưa fulfil)
        retired: Các kinds đã bị controller bỏ tracking
    """

    def __init__(self, groups: Optional[Mapping[str, Iterable[Instance]]] = None):
        self._groups: Dict[str, List[Instance]] = {}
        self._sequence = 0
        self.requested: List[str] = []
        self.destroyed: List[Instance] = []
        self.retired: List[str] = []

        for kind, instances in (groups or {}).items():
            self._groups[kind] = list(instances)

    def _next_id(self, kind: str) -> str:
        self._sequence += 1
        return f"{kind}-{self._sequence}"

    def register_kind(self, kind: str) -> None:
        """Bắt đầu tracking một kind với group rỗng."""
        if kind not in self._groups:
            logger.debug("Registered kind %s", kind)
            self._groups[kind] = []

    def add_instance(
        self,
        kind: str,
        busy: bool = False,
        utilization: float = 0.0,
        instance_id: Optional[str] = None
    ) -> Instance:
        """Thêm một instance đang chạy vào group của kind."""
        self.register_kind(kind)
        instance = Instance(
            instance_id=instance_id or self._next_id(kind),
            kind=kind,
            busy=busy,
            hourly_utilization=utilization
        )
        self._groups[kind].append(instance)
        return instance

    def get_instance(self, instance_id: str) -> Instance:
        """Tìm instance theo id, raise KeyError nếu không tồn tại."""
        for group in self._groups.values():
            for instance in group:
                if instance.instance_id == instance_id:
                    return instance
        raise KeyError(f"Unknown instance: {instance_id}")

    def request_instance(self, kind: str) -> None:
        self.requested.append(kind)

    def destroy_instance(self, instance: Instance) -> None:
        self.destroyed.append(instance)

    def is_idle(self, instance: Instance) -> bool:
        return not instance.busy

    def trailing_utilization(self, instance: Instance) -> float:
        return instance.hourly_utilization

    def groups_by_kind(self) -> Dict[str, Tuple[Instance, ...]]:
        return {kind: tuple(group) for kind, group in self._groups.items()}

    def retire_kind(self, kind: str) -> None:
        if self._groups.pop(kind, None) is not None:
            self.retired.append(kind)

    def fulfil(self) -> Tuple[int, int]:
        """
        Áp dụng các requests đang chờ lên groups.

        Instances mới khởi động ở trạng thái idle với utilization 0. Requests
        cho kind đã bị retire bị bỏ qua.

        Returns:
            Tuple (số instances đã tạo, số instances đã destroy)
        """
        removed = 0
        for instance in self.destroyed:
            group = self._groups.get(instance.kind)
            if group is not None and instance in group:
                group.remove(instance)
                removed += 1

        created = 0
        for kind in self.requested:
            if kind in self._groups:
                self.add_instance(kind)
                created += 1

        self.requested = []
        self.destroyed = []
        return created, removed


@dataclass
class SimulationConfig:
    """
    Cấu hình cho VirtualInfrastructure.

    Attributes:
        boot_delay_ticks: Số ticks instance ở trạng thái boot; instance chạy từ
            lần advance() thứ boot_delay_ticks + 1 sau khi request
        utilization_window: Số samples dùng để tính trailing utilization
            (vd: 30 ticks x 2 phút = 1 giờ)
        instance_capacity: Số work units một instance xử lý được mỗi tick
    """
    boot_delay_ticks: int = 1
    utilization_window: int = 30
    instance_capacity: float = 1.0

    def __post_init__(self):
        if self.boot_delay_ticks < 0:
            raise ValueError("boot_delay_ticks phải >= 0")
        if self.utilization_window < 1:
            raise ValueError("utilization_window phải >= 1")
        if self.instance_capacity <= 0:
            raise ValueError("instance_capacity phải > 0")


@dataclass
class _WorkState:
    """Bookkeeping nội bộ của một instance trong VirtualInfrastructure."""
    boots_at: int
    queued: float = 0.0
    in_flight: float = 0.0
    samples: Deque[float] = field(default_factory=deque)


class VirtualInfrastructure(InstancePool):
    """
    Backend mô phỏng: instances boot sau một delay, xử lý work theo capacity,
    và sample utilization mỗi tick.

    Instance được request vào group ngay lập tức ở trạng thái booting: chưa có
    samples và chưa xử lý work, nhưng vẫn nhận phần backlog vào queue. Controller
    vì vậy thấy cả instances đang boot khi tính pool floor và growth.

    Mỗi lần advance():
        1. Áp dụng destroy requests (work còn trong queue quay lại backlog)
        2. Chia backlog đều cho mọi instance trong group, kể cả đang boot
        3. Instances đã boot xử lý tối đa instance_capacity work units
        4. Cập nhật busy và trailing utilization

    Attributes:
        config: SimulationConfig
        now: Tick hiện tại của infrastructure
    """

    def __init__(self, config: Optional[SimulationConfig] = None):
        super().__init__()
        self.config = config or SimulationConfig()
        self.now = 0
        self._work: Dict[str, _WorkState] = {}
        self._backlog: Dict[str, float] = {}

    def submit_work(self, kind: str, units: float) -> None:
        """
        Đưa work vào backlog của một kind. Kind chưa có sẽ được register.

        Args:
            kind: Workload kind
            units: Số work units (>= 0)
        """
        if units < 0:
            raise ValueError(f"Work units phải >= 0, nhận {units}")
        self.register_kind(kind)
        self._backlog[kind] = self._backlog.get(kind, 0.0) + units

    def backlog(self, kind: str) -> float:
        """Work chưa được giao cho instance nào."""
        return self._backlog.get(kind, 0.0)

    def is_booting(self, instance: Instance) -> bool:
        """Instance đã nằm trong group nhưng chưa xử lý work lần nào."""
        return self._work[instance.instance_id].boots_at >= self.now

    def pending_boots(self, kind: str) -> int:
        """Số instances trong group của kind đang boot."""
        return sum(1 for i in self._groups.get(kind, ()) if self.is_booting(i))

    def add_instance(
        self,
        kind: str,
        busy: bool = False,
        utilization: float = 0.0,
        instance_id: Optional[str] = None
    ) -> Instance:
        instance = super().add_instance(kind, busy, utilization, instance_id)
        self._work[instance.instance_id] = _WorkState(boots_at=self.now - 1)
        return instance

    def request_instance(self, kind: str) -> None:
        if kind not in self._groups:
            logger.debug("Dropped request for untracked kind %s", kind)
            return
        instance = self.add_instance(kind)
        self._work[instance.instance_id].boots_at = self.now + self.config.boot_delay_ticks
        logger.debug("Instance %s booting", instance.instance_id)

    def destroy_instance(self, instance: Instance) -> None:
        if instance.instance_id not in self._work:
            raise KeyError(f"Unknown instance: {instance.instance_id}")
        super().destroy_instance(instance)

    def is_idle(self, instance: Instance) -> bool:
        state = self._work[instance.instance_id]
        return state.queued <= 0 and state.in_flight <= 0

    def trailing_utilization(self, instance: Instance) -> float:
        samples = self._work[instance.instance_id].samples
        if not samples:
            return 0.0
        return float(np.mean(samples))

    def retire_kind(self, kind: str) -> None:
        for instance in self._groups.get(kind, ()):
            self._work.pop(instance.instance_id, None)
        super().retire_kind(kind)
        self._backlog.pop(kind, None)

    def fulfil(self) -> Tuple[int, int]:
        """
        Tương đương một lần advance(), trả về theo format của InstancePool.

        Returns:
            Tuple (số instances boot xong, số instances đã destroy)
        """
        result = self.advance()
        return result['created'], result['destroyed']

    def _apply_destroys(self) -> int:
        removed = 0
        for instance in self.destroyed:
            state = self._work.pop(instance.instance_id, None)
            group = self._groups.get(instance.kind)
            if group is not None and instance in group:
                group.remove(instance)
                removed += 1
            if state is not None and instance.kind in self._groups:
                if state.queued > 0:
                    self._backlog[instance.kind] = self._backlog.get(instance.kind, 0.0) + state.queued
        self.destroyed = []
        return removed

    def _process_work(self) -> int:
        capacity = self.config.instance_capacity
        window = self.config.utilization_window
        booted = 0

        for kind, group in self._groups.items():
            backlog = self._backlog.get(kind, 0.0)
            if group and backlog > 0:
                share = backlog / len(group)
                for instance in group:
                    self._work[instance.instance_id].queued += share
                self._backlog[kind] = 0.0

            for instance in group:
                state = self._work[instance.instance_id]
                if state.boots_at > self.now:
                    instance.busy = not self.is_idle(instance)
                    continue
                if state.boots_at == self.now:
                    logger.debug("Instance %s booted", instance.instance_id)
                    booted += 1

                processed = min(state.queued, capacity)
                state.queued -= processed
                state.in_flight = processed
                state.samples.append(processed / capacity)
                while len(state.samples) > window:
                    state.samples.popleft()

                instance.busy = not self.is_idle(instance)
                instance.hourly_utilization = self.trailing_utilization(instance)

        return booted

    def advance(self) -> Dict[str, int]:
        """
        Chạy một tick của infrastructure (giữa hai lần controller tick).

        Returns:
            Dict với 'created' (instances boot xong) và 'destroyed'
        """
        removed = self._apply_destroys()
        created = self._process_work()
        self.now += 1
        return {'created': created, 'destroyed': removed}
