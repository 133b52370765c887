# -*- coding: utf-8 -*-
"""
采集结果数据结构

功能：
- 定义指标名称、说明和标签（与 Prometheus 输出保持一致）
- 定义单条指标观测值 MetricObservation
- 定义一次采集周期的快照 Snapshot 和状态
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


# 指标名称 -> (说明, 标签名列表)，顺序即输出顺序
METRIC_DEFINITIONS: Dict[str, Tuple[str, List[str]]] = {
    'openstack_collect_duration_seconds': (
        'The time it took to collect the metrics in seconds', []),
    # Compute metrics
    'openstack_max_total_cores': (
        'The limit of cores that can be assigned to instances in the project', []),
    'openstack_max_total_instances': (
        'The limit of total instances in the project', []),
    'openstack_max_total_ram_size': (
        'The limit of RAM that can be assigned to instances in the project', []),
    'openstack_per_flavor_instance_count': (
        'Number of instances per flavor', ['flavor']),
    'openstack_per_status_instance_count': (
        'Number of instances per status', ['status']),
    'openstack_total_cores_used': (
        'The current number of cores used', []),
    'openstack_total_instances_used': (
        'The current number of instances', []),
    'openstack_total_ram_used': (
        'The current number RAM used', []),
    # Volume metrics
    'openstack_container_bytes_used': (
        'The total of bytes stored in the container', ['container']),
    'openstack_max_total_volume_gigabytes': (
        'The limit of total volume size in the project', []),
    'openstack_max_total_volumes': (
        'The limit of total volumes in the project', []),
    'openstack_per_status_volume_count': (
        'Number of volumes per status', ['status']),
    'openstack_total_volume_gigabytes_used': (
        'The current total of gigabytes used in volumes', []),
    'openstack_total_volumes_used': (
        'The current number of volumes', []),
    # Exporter 自身指标
    'openstack_collect_success': (
        'Whether the last collection of the resource family succeeded (1) or failed (0)', ['resource']),
}


class CollectionState(Enum):
    """采集周期状态"""
    START = "start"
    AUTHENTICATED = "authenticated"
    COMPUTE_COLLECTED = "compute_collected"
    VOLUMES_COLLECTED = "volumes_collected"
    CONTAINERS_COLLECTED = "containers_collected"
    DONE = "done"
    FAILED = "failed"


class ResourceFamily(Enum):
    """资源族，每个资源族独立成功或失败"""
    COMPUTE_LIMITS = "compute_limits"
    INSTANCES = "instances"
    VOLUMES = "volumes"
    VOLUME_LIMITS = "volume_limits"
    CONTAINERS = "containers"


@dataclass(frozen=True)
class MetricObservation:
    """单条指标观测值"""
    name: str
    value: float
    labels: Dict[str, str] = field(default_factory=dict)
    kind: str = 'gauge'


@dataclass
class Snapshot:
    """一次采集周期的完整结果"""
    observations: List[MetricObservation] = field(default_factory=list)
    state: CollectionState = CollectionState.START
    duration: float = 0.0
    error: Optional[str] = None                                         # 认证失败原因
    family_errors: Dict[ResourceFamily, str] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        """认证失败，整个周期没有资源数据"""
        return self.state == CollectionState.FAILED

    def add(self, name: str, value: float, **labels: str):
        """追加一条观测值"""
        if name not in METRIC_DEFINITIONS:
            raise KeyError(f"未定义的指标: {name}")
        self.observations.append(MetricObservation(name=name, value=float(value), labels=labels))

    def by_name(self, name: str) -> List[MetricObservation]:
        """按名称查找观测值"""
        return [obs for obs in self.observations if obs.name == name]

    def value_of(self, name: str, **labels: str) -> Optional[float]:
        """返回匹配名称和标签的观测值，不存在时返回 None"""
        for obs in self.observations:
            if obs.name == name and obs.labels == labels:
                return obs.value
        return None
