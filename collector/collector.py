# -*- coding: utf-8 -*-
"""
Prometheus Collector 实现模块

功能：
- 每次抓取时调用 SnapshotAssembler 执行一次采集
- 将快照转换为 Prometheus 指标族
- 提供指标数据供 /metrics 端点使用
"""

import logging
from typing import Dict, Iterator, List

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

from collector.observation import METRIC_DEFINITIONS, Snapshot
from collector.snapshot import SnapshotAssembler
from provider.openstack.errors import CollectionError

logger = logging.getLogger(__name__)


def build_metric_families(snapshot: Snapshot) -> List[GaugeMetricFamily]:
    """
    将快照转换为指标族

    只输出快照中出现过的指标，顺序与 METRIC_DEFINITIONS 一致。
    """
    grouped: Dict[str, GaugeMetricFamily] = {}
    for observation in snapshot.observations:
        family = grouped.get(observation.name)
        if family is None:
            documentation, label_names = METRIC_DEFINITIONS[observation.name]
            family = GaugeMetricFamily(observation.name, documentation, labels=label_names)
            grouped[observation.name] = family
        _, label_names = METRIC_DEFINITIONS[observation.name]
        family.add_metric([observation.labels[label] for label in label_names], observation.value)

    return [grouped[name] for name in METRIC_DEFINITIONS if name in grouped]


class OpenStackCollector(Collector):
    """
    OpenStack 指标收集器

    注册到 CollectorRegistry 后，每次 generate_latest 都会触发一次完整采集。
    """

    def __init__(self, assembler: SnapshotAssembler):
        """
        Args:
            assembler: 快照组装器
        """
        self.assembler = assembler

    def describe(self):
        # 返回空列表，避免注册时触发一次采集
        return []

    def collect(self) -> Iterator[GaugeMetricFamily]:
        """
        Raises:
            CollectionError: 认证失败，无法采集
        """
        snapshot = self.assembler.collect()
        if snapshot.failed:
            raise CollectionError(f"OpenStack 采集失败: {snapshot.error}")
        yield from build_metric_families(snapshot)


def create_registry(assembler: SnapshotAssembler) -> CollectorRegistry:
    """
    创建只包含 OpenStack 指标的注册表

    不注册默认的 process / platform / gc 指标。
    """
    registry = CollectorRegistry(auto_describe=False)
    registry.register(OpenStackCollector(assembler))
    return registry


def get_metrics(registry: CollectorRegistry) -> bytes:
    """
    获取 Prometheus 格式的指标数据

    Raises:
        CollectionError: 认证失败
    """
    return generate_latest(registry)
