# -*- coding: utf-8 -*-
"""
Prometheus Collector 模块

功能：
- 按需执行 OpenStack 采集周期（SnapshotAssembler）
- 聚合资源数据为指标观测值
- 暴露 Prometheus 格式的指标
"""

from .collector import OpenStackCollector, build_metric_families, create_registry, get_metrics
from .observation import CollectionState, MetricObservation, ResourceFamily, Snapshot
from .snapshot import ReaderFactory, SnapshotAssembler
