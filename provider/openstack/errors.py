# -*- coding: utf-8 -*-
"""
采集错误类型

- AuthenticationError: 认证失败，整个采集周期终止
- ResourceQueryError: 单个资源族查询失败，只影响该资源族的指标
- DataShapeError: 云平台返回的数据结构不符合预期
"""


class ExporterError(Exception):
    """Exporter 错误基类"""


class AuthenticationError(ExporterError):
    """OpenStack 认证失败"""


class ResourceQueryError(ExporterError):
    """资源查询失败"""


class CollectionCancelled(ResourceQueryError):
    """采集周期已超时或被取消"""


class DataShapeError(ExporterError):
    """响应字段缺失或类型不匹配"""


class CollectionError(ExporterError):
    """采集无法进行（认证失败时由 Prometheus Collector 抛出）"""
