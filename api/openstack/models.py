# -*- coding: utf-8 -*-
"""
OpenStack 资源数据结构与适配函数

功能：
- 定义采集使用的最小资源结构（Instance / Volume / Container / Limits）
- 将 SDK 资源对象或原始字典直接映射为本地结构
- 字段缺失或类型不符时抛出 DataShapeError
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

from provider.openstack.errors import DataShapeError

_MISSING = object()


@dataclass(frozen=True)
class Instance:
    """计算实例"""
    id: str
    flavor: str
    status: str


@dataclass(frozen=True)
class Volume:
    """块存储卷"""
    id: str
    status: str


@dataclass(frozen=True)
class Container:
    """对象存储容器（OBS 中称为桶）"""
    name: str
    bytes: int


@dataclass(frozen=True)
class ComputeLimits:
    """计算配额"""
    max_total_cores: int
    max_total_instances: int
    max_total_ram_size: int
    total_cores_used: int
    total_instances_used: int
    total_ram_used: int


@dataclass(frozen=True)
class VolumeLimits:
    """块存储配额（OTC 下只有卷数量两项）"""
    max_total_volumes: float
    total_volumes_used: float
    max_total_volume_gigabytes: Optional[float] = None
    total_gigabytes_used: Optional[float] = None


def _field(obj: Any, name: str, default: Any = _MISSING) -> Any:
    """同时支持字典和属性两种访问方式（SDK 资源对象两者皆可）"""
    value = obj.get(name) if isinstance(obj, Mapping) else None
    if value is None:
        # SDK 资源对象的 dict 视图不一定包含全部属性
        value = getattr(obj, name, None)
    if value is None:
        if default is _MISSING:
            raise DataShapeError(f"缺少字段: {name}")
        return default
    return value


def _str_field(obj: Any, name: str) -> str:
    value = _field(obj, name)
    if not isinstance(value, str):
        raise DataShapeError(f"字段 {name} 必须是字符串: {value!r}")
    return value


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise DataShapeError(f"字段 {name} 必须是整数: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DataShapeError(f"字段 {name} 必须是整数: {value!r}")


def _int_field(obj: Any, name: str) -> int:
    return _as_int(name, _field(obj, name))


def instance_from_server(server: Any) -> Instance:
    """
    将 compute server 映射为 Instance

    flavor 在线上是一个字典，只使用其中的标识：
    - 旧微版本返回 flavor.id
    - 2.47 及以上微版本去掉了 id，改为 original_name

    Raises:
        DataShapeError: 缺少 id / status 或 flavor 标识
    """
    flavor = _field(server, 'flavor')
    flavor_id = _field(flavor, 'id', None) or _field(flavor, 'original_name', None)
    if not isinstance(flavor_id, str) or not flavor_id:
        raise DataShapeError(f"实例 {_field(server, 'id', '?')} 的 flavor 缺少标识: {flavor!r}")

    return Instance(
        id=_str_field(server, 'id'),
        flavor=flavor_id,
        status=_str_field(server, 'status')
    )


def volume_from_resource(volume: Any) -> Volume:
    """将 block-storage volume 映射为 Volume"""
    return Volume(
        id=_str_field(volume, 'id'),
        status=_str_field(volume, 'status')
    )


def container_from_resource(container: Any) -> Container:
    """
    将 Swift 容器列表项映射为 Container

    列表接口返回 bytes 字段，HEAD 接口对应 bytes_used。
    """
    size = _field(container, 'bytes', None)
    if size is None:
        size = _field(container, 'bytes_used')
    size = _as_int('bytes', size)
    if size < 0:
        raise DataShapeError(f"容器 {_field(container, 'name', '?')} 字节数为负: {size}")

    return Container(name=_str_field(container, 'name'), bytes=size)


def compute_limits_from_sdk(limits: Any) -> ComputeLimits:
    """将 SDK 的 compute Limits 映射为 ComputeLimits"""
    absolute = _field(limits, 'absolute')
    return ComputeLimits(
        max_total_cores=_int_field(absolute, 'total_cores'),
        max_total_instances=_int_field(absolute, 'instances'),
        max_total_ram_size=_int_field(absolute, 'total_ram'),
        total_cores_used=_int_field(absolute, 'total_cores_used'),
        total_instances_used=_int_field(absolute, 'instances_used'),
        total_ram_used=_int_field(absolute, 'total_ram_used')
    )


def volume_limits_from_absolute(absolute: Any) -> VolumeLimits:
    """将 GET /limits 返回的 absolute 字典映射为 VolumeLimits"""
    return VolumeLimits(
        max_total_volumes=_int_field(absolute, 'maxTotalVolumes'),
        total_volumes_used=_int_field(absolute, 'totalVolumesUsed'),
        max_total_volume_gigabytes=_int_field(absolute, 'maxTotalVolumeGigabytes'),
        total_gigabytes_used=_int_field(absolute, 'totalGigabytesUsed')
    )
