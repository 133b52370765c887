# -*- coding: utf-8 -*-
"""
资源聚合函数

纯函数，不做 I/O：按 flavor / status 对资源列表计数。
"""

from collections import Counter
from typing import Dict, Iterable

from api.openstack.models import Instance


def count_by_flavor(instances: Iterable[Instance]) -> Dict[str, int]:
    """按 flavor 标识统计实例数量"""
    return dict(Counter(instance.flavor for instance in instances))


def count_by_status(items: Iterable) -> Dict[str, int]:
    """
    按 status 统计数量

    Args:
        items: 带 status 字段的资源（Instance 或 Volume）

    Returns:
        {status: count} 字典，key 区分大小写
    """
    return dict(Counter(item.status for item in items))
