# -*- coding: utf-8 -*-
"""
Compute API 读取模块

功能：
- 获取项目内所有实例（自动遍历分页）
- 获取计算配额（cores / instances / RAM）
"""

from typing import List

from api.openstack.base import OpenStackReader, QUERY_ERRORS
from api.openstack.models import (
    ComputeLimits, Instance, compute_limits_from_sdk, instance_from_server
)
from provider.openstack.errors import ResourceQueryError


class ComputeReader(OpenStackReader):
    """
    Compute API 读取器

    功能：
    - 调用 servers 列表接口获取实例
    - 调用 limits 接口获取计算配额
    """

    def list_instances(self) -> List[Instance]:
        """
        获取当前项目的所有实例

        Returns:
            实例列表（所有分页合并）

        Raises:
            ResourceQueryError: 查询失败
            DataShapeError: 实例缺少 flavor 标识等字段
        """
        return self._list_all(
            'instances',
            lambda: self.connection.compute.servers(details=True, all_projects=False),
            instance_from_server
        )

    def get_compute_limits(self) -> ComputeLimits:
        """
        获取计算配额

        Raises:
            ResourceQueryError: 查询失败
            DataShapeError: 配额字段缺失
        """
        self.check_cancelled()
        self.logger.debug("正在获取 compute limits")
        try:
            limits = self.connection.compute.get_limits()
        except QUERY_ERRORS as e:
            self.logger.error(f"获取 compute limits 失败: {e}")
            raise ResourceQueryError(f"获取 compute limits 失败: {e}") from e

        return compute_limits_from_sdk(limits)
