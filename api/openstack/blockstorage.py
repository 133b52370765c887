# -*- coding: utf-8 -*-
"""
Block Storage API 读取模块

功能：
- 获取项目内所有卷（始终使用 v3 接口）
- 获取块存储配额（按 OS_BLOCKSTORAGE_V 选择 v2 或 v3 的 limits 接口）
"""

from typing import List

from keystoneauth1 import adapter as ks_adapter

from api.openstack.base import OpenStackReader, QUERY_ERRORS
from api.openstack.models import Volume, VolumeLimits, volume_from_resource, volume_limits_from_absolute
from provider.openstack.errors import DataShapeError, ResourceQueryError


class BlockStorageReader(OpenStackReader):
    """
    Block Storage API 读取器

    功能：
    - 调用 volumes 列表接口获取卷
    - 调用 limits 接口获取块存储配额
    """

    def list_volumes(self) -> List[Volume]:
        """
        获取当前项目的所有卷

        Returns:
            卷列表（所有分页合并）

        Raises:
            ResourceQueryError: 查询失败
            DataShapeError: 卷字段缺失
        """
        return self._list_all(
            'volumes',
            lambda: self.connection.block_storage.volumes(details=True, all_projects=False),
            volume_from_resource
        )

    def get_volume_limits(self) -> VolumeLimits:
        """
        获取块存储配额

        API 版本在每次调用时根据云配置决定。

        Raises:
            ResourceQueryError: 查询失败
            DataShapeError: 响应中缺少 limits.absolute
        """
        self.check_cancelled()
        version = self.session.cloud_config.blockstorage_version
        self.logger.debug(f"正在获取 volume limits（block-storage v{version}）")

        client = ks_adapter.Adapter(
            session=self.connection.session,
            service_type='block-storage',
            interface=self.session.cloud_config.interface,
            region_name=self.region,
            version=version
        )
        try:
            response = client.get('/limits')
            body = response.json()
        except QUERY_ERRORS as e:
            self.logger.error(f"获取 volume limits 失败: {e}")
            raise ResourceQueryError(f"获取 volume limits 失败: {e}") from e
        except ValueError as e:
            raise DataShapeError(f"volume limits 响应不是 JSON: {e}") from e

        try:
            absolute = body['limits']['absolute']
        except (KeyError, TypeError):
            raise DataShapeError(f"volume limits 响应缺少 limits.absolute: {body!r}")

        return volume_limits_from_absolute(absolute)
