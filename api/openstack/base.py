# -*- coding: utf-8 -*-
"""
OpenStack 资源读取基类

功能：
- 保存本周期的会话、日志对象和取消信号
- 遍历 SDK 分页生成器，合并所有分页结果
- 将 SDK / keystoneauth 异常转换为 ResourceQueryError
"""

import logging
import threading
from typing import Any, Callable, Iterable, List, TypeVar

from keystoneauth1 import exceptions as ks_exceptions
from openstack import exceptions as sdk_exceptions

from provider.openstack.errors import CollectionCancelled, ResourceQueryError
from provider.openstack.session import Session

logger = logging.getLogger(__name__)

# OpenStack 客户端可能抛出的查询异常
QUERY_ERRORS = (sdk_exceptions.SDKException, ks_exceptions.ClientException)

T = TypeVar('T')


class OpenStackReader:
    """资源读取基类"""

    def __init__(self, session: Session, logger: logging.Logger = None,
                 cancel_event: threading.Event = None):
        """
        Args:
            session: 本周期的认证会话
            logger: 日志对象（默认使用模块 logger）
            cancel_event: 采集周期取消信号，置位后在下一个检查点中止
        """
        self.session = session
        self.connection = session.connection
        self.region = session.region
        self.logger = logger or logging.getLogger(type(self).__module__)
        self.cancel_event = cancel_event or threading.Event()

    def check_cancelled(self):
        """
        Raises:
            CollectionCancelled: 采集周期已取消
        """
        if self.cancel_event.is_set():
            raise CollectionCancelled("采集周期已取消")

    def _list_all(self, what: str, fetch: Callable[[], Iterable[Any]],
                  adapt: Callable[[Any], T]) -> List[T]:
        """
        遍历所有分页并映射为本地结构

        Args:
            what: 资源名称（用于日志）
            fetch: 返回 SDK 分页生成器的函数
            adapt: 单条资源的映射函数

        Returns:
            合并后的资源列表

        Raises:
            ResourceQueryError: 查询失败或已取消
            DataShapeError: 资源字段不符合预期
        """
        self.check_cancelled()
        self.logger.debug(f"正在获取所有 {what}")

        items = []
        try:
            for raw in fetch():
                self.check_cancelled()
                items.append(adapt(raw))
        except QUERY_ERRORS as e:
            self.logger.error(f"获取 {what} 失败: {e}")
            raise ResourceQueryError(f"获取 {what} 失败: {e}") from e

        self.logger.debug(f"获取到 {len(items)} 个 {what}")
        return items
