# -*- coding: utf-8 -*-
"""
OpenStack 会话模块

功能：
- 每个采集周期建立一次经过认证的 OpenStack 连接
- 认证失败直接抛出 AuthenticationError，不重试
- 会话只属于一个采集周期，周期结束后关闭
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import openstack
from keystoneauth1 import exceptions as ks_exceptions
from openstack import exceptions as sdk_exceptions

from config.loader import CloudConfig
from provider.openstack.errors import AuthenticationError

logger = logging.getLogger(__name__)

APP_NAME = 'openstack_exporter'


@dataclass
class Session:
    """一个采集周期内使用的认证会话"""
    connection: Any             # openstack.connection.Connection
    region: Optional[str]
    cloud_config: CloudConfig

    def close(self):
        """关闭底层连接（释放 HTTP 连接池）"""
        try:
            self.connection.close()
        except Exception as e:
            logger.debug(f"关闭 OpenStack 连接失败: {e}")


class SessionProvider:
    """
    OpenStack 会话 Provider

    功能：
    - 根据 CloudConfig 构建认证参数
    - 调用 openstack.connect 并强制完成 token 握手
    """

    def __init__(self, connect: Callable[..., Any] = None, logger: logging.Logger = None):
        """
        初始化会话 Provider

        Args:
            connect: 创建连接的函数（默认 openstack.connect，测试时可替换）
            logger: 日志对象（默认使用模块 logger）
        """
        self._connect = connect or openstack.connect
        self.logger = logger or logging.getLogger(__name__)

    def authenticate(self, cloud_config: CloudConfig) -> Session:
        """
        认证并返回会话

        Args:
            cloud_config: 本周期读取的云配置

        Returns:
            Session 对象

        Raises:
            AuthenticationError: 缺少认证地址或认证失败
        """
        if not cloud_config.auth_url:
            raise AuthenticationError("未设置 OS_AUTH_URL，无法认证")

        self.logger.debug(f"正在认证 OpenStack API: {cloud_config.auth_url}")

        try:
            connection = self._connect(**build_connect_kwargs(cloud_config))
            connection.authorize()
        except (sdk_exceptions.SDKException, ks_exceptions.ClientException) as e:
            self.logger.error(f"OpenStack 认证失败: {e}")
            raise AuthenticationError(f"OpenStack 认证失败: {e}") from e

        self.logger.debug(f"OpenStack 认证成功，区域: {cloud_config.region_name}")
        return Session(
            connection=connection,
            region=cloud_config.region_name,
            cloud_config=cloud_config
        )


def build_connect_kwargs(cloud_config: CloudConfig) -> Dict[str, Any]:
    """
    构建 openstack.connect 参数

    只使用传入的配置，不读取 clouds.yaml 和环境变量。
    """
    auth = {
        'auth_url': cloud_config.auth_url,
        'username': cloud_config.username,
        'password': cloud_config.password,
        'application_credential_id': cloud_config.application_credential_id,
        'application_credential_secret': cloud_config.application_credential_secret,
        'project_id': cloud_config.project_id,
        # OS_TENANT_NAME 是 keystone v2 时代的写法
        'project_name': cloud_config.project_name or cloud_config.tenant_name,
        'domain_id': cloud_config.domain_id,
        'domain_name': cloud_config.domain_name,
        'user_domain_name': cloud_config.user_domain_name,
        'project_domain_id': cloud_config.project_domain_id,
        'project_domain_name': cloud_config.project_domain_name,
    }
    auth = {key: value for key, value in auth.items() if value is not None}

    auth_type = cloud_config.auth_type
    if auth_type is None:
        auth_type = 'v3applicationcredential' if cloud_config.application_credential_id else 'password'

    kwargs = {
        'auth': auth,
        'auth_type': auth_type,
        'region_name': cloud_config.region_name,
        'interface': cloud_config.interface,
        'block_storage_api_version': '3',
        'app_name': APP_NAME,
        'load_yaml_config': False,
        'load_envvars': False,
    }
    if cloud_config.api_timeout is not None:
        kwargs['api_timeout'] = cloud_config.api_timeout
    return kwargs
