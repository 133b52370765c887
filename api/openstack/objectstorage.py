# -*- coding: utf-8 -*-
"""
对象存储读取模块

功能：
- 定义 ObjectStorageReader 接口，返回容器名称和已用字节数
- Swift 实现：通过 OpenStack 会话列出容器（字节数直接包含在列表中）
- OBS 实现：Open Telekom Cloud 的对象存储，使用 AK/SK 独立建立客户端，
  先列出桶，再对每个桶发送一次 storageinfo 请求查询存储容量
- 工厂函数根据认证地址在每个周期选择一次实现
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List
from urllib.parse import urlsplit, urlunsplit
from xml.etree import ElementTree

import boto3
from botocore.auth import S3SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.config import Config
from botocore.credentials import Credentials
from botocore.exceptions import BotoCoreError, ClientError
from botocore.httpsession import URLLib3Session

from api.openstack.base import OpenStackReader
from api.openstack.models import Container, container_from_resource
from config.loader import CloudConfig
from provider.openstack.errors import CollectionCancelled, DataShapeError, ResourceQueryError
from provider.openstack.session import Session

logger = logging.getLogger(__name__)

DEFAULT_OBS_REGION = 'eu-de'
DEFAULT_HTTP_TIMEOUT = 60
STORAGE_INFO_QUERY = 'storageinfo'


class ObjectStorageReader(ABC):
    """对象存储读取接口"""

    @abstractmethod
    def list_containers(self) -> List[Container]:
        """
        获取所有容器及其已用字节数

        Raises:
            ResourceQueryError: 查询失败
            DataShapeError: 响应字段不符合预期
        """
        pass


class SwiftContainerReader(OpenStackReader, ObjectStorageReader):
    """Swift（object-store v1）容器读取器"""

    def list_containers(self) -> List[Container]:
        return self._list_all(
            'containers',
            lambda: self.connection.object_store.containers(),
            container_from_resource
        )


class OBSClient:
    """
    OBS API 客户端

    功能：
    - 列出桶：OBS 兼容 S3 协议，使用 boto3 的 s3 客户端
    - 查询桶容量：OBS 扩展接口 GET /?storageinfo，不属于 S3 API，
      这里用 botocore 的 SigV4 签名后直接发送，每个桶只请求一次
    """

    def __init__(self, endpoint: str, access_key: str, secret_key: str,
                 region: str = None, timeout: float = None):
        """
        初始化 OBS 客户端

        Args:
            endpoint: OBS 访问地址（如 https://obs.eu-de.otc.t-systems.com）
            access_key: Access Key
            secret_key: Secret Key
            region: 区域
            timeout: 单次请求的连接/读取超时（秒）

        Raises:
            ValueError: endpoint 不是合法的 URL
        """
        self.endpoint = endpoint
        self.region = region or DEFAULT_OBS_REGION
        config_kwargs = {
            's3': {'addressing_style': 'virtual'},
            'retries': {'max_attempts': 1},
        }
        if timeout is not None:
            config_kwargs['connect_timeout'] = timeout
            config_kwargs['read_timeout'] = timeout

        session = boto3.Session(
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key
        )
        self.client = session.client(
            's3',
            endpoint_url=endpoint,
            region_name=self.region,
            config=Config(**config_kwargs)
        )
        self._credentials = Credentials(access_key, secret_key)
        self._http = URLLib3Session(timeout=timeout if timeout is not None else DEFAULT_HTTP_TIMEOUT)
        logger.debug(f"OBS 客户端初始化成功，endpoint: {endpoint}")

    def list_buckets(self) -> List[str]:
        """
        列出所有桶

        Returns:
            桶名称列表
        """
        response = self.client.list_buckets()
        return [bucket['Name'] for bucket in response.get('Buckets', [])]

    def get_bucket_storage_size(self, bucket_name: str) -> int:
        """
        获取桶已用容量（字节）

        Args:
            bucket_name: 桶名称

        Returns:
            storageinfo 返回的 Size（包含历史版本和未合并的分段）

        Raises:
            ClientError: OBS 返回错误状态码
            BotoCoreError: 网络错误
            DataShapeError: 响应中没有 Size
        """
        request = AWSRequest(method='GET', url=self._bucket_url(bucket_name, STORAGE_INFO_QUERY))
        S3SigV4Auth(self._credentials, 's3', self.region).add_auth(request)
        response = self._http.send(request.prepare())

        if response.status_code >= 300:
            raise ClientError(_parse_error(response), 'GetBucketStorageInfo')
        return _parse_storage_size(bucket_name, response.content)

    def _bucket_url(self, bucket_name: str, query: str) -> str:
        """虚拟主机风格的桶地址: https://<bucket>.<endpoint host>/?<query>"""
        parts = urlsplit(self.endpoint)
        return urlunsplit((parts.scheme, f"{bucket_name}.{parts.netloc}", '/', query, ''))


def _xml_children(content: bytes) -> Dict[str, str]:
    """解析 XML 响应的一级子元素（忽略命名空间）"""
    root = ElementTree.fromstring(content)
    return {child.tag.rsplit('}', 1)[-1]: (child.text or '') for child in root}


def _parse_storage_size(bucket_name: str, content: bytes) -> int:
    try:
        size = _xml_children(content).get('Size')
    except ElementTree.ParseError as e:
        raise DataShapeError(f"桶 {bucket_name} 的 storageinfo 响应不是 XML: {e}") from e
    if size is None:
        raise DataShapeError(f"桶 {bucket_name} 的 storageinfo 响应缺少 Size")
    try:
        return int(size)
    except ValueError:
        raise DataShapeError(f"桶 {bucket_name} 的 Size 不是整数: {size!r}")


def _parse_error(response) -> Dict[str, Any]:
    """将 OBS 错误响应转换为 ClientError 需要的结构"""
    try:
        fields = _xml_children(response.content) if response.content else {}
    except ElementTree.ParseError:
        fields = {}
    return {
        'Error': {
            'Code': fields.get('Code') or str(response.status_code),
            'Message': fields.get('Message', ''),
        },
        'ResponseMetadata': {'HTTPStatusCode': response.status_code},
    }


class OBSContainerReader(ObjectStorageReader):
    """
    OBS 桶读取器

    每个桶额外调用一次容量查询，调用在有界线程池中执行，结果保持桶的顺序。
    """

    def __init__(self, client: OBSClient, max_workers: int = 4,
                 logger: logging.Logger = None, cancel_event: threading.Event = None):
        """
        Args:
            client: OBS 客户端（需提供 list_buckets / get_bucket_storage_size）
            max_workers: 容量查询的并发上限
            logger: 日志对象
            cancel_event: 采集周期取消信号
        """
        self.client = client
        self.max_workers = max(1, max_workers)
        self.logger = logger or logging.getLogger(__name__)
        self.cancel_event = cancel_event or threading.Event()

    def _check_cancelled(self):
        if self.cancel_event.is_set():
            raise CollectionCancelled("采集周期已取消")

    def _bucket_container(self, bucket_name: str) -> Container:
        self._check_cancelled()
        try:
            size = self.client.get_bucket_storage_size(bucket_name)
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"获取桶 {bucket_name} 容量失败: {e}")
            raise ResourceQueryError(f"获取桶 {bucket_name} 容量失败: {e}") from e
        return Container(name=bucket_name, bytes=int(size))

    def list_containers(self) -> List[Container]:
        self._check_cancelled()
        self.logger.debug("正在获取所有 OBS 桶")
        try:
            bucket_names = self.client.list_buckets()
        except (ClientError, BotoCoreError) as e:
            self.logger.error(f"获取 OBS 桶列表失败: {e}")
            raise ResourceQueryError(f"获取 OBS 桶列表失败: {e}") from e

        if not bucket_names:
            return []

        workers = min(self.max_workers, len(bucket_names))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            containers = list(executor.map(self._bucket_container, bucket_names))

        self.logger.debug(f"获取到 {len(containers)} 个 OBS 桶")
        return containers


def create_object_storage_reader(session: Session, cloud_config: CloudConfig,
                                 obs_max_workers: int = 4,
                                 logger: logging.Logger = None,
                                 cancel_event: threading.Event = None) -> ObjectStorageReader:
    """
    根据认证地址选择对象存储实现

    认证地址包含 'otc' 时使用 OBS，否则使用 Swift。

    Raises:
        ResourceQueryError: OBS 缺少 AK/SK 或客户端创建失败
    """
    if not cloud_config.is_alternate_cloud:
        return SwiftContainerReader(session, logger=logger, cancel_event=cancel_event)

    logger = logger or logging.getLogger(__name__)
    logger.debug("检测到 Open Telekom Cloud，使用 OBS 客户端")
    if not cloud_config.access_key or not cloud_config.secret_key:
        raise ResourceQueryError("OBS 需要设置 OS_ACCESS_KEY 和 OS_SECRET_KEY")

    try:
        client = OBSClient(
            endpoint=cloud_config.resolved_obs_endpoint,
            access_key=cloud_config.access_key,
            secret_key=cloud_config.secret_key,
            region=cloud_config.region_name,
            timeout=cloud_config.api_timeout
        )
    except (BotoCoreError, ValueError) as e:
        # 例如 OS_OBS_ENDPOINT 缺少 https:// 前缀
        raise ResourceQueryError(f"初始化 OBS 客户端失败: {e}") from e

    return OBSContainerReader(
        client,
        max_workers=obs_max_workers,
        logger=logger,
        cancel_event=cancel_event
    )
