# -*- coding: utf-8 -*-
"""
Exporter 配置加载模块

功能：
- 从 YAML 文件加载 Exporter 自身配置（端口、超时、并发等）
- 从 OS_* 环境变量加载 OpenStack 云配置（每个采集周期重新读取）
- 定义清晰的数据结构（ExporterConfig / CloudConfig）
- 读取失败时给出明确错误
"""

import os
import yaml
from dataclasses import dataclass, fields
from typing import Dict, Mapping, Optional


# 认证地址中包含该标记时视为 Open Telekom Cloud（OBS 对象存储方言）
ALTERNATE_CLOUD_MARKER = 'otc'


@dataclass
class ExporterConfig:
    """Exporter 运行配置"""
    host: str = '0.0.0.0'
    port: int = 9595
    volume_limit: float = -1.0          # OTC 下卷数量上限（替代块存储 limits API）
    collect_timeout: float = 60.0       # 单次采集周期的总超时（秒）
    parallel_readers: bool = False      # 是否并发执行各资源读取
    max_reader_workers: int = 4         # 并发模式下的线程数
    obs_max_workers: int = 4            # OBS 每个桶容量查询的并发上限
    log_level: str = 'INFO'

    @property
    def reader_workers(self) -> int:
        """实际使用的读取线程数（串行模式固定为 1）"""
        return self.max_reader_workers if self.parallel_readers else 1


@dataclass
class CloudConfig:
    """OpenStack 云配置（来自 OS_* 环境变量）"""
    auth_url: Optional[str] = None
    auth_type: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    application_credential_id: Optional[str] = None
    application_credential_secret: Optional[str] = None
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    tenant_name: Optional[str] = None
    domain_id: Optional[str] = None
    domain_name: Optional[str] = None
    user_domain_name: Optional[str] = None
    project_domain_id: Optional[str] = None
    project_domain_name: Optional[str] = None
    region_name: Optional[str] = None
    interface: str = 'public'
    blockstorage_version: str = '3'
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    obs_endpoint: Optional[str] = None
    api_timeout: Optional[float] = None

    @property
    def is_alternate_cloud(self) -> bool:
        """认证地址是否指向 Open Telekom Cloud"""
        return ALTERNATE_CLOUD_MARKER in (self.auth_url or '')

    @property
    def resolved_obs_endpoint(self) -> str:
        """OBS 访问地址，未显式配置时按区域拼接"""
        if self.obs_endpoint:
            return self.obs_endpoint
        return f"https://obs.{self.region_name or 'eu-de'}.otc.t-systems.com"


# 环境变量 -> CloudConfig 字段
_CLOUD_ENV_MAPPING: Dict[str, str] = {
    'OS_AUTH_URL': 'auth_url',
    'OS_AUTH_TYPE': 'auth_type',
    'OS_USERNAME': 'username',
    'OS_PASSWORD': 'password',
    'OS_APPLICATION_CREDENTIAL_ID': 'application_credential_id',
    'OS_APPLICATION_CREDENTIAL_SECRET': 'application_credential_secret',
    'OS_PROJECT_ID': 'project_id',
    'OS_PROJECT_NAME': 'project_name',
    'OS_TENANT_NAME': 'tenant_name',
    'OS_DOMAIN_ID': 'domain_id',
    'OS_DOMAIN_NAME': 'domain_name',
    'OS_USER_DOMAIN_NAME': 'user_domain_name',
    'OS_PROJECT_DOMAIN_ID': 'project_domain_id',
    'OS_PROJECT_DOMAIN_NAME': 'project_domain_name',
    'OS_REGION_NAME': 'region_name',
    'OS_INTERFACE': 'interface',
    'OS_BLOCKSTORAGE_V': 'blockstorage_version',
    'OS_ACCESS_KEY': 'access_key',
    'OS_SECRET_KEY': 'secret_key',
    'OS_OBS_ENDPOINT': 'obs_endpoint',
    'OS_API_TIMEOUT': 'api_timeout',
}


def load_cloud_config(environ: Optional[Mapping[str, str]] = None) -> CloudConfig:
    """
    从环境变量加载 OpenStack 云配置

    每个采集周期调用一次，凭证变更无需重启 Exporter。

    Args:
        environ: 环境变量映射（默认 os.environ，测试时可传入字典）

    Returns:
        CloudConfig 对象

    Raises:
        ValueError: OS_API_TIMEOUT 不是数字
    """
    if environ is None:
        environ = os.environ

    values = {}
    for env_name, field_name in _CLOUD_ENV_MAPPING.items():
        value = environ.get(env_name)
        if value is None or value == '':
            continue
        values[field_name] = value

    if 'api_timeout' in values:
        try:
            values['api_timeout'] = float(values['api_timeout'])
        except ValueError:
            raise ValueError(f"OS_API_TIMEOUT 必须是数字: {values['api_timeout']}")

    # 只有显式设置为 2 时才使用 v2 的 limits 接口
    values['blockstorage_version'] = '2' if values.get('blockstorage_version') == '2' else '3'

    return CloudConfig(**values)


def load_exporter_config(config_path: Optional[str] = None) -> ExporterConfig:
    """
    从 YAML 文件加载 Exporter 配置

    Args:
        config_path: 配置文件路径（如 'config/exporter.yaml'），为 None 时使用默认值

    Returns:
        ExporterConfig 对象

    Raises:
        FileNotFoundError: 文件不存在
        yaml.YAMLError: YAML 解析错误
        ValueError: 配置格式错误
    """
    if config_path is None:
        return ExporterConfig()

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Exporter 配置文件不存在: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            content = f.read()
    except IOError as e:
        raise IOError(f"无法读取 Exporter 配置文件 {config_path}: {e}")

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"YAML 解析失败: {e}")

    if data is None:
        return ExporterConfig()

    if not isinstance(data, dict):
        raise ValueError("配置格式错误: 顶层必须是字典类型")

    # 兼容 exporter: {...} 嵌套写法
    if 'exporter' in data:
        data = data['exporter']
        if not isinstance(data, dict):
            raise ValueError("配置格式错误: 'exporter' 必须是字典类型")

    known_fields = {f.name: f for f in fields(ExporterConfig)}
    values = {}
    for key, value in data.items():
        if key not in known_fields:
            raise ValueError(f"配置格式错误: 未知字段 '{key}'")
        values[key] = _coerce_field(key, value, known_fields[key].default)

    return ExporterConfig(**values)


def _coerce_field(key: str, value, default):
    """
    按默认值类型转换配置字段

    Raises:
        ValueError: 字段值无法转换
    """
    if isinstance(default, bool):
        if not isinstance(value, bool):
            raise ValueError(f"{key} 必须是布尔值")
        return value

    if isinstance(default, int):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{key} 必须是整数")
        return value

    if isinstance(default, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{key} 必须是数字")
        return float(value)

    if not isinstance(value, str):
        raise ValueError(f"{key} 必须是字符串")
    return value
