# -*- coding: utf-8 -*-
"""
pytest 公共 fixture

提供 OpenStack 连接、会话、读取器的模拟对象。
"""

import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

# 将项目根目录加入 sys.path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from api.openstack.models import ComputeLimits, Container, Instance, Volume, VolumeLimits  # noqa: E402
from config.loader import ExporterConfig, load_cloud_config  # noqa: E402
from provider.openstack.session import Session  # noqa: E402


OPENSTACK_ENV = {
    'OS_AUTH_URL': 'https://keystone.example.com/v3',
    'OS_USERNAME': 'exporter',
    'OS_PASSWORD': 'secret',
    'OS_PROJECT_NAME': 'demo',
    'OS_USER_DOMAIN_NAME': 'Default',
    'OS_PROJECT_DOMAIN_NAME': 'Default',
    'OS_REGION_NAME': 'RegionOne',
}

OTC_ENV = {
    'OS_AUTH_URL': 'https://iam.eu-de.otc.t-systems.com/v3',
    'OS_USERNAME': 'exporter',
    'OS_PASSWORD': 'secret',
    'OS_PROJECT_NAME': 'eu-de_demo',
    'OS_DOMAIN_NAME': 'OTC-EU-DE-00000000001000000001',
    'OS_REGION_NAME': 'eu-de',
    'OS_ACCESS_KEY': 'AK',
    'OS_SECRET_KEY': 'SK',
}


def make_server(server_id, flavor_id, status):
    """模拟 SDK 返回的 server 对象"""
    return SimpleNamespace(id=server_id, flavor={'id': flavor_id}, status=status)


@pytest.fixture
def openstack_env():
    return dict(OPENSTACK_ENV)


@pytest.fixture
def otc_env():
    return dict(OTC_ENV)


@pytest.fixture
def cloud_config(openstack_env):
    return load_cloud_config(openstack_env)


@pytest.fixture
def mock_connection():
    """模拟 openstack.connection.Connection"""
    return MagicMock()


@pytest.fixture
def session(mock_connection, cloud_config):
    return Session(connection=mock_connection, region='RegionOne', cloud_config=cloud_config)


@pytest.fixture
def exporter_config():
    return ExporterConfig(collect_timeout=5.0, volume_limit=50)


@pytest.fixture
def compute_limits():
    return ComputeLimits(
        max_total_cores=100, max_total_instances=20, max_total_ram_size=204800,
        total_cores_used=12, total_instances_used=3, total_ram_used=24576
    )


@pytest.fixture
def volume_limits():
    return VolumeLimits(
        max_total_volumes=40, total_volumes_used=3,
        max_total_volume_gigabytes=1000, total_gigabytes_used=150
    )


@pytest.fixture
def instances():
    return [
        Instance(id='i-1', flavor='a', status='ACTIVE'),
        Instance(id='i-2', flavor='a', status='ERROR'),
        Instance(id='i-3', flavor='b', status='ACTIVE'),
    ]


@pytest.fixture
def volumes():
    return [
        Volume(id='v-1', status='available'),
        Volume(id='v-2', status='in-use'),
        Volume(id='v-3', status='in-use'),
    ]


@pytest.fixture
def containers():
    return [Container(name='backups', bytes=1024), Container(name='logs', bytes=0)]


class FakeReaderFactory:
    """返回预先准备好的读取器（MagicMock）"""

    def __init__(self, compute, block_storage, object_storage):
        self._compute = compute
        self._block_storage = block_storage
        self._object_storage = object_storage
        self.cancel_events = []

    def compute(self, session, logger, cancel_event):
        self.cancel_events.append(cancel_event)
        return self._compute

    def block_storage(self, session, logger, cancel_event):
        return self._block_storage

    def object_storage(self, session, cloud_config, logger, cancel_event):
        if isinstance(self._object_storage, Exception):
            raise self._object_storage
        return self._object_storage


@pytest.fixture
def readers(compute_limits, volume_limits, instances, volumes, containers):
    """全部成功的读取器"""
    compute = MagicMock()
    compute.get_compute_limits.return_value = compute_limits
    compute.list_instances.return_value = instances

    block_storage = MagicMock()
    block_storage.list_volumes.return_value = volumes
    block_storage.get_volume_limits.return_value = volume_limits

    object_storage = MagicMock()
    object_storage.list_containers.return_value = containers

    return SimpleNamespace(compute=compute, block_storage=block_storage, object_storage=object_storage)


@pytest.fixture
def reader_factory(readers):
    return FakeReaderFactory(readers.compute, readers.block_storage, readers.object_storage)


@pytest.fixture
def session_provider(mock_connection):
    """认证总是成功的会话 Provider"""
    provider = MagicMock()
    provider.authenticate.side_effect = lambda cfg: Session(
        connection=mock_connection, region=cfg.region_name, cloud_config=cfg
    )
    return provider
