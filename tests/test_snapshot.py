# -*- coding: utf-8 -*-
"""
collector/snapshot.py 单元测试

SnapshotAssembler 采集周期：认证、资源族隔离、OTC 卷配额合成、超时取消。
"""

import logging
import threading
import time
from unittest.mock import MagicMock

import pytest
from openstack import exceptions as sdk_exceptions

from collector.observation import CollectionState, ResourceFamily
from collector.snapshot import ReaderFactory, SnapshotAssembler
from config.loader import ExporterConfig
from provider.openstack.errors import (
    AuthenticationError, CollectionCancelled, DataShapeError, ResourceQueryError
)

from conftest import FakeReaderFactory


def _assembler(config, session_provider, reader_factory, environ):
    return SnapshotAssembler(
        config,
        session_provider=session_provider,
        reader_factory=reader_factory,
        environ=environ
    )


class TestSuccessfulCycle:
    """全部资源族成功"""

    def test_full_snapshot(self, exporter_config, session_provider, reader_factory, openstack_env, mock_connection):
        snapshot = _assembler(exporter_config, session_provider, reader_factory, openstack_env).collect()

        assert snapshot.state == CollectionState.DONE
        assert not snapshot.failed
        assert snapshot.family_errors == {}

        assert snapshot.value_of('openstack_max_total_cores') == 100
        assert snapshot.value_of('openstack_max_total_instances') == 20
        assert snapshot.value_of('openstack_max_total_ram_size') == 204800
        assert snapshot.value_of('openstack_total_cores_used') == 12
        assert snapshot.value_of('openstack_total_instances_used') == 3
        assert snapshot.value_of('openstack_total_ram_used') == 24576

        assert snapshot.value_of('openstack_per_flavor_instance_count', flavor='a') == 2
        assert snapshot.value_of('openstack_per_flavor_instance_count', flavor='b') == 1
        assert snapshot.value_of('openstack_per_status_instance_count', status='ACTIVE') == 2
        assert snapshot.value_of('openstack_per_status_instance_count', status='ERROR') == 1

        assert snapshot.value_of('openstack_per_status_volume_count', status='available') == 1
        assert snapshot.value_of('openstack_per_status_volume_count', status='in-use') == 2
        assert snapshot.value_of('openstack_max_total_volumes') == 40
        assert snapshot.value_of('openstack_max_total_volume_gigabytes') == 1000
        assert snapshot.value_of('openstack_total_volumes_used') == 3
        assert snapshot.value_of('openstack_total_volume_gigabytes_used') == 150

        assert snapshot.value_of('openstack_container_bytes_used', container='backups') == 1024
        assert snapshot.value_of('openstack_container_bytes_used', container='logs') == 0

        for family in ResourceFamily:
            assert snapshot.value_of('openstack_collect_success', resource=family.value) == 1

        assert len(snapshot.by_name('openstack_collect_duration_seconds')) == 1
        assert snapshot.duration >= 0
        mock_connection.close.assert_called_once_with()

    def test_authenticates_every_cycle(self, exporter_config, session_provider, reader_factory, openstack_env):
        assembler = _assembler(exporter_config, session_provider, reader_factory, openstack_env)

        assembler.collect()
        assembler.collect()

        assert session_provider.authenticate.call_count == 2

    def test_reads_credentials_at_call_time(self, exporter_config, session_provider, reader_factory, openstack_env):
        assembler = _assembler(exporter_config, session_provider, reader_factory, openstack_env)
        openstack_env['OS_REGION_NAME'] = 'RegionTwo'

        assembler.collect()

        cloud_config = session_provider.authenticate.call_args[0][0]
        assert cloud_config.region_name == 'RegionTwo'

    def test_parallel_readers(self, session_provider, reader_factory, openstack_env):
        config = ExporterConfig(parallel_readers=True, max_reader_workers=4, collect_timeout=5.0)

        snapshot = _assembler(config, session_provider, reader_factory, openstack_env).collect()

        assert snapshot.state == CollectionState.DONE
        assert snapshot.value_of('openstack_container_bytes_used', container='backups') == 1024


class TestAuthenticationFailure:
    """认证失败时只输出耗时指标"""

    def test_only_duration(self, exporter_config, reader_factory, readers, openstack_env):
        session_provider = MagicMock()
        session_provider.authenticate.side_effect = AuthenticationError('401 Unauthorized')

        snapshot = _assembler(exporter_config, session_provider, reader_factory, openstack_env).collect()

        assert snapshot.failed
        assert snapshot.state == CollectionState.FAILED
        assert '401' in snapshot.error
        assert [obs.name for obs in snapshot.observations] == ['openstack_collect_duration_seconds']
        readers.compute.list_instances.assert_not_called()
        readers.block_storage.list_volumes.assert_not_called()
        readers.object_storage.list_containers.assert_not_called()

    def test_invalid_environment(self, exporter_config, session_provider, reader_factory, openstack_env):
        openstack_env['OS_API_TIMEOUT'] = 'never'

        snapshot = _assembler(exporter_config, session_provider, reader_factory, openstack_env).collect()

        assert snapshot.failed
        session_provider.authenticate.assert_not_called()


class TestFamilyIsolation:
    """单个资源族失败不影响其他资源族"""

    def test_compute_failure(self, exporter_config, session_provider, reader_factory, readers, openstack_env):
        readers.compute.get_compute_limits.side_effect = ResourceQueryError('nova down')
        readers.compute.list_instances.side_effect = ResourceQueryError('nova down')

        snapshot = _assembler(exporter_config, session_provider, reader_factory, openstack_env).collect()

        assert snapshot.state == CollectionState.DONE
        assert set(snapshot.family_errors) == {ResourceFamily.COMPUTE_LIMITS, ResourceFamily.INSTANCES}
        assert snapshot.by_name('openstack_max_total_cores') == []
        assert snapshot.by_name('openstack_per_flavor_instance_count') == []
        assert snapshot.value_of('openstack_per_status_volume_count', status='in-use') == 2
        assert snapshot.value_of('openstack_container_bytes_used', container='backups') == 1024
        assert snapshot.value_of('openstack_collect_success', resource='instances') == 0
        assert snapshot.value_of('openstack_collect_success', resource='volumes') == 1

    def test_data_shape_error(self, exporter_config, session_provider, reader_factory, readers, openstack_env):
        readers.compute.list_instances.side_effect = DataShapeError('flavor without id')

        snapshot = _assembler(exporter_config, session_provider, reader_factory, openstack_env).collect()

        assert ResourceFamily.INSTANCES in snapshot.family_errors
        assert snapshot.value_of('openstack_max_total_cores') == 100

    def test_object_storage_setup_failure(self, exporter_config, session_provider, readers, openstack_env):
        factory = FakeReaderFactory(
            readers.compute, readers.block_storage, ResourceQueryError('OBS 需要 AK/SK')
        )

        snapshot = _assembler(exporter_config, session_provider, factory, openstack_env).collect()

        assert set(snapshot.family_errors) == {ResourceFamily.CONTAINERS}
        assert snapshot.by_name('openstack_container_bytes_used') == []
        assert snapshot.value_of('openstack_max_total_cores') == 100

    def test_invalid_obs_endpoint(self, exporter_config, session_provider, readers, otc_env):
        """OBS 客户端无法创建时只有 containers 失败"""
        otc_env['OS_OBS_ENDPOINT'] = 'obs.eu-de.otc.t-systems.com'

        class ObjectStorageFromSdk(FakeReaderFactory):
            def object_storage(self, session, cloud_config, logger, cancel_event):
                return ReaderFactory().object_storage(session, cloud_config, logger, cancel_event)

        factory = ObjectStorageFromSdk(readers.compute, readers.block_storage, readers.object_storage)

        snapshot = _assembler(exporter_config, session_provider, factory, otc_env).collect()

        assert not snapshot.failed
        assert set(snapshot.family_errors) == {ResourceFamily.CONTAINERS}
        assert 'Invalid endpoint' in snapshot.family_errors[ResourceFamily.CONTAINERS]
        assert snapshot.value_of('openstack_collect_success', resource='containers') == 0
        assert snapshot.value_of('openstack_max_total_volumes') == 50

    def test_unexpected_error_propagates_and_closes_session(self, exporter_config, session_provider,
                                                            reader_factory, readers, openstack_env,
                                                            mock_connection):
        readers.block_storage.list_volumes.side_effect = RuntimeError('bug')

        with pytest.raises(RuntimeError):
            _assembler(exporter_config, session_provider, reader_factory, openstack_env).collect()
        mock_connection.close.assert_called_once_with()


class TestAlternateCloud:
    """OTC：卷配额由配置上限和实际卷数合成"""

    def test_synthesized_volume_limits(self, exporter_config, session_provider, reader_factory, readers, otc_env):
        snapshot = _assembler(exporter_config, session_provider, reader_factory, otc_env).collect()

        readers.block_storage.get_volume_limits.assert_not_called()
        assert snapshot.value_of('openstack_max_total_volumes') == 50
        assert snapshot.value_of('openstack_total_volumes_used') == 3
        assert snapshot.by_name('openstack_max_total_volume_gigabytes') == []
        assert snapshot.by_name('openstack_total_volume_gigabytes_used') == []
        assert snapshot.value_of('openstack_collect_success', resource='volume_limits') == 1

    def test_default_volume_limit(self, session_provider, reader_factory, otc_env):
        snapshot = _assembler(ExporterConfig(), session_provider, reader_factory, otc_env).collect()
        assert snapshot.value_of('openstack_max_total_volumes') == -1

    def test_volume_failure_fails_synthesized_limits(self, exporter_config, session_provider, reader_factory,
                                                     readers, otc_env):
        readers.block_storage.list_volumes.side_effect = ResourceQueryError('evs down')

        snapshot = _assembler(exporter_config, session_provider, reader_factory, otc_env).collect()

        assert set(snapshot.family_errors) == {ResourceFamily.VOLUMES, ResourceFamily.VOLUME_LIMITS}
        assert snapshot.by_name('openstack_max_total_volumes') == []
        assert snapshot.by_name('openstack_total_volumes_used') == []


class TestTimeout:
    """超时后取消未完成的读取"""

    def test_slow_reader_is_cancelled(self, session_provider, reader_factory, readers, openstack_env):
        started = threading.Event()

        def slow_volumes():
            started.set()
            cancel_event = reader_factory.cancel_events[-1]
            if cancel_event.wait(5):
                raise CollectionCancelled('采集周期已取消')
            return []

        readers.block_storage.list_volumes.side_effect = slow_volumes
        config = ExporterConfig(collect_timeout=0.3)

        begin = time.monotonic()
        snapshot = _assembler(config, session_provider, reader_factory, openstack_env).collect()
        elapsed = time.monotonic() - begin

        assert started.is_set()
        assert elapsed < 3
        assert reader_factory.cancel_events[-1].is_set()
        assert snapshot.state == CollectionState.DONE
        # 串行模式：volumes 之前的资源族已完成，之后的资源族被取消
        assert snapshot.value_of('openstack_max_total_cores') == 100
        assert ResourceFamily.VOLUMES in snapshot.family_errors
        assert ResourceFamily.VOLUME_LIMITS in snapshot.family_errors
        assert ResourceFamily.CONTAINERS in snapshot.family_errors
        readers.object_storage.list_containers.assert_not_called()

    def test_running_reader_is_logged(self, session_provider, reader_factory, readers, openstack_env, caplog):
        """超时后仍在运行的读取不阻塞本周期，并记录日志"""
        release = threading.Event()
        readers.object_storage.list_containers.side_effect = lambda: release.wait(5) and []
        config = ExporterConfig(collect_timeout=0.3)

        caplog.set_level(logging.DEBUG, logger='collector.snapshot')
        try:
            snapshot = _assembler(config, session_provider, reader_factory, openstack_env).collect()
        finally:
            release.set()

        assert snapshot.family_errors == {ResourceFamily.CONTAINERS: 'collection timed out'}
        assert '1 个读取仍在后台运行' in caplog.text


class TestReaderFactory:
    """默认读取器工厂"""

    def test_creates_readers(self, session, cloud_config):
        factory = ReaderFactory(obs_max_workers=2)
        cancel_event = threading.Event()

        compute = factory.compute(session, None, cancel_event)
        object_storage = factory.object_storage(session, cloud_config, None, cancel_event)

        assert compute.session is session
        assert compute.cancel_event is cancel_event
        assert object_storage.cancel_event is cancel_event

    def test_sdk_error_surfaces_as_query_error(self, session, mock_connection):
        mock_connection.compute.get_limits.side_effect = sdk_exceptions.SDKException('boom')
        compute = ReaderFactory().compute(session, None, threading.Event())

        with pytest.raises(ResourceQueryError):
            compute.get_compute_limits()
