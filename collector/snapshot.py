# -*- coding: utf-8 -*-
"""
采集快照组装模块

功能：
- 每次 Prometheus 抓取时执行一个完整的采集周期
- 认证 -> 计算 -> 块存储 -> 对象存储 -> 完成
- 各资源族独立成功或失败，失败的资源族不输出指标
- 整个周期受 collect_timeout 约束，超时后取消未完成的读取
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Mapping, Optional

from api.openstack.blockstorage import BlockStorageReader
from api.openstack.compute import ComputeReader
from api.openstack.models import VolumeLimits
from api.openstack.objectstorage import ObjectStorageReader, create_object_storage_reader
from collector.aggregators import count_by_flavor, count_by_status
from collector.observation import CollectionState, ResourceFamily, Snapshot
from config.loader import CloudConfig, ExporterConfig, load_cloud_config
from provider.openstack.errors import AuthenticationError, DataShapeError, ResourceQueryError
from provider.openstack.session import Session, SessionProvider

logger = logging.getLogger(__name__)


class ReaderFactory:
    """创建本周期使用的资源读取器"""

    def __init__(self, obs_max_workers: int = 4):
        self.obs_max_workers = obs_max_workers

    def compute(self, session: Session, logger: logging.Logger,
                cancel_event: threading.Event) -> ComputeReader:
        return ComputeReader(session, logger=logger, cancel_event=cancel_event)

    def block_storage(self, session: Session, logger: logging.Logger,
                      cancel_event: threading.Event) -> BlockStorageReader:
        return BlockStorageReader(session, logger=logger, cancel_event=cancel_event)

    def object_storage(self, session: Session, cloud_config: CloudConfig, logger: logging.Logger,
                       cancel_event: threading.Event) -> ObjectStorageReader:
        return create_object_storage_reader(
            session, cloud_config,
            obs_max_workers=self.obs_max_workers,
            logger=logger,
            cancel_event=cancel_event
        )


class SnapshotAssembler:
    """
    采集快照组装器

    每次调用 collect() 都会重新读取云配置、重新认证，结果不跨周期缓存。
    """

    def __init__(self, config: ExporterConfig,
                 session_provider: SessionProvider = None,
                 reader_factory: ReaderFactory = None,
                 environ: Optional[Mapping[str, str]] = None,
                 logger: logging.Logger = None,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            config: Exporter 配置
            session_provider: 会话 Provider
            reader_factory: 读取器工厂
            environ: 云配置来源（默认 os.environ）
            logger: 日志对象
            clock: 计时函数
        """
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.session_provider = session_provider or SessionProvider(logger=self.logger)
        self.reader_factory = reader_factory or ReaderFactory(obs_max_workers=config.obs_max_workers)
        self.environ = environ
        self._clock = clock

    def collect(self) -> Snapshot:
        """
        执行一个采集周期

        Returns:
            Snapshot；认证失败时 state 为 FAILED，只包含耗时指标
        """
        self.logger.info("[采集] 开始采集 OpenStack 指标")
        start_time = self._clock()
        snapshot = Snapshot()
        session = None

        try:
            try:
                cloud_config = load_cloud_config(self.environ)
                session = self.session_provider.authenticate(cloud_config)
            except (AuthenticationError, ValueError) as e:
                self.logger.error(f"[采集] 认证失败，本次采集终止: {e}")
                snapshot.state = CollectionState.FAILED
                snapshot.error = str(e)
                return snapshot

            self._advance(snapshot, CollectionState.AUTHENTICATED)
            self._collect_families(session, cloud_config, snapshot, start_time)
            self._advance(snapshot, CollectionState.DONE)
            return snapshot
        finally:
            if session is not None:
                session.close()
            snapshot.duration = self._clock() - start_time
            snapshot.add('openstack_collect_duration_seconds', snapshot.duration)
            self.logger.debug(f"[采集] 采集耗时: {snapshot.duration:.3f} 秒")
            if not snapshot.failed:
                self.logger.info(
                    f"[采集] 采集完成: 指标={len(snapshot.observations)}, "
                    f"失败资源族={[family.value for family in snapshot.family_errors]}"
                )

    def _advance(self, snapshot: Snapshot, state: CollectionState):
        snapshot.state = state
        self.logger.debug(f"[采集] 状态: {state.value}")

    def _collect_families(self, session: Session, cloud_config: CloudConfig,
                          snapshot: Snapshot, start_time: float):
        """并发或串行执行各资源读取，全部结束后再组装指标"""
        cancel_event = threading.Event()
        factory = self.reader_factory
        compute = factory.compute(session, self.logger, cancel_event)
        block_storage = factory.block_storage(session, self.logger, cancel_event)

        tasks: Dict[ResourceFamily, Callable[[], Any]] = {
            ResourceFamily.COMPUTE_LIMITS: compute.get_compute_limits,
            ResourceFamily.INSTANCES: compute.list_instances,
            ResourceFamily.VOLUMES: block_storage.list_volumes,
        }
        # OTC 的块存储 limits 接口不可用，改为按配置上限合成
        if not cloud_config.is_alternate_cloud:
            tasks[ResourceFamily.VOLUME_LIMITS] = block_storage.get_volume_limits
        tasks[ResourceFamily.CONTAINERS] = lambda: factory.object_storage(
            session, cloud_config, self.logger, cancel_event
        ).list_containers()

        results = self._run_tasks(tasks, snapshot, cancel_event, start_time)

        self._add_compute(snapshot, results)
        self._advance(snapshot, CollectionState.COMPUTE_COLLECTED)
        self._add_volumes(snapshot, results, cloud_config)
        self._advance(snapshot, CollectionState.VOLUMES_COLLECTED)
        self._add_containers(snapshot, results)
        self._advance(snapshot, CollectionState.CONTAINERS_COLLECTED)

        for family in ResourceFamily:
            success = 0 if family in snapshot.family_errors else 1
            snapshot.add('openstack_collect_success', success, resource=family.value)

    def _run_tasks(self, tasks: Dict[ResourceFamily, Callable[[], Any]], snapshot: Snapshot,
                   cancel_event: threading.Event, start_time: float) -> Dict[ResourceFamily, Any]:
        """
        执行读取任务

        Returns:
            成功的资源族 -> 读取结果；失败原因写入 snapshot.family_errors
        """
        executor = ThreadPoolExecutor(max_workers=self.config.reader_workers)
        futures: Dict[ResourceFamily, Any] = {}
        try:
            futures = {family: executor.submit(task) for family, task in tasks.items()}
            remaining = max(0.0, self.config.collect_timeout - (self._clock() - start_time))
            done, not_done = wait(list(futures.values()), timeout=remaining)

            if not_done:
                self.logger.warning(
                    f"[采集] 采集超时（{self.config.collect_timeout} 秒），取消 {len(not_done)} 个未完成的读取"
                )
                cancel_event.set()
                for future in not_done:
                    future.cancel()
        finally:
            # 不等待正在运行的读取；它们在下一个检查点看到 cancel_event 后退出，
            # 期间 collect() 可能已经关闭会话，其结果不会进入快照
            executor.shutdown(wait=False, cancel_futures=True)
            running = [future for future in futures.values() if future.running()]
            if running:
                self.logger.debug(f"[采集] {len(running)} 个读取仍在后台运行，等待其响应取消信号后退出")

        results = {}
        for family, future in futures.items():
            if future not in done:
                snapshot.family_errors[family] = 'collection timed out'
                continue
            try:
                results[family] = future.result()
            except (ResourceQueryError, DataShapeError) as e:
                self.logger.error(f"[采集] {family.value} 采集失败，该资源族不输出指标: {e}")
                snapshot.family_errors[family] = str(e)
        return results

    def _add_compute(self, snapshot: Snapshot, results: Dict[ResourceFamily, Any]):
        limits = results.get(ResourceFamily.COMPUTE_LIMITS)
        if limits is not None:
            snapshot.add('openstack_max_total_cores', limits.max_total_cores)
            snapshot.add('openstack_max_total_instances', limits.max_total_instances)
            snapshot.add('openstack_max_total_ram_size', limits.max_total_ram_size)
            snapshot.add('openstack_total_cores_used', limits.total_cores_used)
            snapshot.add('openstack_total_instances_used', limits.total_instances_used)
            snapshot.add('openstack_total_ram_used', limits.total_ram_used)

        instances = results.get(ResourceFamily.INSTANCES)
        if instances is not None:
            for flavor, count in sorted(count_by_flavor(instances).items()):
                snapshot.add('openstack_per_flavor_instance_count', count, flavor=flavor)
            for status, count in sorted(count_by_status(instances).items()):
                snapshot.add('openstack_per_status_instance_count', count, status=status)

    def _add_volumes(self, snapshot: Snapshot, results: Dict[ResourceFamily, Any],
                     cloud_config: CloudConfig):
        volumes = results.get(ResourceFamily.VOLUMES)
        if volumes is not None:
            for status, count in sorted(count_by_status(volumes).items()):
                snapshot.add('openstack_per_status_volume_count', count, status=status)

        if cloud_config.is_alternate_cloud:
            if volumes is None:
                snapshot.family_errors[ResourceFamily.VOLUME_LIMITS] = 'volume list unavailable'
                return
            limits = VolumeLimits(
                max_total_volumes=self.config.volume_limit,
                total_volumes_used=len(volumes)
            )
        else:
            limits = results.get(ResourceFamily.VOLUME_LIMITS)
            if limits is None:
                return

        snapshot.add('openstack_max_total_volumes', limits.max_total_volumes)
        snapshot.add('openstack_total_volumes_used', limits.total_volumes_used)
        if limits.max_total_volume_gigabytes is not None:
            snapshot.add('openstack_max_total_volume_gigabytes', limits.max_total_volume_gigabytes)
        if limits.total_gigabytes_used is not None:
            snapshot.add('openstack_total_volume_gigabytes_used', limits.total_gigabytes_used)

    def _add_containers(self, snapshot: Snapshot, results: Dict[ResourceFamily, Any]):
        containers = results.get(ResourceFamily.CONTAINERS)
        if containers is None:
            return
        for container in containers:
            snapshot.add('openstack_container_bytes_used', container.bytes, container=container.name)
